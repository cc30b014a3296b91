"""Transport configuration for git and HTTP clients.

A ``TransportConfig`` carries the TLS settings for both clients: an SSL
context for httpx and environment variables for git. Configurations are
memoised by a fingerprint of their input, so asking again with the same
trusted CA returns the cached instance and a different CA builds a new one.
"""

from __future__ import annotations

import base64
import hashlib
import logging
import ssl
import tempfile
import threading
from dataclasses import dataclass, field
from typing import Callable

log = logging.getLogger(__name__)

SYSTEM_FINGERPRINT = "SYSTEM"


@dataclass(frozen=True)
class TransportConfig:
    fingerprint: str
    ssl_context: ssl.SSLContext | None = None
    env: dict[str, str] = field(default_factory=dict)


def fingerprint(ca_pem: str | bytes | None) -> str:
    """``SYSTEM`` without a CA bundle, ``PEM:<b64 sha256>`` with one."""
    if not ca_pem:
        return SYSTEM_FINGERPRINT
    data = ca_pem.encode("utf-8") if isinstance(ca_pem, str) else ca_pem
    return "PEM:" + base64.b64encode(hashlib.sha256(data).digest()).decode("ascii")


def build_transport(ca_pem: str | bytes | None) -> TransportConfig:
    """Build TLS settings that trust the CA certificates in ``ca_pem``."""
    key = fingerprint(ca_pem)
    if not ca_pem:
        return TransportConfig(fingerprint=key)

    text = ca_pem.decode("utf-8") if isinstance(ca_pem, bytes) else ca_pem
    context = ssl.create_default_context(cadata=text)

    bundle = tempfile.NamedTemporaryFile("w", prefix="flowsync-ca-", suffix=".pem", delete=False)
    with bundle:
        bundle.write(text)
    log.debug("Trusted CA bundle written to %s", bundle.name)
    return TransportConfig(fingerprint=key, ssl_context=context, env={"GIT_SSL_CAINFO": bundle.name})


class TransportConfigCache:
    """Memoises transport configurations by fingerprint."""

    def __init__(self, builder: Callable[[str | bytes | None], TransportConfig] = build_transport):
        self._builder = builder
        self._configs: dict[str, TransportConfig] = {}
        self._lock = threading.Lock()

    def get(self, ca_pem: str | bytes | None = None) -> TransportConfig:
        key = fingerprint(ca_pem)
        with self._lock:
            config = self._configs.get(key)
            if config is None:
                log.debug("Configuring transport %s", key)
                config = self._builder(ca_pem)
                self._configs[key] = config
            return config

    def __len__(self) -> int:
        return len(self._configs)


_default_cache = TransportConfigCache()


def transport_config(ca_pem: str | bytes | None = None) -> TransportConfig:
    """Process-wide cached transport configuration."""
    return _default_cache.get(ca_pem)
