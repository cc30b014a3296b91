"""Artifact storage for diff and stats records."""

from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Protocol
from urllib.parse import unquote, urlparse


class ArtifactStorage(Protocol):
    def put(self, name: str, data: bytes) -> str: ...

    def get(self, handle: str) -> bytes: ...


class LocalArtifactStorage:
    """Content-addressed artifacts in a local directory.

    Files are named ``<sha256-prefix>-<name>`` so the same bytes always land
    at the same location, and handles are ``file://`` URIs.
    """

    def __init__(self, base_dir: str | Path):
        self.base_dir = Path(base_dir)

    def put(self, name: str, data: bytes) -> str:
        self.base_dir.mkdir(parents=True, exist_ok=True)
        digest = hashlib.sha256(data).hexdigest()[:16]
        target = self.base_dir / f"{digest}-{Path(name).name}"
        target.write_bytes(data)
        return target.resolve().as_uri()

    def get(self, handle: str) -> bytes:
        return self.resolve(handle).read_bytes()

    def resolve(self, handle: str) -> Path:
        """Map a handle (URI, absolute path or bare file name) to a path."""
        if handle.startswith("file://"):
            return Path(unquote(urlparse(handle).path))
        path = Path(handle)
        if path.is_absolute():
            return path
        return self.base_dir / path
