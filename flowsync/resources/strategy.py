"""Per-kind capabilities consumed by the generic reconciliation engine.

Each resource kind differs only in where it lives in the tree, how its content
is compared and whether it can be validated. Those differences are values on
a ``KindStrategy`` rather than subclasses.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Callable, Optional

from flowsync.models.resources import ResourceKey, ResourceKind
from flowsync.validation import ValidationResult, validate_dashboard, validate_definition

GLOBAL_DIR = "_global"

Validator = Callable[[object, Optional[ResourceKey]], ValidationResult]


@dataclass(frozen=True)
class KindStrategy:
    """How one resource kind is laid out, compared and validated."""

    kind: ResourceKind
    directory: str
    extensions: tuple[str, ...] = ()
    binary: bool = False
    global_scope: bool = False
    recursive: bool = False
    validator: Validator | None = None

    def scope_dir(self, scope: str) -> str:
        """Tree-relative directory holding this kind for ``scope``."""
        if self.global_scope:
            return f"{GLOBAL_DIR}/{self.directory}"
        return f"{scope}/{self.directory}"

    def tree_path(self, key: ResourceKey) -> str:
        """Default tree location for a key."""
        base = self.scope_dir(key.scope)
        if self.extensions:
            return f"{base}/{key.id}{self.extensions[0]}"
        return f"{base}/{key.id}"

    def to_key(self, scope: str, relative: str) -> ResourceKey | None:
        """Map a file found under the kind directory back to its key.

        ``relative`` is the POSIX path below the kind directory. Returns None
        for files this kind does not own.
        """
        if not self.recursive and "/" in relative:
            return None
        if self.extensions:
            for ext in self.extensions:
                if relative.endswith(ext) and len(relative) > len(ext):
                    return ResourceKey("" if self.global_scope else scope, relative[: -len(ext)], self.kind)
            return None
        return ResourceKey("" if self.global_scope else scope, relative, self.kind)

    def normalize(self, content: str | bytes) -> str | bytes:
        """Canonical form used for equality checks.

        Text kinds normalise line endings, trailing whitespace and surrounding
        blank lines. Binary kinds are returned untouched.
        """
        if self.binary:
            return content if isinstance(content, bytes) else content.encode("utf-8")
        if isinstance(content, bytes):
            try:
                text = content.decode("utf-8")
            except UnicodeDecodeError:
                # Undecodable text compares byte for byte
                return content
        else:
            text = content
        lines = [line.rstrip() for line in text.replace("\r\n", "\n").replace("\r", "\n").split("\n")]
        while lines and not lines[0]:
            lines.pop(0)
        while lines and not lines[-1]:
            lines.pop()
        return "\n".join(lines)

    def same_content(self, a: str | bytes, b: str | bytes) -> bool:
        return self.normalize(a) == self.normalize(b)

    def validate(self, content: str | bytes, key: ResourceKey | None = None) -> ValidationResult:
        if self.validator is None:
            return ValidationResult()
        return self.validator(content, key)

    def encode(self, content: str | bytes) -> bytes:
        return content if isinstance(content, bytes) else content.encode("utf-8")

    def decode(self, data: bytes) -> str | bytes:
        """Text for text kinds; raw bytes for binary kinds or invalid UTF-8.

        Undecodable text is kept as bytes so validation can report it.
        """
        if self.binary:
            return data
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError:
            return data

    def marker(self, content: str | bytes) -> str:
        """Content hash used as a change marker."""
        return hashlib.sha256(self.encode(content)).hexdigest()


DEFINITIONS = KindStrategy(
    kind=ResourceKind.DEFINITION,
    directory="flows",
    extensions=(".yaml", ".yml"),
    validator=validate_definition,
)

FILES = KindStrategy(
    kind=ResourceKind.FILE,
    directory="files",
    binary=True,
    recursive=True,
)

DASHBOARDS = KindStrategy(
    kind=ResourceKind.DASHBOARD,
    directory="dashboards",
    extensions=(".yaml", ".yml"),
    global_scope=True,
    validator=validate_dashboard,
)

DEFAULT_STRATEGIES: dict[ResourceKind, KindStrategy] = {
    s.kind: s for s in (DEFINITIONS, FILES, DASHBOARDS)
}
