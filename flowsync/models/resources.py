"""Resource identity and snapshot records.

A resource is addressed by its scope (a dot-separated namespace, or the empty
string for tenant-global resources such as dashboards), its logical id and its
kind. The same key is used on both sides of a reconciliation so that tree files
and instance objects can be matched without knowing where they came from.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ResourceKind(Enum):
    """What kind of object a resource is."""

    DEFINITION = "DEFINITION"  # Workflow definition (YAML)
    FILE = "FILE"  # Opaque namespace file, compared byte-exact
    DASHBOARD = "DASHBOARD"  # Dashboard document (YAML), tenant-global


class Origin(Enum):
    """Which side of the reconciliation a record was read from."""

    TREE = "TREE"
    INSTANCE = "INSTANCE"

    @property
    def opposite(self) -> Origin:
        return Origin.INSTANCE if self is Origin.TREE else Origin.TREE


@dataclass(frozen=True)
class ResourceKey:
    """Identity of a resource across both sides."""

    scope: str
    id: str
    kind: ResourceKind

    @property
    def identity(self) -> str:
        """The identity string written to diff records (``scope:id``)."""
        return f"{self.scope}:{self.id}" if self.scope else self.id

    def __str__(self) -> str:
        return f"{self.kind.value} {self.identity}"


@dataclass(frozen=True)
class ResourceRecord:
    """One resource as seen on one side during a single pass."""

    key: ResourceKey
    content: str | bytes
    origin: Origin
    change_marker: str = ""
    """Revision number or content hash. Only ever compared for equality."""

    path: str | None = None
    """Tree-relative POSIX path, set for records read from the tree."""
