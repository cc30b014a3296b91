"""Instance side: resources held by the orchestration instance.

An ``InstanceResourceStore`` is the narrow contract the engine needs from an
instance (one store per kind). ``InstanceResourceSet`` adapts a store to the
same side interface as the tree.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from flowsync.models.resources import Origin, ResourceKey, ResourceRecord
from flowsync.resources.strategy import KindStrategy
from flowsync.sync.errors import InstanceError
from flowsync.validation import ValidationResult


@dataclass(frozen=True)
class StoredResource:
    """One resource as listed by an instance store."""

    id: str
    content: str | bytes
    change_marker: str = ""


class InstanceResourceStore(Protocol):
    """Per-kind storage on the instance."""

    def list(self, scope: str) -> list[StoredResource]: ...

    def write(self, scope: str, id: str, content: str | bytes) -> str: ...

    def delete(self, scope: str, id: str) -> None: ...

    def validate(self, content: str | bytes) -> ValidationResult: ...

    def list_scopes(self) -> list[str]: ...


class InstanceResourceSet:
    """Adapts an ``InstanceResourceStore`` to the side interface."""

    origin = Origin.INSTANCE

    def __init__(self, store: InstanceResourceStore, strategy: KindStrategy):
        self.store = store
        self.strategy = strategy

    @property
    def kind(self):
        return self.strategy.kind

    def read(self, scope: str) -> dict[ResourceKey, ResourceRecord]:
        effective = "" if self.strategy.global_scope else scope
        records: dict[ResourceKey, ResourceRecord] = {}
        for item in self.store.list(effective):
            key = ResourceKey(effective, item.id, self.strategy.kind)
            records[key] = ResourceRecord(
                key=key,
                content=item.content,
                origin=Origin.INSTANCE,
                change_marker=item.change_marker or self.strategy.marker(item.content),
            )
        return records

    def write(self, key: ResourceKey, content: str | bytes, path: str | None = None) -> str:
        return self.store.write(key.scope, key.id, content)

    def delete(self, key: ResourceKey, path: str | None = None) -> None:
        self.store.delete(key.scope, key.id)

    def validate(self, content: str | bytes, key: ResourceKey | None = None) -> ValidationResult:
        """Local structural checks first, then the store's own validation."""
        result = self.strategy.validate(content, key)
        if not result.passed:
            return result
        return self.store.validate(content)

    def validate_remote(self, content: str | bytes) -> ValidationResult:
        """The store's own validation only, for content already checked locally."""
        return self.store.validate(content)

    def list_scopes(self) -> list[str]:
        return self.store.list_scopes()


class InMemoryResourceStore:
    """Dict-backed store with integer revisions as change markers."""

    def __init__(self, strategy: KindStrategy):
        self.strategy = strategy
        self._items: dict[tuple[str, str], tuple[str | bytes, int]] = {}
        self._revision = 0

    def list(self, scope: str) -> list[StoredResource]:
        return [
            StoredResource(id=rid, content=content, change_marker=str(rev))
            for (s, rid), (content, rev) in sorted(self._items.items())
            if s == scope
        ]

    def write(self, scope: str, id: str, content: str | bytes) -> str:
        if self.strategy.binary and isinstance(content, str):
            content = content.encode("utf-8")
        elif not self.strategy.binary and isinstance(content, bytes):
            content = self.strategy.decode(content)
        self._revision += 1
        self._items[(scope, id)] = (content, self._revision)
        return str(self._revision)

    def delete(self, scope: str, id: str) -> None:
        if (scope, id) not in self._items:
            raise InstanceError(f"{self.strategy.kind.value} {scope}:{id} not found")
        del self._items[(scope, id)]

    def validate(self, content: str | bytes) -> ValidationResult:
        return ValidationResult()

    def list_scopes(self) -> list[str]:
        return sorted({scope for scope, _ in self._items if scope})

    def get(self, scope: str, id: str) -> str | bytes | None:
        item = self._items.get((scope, id))
        return item[0] if item else None

    def __len__(self) -> int:
        return len(self._items)
