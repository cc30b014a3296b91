"""Tree side: resources stored as files in a checked-out working tree.

Layout below the tree base directory::

    <scope>/flows/<id>.yaml       workflow definitions
    <scope>/files/<path>          namespace files (any depth)
    _global/dashboards/<id>.yaml  dashboards
"""

from __future__ import annotations

import logging
from pathlib import Path

from flowsync.models.resources import Origin, ResourceKey, ResourceRecord
from flowsync.resources.strategy import DEFINITIONS, FILES, GLOBAL_DIR, KindStrategy
from flowsync.utils.ignore import SKIP_DIRS, IgnoreRules
from flowsync.validation import ValidationResult

log = logging.getLogger(__name__)


class TreeResourceSet:
    """Reads and writes one resource kind inside a tree directory."""

    origin = Origin.TREE

    def __init__(self, base_dir: str | Path, strategy: KindStrategy, ignore: IgnoreRules | None = None):
        self.base_dir = Path(base_dir)
        self.strategy = strategy
        self.ignore = ignore if ignore is not None else IgnoreRules.load(self.base_dir)
        self._paths: dict[ResourceKey, str] = {}

    @property
    def kind(self):
        return self.strategy.kind

    def read(self, scope: str) -> dict[ResourceKey, ResourceRecord]:
        """Enumerate every resource of this kind stored for ``scope``."""
        kind_dir = self.base_dir / self.strategy.scope_dir(scope)
        records: dict[ResourceKey, ResourceRecord] = {}
        if not kind_dir.is_dir():
            return records

        candidates = kind_dir.rglob("*") if self.strategy.recursive else kind_dir.iterdir()
        for item in sorted(candidates):
            if not item.is_file():
                continue
            relative = item.relative_to(self.base_dir).as_posix()
            if self.ignore.is_ignored(relative):
                continue
            key = self.strategy.to_key(scope, item.relative_to(kind_dir).as_posix())
            if key is None:
                continue
            if key in records:
                log.warning("Duplicate %s in tree, keeping %s over %s", key, records[key].path, relative)
                continue

            data = item.read_bytes()
            records[key] = ResourceRecord(
                key=key,
                content=self.strategy.decode(data),
                origin=Origin.TREE,
                change_marker=self.strategy.marker(data),
                path=relative,
            )
            self._paths[key] = relative
        return records

    def path_for(self, key: ResourceKey) -> str:
        """Where ``key`` lives (or will live) relative to the tree base."""
        return self._paths.get(key) or self.strategy.tree_path(key)

    def write(self, key: ResourceKey, content: str | bytes, path: str | None = None) -> str:
        """Write content for ``key`` and return its new change marker."""
        relative = path or self.path_for(key)
        target = self.base_dir / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        data = self.strategy.encode(content)
        target.write_bytes(data)
        self._paths[key] = relative
        return self.strategy.marker(data)

    def delete(self, key: ResourceKey, path: str | None = None) -> None:
        """Remove the file for ``key`` and prune emptied directories."""
        relative = path or self.path_for(key)
        target = self.base_dir / relative
        if target.is_file():
            target.unlink()
        self._paths.pop(key, None)

        stop = (self.base_dir / self.strategy.scope_dir(key.scope)).resolve()
        parent = target.parent
        while parent.resolve() != stop and stop in parent.resolve().parents:
            if parent.is_dir() and not any(parent.iterdir()):
                parent.rmdir()
                parent = parent.parent
            else:
                break

    def validate(self, content: str | bytes, key: ResourceKey | None = None) -> ValidationResult:
        return self.strategy.validate(content, key)

    def discover_scopes(self) -> set[str]:
        """Top-level directories that hold definitions or files."""
        return discover_scopes(self.base_dir)


def discover_scopes(base_dir: str | Path) -> set[str]:
    """Scopes present in a tree: top-level directories with a flows/ or files/ child."""
    base = Path(base_dir)
    scopes: set[str] = set()
    if not base.is_dir():
        return scopes
    for child in base.iterdir():
        if not child.is_dir() or child.name in SKIP_DIRS or child.name == GLOBAL_DIR:
            continue
        if (child / DEFINITIONS.directory).is_dir() or (child / FILES.directory).is_dir():
            scopes.add(child.name)
    return scopes
