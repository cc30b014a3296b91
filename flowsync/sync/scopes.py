"""Scope enumeration: which namespaces a run reconciles."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable

from flowsync.resources.tree import discover_scopes
from flowsync.sync.policy import SourceOfTruth, SyncPolicy


@dataclass(frozen=True)
class SingleScope:
    """Reconcile one namespace."""

    scope: str

    @property
    def label(self) -> str:
        return self.scope

    def resolve(self, tree_dir: Path, instance_scopes: Callable[[], Iterable[str]], policy: SyncPolicy) -> list[str]:
        return [self.scope]


@dataclass(frozen=True)
class AllScopes:
    """Reconcile every namespace of the tenant.

    Instance namespaces are always included. Namespaces that only exist as
    directories in the tree are added when the tree is the source of truth,
    since only then can they gain resources on the instance.
    """

    @property
    def label(self) -> str:
        return "*"

    def resolve(self, tree_dir: Path, instance_scopes: Callable[[], Iterable[str]], policy: SyncPolicy) -> list[str]:
        scopes = {s for s in instance_scopes() if s}
        if policy.source_of_truth is SourceOfTruth.TREE:
            scopes |= discover_scopes(tree_dir)
        return sorted(scopes)
