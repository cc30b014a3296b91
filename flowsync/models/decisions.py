"""Planner output: decisions for the diff, pending actions for the applier.

Planning never touches I/O. It produces two lists: ``Decision`` values that
end up in the diff artifact, and ``PendingAction`` values (a write or a delete
against one side) that the applier interprets in order.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Union

from flowsync.models.resources import Origin, ResourceKey

if TYPE_CHECKING:
    from flowsync.sync.errors import ProtectionViolation


class SyncAction(Enum):
    """What reconciliation decided for a single resource."""

    ADDED = "ADDED"
    UPDATED_TO_TREE = "UPDATED_TO_TREE"  # Instance wins, tree file rewritten
    UPDATED_TO_INSTANCE = "UPDATED_TO_INSTANCE"  # Tree wins, instance updated
    UNCHANGED = "UNCHANGED"
    DELETED_FROM_TREE = "DELETED_FROM_TREE"
    DELETED_FROM_INSTANCE = "DELETED_FROM_INSTANCE"
    SKIPPED_PROTECTED = "SKIPPED_PROTECTED"


@dataclass(frozen=True)
class Decision:
    """The action chosen for one key."""

    key: ResourceKey
    path: str | None
    action: SyncAction


@dataclass(frozen=True)
class WriteAction:
    """Write ``content`` for ``key`` into the ``destination`` side."""

    key: ResourceKey
    content: str | bytes
    destination: Origin
    path: str | None = None


@dataclass(frozen=True)
class DeleteAction:
    """Delete ``key`` from the ``destination`` side."""

    key: ResourceKey
    destination: Origin
    path: str | None = None


PendingAction = Union[WriteAction, DeleteAction]


@dataclass
class Plan:
    """Everything one planner call produced."""

    decisions: list[Decision] = field(default_factory=list)
    actions: list[PendingAction] = field(default_factory=list)
    violations: list[ProtectionViolation] = field(default_factory=list)
    skipped: list[ResourceKey] = field(default_factory=list)

    def counts(self) -> dict[str, int]:
        """Number of decisions per action name."""
        return dict(Counter(d.action.value for d in self.decisions))

    def decision_for(self, key: ResourceKey) -> Decision | None:
        for decision in self.decisions:
            if decision.key == key:
                return decision
        return None
