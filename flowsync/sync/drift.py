"""Drift summary: how far apart the tree and the instance are.

Drift happens when:
1. The instance holds content the tree does not (the tree is behind)
2. The tree holds content the instance does not (the instance is behind)
3. A resource exists on one side only and is scheduled for removal
4. A removal was blocked by a protected scope

A report is computed from a plan's decisions, so a dry run is a drift check.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Iterable

from flowsync.models.decisions import Decision, SyncAction
from flowsync.models.resources import Origin


class DriftType:
    TREE_BEHIND = "tree_behind"  # Instance content will be written to the tree
    INSTANCE_BEHIND = "instance_behind"  # Tree content will be pushed to the instance
    ORPHANED = "orphaned"  # Resource will be deleted from one side
    PROTECTED = "protected"  # Delete skipped in a protected scope


_DRIFT_BY_ACTION = {
    SyncAction.UPDATED_TO_TREE: DriftType.TREE_BEHIND,
    SyncAction.UPDATED_TO_INSTANCE: DriftType.INSTANCE_BEHIND,
    SyncAction.DELETED_FROM_TREE: DriftType.ORPHANED,
    SyncAction.DELETED_FROM_INSTANCE: DriftType.ORPHANED,
    SyncAction.SKIPPED_PROTECTED: DriftType.PROTECTED,
}


@dataclass
class DriftReport:
    """Decision counts and the kinds of drift they reveal."""

    scope: str
    counts: dict[str, int] = field(default_factory=dict)
    drift_types: list[str] = field(default_factory=list)
    details: list[str] = field(default_factory=list)

    @property
    def has_drift(self) -> bool:
        return len(self.drift_types) > 0

    @property
    def total(self) -> int:
        return sum(self.counts.values())

    def summary(self) -> str:
        if not self.has_drift:
            return f"{self.scope}: in sync ({self.total} resources)"
        types = ", ".join(self.drift_types)
        return f"{self.scope}: DRIFT [{types}]"


def drift_report(scope: str, decisions: Iterable[Decision], added_to: Origin | None = None) -> DriftReport:
    """Build a drift report from planned decisions.

    Args:
        scope: Label for the report (a namespace, or ``*`` for tenant-wide runs).
        decisions: The plan's decisions.
        added_to: Side that receives ADDED resources (the non-authoritative one).
    """
    decisions = list(decisions)
    counts = Counter(d.action.value for d in decisions)
    report = DriftReport(scope=scope, counts=dict(sorted(counts.items())))

    found: set[str] = set()
    for decision in decisions:
        drift = _DRIFT_BY_ACTION.get(decision.action)
        if decision.action is SyncAction.ADDED:
            drift = DriftType.TREE_BEHIND if added_to is Origin.TREE else DriftType.INSTANCE_BEHIND
        if drift is None:
            continue
        found.add(drift)
        report.details.append(f"{decision.key}: {decision.action.value}")

    # Stable order for display
    report.drift_types = [
        t
        for t in (DriftType.TREE_BEHIND, DriftType.INSTANCE_BEHIND, DriftType.ORPHANED, DriftType.PROTECTED)
        if t in found
    ]
    return report
