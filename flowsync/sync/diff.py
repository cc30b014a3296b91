"""Diff recorder: the auditable, line-delimited record of a plan.

Each decision becomes one JSON object per line, keys in a fixed order
(``file``, ``key``, ``kind``, ``action``). Records are sorted by ``file``
with null files last, so the same decision set always produces the same
bytes whatever order it was planned in.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Iterable

from flowsync.models.decisions import Decision
from flowsync.sync.storage import ArtifactStorage

DIFF_ARTIFACT = "diff.jsonl"
STATS_ARTIFACT = "diff-stats.jsonl"


@dataclass(frozen=True)
class DiffRecord:
    """One decision as written to the diff artifact."""

    file: str | None
    key: str
    kind: str
    action: str

    @classmethod
    def from_decision(cls, decision: Decision) -> DiffRecord:
        return cls(
            file=decision.path,
            key=decision.key.identity,
            kind=decision.key.kind.value,
            action=decision.action.value,
        )

    def to_dict(self) -> dict:
        return {"file": self.file, "key": self.key, "kind": self.kind, "action": self.action}

    def sort_key(self):
        return (self.file is None, self.file or "", self.key, self.kind, self.action)


def render(decisions: Iterable[Decision]) -> bytes:
    """Serialise decisions into the canonical line-delimited form."""
    records = sorted((DiffRecord.from_decision(d) for d in decisions), key=DiffRecord.sort_key)
    return "".join(_line(r.to_dict()) for r in records).encode("utf-8")


def render_rows(rows: Iterable[dict]) -> bytes:
    """Serialise arbitrary dict rows, one per line, in the given order."""
    return "".join(_line(row) for row in rows).encode("utf-8")


class DiffRecorder:
    """Persists decision sets through an artifact storage."""

    def __init__(self, storage: ArtifactStorage):
        self.storage = storage

    def record(self, decisions: Iterable[Decision], name: str = DIFF_ARTIFACT) -> str:
        """Write the diff artifact and return its handle."""
        return self.storage.put(name, render(decisions))


def read_diff(storage: ArtifactStorage, handle: str) -> list[DiffRecord]:
    """Parse a recorded diff artifact back into records."""
    records = []
    for line in storage.get(handle).decode("utf-8").splitlines():
        if not line.strip():
            continue
        data = json.loads(line)
        records.append(DiffRecord(data.get("file"), data["key"], data["kind"], data["action"]))
    return records


def _line(row: dict) -> str:
    return json.dumps(row, separators=(",", ":"), ensure_ascii=False) + "\n"
