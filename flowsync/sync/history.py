"""Run history: an append-only audit log of sync runs.

Every completed run appends one JSON line with what was reconciled, under
which policy, and where its diff artifact and commit ended up.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path


@dataclass
class RunRecord:
    """One completed run."""

    scope: str
    source_of_truth: str
    dry_run: bool
    diff_handle: str
    started_at: str = ""
    commit_id: str = ""
    commit_url: str = ""
    counts: dict[str, int] = field(default_factory=dict)


class RunHistory:
    """Stores and retrieves run records in a JSONL file."""

    HISTORY_FILE = "history.jsonl"

    def __init__(self, base_dir: str | Path):
        self.base_dir = Path(base_dir)
        self.store_file = self.base_dir / self.HISTORY_FILE

    def record(self, record: RunRecord) -> None:
        """Append a run record."""
        self.base_dir.mkdir(parents=True, exist_ok=True)

        if not record.started_at:
            record.started_at = datetime.now(timezone.utc).isoformat()

        with open(self.store_file, "a", encoding="utf-8") as f:
            f.write(json.dumps(asdict(record)) + "\n")

    def get_history(self, scope: str | None = None) -> list[RunRecord]:
        """Retrieve run records, oldest first, optionally filtered by scope."""
        if not self.store_file.exists():
            return []

        records = []
        with open(self.store_file, encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                data = json.loads(line)
                if scope and data.get("scope") != scope:
                    continue
                records.append(
                    RunRecord(
                        scope=data.get("scope", ""),
                        source_of_truth=data.get("source_of_truth", ""),
                        dry_run=data.get("dry_run", False),
                        diff_handle=data.get("diff_handle", ""),
                        started_at=data.get("started_at", ""),
                        commit_id=data.get("commit_id") or "",
                        commit_url=data.get("commit_url") or "",
                        counts=data.get("counts", {}),
                    )
                )
        return records

    def get_latest(self, scope: str | None = None) -> RunRecord | None:
        """Get the most recent run record."""
        history = self.get_history(scope)
        return history[-1] if history else None
