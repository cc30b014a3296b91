"""Pydantic models for API request/response serialization.

These models mirror the flowsync dataclasses and provide proper JSON
serialization for the FastAPI endpoints.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Sync run models
# ---------------------------------------------------------------------------


class SyncRunRequest(BaseModel):
    """Request body for planning or running a sync."""

    config_path: str
    dry_run: Optional[bool] = None


class DecisionResponse(BaseModel):
    """Mirrors flowsync.sync.diff.DiffRecord."""

    file: Optional[str] = None
    key: str
    kind: str
    action: str


class FileStatResponse(BaseModel):
    """Mirrors flowsync.vcs.git_client.FileStat."""

    file: str
    additions: int = 0
    deletions: int = 0
    changes: int = 0


class DriftReportResponse(BaseModel):
    """Mirrors flowsync.sync.drift.DriftReport."""

    scope: str
    counts: dict[str, int] = Field(default_factory=dict)
    drift_types: list[str] = Field(default_factory=list)
    details: list[str] = Field(default_factory=list)
    has_drift: bool = False


class SyncRunResponse(BaseModel):
    """Mirrors flowsync.sync.orchestrator.SyncResult."""

    diff_handle: str
    scope: str
    dry_run: bool
    commit_id: Optional[str] = None
    commit_url: Optional[str] = None
    stats_handle: Optional[str] = None
    decisions: list[DecisionResponse] = Field(default_factory=list)
    file_stats: list[FileStatResponse] = Field(default_factory=list)
    drift: Optional[DriftReportResponse] = None
    violations: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    states: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# History models
# ---------------------------------------------------------------------------


class RunRecordResponse(BaseModel):
    """Mirrors flowsync.sync.history.RunRecord."""

    scope: str
    source_of_truth: str
    dry_run: bool
    diff_handle: str
    started_at: str = ""
    commit_id: str = ""
    commit_url: str = ""
    counts: dict[str, int] = Field(default_factory=dict)
