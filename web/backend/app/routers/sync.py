"""Sync router -- plan and run reconciliations, read diffs and run history."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException

from flowsync.config import load_config
from flowsync.sync.diff import DiffRecord, read_diff
from flowsync.sync.errors import (
    ConfigurationError,
    ConflictError,
    InstanceError,
    ResolutionError,
    SyncError,
    ValidationError,
)
from flowsync.sync.history import RunHistory
from flowsync.sync.orchestrator import build_orchestrator
from flowsync.sync.storage import LocalArtifactStorage

from web.backend.app.models.api import (
    DecisionResponse,
    DriftReportResponse,
    FileStatResponse,
    RunRecordResponse,
    SyncRunRequest,
    SyncRunResponse,
)

router = APIRouter(tags=["sync"])

_STATUS_BY_ERROR = [
    (ConfigurationError, 400),
    (ResolutionError, 404),
    (ConflictError, 409),
    (ValidationError, 422),
    (InstanceError, 502),
]


def _error_status(exc: SyncError) -> int:
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status
    return 500


def _decision_to_response(record: DiffRecord) -> DecisionResponse:
    return DecisionResponse(file=record.file, key=record.key, kind=record.kind, action=record.action)


def _result_to_response(result) -> SyncRunResponse:
    """Convert a SyncResult dataclass to a Pydantic response."""
    records = sorted((DiffRecord.from_decision(d) for d in result.decisions), key=DiffRecord.sort_key)
    drift = None
    if result.drift is not None:
        drift = DriftReportResponse(
            scope=result.drift.scope,
            counts=result.drift.counts,
            drift_types=result.drift.drift_types,
            details=result.drift.details,
            has_drift=result.drift.has_drift,
        )
    plan = result.plan
    return SyncRunResponse(
        diff_handle=result.diff_handle,
        scope=result.scope,
        dry_run=result.dry_run,
        commit_id=result.commit_id,
        commit_url=result.commit_url,
        stats_handle=result.stats_handle,
        decisions=[_decision_to_response(r) for r in records],
        file_stats=[FileStatResponse(**s.to_dict()) for s in result.file_stats],
        drift=drift,
        violations=[str(v) for v in plan.violations] if plan else [],
        skipped=[str(k) for k in plan.skipped] if plan else [],
        states=[s.value for s in result.states],
    )


def _run(request: SyncRunRequest, force_dry_run: bool = False) -> SyncRunResponse:
    try:
        config = load_config(request.config_path)
        if force_dry_run:
            config = config.with_dry_run(True)
        elif request.dry_run is not None:
            config = config.with_dry_run(request.dry_run)
        with build_orchestrator(config) as orchestrator:
            result = orchestrator.run()
    except SyncError as exc:
        raise HTTPException(status_code=_error_status(exc), detail=str(exc))

    return _result_to_response(result)


@router.post(
    "/api/sync/plan",
    response_model=SyncRunResponse,
    summary="Plan a sync without applying it",
)
async def plan_sync(request: SyncRunRequest):
    """Compute and record the decisions for a configuration in dry-run mode."""
    return _run(request, force_dry_run=True)


@router.post(
    "/api/sync/run",
    response_model=SyncRunResponse,
    summary="Run a sync",
)
async def run_sync(request: SyncRunRequest):
    """Reconcile, apply, commit and push.

    ``dry_run`` in the body overrides the configuration's own setting.
    """
    return _run(request)


@router.get(
    "/api/sync/diff",
    response_model=list[DecisionResponse],
    summary="Read a recorded diff artifact",
)
async def get_diff(handle: str, artifacts_dir: str = ".flowsync"):
    """Return the records of a diff artifact in their recorded order."""
    try:
        records = read_diff(LocalArtifactStorage(artifacts_dir), handle)
    except FileNotFoundError:
        raise HTTPException(status_code=404, detail=f"Diff not found: {handle}")

    return [_decision_to_response(r) for r in records]


@router.get(
    "/api/sync/history",
    response_model=list[RunRecordResponse],
    summary="List recorded sync runs",
)
async def get_history(artifacts_dir: str = ".flowsync", scope: str | None = None):
    """Retrieve run records, oldest first."""
    records = RunHistory(artifacts_dir).get_history(scope)
    return [RunRecordResponse(**vars(r)) for r in records]
