"""Error taxonomy for sync runs.

Every failure the engine raises derives from ``SyncError`` so hosts can tell
reconciliation failures apart from programming errors.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from flowsync.models.resources import ResourceKey


class SyncError(RuntimeError):
    """Base class for every reconciliation failure."""


class ConfigurationError(SyncError):
    """A required setting is missing or invalid. Raised before any I/O."""


class ResolutionError(SyncError):
    """The tree side (repository, branch or directory) cannot be resolved."""


class ConflictError(SyncError):
    """The run cannot proceed without overriding the other side.

    Raised for a ``FAIL`` missing-in-source policy and for a rejected push.
    Never retried.
    """


class ValidationError(SyncError):
    """Resource content failed structural validation."""

    def __init__(self, message: str, key: ResourceKey | None = None, issues: list[str] | None = None):
        super().__init__(message)
        self.key = key
        self.issues = issues or []


class ProtectionViolation(SyncError):
    """A delete targeted a protected scope.

    The planner downgrades these to a skipped decision and records the
    violation instead of raising it.
    """

    def __init__(self, key: ResourceKey, protected_by: str):
        super().__init__(f"{key} is in protected scope '{protected_by}', delete skipped")
        self.key = key
        self.protected_by = protected_by


class NoChangesError(SyncError):
    """The version-control client had nothing to commit."""


class InstanceError(SyncError):
    """The instance resource store could not be read or written."""


class ApplyError(SyncError):
    """A pending action failed for a reason other than invalid content.

    Actions applied before the failure are not rolled back.
    """

    def __init__(self, message: str, key: ResourceKey | None = None):
        super().__init__(message)
        self.key = key
