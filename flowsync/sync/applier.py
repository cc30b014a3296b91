"""Change applier: a thin interpreter over the planner's pending actions.

Actions run sequentially in the order given. Nothing is retried and nothing
already applied is rolled back when a later action fails.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Mapping, Protocol

from flowsync.models.decisions import DeleteAction, PendingAction, WriteAction
from flowsync.models.resources import Origin, ResourceKey, ResourceKind, ResourceRecord
from flowsync.sync.errors import ApplyError, ValidationError
from flowsync.sync.policy import OnInvalidContent, SyncPolicy
from flowsync.validation import ValidationResult

log = logging.getLogger(__name__)


class ResourceSide(Protocol):
    """What both the tree and the instance side offer the engine.

    Instance sides also offer ``validate_remote(content)``, the instance's own
    check, which runs before every write to the instance.
    """

    def read(self, scope: str) -> dict[ResourceKey, ResourceRecord]: ...

    def write(self, key: ResourceKey, content: str | bytes, path: str | None = None) -> str: ...

    def delete(self, key: ResourceKey, path: str | None = None) -> None: ...

    def validate(self, content: str | bytes, key: ResourceKey | None = None) -> ValidationResult: ...


SideMap = Mapping[tuple[ResourceKind, Origin], ResourceSide]


@dataclass
class ApplyReport:
    """What an apply call actually did."""

    written: int = 0
    deleted: int = 0
    skipped: list[ResourceKey] = field(default_factory=list)
    dry_run: bool = False

    @property
    def applied(self) -> int:
        return self.written + self.deleted


class ChangeApplier:
    """Executes pending actions against the side each one targets."""

    def __init__(self, sides: SideMap, policy: SyncPolicy):
        self.sides = sides
        self.policy = policy

    def apply(self, actions: list[PendingAction]) -> ApplyReport:
        """Apply every action in order.

        A dry-run policy makes this a no-op.

        Raises:
            ValidationError: Invalid content under a FAIL invalid-content policy.
            ApplyError: Any other failure, naming the failing key.
        """
        report = ApplyReport(dry_run=self.policy.dry_run)
        if self.policy.dry_run:
            log.info("Dry run, %d action(s) not applied", len(actions))
            return report

        for action in actions:
            try:
                self._apply_one(action, report)
            except ValidationError as e:
                if self.policy.on_invalid_content is OnInvalidContent.FAIL:
                    raise
                self._on_invalid(action.key, str(e))
                report.skipped.append(action.key)
            except ApplyError:
                raise
            except Exception as e:
                raise ApplyError(f"Failed to apply {_describe(action)}: {e}", key=action.key) from e

        log.info("Applied %d write(s) and %d delete(s)", report.written, report.deleted)
        return report

    def _apply_one(self, action: PendingAction, report: ApplyReport):
        side = self._side(action)

        if isinstance(action, WriteAction):
            if action.destination is Origin.INSTANCE:
                # Local checks ran in the planner
                outcome = side.validate_remote(action.content)
                if not outcome.passed and not self._on_invalid(action.key, outcome.summary()):
                    report.skipped.append(action.key)
                    return
            side.write(action.key, action.content, action.path)
            report.written += 1
            log.debug("Wrote %s to %s", action.key, action.destination.value.lower())
        elif isinstance(action, DeleteAction):
            side.delete(action.key, action.path)
            report.deleted += 1
            log.debug("Deleted %s from %s", action.key, action.destination.value.lower())
        else:
            raise ApplyError(f"Unknown action {action!r}")

    def _side(self, action: PendingAction) -> ResourceSide:
        try:
            return self.sides[(action.key.kind, action.destination)]
        except KeyError:
            raise ApplyError(
                f"No {action.destination.value.lower()} side configured for {action.key.kind.value}",
                key=action.key,
            ) from None

    def _on_invalid(self, key: ResourceKey, detail: str) -> bool:
        """Handle invalid content per policy; True means write it anyway."""
        mode = self.policy.on_invalid_content
        if mode is OnInvalidContent.FAIL:
            raise ValidationError(f"Invalid content for {key}: {detail}", key=key)
        if mode is OnInvalidContent.WARN:
            log.warning("Invalid content for %s: %s", key, detail)
            return True
        log.info("Skipping %s, invalid content: %s", key, detail)
        return False


def _describe(action: PendingAction) -> str:
    verb = "write" if isinstance(action, WriteAction) else "delete"
    return f"{verb} of {action.key} on {action.destination.value.lower()}"
