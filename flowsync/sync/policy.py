"""Sync policy: which side owns the truth and what happens at the edges.

A policy decides, for every resource, which side wins on conflict, what to do
with resources missing from the authoritative side, how to react to invalid
content, and which scopes can never lose resources to a delete.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from flowsync.sync.errors import ConfigurationError

_TRUE = {"true", "yes", "on", "1"}
_FALSE = {"false", "no", "off", "0"}


class SourceOfTruth(Enum):
    """The side whose content wins."""

    TREE = "tree"
    INSTANCE = "instance"


class WhenMissingInSource(Enum):
    """What to do with a resource that only exists on the non-authoritative side."""

    DELETE = "delete"
    KEEP = "keep"
    FAIL = "fail"


class OnInvalidContent(Enum):
    """What to do with content that fails structural validation."""

    SKIP = "skip"  # Log and leave the resource undecided
    WARN = "warn"  # Log a warning and sync anyway
    FAIL = "fail"  # Abort the run


@dataclass(frozen=True)
class SyncPolicy:
    """Ownership policy for one reconciliation run."""

    source_of_truth: SourceOfTruth = SourceOfTruth.INSTANCE
    when_missing_in_source: WhenMissingInSource = WhenMissingInSource.DELETE
    on_invalid_content: OnInvalidContent = OnInvalidContent.FAIL
    protected_scopes: frozenset[str] = field(default_factory=frozenset)
    dry_run: bool = False

    def is_protected(self, scope: str) -> bool:
        return self.protecting_scope(scope) is not None

    def protecting_scope(self, scope: str) -> str | None:
        """Return the protected entry covering ``scope``, if any.

        A scope is covered by an entry it equals or descends from through
        dot-separated segments: ``system`` covers ``system.audit`` but not
        ``systems``.
        """
        if not scope:
            return None
        for entry in sorted(self.protected_scopes):
            if scope == entry or scope.startswith(entry + "."):
                return entry
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_of_truth": self.source_of_truth.value,
            "when_missing_in_source": self.when_missing_in_source.value,
            "on_invalid_content": self.on_invalid_content.value,
            "protected_scopes": sorted(self.protected_scopes),
            "dry_run": self.dry_run,
        }


def policy_from_dict(data: dict[str, Any] | None, **defaults: Any) -> SyncPolicy:
    """Build a policy from its configuration mapping.

    Enum values are matched case-insensitively so ``TREE`` and ``tree`` are
    both accepted. Keyword ``defaults`` apply to keys absent from ``data``.

    Raises:
        ConfigurationError: If a value is not one of the allowed choices.
    """
    data = {**defaults, **(data or {})}

    protected = data.get("protected_scopes") or []
    if isinstance(protected, str):
        protected = [protected]

    return SyncPolicy(
        source_of_truth=_choice(SourceOfTruth, data, "source_of_truth", SourceOfTruth.INSTANCE),
        when_missing_in_source=_choice(
            WhenMissingInSource, data, "when_missing_in_source", WhenMissingInSource.DELETE
        ),
        on_invalid_content=_choice(OnInvalidContent, data, "on_invalid_content", OnInvalidContent.FAIL),
        protected_scopes=frozenset(str(p).strip() for p in protected if str(p).strip()),
        dry_run=parse_flag(data.get("dry_run"), "dry_run"),
    )


def parse_flag(value: Any, name: str, default: bool = False) -> bool:
    """Read a boolean setting; YAML booleans and true/false style strings.

    Raises:
        ConfigurationError: If the value is not recognisably true or false.
    """
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ConfigurationError(f"Invalid {name} '{value}', expected true or false")


def _choice(enum_type: type[Enum], data: dict[str, Any], name: str, default: Enum):
    raw = data.get(name)
    if raw is None or raw == "":
        return default
    if isinstance(raw, enum_type):
        return raw
    try:
        return enum_type(str(raw).strip().lower())
    except ValueError:
        allowed = ", ".join(m.value for m in enum_type)
        raise ConfigurationError(f"Invalid {name} '{raw}', expected one of: {allowed}")
