"""Content validation for YAML resources headed into an instance.

Parses the document, checks it against the kind's schema and then applies the
checks a schema cannot express (the identity inside the document must match
the key it is stored under).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import yaml

from flowsync.validation.schema import DASHBOARD_SCHEMA, DEFINITION_SCHEMA
from flowsync.validation.schema_validator import validate_against

if TYPE_CHECKING:
    from flowsync.models.resources import ResourceKey


@dataclass
class ValidationResult:
    """Outcome of validating one document."""

    issues: list[str] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return not self.issues

    def summary(self) -> str:
        if self.passed:
            return "valid"
        return "; ".join(self.issues)


def validate_definition(content: str | bytes, key: ResourceKey | None = None) -> ValidationResult:
    """Validate a workflow definition document.

    Args:
        content: Raw YAML source.
        key: When given, the document's ``id`` and ``namespace`` must match it.
    """
    data, result = _parse(content)
    if data is None:
        return result

    result.issues.extend(validate_against(data, DEFINITION_SCHEMA))

    if key is not None and isinstance(data, dict):
        if isinstance(data.get("id"), str) and data["id"] != key.id:
            result.issues.append(f"/: id '{data['id']}' does not match '{key.id}'")
        if isinstance(data.get("namespace"), str) and data["namespace"] != key.scope:
            result.issues.append(f"/: namespace '{data['namespace']}' does not match '{key.scope}'")

    return result


def validate_dashboard(content: str | bytes, key: ResourceKey | None = None) -> ValidationResult:
    """Validate a dashboard document."""
    data, result = _parse(content)
    if data is None:
        return result

    result.issues.extend(validate_against(data, DASHBOARD_SCHEMA))

    if key is not None and isinstance(data, dict):
        if isinstance(data.get("id"), str) and data["id"] != key.id:
            result.issues.append(f"/: id '{data['id']}' does not match '{key.id}'")

    return result


def _parse(content: str | bytes):
    result = ValidationResult()
    if isinstance(content, bytes):
        try:
            content = content.decode("utf-8")
        except UnicodeDecodeError as e:
            result.issues.append(f"/: content is not valid UTF-8 ({e})")
            return None, result

    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        result.issues.append(f"/: YAML parse error: {e}")
        return None, result

    if data is None:
        result.issues.append("/: document is empty")
        return None, result

    return data, result
