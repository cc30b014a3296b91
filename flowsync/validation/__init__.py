"""Structural validation of definition and dashboard documents."""

from flowsync.validation.content import ValidationResult, validate_dashboard, validate_definition

__all__ = ["ValidationResult", "validate_dashboard", "validate_definition"]
