"""JSON Schemas for the YAML resources flowsync imports into an instance.

These are deliberately shallow: they check the envelope the instance needs to
accept a document (identity, namespace, task list), not the full task model,
which only the instance itself knows.
"""

IDENTIFIER_PATTERN = r"^[a-zA-Z0-9][a-zA-Z0-9._-]*$"

DEFINITION_SCHEMA: dict = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "title": "Workflow definition",
    "type": "object",
    "required": ["id", "namespace", "tasks"],
    "properties": {
        "id": {
            "type": "string",
            "minLength": 1,
            "pattern": IDENTIFIER_PATTERN,
        },
        "namespace": {
            "type": "string",
            "minLength": 1,
            "pattern": IDENTIFIER_PATTERN,
        },
        "description": {"type": "string"},
        "labels": {"type": "object"},
        "inputs": {"type": "array"},
        "tasks": {
            "type": "array",
            "minItems": 1,
            "items": {
                "type": "object",
                "required": ["id", "type"],
                "properties": {
                    "id": {"type": "string", "minLength": 1},
                    "type": {"type": "string", "minLength": 1},
                },
            },
        },
        "triggers": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["id", "type"],
            },
        },
        "disabled": {"type": "boolean"},
    },
}

DASHBOARD_SCHEMA: dict = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "title": "Dashboard",
    "type": "object",
    "required": ["id", "title"],
    "properties": {
        "id": {
            "type": "string",
            "minLength": 1,
            "pattern": IDENTIFIER_PATTERN,
        },
        "title": {"type": "string", "minLength": 1},
        "description": {"type": "string"},
        "timeWindow": {"type": "object"},
        "charts": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["id", "type"],
            },
        },
    },
}
