from __future__ import annotations

import json
from typing import Any

import jsonschema
from jsonschema import FormatChecker

_HEX_32 = "^0x[0-9a-fA-F]{64}$"

DEPLOY_STATE_SCHEMA: dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "title": "GrowStreams deployment state",
    "type": "object",
    "additionalProperties": {
        "type": "object",
        "required": ["programId", "codeId", "deployedAt", "network", "node"],
        "properties": {
            "programId": {"type": "string", "pattern": _HEX_32},
            "codeId": {"type": "string", "pattern": _HEX_32},
            "deployedAt": {"type": "string", "format": "date-time"},
            "network": {"type": "string", "minLength": 1},
            "node": {"type": "string", "minLength": 1},
        },
    },
}


class SchemaValidationError(ValueError):
    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or []


def validator_for(schema: dict[str, Any]) -> jsonschema.Validator:
    validator_cls = jsonschema.validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema, format_checker=FormatChecker())


def validate_instance(instance: Any, schema: dict[str, Any], name: str) -> None:
    validator = validator_for(schema)
    errors = sorted(validator.iter_errors(instance), key=lambda e: list(e.path))
    if errors:
        formatted = [_format_error(err) for err in errors]
        raise SchemaValidationError(f"Schema validation failed for {name}.", errors=formatted)


def _format_error(error: jsonschema.ValidationError) -> str:
    location = "/".join(str(part) for part in error.path) or "<root>"
    return f"{location}: {error.message}"


def dump_json(payload: Any) -> bytes:
    return (json.dumps(payload, indent=2, sort_keys=True) + "\n").encode("utf-8")
