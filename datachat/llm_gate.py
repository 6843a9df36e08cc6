from __future__ import annotations

from typing import Any

from jsonschema import ValidationError, validate

from datachat.llm_schemas import ANALYSIS_REPLY_SCHEMA


class SchemaValidationError(ValueError):
    pass


def validate_schema(output: Any, schema: dict[str, Any]) -> None:
    try:
        validate(instance=output, schema=schema)
    except ValidationError as exc:
        raise SchemaValidationError(str(exc)) from exc


def is_analysis_reply(payload: Any) -> bool:
    """True when a decoded reply is an object carrying a string `message`."""
    try:
        validate_schema(payload, ANALYSIS_REPLY_SCHEMA)
    except SchemaValidationError:
        return False
    return True
