"""Schema validation for taskgate evidence documents and reports."""

from __future__ import annotations

from functools import lru_cache
from typing import Any

from jsonschema import ValidationError
from jsonschema.validators import Draft202012Validator

from taskgate.utils.schema_registry import canonical_name, load_schema


@lru_cache(maxsize=None)
def _validator_for(schema_name: str) -> Draft202012Validator:
    return Draft202012Validator(load_schema(schema_name))


def _describe(error: ValidationError) -> str:
    location = ".".join(str(part) for part in error.absolute_path)
    return f"{location}: {error.message}" if location else error.message


def validate_data(data: Any, schema_name: str, strict: bool = True) -> tuple[bool, list[str]]:
    """Validate ``data`` against a packaged schema.

    Args:
        data: Parsed JSON document
        schema_name: Schema name, e.g. ``test_results``
        strict: Raise on the first invalid document instead of returning messages

    Returns:
        Tuple of (is_valid, error_messages), messages ordered by document path

    Raises:
        KeyError: If the schema does not exist
        ValueError: If the document is invalid and strict=True
    """
    name = canonical_name(schema_name)
    errors = sorted(
        _validator_for(name).iter_errors(data),
        key=lambda e: [str(part) for part in e.absolute_path],
    )
    messages = [_describe(error) for error in errors]
    if messages and strict:
        detail = "\n".join(f"  - {message}" for message in messages)
        raise ValueError(f"Schema validation failed for '{name}':\n{detail}")
    return not messages, messages
