"""Package-data schema lookup.

Schemas ship in the ``taskgate_schemas`` package, so validation does not
depend on the working directory. Parsed schemas are cached; the auditor
validates from worker threads.
"""

from __future__ import annotations

import json
from functools import lru_cache
from importlib.resources import files
from typing import Any

SCHEMA_PACKAGE = "taskgate_schemas"
SCHEMA_SUFFIX = ".schema.json"


def canonical_name(name: str) -> str:
    """``test_results.schema.json`` -> ``test_results``."""
    return name.removesuffix(SCHEMA_SUFFIX)


@lru_cache(maxsize=1)
def available_schemas() -> tuple[str, ...]:
    """Sorted names of every schema shipped with taskgate."""
    return tuple(
        sorted(
            canonical_name(item.name)
            for item in files(SCHEMA_PACKAGE).iterdir()
            if item.name.endswith(SCHEMA_SUFFIX)
        )
    )


@lru_cache(maxsize=None)
def load_schema(name: str) -> dict[str, Any]:
    """Parsed schema by name, with or without the ``.schema.json`` suffix.

    Raises:
        KeyError: If no such schema ships with taskgate (message lists the available ones)
        ValueError: If the schema file is not valid JSON
    """
    key = canonical_name(name)
    known = available_schemas()
    if key not in known:
        raise KeyError(
            f"Schema '{key}' not found in {SCHEMA_PACKAGE}. "
            f"Available schemas: {', '.join(known) or '(none)'}"
        )
    text = files(SCHEMA_PACKAGE).joinpath(key + SCHEMA_SUFFIX).read_text(encoding="utf-8")
    try:
        schema: dict[str, Any] = json.loads(text)
    except json.JSONDecodeError as e:
        raise ValueError(f"Schema '{key}' contains invalid JSON: {e}") from e
    return schema
