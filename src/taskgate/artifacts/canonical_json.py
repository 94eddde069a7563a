"""Canonical JSON helpers for taskgate reports and certificates."""

from __future__ import annotations

import hashlib
import json
import os
import tempfile
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from pathlib import Path

DETERMINISTIC_TIMESTAMP = "1970-01-01T00:00:00Z"


def canonical_dumps(obj: Any) -> str:
    """Serialize a JSON-compatible object with stable, human-readable formatting."""
    return json.dumps(obj, sort_keys=True, indent=2, ensure_ascii=False) + "\n"


def write_text_atomic(path: Path, text: str) -> None:
    """Write text via a sibling temp file and os.replace."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
            handle.write(text)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.remove(tmp_name)
        raise


def write_json(path: Path, obj: Any) -> None:
    """Write canonical JSON as UTF-8, atomically."""
    write_text_atomic(path, canonical_dumps(obj))


def sha256_file(path: Path) -> str:
    """Compute SHA-256 for file bytes."""
    digest = hashlib.sha256()
    with path.open("rb") as handle:
        while True:
            chunk = handle.read(65536)
            if not chunk:
                break
            digest.update(chunk)
    return digest.hexdigest()


def timestamp_now(timestamp_mode: str = "wallclock") -> str:
    """Return an ISO-8601 UTC timestamp, or the fixed epoch in deterministic mode."""
    if timestamp_mode == "deterministic":
        return DETERMINISTIC_TIMESTAMP
    return datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def timestamp_slug(timestamp: str) -> str:
    """Filesystem-safe form of an ISO timestamp."""
    return timestamp.replace(":", "-").replace("+00-00", "Z")
