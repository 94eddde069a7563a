"""Standalone debt inventory document (JSON), written under an exclusive lock."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from taskgate.artifacts.canonical_json import write_json
from taskgate.errors import ParseError
from taskgate.pipeline.debt.types import DebtItem
from taskgate.utils.filelock import exclusive_lock

logger = logging.getLogger(__name__)

INVENTORY_SCHEMA_VERSION = "1.0"


class DebtInventory:
    """Append-only inventory of debt items that did not fit the active queue."""

    def __init__(self, path: Path, *, lock_timeout: float = 30.0):
        self.path = path
        self.lock_timeout = lock_timeout

    def load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {"schemaVersion": INVENTORY_SCHEMA_VERSION, "items": []}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except UnicodeDecodeError as e:
            raise ParseError(self.path, f"inventory is not valid UTF-8 (byte {e.start})") from e
        except json.JSONDecodeError as e:
            raise ParseError(self.path, f"invalid inventory JSON: {e.msg}", line=e.lineno) from e
        if not isinstance(data, dict) or not isinstance(data.get("items"), list):
            raise ParseError(self.path, "inventory must be an object with an 'items' list")
        return data

    def ids(self) -> set[str]:
        return {str(item.get("id")) for item in self.load()["items"] if isinstance(item, dict)}

    def contains(self, debt_id: str) -> bool:
        return debt_id in self.ids()

    def append(self, items: list[DebtItem], updated_at: str) -> tuple[list[DebtItem], int]:
        """Append items not already present.

        Returns:
            (items written, number of duplicates skipped)
        """
        with exclusive_lock(self.path, timeout=self.lock_timeout):
            data = self.load()
            existing = {str(item.get("id")) for item in data["items"] if isinstance(item, dict)}
            fresh = [item for item in items if item.id not in existing]
            data["items"].extend(item.to_dict() for item in fresh)
            data["schemaVersion"] = INVENTORY_SCHEMA_VERSION
            data["updatedAt"] = updated_at
            write_json(self.path, data)
        skipped = len(items) - len(fresh)
        logger.info("inventory %s: +%d item(s), %d duplicate(s) skipped", self.path, len(fresh), skipped)
        return fresh, skipped
