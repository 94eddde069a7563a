"""Debt-evidence validation: declared debt must be traceable to a real location."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from taskgate.artifacts.canonical_json import timestamp_now, write_json
from taskgate.errors import ParseError
from taskgate.pipeline.debt.classifier import zero_debt_evidence
from taskgate.pipeline.debt.inventory import DebtInventory
from taskgate.queue.parser import parse_queue_file
from taskgate.schemas.validator import validate_data

if TYPE_CHECKING:
    from taskgate.config import GateConfig
    from taskgate.pipeline.evidence.store import EvidenceBundle

logger = logging.getLogger(__name__)


def validate_debt_evidence(bundle: EvidenceBundle, config: GateConfig) -> tuple[list[str], list[str]]:
    """Check technical-debt.json for one task.

    A missing document is generated with explicit zero debt, since a task
    that never ran debt analysis has nothing to track.

    Returns:
        (errors, warnings)
    """
    errors: list[str] = []
    warnings: list[str] = []

    if not bundle.technical_debt.exists():
        write_json(bundle.technical_debt, zero_debt_evidence(bundle.task_id, timestamp_now(config.timestamp_mode)))
        warnings.append(
            f"{bundle.technical_debt.name} was missing; recorded explicit zero debt for {bundle.task_id}"
        )
        return errors, warnings

    try:
        evidence = bundle.load_json(bundle.technical_debt)
    except ParseError as e:
        return [f"{bundle.technical_debt.name}: {e.detail}. Re-run `taskgate debt-analyze` for this task"], warnings

    valid, schema_errors = validate_data(evidence, "technical_debt", strict=False)
    if not valid:
        errors.extend(f"{bundle.technical_debt.name}: {message}" for message in schema_errors)
        return errors, warnings

    if evidence["taskId"] != bundle.task_id:
        errors.append(
            f"{bundle.technical_debt.name} belongs to task {evidence['taskId']}, not {bundle.task_id}"
        )
    if not evidence["compliance"]["debtTracked"]:
        errors.append("Technical debt not tracked (compliance.debtTracked is false)")

    total = sum(evidence["identifiedDebt"].values())
    if total == 0:
        return errors, warnings

    tracking = evidence["debtTrackingLocation"]
    references = tracking.get("references") or []
    if tracking["strategy"] not in {"SPRINT_TASKS", "INVENTORY"}:
        errors.append(f"{total} debt item(s) declared but tracking strategy is {tracking['strategy']}")
    if not references:
        errors.append(f"{total} debt item(s) declared with no tracking references")
    if not evidence["correlationStatus"]["avoidsDuplication"]:
        errors.append("Debt duplication avoidance not confirmed (correlationStatus.avoidsDuplication)")

    declared = {item["id"] for item in evidence.get("debtDetails", [])}
    referenced = {ref.get("debtId") for ref in references}
    untracked = sorted(declared - referenced)
    if untracked:
        errors.append(f"Debt item(s) without a tracking reference: {', '.join(untracked)}")

    errors.extend(_check_references(references, config))
    return errors, warnings


def _check_references(references: list[dict[str, Any]], config: GateConfig) -> list[str]:
    errors: list[str] = []
    queue_tasks: dict[str, dict[str, str]] | None = None
    inventory_ids: dict[str, set[str]] = {}

    for ref in references:
        ref_type = ref.get("type")
        debt_id = ref.get("debtId", "?")
        target = config.resolve(Path(ref.get("file") or ""))

        if ref_type == "SPRINT_TASK":
            if queue_tasks is None:
                try:
                    document = parse_queue_file(target)
                except ParseError as e:
                    errors.append(f"Debt {debt_id}: work queue unreadable ({e})")
                    continue
                queue_tasks = {block.task_id: block.metadata for block in document.blocks}
            task_id = ref.get("taskId")
            if task_id not in queue_tasks:
                errors.append(f"Debt {debt_id}: task {task_id} not found in {ref.get('file')}")
            elif queue_tasks[task_id].get("debt") != debt_id:
                errors.append(f"Debt {debt_id}: task {task_id} does not carry 'Debt: {debt_id}'")
        elif ref_type == "INVENTORY":
            key = str(target)
            if key not in inventory_ids:
                if not target.exists():
                    errors.append(f"Debt {debt_id}: inventory {ref.get('file')} not found")
                    continue
                try:
                    inventory_ids[key] = DebtInventory(target).ids()
                except ParseError as e:
                    errors.append(f"Debt {debt_id}: inventory unreadable ({e})")
                    continue
            if debt_id not in inventory_ids[key]:
                errors.append(f"Debt {debt_id} not found in inventory {ref.get('file')}")
        else:
            errors.append(f"Debt {debt_id}: unknown reference type {ref_type!r}")

    for message in errors:
        logger.debug("debt reference: %s", message)
    return errors
