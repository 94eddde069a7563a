"""Debt classification and placement.

Failing tests are matched against the ordered rule table; each matching rule
yields one DebtItem and unmatched failures become HIGH manual-review items.
Small batches go straight into the active work queue as remediation tasks,
large ones go to the standalone inventory so the queue is not swamped.
"""

from __future__ import annotations

import hashlib
import logging
import re
from pathlib import Path
from typing import TYPE_CHECKING, Any

from taskgate.artifacts.canonical_json import timestamp_now, write_json
from taskgate.pipeline.debt.inventory import DebtInventory
from taskgate.pipeline.debt.results import count_executed, extract_failing_tests, load_test_run
from taskgate.pipeline.debt.rules import load_rules
from taskgate.pipeline.debt.types import (
    SEVERITY_ORDER,
    DebtAnalysis,
    DebtItem,
    DebtRule,
    FailingTest,
    PlacementDecision,
)
from taskgate.pipeline.evidence.store import EvidenceStore
from taskgate.queue.store import NewTask, WorkQueue
from taskgate.queue.types import TASK_ID_RE

if TYPE_CHECKING:
    from taskgate.config import GateConfig

logger = logging.getLogger(__name__)

DEBT_SECTION_TITLE = "Technical Debt"
MANUAL_REVIEW_CATEGORY = "manual-review"
FALLBACK_PARENT_ID = "T000"

_API_CONTEXT_RE = re.compile(r"\b(POST|GET|PUT|PATCH|DELETE)\s+(\S+)", re.IGNORECASE)
_COMPONENT_CONTEXT_RE = re.compile(r"\b(\w+(?:Component|Modal|Form|Page|View))\b")


def debt_context(test_name: str) -> str:
    """API path or component name the failing test talks about."""
    match = _API_CONTEXT_RE.search(test_name)
    if match:
        return match.group(2)
    match = _COMPONENT_CONTEXT_RE.search(test_name)
    if match:
        return match.group(1)
    return "unknown"


def make_debt_id(queue_id: str, test: FailingTest, category: str) -> str:
    """Stable id so re-analyzing the same failure never duplicates it."""
    digest = hashlib.sha256(f"{queue_id}|{test.file}|{test.name}|{category}".encode()).hexdigest()
    return f"DEBT-{digest[:12]}"


def classify(
    failing: list[FailingTest],
    rules: list[DebtRule],
    queue_id: str,
    created_at: str,
) -> list[DebtItem]:
    """Produce debt items in rule order; no failure is ever dropped."""
    items: list[DebtItem] = []
    seen: set[str] = set()

    for test in failing:
        matched = [rule for rule in rules if rule.pattern.search(test.search_text)]
        context = debt_context(test.name)
        evidence = [test.message[:2000]] if test.message else []

        if not matched:
            logger.debug("no debt rule matched %r; manual review", test.name)
            candidate = DebtItem(
                id=make_debt_id(queue_id, test, MANUAL_REVIEW_CATEGORY),
                source_test=test.name,
                test_file=test.file,
                severity="HIGH",
                category=MANUAL_REVIEW_CATEGORY,
                description=f"Manual Review Required: {test.name}",
                business_impact="Unknown impact - requires manual analysis",
                effort="M",
                dependencies=["manual-review"],
                created_at=created_at,
                queue_id=queue_id,
                evidence=evidence,
            )
            if candidate.id not in seen:
                seen.add(candidate.id)
                items.append(candidate)
            continue

        for rule in matched:
            candidate = DebtItem(
                id=make_debt_id(queue_id, test, rule.category),
                source_test=test.name,
                test_file=test.file,
                severity=rule.severity,
                category=rule.category,
                description=rule.template.replace("{api}", context).replace("{component}", context),
                business_impact=rule.business_impact,
                effort=rule.effort,
                dependencies=list(rule.dependencies),
                created_at=created_at,
                queue_id=queue_id,
                evidence=evidence,
            )
            if candidate.id not in seen:
                seen.add(candidate.id)
                items.append(candidate)
    return items


def decide_placement(items: list[DebtItem], max_total: int = 6, max_critical_high: int = 4) -> PlacementDecision:
    """SPRINT_TASKS iff total <= max_total and critical + high <= max_critical_high."""
    total = len(items)
    if total == 0:
        return PlacementDecision(strategy="NONE", reason="No technical debt identified")
    urgent = sum(1 for item in items if item.severity in {"CRITICAL", "HIGH"})
    if total <= max_total and urgent <= max_critical_high:
        return PlacementDecision(
            strategy="SPRINT_TASKS",
            reason=f"Manageable debt ({total} items, {urgent} high-priority) - adding to active work queue",
        )
    return PlacementDecision(
        strategy="INVENTORY",
        reason=f"Significant debt ({total} items, {urgent} high-priority) - tracking in inventory for planning",
    )


def analyze_debt(
    results_path: Path,
    queue_id: str,
    config: GateConfig,
    *,
    task_id: str | None = None,
    rules: list[DebtRule] | None = None,
) -> DebtAnalysis:
    """Classify failures in one test run, place the debt, write technical-debt.json."""
    timestamp = timestamp_now(config.timestamp_mode)
    source_task = task_id or _task_id_from_queue_id(queue_id)
    rules = rules if rules is not None else load_rules(
        config.resolve(config.debt_rules_path) if config.debt_rules_path else None
    )

    data, raw_text = load_test_run(results_path)
    failing = extract_failing_tests(data, raw_text)
    executed = count_executed(data)
    items = sorted(
        classify(failing, rules, queue_id, timestamp),
        key=lambda item: SEVERITY_ORDER.index(item.severity),
    )
    placement = decide_placement(items, config.sprint_max_total, config.sprint_max_critical_high)
    logger.info("debt placement for %s: %s (%s)", queue_id, placement.strategy, placement.reason)

    analysis = DebtAnalysis(
        task_id=source_task,
        queue_id=queue_id,
        tests_executed=True,
        failing_tests=failing,
        items=items,
        placement=placement,
    )

    references: list[dict[str, Any]] = []
    if placement.strategy == "SPRINT_TASKS":
        references = _place_in_queue(analysis, config)
    elif placement.strategy == "INVENTORY":
        references = _place_in_inventory(analysis, config, timestamp)

    bundle = EvidenceStore(config.evidence_dir).ensure(source_task)
    evidence = build_debt_evidence(
        analysis,
        timestamp=timestamp,
        references=references,
        source=results_path.name,
        executed=executed,
    )
    write_json(bundle.technical_debt, evidence)
    analysis.evidence_path = str(bundle.technical_debt)
    return analysis


def build_debt_evidence(
    analysis: DebtAnalysis,
    *,
    timestamp: str,
    references: list[dict[str, Any]],
    source: str | None,
    executed: int | None,
) -> dict[str, Any]:
    """Per-task debt-evidence document; zero debt is recorded explicitly."""
    return {
        "taskId": analysis.task_id,
        "queueId": analysis.queue_id,
        "timestamp": timestamp,
        "tddTestsExecuted": analysis.tests_executed,
        "testResults": {
            "source": source,
            "executed": executed,
            "failing": len(analysis.failing_tests),
        },
        "identifiedDebt": analysis.counts,
        "debtDetails": [item.to_dict() for item in analysis.items],
        "generatedTasks": list(analysis.generated_tasks),
        "compliance": {
            "debtTracked": True,
            "tasksGenerated": bool(analysis.generated_tasks),
            "developmentBlocked": analysis.blocks_development,
        },
        "debtTrackingLocation": {
            "strategy": analysis.placement.strategy,
            "reason": analysis.placement.reason,
            "references": references,
        },
        "correlationStatus": {
            "avoidsDuplication": True,
            "duplicatesSkipped": analysis.duplicates_skipped,
        },
    }


def zero_debt_evidence(task_id: str, timestamp: str) -> dict[str, Any]:
    """Debt evidence for a task that ran no tests and has nothing to track."""
    analysis = DebtAnalysis(
        task_id=task_id,
        queue_id=task_id,
        tests_executed=False,
        failing_tests=[],
        items=[],
        placement=PlacementDecision(strategy="NONE", reason="No technical debt identified"),
    )
    return build_debt_evidence(analysis, timestamp=timestamp, references=[], source=None, executed=0)


def _place_in_queue(analysis: DebtAnalysis, config: GateConfig) -> list[dict[str, Any]]:
    queue = WorkQueue(config.queue_file)
    queue_ref = _relative(config.queue_file, config.repo_root)

    new_tasks = [
        NewTask(
            title=item.description,
            metadata={
                "Debt": item.id,
                "Severity": f"{item.severity} (effort {item.effort})",
                "Source": item.source_test,
                "Evidence": f"REQUIRED - demonstrate the fix for failing test: {item.source_test}",
                "Prerequisites": ", ".join(item.dependencies) or "none",
            },
        )
        for item in analysis.items
    ]
    parent = analysis.task_id if TASK_ID_RE.fullmatch(analysis.task_id) else FALLBACK_PARENT_ID
    placed = queue.append_unique_child_tasks(parent, DEBT_SECTION_TITLE, new_tasks, key="Debt")

    references: list[dict[str, Any]] = []
    for item, (task_id, created) in zip(analysis.items, placed):
        if created:
            analysis.generated_tasks.append(task_id)
        else:
            analysis.duplicates_skipped += 1
        references.append(_sprint_ref(task_id, item.id, queue_ref))
    return references


def _place_in_inventory(analysis: DebtAnalysis, config: GateConfig, timestamp: str) -> list[dict[str, Any]]:
    inventory = DebtInventory(config.inventory_file)
    _, skipped = inventory.append(analysis.items, updated_at=timestamp)
    analysis.duplicates_skipped += skipped
    inventory_ref = _relative(config.inventory_file, config.repo_root)
    return [{"type": "INVENTORY", "debtId": item.id, "file": inventory_ref} for item in analysis.items]


def _sprint_ref(task_id: str, debt_id: str, queue_ref: str) -> dict[str, Any]:
    return {"type": "SPRINT_TASK", "taskId": task_id, "debtId": debt_id, "file": queue_ref}


def _task_id_from_queue_id(queue_id: str) -> str:
    match = TASK_ID_RE.search(queue_id)
    return match.group(1) if match else queue_id


def _relative(path: Path, root: Path) -> str:
    try:
        return path.resolve().relative_to(root.resolve()).as_posix()
    except ValueError:
        return str(path)

