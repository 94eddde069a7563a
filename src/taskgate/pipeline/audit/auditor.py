"""Compliance audit over every completed task.

Each completed task is scored against a four-part checklist; a random
sample is re-run through the full fraud suite. The aggregate compliance
percentage decides whether development may continue.
"""

from __future__ import annotations

import logging
import random
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Literal

from taskgate.artifacts.canonical_json import timestamp_now, timestamp_slug, write_json
from taskgate.pipeline.evidence.store import EvidenceStore
from taskgate.pipeline.fraud.heuristics import run_all
from taskgate.pipeline.gates.doc_checker import check_document, check_file
from taskgate.pipeline.gates.evidence import check_presence, check_test_results, evidence_skip_reason
from taskgate.pipeline.gates.implementation import run_implementation_gate
from taskgate.pipeline.gates.types import REPORT_SCHEMA_VERSION, GateResult
from taskgate.queue.parser import parse_queue_file
from taskgate.schemas.validator import validate_data

if TYPE_CHECKING:
    from taskgate.config import GateConfig
    from taskgate.queue.types import TaskBlock

logger = logging.getLogger(__name__)

Decision = Literal["PASS", "WARN", "HALT"]

CHECKLIST_KEYS = ("compliance_pattern", "evidence_present", "implementation_exists", "test_coverage")
HIGH_ERROR_RATE = 0.2

# Relative source paths such as src/api/quotes.py; URL paths (/api/...) are excluded
_PATH_RE = re.compile(r"(?<![\w/.:-])((?:[\w.-]+/)+[\w.-]+\.[A-Za-z0-9]{1,6})\b")


@dataclass
class TaskAudit:
    task_id: str
    checklist: dict[str, bool] = field(default_factory=dict)
    issues: list[str] = field(default_factory=list)
    error: str | None = None

    @property
    def compliant(self) -> bool:
        return self.error is None and bool(self.checklist) and all(self.checklist.values())

    def to_dict(self) -> dict:
        return {
            "taskId": self.task_id,
            "compliant": self.compliant,
            "checklist": dict(self.checklist),
            "issues": list(self.issues),
            "error": self.error,
        }


@dataclass
class SpotCheck:
    task_id: str
    passed: bool
    signals: list[str] = field(default_factory=list)
    error: str | None = None

    def to_dict(self) -> dict:
        return {"taskId": self.task_id, "passed": self.passed, "signals": list(self.signals), "error": self.error}


@dataclass
class AuditReport:
    timestamp: str
    tasks: list[TaskAudit]
    spot_checks: list[SpotCheck]
    compliance: int
    decision: Decision
    critical_violations: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    report_path: str | None = None

    @property
    def compliant_tasks(self) -> int:
        return sum(1 for task in self.tasks if task.compliant)

    @property
    def halted(self) -> bool:
        return self.decision == "HALT"

    def to_dict(self) -> dict:
        return {
            "schemaVersion": REPORT_SCHEMA_VERSION,
            "timestamp": self.timestamp,
            "totalTasks": len(self.tasks),
            "compliantTasks": self.compliant_tasks,
            "compliance": self.compliance,
            "decision": self.decision,
            "tasks": [task.to_dict() for task in self.tasks],
            "spotChecks": [check.to_dict() for check in self.spot_checks],
            "criticalViolations": list(self.critical_violations),
            "warnings": list(self.warnings),
            "recommendations": list(self.recommendations),
        }


def compliance_percentage(compliant: int, total: int) -> int:
    """round(100 * compliant / total); an empty audit is fully compliant."""
    if total == 0:
        return 100
    return round(100 * compliant / total)


def decide(compliance: int, halt_below: int = 80, warn_below: int = 95) -> Decision:
    if compliance < halt_below:
        return "HALT"
    if compliance < warn_below:
        return "WARN"
    return "PASS"


def select_spot_checks(task_ids: list[str], count: int, rng: random.Random) -> list[str]:
    """Pick min(count, n) distinct ids with a partial Fisher-Yates shuffle."""
    pool = list(task_ids)
    picks = min(count, len(pool))
    for i in range(picks):
        j = rng.randrange(i, len(pool))
        pool[i], pool[j] = pool[j], pool[i]
    return pool[:picks]


def referenced_paths(text: str) -> list[str]:
    found: list[str] = []
    for match in _PATH_RE.finditer(text):
        path = match.group(1)
        if path not in found:
            found.append(path)
    return found


def audit_task(block: TaskBlock, config: GateConfig) -> TaskAudit:
    """Score one completed task against the four-part checklist."""
    audit = TaskAudit(task_id=block.task_id)
    bundle = EvidenceStore(config.evidence_dir).bundle(block.task_id)

    # compliance_pattern
    if bundle.completion_status.is_file():
        doc = check_file(bundle.completion_status)
    else:
        doc = check_document(block.text, source=f"task block {block.task_id}")
    audit.checklist["compliance_pattern"] = doc.passed
    audit.issues.extend(f"compliance_pattern: {message}" for message in doc.errors)

    # evidence_present
    not_applicable = evidence_skip_reason(block, config) is not None
    results_data = None
    if not_applicable:
        audit.checklist["evidence_present"] = True
    else:
        scratch = GateResult(gate="evidence")
        check_presence(bundle, scratch)
        results_data = check_test_results(bundle, scratch)
        audit.checklist["evidence_present"] = scratch.passed
        audit.issues.extend(f"evidence_present: {message}" for message in scratch.errors)

    # implementation_exists
    paths = referenced_paths(block.title)
    if paths:
        missing = [path for path in paths if not config.resolve(Path(path)).exists()]
        audit.checklist["implementation_exists"] = not missing
        audit.issues.extend(f"implementation_exists: {path} not found" for path in missing)
    else:
        audit.checklist["implementation_exists"] = bundle.certificate.is_file()
        if not bundle.certificate.is_file():
            audit.issues.append("implementation_exists: task names no file and has no compliance certificate")

    # test_coverage
    if results_data is not None:
        covered = len(results_data.get("functionalTests", {})) >= 1
    elif not_applicable:
        covered = config.resolve(config.tests_dir).is_dir()
    else:
        covered = False
    audit.checklist["test_coverage"] = covered
    if not covered:
        audit.issues.append("test_coverage: no functional test results recorded")
    return audit


def _safe_audit(block: TaskBlock, config: GateConfig) -> TaskAudit:
    try:
        return audit_task(block, config)
    except Exception as e:
        # One broken task must not abort the audit; it is recorded as non-compliant
        logger.warning("audit of %s failed: %s", block.task_id, e)
        audit = TaskAudit(task_id=block.task_id, checklist=dict.fromkeys(CHECKLIST_KEYS, False))
        audit.error = f"{type(e).__name__}: {e}"
        return audit


def spot_check(task_id: str, config: GateConfig) -> SpotCheck:
    bundle = EvidenceStore(config.evidence_dir).bundle(task_id)
    signals = run_all(bundle, config)
    blocking = [signal.render() for signal in signals if signal.blocking]
    return SpotCheck(task_id=task_id, passed=not blocking, signals=blocking)


def _safe_spot_check(task_id: str, config: GateConfig) -> SpotCheck:
    try:
        return spot_check(task_id, config)
    except Exception as e:
        # An unreadable bundle fails its spot check instead of aborting the audit
        logger.warning("spot check of %s failed: %s", task_id, e)
        return SpotCheck(task_id=task_id, passed=False, error=f"{type(e).__name__}: {e}")


def run_audit(
    config: GateConfig,
    *,
    rng: random.Random | None = None,
    with_implementation_gate: bool = False,
) -> AuditReport:
    """Audit every completed task and write the report under the audit directory."""
    rng = rng or random.Random()
    timestamp = timestamp_now(config.timestamp_mode)
    document = parse_queue_file(config.queue_file)
    completed = document.completed()
    logger.info("auditing %d completed task(s)", len(completed))

    critical: list[str] = []
    warnings: list[str] = []

    max_workers = max(1, config.audit_workers)
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        tasks = list(pool.map(lambda block: _safe_audit(block, config), completed))

    if with_implementation_gate:
        gate = run_implementation_gate(config)
        critical.extend(f"implementation gate: {message}" for message in gate.errors)
        warnings.extend(f"implementation gate: {message}" for message in gate.warnings)
        for task in tasks:
            task.checklist["implementation_gate"] = gate.passed

    spot_checks = [_safe_spot_check(task_id, config) for task_id in select_spot_checks(
        [block.task_id for block in completed], config.spot_check_count, rng
    )]

    for task in tasks:
        if task.error:
            critical.append(f"{task.task_id}: audit error ({task.error})")
        elif not task.checklist.get("evidence_present", True):
            critical.append(f"{task.task_id}: marked complete without valid evidence")
        elif not task.compliant:
            warnings.append(f"{task.task_id}: {', '.join(task.issues) or 'checklist incomplete'}")
    for check in spot_checks:
        if not check.passed:
            if check.error:
                critical.append(f"{check.task_id}: spot check error ({check.error})")
            else:
                critical.append(f"{check.task_id}: spot check failed ({len(check.signals)} blocking signal(s))")

    compliance = compliance_percentage(sum(1 for task in tasks if task.compliant), len(tasks))
    report = AuditReport(
        timestamp=timestamp,
        tasks=tasks,
        spot_checks=spot_checks,
        compliance=compliance,
        decision=decide(compliance, config.compliance_halt, config.compliance_warn),
        critical_violations=critical,
        warnings=warnings,
        recommendations=recommendations_for(tasks, spot_checks),
    )

    data = report.to_dict()
    validate_data(data, "audit_report")
    path = _report_path(config.audit_dir, timestamp)
    write_json(path, data)
    report.report_path = str(path)
    logger.info("audit %s: %d%% compliant -> %s", path.name, compliance, report.decision)
    return report


def recommendations_for(tasks: list[TaskAudit], spot_checks: list[SpotCheck]) -> list[str]:
    recommendations: list[str] = []

    def failing(key: str) -> list[str]:
        return [task.task_id for task in tasks if task.error is None and not task.checklist.get(key, True)]

    missing_evidence = failing("evidence_present")
    if missing_evidence:
        recommendations.append(
            f"Re-capture evidence and re-run post-task-validate for: {', '.join(missing_evidence)}"
        )
    bad_docs = failing("compliance_pattern")
    if bad_docs:
        recommendations.append(
            f"Add a 'LEVEL n - NAME' completion status and cite evidence for: {', '.join(bad_docs)}"
        )
    missing_impl = failing("implementation_exists")
    if missing_impl:
        recommendations.append(
            f"Restore or re-implement the files named by: {', '.join(missing_impl)}"
        )
    failed_spots = [check.task_id for check in spot_checks if not check.passed]
    if failed_spots:
        recommendations.append(
            f"Investigate possible evidence fabrication in: {', '.join(failed_spots)}"
        )
    errored = [task.task_id for task in tasks if task.error]
    if tasks and len(errored) / len(tasks) > HIGH_ERROR_RATE:
        recommendations.append(
            f"{len(errored)} of {len(tasks)} task audits errored; check the evidence layout and queue format"
        )
    return recommendations


def _report_path(audit_dir: Path, timestamp: str) -> Path:
    """audit-<timestamp>.json; existing reports are never overwritten."""
    base = f"audit-{timestamp_slug(timestamp)}"
    path = audit_dir / f"{base}.json"
    n = 1
    while path.exists():
        path = audit_dir / f"{base}-{n}.json"
        n += 1
    return path
