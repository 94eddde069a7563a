"""Post-task validation: three gates, one verdict.

States advance NOT_STARTED -> GATE1 -> GATE2 (or GATE2_SKIPPED) -> GATE3 ->
APPROVED | REJECTED and are never revisited. Every gate runs so a single
report lists every problem. The validation report is always written; the
compliance certificate exists only for APPROVED runs.
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

from taskgate import __version__
from taskgate.artifacts.canonical_json import sha256_file, timestamp_now, write_json
from taskgate.errors import ParseError
from taskgate.pipeline.evidence.store import EvidenceStore
from taskgate.pipeline.gates.compliance import run_compliance_gate
from taskgate.pipeline.gates.evidence import run_evidence_gate
from taskgate.pipeline.gates.implementation import run_implementation_gate
from taskgate.pipeline.gates.types import REPORT_SCHEMA_VERSION, GateState, ValidationOutcome
from taskgate.queue.store import WorkQueue
from taskgate.schemas.validator import validate_data

if TYPE_CHECKING:
    from taskgate.config import GateConfig
    from taskgate.pipeline.evidence.store import EvidenceBundle
    from taskgate.pipeline.gates.types import GateResult
    from taskgate.queue.types import TaskBlock

logger = logging.getLogger(__name__)


def validate_task(
    task_id: str,
    config: GateConfig,
    *,
    evidence_dir: Path | None = None,
    mark_complete: bool = False,
    now: datetime | None = None,
) -> ValidationOutcome:
    """Run all three gates for ``task_id`` and persist the outcome."""
    timestamp = timestamp_now(config.timestamp_mode)
    queue = WorkQueue(config.queue_file)
    bundle = EvidenceStore(config.evidence_dir).bundle(
        task_id, config.resolve(evidence_dir) if evidence_dir else None
    )
    states: list[GateState] = ["NOT_STARTED"]

    block, lookup_error = _lookup_task(queue, task_id)

    states.append("GATE1")
    implementation = run_implementation_gate(config)

    evidence = run_evidence_gate(bundle, block, config, now=now)
    states.append("GATE2_SKIPPED" if evidence.skipped else "GATE2")

    states.append("GATE3")
    # The bundle directory receives the report even when no evidence was captured
    bundle.root.mkdir(parents=True, exist_ok=True)
    compliance = run_compliance_gate(implementation, bundle, block, config)
    if lookup_error:
        compliance.fail("task_lookup", lookup_error)

    gates = [implementation, evidence, compliance]
    verdict = "APPROVED" if all(gate.passed for gate in gates) else "REJECTED"
    states.append(verdict)
    outcome = ValidationOutcome(
        task_id=task_id,
        verdict=verdict,
        states=states,
        gates=gates,
        timestamp=timestamp,
        evidence_dir=str(bundle.root),
    )
    logger.info("validation %s: %s (%d error(s))", task_id, verdict, len(outcome.errors))

    report = outcome.to_report(__version__)
    validate_data(report, "validation_report")
    write_json(bundle.validation_report, report)
    outcome.report_path = str(bundle.validation_report)

    if outcome.approved:
        certificate = build_certificate(outcome, bundle, evidence_skipped=evidence.skipped)
        validate_data(certificate, "compliance_certificate")
        write_json(bundle.certificate, certificate)
        outcome.certificate_path = str(bundle.certificate)
        if mark_complete:
            queue.set_status(task_id, "complete")
            outcome.marked_complete = True
    elif bundle.certificate.exists():
        bundle.certificate.unlink()
        logger.info("removed stale certificate %s", bundle.certificate)
    return outcome


def build_certificate(outcome: ValidationOutcome, bundle: EvidenceBundle, *, evidence_skipped: bool) -> dict:
    """Certificate for an APPROVED run; pins each evidence file by sha256."""
    hashes = {
        path.relative_to(bundle.root).as_posix(): sha256_file(path)
        for path in bundle.artifact_files()
    }
    return {
        "schemaVersion": REPORT_SCHEMA_VERSION,
        "validatorVersion": __version__,
        "taskId": outcome.task_id,
        "timestamp": outcome.timestamp,
        "status": "APPROVED",
        "gates": {gate.gate: gate.passed for gate in outcome.gates},
        "evidenceSkipped": evidence_skipped,
        "evidenceDir": outcome.evidence_dir,
        "evidenceHashes": hashes,
    }


def _lookup_task(queue: WorkQueue, task_id: str) -> tuple[TaskBlock | None, str | None]:
    try:
        document = queue.load()
    except ParseError as e:
        return None, f"Work queue unreadable: {e}"
    matches = document.find(task_id)
    if not matches:
        return None, f"Task {task_id} not found in {document.source}"
    if len(matches) > 1:
        return matches[0], f"Task {task_id} appears {len(matches)} times in {document.source}; ids must be unique"
    return matches[0], None


def render_gate(result: GateResult) -> str:
    """Plain-text summary line for one gate."""
    if result.skipped:
        return f"{result.gate}: SKIPPED ({result.reason})"
    status = "PASS" if result.passed else "FAIL"
    return f"{result.gate}: {status} ({len(result.errors)} error(s), {len(result.warnings)} warning(s))"
