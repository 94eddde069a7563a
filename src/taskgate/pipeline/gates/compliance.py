"""Gate 3: completion claims are honest and debt is tracked."""

from __future__ import annotations

from typing import TYPE_CHECKING

from taskgate.pipeline.debt.validation import validate_debt_evidence
from taskgate.pipeline.fraud.heuristics import check_root_gaming
from taskgate.pipeline.gates.doc_checker import check_document, check_file
from taskgate.pipeline.gates.types import GateResult

if TYPE_CHECKING:
    from taskgate.config import GateConfig
    from taskgate.pipeline.evidence.store import EvidenceBundle
    from taskgate.queue.types import TaskBlock


def run_compliance_gate(
    implementation: GateResult,
    bundle: EvidenceBundle,
    block: TaskBlock | None,
    config: GateConfig,
) -> GateResult:
    """Re-assert Gate 1, pattern-check the status document, then validate debt evidence."""
    result = GateResult(gate="compliance")

    if implementation.errors:
        result.fail(
            "implementation_clean",
            f"Implementation gate reported {len(implementation.errors)} error(s); "
            "fix type-check and lint failures first",
        )
    else:
        result.ok("implementation_clean")

    if bundle.completion_status.is_file():
        doc = check_file(bundle.completion_status)
    elif block is not None:
        doc = check_document(block.text, source=f"task block {block.task_id}")
        result.warn(f"{bundle.completion_status.name} not found; checked the task block text instead")
    else:
        doc = check_file(bundle.completion_status)
    for message in doc.errors:
        result.fail("documentation", f"{doc.source}: {message}")
    result.warnings.extend(f"{doc.source}: {message}" for message in doc.warnings)
    result.ok("documentation")

    evidence_docs = [bundle.test_results, bundle.interaction_log, bundle.completion_status]
    gaming = check_root_gaming(config.repo_root, bundle.task_id, evidence_docs)
    result.signals.extend(gaming)
    for signal in gaming:
        result.fail("root_gaming", signal.render())
    result.ok("root_gaming")

    errors, warnings = validate_debt_evidence(bundle, config)
    for message in errors:
        result.fail("technical_debt", message)
    result.warnings.extend(warnings)
    result.ok("technical_debt")
    return result
