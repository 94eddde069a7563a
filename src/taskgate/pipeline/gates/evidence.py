"""Gate 2: captured evidence exists, is genuine and exercises the requirement."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from taskgate.errors import ParseError
from taskgate.pipeline.alignment.checker import check_alignment, extract_signature
from taskgate.pipeline.fraud.heuristics import run_all
from taskgate.pipeline.fraud.types import FraudSignal
from taskgate.pipeline.gates.types import GateResult
from taskgate.schemas.validator import validate_data

if TYPE_CHECKING:
    from taskgate.config import GateConfig
    from taskgate.pipeline.evidence.store import EvidenceBundle
    from taskgate.queue.types import TaskBlock

logger = logging.getLogger(__name__)


def evidence_skip_reason(block: TaskBlock | None, config: GateConfig) -> str | None:
    """Reason the evidence gate does not apply to this task, else None."""
    if block is None:
        return None
    if block.evidence_not_applicable(config.na_sentinel):
        return f"Evidence marked not applicable: {block.evidence_tag}"
    if not block.evidence_tag and not config.require_evidence_tag:
        return "Task carries no evidence requirement"
    return None


def check_presence(bundle: EvidenceBundle, result: GateResult) -> bool:
    """Bundle directory, interaction log and both raw responses exist."""
    if not bundle.exists():
        result.fail(
            "bundle_exists",
            f"Evidence directory missing: {bundle.root}. Capture evidence for {bundle.task_id} before validating",
        )
        return False
    result.ok("bundle_exists")

    present = True
    if not bundle.interaction_log.is_file():
        result.fail(
            "interaction_log",
            f"{bundle.interaction_log.name} missing; record every operation exercised for {bundle.task_id}",
        )
        present = False
    else:
        result.ok("interaction_log")

    if not bundle.raw_responses_dir.is_dir():
        result.fail(
            "raw_responses",
            f"{bundle.raw_responses_dir.name}/ missing; save the unmodified browser responses there",
        )
        return False
    for name, path in bundle.raw_response_paths().items():
        if not path.is_file():
            result.fail("raw_responses", f"{bundle.raw_responses_dir.name}/{name} missing; capture it from a real run")
            present = False
    result.ok("raw_responses")
    return present


def check_test_results(bundle: EvidenceBundle, result: GateResult) -> dict[str, Any] | None:
    """Validate test-results.json and return it when structurally sound."""
    path = bundle.test_results
    if not path.is_file():
        result.fail("test_results", f"{path.name} missing; write the structured functional test results")
        return None
    try:
        data = bundle.load_json(path)
    except ParseError as e:
        result.fail("test_results", f"{path.name}: {e.detail}")
        return None

    valid, errors = validate_data(data, "test_results", strict=False)
    if not valid:
        for message in errors:
            result.fail("test_results", f"{path.name}: {message}")
        return None
    if data["taskId"] != bundle.task_id:
        result.fail("test_results", f"{path.name} is for task {data['taskId']}, not {bundle.task_id}")
        return None
    result.ok("test_results")

    failed = [name for name, entry in data["functionalTests"].items() if str(entry["status"]).upper() == "FAIL"]
    failed.extend(
        f"validationStatus.{key}"
        for key, value in data["validationStatus"].items()
        if isinstance(value, str) and value.upper() == "FAIL"
    )
    if failed:
        result.fail("sub_checks", f"Failing sub-check(s) in {path.name}: {', '.join(failed)}")
    else:
        result.ok("sub_checks")

    signal = check_summary_counts(data, str(path))
    if signal is not None:
        result.signals.append(signal)
        result.fail("summary_counts", signal.render())
    return data


def check_optional_documents(bundle: EvidenceBundle, result: GateResult) -> None:
    """Record workflow and error-state coverage; gaps are warnings, never blocking."""
    documents = (
        ("userWorkflows", bundle.user_workflows, "workflows", "completed", "User workflow testing"),
        ("errorHandling", bundle.error_state_tests, "errorScenarios", "tested", "Error-state testing"),
    )
    for key, path, list_field, flag, label in documents:
        if not path.is_file():
            result.warn(f"{label} not documented; add {path.name} to the evidence directory")
            continue
        try:
            data = bundle.load_json(path)
        except ParseError as e:
            result.warn(f"{path.name}: {e.detail}")
            continue
        entries = data.get(list_field) if isinstance(data, dict) else None
        if not isinstance(entries, list) or not entries:
            result.warn(f"{path.name} lists no {list_field}")
            continue
        done = sum(1 for entry in entries if isinstance(entry, dict) and entry.get(flag))
        result.details[key] = {"total": len(entries), flag: done}
        logger.debug("%s: %d/%d %s", path.name, done, len(entries), flag)


def check_summary_counts(data: dict[str, Any], path: str) -> FraudSignal | None:
    """``summary.passed + summary.failed`` must equal ``summary.executed``."""
    summary = data.get("summary")
    if not isinstance(summary, dict):
        return None
    executed = summary.get("executed")
    passed = summary.get("passed")
    failed = summary.get("failed")
    if None in (executed, passed, failed) or passed + failed == executed:
        return None
    return FraudSignal(
        kind="inconsistent-counts",
        severity="blocking",
        message=f"summary says {executed} executed but {passed} passed + {failed} failed",
        path=path,
        remediation="Regenerate test-results.json from the actual test run",
    )


def run_evidence_gate(
    bundle: EvidenceBundle,
    block: TaskBlock | None,
    config: GateConfig,
    now: datetime | None = None,
) -> GateResult:
    result = GateResult(gate="evidence")
    reason = evidence_skip_reason(block, config)
    if reason is not None:
        result.skipped = True
        result.reason = reason
        logger.info("evidence gate skipped for %s: %s", bundle.task_id, reason)
        return result
    if block is not None and not block.evidence_tag:
        result.warn(f"Task {bundle.task_id} has no 'Evidence:' requirement; validating the bundle anyway")

    if not check_presence(bundle, result) and not bundle.exists():
        return result

    signals = run_all(bundle, config, now=now, include_root_gaming=False)
    result.signals.extend(signals)
    blocking = [signal for signal in signals if signal.blocking]
    for signal in blocking:
        result.fail("fraud_heuristics", signal.render())
    for signal in signals:
        if not signal.blocking:
            result.warn(signal.render())
    if not blocking:
        result.ok("fraud_heuristics")

    check_test_results(bundle, result)
    check_optional_documents(bundle, result)

    signature = extract_signature(block.requirement_text) if block is not None else None
    alignment = check_alignment(signature, bundle.read_interaction_log())
    result.warnings.extend(alignment.warnings)
    result.signals.extend(alignment.signals)
    if alignment.aligned:
        result.ok("alignment")
    else:
        for signal in alignment.signals:
            result.fail("alignment", signal.render())
        if not alignment.signals:
            result.fail("alignment", f"Requirement misaligned: {alignment.problem}")
    return result
