"""Tests for the three-gate post-task validation."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from taskgate.config import GateConfig
from taskgate.errors import FraudDetected, GateFailure
from taskgate.pipeline.gates import validate_task
from taskgate.pipeline.gates.implementation import count_diagnostics, excerpt, run_implementation_gate
from taskgate.pipeline.gates.runner import render_gate
from taskgate.queue import parse_queue_file
from taskgate.utils.exec import ExecResult

GET_ONLY_LOG = """\
Purpose: check that the quote endpoint responds for the quotes page
Request: GET /api/quotes
Result: 200 OK with 3 quotes listed in the response body
"""


PRODUCTION_STATUS = """\
## Status
LEVEL 5 - PRODUCTION

## Evidence
Verified POST /api/quotes through the browser against the deployed build; see interaction.log.
File: `src/api/quotes.py`
"""


@pytest.mark.parametrize("status_doc", [None, PRODUCTION_STATUS], ids=["functional", "production"])
def test_genuine_evidence_is_approved(config: GateConfig, make_bundle, clean_tools, status_doc: str | None) -> None:
    root = make_bundle("T014", **({"completion-status.md": status_doc} if status_doc else {}))

    outcome = validate_task("T014", config)

    assert outcome.verdict == "APPROVED", outcome.errors
    assert outcome.states == ["NOT_STARTED", "GATE1", "GATE2", "GATE3", "APPROVED"]
    assert ["mypy", "."] in clean_tools
    assert ["ruff", "check", "."] in clean_tools

    report = json.loads((root / "validation-report.json").read_text())
    assert report["verdict"] == "APPROVED"
    assert report["errorCount"] == 0

    certificate = json.loads((root / "compliance-certificate.json").read_text())
    assert certificate["status"] == "APPROVED"
    assert certificate["evidenceSkipped"] is False
    assert "raw-responses/take_snapshot.json" in certificate["evidenceHashes"]
    assert outcome.certificate_path == str(root / "compliance-certificate.json")
    outcome.raise_for_status()

    # Debt evidence was generated as explicit zero debt
    assert (root / "technical-debt.json").is_file()
    assert parse_queue_file(config.queue_file).get("T014").status == "pending"


def test_mark_complete_flips_queue_status(config: GateConfig, make_bundle, clean_tools) -> None:
    make_bundle("T014")

    outcome = validate_task("T014", config, mark_complete=True)

    assert outcome.approved
    assert outcome.marked_complete
    assert parse_queue_file(config.queue_file).get("T014").status == "complete"


def test_undersized_raw_response_is_rejected(config: GateConfig, make_bundle, clean_tools) -> None:
    tiny = '{"command": "take_snapshot", "content": "Quotes page loaded."}'
    root = make_bundle("T014", **{"raw-responses/take_snapshot.json": tiny})

    outcome = validate_task("T014", config, mark_complete=True)

    assert outcome.verdict == "REJECTED"
    assert outcome.states[-1] == "REJECTED"
    assert any("minimum 200" in e for e in outcome.gate("evidence").errors)
    assert not (root / "compliance-certificate.json").exists()
    assert (root / "validation-report.json").exists()
    with pytest.raises(FraudDetected, match="minimum 200") as excinfo:
        outcome.raise_for_status()
    assert excinfo.value.gate == "evidence"
    assert parse_queue_file(config.queue_file).get("T014").status == "pending"


def test_get_substitution_is_rejected(config: GateConfig, make_bundle, clean_tools) -> None:
    make_bundle("T014", **{"interaction.log": GET_ONLY_LOG})

    outcome = validate_task("T014", config)

    assert not outcome.approved
    evidence = outcome.gate("evidence")
    assert evidence.checks["alignment"] is False
    assert "keyword-substitution" in {signal.kind for signal in evidence.signals}


def test_missing_evidence_bundle_is_rejected(config: GateConfig, clean_tools) -> None:
    outcome = validate_task("T014", config)

    assert not outcome.approved
    assert any("Evidence directory missing" in e for e in outcome.gate("evidence").errors)
    # Report lands in the bundle directory even though no evidence existed
    assert (config.evidence_dir / "T014" / "validation-report.json").exists()


def test_failing_subcheck_is_rejected(config: GateConfig, make_bundle, clean_tools) -> None:
    results = {
        "taskId": "T014",
        "timestamp": "2026-01-01T00:00:00Z",
        "validationStatus": {"endpoint": "PASS"},
        "functionalTests": {"create_quote": {"status": "FAIL", "details": "500 from POST /api/quotes"}},
        "summary": {"executed": 1, "passed": 1, "failed": 1},
    }
    make_bundle("T014", **{"test-results.json": results})

    evidence = validate_task("T014", config).gate("evidence")

    assert any("create_quote" in e for e in evidence.errors)
    assert any("inconsistent-counts" in e for e in evidence.errors)


def test_not_applicable_evidence_is_skipped(config: GateConfig, clean_tools) -> None:
    root = config.evidence_dir / "T015"
    root.mkdir(parents=True)
    (root / "completion-status.md").write_text(
        "LEVEL 4 - FUNCTIONAL\nDocumentation reviewed and verified.\nFile: `docs/quotes.md`\n"
    )

    outcome = validate_task("T015", config)

    assert outcome.verdict == "APPROVED", outcome.errors
    assert "GATE2_SKIPPED" in outcome.states
    assert outcome.gate("evidence").skipped
    certificate = json.loads((root / "compliance-certificate.json").read_text())
    assert certificate["evidenceSkipped"] is True


def test_rejection_removes_stale_certificate(config: GateConfig, make_bundle, clean_tools) -> None:
    root = make_bundle("T014")
    assert validate_task("T014", config).approved
    assert (root / "compliance-certificate.json").exists()

    (root / "interaction.log").write_text(GET_ONLY_LOG)
    assert not validate_task("T014", config).approved
    assert not (root / "compliance-certificate.json").exists()


def test_unknown_task_is_rejected(config: GateConfig, clean_tools) -> None:
    outcome = validate_task("T099", config)

    assert not outcome.approved
    assert any("Task T099 not found" in e for e in outcome.gate("compliance").errors)


def test_root_gaming_is_rejected_by_compliance(config: GateConfig, make_bundle, clean_tools) -> None:
    root = make_bundle("T014")
    (config.repo_root / "results.json").write_bytes((root / "test-results.json").read_bytes())

    outcome = validate_task("T014", config)

    assert not outcome.approved
    assert outcome.gate("compliance").checks["root_gaming"] is False


def test_typecheck_failure_is_rejected(config: GateConfig, make_bundle, monkeypatch: pytest.MonkeyPatch) -> None:
    make_bundle("T014")

    def fake_run_command(argv, *, cwd, timeout=None):
        if argv[0] == "mypy":
            out = "src/api/quotes.py:12: error: Incompatible return value type\nFound 1 error in 1 file\n"
            return ExecResult(argv=tuple(argv), cwd=cwd, returncode=1, stdout=out, stderr="")
        return ExecResult(argv=tuple(argv), cwd=cwd, returncode=0, stdout="", stderr="")

    def fake_run_git(args, *, repo_root):
        return ExecResult(argv=("git", *args), cwd=repo_root, returncode=0, stdout="src/api/quotes.py\n", stderr="")

    monkeypatch.setattr("taskgate.pipeline.gates.implementation.run_command", fake_run_command)
    monkeypatch.setattr("taskgate.pipeline.gates.implementation.run_git", fake_run_git)

    outcome = validate_task("T014", config)

    assert not outcome.approved
    implementation = outcome.gate("implementation")
    assert implementation.checks == {"typecheck": False, "lint": True, "changed_files": True}
    assert "Type checker reported 1 problem(s)" in implementation.errors[0]
    assert outcome.gate("compliance").checks["implementation_clean"] is False
    with pytest.raises(GateFailure) as excinfo:
        outcome.raise_for_status()
    assert (excinfo.value.gate, excinfo.value.check) == ("implementation", "typecheck")


def test_empty_diff_is_only_a_warning(config: GateConfig, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        "taskgate.pipeline.gates.implementation.run_command",
        lambda argv, *, cwd, timeout=None: ExecResult(tuple(argv), cwd, 0, "", ""),
    )
    monkeypatch.setattr(
        "taskgate.pipeline.gates.implementation.run_git",
        lambda args, *, repo_root: ExecResult(("git", *args), repo_root, 0, "", ""),
    )

    result = run_implementation_gate(config)

    assert result.passed
    assert result.warnings == ["No files changed since HEAD~1; confirm the implementation was committed"]
    assert render_gate(result) == "implementation: PASS (0 error(s), 1 warning(s))"


def test_diagnostic_helpers() -> None:
    assert count_diagnostics("") == 1
    assert count_diagnostics("a.py:1:1: E501 line too long\na.py:2:5: F401 unused\nFound 2 errors.") == 2
    mypy_out = "src/api/quotes.py:12: error: Incompatible return value type\nFound 1 error in 1 file (checked 3 source files)\n"
    assert count_diagnostics(mypy_out) == 1
    assert count_diagnostics("src/a.ts(3,1): error TS2322: bad\n1 error, 0 warnings\n") == 1
    assert excerpt("x" * 600).endswith("...")
    assert len(excerpt("x" * 600)) == 503


def test_non_utf8_test_results_is_rejected(config: GateConfig, make_bundle, clean_tools) -> None:
    root = make_bundle("T014")
    (root / "test-results.json").write_bytes(b'{"taskId": "T014", \xff\xfe}')

    outcome = validate_task("T014", config)

    assert outcome.verdict == "REJECTED"
    evidence = outcome.gate("evidence")
    assert evidence.checks["test_results"] is False
    assert any("not valid UTF-8" in e for e in evidence.errors)
    assert (root / "validation-report.json").is_file()


def test_optional_documents_are_counted_in_report(config: GateConfig, make_bundle, clean_tools) -> None:
    workflows = {"workflows": [{"name": "create quote", "completed": True}, {"name": "edit quote", "completed": False}]}
    root = make_bundle("T014", **{"user-workflows.json": workflows, "error-state-tests.json": {"errorScenarios": []}})

    outcome = validate_task("T014", config)

    assert outcome.approved, outcome.errors
    evidence = outcome.gate("evidence")
    assert evidence.details == {"userWorkflows": {"total": 2, "completed": 1}}
    assert "error-state-tests.json lists no errorScenarios" in evidence.warnings
    report = json.loads((root / "validation-report.json").read_text())
    gate = next(g for g in report["gates"] if g["gate"] == "evidence")
    assert gate["details"]["userWorkflows"] == {"total": 2, "completed": 1}


def test_missing_optional_documents_only_warn(config: GateConfig, make_bundle, clean_tools) -> None:
    make_bundle("T014")

    outcome = validate_task("T014", config)

    assert outcome.approved
    warnings = outcome.gate("evidence").warnings
    assert any(w.startswith("User workflow testing not documented") for w in warnings)
    assert any(w.startswith("Error-state testing not documented") for w in warnings)


def test_corrupt_project_config_blocks_implementation_gate(config: GateConfig, clean_tools) -> None:
    (config.repo_root / "pyproject.toml").write_text('[project]\nname = "quotes"\n', encoding="utf-8")
    (config.repo_root / "package.json").write_text("{", encoding="utf-8")

    result = run_implementation_gate(config)

    assert not result.passed
    assert result.checks["config_health"] is False
    assert len(result.errors) == 1
    assert result.errors[0].startswith("Configuration file package.json is corrupt")


def test_valid_project_config_passes(config: GateConfig, clean_tools) -> None:
    (config.repo_root / "pyproject.toml").write_text('[project]\nname = "quotes"\n', encoding="utf-8")
    (config.repo_root / "tsconfig.json").write_text('{"compilerOptions": {"strict": true}}', encoding="utf-8")

    result = run_implementation_gate(config)

    assert result.passed
    assert result.checks["config_health"] is True
