"""Tests for debt classification, placement and evidence."""

from __future__ import annotations

import json
import threading
import time
from pathlib import Path

import pytest

from taskgate.config import GateConfig
from taskgate.errors import ConfigError, ParseError
from taskgate.pipeline.debt import analyze_debt, classify, decide_placement
from taskgate.pipeline.debt.classifier import make_debt_id
from taskgate.pipeline.debt.inventory import DebtInventory
from taskgate.pipeline.debt.results import extract_failing_tests, load_test_run
from taskgate.pipeline.debt.rules import load_builtin_rules, load_rules, parse_rules
from taskgate.pipeline.debt.types import DebtItem, FailingTest
from taskgate.queue import parse_queue_file
from taskgate.queue.store import WorkQueue

JEST_RESULTS = {
    "numTotalTests": 5,
    "testResults": [
        {
            "name": "tests/contract/quotes.test.js",
            "assertionResults": [
                {
                    "status": "failed",
                    "title": "should handle quotes with discounts correctly",
                    "fullName": "POST /api/quotes should handle quotes with discounts correctly",
                    "failureMessages": ["Expected: 850\nReceived: 1000"],
                },
                {
                    "status": "failed",
                    "title": "returns the expected JSON structure",
                    "fullName": "GET /api/quotes returns the expected JSON structure",
                    "failureMessages": ["toMatchObject failed"],
                },
                {
                    "status": "failed",
                    "title": "renders the summary",
                    "fullName": "QuoteSummary renders the summary",
                    "failureMessages": ["boom"],
                },
                {"status": "passed", "title": "lists quotes", "fullName": "GET /api/quotes lists quotes"},
            ],
        }
    ],
}


def _item(severity: str, n: int) -> DebtItem:
    return DebtItem(
        id=f"DEBT-{n}",
        source_test=f"test {n}",
        test_file="t.py",
        severity=severity,  # type: ignore[arg-type]
        category="calculation",
        description="Fix it",
        business_impact="impact",
        effort="S",
        dependencies=[],
        created_at="1970-01-01T00:00:00Z",
        queue_id="T014",
    )


@pytest.mark.parametrize(
    ("severities", "expected"),
    [
        ([], "NONE"),
        (["HIGH"] * 4 + ["LOW"] * 2, "SPRINT_TASKS"),
        (["CRITICAL", "HIGH", "HIGH", "HIGH", "HIGH"], "INVENTORY"),
        (["LOW"] * 7, "INVENTORY"),
    ],
)
def test_placement_thresholds(severities: list[str], expected: str) -> None:
    items = [_item(severity, n) for n, severity in enumerate(severities)]
    assert decide_placement(items).strategy == expected


def test_builtin_rules_load_in_order() -> None:
    rules = load_builtin_rules()
    assert rules[0].category == "pricing-logic"
    assert {rule.severity for rule in rules} <= {"CRITICAL", "HIGH", "MEDIUM", "LOW"}


def test_extra_rules_are_appended(tmp_path: Path) -> None:
    extra = tmp_path / "rules.yaml"
    extra.write_text(
        "rules:\n"
        "  - pattern: 'flaky'\n"
        "    severity: low\n"
        "    category: flakiness\n"
        "    template: 'Stabilize {api}'\n"
        "    business_impact: 'CI noise'\n"
        "    effort: XS\n"
    )
    rules = load_rules(extra)
    assert rules[-1].category == "flakiness"
    assert rules[-1].severity == "LOW"


def test_bad_rule_is_config_error() -> None:
    with pytest.raises(ConfigError, match="unknown severity"):
        parse_rules(
            {"rules": [{"pattern": "x", "severity": "URGENT", "category": "c", "template": "t",
                        "business_impact": "b", "effort": "S"}]},
            source="inline",
        )


def test_classify_matches_rules_and_falls_back_to_manual_review() -> None:
    failing = extract_failing_tests(JEST_RESULTS)
    assert len(failing) == 3

    items = classify(failing, load_builtin_rules(), "T014", "1970-01-01T00:00:00Z")
    by_category = {item.category: item for item in items}
    assert by_category["pricing-logic"].severity == "CRITICAL"
    assert by_category["pricing-logic"].description == "Fix /api/quotes discount calculation logic"
    assert by_category["response-structure"].severity == "MEDIUM"
    manual = by_category["manual-review"]
    assert manual.severity == "HIGH"
    assert manual.description == "Manual Review Required: QuoteSummary renders the summary"


def test_debt_ids_are_stable() -> None:
    test = FailingTest(name="a", title="a", message="m", file="f.py")
    assert make_debt_id("T014", test, "calculation") == make_debt_id("T014", test, "calculation")
    assert make_debt_id("T014", test, "calculation") != make_debt_id("T015", test, "calculation")


def test_text_results_are_parsed(tmp_path: Path) -> None:
    path = tmp_path / "out.txt"
    path.write_text(
        "  ✕ POST /api/quotes should reject invalid payload (12 ms)\n"
        "FAILED tests/test_dates.py::test_expiry_date_default - assert 30 == 31\n"
        "PASSED tests/test_ok.py::test_ok\n"
    )
    data, text = load_test_run(path)
    assert data is None
    failing = extract_failing_tests(data, text)
    assert [f.name for f in failing] == [
        "POST /api/quotes should reject invalid payload",
        "tests/test_dates.py::test_expiry_date_default",
    ]
    assert failing[1].file == "tests/test_dates.py"


def test_missing_results_file_raises(tmp_path: Path) -> None:
    with pytest.raises(ParseError):
        load_test_run(tmp_path / "nope.json")


def test_small_batch_becomes_queue_tasks(config: GateConfig, repo: Path) -> None:
    results = repo / "jest.json"
    results.write_text(json.dumps(JEST_RESULTS))

    analysis = analyze_debt(results, "T014", config)

    assert analysis.placement.strategy == "SPRINT_TASKS"
    assert analysis.counts == {"critical": 1, "high": 1, "medium": 1, "low": 0}
    assert analysis.items[0].severity == "CRITICAL"
    assert analysis.generated_tasks == ["T014.1", "T014.2", "T014.3"]
    assert analysis.blocks_development

    document = parse_queue_file(repo / "tasks.md")
    generated = document.get("T014.1")
    assert generated.section == "Technical Debt"
    assert generated.metadata["debt"] == analysis.items[0].id

    evidence = json.loads((repo / "evidence" / "T014" / "technical-debt.json").read_text())
    assert evidence["debtTrackingLocation"]["strategy"] == "SPRINT_TASKS"
    assert {ref["taskId"] for ref in evidence["debtTrackingLocation"]["references"]} == {
        "T014.1", "T014.2", "T014.3"
    }
    assert not (repo / ".taskgate" / "debt-inventory.json").exists()


def test_reanalysis_does_not_duplicate_queue_tasks(config: GateConfig, repo: Path) -> None:
    results = repo / "jest.json"
    results.write_text(json.dumps(JEST_RESULTS))
    analyze_debt(results, "T014", config)

    again = analyze_debt(results, "T014", config)

    assert again.generated_tasks == []
    assert again.duplicates_skipped == 3
    assert len([tid for tid in parse_queue_file(repo / "tasks.md").ids() if tid.startswith("T014.")]) == 3


def test_large_batch_goes_to_inventory(config: GateConfig, repo: Path) -> None:
    results = repo / "pytest.txt"
    results.write_text(
        "".join(f"FAILED tests/test_misc.py::test_case_{n} - assert {n} == 0\n" for n in range(7))
    )
    queue_before = (repo / "tasks.md").read_text()

    analysis = analyze_debt(results, "SPRINT-7", config, task_id="T014")

    assert analysis.placement.strategy == "INVENTORY"
    assert (repo / "tasks.md").read_text() == queue_before
    inventory = DebtInventory(config.inventory_file)
    assert inventory.ids() == {item.id for item in analysis.items}

    evidence = json.loads((repo / "evidence" / "T014" / "technical-debt.json").read_text())
    assert evidence["queueId"] == "SPRINT-7"
    assert len(evidence["debtTrackingLocation"]["references"]) == 7


def test_no_failures_records_explicit_zero_debt(config: GateConfig, repo: Path) -> None:
    results = repo / "jest.json"
    results.write_text(json.dumps({"numTotalTests": 3, "testResults": []}))

    analysis = analyze_debt(results, "T014", config)

    assert analysis.placement.strategy == "NONE"
    evidence = json.loads((repo / "evidence" / "T014" / "technical-debt.json").read_text())
    assert evidence["identifiedDebt"] == {"critical": 0, "high": 0, "medium": 0, "low": 0}
    assert evidence["testResults"]["executed"] == 3
    assert evidence["compliance"]["debtTracked"] is True


def test_concurrent_analysis_does_not_duplicate_queue_tasks(
    config: GateConfig, repo: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    results = repo / "jest.json"
    results.write_text(json.dumps(JEST_RESULTS))

    original_load = WorkQueue.load

    def slow_load(self):
        document = original_load(self)
        time.sleep(0.2)
        return document

    monkeypatch.setattr(WorkQueue, "load", slow_load)

    analyses = []
    errors: list[BaseException] = []

    def run() -> None:
        try:
            analyses.append(analyze_debt(results, "T014", config))
        except BaseException as e:
            errors.append(e)

    threads = [threading.Thread(target=run) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    document = parse_queue_file(repo / "tasks.md")
    debt_ids = [block.metadata["debt"] for block in document.blocks if block.metadata.get("debt")]
    assert len(debt_ids) == 3
    assert len(set(debt_ids)) == 3
    assert sorted(len(analysis.generated_tasks) for analysis in analyses) == [0, 3]
    assert sorted(analysis.duplicates_skipped for analysis in analyses) == [0, 3]
