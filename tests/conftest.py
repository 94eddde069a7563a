"""Pytest configuration and fixtures for taskgate tests."""

from __future__ import annotations

import json
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path

import pytest

from taskgate.config import GateConfig
from taskgate.utils.exec import ExecResult

QUEUE_TEXT = """\
# Tasks

## Phase 3: Core
- [x] T012 Create quote model in src/models/quote.py
  - Evidence: N/A - data model only
- [ ] T014 Implement POST /api/quotes endpoint in src/api/quotes.py
  - Evidence: Browser test POST /api/quotes
  - Depends: T012
- [ ] T015 Document the quote API
  - Evidence: N/A
"""

INTERACTION_LOG = """\
Purpose: verify quote creation through the quote form
Request: POST /api/quotes {"customer": "Acme", "items": [{"sku": "A-1", "qty": 3}]}
Result: 201 Created, quote q-123 returned and listed on the quotes page
"""

COMPLETION_STATUS = """\
## Status
LEVEL 4 - FUNCTIONAL

## Evidence
Verified POST /api/quotes through the browser; see raw-responses/take_snapshot.json.
File: `src/api/quotes.py`
"""


def _raw_response(command: str) -> dict:
    return {
        "command": command,
        "timestamp": datetime.now(UTC).isoformat(),
        "extractedContent": (
            "Quotes page: table lists quote q-123 for customer Acme with 3 x A-1, "
            "total 150.00, status Draft; the create form shows the submitted values."
        ),
    }


def _test_results(task_id: str) -> dict:
    return {
        "taskId": task_id,
        "timestamp": datetime.now(UTC).isoformat(),
        "validationStatus": {"endpoint": "PASS", "persistence": "PASS"},
        "functionalTests": {
            "create_quote": {"status": "PASS", "details": "POST /api/quotes returned 201 with id q-123"},
        },
        "summary": {"executed": 1, "passed": 1, "failed": 0},
    }


@pytest.fixture
def repo(tmp_path: Path) -> Path:
    """Repository root with a work queue."""
    root = tmp_path / "repo"
    root.mkdir()
    (root / "tasks.md").write_text(QUEUE_TEXT, encoding="utf-8")
    return root


@pytest.fixture
def config(repo: Path) -> GateConfig:
    """Config with network probes disabled and deterministic timestamps."""
    return GateConfig(
        repo_root=repo,
        browser_endpoint=None,
        service_url=None,
        timestamp_mode="deterministic",
    )


@pytest.fixture
def make_bundle(config: GateConfig) -> Callable[..., Path]:
    """Factory writing a complete, genuine-looking evidence bundle."""

    def _make(task_id: str = "T014", **overrides: object) -> Path:
        root = config.evidence_dir / task_id
        raw = root / "raw-responses"
        raw.mkdir(parents=True, exist_ok=True)
        files: dict[str, object] = {
            "interaction.log": INTERACTION_LOG,
            "raw-responses/take_snapshot.json": _raw_response("take_snapshot"),
            "raw-responses/take_screenshot.json": _raw_response("take_screenshot"),
            "test-results.json": _test_results(task_id),
            "completion-status.md": COMPLETION_STATUS,
        }
        files.update(overrides)
        for name, content in files.items():
            path = root / name
            if content is None:
                continue
            path.parent.mkdir(parents=True, exist_ok=True)
            if isinstance(content, str):
                path.write_text(content, encoding="utf-8")
            else:
                path.write_text(json.dumps(content, indent=2), encoding="utf-8")
        return root

    return _make


@pytest.fixture
def clean_tools(monkeypatch: pytest.MonkeyPatch) -> list[list[str]]:
    """Stub type-checker, linter and git diff as passing; returns recorded argv."""
    calls: list[list[str]] = []

    def fake_run_command(argv, *, cwd, timeout=None):
        calls.append(list(argv))
        return ExecResult(argv=tuple(argv), cwd=cwd, returncode=0, stdout="", stderr="")

    def fake_run_git(args, *, repo_root):
        calls.append(["git", *args])
        return ExecResult(
            argv=("git", *args), cwd=repo_root, returncode=0, stdout="src/api/quotes.py\n", stderr=""
        )

    monkeypatch.setattr("taskgate.pipeline.gates.implementation.run_command", fake_run_command)
    monkeypatch.setattr("taskgate.pipeline.gates.implementation.run_git", fake_run_git)
    return calls
