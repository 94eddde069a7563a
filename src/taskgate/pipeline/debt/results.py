"""Failing-test extraction from test-run output.

Understands Jest JSON (``testResults[].assertionResults[]``), pytest-json-report
(``tests[]`` with ``outcome``), and plain text runner output as a fallback.
"""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any

from taskgate.errors import ParseError
from taskgate.pipeline.debt.types import FailingTest

_JEST_FAIL_RE = re.compile(r"[✕×]\s*(?P<name>.+?)(?:\s*\(\d+\s*ms\))?\s*$")
_PYTEST_FAIL_RE = re.compile(r"^FAILED\s+(?P<nodeid>\S+?)(?:\s+-\s+(?P<message>.*))?$")


def load_test_run(path: Path) -> tuple[Any, str]:
    """Return (parsed JSON or None, raw text)."""
    if not path.exists():
        raise ParseError(path, "test results file not found")
    text = path.read_text(encoding="utf-8", errors="replace")
    try:
        return json.loads(text), text
    except json.JSONDecodeError:
        return None, text


def extract_failing_tests(data: Any, raw_text: str = "") -> list[FailingTest]:
    if isinstance(data, dict) and isinstance(data.get("testResults"), list):
        return _from_jest(data)
    if isinstance(data, dict) and isinstance(data.get("tests"), list):
        return _from_pytest_report(data)
    return _from_text(raw_text)


def count_executed(data: Any) -> int | None:
    """Total tests executed, when the format reports it."""
    if not isinstance(data, dict):
        return None
    if isinstance(data.get("numTotalTests"), int):
        return int(data["numTotalTests"])
    summary = data.get("summary")
    if isinstance(summary, dict) and isinstance(summary.get("total"), int):
        return int(summary["total"])
    return None


def _from_jest(data: dict[str, Any]) -> list[FailingTest]:
    failing: list[FailingTest] = []
    for file_result in data["testResults"]:
        if not isinstance(file_result, dict):
            continue
        file_name = str(file_result.get("name") or file_result.get("testFilePath") or "unknown")
        for assertion in file_result.get("assertionResults") or []:
            if not isinstance(assertion, dict) or assertion.get("status") != "failed":
                continue
            title = str(assertion.get("title") or "")
            failing.append(
                FailingTest(
                    name=str(assertion.get("fullName") or title),
                    title=title,
                    message="\n".join(str(m) for m in assertion.get("failureMessages") or []),
                    file=file_name,
                )
            )
    return failing


def _from_pytest_report(data: dict[str, Any]) -> list[FailingTest]:
    failing: list[FailingTest] = []
    for test in data["tests"]:
        if not isinstance(test, dict) or test.get("outcome") not in {"failed", "error"}:
            continue
        nodeid = str(test.get("nodeid") or "")
        message = ""
        for phase in ("call", "setup", "teardown"):
            details = test.get(phase)
            if isinstance(details, dict) and details.get("longrepr"):
                message = str(details["longrepr"])
                break
        failing.append(
            FailingTest(
                name=nodeid,
                title=nodeid.rsplit("::", 1)[-1],
                message=message,
                file=nodeid.split("::", 1)[0] or "unknown",
            )
        )
    return failing


def _from_text(raw_text: str) -> list[FailingTest]:
    failing: list[FailingTest] = []
    for line in raw_text.splitlines():
        stripped = line.strip()
        match = _JEST_FAIL_RE.search(stripped)
        if match:
            name = match.group("name").strip()
            failing.append(FailingTest(name=name, title=name, message=stripped))
            continue
        match = _PYTEST_FAIL_RE.match(stripped)
        if match:
            nodeid = match.group("nodeid")
            failing.append(
                FailingTest(
                    name=nodeid,
                    title=nodeid.rsplit("::", 1)[-1],
                    message=match.group("message") or stripped,
                    file=nodeid.split("::", 1)[0],
                )
            )
    return failing
