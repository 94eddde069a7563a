"""Prerequisite checks run before a task may begin.

Each check returns a CheckItem. ``fail`` items block the task; ``warn``
items are surfaced to the operator but never silently treated as a pass.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Literal

from taskgate.errors import ParseError, PrerequisiteError, ToolUnavailable
from taskgate.queue.parser import parse_queue_file
from taskgate.utils import probe
from taskgate.utils.exec import run_git

if TYPE_CHECKING:
    from taskgate.config import GateConfig
    from taskgate.queue.types import QueueDocument, TaskBlock

logger = logging.getLogger(__name__)


@dataclass
class CheckItem:
    """Individual check result."""

    id: str
    status: Literal["pass", "fail", "warn"]
    message: str
    remediation: list[str] = field(default_factory=list)


@dataclass
class PrerequisiteReport:
    """All prerequisite checks for one task."""

    task_id: str
    checks: list[CheckItem] = field(default_factory=list)

    @property
    def errors(self) -> list[str]:
        return [c.message for c in self.checks if c.status == "fail"]

    @property
    def warnings(self) -> list[str]:
        return [c.message for c in self.checks if c.status == "warn"]

    @property
    def passed(self) -> bool:
        return not self.errors

    def raise_for_status(self) -> None:
        if not self.passed:
            raise PrerequisiteError(self.task_id, self.errors)

    def to_dict(self) -> dict:
        return {
            "taskId": self.task_id,
            "passed": self.passed,
            "errors": self.errors,
            "warnings": self.warnings,
            "checks": [asdict(c) for c in self.checks],
        }


def _check_git_status(config: GateConfig) -> CheckItem:
    """Check A: working tree inspected (dirty is a warning)."""
    try:
        result = run_git(["status", "--porcelain"], repo_root=config.repo_root)
    except ToolUnavailable as e:
        return CheckItem(
            id="git_status",
            status="fail",
            message=f"Git status check failed: {e}",
            remediation=["Install git and run from inside the repository"],
        )
    if result.returncode != 0:
        return CheckItem(
            id="git_status",
            status="fail",
            message=f"Git status check failed: {(result.stderr or result.stdout).strip()}",
            remediation=[f"Run from a git work tree or pass --repo-root (current: {config.repo_root})"],
        )
    changed = [line for line in result.stdout.splitlines() if line.strip()]
    if changed:
        return CheckItem(
            id="git_status",
            status="warn",
            message=f"Working tree has {len(changed)} uncommitted change(s)",
            remediation=["Commit or stash unrelated changes before starting the task"],
        )
    return CheckItem(id="git_status", status="pass", message="Working tree clean")


def _check_task_exists(document: QueueDocument, task_id: str) -> CheckItem:
    """Check B: task appears exactly once in the queue."""
    matches = document.find(task_id)
    if not matches:
        return CheckItem(
            id="task_exists",
            status="fail",
            message=f"Task {task_id} not found in {document.source}",
            remediation=[f"Add '- [ ] {task_id} <description>' to the work queue or fix the task id"],
        )
    if len(matches) > 1:
        lines = ", ".join(str(block.line) for block in matches)
        return CheckItem(
            id="task_exists",
            status="fail",
            message=f"Task {task_id} appears {len(matches)} times in {document.source} (lines {lines})",
            remediation=[f"Give each task a unique id; rename the duplicates of {task_id}"],
        )
    return CheckItem(id="task_exists", status="pass", message=f"Task {task_id} found (line {matches[0].line})")


def _check_not_complete(block: TaskBlock) -> CheckItem:
    """Check C: completed tasks are never re-entered."""
    if block.status == "complete":
        return CheckItem(
            id="task_not_complete",
            status="fail",
            message=f"Task {block.task_id} is already marked as complete",
            remediation=["Pick the next pending task; completed tasks may not be restarted"],
        )
    return CheckItem(id="task_not_complete", status="pass", message=f"Task {block.task_id} is {block.status}")


def _check_dependencies(document: QueueDocument, block: TaskBlock, config: GateConfig) -> list[CheckItem]:
    """Check D: declared task dependencies are complete and dependency markers exist."""
    items: list[CheckItem] = []
    unresolved: list[str] = []
    unknown: list[str] = []
    for dep in block.dependencies:
        dep_block = document.get(dep)
        if dep_block is None:
            unknown.append(dep)
        elif dep_block.status != "complete":
            unresolved.append(f"{dep} ({dep_block.status})")

    if unknown:
        items.append(
            CheckItem(
                id="dependencies",
                status="fail",
                message=f"Task {block.task_id} depends on unknown task(s): {', '.join(unknown)}",
                remediation=["Fix the dependency ids in the task's 'Depends:' line"],
            )
        )
    if unresolved:
        items.append(
            CheckItem(
                id="dependencies",
                status="fail",
                message=f"Task {block.task_id} has unresolved dependencies: {', '.join(unresolved)}",
                remediation=["Complete and validate the dependency tasks first"],
            )
        )
    if not unknown and not unresolved:
        detail = ", ".join(block.dependencies) if block.dependencies else "none declared"
        items.append(CheckItem(id="dependencies", status="pass", message=f"Dependencies resolved ({detail})"))

    for marker in config.dependency_markers:
        if not config.resolve(Path(marker)).exists():
            items.append(
                CheckItem(
                    id="dependency_markers",
                    status="warn",
                    message=f"{marker} not found - project dependencies may not be installed",
                    remediation=[f"Install project dependencies so that {marker} exists"],
                )
            )
    return items


def _check_tools(config: GateConfig) -> list[CheckItem]:
    """Check E: type-checker, linter and browser endpoint reachable (warnings only)."""
    items: list[CheckItem] = []
    for label, command in (("type-checker", config.typecheck_command), ("linter", config.lint_command)):
        if not command:
            continue
        if shutil.which(command[0]) is None:
            items.append(
                CheckItem(
                    id="tool_reachability",
                    status="warn",
                    message=str(ToolUnavailable(command[0], f"{label} executable not on PATH")),
                    remediation=[f"Install {command[0]}; Gate 1 rejects the task while it is missing"],
                )
            )
        else:
            items.append(CheckItem(id="tool_reachability", status="pass", message=f"{label} {command[0]} found"))

    if config.browser_endpoint:
        reachable, detail = probe.probe_url(config.browser_endpoint, config.probe_timeout)
        if reachable:
            items.append(CheckItem(id="browser_endpoint", status="pass", message=f"Browser automation reachable: {detail}"))
        else:
            items.append(
                CheckItem(
                    id="browser_endpoint",
                    status="warn",
                    message=str(ToolUnavailable("browser automation", detail)),
                    remediation=[
                        "Start the browser automation endpoint before capturing evidence",
                        "If it stays down, stop and report the outage instead of skipping evidence",
                    ],
                )
            )
    return items


def _check_service(config: GateConfig) -> list[CheckItem]:
    """Check F: local service under test is listening."""
    if not config.service_url:
        return []
    reachable, detail = probe.probe_url(config.service_url, config.probe_timeout)
    if reachable:
        return [CheckItem(id="service_listening", status="pass", message=f"Service listening: {detail}")]
    return [
        CheckItem(
            id="service_listening",
            status="warn",
            message=f"Local service not listening: {detail}",
            remediation=[f"Start the service at {config.service_url} before exercising the task"],
        )
    ]


def run_prerequisite_checks(task_id: str, config: GateConfig) -> PrerequisiteReport:
    """Run every prerequisite check for ``task_id``."""
    report = PrerequisiteReport(task_id=task_id)
    report.checks.append(_check_git_status(config))

    try:
        document = parse_queue_file(config.queue_file)
    except ParseError as e:
        report.checks.append(
            CheckItem(
                id="task_exists",
                status="fail",
                message=f"Work queue unreadable: {e}",
                remediation=[f"Create or fix {config.queue_file}"],
            )
        )
        document = None

    if document is not None:
        exists = _check_task_exists(document, task_id)
        report.checks.append(exists)
        if exists.status == "pass":
            block = document.find(task_id)[0]
            report.checks.append(_check_not_complete(block))
            report.checks.extend(_check_dependencies(document, block, config))

    report.checks.extend(_check_tools(config))
    report.checks.extend(_check_service(config))

    for check in report.checks:
        logger.debug("prerequisite %s: %s - %s", check.id, check.status, check.message)
    return report
