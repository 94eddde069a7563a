"""Exception taxonomy shared by all taskgate components.

Gates collect problems as messages rather than raising them one at a time.
These exceptions are used at the seams (parsing, configuration, external
tools) and by callers that want to escalate a collected result.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path

    from taskgate.pipeline.fraud.types import FraudSignal


class TaskgateError(RuntimeError):
    """Base class for all taskgate errors."""


class ConfigError(TaskgateError):
    """Configuration file is malformed or carries unknown keys."""


class PrerequisiteError(TaskgateError):
    """Environment or queue state prevents a task from starting."""

    def __init__(self, task_id: str, errors: list[str]):
        joined = "; ".join(errors) if errors else "unknown prerequisite failure"
        super().__init__(f"Task {task_id} cannot start: {joined}")
        self.task_id = task_id
        self.errors = errors


class GateFailure(TaskgateError):
    """A gate check failed. Carries the originating check and raw diagnostics."""

    def __init__(self, gate: str, check: str, detail: str):
        super().__init__(f"[{gate}] {check}: {detail}")
        self.gate = gate
        self.check = check
        self.detail = detail


class FraudDetected(GateFailure):
    """Blocking fraud signals were found in an evidence bundle."""

    def __init__(self, gate: str, signals: list[FraudSignal]):
        detail = "; ".join(signal.message for signal in signals)
        super().__init__(gate, "fraud_heuristics", detail)
        self.signals = signals


class ToolUnavailable(TaskgateError):
    """An external collaborator (type-checker, linter, browser endpoint) is unreachable."""

    def __init__(self, tool: str, detail: str):
        super().__init__(f"{tool} unavailable: {detail}")
        self.tool = tool
        self.detail = detail


class ParseError(TaskgateError):
    """A work-queue block or structured document could not be parsed."""

    def __init__(self, source: str | Path, detail: str, line: int | None = None):
        location = f"{source}:{line}" if line is not None else str(source)
        super().__init__(f"{location}: {detail}")
        self.source = str(source)
        self.line = line
        self.detail = detail
