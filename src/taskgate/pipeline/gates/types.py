"""Gate runner types."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from taskgate.errors import FraudDetected, GateFailure
from taskgate.pipeline.fraud.types import FraudSignal

GateName = Literal["implementation", "evidence", "compliance"]
GateState = Literal["NOT_STARTED", "GATE1", "GATE2", "GATE2_SKIPPED", "GATE3", "APPROVED", "REJECTED"]
Verdict = Literal["APPROVED", "REJECTED"]

REPORT_SCHEMA_VERSION = "1.0"


@dataclass
class GateResult:
    """Outcome of one gate. Errors block; warnings are reported only."""

    gate: GateName
    passed: bool = True
    skipped: bool = False
    reason: str | None = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    checks: dict[str, bool] = field(default_factory=dict)
    signals: list[FraudSignal] = field(default_factory=list)
    # Counts from optional evidence documents, e.g. {"userWorkflows": {"total": 3, "completed": 2}}
    details: dict[str, dict[str, int]] = field(default_factory=dict)

    def fail(self, check: str, message: str) -> None:
        self.checks[check] = False
        self.errors.append(message)
        self.passed = False

    def ok(self, check: str) -> None:
        self.checks.setdefault(check, True)

    def warn(self, message: str) -> None:
        self.warnings.append(message)

    def to_dict(self) -> dict:
        return {
            "gate": self.gate,
            "passed": self.passed,
            "skipped": self.skipped,
            "reason": self.reason,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "checks": dict(self.checks),
            "signals": [signal.to_dict() for signal in self.signals],
            "details": {key: dict(counts) for key, counts in self.details.items()},
        }


@dataclass
class ValidationOutcome:
    """Full post-task validation result for one task."""

    task_id: str
    verdict: Verdict
    states: list[GateState]
    gates: list[GateResult]
    timestamp: str
    evidence_dir: str
    report_path: str | None = None
    certificate_path: str | None = None
    marked_complete: bool = False

    @property
    def approved(self) -> bool:
        return self.verdict == "APPROVED"

    @property
    def errors(self) -> list[str]:
        return [f"[{gate.gate}] {message}" for gate in self.gates for message in gate.errors]

    @property
    def warnings(self) -> list[str]:
        return [f"[{gate.gate}] {message}" for gate in self.gates for message in gate.warnings]

    def raise_for_status(self) -> None:
        """Escalate a REJECTED outcome.

        Raises:
            FraudDetected: If any gate carries blocking fraud signals
            GateFailure: For the first failing check otherwise
        """
        if self.approved:
            return
        for result in self.gates:
            blocking = [signal for signal in result.signals if signal.blocking]
            if blocking:
                raise FraudDetected(result.gate, blocking)
        for result in self.gates:
            if result.errors:
                check = next((name for name, ok in result.checks.items() if not ok), "unknown")
                raise GateFailure(result.gate, check, result.errors[0])

    def gate(self, name: GateName) -> GateResult:
        for result in self.gates:
            if result.gate == name:
                return result
        raise KeyError(name)

    def to_report(self, validator_version: str) -> dict:
        return {
            "schemaVersion": REPORT_SCHEMA_VERSION,
            "validatorVersion": validator_version,
            "taskId": self.task_id,
            "timestamp": self.timestamp,
            "verdict": self.verdict,
            "states": list(self.states),
            "evidenceDir": self.evidence_dir,
            "gates": [gate.to_dict() for gate in self.gates],
            "errorCount": len(self.errors),
            "warningCount": len(self.warnings),
        }
