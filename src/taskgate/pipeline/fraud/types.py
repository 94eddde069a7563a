"""Fraud signal types."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

SignalKind = Literal[
    "undersized-file",
    "clustered-timestamps",
    "malformed-structure",
    "placeholder-content",
    "stale-evidence",
    "evidence-relocation",
    "root-gaming",
    "keyword-substitution",
    "inconsistent-counts",
]
Severity = Literal["blocking", "warning"]


@dataclass(frozen=True)
class FraudSignal:
    """Heuristic indicator that evidence was fabricated or copied."""

    kind: SignalKind
    severity: Severity
    message: str
    path: str | None = None
    remediation: str = ""

    @property
    def blocking(self) -> bool:
        return self.severity == "blocking"

    def render(self) -> str:
        prefix = "FRAUD DETECTED" if self.blocking else "SUSPICIOUS"
        text = f"{prefix} [{self.kind}]: {self.message}"
        if self.remediation:
            text += f"\n  Remediation: {self.remediation}"
        return text

    def to_dict(self) -> dict[str, str | None]:
        return {
            "kind": self.kind,
            "severity": self.severity,
            "message": self.message,
            "path": self.path,
            "remediation": self.remediation,
        }
