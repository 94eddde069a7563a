"""Technical debt types."""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field
from typing import Any, Literal

DebtSeverity = Literal["CRITICAL", "HIGH", "MEDIUM", "LOW"]
PlacementStrategy = Literal["NONE", "SPRINT_TASKS", "INVENTORY"]

SEVERITY_ORDER: tuple[DebtSeverity, ...] = ("CRITICAL", "HIGH", "MEDIUM", "LOW")


@dataclass(frozen=True)
class DebtRule:
    """One ordered classification rule. Templates may use {api} and {component}."""

    pattern: re.Pattern[str]
    severity: DebtSeverity
    category: str
    template: str
    business_impact: str
    effort: str
    dependencies: tuple[str, ...] = ()


@dataclass(frozen=True)
class FailingTest:
    """A failing test signature extracted from a test-run result."""

    name: str
    title: str
    message: str
    file: str = "unknown"

    @property
    def search_text(self) -> str:
        return f"{self.name} {self.title} {self.message}"


@dataclass
class DebtItem:
    """Categorized, prioritized remediation unit derived from a failing test."""

    id: str
    source_test: str
    test_file: str
    severity: DebtSeverity
    category: str
    description: str
    business_impact: str
    effort: str
    dependencies: list[str]
    created_at: str
    queue_id: str
    status: str = "OPEN"
    evidence: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        return {
            "id": data["id"],
            "sourceTest": data["source_test"],
            "testFile": data["test_file"],
            "severity": data["severity"],
            "category": data["category"],
            "description": data["description"],
            "businessImpact": data["business_impact"],
            "estimatedEffort": data["effort"],
            "dependencies": data["dependencies"],
            "createdAt": data["created_at"],
            "queueId": data["queue_id"],
            "status": data["status"],
            "evidence": data["evidence"],
        }


@dataclass(frozen=True)
class PlacementDecision:
    """Where a batch of debt items is tracked, and why."""

    strategy: PlacementStrategy
    reason: str


@dataclass
class DebtAnalysis:
    """Result of one debt-analyze run."""

    task_id: str
    queue_id: str
    tests_executed: bool
    failing_tests: list[FailingTest]
    items: list[DebtItem]
    placement: PlacementDecision
    generated_tasks: list[str] = field(default_factory=list)
    duplicates_skipped: int = 0
    evidence_path: str | None = None

    @property
    def counts(self) -> dict[str, int]:
        return {
            severity.lower(): sum(1 for item in self.items if item.severity == severity)
            for severity in SEVERITY_ORDER
        }

    @property
    def blocks_development(self) -> bool:
        return self.counts["critical"] > 0
