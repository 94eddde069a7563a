"""Technical debt classification, placement and evidence validation."""

from taskgate.pipeline.debt.classifier import analyze_debt, classify, decide_placement
from taskgate.pipeline.debt.types import DebtAnalysis, DebtItem, PlacementDecision

__all__ = [
    "DebtAnalysis",
    "DebtItem",
    "PlacementDecision",
    "analyze_debt",
    "classify",
    "decide_placement",
]
