"""Evidence fraud heuristics."""

from taskgate.pipeline.fraud.heuristics import run_all
from taskgate.pipeline.fraud.types import FraudSignal

__all__ = ["FraudSignal", "run_all"]
