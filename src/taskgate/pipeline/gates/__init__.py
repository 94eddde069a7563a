"""Three-stage post-task validation."""

from taskgate.pipeline.gates.runner import validate_task
from taskgate.pipeline.gates.types import GateResult, ValidationOutcome

__all__ = ["GateResult", "ValidationOutcome", "validate_task"]
