"""Pre-task prerequisite checks."""

from taskgate.pipeline.prerequisite.checker import CheckItem, PrerequisiteReport, run_prerequisite_checks

__all__ = ["CheckItem", "PrerequisiteReport", "run_prerequisite_checks"]
