"""Requirement-evidence alignment checks."""

from taskgate.pipeline.alignment.checker import (
    AlignmentResult,
    FunctionalSignature,
    check_alignment,
    extract_signature,
)

__all__ = ["AlignmentResult", "FunctionalSignature", "check_alignment", "extract_signature"]
