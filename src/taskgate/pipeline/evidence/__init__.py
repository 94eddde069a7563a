"""Evidence bundle layout."""

from taskgate.pipeline.evidence.store import EvidenceBundle, EvidenceStore

__all__ = ["EvidenceBundle", "EvidenceStore"]
