"""Aggregate compliance audit."""

from taskgate.pipeline.audit.auditor import AuditReport, compliance_percentage, decide, run_audit, select_spot_checks

__all__ = ["AuditReport", "compliance_percentage", "decide", "run_audit", "select_spot_checks"]
