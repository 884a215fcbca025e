"""
Audit Package.

Exports AuditLogger and ReportStore.
"""

from .audit_logger import AuditLogger
from .report_store import ReportStore

__all__ = ["AuditLogger", "ReportStore"]
