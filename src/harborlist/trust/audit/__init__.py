"""Audit logging and metrics package."""

from .logger import AuditLogger, configure_audit_logging

__all__ = [
    "AuditLogger",
    "configure_audit_logging",
]
