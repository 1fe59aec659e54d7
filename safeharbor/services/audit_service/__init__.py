"""Audit Service: hash-chained compliance trail for crisis handling."""

from .audit_logger import (
    AuditSink,
    AuditLogger,
    AuditEntry,
    AuditAction,
    AuditEntity,
    AccessType,
    PHIAccessEvent,
    assess_phi_access_risk,
)
from .audit_repository import AuditRepository

__all__ = [
    "AuditSink",
    "AuditLogger",
    "AuditEntry",
    "AuditAction",
    "AuditEntity",
    "AccessType",
    "PHIAccessEvent",
    "assess_phi_access_risk",
    "AuditRepository",
]
