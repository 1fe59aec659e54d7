"""Shared utilities for the SafeHarbor crisis subsystem."""
from .pii import (
    hash_pii,
    hash_text_for_audit,
    configure_pii_salt,
    is_pii_salt_configured,
    safe_hash_pii,
)
from .fanout import TaskOutcome, gather_outcomes, resolve_optional

__all__ = [
    "hash_pii",
    "hash_text_for_audit",
    "configure_pii_salt",
    "is_pii_salt_configured",
    "safe_hash_pii",
    "TaskOutcome",
    "gather_outcomes",
    "resolve_optional",
]
