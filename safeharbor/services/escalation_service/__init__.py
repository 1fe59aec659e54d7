"""Escalation Service: protocol execution, channel operations, escalation store."""

from .actions import ActionBatch, ImmediateActionRunner
from .channels import ChannelOperations, contact_priority_threshold, rank_hotlines
from .orchestrator import EscalationOrchestrator
from .records import EmergencyEvent, EscalationRecord, FollowUp, HotlineConnection
from .store import EscalationStore, InMemoryEscalationStore, PostgresEscalationStore

__all__ = [
    "ActionBatch",
    "ImmediateActionRunner",
    "ChannelOperations",
    "contact_priority_threshold",
    "rank_hotlines",
    "EscalationOrchestrator",
    "EmergencyEvent",
    "EscalationRecord",
    "FollowUp",
    "HotlineConnection",
    "EscalationStore",
    "InMemoryEscalationStore",
    "PostgresEscalationStore",
]
