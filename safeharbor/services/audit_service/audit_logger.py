"""Audit logger - append-only, hash-chained compliance trail.

Every crisis detection, escalation, crisis-team alert, and access to
protected health information emits an audit entry. Entries are chained by
SHA-256 so tampering is detectable with ``verify_chain()``.
"""
import asyncio
import hashlib
import json
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from safeharbor.shared.errors import PersistenceFailure
from safeharbor.shared.models import RiskLevel, utcnow
from safeharbor.shared.utils import hash_pii

logger = logging.getLogger(__name__)

GENESIS_HASH = "genesis"


class AuditAction(Enum):
    """Actions that require audit logging."""
    CRISIS_DETECTED = "crisis_detected"
    ESCALATION_COMPLETED = "escalation_completed"
    CRISIS_TEAM_ALERTED = "crisis_team_alerted"
    PROFESSIONAL_ACCESS = "professional_access"
    PHI_ACCESS = "phi_access"


class AuditEntity(Enum):
    """Entity types for audit logging."""
    CRISIS_ASSESSMENT = "crisis_assessment"
    ESCALATION = "escalation"
    PATIENT_DATA = "patient_data"
    PHI_RESOURCE = "phi_resource"


class AccessType(Enum):
    """Why a professional accessed a user's data."""
    EMERGENCY = "emergency"
    AUTHORIZED = "authorized"
    CONSULTATION = "consultation"


@dataclass(frozen=True)
class PHIAccessEvent:
    """One access to protected health information."""
    user_id: str                            # Who accessed
    resource_type: str                      # e.g. "messages", "safety_plan"
    resource_id: str
    action: str                             # e.g. "read", "bulk_export"
    affected_user_id: Optional[str] = None  # Whose data; defaults to user_id
    purpose: Optional[str] = None


@dataclass(frozen=True)
class AuditEntry:
    """Immutable audit log entry.

    Identifiers of people are stored hashed.
    """
    entry_id: str
    timestamp: datetime
    action: AuditAction
    entity_type: AuditEntity
    entity_id: str
    actor_id: str
    severity: str                           # info, warning, error, critical
    risk_level: str                         # low, medium, high, critical
    details: Dict[str, Any] = field(default_factory=dict)
    previous_hash: str = ""
    entry_hash: str = ""

    def compute_hash(self) -> str:
        """SHA-256 over every field except ``entry_hash``."""
        content = {
            "entry_id": self.entry_id,
            "timestamp": self.timestamp.isoformat(),
            "action": self.action.value,
            "entity_type": self.entity_type.value,
            "entity_id": self.entity_id,
            "actor_id": self.actor_id,
            "severity": self.severity,
            "risk_level": self.risk_level,
            "details": self.details,
            "previous_hash": self.previous_hash,
        }
        content_str = json.dumps(content, sort_keys=True, default=str)
        return hashlib.sha256(content_str.encode()).hexdigest()


def crisis_severity(risk_level: RiskLevel) -> str:
    if risk_level is RiskLevel.CRITICAL:
        return "critical"
    if risk_level is RiskLevel.HIGH:
        return "error"
    return "warning"


def assess_phi_access_risk(event: PHIAccessEvent, hour: int) -> str:
    """Score a PHI access.

    +1 off-hours (before 06:00 or after 22:00), +2 bulk export of messages,
    +1 cross-user access. Three or more is high, two is medium.
    """
    score = 0
    if hour < 6 or hour > 22:
        score += 1
    if event.resource_type == "messages" and event.action == "bulk_export":
        score += 2
    if event.affected_user_id and event.affected_user_id != event.user_id:
        score += 1

    if score >= 3:
        return "high"
    if score >= 2:
        return "medium"
    return "low"


class AuditSink(ABC):
    """Compliance logging interface consumed by the crisis subsystem."""

    @abstractmethod
    async def log_crisis_detection(
        self,
        user_id: str,
        risk_level: RiskLevel,
        triggers: Sequence[str],
        confidence: float,
        message_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        ...

    @abstractmethod
    async def log_professional_access(
        self,
        professional_id: str,
        patient_id: str,
        access_type: AccessType,
        purpose: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        ...

    @abstractmethod
    async def log_phi_access(
        self,
        event: PHIAccessEvent,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        ...

    @abstractmethod
    async def log_escalation(
        self,
        escalation_id: str,
        user_id: str,
        risk_level: RiskLevel,
        protocol_name: Optional[str],
        state: str,
        contacted_services: Sequence[str],
    ) -> None:
        ...

    @abstractmethod
    async def log_crisis_team_alert(
        self,
        escalation_id: str,
        user_id: str,
        delivered: bool,
    ) -> None:
        ...


class AuditLogger(AuditSink):
    """Hash-chained audit ledger.

    In-memory for dev and tests. Given an ``AuditRepository`` every entry
    is appended to PostgreSQL instead, and the chain continues from the
    newest stored hash.
    """

    def __init__(self, clock=None, repository=None):
        self._entries: List[AuditEntry] = []
        self._repository = repository
        self._last_hash: Optional[str] = None if repository is not None else GENESIS_HASH
        self._lock = threading.Lock()
        self._clock = clock or (lambda: datetime.now().astimezone())

        logger.info(
            "AUDIT_LOGGER_INITIALIZED",
            extra={"backend": "postgresql" if repository is not None else "memory"}
        )

    async def _write(self, **kwargs: Any) -> AuditEntry:
        # Repository writes block on the database
        if self._repository is None:
            return self.log(**kwargs)
        return await asyncio.to_thread(self.log, **kwargs)

    def _chain_head(self) -> str:
        if self._last_hash is None:
            self._last_hash = self._repository.latest_hash() or GENESIS_HASH
        return self._last_hash

    def _all_entries(self) -> List[AuditEntry]:
        if self._repository is not None:
            return self._repository.entries()
        return self._entries

    def log(
        self,
        action: AuditAction,
        entity_type: AuditEntity,
        entity_id: str,
        actor_id: str,
        severity: str = "info",
        risk_level: str = "low",
        details: Optional[Dict[str, Any]] = None,
    ) -> AuditEntry:
        """Append an entry to the chain.

        Raises:
            PersistenceFailure: If the entry cannot be hashed or stored
        """
        with self._lock:
            try:
                entry = AuditEntry(
                    entry_id=f"audit_{uuid.uuid4().hex[:16]}",
                    timestamp=utcnow(),
                    action=action,
                    entity_type=entity_type,
                    entity_id=entity_id,
                    actor_id=actor_id,
                    severity=severity,
                    risk_level=risk_level,
                    details=details or {},
                    previous_hash=self._chain_head(),
                )
                entry = replace(entry, entry_hash=entry.compute_hash())
                if self._repository is not None:
                    self._repository.insert(entry)
            except Exception as e:
                logger.error(
                    "AUDIT_WRITE_FAILED",
                    extra={"action": action.value, "error": str(e)}
                )
                raise PersistenceFailure(f"audit write failed: {e}") from e

            if self._repository is None:
                self._entries.append(entry)
            self._last_hash = entry.entry_hash

        logger.info(
            "AUDIT_ENTRY_CREATED",
            extra={
                "entry_id": entry.entry_id,
                "action": action.value,
                "entity_type": entity_type.value,
                "severity": severity,
                "risk_level": risk_level,
                "entry_hash": entry.entry_hash[:16],  # Truncated for logs
            }
        )
        return entry

    async def log_crisis_detection(
        self,
        user_id: str,
        risk_level: RiskLevel,
        triggers: Sequence[str],
        confidence: float,
        message_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        user_id_hash = hash_pii(user_id)
        details = dict(context or {})
        details.setdefault("session_id", None)
        details.update({
            "description": f"Crisis detected: {risk_level.value} risk ({confidence:.2f} confidence)",
            "triggers": list(triggers),
            "confidence": round(confidence, 3),
            "phi_accessed": True,
        })
        await self._write(
            action=AuditAction.CRISIS_DETECTED,
            entity_type=AuditEntity.CRISIS_ASSESSMENT,
            entity_id=message_id or f"unknown_{uuid.uuid4().hex[:12]}",
            actor_id=user_id_hash,
            severity=crisis_severity(risk_level),
            risk_level=risk_level.value,
            details=details,
        )

    async def log_professional_access(
        self,
        professional_id: str,
        patient_id: str,
        access_type: AccessType,
        purpose: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        emergency = access_type is AccessType.EMERGENCY
        await self._write(
            action=AuditAction.PROFESSIONAL_ACCESS,
            entity_type=AuditEntity.PATIENT_DATA,
            entity_id=hash_pii(patient_id),
            actor_id=professional_id,
            severity="warning" if emergency else "info",
            risk_level="high" if emergency else "medium",
            details={
                "access_type": access_type.value,
                "purpose": purpose,
                "session_id": (context or {}).get("session_id"),
            },
        )
        if emergency:
            logger.warning(
                "COMPLIANCE_REVIEW_REQUIRED",
                extra={"professional_id": professional_id, "access_type": access_type.value}
            )

    async def log_phi_access(
        self,
        event: PHIAccessEvent,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        risk = assess_phi_access_risk(event, self._clock().hour)
        await self._write(
            action=AuditAction.PHI_ACCESS,
            entity_type=AuditEntity.PHI_RESOURCE,
            entity_id=event.resource_id,
            actor_id=hash_pii(event.user_id),
            severity="info",
            risk_level=risk,
            details={
                "resource_type": event.resource_type,
                "action": event.action,
                "affected_user_id_hash": hash_pii(event.affected_user_id or event.user_id),
                "purpose": event.purpose,
                "session_id": (context or {}).get("session_id"),
            },
        )
        if risk == "high":
            logger.warning(
                "PHI_ACCESS_HIGH_RISK",
                extra={"resource_type": event.resource_type, "action": event.action}
            )

    async def log_escalation(
        self,
        escalation_id: str,
        user_id: str,
        risk_level: RiskLevel,
        protocol_name: Optional[str],
        state: str,
        contacted_services: Sequence[str],
    ) -> None:
        await self._write(
            action=AuditAction.ESCALATION_COMPLETED,
            entity_type=AuditEntity.ESCALATION,
            entity_id=escalation_id,
            actor_id=hash_pii(user_id),
            severity="error" if state == "escalated-failed" else "warning",
            risk_level=risk_level.value,
            details={
                "protocol": protocol_name,
                "state": state,
                "contacted_services": list(contacted_services),
            },
        )

    async def log_crisis_team_alert(
        self,
        escalation_id: str,
        user_id: str,
        delivered: bool,
    ) -> None:
        await self._write(
            action=AuditAction.CRISIS_TEAM_ALERTED,
            entity_type=AuditEntity.ESCALATION,
            entity_id=escalation_id,
            actor_id=hash_pii(user_id),
            severity="critical",
            risk_level=RiskLevel.CRITICAL.value,
            details={"delivered": delivered},
        )

    def verify_chain(self) -> bool:
        """Verify integrity of the audit chain.

        Returns:
            True if chain is valid, False if tampered
        """
        entries = self._all_entries()
        expected_prev = GENESIS_HASH
        for entry in entries:
            if entry.previous_hash != expected_prev:
                logger.critical(
                    "AUDIT_CHAIN_VERIFICATION_FAILED",
                    extra={
                        "entry_id": entry.entry_id,
                        "expected_prev": expected_prev[:16],
                        "actual_prev": entry.previous_hash[:16],
                    }
                )
                return False

            computed = entry.compute_hash()
            if computed != entry.entry_hash:
                logger.critical(
                    "AUDIT_ENTRY_HASH_MISMATCH",
                    extra={
                        "entry_id": entry.entry_id,
                        "computed": computed[:16],
                        "stored": entry.entry_hash[:16],
                    }
                )
                return False

            expected_prev = entry.entry_hash

        logger.info("AUDIT_CHAIN_VERIFIED", extra={"entry_count": len(entries)})
        return True

    def query(
        self,
        action: Optional[AuditAction] = None,
        entity_type: Optional[AuditEntity] = None,
        entity_id: Optional[str] = None,
        severity: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> List[AuditEntry]:
        """Query audit entries; all filters are optional and combined."""
        results = self._all_entries()

        if action:
            results = [e for e in results if e.action == action]
        if entity_type:
            results = [e for e in results if e.entity_type == entity_type]
        if entity_id:
            results = [e for e in results if e.entity_id == entity_id]
        if severity:
            results = [e for e in results if e.severity == severity]
        if start_date:
            results = [e for e in results if e.timestamp >= start_date]
        if end_date:
            results = [e for e in results if e.timestamp <= end_date]

        return list(results)
