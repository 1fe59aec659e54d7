"""Crisis-team alert publisher.

Critical escalations publish an alert to a Kinesis stream consumed by the
human crisis team. The orchestrator awaits the alert before returning.

Failure Handling:
    - Publishing failure never raises; the escalation result still returns
    - When the stream is unavailable the full alert is written as a
      CRITICAL log line for manual processing
"""
import asyncio
import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Tuple

import boto3

from safeharbor.shared.models import CrisisAssessment, EscalationResult, utcnow
from safeharbor.shared.utils import safe_hash_pii

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CrisisTeamAlert:
    """Immutable alert payload for the crisis team."""
    alert_id: str
    escalation_id: str
    assessment_id: str
    user_id_hash: str
    session_id: str
    risk_level: str
    confidence: float
    triggers: Tuple[str, ...] = ()
    protocol_name: Optional[str] = None
    state: str = ""
    contacted_services: Tuple[str, ...] = ()
    reference_number: Optional[str] = None
    event_type: str = "crisis.escalation.critical"
    timestamp: datetime = field(default_factory=utcnow)

    def to_kinesis_payload(self) -> dict:
        return {
            "alert_id": self.alert_id,
            "event_type": self.event_type,
            "timestamp": self.timestamp.isoformat(),
            "source": "crisis-engine",
            "data": {
                "escalation_id": self.escalation_id,
                "assessment_id": self.assessment_id,
                "user_id_hash": self.user_id_hash,
                "session_id": self.session_id,
                "risk_level": self.risk_level,
                "confidence": round(self.confidence, 3),
                "triggers": list(self.triggers),
                "protocol": self.protocol_name,
                "state": self.state,
                "contacted_services": list(self.contacted_services),
                "reference_number": self.reference_number,
                "requires_human_intervention": True,
            }
        }


class CrisisTeamAlerter:
    """Publishes crisis-team alerts to Kinesis."""

    def __init__(
        self,
        stream_name: str = "safeharbor-crisis-alerts",
        enabled: bool = True,
        region: str = "us-east-1",
    ):
        self.stream_name = stream_name
        self.enabled = enabled
        self.region = region
        self._kinesis_client = None

        logger.info(
            "CRISIS_ALERTER_INITIALIZED",
            extra={"stream_name": stream_name, "enabled": enabled, "region": region}
        )

    @property
    def kinesis_client(self):
        """Lazy initialization of the Kinesis client."""
        if self._kinesis_client is None and self.enabled:
            try:
                self._kinesis_client = boto3.client("kinesis", region_name=self.region)
            except Exception as e:
                logger.error("KINESIS_CLIENT_INIT_FAILED", extra={"error": str(e)})
        return self._kinesis_client

    def build_alert(self, assessment: CrisisAssessment, result: EscalationResult) -> CrisisTeamAlert:
        return CrisisTeamAlert(
            alert_id=f"alert_{uuid.uuid4().hex[:12]}",
            escalation_id=result.escalation_id,
            assessment_id=assessment.id,
            user_id_hash=safe_hash_pii(assessment.user_id),
            session_id=assessment.session_id,
            risk_level=assessment.risk_level.value,
            confidence=assessment.confidence,
            triggers=assessment.triggers,
            protocol_name=result.protocol_name,
            state=result.state.value,
            contacted_services=tuple(c.value for c in result.contacted_services),
            reference_number=result.reference_number,
        )

    async def alert(self, assessment: CrisisAssessment, result: EscalationResult) -> bool:
        """Publish the alert.

        Returns:
            True if published, False otherwise (never raises)
        """
        try:
            alert = self.build_alert(assessment, result)
        except Exception as e:
            logger.critical(
                "CRISIS_ALERT_BUILD_FAILED",
                extra={
                    "escalation_id": result.escalation_id,
                    "error": str(e),
                    "action": "MANUAL_REVIEW_REQUIRED",
                }
            )
            return False
        return await asyncio.to_thread(self.publish, alert)

    def publish(self, alert: CrisisTeamAlert) -> bool:
        payload = alert.to_kinesis_payload()

        if not self.enabled or self.kinesis_client is None:
            logger.critical(
                "CRISIS_ALERT_FALLBACK_LOG",
                extra={
                    "alert_id": alert.alert_id,
                    "payload": json.dumps(payload),
                    "reason": "publishing_disabled" if not self.enabled else "kinesis_client_unavailable",
                    "action": "MANUAL_PROCESSING_REQUIRED",
                }
            )
            return False

        try:
            response = self.kinesis_client.put_record(
                StreamName=self.stream_name,
                Data=json.dumps(payload),
                PartitionKey=alert.user_id_hash,  # Same user -> same shard
            )
        except Exception as e:
            logger.critical(
                "CRISIS_ALERT_PUBLISH_FAILED",
                extra={
                    "alert_id": alert.alert_id,
                    "escalation_id": alert.escalation_id,
                    "error": str(e),
                    "error_type": type(e).__name__,
                    "action": "MANUAL_REVIEW_REQUIRED",
                    "payload": json.dumps(payload),
                }
            )
            return False

        logger.critical(
            "CRISIS_ALERT_PUBLISHED",
            extra={
                "alert_id": alert.alert_id,
                "escalation_id": alert.escalation_id,
                "user_id_hash": alert.user_id_hash,
                "shard_id": response.get("ShardId"),
                "sequence_number": response.get("SequenceNumber"),
            }
        )
        return True
