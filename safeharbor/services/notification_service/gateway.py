"""Contact gateway: outbound SMS/voice, emergency dispatch, and referrals.

Every method either returns a DeliveryReceipt confirming the attempt was
accepted or raises ChannelUnreachable. There is no silent success: an
unconfigured gateway always reports failure.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

import aiohttp

from safeharbor.shared.errors import ChannelUnreachable
from safeharbor.shared.models import (
    EmergencyContact,
    EmergencyServiceUnit,
    Location,
    RiskLevel,
)
from safeharbor.shared.utils import hash_pii

logger = logging.getLogger(__name__)

NOT_CONFIGURED = "channel_not_configured"


def _parse_estimate(value: Any, channel: str) -> Optional[int]:
    """Provider estimates are advisory; an unparsable one is dropped, not fatal."""
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning(
            "CONTACT_WEBHOOK_BAD_ESTIMATE",
            extra={"channel": channel, "value": repr(value)[:50]}
        )
        return None


@dataclass(frozen=True)
class DeliveryReceipt:
    """Confirmation returned by the downstream provider."""
    reference_number: str
    estimated_response_seconds: Optional[int] = None
    method: str = "webhook"


class ContactGateway(ABC):
    """Outbound contact interface used by the channel operations."""

    @abstractmethod
    async def notify_contact(
        self,
        user_id: str,
        contact: EmergencyContact,
        message: str,
        urgency: RiskLevel,
    ) -> DeliveryReceipt:
        """Notify one emergency contact (SMS or call)."""

    @abstractmethod
    async def dispatch_emergency(
        self,
        user_id: str,
        unit: EmergencyServiceUnit,
        location: Location,
        emergency_type: str,
    ) -> DeliveryReceipt:
        """Request a dispatch from one emergency service unit."""

    @abstractmethod
    async def refer_to_service(
        self,
        user_id: str,
        name: str,
        phone: str,
        location: Optional[Location],
        reason: str,
    ) -> DeliveryReceipt:
        """Refer the user to a professional or mental-health service."""


class UnconfiguredContactGateway(ContactGateway):
    """Null object used when no provider is configured."""

    async def notify_contact(self, user_id, contact, message, urgency) -> DeliveryReceipt:
        raise ChannelUnreachable(NOT_CONFIGURED)

    async def dispatch_emergency(self, user_id, unit, location, emergency_type) -> DeliveryReceipt:
        raise ChannelUnreachable(NOT_CONFIGURED)

    async def refer_to_service(self, user_id, name, phone, location, reason) -> DeliveryReceipt:
        raise ChannelUnreachable(NOT_CONFIGURED)


class WebhookContactGateway(ContactGateway):
    """Posts contact requests to provider webhooks.

    The provider replies with JSON carrying ``reference_number`` and,
    optionally, ``estimated_response_seconds``. A reply without a reference
    number is treated as unconfirmed.
    """

    def __init__(
        self,
        contact_url: Optional[str] = None,
        dispatch_url: Optional[str] = None,
        referral_url: Optional[str] = None,
        timeout_seconds: float = 10.0,
    ):
        self.contact_url = contact_url
        self.dispatch_url = dispatch_url
        self.referral_url = referral_url
        self.timeout_seconds = timeout_seconds

        logger.info(
            "CONTACT_GATEWAY_INITIALIZED",
            extra={
                "contact_configured": bool(contact_url),
                "dispatch_configured": bool(dispatch_url),
                "referral_configured": bool(referral_url),
            }
        )

    async def _post(self, url: Optional[str], channel: str, payload: Dict[str, Any]) -> DeliveryReceipt:
        if not url:
            raise ChannelUnreachable(NOT_CONFIGURED)

        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    url,
                    json=payload,
                    timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
                ) as response:
                    response.raise_for_status()
                    body = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.error(
                "CONTACT_WEBHOOK_FAILED",
                extra={"channel": channel, "error": str(e), "error_type": type(e).__name__}
            )
            raise ChannelUnreachable(f"{channel}: {type(e).__name__}") from e

        reference = body.get("reference_number") if isinstance(body, dict) else None
        if not reference:
            logger.warning("CONTACT_WEBHOOK_UNCONFIRMED", extra={"channel": channel})
            raise ChannelUnreachable(f"{channel}: no_confirmation")

        return DeliveryReceipt(
            reference_number=str(reference),
            estimated_response_seconds=_parse_estimate(body.get("estimated_response_seconds"), channel),
            method=str(body.get("method", "webhook")),
        )

    async def notify_contact(self, user_id, contact, message, urgency) -> DeliveryReceipt:
        return await self._post(self.contact_url, "emergency_contact", {
            "subject_ref": hash_pii(user_id),
            "contact_id": contact.id,
            "contact_name": contact.name,
            "phone": contact.phone,
            "message": message,
            "urgency": urgency.value,
        })

    async def dispatch_emergency(self, user_id, unit, location, emergency_type) -> DeliveryReceipt:
        return await self._post(self.dispatch_url, "emergency_dispatch", {
            "subject_ref": hash_pii(user_id),
            "service_id": unit.id,
            "service_phone": unit.phone,
            "emergency_type": emergency_type,
            "location": location.to_dict(),
        })

    async def refer_to_service(self, user_id, name, phone, location, reason) -> DeliveryReceipt:
        return await self._post(self.referral_url, "referral", {
            "subject_ref": hash_pii(user_id),
            "service_name": name,
            "service_phone": phone,
            "reason": reason,
            "location": location.to_dict() if location else None,
        })
