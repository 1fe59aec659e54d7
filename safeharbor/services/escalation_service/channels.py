"""Channel operations: hotline, emergency contacts, mental-health services, dispatch.

Each operation is independently callable and returns a ChannelResult.
Nothing here raises to the caller; a failed attempt is a result with
``success=False`` and, where useful, alternatives for the user.
"""
import logging
import uuid
from typing import List, Optional, Sequence, Tuple

from safeharbor.shared.errors import LocationUnavailable
from safeharbor.shared.models import (
    LAST_RESORT_RESOURCES,
    AlternativeResource,
    ChannelResult,
    ContactNotification,
    CrisisHotline,
    EmergencyContact,
    Location,
    RiskLevel,
    ServiceType,
)
from safeharbor.shared.utils import gather_outcomes, safe_hash_pii
from safeharbor.services.notification_service import ContactGateway
from safeharbor.services.resource_directory import ResourceDirectory
from .records import EmergencyEvent, HotlineConnection
from .store import EscalationStore

logger = logging.getLogger(__name__)

DEFAULT_RESPONSE_SECONDS = 300
DEFAULT_EMERGENCY_TYPE = "mental_health_crisis"

LOCATION_UNAVAILABLE = "location_unavailable"
NO_HOTLINES = "no_hotlines_available"
NO_CONTACTS = "no_eligible_contacts"
NO_SERVICES = "no_services_available"
NO_CONFIRMATION = "no_confirmed_referral"


def contact_priority_threshold(urgency: RiskLevel) -> int:
    """Highest contact priority value notified at a given urgency."""
    if urgency == RiskLevel.CRITICAL:
        return 2
    if urgency == RiskLevel.HIGH:
        return 3
    return 5


def rank_hotlines(
    hotlines: Sequence[CrisisHotline],
    preferred_language: Optional[str],
    default_language: str,
) -> List[CrisisHotline]:
    """Filter by language then order by 24h availability and wait time.

    Falls back to the default language, then to every hotline, when no
    candidate speaks the preferred one.
    """
    candidates: List[CrisisHotline] = []
    for language in (preferred_language, default_language):
        if language:
            candidates = [h for h in hotlines if h.speaks(language)]
            if candidates:
                break
    if not candidates:
        candidates = list(hotlines)
    return sorted(candidates, key=lambda h: (not h.available_24h, h.average_wait_time_seconds))


class ChannelOperations:
    """The four contact channels of an escalation."""

    def __init__(
        self,
        directory: ResourceDirectory,
        gateway: ContactGateway,
        store: EscalationStore,
        default_language: str = "en",
    ):
        self.directory = directory
        self.gateway = gateway
        self.store = store
        self.default_language = default_language

    async def hotline_alternatives(self, location: Optional[Location] = None) -> Tuple[AlternativeResource, ...]:
        """Catalog hotlines followed by the last-resort list, deduplicated by contact."""
        alternatives: List[AlternativeResource] = []
        try:
            hotlines = await self.directory.crisis_hotlines(location)
            alternatives.extend(AlternativeResource.from_hotline(h) for h in hotlines)
        except Exception as e:
            logger.warning(
                "HOTLINE_ALTERNATIVES_LOOKUP_FAILED",
                extra={"error": str(e), "error_type": type(e).__name__}
            )

        seen = set()
        merged = []
        for resource in alternatives + list(LAST_RESORT_RESOURCES):
            if resource.contact not in seen:
                seen.add(resource.contact)
                merged.append(resource)
        return tuple(merged)

    async def connect_to_crisis_hotline(
        self,
        user_id: str,
        location: Optional[Location] = None,
        preferred_language: Optional[str] = None,
    ) -> ChannelResult:
        """Pick the best hotline for the user and record the connection."""
        try:
            hotlines = await self.directory.crisis_hotlines(location)
            ranked = rank_hotlines(hotlines, preferred_language, self.default_language)
            if not ranked:
                return ChannelResult(success=False, detail=NO_HOTLINES, alternatives=LAST_RESORT_RESOURCES)

            hotline = ranked[0]
            connection = HotlineConnection(
                id=str(uuid.uuid4()),
                user_id=user_id,
                hotline_id=hotline.id,
                hotline_name=hotline.name,
                hotline_phone=hotline.phone,
            )
            try:
                await self.store.insert_hotline_connection(connection)
            except Exception as e:
                logger.error(
                    "HOTLINE_CONNECTION_PERSIST_FAILED",
                    extra={"user_id_hash": safe_hash_pii(user_id), "error": str(e)}
                )

            logger.info(
                "HOTLINE_CONNECTED",
                extra={
                    "user_id_hash": safe_hash_pii(user_id),
                    "hotline_id": hotline.id,
                    "available_24h": hotline.available_24h,
                }
            )
            return ChannelResult(
                success=True,
                detail=f"connected to {hotline.name}",
                reference_number=connection.id,
                response_time_seconds=hotline.average_wait_time_seconds,
                hotline=hotline,
            )

        except Exception as e:
            logger.error(
                "HOTLINE_CONNECTION_FAILED",
                extra={"user_id_hash": safe_hash_pii(user_id), "error": str(e), "error_type": type(e).__name__}
            )
            return ChannelResult(success=False, detail=str(e), alternatives=LAST_RESORT_RESOURCES)

    async def notify_emergency_contacts(
        self,
        user_id: str,
        message: str,
        urgency: RiskLevel,
        contacts: Optional[Sequence[EmergencyContact]] = None,
    ) -> ChannelResult:
        """Notify every contact within the urgency's priority threshold concurrently.

        Args:
            user_id: User in crisis
            message: Text delivered to each contact
            urgency: Risk level driving the priority threshold
            contacts: Pre-resolved contact list; looked up when None

        Returns:
            ChannelResult with one ContactNotification per eligible contact
        """
        try:
            if contacts is None:
                contacts = await self.directory.emergency_contacts(user_id)

            threshold = contact_priority_threshold(urgency)
            eligible = sorted(
                (c for c in contacts if c.priority <= threshold),
                key=lambda c: c.priority,
            )
            if not eligible:
                return ChannelResult(success=False, detail=NO_CONTACTS)

            outcomes = await gather_outcomes(
                (c.id, self.gateway.notify_contact(user_id, c, message, urgency)) for c in eligible
            )
            notifications = tuple(
                ContactNotification(
                    contact_id=o.key,
                    success=o.ok,
                    detail="notified" if o.ok else str(o.error),
                    reference_number=o.value.reference_number if o.ok else None,
                )
                for o in outcomes
            )
            delivered = [n for n in notifications if n.success]

            logger.info(
                "EMERGENCY_CONTACTS_NOTIFIED",
                extra={
                    "user_id_hash": safe_hash_pii(user_id),
                    "urgency": urgency.value,
                    "eligible": len(eligible),
                    "delivered": len(delivered),
                }
            )
            return ChannelResult(
                success=bool(delivered),
                detail=f"notified {len(delivered)}/{len(eligible)}",
                reference_number=delivered[0].reference_number if delivered else None,
                notifications=notifications,
            )

        except Exception as e:
            logger.error(
                "EMERGENCY_CONTACT_NOTIFICATION_FAILED",
                extra={"user_id_hash": safe_hash_pii(user_id), "error": str(e), "error_type": type(e).__name__}
            )
            return ChannelResult(success=False, detail=str(e))

    async def contact_mental_health_services(
        self,
        user_id: str,
        location: Optional[Location] = None,
        reason: str = DEFAULT_EMERGENCY_TYPE,
    ) -> ChannelResult:
        """Refer to professionals first, then regional services, until one confirms."""
        try:
            targets: List[Tuple[str, str, Optional[int]]] = []
            for pro in await self.directory.professional_contacts(user_id):
                targets.append((pro.name, pro.phone, None))
            for service in await self.directory.mental_health_services(location):
                targets.append((service.name, service.phone, service.response_time_seconds))

            if not targets:
                return ChannelResult(success=False, detail=NO_SERVICES)

            for name, phone, response_time in targets:
                try:
                    receipt = await self.gateway.refer_to_service(user_id, name, phone, location, reason)
                except Exception as e:
                    logger.warning(
                        "REFERRAL_ATTEMPT_FAILED",
                        extra={"user_id_hash": safe_hash_pii(user_id), "service": name, "error": str(e)}
                    )
                    continue

                logger.info(
                    "MENTAL_HEALTH_REFERRAL_CONFIRMED",
                    extra={"user_id_hash": safe_hash_pii(user_id), "service": name}
                )
                return ChannelResult(
                    success=True,
                    detail=f"referred to {name}",
                    reference_number=receipt.reference_number,
                    response_time_seconds=receipt.estimated_response_seconds or response_time,
                )

            return ChannelResult(success=False, detail=NO_CONFIRMATION)

        except Exception as e:
            logger.error(
                "MENTAL_HEALTH_REFERRAL_FAILED",
                extra={"user_id_hash": safe_hash_pii(user_id), "error": str(e), "error_type": type(e).__name__}
            )
            return ChannelResult(success=False, detail=str(e))

    async def contact_emergency_services(
        self,
        user_id: str,
        emergency_type: str = DEFAULT_EMERGENCY_TYPE,
        location: Optional[Location] = None,
    ) -> ChannelResult:
        """Dispatch regional emergency units; never dispatches without a location."""
        try:
            if location is None:
                location = await self.directory.user_location(user_id)
            if location is None:
                raise LocationUnavailable(LOCATION_UNAVAILABLE)

            units = await self.directory.emergency_services(location, ServiceType.EMERGENCY)
            if not units:
                return ChannelResult(
                    success=False,
                    detail=NO_SERVICES,
                    alternatives=await self.hotline_alternatives(location),
                )

            outcomes = await gather_outcomes(
                (u, self.gateway.dispatch_emergency(user_id, u, location, emergency_type)) for u in units
            )

            event = EmergencyEvent(
                id=str(uuid.uuid4()),
                user_id=user_id,
                emergency_type=emergency_type,
                contact_results=[
                    {
                        "service_id": o.key.id,
                        "success": o.ok,
                        "reference_number": o.value.reference_number if o.ok else None,
                        "error": None if o.ok else str(o.error),
                    }
                    for o in outcomes
                ],
            )
            try:
                await self.store.insert_emergency_event(event)
            except Exception as e:
                logger.error(
                    "EMERGENCY_EVENT_PERSIST_FAILED",
                    extra={"user_id_hash": safe_hash_pii(user_id), "error": str(e)}
                )

            confirmed = [o for o in outcomes if o.ok]
            if not confirmed:
                return ChannelResult(
                    success=False,
                    detail="dispatch_unconfirmed",
                    alternatives=await self.hotline_alternatives(location),
                )

            response_times = [
                o.value.estimated_response_seconds or o.key.response_time_seconds or DEFAULT_RESPONSE_SECONDS
                for o in confirmed
            ]
            logger.critical(
                "EMERGENCY_SERVICES_DISPATCHED",
                extra={
                    "user_id_hash": safe_hash_pii(user_id),
                    "event_id": event.id,
                    "units_confirmed": len(confirmed),
                    "units_attempted": len(outcomes),
                }
            )
            return ChannelResult(
                success=True,
                detail=f"dispatched {len(confirmed)}/{len(outcomes)}",
                reference_number=confirmed[0].value.reference_number,
                response_time_seconds=min(response_times),
            )

        except LocationUnavailable:
            logger.warning(
                "EMERGENCY_DISPATCH_SKIPPED",
                extra={"user_id_hash": safe_hash_pii(user_id), "reason": LOCATION_UNAVAILABLE}
            )
            return ChannelResult(
                success=False,
                detail=LOCATION_UNAVAILABLE,
                alternatives=await self.hotline_alternatives(None),
            )

        except Exception as e:
            logger.error(
                "EMERGENCY_DISPATCH_FAILED",
                extra={"user_id_hash": safe_hash_pii(user_id), "error": str(e), "error_type": type(e).__name__}
            )
            return ChannelResult(
                success=False,
                detail=str(e),
                alternatives=await self.hotline_alternatives(location),
            )
