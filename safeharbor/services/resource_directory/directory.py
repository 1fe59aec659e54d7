"""Resource directory: user contacts, location, and catalog lookups.

Read-only from the escalation side. Contact verification and catalog
updates are owned by administrative flows.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from psycopg2.extras import RealDictCursor

from safeharbor.shared.database import ConnectionManager, RepositoryError
from safeharbor.shared.models import (
    CrisisHotline,
    EmergencyContact,
    EmergencyServiceUnit,
    Location,
    ProfessionalContact,
    Relationship,
    ServiceType,
)
from safeharbor.shared.utils import safe_hash_pii
from .catalog import HotlineDirectory

logger = logging.getLogger(__name__)


class ResourceDirectory(ABC):
    """Async lookup interface used by the orchestrator and safety-plan builder.

    Implementations raise on storage failure; callers decide how to degrade.
    """

    @abstractmethod
    async def user_location(self, user_id: str) -> Optional[Location]:
        """Resolved location for the user, or None if unknown."""

    @abstractmethod
    async def emergency_contacts(self, user_id: str) -> List[EmergencyContact]:
        """Emergency contacts ordered by ascending priority."""

    @abstractmethod
    async def professional_contacts(self, user_id: str) -> List[ProfessionalContact]:
        """Professional contacts in preference order."""

    @abstractmethod
    async def crisis_hotlines(self, location: Optional[Location] = None) -> List[CrisisHotline]:
        """Hotlines for the location's region, or the default region."""

    @abstractmethod
    async def emergency_services(
        self,
        location: Location,
        service_type: ServiceType = ServiceType.EMERGENCY,
    ) -> List[EmergencyServiceUnit]:
        """Regional emergency units of the given type."""

    @abstractmethod
    async def mental_health_services(self, location: Optional[Location]) -> List[EmergencyServiceUnit]:
        """Regional mental-health crisis services."""


class CatalogResourceDirectory(ResourceDirectory):
    """Serves hotline and service lookups from a HotlineDirectory.

    ``default_country`` picks the region when the location is unknown or
    not catalogued; the catalog's own default applies if it is not listed.
    """

    def __init__(self, catalog: HotlineDirectory, default_country: Optional[str] = None):
        self.catalog = catalog
        self.default_country = default_country or catalog.default_region
        if self.default_country not in catalog.regions:
            logger.warning(
                "DEFAULT_COUNTRY_NOT_CATALOGUED",
                extra={"default_country": self.default_country, "fallback": catalog.default_region}
            )

    async def crisis_hotlines(self, location: Optional[Location] = None) -> List[CrisisHotline]:
        return list(self.catalog.hotlines(location, self.default_country))

    async def emergency_services(
        self,
        location: Location,
        service_type: ServiceType = ServiceType.EMERGENCY,
    ) -> List[EmergencyServiceUnit]:
        return list(self.catalog.emergency_services(location, service_type, self.default_country))

    async def mental_health_services(self, location: Optional[Location]) -> List[EmergencyServiceUnit]:
        return list(self.catalog.mental_health_services(location, self.default_country))


class StaticResourceDirectory(CatalogResourceDirectory):
    """Directory backed by in-memory user data.

    In-memory for dev and tests; PostgreSQL in prod.
    """

    def __init__(self, catalog: HotlineDirectory, default_country: Optional[str] = None):
        super().__init__(catalog, default_country)
        self._locations: Dict[str, Location] = {}
        self._contacts: Dict[str, List[EmergencyContact]] = {}
        self._professionals: Dict[str, List[ProfessionalContact]] = {}

    def set_location(self, user_id: str, location: Location) -> None:
        self._locations[user_id] = location

    def add_emergency_contact(self, user_id: str, contact: EmergencyContact) -> None:
        self._contacts.setdefault(user_id, []).append(contact)

    def add_professional_contact(self, user_id: str, contact: ProfessionalContact) -> None:
        self._professionals.setdefault(user_id, []).append(contact)

    async def user_location(self, user_id: str) -> Optional[Location]:
        return self._locations.get(user_id)

    async def emergency_contacts(self, user_id: str) -> List[EmergencyContact]:
        return sorted(self._contacts.get(user_id, []), key=lambda c: c.priority)

    async def professional_contacts(self, user_id: str) -> List[ProfessionalContact]:
        return list(self._professionals.get(user_id, []))


class PostgresResourceDirectory(CatalogResourceDirectory):
    """Directory reading user contacts and location from PostgreSQL.

    Blocking psycopg2 calls run in worker threads so slow reads never
    stall unrelated escalations.
    """

    def __init__(
        self,
        catalog: HotlineDirectory,
        connection_manager: ConnectionManager,
        default_country: Optional[str] = None,
    ):
        super().__init__(catalog, default_country)
        self.connection_manager = connection_manager

    def _query(self, query: str, params: tuple) -> List[dict]:
        try:
            with self.connection_manager.get_connection() as conn:
                with conn.cursor(cursor_factory=RealDictCursor) as cur:
                    cur.execute(query, params)
                    return [dict(row) for row in cur.fetchall()]
        except Exception as e:
            logger.error(
                "RESOURCE_DIRECTORY_QUERY_FAILED",
                extra={"error": str(e), "error_type": type(e).__name__}
            )
            raise RepositoryError(str(e)) from e

    async def user_location(self, user_id: str) -> Optional[Location]:
        rows = await asyncio.to_thread(
            self._query,
            "SELECT latitude, longitude, country_code, region FROM user_locations "
            "WHERE user_id = %s ORDER BY updated_at DESC LIMIT 1",
            (user_id,),
        )
        if not rows:
            logger.info("USER_LOCATION_UNKNOWN", extra={"user_id_hash": safe_hash_pii(user_id)})
            return None
        row = rows[0]
        return Location(
            latitude=float(row["latitude"]),
            longitude=float(row["longitude"]),
            country_code=row.get("country_code") or self.default_country,
            region=row.get("region"),
        )

    async def emergency_contacts(self, user_id: str) -> List[EmergencyContact]:
        rows = await asyncio.to_thread(
            self._query,
            "SELECT id, name, phone, relationship, priority, verified_at FROM emergency_contacts "
            "WHERE user_id = %s ORDER BY priority ASC",
            (user_id,),
        )
        return [
            EmergencyContact(
                id=str(row["id"]),
                name=row["name"],
                phone=row["phone"],
                relationship=_relationship(row.get("relationship")),
                priority=int(row["priority"]),
                verified_at=row.get("verified_at"),
            )
            for row in rows
        ]

    async def professional_contacts(self, user_id: str) -> List[ProfessionalContact]:
        rows = await asyncio.to_thread(
            self._query,
            "SELECT id, name, phone, specialty, emergency_available, email FROM professional_contacts "
            "WHERE user_id = %s ORDER BY emergency_available DESC, name ASC",
            (user_id,),
        )
        return [
            ProfessionalContact(
                id=str(row["id"]),
                name=row["name"],
                phone=row["phone"],
                specialty=row.get("specialty") or "counselor",
                emergency_available=bool(row.get("emergency_available")),
                email=row.get("email"),
            )
            for row in rows
        ]


def _relationship(value: Optional[str]) -> Relationship:
    try:
        return Relationship(value)
    except ValueError:
        return Relationship.OTHER
