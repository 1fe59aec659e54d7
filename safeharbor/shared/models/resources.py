"""Resource directory domain models.

Crisis hotlines, emergency and professional contacts, and location-based
emergency services. All records are read-only from the escalation side;
writes are owned by administrative flows.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional


class Relationship(Enum):
    """Relationship of an emergency contact to the user."""
    FAMILY = "family"
    FRIEND = "friend"
    PARTNER = "partner"
    THERAPIST = "therapist"
    DOCTOR = "doctor"
    OTHER = "other"


class ServiceType(Enum):
    """Kinds of location-based emergency service."""
    EMERGENCY = "emergency"             # Police/ambulance/fire dispatch
    HOSPITAL = "hospital"
    MENTAL_HEALTH = "mental_health"     # Mobile crisis teams, crisis centers


@dataclass(frozen=True)
class Location:
    """Resolved user location used to pick regional services."""
    latitude: float
    longitude: float
    country_code: str = "US"
    region: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "country_code": self.country_code,
            "region": self.region,
        }


@dataclass(frozen=True)
class EmergencyContact:
    """A person the user has nominated for crisis notification.

    Lower priority values are more urgent (1 = first to call).
    """
    id: str
    name: str
    phone: str
    relationship: Relationship
    priority: int
    verified_at: Optional[datetime] = None

    @property
    def is_verified(self) -> bool:
        return self.verified_at is not None


@dataclass(frozen=True)
class ProfessionalContact:
    """Therapist, psychiatrist, or counselor linked to the user."""
    id: str
    name: str
    phone: str
    specialty: str = "counselor"
    emergency_available: bool = False
    email: Optional[str] = None


@dataclass(frozen=True)
class CrisisHotline:
    """A crisis hotline entry from the hotline directory."""
    id: str
    name: str
    phone: str
    available_24h: bool
    languages: FrozenSet[str] = frozenset({"en"})
    specializations: FrozenSet[str] = frozenset()
    country_code: str = "US"
    average_wait_time_seconds: int = 60
    website: Optional[str] = None

    def speaks(self, language: str) -> bool:
        return language in self.languages

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "available_24h": self.available_24h,
            "languages": sorted(self.languages),
            "specializations": sorted(self.specializations),
            "country_code": self.country_code,
            "average_wait_time_seconds": self.average_wait_time_seconds,
            "website": self.website,
        }


@dataclass(frozen=True)
class EmergencyServiceUnit:
    """A regional emergency service (dispatch center, crisis team, ER)."""
    id: str
    name: str
    phone: str
    service_type: ServiceType
    country_code: str = "US"
    response_time_seconds: Optional[int] = None


@dataclass(frozen=True)
class AlternativeResource:
    """Fallback resource offered to the user when contact attempts fail."""
    name: str
    contact: str
    kind: str                   # "hotline", "text", "chat", "emergency"
    available_24h: bool = True
    description: str = ""
    languages: FrozenSet[str] = field(default_factory=lambda: frozenset({"en"}))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "contact": self.contact,
            "kind": self.kind,
            "available_24h": self.available_24h,
            "description": self.description,
        }

    @classmethod
    def from_hotline(cls, hotline: CrisisHotline) -> "AlternativeResource":
        return cls(
            name=hotline.name,
            contact=hotline.phone,
            kind="hotline",
            available_24h=hotline.available_24h,
            description=f"Average wait {hotline.average_wait_time_seconds}s",
            languages=hotline.languages,
        )


# Offered on every failure path; never loaded from configuration so that a
# broken catalog still leaves the user with somewhere to turn.
LAST_RESORT_RESOURCES = (
    AlternativeResource(
        name="988 Suicide & Crisis Lifeline",
        contact="988",
        kind="hotline",
        description="Call or text 988, free and confidential",
        languages=frozenset({"en", "es"}),
    ),
    AlternativeResource(
        name="Crisis Text Line",
        contact="Text HOME to 741741",
        kind="text",
        description="Text with a trained crisis counselor",
    ),
    AlternativeResource(
        name="Lifeline Online Chat",
        contact="https://suicidepreventionlifeline.org/chat/",
        kind="chat",
        description="Chat online with a crisis counselor",
    ),
)
