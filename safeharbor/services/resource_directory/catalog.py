"""Hotline directory: versioned region -> hotline/service catalog.

Loaded once at process start from JSON (shipped as package data or from a
configured path) and parsed into immutable objects.
"""
import json
import logging
from dataclasses import dataclass
from importlib import resources
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple

from safeharbor.shared.errors import CatalogError
from safeharbor.shared.models import (
    CrisisHotline,
    EmergencyServiceUnit,
    Location,
    ServiceType,
)

logger = logging.getLogger(__name__)

DEFAULT_DIRECTORY_RESOURCE = "hotlines.json"


@dataclass(frozen=True)
class RegionResources:
    """All catalogued resources for one country/region."""
    hotlines: Tuple[CrisisHotline, ...]
    emergency_services: Tuple[EmergencyServiceUnit, ...] = ()
    mental_health_services: Tuple[EmergencyServiceUnit, ...] = ()


class HotlineDirectory:
    """Immutable region-keyed catalog of hotlines and emergency services."""

    def __init__(
        self,
        version: str,
        default_region: str,
        regions: Mapping[str, RegionResources],
    ):
        if default_region not in regions:
            raise CatalogError(f"Default region {default_region!r} has no entry")
        if not regions[default_region].hotlines:
            raise CatalogError(f"Default region {default_region!r} lists no hotlines")

        self.version = version
        self.default_region = default_region
        self.regions: Mapping[str, RegionResources] = MappingProxyType(dict(regions))

    def region_for(self, location: Optional[Location], fallback: Optional[str] = None) -> RegionResources:
        """Resources for the location's country, else ``fallback``, else the default region."""
        if location is not None and location.country_code in self.regions:
            return self.regions[location.country_code]
        if fallback in self.regions:
            return self.regions[fallback]
        return self.regions[self.default_region]

    def hotlines(self, location: Optional[Location] = None, fallback: Optional[str] = None) -> Tuple[CrisisHotline, ...]:
        region = self.region_for(location, fallback)
        return region.hotlines or self.regions[self.default_region].hotlines

    def emergency_services(
        self,
        location: Location,
        service_type: ServiceType = ServiceType.EMERGENCY,
        fallback: Optional[str] = None,
    ) -> Tuple[EmergencyServiceUnit, ...]:
        region = self.region_for(location, fallback)
        return tuple(s for s in region.emergency_services if s.service_type == service_type)

    def mental_health_services(
        self,
        location: Optional[Location],
        fallback: Optional[str] = None,
    ) -> Tuple[EmergencyServiceUnit, ...]:
        return self.region_for(location, fallback).mental_health_services

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HotlineDirectory":
        """Parse and validate a directory document.

        Raises:
            CatalogError: If the document is malformed
        """
        try:
            regions = {
                code.upper(): _parse_region(code.upper(), body)
                for code, body in data["regions"].items()
            }
            return cls(
                version=str(data["version"]),
                default_region=data.get("default_region", "US").upper(),
                regions=regions,
            )
        except CatalogError:
            raise
        except (KeyError, TypeError, ValueError) as e:
            raise CatalogError(f"Invalid hotline directory: {e}") from e

    @classmethod
    def load(cls, path: Optional[str] = None) -> "HotlineDirectory":
        """Load the directory from ``path`` or the packaged default."""
        try:
            if path:
                with open(path, encoding="utf-8") as fh:
                    data = json.load(fh)
            else:
                text = (
                    resources.files(__package__)
                    .joinpath("data")
                    .joinpath(DEFAULT_DIRECTORY_RESOURCE)
                    .read_text(encoding="utf-8")
                )
                data = json.loads(text)
        except (OSError, json.JSONDecodeError) as e:
            logger.critical(
                "HOTLINE_DIRECTORY_LOAD_FAILED",
                extra={"path": path or DEFAULT_DIRECTORY_RESOURCE, "error": str(e)}
            )
            raise CatalogError(f"Cannot read hotline directory: {e}") from e

        directory = cls.from_dict(data)
        logger.info(
            "HOTLINE_DIRECTORY_LOADED",
            extra={
                "version": directory.version,
                "regions": sorted(directory.regions),
                "default_region": directory.default_region,
            }
        )
        return directory


def _parse_region(code: str, body: Dict[str, Any]) -> RegionResources:
    hotlines = tuple(
        CrisisHotline(
            id=h["id"],
            name=h["name"],
            phone=h["phone"],
            available_24h=bool(h["available_24h"]),
            languages=frozenset(h.get("languages", ["en"])),
            specializations=frozenset(h.get("specializations", [])),
            country_code=code,
            average_wait_time_seconds=int(h.get("average_wait_time_seconds", 60)),
            website=h.get("website"),
        )
        for h in body.get("hotlines", [])
    )
    return RegionResources(
        hotlines=hotlines,
        emergency_services=_parse_services(code, body.get("emergency_services", [])),
        mental_health_services=_parse_services(code, body.get("mental_health_services", [])),
    )


def _parse_services(code: str, entries) -> Tuple[EmergencyServiceUnit, ...]:
    return tuple(
        EmergencyServiceUnit(
            id=s["id"],
            name=s["name"],
            phone=s["phone"],
            service_type=ServiceType(s.get("service_type", "emergency")),
            country_code=code,
            response_time_seconds=s.get("response_time_seconds"),
        )
        for s in entries
    )
