"""Protocol catalog: versioned risk-category -> intervention protocol data.

Protocols and selection rules are configuration, not branching code. The
catalog is validated once at load time; an unknown action, channel, or
protocol reference raises CatalogError before any escalation can run.
"""
import json
import logging
from dataclasses import dataclass
from importlib import resources
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Mapping, Optional, Tuple

from safeharbor.shared.errors import CatalogError
from safeharbor.shared.models import (
    Channel,
    ImmediateAction,
    InterventionProtocol,
    RiskLevel,
)

logger = logging.getLogger(__name__)

DEFAULT_CATALOG_RESOURCE = "protocols.json"


@dataclass(frozen=True)
class SelectionRule:
    """Routes an assessment to a protocol.

    Matches when any trigger appears in the assessment, or when the
    assessment's level is at least ``min_risk_level``.
    """
    protocol: str
    triggers: FrozenSet[str] = frozenset()
    min_risk_level: Optional[RiskLevel] = None

    def matches(self, triggers: Tuple[str, ...], risk_level: RiskLevel) -> bool:
        if self.triggers.intersection(triggers):
            return True
        return self.min_risk_level is not None and risk_level >= self.min_risk_level


class ProtocolCatalog:
    """Immutable, validated set of intervention protocols."""

    def __init__(
        self,
        version: str,
        protocols: Mapping[str, InterventionProtocol],
        rules: Tuple[SelectionRule, ...],
        default_protocol: str,
    ):
        if default_protocol not in protocols:
            raise CatalogError(f"Default protocol {default_protocol!r} is not defined")
        for rule in rules:
            if rule.protocol not in protocols:
                raise CatalogError(f"Selection rule names unknown protocol {rule.protocol!r}")

        self.version = version
        self.protocols: Mapping[str, InterventionProtocol] = MappingProxyType(dict(protocols))
        self.rules = tuple(rules)
        self.default_protocol = default_protocol

    def get(self, name: str) -> InterventionProtocol:
        try:
            return self.protocols[name]
        except KeyError:
            raise CatalogError(f"Unknown protocol {name!r}") from None

    @property
    def default(self) -> InterventionProtocol:
        return self.protocols[self.default_protocol]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProtocolCatalog":
        """Parse and validate a catalog document.

        Raises:
            CatalogError: On unknown tags, levels or protocol references
        """
        try:
            protocols = {
                name: _parse_protocol(name, body)
                for name, body in data["protocols"].items()
            }
            rules = tuple(
                SelectionRule(
                    protocol=rule["protocol"],
                    triggers=frozenset(rule.get("triggers", [])),
                    min_risk_level=(
                        RiskLevel(rule["min_risk_level"]) if rule.get("min_risk_level") else None
                    ),
                )
                for rule in data.get("selection", [])
            )
            return cls(
                version=str(data["version"]),
                protocols=protocols,
                rules=rules,
                default_protocol=data["default_protocol"],
            )
        except CatalogError:
            raise
        except (KeyError, TypeError, ValueError) as e:
            raise CatalogError(f"Invalid protocol catalog: {e}") from e

    @classmethod
    def load(cls, path: Optional[str] = None) -> "ProtocolCatalog":
        """Load the catalog from ``path`` or the packaged default."""
        try:
            if path:
                with open(path, encoding="utf-8") as fh:
                    data = json.load(fh)
            else:
                text = (
                    resources.files(__package__)
                    .joinpath("data")
                    .joinpath(DEFAULT_CATALOG_RESOURCE)
                    .read_text(encoding="utf-8")
                )
                data = json.loads(text)
        except (OSError, json.JSONDecodeError) as e:
            logger.critical(
                "PROTOCOL_CATALOG_LOAD_FAILED",
                extra={"path": path or DEFAULT_CATALOG_RESOURCE, "error": str(e)}
            )
            raise CatalogError(f"Cannot read protocol catalog: {e}") from e

        catalog = cls.from_dict(data)
        logger.info(
            "PROTOCOL_CATALOG_LOADED",
            extra={
                "version": catalog.version,
                "protocols": sorted(catalog.protocols),
                "rule_count": len(catalog.rules),
            }
        )
        return catalog


def _parse_protocol(name: str, body: Dict[str, Any]) -> InterventionProtocol:
    try:
        actions = tuple(ImmediateAction(tag) for tag in body["immediate_actions"])
    except ValueError as e:
        raise CatalogError(f"Protocol {name!r}: unknown action ({e})") from e
    try:
        sequence = tuple(Channel.parse(tag) for tag in body["contact_sequence"])
    except ValueError as e:
        raise CatalogError(f"Protocol {name!r}: unknown channel ({e})") from e

    if len(set(sequence)) != len(sequence):
        raise CatalogError(f"Protocol {name!r}: contact sequence repeats a channel")

    return InterventionProtocol(
        name=name,
        risk_level=RiskLevel(body["risk_level"]),
        immediate_actions=actions,
        contact_sequence=sequence,
        timeout_minutes=int(body["timeout_minutes"]),
        follow_up_required=bool(body["follow_up_required"]),
    )
