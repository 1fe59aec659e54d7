"""Protocol selection: a pure lookup against the protocol catalog."""
import logging
from typing import Optional

from safeharbor.shared.models import CrisisAssessment, InterventionProtocol
from .catalog import ProtocolCatalog

logger = logging.getLogger(__name__)


class ProtocolSelector:
    """Maps an assessment to an intervention protocol.

    Rules are evaluated in catalog order; the first match wins, else the
    catalog default applies.
    """

    def __init__(self, catalog: Optional[ProtocolCatalog] = None):
        self.catalog = catalog or ProtocolCatalog.load()

    def select(self, assessment: CrisisAssessment) -> InterventionProtocol:
        for rule in self.catalog.rules:
            if rule.matches(assessment.triggers, assessment.risk_level):
                protocol = self.catalog.get(rule.protocol)
                break
        else:
            protocol = self.catalog.default

        logger.debug(
            "PROTOCOL_SELECTED",
            extra={
                "assessment_id": assessment.id,
                "protocol": protocol.name,
                "catalog_version": self.catalog.version,
            }
        )
        return protocol
