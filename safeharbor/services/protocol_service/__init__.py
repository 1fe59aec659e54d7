"""Protocol Service: catalog of intervention protocols and selection."""

from .catalog import ProtocolCatalog, SelectionRule
from .selector import ProtocolSelector

__all__ = [
    "ProtocolCatalog",
    "SelectionRule",
    "ProtocolSelector",
]
