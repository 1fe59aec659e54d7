"""Resource Directory: crisis hotlines, contacts, and regional services.

The hotline catalog is versioned static data loaded at process start;
user-specific contacts and location come from the in-memory or
PostgreSQL directory.
"""

from .catalog import HotlineDirectory, RegionResources
from .directory import (
    ResourceDirectory,
    CatalogResourceDirectory,
    StaticResourceDirectory,
    PostgresResourceDirectory,
)

__all__ = [
    "HotlineDirectory",
    "RegionResources",
    "ResourceDirectory",
    "CatalogResourceDirectory",
    "StaticResourceDirectory",
    "PostgresResourceDirectory",
]
