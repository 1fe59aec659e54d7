"""Tests for the hotline catalog and resource directories."""
import json
import pytest
from unittest.mock import MagicMock

from safeharbor.shared.database import RepositoryError
from safeharbor.shared.errors import CatalogError
from safeharbor.shared.models import (
    EmergencyContact,
    Location,
    ProfessionalContact,
    Relationship,
    ServiceType,
)
from safeharbor.shared.utils import configure_pii_salt
from safeharbor.services.resource_directory import (
    HotlineDirectory,
    PostgresResourceDirectory,
    StaticResourceDirectory,
)


@pytest.fixture(autouse=True)
def setup_pii_salt():
    configure_pii_salt("test_salt_that_is_at_least_32_characters_long")


@pytest.fixture
def catalog():
    return HotlineDirectory.load()


LONDON = Location(latitude=51.5, longitude=-0.12, country_code="GB")
DENVER = Location(latitude=39.7, longitude=-104.9, country_code="US")
NOWHERE = Location(latitude=0.0, longitude=0.0, country_code="ZZ")


class TestHotlineDirectory:
    """Tests for the packaged hotline catalog."""

    def test_packaged_catalog_loads(self, catalog):
        assert catalog.version
        assert catalog.default_region == "US"
        assert {"US", "GB", "CA", "IN"} <= set(catalog.regions)

    def test_default_region_includes_988(self, catalog):
        phones = {h.phone for h in catalog.hotlines()}

        assert "988" in phones

    def test_region_lookup(self, catalog):
        names = {h.name for h in catalog.hotlines(LONDON)}

        assert "Samaritans" in names

    def test_unknown_region_falls_back_to_default(self, catalog):
        assert catalog.hotlines(NOWHERE) == catalog.hotlines()

    def test_fallback_region_for_unknown_location(self, catalog):
        assert catalog.hotlines(None, "GB") == catalog.hotlines(LONDON)
        assert catalog.hotlines(NOWHERE, "GB") == catalog.hotlines(LONDON)
        assert catalog.hotlines(DENVER, "GB") == catalog.hotlines()

    def test_uncatalogued_fallback_uses_default_region(self, catalog):
        assert catalog.hotlines(None, "ZZ") == catalog.hotlines()

    def test_emergency_numbers_by_region(self, catalog):
        assert catalog.emergency_services(DENVER)[0].phone == "911"
        assert catalog.emergency_services(LONDON)[0].phone == "999"

    def test_emergency_services_filtered_by_type(self, catalog):
        assert catalog.emergency_services(DENVER, ServiceType.HOSPITAL) == ()

    def test_regions_are_read_only(self, catalog):
        with pytest.raises(TypeError):
            catalog.regions["XX"] = catalog.regions["US"]

    def test_missing_default_region_rejected(self):
        with pytest.raises(CatalogError):
            HotlineDirectory.from_dict({
                "version": "1",
                "default_region": "US",
                "regions": {"GB": {"hotlines": []}},
            })

    def test_malformed_entry_rejected(self):
        with pytest.raises(CatalogError):
            HotlineDirectory.from_dict({
                "version": "1",
                "regions": {"US": {"hotlines": [{"id": "x"}]}},
            })

    def test_load_from_path(self, tmp_path):
        path = tmp_path / "hotlines.json"
        path.write_text(json.dumps({
            "version": "test",
            "default_region": "US",
            "regions": {
                "US": {
                    "hotlines": [{
                        "id": "h1", "name": "Line", "phone": "123",
                        "available_24h": True,
                    }]
                }
            },
        }))

        directory = HotlineDirectory.load(str(path))

        assert directory.version == "test"
        assert directory.hotlines()[0].languages == frozenset({"en"})

    def test_unreadable_path_raises_catalog_error(self, tmp_path):
        with pytest.raises(CatalogError):
            HotlineDirectory.load(str(tmp_path / "missing.json"))


@pytest.mark.asyncio
class TestStaticResourceDirectory:
    """Tests for the in-memory directory."""

    async def test_contacts_sorted_by_priority(self, catalog):
        directory = StaticResourceDirectory(catalog)
        for priority in (3, 1, 2):
            directory.add_emergency_contact("user_1", EmergencyContact(
                id=f"c{priority}", name=f"Contact {priority}", phone="555",
                relationship=Relationship.FAMILY, priority=priority,
            ))

        contacts = await directory.emergency_contacts("user_1")

        assert [c.priority for c in contacts] == [1, 2, 3]

    async def test_unknown_user_has_no_location_or_contacts(self, catalog):
        directory = StaticResourceDirectory(catalog)

        assert await directory.user_location("ghost") is None
        assert await directory.emergency_contacts("ghost") == []
        assert await directory.professional_contacts("ghost") == []

    async def test_hotlines_follow_location(self, catalog):
        directory = StaticResourceDirectory(catalog)

        hotlines = await directory.crisis_hotlines(LONDON)

        assert all(h.country_code == "GB" for h in hotlines)

    async def test_professional_contacts(self, catalog):
        directory = StaticResourceDirectory(catalog)
        directory.add_professional_contact("user_1", ProfessionalContact(
            id="p1", name="Dr. Rivera", phone="555-0100", specialty="psychiatrist",
        ))

        contacts = await directory.professional_contacts("user_1")

        assert contacts[0].name == "Dr. Rivera"

    async def test_default_country_without_location(self, catalog):
        directory = StaticResourceDirectory(catalog, default_country="GB")

        hotlines = await directory.crisis_hotlines()
        services = await directory.emergency_services(NOWHERE)

        assert all(h.country_code == "GB" for h in hotlines)
        assert services
        assert all(s.country_code == "GB" for s in services)

    async def test_uncatalogued_default_country_is_ignored(self, catalog):
        directory = StaticResourceDirectory(catalog, default_country="ZZ")

        assert await directory.crisis_hotlines() == list(catalog.hotlines())


@pytest.mark.asyncio
class TestPostgresResourceDirectory:
    """Tests for the PostgreSQL directory with a mocked connection."""

    @pytest.fixture
    def cursor(self):
        return MagicMock()

    @pytest.fixture
    def directory(self, catalog, cursor):
        conn = MagicMock()
        conn.cursor.return_value.__enter__.return_value = cursor
        manager = MagicMock()
        manager.get_connection.return_value.__enter__.return_value = conn
        return PostgresResourceDirectory(catalog, manager)

    async def test_user_location(self, directory, cursor):
        cursor.fetchall.return_value = [
            {"latitude": 51.5, "longitude": -0.12, "country_code": "GB", "region": "London"}
        ]

        location = await directory.user_location("user_1")

        assert location.country_code == "GB"
        assert cursor.execute.call_args.args[1] == ("user_1",)

    async def test_missing_location_is_none(self, directory, cursor):
        cursor.fetchall.return_value = []

        assert await directory.user_location("user_1") is None

    async def test_location_without_country_uses_default_country(self, catalog, cursor):
        manager = MagicMock()
        conn = manager.get_connection.return_value.__enter__.return_value
        conn.cursor.return_value.__enter__.return_value = cursor
        directory = PostgresResourceDirectory(catalog, manager, default_country="CA")
        cursor.fetchall.return_value = [
            {"latitude": 45.4, "longitude": -75.7, "country_code": None, "region": None}
        ]

        location = await directory.user_location("user_1")

        assert location.country_code == "CA"

    async def test_emergency_contacts(self, directory, cursor):
        cursor.fetchall.return_value = [
            {"id": 1, "name": "Sam", "phone": "555", "relationship": "friend",
             "priority": 1, "verified_at": None},
            {"id": 2, "name": "Alex", "phone": "556", "relationship": "cousin",
             "priority": 2, "verified_at": None},
        ]

        contacts = await directory.emergency_contacts("user_1")

        assert [c.id for c in contacts] == ["1", "2"]
        assert contacts[0].relationship is Relationship.FRIEND
        assert contacts[1].relationship is Relationship.OTHER

    async def test_query_failure_raises_repository_error(self, directory, cursor):
        cursor.execute.side_effect = RuntimeError("connection reset")

        with pytest.raises(RepositoryError):
            await directory.emergency_contacts("user_1")
