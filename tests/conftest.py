"""Shared fakes and fixtures for the resolution engine tests.

HTTP collaborators are replaced by in-memory fakes that count calls; the
place registry and curated registries load the bundled data files, so
the tests exercise the real reference data.
"""

import asyncio
from datetime import date

import pytest

from repfinder.aggregators import (
    CountyAggregator,
    FederalAggregator,
    MunicipalAggregator,
    StateAggregator,
)
from repfinder.cache.manager import TieredCacheManager
from repfinder.geo.resolver import GeoResolver
from repfinder.jurisdiction.classifier import JurisdictionClassifier
from repfinder.jurisdiction.registry import PlaceRegistry
from repfinder.orchestrator import ResolutionOrchestrator
from repfinder.paths import COUNTY_OFFICIALS_PATH, MUNICIPAL_OFFICIALS_PATH
from repfinder.providers.registries import CommitteeDirectory, CuratedRegistry
from repfinder.quality.validator import DataQualityValidator
from repfinder.schemas.models import DistrictAssignment, Jurisdiction, PostalLocation


class MockClock:
    """Deterministic clock. Zero real sleeps."""

    def __init__(self, start: float = 1_000_000.0):
        self._now = start

    def __call__(self) -> float:
        return self._now

    def advance(self, seconds: float) -> None:
        self._now += seconds


# ── Upstream payloads ──

GEOCODER_RESULTS = {
    "95814": {
        "latitude": 38.5804, "longitude": -121.4922, "county": "Sacramento County",
        "locality": "Sacramento", "state": "CA", "accuracy": 1.0,
        "congressional": 7, "state_senate": 8, "state_assembly": 7,
    },
    "95825": {
        "latitude": 38.5910, "longitude": -121.4055, "county": "Sacramento",
        "locality": "Sacramento", "state": "CA", "accuracy": 0.9,
        "congressional": 6, "state_senate": 8, "state_assembly": 7,
    },
    "93241": {
        "latitude": 35.2597, "longitude": -118.9143, "county": "Kern County",
        "locality": "Lamont", "state": "CA", "accuracy": 0.9,
        "congressional": 22, "state_senate": 16, "state_assembly": 35,
    },
    "92501": {
        "latitude": 33.9806, "longitude": -117.3755, "county": "Riverside County",
        "locality": "Riverside", "state": "CA", "accuracy": 1.0,
        "congressional": 39, "state_senate": 31, "state_assembly": 58,
    },
}

SENATORS = [
    {
        "bioguideId": "P000145",
        "name": "Padilla, Alex",
        "partyName": "Democratic",
        "state": "California",
        "terms": {"item": [{"chamber": "Senate", "startYear": 2021}]},
        "url": "https://api.congress.gov/v3/member/P000145",
    },
    {
        "bioguideId": "S001150",
        "name": "Schiff, Adam B.",
        "partyName": "Democratic",
        "state": "California",
        "terms": {"item": [
            {"chamber": "House of Representatives", "startYear": 2001},
            {"chamber": "Senate", "startYear": 2024},
        ]},
        "url": "https://api.congress.gov/v3/member/S001150",
    },
]

HOUSE_MEMBERS = {
    7: [{
        "bioguideId": "M001163",
        "name": "Matsui, Doris O.",
        "partyName": "Democratic",
        "state": "California",
        "district": 7,
        "terms": {"item": [{"chamber": "House of Representatives", "startYear": 2005}]},
    }],
    22: [{
        "bioguideId": "V000129",
        "name": "Valadao, David G.",
        "partyName": "Republican",
        "state": "California",
        "district": 22,
        "terms": {"item": [{"chamber": "House of Representatives", "startYear": 2013}]},
    }],
    39: [{
        "bioguideId": "T000472",
        "name": "Takano, Mark",
        "partyName": "Democratic",
        "state": "California",
        "district": 39,
        "terms": {"item": [{"chamber": "House of Representatives", "startYear": 2013}]},
    }],
}


def openstates_person(person_id, name, classification, district, party="Democratic"):
    return {
        "id": person_id,
        "name": name,
        "party": party,
        "current_role": {"org_classification": classification, "district": str(district)},
        "jurisdiction": {"name": "California", "classification": "state"},
        "offices": [
            {"classification": "district", "voice": "916-555-0100", "address": "915 L Street; Sacramento, CA 95814"},
            {
                "classification": "capitol",
                "voice": "916-651-4008",
                "address": "1021 O Street, Suite 7110; Sacramento, CA 95814",
            },
        ],
        "email": f"{person_id.split('/')[-1]}@legislature.ca.gov",
        "links": [{"url": f"https://example.ca.gov/{district}"}],
    }


STATE_LEGISLATORS = [
    openstates_person("ocd-person/ashby", "Angelique Ashby", "upper", 8),
    openstates_person("ocd-person/krell", "Maggy Krell", "lower", 7),
]


# ── Fake collaborators ──

class FakeGeocoder:
    """Geocoder returning canned payloads; ``fail`` makes every call raise."""

    source_name = "geocodio"

    def __init__(self, results=None, fail: Exception | None = None):
        self.results = dict(GEOCODER_RESULTS if results is None else results)
        self.fail = fail
        self.calls = 0

    async def geocode(self, postal_code):
        self.calls += 1
        if self.fail is not None:
            raise self.fail
        return self.results.get(postal_code)


class FakeCongress:
    source_name = "congress_gov"

    def __init__(self, fail: Exception | None = None):
        self.fail = fail
        self.calls = 0

    async def fetch_senators(self):
        self.calls += 1
        if self.fail is not None:
            raise self.fail
        return [dict(m) for m in SENATORS]

    async def fetch_house_member(self, district):
        self.calls += 1
        if self.fail is not None:
            raise self.fail
        return [dict(m) for m in HOUSE_MEMBERS.get(district, [])]


class FakeOpenStates:
    source_name = "openstates"

    def __init__(self, rows=None, fail: Exception | None = None):
        self.rows = STATE_LEGISLATORS if rows is None else rows
        self.fail = fail
        self.calls = 0

    async def fetch_legislators(self, latitude, longitude):
        self.calls += 1
        if self.fail is not None:
            raise self.fail
        return [dict(r) for r in self.rows]


class CountingRegistry(CuratedRegistry):
    """Bundled curated registry that counts fetches and can be slowed down."""

    def __init__(self, source_name, data_path, delay: float = 0.0):
        super().__init__(source_name, data_path)
        self.delay = delay
        self.calls = 0

    async def fetch(self, jurisdiction_name):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        return await super().fetch(jurisdiction_name)


class StaticRegistry:
    """Curated registry backed by an in-memory dict."""

    def __init__(self, source_name, entries):
        self.source_name = source_name
        self.entries = entries
        self.calls = 0

    async def fetch(self, jurisdiction_name):
        self.calls += 1
        return [dict(row) if isinstance(row, dict) else row for row in self.entries.get(jurisdiction_name, [])]


# ── Fixtures ──

@pytest.fixture
def registry():
    return PlaceRegistry({})


@pytest.fixture
def clock():
    return MockClock()


@pytest.fixture
def validator(registry):
    return DataQualityValidator(registry, {}, today=lambda: date(2026, 10, 19))


def make_location(postal_code="95814", county="Sacramento County", locality="Sacramento", **overrides):
    fields = {
        "postal_code": postal_code,
        "latitude": 38.5804,
        "longitude": -121.4922,
        "county": county,
        "locality": locality,
        "districts": DistrictAssignment(congressional=7, state_senate=8, state_assembly=7),
        "confidence": 1.0,
        "source": "geocoder",
    }
    fields.update(overrides)
    return PostalLocation(**fields)


def make_jurisdiction(type_="incorporated_city", name="Sacramento", county="Sacramento County"):
    incorporated = type_ == "incorporated_city"
    return Jurisdiction(
        type=type_,
        name=name,
        county=county,
        confidence=0.95 if incorporated else 0.7,
        source="incorporated_registry" if incorporated else "cdp_registry",
        rule="JUR-01" if incorporated else "JUR-02",
        rationale="test",
        applicable_levels=(
            ["federal", "state", "county", "municipal"] if incorporated
            else ["federal", "state", "county"]
        ),
    )


class Harness:
    """An orchestrator wired to fakes, with handles on every collaborator."""

    def __init__(
        self,
        config=None,
        geocoder=None,
        congress=None,
        openstates=None,
        county_registry=None,
        municipal_registry=None,
        committee_directory=None,
        clock=None,
    ):
        self.config = {"preload": {"enabled": False}, **(config or {})}
        self.clock = clock or MockClock()
        self.registry = PlaceRegistry(self.config)
        self.geocoder = geocoder or FakeGeocoder()
        self.congress = congress or FakeCongress()
        self.openstates = openstates or FakeOpenStates()
        self.county_registry = county_registry or CountingRegistry("county_registry", COUNTY_OFFICIALS_PATH)
        self.municipal_registry = municipal_registry or CountingRegistry(
            "municipal_registry", MUNICIPAL_OFFICIALS_PATH,
        )
        self.orchestrator = ResolutionOrchestrator(
            geo_resolver=GeoResolver(self.geocoder, self.registry, self.config),
            classifier=JurisdictionClassifier(self.registry, self.config),
            aggregators={
                "federal": FederalAggregator(self.congress, self.config),
                "state": StateAggregator(self.openstates, self.config),
                "county": CountyAggregator(self.county_registry, self.config),
                "municipal": MunicipalAggregator(self.municipal_registry, self.config),
            },
            validator=DataQualityValidator(self.registry, self.config, today=lambda: date(2026, 10, 19)),
            cache=TieredCacheManager(self.config, clock=self.clock),
            committee_directory=committee_directory,
            config=self.config,
        )

    @property
    def upstream_calls(self) -> int:
        return (
            self.geocoder.calls
            + self.congress.calls
            + self.openstates.calls
            + self.county_registry.calls
            + self.municipal_registry.calls
        )


@pytest.fixture
def harness():
    return Harness()


@pytest.fixture
def committee_directory():
    return CommitteeDirectory({})
