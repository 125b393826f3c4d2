"""Place registries with lazy loading and tiered name matching.

Holds the three bundled reference datasets the engine reasons about:

  - california_counties.json      the 58 authoritative county names
  - incorporated_cities.json      cities with a municipal government
  - census_designated_places.json unincorporated communities (CDPs)

Each dataset is read on the first lookup that needs it. A missing or
corrupt file raises UpstreamUnavailable from those lookups only. City
name lookup uses the same tiers everywhere:

  Tier 1: Exact match on official name (case-insensitive)
  Tier 2: Fuzzy fallback using rapidfuzz WRatio, restricted to one county

Usage:
    registry = PlaceRegistry({})
    registry.is_county("Sacramento County")      # True
    registry.normalize_county("sacramento")      # "Sacramento County"
    registry.city_for_zip("95814")               # {"name": "Sacramento", ...}
    registry.cdp_for_zip("93241")                # {"name": "Lamont", ...}
"""

import json
import logging
from pathlib import Path

from rapidfuzz import fuzz, process

from repfinder.config import resolve_data_path
from repfinder.errors import UpstreamUnavailable
from repfinder.paths import CENSUS_PLACES_PATH, COUNTIES_PATH, INCORPORATED_CITIES_PATH

logger = logging.getLogger(__name__)

COUNTY_SUFFIX = " County"


def _read_json(path: Path, label: str) -> dict:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError as exc:
        logger.error("%s not found at %s", label, path)
        raise UpstreamUnavailable(label, "reference dataset missing") from exc
    except json.JSONDecodeError as exc:
        logger.error("%s at %s contains invalid JSON: %s", label, path, exc)
        raise UpstreamUnavailable(label, "reference dataset corrupt") from exc


class PlaceRegistry:
    """Lazy-loaded county, city and census-designated-place reference data.

    Attributes:
        counties_path: Authoritative county list.
        cities_path: Incorporated-city registry.
        places_path: Census-designated-place registry.
    """

    def __init__(self, config: dict | None = None) -> None:
        """Initialize the registry.

        Args:
            config: Resolver configuration dict. Reads dataset paths from
                config["data"] and the fuzzy cutoff from
                config["jurisdiction"]["fuzzy_score_cutoff"].
        """
        config = config or {}
        self.counties_path = resolve_data_path(config, "counties", COUNTIES_PATH)
        self.cities_path = resolve_data_path(config, "incorporated_cities", INCORPORATED_CITIES_PATH)
        self.places_path = resolve_data_path(config, "census_designated_places", CENSUS_PLACES_PATH)
        self.fuzzy_score_cutoff = config.get("jurisdiction", {}).get("fuzzy_score_cutoff", 90)

        self._counties: dict[str, dict] | None = None
        self._cities: list[dict] | None = None
        self._places: list[dict] | None = None
        self._city_by_zip: dict[str, dict] = {}
        self._place_by_zip: dict[str, dict] = {}

    # Datasets load on first use, each independently of the others.

    def _load_counties(self) -> dict[str, dict]:
        if self._counties is None:
            data = _read_json(self.counties_path, "county registry")
            self._counties = {c["name"]: c for c in data.get("counties", [])}
            logger.info("Loaded county registry: %d counties", len(self._counties))
        return self._counties

    def _load_cities(self) -> list[dict]:
        if self._cities is None:
            cities = _read_json(self.cities_path, "incorporated city registry").get("cities", [])
            # A ZIP can straddle two cities; the first listed claims it.
            for city in cities:
                for code in city.get("zip_codes", []):
                    self._city_by_zip.setdefault(code, city)
            self._cities = cities
            logger.info("Loaded incorporated city registry: %d cities", len(cities))
        return self._cities

    def _load_places(self) -> list[dict]:
        if self._places is None:
            places = _read_json(self.places_path, "census place registry").get("places", [])
            for place in places:
                for code in place.get("zip_codes", []):
                    self._place_by_zip.setdefault(code, place)
            self._places = places
            logger.info("Loaded census place registry: %d places", len(places))
        return self._places

    # -- Counties -------------------------------------------------------------

    def counties(self) -> frozenset[str]:
        """Authoritative county names, each including the " County" suffix."""
        return frozenset(self._load_counties())

    def is_county(self, name: str | None) -> bool:
        """Exact (case- and suffix-sensitive) membership in the county set."""
        return bool(name) and name in self._load_counties()

    def normalize_county(self, name: str | None) -> str | None:
        """Map a provider county string onto its authoritative name.

        Accepts a missing suffix and any casing ("sacramento",
        "SACRAMENTO COUNTY"). Returns None when nothing matches.
        """
        counties = self._load_counties()
        if not name or not name.strip():
            return None
        cleaned = " ".join(name.split())
        if cleaned in counties:
            return cleaned
        lowered = cleaned.lower()
        if not lowered.endswith(COUNTY_SUFFIX.lower()):
            lowered = f"{lowered}{COUNTY_SUFFIX.lower()}"
        for official in counties:
            if official.lower() == lowered:
                return official
        return None

    def county_info(self, name: str) -> dict | None:
        entry = self._load_counties().get(name)
        return dict(entry) if entry else None

    # -- Incorporated cities --------------------------------------------------

    def city_for_zip(self, postal_code: str) -> dict | None:
        """Incorporated city that serves a ZIP code, if registered."""
        self._load_cities()
        city = self._city_by_zip.get(postal_code)
        return dict(city) if city else None

    def city_by_name(self, name: str, county: str | None = None) -> dict | None:
        """Tier 1: exact case-insensitive match, optionally within one county."""
        cities = self._load_cities()
        q = " ".join((name or "").split()).lower()
        if not q:
            return None
        for city in cities:
            if city["name"].lower() == q and (county is None or city["county"] == county):
                return dict(city)
        return None

    def fuzzy_city(self, name: str, county: str | None = None) -> dict | None:
        """Tier 2: closest registered city above the configured score cutoff.

        Returns the city dict with ``_match_score`` and ``_matched_name``
        added, or None.
        """
        cities = self._load_cities()
        q = " ".join((name or "").split()).lower()
        if not q:
            return None

        candidates = [c for c in cities if county is None or c["county"] == county]
        if not candidates:
            return None

        result = process.extractOne(
            q,
            [c["name"].lower() for c in candidates],
            scorer=fuzz.WRatio,
            score_cutoff=self.fuzzy_score_cutoff,
        )
        if result is None:
            logger.debug("No fuzzy city match for '%s' in %s", name, county or "any county")
            return None

        matched_name, score, idx = result
        city = candidates[idx]
        logger.debug("Fuzzy city match: '%s' -> %s (%.0f%%)", name, city["name"], score)
        return {**city, "_match_score": score, "_matched_name": matched_name}

    def cities(self) -> list[dict]:
        return [dict(c) for c in self._load_cities()]

    # -- Census-designated places ---------------------------------------------

    def cdp_for_zip(self, postal_code: str) -> dict | None:
        """Census-designated place that a ZIP code is assigned to, if any."""
        self._load_places()
        place = self._place_by_zip.get(postal_code)
        return dict(place) if place else None

    def cdp_by_name(self, name: str, county: str | None = None) -> dict | None:
        places = self._load_places()
        q = " ".join((name or "").split()).lower()
        if not q:
            return None
        for place in places:
            if place["name"].lower() == q and (county is None or place["county"] == county):
                return dict(place)
        return None
