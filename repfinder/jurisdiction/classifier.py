"""Jurisdiction classification decision table.

Decides whether a postal location lies in an incorporated city, a
census-designated place, or unincorporated county land, and therefore
which government levels apply. The rules (in priority order) are:

  JUR-01  Incorporated registry   -- ZIP served by a registered city (0.95)
  JUR-02  CDP registry            -- ZIP or locality is a census place (0.7)
  JUR-03  Locality heuristics     -- markers / city-name match on the raw
                                     locality guess (0.5 - 0.6)
  JUR-99  Fallback                -- unincorporated area (0.3)

Every rule is evaluated. The first match is the primary classification;
the remaining matches are collected into secondary_rules for
transparency. Classification never raises: when the registries cannot be
read, their rules simply do not match and JUR-99 applies.

Exports:
    CLASSIFICATION_RULES  -- ordered rule ids with human labels
    ClassifierState       -- UNCLASSIFIED -> CLASSIFYING -> CLASSIFIED | FALLBACK;
                             each call walks its own path, see state_of()
    JurisdictionClassifier
"""

import enum
import logging
import re

from repfinder.errors import UpstreamUnavailable
from repfinder.schemas.models import Jurisdiction, PostalLocation

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

CLASSIFICATION_RULES = {
    "JUR-01": "Incorporated city registry",
    "JUR-02": "Census-designated place registry",
    "JUR-03": "Locality heuristics",
    "JUR-99": "Unincorporated fallback",
}

INCORPORATED_LEVELS = ["federal", "state", "county", "municipal"]
UNINCORPORATED_LEVELS = ["federal", "state", "county"]

UNINCORPORATED_MARKERS = re.compile(r"\b(CDP|Unincorporated|County|Rural)\b", re.IGNORECASE)
MUNICIPAL_MARKERS = re.compile(r"^\s*(?:City|Town) of\s+(?P<name>.+?)\s*$", re.IGNORECASE)


class ClassifierState(enum.Enum):
    UNCLASSIFIED = "unclassified"
    CLASSIFYING = "classifying"
    CLASSIFIED = "classified"
    FALLBACK = "fallback"


# ---------------------------------------------------------------------------
# JurisdictionClassifier
# ---------------------------------------------------------------------------

class JurisdictionClassifier:
    """Classifies postal locations using the JUR decision table.

    Constructor args:
        registry: PlaceRegistry (incorporated cities, CDPs, counties)
        config:   Resolver configuration dict (unused sections are ignored)
    """

    def __init__(self, registry, config: dict | None = None):
        self.registry = registry
        self.config = config or {}

    # -- Public API ---------------------------------------------------------

    def classify(self, location: PostalLocation) -> Jurisdiction:
        """Classify one location. Always returns a Jurisdiction.

        The classifier keeps no per-call state; state_of() gives the
        terminal state of a result.
        """
        self._transition(ClassifierState.UNCLASSIFIED, ClassifierState.CLASSIFYING, location.postal_code)

        rule_checks = [
            ("JUR-01", self._safely(self._check_incorporated_registry, location)),
            ("JUR-02", self._safely(self._check_cdp_registry, location)),
            ("JUR-03", self._safely(self._check_locality_heuristics, location)),
        ]
        matches = [(rule_id, result) for rule_id, result in rule_checks if result is not None]

        if not matches:
            jurisdiction = self._fallback(location, ClassifierState.CLASSIFYING)
            logger.debug(
                "Classified %s -> %s (%s) confidence=%.2f",
                location.postal_code, jurisdiction.type, jurisdiction.rule, jurisdiction.confidence,
            )
            return jurisdiction

        # First match is the primary (list is already in priority order)
        primary_rule_id, primary = matches[0]
        primary["secondary_rules"] = [rule_id for rule_id, _ in matches[1:]]
        jurisdiction = Jurisdiction(county=location.county, **primary)
        jurisdiction.description = self.describe(jurisdiction)

        self._transition(ClassifierState.CLASSIFYING, ClassifierState.CLASSIFIED, location.postal_code)
        logger.debug(
            "Classified %s -> %s %r (%s) confidence=%.2f secondary=%s",
            location.postal_code, jurisdiction.type, jurisdiction.name,
            primary_rule_id, jurisdiction.confidence, jurisdiction.secondary_rules,
        )
        return jurisdiction

    def fallback(self, location: PostalLocation) -> Jurisdiction:
        """JUR-99: conservative unincorporated classification."""
        return self._fallback(location, ClassifierState.UNCLASSIFIED)

    @staticmethod
    def state_of(jurisdiction: Jurisdiction) -> ClassifierState:
        """Terminal state of the call that produced a jurisdiction."""
        if jurisdiction.rule == "JUR-99":
            return ClassifierState.FALLBACK
        return ClassifierState.CLASSIFIED

    def _fallback(self, location: PostalLocation, previous: ClassifierState) -> Jurisdiction:
        self._transition(previous, ClassifierState.FALLBACK, location.postal_code)
        jurisdiction = Jurisdiction(
            type="unincorporated_area",
            name=None,
            county=location.county,
            confidence=0.3,
            source="fallback",
            rule="JUR-99",
            rationale=(
                f"No registry or heuristic matched {location.postal_code}; "
                f"assuming unincorporated {location.county}"
            ),
            applicable_levels=list(UNINCORPORATED_LEVELS),
        )
        jurisdiction.description = self.describe(jurisdiction)
        return jurisdiction

    @staticmethod
    def describe(jurisdiction: Jurisdiction) -> str:
        """Plain-language description of who governs the area."""
        county = jurisdiction.county
        if jurisdiction.type == "incorporated_city":
            return (
                f"{jurisdiction.name} is an incorporated city in {county}. "
                f"Residents elect a city council and mayor for municipal services, "
                f"and are also represented by the {county} Board of Supervisors, "
                f"the State Legislature and Congress."
            )
        if jurisdiction.type == "census_designated_place":
            return (
                f"{jurisdiction.name} is a census-designated place in unincorporated "
                f"{county}. It has no city government; local ordinances and services "
                f"come from the {county} Board of Supervisors."
            )
        place = f"{jurisdiction.name} is" if jurisdiction.name else "This area is"
        return (
            f"{place} unincorporated land in {county}. There is no city government; "
            f"the {county} Board of Supervisors is the local governing body."
        )

    # -- Rule implementations -----------------------------------------------

    def _check_incorporated_registry(self, location: PostalLocation) -> dict | None:
        """JUR-01: the ZIP is served by a registered incorporated city."""
        city = self.registry.city_for_zip(location.postal_code)
        if city is None:
            return None
        return {
            "type": "incorporated_city",
            "name": city["name"],
            "confidence": 0.95,
            "source": "incorporated_registry",
            "rule": "JUR-01",
            "rationale": f"ZIP {location.postal_code} is served by the City of {city['name']}",
            "applicable_levels": list(INCORPORATED_LEVELS),
        }

    def _check_cdp_registry(self, location: PostalLocation) -> dict | None:
        """JUR-02: the ZIP or locality is a registered census-designated place."""
        place = self.registry.cdp_for_zip(location.postal_code)
        matched_on = "ZIP"
        if place is None and location.locality:
            place = self.registry.cdp_by_name(location.locality, county=location.county)
            matched_on = "locality"
        if place is None:
            return None
        return {
            "type": "census_designated_place",
            "name": place["name"],
            "confidence": 0.7,
            "source": "cdp_registry",
            "rule": "JUR-02",
            "rationale": (
                f"{matched_on} match on census-designated place {place['name']} "
                f"({place['county']}); CDPs have no municipal government"
            ),
            "applicable_levels": list(UNINCORPORATED_LEVELS),
        }

    def _check_locality_heuristics(self, location: PostalLocation) -> dict | None:
        """JUR-03: infer from the provider's raw locality string.

        Unincorporated markers win over municipal markers; a name match
        against a registered city in the same county is the weakest signal.
        """
        locality = (location.locality or "").strip()
        if not locality:
            return None

        marker = UNINCORPORATED_MARKERS.search(locality)
        if marker:
            return {
                "type": "unincorporated_area",
                "name": locality,
                "confidence": 0.55,
                "source": "inference",
                "rule": "JUR-03",
                "rationale": f"Locality {locality!r} carries unincorporated marker {marker.group(1)!r}",
                "applicable_levels": list(UNINCORPORATED_LEVELS),
            }

        municipal = MUNICIPAL_MARKERS.match(locality)
        if municipal:
            name = municipal.group("name")
            return {
                "type": "incorporated_city",
                "name": name,
                "confidence": 0.6,
                "source": "inference",
                "rule": "JUR-03",
                "rationale": f"Locality {locality!r} names a municipal government",
                "applicable_levels": list(INCORPORATED_LEVELS),
            }

        city = self.registry.city_by_name(locality, county=location.county)
        if city is None:
            city = self.registry.fuzzy_city(locality, county=location.county)
        if city is not None:
            return {
                "type": "incorporated_city",
                "name": city["name"],
                "confidence": 0.5,
                "source": "inference",
                "rule": "JUR-03",
                "rationale": (
                    f"Locality {locality!r} matches registered city {city['name']} "
                    f"in {location.county}"
                ),
                "applicable_levels": list(INCORPORATED_LEVELS),
            }
        return None

    # -- Helpers --------------------------------------------------------------

    def _safely(self, check, location: PostalLocation) -> dict | None:
        try:
            return check(location)
        except UpstreamUnavailable as exc:
            logger.warning("Skipping %s for %s: %s", check.__name__, location.postal_code, exc)
            return None

    @staticmethod
    def _transition(old: ClassifierState, new: ClassifierState, postal_code: str) -> None:
        logger.debug("Classifier %s -> %s (%s)", old.value, new.value, postal_code)
