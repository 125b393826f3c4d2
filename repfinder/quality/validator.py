"""Data-quality rules applied before anything is served or cached.

CRITICAL findings drop the offending record (the violation is logged with
field, value and rule). WARNING findings keep the record and travel with
the response as metadata.

CRITICAL rules:
  forbidden_value            placeholder text in name / city / county / state
  required                   empty name or county
  district_out_of_range      district outside the legal range for its chamber or level
  district_not_applicable    district number on an office elected at large
  sentinel_coordinate        (0, 0) or the state-centroid placeholder
  coordinates_out_of_bounds  outside the state bounding box
  county_not_authoritative   county name not in the authoritative set
  state_mismatch             location or record outside the governed state

WARNING rules:
  low_confidence, unusual_name_pattern, malformed_phone, malformed_email,
  expired_term, unrecognized_party, placeholder_locality, county_unverified
  (the authoritative county set could not be read)
"""

import logging
import re
from collections.abc import Callable
from datetime import date

from repfinder.config import (
    AT_LARGE_OFFICES,
    DISTRICT_BOUNDS,
    LEVEL_DISTRICT_BOUNDS,
    STATE_BOUNDING_BOX,
    STATE_CENTROID,
    STATE_CODE,
)
from repfinder.errors import UpstreamUnavailable
from repfinder.schemas.models import (
    Jurisdiction,
    PostalLocation,
    RepresentativeRecord,
    ValidationResult,
)

logger = logging.getLogger(__name__)

# Compared case-insensitively after whitespace normalization.
FORBIDDEN_VALUES: frozenset[str] = frozenset({
    "unknown",
    "unknown city",
    "unknown county",
    "unknown state",
    "n/a",
    "na",
    "none",
    "null",
    "undefined",
    "tbd",
    "tba",
    "placeholder",
    "test",
    "xxx",
    "-",
    "?",
})

RECOGNIZED_PARTIES: frozenset[str] = frozenset({
    "democrat",
    "democratic",
    "republican",
    "independent",
    "nonpartisan",
    "no party preference",
    "green",
    "libertarian",
    "american independent",
    "peace and freedom",
})

PHONE_PATTERN = re.compile(
    r"^\+?1?[\s.\-]?\(?\d{3}\)?[\s.\-]?\d{3}[\s.\-]?\d{4}(?:\s*(?:x|ext\.?)\s*\d+)?$",
    re.IGNORECASE,
)
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[A-Za-z]{2,}$")

# Degrees; providers round the placeholder centroid differently.
SENTINEL_TOLERANCE = 0.01


def is_forbidden(value) -> bool:
    """True when a string is blank or a known placeholder (case-insensitive)."""
    if not isinstance(value, str):
        return False
    normalized = " ".join(value.split()).lower()
    return not normalized or normalized in FORBIDDEN_VALUES


def is_sentinel_coordinate(latitude: float, longitude: float) -> bool:
    """True for (0, 0) and the state-centroid placeholder."""
    for lat, lng in ((0.0, 0.0), STATE_CENTROID):
        if abs(latitude - lat) < SENTINEL_TOLERANCE and abs(longitude - lng) < SENTINEL_TOLERANCE:
            return True
    return False


def in_state_bounds(latitude: float, longitude: float) -> bool:
    box = STATE_BOUNDING_BOX
    return (
        box["min_lat"] <= latitude <= box["max_lat"]
        and box["min_lng"] <= longitude <= box["max_lng"]
    )


def _unusual_name(name: str) -> bool:
    """Digits, symbols, or a single token."""
    if any(not (ch.isalpha() or ch in " .'-") for ch in name):
        return True
    return len(name.split()) < 2


def _critical(field: str, value, rule: str, subject: str) -> ValidationResult:
    return ValidationResult(
        field=field,
        value=None if value is None else str(value),
        rule=rule,
        severity="CRITICAL",
        subject=subject,
    )


def _warning(field: str, value, rule: str, subject: str) -> ValidationResult:
    return ValidationResult(
        field=field,
        value=None if value is None else str(value),
        rule=rule,
        severity="WARNING",
        subject=subject,
    )


class DataQualityValidator:
    """Applies the CRITICAL / WARNING rule set to locations, jurisdictions and records.

    Args:
        registry: PlaceRegistry providing the authoritative county set.
        config: Resolver configuration dict (reads "geo").
        today: Callable returning the current date. Inject for deterministic
               term-expiry tests.
    """

    def __init__(self, registry, config: dict | None = None, today: Callable[[], date] | None = None):
        config = config or {}
        self.registry = registry
        self.low_confidence_threshold = (
            config.get("geo", {}).get("low_confidence_threshold", 0.5)
        )
        self._today = today or date.today

    # -- Locations and jurisdictions ------------------------------------------

    def validate_location(self, location: PostalLocation) -> list[ValidationResult]:
        subject = location.postal_code
        results: list[ValidationResult] = []

        results.extend(self._check_county(location.county, subject))
        if location.state != STATE_CODE:
            results.append(_critical("state", location.state, "state_mismatch", subject))

        lat, lng = location.latitude, location.longitude
        if is_sentinel_coordinate(lat, lng):
            results.append(_critical("coordinates", f"{lat},{lng}", "sentinel_coordinate", subject))
        if not in_state_bounds(lat, lng):
            results.append(
                _critical("coordinates", f"{lat},{lng}", "coordinates_out_of_bounds", subject)
            )

        districts = location.districts
        for field, key in (
            ("districts.congressional", ("federal", "house")),
            ("districts.state_senate", ("state", "senate")),
            ("districts.state_assembly", ("state", "assembly")),
        ):
            value = getattr(districts, field.split(".")[1])
            if value is not None and not self._district_in_range(key, value):
                results.append(_critical(field, value, "district_out_of_range", subject))

        if is_forbidden(location.locality):
            results.append(_warning("locality", location.locality, "placeholder_locality", subject))
        if location.confidence < self.low_confidence_threshold:
            results.append(_warning("confidence", location.confidence, "low_confidence", subject))
        return results

    def validate_jurisdiction(self, jurisdiction: Jurisdiction) -> list[ValidationResult]:
        subject = jurisdiction.name or jurisdiction.county
        results = self._check_county(jurisdiction.county, subject)
        if jurisdiction.name is not None and is_forbidden(jurisdiction.name):
            results.append(_critical("name", jurisdiction.name, "forbidden_value", subject))
        return results

    # -- Representative records -----------------------------------------------

    def validate_record(self, record: RepresentativeRecord) -> list[ValidationResult]:
        """All findings for one record (CRITICAL and WARNING)."""
        subject = record.external_id
        results: list[ValidationResult] = []

        if not record.name:
            results.append(_critical("name", record.name, "required", subject))
        elif is_forbidden(record.name):
            results.append(_critical("name", record.name, "forbidden_value", subject))
        elif _unusual_name(record.name):
            results.append(_warning("name", record.name, "unusual_name_pattern", subject))

        if is_forbidden(record.jurisdiction_name):
            results.append(
                _critical("jurisdiction_name", record.jurisdiction_name, "forbidden_value", subject)
            )
        elif record.level == "county":
            results.extend(
                self._check_authoritative("jurisdiction_name", record.jurisdiction_name, subject)
            )

        address = record.contact.address
        if address is not None:
            if is_forbidden(address.city):
                results.append(_critical("contact.address.city", address.city, "forbidden_value", subject))
            if is_forbidden(address.state):
                results.append(_critical("contact.address.state", address.state, "forbidden_value", subject))

        if record.district is not None:
            results.extend(self._check_district(record, subject))

        phone = record.contact.phone
        if phone and not PHONE_PATTERN.match(phone.strip()):
            results.append(_warning("contact.phone", phone, "malformed_phone", subject))
        email = record.contact.email
        if email and not EMAIL_PATTERN.match(email.strip()):
            results.append(_warning("contact.email", email, "malformed_email", subject))

        if record.term_end:
            try:
                if date.fromisoformat(record.term_end[:10]) < self._today():
                    results.append(_warning("term_end", record.term_end, "expired_term", subject))
            except ValueError:
                results.append(_warning("term_end", record.term_end, "unparseable_date", subject))

        if record.party and record.party.strip().lower() not in RECOGNIZED_PARTIES:
            results.append(_warning("party", record.party, "unrecognized_party", subject))

        return results

    def filter_records(
        self, records: list[RepresentativeRecord],
    ) -> tuple[list[RepresentativeRecord], list[ValidationResult]]:
        """Drop records with CRITICAL findings.

        Returns:
            (kept records, all findings). Findings include the CRITICAL
            result that caused each drop so callers can report it.
        """
        kept: list[RepresentativeRecord] = []
        findings: list[ValidationResult] = []
        for record in records:
            results = self.validate_record(record)
            critical = [r for r in results if r.severity == "CRITICAL"]
            if critical:
                for r in critical:
                    logger.warning(
                        "Dropping record %s (%s): field=%s value=%r rule=%s",
                        record.external_id, record.name, r.field, r.value, r.rule,
                    )
                findings.extend(critical)
                continue
            kept.append(record)
            findings.extend(results)
        return kept, findings

    # -- Helpers --------------------------------------------------------------

    def _check_county(self, county: str, subject: str) -> list[ValidationResult]:
        if not county:
            return [_critical("county", county, "required", subject)]
        if is_forbidden(county):
            return [_critical("county", county, "forbidden_value", subject)]
        return self._check_authoritative("county", county, subject)

    def _check_authoritative(self, field: str, county: str, subject: str) -> list[ValidationResult]:
        try:
            known = self.registry.is_county(county)
        except UpstreamUnavailable as exc:
            logger.warning("Cannot verify county %r for %s: %s", county, subject, exc)
            return [_warning(field, county, "county_unverified", subject)]
        if not known:
            return [_critical(field, county, "county_not_authoritative", subject)]
        return []

    @staticmethod
    def _check_district(record: RepresentativeRecord, subject: str) -> list[ValidationResult]:
        key = (record.level, record.chamber)
        if key in AT_LARGE_OFFICES:
            return [_critical("district", record.district, "district_not_applicable", subject)]
        low, high = DISTRICT_BOUNDS.get(key) or LEVEL_DISTRICT_BOUNDS[record.level]
        if not low <= record.district <= high:
            return [_critical("district", record.district, "district_out_of_range", subject)]
        return []

    @staticmethod
    def _district_in_range(key: tuple[str, str], value: int) -> bool:
        low, high = DISTRICT_BOUNDS[key]
        return low <= value <= high
