"""Postal code -> PostalLocation resolution.

The geocoding provider is the primary source. Its answer is only trusted
when it passes the plausibility checks below; otherwise (and whenever the
provider fails outright) the bundled coarse ZIP table is used instead:

  1. exact ZIP entry        -> source "fallback_zip",    confidence 0.6
  2. 3-digit prefix entry   -> source "fallback_prefix", confidence 0.35

Low confidence is never an error. It is logged here and surfaced to the
caller as a WARNING by the DataQualityValidator.
"""

import json
import logging
import re

from repfinder.config import POSTAL_CODE_MAX, POSTAL_CODE_MIN, STATE_CODE, resolve_data_path
from repfinder.errors import InputValidationError, UpstreamUnavailable
from repfinder.paths import ZIP_FALLBACK_PATH
from repfinder.providers.base import PROVIDER_ERRORS
from repfinder.quality.validator import in_state_bounds, is_forbidden, is_sentinel_coordinate
from repfinder.schemas.models import DistrictAssignment, PostalLocation

logger = logging.getLogger(__name__)

POSTAL_CODE_PATTERN = re.compile(r"^(\d{5})(?:-\d{4})?$")

FALLBACK_ZIP_CONFIDENCE = 0.6
FALLBACK_PREFIX_CONFIDENCE = 0.35


def normalize_postal_code(raw) -> str:
    """Validate a postal code and return its 5-digit form.

    Accepts ``NNNNN`` and ``NNNNN-NNNN``. Surrounding whitespace is ignored.

    Raises:
        InputValidationError: malformed, the all-zero placeholder, or
            outside the governed state's ZIP range.
    """
    if not isinstance(raw, str):
        raise InputValidationError(raw, "postal code must be a string")
    match = POSTAL_CODE_PATTERN.match(raw.strip())
    if not match:
        raise InputValidationError(raw, "expected 5 digits or ZIP+4")
    code = match.group(1)
    if code == "00000":
        raise InputValidationError(raw, "all-zero placeholder postal code")
    if not POSTAL_CODE_MIN <= int(code) <= POSTAL_CODE_MAX:
        raise InputValidationError(
            raw, f"outside {STATE_CODE} range {POSTAL_CODE_MIN}-{POSTAL_CODE_MAX}"
        )
    return code


class GeoResolver:
    """Resolves postal codes to coordinates, county and districts.

    Args:
        geocoder: Object with ``async geocode(postal_code) -> dict | None``
            (normally a GeocodioProvider). None means fallback-only.
        registry: PlaceRegistry providing the authoritative county set.
        config: Resolver configuration dict (reads "geo" and "data").
    """

    def __init__(self, geocoder, registry, config: dict | None = None):
        config = config or {}
        self.geocoder = geocoder
        self.registry = registry
        self.low_confidence_threshold = (
            config.get("geo", {}).get("low_confidence_threshold", 0.5)
        )
        self.fallback_path = resolve_data_path(config, "zip_fallback", ZIP_FALLBACK_PATH)
        self._fallback_zips: dict[str, dict] = {}
        self._fallback_prefixes: dict[str, dict] = {}
        self._fallback_loaded = False

    async def resolve(self, postal_code: str) -> PostalLocation:
        """Resolve one postal code.

        Raises:
            InputValidationError: the postal code is malformed.
            UpstreamUnavailable: only if the bundled fallback table itself is
                missing and the provider failed.
        """
        code = normalize_postal_code(postal_code)

        raw = None
        if self.geocoder is not None:
            try:
                raw = await self.geocoder.geocode(code)
            except PROVIDER_ERRORS as exc:
                logger.warning("Geocoder failed for %s, using fallback table: %s", code, exc)
                raw = None

        if raw is not None:
            try:
                location, reason = self._from_provider(code, raw)
            except (TypeError, ValueError) as exc:
                # pydantic.ValidationError is a ValueError
                location, reason = None, f"malformed provider payload: {exc}"
            except UpstreamUnavailable as exc:
                location, reason = None, f"county set unavailable: {exc}"
            if location is not None:
                self._log_confidence(location)
                return location
            logger.warning("Rejected geocoder result for %s: %s", code, reason)

        return self.fallback(code)

    def fallback(self, postal_code: str) -> PostalLocation:
        """Resolve from the bundled ZIP table, bypassing the provider."""
        code = normalize_postal_code(postal_code)
        self._load_fallback()

        entry = self._fallback_zips.get(code)
        if entry is not None:
            location = self._from_table(code, entry, "fallback_zip", FALLBACK_ZIP_CONFIDENCE)
        else:
            entry = self._fallback_prefixes.get(code[:3])
            if entry is None:
                raise UpstreamUnavailable("zip_fallback", f"no entry for {code}")
            location = self._from_table(code, entry, "fallback_prefix", FALLBACK_PREFIX_CONFIDENCE)

        logger.info(
            "Resolved %s from %s: %s (confidence %.2f)",
            code, location.source, location.county, location.confidence,
        )
        self._log_confidence(location)
        return location

    # -- Internals --------------------------------------------------------------

    def _from_provider(self, code: str, raw: dict) -> tuple[PostalLocation | None, str]:
        """Build a location from a provider dict, or explain why it is unusable."""
        lat, lng = raw.get("latitude"), raw.get("longitude")
        if lat is None or lng is None:
            return None, "missing coordinates"
        lat, lng = float(lat), float(lng)
        if is_sentinel_coordinate(lat, lng):
            return None, f"sentinel coordinates ({lat}, {lng})"
        if not in_state_bounds(lat, lng):
            return None, f"coordinates ({lat}, {lng}) outside {STATE_CODE}"

        state = raw.get("state")
        if state and state.strip().upper() != STATE_CODE:
            return None, f"state {state!r} is not {STATE_CODE}"

        raw_county = raw.get("county")
        if is_forbidden(raw_county):
            return None, f"placeholder county {raw_county!r}"
        county = self.registry.normalize_county(raw_county)
        if county is None:
            return None, f"county {raw_county!r} not in authoritative set"

        locality = raw.get("locality")
        if is_forbidden(locality):
            logger.info("Discarding placeholder locality %r for %s", locality, code)
            locality = None

        confidence = min(1.0, max(0.0, float(raw.get("accuracy") or 0.0)))
        return PostalLocation(
            postal_code=code,
            latitude=lat,
            longitude=lng,
            county=county,
            locality=locality,
            state=STATE_CODE,
            districts=DistrictAssignment(
                congressional=raw.get("congressional"),
                state_senate=raw.get("state_senate"),
                state_assembly=raw.get("state_assembly"),
            ),
            confidence=confidence,
            source="geocoder",
        ), ""

    def _from_table(self, code: str, entry: dict, source: str, confidence: float) -> PostalLocation:
        return PostalLocation(
            postal_code=code,
            latitude=entry["latitude"],
            longitude=entry["longitude"],
            county=entry["county"],
            locality=entry.get("locality"),
            state=STATE_CODE,
            districts=DistrictAssignment(
                congressional=entry.get("congressional"),
                state_senate=entry.get("state_senate"),
                state_assembly=entry.get("state_assembly"),
            ),
            confidence=confidence,
            source=source,
        )

    def _load_fallback(self) -> None:
        if self._fallback_loaded:
            return
        try:
            with open(self.fallback_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            logger.error("ZIP fallback table unavailable at %s: %s", self.fallback_path, exc)
            raise UpstreamUnavailable("zip_fallback", str(exc)) from exc
        self._fallback_zips = data.get("zips", {})
        self._fallback_prefixes = data.get("prefixes", {})
        self._fallback_loaded = True
        logger.debug(
            "Loaded ZIP fallback table: %d ZIPs, %d prefixes",
            len(self._fallback_zips), len(self._fallback_prefixes),
        )

    def _log_confidence(self, location: PostalLocation) -> None:
        if location.confidence < self.low_confidence_threshold:
            logger.warning(
                "Low geocoding confidence for %s: %.2f < %.2f (%s)",
                location.postal_code, location.confidence,
                self.low_confidence_threshold, location.source,
            )
