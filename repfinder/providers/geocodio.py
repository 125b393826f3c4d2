"""Geocodio geocoding provider.

Looks up a postal code and returns its centroid, county, locality and
legislative districts (``fields=cd,stateleg``). The response is flattened
into a plain dict; judging whether the values are usable is the
GeoResolver's job, not this client's.
"""

import logging

from repfinder.providers.base import BaseProvider

logger = logging.getLogger(__name__)


def _first_district(entries) -> int | None:
    """Pull the first district number out of a Geocodio district list."""
    if not entries:
        return None
    raw = entries[0].get("district_number")
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


class GeocodioProvider(BaseProvider):
    """Geocodes postal codes against the Geocodio API (requires an API key)."""

    default_base_url = "https://api.geocod.io/v1.7"
    default_key_env_var = "GEOCODIO_API_KEY"

    def __init__(self, config: dict | None = None):
        super().__init__("geocodio", config=config)

    async def geocode(self, postal_code: str) -> dict | None:
        """Geocode one postal code.

        Returns:
            Flat dict with keys latitude, longitude, county, locality, state,
            accuracy, congressional, state_senate, state_assembly; or None
            when the provider has no match.

        Raises:
            RuntimeError: API key not configured.
            aiohttp.ClientError / CircuitOpenError: transport failures.
        """
        if not self.api_key:
            raise RuntimeError("geocodio: GEOCODIO_API_KEY not set")

        data = await self._get_json(
            "/geocode",
            params={"q": postal_code, "fields": "cd,stateleg", "api_key": self.api_key},
        )
        results = data.get("results") or []
        if not results:
            logger.info("geocodio: no results for %s", postal_code)
            return None

        best = results[0]
        components = best.get("address_components", {})
        location = best.get("location", {})
        fields = best.get("fields", {})
        stateleg = fields.get("state_legislative_districts", {})

        return {
            "latitude": location.get("lat"),
            "longitude": location.get("lng"),
            "county": components.get("county"),
            "locality": components.get("city"),
            "state": components.get("state"),
            "accuracy": best.get("accuracy", 0.0),
            "congressional": _first_district(fields.get("congressional_districts")),
            "state_senate": _first_district(stateleg.get("senate")),
            "state_assembly": _first_district(stateleg.get("house")),
        }
