"""Open States API provider for state legislators.

Uses the v3 ``/people.geo`` endpoint, which resolves coordinates to the
legislators whose districts contain them. Rows are returned in the
upstream schema for the state aggregator to normalize.
"""

import logging

from repfinder.providers.base import BaseProvider

logger = logging.getLogger(__name__)


class OpenStatesProvider(BaseProvider):
    """Fetches state senators and assembly members by coordinates."""

    default_base_url = "https://v3.openstates.org"
    default_key_env_var = "OPENSTATES_API_KEY"

    def __init__(self, config: dict | None = None):
        super().__init__("openstates", config=config)
        if self.api_key:
            self._headers["X-API-KEY"] = self.api_key

    async def fetch_legislators(self, latitude: float, longitude: float) -> list[dict]:
        """Legislators whose districts contain the point."""
        if not self.api_key:
            raise RuntimeError("openstates: OPENSTATES_API_KEY not set")
        data = await self._get_json(
            "/people.geo",
            params={"lat": latitude, "lng": longitude, "include": "offices"},
        )
        results = data.get("results", [])
        # people.geo also returns federal members; keep the state legislature only
        state_rows = [
            r for r in results
            if (r.get("current_role") or {}).get("org_classification") in ("upper", "lower")
            and (r.get("jurisdiction") or {}).get("classification", "state") == "state"
        ]
        logger.debug(
            "openstates: %d of %d people are state legislators at (%.4f, %.4f)",
            len(state_rows), len(results), latitude, longitude,
        )
        return state_rows
