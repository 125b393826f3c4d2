"""Congress.gov API provider for the federal delegation.

Returns raw member rows from the Congress.gov v3 ``member`` endpoints
(requires free API key). Rows are left in the upstream schema; the
federal aggregator normalizes them.
"""

import logging

from repfinder.config import STATE_CODE
from repfinder.providers.base import BaseProvider

logger = logging.getLogger(__name__)


def latest_chamber(member: dict) -> str:
    """Chamber of the member's most recent term ("Senate" or "House of Representatives")."""
    terms = member.get("terms", {})
    items = terms.get("item", []) if isinstance(terms, dict) else terms
    if not items:
        return ""
    latest = max(items, key=lambda t: t.get("startYear") or 0)
    return latest.get("chamber", "")


class CongressGovProvider(BaseProvider):
    """Fetches current senators and House members for the governed state."""

    default_base_url = "https://api.congress.gov/v3"
    default_key_env_var = "CONGRESS_API_KEY"

    def __init__(self, config: dict | None = None):
        super().__init__("congress_gov", config=config)
        src = (config or {}).get("providers", {}).get("congress_gov", {})
        self.congress = str(src.get("congress", "119"))
        if self.api_key:
            self._headers["X-Api-Key"] = self.api_key

    async def fetch_senators(self) -> list[dict]:
        """Current U.S. senators for the governed state."""
        if not self.api_key:
            raise RuntimeError("congress_gov: CONGRESS_API_KEY not set")
        data = await self._get_json(
            f"/member/congress/{self.congress}/{STATE_CODE}",
            params={"currentMember": "true", "limit": 250, "format": "json"},
        )
        members = data.get("members", [])
        senators = [m for m in members if latest_chamber(m) == "Senate"]
        logger.debug("congress_gov: %d senators for %s", len(senators), STATE_CODE)
        return senators

    async def fetch_house_member(self, district: int) -> list[dict]:
        """Current House member(s) for one congressional district."""
        if not self.api_key:
            raise RuntimeError("congress_gov: CONGRESS_API_KEY not set")
        data = await self._get_json(
            f"/member/congress/{self.congress}/{STATE_CODE}/{district}",
            params={"currentMember": "true", "format": "json"},
        )
        return data.get("members", [])
