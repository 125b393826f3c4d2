"""Federal delegation: the state's two U.S. senators and its House member."""

import asyncio
import logging

from repfinder.aggregators.base import LevelAggregator, parse_district
from repfinder.config import STATE_NAME
from repfinder.providers.congress_gov import latest_chamber
from repfinder.schemas.models import ContactInfo, RepresentativeRecord

logger = logging.getLogger(__name__)


def _display_name(member: dict) -> str:
    """Congress.gov lists names as "Last, First M."; show "First M. Last"."""
    raw = member.get("directOrderName") or member.get("name", "")
    if "," in raw and not member.get("directOrderName"):
        last, _, first = raw.partition(",")
        return f"{first.strip()} {last.strip()}"
    return raw


class FederalAggregator(LevelAggregator):
    """Normalizes Congress.gov member rows into federal records."""

    level = "federal"
    source_name = "congress_gov"

    async def _fetch_rows(self, location, jurisdiction) -> list[dict]:
        district = location.districts.congressional
        if district is None:
            logger.warning(
                "No congressional district for %s; returning senators only",
                location.postal_code,
            )
            return await self.provider.fetch_senators()

        senators, house = await asyncio.gather(
            self.provider.fetch_senators(),
            self.provider.fetch_house_member(district),
        )
        return list(senators) + list(house)

    def normalize(self, row, location, jurisdiction) -> RepresentativeRecord:
        is_senate = latest_chamber(row) == "Senate"
        return RepresentativeRecord(
            external_id=row["bioguideId"],
            name=_display_name(row),
            title="U.S. Senator" if is_senate else "U.S. Representative",
            level="federal",
            level_tagged=True,
            party=row.get("partyName"),
            chamber="senate" if is_senate else "house",
            district=None if is_senate else (
                parse_district(row.get("district")) or location.districts.congressional
            ),
            jurisdiction_name=STATE_NAME,
            contact=ContactInfo(
                website=row.get("officialWebsiteUrl") or row.get("url"),
            ),
            source=self.source_name,
        )
