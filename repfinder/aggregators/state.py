"""State legislature: one state senator and one assembly member per location."""

import logging
import re

from repfinder.aggregators.base import LevelAggregator, parse_district
from repfinder.config import STATE_NAME
from repfinder.schemas.models import ContactInfo, MailingAddress, RepresentativeRecord

logger = logging.getLogger(__name__)

CHAMBERS = {
    "upper": ("senate", "State Senator"),
    "lower": ("assembly", "Assembly Member"),
}

# "1021 O Street, Suite 7110; Sacramento, CA 95814"
ADDRESS_PATTERN = re.compile(
    r"^(?P<street>.+?)[;\n]\s*(?P<city>[^,]+),\s*(?P<state>[A-Z]{2})\s+(?P<zip>\d{5}(?:-\d{4})?)\s*$"
)


def parse_address(raw: str | None) -> MailingAddress | None:
    """Split an Open States one-line office address; None if it does not parse."""
    if not raw:
        return None
    match = ADDRESS_PATTERN.match(raw.strip())
    if not match:
        return MailingAddress(street=raw.strip())
    return MailingAddress(
        street=match.group("street").strip(),
        city=match.group("city").strip(),
        state=match.group("state"),
        postal_code=match.group("zip"),
    )


def _capitol_office(offices: list[dict]) -> dict:
    for office in offices or []:
        if office.get("classification") == "capitol":
            return office
    return (offices or [{}])[0]


class StateAggregator(LevelAggregator):
    """Normalizes Open States people.geo rows into state records."""

    level = "state"
    source_name = "openstates"

    async def _fetch_rows(self, location, jurisdiction) -> list[dict]:
        return await self.provider.fetch_legislators(location.latitude, location.longitude)

    def normalize(self, row, location, jurisdiction) -> RepresentativeRecord | None:
        role = row.get("current_role") or {}
        classification = role.get("org_classification")
        if classification not in CHAMBERS:
            logger.debug("openstates: skipping %s with role %r", row.get("id"), classification)
            return None
        chamber, title = CHAMBERS[classification]

        office = _capitol_office(row.get("offices"))
        links = row.get("links") or []
        return RepresentativeRecord(
            external_id=row["id"],
            name=row["name"],
            title=title,
            level="state",
            level_tagged=True,
            party=row.get("party"),
            chamber=chamber,
            district=parse_district(role.get("district")),
            jurisdiction_name=(row.get("jurisdiction") or {}).get("name") or STATE_NAME,
            contact=ContactInfo(
                phone=office.get("voice"),
                email=row.get("email") or None,
                website=links[0].get("url") if links else row.get("openstates_url"),
                address=parse_address(office.get("address")),
            ),
            source=self.source_name,
        )
