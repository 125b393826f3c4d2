"""Shared behaviour for the four per-level aggregators.

Each aggregator fetches raw rows from its collaborator and normalizes
them at the boundary into strict RepresentativeRecord instances. Rows
that fail validation are dropped and logged as data-quality violations;
they never reach shared logic. Collaborator failures are raised as
UpstreamUnavailable so the orchestrator can mark the level degraded.
"""

import logging

from pydantic import ValidationError

from repfinder.errors import DataQualityViolation, UpstreamUnavailable
from repfinder.providers.base import PROVIDER_ERRORS
from repfinder.schemas.models import (
    ContactInfo,
    Jurisdiction,
    MailingAddress,
    PostalLocation,
    RepresentativeRecord,
)

logger = logging.getLogger(__name__)


def record_sort_key(record: RepresentativeRecord) -> tuple:
    """Order records by district (districtless offices last), then name."""
    return (record.district is None, record.district or 0, record.name)


def dedupe_records(records: list[RepresentativeRecord]) -> list[RepresentativeRecord]:
    """Drop repeated external ids (first occurrence wins) and sort."""
    seen: set[str] = set()
    unique: list[RepresentativeRecord] = []
    for record in records:
        if record.external_id in seen:
            logger.debug("Duplicate record %s (%s) ignored", record.external_id, record.name)
            continue
        seen.add(record.external_id)
        unique.append(record)
    return sorted(unique, key=record_sort_key)


def parse_district(raw) -> int | None:
    """District number from an int or a numeric string ("07"); None otherwise."""
    if raw is None or raw == "":
        return None
    try:
        return int(str(raw).strip())
    except ValueError:
        return None


class LevelAggregator:
    """Base class: fetch, normalize, deduplicate, sort.

    Subclasses set ``level`` and ``source_name`` and implement
    ``_fetch_rows`` and ``normalize``.

    Args:
        provider: The level's upstream collaborator.
        config: Resolver configuration dict.
    """

    level = ""
    source_name = ""

    def __init__(self, provider, config: dict | None = None):
        self.provider = provider
        self.config = config or {}

    async def fetch(
        self, location: PostalLocation, jurisdiction: Jurisdiction,
    ) -> list[RepresentativeRecord]:
        """Representatives at this level for one location.

        Raises:
            UpstreamUnavailable: the collaborator failed.
        """
        try:
            rows = await self._fetch_rows(location, jurisdiction)
        except UpstreamUnavailable:
            raise
        except PROVIDER_ERRORS as exc:
            logger.warning("%s: fetch failed for %s: %s", self.source_name, location.postal_code, exc)
            raise UpstreamUnavailable(self.source_name, str(exc)) from exc

        records: list[RepresentativeRecord] = []
        for row in rows:
            try:
                record = self.normalize(row, location, jurisdiction)
            except (AttributeError, KeyError, TypeError, ValueError, ValidationError) as exc:
                violation = DataQualityViolation(
                    "row", row.get("id") if isinstance(row, dict) else row, "schema", self.source_name,
                )
                logger.warning("%s: dropping malformed row: %s (%s)", self.source_name, violation, exc)
                continue
            if record is not None:
                records.append(record)

        records = dedupe_records(records)
        logger.debug(
            "%s: %d %s records for %s",
            self.source_name, len(records), self.level, location.postal_code,
        )
        return records

    async def _fetch_rows(self, location: PostalLocation, jurisdiction: Jurisdiction) -> list[dict]:
        raise NotImplementedError

    def normalize(
        self, row: dict, location: PostalLocation, jurisdiction: Jurisdiction,
    ) -> RepresentativeRecord | None:
        raise NotImplementedError


class CuratedLevelAggregator(LevelAggregator):
    """Aggregator backed by a CuratedRegistry keyed by jurisdiction name.

    Curated rows look like::

        {"id": "sac-bos-1", "name": "Phil Serna", "title": "Supervisor",
         "level": "county", "chamber": "board", "district": 1,
         "scope": {"type": "county", "name": "Sacramento County"},
         "phone": "...", "email": "...", "website": "...",
         "office": {"street": "...", "city": "...", "state": "CA", "zip": "..."},
         "term_start": "2023-01-02", "term_end": "2027-01-04"}

    ``level`` and ``scope`` are optional. A row without ``level`` is
    assumed to belong to this aggregator's level but is not tagged.
    """

    def lookup_name(self, location: PostalLocation, jurisdiction: Jurisdiction) -> str | None:
        raise NotImplementedError

    async def _fetch_rows(self, location: PostalLocation, jurisdiction: Jurisdiction) -> list[dict]:
        name = self.lookup_name(location, jurisdiction)
        if not name:
            return []
        rows = await self.provider.fetch(name)
        for row in rows:
            if isinstance(row, dict):
                row.setdefault("jurisdiction", name)
        return rows

    def normalize(
        self, row: dict, location: PostalLocation, jurisdiction: Jurisdiction,
    ) -> RepresentativeRecord | None:
        tag = row.get("level")
        office = row.get("office")
        return RepresentativeRecord(
            external_id=row["id"],
            name=row["name"],
            title=row["title"],
            level=tag or self.level,
            level_tagged=tag is not None,
            party=row.get("party"),
            chamber=row.get("chamber"),
            district=parse_district(row.get("district")),
            jurisdiction_name=row["jurisdiction"],
            jurisdiction_scope=row.get("scope"),
            contact=ContactInfo(
                phone=row.get("phone"),
                email=row.get("email"),
                website=row.get("website"),
                address=MailingAddress(
                    street=office.get("street"),
                    city=office.get("city"),
                    state=office.get("state"),
                    postal_code=office.get("zip"),
                ) if office else None,
            ),
            term_start=row.get("term_start"),
            term_end=row.get("term_end"),
            source=self.source_name,
        )
