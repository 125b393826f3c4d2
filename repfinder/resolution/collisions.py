"""Cross-level name collision resolution.

Place names are reused across levels: "Riverside" is a city and
"Riverside County" is a county; Los Angeles has both a mayor and a board
of supervisors. Records are grouped by normalized jurisdiction name and a
group that spans more than one level is a collision. Within a collision
each record's level is decided by the discriminator chain:

  1. explicit level tag  -- authoritative; a disagreeing title is only
                            reported, never used to override the tag
  2. title taxonomy      -- TITLE_TAXONOMY, then TITLE_KEYWORDS
  3. jurisdiction scope  -- the upstream scope metadata type
  4. inconclusive        -- AmbiguousClassification; record excluded

Records whose resulting level is not applicable to the jurisdiction are
excluded with a warning.
"""

import logging
from dataclasses import dataclass, field

from repfinder.aggregators.base import dedupe_records
from repfinder.config import GOVERNMENT_LEVELS
from repfinder.errors import AmbiguousClassification
from repfinder.resolution.vocabulary import (
    JURISDICTION_PREFIXES,
    JURISDICTION_SUFFIXES,
    SCOPE_TYPE_LEVELS,
    TITLE_KEYWORDS,
    TITLE_TAXONOMY,
)
from repfinder.schemas.models import RepresentativeRecord, ResolutionWarning

logger = logging.getLogger(__name__)


def normalize_jurisdiction_name(name: str) -> str:
    """Lowercase, collapse whitespace, and strip "City of" / " County" affixes."""
    normalized = " ".join((name or "").split()).lower()
    for prefix in JURISDICTION_PREFIXES:
        if normalized.startswith(prefix):
            normalized = normalized[len(prefix):]
            break
    for suffix in JURISDICTION_SUFFIXES:
        if normalized.endswith(suffix) and normalized != suffix.strip():
            normalized = normalized[: -len(suffix)]
            break
    return normalized.strip()


def title_level(title: str) -> str | None:
    """Government level implied by an office title, if the title is known."""
    normalized = " ".join((title or "").split()).lower()
    if not normalized:
        return None
    if normalized in TITLE_TAXONOMY:
        return TITLE_TAXONOMY[normalized]
    for keyword, level in TITLE_KEYWORDS:
        if keyword in normalized:
            return level
    return None


def scope_level(scope: dict | None) -> str | None:
    """Government level implied by jurisdiction_scope metadata."""
    if not scope:
        return None
    scope_type = str(scope.get("type", "")).strip().lower()
    return SCOPE_TYPE_LEVELS.get(scope_type)


@dataclass
class CollisionOutcome:
    """Result of one resolution pass."""

    records_by_level: dict[str, list[RepresentativeRecord]]
    warnings: list[ResolutionWarning] = field(default_factory=list)
    excluded: list[str] = field(default_factory=list)


class NameCollisionResolver:
    """Assigns every candidate record to exactly one government level."""

    def resolve(
        self,
        records_by_level: dict[str, list[RepresentativeRecord]],
        applicable_levels: list[str],
    ) -> CollisionOutcome:
        """Disambiguate records across levels.

        Args:
            records_by_level: Aggregator output keyed by the level that
                produced each list.
            applicable_levels: Levels that govern the jurisdiction.

        Returns:
            CollisionOutcome with records regrouped by their final level.
        """
        candidates: list[tuple[str, RepresentativeRecord]] = [
            (origin, record)
            for origin in GOVERNMENT_LEVELS
            for record in records_by_level.get(origin, [])
        ]

        groups: dict[str, set[str]] = {}
        for _, record in candidates:
            key = normalize_jurisdiction_name(record.jurisdiction_name)
            groups.setdefault(key, set()).add(record.level)
        colliding = {key for key, levels in groups.items() if len(levels) > 1}
        for key in sorted(colliding):
            logger.debug("Name collision on %r across levels %s", key, sorted(groups[key]))

        outcome = CollisionOutcome(records_by_level={level: [] for level in GOVERNMENT_LEVELS})
        for origin, record in candidates:
            key = normalize_jurisdiction_name(record.jurisdiction_name)
            if key in colliding:
                try:
                    record = self._disambiguate(record, outcome, sorted(groups[key]))
                except AmbiguousClassification as exc:
                    logger.warning("Excluding record: %s", exc)
                    outcome.excluded.append(record.external_id)
                    outcome.warnings.append(ResolutionWarning(
                        code="AMBIGUOUS_LEVEL",
                        message=str(exc),
                        level=origin,
                        subject=record.external_id,
                    ))
                    continue

            if record.level != origin:
                logger.info(
                    "Reassigned %s (%s) from %s to %s",
                    record.external_id, record.name, origin, record.level,
                )
            if record.level not in applicable_levels:
                logger.warning(
                    "Excluding %s (%s): level %s does not apply here",
                    record.external_id, record.name, record.level,
                )
                outcome.excluded.append(record.external_id)
                outcome.warnings.append(ResolutionWarning(
                    code="LEVEL_NOT_APPLICABLE",
                    message=(
                        f"{record.name} ({record.title}) resolved to the {record.level} "
                        f"level, which does not govern this location"
                    ),
                    level=record.level,
                    subject=record.external_id,
                ))
                continue
            outcome.records_by_level[record.level].append(record)

        for level, records in outcome.records_by_level.items():
            outcome.records_by_level[level] = dedupe_records(records)
        return outcome

    def _disambiguate(
        self, record: RepresentativeRecord, outcome: CollisionOutcome, candidates: list[str],
    ) -> RepresentativeRecord:
        implied = title_level(record.title)

        if record.level_tagged:
            if implied is not None and implied != record.level:
                logger.warning(
                    "Level tag %s on %s (%s) disagrees with title %r (implies %s); keeping tag",
                    record.level, record.external_id, record.name, record.title, implied,
                )
                outcome.warnings.append(ResolutionWarning(
                    code="LEVEL_TAG_TITLE_CONFLICT",
                    message=(
                        f"{record.name}: source tags the office as {record.level} "
                        f"but the title {record.title!r} suggests {implied}"
                    ),
                    level=record.level,
                    field="title",
                    subject=record.external_id,
                ))
            return record

        level = implied or scope_level(record.jurisdiction_scope)
        if level is None:
            raise AmbiguousClassification(record.external_id, record.name, candidates)
        if level != record.level:
            return record.model_copy(update={"level": level})
        return record
