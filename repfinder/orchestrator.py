"""Resolution orchestrator: postal code -> AggregateResult.

Pipeline: Validate input -> Location -> Jurisdiction -> Level fan-out ->
Collision resolution -> Data quality -> Cache -> Committees -> Result

Usage:
    orchestrator = build_orchestrator(load_config())
    result = await orchestrator.resolve_representation("95814")
    result = await orchestrator.resolve_representation(
        "95814", ResolutionFlags(include_committees=True),
    )

Only InputValidationError ever propagates out of resolve_representation.
Every upstream failure is converted into a degraded level plus a warning.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from pydantic import ValidationError

from repfinder.aggregators import (
    CountyAggregator,
    FederalAggregator,
    MunicipalAggregator,
    StateAggregator,
)
from repfinder.cache.manager import LEVEL_CATEGORIES, TieredCacheManager
from repfinder.cache.preload import ForegroundGate, PreloadQueue
from repfinder.config import GOVERNMENT_LEVELS, resolve_data_path
from repfinder.errors import ResolutionError, UpstreamUnavailable
from repfinder.geo.resolver import GeoResolver, normalize_postal_code
from repfinder.jurisdiction.classifier import JurisdictionClassifier
from repfinder.jurisdiction.registry import PlaceRegistry
from repfinder.paths import COUNTY_OFFICIALS_PATH, MUNICIPAL_OFFICIALS_PATH
from repfinder.providers.congress_gov import CongressGovProvider
from repfinder.providers.geocodio import GeocodioProvider
from repfinder.providers.openstates import OpenStatesProvider
from repfinder.providers.registries import CommitteeDirectory, CuratedRegistry
from repfinder.quality.validator import DataQualityValidator
from repfinder.resolution.collisions import NameCollisionResolver
from repfinder.schemas.models import (
    AggregateResult,
    CommitteeAssignment,
    Jurisdiction,
    PostalLocation,
    RepresentativeRecord,
    ResolutionWarning,
    ValidationResult,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENCY = 4

DEFAULT_LEVEL_TIMEOUTS: dict[str, float] = {
    "federal": 8.0,
    "state": 8.0,
    "county": 5.0,
    "municipal": 5.0,
}

PRELOAD_PRIORITY: dict[str, int] = {"federal": 0, "state": 1, "county": 2, "municipal": 3}

# Warnings about records that were removed; they cannot be re-derived from
# a cached level list, so they are cached alongside it.
REPLAYED_WARNING_CODES = frozenset({"AMBIGUOUS_LEVEL", "LEVEL_NOT_APPLICABLE", "RECORD_DROPPED"})


@dataclass(frozen=True)
class ResolutionFlags:
    """Per-request options."""

    include_committees: bool = False
    force_refresh: bool = False


@dataclass
class _LevelFetch:
    level: str
    records: list[RepresentativeRecord] = field(default_factory=list)
    stored_warnings: list[ResolutionWarning] = field(default_factory=list)
    from_cache: bool = False
    degraded: bool = False
    warning: ResolutionWarning | None = None
    started_at: float = 0.0


def _finding_to_warning(finding: ValidationResult, level: str) -> ResolutionWarning:
    if finding.severity == "CRITICAL":
        return ResolutionWarning(
            code="RECORD_DROPPED",
            message=(
                f"Record {finding.subject} dropped: {finding.field}={finding.value!r} "
                f"violates {finding.rule}"
            ),
            level=level,
            field=finding.field,
            subject=finding.subject,
        )
    return ResolutionWarning(
        code=finding.rule.upper(),
        message=f"{finding.field}={finding.value!r} flagged by {finding.rule}",
        level=level,
        field=finding.field,
        subject=finding.subject,
    )


def _ordered_warnings(warnings: list[ResolutionWarning]) -> list[ResolutionWarning]:
    """Drop duplicates and sort so repeated resolutions report identically."""
    unique = {w.model_dump_json(): w for w in warnings}
    return sorted(
        unique.values(),
        key=lambda w: (
            GOVERNMENT_LEVELS.index(w.level) if w.level else -1,
            w.code,
            w.subject or "",
            w.message,
        ),
    )


class ResolutionOrchestrator:
    """Coordinates geo resolution, classification, aggregation, and caching.

    Args:
        geo_resolver: GeoResolver.
        classifier: JurisdictionClassifier.
        aggregators: Mapping of level -> LevelAggregator.
        validator: DataQualityValidator.
        cache: TieredCacheManager (owned by this orchestrator).
        committee_directory: Optional CommitteeDirectory for committee data.
        config: Resolver configuration dict (reads "orchestrator", "preload").

    One orchestrator may serve successive event loops (one asyncio.run per
    call); its asyncio primitives follow the running loop. It must not be
    driven from two loops at once.
    """

    def __init__(
        self,
        geo_resolver: GeoResolver,
        classifier: JurisdictionClassifier,
        aggregators: dict,
        validator: DataQualityValidator,
        cache: TieredCacheManager,
        committee_directory: CommitteeDirectory | None = None,
        config: dict | None = None,
    ):
        config = config or {}
        self.geo = geo_resolver
        self.classifier = classifier
        self.aggregators = dict(aggregators)
        self.validator = validator
        self.cache = cache
        self.committee_directory = committee_directory
        self.collisions = NameCollisionResolver()

        orch_cfg = config.get("orchestrator", {})
        self.max_concurrency = orch_cfg.get("max_concurrency", DEFAULT_MAX_CONCURRENCY)
        self.level_timeouts = {**DEFAULT_LEVEL_TIMEOUTS, **orch_cfg.get("level_timeouts", {})}
        self._semaphore: asyncio.Semaphore | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

        self.gate = ForegroundGate()
        preload_cfg = config.get("preload", {})
        self.preload: PreloadQueue | None = None
        if committee_directory is not None and preload_cfg.get("enabled", True):
            self.preload = PreloadQueue(
                self._preload_committees,
                self.gate,
                max_queue=preload_cfg.get("max_queue", 256),
                workers=preload_cfg.get("workers", 1),
            )

    # -- Public API ---------------------------------------------------------

    async def resolve_representation(
        self, postal_code: str, flags: ResolutionFlags | None = None,
    ) -> AggregateResult:
        """Resolve one postal code to its representatives at every applicable level.

        Raises:
            InputValidationError: the postal code is malformed (nothing is cached).
        """
        flags = flags or ResolutionFlags()
        code = normalize_postal_code(postal_code)
        with self.gate.hold():
            result = await self._resolve(
                code,
                include_committees=flags.include_committees,
                force=flags.force_refresh,
            )
        jurisdiction = result.jurisdiction
        logger.info(
            "Resolved %s: %s %r, %s%s",
            code,
            jurisdiction.type if jurisdiction else "unlocated",
            jurisdiction.name if jurisdiction else None,
            ", ".join(f"{lvl}={len(recs)}" for lvl, recs in result.representatives_by_level.items()),
            f" (degraded: {', '.join(result.degraded_levels)})" if result.degraded_levels else "",
        )
        return result

    async def refresh(self, level: str) -> dict:
        """Re-fetch one level for every postal code currently cached at that level.

        Writes go through the cache's freshness fence. A failed re-fetch
        leaves the previous entry in place.

        Returns:
            {"level", "postal_codes", "refreshed", "failed"}
        """
        if level not in LEVEL_CATEGORIES:
            raise ValueError(f"Unknown government level '{level}'")

        codes = self.cache.keys(LEVEL_CATEGORIES[level])
        refreshed = failed = 0
        for code in codes:
            try:
                result = await self._resolve(
                    code, include_committees=False, force=False, refresh_levels=frozenset({level}),
                )
            except ResolutionError as exc:
                failed += 1
                logger.warning("Refresh of %s for %s failed: %s", level, code, exc)
                continue
            if level in result.degraded_levels:
                failed += 1
            else:
                refreshed += 1

        logger.info(
            "Refreshed %s level: %d postal codes, %d refreshed, %d failed",
            level, len(codes), refreshed, failed,
        )
        return {"level": level, "postal_codes": len(codes), "refreshed": refreshed, "failed": failed}

    async def close(self) -> None:
        if self.preload is not None:
            await self.preload.stop()

    # -- Pipeline -----------------------------------------------------------

    async def _resolve(
        self,
        code: str,
        include_committees: bool,
        force: bool,
        refresh_levels: frozenset[str] = frozenset(),
    ) -> AggregateResult:
        warnings: list[ResolutionWarning] = []

        try:
            location = await self._resolve_location(code, force, warnings)
        except UpstreamUnavailable as exc:
            return self._unlocated(code, exc)
        jurisdiction = self._resolve_jurisdiction(location, force)
        levels = list(jurisdiction.applicable_levels)

        if "municipal" not in levels:
            warnings.append(ResolutionWarning(
                code="MUNICIPAL_NOT_APPLICABLE",
                message=(
                    f"No municipal representatives: {jurisdiction.description or jurisdiction.rationale}"
                ),
                level="municipal",
                subject=code,
            ))

        fetches: list[_LevelFetch] = await asyncio.gather(*(
            self._fetch_level(level, location, jurisdiction, bypass=force or level in refresh_levels)
            for level in levels
        ))
        for fetch in fetches:
            if fetch.warning is not None:
                warnings.append(fetch.warning)
            warnings.extend(fetch.stored_warnings)

        outcome = self.collisions.resolve({f.level: f.records for f in fetches}, levels)
        derived: list[ResolutionWarning] = list(outcome.warnings)

        representatives: dict[str, list[RepresentativeRecord]] = {lvl: [] for lvl in GOVERNMENT_LEVELS}
        for level, records in outcome.records_by_level.items():
            kept, findings = self.validator.filter_records(records)
            representatives[level] = kept
            derived.extend(_finding_to_warning(f, level) for f in findings)
        warnings.extend(derived)

        degraded_levels = [f.level for f in fetches if f.degraded]
        for level in levels:
            if level not in degraded_levels and not representatives[level]:
                warnings.append(ResolutionWarning(
                    code="NO_REPRESENTATIVES",
                    message=f"No {level} representatives on file for this location",
                    level=level,
                    subject=code,
                ))

        self._cache_levels(location, jurisdiction, fetches, representatives, derived)

        if include_committees and self.committee_directory is not None:
            await self._attach_committees(representatives)
        else:
            self._schedule_committee_preload(representatives)

        return AggregateResult(
            postal_code=code,
            location=location,
            jurisdiction=jurisdiction,
            representatives_by_level=representatives,
            warnings=_ordered_warnings(warnings),
            degraded_levels=degraded_levels,
            degraded=bool(levels) and len(degraded_levels) == len(levels),
            from_cache={f.level: f.from_cache for f in fetches},
            resolved_at=datetime.now(timezone.utc).isoformat(),
        )

    async def _resolve_location(
        self, code: str, force: bool, warnings: list[ResolutionWarning],
    ) -> PostalLocation:
        location = None
        if not force:
            cached = self.cache.get("location", code)
            if cached is not None:
                try:
                    location = PostalLocation.model_validate(cached)
                except ValidationError as exc:
                    logger.warning("Ignoring unreadable cached location for %s: %s", code, exc)

        if location is None:
            started = self.cache.now()
            location = await self.geo.resolve(code)
            critical = [
                f for f in self.validator.validate_location(location) if f.severity == "CRITICAL"
            ]
            if critical:
                for f in critical:
                    logger.warning(
                        "Location for %s rejected: field=%s value=%r rule=%s",
                        code, f.field, f.value, f.rule,
                    )
                location = self.geo.fallback(code)
            self.cache.put(
                "location", code, location.model_dump(mode="json"),
                fetch_started_at=started,
                tags={f"zip:{code}", f"county:{location.county}"},
            )

        for finding in self.validator.validate_location(location):
            warnings.append(ResolutionWarning(
                code=finding.rule.upper(),
                message=f"Location {finding.field}={finding.value!r} flagged by {finding.rule}",
                field=finding.field,
                subject=code,
            ))
        return location

    def _resolve_jurisdiction(self, location: PostalLocation, force: bool) -> Jurisdiction:
        code = location.postal_code
        if not force:
            cached = self.cache.get("jurisdiction", code)
            if cached is not None:
                try:
                    return Jurisdiction.model_validate(cached)
                except ValidationError as exc:
                    logger.warning("Ignoring unreadable cached jurisdiction for %s: %s", code, exc)

        started = self.cache.now()
        jurisdiction = self.classifier.classify(location)
        critical = [
            f for f in self.validator.validate_jurisdiction(jurisdiction) if f.severity == "CRITICAL"
        ]
        if critical:
            for f in critical:
                logger.warning(
                    "Jurisdiction for %s rejected: field=%s value=%r rule=%s",
                    code, f.field, f.value, f.rule,
                )
            jurisdiction = self.classifier.fallback(location)

        tags = {f"zip:{code}", f"county:{jurisdiction.county}"}
        if jurisdiction.name:
            tags.add(f"place:{jurisdiction.name}")
        self.cache.put(
            "jurisdiction", code, jurisdiction.model_dump(mode="json"),
            fetch_started_at=started, tags=tags,
        )
        return jurisdiction

    async def _fetch_level(
        self, level: str, location: PostalLocation, jurisdiction: Jurisdiction, bypass: bool,
    ) -> _LevelFetch:
        code = location.postal_code
        category = LEVEL_CATEGORIES[level]

        if not bypass:
            cached = self.cache.get(category, code)
            if cached is not None:
                try:
                    records = [RepresentativeRecord.model_validate(r) for r in cached["records"]]
                    stored = [ResolutionWarning.model_validate(w) for w in cached.get("warnings", [])]
                except (KeyError, TypeError, ValidationError) as exc:
                    logger.warning("Ignoring unreadable %s cache entry for %s: %s", category, code, exc)
                else:
                    return _LevelFetch(level, records, stored, from_cache=True)

        aggregator = self.aggregators.get(level)
        if aggregator is None:
            return self._degraded(level, code, "LEVEL_UNAVAILABLE", "no aggregator configured")

        async with self._limiter():
            started = self.cache.now()
            try:
                records = await asyncio.wait_for(
                    aggregator.fetch(location, jurisdiction),
                    timeout=self.level_timeouts[level],
                )
            except asyncio.TimeoutError:
                return self._degraded(
                    level, code, "LEVEL_TIMEOUT",
                    f"timed out after {self.level_timeouts[level]:.1f}s",
                )
            except UpstreamUnavailable as exc:
                return self._degraded(level, code, "LEVEL_UNAVAILABLE", str(exc))
            except Exception as exc:
                logger.exception("Unexpected %s aggregator failure for %s", level, code)
                return self._degraded(level, code, "LEVEL_UNAVAILABLE", f"{type(exc).__name__}: {exc}")

        return _LevelFetch(level, records, started_at=started)

    def _limiter(self) -> asyncio.Semaphore:
        """Level-fetch semaphore for the running loop."""
        loop = asyncio.get_running_loop()
        if self._semaphore is None or loop is not self._loop:
            self._semaphore = asyncio.Semaphore(self.max_concurrency)
            self._loop = loop
        return self._semaphore

    def _degraded(self, level: str, code: str, warning_code: str, detail: str) -> _LevelFetch:
        logger.warning("Level %s degraded for %s: %s", level, code, detail)
        return _LevelFetch(
            level,
            degraded=True,
            warning=ResolutionWarning(
                code=warning_code,
                message=f"{level.capitalize()} representatives unavailable: {detail}",
                level=level,
                subject=code,
            ),
        )

    def _unlocated(self, code: str, exc: UpstreamUnavailable) -> AggregateResult:
        """Every level degraded: neither the geocoder nor the bundled table placed the code."""
        logger.error("Could not locate %s: %s", code, exc)
        return AggregateResult(
            postal_code=code,
            warnings=[ResolutionWarning(
                code="LOCATION_UNAVAILABLE",
                message=f"Postal code could not be located: {exc}",
                subject=code,
            )],
            degraded_levels=list(GOVERNMENT_LEVELS),
            degraded=True,
            from_cache={level: False for level in GOVERNMENT_LEVELS},
            resolved_at=datetime.now(timezone.utc).isoformat(),
        )

    def _cache_levels(
        self,
        location: PostalLocation,
        jurisdiction: Jurisdiction,
        fetches: list[_LevelFetch],
        representatives: dict[str, list[RepresentativeRecord]],
        derived: list[ResolutionWarning],
    ) -> None:
        """Write each freshly fetched level, keyed by the level that fetched it.

        Entries hold the records that survived collision resolution and
        validation (with their final level), plus the warnings about the
        records that did not.
        """
        code = location.postal_code
        origin_of: dict[str, str] = {}
        for fetch in fetches:
            for record in fetch.records:
                origin_of.setdefault(record.external_id, fetch.level)

        survivors = [r for lvl in GOVERNMENT_LEVELS for r in representatives[lvl]]
        for fetch in fetches:
            if fetch.from_cache or fetch.degraded:
                continue
            records = [r for r in survivors if origin_of.get(r.external_id) == fetch.level]
            replayed = [
                w for w in derived
                if w.code in REPLAYED_WARNING_CODES and origin_of.get(w.subject) == fetch.level
            ]
            tags = {f"zip:{code}", f"county:{location.county}"}
            tags.update(f"rep:{r.external_id}" for r in records)
            if fetch.level == "municipal" and jurisdiction.name:
                tags.add(f"place:{jurisdiction.name}")
            self.cache.put(
                LEVEL_CATEGORIES[fetch.level],
                code,
                {
                    "records": [r.model_dump(mode="json") for r in records],
                    "warnings": [w.model_dump(mode="json") for w in replayed],
                },
                fetch_started_at=fetch.started_at,
                tags=tags,
            )

    # -- Committees ---------------------------------------------------------

    async def _committees_for(self, external_id: str) -> list[dict]:
        cached = self.cache.get("committees", external_id)
        if cached is not None:
            return cached
        started = self.cache.now()
        rows = await self.committee_directory.get_committees(external_id)
        self.cache.put(
            "committees", external_id, rows,
            fetch_started_at=started, tags={f"rep:{external_id}"},
        )
        return rows

    async def _attach_committees(self, representatives: dict[str, list[RepresentativeRecord]]) -> None:
        for level, records in representatives.items():
            enriched = []
            for record in records:
                committees = []
                for row in await self._committees_for(record.external_id):
                    try:
                        committees.append(CommitteeAssignment.model_validate(row))
                    except ValidationError as exc:
                        logger.warning("Skipping malformed committee row for %s: %s", record.external_id, exc)
                enriched.append(record.model_copy(update={"committees": committees}))
            representatives[level] = enriched

    def _schedule_committee_preload(self, representatives: dict[str, list[RepresentativeRecord]]) -> None:
        if self.preload is None:
            return
        self.preload.start()
        for level, records in representatives.items():
            for record in records:
                if self.cache.peek("committees", record.external_id) is None:
                    self.preload.submit(
                        PRELOAD_PRIORITY[level], f"committees:{record.external_id}", record.external_id,
                    )

    async def _preload_committees(self, external_id: str) -> None:
        await self._committees_for(external_id)


def build_orchestrator(config: dict, clock=None) -> ResolutionOrchestrator:
    """Wire the production collaborators from configuration."""
    registry = PlaceRegistry(config)
    county_registry = CuratedRegistry(
        "county_registry", resolve_data_path(config, "county_officials", COUNTY_OFFICIALS_PATH),
    )
    municipal_registry = CuratedRegistry(
        "municipal_registry", resolve_data_path(config, "municipal_officials", MUNICIPAL_OFFICIALS_PATH),
    )
    return ResolutionOrchestrator(
        geo_resolver=GeoResolver(GeocodioProvider(config), registry, config),
        classifier=JurisdictionClassifier(registry, config),
        aggregators={
            "federal": FederalAggregator(CongressGovProvider(config), config),
            "state": StateAggregator(OpenStatesProvider(config), config),
            "county": CountyAggregator(county_registry, config),
            "municipal": MunicipalAggregator(municipal_registry, config),
        },
        validator=DataQualityValidator(registry, config),
        cache=TieredCacheManager(config, clock=clock),
        committee_directory=CommitteeDirectory(config),
        config=config,
    )
