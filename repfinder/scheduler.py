"""Per-level refresh scheduling.

Representative data changes on very different rhythms: the federal
delegation turns over at most every two years, city councils more often.
Each level is refreshed on its own cadence:

  federal     7 days
  state      14 days
  county     30 days
  municipal  14 days

First runs are staggered by a per-level offset so the levels never hit
their upstreams at the same moment. ``trigger_emergency`` runs a refresh
immediately (e.g. after a special election) and restarts that level's
cadence.

There is one scheduler per process. ``init_scheduler`` creates and starts
it, ``shutdown_scheduler`` stops it; ``run_due(now)`` is the
deterministic step the background loop calls and tests drive directly.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable

from repfinder.config import GOVERNMENT_LEVELS

logger = logging.getLogger(__name__)

DAY = 86400.0
HOUR = 3600.0

DEFAULT_CADENCE_DAYS: dict[str, float] = {"federal": 7, "state": 14, "county": 30, "municipal": 14}
DEFAULT_STAGGER_HOURS: dict[str, float] = {"federal": 0, "state": 6, "county": 12, "municipal": 18}
DEFAULT_TICK_SECONDS = 60.0

RefreshFn = Callable[[str], Awaitable[dict]]


class RefreshScheduler:
    """Runs ``refresh_fn(level)`` for each level on its cadence.

    Args:
        refresh_fn: Async callable refreshing one level (normally
            ResolutionOrchestrator.refresh).
        config: Resolver configuration dict (reads the "scheduler" section).
        clock: Callable returning wall-clock seconds. Defaults to time.time.
    """

    def __init__(
        self,
        refresh_fn: RefreshFn,
        config: dict | None = None,
        clock: Callable[[], float] | None = None,
    ):
        sched_cfg = (config or {}).get("scheduler", {})
        cadence_days = {**DEFAULT_CADENCE_DAYS, **sched_cfg.get("cadence_days", {})}
        stagger_hours = {**DEFAULT_STAGGER_HOURS, **sched_cfg.get("stagger_hours", {})}

        self.refresh_fn = refresh_fn
        self.tick_seconds = sched_cfg.get("tick_seconds", DEFAULT_TICK_SECONDS)
        self.cadence = {level: cadence_days[level] * DAY for level in GOVERNMENT_LEVELS}
        self.stagger = {level: stagger_hours[level] * HOUR for level in GOVERNMENT_LEVELS}
        self._clock = clock or time.time

        start = self._clock()
        self.next_run: dict[str, float] = {
            level: start + self.stagger[level] for level in GOVERNMENT_LEVELS
        }
        self.last_result: dict[str, dict] = {}
        self._locks = {level: asyncio.Lock() for level in GOVERNMENT_LEVELS}
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_due(self, now: float | None = None) -> list[str]:
        """Refresh every level whose next run is due. Returns the levels run."""
        now = self._clock() if now is None else now
        due = [level for level in GOVERNMENT_LEVELS if now >= self.next_run[level]]
        for level in due:
            await self._run(level, now)
        return due

    async def trigger_emergency(self, level: str | None = None) -> list[str]:
        """Refresh one level (or all of them) right now, outside the cadence."""
        levels = [level] if level else list(GOVERNMENT_LEVELS)
        for lvl in levels:
            if lvl not in self.next_run:
                raise ValueError(f"Unknown government level '{lvl}'")
        now = self._clock()
        logger.warning("Emergency refresh triggered for %s", ", ".join(levels))
        for lvl in levels:
            await self._run(lvl, now)
        return levels

    def start(self) -> None:
        """Start the background loop on the running event loop (idempotent)."""
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name="refresh-scheduler")
        logger.info(
            "Refresh scheduler started (cadence: %s)",
            ", ".join(f"{lvl}={self.cadence[lvl] / DAY:g}d" for lvl in GOVERNMENT_LEVELS),
        )

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Refresh scheduler stopped")

    async def _loop(self) -> None:
        while True:
            await self.run_due()
            await asyncio.sleep(self.tick_seconds)

    async def _run(self, level: str, now: float) -> None:
        lock = self._locks[level]
        if lock.locked():
            logger.info("Refresh of %s already running, skipping", level)
            return
        async with lock:
            try:
                result = await self.refresh_fn(level)
            except Exception:
                # Retried on the next cadence tick
                logger.exception("Refresh job for %s failed", level)
                result = {"level": level, "error": True}
            self.last_result[level] = result
            self.next_run[level] = now + self.cadence[level]
            logger.debug("Next %s refresh at %.0f", level, self.next_run[level])


_scheduler: RefreshScheduler | None = None


def get_scheduler() -> RefreshScheduler | None:
    return _scheduler


def init_scheduler(
    refresh_fn: RefreshFn,
    config: dict | None = None,
    clock: Callable[[], float] | None = None,
    start: bool = True,
) -> RefreshScheduler:
    """Create the process-wide scheduler; returns the existing one if already created."""
    global _scheduler
    if _scheduler is not None:
        logger.warning("Refresh scheduler already initialized; reusing it")
        return _scheduler
    _scheduler = RefreshScheduler(refresh_fn, config=config, clock=clock)
    if start:
        _scheduler.start()
    return _scheduler


async def shutdown_scheduler() -> None:
    global _scheduler
    if _scheduler is None:
        return
    await _scheduler.stop()
    _scheduler = None
