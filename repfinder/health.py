"""Health check for resolution collaborators.

Reports UP / DOWN / DEGRADED per collaborator. HTTP providers are probed
with a minimal request; curated registries are checked by loading them.
A provider that is down but has a local fallback (the geocoder falls
back to the bundled ZIP table) reports DEGRADED rather than DOWN. Used
by the --health-check CLI command.
"""

import logging
import time

import aiohttp

from repfinder.errors import UpstreamUnavailable
from repfinder.providers.base import USER_AGENT
from repfinder.providers.circuit_breaker import CircuitState

logger = logging.getLogger(__name__)

# Probe timeout: quick check, not a full resolution
DEFAULT_PROBE_TIMEOUT = 10

# Providers whose outage the engine can absorb with local data.
_HAS_FALLBACK = {"geocodio"}


class HealthChecker:
    """Report the status of every collaborator the orchestrator uses.

    Args:
        orchestrator: ResolutionOrchestrator whose collaborators are checked.
        config: Resolver configuration dict.
    """

    PROBES = {
        "geocodio": {"path": "/geocode", "params": {"q": "95814"}, "key_param": "api_key"},
        "congress_gov": {"path": "/member", "params": {"limit": 1, "format": "json"}},
        "openstates": {"path": "/jurisdictions", "params": {"classification": "state", "per_page": 1}},
    }

    def __init__(self, orchestrator, config: dict | None = None):
        self._orchestrator = orchestrator
        health_cfg = (config or {}).get("health", {})
        self._timeout = aiohttp.ClientTimeout(
            total=health_cfg.get("probe_timeout", DEFAULT_PROBE_TIMEOUT)
        )

    def providers(self) -> dict:
        """Provider objects keyed by source name."""
        found = {}
        candidates = [getattr(self._orchestrator.geo, "geocoder", None)]
        candidates.extend(a.provider for a in self._orchestrator.aggregators.values())
        for provider in candidates:
            if hasattr(provider, "circuit_breaker"):
                found[provider.source_name] = provider
        return found

    async def check_all(self, probe: bool = True) -> dict[str, dict]:
        """Check every collaborator.

        Args:
            probe: Send a live request to each HTTP provider. Without it the
                status comes from API-key configuration and breaker state only.

        Returns:
            Dict mapping collaborator name to {"status", "latency_ms", "detail"}.
        """
        results = {}
        for name, provider in self.providers().items():
            results[name] = await self._check_provider(name, provider, probe)
        for level in ("county", "municipal"):
            aggregator = self._orchestrator.aggregators.get(level)
            if aggregator is not None and not hasattr(aggregator.provider, "circuit_breaker"):
                results[aggregator.provider.source_name] = self._check_registry(aggregator.provider)
        return results

    def cache_stats(self) -> dict[str, dict]:
        return self._orchestrator.cache.stats()

    async def _check_provider(self, name: str, provider, probe: bool) -> dict:
        if not provider.api_key:
            return self._degraded_or_down(name, "API key not configured")

        state = provider.circuit_breaker.state
        if state == CircuitState.OPEN:
            return self._degraded_or_down(name, "circuit breaker open")
        if not probe:
            status = "UP" if state == CircuitState.CLOSED else "DEGRADED"
            return {"status": status, "latency_ms": 0, "detail": f"circuit {state.value}"}

        probe_cfg = self.PROBES.get(name)
        if probe_cfg is None:
            return {"status": "UP", "latency_ms": 0, "detail": f"circuit {state.value}"}

        params = dict(probe_cfg["params"])
        if probe_cfg.get("key_param"):
            params[probe_cfg["key_param"]] = provider.api_key
        headers = {"User-Agent": USER_AGENT, **provider._headers}
        start = time.monotonic()
        try:
            async with aiohttp.ClientSession(headers=headers, timeout=self._timeout) as session:
                async with session.get(f"{provider.base_url}{probe_cfg['path']}", params=params) as resp:
                    latency_ms = int((time.monotonic() - start) * 1000)
                    if 200 <= resp.status < 300:
                        return {"status": "UP", "latency_ms": latency_ms, "detail": "OK"}
                    return self._degraded_or_down(name, f"HTTP {resp.status}")
        except (aiohttp.ClientError, TimeoutError, OSError) as e:
            logger.warning("Health probe for %s failed: %s", name, e)
            return self._degraded_or_down(name, str(e))

    def _check_registry(self, registry) -> dict:
        try:
            count = len(registry.jurisdictions())
        except UpstreamUnavailable as exc:
            return {"status": "DOWN", "latency_ms": 0, "detail": exc.detail or str(exc)}
        updated = registry.metadata.get("updated", "unknown")
        return {"status": "UP", "latency_ms": 0, "detail": f"{count} jurisdictions, updated {updated}"}

    def _degraded_or_down(self, name: str, error_detail: str) -> dict:
        """DEGRADED when a local fallback covers the outage, DOWN otherwise."""
        if name in _HAS_FALLBACK:
            return {
                "status": "DEGRADED",
                "latency_ms": 0,
                "detail": f"{error_detail}; serving bundled fallback data",
            }
        return {"status": "DOWN", "latency_ms": 0, "detail": error_detail}


def format_report(results: dict[str, dict], cache_stats: dict[str, dict] | None = None) -> str:
    """Format health check results as an aligned text table."""
    lines = [
        "Collaborator Health Check",
        "-" * 60,
    ]
    max_name = max(len(name) for name in results) if results else 0
    for source_name, info in results.items():
        status = info["status"]
        if status == "UP" and info.get("latency_ms"):
            detail = f"({info['latency_ms']}ms)"
        else:
            detail = f"({info['detail']})"
        lines.append(f"  {source_name + ':':<{max_name + 2}} {status:<10} {detail}")
    if cache_stats:
        lines.append("")
        lines.append("Cache partitions")
        lines.append("-" * 60)
        width = max(len(name) for name in cache_stats)
        for name, stats in cache_stats.items():
            lines.append(
                f"  {name + ':':<{width + 2}} size={stats['size']:<5} hits={stats['hits']:<5} "
                f"misses={stats['misses']:<5} rejected={stats['rejected_writes']}"
            )
    return "\n".join(lines)

