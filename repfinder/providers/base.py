"""Shared HTTP plumbing for upstream providers.

The geocoder and the federal and state legislative APIs all subclass
BaseProvider. It reads ``providers.<source_name>`` (base URL, API-key env
var) and ``resilience`` (retries, backoff, timeout, breaker) from the
resolver config, and runs every request through ``_request_with_retry``:
exponential backoff with jitter on transport errors, Retry-After on 429,
and one circuit-breaker outcome per call.
"""

import asyncio
import logging
import os
import random

import aiohttp

from repfinder.providers.circuit_breaker import CircuitBreaker, CircuitOpenError

logger = logging.getLogger(__name__)

# Anything a provider call may raise; aggregators turn these into a degraded level.
PROVIDER_ERRORS = (
    CircuitOpenError,
    aiohttp.ClientError,
    asyncio.TimeoutError,
    RuntimeError,
    KeyError,
    TypeError,
    ValueError,
)

USER_AGENT = "repfinder/1.0 (California representative lookup)"
MAX_RETRIES = 3
BACKOFF_BASE = 2  # seconds
BACKOFF_MAX = 30
REQUEST_TIMEOUT = 10


class BaseProvider:
    """HTTP provider with retry, rate-limit and circuit-breaker handling.

    Args:
        source_name: Provider key, e.g. "congress_gov".
        config: Resolver config dict; missing sections fall back to defaults.
    """

    default_base_url = ""
    default_key_env_var = ""

    def __init__(self, source_name: str, config: dict | None = None):
        self.source_name = source_name
        self._headers = {"User-Agent": USER_AGENT}

        config = config or {}
        settings = config.get("providers", {}).get(source_name, {})
        self.base_url = settings.get("base_url", self.default_base_url).rstrip("/")
        key_env_var = settings.get("key_env_var", self.default_key_env_var)
        self.api_key = os.environ.get(key_env_var, "") if key_env_var else ""

        resilience = config.get("resilience", {})
        self.max_retries = resilience.get("max_retries", MAX_RETRIES)
        self.backoff_base = resilience.get("backoff_base", BACKOFF_BASE)
        self.backoff_max = resilience.get("backoff_max", BACKOFF_MAX)
        self.request_timeout = aiohttp.ClientTimeout(
            total=resilience.get("request_timeout", REQUEST_TIMEOUT)
        )
        breaker = resilience.get("circuit_breaker", {})
        self._circuit_breaker = CircuitBreaker(
            name=source_name,
            failure_threshold=breaker.get("failure_threshold", 5),
            recovery_timeout=breaker.get("recovery_timeout", 60),
        )

    @property
    def circuit_breaker(self) -> CircuitBreaker:
        return self._circuit_breaker

    async def _get_json(self, path: str, params: dict | None = None) -> dict:
        """GET ``base_url + path`` in a fresh session and return decoded JSON."""
        async with aiohttp.ClientSession(headers=self._headers) as session:
            return await self._request_with_retry(
                session, "GET", f"{self.base_url}{path}", params=params or {},
            )

    async def _request_with_retry(
        self, session: aiohttp.ClientSession, method: str, url: str,
        retries: int | None = None, **kwargs,
    ) -> dict:
        """Send one logical request and report its outcome to the breaker.

        Raises:
            CircuitOpenError: the breaker refused the call; nothing was sent.
            aiohttp.ClientError / asyncio.TimeoutError: the last transport
                error once retries are exhausted.
        """
        send = getattr(session, method.lower(), None)
        if send is None:
            raise ValueError(f"Unsupported HTTP method: {method}")
        if not self._circuit_breaker.acquire():
            raise CircuitOpenError(self.source_name, self._circuit_breaker.retry_in())

        kwargs.setdefault("timeout", self.request_timeout)
        try:
            payload = await self._attempts(
                send, url, self.max_retries if retries is None else retries, kwargs,
            )
        except asyncio.CancelledError:
            self._circuit_breaker.release()
            raise
        except Exception:
            self._circuit_breaker.record_failure()
            raise
        self._circuit_breaker.record_success()
        return payload

    async def _attempts(self, send, url: str, retries: int, kwargs: dict) -> dict:
        attempt = 0
        throttled = 0
        last_error: Exception | None = None
        while attempt < retries:
            try:
                async with send(url, **kwargs) as resp:
                    if resp.status == 429:
                        throttled += 1
                        if throttled <= retries:
                            # server-requested waits do not consume an attempt
                            await asyncio.sleep(self._retry_after(resp, attempt))
                            continue
                        logger.error("%s: rate limited %d times, giving up", self.source_name, throttled)
                    resp.raise_for_status()
                    return await resp.json()
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                last_error = e
                logger.warning(
                    "%s: %s failed (attempt %d/%d): %s",
                    self.source_name, url, attempt + 1, retries, e,
                )
                if isinstance(e, aiohttp.ClientResponseError) and e.status == 429:
                    break

            attempt += 1
            if attempt < retries:
                delay = min(self.backoff_base ** attempt, self.backoff_max) + random.uniform(0, 1)
                logger.info("%s: retrying in %.1fs", self.source_name, delay)
                await asyncio.sleep(delay)

        logger.error("%s: giving up after %d attempts: %s", self.source_name, retries, last_error)
        raise last_error or RuntimeError(f"{self.source_name}: request failed after {retries} retries")

    def _retry_after(self, resp, attempt: int) -> float:
        raw = resp.headers.get("Retry-After", "")
        try:
            wait = max(0, min(int(raw), self.backoff_max))
        except (TypeError, ValueError):
            wait = min(self.backoff_base ** (attempt + 2), self.backoff_max)
        logger.warning("%s: 429 rate limited, waiting %ds", self.source_name, wait)
        return wait
