"""Curated JSON registries consumed as collaborators.

County and municipal officials, and committee memberships, are not
available from a single public API. They are maintained as curated JSON
files and loaded lazily on first access, so no I/O happens unless a
lookup actually needs them.

Registry file layout::

    {
      "metadata": {"updated": "2026-09-01", "source": "..."},
      "entries": {"Sacramento County": [ {...official row...}, ... ]}
    }
"""

import json
import logging
from pathlib import Path

from repfinder.config import resolve_data_path
from repfinder.errors import UpstreamUnavailable
from repfinder.paths import COMMITTEE_ASSIGNMENTS_PATH

logger = logging.getLogger(__name__)


class CuratedRegistry:
    """Lazy-loading registry of official rows keyed by jurisdiction name.

    Args:
        source_name: Identifier used in logs and degraded-level reports.
        data_path: JSON file to load.
    """

    def __init__(self, source_name: str, data_path: Path) -> None:
        self.source_name = source_name
        self.data_path = Path(data_path)
        self._entries: dict[str, list[dict]] = {}
        self._metadata: dict = {}
        self._loaded: bool = False

    def _load(self) -> None:
        if self._loaded:
            return
        try:
            with open(self.data_path, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError as exc:
            logger.error("%s: registry not found at %s", self.source_name, self.data_path)
            raise UpstreamUnavailable(self.source_name, "registry file missing") from exc
        except json.JSONDecodeError as exc:
            logger.error(
                "%s: registry at %s is invalid JSON: %s",
                self.source_name, self.data_path, exc,
            )
            raise UpstreamUnavailable(self.source_name, "registry file corrupt") from exc

        self._entries = data.get("entries", {})
        self._metadata = data.get("metadata", {})
        self._loaded = True
        logger.info(
            "Loaded %s: %d jurisdictions, %d officials",
            self.source_name,
            len(self._entries),
            sum(len(rows) for rows in self._entries.values()),
        )

    async def fetch(self, jurisdiction_name: str) -> list[dict]:
        """Return the raw official rows for one jurisdiction (empty if unknown)."""
        self._load()
        rows = self._entries.get(jurisdiction_name)
        if rows is None:
            logger.info("%s: no entry for '%s'", self.source_name, jurisdiction_name)
            return []
        return [dict(row) if isinstance(row, dict) else row for row in rows]

    def jurisdictions(self) -> list[str]:
        self._load()
        return sorted(self._entries)

    @property
    def metadata(self) -> dict:
        self._load()
        return self._metadata


class CommitteeDirectory:
    """Lazy-loading committee membership lookup.

    Loads committee_assignments.json on first access and answers
    per-representative committee lookups. All lookups are in-memory once
    loaded; a missing file yields empty results rather than an error,
    since committee data is an enrichment.

    Usage::

        directory = CommitteeDirectory(config)
        committees = await directory.get_committees("P000145")
    """

    def __init__(self, config: dict | None = None) -> None:
        self.data_path = resolve_data_path(config, "committee_assignments", COMMITTEE_ASSIGNMENTS_PATH)
        self._members: dict[str, list[dict]] = {}
        self._loaded: bool = False

    def _load(self) -> None:
        if self._loaded:
            return
        try:
            with open(self.data_path, encoding="utf-8") as f:
                data = json.load(f)
            self._members = data.get("members", {})
            logger.info("Loaded committee assignments for %d members", len(self._members))
        except (json.JSONDecodeError, OSError) as exc:
            logger.error("Failed to load committee assignments: %s", exc)
            self._members = {}
        self._loaded = True

    async def get_committees(self, external_id: str) -> list[dict]:
        """Committee rows for one representative, empty if none are known."""
        self._load()
        return [dict(row) for row in self._members.get(external_id, [])]
