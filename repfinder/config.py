"""Governed-state constants and configuration loading.

The engine serves a single state. Everything that is specific to that
state -- postal code range, district counts, bounding box -- is defined
here so that no other module hardcodes those numbers.

All district references in the codebase should import from this module
instead of hardcoding ranges.

Example:
    DISTRICT_BOUNDS[("state", "senate")] -> (1, 40)
"""

import json
import logging
from pathlib import Path

from repfinder.paths import PROJECT_ROOT, RESOLVER_CONFIG_PATH

logger = logging.getLogger(__name__)

STATE_CODE: str = "CA"
"""Two-letter code of the governed state."""

STATE_NAME: str = "California"
"""Full name of the governed state."""

POSTAL_CODE_MIN: int = 90000
"""Lowest ZIP code assigned to the governed state."""

POSTAL_CODE_MAX: int = 96199
"""Highest ZIP code assigned to the governed state."""

STATE_BOUNDING_BOX: dict[str, float] = {
    "min_lat": 32.52,
    "max_lat": 42.01,
    "min_lng": -124.48,
    "max_lng": -114.13,
}
"""Inclusive latitude/longitude envelope of the governed state."""

STATE_CENTROID: tuple[float, float] = (36.7783, -119.4179)
"""Geographic center used by providers as a placeholder for "somewhere in CA"."""

# (level, chamber) -> inclusive legal district range.
DISTRICT_BOUNDS: dict[tuple[str, str], tuple[int, int]] = {
    ("federal", "house"): (1, 52),
    ("state", "senate"): (1, 40),
    ("state", "assembly"): (1, 80),
    ("county", "board"): (1, 11),
    ("municipal", "council"): (1, 15),
}

# Range for a district whose chamber is unset or belongs to another level
# (a record the collision resolver moved, a curated row without a chamber).
LEVEL_DISTRICT_BOUNDS: dict[str, tuple[int, int]] = {
    "federal": (1, 52),
    "state": (1, 80),
    "county": (1, 11),
    "municipal": (1, 15),
}

# Offices elected at large; a district number on one of them is bad data.
AT_LARGE_OFFICES: frozenset[tuple[str, str]] = frozenset({
    ("federal", "senate"),
    ("federal", "executive"),
    ("state", "executive"),
    ("county", "executive"),
    ("municipal", "executive"),
})

GOVERNMENT_LEVELS: tuple[str, ...] = ("federal", "state", "county", "municipal")
"""All government levels, in display order."""

BASE_LEVELS: frozenset[str] = frozenset({"federal", "state"})
"""Levels that apply to every location in the state."""


def load_config(path: Path | None = None) -> dict:
    """Load resolver configuration.

    Args:
        path: Config file to read. Defaults to config/resolver_config.json.

    Returns:
        Parsed configuration dict. A missing file yields an empty dict so
        every component falls back to its built-in defaults.
    """
    path = path or RESOLVER_CONFIG_PATH
    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError:
        logger.warning("Resolver config not found at %s, using defaults", path)
        return {}


def resolve_data_path(config: dict | None, key: str, default: Path) -> Path:
    """Resolve a dataset path from the ``data`` config section.

    Relative paths are anchored at the project root so the engine works
    regardless of the current working directory.
    """
    raw = (config or {}).get("data", {}).get(key)
    if not raw:
        return default
    path = Path(raw)
    return path if path.is_absolute() else PROJECT_ROOT / path
