"""Centralized path constants for the representative resolution engine.

Every file and directory path used by the engine is defined here as a
module-level constant. Source files import from this module instead of
constructing ad-hoc ``Path(...)`` literals scattered throughout the codebase.

Design rules:
  1. This module imports ONLY ``pathlib.Path`` -- no project imports, no
     config imports, no runtime validation.  This prevents circular-import
     chains and keeps the module importable at any point.
  2. Constants are grouped by purpose (config, reference datasets, curated
     registries).
  3. No path existence checks at import time.  Loaders log and degrade
     when a file is missing.
"""

from pathlib import Path

# ---------------------------------------------------------------------------
# -- Project Root --
# ---------------------------------------------------------------------------

PROJECT_ROOT: Path = Path(__file__).resolve().parent.parent
"""Absolute path to the project root directory (one level above ``repfinder/``)."""

# ---------------------------------------------------------------------------
# -- Config Paths --
# ---------------------------------------------------------------------------

CONFIG_DIR: Path = PROJECT_ROOT / "config"
"""Directory containing resolver configuration files."""

RESOLVER_CONFIG_PATH: Path = CONFIG_DIR / "resolver_config.json"
"""Main resolver configuration (providers, cache, orchestrator, scheduler)."""

# ---------------------------------------------------------------------------
# -- Reference Datasets --
# ---------------------------------------------------------------------------

DATA_DIR: Path = PROJECT_ROOT / "data"
"""Top-level directory for bundled reference datasets and curated registries."""

COUNTIES_PATH: Path = DATA_DIR / "california_counties.json"
"""Authoritative list of the 58 California counties (name, FIPS, seat)."""

INCORPORATED_CITIES_PATH: Path = DATA_DIR / "incorporated_cities.json"
"""Incorporated-city registry with the ZIP codes each city serves."""

CENSUS_PLACES_PATH: Path = DATA_DIR / "census_designated_places.json"
"""Census-designated places (unincorporated communities) with ZIP codes."""

ZIP_FALLBACK_PATH: Path = DATA_DIR / "zip_fallback.json"
"""Coarse ZIP -> county table used when the geocoding provider is down."""

# ---------------------------------------------------------------------------
# -- Curated Registries --
# ---------------------------------------------------------------------------

COUNTY_OFFICIALS_PATH: Path = DATA_DIR / "county_officials.json"
"""Curated county officials keyed by authoritative county name."""

MUNICIPAL_OFFICIALS_PATH: Path = DATA_DIR / "municipal_officials.json"
"""Curated municipal officials keyed by incorporated city name."""

COMMITTEE_ASSIGNMENTS_PATH: Path = DATA_DIR / "committee_assignments.json"
"""Committee memberships keyed by representative external id."""
