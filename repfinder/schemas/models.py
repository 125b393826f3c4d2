"""Pydantic v2 validation models for the representative resolution engine.

Every upstream schema is normalized into these shapes at the aggregator
boundary, before any shared logic touches it. Strict validation ensures
schema violations surface as dropped records at ingestion time, not as
silent data corruption in the cache or in a response.

Models:
- PostalLocation   -> geocoded postal code (coordinates, county, districts)
- Jurisdiction     -> incorporation status and applicable government levels
- RepresentativeRecord -> one elected official, tagged by level
- ValidationResult -> one data-quality finding
- AggregateResult  -> the complete answer for one postal code
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from repfinder.config import BASE_LEVELS, GOVERNMENT_LEVELS, STATE_CODE


# ── Enums as Literal types for strict validation ──

GovernmentLevel = Literal["federal", "state", "county", "municipal"]

JurisdictionType = Literal[
    "incorporated_city",
    "census_designated_place",
    "unincorporated_area",
    "unknown",
]

TTLClass = Literal["active", "historical", "metadata"]

Severity = Literal["CRITICAL", "WARNING"]

Chamber = Literal["senate", "house", "assembly", "board", "council", "executive"]

LOCATION_SOURCES = frozenset({"geocoder", "fallback_zip", "fallback_prefix"})

JURISDICTION_SOURCES = frozenset({
    "incorporated_registry",
    "cdp_registry",
    "inference",
    "fallback",
})


# ── Postal Location ──

class DistrictAssignment(BaseModel):
    """Legislative districts covering a postal code.

    Any district may be unknown (None) when the provider did not return
    it; aggregators that need a missing district return a partial list.
    """

    congressional: Optional[int] = Field(
        default=None,
        description="U.S. House district number",
        examples=[7],
    )
    state_senate: Optional[int] = Field(
        default=None,
        description="State senate district number",
        examples=[8],
    )
    state_assembly: Optional[int] = Field(
        default=None,
        description="State assembly district number",
        examples=[7],
    )


class PostalLocation(BaseModel):
    """Geocoded postal code.

    Created on first resolution and re-created only when boundary data
    changes (the ``district_boundary_change`` cache event).
    """

    postal_code: str = Field(
        ...,
        description="Normalized 5-digit postal code",
        examples=["95814"],
    )
    latitude: float = Field(..., description="Latitude of the postal code centroid")
    longitude: float = Field(..., description="Longitude of the postal code centroid")
    county: str = Field(
        ...,
        description="Primary county, authoritative name including suffix",
        examples=["Sacramento County"],
    )
    locality: Optional[str] = Field(
        default=None,
        description="Raw locality guess from the provider (not authoritative)",
        examples=["Sacramento", "Lamont"],
    )
    state: str = Field(default=STATE_CODE, description="Two-letter state code")
    districts: DistrictAssignment = Field(default_factory=DistrictAssignment)
    confidence: float = Field(
        ...,
        ge=0.0,
        le=1.0,
        description="Geocoding confidence (0.0-1.0)",
    )
    source: str = Field(
        ...,
        description="Where the location came from",
        examples=["geocoder", "fallback_zip", "fallback_prefix"],
    )

    @field_validator("source")
    @classmethod
    def validate_source(cls, v: str) -> str:
        if v not in LOCATION_SOURCES:
            raise ValueError(
                f"Invalid location source '{v}'. Must be one of: {sorted(LOCATION_SOURCES)}"
            )
        return v


# ── Jurisdiction ──

class Jurisdiction(BaseModel):
    """Incorporation status of a location and the levels that govern it.

    Invariants enforced here:
      - applicable_levels always contains federal and state
      - municipal is applicable if and only if type == incorporated_city
    """

    type: JurisdictionType
    name: Optional[str] = Field(
        default=None,
        description="Place name (city or community), if known",
        examples=["Sacramento", "East Los Angeles"],
    )
    county: str = Field(..., description="Authoritative county name")
    confidence: float = Field(..., ge=0.0, le=1.0)
    source: str = Field(..., examples=["incorporated_registry", "fallback"])
    rule: str = Field(
        ...,
        description="Decision-table rule that produced this classification",
        examples=["JUR-01", "JUR-99"],
    )
    rationale: str = Field(..., description="Why this rule matched")
    applicable_levels: list[GovernmentLevel] = Field(
        ...,
        description="Government levels with representatives for this location",
    )
    secondary_rules: list[str] = Field(
        default_factory=list,
        description="Lower-priority rules that also matched",
    )
    description: str = Field(
        default="",
        description="Plain-language explanation of the local government structure",
    )

    @field_validator("source")
    @classmethod
    def validate_source(cls, v: str) -> str:
        if v not in JURISDICTION_SOURCES:
            raise ValueError(
                f"Invalid jurisdiction source '{v}'. Must be one of: {sorted(JURISDICTION_SOURCES)}"
            )
        return v

    @field_validator("applicable_levels")
    @classmethod
    def order_levels(cls, v: list[str]) -> list[str]:
        unique = set(v)
        return [level for level in GOVERNMENT_LEVELS if level in unique]

    @model_validator(mode="after")
    def check_level_invariants(self) -> "Jurisdiction":
        levels = set(self.applicable_levels)
        if not BASE_LEVELS <= levels:
            raise ValueError(
                f"applicable_levels must include {sorted(BASE_LEVELS)}, got {sorted(levels)}"
            )
        has_municipal = "municipal" in levels
        if has_municipal != (self.type == "incorporated_city"):
            raise ValueError(
                f"municipal level applicability ({has_municipal}) "
                f"contradicts jurisdiction type '{self.type}'"
            )
        return self


# ── Representative Record ──

class MailingAddress(BaseModel):
    """Postal address of an office."""

    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None


class ContactInfo(BaseModel):
    """Public contact channels for an official."""

    phone: Optional[str] = Field(default=None, examples=["916-874-5411"])
    email: Optional[str] = Field(default=None)
    website: Optional[str] = Field(default=None)
    address: Optional[MailingAddress] = Field(default=None)


class CommitteeAssignment(BaseModel):
    """Committee membership of a representative."""

    committee_id: str = Field(..., examples=["SSJU", "asm-budget"])
    name: str = Field(..., examples=["Judiciary"])
    role: str = Field(default="Member", examples=["Member", "Chair", "Ranking Member"])


class RepresentativeRecord(BaseModel):
    """One elected official, normalized and tagged by government level.

    Produced and replaced by the per-level refresh jobs; never hand-edited.
    ``level_tagged`` records whether the upstream row itself stated its
    level (authoritative) or the aggregator assumed it from its source.
    """

    external_id: str = Field(
        ...,
        min_length=1,
        description="Stable identifier from the upstream source",
        examples=["P000145", "ocd-person/9c2c0f4e", "sac-county-bos-1"],
    )
    name: str = Field(..., description="Official's full name")
    title: str = Field(..., examples=["U.S. Senator", "Assembly Member", "Supervisor"])
    level: GovernmentLevel
    party: Optional[str] = Field(default=None, examples=["Democrat", "Republican", "Nonpartisan"])
    chamber: Optional[Chamber] = Field(
        default=None,
        description="Body the official sits in; selects the district bounds",
    )
    district: Optional[int] = Field(default=None, description="District number, if any")
    jurisdiction_name: str = Field(
        ...,
        description="Jurisdiction the official represents",
        examples=["California", "Sacramento County", "Sacramento"],
    )
    jurisdiction_scope: Optional[dict[str, str]] = Field(
        default=None,
        description="Upstream scope metadata, e.g. {'type': 'county', 'name': 'Riverside County'}",
    )
    level_tagged: bool = Field(
        default=False,
        description="True when the upstream row carried an explicit level tag",
    )
    contact: ContactInfo = Field(default_factory=ContactInfo)
    term_start: Optional[str] = Field(default=None, description="ISO date term began")
    term_end: Optional[str] = Field(default=None, description="ISO date term ends")
    committees: list[CommitteeAssignment] = Field(default_factory=list)
    source: str = Field(..., examples=["congress_gov", "openstates", "county_registry"])

    @field_validator("name", "title", "jurisdiction_name")
    @classmethod
    def strip_text(cls, v: str) -> str:
        return " ".join(v.split())


# ── Validation and results ──

class ValidationResult(BaseModel):
    """One data-quality finding."""

    field: str
    value: Optional[str] = None
    rule: str
    severity: Severity
    subject: str = Field(default="", description="Record id or postal code checked")


class ResolutionWarning(BaseModel):
    """Non-fatal condition surfaced to the caller as response metadata."""

    code: str = Field(..., examples=["MUNICIPAL_NOT_APPLICABLE", "LOW_CONFIDENCE"])
    message: str
    level: Optional[GovernmentLevel] = None
    field: Optional[str] = None
    subject: Optional[str] = Field(
        default=None,
        description="Record id or postal code the warning is about",
    )


class AggregateResult(BaseModel):
    """Complete, JSON-serializable answer for one postal code."""

    postal_code: str
    location: Optional[PostalLocation] = Field(
        default=None,
        description="None only when the postal code could not be located at all",
    )
    jurisdiction: Optional[Jurisdiction] = None
    representatives_by_level: dict[str, list[RepresentativeRecord]] = Field(
        default_factory=lambda: {level: [] for level in GOVERNMENT_LEVELS},
    )
    warnings: list[ResolutionWarning] = Field(default_factory=list)
    degraded_levels: list[GovernmentLevel] = Field(default_factory=list)
    degraded: bool = Field(
        default=False,
        description="True when no level could be fetched at all",
    )
    from_cache: dict[str, bool] = Field(
        default_factory=dict,
        description="Per level: whether the list was served from cache",
    )
    resolved_at: Optional[str] = Field(
        default=None,
        description="ISO-8601 UTC timestamp of the resolution",
    )
