"""Pydantic v2 schema models for representative resolution.

Provides strict validation models for all core data structures:
- PostalLocation: geocoded postal code with county and districts
- Jurisdiction: incorporation status and applicable levels
- RepresentativeRecord: one official, tagged by government level
- ValidationResult: data-quality finding (CRITICAL / WARNING)
- AggregateResult: full response for one postal code

Schema violations are data-quality failures, not warnings.
"""

from repfinder.schemas.models import (
    AggregateResult,
    CommitteeAssignment,
    ContactInfo,
    DistrictAssignment,
    GovernmentLevel,
    Jurisdiction,
    JurisdictionType,
    MailingAddress,
    PostalLocation,
    RepresentativeRecord,
    ResolutionWarning,
    Severity,
    TTLClass,
    ValidationResult,
)

__all__ = [
    "AggregateResult",
    "CommitteeAssignment",
    "ContactInfo",
    "DistrictAssignment",
    "GovernmentLevel",
    "Jurisdiction",
    "JurisdictionType",
    "MailingAddress",
    "PostalLocation",
    "RepresentativeRecord",
    "ResolutionWarning",
    "Severity",
    "TTLClass",
    "ValidationResult",
]
