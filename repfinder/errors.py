"""Error taxonomy for representative resolution.

Only InputValidationError ever reaches a caller of the orchestrator.
Every other condition is recovered where it happens and surfaced as
response metadata (warnings / degraded levels).
"""


class ResolutionError(Exception):
    """Base class for all resolution errors."""


class InputValidationError(ResolutionError):
    """Raised when a postal code is malformed or outside the governed state.

    Attributes:
        postal_code: The rejected input, as received.
    """

    def __init__(self, postal_code, reason: str):
        self.postal_code = postal_code
        self.reason = reason
        super().__init__(f"Invalid postal code {postal_code!r}: {reason}")


class UpstreamUnavailable(ResolutionError):
    """A collaborator could not be reached or returned unusable data.

    Attributes:
        source_name: Provider or registry that failed.
    """

    def __init__(self, source_name: str, detail: str = ""):
        self.source_name = source_name
        self.detail = detail
        message = f"Upstream '{source_name}' unavailable"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class DataQualityViolation(ResolutionError):
    """A value broke a data-quality rule and its record must be dropped."""

    def __init__(self, field: str, value, rule: str, subject: str = ""):
        self.field = field
        self.value = value
        self.rule = rule
        self.subject = subject
        super().__init__(
            f"{subject or 'record'}: field '{field}' value {value!r} violates {rule}"
        )


class AmbiguousClassification(ResolutionError):
    """The collision resolver could not decide which level a record belongs to."""

    def __init__(self, external_id: str, name: str, candidates: list[str]):
        self.external_id = external_id
        self.name = name
        self.candidates = candidates
        super().__init__(
            f"Cannot disambiguate {name!r} ({external_id}) between levels {candidates}"
        )
