"""
Domain exceptions - Semantic error types for office claiming and verification.

This module defines domain-specific exceptions that communicate
business rule violations without leaking infrastructure details.
Adapters translate their own failures into these types.
"""


class VerificationError(Exception):
    """Base class for verification domain errors."""

    pass


class OfficeAlreadyClaimed(VerificationError):
    """Office is already claimed by another official."""

    pass


class OfficialHoldsOffice(VerificationError):
    """Official already holds a different office and must release it first."""

    pass


class OfficeNotClaimed(VerificationError):
    """Verification was started for an office the official has not claimed."""

    pass


class NotFound(VerificationError):
    """A referenced office, official or request does not exist."""

    pass


class OfficeNotFound(NotFound):
    pass


class OfficialNotFound(NotFound):
    pass


class RequestNotFound(NotFound):
    pass


class ConflictingRequest(VerificationError):
    """The official already has a verification request that is not terminal."""

    pass


class RequestNotReviewable(VerificationError):
    """The request is terminal or not yet ready for a reviewer decision."""

    pass


class InvalidSubmission(VerificationError):
    """Submitted evidence is incomplete (e.g. no documents)."""

    pass


class FetchError(VerificationError):
    """Website could not be fetched (network, timeout, TLS, HTTP status). Retryable."""

    pass


class UploadError(VerificationError):
    """Document evidence could not be stored."""

    pass


class StoreUnavailable(VerificationError):
    """The backing store could not be reached. Retryable."""

    pass
