"""
Port interfaces - Protocol definitions for infrastructure abstraction.

This module defines the interfaces (ports) that the domain requires
from infrastructure, plus the enums shared across ports and services.
Adapters implement these protocols structurally.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Protocol
from uuid import UUID

if TYPE_CHECKING:
    from .models import GovernmentOffice, OfficialProfile, VerificationRequest


class VerificationStatus(str, Enum):
    """
    Verification status shared by official profiles and verification requests.

    Profiles move between all five values. Requests are created PENDING and
    leave it exactly once (forward-only):
    - PENDING -> VERIFIED  (code accepted or reviewer approved)
    - PENDING -> REJECTED  (reviewer rejected or attempts exhausted)
    - PENDING -> EXPIRED   (abandoned by the official)
    """

    UNVERIFIED = "unverified"
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"
    EXPIRED = "expired"


class VerificationMethod(str, Enum):
    """The three ways an official can prove they hold an office."""

    GOVERNMENT_EMAIL = "government_email"
    DOCUMENT_UPLOAD = "document_upload"
    WEBSITE_TOKEN = "website_token"

    @property
    def display_name(self) -> str:
        return _METHOD_NAMES[self]

    @property
    def is_instant(self) -> bool:
        """Only the email method completes without a human reviewer."""
        return self is VerificationMethod.GOVERNMENT_EMAIL


_METHOD_NAMES = {
    VerificationMethod.GOVERNMENT_EMAIL: "Government Email",
    VerificationMethod.DOCUMENT_UPLOAD: "Document Upload",
    VerificationMethod.WEBSITE_TOKEN: "Website Verification",
}


class ReviewOutcome(str, Enum):
    """Reviewer decision on a request awaiting manual review."""

    APPROVED = "approved"
    REJECTED = "rejected"


class ClaimResult(Enum):
    """Result of an atomic office claim at the store."""

    CLAIMED = "claimed"
    ALREADY_CLAIMED = "already_claimed"
    OFFICE_NOT_FOUND = "office_not_found"
    OFFICIAL_NOT_FOUND = "official_not_found"
    OFFICIAL_HOLDS_OFFICE = "official_holds_office"


class VerifyResult(Enum):
    """
    Result of a one-time code verification attempt.

    EXPIRED takes precedence over a value comparison: an expired but
    correct code still yields EXPIRED.
    """

    SUCCESS = "success"
    INVALID_CODE = "invalid_code"
    EXPIRED = "expired"
    LOCKED = "locked"
    NOT_FOUND = "not_found"


class TokenCheck(Enum):
    """Result of looking for the verification meta tag on a website."""

    CONFIRMED = "confirmed"
    NOT_FOUND = "not_found"
    MISMATCH = "mismatch"


class OfficeRepository(Protocol):
    """Port interface for government office persistence."""

    def get(self, office_id: UUID) -> GovernmentOffice | None: ...

    def search(self, query: str, limit: int) -> list[GovernmentOffice]:
        """Case-insensitive match on title, jurisdiction, district or incumbent."""
        ...

    def list_unclaimed(self, jurisdiction: str | None, limit: int) -> list[GovernmentOffice]: ...

    def claim(self, office_id: UUID, official_id: UUID) -> ClaimResult:
        """
        Atomically claim an office for an official.

        Must be a single conditional update on the claimed flag (compare-and-set),
        applied together with the official's office reference. Two concurrent
        callers for the same office yield exactly one CLAIMED. An official whose
        office reference names a different office gets OFFICIAL_HOLDS_OFFICE;
        concurrent claims by one official serialize on that official.
        """
        ...

    def release(self, office_id: UUID) -> bool:
        """
        Clear the claim and the holder's office reference.

        Returns:
            False if the office does not exist
        """
        ...


class OfficialRepository(Protocol):
    """Port interface for official profile persistence."""

    def get(self, official_id: UUID) -> OfficialProfile | None: ...

    def update_verification(
        self,
        official_id: UUID,
        status: VerificationStatus,
        method: VerificationMethod | None,
        verified_at: datetime | None,
    ) -> OfficialProfile | None:
        """Write the verification fields; returns None if the official does not exist."""
        ...


class VerificationRequestRepository(Protocol):
    """Port interface for verification request persistence."""

    def create(self, request: VerificationRequest) -> None:
        """
        Insert a new pending request.

        Raises:
            ConflictingRequest: If the official already has a pending request
        """
        ...

    def get(self, request_id: UUID) -> VerificationRequest | None: ...

    def get_active(self, official_id: UUID) -> VerificationRequest | None:
        """Return the official's pending request, if any."""
        ...

    def latest(self, official_id: UUID) -> VerificationRequest | None:
        """Return the official's most recently submitted request."""
        ...

    def list_for_official(self, official_id: UUID) -> list[VerificationRequest]: ...

    def list_reviewable(self, limit: int) -> list[VerificationRequest]:
        """Pending requests that need a reviewer decision, oldest first."""
        ...

    def save(self, request: VerificationRequest) -> bool:
        """
        Persist the request's mutable fields.

        The write only lands while the stored row is still PENDING, which
        keeps request transitions forward-only.

        Returns:
            True if the row was updated
        """
        ...

    def record_failed_attempt(
        self, request_id: UUID, max_attempts: int, now: datetime, reason: str
    ) -> VerificationRequest | None:
        """
        Count one invalid code against a pending request in a single write.

        The increment reads the stored count, not a caller's copy, so
        concurrent guesses cannot lose updates. Reaching max_attempts
        rejects the request with the given reason in the same write.

        Returns:
            The updated request, or None if it was no longer pending
        """
        ...


class EmailSender(Protocol):
    """Port interface for email delivery."""

    def send_verification_code(self, email: str, code: str) -> None:
        """
        Send verification code to email address (fire-and-forget).

        Args:
            email: Recipient email address
            code: 6-digit verification code
        """
        ...


class DocumentFetcher(Protocol):
    """Port interface for fetching a web page over HTTPS."""

    def fetch_document(self, url: str, timeout: float) -> bytes:
        """
        Raises:
            FetchError: On network, timeout, TLS or HTTP status failure
        """
        ...


class MetaTagReader(Protocol):
    """Port interface for reading <meta> tags from an HTML document head."""

    def read_meta(self, document: bytes, name: str) -> list[str]:
        """Return the content values of every head meta tag with the given name."""
        ...


class ObjectStorage(Protocol):
    """Port interface for document evidence storage."""

    def upload(self, path: str, data: bytes, content_type: str) -> str:
        """
        Store bytes at path and return their public URL.

        Raises:
            UploadError: If the object could not be stored
        """
        ...
