"""
Domain models - Offices, official profiles and verification requests.

Plain dataclasses validated on construction. Persistence adapters map
rows to and from these types; services replace them wholesale with
dataclasses.replace() rather than mutating shared instances.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from uuid import UUID, uuid4

from .ports import VerificationMethod, VerificationStatus

# Document kinds accepted for manual review
DOCUMENT_TYPES = (
    "Government ID",
    "Official Letter",
    "Election Certificate",
    "Appointment Document",
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class GovernmentOffice:
    """A public position that exactly one official may claim."""

    id: UUID
    title: str
    jurisdiction: str
    level: str = "state"
    district: str | None = None
    incumbent_name: str | None = None
    website_url: str | None = None
    is_claimed: bool = False
    claimed_by: UUID | None = None

    def __post_init__(self) -> None:
        if self.is_claimed != (self.claimed_by is not None):
            raise ValueError(
                f"Office {self.id}: is_claimed={self.is_claimed} "
                f"but claimed_by={self.claimed_by}"
            )

    @property
    def display_name(self) -> str:
        if self.district:
            return f"{self.title}, {self.district}"
        return self.title

    def matches(self, query: str) -> bool:
        needle = query.strip().lower()
        haystack = (self.title, self.jurisdiction, self.district, self.incumbent_name)
        return any(needle in value.lower() for value in haystack if value)


@dataclass
class OfficialProfile:
    """
    An official's public record.

    Verification fields are written only by ProfileStatusProjector.
    """

    id: UUID
    name: str
    office_id: UUID | None = None
    verification_status: VerificationStatus = VerificationStatus.UNVERIFIED
    verification_method: VerificationMethod | None = None
    verified_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.verification_status is VerificationStatus.VERIFIED and (
            self.verification_method is None or self.verified_at is None
        ):
            raise ValueError(
                f"Official {self.id} is verified without method and timestamp"
            )

    @property
    def is_verified(self) -> bool:
        """Gate read by dashboard access and public feed visibility."""
        return self.verification_status is VerificationStatus.VERIFIED


@dataclass(frozen=True)
class EmailChallenge:
    """Government email payload. Only the bcrypt hash of the code is kept."""

    email: str
    code_hash: str
    expires_at: datetime


@dataclass(frozen=True)
class DocumentEvidence:
    """Uploaded evidence awaiting manual review."""

    urls: tuple[str, ...]
    types: tuple[str, ...]


@dataclass(frozen=True)
class WebsiteChallenge:
    """Token the official publishes as a meta tag on their official website."""

    url: str
    token: str
    confirmed_at: datetime | None = None


_PAYLOAD_FIELDS = {
    VerificationMethod.GOVERNMENT_EMAIL: "email",
    VerificationMethod.DOCUMENT_UPLOAD: "documents",
    VerificationMethod.WEBSITE_TOKEN: "website",
}


@dataclass
class VerificationRequest:
    """
    One attempt to verify one official for one office via one method.

    Exactly one payload variant is populated and it matches ``method``.
    """

    official_id: UUID
    office_id: UUID
    method: VerificationMethod
    email: EmailChallenge | None = None
    documents: DocumentEvidence | None = None
    website: WebsiteChallenge | None = None
    status: VerificationStatus = VerificationStatus.PENDING
    id: UUID = field(default_factory=uuid4)
    submitted_at: datetime = field(default_factory=utc_now)
    reviewed_at: datetime | None = None
    reviewer_notes: str | None = None
    rejection_reason: str | None = None
    attempt_count: int = 0

    def __post_init__(self) -> None:
        if self.status is VerificationStatus.UNVERIFIED:
            raise ValueError("A verification request cannot be 'unverified'")
        populated = [name for name in _PAYLOAD_FIELDS.values() if getattr(self, name) is not None]
        if populated != [_PAYLOAD_FIELDS[self.method]]:
            raise ValueError(
                f"Request for method {self.method.value} must carry exactly the "
                f"'{_PAYLOAD_FIELDS[self.method]}' payload, got {populated}"
            )

    @property
    def is_terminal(self) -> bool:
        return self.status is not VerificationStatus.PENDING

    @property
    def awaits_review(self) -> bool:
        """Pending and waiting on a reviewer rather than on the official."""
        if self.is_terminal:
            return False
        if self.method is VerificationMethod.DOCUMENT_UPLOAD:
            return True
        return self.website is not None and self.website.confirmed_at is not None


@dataclass(frozen=True)
class DocumentFile:
    """Raw evidence bytes before upload."""

    data: bytes
    document_type: str = DOCUMENT_TYPES[0]
    content_type: str = "image/jpeg"
