"""
API request and response models.

Pydantic models for FastAPI endpoint validation and OpenAPI schema generation.
"""

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import Base64Bytes, BaseModel, EmailStr, Field

from src.domain.models import (
    DOCUMENT_TYPES,
    DocumentFile,
    GovernmentOffice,
    OfficialProfile,
    VerificationRequest,
)
from src.domain.orchestrator import FlowErrorKind, FlowOutcome, FlowState
from src.domain.ports import ReviewOutcome, VerificationMethod, VerificationStatus


class OfficeResponse(BaseModel):
    """A government office as shown in search results."""

    id: UUID
    title: str
    display_name: str
    level: str
    jurisdiction: str
    district: str | None = None
    incumbent_name: str | None = None
    website_url: str | None = None
    is_claimed: bool

    @classmethod
    def from_office(cls, office: GovernmentOffice) -> "OfficeResponse":
        return cls(
            id=office.id,
            title=office.title,
            display_name=office.display_name,
            level=office.level,
            jurisdiction=office.jurisdiction,
            district=office.district,
            incumbent_name=office.incumbent_name,
            website_url=office.website_url,
            is_claimed=office.is_claimed,
        )


class AvailabilityResponse(BaseModel):
    office_id: UUID
    available: bool


class StartVerificationRequest(BaseModel):
    """Request model for choosing a verification method."""

    office_id: UUID
    method: VerificationMethod
    email: EmailStr | None = Field(
        default=None, description="Government email address (government_email method)"
    )
    website_url: str | None = Field(
        default=None,
        max_length=2048,
        description="Official website; defaults to the office's website (website_token method)",
    )


class VerifyCodeRequest(BaseModel):
    """Request model for submitting an emailed code."""

    code: str = Field(
        ...,
        min_length=4,
        max_length=10,
        pattern=r"^\d+$",
        description="Numeric verification code from the email",
    )


class SubmitDocumentsRequest(BaseModel):
    """Request model for submitting already-uploaded evidence."""

    office_id: UUID
    document_urls: list[str] = Field(..., min_length=1)
    document_types: list[str] = Field(..., min_length=1)


class DocumentUpload(BaseModel):
    """One evidence file, base64 encoded."""

    document_type: str = Field(default=DOCUMENT_TYPES[0], max_length=100)
    content_type: Literal["image/jpeg", "image/png", "application/pdf"] = "image/jpeg"
    data: Base64Bytes = Field(..., description="File contents, base64 encoded")


class UploadDocumentsRequest(BaseModel):
    """Request model for uploading evidence files for review."""

    office_id: UUID
    files: list[DocumentUpload] = Field(..., min_length=1, max_length=10)

    def document_files(self) -> list[DocumentFile]:
        return [
            DocumentFile(data=f.data, document_type=f.document_type, content_type=f.content_type)
            for f in self.files
        ]


class ReviewDecisionRequest(BaseModel):
    """Request model for a reviewer decision."""

    outcome: ReviewOutcome
    notes: str | None = Field(default=None, max_length=2000)


class VerificationRequestView(BaseModel):
    """
    A verification request as its owner sees it.

    The email code hash is never exposed.
    """

    id: UUID
    office_id: UUID
    method: VerificationMethod
    status: VerificationStatus
    submitted_at: datetime
    reviewed_at: datetime | None = None
    rejection_reason: str | None = None
    reviewer_notes: str | None = None
    attempt_count: int
    email: str | None = None
    code_expires_at: datetime | None = None
    website_url: str | None = None
    website_token: str | None = None
    website_confirmed_at: datetime | None = None
    document_urls: list[str] = []
    document_types: list[str] = []

    @classmethod
    def from_request(cls, request: VerificationRequest) -> "VerificationRequestView":
        view = cls(
            id=request.id,
            office_id=request.office_id,
            method=request.method,
            status=request.status,
            submitted_at=request.submitted_at,
            reviewed_at=request.reviewed_at,
            rejection_reason=request.rejection_reason,
            reviewer_notes=request.reviewer_notes,
            attempt_count=request.attempt_count,
        )
        if request.email is not None:
            view.email = request.email.email
            view.code_expires_at = request.email.expires_at
        if request.website is not None:
            view.website_url = request.website.url
            view.website_token = request.website.token
            view.website_confirmed_at = request.website.confirmed_at
        if request.documents is not None:
            view.document_urls = list(request.documents.urls)
            view.document_types = list(request.documents.types)
        return view


class ReviewItem(VerificationRequestView):
    """A request in the reviewer work list."""

    official_id: UUID

    @classmethod
    def from_request(cls, request: VerificationRequest) -> "ReviewItem":
        base = VerificationRequestView.from_request(request)
        return cls(official_id=request.official_id, **base.model_dump())


class FlowErrorView(BaseModel):
    kind: FlowErrorKind
    message: str
    retryable: bool


class FlowResponse(BaseModel):
    """Current verification flow state for the calling official."""

    state: FlowState
    request: VerificationRequestView | None = None
    error: FlowErrorView | None = None
    meta_tag: str | None = Field(
        default=None, description="Tag to publish in the website <head> (website_token method)"
    )

    @classmethod
    def from_outcome(cls, outcome: FlowOutcome, meta_tag: str | None = None) -> "FlowResponse":
        return cls(
            state=outcome.state,
            request=(
                VerificationRequestView.from_request(outcome.request) if outcome.request else None
            ),
            error=(
                FlowErrorView(
                    kind=outcome.error.kind,
                    message=outcome.error.message,
                    retryable=outcome.error.retryable,
                )
                if outcome.error
                else None
            ),
            meta_tag=meta_tag,
        )


class OfficialStatusResponse(BaseModel):
    """Read model consumed by role gating and the public feed."""

    id: UUID
    name: str
    office_id: UUID | None = None
    verification_status: VerificationStatus
    verification_method: VerificationMethod | None = None
    verified_at: datetime | None = None
    is_verified: bool

    @classmethod
    def from_profile(cls, profile: OfficialProfile) -> "OfficialStatusResponse":
        return cls(
            id=profile.id,
            name=profile.name,
            office_id=profile.office_id,
            verification_status=profile.verification_status,
            verification_method=profile.verification_method,
            verified_at=profile.verified_at,
            is_verified=profile.is_verified,
        )


class ErrorResponse(BaseModel):
    """Standard error response model."""

    detail: str
