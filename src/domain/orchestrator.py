"""
Verification orchestrator - Drives one official through one method.

Flow State Machine
==================

    idle -> method_selection          office claimed by this official
    method_selection -> submitting_challenge -> awaiting proof:
        government_email  -> awaiting_code    (code sent)
        website_token     -> awaiting_code    (token issued, not yet found)
        document_upload   -> uploading_documents -> awaiting_review
    awaiting_code -> success                  (email code accepted)
    awaiting_code -> awaiting_review          (website token confirmed)
    awaiting_review -> success | error(document_rejected)
    any -> error(kind)                        reported, never raised

At most one request per official is pending at a time. A failed attempt
never releases the office claim; the official restarts with the same or
another method, which opens a new request.

Every public operation returns a FlowOutcome. Failures are mapped onto the
closed FlowErrorKind taxonomy instead of propagating, and the underlying
request is always left either pending (retryable) or terminal.
"""

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from uuid import UUID

from .claims import OfficeClaimRegistry
from .codes import CodeIssuer
from .documents import DocumentReviewQueue
from .events import EventBus, VerificationRequestUpdated
from .exceptions import (
    ConflictingRequest,
    FetchError,
    InvalidSubmission,
    NotFound,
    OfficeAlreadyClaimed,
    OfficeNotClaimed,
    OfficialHoldsOffice,
    OfficialNotFound,
    RequestNotFound,
    StoreUnavailable,
    UploadError,
    VerificationError,
)
from .models import (
    DocumentFile,
    GovernmentOffice,
    OfficialProfile,
    VerificationRequest,
    utc_now,
)
from .ports import (
    OfficialRepository,
    TokenCheck,
    VerificationMethod,
    VerificationRequestRepository,
    VerificationStatus,
    VerifyResult,
)
from .projector import ProfileStatusProjector
from .website import WebsiteTokenVerifier

logger = logging.getLogger(__name__)


class FlowState(str, Enum):
    IDLE = "idle"
    METHOD_SELECTION = "method_selection"
    SUBMITTING_CHALLENGE = "submitting_challenge"
    UPLOADING_DOCUMENTS = "uploading_documents"
    AWAITING_CODE = "awaiting_code"
    AWAITING_REVIEW = "awaiting_review"
    SUCCESS = "success"
    ERROR = "error"

    @property
    def is_awaiting_proof(self) -> bool:
        return self in (
            FlowState.UPLOADING_DOCUMENTS,
            FlowState.AWAITING_CODE,
            FlowState.AWAITING_REVIEW,
        )

    @property
    def is_terminal(self) -> bool:
        return self in (FlowState.SUCCESS, FlowState.ERROR)


class FlowErrorKind(str, Enum):
    INVALID_CODE = "invalid_code"
    EXPIRED_CODE = "expired_code"
    ATTEMPTS_EXHAUSTED = "attempts_exhausted"
    TOKEN_NOT_FOUND = "token_not_found"
    TOKEN_MISMATCH = "token_mismatch"
    DOCUMENT_REJECTED = "document_rejected"
    OFFICE_ALREADY_CLAIMED = "office_already_claimed"
    OFFICE_NOT_CLAIMED = "office_not_claimed"
    ALREADY_HOLDS_OFFICE = "already_holds_office"
    NOT_FOUND = "not_found"
    CONFLICTING_REQUEST = "conflicting_request"
    INVALID_SUBMISSION = "invalid_submission"
    UPLOAD_FAILED = "upload_failed"
    NETWORK_ERROR = "network_error"
    UNKNOWN = "unknown"

    @property
    def retryable(self) -> bool:
        return self in _RETRYABLE


_RETRYABLE = frozenset(
    {
        FlowErrorKind.INVALID_CODE,
        FlowErrorKind.EXPIRED_CODE,
        FlowErrorKind.TOKEN_NOT_FOUND,
        FlowErrorKind.TOKEN_MISMATCH,
        FlowErrorKind.UPLOAD_FAILED,
        FlowErrorKind.NETWORK_ERROR,
    }
)

_MESSAGES = {
    FlowErrorKind.INVALID_CODE: "Invalid verification code. Please check and try again.",
    FlowErrorKind.EXPIRED_CODE: "Verification code expired. Please request a new one.",
    FlowErrorKind.ATTEMPTS_EXHAUSTED: "Too many invalid codes. Please start a new verification.",
    FlowErrorKind.TOKEN_NOT_FOUND: "Verification tag not found on your website.",
    FlowErrorKind.TOKEN_MISMATCH: "The verification tag on your website does not match.",
    FlowErrorKind.DOCUMENT_REJECTED: "Your verification was rejected.",
    FlowErrorKind.OFFICE_ALREADY_CLAIMED: (
        "This office has already been claimed by another official."
    ),
    FlowErrorKind.OFFICE_NOT_CLAIMED: "Claim this office before verifying.",
    FlowErrorKind.ALREADY_HOLDS_OFFICE: (
        "You already hold another office. Release it before claiming a new one."
    ),
    FlowErrorKind.NOT_FOUND: "Could not find the requested record.",
    FlowErrorKind.CONFLICTING_REQUEST: "A verification is already in progress.",
    FlowErrorKind.INVALID_SUBMISSION: "The submission is incomplete.",
    FlowErrorKind.UPLOAD_FAILED: "Document upload failed. Please try again.",
    FlowErrorKind.NETWORK_ERROR: "Network error. Please try again.",
    FlowErrorKind.UNKNOWN: "Something went wrong.",
}

# First match wins; subclasses before their bases
_EXCEPTION_KINDS: tuple[tuple[type[Exception], FlowErrorKind], ...] = (
    (OfficeAlreadyClaimed, FlowErrorKind.OFFICE_ALREADY_CLAIMED),
    (OfficeNotClaimed, FlowErrorKind.OFFICE_NOT_CLAIMED),
    (OfficialHoldsOffice, FlowErrorKind.ALREADY_HOLDS_OFFICE),
    (NotFound, FlowErrorKind.NOT_FOUND),
    (ConflictingRequest, FlowErrorKind.CONFLICTING_REQUEST),
    (InvalidSubmission, FlowErrorKind.INVALID_SUBMISSION),
    (ValueError, FlowErrorKind.INVALID_SUBMISSION),
    (UploadError, FlowErrorKind.UPLOAD_FAILED),
    (FetchError, FlowErrorKind.NETWORK_ERROR),
    (StoreUnavailable, FlowErrorKind.NETWORK_ERROR),
)


@dataclass(frozen=True)
class FlowError:
    kind: FlowErrorKind
    detail: str | None = None

    @property
    def message(self) -> str:
        base = _MESSAGES[self.kind]
        if self.detail and self.kind in (
            FlowErrorKind.DOCUMENT_REJECTED,
            FlowErrorKind.NETWORK_ERROR,
        ):
            return f"{base} {self.detail}"
        return base

    @property
    def retryable(self) -> bool:
        return self.kind.retryable


@dataclass(frozen=True)
class FlowOutcome:
    state: FlowState
    request: VerificationRequest | None = None
    error: FlowError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _error(kind: FlowErrorKind, detail: str | None = None, request=None) -> FlowOutcome:
    return FlowOutcome(FlowState.ERROR, request=request, error=FlowError(kind, detail))


@dataclass
class VerificationOrchestrator:
    """
    Domain service selecting and driving one verification strategy.

    Stateless between calls: the flow state is derived from the persisted
    request and profile, so an interrupted flow resumes from status().
    """

    registry: OfficeClaimRegistry
    codes: CodeIssuer
    documents: DocumentReviewQueue
    website: WebsiteTokenVerifier
    requests: VerificationRequestRepository
    officials: OfficialRepository
    projector: ProfileStatusProjector
    events: EventBus | None = None
    clock: Callable[[], datetime] = field(default=utc_now)

    def claim_office(self, official_id: UUID, office_id: UUID) -> FlowOutcome:
        """Claim an office; the flow then moves to method selection."""

        def claim() -> FlowOutcome:
            self._official(official_id)
            self.registry.claim(office_id, official_id)
            return FlowOutcome(FlowState.METHOD_SELECTION, self.requests.latest(official_id))

        return self._resolve(official_id, claim)

    def start(
        self,
        official_id: UUID,
        office_id: UUID,
        method: VerificationMethod,
        target: str | None = None,
    ) -> FlowOutcome:
        """
        Select a method and issue its challenge.

        Args:
            target: Government email address, or website URL (defaults to the
                office's website). Unused for document upload.
        """
        return self._resolve(
            official_id, lambda: self._start(official_id, office_id, method, target)
        )

    def resend_code(self, official_id: UUID) -> FlowOutcome:
        def resend() -> FlowOutcome:
            request = self._active(official_id, VerificationMethod.GOVERNMENT_EMAIL)
            issued = self.codes.reissue(request)
            return FlowOutcome(FlowState.AWAITING_CODE, self._published(issued.request_id))

        return self._resolve(official_id, resend)

    def verify_code(self, official_id: UUID, code: str) -> FlowOutcome:
        def verify() -> FlowOutcome:
            request = self._active(official_id, VerificationMethod.GOVERNMENT_EMAIL)
            result = self.codes.verify(request, code)
            current = self._published(request.id)

            if result is VerifyResult.SUCCESS:
                self.projector.apply(
                    official_id, VerificationStatus.VERIFIED, VerificationMethod.GOVERNMENT_EMAIL
                )
                return FlowOutcome(FlowState.SUCCESS, current)
            if result is VerifyResult.EXPIRED:
                return _error(FlowErrorKind.EXPIRED_CODE, request=current)
            if result is VerifyResult.INVALID_CODE:
                return _error(FlowErrorKind.INVALID_CODE, request=current)
            if result is VerifyResult.LOCKED:
                return _error(FlowErrorKind.ATTEMPTS_EXHAUSTED, request=current)
            return _error(FlowErrorKind.NOT_FOUND, "No active verification code", current)

        return self._resolve(official_id, verify)

    def submit_documents(
        self,
        official_id: UUID,
        office_id: UUID,
        document_refs: Sequence[str],
        document_types: Sequence[str],
    ) -> FlowOutcome:
        """Submit already-stored evidence for manual review."""

        def submit() -> FlowOutcome:
            self._require_startable(official_id, office_id)
            request = self.documents.submit(official_id, office_id, document_refs, document_types)
            return FlowOutcome(FlowState.AWAITING_REVIEW, self._published(request.id))

        return self._resolve(official_id, submit)

    def upload_documents(
        self, official_id: UUID, office_id: UUID, files: Sequence[DocumentFile]
    ) -> FlowOutcome:
        """Upload raw evidence to storage, then submit it for review."""

        def upload() -> FlowOutcome:
            self._require_startable(official_id, office_id)
            urls = self.documents.upload(official_id, files)
            request = self.documents.submit(
                official_id, office_id, urls, [f.document_type for f in files]
            )
            return FlowOutcome(FlowState.AWAITING_REVIEW, self._published(request.id))

        return self._resolve(official_id, upload)

    def check_website(self, official_id: UUID) -> FlowOutcome:
        def check() -> FlowOutcome:
            request = self._active(official_id, VerificationMethod.WEBSITE_TOKEN)
            result = self.website.check(request)
            current = self._published(request.id)

            if result is TokenCheck.CONFIRMED:
                return FlowOutcome(FlowState.AWAITING_REVIEW, current)
            if result is TokenCheck.MISMATCH:
                return _error(FlowErrorKind.TOKEN_MISMATCH, request=current)
            return _error(FlowErrorKind.TOKEN_NOT_FOUND, request=current)

        return self._resolve(official_id, check)

    def cancel(self, official_id: UUID) -> FlowOutcome:
        """Abandon the pending request (marked expired); the office stays claimed."""

        def cancel() -> FlowOutcome:
            self._cancel_active(official_id)
            return self._status(official_id)

        return self._resolve(official_id, cancel)

    def release_claim(self, official_id: UUID, office_id: UUID) -> FlowOutcome:
        """Abandon the pending request for this office and give the office up."""

        def release() -> FlowOutcome:
            self._official(official_id)
            if self.registry.get(office_id).claimed_by != official_id:
                raise OfficeNotClaimed(f"Official {official_id} does not hold office {office_id}")
            self._cancel_active(official_id, office_id)
            self.registry.release(office_id)
            return FlowOutcome(FlowState.IDLE)

        return self._resolve(official_id, release)

    def status(self, official_id: UUID) -> FlowOutcome:
        """Derive the current flow state from persisted rows."""
        return self._resolve(official_id, lambda: self._status(official_id))

    def _start(
        self,
        official_id: UUID,
        office_id: UUID,
        method: VerificationMethod,
        target: str | None,
    ) -> FlowOutcome:
        profile = self._official(official_id)
        if profile.is_verified:
            return FlowOutcome(FlowState.SUCCESS, self.requests.latest(official_id))
        office = self._require_startable(official_id, office_id)

        if method is VerificationMethod.GOVERNMENT_EMAIL:
            if not target or not target.strip():
                raise InvalidSubmission("A government email address is required")
            issued = self.codes.issue(official_id, office_id, target)
            return FlowOutcome(FlowState.AWAITING_CODE, self._published(issued.request_id))

        if method is VerificationMethod.WEBSITE_TOKEN:
            url = target or office.website_url
            if not url:
                raise InvalidSubmission("A website URL is required")
            request = self.website.issue_token(official_id, office_id, url)
            return FlowOutcome(FlowState.AWAITING_CODE, self._published(request.id))

        return FlowOutcome(FlowState.UPLOADING_DOCUMENTS)

    def _status(self, official_id: UUID) -> FlowOutcome:
        profile = self._official(official_id)
        active = self.requests.get_active(official_id)
        if active is not None:
            state = FlowState.AWAITING_REVIEW if active.awaits_review else FlowState.AWAITING_CODE
            return FlowOutcome(state, active)

        latest = self.requests.latest(official_id)
        if (
            latest is not None
            and latest.status is VerificationStatus.VERIFIED
            and not profile.is_verified
        ):
            # The request was finalized but its projection never landed
            logger.warning("Re-projecting verified request %s onto its profile", latest.id)
            profile = self.projector.apply(official_id, VerificationStatus.VERIFIED, latest.method)
        if profile.is_verified:
            return FlowOutcome(FlowState.SUCCESS, latest)
        if latest is not None and latest.status is VerificationStatus.REJECTED:
            if latest.method is VerificationMethod.GOVERNMENT_EMAIL:
                return _error(FlowErrorKind.ATTEMPTS_EXHAUSTED, request=latest)
            return _error(FlowErrorKind.DOCUMENT_REJECTED, latest.rejection_reason, latest)
        if profile.office_id is not None:
            return FlowOutcome(FlowState.METHOD_SELECTION, latest)
        return FlowOutcome(FlowState.IDLE)

    def _require_startable(self, official_id: UUID, office_id: UUID) -> GovernmentOffice:
        if self._official(official_id).is_verified:
            raise ConflictingRequest(f"Official {official_id} is already verified")
        office = self.registry.get(office_id)
        if office.claimed_by != official_id:
            if office.is_claimed:
                raise OfficeAlreadyClaimed(str(office_id))
            raise OfficeNotClaimed(str(office_id))
        if self.requests.get_active(official_id) is not None:
            raise ConflictingRequest(f"Official {official_id} has a pending request")
        return office

    def _active(self, official_id: UUID, method: VerificationMethod) -> VerificationRequest:
        request = self.requests.get_active(official_id)
        if request is None or request.method is not method:
            raise RequestNotFound(f"No pending {method.value} request for official {official_id}")
        return request

    def _cancel_active(self, official_id: UUID, office_id: UUID | None = None) -> None:
        request = self.requests.get_active(official_id)
        if request is None or (office_id is not None and request.office_id != office_id):
            return
        expired = replace(request, status=VerificationStatus.EXPIRED, reviewed_at=self.clock())
        if self.requests.save(expired):
            logger.info("Request %s abandoned by official %s", request.id, official_id)
            self._published(request.id)
        if self._official(official_id).verification_status is VerificationStatus.PENDING:
            self.projector.apply(official_id, VerificationStatus.EXPIRED)

    def _published(self, request_id: UUID) -> VerificationRequest | None:
        """Re-read a request after a write and announce its current status."""
        request = self.requests.get(request_id)
        if request is not None and self.events is not None:
            self.events.publish(
                VerificationRequestUpdated(
                    request_id=request.id,
                    official_id=request.official_id,
                    method=request.method,
                    status=request.status,
                )
            )
        return request

    def _official(self, official_id: UUID) -> OfficialProfile:
        profile = self.officials.get(official_id)
        if profile is None:
            raise OfficialNotFound(str(official_id))
        return profile

    def _resolve(self, official_id: UUID, action: Callable[[], FlowOutcome]) -> FlowOutcome:
        try:
            return action()
        except (VerificationError, ValueError) as exc:
            kind = next(
                (k for exc_type, k in _EXCEPTION_KINDS if isinstance(exc, exc_type)),
                FlowErrorKind.UNKNOWN,
            )
            logger.warning(
                "Verification flow for official %s failed: %s (%s)", official_id, kind.value, exc
            )
            return _error(kind, str(exc) or None)
        except Exception as exc:
            logger.exception("Unexpected failure in verification flow for official %s", official_id)
            return _error(FlowErrorKind.UNKNOWN, str(exc) or type(exc).__name__)
