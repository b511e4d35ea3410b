"""
Document review queue - Manual adjudication of uploaded evidence.

Review State Machine
====================

    none -> pending        submit(): evidence stored, profile shows "under review"
    pending -> verified    decide(APPROVED)
    pending -> rejected    decide(REJECTED), notes kept as the rejection reason

Nothing leaves pending on a timer; only a reviewer decision moves it. The
same decision step also closes website-token requests once their token has
been confirmed on the official's site.
"""

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field, replace
from datetime import datetime
from uuid import UUID

from .events import EventBus, VerificationRequestUpdated
from .exceptions import InvalidSubmission, RequestNotFound, RequestNotReviewable
from .models import DocumentEvidence, DocumentFile, VerificationRequest, utc_now
from .ports import (
    ObjectStorage,
    ReviewOutcome,
    VerificationMethod,
    VerificationRequestRepository,
    VerificationStatus,
)
from .projector import ProfileStatusProjector

logger = logging.getLogger(__name__)

_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "application/pdf": "pdf",
}


@dataclass
class DocumentReviewQueue:
    """Domain service for evidence submission and reviewer decisions."""

    requests: VerificationRequestRepository
    projector: ProfileStatusProjector
    storage: ObjectStorage | None = None
    events: EventBus | None = None
    clock: Callable[[], datetime] = field(default=utc_now)

    def submit(
        self,
        official_id: UUID,
        office_id: UUID,
        document_refs: Sequence[str],
        document_types: Sequence[str],
    ) -> VerificationRequest:
        """
        Submit stored evidence for review.

        The profile moves to PENDING immediately; its verified status is
        unchanged until a reviewer approves.

        Raises:
            InvalidSubmission: No documents, or one type per document missing
            ConflictingRequest: If the official already has a pending request
        """
        refs = tuple(ref.strip() for ref in document_refs if ref and ref.strip())
        types = tuple(document_types)
        if not refs:
            raise InvalidSubmission("At least one document is required")
        if len(types) != len(refs):
            raise InvalidSubmission(
                f"Expected {len(refs)} document types, got {len(types)}"
            )

        request = VerificationRequest(
            official_id=official_id,
            office_id=office_id,
            method=VerificationMethod.DOCUMENT_UPLOAD,
            documents=DocumentEvidence(urls=refs, types=types),
            submitted_at=self.clock(),
        )
        self.requests.create(request)
        logger.info("Documents submitted for review: request %s (%d files)", request.id, len(refs))

        self.projector.apply(official_id, VerificationStatus.PENDING)
        return request

    def upload(self, official_id: UUID, files: Sequence[DocumentFile]) -> list[str]:
        """
        Store raw evidence and return public URLs, one per file.

        Raises:
            UploadError: If storage fails
            InvalidSubmission: If no storage is configured or no files given
        """
        if self.storage is None:
            raise InvalidSubmission("Document storage is not configured")
        if not files:
            raise InvalidSubmission("At least one document is required")

        stamp = int(self.clock().timestamp())
        urls = []
        for index, document in enumerate(files):
            extension = _EXTENSIONS.get(document.content_type, "bin")
            path = f"{official_id}/doc_{index}_{stamp}.{extension}"
            urls.append(self.storage.upload(path, document.data, document.content_type))
        return urls

    def decide(
        self, request_id: UUID, outcome: ReviewOutcome, notes: str | None = None
    ) -> VerificationRequest:
        """
        Record a reviewer decision.

        APPROVED projects VERIFIED onto the profile. REJECTED records the notes
        as the rejection reason and leaves the office claim intact, so the
        official can retry with another method.

        Raises:
            RequestNotFound: If the request does not exist
            RequestNotReviewable: If it is terminal or not awaiting review
        """
        request = self.requests.get(request_id)
        if request is None:
            raise RequestNotFound(str(request_id))
        if not request.awaits_review:
            raise RequestNotReviewable(str(request_id))

        now = self.clock()
        if outcome is ReviewOutcome.APPROVED:
            decided = replace(
                request, status=VerificationStatus.VERIFIED, reviewed_at=now, reviewer_notes=notes
            )
        else:
            decided = replace(
                request,
                status=VerificationStatus.REJECTED,
                reviewed_at=now,
                reviewer_notes=notes,
                rejection_reason=notes or "Rejected by reviewer",
            )

        if not self.requests.save(decided):
            raise RequestNotReviewable(str(request_id))
        logger.info("Request %s %s by reviewer", request_id, outcome.value)
        if self.events is not None:
            self.events.publish(
                VerificationRequestUpdated(
                    request_id=decided.id,
                    official_id=decided.official_id,
                    method=decided.method,
                    status=decided.status,
                )
            )

        if outcome is ReviewOutcome.APPROVED:
            self.projector.apply(request.official_id, VerificationStatus.VERIFIED, request.method)
        else:
            self.projector.apply(request.official_id, VerificationStatus.REJECTED)
        return decided

    def pending(self, limit: int = 50) -> list[VerificationRequest]:
        """Reviewer work list, oldest first."""
        return self.requests.list_reviewable(limit)
