"""
API v1 routes.

Defines REST endpoints for office search and claiming, the verification
flow of the calling official, reviewer decisions and the official status
read model.

Endpoints are plain ``def`` functions: the domain services block (bcrypt,
database, website fetch), so FastAPI runs them in its worker threadpool.
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from src.adapters.repository import Repositories
from src.api.dependencies import (
    get_claim_registry,
    get_official_id,
    get_orchestrator,
    get_repositories,
    get_review_queue,
    get_website_verifier,
    require_reviewer,
)
from src.api.models import (
    AvailabilityResponse,
    ErrorResponse,
    FlowResponse,
    OfficeResponse,
    OfficialStatusResponse,
    ReviewDecisionRequest,
    ReviewItem,
    StartVerificationRequest,
    SubmitDocumentsRequest,
    UploadDocumentsRequest,
    VerifyCodeRequest,
)
from src.domain.claims import OfficeClaimRegistry
from src.domain.documents import DocumentReviewQueue
from src.domain.exceptions import (
    OfficeAlreadyClaimed,
    OfficeNotFound,
    OfficialHoldsOffice,
    OfficialNotFound,
    RequestNotFound,
    RequestNotReviewable,
    StoreUnavailable,
)
from src.domain.orchestrator import FlowErrorKind, FlowOutcome, VerificationOrchestrator
from src.domain.ports import VerificationMethod
from src.domain.website import WebsiteTokenVerifier

router = APIRouter(tags=["v1"])

OfficialId = Annotated[UUID, Depends(get_official_id)]
Orchestrator = Annotated[VerificationOrchestrator, Depends(get_orchestrator)]
Registry = Annotated[OfficeClaimRegistry, Depends(get_claim_registry)]

_ERROR_STATUS = {
    FlowErrorKind.INVALID_CODE: status.HTTP_400_BAD_REQUEST,
    FlowErrorKind.EXPIRED_CODE: status.HTTP_400_BAD_REQUEST,
    FlowErrorKind.ATTEMPTS_EXHAUSTED: status.HTTP_400_BAD_REQUEST,
    FlowErrorKind.TOKEN_NOT_FOUND: status.HTTP_400_BAD_REQUEST,
    FlowErrorKind.TOKEN_MISMATCH: status.HTTP_400_BAD_REQUEST,
    FlowErrorKind.DOCUMENT_REJECTED: status.HTTP_400_BAD_REQUEST,
    FlowErrorKind.INVALID_SUBMISSION: status.HTTP_400_BAD_REQUEST,
    FlowErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    FlowErrorKind.OFFICE_ALREADY_CLAIMED: status.HTTP_409_CONFLICT,
    FlowErrorKind.OFFICE_NOT_CLAIMED: status.HTTP_409_CONFLICT,
    FlowErrorKind.ALREADY_HOLDS_OFFICE: status.HTTP_409_CONFLICT,
    FlowErrorKind.CONFLICTING_REQUEST: status.HTTP_409_CONFLICT,
    FlowErrorKind.UPLOAD_FAILED: status.HTTP_502_BAD_GATEWAY,
    FlowErrorKind.NETWORK_ERROR: status.HTTP_502_BAD_GATEWAY,
    FlowErrorKind.UNKNOWN: status.HTTP_500_INTERNAL_SERVER_ERROR,
}

_FLOW_ERRORS = {
    400: {"model": ErrorResponse, "description": "Invalid, expired or mismatched proof"},
    404: {"model": ErrorResponse, "description": "Official, office or request not found"},
    409: {"model": ErrorResponse, "description": "Office or request conflict"},
    502: {"model": ErrorResponse, "description": "Website or storage unreachable"},
}


def _flow_response(
    outcome: FlowOutcome, website: WebsiteTokenVerifier | None = None
) -> FlowResponse:
    """
    Translate an orchestrator outcome into a response.

    Failed outcomes become an HTTPException carrying the user-facing message,
    with the machine-readable kind in the X-Error-Kind header.
    """
    if outcome.error is not None:
        raise HTTPException(
            status_code=_ERROR_STATUS[outcome.error.kind],
            detail=outcome.error.message,
            headers={"X-Error-Kind": outcome.error.kind.value},
        )

    meta_tag = None
    request = outcome.request
    if website is not None and request is not None and request.website is not None:
        meta_tag = website.meta_tag(request.website.token)
    return FlowResponse.from_outcome(outcome, meta_tag=meta_tag)


# --- Offices -----------------------------------------------------------------


@router.get(
    "/offices",
    response_model=list[OfficeResponse],
    summary="Search government offices",
    description="Case-insensitive match on title, jurisdiction, district or incumbent. "
    "Queries shorter than the minimum length return an empty list.",
)
def search_offices(
    registry: Registry,
    q: Annotated[str, Query(max_length=200)] = "",
    limit: Annotated[int | None, Query(ge=1, le=100)] = None,
) -> list[OfficeResponse]:
    return [OfficeResponse.from_office(o) for o in registry.search(q, limit)]


@router.get(
    "/offices/unclaimed",
    response_model=list[OfficeResponse],
    summary="List unclaimed offices",
)
def list_unclaimed_offices(
    registry: Registry,
    jurisdiction: str | None = None,
    limit: Annotated[int | None, Query(ge=1, le=100)] = None,
) -> list[OfficeResponse]:
    return [OfficeResponse.from_office(o) for o in registry.list_unclaimed(jurisdiction, limit)]


@router.get(
    "/offices/{office_id}",
    response_model=OfficeResponse,
    responses={404: {"model": ErrorResponse, "description": "Office not found"}},
    summary="Get an office",
)
def get_office(office_id: UUID, registry: Registry) -> OfficeResponse:
    try:
        return OfficeResponse.from_office(registry.get(office_id))
    except OfficeNotFound:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Office not found"
        ) from None


@router.get(
    "/offices/{office_id}/availability",
    response_model=AvailabilityResponse,
    responses={404: {"model": ErrorResponse, "description": "Office not found"}},
    summary="Check whether an office can be claimed",
)
def office_availability(office_id: UUID, registry: Registry) -> AvailabilityResponse:
    try:
        available = registry.is_available(office_id)
    except OfficeNotFound:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Office not found"
        ) from None
    return AvailabilityResponse(office_id=office_id, available=available)


@router.post(
    "/offices/{office_id}/claim",
    response_model=OfficeResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        404: {"model": ErrorResponse, "description": "Office or official not found"},
        409: {
            "model": ErrorResponse,
            "description": "Office already claimed, or the official holds another office",
        },
    },
    summary="Claim an office",
    description="Reserve the office for the calling official. "
    "Verification is required afterwards before the profile becomes public.",
)
def claim_office(office_id: UUID, official_id: OfficialId, registry: Registry) -> OfficeResponse:
    try:
        office = registry.claim(office_id, official_id)
    except OfficeAlreadyClaimed:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="This office has already been claimed by another official.",
        ) from None
    except OfficialHoldsOffice:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="You already hold another office. Release it before claiming a new one.",
        ) from None
    except OfficeNotFound:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Office not found"
        ) from None
    except OfficialNotFound:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Official not found"
        ) from None
    except StoreUnavailable:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY, detail="Store unavailable"
        ) from None
    return OfficeResponse.from_office(office)


@router.post(
    "/offices/{office_id}/release",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={
        403: {"model": ErrorResponse, "description": "Office held by someone else"},
        404: {"model": ErrorResponse, "description": "Office not found"},
    },
    summary="Release a claimed office",
    description="Abandons any pending verification and gives up the claim.",
)
def release_office(
    office_id: UUID,
    official_id: OfficialId,
    registry: Registry,
    orchestrator: Orchestrator,
) -> Response:
    try:
        office = registry.get(office_id)
    except OfficeNotFound:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Office not found"
        ) from None
    except StoreUnavailable:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY, detail="Store unavailable"
        ) from None
    if office.claimed_by != official_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the claiming official can release this office",
        )

    _flow_response(orchestrator.release_claim(official_id, office_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# --- Verification flow -------------------------------------------------------


@router.post(
    "/verification/start",
    response_model=FlowResponse,
    status_code=status.HTTP_201_CREATED,
    responses=_FLOW_ERRORS,
    summary="Start verification",
    description="Choose a method for the claimed office. government_email sends a code; "
    "website_token returns the meta tag to publish; document_upload expects a "
    "follow-up POST /verification/documents.",
)
def start_verification(
    body: StartVerificationRequest,
    official_id: OfficialId,
    orchestrator: Orchestrator,
    website: Annotated[WebsiteTokenVerifier, Depends(get_website_verifier)],
) -> FlowResponse:
    target = body.email if body.method is VerificationMethod.GOVERNMENT_EMAIL else body.website_url
    outcome = orchestrator.start(official_id, body.office_id, body.method, target)
    return _flow_response(outcome, website)


@router.post(
    "/verification/email/resend",
    response_model=FlowResponse,
    responses=_FLOW_ERRORS,
    summary="Resend the email code",
)
def resend_code(official_id: OfficialId, orchestrator: Orchestrator) -> FlowResponse:
    return _flow_response(orchestrator.resend_code(official_id))


@router.post(
    "/verification/email/verify",
    response_model=FlowResponse,
    responses=_FLOW_ERRORS,
    summary="Submit the email code",
)
def verify_code(
    body: VerifyCodeRequest, official_id: OfficialId, orchestrator: Orchestrator
) -> FlowResponse:
    return _flow_response(orchestrator.verify_code(official_id, body.code))


@router.post(
    "/verification/documents",
    response_model=FlowResponse,
    status_code=status.HTTP_201_CREATED,
    responses=_FLOW_ERRORS,
    summary="Submit documents for review",
)
def submit_documents(
    body: SubmitDocumentsRequest, official_id: OfficialId, orchestrator: Orchestrator
) -> FlowResponse:
    outcome = orchestrator.submit_documents(
        official_id, body.office_id, body.document_urls, body.document_types
    )
    return _flow_response(outcome)


@router.post(
    "/verification/documents/upload",
    response_model=FlowResponse,
    status_code=status.HTTP_201_CREATED,
    responses=_FLOW_ERRORS,
    summary="Upload documents for review",
    description="Stores each base64-encoded file and submits the stored copies for review.",
)
def upload_documents(
    body: UploadDocumentsRequest, official_id: OfficialId, orchestrator: Orchestrator
) -> FlowResponse:
    outcome = orchestrator.upload_documents(official_id, body.office_id, body.document_files())
    return _flow_response(outcome)


@router.post(
    "/verification/website/check",
    response_model=FlowResponse,
    responses=_FLOW_ERRORS,
    summary="Check the website for the verification tag",
)
def check_website(
    official_id: OfficialId,
    orchestrator: Orchestrator,
    website: Annotated[WebsiteTokenVerifier, Depends(get_website_verifier)],
) -> FlowResponse:
    return _flow_response(orchestrator.check_website(official_id), website)


@router.post(
    "/verification/cancel",
    response_model=FlowResponse,
    responses=_FLOW_ERRORS,
    summary="Abandon the pending verification",
    description="The office stays claimed; a new method can be started afterwards.",
)
def cancel_verification(official_id: OfficialId, orchestrator: Orchestrator) -> FlowResponse:
    return _flow_response(orchestrator.cancel(official_id))


@router.get(
    "/verification/status",
    response_model=FlowResponse,
    responses={404: {"model": ErrorResponse, "description": "Official not found"}},
    summary="Current verification state",
    description="Derived from stored requests, so an interrupted flow can be resumed. "
    "A rejected or exhausted attempt is reported in the body, not as an HTTP error.",
)
def verification_status(
    official_id: OfficialId,
    orchestrator: Orchestrator,
    website: Annotated[WebsiteTokenVerifier, Depends(get_website_verifier)],
) -> FlowResponse:
    outcome = orchestrator.status(official_id)
    if outcome.error is not None and outcome.error.kind in (
        FlowErrorKind.NOT_FOUND,
        FlowErrorKind.NETWORK_ERROR,
        FlowErrorKind.UNKNOWN,
    ):
        return _flow_response(outcome)

    meta_tag = None
    if outcome.request is not None and outcome.request.website is not None:
        meta_tag = website.meta_tag(outcome.request.website.token)
    return FlowResponse.from_outcome(outcome, meta_tag=meta_tag)


# --- Reviewers ---------------------------------------------------------------


@router.get(
    "/reviews/pending",
    response_model=list[ReviewItem],
    dependencies=[Depends(require_reviewer)],
    responses={401: {"model": ErrorResponse, "description": "Reviewer key missing or wrong"}},
    summary="Requests awaiting a reviewer decision",
)
def pending_reviews(
    queue: Annotated[DocumentReviewQueue, Depends(get_review_queue)],
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
) -> list[ReviewItem]:
    return [ReviewItem.from_request(r) for r in queue.pending(limit)]


@router.post(
    "/reviews/{request_id}/decision",
    response_model=ReviewItem,
    dependencies=[Depends(require_reviewer)],
    responses={
        401: {"model": ErrorResponse, "description": "Reviewer key missing or wrong"},
        404: {"model": ErrorResponse, "description": "Request not found"},
        409: {"model": ErrorResponse, "description": "Request is not awaiting review"},
    },
    summary="Approve or reject a verification request",
)
def decide_review(
    request_id: UUID,
    body: ReviewDecisionRequest,
    queue: Annotated[DocumentReviewQueue, Depends(get_review_queue)],
) -> ReviewItem:
    try:
        decided = queue.decide(request_id, body.outcome, body.notes)
    except RequestNotFound:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Verification request not found"
        ) from None
    except RequestNotReviewable:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Verification request is not awaiting review",
        ) from None
    except StoreUnavailable:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY, detail="Store unavailable"
        ) from None
    return ReviewItem.from_request(decided)


# --- Officials ---------------------------------------------------------------


@router.get(
    "/officials/{official_id}/status",
    response_model=OfficialStatusResponse,
    responses={404: {"model": ErrorResponse, "description": "Official not found"}},
    summary="Verification status of an official",
    description="Read model for dashboard access and public feed visibility.",
)
def official_status(
    official_id: UUID,
    repositories: Annotated[Repositories, Depends(get_repositories)],
) -> OfficialStatusResponse:
    try:
        profile = repositories.officials.get(official_id)
    except StoreUnavailable:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY, detail="Store unavailable"
        ) from None
    if profile is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Official not found")
    return OfficialStatusResponse.from_profile(profile)
