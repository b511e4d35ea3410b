"""
Unit tests for API v1 routes.

Tests endpoint responses with mocked domain services.
"""

import base64
from datetime import datetime, timezone
from unittest.mock import MagicMock
from uuid import uuid4

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from src.adapters.repository import InMemoryStore, memory_repositories
from src.api.dependencies import get_claim_registry, get_orchestrator, get_review_queue
from src.api.v1.routes import router
from src.config.settings import Settings, get_settings
from src.domain.claims import OfficeClaimRegistry
from src.domain.documents import DocumentReviewQueue
from src.domain.exceptions import (
    OfficeAlreadyClaimed,
    OfficeNotFound,
    OfficialHoldsOffice,
    RequestNotFound,
    RequestNotReviewable,
    StoreUnavailable,
)
from src.domain.models import (
    DocumentFile,
    EmailChallenge,
    GovernmentOffice,
    OfficialProfile,
    VerificationRequest,
)
from src.domain.orchestrator import (
    FlowError,
    FlowErrorKind,
    FlowOutcome,
    FlowState,
    VerificationOrchestrator,
)
from src.domain.ports import ReviewOutcome, VerificationMethod

REVIEWER_KEY = "reviewer-secret"
OFFICIAL_ID = uuid4()


def official_headers() -> dict:
    return {"X-Official-Id": str(OFFICIAL_ID)}


def flow_error(kind: FlowErrorKind) -> FlowOutcome:
    return FlowOutcome(FlowState.ERROR, error=FlowError(kind))


def pending_email_request() -> VerificationRequest:
    return VerificationRequest(
        official_id=OFFICIAL_ID,
        office_id=uuid4(),
        method=VerificationMethod.GOVERNMENT_EMAIL,
        email=EmailChallenge(
            email="a@senate.ca.gov",
            code_hash="$2b$04$hash",
            expires_at=datetime(2025, 3, 1, 9, 15, tzinfo=timezone.utc),
        ),
    )


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def app(store: InMemoryStore) -> FastAPI:
    """Create test FastAPI application."""
    test_app = FastAPI()
    test_app.include_router(router, prefix="/v1")
    test_app.state.repositories = memory_repositories(store)
    test_app.dependency_overrides[get_settings] = lambda: Settings(reviewer_api_key=REVIEWER_KEY)
    return test_app


@pytest.fixture
def orchestrator(app: FastAPI) -> MagicMock:
    mock = MagicMock(spec=VerificationOrchestrator)
    app.dependency_overrides[get_orchestrator] = lambda: mock
    return mock


@pytest.fixture
def registry(app: FastAPI) -> MagicMock:
    mock = MagicMock(spec=OfficeClaimRegistry)
    app.dependency_overrides[get_claim_registry] = lambda: mock
    return mock


@pytest.fixture
def queue(app: FastAPI) -> MagicMock:
    mock = MagicMock(spec=DocumentReviewQueue)
    app.dependency_overrides[get_review_queue] = lambda: mock
    return mock


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    """Create test client for the application."""
    return TestClient(app)


class TestOfficeEndpoints:
    """Tests for /v1/offices endpoints."""

    def test_search_returns_offices(self, client: TestClient, registry: MagicMock) -> None:
        office = GovernmentOffice(id=uuid4(), title="State Senator", jurisdiction="California")
        registry.search.return_value = [office]

        response = client.get("/v1/offices", params={"q": "senator"})

        assert response.status_code == 200
        assert response.json()[0]["id"] == str(office.id)
        registry.search.assert_called_once_with("senator", None)

    def test_unknown_office_returns_404(self, client: TestClient, registry: MagicMock) -> None:
        registry.get.side_effect = OfficeNotFound("x")

        response = client.get(f"/v1/offices/{uuid4()}")

        assert response.status_code == 404
        assert response.json() == {"detail": "Office not found"}

    def test_claim_returns_201(self, client: TestClient, registry: MagicMock) -> None:
        office_id = uuid4()
        registry.claim.return_value = GovernmentOffice(
            id=office_id,
            title="State Senator",
            jurisdiction="California",
            is_claimed=True,
            claimed_by=OFFICIAL_ID,
        )

        response = client.post(f"/v1/offices/{office_id}/claim", headers=official_headers())

        assert response.status_code == 201
        assert response.json()["is_claimed"] is True
        registry.claim.assert_called_once_with(office_id, OFFICIAL_ID)

    def test_claim_contention_returns_409(
        self, client: TestClient, registry: MagicMock
    ) -> None:
        registry.claim.side_effect = OfficeAlreadyClaimed("x")

        response = client.post(f"/v1/offices/{uuid4()}/claim", headers=official_headers())

        assert response.status_code == 409
        assert response.json() == {
            "detail": "This office has already been claimed by another official."
        }

    def test_claim_while_holding_another_office_returns_409(
        self, client: TestClient, registry: MagicMock
    ) -> None:
        registry.claim.side_effect = OfficialHoldsOffice("x")

        response = client.post(f"/v1/offices/{uuid4()}/claim", headers=official_headers())

        assert response.status_code == 409
        assert response.json() == {
            "detail": "You already hold another office. Release it before claiming a new one."
        }

    def test_claim_store_outage_returns_502(
        self, client: TestClient, registry: MagicMock
    ) -> None:
        registry.claim.side_effect = StoreUnavailable("down")

        response = client.post(f"/v1/offices/{uuid4()}/claim", headers=official_headers())

        assert response.status_code == 502

    def test_claim_requires_official_header(self, client: TestClient, registry: MagicMock) -> None:
        response = client.post(f"/v1/offices/{uuid4()}/claim")

        assert response.status_code == 422
        registry.claim.assert_not_called()

    def test_claim_rejects_malformed_official_id(
        self, client: TestClient, registry: MagicMock
    ) -> None:
        response = client.post(
            f"/v1/offices/{uuid4()}/claim", headers={"X-Official-Id": "not-a-uuid"}
        )
        assert response.status_code == 422

    def test_release_by_other_official_returns_403(
        self, client: TestClient, registry: MagicMock, orchestrator: MagicMock
    ) -> None:
        office_id = uuid4()
        registry.get.return_value = GovernmentOffice(
            id=office_id,
            title="State Senator",
            jurisdiction="California",
            is_claimed=True,
            claimed_by=uuid4(),
        )

        response = client.post(f"/v1/offices/{office_id}/release", headers=official_headers())

        assert response.status_code == 403
        orchestrator.release_claim.assert_not_called()

    def test_release_by_holder_returns_204(
        self, client: TestClient, registry: MagicMock, orchestrator: MagicMock
    ) -> None:
        office_id = uuid4()
        registry.get.return_value = GovernmentOffice(
            id=office_id,
            title="State Senator",
            jurisdiction="California",
            is_claimed=True,
            claimed_by=OFFICIAL_ID,
        )
        orchestrator.release_claim.return_value = FlowOutcome(FlowState.IDLE)

        response = client.post(f"/v1/offices/{office_id}/release", headers=official_headers())

        assert response.status_code == 204
        orchestrator.release_claim.assert_called_once_with(OFFICIAL_ID, office_id)


class TestVerificationEndpoints:
    """Tests for /v1/verification endpoints."""

    def test_start_email_returns_201(self, client: TestClient, orchestrator: MagicMock) -> None:
        request = pending_email_request()
        orchestrator.start.return_value = FlowOutcome(FlowState.AWAITING_CODE, request)

        response = client.post(
            "/v1/verification/start",
            headers=official_headers(),
            json={
                "office_id": str(request.office_id),
                "method": "government_email",
                "email": "a@senate.ca.gov",
            },
        )

        assert response.status_code == 201
        body = response.json()
        assert body["state"] == "awaiting_code"
        assert body["request"]["email"] == "a@senate.ca.gov"
        assert "code_hash" not in body["request"]
        orchestrator.start.assert_called_once_with(
            OFFICIAL_ID, request.office_id, VerificationMethod.GOVERNMENT_EMAIL, "a@senate.ca.gov"
        )

    def test_start_website_passes_url(self, client: TestClient, orchestrator: MagicMock) -> None:
        office_id = uuid4()
        orchestrator.start.return_value = FlowOutcome(FlowState.AWAITING_CODE)

        client.post(
            "/v1/verification/start",
            headers=official_headers(),
            json={
                "office_id": str(office_id),
                "method": "website_token",
                "email": "ignored@senate.ca.gov",
                "website_url": "https://senate.ca.gov",
            },
        )

        orchestrator.start.assert_called_once_with(
            OFFICIAL_ID, office_id, VerificationMethod.WEBSITE_TOKEN, "https://senate.ca.gov"
        )

    @pytest.mark.parametrize(
        ("kind", "status_code"),
        [
            (FlowErrorKind.INVALID_CODE, 400),
            (FlowErrorKind.EXPIRED_CODE, 400),
            (FlowErrorKind.ATTEMPTS_EXHAUSTED, 400),
            (FlowErrorKind.NOT_FOUND, 404),
            (FlowErrorKind.CONFLICTING_REQUEST, 409),
            (FlowErrorKind.ALREADY_HOLDS_OFFICE, 409),
            (FlowErrorKind.NETWORK_ERROR, 502),
            (FlowErrorKind.UNKNOWN, 500),
        ],
    )
    def test_verify_errors_map_to_status(
        self,
        client: TestClient,
        orchestrator: MagicMock,
        kind: FlowErrorKind,
        status_code: int,
    ) -> None:
        orchestrator.verify_code.return_value = flow_error(kind)

        response = client.post(
            "/v1/verification/email/verify", headers=official_headers(), json={"code": "123456"}
        )

        assert response.status_code == status_code
        assert response.headers["X-Error-Kind"] == kind.value
        assert response.json() == {"detail": FlowError(kind).message}

    def test_verify_validates_code_format(
        self, client: TestClient, orchestrator: MagicMock
    ) -> None:
        response = client.post(
            "/v1/verification/email/verify", headers=official_headers(), json={"code": "abc"}
        )

        assert response.status_code == 422
        orchestrator.verify_code.assert_not_called()

    def test_resend_returns_flow(self, client: TestClient, orchestrator: MagicMock) -> None:
        orchestrator.resend_code.return_value = FlowOutcome(
            FlowState.AWAITING_CODE, pending_email_request()
        )

        response = client.post("/v1/verification/email/resend", headers=official_headers())

        assert response.status_code == 200
        assert response.json()["state"] == "awaiting_code"

    def test_upload_decodes_files(self, client: TestClient, orchestrator: MagicMock) -> None:
        office_id = uuid4()
        orchestrator.upload_documents.return_value = FlowOutcome(FlowState.AWAITING_REVIEW)

        response = client.post(
            "/v1/verification/documents/upload",
            headers=official_headers(),
            json={
                "office_id": str(office_id),
                "files": [
                    {
                        "document_type": "Official Letter",
                        "content_type": "application/pdf",
                        "data": base64.b64encode(b"%PDF-1.7").decode(),
                    }
                ],
            },
        )

        assert response.status_code == 201
        assert response.json()["state"] == "awaiting_review"
        orchestrator.upload_documents.assert_called_once_with(
            OFFICIAL_ID,
            office_id,
            [
                DocumentFile(
                    data=b"%PDF-1.7",
                    document_type="Official Letter",
                    content_type="application/pdf",
                )
            ],
        )

    @pytest.mark.parametrize(
        "files",
        [
            [],
            [{"content_type": "text/html", "data": "PGgxPg=="}],
        ],
    )
    def test_upload_validates_files(
        self, client: TestClient, orchestrator: MagicMock, files: list
    ) -> None:
        response = client.post(
            "/v1/verification/documents/upload",
            headers=official_headers(),
            json={"office_id": str(uuid4()), "files": files},
        )

        assert response.status_code == 422
        orchestrator.upload_documents.assert_not_called()

    def test_status_reports_rejection_in_body(
        self, client: TestClient, orchestrator: MagicMock
    ) -> None:
        """A past rejection is the current state, not a failed request."""
        orchestrator.status.return_value = FlowOutcome(
            FlowState.ERROR, error=FlowError(FlowErrorKind.DOCUMENT_REJECTED, "Illegible")
        )

        response = client.get("/v1/verification/status", headers=official_headers())

        assert response.status_code == 200
        body = response.json()
        assert body["state"] == "error"
        assert body["error"]["kind"] == "document_rejected"
        assert body["error"]["message"] == "Your verification was rejected. Illegible"

    def test_status_unknown_official_returns_404(
        self, client: TestClient, orchestrator: MagicMock
    ) -> None:
        orchestrator.status.return_value = flow_error(FlowErrorKind.NOT_FOUND)

        response = client.get("/v1/verification/status", headers=official_headers())

        assert response.status_code == 404


class TestReviewEndpoints:
    """Tests for reviewer endpoints."""

    def test_pending_requires_reviewer_key(self, client: TestClient, queue: MagicMock) -> None:
        response = client.get("/v1/reviews/pending")

        assert response.status_code == 401
        assert response.json() == {"detail": "Reviewer credentials required"}
        queue.pending.assert_not_called()

    def test_wrong_reviewer_key_is_rejected(self, client: TestClient, queue: MagicMock) -> None:
        response = client.get("/v1/reviews/pending", headers={"X-Reviewer-Key": "guess"})
        assert response.status_code == 401

    def test_pending_lists_requests(self, client: TestClient, queue: MagicMock) -> None:
        request = pending_email_request()
        queue.pending.return_value = [request]

        response = client.get("/v1/reviews/pending", headers={"X-Reviewer-Key": REVIEWER_KEY})

        assert response.status_code == 200
        assert response.json()[0]["official_id"] == str(OFFICIAL_ID)
        queue.pending.assert_called_once_with(50)

    @pytest.mark.parametrize(
        ("error", "status_code"),
        [
            (RequestNotFound("x"), 404),
            (RequestNotReviewable("x"), 409),
            (StoreUnavailable("down"), 502),
        ],
    )
    def test_decision_errors(
        self, client: TestClient, queue: MagicMock, error: Exception, status_code: int
    ) -> None:
        queue.decide.side_effect = error

        response = client.post(
            f"/v1/reviews/{uuid4()}/decision",
            headers={"X-Reviewer-Key": REVIEWER_KEY},
            json={"outcome": "approved"},
        )

        assert response.status_code == status_code

    def test_decision_passes_outcome_and_notes(
        self, client: TestClient, queue: MagicMock
    ) -> None:
        request = pending_email_request()
        queue.decide.return_value = request

        response = client.post(
            f"/v1/reviews/{request.id}/decision",
            headers={"X-Reviewer-Key": REVIEWER_KEY},
            json={"outcome": "rejected", "notes": "Document illegible"},
        )

        assert response.status_code == 200
        queue.decide.assert_called_once_with(
            request.id, ReviewOutcome.REJECTED, "Document illegible"
        )


class TestOfficialStatusEndpoint:
    """Tests for GET /v1/officials/{id}/status."""

    def test_returns_profile(self, client: TestClient, store: InMemoryStore) -> None:
        official = store.add_official(OfficialProfile(id=uuid4(), name="Official A"))

        response = client.get(f"/v1/officials/{official.id}/status")

        assert response.status_code == 200
        assert response.json()["verification_status"] == "unverified"
        assert response.json()["is_verified"] is False

    def test_unknown_official_returns_404(self, client: TestClient) -> None:
        response = client.get(f"/v1/officials/{uuid4()}/status")
        assert response.status_code == 404
