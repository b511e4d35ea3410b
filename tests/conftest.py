"""
Shared test fixtures and configuration.

This module provides pytest fixtures for:
- A controllable clock for expiry tests
- In-memory repositories seeded with an office and two officials
- Domain services wired over those repositories, with mocked delivery,
  fetching and storage ports
"""

from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock
from uuid import uuid4

import pytest

from src.adapters.repository import InMemoryStore, Repositories, memory_repositories
from src.domain.claims import OfficeClaimRegistry
from src.domain.codes import CodeIssuer
from src.domain.documents import DocumentReviewQueue
from src.domain.events import EventBus
from src.domain.models import GovernmentOffice, OfficialProfile
from src.domain.orchestrator import VerificationOrchestrator
from src.domain.projector import ProfileStatusProjector
from src.domain.website import WebsiteTokenVerifier

# Low bcrypt cost keeps hashing fast in tests
TEST_BCRYPT_COST = 4


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def repositories(store: InMemoryStore) -> Repositories:
    return memory_repositories(store)


@pytest.fixture
def office(store: InMemoryStore) -> GovernmentOffice:
    """Unclaimed "State Senator, District 15" with an official website."""
    return store.add_office(
        GovernmentOffice(
            id=uuid4(),
            title="State Senator",
            jurisdiction="California",
            district="District 15",
            incumbent_name="Alex Rivera",
            website_url="https://senate.ca.gov/sd15",
        )
    )


@pytest.fixture
def other_office(store: InMemoryStore) -> GovernmentOffice:
    return store.add_office(
        GovernmentOffice(
            id=uuid4(),
            title="County Supervisor",
            level="county",
            jurisdiction="Sacramento County",
            district="District 3",
        )
    )


@pytest.fixture
def official_a(store: InMemoryStore) -> OfficialProfile:
    return store.add_official(OfficialProfile(id=uuid4(), name="Official A"))


@pytest.fixture
def official_b(store: InMemoryStore) -> OfficialProfile:
    return store.add_official(OfficialProfile(id=uuid4(), name="Official B"))


@pytest.fixture
def events() -> EventBus:
    return EventBus()


@pytest.fixture
def published(events: EventBus) -> list:
    """Every event published on the shared bus, in order."""
    received: list = []
    events.subscribe(received.append)
    return received


@pytest.fixture
def email_sender() -> Mock:
    return Mock()


@pytest.fixture
def fetcher() -> Mock:
    """DocumentFetcher mock; tests set fetch_document.return_value or side_effect."""
    return Mock()


@pytest.fixture
def meta_reader() -> Mock:
    """MetaTagReader mock; tests set read_meta.return_value."""
    reader = Mock()
    reader.read_meta.return_value = []
    return reader


@pytest.fixture
def storage() -> Mock:
    storage = Mock()
    storage.upload.side_effect = lambda path, data, content_type: f"https://files.test/{path}"
    return storage


@pytest.fixture
def projector(
    repositories: Repositories, events: EventBus, clock: FakeClock
) -> ProfileStatusProjector:
    return ProfileStatusProjector(officials=repositories.officials, events=events, clock=clock)


@pytest.fixture
def registry(repositories: Repositories, events: EventBus) -> OfficeClaimRegistry:
    return OfficeClaimRegistry(offices=repositories.offices, events=events)


@pytest.fixture
def codes(repositories: Repositories, email_sender: Mock, clock: FakeClock) -> CodeIssuer:
    return CodeIssuer(
        requests=repositories.requests,
        email_sender=email_sender,
        bcrypt_cost=TEST_BCRYPT_COST,
        clock=clock,
    )


@pytest.fixture
def documents(
    repositories: Repositories,
    projector: ProfileStatusProjector,
    storage: Mock,
    events: EventBus,
    clock: FakeClock,
) -> DocumentReviewQueue:
    return DocumentReviewQueue(
        requests=repositories.requests,
        projector=projector,
        storage=storage,
        events=events,
        clock=clock,
    )


@pytest.fixture
def website(
    repositories: Repositories,
    fetcher: Mock,
    meta_reader: Mock,
    projector: ProfileStatusProjector,
    clock: FakeClock,
) -> WebsiteTokenVerifier:
    return WebsiteTokenVerifier(
        requests=repositories.requests,
        fetcher=fetcher,
        meta_reader=meta_reader,
        projector=projector,
        clock=clock,
    )


@pytest.fixture
def orchestrator(
    registry: OfficeClaimRegistry,
    codes: CodeIssuer,
    documents: DocumentReviewQueue,
    website: WebsiteTokenVerifier,
    repositories: Repositories,
    projector: ProfileStatusProjector,
    events: EventBus,
    clock: FakeClock,
) -> VerificationOrchestrator:
    return VerificationOrchestrator(
        registry=registry,
        codes=codes,
        documents=documents,
        website=website,
        requests=repositories.requests,
        officials=repositories.officials,
        projector=projector,
        events=events,
        clock=clock,
    )


@pytest.fixture
def sent_codes(email_sender: Mock) -> Callable[[], list[str]]:
    """Codes delivered so far, oldest first."""

    def codes() -> list[str]:
        return [call.args[1] for call in email_sender.send_verification_code.call_args_list]

    return codes


@pytest.fixture
def claimed_office(
    registry: OfficeClaimRegistry, office: GovernmentOffice, official_a: OfficialProfile
) -> GovernmentOffice:
    """The seeded office, claimed by official A."""
    return registry.claim(office.id, official_a.id)
