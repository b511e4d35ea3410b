"""
FastAPI dependencies - Dependency injection factories.

This module provides Depends() factories for injecting
domain services and infrastructure adapters into routes.
"""

import secrets
from datetime import timedelta
from functools import lru_cache
from typing import Annotated
from uuid import UUID

from fastapi import Depends, Header, HTTPException, Request, status

from src.adapters.http.fetcher import HttpxDocumentFetcher
from src.adapters.http.meta import LxmlMetaTagReader
from src.adapters.repository import Repositories
from src.adapters.smtp.console import ConsoleEmailSender
from src.adapters.storage.filesystem import FilesystemObjectStorage
from src.config.settings import Settings, get_settings
from src.domain.claims import OfficeClaimRegistry
from src.domain.codes import CodeIssuer
from src.domain.documents import DocumentReviewQueue
from src.domain.events import EventBus
from src.domain.orchestrator import VerificationOrchestrator
from src.domain.projector import ProfileStatusProjector
from src.domain.website import WebsiteTokenVerifier

# Module-level singletons - stateless adapters and the process event bus
_email_sender = ConsoleEmailSender()
_meta_reader = LxmlMetaTagReader()
_event_bus = EventBus()


def get_repositories(request: Request) -> Repositories:
    """
    Get repositories from app state.

    The backend (PostgreSQL or in-memory) is chosen during app lifespan startup.
    """
    return request.app.state.repositories


def get_event_bus() -> EventBus:
    return _event_bus


def get_email_sender() -> ConsoleEmailSender:
    """Get console email sender (singleton)."""
    return _email_sender


@lru_cache
def get_document_fetcher() -> HttpxDocumentFetcher:
    return HttpxDocumentFetcher(max_bytes=get_settings().website_max_bytes)


@lru_cache
def get_object_storage() -> FilesystemObjectStorage:
    settings = get_settings()
    return FilesystemObjectStorage(
        root=settings.document_storage_root,
        public_base_url=settings.document_public_base_url,
    )


def get_projector(request: Request) -> ProfileStatusProjector:
    return ProfileStatusProjector(
        officials=get_repositories(request).officials, events=get_event_bus()
    )


def get_claim_registry(request: Request) -> OfficeClaimRegistry:
    settings = get_settings()
    return OfficeClaimRegistry(
        offices=get_repositories(request).offices,
        events=get_event_bus(),
        min_query_length=settings.search_min_query_length,
        search_limit=settings.search_limit,
    )


def get_code_issuer(request: Request) -> CodeIssuer:
    settings = get_settings()
    return CodeIssuer(
        requests=get_repositories(request).requests,
        email_sender=get_email_sender(),
        ttl=timedelta(minutes=settings.code_ttl_minutes),
        code_length=settings.code_length,
        max_attempts=settings.max_code_attempts,
        bcrypt_cost=settings.bcrypt_cost,
    )


def get_review_queue(request: Request) -> DocumentReviewQueue:
    return DocumentReviewQueue(
        requests=get_repositories(request).requests,
        projector=get_projector(request),
        storage=get_object_storage(),
        events=get_event_bus(),
    )


def get_website_verifier(request: Request) -> WebsiteTokenVerifier:
    settings = get_settings()
    return WebsiteTokenVerifier(
        requests=get_repositories(request).requests,
        fetcher=get_document_fetcher(),
        meta_reader=_meta_reader,
        projector=get_projector(request),
        meta_name=settings.website_meta_name,
        timeout=settings.website_fetch_timeout,
    )


def get_orchestrator(request: Request) -> VerificationOrchestrator:
    """
    Create the verification orchestrator with injected dependencies.

    Wires the registry, the three method services and the projector
    over one set of repositories.
    """
    repositories = get_repositories(request)
    return VerificationOrchestrator(
        registry=get_claim_registry(request),
        codes=get_code_issuer(request),
        documents=get_review_queue(request),
        website=get_website_verifier(request),
        requests=repositories.requests,
        officials=repositories.officials,
        projector=get_projector(request),
        events=get_event_bus(),
    )


def get_official_id(
    x_official_id: Annotated[
        UUID, Header(description="Authenticated official, set by the upstream auth gateway")
    ],
) -> UUID:
    """Identity of the calling official."""
    return x_official_id


def require_reviewer(
    x_reviewer_key: Annotated[str | None, Header()] = None,
    settings: Settings = Depends(get_settings),
) -> None:
    """
    Guard reviewer-only endpoints with the shared reviewer key.

    Compared in constant time; a missing and a wrong key are indistinguishable.
    """
    if x_reviewer_key is None or not secrets.compare_digest(
        x_reviewer_key.encode(), settings.reviewer_api_key.encode()
    ):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Reviewer credentials required",
        )
