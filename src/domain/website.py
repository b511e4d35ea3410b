"""
Website token verifier - Proof of control over an official website.

Token State Machine
===================

    none -> issued            issue_token(): request created with token + URL
    issued -> issued          check(): NOT_FOUND / MISMATCH (retryable)
    issued -> pending_check   check(): CONFIRMED, awaits reviewer decision

Finding the token proves control of the URL, not that the URL belongs to
the office, so a confirmed check moves the profile to PENDING and leaves
the final VERIFIED decision to DocumentReviewQueue.decide().
"""

import html
import logging
import secrets
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import datetime
from uuid import UUID

from .exceptions import RequestNotFound
from .models import VerificationRequest, WebsiteChallenge, utc_now
from .ports import (
    DocumentFetcher,
    MetaTagReader,
    TokenCheck,
    VerificationMethod,
    VerificationRequestRepository,
    VerificationStatus,
)
from .projector import ProfileStatusProjector

logger = logging.getLogger(__name__)


@dataclass
class WebsiteTokenVerifier:
    """Domain service issuing website tokens and checking their presence."""

    requests: VerificationRequestRepository
    fetcher: DocumentFetcher
    meta_reader: MetaTagReader
    projector: ProfileStatusProjector
    meta_name: str = "ca-officials-verification"
    timeout: float = 10.0
    clock: Callable[[], datetime] = field(default=utc_now)

    def issue_token(
        self, official_id: UUID, office_id: UUID, target_url: str
    ) -> VerificationRequest:
        """
        Open a website-token request.

        Raises:
            ValueError: If the URL is empty
            ConflictingRequest: If the official already has a pending request
        """
        request = VerificationRequest(
            official_id=official_id,
            office_id=office_id,
            method=VerificationMethod.WEBSITE_TOKEN,
            website=WebsiteChallenge(
                url=self._normalize_url(target_url), token=self._generate_token()
            ),
            submitted_at=self.clock(),
        )
        self.requests.create(request)
        logger.info("Issued website token for request %s -> %s", request.id, request.website.url)
        return request

    def meta_tag(self, token: str) -> str:
        """HTML snippet the official adds to their site's <head>."""
        return f'<meta name="{html.escape(self.meta_name)}" content="{html.escape(token)}">'

    def check(self, request: VerificationRequest) -> TokenCheck:
        """
        Fetch the claimed website and look for the issued token.

        Returns:
            CONFIRMED, NOT_FOUND (no tag) or MISMATCH (tag with another value)

        Raises:
            RequestNotFound: If the request is not a pending website request
            FetchError: Network, timeout or TLS failure (retryable)
        """
        if request.is_terminal or request.website is None:
            raise RequestNotFound(str(request.id))

        challenge = request.website
        document = self.fetcher.fetch_document(challenge.url, self.timeout)
        values = [value.strip() for value in self.meta_reader.read_meta(document, self.meta_name)]

        if not values:
            result = TokenCheck.NOT_FOUND
        elif any(
            secrets.compare_digest(value.encode(), challenge.token.encode()) for value in values
        ):
            result = TokenCheck.CONFIRMED
        else:
            result = TokenCheck.MISMATCH

        if result is not TokenCheck.CONFIRMED:
            logger.info("Website check for request %s: %s", request.id, result.value)
            self.requests.save(replace(request, attempt_count=request.attempt_count + 1))
            return result

        confirmed = replace(request, website=replace(challenge, confirmed_at=self.clock()))
        if not self.requests.save(confirmed):
            raise RequestNotFound(str(request.id))
        logger.info("Website token confirmed for request %s, awaiting review", request.id)

        self.projector.apply(request.official_id, VerificationStatus.PENDING)
        return result

    def _normalize_url(self, url: str) -> str:
        """Strip whitespace and force https."""
        url = url.strip()
        if not url:
            raise ValueError("Website URL is required")
        if url.lower().startswith("http://"):
            return "https://" + url[len("http://") :]
        if not url.lower().startswith("https://"):
            return "https://" + url
        return url

    def _generate_token(self) -> str:
        """8 uppercase hex characters from the secrets module."""
        return secrets.token_hex(4).upper()
