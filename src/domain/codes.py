"""
Code issuer - One-time codes for the government email method.

Code State Machine (per request)
================================

    none -> issued                 issue(): request created, code delivered
    issued -> issued               reissue(): new code replaces the old one
    issued -> verified             verify(): code matches before expiry
    issued -> (expired)            verify() after expiry; request stays pending
                                   so the official can resend
    issued -> rejected             verify(): max_attempts invalid codes

Only one code is live per request: the request row holds a single bcrypt
hash, and reissuing overwrites it. The plaintext code leaves this module
only through the EmailSender port.
"""

import logging
import secrets
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from uuid import UUID

import bcrypt

from .exceptions import RequestNotFound
from .models import EmailChallenge, VerificationRequest, utc_now
from .ports import (
    EmailSender,
    VerificationMethod,
    VerificationRequestRepository,
    VerificationStatus,
    VerifyResult,
)

logger = logging.getLogger(__name__)

LOCKOUT_REASON = "Too many invalid codes"


@dataclass(frozen=True)
class CodeIssued:
    """Confirmation of issuance. Deliberately carries no code."""

    request_id: UUID
    email: str
    expires_at: datetime


@dataclass
class CodeIssuer:
    """Domain service issuing and checking email one-time codes."""

    requests: VerificationRequestRepository
    email_sender: EmailSender
    ttl: timedelta = timedelta(minutes=15)
    code_length: int = 6
    max_attempts: int = 5
    bcrypt_cost: int = 10
    clock: Callable[[], datetime] = field(default=utc_now)

    def issue(self, official_id: UUID, office_id: UUID, target_email: str) -> CodeIssued:
        """
        Open a government email request and deliver its first code.

        Raises:
            ConflictingRequest: If the official already has a pending request
        """
        email = self._normalize_email(target_email)
        code = self._generate_verification_code()
        request = VerificationRequest(
            official_id=official_id,
            office_id=office_id,
            method=VerificationMethod.GOVERNMENT_EMAIL,
            email=self._challenge(email, code),
            submitted_at=self.clock(),
        )
        self.requests.create(request)
        logger.info("Issued email code for request %s (official %s)", request.id, official_id)

        self._deliver(request.id, email, code)
        return CodeIssued(request_id=request.id, email=email, expires_at=request.email.expires_at)

    def reissue(self, request: VerificationRequest) -> CodeIssued:
        """
        Resend: replace the live code and reset its expiry.

        Raises:
            RequestNotFound: If the request is not a pending email request
        """
        if request.is_terminal or request.email is None:
            raise RequestNotFound(str(request.id))

        code = self._generate_verification_code()
        updated = replace(request, email=self._challenge(request.email.email, code))
        if not self.requests.save(updated):
            raise RequestNotFound(str(request.id))
        logger.info("Reissued email code for request %s", request.id)

        self._deliver(updated.id, updated.email.email, code)
        return CodeIssued(
            request_id=updated.id, email=updated.email.email, expires_at=updated.email.expires_at
        )

    def verify(self, request: VerificationRequest, submitted_code: str) -> VerifyResult:
        """
        Check a submitted code against the request's live code.

        Expiry is checked before the value, so a correct but expired code
        returns EXPIRED rather than INVALID_CODE.

        Returns:
            VerifyResult indicating success or specific failure reason
        """
        if request.is_terminal or request.email is None:
            return VerifyResult.NOT_FOUND

        now = self.clock()
        if now > request.email.expires_at:
            logger.info("Expired code submitted for request %s", request.id)
            return VerifyResult.EXPIRED

        # bcrypt.checkpw compares in constant time
        if not bcrypt.checkpw(submitted_code.strip().encode(), request.email.code_hash.encode()):
            return self._record_invalid_attempt(request, now)

        verified = replace(request, status=VerificationStatus.VERIFIED, reviewed_at=now)
        if not self.requests.save(verified):
            return VerifyResult.NOT_FOUND
        logger.info("Email code accepted for request %s", request.id)
        return VerifyResult.SUCCESS

    def _record_invalid_attempt(self, request: VerificationRequest, now: datetime) -> VerifyResult:
        updated = self.requests.record_failed_attempt(
            request.id, self.max_attempts, now, LOCKOUT_REASON
        )
        if updated is None:
            # A concurrent guess finished the request first
            current = self.requests.get(request.id)
            if current is not None and current.status is VerificationStatus.REJECTED:
                return VerifyResult.LOCKED
            return VerifyResult.NOT_FOUND

        if updated.status is VerificationStatus.REJECTED:
            logger.warning(
                "Request %s rejected after %d invalid codes", request.id, updated.attempt_count
            )
            return VerifyResult.LOCKED
        return VerifyResult.INVALID_CODE

    def _deliver(self, request_id: UUID, email: str, code: str) -> None:
        """Fire-and-forget delivery; the stored code stands and resend recovers."""
        try:
            self.email_sender.send_verification_code(email, code)
        except Exception:
            logger.exception("Failed to deliver code for request %s", request_id)

    def _challenge(self, email: str, code: str) -> EmailChallenge:
        return EmailChallenge(
            email=email,
            code_hash=self._hash_code(code),
            expires_at=self.clock() + self.ttl,
        )

    def _normalize_email(self, email: str) -> str:
        """
        Normalize email address for consistent storage and delivery.

        Applies: strip whitespace + lowercase
        """
        return email.strip().lower()

    def _generate_verification_code(self) -> str:
        """
        Generate a cryptographically secure numeric code.

        Uses the secrets module; returns a string to preserve leading zeros.
        """
        return "".join(secrets.choice("0123456789") for _ in range(self.code_length))

    def _hash_code(self, code: str) -> str:
        return bcrypt.hashpw(code.encode(), bcrypt.gensalt(rounds=self.bcrypt_cost)).decode()
