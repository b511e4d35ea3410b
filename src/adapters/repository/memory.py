"""
In-memory repository adapters - Implement the repository protocols without a database.

Used for local development (STORAGE_BACKEND=memory) and for tests. All three
repositories share one InMemoryStore so that a claim can update the office
and the official under the same lock, mirroring the single transaction the
PostgreSQL adapter uses.

Stored objects are never handed out directly: reads return copies and writes
store copies, so callers cannot mutate state behind the lock.
"""

import logging
import threading
from dataclasses import replace
from datetime import datetime
from uuid import UUID

from src.domain.exceptions import ConflictingRequest
from src.domain.models import GovernmentOffice, OfficialProfile, VerificationRequest
from src.domain.ports import ClaimResult, VerificationMethod, VerificationStatus

logger = logging.getLogger(__name__)


class InMemoryStore:
    """Shared state for the in-memory repositories. Thread-safe."""

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self.offices: dict[UUID, GovernmentOffice] = {}
        self.officials: dict[UUID, OfficialProfile] = {}
        self.requests: dict[UUID, VerificationRequest] = {}

    def add_office(self, office: GovernmentOffice) -> GovernmentOffice:
        """Seed an office (administrative seeding is outside the claim flow)."""
        with self.lock:
            self.offices[office.id] = replace(office)
        return office

    def add_official(self, official: OfficialProfile) -> OfficialProfile:
        with self.lock:
            self.officials[official.id] = replace(official)
        return official

    def clear(self) -> None:
        with self.lock:
            self.offices.clear()
            self.officials.clear()
            self.requests.clear()


class InMemoryOfficeRepository:
    """Implements OfficeRepository protocol over an InMemoryStore."""

    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    def get(self, office_id: UUID) -> GovernmentOffice | None:
        with self._store.lock:
            office = self._store.offices.get(office_id)
            return replace(office) if office else None

    def search(self, query: str, limit: int) -> list[GovernmentOffice]:
        with self._store.lock:
            matches = [o for o in self._store.offices.values() if o.matches(query)]
            matches.sort(key=lambda o: (o.title.lower(), o.district or ""))
            return [replace(o) for o in matches[:limit]]

    def list_unclaimed(self, jurisdiction: str | None, limit: int) -> list[GovernmentOffice]:
        with self._store.lock:
            offices = [
                o
                for o in self._store.offices.values()
                if not o.is_claimed
                and (jurisdiction is None or o.jurisdiction.lower() == jurisdiction.lower())
            ]
            offices.sort(key=lambda o: (o.title.lower(), o.district or ""))
            return [replace(o) for o in offices[:limit]]

    def claim(self, office_id: UUID, official_id: UUID) -> ClaimResult:
        with self._store.lock:
            office = self._store.offices.get(office_id)
            if office is None:
                return ClaimResult.OFFICE_NOT_FOUND
            official = self._store.officials.get(official_id)
            if official is None:
                return ClaimResult.OFFICIAL_NOT_FOUND
            if official.office_id is not None and official.office_id != office_id:
                return ClaimResult.OFFICIAL_HOLDS_OFFICE
            if office.is_claimed:
                return ClaimResult.ALREADY_CLAIMED

            self._store.offices[office_id] = replace(
                office, is_claimed=True, claimed_by=official_id
            )
            self._store.officials[official_id] = replace(official, office_id=office_id)
            return ClaimResult.CLAIMED

    def release(self, office_id: UUID) -> bool:
        with self._store.lock:
            office = self._store.offices.get(office_id)
            if office is None:
                return False

            holder = self._store.officials.get(office.claimed_by) if office.claimed_by else None
            if holder is not None and holder.office_id == office_id:
                self._store.officials[holder.id] = replace(holder, office_id=None)
            self._store.offices[office_id] = replace(office, is_claimed=False, claimed_by=None)
            return True


class InMemoryOfficialRepository:
    """Implements OfficialRepository protocol over an InMemoryStore."""

    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    def get(self, official_id: UUID) -> OfficialProfile | None:
        with self._store.lock:
            official = self._store.officials.get(official_id)
            return replace(official) if official else None

    def update_verification(
        self,
        official_id: UUID,
        status: VerificationStatus,
        method: VerificationMethod | None,
        verified_at,
    ) -> OfficialProfile | None:
        with self._store.lock:
            official = self._store.officials.get(official_id)
            if official is None:
                return None
            # replace() re-runs __post_init__, so the verified invariant holds here too
            updated = replace(
                official,
                verification_status=status,
                verification_method=method,
                verified_at=verified_at,
            )
            self._store.officials[official_id] = updated
            return replace(updated)


class InMemoryVerificationRequestRepository:
    """Implements VerificationRequestRepository protocol over an InMemoryStore."""

    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    def create(self, request: VerificationRequest) -> None:
        with self._store.lock:
            if self._active(request.official_id) is not None:
                raise ConflictingRequest(
                    f"Official {request.official_id} already has a pending request"
                )
            self._store.requests[request.id] = replace(request)

    def get(self, request_id: UUID) -> VerificationRequest | None:
        with self._store.lock:
            request = self._store.requests.get(request_id)
            return replace(request) if request else None

    def get_active(self, official_id: UUID) -> VerificationRequest | None:
        with self._store.lock:
            request = self._active(official_id)
            return replace(request) if request else None

    def latest(self, official_id: UUID) -> VerificationRequest | None:
        requests = self.list_for_official(official_id)
        return requests[0] if requests else None

    def list_for_official(self, official_id: UUID) -> list[VerificationRequest]:
        """Newest first."""
        with self._store.lock:
            # Insertion order breaks submitted_at ties
            requests = [
                (r.submitted_at, seq, r)
                for seq, r in enumerate(self._store.requests.values())
                if r.official_id == official_id
            ]
            requests.sort(key=lambda item: item[:2], reverse=True)
            return [replace(r) for _, _, r in requests]

    def list_reviewable(self, limit: int) -> list[VerificationRequest]:
        with self._store.lock:
            requests = [r for r in self._store.requests.values() if r.awaits_review]
            requests.sort(key=lambda r: r.submitted_at)
            return [replace(r) for r in requests[:limit]]

    def save(self, request: VerificationRequest) -> bool:
        with self._store.lock:
            stored = self._store.requests.get(request.id)
            if stored is None or stored.status is not VerificationStatus.PENDING:
                logger.debug("Ignored write to non-pending request %s", request.id)
                return False
            self._store.requests[request.id] = replace(request)
            return True

    def record_failed_attempt(
        self, request_id: UUID, max_attempts: int, now: datetime, reason: str
    ) -> VerificationRequest | None:
        with self._store.lock:
            stored = self._store.requests.get(request_id)
            if stored is None or stored.status is not VerificationStatus.PENDING:
                return None
            attempts = stored.attempt_count + 1
            updated = replace(stored, attempt_count=attempts)
            if attempts >= max_attempts:
                updated = replace(
                    updated,
                    status=VerificationStatus.REJECTED,
                    reviewed_at=now,
                    rejection_reason=reason,
                )
            self._store.requests[request_id] = updated
            return replace(updated)

    def _active(self, official_id: UUID) -> VerificationRequest | None:
        return next(
            (
                r
                for r in self._store.requests.values()
                if r.official_id == official_id and r.status is VerificationStatus.PENDING
            ),
            None,
        )
