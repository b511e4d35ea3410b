"""
PostgreSQL repository adapters - Implement the repository protocols.

This module provides the PostgreSQL implementations of the domain's
repository ports using psycopg3 with raw SQL.

Concurrency Design:
-------------------
1. **Office claim**: a single conditional UPDATE
   (``... WHERE id = %s AND is_claimed = false``) is the compare-and-set.
   Two concurrent claims for the same office serialize on the row lock and
   exactly one sees rowcount == 1. The official's office link is written in
   the same transaction, after the official row is locked with
   ``SELECT ... FOR UPDATE`` so one official never ends up holding two offices.

2. **One pending request per official**: enforced by the partial unique
   index ``idx_verification_requests_one_pending``; a losing INSERT raises
   UniqueViolation, surfaced as ConflictingRequest.

3. **Forward-only requests**: every UPDATE carries ``AND status = 'pending'``,
   so a terminal row is never rewritten.

4. **Invalid code attempts**: ``attempt_count = attempt_count + 1`` with the
   lockout decided in the same UPDATE, so concurrent guesses serialize on
   the row lock and none is lost.

Connection failures are surfaced as StoreUnavailable so the domain can
report them as retryable.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from uuid import UUID

import psycopg
from psycopg import errors
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool, PoolTimeout

from src.domain.exceptions import ConflictingRequest, StoreUnavailable
from src.domain.models import (
    DocumentEvidence,
    EmailChallenge,
    GovernmentOffice,
    OfficialProfile,
    VerificationRequest,
    WebsiteChallenge,
)
from src.domain.ports import ClaimResult, VerificationMethod, VerificationStatus

logger = logging.getLogger(__name__)

_OFFICE_COLUMNS = """
    id, title, level, jurisdiction, district, incumbent_name, website_url,
    is_claimed, claimed_by
"""

_OFFICIAL_COLUMNS = """
    id, name, office_id, verification_status::text AS verification_status,
    verification_method::text AS verification_method, verified_at
"""

_REQUEST_COLUMNS = """
    id, official_id, office_id, method::text AS method, status::text AS status,
    verification_email, verification_code_hash, code_expires_at,
    website_url, website_token, website_confirmed_at,
    document_urls, document_types, reviewer_notes, rejection_reason,
    attempt_count, submitted_at, reviewed_at
"""


class _PostgresAdapter:
    """Pool access shared by the repositories in this module."""

    def __init__(self, pool: ConnectionPool) -> None:
        """
        Initialize repository with connection pool.

        Args:
            pool: psycopg3 ConnectionPool for database connections
        """
        self._pool = pool

    @contextmanager
    def _cursor(self) -> Iterator[psycopg.Cursor]:
        """Yield a dict-row cursor inside one transaction."""
        try:
            with self._pool.connection() as conn, conn.transaction():
                with conn.cursor(row_factory=dict_row) as cursor:
                    yield cursor
        except (psycopg.OperationalError, PoolTimeout) as exc:
            logger.warning("Database unavailable: %s", exc)
            raise StoreUnavailable(str(exc)) from exc


class PostgresOfficeRepository(_PostgresAdapter):
    """
    Implements OfficeRepository protocol via psycopg3.

    Uses structural subtyping - no explicit inheritance from Protocol.
    All SQL uses parameterized queries.
    """

    def get(self, office_id: UUID) -> GovernmentOffice | None:
        with self._cursor() as cursor:
            cursor.execute(
                f"SELECT {_OFFICE_COLUMNS} FROM government_offices WHERE id = %s", (office_id,)
            )
            row = cursor.fetchone()
        return _office(row) if row else None

    def search(self, query: str, limit: int) -> list[GovernmentOffice]:
        pattern = f"%{_escape_like(query.strip())}%"
        sql = f"""
            SELECT {_OFFICE_COLUMNS}
            FROM government_offices
            WHERE title ILIKE %(p)s
               OR jurisdiction ILIKE %(p)s
               OR district ILIKE %(p)s
               OR incumbent_name ILIKE %(p)s
            ORDER BY lower(title), district NULLS FIRST
            LIMIT %(limit)s
        """
        with self._cursor() as cursor:
            cursor.execute(sql, {"p": pattern, "limit": limit})
            return [_office(row) for row in cursor.fetchall()]

    def list_unclaimed(self, jurisdiction: str | None, limit: int) -> list[GovernmentOffice]:
        sql = f"""
            SELECT {_OFFICE_COLUMNS}
            FROM government_offices
            WHERE is_claimed = false
              AND (%(jurisdiction)s::text IS NULL OR lower(jurisdiction) = lower(%(jurisdiction)s))
            ORDER BY lower(title), district NULLS FIRST
            LIMIT %(limit)s
        """
        with self._cursor() as cursor:
            cursor.execute(sql, {"jurisdiction": jurisdiction, "limit": limit})
            return [_office(row) for row in cursor.fetchall()]

    def claim(self, office_id: UUID, official_id: UUID) -> ClaimResult:
        """
        Compare-and-set on the claimed flag, plus the official's office link.

        The official row is locked first, so two claims by one official
        serialize and the second sees the first one's office link. The office
        UPDATE is the compare-and-set between officials; the follow-up lookups
        only classify why it matched nothing.
        """
        lock_sql = "SELECT office_id FROM officials WHERE id = %s FOR UPDATE"
        claim_sql = """
            UPDATE government_offices
            SET is_claimed = true, claimed_by = %s
            WHERE id = %s AND is_claimed = false
        """
        link_sql = "UPDATE officials SET office_id = %s WHERE id = %s"

        with self._cursor() as cursor:
            cursor.execute(lock_sql, (official_id,))
            official = cursor.fetchone()
            holds_other = official is not None and official["office_id"] not in (
                None,
                office_id,
            )
            if official is not None and not holds_other:
                cursor.execute(claim_sql, (official_id, office_id))
                if cursor.rowcount == 1:
                    cursor.execute(link_sql, (office_id, official_id))
                    return ClaimResult.CLAIMED

            cursor.execute("SELECT 1 FROM government_offices WHERE id = %s", (office_id,))
            if cursor.fetchone() is None:
                return ClaimResult.OFFICE_NOT_FOUND
            if official is None:
                return ClaimResult.OFFICIAL_NOT_FOUND
            if holds_other:
                return ClaimResult.OFFICIAL_HOLDS_OFFICE
            return ClaimResult.ALREADY_CLAIMED

    def release(self, office_id: UUID) -> bool:
        lock_sql = "SELECT claimed_by FROM government_offices WHERE id = %s FOR UPDATE"
        release_sql = """
            UPDATE government_offices SET is_claimed = false, claimed_by = NULL WHERE id = %s
        """
        unlink_sql = "UPDATE officials SET office_id = NULL WHERE id = %s AND office_id = %s"

        with self._cursor() as cursor:
            cursor.execute(lock_sql, (office_id,))
            row = cursor.fetchone()
            if row is None:
                return False
            cursor.execute(release_sql, (office_id,))
            if row["claimed_by"] is not None:
                cursor.execute(unlink_sql, (row["claimed_by"], office_id))
            return True


class PostgresOfficialRepository(_PostgresAdapter):
    """Implements OfficialRepository protocol via psycopg3."""

    def get(self, official_id: UUID) -> OfficialProfile | None:
        with self._cursor() as cursor:
            cursor.execute(
                f"SELECT {_OFFICIAL_COLUMNS} FROM officials WHERE id = %s", (official_id,)
            )
            row = cursor.fetchone()
        return _official(row) if row else None

    def update_verification(
        self,
        official_id: UUID,
        status: VerificationStatus,
        method: VerificationMethod | None,
        verified_at,
    ) -> OfficialProfile | None:
        sql = f"""
            UPDATE officials
            SET verification_status = %s::verification_status,
                verification_method = %s::verification_method,
                verified_at = %s
            WHERE id = %s
            RETURNING {_OFFICIAL_COLUMNS}
        """
        with self._cursor() as cursor:
            cursor.execute(
                sql, (status.value, method.value if method else None, verified_at, official_id)
            )
            row = cursor.fetchone()
        return _official(row) if row else None


class PostgresVerificationRequestRepository(_PostgresAdapter):
    """Implements VerificationRequestRepository protocol via psycopg3."""

    def create(self, request: VerificationRequest) -> None:
        sql = """
            INSERT INTO verification_requests (
                id, official_id, office_id, method, status,
                verification_email, verification_code_hash, code_expires_at,
                website_url, website_token, website_confirmed_at,
                document_urls, document_types, reviewer_notes, rejection_reason,
                attempt_count, submitted_at, reviewed_at
            )
            VALUES (
                %(id)s, %(official_id)s, %(office_id)s,
                %(method)s::verification_method, %(status)s::verification_status,
                %(verification_email)s, %(verification_code_hash)s, %(code_expires_at)s,
                %(website_url)s, %(website_token)s, %(website_confirmed_at)s,
                %(document_urls)s, %(document_types)s, %(reviewer_notes)s,
                %(rejection_reason)s, %(attempt_count)s, %(submitted_at)s, %(reviewed_at)s
            )
        """
        try:
            with self._cursor() as cursor:
                cursor.execute(sql, _request_params(request))
        except errors.UniqueViolation as exc:
            raise ConflictingRequest(
                f"Official {request.official_id} already has a pending request"
            ) from exc

    def get(self, request_id: UUID) -> VerificationRequest | None:
        return self._one("WHERE id = %s", (request_id,))

    def get_active(self, official_id: UUID) -> VerificationRequest | None:
        return self._one("WHERE official_id = %s AND status = 'pending'", (official_id,))

    def latest(self, official_id: UUID) -> VerificationRequest | None:
        return self._one(
            "WHERE official_id = %s ORDER BY submitted_at DESC LIMIT 1", (official_id,)
        )

    def list_for_official(self, official_id: UUID) -> list[VerificationRequest]:
        return self._many(
            "WHERE official_id = %s ORDER BY submitted_at DESC", (official_id,)
        )

    def list_reviewable(self, limit: int) -> list[VerificationRequest]:
        return self._many(
            """
            WHERE status = 'pending'
              AND (method = 'document_upload'
                   OR (method = 'website_token' AND website_confirmed_at IS NOT NULL))
            ORDER BY submitted_at
            LIMIT %s
            """,
            (limit,),
        )

    def save(self, request: VerificationRequest) -> bool:
        sql = """
            UPDATE verification_requests
            SET status = %(status)s::verification_status,
                verification_code_hash = %(verification_code_hash)s,
                code_expires_at = %(code_expires_at)s,
                website_confirmed_at = %(website_confirmed_at)s,
                reviewer_notes = %(reviewer_notes)s,
                rejection_reason = %(rejection_reason)s,
                attempt_count = %(attempt_count)s,
                reviewed_at = %(reviewed_at)s
            WHERE id = %(id)s AND status = 'pending'
        """
        with self._cursor() as cursor:
            cursor.execute(sql, _request_params(request))
            return cursor.rowcount == 1

    def record_failed_attempt(
        self, request_id: UUID, max_attempts: int, now: datetime, reason: str
    ) -> VerificationRequest | None:
        # SET expressions see the pre-update row, so every CASE tests the same count
        sql = f"""
            UPDATE verification_requests
            SET attempt_count = attempt_count + 1,
                status = CASE WHEN attempt_count + 1 >= %(max)s
                              THEN 'rejected'::verification_status ELSE status END,
                reviewed_at = CASE WHEN attempt_count + 1 >= %(max)s
                                   THEN %(now)s ELSE reviewed_at END,
                rejection_reason = CASE WHEN attempt_count + 1 >= %(max)s
                                        THEN %(reason)s ELSE rejection_reason END
            WHERE id = %(id)s AND status = 'pending'
            RETURNING {_REQUEST_COLUMNS}
        """
        params = {"id": request_id, "max": max_attempts, "now": now, "reason": reason}
        with self._cursor() as cursor:
            cursor.execute(sql, params)
            row = cursor.fetchone()
        return _request(row) if row else None

    def _one(self, where: str, params: tuple) -> VerificationRequest | None:
        with self._cursor() as cursor:
            cursor.execute(f"SELECT {_REQUEST_COLUMNS} FROM verification_requests {where}", params)
            row = cursor.fetchone()
        return _request(row) if row else None

    def _many(self, where: str, params: tuple) -> list[VerificationRequest]:
        with self._cursor() as cursor:
            cursor.execute(f"SELECT {_REQUEST_COLUMNS} FROM verification_requests {where}", params)
            return [_request(row) for row in cursor.fetchall()]


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _office(row: dict) -> GovernmentOffice:
    return GovernmentOffice(**row)


def _official(row: dict) -> OfficialProfile:
    return OfficialProfile(
        id=row["id"],
        name=row["name"],
        office_id=row["office_id"],
        verification_status=VerificationStatus(row["verification_status"]),
        verification_method=(
            VerificationMethod(row["verification_method"]) if row["verification_method"] else None
        ),
        verified_at=row["verified_at"],
    )


def _request(row: dict) -> VerificationRequest:
    method = VerificationMethod(row["method"])
    payload = {}
    if method is VerificationMethod.GOVERNMENT_EMAIL:
        payload["email"] = EmailChallenge(
            email=row["verification_email"],
            code_hash=row["verification_code_hash"],
            expires_at=row["code_expires_at"],
        )
    elif method is VerificationMethod.WEBSITE_TOKEN:
        payload["website"] = WebsiteChallenge(
            url=row["website_url"],
            token=row["website_token"],
            confirmed_at=row["website_confirmed_at"],
        )
    else:
        payload["documents"] = DocumentEvidence(
            urls=tuple(row["document_urls"] or ()), types=tuple(row["document_types"] or ())
        )

    return VerificationRequest(
        id=row["id"],
        official_id=row["official_id"],
        office_id=row["office_id"],
        method=method,
        status=VerificationStatus(row["status"]),
        submitted_at=row["submitted_at"],
        reviewed_at=row["reviewed_at"],
        reviewer_notes=row["reviewer_notes"],
        rejection_reason=row["rejection_reason"],
        attempt_count=row["attempt_count"],
        **payload,
    )


def _request_params(request: VerificationRequest) -> dict:
    email, website, documents = request.email, request.website, request.documents
    return {
        "id": request.id,
        "official_id": request.official_id,
        "office_id": request.office_id,
        "method": request.method.value,
        "status": request.status.value,
        "verification_email": email.email if email else None,
        "verification_code_hash": email.code_hash if email else None,
        "code_expires_at": email.expires_at if email else None,
        "website_url": website.url if website else None,
        "website_token": website.token if website else None,
        "website_confirmed_at": website.confirmed_at if website else None,
        "document_urls": list(documents.urls) if documents else None,
        "document_types": list(documents.types) if documents else None,
        "reviewer_notes": request.reviewer_notes,
        "rejection_reason": request.rejection_reason,
        "attempt_count": request.attempt_count,
        "submitted_at": request.submitted_at,
        "reviewed_at": request.reviewed_at,
    }


def run_migrations(pool: ConnectionPool) -> None:
    """
    Execute all SQL migration files from the migrations directory.

    Migrations are executed in sorted order (alphabetically by filename).
    Each migration should be idempotent (use IF NOT EXISTS, etc.).

    Args:
        pool: psycopg3 ConnectionPool instance
    """
    # Structure: src/adapters/repository/postgres.py -> migrations/
    migrations_dir = Path(__file__).parent.parent.parent.parent / "migrations"

    if not migrations_dir.exists():
        logger.warning("Migrations directory not found: %s", migrations_dir)
        return

    sql_files = sorted(migrations_dir.glob("*.sql"))

    if not sql_files:
        logger.info("No migration files found")
        return

    logger.info("Running %d migration(s)", len(sql_files))

    for sql_file in sql_files:
        logger.info("Executing migration: %s", sql_file.name)
        try:
            with pool.connection() as conn:
                conn.execute(sql_file.read_text())
            logger.info("Migration complete: %s", sql_file.name)
        except psycopg.Error as e:
            logger.error("Migration failed: %s - %s", sql_file.name, e)
            raise RuntimeError(f"Database migration failed: {sql_file.name}") from e
