"""
Shared fixtures for integration tests.

PostgreSQL-backed fixtures skip the test when the database configured in
DATABASE_URL cannot be reached.
"""

from collections.abc import Generator
from uuid import UUID

import pytest
from psycopg_pool import ConnectionPool, PoolTimeout

from src.adapters.repository import Repositories, postgres_repositories, run_migrations
from src.config.settings import get_settings


@pytest.fixture(scope="module")
def pool() -> Generator[ConnectionPool, None, None]:
    """Create connection pool for integration tests, with migrations applied."""
    settings = get_settings()
    pool = ConnectionPool(
        conninfo=settings.database_url,
        min_size=1,
        max_size=10,
        open=False,
    )
    try:
        pool.open(wait=True, timeout=5.0)
    except PoolTimeout:
        pool.close()
        pytest.skip("PostgreSQL is not reachable")
    run_migrations(pool)
    yield pool
    pool.close()


@pytest.fixture
def clean_database(pool: ConnectionPool) -> Generator[None, None, None]:
    """Empty all tables before each test."""
    with pool.connection() as conn:
        conn.execute("TRUNCATE verification_requests, government_offices, officials")
    yield


@pytest.fixture
def pg_repositories(pool: ConnectionPool, clean_database: None) -> Repositories:
    return postgres_repositories(pool)


def insert_official(pool: ConnectionPool, name: str) -> UUID:
    with pool.connection() as conn:
        row = conn.execute(
            "INSERT INTO officials (name) VALUES (%s) RETURNING id", (name,)
        ).fetchone()
    return row[0]


def insert_office(
    pool: ConnectionPool,
    title: str,
    jurisdiction: str,
    district: str | None = None,
    website_url: str | None = None,
) -> UUID:
    with pool.connection() as conn:
        row = conn.execute(
            """
            INSERT INTO government_offices (title, jurisdiction, district, website_url)
            VALUES (%s, %s, %s, %s)
            RETURNING id
            """,
            (title, jurisdiction, district, website_url),
        ).fetchone()
    return row[0]
