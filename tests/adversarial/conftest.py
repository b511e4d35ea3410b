"""
Shared fixtures for adversarial tests.

Every attack runs against both storage backends: the in-memory store and
PostgreSQL (skipped when DATABASE_URL is unreachable).
"""

import threading
from collections.abc import Callable, Generator
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from uuid import UUID, uuid4

import pytest
from psycopg_pool import ConnectionPool, PoolTimeout

from src.adapters.repository import (
    InMemoryStore,
    Repositories,
    memory_repositories,
    postgres_repositories,
    run_migrations,
)
from src.config.settings import get_settings
from src.domain.models import GovernmentOffice, OfficialProfile


@dataclass
class Backend:
    """Repositories plus seeding helpers for one storage backend."""

    name: str
    repositories: Repositories
    add_office: Callable[[str], UUID]
    add_official: Callable[[str], UUID]


def run_concurrently(worker: Callable[[int], object], count: int) -> list:
    """Run worker(i) on count threads released together; return results in order."""
    barrier = threading.Barrier(count)

    def attempt(i: int) -> object:
        barrier.wait()
        return worker(i)

    with ThreadPoolExecutor(max_workers=count) as executor:
        futures = [executor.submit(attempt, i) for i in range(count)]
        return [f.result() for f in futures]


@pytest.fixture(scope="module")
def pool() -> Generator[ConnectionPool, None, None]:
    """Create connection pool for adversarial tests."""
    settings = get_settings()
    pool = ConnectionPool(
        conninfo=settings.database_url,
        min_size=1,
        max_size=25,
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


def _memory_backend() -> Backend:
    store = InMemoryStore()

    def add_office(title: str) -> UUID:
        return store.add_office(
            GovernmentOffice(id=uuid4(), title=title, jurisdiction="California")
        ).id

    def add_official(name: str) -> UUID:
        return store.add_official(OfficialProfile(id=uuid4(), name=name)).id

    return Backend("memory", memory_repositories(store), add_office, add_official)


def _postgres_backend(pool: ConnectionPool) -> Backend:
    with pool.connection() as conn:
        conn.execute("TRUNCATE verification_requests, government_offices, officials")

    def add_office(title: str) -> UUID:
        with pool.connection() as conn:
            row = conn.execute(
                "INSERT INTO government_offices (title, jurisdiction) VALUES (%s, %s) RETURNING id",
                (title, "California"),
            ).fetchone()
        return row[0]

    def add_official(name: str) -> UUID:
        with pool.connection() as conn:
            row = conn.execute(
                "INSERT INTO officials (name) VALUES (%s) RETURNING id", (name,)
            ).fetchone()
        return row[0]

    return Backend("postgres", postgres_repositories(pool), add_office, add_official)


@pytest.fixture(params=["memory", "postgres"])
def backend(request: pytest.FixtureRequest) -> Backend:
    """Fresh, empty backend for each test."""
    if request.param == "memory":
        return _memory_backend()
    return _postgres_backend(request.getfixturevalue("pool"))
