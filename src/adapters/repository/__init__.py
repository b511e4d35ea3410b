"""Repository adapters - Database and in-memory implementations."""

from dataclasses import dataclass

from psycopg_pool import ConnectionPool

from src.domain.ports import OfficeRepository, OfficialRepository, VerificationRequestRepository

from .memory import (
    InMemoryOfficeRepository,
    InMemoryOfficialRepository,
    InMemoryStore,
    InMemoryVerificationRequestRepository,
)
from .postgres import (
    PostgresOfficeRepository,
    PostgresOfficialRepository,
    PostgresVerificationRequestRepository,
    run_migrations,
)


@dataclass(frozen=True)
class Repositories:
    """The three repositories one backend provides."""

    offices: OfficeRepository
    officials: OfficialRepository
    requests: VerificationRequestRepository


def postgres_repositories(pool: ConnectionPool) -> Repositories:
    return Repositories(
        offices=PostgresOfficeRepository(pool),
        officials=PostgresOfficialRepository(pool),
        requests=PostgresVerificationRequestRepository(pool),
    )


def memory_repositories(store: InMemoryStore | None = None) -> Repositories:
    store = store or InMemoryStore()
    return Repositories(
        offices=InMemoryOfficeRepository(store),
        officials=InMemoryOfficialRepository(store),
        requests=InMemoryVerificationRequestRepository(store),
    )


__all__ = [
    "InMemoryStore",
    "Repositories",
    "memory_repositories",
    "postgres_repositories",
    "run_migrations",
]
