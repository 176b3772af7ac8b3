# pylint: disable=redefined-outer-name
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, clear_mappers
from sqlalchemy.pool import StaticPool

from pps.adapters import orm
from pps.adapters.repository import AbstractRepository
from pps.domain.model import record_values
from pps.service_layer.unit_of_work import AbstractUnitOfWork


class FakeRepository(AbstractRepository):
    """In-memory repository; added records become visible to other queries only after commit."""

    def __init__(self, records=None):
        super().__init__()
        self.committed = list(records or [])
        self.pending = []

    @property
    def records(self):
        return self.committed + self.pending

    def _add(self, record):
        self.pending.append(record)

    def _get(self, key):
        return next((r for r in self.records if r.id == key), None)

    def _find_identical(self, record):
        values = record_values(record)
        return next((r for r in self.records if record_values(r) == values), None)

    def _list(self, limit, offset):
        records = sorted(self.committed, key=lambda r: r.id)[offset:]
        return records if limit is None else records[:limit]

    def _list_by_parent(self, parent_key):
        return [r for r in self.committed if getattr(r, "parent_key", None) == parent_key]

    def _count(self):
        return len(self.committed)


class FakeUnitOfWork(AbstractUnitOfWork):
    def __init__(self):
        super().__init__()
        self.patients = FakeRepository()
        self.antibiotics = FakeRepository()
        self.antibiotic_details = FakeRepository()
        self.indications = FakeRepository()
        self.optional_vars = FakeRepository()
        self.specimens = FakeRepository()
        self.commits = 0
        self.rollbacks = 0

    def _repositories(self):
        return [
            self.patients, self.antibiotics, self.antibiotic_details,
            self.indications, self.optional_vars, self.specimens,
        ]

    def _commit(self):
        for repo in self._repositories():
            repo.committed.extend(repo.pending)
            repo.pending = []
        self.commits += 1

    def rollback(self):
        for repo in self._repositories():
            repo.pending = []
        self.rollbacks += 1


@pytest.fixture
def fake_uow():
    return FakeUnitOfWork()


@pytest.fixture
def sqlite_engine():
    """In-memory SQLite shared across threads (the API test client runs handlers in a worker thread)."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    orm.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def sqlite_session_factory(sqlite_engine):
    """Create SQLite in-memory database for fast testing."""
    orm.start_mappers()

    yield sessionmaker(bind=sqlite_engine)

    clear_mappers()
