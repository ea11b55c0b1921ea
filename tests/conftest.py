"""
Shared pytest fixtures.

Uses a throwaway SQLite file; the environment is set before `app` is
imported so the app's engine, the lifespan check and the tests all share it.
"""
import json
import os

os.environ["DATABASE_URL"] = "sqlite:///./test_ledger.db"
os.environ["ROLLOVER_SCHEDULER_ENABLED"] = "false"

from datetime import datetime, timedelta  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from app.core.config import settings  # noqa: E402
from app.db.base import Base, SessionLocal, engine  # noqa: E402
from app.main import app  # noqa: E402
from app.models.ledger_document import LedgerDocumentRow  # noqa: E402
from app.routers.ledger import get_clock  # noqa: E402
from app.schemas.document import LedgerDocument, local_now  # noqa: E402
from app.services.store import LedgerStore, parse_document  # noqa: E402


class FakeClock:
    """Callable clock pinned to local noon today; tests move it explicitly."""

    def __init__(self, start: datetime | None = None):
        self.now = start or local_now().replace(hour=12, minute=0, second=0, microsecond=0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class MemoryStore:
    """In-memory stand-in for LedgerStore that still round-trips through JSON."""

    def __init__(self, payload: str | None = None):
        self.payload = payload
        self.saves = 0

    def load(self) -> LedgerDocument:
        if self.payload is None:
            return LedgerDocument()
        return parse_document(self.payload)

    def save(self, doc: LedgerDocument) -> None:
        self.payload = json.dumps(doc.to_payload())
        self.saves += 1


@pytest.fixture(scope="session", autouse=True)
def create_tables():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def clean_ledger():
    db = SessionLocal()
    try:
        db.query(LedgerDocumentRow).delete()
        db.commit()
    finally:
        db.close()
    yield


@pytest.fixture()
def db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def store(db):
    return LedgerStore(db, settings.STORAGE_KEY)


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def memory_store():
    return MemoryStore()


@pytest.fixture()
def client(clock):
    app.dependency_overrides[get_clock] = lambda: clock
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
