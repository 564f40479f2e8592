import os
from datetime import date, timedelta
from decimal import Decimal

# Settings are read at import time, so the environment is prepared first
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ["DATABASE_URL"] = "sqlite:///:memory:"

import pytest
from fastapi.testclient import TestClient

from library_backend.database import create_db_engine, create_session_factory, init_db
from library_backend.main import create_app
from library_backend.services.catalog import CatalogService
from library_backend.services.identity import IdentityService
from library_backend.services.loans import LoanService


class FakeClock:
    """Calendar the loan service reads 'today' from; tests move it forward."""

    def __init__(self, start: date = date(2024, 3, 1)):
        self.current = start

    def __call__(self) -> date:
        return self.current

    def advance(self, days: int) -> date:
        self.current = self.current + timedelta(days=days)
        return self.current


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def engine(tmp_path):
    engine = create_db_engine(f"sqlite:///{tmp_path / 'library.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture()
def catalog(session_factory):
    return CatalogService(session_factory)


@pytest.fixture()
def identity(session_factory):
    return IdentityService(session_factory)


@pytest.fixture()
def loans(catalog, session_factory, clock):
    return LoanService(
        catalog,
        session_factory,
        clock=clock,
        issue_days=14,
        max_books_per_user=3,
        fine_per_day=Decimal("5.00"),
    )


@pytest.fixture()
def make_book(catalog):
    counter = {"n": 0}

    def _make(title=None, copies=1, **fields):
        counter["n"] += 1
        n = counter["n"]
        result = catalog.add_book(
            title=title or f"Book {n}",
            author=fields.pop("author", f"Author {n}"),
            isbn=fields.pop("isbn", f"97800000{n:05d}"),
            publication_year=fields.pop("publication_year", 2020),
            total_copies=copies,
            **fields,
        )
        assert result.ok, result
        return result.value

    return _make


@pytest.fixture()
def make_user(identity):
    def _make(username, role="STUDENT", password="secret1"):
        result = identity.register(
            username=username,
            password=password,
            full_name=f"{username.title()} Tester",
            email=f"{username}@example.com",
            role=role,
        )
        assert result.ok, result
        return result.value

    return _make


@pytest.fixture()
def api(session_factory, clock):
    app = create_app(session_factory, clock=clock)
    with TestClient(app) as client:
        yield client
