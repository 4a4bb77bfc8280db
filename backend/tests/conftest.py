"""
Shared fixtures.

Unit and route tests run against a fresh in-memory SQLite database per
test. Concurrency tests use a file-backed database so each thread gets its
own connection.
"""

from __future__ import annotations

import os
from types import SimpleNamespace
from typing import Iterator

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("PAYMENT_GATEWAY", "fake")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from slotwise.database import Base
from slotwise.integrations.payment_gateway import FakePaymentGateway
import slotwise.models  # noqa: F401

from .helpers import seed_directory


def _create_engine(url: str, **kwargs):
    return create_engine(url, future=True, **kwargs)


@pytest.fixture
def db() -> Iterator[Session]:
    engine = _create_engine(
        "sqlite+pysqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture
def file_session_factory(tmp_path) -> Iterator[sessionmaker]:
    """Session factory over a file-backed SQLite database, safe to use from several threads."""
    engine = _create_engine(
        f"sqlite+pysqlite:///{tmp_path / 'slotwise-test.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    engine.dispose()


@pytest.fixture
def directory(db: Session) -> SimpleNamespace:
    return seed_directory(db)


@pytest.fixture
def gateway() -> FakePaymentGateway:
    return FakePaymentGateway()
