from __future__ import annotations

import asyncio
import os
import tempfile
from datetime import date, datetime

import pytest

# database.py refuses to import without a DATABASE_URL; tests never touch this one
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{tempfile.mkdtemp()}/unused.db"

from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import NullPool  # noqa: E402

import main  # noqa: E402
from database import get_session, init_db  # noqa: E402
from ledger import Ledger  # noqa: E402
from models import Project, User  # noqa: E402

# 2024-01-01 is a Monday; the seeded week opens Monday to Friday 09:00-18:00
TODAY = date(2024, 1, 1)
FIXED_NOW = datetime(2024, 1, 1, 10, 30)
NEXT_MONDAY = date(2024, 1, 8)
NEXT_SATURDAY = date(2024, 1, 6)


@pytest.fixture
def engine(tmp_path):
    # NullPool: every asyncio.run() gets fresh connections on its own loop
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'visits.db'}", poolclass=NullPool)
    asyncio.run(init_db(engine))
    yield engine
    asyncio.run(engine.dispose())


@pytest.fixture
def session_factory(engine):
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def with_ledger(session_factory):
    """Run ``fn(ledger)`` in a fresh session and return its result."""

    def _run(fn):
        async def _go():
            async with session_factory() as session:
                return await fn(Ledger(session))

        return asyncio.run(_go())

    return _run


@pytest.fixture
def add_rows(session_factory):
    def _add(*rows):
        async def _go():
            async with session_factory() as session:
                session.add_all(rows)
                await session.commit()
                for row in rows:
                    await session.refresh(row)

        asyncio.run(_go())
        return rows if len(rows) > 1 else rows[0]

    return _add


@pytest.fixture
def visitor(add_rows) -> User:
    return add_rows(User(email="visitor@example.com", role="user", access_token="visitor-token"))


@pytest.fixture
def admin(add_rows) -> User:
    return add_rows(User(email="admin@example.com", role="admin", access_token="admin-token"))


@pytest.fixture
def project(add_rows) -> Project:
    return add_rows(Project(name="Torre Alvear", location="Palermo", is_featured=True))


@pytest.fixture
def client(session_factory):
    async def _session():
        async with session_factory() as session:
            yield session

    main.app.dependency_overrides[get_session] = _session
    main.app.dependency_overrides[main.get_now] = lambda: FIXED_NOW
    # No context manager: startup would initialise the configured DATABASE_URL
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


def auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
