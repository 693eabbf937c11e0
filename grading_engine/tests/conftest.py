"""
Shared fixtures: a throwaway SQLite database per test and a few actors.
"""
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from grading_engine.core.tenant_guard import (
    ROLE_ADMIN, ROLE_PROFESSOR, ROLE_STUDENT, ROLE_SUPER_ADMIN, Actor
)
from grading_engine.orm.base import Base

ORG_ID = 1
OTHER_ORG_ID = 2


@pytest_asyncio.fixture
async def engine(tmp_path):
    """File-backed so every session sees the same database."""
    test_engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'grading_test.db'}", echo=False)
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def admin() -> Actor:
    return Actor(id=100, organization_id=ORG_ID, role=ROLE_ADMIN)


@pytest.fixture
def professor() -> Actor:
    return Actor(id=200, organization_id=ORG_ID, role=ROLE_PROFESSOR)


@pytest.fixture
def other_professor() -> Actor:
    return Actor(id=201, organization_id=ORG_ID, role=ROLE_PROFESSOR)


@pytest.fixture
def outsider_admin() -> Actor:
    return Actor(id=300, organization_id=OTHER_ORG_ID, role=ROLE_ADMIN)


@pytest.fixture
def student() -> Actor:
    return Actor(id=400, organization_id=ORG_ID, role=ROLE_STUDENT)


@pytest.fixture
def super_admin() -> Actor:
    return Actor(id=1, organization_id=None, role=ROLE_SUPER_ADMIN)


def simple_criteria(*max_points):
    """Criteria with the usual 100/75/50/25 levels."""
    return [
        {
            "name": f"Criterion {index + 1}",
            "description": "",
            "max_points": points,
            "levels": [
                {"label": "Excellent", "points": 100},
                {"label": "Good", "points": 75},
                {"label": "Fair", "points": 50},
                {"label": "Poor", "points": 25},
            ],
        }
        for index, points in enumerate(max_points)
    ]
