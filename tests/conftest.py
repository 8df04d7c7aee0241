"""Shared fixtures: in-memory database, scripted text generator, fixed clock."""
from __future__ import annotations

import asyncio
import os
from datetime import datetime, timezone

# Settings are read at import time
os.environ.setdefault("DB_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("LOG_FORMAT", "text")
os.environ.pop("LLM_API_KEY", None)

import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from llm.client import GenerationError
from market import models
from market.pipelines.catalog import store_seller_categories


class FakeGenerator:
    """Scripted TextGenerator: returns queued responses in order.

    A queued exception is raised instead of returned. Once the queue is empty
    every call fails with GenerationError.
    """

    def __init__(self, *responses):
        self.responses = list(responses)
        self.prompts: list[str] = []

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if not self.responses:
            raise GenerationError("no scripted response left")
        response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        return response


class SlowGenerator:
    """Never answers within any reasonable timeout."""

    def __init__(self, delay: float = 5.0):
        self.delay = delay
        self.calls = 0

    async def generate(self, prompt: str) -> str:
        self.calls += 1
        await asyncio.sleep(self.delay)
        return '["Too Late"]'


@pytest.fixture
def now() -> datetime:
    return datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
async def engine():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)

    # Let SQLAlchemy own BEGIN so SAVEPOINTs behave on SQLite
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(models.Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(bind=engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
async def session(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def add_seller(session):
    """Factory creating a seller and linking its categories."""

    async def _add(
        full_name: str,
        institution: str,
        categories: list[str],
        **attrs,
    ) -> models.Seller:
        seller = models.Seller(full_name=full_name, institution=institution, **attrs)
        session.add(seller)
        await session.flush()
        await store_seller_categories(session, seller.id, categories)
        return seller

    return _add
