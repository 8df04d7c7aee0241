"""End-to-end tests for the matching pipeline against an in-memory store."""

from datetime import timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from llm.client import GenerationError
from market import models
from market.pipelines.catalog import CatalogStoreError, upsert_categories
from market.pipelines.matching import (
    MatchingError,
    find_sellers_for_request,
    log_match_request,
)
from market.pipelines.sellers import touch_last_matched
from market.scoring import as_utc

from tests.conftest import FakeGenerator


@pytest.fixture
async def catalog(session):
    await upsert_categories(session, ["Electronics", "Laptops"])
    await session.commit()


class TestFindSellersForRequest:

    async def test_laptop_request(self, session, catalog, add_seller, now):
        specialist = await add_seller(
            "Ada Obi", "UNILAG", ["Laptops"], average_rating=4.5, total_ratings=12
        )
        generalist = await add_seller("Tunde Bello", "UNILAG", ["Laptops", "Phones"])
        generator = FakeGenerator('["Laptop"]', "[]")

        outcome = await find_sellers_for_request(
            session, "I need a laptop", "UNILAG", 5, generator=generator, now=now
        )

        assert outcome.generated_categories == ["Laptop"]
        assert outcome.matched_categories == ["Laptops"]
        assert [m.seller_id for m in outcome.matches] == [specialist.id, generalist.id]
        assert [m.rank for m in outcome.matches] == [1, 2]
        assert outcome.matches[0].score == pytest.approx(57.7)
        assert outcome.matches[1].score == pytest.approx(25.0)
        assert outcome.matches[1].categories_matched == ["Laptops"]

    async def test_returned_sellers_are_stamped(self, session, catalog, add_seller, now):
        seller = await add_seller("Ada Obi", "UNILAG", ["Laptops"])

        await find_sellers_for_request(
            session, "laptop", "UNILAG", generator=FakeGenerator('["Laptop"]', "[]"), now=now
        )

        await session.refresh(seller)
        assert as_utc(seller.last_matched_at) == now

    async def test_ineligible_sellers_excluded(self, session, catalog, add_seller, now):
        eligible = await add_seller("Ada Obi", "UNILAG", ["Laptops"])
        elsewhere = await add_seller("Kemi Ade", "UI", ["Laptops"])
        suspended = await add_seller(
            "Musa Bala", "UNILAG", ["Laptops"],
            is_billing_active=True, billing_date=now.date(),
        )

        outcome = await find_sellers_for_request(
            session, "laptop", "UNILAG", generator=FakeGenerator('["Laptop"]', "[]"), now=now
        )

        assert [m.seller_id for m in outcome.matches] == [eligible.id]
        for seller in (elsewhere, suspended):
            await session.refresh(seller)
            assert seller.last_matched_at is None

    async def test_recently_matched_seller_yields(self, session, catalog, add_seller, now):
        first = await add_seller("Ada Obi", "UNILAG", ["Laptops"])
        second = await add_seller("Tunde Bello", "UNILAG", ["Laptops"])
        generator = FakeGenerator('["Laptop"]', "[]", '["Laptop"]', "[]")

        earlier = await find_sellers_for_request(
            session, "laptop", "UNILAG", 1, generator=generator, now=now
        )
        later = await find_sellers_for_request(
            session, "laptop", "UNILAG", 1, generator=generator, now=now + timedelta(hours=1)
        )

        assert [m.seller_id for m in earlier.matches] == [first.id]
        assert [m.seller_id for m in later.matches] == [second.id]

    async def test_generation_failure_is_empty(self, session, catalog, add_seller, now):
        await add_seller("Ada Obi", "UNILAG", ["Laptops"])

        outcome = await find_sellers_for_request(
            session, "laptop", "UNILAG", generator=FakeGenerator(GenerationError("down")), now=now
        )

        assert outcome.generated_categories == []
        assert outcome.matched_categories == []
        assert outcome.matches == []

    async def test_no_catalog_match(self, session, catalog, add_seller, now):
        await add_seller("Ada Obi", "UNILAG", ["Laptops"])

        outcome = await find_sellers_for_request(
            session, "flux capacitor", "UNILAG",
            generator=FakeGenerator('["Quantum Flux"]', "[]"), now=now,
        )

        assert outcome.generated_categories == ["Quantum Flux"]
        assert outcome.matched_categories == []
        assert outcome.matches == []

    async def test_semantic_match_extends_results(self, session, catalog, add_seller, now):
        seller = await add_seller("Ada Obi", "UNILAG", ["Electronics"])
        generator = FakeGenerator('["Notebook Computers"]', '["Electronics", "Gadgets"]')

        outcome = await find_sellers_for_request(
            session, "notebook computer", "UNILAG", generator=generator, now=now
        )

        assert outcome.matched_categories == ["Electronics"]
        assert [m.seller_id for m in outcome.matches] == [seller.id]

    async def test_store_failure_raises(self, session, monkeypatch, now):
        async def broken_catalog(session):
            raise CatalogStoreError("connection refused")

        monkeypatch.setattr("market.pipelines.matching.fetch_catalog_names", broken_catalog)

        with pytest.raises(MatchingError):
            await find_sellers_for_request(
                session, "laptop", "UNILAG", generator=FakeGenerator('["Laptop"]'), now=now
            )


class TestLogMatchRequest:

    async def test_persists_outcome(self, session, catalog, add_seller, now):
        seller = await add_seller("Ada Obi", "UNILAG", ["Laptops"])
        outcome = await find_sellers_for_request(
            session, "laptop", "UNILAG", generator=FakeGenerator('["Laptop"]', "[]"), now=now
        )

        await log_match_request(session, outcome)

        result = await session.execute(select(models.MatchRequestLog))
        record = result.scalar_one()
        assert record.request_text == "laptop"
        assert record.institution == "UNILAG"
        assert record.generated_categories == ["Laptop"]
        assert record.matched_categories == ["Laptops"]
        assert record.matched_seller_ids == [seller.id]


class TestTouchLastMatched:

    async def test_one_failed_update_keeps_the_others(self, session, add_seller, monkeypatch, now):
        failing = await add_seller("Ada Obi", "UNILAG", ["Laptops"])
        healthy = await add_seller("Tunde Bello", "UNILAG", ["Laptops"])
        execute = session.execute
        calls = []

        async def flaky_execute(statement, *args, **kwargs):
            calls.append(statement)
            if len(calls) == 1:
                raise OperationalError("UPDATE sellers", {}, Exception("deadlock detected"))
            return await execute(statement, *args, **kwargs)

        monkeypatch.setattr(session, "execute", flaky_execute)
        updated = await touch_last_matched(session, [failing.id, healthy.id], now)
        monkeypatch.undo()

        assert updated == 1
        await session.refresh(failing)
        await session.refresh(healthy)
        assert failing.last_matched_at is None
        assert as_utc(healthy.last_matched_at) == now


class TestExplicitLimit:

    async def test_zero_limit_returns_nothing(self, session, catalog, add_seller, now):
        seller = await add_seller("Ada Obi", "UNILAG", ["Laptops"])

        outcome = await find_sellers_for_request(
            session, "laptop", "UNILAG", 0, generator=FakeGenerator('["Laptop"]', "[]"), now=now
        )

        assert outcome.matched_categories == ["Laptops"]
        assert outcome.matches == []
        await session.refresh(seller)
        assert seller.last_matched_at is None
