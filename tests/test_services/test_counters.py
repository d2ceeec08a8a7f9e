"""
Tests for atomic id allocation.
"""

import asyncio

import pytest
from sqlalchemy import select

from vmregistry.core.exceptions import NotFoundException
from vmregistry.models.image import Counter
from vmregistry.services.counters import FLOOR, CounterStore


class TestConfigure:
    @pytest.mark.asyncio
    async def test_configure_creates_counter(self, db_session):
        await CounterStore(db_session).configure("images")
        await db_session.commit()

        counter = await db_session.scalar(select(Counter).where(Counter.entity == "images"))
        assert counter.next_id == FLOOR

    @pytest.mark.asyncio
    async def test_configure_is_idempotent(self, db_session):
        counters = CounterStore(db_session)
        await counters.configure("images")
        await counters.allocate("images")
        await counters.configure("images")
        await db_session.commit()

        counter = await db_session.scalar(select(Counter).where(Counter.entity == "images"))
        assert counter.next_id == FLOOR + 1


class TestAllocate:
    @pytest.mark.asyncio
    async def test_first_id_is_one(self, db_session):
        counters = CounterStore(db_session)
        await counters.configure("images")

        assert await counters.allocate("images") == 1
        assert await counters.allocate("images") == 2

    @pytest.mark.asyncio
    async def test_entities_are_independent(self, db_session):
        counters = CounterStore(db_session)
        await counters.configure("images")
        await counters.configure("kernels")

        assert await counters.allocate("images") == 1
        assert await counters.allocate("images") == 2
        assert await counters.allocate("kernels") == 1

    @pytest.mark.asyncio
    async def test_unconfigured_entity(self, db_session):
        with pytest.raises(NotFoundException):
            await CounterStore(db_session).allocate("nothing")

    @pytest.mark.asyncio
    async def test_concurrent_allocations_are_distinct(self, session_factory):
        """Separate sessions racing on the counter get 1..N with no gaps."""
        async with session_factory() as session:
            await CounterStore(session).configure("images")
            await session.commit()

        async def allocate_one() -> int:
            async with session_factory() as session:
                value = await CounterStore(session).allocate("images")
                await session.commit()
                return value

        ids = await asyncio.gather(*(allocate_one() for _ in range(20)))

        assert sorted(ids) == list(range(1, 21))

    @pytest.mark.asyncio
    async def test_compare_and_swap_fallback(self, db_session, monkeypatch):
        """Dialects without UPDATE ... RETURNING still allocate sequentially."""
        dialect = db_session.get_bind().dialect
        monkeypatch.setattr(dialect, "update_returning", False)

        counters = CounterStore(db_session)
        await counters.configure("images")

        assert await counters.allocate("images") == 1
        assert await counters.allocate("images") == 2
