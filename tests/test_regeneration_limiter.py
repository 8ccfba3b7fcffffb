"""
Tests for per-adventure regeneration budgets.
"""

import asyncio
import unittest
import uuid
from unittest.mock import AsyncMock

from daggergm.errors import AdventureNotFoundError, ErrorCode, RegenerationLimitError, ValidationError
from daggergm.regeneration import (
    EXPANSION_REGENERATION_LIMIT,
    LIMIT_MESSAGES,
    SCAFFOLD_REGENERATION_LIMIT,
    InMemoryRegenerationStore,
    LimitType,
    RegenerationLimiter,
)


class TestRegenerationLimiter(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.store = InMemoryRegenerationStore()
        self.limiter = RegenerationLimiter(self.store)
        self.adventure_id = str(uuid.uuid4())
        self.store.set_counts(self.adventure_id)

    def test_default_limits(self):
        self.assertEqual(SCAFFOLD_REGENERATION_LIMIT, 10)
        self.assertEqual(EXPANSION_REGENERATION_LIMIT, 20)
        self.assertEqual(self.limiter.limit_for(LimitType.SCAFFOLD), 10)

    async def test_scaffold_limit_reached(self):
        self.store.set_counts(self.adventure_id, scaffold=10)

        with self.assertRaises(RegenerationLimitError) as ctx:
            await self.limiter.check_scaffold_limit(self.adventure_id)

        error = ctx.exception
        self.assertEqual(error.limit_type, "scaffold")
        self.assertEqual(error.used, 10)
        self.assertEqual(error.limit, 10)
        self.assertEqual(error.status_code, 403)
        self.assertEqual(error.details["suggestion"], LIMIT_MESSAGES[LimitType.SCAFFOLD])

    async def test_one_below_limit_passes(self):
        self.store.set_counts(self.adventure_id, scaffold=9, expansion=19)

        await self.limiter.check_scaffold_limit(self.adventure_id)
        await self.limiter.check_expansion_limit(self.adventure_id)

    async def test_check_is_idempotent(self):
        self.store.set_counts(self.adventure_id, scaffold=3)

        for _ in range(5):
            await self.limiter.check_scaffold_limit(self.adventure_id)

        counts = await self.limiter.get_regeneration_counts(self.adventure_id)
        self.assertEqual(counts.scaffold, 3)

    async def test_expansion_limit_reached(self):
        self.store.set_counts(self.adventure_id, expansion=20)

        with self.assertRaises(RegenerationLimitError) as ctx:
            await self.limiter.check_expansion_limit(self.adventure_id)

        self.assertEqual(ctx.exception.limit_type, "expansion")
        self.assertEqual(ctx.exception.used, 20)

    async def test_increment_returns_new_count(self):
        self.assertEqual(await self.limiter.increment_scaffold_count(self.adventure_id), 1)
        self.assertEqual(await self.limiter.increment_scaffold_count(self.adventure_id), 2)
        self.assertEqual(await self.limiter.increment_expansion_count(self.adventure_id), 1)

    async def test_increment_never_passes_cap(self):
        self.store.set_counts(self.adventure_id, scaffold=10)

        with self.assertRaises(RegenerationLimitError):
            await self.limiter.increment_scaffold_count(self.adventure_id)

        counts = await self.limiter.get_regeneration_counts(self.adventure_id)
        self.assertEqual(counts.scaffold, 10)

    async def test_counters_are_independent(self):
        self.store.set_counts(self.adventure_id, scaffold=10)

        await self.limiter.check_expansion_limit(self.adventure_id)
        await self.limiter.increment_expansion_count(self.adventure_id)

        counts = await self.limiter.get_regeneration_counts(self.adventure_id)
        self.assertEqual(counts.scaffold, 10)
        self.assertEqual(counts.expansion, 1)

    async def test_counts_report_remaining(self):
        self.store.set_counts(self.adventure_id, scaffold=4, expansion=20)

        counts = await self.limiter.get_regeneration_counts(self.adventure_id)

        self.assertEqual(counts.to_dict(), {
            "scaffold": 4,
            "expansion": 20,
            "scaffold_remaining": 6,
            "expansion_remaining": 0,
        })

    async def test_unknown_adventure(self):
        with self.assertRaises(AdventureNotFoundError):
            await self.limiter.check_scaffold_limit(str(uuid.uuid4()))
        with self.assertRaises(AdventureNotFoundError):
            await self.limiter.increment_expansion_count(str(uuid.uuid4()))

    async def test_malformed_adventure_id_never_reaches_store(self):
        store = AsyncMock()
        limiter = RegenerationLimiter(store)

        calls = (
            limiter.check_scaffold_limit,
            limiter.check_expansion_limit,
            limiter.increment_scaffold_count,
            limiter.increment_expansion_count,
            limiter.get_regeneration_counts,
            limiter.create_counters,
        )
        for call in calls:
            with self.assertRaises(ValidationError) as ctx:
                await call("not-a-uuid")
            self.assertEqual(ctx.exception.error_code, ErrorCode.INVALID_ID)
            self.assertEqual(ctx.exception.status_code, 400)

        store.get_counts.assert_not_called()
        store.increment.assert_not_called()
        store.create_counters.assert_not_called()

    async def test_create_counters_starts_at_zero(self):
        adventure_id = str(uuid.uuid4())
        await self.limiter.create_counters(adventure_id)

        counts = await self.limiter.get_regeneration_counts(adventure_id)
        self.assertEqual((counts.scaffold, counts.expansion), (0, 0))

    async def test_custom_limits(self):
        limiter = RegenerationLimiter(self.store, {LimitType.SCAFFOLD: 1, LimitType.EXPANSION: 1})
        await limiter.increment_scaffold_count(self.adventure_id)

        with self.assertRaises(RegenerationLimitError) as ctx:
            await limiter.check_scaffold_limit(self.adventure_id)
        self.assertEqual(ctx.exception.limit, 1)

    async def test_guard_serializes_per_adventure(self):
        order = []

        async def worker(name):
            async with self.limiter.guard(self.adventure_id):
                order.append(f"{name}-start")
                await asyncio.sleep(0.01)
                order.append(f"{name}-end")

        await asyncio.gather(worker("a"), worker("b"))

        self.assertEqual(order[0][2:], "start")
        self.assertEqual(order[1][2:], "end")
        self.assertEqual(order[0][0], order[1][0])
