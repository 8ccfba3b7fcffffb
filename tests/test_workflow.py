"""
Tests for the adventure workflow.

Covers the order of checks (rate limit, ownership, budget or credit), the
refund on generation failure and the paid fallback once the free
regeneration budget is spent.
"""

import unittest
import uuid
from unittest.mock import patch

from fakes import FakeAdventureGenerator

from daggergm.adventures import AdventureWorkflow, InMemoryAdventureRepository
from daggergm.credits import CreditLedger, InMemoryCreditStore, TransactionType
from daggergm.errors import (
    AdventureAccessError,
    AdventureNotFoundError,
    AuthenticationRequiredError,
    ConflictError,
    ErrorCode,
    InsufficientCreditsError,
    MovementNotFoundError,
    ProviderError,
    RateLimitError,
    RegenerationLimitError,
)
from daggergm.generation.models import AdventureConfig
from daggergm.ratelimit import RateLimitContext, RateLimiter
from daggergm.regeneration import (
    REFINEMENT_LIMIT_MESSAGE,
    InMemoryRegenerationStore,
    RegenerationLimiter,
)
from daggergm.storage.errors import StoreError, StoreErrorKind


class WorkflowTestCase(unittest.IsolatedAsyncioTestCase):
    paid_fallback = True

    def setUp(self):
        self.credit_store = InMemoryCreditStore()
        self.regeneration_store = InMemoryRegenerationStore()
        self.adventures = InMemoryAdventureRepository()
        self.generator = FakeAdventureGenerator()
        self.ledger = CreditLedger(self.credit_store)
        self.workflow = AdventureWorkflow(
            rate_limiter=RateLimiter(),
            regeneration=RegenerationLimiter(self.regeneration_store),
            ledger=self.ledger,
            adventures=self.adventures,
            generator=self.generator,
            paid_regeneration_fallback=self.paid_fallback,
        )
        self.user_id = str(uuid.uuid4())
        self.context = RateLimitContext(user_id=self.user_id, ip_address="10.0.0.1")
        self.config = AdventureConfig(primary_motif="a drowned bell tower")

    async def create_adventure(self, credits: int = 1):
        self.credit_store.set_balance(self.user_id, credits)
        return await self.workflow.generate_adventure(self.context, self.config)

    async def balance(self) -> int:
        return await self.ledger.get_balance(self.user_id)


class TestGenerateAdventure(WorkflowTestCase):
    async def test_generation_charges_one_credit(self):
        adventure = await self.create_adventure(credits=5)

        self.assertEqual(await self.balance(), 4)
        self.assertEqual(adventure.user_id, self.user_id)
        self.assertEqual(adventure.title, "The Tale of a drowned bell tower")
        self.assertEqual([m.order_index for m in adventure.movements], [0, 1, 2])

        counts = await self.workflow.get_regeneration_counts(self.context, adventure.id)
        self.assertEqual((counts.scaffold, counts.expansion), (0, 0))

    async def test_generation_without_credits(self):
        with self.assertRaises(InsufficientCreditsError):
            await self.create_adventure(credits=0)

        self.assertNotIn("generate_scaffold", self.generator.calls)
        self.assertEqual(await self.balance(), 0)

    async def test_failed_generation_refunds_credit(self):
        self.generator.fail = True

        with self.assertRaises(ProviderError):
            await self.create_adventure(credits=3)

        self.assertEqual(await self.balance(), 3)
        transactions = await self.ledger.get_transactions(self.user_id)
        self.assertEqual(
            [t.type for t in transactions],
            [TransactionType.REFUND, TransactionType.CONSUMPTION],
        )

    async def test_counter_registration_failure_saves_nothing(self):
        failure = StoreError(StoreErrorKind.CONNECTION, internal_message="connection reset")

        with patch.object(self.regeneration_store, "create_counters", side_effect=failure):
            with self.assertRaises(StoreError):
                await self.create_adventure(credits=2)

        self.assertEqual(await self.balance(), 2)
        self.assertEqual(await self.adventures.list_for_user(self.user_id), [])

    async def test_save_failure_refunds_credit(self):
        failure = StoreError(StoreErrorKind.CONNECTION, internal_message="connection reset")

        with patch.object(self.adventures, "create", side_effect=failure):
            with self.assertRaises(StoreError):
                await self.create_adventure(credits=2)

        self.assertEqual(await self.balance(), 2)

    async def test_guest_cannot_generate(self):
        with self.assertRaises(AuthenticationRequiredError):
            await self.workflow.generate_adventure(RateLimitContext(ip_address="10.0.0.2"), self.config)

    async def test_rate_limit_applies_before_credits(self):
        self.credit_store.set_balance(self.user_id, 20)
        for _ in range(10):
            await self.workflow.generate_adventure(self.context, self.config)

        with self.assertRaises(RateLimitError):
            await self.workflow.generate_adventure(self.context, self.config)

        self.assertEqual(await self.balance(), 10)


class TestAdventureAccess(WorkflowTestCase):
    async def test_other_users_are_denied(self):
        adventure = await self.create_adventure()
        intruder = RateLimitContext(user_id=str(uuid.uuid4()))

        with self.assertRaises(AdventureAccessError):
            await self.workflow.get_adventure(intruder, adventure.id)
        with self.assertRaises(AdventureAccessError):
            await self.workflow.expand_movement(intruder, adventure.id, adventure.movements[0].id)

    async def test_unknown_adventure_and_movement(self):
        adventure = await self.create_adventure()

        with self.assertRaises(AdventureNotFoundError):
            await self.workflow.get_adventure(self.context, str(uuid.uuid4()))
        with self.assertRaises(MovementNotFoundError):
            await self.workflow.expand_movement(self.context, adventure.id, "missing")


class TestScaffoldRegeneration(WorkflowTestCase):
    async def test_free_regeneration_increments_counter(self):
        adventure = await self.create_adventure()
        movement = adventure.movements[1]

        update = await self.workflow.regenerate_scaffold_movement(
            self.context, adventure.id, movement.id, feedback="More smugglers"
        )

        self.assertFalse(update.charged_credit)
        self.assertEqual(update.movement.id, movement.id)
        self.assertEqual(update.movement.order_index, 1)
        self.assertEqual(update.movement.description, "More smugglers")
        self.assertEqual(update.regenerations.scaffold, 1)
        self.assertEqual(await self.balance(), 0)

        stored = await self.workflow.get_adventure(self.context, adventure.id)
        self.assertEqual(stored.movements[1].title, update.movement.title)

    async def test_failed_regeneration_is_not_counted(self):
        adventure = await self.create_adventure()
        self.generator.fail = True

        with self.assertRaises(ProviderError):
            await self.workflow.regenerate_scaffold_movement(
                self.context, adventure.id, adventure.movements[0].id
            )

        counts = await self.workflow.get_regeneration_counts(self.context, adventure.id)
        self.assertEqual(counts.scaffold, 0)

    async def test_counter_failure_after_save_still_returns_movement(self):
        adventure = await self.create_adventure()
        movement = adventure.movements[0]
        failure = StoreError(StoreErrorKind.CONNECTION, internal_message="connection reset")

        with patch.object(self.regeneration_store, "increment", side_effect=failure):
            with self.assertLogs("daggergm.adventures.workflow", level="ERROR") as logs:
                update = await self.workflow.regenerate_scaffold_movement(
                    self.context, adventure.id, movement.id, feedback="Add a storm"
                )

        self.assertFalse(update.charged_credit)
        self.assertEqual(update.movement.description, "Add a storm")
        self.assertEqual(update.regenerations.scaffold, 0)
        self.assertIn("could not be counted", logs.output[0])
        stored = await self.workflow.get_adventure(self.context, adventure.id)
        self.assertEqual(stored.movements[0].description, "Add a storm")

    async def test_locked_movement_cannot_be_regenerated(self):
        adventure = await self.create_adventure()
        stored = await self.adventures.get(adventure.id)
        stored.movements[0] = stored.movements[0].model_copy(update={"locked": True})
        await self.adventures.save_movements(stored)

        with self.assertRaises(ConflictError):
            await self.workflow.regenerate_scaffold_movement(
                self.context, adventure.id, stored.movements[0].id
            )

    async def test_spent_budget_charges_a_credit(self):
        adventure = await self.create_adventure()
        self.regeneration_store.set_counts(adventure.id, scaffold=10)
        self.credit_store.set_balance(self.user_id, 2)

        update = await self.workflow.regenerate_scaffold_movement(
            self.context, adventure.id, adventure.movements[0].id
        )

        self.assertTrue(update.charged_credit)
        self.assertEqual(update.regenerations.scaffold, 10)
        self.assertEqual(await self.balance(), 1)

    async def test_paid_regeneration_failure_refunds(self):
        adventure = await self.create_adventure()
        self.regeneration_store.set_counts(adventure.id, scaffold=10)
        self.credit_store.set_balance(self.user_id, 2)
        self.generator.fail = True

        with self.assertRaises(ProviderError):
            await self.workflow.regenerate_scaffold_movement(
                self.context, adventure.id, adventure.movements[0].id
            )

        self.assertEqual(await self.balance(), 2)

    async def test_spent_budget_without_credits(self):
        adventure = await self.create_adventure()
        self.regeneration_store.set_counts(adventure.id, scaffold=10)

        with self.assertRaises(InsufficientCreditsError):
            await self.workflow.regenerate_scaffold_movement(
                self.context, adventure.id, adventure.movements[0].id
            )

        self.assertNotIn("regenerate_movement", self.generator.calls)


class TestWithoutPaidFallback(WorkflowTestCase):
    paid_fallback = False

    async def test_spent_scaffold_budget_raises(self):
        adventure = await self.create_adventure()
        self.regeneration_store.set_counts(adventure.id, scaffold=10)
        self.credit_store.set_balance(self.user_id, 5)

        with self.assertRaises(RegenerationLimitError) as ctx:
            await self.workflow.regenerate_scaffold_movement(
                self.context, adventure.id, adventure.movements[0].id
            )

        self.assertEqual(ctx.exception.limit_type, "scaffold")
        self.assertEqual(ctx.exception.used, 10)
        self.assertEqual(await self.balance(), 5)

    async def test_spent_refinement_budget_uses_refinement_message(self):
        adventure = await self.create_adventure()
        movement = adventure.movements[0]
        await self.workflow.expand_movement(self.context, adventure.id, movement.id)
        self.regeneration_store.set_counts(adventure.id, expansion=20)

        with self.assertRaises(RegenerationLimitError) as ctx:
            await self.workflow.refine_movement(
                self.context, adventure.id, movement.id, "Darker tone"
            )

        self.assertEqual(ctx.exception.limit_type, "expansion")
        self.assertEqual(ctx.exception.details["suggestion"], REFINEMENT_LIMIT_MESSAGE)


class TestExpansionAndRefinement(WorkflowTestCase):
    async def test_expand_then_refine(self):
        adventure = await self.create_adventure()
        movement = adventure.movements[0]

        expanded = await self.workflow.expand_movement(self.context, adventure.id, movement.id)
        self.assertTrue(expanded.movement.is_expanded)
        self.assertEqual(expanded.movement.gm_notes, "Keep the pace up")
        self.assertEqual(expanded.regenerations.expansion, 1)

        refined = await self.workflow.refine_movement(
            self.context, adventure.id, movement.id, "Darker tone"
        )
        self.assertTrue(refined.movement.content.endswith("[Darker tone]"))
        self.assertEqual(refined.movement.gm_notes, "Keep the pace up")
        self.assertEqual(refined.regenerations.expansion, 2)

    async def test_refine_requires_expansion(self):
        adventure = await self.create_adventure()

        with self.assertRaises(ConflictError) as ctx:
            await self.workflow.refine_movement(
                self.context, adventure.id, adventure.movements[0].id, "Darker tone"
            )

        self.assertEqual(ctx.exception.error_code, ErrorCode.MOVEMENT_NOT_EXPANDED)

    async def test_expansion_passes_earlier_movements(self):
        adventure = await self.create_adventure()

        update = await self.workflow.expand_movement(
            self.context, adventure.id, adventure.movements[2].id
        )

        self.assertIn("Movement 3", update.movement.content)
