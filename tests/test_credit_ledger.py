"""
Tests for the credit ledger on the in-memory store.
"""

import asyncio
import random
import unittest
import uuid
from unittest.mock import AsyncMock

from daggergm.credits import CreditLedger, CreditType, InMemoryCreditStore, TransactionType
from daggergm.errors import CreditError, ErrorCode, InsufficientCreditsError, ValidationError
from daggergm.storage.errors import StoreError, StoreErrorKind


class TestCreditLedger(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.store = InMemoryCreditStore()
        self.ledger = CreditLedger(self.store)
        self.user_id = str(uuid.uuid4())

    async def test_consume_decrements_balance(self):
        self.store.set_balance(self.user_id, 5)

        result = await self.ledger.consume(self.user_id, CreditType.ADVENTURE)

        self.assertTrue(result.success)
        self.assertEqual(result.remaining_credits, 4)
        self.assertEqual(await self.ledger.get_balance(self.user_id), 4)

    async def test_consume_with_zero_balance_raises(self):
        self.store.set_balance(self.user_id, 0)

        with self.assertRaises(InsufficientCreditsError) as ctx:
            await self.ledger.consume(self.user_id, CreditType.ADVENTURE)

        self.assertEqual(ctx.exception.status_code, 402)
        self.assertEqual(ctx.exception.details["required"], 1)
        self.assertEqual(ctx.exception.details["credit_type"], "adventure")
        self.assertEqual(await self.ledger.get_balance(self.user_id), 0)

    async def test_refund_restores_consumed_credit(self):
        self.store.set_balance(self.user_id, 5)
        await self.ledger.consume(self.user_id, CreditType.ADVENTURE)

        result = await self.ledger.refund(self.user_id, CreditType.ADVENTURE)

        self.assertEqual(result.new_balance, 5)

    async def test_unknown_user_has_zero_balance(self):
        self.assertEqual(await self.ledger.get_balance(self.user_id), 0)

    async def test_zero_cost_type_does_not_touch_store(self):
        self.store.set_balance(self.user_id, 0)

        result = await self.ledger.consume(self.user_id, CreditType.EXPORT)

        self.assertEqual(result.remaining_credits, 0)
        self.assertEqual(await self.ledger.get_transactions(self.user_id), [])

    async def test_balance_never_negative_under_concurrency(self):
        self.store.set_balance(self.user_id, 3)

        results = await asyncio.gather(
            *[self.ledger.consume(self.user_id, CreditType.ADVENTURE) for _ in range(10)],
            return_exceptions=True,
        )

        successes = [r for r in results if not isinstance(r, Exception)]
        failures = [r for r in results if isinstance(r, InsufficientCreditsError)]
        self.assertEqual(len(successes), 3)
        self.assertEqual(len(failures), 7)
        self.assertEqual(await self.ledger.get_balance(self.user_id), 0)

    async def test_add_credits(self):
        result = await self.ledger.add_credits(self.user_id, 15, source="stripe_purchase")

        self.assertEqual(result.new_balance, 15)
        transactions = await self.ledger.get_transactions(self.user_id)
        self.assertEqual(transactions[0].type, TransactionType.PURCHASE)
        self.assertEqual(transactions[0].amount, 15)

    async def test_add_credits_rejects_non_positive_amounts(self):
        for amount in (0, -5, 1.5, True, "3"):
            with self.assertRaises(ValidationError) as ctx:
                await self.ledger.add_credits(self.user_id, amount)
            self.assertEqual(ctx.exception.error_code, ErrorCode.INVALID_AMOUNT)

        self.assertEqual(await self.ledger.get_balance(self.user_id), 0)

    async def test_invalid_user_id(self):
        with self.assertRaises(ValidationError) as ctx:
            await self.ledger.get_balance("not-a-uuid")

        self.assertEqual(ctx.exception.error_code, ErrorCode.INVALID_ID)
        self.assertEqual(ctx.exception.message, "Invalid user_id format")

    async def test_invalid_credit_type(self):
        with self.assertRaises(ValidationError):
            await self.ledger.consume(self.user_id, "bogus")

    async def test_check_sufficiency(self):
        self.assertFalse(await self.ledger.check_sufficiency(self.user_id, CreditType.ADVENTURE))
        self.assertTrue(await self.ledger.check_sufficiency(self.user_id, CreditType.EXPORT))

        self.store.set_balance(self.user_id, 1)
        self.assertTrue(await self.ledger.check_sufficiency(self.user_id, CreditType.ADVENTURE))

    async def test_transactions_newest_first(self):
        self.store.set_balance(self.user_id, 2)
        await self.ledger.consume(self.user_id, CreditType.ADVENTURE)
        await self.ledger.refund(self.user_id, CreditType.ADVENTURE)

        transactions = await self.ledger.get_transactions(self.user_id)

        self.assertEqual(
            [t.type for t in transactions],
            [TransactionType.REFUND, TransactionType.CONSUMPTION],
        )
        self.assertEqual(transactions[0].balance_after, 2)
        self.assertEqual(transactions[1].balance_after, 1)


class TestCreditLedgerMixedSequence(unittest.IsolatedAsyncioTestCase):
    """Balance equals adds minus successful consumes plus refunds, and stays >= 0."""

    async def test_random_sequence_matches_running_model(self):
        rng = random.Random(1337)
        ledger = CreditLedger(InMemoryCreditStore())
        user_id = str(uuid.uuid4())

        expected = 0
        added = spent = refunded = refused = 0
        refundable = []
        history = []

        # Fixed prefix guarantees a refused consume and a refund before the random tail
        actions = ["consume", "add", "consume", "refund"] + [
            rng.choice(["add", "consume", "consume", "consume", "refund"]) for _ in range(150)
        ]
        for action in actions:

            if action == "add":
                amount = rng.randint(1, 3)
                result = await ledger.add_credits(user_id, amount, source="admin")
                expected += amount
                added += amount
                history.append((TransactionType.GRANT, amount))
                self.assertEqual(result.new_balance, expected)

            elif action == "consume":
                credit_type = rng.choice([CreditType.ADVENTURE, CreditType.EXPANSION])
                if expected == 0:
                    with self.assertRaises(InsufficientCreditsError):
                        await ledger.consume(user_id, credit_type)
                    refused += 1
                else:
                    result = await ledger.consume(user_id, credit_type)
                    expected -= 1
                    spent += 1
                    refundable.append(credit_type)
                    history.append((TransactionType.CONSUMPTION, -1))
                    self.assertEqual(result.remaining_credits, expected)

            elif refundable:
                credit_type = refundable.pop(rng.randrange(len(refundable)))
                result = await ledger.refund(user_id, credit_type)
                expected += 1
                refunded += 1
                history.append((TransactionType.REFUND, 1))
                self.assertEqual(result.new_balance, expected)

            balance = await ledger.get_balance(user_id)
            self.assertGreaterEqual(balance, 0)
            self.assertEqual(balance, expected)

        self.assertEqual(expected, added - spent + refunded)
        self.assertGreater(refused, 0)
        self.assertGreater(refunded, 0)

        transactions = list(reversed(await ledger.get_transactions(user_id, limit=200)))
        self.assertEqual([(t.type, t.amount) for t in transactions], history)
        running = 0
        for transaction in transactions:
            running += transaction.amount
            self.assertEqual(transaction.balance_after, running)
            self.assertGreaterEqual(transaction.balance_after, 0)


class TestCreditLedgerStoreFailures(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.store = AsyncMock()
        self.ledger = CreditLedger(self.store)
        self.user_id = str(uuid.uuid4())

    async def test_connection_failure_becomes_credit_error(self):
        self.store.consume.side_effect = StoreError(StoreErrorKind.CONNECTION, "timeout")

        with self.assertRaises(CreditError) as ctx:
            await self.ledger.consume(self.user_id, CreditType.ADVENTURE)

        self.assertNotIsInstance(ctx.exception, InsufficientCreditsError)
        self.assertEqual(ctx.exception.status_code, 503)
        self.assertEqual(ctx.exception.message, "Failed to consume credits")

    async def test_read_failure_becomes_credit_error(self):
        self.store.get_balance.side_effect = StoreError(StoreErrorKind.UNKNOWN, "boom")

        with self.assertRaises(CreditError):
            await self.ledger.get_balance(self.user_id)

    async def test_invalid_user_never_reaches_store(self):
        with self.assertRaises(ValidationError):
            await self.ledger.consume("nope", CreditType.ADVENTURE)

        self.store.consume.assert_not_called()
