"""
Tests for the Supabase-backed stores against a mocked client.

PostgREST errors are raised as postgrest APIError and must come out of the
ledger and limiter as the matching domain errors.
"""

import uuid
from unittest.mock import MagicMock

import httpx
import pytest
from postgrest.exceptions import APIError

from daggergm.credits import CreditLedger, CreditType, SupabaseCreditStore
from daggergm.errors import (
    AdventureNotFoundError,
    CreditError,
    InsufficientCreditsError,
    RegenerationLimitError,
)
from daggergm.regeneration import RegenerationLimiter, SupabaseRegenerationStore
from daggergm.storage.errors import StoreErrorKind, classify_exception


def api_error(code, message="database error"):
    return APIError({"message": message, "code": code, "hint": None, "details": None})


def response(data):
    result = MagicMock()
    result.data = data
    return result


@pytest.fixture
def client():
    return MagicMock()


class TestClassifyException:
    @pytest.mark.parametrize(
        "code,kind",
        [
            ("DG001", StoreErrorKind.INSUFFICIENT_BALANCE),
            ("DG002", StoreErrorKind.LIMIT_REACHED),
            ("P0002", StoreErrorKind.NOT_FOUND),
            ("PGRST116", StoreErrorKind.NOT_FOUND),
            ("23505", StoreErrorKind.DUPLICATE),
            ("23514", StoreErrorKind.CONSTRAINT_VIOLATION),
            ("XX000", StoreErrorKind.UNKNOWN),
        ],
    )
    def test_api_error_codes(self, code, kind):
        error = classify_exception(api_error(code))
        assert error.kind == kind
        assert error.code == code

    def test_transport_errors_are_connection_failures(self):
        error = classify_exception(httpx.ConnectError("refused"))
        assert error.kind == StoreErrorKind.CONNECTION

    def test_unknown_exceptions(self):
        error = classify_exception(RuntimeError("boom"))
        assert error.kind == StoreErrorKind.UNKNOWN
        assert "RuntimeError" in error.internal_message

    def test_store_errors_pass_through(self):
        original = classify_exception(api_error("DG001"))
        assert classify_exception(original) is original


class TestSupabaseCreditStore:
    @pytest.mark.asyncio
    async def test_consume_calls_sql_function(self, client, user_id):
        client.rpc.return_value.execute.return_value = response([{"remaining_credits": 4}])
        ledger = CreditLedger(SupabaseCreditStore(client))

        result = await ledger.consume(user_id, CreditType.ADVENTURE)

        assert result.remaining_credits == 4
        name, params = client.rpc.call_args.args
        assert name == "consume_credits"
        assert params["p_user_id"] == user_id
        assert params["p_credit_type"] == "adventure"
        assert params["p_cost"] == 1

    @pytest.mark.asyncio
    async def test_insufficient_balance_code(self, client, user_id):
        client.rpc.return_value.execute.side_effect = api_error("DG001", "Insufficient credits")
        ledger = CreditLedger(SupabaseCreditStore(client))

        with pytest.raises(InsufficientCreditsError):
            await ledger.consume(user_id, CreditType.EXPANSION)

    @pytest.mark.asyncio
    async def test_connection_failure(self, client, user_id):
        client.rpc.return_value.execute.side_effect = httpx.ConnectError("refused")
        ledger = CreditLedger(SupabaseCreditStore(client))

        with pytest.raises(CreditError) as exc_info:
            await ledger.consume(user_id, CreditType.ADVENTURE)

        assert not isinstance(exc_info.value, InsufficientCreditsError)

    @pytest.mark.asyncio
    async def test_unexpected_payload_is_credit_error(self, client, user_id):
        client.rpc.return_value.execute.return_value = response([{"unexpected": "shape"}])
        ledger = CreditLedger(SupabaseCreditStore(client))

        with pytest.raises(CreditError):
            await ledger.refund(user_id, CreditType.ADVENTURE)

    @pytest.mark.asyncio
    async def test_missing_profile_reads_as_zero(self, client, user_id):
        table = client.table.return_value
        table.select.return_value.eq.return_value.limit.return_value.execute.return_value = (
            response([])
        )
        ledger = CreditLedger(SupabaseCreditStore(client))

        assert await ledger.get_balance(user_id) == 0
        client.table.assert_called_with("daggerheart_user_profiles")

    @pytest.mark.asyncio
    async def test_add_credits_passes_source(self, client, user_id):
        client.rpc.return_value.execute.return_value = response([{"new_balance": 20}])
        ledger = CreditLedger(SupabaseCreditStore(client))

        result = await ledger.add_credits(user_id, 15, source="stripe_purchase")

        assert result.new_balance == 20
        name, params = client.rpc.call_args.args
        assert name == "add_user_credits"
        assert params["p_amount"] == 15
        assert params["p_source"] == "stripe_purchase"


class TestSupabaseRegenerationStore:
    @pytest.mark.asyncio
    async def test_counts_from_adventure_row(self, client):
        table = client.table.return_value
        table.select.return_value.eq.return_value.limit.return_value.execute.return_value = (
            response([{"scaffold_regenerations_used": 3, "expansion_regenerations_used": None}])
        )
        limiter = RegenerationLimiter(SupabaseRegenerationStore(client))

        counts = await limiter.get_regeneration_counts(str(uuid.uuid4()))

        assert counts.scaffold == 3
        assert counts.expansion == 0
        assert counts.scaffold_remaining == 7

    @pytest.mark.asyncio
    async def test_missing_adventure(self, client):
        table = client.table.return_value
        table.select.return_value.eq.return_value.limit.return_value.execute.return_value = (
            response([])
        )
        limiter = RegenerationLimiter(SupabaseRegenerationStore(client))

        with pytest.raises(AdventureNotFoundError):
            await limiter.check_scaffold_limit(str(uuid.uuid4()))

    @pytest.mark.asyncio
    async def test_increment_returns_scalar(self, client):
        client.rpc.return_value.execute.return_value = response(4)
        limiter = RegenerationLimiter(SupabaseRegenerationStore(client))
        adventure_id = str(uuid.uuid4())

        assert await limiter.increment_expansion_count(adventure_id) == 4
        client.rpc.assert_called_with(
            "increment_expansion_regenerations",
            {"p_adventure_id": adventure_id, "p_limit": 20},
        )

    @pytest.mark.asyncio
    async def test_increment_at_cap(self, client):
        client.rpc.return_value.execute.side_effect = api_error("DG002")
        limiter = RegenerationLimiter(SupabaseRegenerationStore(client))

        with pytest.raises(RegenerationLimitError) as exc_info:
            await limiter.increment_scaffold_count(str(uuid.uuid4()))

        assert exc_info.value.used == 10

    @pytest.mark.asyncio
    async def test_increment_unknown_adventure(self, client):
        client.rpc.return_value.execute.side_effect = api_error("P0002")
        limiter = RegenerationLimiter(SupabaseRegenerationStore(client))

        with pytest.raises(AdventureNotFoundError):
            await limiter.increment_scaffold_count(str(uuid.uuid4()))
