"""
Supabase client construction and query execution.

The supabase-py client is synchronous, so every query is run in the default
thread pool to keep the event loop free.
"""

import asyncio
import logging
from typing import Any, Callable, TypeVar

from supabase import Client, create_client

from daggergm.config import DatabaseSettings
from daggergm.storage.errors import StoreError, StoreErrorKind, classify_exception

logger = logging.getLogger(__name__)

T = TypeVar("T")


def create_supabase_client(settings: DatabaseSettings) -> Client:
    """Create a service-role Supabase client from settings."""
    if not settings.is_configured:
        raise StoreError(
            StoreErrorKind.CONNECTION,
            internal_message="SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set",
        )
    client = create_client(
        settings.supabase_url,
        settings.supabase_service_role_key.get_secret_value(),
    )
    logger.info("Supabase client initialized")
    return client


async def run_query(operation: str, query: Callable[[], T]) -> T:
    """
    Run a synchronous Supabase call in the thread pool.

    Any failure is re-raised as a classified StoreError.

    Args:
        operation: Short label used in log messages.
        query: Zero-argument callable performing the request.
    """
    try:
        return await asyncio.to_thread(query)
    except Exception as e:
        error = classify_exception(e)
        if error.kind in (StoreErrorKind.CONNECTION, StoreErrorKind.UNKNOWN):
            logger.error(f"Store call '{operation}' failed: {error}")
        else:
            logger.debug(f"Store call '{operation}' returned {error.kind.value}")
        raise error from e


def first_row(data: Any) -> Any:
    """Return the first row of a PostgREST result, or None when empty."""
    if isinstance(data, list):
        return data[0] if data else None
    return data
