"""Backing store access and its error boundary."""

from daggergm.storage.errors import (
    StoreError,
    StoreErrorKind,
    classify_api_error,
    classify_exception,
)
from daggergm.storage.supabase_client import create_supabase_client, run_query

__all__ = [
    "StoreError",
    "StoreErrorKind",
    "classify_api_error",
    "classify_exception",
    "create_supabase_client",
    "run_query",
]
