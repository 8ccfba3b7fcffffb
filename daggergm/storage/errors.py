"""
Error boundary for the Supabase backing store.

PostgREST reports failures as string codes (``PGRST116`` for "no rows",
SQLSTATE values for database errors, and the custom ``DG0xx`` codes raised by
our SQL functions). This module is the only place those strings are read;
callers switch on StoreErrorKind instead.
"""

import logging
from enum import Enum
from typing import Optional

import httpx
from postgrest.exceptions import APIError

from daggergm.errors import DaggerGMError, ErrorCode

logger = logging.getLogger(__name__)


class StoreErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    LIMIT_REACHED = "limit_reached"
    INVALID_INPUT = "invalid_input"
    CONSTRAINT_VIOLATION = "constraint_violation"
    DUPLICATE = "duplicate"
    CONNECTION = "connection"
    INVALID_RESPONSE = "invalid_response"
    UNKNOWN = "unknown"


# PostgREST / Postgres error codes -> kind
_CODE_KINDS = {
    "PGRST116": StoreErrorKind.NOT_FOUND,  # .single() matched no rows
    "P0002": StoreErrorKind.NOT_FOUND,  # no_data_found raised by our functions
    "DG001": StoreErrorKind.INSUFFICIENT_BALANCE,
    "DG002": StoreErrorKind.LIMIT_REACHED,
    "22P02": StoreErrorKind.INVALID_INPUT,  # invalid_text_representation (bad uuid)
    "22023": StoreErrorKind.INVALID_INPUT,  # invalid_parameter_value
    "23514": StoreErrorKind.CONSTRAINT_VIOLATION,  # check_violation (credits >= 0)
    "23505": StoreErrorKind.DUPLICATE,  # unique_violation
}


class StoreError(DaggerGMError):
    """
    A failure reported by (or while reaching) the backing store.

    Attributes:
        kind: Closed classification of the failure.
        code: Raw backend code, kept for logs only.
    """

    status_code = 503
    default_error_code = ErrorCode.DATABASE_ERROR
    default_message = "Storage is temporarily unavailable"

    def __init__(
        self,
        kind: StoreErrorKind,
        internal_message: Optional[str] = None,
        code: Optional[str] = None,
    ):
        self.kind = kind
        self.code = code
        super().__init__(internal_message=internal_message)

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.internal_message or self.message}"


def classify_api_error(error: APIError) -> StoreError:
    """Translate a PostgREST APIError into a StoreError."""
    code = getattr(error, "code", None)
    kind = _CODE_KINDS.get(code or "", StoreErrorKind.UNKNOWN)
    message = getattr(error, "message", None) or str(error)
    return StoreError(kind, internal_message=message, code=code)


def classify_exception(error: Exception) -> StoreError:
    """
    Translate any exception raised by a store call into a StoreError.

    StoreErrors pass through unchanged.
    """
    if isinstance(error, StoreError):
        return error
    if isinstance(error, APIError):
        return classify_api_error(error)
    if isinstance(error, (httpx.TransportError, ConnectionError, TimeoutError)):
        return StoreError(StoreErrorKind.CONNECTION, internal_message=str(error))
    logger.debug(f"Unclassified store exception: {type(error).__name__}")
    return StoreError(StoreErrorKind.UNKNOWN, internal_message=f"{type(error).__name__}: {error}")
