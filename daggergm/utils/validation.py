"""Argument validation shared by the ledger, limiter and workflow."""

import uuid

from daggergm.errors import ErrorCode, ValidationError


def validate_uuid(value, field: str = "user_id") -> str:
    """
    Check that value is a UUID string and return it in canonical form.

    Raises:
        ValidationError: If value is not a valid UUID.
    """
    if not isinstance(value, str) or not value:
        raise ValidationError(
            f"Invalid {field} format",
            field=field,
            value=value,
            error_code=ErrorCode.INVALID_ID,
        )
    try:
        return str(uuid.UUID(value))
    except ValueError:
        raise ValidationError(
            f"Invalid {field} format",
            field=field,
            value=value,
            error_code=ErrorCode.INVALID_ID,
        ) from None


def validate_positive_amount(amount, field: str = "amount") -> int:
    """
    Check that amount is a positive integer.

    Booleans are rejected even though they subclass int.
    """
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise ValidationError(
            "Invalid credit amount",
            field=field,
            value=amount,
            error_code=ErrorCode.INVALID_AMOUNT,
        )
    return amount
