"""
Money Input Coercion
Turns caller-supplied amounts and percentages into finite Decimals.

Floats go through ``str()`` so 0.1 becomes Decimal("0.1"), not its binary
expansion.
"""

from decimal import Decimal, InvalidOperation

from coverage_engine.utils.errors import ValidationFailure


def to_decimal(value, name: str = "Amount") -> Decimal:
    """Coerce ``value`` to a finite Decimal or raise ValidationFailure."""
    if isinstance(value, Decimal):
        number = value
    else:
        try:
            number = Decimal(str(value))
        except (InvalidOperation, ValueError, TypeError) as e:
            raise ValidationFailure(f"{name} is not a number: {value!r}") from e
    if not number.is_finite():
        raise ValidationFailure(f"{name} must be finite: {value!r}")
    return number


def to_amount(value, name: str = "Service amount") -> Decimal:
    """Like to_decimal, but also rejects negative values."""
    amount = to_decimal(value, name)
    if amount < 0:
        raise ValidationFailure(f"{name} must not be negative: {amount}")
    return amount
