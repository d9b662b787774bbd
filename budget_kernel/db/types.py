"""
Module: budget_kernel.db.types
Responsibility: Annotated type aliases and the rounding helpers used for every
    monetary value.  Centralizes precision so models, engines and reports agree.
Architecture position: Kernel > DB.  May be imported by domain/ and by modules.

Invariants enforced:
    - No floats anywhere.  All monetary amounts are Decimal.
    - round_money() is the only sanctioned rounding function for amounts.
    - to_decimal() is the only sanctioned coercion from user input.

Failure modes:
    - InvalidAmountError when a value cannot be read as a finite Decimal.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Annotated, Any

from sqlalchemy import Numeric, String

from budget_kernel.exceptions import InvalidAmountError

Money = Annotated[Decimal, Numeric(38, 9)]

Percentage = Annotated[Decimal, Numeric(9, 4)]

ShortCode = Annotated[str, String(50)]

LongText = Annotated[str, String(4000)]

MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP
ZERO = Decimal("0")


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to ``decimal_places`` using ``rounding``.

    Preconditions: value is a Decimal.
    Postconditions: Returns value quantized to the specified places.
    """
    quantize_str = "0." + "0" * decimal_places if decimal_places else "1"
    return value.quantize(Decimal(quantize_str), rounding=rounding)


def to_decimal(value: Any, field: str = "amount") -> Decimal:
    """
    Coerce an int, str or Decimal into a finite Decimal.

    Floats are rejected: they carry binary rounding error into the ledger.

    Raises:
        InvalidAmountError: value is a float, not numeric, or not finite.
    """
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool) or isinstance(value, float):
        raise InvalidAmountError(field, value, "floats are not accepted")
    elif isinstance(value, (int, str)):
        try:
            result = Decimal(str(value).strip().replace(",", "."))
        except InvalidOperation:
            raise InvalidAmountError(field, value, "not a number") from None
    else:
        raise InvalidAmountError(field, value, "unsupported type")
    if not result.is_finite():
        raise InvalidAmountError(field, value, "not finite")
    return result


def format_amount(value: Decimal) -> str:
    """Fixed two-decimal rendering used in tabular reports."""
    return f"{round_money(value):.2f}"
