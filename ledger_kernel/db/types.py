"""
Module: ledger_kernel.db.types
Responsibility: Money coercion and rounding helpers every model and service
    shares, so precision and rounding are defined once.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/ and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    CRITICAL: No floats anywhere in the ledger.  Amounts are Decimal with
    explicit precision; ``to_money`` refuses float input.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP


def money_from_str(value: str) -> Decimal:
    """Create a Money value from its string representation.

    Raises:
        ValueError: If value is not a number.
    """
    try:
        return Decimal(value)
    except InvalidOperation as exc:
        raise ValueError(f"not a monetary amount: {value!r}") from exc


def to_money(value: Decimal | int | str) -> Decimal:
    """Coerce user input to Decimal.

    Floats are refused: they cannot represent most cent values exactly.
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise ValueError(f"float/bool amounts are not allowed: {value!r}")
    if isinstance(value, Decimal):
        return value
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, str):
        return money_from_str(value.strip())
    raise ValueError(f"unsupported amount type: {type(value).__name__}")


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to the given number of decimal places.

    This is the only sanctioned rounding function for ledger amounts.
    """
    quantize_str = "0." + "0" * decimal_places if decimal_places else "1"
    return value.quantize(Decimal(quantize_str), rounding=rounding)
