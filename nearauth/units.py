"""Conversion between human NEAR amounts and yoctoNEAR integers."""

import logging
from decimal import Decimal, InvalidOperation

from .errors import SerializationError

logger = logging.getLogger(__name__)

NEAR_NOMINATION_EXP = 24
NEAR_NOMINATION = 10**NEAR_NOMINATION_EXP


def parse_near_amount(amount: str | int | float | Decimal | None) -> int | None:
    """Convert a NEAR amount such as ``"1.5"`` to yoctoNEAR.

    Commas are ignored. Returns None for empty input.

    Raises:
        ValueError: If the amount is negative, not a number, or has more
            than 24 fractional digits

    """
    if amount is None:
        return None
    if isinstance(amount, bool):
        raise ValueError("Amount must be a number, got bool")
    if isinstance(amount, float | Decimal):
        text = format(Decimal(str(amount)), "f")
    else:
        text = str(amount)
    text = text.replace(",", "").strip()
    if not text:
        return None

    whole, _, fraction = text.partition(".")
    whole = whole or "0"
    if not whole.isdigit() or (fraction and not fraction.isdigit()):
        raise ValueError(f"Cannot parse {amount!r} as NEAR amount")
    if len(fraction) > NEAR_NOMINATION_EXP:
        raise ValueError(f"Cannot parse {amount!r} as NEAR amount: too many decimals")
    return int(whole + fraction.ljust(NEAR_NOMINATION_EXP, "0"))


def format_near_amount(yocto: int, fraction_digits: int | None = None) -> str:
    """Format a yoctoNEAR integer as a NEAR decimal string."""
    whole, fraction = divmod(yocto, NEAR_NOMINATION)
    fraction_text = str(fraction).rjust(NEAR_NOMINATION_EXP, "0")
    if fraction_digits is not None:
        fraction_text = fraction_text[:fraction_digits]
    fraction_text = fraction_text.rstrip("0")
    return f"{whole}.{fraction_text}" if fraction_text else str(whole)


def resolve_deposit(deposit: str | int | float | Decimal | None) -> int:
    """Turn a deposit argument into the integer yoctoNEAR used on the wire.

    A string is a raw yoctoNEAR integer and is used verbatim. A number is a
    human NEAR amount. If a human amount cannot be converted the deposit
    silently becomes zero so the redirect stays usable; callers that need a
    correct deposit must validate it before calling.

    Raises:
        SerializationError: If a raw string is not a non-negative integer

    """
    if deposit is None:
        return 0
    if isinstance(deposit, str):
        text = deposit.strip()
        if not text.isdigit():
            raise SerializationError(f"Raw deposit must be a yoctoNEAR integer, got {deposit!r}")
        return int(text)
    try:
        value = parse_near_amount(deposit)
    except (ValueError, InvalidOperation) as e:
        # Malformed human amounts default to zero instead of failing.
        logger.warning(f"Could not convert deposit {deposit!r}, defaulting to 0: {e}")
        return 0
    return value or 0
