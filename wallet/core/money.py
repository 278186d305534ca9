"""Conversion between decimal amount strings and integer minor units (cents)."""

import re

from wallet.core.errors import InvalidAmountFormat, NonPositiveAmount

AMOUNT_PATTERN = re.compile(r"^[0-9]+(\.[0-9]{1,2})?$")
AMOUNT_FORMAT_MESSAGE = "amount must be a positive decimal with up to 2 decimals"


def parse_amount(value: str) -> int:
    """Parse a decimal amount string into cents.

    The fractional part is right-padded to two digits, so "12.3" is 1230.

    Raises:
        InvalidAmountFormat: If the string is not digits with an optional
            1-2 digit fraction.
        NonPositiveAmount: If the amount normalizes to zero.
    """
    if not isinstance(value, str) or not AMOUNT_PATTERN.fullmatch(value):
        raise InvalidAmountFormat(AMOUNT_FORMAT_MESSAGE, details={"amount": value})

    int_part, _, frac_part = value.partition(".")
    cents = int(int_part) * 100 + int(frac_part.ljust(2, "0")[:2])
    if cents <= 0:
        raise NonPositiveAmount("amount must be > 0", details={"amount": value})
    return cents


def format_cents(cents: int) -> str:
    """Render cents as a two-decimal string (1230 -> "12.30")."""
    sign = "-" if cents < 0 else ""
    whole, frac = divmod(abs(cents), 100)
    return f"{sign}{whole}.{frac:02d}"
