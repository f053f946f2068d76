"""
Domain: Invoice numbering.

An invoice number is the desk's prefix followed by four fixed-width tokens:
branch id, desk id, user id and the milliseconds elapsed since INVOICE_EPOCH.
Each token is rendered in upper-case base 32 and led by a random separator
character drawn from letters that are not base-32 digits, so the tokens stay
readable when concatenated.

Example:
    # branch 1, desk 3, user 7, 5,000,000 ms after the epoch
    generate_invoice_number(context, now=...)  # e.g. "IXX1YY3WW7ZZ4OIQ0"
"""

from __future__ import annotations

import random
from datetime import datetime, timezone
from typing import Any, Optional

from .context import BranchContext
from .time import utc_now

INVOICE_EPOCH = datetime(2026, 2, 1, 1, 0, 0, tzinfo=timezone.utc)
DEFAULT_INVOICE_PREFIX = "I"

_RADIX_DIGITS = "0123456789ABCDEFGHIJKLMNOPQRSTUV"
SEPARATOR_CHARS = "WXYZ"

# Token widths; the time token is wider so consecutive invoices do not collide.
ID_TOKEN_WIDTH = 2
TIME_TOKEN_WIDTH = 6


def to_radix32(value: int) -> str:
    if value == 0:
        return "0"
    sign = "-" if value < 0 else ""
    value = abs(value)
    digits = []
    while value:
        value, rem = divmod(value, 32)
        digits.append(_RADIX_DIGITS[rem])
    return sign + "".join(reversed(digits))


def random_separator(rng: Optional[random.Random] = None) -> str:
    return (rng or random).choice(SEPARATOR_CHARS)


def pad_radix(value: Any, length: int, char: str = " ") -> str:
    """
    Render value as a separator-led token of at most 2 * length characters.

    Integers are converted to base 32; the text is left-padded with char to
    length, prefixed with char, then truncated to 2 * length.
    """

    if isinstance(value, int) and not isinstance(value, bool):
        text = to_radix32(value)
    else:
        text = "" if value is None else str(value)
    token = char + text.rjust(length, char)
    return token[: length * 2] if len(token) > length * 2 else token


def generate_document_id(
    context: BranchContext,
    *,
    now: Optional[datetime] = None,
    rng: Optional[random.Random] = None,
) -> str:
    """
    Raises:
        ContextMissingError: If branch, desk or user is not set.
    """

    branch, desk, user = context.require()
    moment = now or utc_now()
    elapsed_ms = int((moment - INVOICE_EPOCH).total_seconds() * 1000)

    return (
        pad_radix(branch.id, ID_TOKEN_WIDTH, random_separator(rng))
        + pad_radix(desk.id, ID_TOKEN_WIDTH, random_separator(rng))
        + pad_radix(user.id, ID_TOKEN_WIDTH, random_separator(rng))
        + pad_radix(elapsed_ms, TIME_TOKEN_WIDTH, random_separator(rng))
    )


def generate_invoice_number(
    context: BranchContext,
    *,
    now: Optional[datetime] = None,
    rng: Optional[random.Random] = None,
) -> str:
    """
    Raises:
        ContextMissingError: If branch, desk or user is not set.
    """

    document_id = generate_document_id(context, now=now, rng=rng)
    prefix = (context.desk.invoice_prefix if context.desk else None) or DEFAULT_INVOICE_PREFIX
    return prefix + document_id


__all__ = [
    "INVOICE_EPOCH",
    "SEPARATOR_CHARS",
    "generate_document_id",
    "generate_invoice_number",
    "pad_radix",
    "random_separator",
    "to_radix32",
]
