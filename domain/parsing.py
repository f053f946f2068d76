"""
Domain: Free-text parsing for the sale counter.

Cashiers type non-stock items and walk-in customers as single lines:
- "Gift Wrap 5 2 10%"  -> name, price, quantity, discount
- "Jane Doe jane@example.com +92 300 1234567" -> name, email, phone
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal

from .customer import Customer

# Most specific first; the first pattern that matches wins.
STOCK_LINE_PATTERNS = [
    # name price qty discount
    re.compile(r"^(?P<name>[a-zA-Z\s]+)\s+(?P<price>\d+(?:\.\d+)?)\s+(?P<qty>\d+)\s+(?P<discount>\d+)%?$"),
    # name price qty
    re.compile(r"^(?P<name>[a-zA-Z\s]+)\s+(?P<price>\d+(?:\.\d+)?)\s+(?P<qty>\d+)$"),
    # name price
    re.compile(r"^(?P<name>[a-zA-Z\s]+)\s+(?P<price>\d+(?:\.\d+)?)$"),
    # name
    re.compile(r"^(?P<name>[a-zA-Z\s]+)$"),
]

EMAIL_REGEX = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
PHONE_REGEX = re.compile(r"(\+?\d{1,3}[\s-]?)?\d{3,4}[\s-]?\d{6,7}")


@dataclass(frozen=True, slots=True)
class StockLine:
    name: str = ""
    price: Decimal = Decimal("0")
    quantity: int = 1
    discount: Decimal = Decimal("0")


def parse_stock_line(text: str) -> StockLine:
    """Parse a non-stock entry; unmatched input yields an empty one-unit line."""

    value = (text or "").strip()
    for pattern in STOCK_LINE_PATTERNS:
        match = pattern.match(value)
        if not match:
            continue
        groups = match.groupdict()
        return StockLine(
            name=(groups.get("name") or "").strip(),
            price=Decimal(groups["price"]) if groups.get("price") else Decimal("0"),
            quantity=int(groups["qty"]) if groups.get("qty") else 1,
            discount=Decimal(groups["discount"]) if groups.get("discount") else Decimal("0"),
        )
    return StockLine()


def parse_contact_line(text: str) -> Customer:
    value = (text or "").strip()

    email_match = EMAIL_REGEX.search(value)
    email = email_match.group(0) if email_match else ""

    remainder = value.replace(email, "", 1) if email else value
    phone_match = PHONE_REGEX.search(remainder)
    phone = re.sub(r"\s+", "", phone_match.group(0)) if phone_match else ""

    if phone_match:
        remainder = remainder.replace(phone_match.group(0), "", 1)
    name = re.sub(r"\s+", " ", remainder).strip()

    return Customer(name=name, email=email, phone=phone)


__all__ = ["StockLine", "parse_contact_line", "parse_stock_line"]
