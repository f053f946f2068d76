"""
Domain: Payments and payment status.

Payments are appended to a sale and never removed implicitly. A sale becomes
Paid when at least one payment exists and the cumulative amount covers the
sale total. Partial is a recognised status but is never derived automatically.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping, Optional

from .pricing import to_decimal, valid_number_or_default
from .time import parse_utc_datetime, utc_now


class PaymentMethod(str, Enum):
    CASH = "Cash"
    CARD = "Card"
    BANK = "Bank"
    MOBILE_WALLET = "MobileWallet"
    EXCHANGE_RETURN = "ExchangeReturn"


class PaymentStatus(str, Enum):
    UNPAID = "Unpaid"
    PARTIAL = "Partial"
    PAID = "Paid"


@dataclass(slots=True)
class Payment:
    """
    A single tender against a sale.

    Missing fields default to a zero cash payment dated now.
    """

    method: PaymentMethod = PaymentMethod.CASH
    amount: Decimal = Decimal("0")
    date: datetime = field(default_factory=utc_now)
    cash_received: Optional[Decimal] = None
    change: Optional[Decimal] = None
    external_id: Optional[str] = None

    def __post_init__(self) -> None:
        self.method = PaymentMethod(self.method) if self.method else PaymentMethod.CASH
        self.amount = max(valid_number_or_default(self.amount), Decimal("0"))
        self.date = parse_utc_datetime(self.date) or utc_now()
        self.cash_received = to_decimal(self.cash_received)
        self.change = to_decimal(self.change)

    @staticmethod
    def cash(received: Any, due: Any) -> "Payment":
        """
        Cash tender for an amount due: the amount applied is capped at what is due,
        and the difference is returned as change.
        """

        received_amount = valid_number_or_default(received)
        due_amount = max(valid_number_or_default(due), Decimal("0"))
        applied = min(received_amount, due_amount)
        return Payment(
            method=PaymentMethod.CASH,
            amount=applied,
            cash_received=received_amount,
            change=max(received_amount - due_amount, Decimal("0")),
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "payment_method": self.method.value,
            "amount": self.amount,
            "payment_date": self.date.isoformat(),
            "cash_received": self.cash_received,
            "change": self.change,
        }

    @staticmethod
    def from_record(row: Mapping[str, Any]) -> "Payment":
        return Payment(
            method=row.get("payment_method") or row.get("method") or PaymentMethod.CASH,
            amount=row.get("amount"),
            date=row.get("payment_date") or row.get("date"),
            cash_received=row.get("cash_received"),
            change=row.get("change"),
            external_id=row.get("external_id") or row.get("documentId"),
        )


__all__ = ["Payment", "PaymentMethod", "PaymentStatus"]
