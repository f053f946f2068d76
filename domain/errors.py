"""
Domain errors for the sale cart engine.

Two failures are hard errors raised by the pure domain:
- InvalidFieldError: summing or fanning out over a field that a StockUnit does not price.
- ContextMissingError: invoice numbering without branch, desk or user context.

The remaining errors belong to the draft-session layer that exposes orders to
several terminals. Malformed numeric input is never an error; it is normalised
to zero by the pricing helpers.
"""

from __future__ import annotations

from typing import Optional


class PosError(Exception):
    """Base class for every error raised by the sale engine."""


class InvalidFieldError(PosError):
    """Raised when a field name is outside the allowed set for an operation."""

    def __init__(self, field: str, allowed: Optional[tuple[str, ...]] = None):
        self.field = field
        self.allowed = allowed or ()
        message = f"Invalid field: {field}"
        if self.allowed:
            message += f" (allowed: {', '.join(self.allowed)})"
        super().__init__(message)


class ContextMissingError(PosError):
    """Raised when branch, desk or user is not set for invoice numbering."""

    def __init__(self, missing: list[str]):
        self.missing = missing
        super().__init__(f"Branch, desk, or user not set (missing: {', '.join(missing)})")


class ConflictError(PosError):
    """Raised when a mutation carries a stale version of a draft sale."""

    def __init__(self, session_id: str, expected_version: int, current_version: int):
        self.session_id = session_id
        self.expected_version = expected_version
        self.current_version = current_version
        super().__init__(
            f"Sale {session_id} was modified concurrently. "
            f"Expected version: {expected_version}, Current: {current_version}"
        )


class SaleNotFoundError(PosError):
    """Raised when a draft sale session does not exist."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Sale not found: {session_id}")


class UnpaidSaleError(PosError):
    """Raised when a sale is checked out before its payments cover the total."""

    def __init__(self, total, total_paid, payment_count: int):
        self.total = total
        self.total_paid = total_paid
        self.payment_count = payment_count
        super().__init__(
            f"Sale is not paid: {payment_count} payment(s) totalling {total_paid} against a total of {total}"
        )


class UnitUnavailableError(PosError):
    """Raised when a stock unit cannot be reserved because it is no longer available."""

    def __init__(self, unit_ref):
        self.unit_ref = unit_ref
        super().__init__(f"Stock unit {unit_ref} is not available")


class LineItemNotFoundError(PosError):
    """Raised when a line item index is out of range."""

    def __init__(self, index: int, size: int):
        self.index = index
        self.size = size
        super().__init__(f"Line item {index} not found (order has {size} line items)")


__all__ = [
    "PosError",
    "InvalidFieldError",
    "ContextMissingError",
    "ConflictError",
    "SaleNotFoundError",
    "LineItemNotFoundError",
    "UnitUnavailableError",
    "UnpaidSaleError",
]
