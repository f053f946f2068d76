"""
Domain: Customer attached to a sale.

A customer is optional on a sale. Walk-in customers are usually captured as a
single free-text line ("Jane Doe jane@example.com 0300 1234567") and parsed
with domain.parsing.parse_contact_line.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional


@dataclass(slots=True)
class Customer:
    """Buyer details; external_id is set once the customer has been persisted."""

    name: str = ""
    email: str = ""
    phone: str = ""
    external_id: Optional[str] = None
    id: Optional[int] = None

    @property
    def is_empty(self) -> bool:
        """A customer with no name, email or phone is not worth persisting."""

        return not (self.name or "").strip() and not (self.email or "").strip() and not (self.phone or "").strip()

    def to_payload(self) -> dict[str, Any]:
        """Non-null contact fields only."""

        data = {"name": self.name, "email": self.email, "phone": self.phone}
        return {k: v for k, v in data.items() if v is not None}

    def copy(self) -> "Customer":
        return Customer(
            name=self.name,
            email=self.email,
            phone=self.phone,
            external_id=self.external_id,
            id=self.id,
        )

    @staticmethod
    def from_record(row: Optional[Mapping[str, Any]]) -> Optional["Customer"]:
        if not row:
            return None
        return Customer(
            name=row.get("name") or "",
            email=row.get("email") or "",
            phone=row.get("phone") or "",
            external_id=row.get("external_id") or row.get("documentId"),
            id=row.get("id"),
        )
