"""
Domain: Branch, desk and user context for a till session.

Context is passed explicitly to invoice numbering and pricing; it is never read
from module-level state.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from .errors import ContextMissingError


@dataclass(frozen=True, slots=True)
class Branch:
    id: int
    name: str = ""
    tax_rate: Decimal = Decimal("0")


@dataclass(frozen=True, slots=True)
class Desk:
    id: int
    name: str = ""
    invoice_prefix: Optional[str] = None


@dataclass(frozen=True, slots=True)
class User:
    id: int
    username: str = ""


@dataclass(frozen=True, slots=True)
class BranchContext:
    """The branch, desk and user a sale is rung up under. Any part may be missing."""

    branch: Optional[Branch] = None
    desk: Optional[Desk] = None
    user: Optional[User] = None

    def require(self) -> tuple[Branch, Desk, User]:
        """
        Return (branch, desk, user).

        Raises:
            ContextMissingError: If any of them is not set.
        """

        missing = [
            name
            for name, value in (("branch", self.branch), ("desk", self.desk), ("user", self.user))
            if value is None
        ]
        if missing:
            raise ContextMissingError(missing)
        return self.branch, self.desk, self.user  # type: ignore[return-value]

    def location_string(self) -> str:
        if self.branch is None or self.desk is None:
            return "No branch/desk selected"
        return f"{self.branch.name} - {self.desk.name}"
