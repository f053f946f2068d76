"""
Draft sale sessions for multi-terminal access.

The domain SaleOrder has no concurrency control of its own. When orders are
edited over the network, every in-progress order is owned by one SaleSession:
- Each session carries a version stamp, bumped by every successful mutation.
- Every mutating call must pass the version it last saw; a stale version is
  rejected with ConflictError before anything changes.
- Mutations on one session are serialised by a per-session lock.

Stock units must not be assigned to two open orders at once. When a reserve
hook is configured, a catalog unit is reserved before it joins an order and the
add is refused with UnitUnavailableError when the reservation does not take.
Units released by a removed line, or by a session evicted after sitting idle,
go back through the release hook.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Mapping, Optional, TypeVar, Union
from uuid import uuid4

from domain.context import BranchContext
from domain.customer import Customer
from domain.errors import ConflictError, SaleNotFoundError, UnitUnavailableError
from domain.exchange import ReturnLineItem
from domain.line_item import SaleLineItem
from domain.payment import Payment
from domain.pricing import NO_TAX, PricingPolicy
from domain.sale import SaleOrder
from domain.stock_unit import StockUnit
from domain.time import utc_now

logger = logging.getLogger(__name__)

DEFAULT_IDLE_TIMEOUT = timedelta(minutes=120)

T = TypeVar("T")


@dataclass(slots=True)
class SaleSession:
    session_id: str
    order: SaleOrder
    version: int = 0
    touched_at: datetime = field(default_factory=utc_now)
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)


@dataclass(frozen=True, slots=True)
class QuantityChange:
    """Outcome of a quantity edit; filled may be less than requested."""

    requested: int
    filled: int

    @property
    def shortfall(self) -> int:
        return max(self.requested - self.filled, 0)


class SaleSessionService:
    """
    Owns in-progress sales keyed by session id.

    Example:
        service = SaleSessionService(context=settings.branch_context(),
                                     pricing=settings.pricing_policy())
        session = service.open_sale()
        service.add_non_stock_item(session.session_id, session.version, "Gift Wrap 5 2")
    """

    def __init__(
        self,
        *,
        context: BranchContext,
        pricing: PricingPolicy = NO_TAX,
        release_units: Optional[Callable[[List[StockUnit]], Any]] = None,
        reserve_units: Optional[Callable[[List[StockUnit]], List[StockUnit]]] = None,
        idle_timeout: timedelta = DEFAULT_IDLE_TIMEOUT,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.context = context
        self.pricing = pricing
        self.idle_timeout = idle_timeout
        self._release_units = release_units
        self._reserve_units = reserve_units
        self._clock = clock
        self._sessions: Dict[str, SaleSession] = {}
        self._registry_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def open_sale(self, *, now: Optional[datetime] = None) -> SaleSession:
        """
        Start a new sale with a fresh invoice number.

        Raises:
            ContextMissingError: If branch, desk or user is not configured.
        """

        self.evict_idle()
        order = SaleOrder.start(self.context, pricing=self.pricing, now=now)
        return self.adopt(order)

    def adopt(self, order: SaleOrder) -> SaleSession:
        """Put an existing order (e.g. one loaded from storage) under session control."""

        session = SaleSession(session_id=str(uuid4()), order=order, touched_at=self._clock())
        with self._registry_lock:
            self._sessions[session.session_id] = session
        logger.info("Opened sale session %s (invoice %s)", session.session_id, order.invoice_number)
        return session

    def get(self, session_id: str) -> SaleSession:
        """
        Raises:
            SaleNotFoundError: If no such session exists.
        """

        with self._registry_lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise SaleNotFoundError(session_id)
        return session

    def close(self, session_id: str) -> SaleOrder:
        with self._registry_lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            raise SaleNotFoundError(session_id)
        return session.order

    def evict_idle(self, now: Optional[datetime] = None) -> int:
        """
        Drop sessions untouched for longer than idle_timeout and release their units.

        Sessions in the middle of a mutation are skipped.

        Returns:
            Number of sessions evicted
        """

        moment = now or self._clock()
        evicted: List[SaleSession] = []
        with self._registry_lock:
            for session_id, session in list(self._sessions.items()):
                if moment - session.touched_at < self.idle_timeout:
                    continue
                if not session.lock.acquire(blocking=False):
                    continue
                try:
                    del self._sessions[session_id]
                    evicted.append(session)
                finally:
                    session.lock.release()

        for session in evicted:
            self._release(list(session.order.held_units()))
            logger.info(
                "Evicted idle sale session %s (invoice %s, last touched %s)",
                session.session_id,
                session.order.invoice_number,
                session.touched_at.isoformat(),
            )
        return len(evicted)

    def _release(self, units: List[StockUnit]) -> None:
        if self._release_units is not None and units:
            self._release_units(units)

    def mutate(self, session_id: str, expected_version: int, change: Callable[[SaleOrder], T]) -> tuple[SaleSession, T]:
        """
        Apply change to the session's order under its lock.

        Raises:
            SaleNotFoundError: If no such session exists.
            ConflictError: If expected_version is not the current version.
        """

        session = self.get(session_id)
        with session.lock:
            if expected_version != session.version:
                logger.warning(
                    "Rejected stale write on sale %s (expected version %s, current %s)",
                    session_id,
                    expected_version,
                    session.version,
                )
                raise ConflictError(session_id, expected_version, session.version)
            result = change(session.order)
            session.version += 1
            session.touched_at = self._clock()
        return session, result

    # ------------------------------------------------------------------
    # Line items
    # ------------------------------------------------------------------

    def add_stock_item(self, session_id: str, expected_version: int, unit: StockUnit) -> tuple[SaleSession, SaleLineItem]:
        """
        Add a catalog unit, reserving it (and its linked extras) first.

        Extras that cannot be reserved are dropped from the unit before it joins
        the order.

        Raises:
            UnitUnavailableError: If the unit itself could not be reserved.
        """

        def change(order: SaleOrder) -> SaleLineItem:
            if self._reserve_units is not None and order.line_holding(unit) is None:
                self._reserve(order, unit)
            return order.add_stock_item(unit)

        return self.mutate(session_id, expected_version, change)

    def _reserve(self, order: SaleOrder, unit: StockUnit) -> None:
        extras = [u for u in unit.extra_linked_units if u is not unit and order.line_holding(u) is None]
        reserved = {id(u) for u in self._reserve_units([unit] + extras)}
        if id(unit) not in reserved:
            self._release([u for u in extras if id(u) in reserved])
            logger.warning("Stock unit %s is no longer available", unit.external_id or unit.name)
            raise UnitUnavailableError(unit.external_id or unit.name)
        unit.extra_linked_units = [u for u in extras if id(u) in reserved]

    def add_non_stock_item(
        self, session_id: str, expected_version: int, text: str
    ) -> tuple[SaleSession, Optional[SaleLineItem]]:
        return self.mutate(session_id, expected_version, lambda order: order.add_non_stock_item(text))

    def set_quantity(
        self, session_id: str, expected_version: int, index: int, quantity: int
    ) -> tuple[SaleSession, QuantityChange]:
        def change(order: SaleOrder) -> QuantityChange:
            filled = order.line_item(index).set_quantity(quantity)
            return QuantityChange(requested=quantity, filled=filled)

        session, result = self.mutate(session_id, expected_version, change)
        if result.requested >= 1 and result.shortfall:
            logger.warning(
                "Sale %s line %d: requested quantity %d but only %d units available in reserve",
                session_id,
                index,
                result.requested,
                result.filled,
            )
        return session, result

    def set_discount_percent(
        self, session_id: str, expected_version: int, index: int, percent: Any
    ) -> tuple[SaleSession, SaleLineItem]:
        def change(order: SaleOrder) -> SaleLineItem:
            return order.update_line_item(index, lambda line: line.set_discount_percent(percent))

        return self.mutate(session_id, expected_version, change)

    def apply_offer_price(self, session_id: str, expected_version: int, index: int) -> tuple[SaleSession, SaleLineItem]:
        def change(order: SaleOrder) -> SaleLineItem:
            return order.update_line_item(index, lambda line: line.apply_offer_price())

        return self.mutate(session_id, expected_version, change)

    def revert_offer(self, session_id: str, expected_version: int, index: int) -> tuple[SaleSession, SaleLineItem]:
        def change(order: SaleOrder) -> SaleLineItem:
            return order.update_line_item(index, lambda line: line.revert_offer())

        return self.mutate(session_id, expected_version, change)

    def remove_line_item(self, session_id: str, expected_version: int, index: int) -> tuple[SaleSession, SaleLineItem]:
        """Remove a line and hand its units (assigned and reserved) to the release hook."""

        session, line = self.mutate(session_id, expected_version, lambda order: order.remove_line_item(index))
        self._release(list(line.assigned_units) + list(line.reserve_pool))
        logger.debug("Sale %s: removed line %d (%s)", session_id, index, line.name)
        return session, line

    # ------------------------------------------------------------------
    # Customer, payments, exchange return
    # ------------------------------------------------------------------

    def set_customer(
        self,
        session_id: str,
        expected_version: int,
        customer: Union[str, Customer, Mapping[str, Any], None],
    ) -> tuple[SaleSession, Optional[Customer]]:
        def change(order: SaleOrder) -> Optional[Customer]:
            if customer is None:
                return order.set_customer(None)
            return order.parse_and_set_customer(customer)

        return self.mutate(session_id, expected_version, change)

    def add_payment(
        self, session_id: str, expected_version: int, payment: Union[Payment, Mapping[str, Any]]
    ) -> tuple[SaleSession, Optional[Payment]]:
        return self.mutate(session_id, expected_version, lambda order: order.add_payment(payment))

    def set_exchange_return(
        self,
        session_id: str,
        expected_version: int,
        original_sale_ref: Optional[str],
        return_line_items: List[Union[ReturnLineItem, Mapping[str, Any]]],
    ) -> tuple[SaleSession, Any]:
        return self.mutate(
            session_id,
            expected_version,
            lambda order: order.set_exchange_return(original_sale_ref, return_line_items),
        )

    def clear_exchange_return(self, session_id: str, expected_version: int) -> tuple[SaleSession, None]:
        return self.mutate(session_id, expected_version, lambda order: order.clear_exchange_return())

    def checkout(
        self,
        session_id: str,
        expected_version: int,
        persist: Callable[[SaleOrder], str],
    ) -> tuple[SaleSession, str]:
        """
        Persist the order as paid under the session lock, then close the session.

        Raises:
            UnpaidSaleError: If payments do not cover the total; persist is not
                called and the session stays open.
        """

        def change(order: SaleOrder) -> str:
            order.require_paid()
            return persist(order)

        session, sale_id = self.mutate(session_id, expected_version, change)
        self.close(session_id)
        logger.info("Checked out sale session %s as %s", session_id, sale_id)
        return session, sale_id


__all__ = ["DEFAULT_IDLE_TIMEOUT", "QuantityChange", "SaleSession", "SaleSessionService"]
