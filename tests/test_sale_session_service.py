"""
Tests for `services/sale_session_service.py`.

Covers rules:
- Every mutation must carry the current version; stale versions are rejected.
- Each successful mutation bumps the version by one.
- Removing a line hands its assigned and reserved units to the release hook.
- Quantity edits report how many units were actually filled.
- Checkout persists under the session lock and closes the session; an unpaid
  order is refused and the session stays open.
- With a reserve hook, a unit another session already holds cannot be added.
- Sessions left idle past the timeout are evicted and their units released.
"""

from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from domain.context import Branch, BranchContext, Desk, User
from domain.errors import (
    ConflictError,
    ContextMissingError,
    LineItemNotFoundError,
    SaleNotFoundError,
    UnitUnavailableError,
    UnpaidSaleError,
)
from domain.payment import PaymentStatus
from domain.pricing import PricingPolicy
from domain.stock_unit import StockUnit
from services.sale_session_service import SaleSessionService


def _service(**kwargs) -> SaleSessionService:
    context = BranchContext(branch=Branch(1), desk=Desk(3), user=User(7))
    return SaleSessionService(context=context, **kwargs)


class _Catalog:
    """In-memory stock shared by several sessions: reserve takes, release gives back."""

    def __init__(self, *external_ids: str) -> None:
        self.available = set(external_ids)

    def reserve(self, units):
        taken = [u for u in units if u.external_id in self.available]
        self.available -= {u.external_id for u in taken}
        return taken

    def release(self, units) -> None:
        self.available |= {u.external_id for u in units}


def test_open_sale_starts_at_version_zero_with_invoice_number() -> None:
    session = _service().open_sale()

    assert session.version == 0
    assert session.order.invoice_number.startswith("I")


def test_open_sale_without_context_raises() -> None:
    service = SaleSessionService(context=BranchContext())

    with pytest.raises(ContextMissingError):
        service.open_sale()


def test_mutation_bumps_version() -> None:
    service = _service()
    session = service.open_sale()

    service.add_non_stock_item(session.session_id, 0, "Gift Wrap 5 2")
    service.set_discount_percent(session.session_id, 1, 0, 10)

    assert session.version == 2
    assert session.order.line_items[0].discount_percent == Decimal("10")


def test_stale_version_is_rejected_without_changes(make_unit) -> None:
    service = _service()
    session = service.open_sale()
    service.add_stock_item(session.session_id, 0, make_unit())

    with pytest.raises(ConflictError) as excinfo:
        service.add_stock_item(session.session_id, 0, make_unit())

    assert excinfo.value.current_version == 1
    assert session.order.line_items[0].quantity == 1
    assert session.version == 1


def test_unknown_session_raises() -> None:
    with pytest.raises(SaleNotFoundError):
        _service().get("no-such-sale")


def test_failed_change_does_not_bump_version() -> None:
    service = _service()
    session = service.open_sale()

    with pytest.raises(LineItemNotFoundError):
        service.set_quantity(session.session_id, 0, 3, 2)

    assert session.version == 0


def test_concurrent_writers_with_same_version_only_one_wins(make_unit) -> None:
    """Verify two terminals editing from the same version cannot both succeed."""

    service = _service()
    session = service.open_sale()
    units = [make_unit() for _ in range(8)]
    barrier = threading.Barrier(len(units))
    conflicts = []

    def add(unit) -> None:
        barrier.wait()
        try:
            service.add_stock_item(session.session_id, 0, unit)
        except ConflictError as e:
            conflicts.append(e)

    threads = [threading.Thread(target=add, args=(u,)) for u in units]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(conflicts) == len(units) - 1
    assert session.version == 1
    assert session.order.line_items[0].quantity == 1


def test_set_quantity_reports_shortfall(make_unit) -> None:
    service = _service()
    session = service.open_sale()
    head = make_unit()
    head.extra_linked_units = [make_unit()]
    service.add_stock_item(session.session_id, 0, head)

    _, change = service.set_quantity(session.session_id, 1, 0, 5)

    assert change.requested == 5
    assert change.filled == 2
    assert change.shortfall == 3


def test_remove_line_item_releases_assigned_and_reserved_units(make_unit) -> None:
    released = []
    service = _service(release_units=released.extend)
    session = service.open_sale()
    a, b, c = make_unit(), make_unit(), make_unit()
    for version, unit in enumerate((a, b, c)):
        service.add_stock_item(session.session_id, version, unit)
    service.set_quantity(session.session_id, 3, 0, 1)

    service.remove_line_item(session.session_id, 4, 0)

    assert session.order.line_items == []
    assert {id(u) for u in released} == {id(a), id(b), id(c)}


def test_offer_apply_and_revert_through_service(make_unit) -> None:
    service = _service()
    session = service.open_sale()
    service.add_stock_item(session.session_id, 0, make_unit("100", "70", "85"))

    _, line = service.apply_offer_price(session.session_id, 1, 0)
    assert line.discount_percent == Decimal("15")

    _, line = service.revert_offer(session.session_id, 2, 0)
    assert line.discount_percent == Decimal("0")


def test_customer_payment_and_exchange_through_service(make_unit) -> None:
    service = _service(pricing=PricingPolicy(tax_rate=Decimal("0.1")))
    session = service.open_sale()
    sid = session.session_id
    service.add_stock_item(sid, 0, make_unit("100", "70"))

    service.set_customer(sid, 1, "Jane Doe jane@example.com")
    service.set_exchange_return(sid, 2, "sale-old", [{"unit_price": "20"}])
    service.add_payment(sid, 3, {"amount": "110"})

    order = session.order
    assert order.customer.email == "jane@example.com"
    assert order.total == Decimal("110")
    assert order.amount_due == Decimal("90")
    assert order.payment_status is PaymentStatus.PAID

    service.clear_exchange_return(sid, 4)
    service.set_customer(sid, 5, None)
    assert order.exchange_return is None
    assert order.customer is None


def test_checkout_persists_and_closes_session(make_unit) -> None:
    service = _service()
    session = service.open_sale()
    service.add_stock_item(session.session_id, 0, make_unit())
    persisted = []

    def persist(order) -> str:
        persisted.append(order)
        return "sale-1"

    service.add_payment(session.session_id, 1, {"amount": "100"})

    _, sale_id = service.checkout(session.session_id, 2, persist)

    assert sale_id == "sale-1"
    assert persisted == [session.order]
    with pytest.raises(SaleNotFoundError):
        service.get(session.session_id)


def test_failed_checkout_keeps_session_open(make_unit) -> None:
    service = _service()
    session = service.open_sale()

    def persist(order) -> str:
        raise RuntimeError("Failed to create sale: offline")

    service.add_payment(session.session_id, 0, {"amount": "0"})

    with pytest.raises(RuntimeError):
        service.checkout(session.session_id, 1, persist)

    assert service.get(session.session_id) is session
    assert session.version == 1


def test_unpaid_checkout_is_refused_and_session_stays_open(make_unit) -> None:
    service = _service()
    session = service.open_sale()
    service.add_stock_item(session.session_id, 0, make_unit())
    persisted = []

    with pytest.raises(UnpaidSaleError):
        service.checkout(session.session_id, 1, persisted.append)

    assert persisted == []
    assert service.get(session.session_id) is session
    assert session.version == 1


def test_adding_a_unit_already_in_the_order_is_ignored(make_unit) -> None:
    service = _service()
    session = service.open_sale()
    unit = make_unit()

    service.add_stock_item(session.session_id, 0, unit)
    _, line = service.add_stock_item(session.session_id, 1, unit)

    assert line.quantity == 1
    assert len(session.order.line_items) == 1


def test_two_sessions_cannot_hold_the_same_unit(make_unit) -> None:
    catalog = _Catalog("su-1", "su-2")
    service = _service(reserve_units=catalog.reserve, release_units=catalog.release)
    first, second = service.open_sale(), service.open_sale()
    unit = make_unit()

    service.add_stock_item(first.session_id, 0, unit)
    same_unit_on_other_till = StockUnit(id=1, external_id="su-1", name="Silver Ring")
    with pytest.raises(UnitUnavailableError):
        service.add_stock_item(second.session_id, 0, same_unit_on_other_till)

    assert second.version == 0
    assert second.order.line_items == []
    assert first.order.line_items[0].first() is unit
    assert catalog.available == {"su-2"}


def test_extras_that_cannot_be_reserved_are_dropped(make_unit) -> None:
    catalog = _Catalog("su-1", "su-3")
    service = _service(reserve_units=catalog.reserve, release_units=catalog.release)
    session = service.open_sale()
    head = make_unit()
    taken_elsewhere, free = make_unit(), make_unit()
    head.extra_linked_units = [taken_elsewhere, free]

    _, line = service.add_stock_item(session.session_id, 0, head)

    assert line.reserve_pool == [free]
    assert catalog.available == set()


def test_refused_head_unit_hands_back_reserved_extras(make_unit) -> None:
    catalog = _Catalog("su-2")
    service = _service(reserve_units=catalog.reserve, release_units=catalog.release)
    session = service.open_sale()
    head = make_unit()
    head.extra_linked_units = [make_unit()]

    with pytest.raises(UnitUnavailableError):
        service.add_stock_item(session.session_id, 0, head)

    assert catalog.available == {"su-2"}
    assert session.version == 0


def test_idle_sessions_are_evicted_and_their_units_released(make_unit) -> None:
    now = [datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)]
    released = []
    service = _service(release_units=released.extend, idle_timeout=timedelta(minutes=30), clock=lambda: now[0])
    idle = service.open_sale()
    head = make_unit()
    head.extra_linked_units = [make_unit()]
    service.add_stock_item(idle.session_id, 0, head)

    now[0] += timedelta(minutes=20)
    busy = service.open_sale()
    now[0] += timedelta(minutes=15)

    assert service.evict_idle() == 1
    with pytest.raises(SaleNotFoundError):
        service.get(idle.session_id)
    assert service.get(busy.session_id) is busy
    assert [u.external_id for u in released] == ["su-1", "su-2"]


def test_open_sale_evicts_idle_sessions() -> None:
    now = [datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)]
    service = _service(idle_timeout=timedelta(minutes=30), clock=lambda: now[0])
    stale = service.open_sale()

    now[0] += timedelta(hours=1)
    service.open_sale()

    with pytest.raises(SaleNotFoundError):
        service.get(stale.session_id)
