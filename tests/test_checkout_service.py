"""
Tests for `services/checkout_service.py`.

Covers rules:
- A paid checkout stores the sale as Paid and marks every assigned unit Sold;
  units left in reserve pools go back to the catalog.
- Checkout of a sale with no payment, or payments short of the total, is
  refused before anything is written.
- Absent external id means create; present means update.
- A staged exchange return is persisted only when the sale is paid.
- Storage errors surface as RuntimeError.
- Units of removed lines are released back to the catalog.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from domain.errors import UnpaidSaleError
from domain.invoice import to_radix32
from domain.line_item import SaleLineItem
from domain.payment import Payment, PaymentStatus
from domain.sale import SaleOrder
from domain.stock_unit import StockStatus
from services.checkout_service import (
    checkout,
    load_sale,
    release_line,
    release_units,
    save_exchange_return,
    save_sale,
)


def _seed_units(fake_db, *external_ids: str, status: str = "Available") -> None:
    rows = fake_db.tables.setdefault("stock_items", [])
    for ext in external_ids:
        rows.append({"id": len(rows) + 1, "external_id": ext, "status": status})


def _stock_row(fake_db, external_id: str) -> dict:
    return next(r for r in fake_db.rows("stock_items") if r["external_id"] == external_id)


def _order_with_units(make_unit) -> SaleOrder:
    order = SaleOrder(invoice_number="IXX1YY3WW7ZZ4OIQ0")
    order.add_stock_item(make_unit("100", "70"))
    order.add_stock_item(make_unit("100", "70"))
    order.add_non_stock_item("Gift Wrap 5")
    return order


def test_checkout_marks_sale_paid_and_units_sold(fake_db, make_unit) -> None:
    _seed_units(fake_db, "su-1", "su-2")
    order = _order_with_units(make_unit)
    order.add_payment(Payment(amount=205))

    sale_id = checkout(order, cash_register_id="reg-1", client=fake_db)

    sale_row = fake_db.rows("sales")[0]
    assert sale_row["external_id"] == sale_id == order.external_id
    assert sale_row["payment_status"] == "Paid"
    assert sale_row["cash_register_external_id"] == "reg-1"
    assert Decimal(sale_row["total"]) == Decimal("205")
    assert order.payment_status is PaymentStatus.PAID

    stock_line = order.line_items[0]
    for ext in ("su-1", "su-2"):
        row = _stock_row(fake_db, ext)
        assert row["status"] == "Sold"
        assert row["sale_item_external_id"] == stock_line.external_id

    synthetic_rows = [r for r in fake_db.rows("stock_items") if r["external_id"] not in ("su-1", "su-2")]
    assert len(synthetic_rows) == 1
    assert synthetic_rows[0]["status"] == "Sold"
    assert all(u.status is StockStatus.SOLD for u in order.assigned_units())

    assert len(fake_db.rows("sale_items")) == 2
    assert len(fake_db.rows("payments")) == 1
    assert fake_db.rows("payments")[0]["sale_external_id"] == sale_id


def test_checkout_without_payment_is_refused_before_any_write(fake_db, make_unit) -> None:
    _seed_units(fake_db, "su-1", "su-2")
    fake_db.calls.clear()
    order = _order_with_units(make_unit)

    with pytest.raises(UnpaidSaleError, match="0 payment"):
        checkout(order, client=fake_db)

    assert fake_db.calls == []
    assert order.payment_status is PaymentStatus.UNPAID
    assert order.external_id is None
    assert _stock_row(fake_db, "su-1")["status"] == "Available"


def test_checkout_with_short_payment_is_refused(fake_db, make_unit) -> None:
    order = _order_with_units(make_unit)
    order.add_payment(Payment(amount=200))

    with pytest.raises(UnpaidSaleError):
        checkout(order, client=fake_db)

    assert fake_db.rows("sales") == []
    assert order.payment_status is PaymentStatus.UNPAID


def test_checkout_releases_units_left_in_reserve_pool(fake_db, make_unit) -> None:
    _seed_units(fake_db, "su-1", "su-2", "su-3", status="Reserved")
    head = make_unit()
    head.extra_linked_units = [make_unit(), make_unit()]
    order = SaleOrder()
    order.add_stock_item(head)
    order.add_payment(Payment(amount=100))

    checkout(order, client=fake_db)

    assert _stock_row(fake_db, "su-1")["status"] == "Sold"
    for ext in ("su-2", "su-3"):
        assert _stock_row(fake_db, ext)["status"] == "Available"
        assert _stock_row(fake_db, ext)["sale_item_external_id"] is None


def test_save_sale_unpaid_links_units_without_changing_status(fake_db, make_unit) -> None:
    _seed_units(fake_db, "su-1", "su-2", status="Reserved")
    order = _order_with_units(make_unit)

    save_sale(order, client=fake_db)

    assert fake_db.rows("sales")[0]["payment_status"] == "Unpaid"
    assert _stock_row(fake_db, "su-1")["status"] == "Reserved"
    assert _stock_row(fake_db, "su-1")["sale_item_external_id"] == order.line_items[0].external_id


def test_second_save_updates_instead_of_creating(fake_db, make_unit) -> None:
    _seed_units(fake_db, "su-1", "su-2")
    order = _order_with_units(make_unit)

    first_id = save_sale(order, client=fake_db)
    order.line_items[0].set_discount_percent(10)
    second_id = save_sale(order, client=fake_db)

    assert first_id == second_id
    assert len(fake_db.rows("sales")) == 1
    assert len(fake_db.rows("sale_items")) == 2
    assert Decimal(fake_db.rows("sale_items")[0]["discount_percentage"]) == Decimal("10")


def test_save_sale_persists_and_links_customer(fake_db) -> None:
    order = SaleOrder()
    order.parse_and_set_customer("Jane Doe jane@example.com")

    sale_id = save_sale(order, client=fake_db)

    customer_row = fake_db.rows("customers")[0]
    assert customer_row["name"] == "Jane Doe"
    assert order.customer.external_id == customer_row["external_id"]
    assert fake_db.rows("sales")[0]["customer_external_id"] == customer_row["external_id"]
    assert sale_id


def test_exchange_return_is_saved_only_when_paid(fake_db, make_unit) -> None:
    _seed_units(fake_db, "su-1", "su-2")
    _seed_units(fake_db, "old-1", "old-2", status="Sold")
    order = _order_with_units(make_unit)
    order.set_exchange_return(
        "sale-old",
        [
            {"product_name": "Ring", "unit_price": "40", "stock_unit_external_id": "old-1",
             "sale_item_external_id": "old-line"},
            {"product_name": "Ring", "unit_price": "40", "stock_unit_external_id": "old-2",
             "sale_item_external_id": "old-line"},
        ],
    )

    save_sale(order, client=fake_db)
    assert fake_db.rows("sale_returns") == []
    assert _stock_row(fake_db, "old-1")["status"] == "Sold"

    order.add_payment(Payment(amount=205))
    checkout(order, client=fake_db)

    return_row = fake_db.rows("sale_returns")[0]
    assert return_row["return_no"].startswith("EXC-")
    assert return_row["sale_external_id"] == "sale-old"
    assert return_row["exchange_sale_external_id"] == order.external_id
    assert Decimal(return_row["total_refund"]) == Decimal("80")

    return_items = fake_db.rows("sale_return_items")
    assert len(return_items) == 1
    assert return_items[0]["quantity"] == 2
    assert _stock_row(fake_db, "old-1")["status"] == "Returned"
    assert _stock_row(fake_db, "old-2")["sale_return_item_external_id"] == return_items[0]["external_id"]


def test_exchange_return_number_is_base32_millis(fake_db) -> None:
    now = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
    order = SaleOrder()
    exchange = order.set_exchange_return(None, [{"unit_price": "10"}])

    save_exchange_return("sale-1", exchange, now=now, client=fake_db)

    expected = "EXC-" + to_radix32(int(now.timestamp() * 1000))
    assert fake_db.rows("sale_returns")[0]["return_no"] == expected
    assert exchange.return_number == expected
    assert exchange.total_refund == Decimal("10")


def test_exchange_return_restocks_with_damaged_statuses(fake_db) -> None:
    _seed_units(fake_db, "old-1", "old-2", status="Sold")
    exchange = SaleOrder().set_exchange_return(
        "sale-old",
        [
            {"unit_price": "10", "stock_unit_external_id": "old-1", "restock_status": "ReturnedDamaged"},
            {"unit_price": "10", "stock_unit_external_id": "old-2", "restock_status": "Damaged"},
        ],
    )

    save_exchange_return("sale-new", exchange, client=fake_db)

    assert _stock_row(fake_db, "old-1")["status"] == "ReturnedDamaged"
    assert _stock_row(fake_db, "old-2")["status"] == "Damaged"


def test_storage_error_raises_runtime_error(fake_db, make_unit) -> None:
    fake_db.fail_tables.add("sales")
    order = _order_with_units(make_unit)
    order.add_payment(Payment(amount=205))

    with pytest.raises(RuntimeError, match="Failed to create sale"):
        checkout(order, client=fake_db)


def test_release_line_returns_assigned_and_reserved_units(fake_db, make_unit) -> None:
    _seed_units(fake_db, "su-1", "su-2", "su-3", status="Reserved")
    line = SaleLineItem([make_unit(), make_unit(), make_unit()])
    line.set_quantity(1)

    released = release_line(line, client=fake_db)

    assert released == 3
    for ext in ("su-1", "su-2", "su-3"):
        row = _stock_row(fake_db, ext)
        assert row["status"] == "Available"
        assert row["sale_item_external_id"] is None


def test_release_units_skips_synthetic_units(fake_db) -> None:
    line = SaleOrder().add_non_stock_item("Gift Wrap 5 2")

    assert release_units(line.assigned_units, client=fake_db) == 0
    assert fake_db.calls == []


def test_load_sale_by_invoice_number(fake_db) -> None:
    fake_db.tables["sales"] = [
        {
            "id": 1,
            "external_id": "sale-1",
            "invoice_no": "IXX1",
            "sale_date": "2026-03-01T10:00:00Z",
            "payment_status": "Paid",
            "items": [{"discount_percentage": 0, "items": [{"id": 1, "external_id": "su-1", "selling_price": 50}]}],
            "payments": [{"payment_method": "Cash", "amount": 50}],
        }
    ]

    order = load_sale("IXX1", client=fake_db)

    assert order.external_id == "sale-1"
    assert order.total == Decimal("50")
    assert order.is_paid is True
    assert load_sale("missing", client=fake_db) is None


def test_load_sale_with_damaged_return_units(fake_db) -> None:
    fake_db.tables["sales"] = [
        {
            "external_id": "sale-2",
            "invoice_no": "IXX2",
            "items": [{"items": [{"id": 1, "external_id": "su-1", "selling_price": 50, "status": "ReturnedDamaged"}]}],
            "exchange_return": {"return_line_items": [{"unit_price": 10, "status": "ReturnedToSupplier"}]},
        }
    ]

    order = load_sale("IXX2", client=fake_db)

    assert order.line_items[0].first().status is StockStatus.RETURNED_DAMAGED
    assert order.exchange_return.return_line_items[0].restock_status is StockStatus.RETURNED_TO_SUPPLIER
