"""
Sales API Endpoints.

Endpoints for building a draft sale at the counter and checking it out.

Every mutation carries `expected_version`; the response returns the new
`version`. A stale version is rejected with 409 so two terminals editing the
same sale cannot silently drop each other's units.
"""

from typing import Callable, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from api.dependencies import get_checkout_handler, get_session_service
from api.models import (
    AddNonStockItemRequest,
    AddStockItemRequest,
    CheckoutResponse,
    CustomerModel,
    CustomerRequest,
    DiscountRequest,
    ExchangeReturnRequest,
    LineItemResponse,
    PaymentModel,
    PaymentRequest,
    ProductModel,
    QuantityChangeResponse,
    QuantityRequest,
    SaleResponse,
    StockUnitModel,
    VersionedRequest,
)
from domain.customer import Customer
from domain.exchange import ReturnLineItem
from domain.line_item import SaleLineItem
from domain.payment import Payment
from domain.sale import SaleOrder
from domain.stock_unit import ProductRef, StockUnit
from services.sale_session_service import SaleSession, SaleSessionService

router = APIRouter()


# ============================================================================
# Conversions
# ============================================================================

def unit_to_model(unit: StockUnit) -> StockUnitModel:
    product = unit.product
    return StockUnitModel(
        id=unit.id,
        external_id=unit.external_id,
        name=unit.name,
        cost_price=unit.cost_price,
        selling_price=unit.selling_price,
        offer_price=unit.offer_price,
        status=unit.status.value,
        barcode=unit.barcode,
        product=ProductModel(id=product.id, external_id=product.external_id, name=product.name) if product else None,
        extra_linked_units=[unit_to_model(u) for u in unit.extra_linked_units],
    )


def model_to_unit(model: StockUnitModel) -> StockUnit:
    product = model.product
    return StockUnit(
        id=model.id,
        external_id=model.external_id,
        name=model.name,
        cost_price=model.cost_price,
        selling_price=model.selling_price,
        offer_price=model.offer_price,
        status=model.status,
        barcode=model.barcode,
        product=ProductRef(id=product.id, external_id=product.external_id, name=product.name) if product else None,
        extra_linked_units=[model_to_unit(m) for m in model.extra_linked_units],
    )


def _line_to_response(index: int, line: SaleLineItem) -> LineItemResponse:
    return LineItemResponse(
        index=index,
        name=line.name,
        quantity=line.quantity,
        reserve_quantity=len(line.reserve_pool),
        unit_price=line.unit_price,
        discount_percent=line.discount_percent,
        offer_applied=line.saved_discount_percent is not None,
        offer_active=line.offer_active,
        is_synthetic=line.is_synthetic,
        subtotal=line.selling_subtotal,
        discount=line.row_discount,
        tax=line.tax,
        total=line.total,
        # Reserve units are reported as a count only.
        units=[unit_to_model(u).model_copy(update={"extra_linked_units": []}) for u in line.assigned_units],
    )


def _customer_to_model(customer: Optional[Customer]) -> Optional[CustomerModel]:
    if customer is None:
        return None
    return CustomerModel(
        name=customer.name,
        email=customer.email,
        phone=customer.phone,
        external_id=customer.external_id,
    )


def _payment_to_model(payment: Payment) -> PaymentModel:
    return PaymentModel(
        method=payment.method.value,
        amount=payment.amount,
        date=payment.date,
        cash_received=payment.cash_received,
        change=payment.change,
        external_id=payment.external_id,
    )


def sale_to_response(session: SaleSession) -> SaleResponse:
    order: SaleOrder = session.order
    return SaleResponse(
        session_id=session.session_id,
        version=session.version,
        invoice_number=order.invoice_number,
        sale_date=order.sale_date,
        payment_status=order.payment_status.value,
        customer=_customer_to_model(order.customer),
        line_items=[_line_to_response(i, line) for i, line in enumerate(order.line_items)],
        payments=[_payment_to_model(p) for p in order.payments],
        exchange_return_total=order.exchange_return_total,
        subtotal=order.subtotal,
        discount_total=order.discount_total,
        tax=order.tax,
        total=order.total,
        total_paid=order.total_paid,
        amount_due=order.amount_due,
    )


# ============================================================================
# Session lifecycle
# ============================================================================

@router.post(
    "/sales",
    response_model=SaleResponse,
    status_code=201,
    summary="Start Sale",
    description="Open a new draft sale with a freshly generated invoice number."
)
def start_sale(service: SaleSessionService = Depends(get_session_service)):
    """
    Start a new sale.

    Fails with 422 if the till has no branch, desk or user configured.
    """
    return sale_to_response(service.open_sale())


@router.get(
    "/sales/{session_id}",
    response_model=SaleResponse,
    summary="Get Sale",
    description="Current state and version of a draft sale."
)
def get_sale(session_id: str, service: SaleSessionService = Depends(get_session_service)):
    return sale_to_response(service.get(session_id))


# ============================================================================
# Line items
# ============================================================================

@router.post(
    "/sales/{session_id}/stock-items",
    response_model=SaleResponse,
    summary="Add Stock Unit",
    description=(
        "Reserve and add a catalog unit; units matching an existing line by product and prices "
        "are folded into it. A unit already in the sale is not added twice; a unit another till "
        "holds answers 409."
    )
)
def add_stock_item(
    session_id: str,
    request: AddStockItemRequest,
    service: SaleSessionService = Depends(get_session_service),
):
    try:
        session, _ = service.add_stock_item(session_id, request.expected_version, model_to_unit(request.unit))
    except RuntimeError as e:
        raise HTTPException(
            status_code=502,
            detail=f"Failed to reserve stock: {str(e)}"
        )
    return sale_to_response(session)


@router.post(
    "/sales/{session_id}/non-stock-items",
    response_model=SaleResponse,
    summary="Add Non-Stock Item",
    description="Add a free-text item such as 'Gift Wrap 5 2 10%' (name price qty discount%)."
)
def add_non_stock_item(
    session_id: str,
    request: AddNonStockItemRequest,
    service: SaleSessionService = Depends(get_session_service),
):
    session, _ = service.add_non_stock_item(session_id, request.expected_version, request.text)
    return sale_to_response(session)


@router.put(
    "/sales/{session_id}/items/{index}/quantity",
    response_model=QuantityChangeResponse,
    summary="Set Line Quantity",
    description="Move units between the line and its reserve pool. Increases are limited to the reserve pool."
)
def set_quantity(
    session_id: str,
    index: int,
    request: QuantityRequest,
    service: SaleSessionService = Depends(get_session_service),
):
    """
    Change a line's quantity.

    **Note:** when the reserve pool holds fewer units than requested, the line is
    filled as far as possible and `filled_quantity` reports the actual quantity.
    """
    session, change = service.set_quantity(session_id, request.expected_version, index, request.quantity)
    body = sale_to_response(session).model_dump()
    return QuantityChangeResponse(**body, requested_quantity=change.requested, filled_quantity=change.filled)


@router.put(
    "/sales/{session_id}/items/{index}/discount",
    response_model=SaleResponse,
    summary="Set Line Discount",
    description="Set the manual discount percentage (clamped to 0-40)."
)
def set_discount(
    session_id: str,
    index: int,
    request: DiscountRequest,
    service: SaleSessionService = Depends(get_session_service),
):
    session, _ = service.set_discount_percent(session_id, request.expected_version, index, request.discount_percent)
    return sale_to_response(session)


@router.post(
    "/sales/{session_id}/items/{index}/offer",
    response_model=SaleResponse,
    summary="Apply Offer Price",
)
def apply_offer(
    session_id: str,
    index: int,
    request: VersionedRequest,
    service: SaleSessionService = Depends(get_session_service),
):
    session, _ = service.apply_offer_price(session_id, request.expected_version, index)
    return sale_to_response(session)


@router.post(
    "/sales/{session_id}/items/{index}/offer/revert",
    response_model=SaleResponse,
    summary="Revert Offer Price",
)
def revert_offer(
    session_id: str,
    index: int,
    request: VersionedRequest,
    service: SaleSessionService = Depends(get_session_service),
):
    session, _ = service.revert_offer(session_id, request.expected_version, index)
    return sale_to_response(session)


@router.delete(
    "/sales/{session_id}/items/{index}",
    response_model=SaleResponse,
    summary="Remove Line",
    description="Remove a line; its units are released back to the catalog."
)
def remove_line_item(
    session_id: str,
    index: int,
    expected_version: int = Query(..., ge=0),
    service: SaleSessionService = Depends(get_session_service),
):
    session, _ = service.remove_line_item(session_id, expected_version, index)
    return sale_to_response(session)


# ============================================================================
# Customer, payments, exchange return
# ============================================================================

@router.put(
    "/sales/{session_id}/customer",
    response_model=SaleResponse,
    summary="Set Customer",
)
def set_customer(
    session_id: str,
    request: CustomerRequest,
    service: SaleSessionService = Depends(get_session_service),
):
    customer = request.line
    if customer is None and request.customer is not None:
        customer = Customer(**request.customer.model_dump())
    session, _ = service.set_customer(session_id, request.expected_version, customer)
    return sale_to_response(session)


@router.post(
    "/sales/{session_id}/payments",
    response_model=SaleResponse,
    summary="Add Payment",
    description="Append a payment; the sale becomes Paid once payments cover the total."
)
def add_payment(
    session_id: str,
    request: PaymentRequest,
    service: SaleSessionService = Depends(get_session_service),
):
    data = request.payment.model_dump(exclude_none=True)
    payment = Payment(**data)
    session, _ = service.add_payment(session_id, request.expected_version, payment)
    return sale_to_response(session)


@router.put(
    "/sales/{session_id}/exchange-return",
    response_model=SaleResponse,
    summary="Stage Exchange Return",
)
def set_exchange_return(
    session_id: str,
    request: ExchangeReturnRequest,
    service: SaleSessionService = Depends(get_session_service),
):
    items = [ReturnLineItem(**item.model_dump()) for item in request.return_line_items]
    session, _ = service.set_exchange_return(
        session_id, request.expected_version, request.original_sale_ref, items
    )
    return sale_to_response(session)


@router.delete(
    "/sales/{session_id}/exchange-return",
    response_model=SaleResponse,
    summary="Clear Exchange Return",
)
def clear_exchange_return(
    session_id: str,
    expected_version: int = Query(..., ge=0),
    service: SaleSessionService = Depends(get_session_service),
):
    session, _ = service.clear_exchange_return(session_id, expected_version)
    return sale_to_response(session)


# ============================================================================
# Checkout
# ============================================================================

@router.post(
    "/sales/{session_id}/checkout",
    response_model=CheckoutResponse,
    summary="Checkout Sale",
    description="Persist a fully paid sale and mark every assigned unit Sold; unpaid sales are refused with 422."
)
def checkout_sale(
    session_id: str,
    request: VersionedRequest,
    service: SaleSessionService = Depends(get_session_service),
    persist: Callable[[SaleOrder], str] = Depends(get_checkout_handler),
):
    try:
        session, sale_id = service.checkout(session_id, request.expected_version, persist)
    except RuntimeError as e:
        raise HTTPException(
            status_code=502,
            detail=f"Failed to save sale: {str(e)}"
        )

    order = session.order
    return CheckoutResponse(
        sale_id=sale_id,
        invoice_number=order.invoice_number,
        payment_status=order.payment_status.value,
        total=order.total,
        total_paid=order.total_paid,
        units_sold=sum(1 for _ in order.assigned_units()),
    )
