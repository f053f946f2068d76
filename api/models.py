"""
API Request and Response Models.

Pydantic models for validating API requests and serializing responses.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


StockStatusName = Literal[
    "Available", "InStock", "Received", "Reserved", "Sold", "Returned",
    "ReturnedDamaged", "ReturnedToSupplier", "Damaged", "Lost", "Expired",
]
RestockStatusName = Literal["Returned", "ReturnedDamaged", "Damaged", "InStock"]
PaymentMethodName = Literal["Cash", "Card", "Bank", "MobileWallet", "ExchangeReturn"]


# ============================================================================
# Stock Unit Models
# ============================================================================

class ProductModel(BaseModel):
    """Catalog product a unit belongs to."""
    id: Optional[int] = None
    external_id: Optional[str] = None
    name: Optional[str] = None


class StockUnitModel(BaseModel):
    """Single serialized stock unit, optionally carrying its reserve units."""
    id: Optional[int] = None
    external_id: Optional[str] = None
    name: Optional[str] = None
    cost_price: Decimal = Decimal("0")
    selling_price: Decimal = Decimal("0")
    offer_price: Optional[Decimal] = None
    status: StockStatusName = "Available"
    barcode: Optional[str] = None
    product: Optional[ProductModel] = None
    extra_linked_units: List["StockUnitModel"] = Field(default_factory=list)

    class Config:
        json_schema_extra = {
            "example": {
                "id": 101,
                "external_id": "su-101",
                "name": "Silver Ring",
                "cost_price": "70.00",
                "selling_price": "100.00",
                "offer_price": "85.00",
                "status": "Available",
                "product": {"id": 7, "external_id": "prod-7", "name": "Silver Ring"},
                "extra_linked_units": []
            }
        }


class StockUnitListResponse(BaseModel):
    """Catalog search result, one head unit per product."""
    items: List[StockUnitModel]
    total_count: int


# ============================================================================
# Sale Models
# ============================================================================

class LineItemResponse(BaseModel):
    """One priced row of a sale."""
    index: int
    name: str
    quantity: int
    reserve_quantity: int
    unit_price: Decimal
    discount_percent: Decimal
    offer_applied: bool
    offer_active: bool
    is_synthetic: bool
    subtotal: Decimal
    discount: Decimal
    tax: Decimal
    total: Decimal
    units: List[StockUnitModel]


class PaymentModel(BaseModel):
    """Payment tender; omitted fields default to a zero cash payment dated now."""
    method: PaymentMethodName = "Cash"
    amount: Decimal = Decimal("0")
    date: Optional[datetime] = None
    cash_received: Optional[Decimal] = None
    change: Optional[Decimal] = None
    external_id: Optional[str] = None


class CustomerModel(BaseModel):
    name: str = ""
    email: str = ""
    phone: str = ""
    external_id: Optional[str] = None


class ReturnLineItemModel(BaseModel):
    product_name: str = ""
    unit_price: Decimal = Decimal("0")
    quantity: int = 1
    line_total: Optional[Decimal] = None
    stock_unit_external_id: Optional[str] = None
    sale_item_external_id: Optional[str] = None
    product_external_id: Optional[str] = None
    restock_status: RestockStatusName = "Returned"


class SaleResponse(BaseModel):
    """Full state of a draft sale, including its version stamp."""
    session_id: str
    version: int
    invoice_number: Optional[str]
    sale_date: datetime
    payment_status: str
    customer: Optional[CustomerModel] = None
    line_items: List[LineItemResponse]
    payments: List[PaymentModel]
    exchange_return_total: Decimal
    subtotal: Decimal
    discount_total: Decimal
    tax: Decimal
    total: Decimal
    total_paid: Decimal
    amount_due: Decimal


class QuantityChangeResponse(SaleResponse):
    """Sale state after a quantity edit, with how many units could be filled."""
    requested_quantity: int
    filled_quantity: int


# ============================================================================
# Mutation Requests (optimistic concurrency)
# ============================================================================

class VersionedRequest(BaseModel):
    """Every mutation carries the sale version the terminal last saw."""
    expected_version: int = Field(..., ge=0, description="Version returned by the last read or write")


class AddStockItemRequest(VersionedRequest):
    unit: StockUnitModel


class AddNonStockItemRequest(VersionedRequest):
    text: str = Field(..., min_length=1, description="Free text such as 'Gift Wrap 5 2 10%'")

    class Config:
        json_schema_extra = {
            "example": {"expected_version": 0, "text": "Gift Wrap 5 2 10%"}
        }


class QuantityRequest(VersionedRequest):
    quantity: int


class DiscountRequest(VersionedRequest):
    discount_percent: Decimal


class PaymentRequest(VersionedRequest):
    payment: PaymentModel


class CustomerRequest(VersionedRequest):
    """Either a free-text contact line or structured customer fields (or neither to clear)."""
    line: Optional[str] = None
    customer: Optional[CustomerModel] = None


class ExchangeReturnRequest(VersionedRequest):
    original_sale_ref: Optional[str] = None
    return_line_items: List[ReturnLineItemModel] = Field(..., min_length=1)


class CheckoutResponse(BaseModel):
    """Result of a paid checkout."""
    sale_id: str
    invoice_number: Optional[str]
    payment_status: str
    total: Decimal
    total_paid: Decimal
    units_sold: int


# ============================================================================
# Error Models
# ============================================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str
    detail: Optional[str] = None
    status_code: int

    class Config:
        json_schema_extra = {
            "example": {
                "error": "Conflict",
                "detail": "Sale 5f0c... was modified concurrently. Expected version: 3, Current: 4",
                "status_code": 409
            }
        }
