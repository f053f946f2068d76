"""
Catalog API Endpoints.

Endpoints for searching available stock units to add to a sale.
"""

from fastapi import APIRouter, HTTPException, Query

from api.models import StockUnitListResponse
from api.routers.sales import unit_to_model
from services.catalog_service import search_stock_units

router = APIRouter()


@router.get(
    "/stock-units",
    response_model=StockUnitListResponse,
    summary="Search Available Stock",
    description="Search available units by name or barcode, grouped by product."
)
def search_available_stock(
    q: str = Query("", description="Name fragment or exact barcode"),
    limit: int = Query(300, ge=1, le=1000, description="Maximum number of units to scan"),
):
    """
    Search the catalog for available stock units.

    Units of the same product are grouped: the first unit is returned and the
    rest are listed in its `extra_linked_units`, ready to be added to a sale so
    that quantity can be raised later.

    **Example usage:**
    - `GET /api/v1/stock-units?q=ring`
    - `GET /api/v1/stock-units?q=8901234567890`
    """
    try:
        heads = search_stock_units(q, limit=limit)
    except RuntimeError as e:
        raise HTTPException(status_code=502, detail=f"Failed to search stock: {str(e)}")

    return StockUnitListResponse(
        items=[unit_to_model(unit) for unit in heads],
        total_count=len(heads),
    )
