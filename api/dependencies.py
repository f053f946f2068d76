"""
FastAPI dependencies.

Settings and the draft-sale session store are built once per process; tests
override them through app.dependency_overrides.
"""

from functools import lru_cache
from typing import Callable, List

from domain.sale import SaleOrder
from domain.stock_unit import StockUnit
from services import catalog_service, checkout_service
from services.sale_session_service import SaleSessionService
from settings import Settings, load_settings


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()


def _release_units(units: List[StockUnit]) -> None:
    checkout_service.release_units(units)


def _reserve_units(units: List[StockUnit]) -> List[StockUnit]:
    return catalog_service.reserve_units(units)


@lru_cache(maxsize=1)
def get_session_service() -> SaleSessionService:
    settings = get_settings()
    return SaleSessionService(
        context=settings.branch_context(),
        pricing=settings.pricing_policy(),
        release_units=_release_units,
        reserve_units=_reserve_units,
        idle_timeout=settings.session_idle_timeout(),
    )


def get_checkout_handler() -> Callable[[SaleOrder], str]:
    """Persists a paid sale; returns its external id."""
    return checkout_service.checkout
