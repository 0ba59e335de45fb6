"""
                        Services Module

Inventory consistency services, leaves first:
    - ledger: stock values and the append-only history
    - recipes: product -> ingredient requirements
    - validation: advisory order feasibility check
    - engine: the only writer of stock (deduct, restore, restock, adjust)
    - notifications: low-stock alert fan-out
    - availability: product availability flags derived from stock

Factories below return process-wide instances bound to the application's
session factory; tests build their own instances against a test database.
"""

import logging
from functools import lru_cache

from stockroom.database import async_session_maker
from stockroom.services.availability import AvailabilitySynchronizer
from stockroom.services.engine import StockMutationEngine
from stockroom.services.ledger import StockLedger
from stockroom.services.notifications import get_low_stock_notifier, reset_low_stock_notifier
from stockroom.services.recipes import RecipeResolver
from stockroom.services.validation import AvailabilityValidator

logger = logging.getLogger(__name__)


@lru_cache()
def get_inventory_engine() -> StockMutationEngine:
    """Get the stock mutation engine wired to the low-stock notifier."""
    return StockMutationEngine(async_session_maker, notifier=get_low_stock_notifier())


@lru_cache()
def get_availability_validator() -> AvailabilityValidator:
    return AvailabilityValidator(async_session_maker)


@lru_cache()
def get_availability_synchronizer() -> AvailabilitySynchronizer:
    return AvailabilitySynchronizer(async_session_maker)


@lru_cache()
def get_stock_ledger() -> StockLedger:
    return StockLedger()


def reset_services() -> None:
    """
    Clear all cached service instances.

    Useful when configuration changes at runtime; the next factory call
    builds fresh instances.
    """
    get_inventory_engine.cache_clear()
    get_availability_validator.cache_clear()
    get_availability_synchronizer.cache_clear()
    get_stock_ledger.cache_clear()
    reset_low_stock_notifier()
    logger.debug("Inventory service caches cleared")


__all__ = [
    "get_inventory_engine",
    "get_availability_validator",
    "get_availability_synchronizer",
    "get_stock_ledger",
    "reset_services",
    "AvailabilitySynchronizer",
    "AvailabilityValidator",
    "RecipeResolver",
    "StockLedger",
    "StockMutationEngine",
]
