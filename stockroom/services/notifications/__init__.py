"""
Notification Service Factory

Returns the low-stock notifier bound to the application's session factory.
"""

import logging
from functools import lru_cache

from stockroom.database import async_session_maker
from stockroom.services.notifications.low_stock import LOW_STOCK_TITLE, LowStockNotifier
from stockroom.services.notifications.preferences import (
    in_quiet_hours,
    is_type_enabled,
    is_within_quiet_hours,
)

logger = logging.getLogger(__name__)


@lru_cache()
def get_low_stock_notifier() -> LowStockNotifier:
    """Get the configured low-stock notifier."""
    notifier = LowStockNotifier(async_session_maker)
    logger.info("Notification Service: LowStockNotifier ready")
    return notifier


def reset_low_stock_notifier() -> None:
    """Clear the cached notifier instance."""
    get_low_stock_notifier.cache_clear()


__all__ = [
    "get_low_stock_notifier",
    "reset_low_stock_notifier",
    "LowStockNotifier",
    "LOW_STOCK_TITLE",
    "in_quiet_hours",
    "is_type_enabled",
    "is_within_quiet_hours",
]
