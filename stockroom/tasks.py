"""
Celery Tasks
Background jobs for the ingredient inventory.

Each task runs its coroutine under a fresh event loop with its own
NullPool engine, disposed when the job ends.
"""

import asyncio
import logging
import time
from datetime import datetime
from typing import Awaitable, Callable, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from stockroom.celery_worker import celery_app
from stockroom.database import create_worker_session_maker
from stockroom.services.availability import AvailabilitySynchronizer
from stockroom.services.engine import StockMutationEngine
from stockroom.services.notifications.low_stock import LowStockNotifier

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _run(job: Callable[[async_sessionmaker[AsyncSession]], Awaitable[T]]) -> T:
    async def _main() -> T:
        engine, session_factory = create_worker_session_maker()
        try:
            return await job(session_factory)
        finally:
            await engine.dispose()

    return asyncio.run(_main())


def _inventory_engine(session_factory: async_sessionmaker[AsyncSession]) -> StockMutationEngine:
    return StockMutationEngine(session_factory, notifier=LowStockNotifier(session_factory))


@celery_app.task(
    bind=True,
    max_retries=3,
    default_retry_delay=5,
    autoretry_for=(OSError,),
    retry_backoff=True
)
def deduct_ingredients_for_order(self, order_id: int) -> dict:
    """
    Consume recipe ingredients for a created order.

    The engine rolls back and reports failures in the result instead of
    raising, so only infrastructure errors reach Celery's retry.

    Args:
        order_id: Order whose line items drive the deduction

    Returns:
        dict: StockMutationResult as a JSON-safe dictionary
    """
    task_id = self.request.id
    logger.info(f"Task {task_id}: deducting ingredients for order #{order_id}")
    start_time = time.time()

    result = _run(lambda factory: _inventory_engine(factory).deduct_for_order(order_id))

    elapsed = round(time.time() - start_time, 3)
    if result.success:
        logger.info(f"Task {task_id}: order #{order_id} deducted in {elapsed}s")
    else:
        logger.warning(
            f"Task {task_id}: order #{order_id} deduction failed after {elapsed}s - "
            f"{result.error_code}: {result.error_message}"
        )

    payload = result.to_dict()
    payload['task_id'] = task_id
    payload['processing_time_seconds'] = elapsed
    return payload


@celery_app.task(
    bind=True,
    max_retries=3,
    default_retry_delay=5,
    autoretry_for=(OSError,),
    retry_backoff=True
)
def restore_ingredients_for_order(self, order_id: int) -> dict:
    """Return the ingredients of a cancelled order to stock."""
    task_id = self.request.id
    logger.info(f"Task {task_id}: restoring ingredients for cancelled order #{order_id}")
    start_time = time.time()

    result = _run(lambda factory: _inventory_engine(factory).restore_for_order(order_id))

    elapsed = round(time.time() - start_time, 3)
    if not result.success:
        logger.warning(
            f"Task {task_id}: order #{order_id} restoration failed - "
            f"{result.error_code}: {result.error_message}"
        )

    payload = result.to_dict()
    payload['task_id'] = task_id
    payload['processing_time_seconds'] = elapsed
    return payload


@celery_app.task
def sync_product_availability(since_minutes: int = 5) -> dict:
    """
    Periodic job: re-sync availability of products whose ingredients
    changed within the lookback window.
    """
    report = _run(lambda factory: AvailabilitySynchronizer(factory).sync_batch(since_minutes))
    payload = report.to_dict()
    payload['timestamp'] = datetime.now().isoformat()
    return payload


@celery_app.task
def health_check() -> dict:
    """
    Simple health check task to verify Celery is working.
    """
    return {
        'status': 'healthy',
        'worker': 'celery',
        'timestamp': datetime.now().isoformat()
    }
