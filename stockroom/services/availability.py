"""
Availability Synchronizer

Recomputes each product's ``is_available`` flag from the stock of its
recipe ingredients. The flag is derived state: it can always be rebuilt
from stock and recipes, so the synchronizer is idempotent and safe to
re-run at any time.

A product is unavailable only when some active recipe ingredient has run
out (stock <= 0). Low but non-zero stock is reported as ``low_stock`` and
leaves the product purchasable. Read errors default to available so a
transient failure never hides a sellable item.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from stockroom.models import IngredientHistory, Product, ProductIngredient
from stockroom.services.ledger import to_stock
from stockroom.services.recipes import RecipeResolver
from stockroom.services.results import (
    AvailabilitySyncReport,
    LimitingIngredient,
    ProductAvailabilityStatus,
    SyncDetail,
)

logger = logging.getLogger(__name__)


class AvailabilitySynchronizer:
    """Keeps product availability flags in line with ingredient stock."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        resolver: Optional[RecipeResolver] = None,
    ) -> None:
        self._session_factory = session_factory
        self._resolver = resolver or RecipeResolver()

    # =========================================================================
    # STATUS
    # =========================================================================

    async def product_status(self, product_id: int) -> ProductAvailabilityStatus:
        """Ingredient-derived status of one product (read-only, fail-open)."""
        try:
            async with self._session_factory() as session:
                return await self._status(session, product_id)
        except Exception as e:
            logger.exception(f"Failed to read ingredient status for product #{product_id}: {e}")
            return ProductAvailabilityStatus(product_id=product_id, available=True)

    async def _status(self, session: AsyncSession, product_id: int) -> ProductAvailabilityStatus:
        recipe = [
            ingredient
            for _, ingredient in await self._resolver.recipe_for(session, product_id)
            if ingredient.is_active
        ]
        status = ProductAvailabilityStatus(product_id=product_id, available=True)
        if not recipe:
            return status

        for ingredient in recipe:
            current = to_stock(ingredient.current_stock)
            minimum = to_stock(ingredient.minimum_stock)
            if current <= 0:
                status.missing_ingredients.append(ingredient.name)
            if current <= minimum:
                status.limiting_ingredients.append(LimitingIngredient(
                    name=ingredient.name,
                    current_stock=current,
                    minimum_stock=minimum,
                ))

        if status.missing_ingredients:
            status.available = False
            status.status = "out_of_stock"
        elif status.limiting_ingredients:
            status.status = "low_stock"
        return status

    # =========================================================================
    # SYNC
    # =========================================================================

    async def sync_one(self, product_id: int) -> bool:
        """
        Recompute and store one product's availability.

        Returns:
            The availability written, or True if the product could not be
            synced
        """
        detail = await self._sync_product(product_id)
        return detail.now_available if detail else True

    async def sync_batch(self, since_minutes: int = 5) -> AvailabilitySyncReport:
        """
        Re-sync products whose ingredients changed within the lookback window.

        Args:
            since_minutes: Staleness bound; products untouched by any stock
                history record in this window are skipped

        Returns:
            AvailabilitySyncReport listing only products whose flag flipped
        """
        candidates = await self.products_needing_update(since_minutes)
        report = await self._sync_products(candidates)
        logger.info(
            f"Availability batch sync ({since_minutes}m): checked {report.products_checked}, "
            f"{report.products_disabled} disabled, {report.products_enabled} enabled"
        )
        return report

    async def sync_all(self) -> AvailabilitySyncReport:
        """Re-sync every product that has a recipe."""
        try:
            async with self._session_factory() as session:
                rows = await session.execute(
                    select(Product.id)
                    .join(ProductIngredient, ProductIngredient.product_id == Product.id)
                    .group_by(Product.id)
                    .order_by(Product.id)
                )
                candidates = [product_id for (product_id,) in rows.all()]
        except Exception as e:
            logger.exception(f"Failed to list products for full availability sync: {e}")
            return AvailabilitySyncReport()

        report = await self._sync_products(candidates)
        logger.info(
            f"Availability full sync: checked {report.products_checked}, "
            f"{report.products_disabled} disabled, {report.products_enabled} enabled"
        )
        return report

    async def products_needing_update(self, since_minutes: int = 5) -> list[int]:
        """Products with a recipe ingredient touched by history since the window opened."""
        since = datetime.now(timezone.utc) - timedelta(minutes=since_minutes)
        last_change = func.max(IngredientHistory.created_at)
        try:
            async with self._session_factory() as session:
                rows = await session.execute(
                    select(ProductIngredient.product_id, last_change)
                    .join(
                        IngredientHistory,
                        IngredientHistory.ingredient_id == ProductIngredient.ingredient_id,
                    )
                    .where(IngredientHistory.created_at > since)
                    .group_by(ProductIngredient.product_id)
                    .order_by(last_change.desc(), ProductIngredient.product_id)
                )
                return [product_id for product_id, _ in rows.all()]
        except Exception as e:
            logger.exception(f"Failed to find products needing availability update: {e}")
            return []

    async def _sync_products(self, product_ids: list[int]) -> AvailabilitySyncReport:
        report = AvailabilitySyncReport(products_checked=len(product_ids))
        for product_id in product_ids:
            detail = await self._sync_product(product_id)
            if detail is None or detail.was_available == detail.now_available:
                continue
            report.details.append(detail)
            report.products_updated += 1
            if detail.now_available:
                report.products_enabled += 1
            else:
                report.products_disabled += 1
        return report

    async def _sync_product(self, product_id: int) -> Optional[SyncDetail]:
        status = await self.product_status(product_id)
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    product = await session.get(Product, product_id)
                    if product is None:
                        logger.warning(f"Availability sync skipped: product #{product_id} not found")
                        return None

                    was_available = bool(product.is_available)
                    if was_available != status.available:
                        product.is_available = status.available
                        logger.info(
                            f"Product '{product.name}' is now "
                            f"{'available' if status.available else 'unavailable'} ({status.status})"
                        )
                    return SyncDetail(
                        product_id=product.id,
                        product_name=product.name,
                        was_available=was_available,
                        now_available=status.available,
                    )
        except Exception as e:
            logger.exception(f"Failed to update availability for product #{product_id}: {e}")
            return None
