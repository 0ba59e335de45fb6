"""
Availability Validator

Advisory check run before an order is placed: which ingredients are short
for the requested quantities, and how many portions could still be made.

Never locks or mutates stock, so its verdict can be stale by the time the
engine deducts. Ingredient tracking is a soft constraint: any read error
reports the order as fulfillable.
"""

import logging
from decimal import Decimal
from typing import Iterable, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from stockroom.models import Notification, NotificationType
from stockroom.services.ledger import to_stock
from stockroom.services.recipes import RecipeResolver
from stockroom.services.results import ShortageDetail, StockValidationResult

logger = logging.getLogger(__name__)


def portions_for_recipe(lines: Iterable[tuple[Decimal, Decimal]]) -> Optional[int]:
    """
    Whole portions of one product makeable from (per_unit, current_stock) pairs.

    Lines with a zero requirement or no stock left are ignored; returns None
    when nothing remains to bound the product.
    """
    bound: Optional[int] = None
    for per_unit, stock in lines:
        if per_unit <= 0 or stock <= 0:
            continue
        portions = int(stock // per_unit)
        if bound is None or portions < bound:
            bound = portions
    return bound


def max_portions(per_product: dict[int, list[tuple[Decimal, Decimal]]]) -> Optional[int]:
    """Smallest positive per-product bound, or None if no product has one."""
    bounds = [
        bound
        for bound in (portions_for_recipe(lines) for lines in per_product.values())
        if bound is not None and bound > 0
    ]
    return min(bounds) if bounds else None


class AvailabilityValidator:
    """Read-only feasibility check for candidate orders."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        resolver: Optional[RecipeResolver] = None,
    ) -> None:
        self._session_factory = session_factory
        self._resolver = resolver or RecipeResolver()

    async def validate(self, items: Sequence[tuple[int, int]]) -> StockValidationResult:
        """
        Classify (product_id, quantity) items against current stock.

        Returns:
            StockValidationResult with shortages and, when short, the
            best-effort partial-fulfillment bound.
        """
        try:
            async with self._session_factory() as session:
                return await self._validate(session, items)
        except Exception as e:
            logger.exception(f"Ingredient validation failed, allowing order: {e}")
            return StockValidationResult(fulfillable=True)

    async def _validate(
        self,
        session: AsyncSession,
        items: Sequence[tuple[int, int]],
    ) -> StockValidationResult:
        missing: list[ShortageDetail] = []
        per_product: dict[int, list[tuple[Decimal, Decimal]]] = {}

        for product_id, quantity in items:
            recipe = await self._resolver.recipe_for(session, product_id)
            lines = per_product.setdefault(product_id, [])
            for entry, ingredient in recipe:
                per_unit = to_stock(entry.quantity_required)
                have = to_stock(ingredient.current_stock)
                need = to_stock(per_unit * quantity)
                lines.append((per_unit, have))

                if have < need:
                    missing.append(ShortageDetail(
                        ingredient_id=ingredient.id,
                        ingredient_name=ingredient.name,
                        unit=ingredient.unit.value,
                        have=have,
                        need=need,
                        shortage=need - have,
                    ))

        if not missing:
            return StockValidationResult(fulfillable=True)

        logger.info(
            f"Order short on {len(missing)} ingredient line(s): "
            f"{', '.join(m.ingredient_name for m in missing)}"
        )
        return StockValidationResult(
            fulfillable=False,
            missing=missing,
            max_portions=max_portions(per_product),
        )

    async def log_override(
        self,
        order_id: int,
        missing: Sequence[ShortageDetail],
        user_id: Optional[int] = None,
    ) -> int:
        """
        Record that an order was placed despite a shortage warning.

        One ``ingredient_override`` notification per shortage. Returns the
        number of records written; failures are logged, never raised.
        """
        if not missing:
            return 0
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    for shortage in missing:
                        session.add(Notification(
                            user_id=user_id,
                            type=NotificationType.INGREDIENT_OVERRIDE.value,
                            title=f"Ingredient Override - Order {order_id}",
                            message=(
                                f"Order was placed despite insufficient {shortage.ingredient_name}: "
                                f"need {shortage.need}{shortage.unit}, have {shortage.have}{shortage.unit}"
                            ),
                        ))
        except Exception as e:
            logger.exception(f"Failed to log ingredient override for order #{order_id}: {e}")
            return 0

        logger.warning(f"Order #{order_id} placed with {len(missing)} ingredient shortage(s)")
        return len(missing)
