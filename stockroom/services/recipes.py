"""
Recipe Resolver

Maps a product and a quantity to the ingredients it consumes. Pure reads
over product_ingredients; read errors propagate to the caller.

Recipe rows whose ingredient no longer exists are skipped, so partially
cleaned-up configuration loosens constraints instead of failing.
"""

from collections import defaultdict
from decimal import Decimal
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from stockroom.models import Ingredient, OrderItem, ProductIngredient
from stockroom.services.ledger import to_stock
from stockroom.services.results import IngredientRequirement


class RecipeResolver:
    """Read-only lookups over recipe configuration."""

    async def recipe_for(
        self,
        session: AsyncSession,
        product_id: int,
    ) -> list[tuple[ProductIngredient, Ingredient]]:
        """Recipe lines of a product joined to their ingredient rows."""
        result = await session.execute(
            select(ProductIngredient, Ingredient)
            .join(Ingredient, Ingredient.id == ProductIngredient.ingredient_id)
            .where(ProductIngredient.product_id == product_id)
            .order_by(ProductIngredient.ingredient_id)
        )
        return [(entry, ingredient) for entry, ingredient in result.all()]

    async def resolve_requirements(
        self,
        session: AsyncSession,
        product_id: int,
        quantity: int,
    ) -> list[IngredientRequirement]:
        """
        Ingredients consumed by ``quantity`` units of a product.

        An empty list means the product has no ingredient constraint.
        """
        result = await session.execute(
            select(ProductIngredient.ingredient_id, ProductIngredient.quantity_required)
            .join(Ingredient, Ingredient.id == ProductIngredient.ingredient_id)
            .where(ProductIngredient.product_id == product_id)
            .order_by(ProductIngredient.ingredient_id)
        )
        return [
            IngredientRequirement(
                ingredient_id=ingredient_id,
                quantity_per_unit=to_stock(per_unit),
                amount_required=to_stock(Decimal(str(per_unit)) * quantity),
            )
            for ingredient_id, per_unit in result.all()
        ]

    async def resolve_order(
        self,
        session: AsyncSession,
        lines: Iterable[tuple[int, int]],
    ) -> dict[int, Decimal]:
        """
        Total amount per ingredient across (product_id, quantity) lines.

        Ordered by ingredient id so callers can lock rows in a single
        canonical order.
        """
        totals: dict[int, Decimal] = defaultdict(Decimal)
        for product_id, quantity in lines:
            for requirement in await self.resolve_requirements(session, product_id, quantity):
                totals[requirement.ingredient_id] += requirement.amount_required
        return {ingredient_id: totals[ingredient_id] for ingredient_id in sorted(totals)}

    async def order_lines(self, session: AsyncSession, order_id: int) -> list[tuple[int, int]]:
        """(product_id, quantity) pairs of a persisted order."""
        result = await session.execute(
            select(OrderItem.product_id, OrderItem.quantity)
            .where(OrderItem.order_id == order_id)
            .order_by(OrderItem.id)
        )
        return [(product_id, quantity) for product_id, quantity in result.all()]
