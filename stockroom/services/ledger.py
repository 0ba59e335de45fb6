"""
Stock Ledger

Authoritative current_stock per ingredient plus the append-only history of
every mutation. Read helpers are used by every inventory component; the
single write primitive ``record`` is only called by the engine, on a row it
has already locked.
"""

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from stockroom.models import Ingredient, IngredientHistory, StockOperation
from stockroom.services.results import ReconciliationReport

logger = logging.getLogger(__name__)

STOCK_PRECISION = Decimal("0.01")


def to_stock(value) -> Decimal:
    """Normalize a numeric value to the ledger's two-decimal precision."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(STOCK_PRECISION, rounding=ROUND_HALF_UP)


def replay(records: Iterable[IngredientHistory], initial) -> Decimal:
    """
    Re-apply an ordered history to a starting stock value.

    Deterministic: the same records and starting point always give the
    same result.
    """
    stock = to_stock(initial)
    for record in records:
        stock = to_stock(stock + to_stock(record.quantity))
    return stock


class StockLedger:
    """Data access over the ingredients table and its history."""

    async def get_ingredient(
        self,
        session: AsyncSession,
        ingredient_id: int,
        for_update: bool = False,
    ) -> Optional[Ingredient]:
        """
        Load one ingredient row.

        With ``for_update`` the row is locked until the surrounding
        transaction ends.
        """
        query = select(Ingredient).where(Ingredient.id == ingredient_id)
        if for_update:
            # Refresh rows already in the identity map with the locked values
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await session.execute(query)
        return result.scalar_one_or_none()

    def record(
        self,
        session: AsyncSession,
        ingredient: Ingredient,
        delta: Decimal,
        operation: StockOperation,
        order_id: Optional[int] = None,
        performed_by: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> IngredientHistory:
        """
        Apply a signed delta to a locked ingredient and append its history row.

        Both writes join the caller's transaction and commit or roll back
        together.
        """
        previous = to_stock(ingredient.current_stock)
        delta = to_stock(delta)
        new = to_stock(previous + delta)

        ingredient.current_stock = new
        entry = IngredientHistory(
            ingredient_id=ingredient.id,
            operation=operation,
            quantity=delta,
            previous_stock=previous,
            new_stock=new,
            order_id=order_id,
            performed_by=performed_by,
            notes=notes,
        )
        session.add(entry)
        logger.debug(
            f"Ledger {operation.value}: {ingredient.name} {previous} -> {new} "
            f"(order={order_id})"
        )
        return entry

    async def list_low_stock(self, session: AsyncSession) -> list[Ingredient]:
        """Active ingredients at or below their minimum, most depleted first."""
        ratio = Ingredient.current_stock / func.nullif(Ingredient.minimum_stock, 0)
        result = await session.execute(
            select(Ingredient)
            .where(
                Ingredient.current_stock <= Ingredient.minimum_stock,
                Ingredient.is_active.is_(True),
            )
            .order_by(ratio.asc(), Ingredient.id)
        )
        return list(result.scalars().all())

    async def history(
        self,
        session: AsyncSession,
        ingredient_id: int,
        limit: Optional[int] = None,
    ) -> list[IngredientHistory]:
        """History rows for one ingredient in commit order."""
        query = (
            select(IngredientHistory)
            .where(IngredientHistory.ingredient_id == ingredient_id)
            .order_by(IngredientHistory.created_at, IngredientHistory.id)
        )
        if limit is not None:
            query = query.limit(limit)
        result = await session.execute(query)
        return list(result.scalars().all())

    async def history_for_order(self, session: AsyncSession, order_id: int) -> list[IngredientHistory]:
        result = await session.execute(
            select(IngredientHistory)
            .where(IngredientHistory.order_id == order_id)
            .order_by(IngredientHistory.created_at, IngredientHistory.id)
        )
        return list(result.scalars().all())

    async def reconcile(self, session: AsyncSession, ingredient_id: int) -> Optional[ReconciliationReport]:
        """
        Check that the history is a faithful replay log of the live stock.

        Returns None when the ingredient does not exist.
        """
        ingredient = await self.get_ingredient(session, ingredient_id)
        if ingredient is None:
            return None

        live = to_stock(ingredient.current_stock)
        records = await self.history(session, ingredient_id)
        report = ReconciliationReport(
            ingredient_id=ingredient_id,
            live_stock=live,
            replayed_stock=None,
            records=len(records),
        )
        if not records:
            return report

        previous_new: Optional[Decimal] = None
        for record in records:
            prev = to_stock(record.previous_stock)
            new = to_stock(record.new_stock)
            if to_stock(prev + to_stock(record.quantity)) != new:
                report.problems.append(
                    f"record #{record.id}: {prev} + {record.quantity} != {new}"
                )
            if previous_new is not None and prev != previous_new:
                report.problems.append(
                    f"record #{record.id}: starts at {prev}, previous record ended at {previous_new}"
                )
            previous_new = new

        report.replayed_stock = replay(records, records[0].previous_stock)
        if report.replayed_stock != live:
            report.problems.append(
                f"replayed stock {report.replayed_stock} != live stock {live}"
            )

        if report.problems:
            logger.warning(
                f"Ledger drift on ingredient #{ingredient_id}: {len(report.problems)} problem(s)"
            )
        return report
