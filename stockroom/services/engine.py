"""
Deduction/Restoration Engine

The only component that mutates ingredient stock. Every mutation runs in one
transaction that:

    1. resolves the ingredients involved and sorts them by id,
    2. locks each ingredient row (SELECT ... FOR UPDATE) one at a time,
    3. writes the new stock and appends a history record,
    4. commits, and only then hands low-stock ingredients to the notifier.

Locking in ascending ingredient id keeps two concurrent orders that share
ingredients from deadlocking; they queue on the first shared row instead.

Order-driven deductions and restorations never raise: an accepted order is
the source of truth, so a failed transaction is rolled back, logged and
reported through ``StockMutationResult.success``. Manual restock and
adjustment are interactive admin actions and raise domain errors.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from stockroom.core.config import get_settings
from stockroom.exceptions import (
    IngredientNotFoundError,
    InsufficientStockError,
    InvalidQuantityError,
)
from stockroom.models import Ingredient, StockOperation
from stockroom.services.ledger import StockLedger, to_stock
from stockroom.services.notifications.low_stock import LowStockNotifier
from stockroom.services.recipes import RecipeResolver
from stockroom.services.results import StockChange, StockMutationResult

logger = logging.getLogger(__name__)


class StockMutationEngine:
    """Applies and reverses ingredient stock changes under row locks."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        notifier: Optional[LowStockNotifier] = None,
        resolver: Optional[RecipeResolver] = None,
        ledger: Optional[StockLedger] = None,
        allow_negative_stock: Optional[bool] = None,
    ) -> None:
        self._session_factory = session_factory
        self._notifier = notifier
        self._resolver = resolver or RecipeResolver()
        self._ledger = ledger or StockLedger()
        self._allow_negative_stock = (
            get_settings().allow_negative_stock
            if allow_negative_stock is None
            else allow_negative_stock
        )

    # =========================================================================
    # ORDER LIFECYCLE
    # =========================================================================

    async def deduct_for_order(self, order_id: int) -> StockMutationResult:
        """
        Consume the ingredients of a newly created order.

        Ingredients left at or below their minimum trigger a low-stock
        alert after the transaction commits.
        """
        return await self._run_for_order(order_id, StockOperation.ORDER_CONSUMPTION)

    async def restore_for_order(self, order_id: int) -> StockMutationResult:
        """Give back the ingredients of a cancelled order."""
        return await self._run_for_order(order_id, StockOperation.ORDER_CANCELLATION)

    async def _run_for_order(self, order_id: int, operation: StockOperation) -> StockMutationResult:
        try:
            changes = await self._apply_order(order_id, operation)
        except Exception as e:
            logger.exception(
                f"Failed to apply {operation.value} for order #{order_id}, rolled back: {e}"
            )
            return StockMutationResult(
                success=False,
                operation=operation,
                order_id=order_id,
                error_message=str(e),
                error_code=getattr(e, "error_code", "internal_error"),
            )

        result = StockMutationResult(
            success=True,
            operation=operation,
            order_id=order_id,
            changes=changes,
        )
        logger.info(
            f"Order #{order_id} {operation.value}: {len(changes)} ingredient(s) updated"
        )
        await self._after_commit(result)
        return result

    async def _apply_order(self, order_id: int, operation: StockOperation) -> list[StockChange]:
        consuming = operation == StockOperation.ORDER_CONSUMPTION
        if consuming:
            notes = f"Deducted for order {order_id}"
        else:
            notes = f"Restored from cancelled order {order_id}"

        changes: list[StockChange] = []
        async with self._session_factory() as session:
            async with session.begin():
                lines = await self._resolver.order_lines(session, order_id)
                if not lines:
                    logger.warning(f"Order #{order_id} has no line items, nothing to {operation.value}")
                    return changes

                requirements = await self._resolver.resolve_order(session, lines)
                for ingredient_id, amount in requirements.items():
                    ingredient = await self._ledger.get_ingredient(session, ingredient_id, for_update=True)
                    if ingredient is None:
                        continue

                    delta = -amount if consuming else amount
                    if consuming:
                        self._check_sufficient(ingredient, amount)

                    entry = self._ledger.record(
                        session,
                        ingredient,
                        delta,
                        operation,
                        order_id=order_id,
                        notes=notes,
                    )
                    changes.append(self._change_from(
                        ingredient,
                        entry.quantity,
                        entry.previous_stock,
                        entry.new_stock,
                        operation,
                        check_low_stock=consuming,
                    ))
        return changes

    def _check_sufficient(self, ingredient: Ingredient, amount: Decimal) -> None:
        if self._allow_negative_stock:
            return
        available = to_stock(ingredient.current_stock)
        if available < amount:
            raise InsufficientStockError(
                ingredient.name,
                available,
                amount,
                ingredient.unit.value,
            )

    # =========================================================================
    # ADMIN MUTATIONS
    # =========================================================================

    async def restock(
        self,
        ingredient_id: int,
        quantity: Union[Decimal, str, float],
        performed_by: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> StockMutationResult:
        """
        Add delivered stock to an ingredient.

        Raises:
            InvalidQuantityError: If quantity is not positive
            IngredientNotFoundError: If the ingredient does not exist
        """
        quantity = to_stock(quantity)
        if quantity <= 0:
            raise InvalidQuantityError("Restock quantity must be greater than 0")

        def _restock(ingredient: Ingredient) -> Decimal:
            ingredient.last_restocked_at = datetime.now(timezone.utc)
            return quantity

        return await self._apply_single(
            ingredient_id,
            StockOperation.MANUAL_RESTOCK,
            _restock,
            performed_by=performed_by,
            notes=notes,
        )

    async def adjust(
        self,
        ingredient_id: int,
        counted_stock: Union[Decimal, str, float],
        performed_by: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> StockMutationResult:
        """
        Set an ingredient to a physically counted level.

        The history records the signed difference. A downward adjustment
        that leaves the ingredient at or below its minimum raises a
        low-stock alert.

        Raises:
            InvalidQuantityError: If the counted level is negative
            IngredientNotFoundError: If the ingredient does not exist
        """
        counted_stock = to_stock(counted_stock)
        if counted_stock < 0:
            raise InvalidQuantityError("Counted stock cannot be negative")

        return await self._apply_single(
            ingredient_id,
            StockOperation.ADJUSTMENT,
            lambda ingredient: counted_stock - to_stock(ingredient.current_stock),
            performed_by=performed_by,
            notes=notes,
        )

    async def _apply_single(
        self,
        ingredient_id: int,
        operation: StockOperation,
        delta_for: Callable[[Ingredient], Decimal],
        performed_by: Optional[int],
        notes: Optional[str],
    ) -> StockMutationResult:
        async with self._session_factory() as session:
            async with session.begin():
                ingredient = await self._ledger.get_ingredient(session, ingredient_id, for_update=True)
                if ingredient is None:
                    raise IngredientNotFoundError(ingredient_id)

                delta = delta_for(ingredient)
                entry = self._ledger.record(
                    session,
                    ingredient,
                    delta,
                    operation,
                    performed_by=performed_by,
                    notes=notes,
                )
                change = self._change_from(
                    ingredient,
                    entry.quantity,
                    entry.previous_stock,
                    entry.new_stock,
                    operation,
                    check_low_stock=entry.quantity < 0,
                )

        result = StockMutationResult(success=True, operation=operation, changes=[change])
        logger.info(
            f"{operation.value}: {change.ingredient_name} "
            f"{change.previous_stock} -> {change.new_stock} (by user {performed_by})"
        )
        await self._after_commit(result)
        return result

    # =========================================================================
    # HELPERS
    # =========================================================================

    @staticmethod
    def _change_from(
        ingredient: Ingredient,
        quantity: Decimal,
        previous_stock: Decimal,
        new_stock: Decimal,
        operation: StockOperation,
        check_low_stock: bool,
    ) -> StockChange:
        return StockChange(
            ingredient_id=ingredient.id,
            ingredient_name=ingredient.name,
            operation=operation,
            quantity=quantity,
            previous_stock=previous_stock,
            new_stock=new_stock,
            low_stock=check_low_stock and new_stock <= to_stock(ingredient.minimum_stock),
        )

    async def _after_commit(self, result: StockMutationResult) -> None:
        """Post-commit hook: alerts run outside the lock window."""
        if self._notifier is None:
            return
        for ingredient_id in result.low_stock_ingredient_ids:
            await self._notifier.notify_low_stock(ingredient_id)
