"""Inventory domain exceptions.

Raised inside the engine and caught at the boundaries: order-flow entry
points turn them into failed results, the HTTP layer maps them to 4xx.
"""

from decimal import Decimal


class StockroomError(Exception):
    """Base class for all inventory errors."""

    error_code = "inventory_error"


class IngredientNotFoundError(StockroomError):
    """A requested ingredient does not exist."""

    error_code = "ingredient_not_found"

    def __init__(self, ingredient_id: int) -> None:
        self.ingredient_id = ingredient_id
        super().__init__(f"Ingredient #{ingredient_id} not found")


class InvalidQuantityError(StockroomError):
    """A restock or adjustment quantity is out of range."""

    error_code = "invalid_quantity"


class InsufficientStockError(StockroomError):
    """A deduction would push stock below zero while that is disallowed."""

    error_code = "insufficient_stock"

    def __init__(self, ingredient_name: str, available: Decimal, needed: Decimal, unit: str) -> None:
        self.ingredient_name = ingredient_name
        self.available = available
        self.needed = needed
        self.unit = unit
        super().__init__(
            f"Insufficient stock for '{ingredient_name}': need {needed}{unit}, have {available}{unit}"
        )
