"""
Inventory Result Types

Standardized results returned by every inventory operation. Callers in the
order flow inspect ``success`` instead of catching exceptions, so a failed
stock mutation can never unwind an accepted order.
"""

from dataclasses import asdict, dataclass, field
from decimal import Decimal
from typing import Optional

from stockroom.models import StockOperation


@dataclass(frozen=True)
class IngredientRequirement:
    """Amount of one ingredient needed for a product line."""
    ingredient_id: int
    quantity_per_unit: Decimal
    amount_required: Decimal


@dataclass
class ShortageDetail:
    """
    One ingredient that cannot cover the requested quantity.

    Attributes:
        ingredient_name: Display name of the ingredient
        unit: Unit of measure
        have: Current stock
        need: Amount required by the order line
        shortage: need - have
    """
    ingredient_id: int
    ingredient_name: str
    unit: str
    have: Decimal
    need: Decimal
    shortage: Decimal


@dataclass
class StockValidationResult:
    """
    Advisory verdict on whether an order can be fulfilled.

    Attributes:
        fulfillable: True when no ingredient is short
        missing: Shortages found, one per (order line, ingredient)
        max_portions: Best-effort bound on portions that could be made,
            None when no product yields a positive bound
        can_make_partial: True when max_portions is set
    """
    fulfillable: bool
    missing: list[ShortageDetail] = field(default_factory=list)
    max_portions: Optional[int] = None

    @property
    def can_make_partial(self) -> bool:
        return self.max_portions is not None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "fulfillable": self.fulfillable,
            "missing": [asdict(m) for m in self.missing],
            "max_portions": self.max_portions,
            "can_make_partial": self.can_make_partial,
        }


@dataclass
class StockChange:
    """A single committed ledger mutation."""
    ingredient_id: int
    ingredient_name: str
    operation: StockOperation
    quantity: Decimal
    previous_stock: Decimal
    new_stock: Decimal
    low_stock: bool = False


@dataclass
class StockMutationResult:
    """
    Result of a deduction, restoration, restock or adjustment.

    On failure the transaction has been rolled back and ``changes`` is empty.
    """
    success: bool
    operation: StockOperation
    order_id: Optional[int] = None
    changes: list[StockChange] = field(default_factory=list)
    error_message: Optional[str] = None
    error_code: Optional[str] = None

    @property
    def low_stock_ingredient_ids(self) -> list[int]:
        return [c.ingredient_id for c in self.changes if c.low_stock]

    def to_dict(self) -> dict:
        """Convert to a JSON-safe dictionary (Celery task results)."""
        return {
            "success": self.success,
            "operation": self.operation.value,
            "order_id": self.order_id,
            "changes": [
                {
                    "ingredient_id": c.ingredient_id,
                    "ingredient_name": c.ingredient_name,
                    "quantity": str(c.quantity),
                    "previous_stock": str(c.previous_stock),
                    "new_stock": str(c.new_stock),
                    "low_stock": c.low_stock,
                }
                for c in self.changes
            ],
            "error_message": self.error_message,
            "error_code": self.error_code,
        }


@dataclass
class NotificationFanoutResult:
    """Outcome of one low-stock alert fan-out."""
    ingredient_id: int
    candidates: int = 0
    sent: int = 0
    suppressed_disabled: int = 0
    suppressed_quiet_hours: int = 0
    failed: int = 0


@dataclass
class LimitingIngredient:
    name: str
    current_stock: Decimal
    minimum_stock: Decimal


@dataclass
class ProductAvailabilityStatus:
    """
    Ingredient-derived availability of one product.

    status is ``available``, ``low_stock`` (some ingredient at or below its
    minimum but none exhausted) or ``out_of_stock``.
    """
    product_id: int
    available: bool
    status: str = "available"
    missing_ingredients: list[str] = field(default_factory=list)
    limiting_ingredients: list[LimitingIngredient] = field(default_factory=list)


@dataclass
class SyncDetail:
    product_id: int
    product_name: str
    was_available: bool
    now_available: bool


@dataclass
class AvailabilitySyncReport:
    """Counts and before/after detail of one availability sync run."""
    products_checked: int = 0
    products_updated: int = 0
    products_disabled: int = 0
    products_enabled: int = 0
    details: list[SyncDetail] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ReconciliationReport:
    """Comparison of an ingredient's live stock against its replayed history."""
    ingredient_id: int
    live_stock: Decimal
    replayed_stock: Optional[Decimal]
    records: int
    problems: list[str] = field(default_factory=list)

    @property
    def consistent(self) -> bool:
        return not self.problems
