"""
Pydantic Schemas for Request/Response Validation

Wire formats of the inventory API. Response models are built straight
from the service result dataclasses and ORM rows (``from_attributes``).
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from stockroom.models import IngredientUnit, StockOperation


# =============================================================================
# REQUEST SCHEMAS
# =============================================================================

class OrderLineInput(BaseModel):
    """Single (product, quantity) line of a candidate order."""
    product_id: int = Field(..., ge=1, examples=[12])
    quantity: int = Field(..., ge=1, le=999, examples=[2])


class StockValidationRequest(BaseModel):
    """Request schema for the advisory ingredient check."""
    items: List[OrderLineInput] = Field(..., min_length=1)

    def as_pairs(self) -> list[tuple[int, int]]:
        return [(item.product_id, item.quantity) for item in self.items]


class RestockRequest(BaseModel):
    quantity: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2, examples=["25.00"])
    performed_by: Optional[int] = Field(None, ge=1)
    notes: Optional[str] = Field(None, max_length=500)


class AdjustmentRequest(BaseModel):
    """Physical count of an ingredient; the ledger records the difference."""
    counted_stock: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2, examples=["7.50"])
    performed_by: Optional[int] = Field(None, ge=1)
    notes: Optional[str] = Field(None, max_length=500)

    @field_validator("notes")
    @classmethod
    def strip_notes(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        return v or None


# =============================================================================
# VALIDATION SCHEMAS
# =============================================================================

class ShortageDetailSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    ingredient_id: int
    ingredient_name: str
    unit: str
    have: Decimal
    need: Decimal
    shortage: Decimal


class StockValidationResponse(BaseModel):
    """Advisory verdict; staff may still place the order."""
    model_config = ConfigDict(from_attributes=True)

    fulfillable: bool
    missing: List[ShortageDetailSchema]
    max_portions: Optional[int] = None
    can_make_partial: bool = False


class OverrideRequest(BaseModel):
    """Order placed despite a shortage warning ("place anyway")."""
    order_id: int = Field(..., ge=1)
    user_id: Optional[int] = Field(None, ge=1)
    missing: List[ShortageDetailSchema] = Field(..., min_length=1)


class OverrideResponse(BaseModel):
    success: bool
    logged: int


# =============================================================================
# STOCK MUTATION SCHEMAS
# =============================================================================

class StockChangeSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    ingredient_id: int
    ingredient_name: str
    operation: StockOperation
    quantity: Decimal
    previous_stock: Decimal
    new_stock: Decimal
    low_stock: bool


class StockMutationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    success: bool
    operation: StockOperation
    order_id: Optional[int] = None
    changes: List[StockChangeSchema]
    error_message: Optional[str] = None
    error_code: Optional[str] = None


# =============================================================================
# LEDGER SCHEMAS
# =============================================================================

class IngredientResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    unit: IngredientUnit
    current_stock: Decimal
    minimum_stock: Decimal
    maximum_stock: Decimal
    unit_cost: Optional[Decimal] = None
    supplier: Optional[str] = None
    is_active: bool
    last_restocked_at: Optional[datetime] = None


class LowStockListResponse(BaseModel):
    total: int
    ingredients: List[IngredientResponse]


class HistoryEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    ingredient_id: int
    operation: StockOperation
    quantity: Decimal
    previous_stock: Decimal
    new_stock: Decimal
    order_id: Optional[int] = None
    performed_by: Optional[int] = None
    notes: Optional[str] = None
    created_at: datetime


class ReconciliationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    ingredient_id: int
    live_stock: Decimal
    replayed_stock: Optional[Decimal] = None
    records: int
    consistent: bool
    problems: List[str]


# =============================================================================
# AVAILABILITY SCHEMAS
# =============================================================================

class LimitingIngredientSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    name: str
    current_stock: Decimal
    minimum_stock: Decimal


class ProductStatusResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    product_id: int
    available: bool
    status: str
    missing_ingredients: List[str]
    limiting_ingredients: List[LimitingIngredientSchema]


class SyncDetailSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    product_id: int
    product_name: str
    was_available: bool
    now_available: bool


class SyncReportResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    products_checked: int
    products_updated: int
    products_disabled: int
    products_enabled: int
    details: List[SyncDetailSchema]


# =============================================================================
# SYSTEM SCHEMAS
# =============================================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    detail: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    database: str
    redis: str
    timestamp: datetime
