"""
SQLAlchemy Database Models

Ingredient inventory tables owned by the engine:
- ingredients (the stock ledger)
- product_ingredients (recipes)
- ingredient_history (append-only audit log of every stock mutation)
- notifications / notification_preferences

Tables owned by other POS subsystems are mapped here only with the
columns the engine reads (products, orders, order_items, users).
"""

import enum
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    Time,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from stockroom.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IngredientUnit(str, enum.Enum):
    """Units of measure accepted for raw ingredients."""
    KG = "kg"
    G = "g"
    L = "l"
    ML = "ml"
    PCS = "pcs"
    PACK = "pack"
    BOX = "box"


class StockOperation(str, enum.Enum):
    """Kinds of stock mutation recorded in the history log."""
    ORDER_CONSUMPTION = "order_consumption"
    ORDER_CANCELLATION = "order_cancellation"
    MANUAL_RESTOCK = "manual_restock"
    ADJUSTMENT = "adjustment"


class UserRole(str, enum.Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    CASHIER = "cashier"
    KITCHEN = "kitchen"
    SERVER = "server"


class OrderStatus(str, enum.Enum):
    """Order status workflow (owned by order management)."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY = "ready"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class NotificationType(str, enum.Enum):
    LOW_STOCK = "low_stock"
    INGREDIENT_OVERRIDE = "ingredient_override"


# =============================================================================
# STOCK LEDGER
# =============================================================================

class Ingredient(Base):
    """
    Raw material with its authoritative stock level.

    current_stock is only ever written by the deduction/restoration engine,
    under a row lock, together with an IngredientHistory record.
    """
    __tablename__ = "ingredients"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(100), nullable=False, unique=True)
    description = Column(Text, nullable=True)
    unit = Column(Enum(IngredientUnit), nullable=False, default=IngredientUnit.PCS)

    # =========================================================================
    # STOCK LEVELS
    # =========================================================================
    current_stock = Column(Numeric(10, 2), nullable=False, default=0)
    minimum_stock = Column(Numeric(10, 2), nullable=False, default=0)
    maximum_stock = Column(Numeric(10, 2), nullable=False, default=0)

    # =========================================================================
    # PURCHASING
    # =========================================================================
    unit_cost = Column(Numeric(10, 2), nullable=True)
    supplier = Column(String(100), nullable=True)

    is_active = Column(Boolean, nullable=False, default=True, index=True)

    # =========================================================================
    # TIMESTAMPS
    # =========================================================================
    last_restocked_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    recipe_entries = relationship("ProductIngredient", back_populates="ingredient")

    def __repr__(self):
        return f"<Ingredient #{self.id} {self.name} {self.current_stock}{self.unit.value if self.unit else ''}>"


class IngredientHistory(Base):
    """
    Append-only audit log of stock mutations.

    quantity is signed: consumption negative, restock/restoration positive,
    and new_stock == previous_stock + quantity for every row.
    """
    __tablename__ = "ingredient_history"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    ingredient_id = Column(
        Integer,
        ForeignKey("ingredients.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    operation = Column(Enum(StockOperation), nullable=False, index=True)
    quantity = Column(Numeric(10, 2), nullable=False)
    previous_stock = Column(Numeric(10, 2), nullable=False)
    new_stock = Column(Numeric(10, 2), nullable=False)

    order_id = Column(Integer, ForeignKey("orders.id", ondelete="SET NULL"), nullable=True, index=True)
    performed_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    ingredient = relationship("Ingredient")

    def __repr__(self):
        return (
            f"<IngredientHistory #{self.id} ingredient={self.ingredient_id} "
            f"{self.operation.value} {self.quantity}>"
        )


# =============================================================================
# RECIPES
# =============================================================================

class ProductIngredient(Base):
    """Recipe entry: amount of an ingredient consumed per one unit of product."""
    __tablename__ = "product_ingredients"
    __table_args__ = (UniqueConstraint("product_id", "ingredient_id", name="uq_product_ingredient"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    ingredient_id = Column(Integer, ForeignKey("ingredients.id", ondelete="CASCADE"), nullable=False, index=True)
    quantity_required = Column(Numeric(10, 2), nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow)

    product = relationship("Product", back_populates="recipe_entries")
    ingredient = relationship("Ingredient", back_populates="recipe_entries")


class Product(Base):
    """Menu product; is_available is derived from ingredient stock."""
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    is_available = Column(Boolean, nullable=False, default=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    recipe_entries = relationship("ProductIngredient", back_populates="product")

    def __repr__(self):
        return f"<Product #{self.id} {self.name} available={self.is_available}>"


# =============================================================================
# ORDERS (owned by order management)
# =============================================================================

class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    order_number = Column(String(50), nullable=True, unique=True)
    status = Column(Enum(OrderStatus), default=OrderStatus.PENDING, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    items = relationship("OrderItem", back_populates="order", order_by="OrderItem.id")

    def __repr__(self):
        return f"<Order #{self.id} - {self.status.value}>"


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    quantity = Column(Integer, nullable=False)

    order = relationship("Order", back_populates="items")


# =============================================================================
# USERS & NOTIFICATIONS
# =============================================================================

class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    username = Column(String(50), nullable=False, unique=True)
    email = Column(String(255), nullable=True)
    role = Column(Enum(UserRole), nullable=False, index=True)
    is_active = Column(Boolean, nullable=False, default=True)

    def __repr__(self):
        return f"<User #{self.id} {self.username} ({self.role.value})>"


class Notification(Base):
    """
    In-app notification shown on the admin dashboard.

    user_id is empty for system-level records such as ingredient overrides
    logged without a known actor.
    """
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True)
    type = Column(String(50), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    is_read = Column(Boolean, nullable=False, default=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self):
        return f"<Notification #{self.id} {self.type} -> user {self.user_id}>"


class NotificationPreference(Base):
    """
    Per-user notification settings.

    types_enabled is either a mapping of type -> bool or a list of enabled
    types. quiet_hours_start/end form a [start, end) window evaluated in
    ``timezone``; a start later than the end wraps past midnight.
    """
    __tablename__ = "notification_preferences"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    types_enabled = Column(JSON, nullable=True)
    quiet_hours_start = Column(Time, nullable=True)
    quiet_hours_end = Column(Time, nullable=True)
    timezone = Column(String(64), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
