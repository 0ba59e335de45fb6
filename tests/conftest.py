from datetime import time
from decimal import Decimal
from typing import Optional

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from stockroom.database import Base
from stockroom.models import (
    Ingredient,
    IngredientHistory,
    IngredientUnit,
    Notification,
    NotificationPreference,
    Order,
    OrderItem,
    Product,
    ProductIngredient,
    User,
    UserRole,
)


@pytest_asyncio.fixture
async def session_factory():
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


class Seeder:
    """Writes fixture rows and reads back state for assertions."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def _add(self, obj):
        async with self.session_factory() as session:
            async with session.begin():
                session.add(obj)
            return obj.id

    async def ingredient(
        self,
        name: str,
        stock: str,
        minimum: str = "0",
        unit: IngredientUnit = IngredientUnit.KG,
        is_active: bool = True,
    ) -> int:
        return await self._add(Ingredient(
            name=name,
            unit=unit,
            current_stock=Decimal(stock),
            minimum_stock=Decimal(minimum),
            maximum_stock=Decimal(stock) * 2,
            is_active=is_active,
        ))

    async def product(self, name: str, recipe: dict[int, str], is_available: bool = True) -> int:
        async with self.session_factory() as session:
            async with session.begin():
                product = Product(name=name, is_available=is_available)
                session.add(product)
                await session.flush()
                for ingredient_id, amount in recipe.items():
                    session.add(ProductIngredient(
                        product_id=product.id,
                        ingredient_id=ingredient_id,
                        quantity_required=Decimal(amount),
                    ))
            return product.id

    async def order(self, lines: list[tuple[int, int]]) -> int:
        async with self.session_factory() as session:
            async with session.begin():
                order = Order()
                session.add(order)
                await session.flush()
                for product_id, quantity in lines:
                    session.add(OrderItem(order_id=order.id, product_id=product_id, quantity=quantity))
            return order.id

    async def user(
        self,
        username: str,
        role: UserRole = UserRole.MANAGER,
        is_active: bool = True,
    ) -> int:
        return await self._add(User(username=username, role=role, is_active=is_active))

    async def preference(
        self,
        user_id: int,
        types_enabled=None,
        quiet_start: Optional[time] = None,
        quiet_end: Optional[time] = None,
        timezone: Optional[str] = None,
    ) -> int:
        return await self._add(NotificationPreference(
            user_id=user_id,
            types_enabled=types_enabled,
            quiet_hours_start=quiet_start,
            quiet_hours_end=quiet_end,
            timezone=timezone,
        ))

    async def stock(self, ingredient_id: int) -> Decimal:
        async with self.session_factory() as session:
            ingredient = await session.get(Ingredient, ingredient_id)
            return Decimal(ingredient.current_stock).quantize(Decimal("0.01"))

    async def is_available(self, product_id: int) -> bool:
        async with self.session_factory() as session:
            product = await session.get(Product, product_id)
            return product.is_available

    async def set_available(self, product_id: int, value: bool) -> None:
        async with self.session_factory() as session:
            async with session.begin():
                product = await session.get(Product, product_id)
                product.is_available = value

    async def history(self, ingredient_id: int) -> list[IngredientHistory]:
        async with self.session_factory() as session:
            rows = await session.execute(
                select(IngredientHistory)
                .where(IngredientHistory.ingredient_id == ingredient_id)
                .order_by(IngredientHistory.id)
            )
            return list(rows.scalars().all())

    async def notifications(self, type: Optional[str] = None) -> list[Notification]:
        async with self.session_factory() as session:
            query = select(Notification).order_by(Notification.id)
            if type is not None:
                query = query.where(Notification.type == type)
            return list((await session.execute(query)).scalars().all())


@pytest.fixture
def seed(session_factory) -> Seeder:
    return Seeder(session_factory)


@pytest.fixture
def seeder_for():
    """Build a Seeder over any session factory (e.g. one per event loop)."""
    return Seeder
