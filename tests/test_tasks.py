"""
Celery tasks run eagerly with ``.apply()``; no broker is involved.

Each task opens its own event loop, so these tests are synchronous and use
a file-backed SQLite database every loop can reach.
"""

import asyncio
from decimal import Decimal

import pytest

from stockroom import tasks
from stockroom.database import Base, create_worker_session_maker


@pytest.fixture
def worker_db(tmp_path, monkeypatch, seeder_for):
    url = f"sqlite+aiosqlite:///{tmp_path / 'worker.db'}"
    monkeypatch.setattr(tasks, "create_worker_session_maker", lambda: create_worker_session_maker(url))

    def run(job, create_tables=False):
        async def _main():
            engine, session_factory = create_worker_session_maker(url)
            try:
                if create_tables:
                    async with engine.begin() as conn:
                        await conn.run_sync(Base.metadata.create_all)
                return await job(seeder_for(session_factory))
            finally:
                await engine.dispose()

        return asyncio.run(_main())

    async def _nothing(seed):
        return None

    run(_nothing, create_tables=True)
    return run


@pytest.fixture
def bakery_order(worker_db):
    async def _seed(seed):
        flour = await seed.ingredient("Flour", "10.00", minimum="5.00")
        bread = await seed.product("Bread", {flour: "3.00"})
        order_id = await seed.order([(bread, 2)])
        return flour, bread, order_id

    return worker_db(_seed)


def test_deduct_task_returns_json_safe_result(worker_db, bakery_order):
    flour, _, order_id = bakery_order

    payload = tasks.deduct_ingredients_for_order.apply(args=[order_id]).get()

    assert payload["success"] is True
    assert payload["operation"] == "order_consumption"
    assert Decimal(payload["changes"][0]["new_stock"]) == Decimal("4.00")
    assert payload["changes"][0]["low_stock"] is True
    assert "processing_time_seconds" in payload
    assert worker_db(lambda seed: seed.stock(flour)) == Decimal("4.00")


def test_restore_task_gives_stock_back(worker_db, bakery_order):
    flour, _, order_id = bakery_order

    tasks.deduct_ingredients_for_order.apply(args=[order_id]).get()
    payload = tasks.restore_ingredients_for_order.apply(args=[order_id]).get()

    assert payload["success"] is True
    assert payload["operation"] == "order_cancellation"
    assert worker_db(lambda seed: seed.stock(flour)) == Decimal("10.00")


def test_sync_task_disables_exhausted_products(worker_db):
    async def _seed(seed):
        flour = await seed.ingredient("Flour", "1.00")
        bread = await seed.product("Bread", {flour: "1.00"})
        return bread, await seed.order([(bread, 1)])

    bread, order_id = worker_db(_seed)
    tasks.deduct_ingredients_for_order.apply(args=[order_id]).get()

    payload = tasks.sync_product_availability.apply(kwargs={"since_minutes": 5}).get()

    assert payload["products_checked"] == 1
    assert payload["products_disabled"] == 1
    assert payload["details"][0]["product_id"] == bread
    assert worker_db(lambda seed: seed.is_available(bread)) is False


def test_health_check_task():
    assert tasks.health_check.apply().get()["status"] == "healthy"
