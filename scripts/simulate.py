"""
Concurrency Simulation Script

Seeds a small menu, then fires many order deductions at the same
ingredients concurrently to exercise row locking. Finishes with a ledger
reconciliation of every touched ingredient.
Run from project root: python scripts/simulate.py --orders 50
"""

import argparse
import asyncio
import os
import random
import sys
import time
from datetime import datetime
from decimal import Decimal
from typing import Any

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
# Windows event loop fix
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

from stockroom.core.config import setup_logging  # noqa: E402
from stockroom.database import async_session_maker, engine, init_db  # noqa: E402
from stockroom.models import (  # noqa: E402
    Ingredient,
    IngredientUnit,
    Order,
    OrderItem,
    Product,
    ProductIngredient,
)
from stockroom.services import get_inventory_engine, get_stock_ledger  # noqa: E402

# name -> (unit, stock, minimum)
INGREDIENTS = {
    "Flour": (IngredientUnit.KG, "20.00", "5.00"),
    "Tomato Sauce": (IngredientUnit.L, "8.00", "2.00"),
    "Mozzarella": (IngredientUnit.KG, "6.00", "1.50"),
    "Espresso Beans": (IngredientUnit.KG, "3.00", "0.50"),
    "Milk": (IngredientUnit.L, "10.00", "3.00"),
}

# product -> {ingredient: amount per unit}
RECIPES = {
    "Pizza Margherita": {"Flour": "0.25", "Tomato Sauce": "0.10", "Mozzarella": "0.15"},
    "Garlic Bread": {"Flour": "0.15"},
    "Cappuccino": {"Espresso Beans": "0.02", "Milk": "0.15"},
    "Latte": {"Espresso Beans": "0.02", "Milk": "0.25"},
}


async def seed(run_tag: str) -> tuple[list[int], list[int]]:
    """Create the sample ingredients and products; returns their ids."""
    async with async_session_maker() as session:
        async with session.begin():
            ingredients = {}
            for name, (unit, stock, minimum) in INGREDIENTS.items():
                ingredient = Ingredient(
                    name=f"{name} [{run_tag}]",
                    unit=unit,
                    current_stock=Decimal(stock),
                    minimum_stock=Decimal(minimum),
                    maximum_stock=Decimal(stock) * 2,
                )
                session.add(ingredient)
                ingredients[name] = ingredient
            await session.flush()

            products = []
            for product_name, recipe in RECIPES.items():
                product = Product(name=f"{product_name} [{run_tag}]")
                session.add(product)
                await session.flush()
                for ingredient_name, amount in recipe.items():
                    session.add(ProductIngredient(
                        product_id=product.id,
                        ingredient_id=ingredients[ingredient_name].id,
                        quantity_required=Decimal(amount),
                    ))
                products.append(product.id)

        return [i.id for i in ingredients.values()], products


async def create_order(product_ids: list[int], order_num: int, run_tag: str) -> int:
    async with async_session_maker() as session:
        async with session.begin():
            order = Order(order_number=f"SIM-{run_tag}-{order_num:04d}")
            session.add(order)
            await session.flush()
            for product_id in random.sample(product_ids, k=random.randint(1, len(product_ids))):
                session.add(OrderItem(
                    order_id=order.id,
                    product_id=product_id,
                    quantity=random.randint(1, 3),
                ))
            return order.id


async def deduct(order_id: int) -> dict[str, Any]:
    start_time = time.time()
    result = await get_inventory_engine().deduct_for_order(order_id)
    return {
        "order_id": order_id,
        "success": result.success,
        "changes": len(result.changes),
        "error": result.error_code,
        "time": round(time.time() - start_time, 3),
    }


async def run_simulation(total_orders: int, cancel_ratio: float) -> bool:
    run_tag = datetime.now().strftime("%H%M%S")

    print("=" * 60)
    print("🧪 INVENTORY CONCURRENCY SIMULATION")
    print("=" * 60)
    print(f"⏰ Started: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print(f"📦 Orders: {total_orders}")
    print(f"↩️  Cancel ratio: {cancel_ratio:.0%}")
    print("=" * 60)

    await init_db()
    ingredient_ids, product_ids = await seed(run_tag)
    order_ids = [await create_order(product_ids, n, run_tag) for n in range(1, total_orders + 1)]

    start_time = time.time()
    results = await asyncio.gather(*(deduct(order_id) for order_id in order_ids))
    elapsed = round(time.time() - start_time, 3)

    succeeded = [r for r in results if r["success"]]
    print(f"\n🚀 Deductions: {len(succeeded)}/{len(results)} succeeded in {elapsed}s")
    for failed in (r for r in results if not r["success"]):
        print(f"   ❌ Order #{failed['order_id']}: {failed['error']}")

    cancelled = random.sample(order_ids, k=int(len(order_ids) * cancel_ratio))
    inventory = get_inventory_engine()
    restored = await asyncio.gather(*(inventory.restore_for_order(o) for o in cancelled))
    print(f"↩️  Restorations: {sum(r.success for r in restored)}/{len(cancelled)} succeeded")

    print("\n📋 LEDGER RECONCILIATION:")
    print("-" * 60)
    ledger = get_stock_ledger()
    consistent = True
    async with async_session_maker() as session:
        for ingredient_id in ingredient_ids:
            report = await ledger.reconcile(session, ingredient_id)
            ingredient = await ledger.get_ingredient(session, ingredient_id)
            mark = "✅" if report.consistent else "❌"
            print(
                f"   {mark} {ingredient.name}: live {report.live_stock}, "
                f"replayed {report.replayed_stock}, {report.records} record(s)"
            )
            for problem in report.problems:
                print(f"      - {problem}")
            consistent = consistent and report.consistent

    print("\n" + "=" * 60)
    print("✅ SIMULATION COMPLETE" if consistent else "❌ LEDGER DRIFT DETECTED")
    print("=" * 60)

    await engine.dispose()
    return consistent


def main() -> None:
    parser = argparse.ArgumentParser(description="Concurrent ingredient deduction simulation")
    parser.add_argument("--orders", type=int, default=50, help="Number of orders to deduct")
    parser.add_argument("--cancel-ratio", type=float, default=0.2, help="Share of orders to cancel afterwards")
    args = parser.parse_args()

    setup_logging()
    ok = asyncio.run(run_simulation(args.orders, args.cancel_ratio))
    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
