"""
Ledger Verification Script

Replays the stock history of every ingredient and compares it with the
live stock level.
Run from project root: python scripts/verify.py
"""

import asyncio
import os
import sys
from datetime import datetime

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import select  # noqa: E402

from stockroom.database import async_session_maker, engine  # noqa: E402
from stockroom.models import Ingredient  # noqa: E402
from stockroom.services.ledger import StockLedger  # noqa: E402


async def verify_ledger() -> bool:
    """Reconcile every ingredient and print a report."""

    print("=" * 60)
    print("🔍 LEDGER VERIFICATION REPORT")
    print("=" * 60)
    print(f"⏰ Timestamp: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print("=" * 60)

    ledger = StockLedger()
    drifted = 0
    try:
        async with async_session_maker() as session:
            ingredients = (await session.execute(select(Ingredient).order_by(Ingredient.id))).scalars().all()
            print(f"\n📊 Ingredients: {len(ingredients)}")

            for ingredient in ingredients:
                report = await ledger.reconcile(session, ingredient.id)
                if report.consistent:
                    continue
                drifted += 1
                print(f"\n⚠️ {ingredient.name} (#{ingredient.id}): live {report.live_stock}, "
                      f"replayed {report.replayed_stock}")
                for problem in report.problems:
                    print(f"   - {problem}")

            low = await ledger.list_low_stock(session)
            print(f"\n📉 LOW STOCK ({len(low)}):")
            for ingredient in low:
                print(f"   {ingredient.name}: {ingredient.current_stock}{ingredient.unit.value} "
                      f"(minimum: {ingredient.minimum_stock}{ingredient.unit.value})")
    except Exception as e:
        print(f"\n❌ Could not read the ledger: {e}")
        return False
    finally:
        await engine.dispose()

    print("\n" + "=" * 60)
    if drifted:
        print(f"❌ {drifted} INGREDIENT(S) OUT OF SYNC")
    else:
        print("✅ VERIFICATION COMPLETE: history matches live stock")
    print("=" * 60)

    return drifted == 0


if __name__ == "__main__":
    sys.exit(0 if asyncio.run(verify_ledger()) else 1)
