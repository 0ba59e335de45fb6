from stockroom.services.availability import AvailabilitySynchronizer
from stockroom.services.engine import StockMutationEngine


class TestProductStatus:
    async def test_exhausted_ingredient_makes_product_unavailable(self, session_factory, seed):
        flour = await seed.ingredient("Flour", "0.00")
        sugar = await seed.ingredient("Sugar", "100.00")
        cake = await seed.product("Cake", {flour: "0.50", sugar: "0.20"})

        status = await AvailabilitySynchronizer(session_factory).product_status(cake)

        assert status.available is False
        assert status.status == "out_of_stock"
        assert status.missing_ingredients == ["Flour"]

    async def test_low_but_positive_stock_stays_available(self, session_factory, seed):
        flour = await seed.ingredient("Flour", "2.00", minimum="5.00")
        bread = await seed.product("Bread", {flour: "0.50"})

        status = await AvailabilitySynchronizer(session_factory).product_status(bread)

        assert status.available is True
        assert status.status == "low_stock"
        assert [i.name for i in status.limiting_ingredients] == ["Flour"]

    async def test_inactive_ingredients_are_ignored(self, session_factory, seed):
        truffle = await seed.ingredient("Truffle", "0.00", is_active=False)
        pasta = await seed.product("Pasta", {truffle: "0.01"})

        status = await AvailabilitySynchronizer(session_factory).product_status(pasta)

        assert status.available is True
        assert status.status == "available"

    async def test_product_without_recipe_is_available(self, session_factory, seed):
        water = await seed.product("Tap Water", {})
        status = await AvailabilitySynchronizer(session_factory).product_status(water)
        assert status.available is True

    async def test_read_failure_defaults_to_available(self):
        def broken_factory():
            raise RuntimeError("database unavailable")

        status = await AvailabilitySynchronizer(broken_factory).product_status(7)
        assert status.available is True


class TestSync:
    async def test_sync_one_writes_the_flag(self, session_factory, seed):
        flour = await seed.ingredient("Flour", "0.00")
        bread = await seed.product("Bread", {flour: "0.50"})

        assert await AvailabilitySynchronizer(session_factory).sync_one(bread) is False
        assert await seed.is_available(bread) is False

    async def test_sync_is_idempotent(self, session_factory, seed):
        flour = await seed.ingredient("Flour", "0.00")
        bread = await seed.product("Bread", {flour: "0.50"})
        synchronizer = AvailabilitySynchronizer(session_factory)

        first = await synchronizer.sync_all()
        second = await synchronizer.sync_all()

        assert (first.products_checked, first.products_disabled) == (1, 1)
        assert second.products_updated == 0
        assert await seed.is_available(bread) is False

    async def test_batch_only_touches_recently_changed_products(self, session_factory, seed):
        flour = await seed.ingredient("Flour", "1.00")
        cheese = await seed.ingredient("Cheese", "0.00")
        bread = await seed.product("Bread", {flour: "0.50"})
        pizza = await seed.product("Pizza", {cheese: "0.20"})
        engine = StockMutationEngine(session_factory)

        result = await engine.deduct_for_order(await seed.order([(bread, 2)]))
        assert result.success

        report = await AvailabilitySynchronizer(session_factory).sync_batch(since_minutes=5)

        assert report.products_checked == 1
        assert report.products_disabled == 1
        assert [(d.product_id, d.was_available, d.now_available) for d in report.details] == [
            (bread, True, False),
        ]
        # No recent history for cheese, so pizza is left for the next full sync
        assert await seed.is_available(pizza) is True

    async def test_restock_re_enables_product(self, session_factory, seed):
        flour = await seed.ingredient("Flour", "0.00")
        bread = await seed.product("Bread", {flour: "0.50"}, is_available=False)

        await StockMutationEngine(session_factory).restock(flour, "10")
        report = await AvailabilitySynchronizer(session_factory).sync_batch(since_minutes=5)

        assert report.products_enabled == 1
        assert await seed.is_available(bread) is True

    async def test_missing_product_is_skipped(self, session_factory):
        report = await AvailabilitySynchronizer(session_factory)._sync_products([999])
        assert report.products_checked == 1
        assert report.products_updated == 0
