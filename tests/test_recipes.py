from decimal import Decimal

from stockroom.services.ledger import replay, to_stock
from stockroom.services.recipes import RecipeResolver


class TestToStock:
    def test_rounds_half_up_to_two_places(self):
        assert to_stock("0.125") == Decimal("0.13")
        assert to_stock(Decimal("2")) == Decimal("2.00")

    def test_accepts_floats_without_binary_noise(self):
        assert to_stock(0.1) + to_stock(0.2) == Decimal("0.30")


class TestRecipeResolver:
    async def test_requirements_scale_with_quantity(self, session_factory, seed):
        flour = await seed.ingredient("Flour", "10")
        yeast = await seed.ingredient("Yeast", "1")
        bread = await seed.product("Bread", {flour: "0.50", yeast: "0.01"})

        async with session_factory() as session:
            requirements = await RecipeResolver().resolve_requirements(session, bread, 3)

        assert [(r.ingredient_id, r.amount_required) for r in requirements] == [
            (flour, Decimal("1.50")),
            (yeast, Decimal("0.03")),
        ]

    async def test_product_without_recipe_is_unconstrained(self, session_factory, seed):
        water = await seed.product("Tap Water", {})

        async with session_factory() as session:
            assert await RecipeResolver().resolve_requirements(session, water, 5) == []

    async def test_order_totals_are_merged_per_ingredient_and_sorted(self, session_factory, seed):
        flour = await seed.ingredient("Flour", "10")
        cheese = await seed.ingredient("Cheese", "5")
        bread = await seed.product("Bread", {flour: "0.50"})
        pizza = await seed.product("Pizza", {cheese: "0.20", flour: "0.25"})

        async with session_factory() as session:
            totals = await RecipeResolver().resolve_order(session, [(pizza, 2), (bread, 1)])

        assert list(totals) == sorted(totals)
        assert totals == {flour: Decimal("1.00"), cheese: Decimal("0.40")}

    async def test_order_lines_read_persisted_items(self, session_factory, seed):
        flour = await seed.ingredient("Flour", "10")
        bread = await seed.product("Bread", {flour: "0.50"})
        order_id = await seed.order([(bread, 2)])

        async with session_factory() as session:
            assert await RecipeResolver().order_lines(session, order_id) == [(bread, 2)]


def test_replay_is_deterministic():
    class Record:
        def __init__(self, quantity):
            self.quantity = Decimal(quantity)

    records = [Record("-1.50"), Record("3.00"), Record("-0.25")]
    assert replay(records, "10") == Decimal("11.25")
    assert replay(records, "10") == replay(records, Decimal("10.00"))
