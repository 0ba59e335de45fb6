from datetime import datetime, time, timezone
from decimal import Decimal

import pytest
from sqlalchemy import event, text

from stockroom.models import Notification, NotificationPreference, NotificationType, UserRole
from stockroom.services.engine import StockMutationEngine
from stockroom.services.notifications import LOW_STOCK_TITLE, LowStockNotifier
from stockroom.services.notifications.preferences import (
    in_quiet_hours,
    is_type_enabled,
    is_within_quiet_hours,
)

LOW_STOCK = NotificationType.LOW_STOCK.value

# 12:00 UTC is 19:00 in Asia/Jakarta
NOON_UTC = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class TestQuietHours:
    @pytest.mark.parametrize("now,quiet", [
        (time(23, 30), True),
        (time(6, 30), True),
        (time(22, 0), True),
        (time(7, 0), False),
        (time(21, 59), False),
        (time(12, 0), False),
    ])
    def test_window_wrapping_midnight(self, now, quiet):
        assert is_within_quiet_hours(now, time(22, 0), time(7, 0)) is quiet

    def test_same_day_window_excludes_its_end(self):
        assert is_within_quiet_hours(time(13, 0), time(13, 0), time(14, 0)) is True
        assert is_within_quiet_hours(time(14, 0), time(13, 0), time(14, 0)) is False

    def test_unset_bounds_are_never_quiet(self):
        assert is_within_quiet_hours(time(3, 0), None, time(7, 0)) is False

    def test_evaluated_in_the_users_zone(self):
        assert in_quiet_hours(NOON_UTC, time(18, 0), time(20, 0), "Asia/Jakarta") is True
        assert in_quiet_hours(NOON_UTC, time(18, 0), time(20, 0), "UTC") is False

    def test_unknown_zone_does_not_silence(self):
        assert in_quiet_hours(NOON_UTC, time(0, 0), time(23, 59), "Mars/Olympus_Mons") is False


class TestTypeEnabled:
    def test_mapping_form(self):
        assert is_type_enabled({LOW_STOCK: False}, LOW_STOCK) is False
        assert is_type_enabled({"order_update": False}, LOW_STOCK) is True

    def test_list_form(self):
        assert is_type_enabled([LOW_STOCK, "order_update"], LOW_STOCK) is True
        assert is_type_enabled(["order_update"], LOW_STOCK) is False

    def test_missing_or_malformed_means_enabled(self):
        assert is_type_enabled(None, LOW_STOCK) is True
        assert is_type_enabled("low_stock=false", LOW_STOCK) is True


class TestLowStockNotifier:
    @pytest.fixture
    def notifier(self, session_factory):
        return LowStockNotifier(
            session_factory,
            alert_roles=["admin", "manager"],
            default_timezone="Asia/Jakarta",
        )

    async def test_only_active_alert_roles_receive(self, notifier, seed):
        flour = await seed.ingredient("Flour", "1.50", minimum="5.00")
        admin = await seed.user("ana", UserRole.ADMIN)
        manager = await seed.user("budi", UserRole.MANAGER)
        await seed.user("citra", UserRole.CASHIER)
        await seed.user("dewi", UserRole.MANAGER, is_active=False)

        result = await notifier.notify_low_stock(flour, now=NOON_UTC)

        assert (result.candidates, result.sent) == (2, 2)
        records = await seed.notifications(LOW_STOCK)
        assert [r.user_id for r in records] == [admin, manager]
        assert records[0].title == LOW_STOCK_TITLE
        assert records[0].message == "Low stock alert: Flour is at 1.50kg (minimum: 5.00kg)"
        assert records[0].is_read is False

    async def test_disabled_type_is_suppressed(self, notifier, seed):
        flour = await seed.ingredient("Flour", "1.00", minimum="5.00")
        muted = await seed.user("ana", UserRole.ADMIN)
        listening = await seed.user("budi", UserRole.MANAGER)
        await seed.preference(muted, types_enabled={LOW_STOCK: False})
        await seed.preference(listening, types_enabled=[LOW_STOCK])

        result = await notifier.notify_low_stock(flour, now=NOON_UTC)

        assert result.suppressed_disabled == 1
        assert [r.user_id for r in await seed.notifications(LOW_STOCK)] == [listening]

    async def test_quiet_hours_use_default_zone_when_unset(self, notifier, seed):
        flour = await seed.ingredient("Flour", "1.00", minimum="5.00")
        sleeping = await seed.user("ana", UserRole.ADMIN)
        abroad = await seed.user("budi", UserRole.MANAGER)
        # 19:00 in Jakarta, 12:00 in UTC
        await seed.preference(sleeping, quiet_start=time(18, 0), quiet_end=time(6, 0))
        await seed.preference(abroad, quiet_start=time(18, 0), quiet_end=time(6, 0), timezone="UTC")

        result = await notifier.notify_low_stock(flour, now=NOON_UTC)

        assert result.suppressed_quiet_hours == 1
        assert [r.user_id for r in await seed.notifications(LOW_STOCK)] == [abroad]

    async def test_unknown_ingredient_sends_nothing(self, notifier, seed):
        await seed.user("ana", UserRole.ADMIN)
        result = await notifier.notify_low_stock(12345, now=NOON_UTC)
        assert result.sent == 0
        assert await seed.notifications() == []

    async def test_no_configured_roles_means_no_recipients(self, session_factory, seed):
        flour = await seed.ingredient("Flour", "1.00", minimum="5.00")
        await seed.user("ana", UserRole.ADMIN)
        notifier = LowStockNotifier(session_factory, alert_roles=["sommelier"])

        result = await notifier.notify_low_stock(flour, now=NOON_UTC)

        assert result.candidates == 0

    async def test_unreachable_database_never_raises(self):
        def broken_factory():
            raise RuntimeError("database unavailable")

        notifier = LowStockNotifier(broken_factory, alert_roles=["admin"], default_timezone="UTC")
        result = await notifier.notify_low_stock(1)
        assert result.sent == 0

    async def test_failed_insert_for_one_user_does_not_stop_the_others(self, notifier, seed):
        flour = await seed.ingredient("Flour", "1.00", minimum="5.00")
        first = await seed.user("ana", UserRole.ADMIN)
        broken = await seed.user("budi", UserRole.MANAGER)
        last = await seed.user("citra", UserRole.MANAGER)

        def reject_broken(mapper, connection, target):
            if target.user_id == broken:
                raise RuntimeError("constraint violation")

        event.listen(Notification, "before_insert", reject_broken)
        try:
            result = await notifier.notify_low_stock(flour, now=NOON_UTC)
        finally:
            event.remove(Notification, "before_insert", reject_broken)

        assert (result.candidates, result.sent, result.failed) == (3, 2, 1)
        assert [r.user_id for r in await seed.notifications(LOW_STOCK)] == [first, last]

    async def test_preference_lookup_failure_still_sends(self, notifier, session_factory, seed):
        flour = await seed.ingredient("Flour", "1.00", minimum="5.00")
        admin = await seed.user("ana", UserRole.ADMIN)
        manager = await seed.user("budi", UserRole.MANAGER)
        async with session_factory() as session:
            await session.execute(text("DROP TABLE notification_preferences"))
            await session.commit()

        result = await notifier.notify_low_stock(flour, now=NOON_UTC)

        assert (result.candidates, result.sent) == (2, 2)
        assert [r.user_id for r in await seed.notifications(LOW_STOCK)] == [admin, manager]


def test_only_inventory_notification_types_exist():
    assert {t.value for t in NotificationType} == {"low_stock", "ingredient_override"}
    assert not hasattr(NotificationPreference, "email_enabled")


async def test_bread_order_alerts_manager_and_cancellation_stays_quiet(session_factory, seed):
    """Flour 10kg (min 5), bread uses 3kg; two loaves leave 4kg and alert the manager."""
    flour = await seed.ingredient("Flour", "10.00", minimum="5.00")
    bread = await seed.product("Bread", {flour: "3.00"})
    manager = await seed.user("budi", UserRole.MANAGER)
    await seed.user("citra", UserRole.CASHIER)
    order_id = await seed.order([(bread, 2)])

    notifier = LowStockNotifier(session_factory, alert_roles=["manager"], default_timezone="UTC")
    engine = StockMutationEngine(session_factory, notifier=notifier)

    result = await engine.deduct_for_order(order_id)

    assert result.success is True
    assert await seed.stock(flour) == Decimal("4.00")
    [alert] = await seed.notifications(LOW_STOCK)
    assert alert.user_id == manager
    assert alert.message == "Low stock alert: Flour is at 4.00kg (minimum: 5.00kg)"

    cancelled = await engine.restore_for_order(order_id)

    assert cancelled.success is True
    assert await seed.stock(flour) == Decimal("10.00")
    assert len(await seed.notifications(LOW_STOCK)) == 1
