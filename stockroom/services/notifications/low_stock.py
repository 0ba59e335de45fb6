"""
Low-Stock Notifier

Fans a low-stock alert out to every active user whose role is entitled to
inventory alerts, filtered per user by notification preferences and quiet
hours. Each recipient is processed and committed independently: a failed
lookup or insert for one user never stops the others.

Missed alerts are worse than duplicate ones, so any preference lookup
error resolves to "send". The notifier never raises.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from stockroom.core.config import get_settings
from stockroom.models import (
    Ingredient,
    Notification,
    NotificationPreference,
    NotificationType,
    User,
    UserRole,
)
from stockroom.services.ledger import to_stock
from stockroom.services.notifications.preferences import in_quiet_hours, is_type_enabled
from stockroom.services.results import NotificationFanoutResult

logger = logging.getLogger(__name__)

LOW_STOCK_TITLE = "Low Stock Alert"


@dataclass(frozen=True)
class _PreferenceSnapshot:
    types_enabled: object
    quiet_hours_start: object
    quiet_hours_end: object
    timezone: Optional[str]


class LowStockNotifier:
    """Creates in-app low-stock notifications for inventory staff."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        alert_roles: Optional[Iterable[str]] = None,
        default_timezone: Optional[str] = None,
    ) -> None:
        settings = get_settings()
        self._session_factory = session_factory
        self._roles = self._parse_roles(
            alert_roles if alert_roles is not None else settings.inventory_alert_roles_list
        )
        self._default_timezone = default_timezone or settings.notification_default_timezone

    @staticmethod
    def _parse_roles(roles: Iterable[str]) -> list[UserRole]:
        parsed = []
        for role in roles:
            try:
                parsed.append(UserRole(str(role).strip().lower()))
            except ValueError:
                logger.warning(f"Ignoring unknown inventory alert role: {role!r}")
        return parsed

    async def notify_low_stock(
        self,
        ingredient_id: int,
        now: Optional[datetime] = None,
    ) -> NotificationFanoutResult:
        """
        Alert eligible staff that an ingredient is at or below its minimum.

        Args:
            ingredient_id: Ingredient that crossed its threshold
            now: Evaluation instant for quiet hours (defaults to current UTC)

        Returns:
            NotificationFanoutResult with per-outcome counts
        """
        now = now or datetime.now(timezone.utc)
        result = NotificationFanoutResult(ingredient_id=ingredient_id)

        try:
            async with self._session_factory() as session:
                ingredient = await session.get(Ingredient, ingredient_id)
                if ingredient is None:
                    logger.warning(f"Low-stock alert skipped: ingredient #{ingredient_id} not found")
                    return result

                message = (
                    f"Low stock alert: {ingredient.name} is at "
                    f"{to_stock(ingredient.current_stock)}{ingredient.unit.value} "
                    f"(minimum: {to_stock(ingredient.minimum_stock)}{ingredient.unit.value})"
                )
                recipients = await self._eligible_users(session)
                result.candidates = len(recipients)

                for user_id, username in recipients:
                    await self._notify_user(session, user_id, username, message, now, result)
        except Exception as e:
            logger.exception(f"Low-stock fan-out aborted for ingredient #{ingredient_id}: {e}")

        logger.info(
            f"Low-stock alert for ingredient #{ingredient_id}: "
            f"{result.sent}/{result.candidates} sent, "
            f"{result.suppressed_disabled} disabled, "
            f"{result.suppressed_quiet_hours} quiet hours, "
            f"{result.failed} failed"
        )
        return result

    async def _eligible_users(self, session: AsyncSession) -> list[tuple[int, str]]:
        if not self._roles:
            return []
        rows = await session.execute(
            select(User.id, User.username)
            .where(User.role.in_(self._roles), User.is_active.is_(True))
            .order_by(User.id)
        )
        # Plain tuples survive the per-user rollbacks below
        return [(user_id, username) for user_id, username in rows.all()]

    async def _preference_for(self, session: AsyncSession, user_id: int) -> Optional[_PreferenceSnapshot]:
        try:
            preference = await session.scalar(
                select(NotificationPreference).where(NotificationPreference.user_id == user_id)
            )
        except Exception as e:
            logger.warning(f"Preference lookup failed for user #{user_id}, sending anyway: {e}")
            await session.rollback()
            return None

        if preference is None:
            return None
        return _PreferenceSnapshot(
            types_enabled=preference.types_enabled,
            quiet_hours_start=preference.quiet_hours_start,
            quiet_hours_end=preference.quiet_hours_end,
            timezone=preference.timezone,
        )

    async def _notify_user(
        self,
        session: AsyncSession,
        user_id: int,
        username: str,
        message: str,
        now: datetime,
        result: NotificationFanoutResult,
    ) -> None:
        preference = await self._preference_for(session, user_id)

        if preference is not None:
            if not is_type_enabled(preference.types_enabled, NotificationType.LOW_STOCK.value):
                result.suppressed_disabled += 1
                logger.debug(f"Low-stock alert disabled by {username}")
                return
            if in_quiet_hours(
                now,
                preference.quiet_hours_start,
                preference.quiet_hours_end,
                preference.timezone or self._default_timezone,
            ):
                result.suppressed_quiet_hours += 1
                logger.debug(f"Low-stock alert held for {username} (quiet hours)")
                return

        try:
            session.add(Notification(
                user_id=user_id,
                type=NotificationType.LOW_STOCK.value,
                title=LOW_STOCK_TITLE,
                message=message,
            ))
            await session.commit()
            result.sent += 1
        except Exception as e:
            await session.rollback()
            result.failed += 1
            logger.error(f"Failed to create low-stock notification for {username}: {e}")
