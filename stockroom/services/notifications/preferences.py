"""
Notification preference predicates.

Two independent gates applied to every recipient: is the notification
type enabled, and is the recipient inside their quiet hours. Both are
pure so the boundary rules can be tested without a database.
"""

import logging
from datetime import datetime, time, timezone
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)


def is_type_enabled(types_enabled: Any, notification_type: str) -> bool:
    """
    Check a ``types_enabled`` value for one notification type.

    Accepts a mapping of type -> bool or a list of enabled types. Anything
    missing or unrecognized counts as enabled.
    """
    if types_enabled is None:
        return True
    if isinstance(types_enabled, dict):
        return bool(types_enabled.get(notification_type, True))
    if isinstance(types_enabled, (list, tuple, set)):
        return notification_type in types_enabled
    return True


def is_within_quiet_hours(now_local: time, start: Optional[time], end: Optional[time]) -> bool:
    """
    True when ``now_local`` falls inside the [start, end) window.

    A start later than the end spans midnight: 22:00-07:00 is quiet at
    23:30 and 06:30 but not at 07:00 or 21:59.
    """
    if start is None or end is None:
        return False

    current = now_local.replace(second=0, microsecond=0, tzinfo=None)
    start = start.replace(second=0, microsecond=0, tzinfo=None)
    end = end.replace(second=0, microsecond=0, tzinfo=None)

    if start > end:
        return current >= start or current < end
    return start <= current < end


def local_time(now: datetime, tz_name: str) -> time:
    """
    Wall-clock time of ``now`` in a named zone.

    Naive datetimes are taken as UTC.

    Raises:
        ZoneInfoNotFoundError: If the zone name is unknown
    """
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(ZoneInfo(tz_name)).time()


def in_quiet_hours(
    now: datetime,
    start: Optional[time],
    end: Optional[time],
    tz_name: str,
) -> bool:
    """Quiet-hours check in a user's zone; unknown zones never silence."""
    if start is None or end is None:
        return False
    try:
        return is_within_quiet_hours(local_time(now, tz_name), start, end)
    except (ZoneInfoNotFoundError, ValueError) as e:
        logger.warning(f"Invalid quiet-hours timezone {tz_name!r}, sending anyway: {e}")
        return False
