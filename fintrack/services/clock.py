import logging
from datetime import date, datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)


def _load_zone(name: Optional[str]) -> Optional[ZoneInfo]:
    if not name or not isinstance(name, str) or not name.strip():
        return None
    try:
        return ZoneInfo(name.strip())
    except (ZoneInfoNotFoundError, ValueError, OSError):
        logger.debug("Ignoring unknown timezone %r", name)
        return None


def is_valid_timezone(name: Optional[str]) -> bool:
    return _load_zone(name) is not None


def resolve_effective_date(
    user_timezone: Optional[str],
    request_timezone: Optional[str],
    default_timezone: Optional[str] = "UTC",
    now: Optional[datetime] = None,
) -> date:
    """
    Today's calendar date for defaulting a transaction date.

    Timezone priority: the user's stored preference, then the timezone sent
    with the request (X-Timezone), then the configured default. Unknown or
    empty identifiers fall through to the next level and UTC is used when
    nothing resolves, so this never raises for string input.

    ``now`` is the instant to observe; it defaults to the current UTC time
    and naive values are read as UTC.
    """
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    for candidate in (user_timezone, request_timezone, default_timezone):
        zone = _load_zone(candidate)
        if zone is not None:
            return now.astimezone(zone).date()

    return now.astimezone(timezone.utc).date()
