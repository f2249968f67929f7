"""Expiry dates in the format the coupon write endpoint accepts (RFC 2822, GMT)."""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone
from email.utils import format_datetime

logger = logging.getLogger(__name__)

DEFAULT_EXPIRY_DAYS = 30
_END_OF_DAY = time(23, 59, 59, tzinfo=timezone.utc)


def format_wire_date(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return format_datetime(value.astimezone(timezone.utc).replace(microsecond=0), usegmt=True)


def to_wire_date(date_string: str | None) -> str | None:
    """Convert ``YYYY-MM-DD`` to end-of-day UTC in RFC 2822 form.

    Returns ``None`` for blank or unparseable input.
    """
    raw = (date_string or "").strip()
    if not raw:
        return None
    try:
        day = date.fromisoformat(raw)
    except ValueError as exc:
        logger.warning("expiry_date_parse_failed", extra={"value": raw, "error": str(exc)})
        return None
    return format_wire_date(datetime.combine(day, _END_OF_DAY))


def default_expiry(now: datetime | None = None) -> str:
    current = now or datetime.now(timezone.utc)
    return format_wire_date(current + timedelta(days=DEFAULT_EXPIRY_DAYS))


def resolve_expiry(date_string: str | None = None, *, now: datetime | None = None) -> str:
    return to_wire_date(date_string) or default_expiry(now)
