from __future__ import annotations

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

from comanda.core.config import BUSINESS_TIMEZONE


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """SQLite devolve datetimes sem tzinfo; tratamos como UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def business_date(now: datetime | None = None) -> date:
    current = as_utc(now) or utcnow()
    if BUSINESS_TIMEZONE:
        current = current.astimezone(ZoneInfo(BUSINESS_TIMEZONE))
    return current.date()


def business_day_start(now: datetime | None = None) -> datetime:
    """Início do dia operacional corrente, em UTC."""
    current = as_utc(now) or utcnow()
    tz = ZoneInfo(BUSINESS_TIMEZONE) if BUSINESS_TIMEZONE else timezone.utc
    local = current.astimezone(tz)
    start = local.replace(hour=0, minute=0, second=0, microsecond=0)
    return start.astimezone(timezone.utc)
