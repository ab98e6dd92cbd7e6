"""
业务时间工具

数据库统一存UTC；"今天"按业务时区（默认吉隆坡）的自然日计算。
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from wonderstars.core.config import settings


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def business_tz() -> ZoneInfo:
    return ZoneInfo(settings.business_timezone)


def ensure_aware(value: Optional[datetime]) -> Optional[datetime]:
    """没有时区的时间按UTC处理（SQLite读回来的时间不带时区）"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def business_today(now: Optional[datetime] = None) -> date:
    now = ensure_aware(now) or utcnow()
    return now.astimezone(business_tz()).date()


def end_of_business_day(day: date) -> datetime:
    """该自然日结束时刻（次日0点，业务时区），以UTC返回"""
    midnight = datetime.combine(day + timedelta(days=1), time.min, tzinfo=business_tz())
    return midnight.astimezone(timezone.utc)
