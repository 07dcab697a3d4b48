"""时区工具方法：支持根据配置动态获取当前时区。"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from zoneinfo import ZoneInfo

from app.packages.cloudstore.core.config import get_settings


def get_timezone() -> ZoneInfo:
    """返回配置指定的时区信息。"""
    return get_settings().timezone_info


def now() -> datetime:
    """返回当前时区的时间。"""
    return datetime.now(get_timezone())


def from_timestamp(ts: float) -> datetime:
    """把 POSIX 时间戳转换为配置时区下的 ``datetime``。"""
    return datetime.fromtimestamp(ts, get_timezone())


def to_utc(value: Optional[datetime]) -> Optional[datetime]:
    """入库前统一转换为 UTC；无时区对象视为 UTC。"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_local(value: Optional[datetime]) -> Optional[datetime]:
    """将 ``datetime`` 转换为配置时区。

    数据库（尤其是 SQLite）读出的无时区时间按 UTC 解释。
    """
    utc_value = to_utc(value)
    if utc_value is None:
        return None
    return utc_value.astimezone(get_timezone())


def isoformat(value: Optional[datetime]) -> Optional[str]:
    localized = to_local(value)
    return localized.isoformat() if localized else None
