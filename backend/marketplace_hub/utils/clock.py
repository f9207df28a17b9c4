from __future__ import annotations
from datetime import datetime, timezone
from typing import Optional

# Hub 接口使用的时间格式（purchaseFrom / purchaseTo / updatedDate）
HUB_TIME_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite 读回来的是 naive 时间；统一按 UTC 处理后再比较。"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def hub_timestamp(value: Optional[datetime] = None) -> str:
    return (ensure_utc(value) or now_utc()).strftime(HUB_TIME_FORMAT)


def parse_hub_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Hub 时间字符串 → aware datetime；兼容带毫秒/时区偏移的 ISO8601，解析不了返回 None。"""
    if not value:
        return None
    try:
        return ensure_utc(datetime.strptime(value, HUB_TIME_FORMAT))
    except ValueError:
        pass
    try:
        return ensure_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
    except ValueError:
        return None
