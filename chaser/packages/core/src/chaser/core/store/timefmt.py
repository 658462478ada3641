"""时间列编码 -- 统一存储为 UTC、微秒精度的 ISO-8601 文本

固定宽度保证 SQL 中按字符串比较与按时间比较一致。
"""

from datetime import datetime

from ..models.draft import ensure_utc


def to_db(value: datetime) -> str:
    return ensure_utc(value).isoformat(timespec="microseconds")


def to_db_optional(value: datetime | None) -> str | None:
    return to_db(value) if value is not None else None


def from_db(value: str | None) -> datetime | None:
    if value is None:
        return None
    return ensure_utc(datetime.fromisoformat(value))
