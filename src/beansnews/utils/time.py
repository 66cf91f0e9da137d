"""时间工具."""

from datetime import UTC, datetime


def utc_now() -> datetime:
    """当前 UTC 时间（naive，与 SQLite 存储一致）."""
    return datetime.now(UTC).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """转换为 naive UTC 时间."""
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)
