"""
Утилиты времени.

Назначение:
- единый формат времени (ISO UTC)
- секунды epoch для токенов
"""

from __future__ import annotations

from datetime import UTC, datetime


def utc_now() -> datetime:
    """
    Текущее время в UTC (datetime).
    """
    return datetime.now(UTC)


def to_epoch(dt: datetime) -> int:
    """
    datetime -> секунды epoch (naive считаем UTC).
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return int(dt.timestamp())


def from_epoch(ts: int | float) -> datetime:
    return datetime.fromtimestamp(float(ts), tz=UTC)
