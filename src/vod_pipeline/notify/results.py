"""
Утилиты для результатов уведомлений.
"""

from __future__ import annotations

from .base import NotifyResult


def ok_result(
    provider: str, message_id: str | None = None, meta: dict | None = None
) -> NotifyResult:
    return NotifyResult(ok=True, provider=provider, message_id=message_id, meta=meta)


def fail_result(provider: str, error: str, meta: dict | None = None) -> NotifyResult:
    return NotifyResult(ok=False, provider=provider, error=error, meta=meta)
