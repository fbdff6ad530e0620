"""
Базовые интерфейсы уведомлений.

Назначение:
- Единый контракт для каналов (email / лог)
- Переключение провайдера через NOTIFY_PROVIDER
- Fire-and-forget: ошибки отправки не влияют на статус задачи
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol


@dataclass
class NotifyResult:
    ok: bool
    provider: str
    message_id: str | None = None
    error: str | None = None
    meta: dict[str, Any] | None = None


class Notifier(Protocol):
    def notify_success(self, address: str | None, job_name: str) -> NotifyResult: ...

    def notify_failure(self, address: str | None, job_name: str, reason: str) -> NotifyResult: ...
