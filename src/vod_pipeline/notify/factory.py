"""
Выбор провайдера уведомлений по NOTIFY_PROVIDER.
"""

from __future__ import annotations

from vod_pipeline.common.config import get_settings

from .base import Notifier
from .email.sender import EmailNotifier
from .log import LogNotifier


def get_notifier() -> Notifier:
    provider = (get_settings().notify_provider or "log").strip().lower()
    if provider == "email":
        return EmailNotifier()
    return LogNotifier()
