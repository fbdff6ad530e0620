"""
Уведомления в лог (dev / отсутствие SMTP).
"""

from __future__ import annotations

from vod_pipeline.common.logging import get_project_logger

from .base import NotifyResult
from .results import ok_result

log = get_project_logger()


class LogNotifier:
    def notify_success(self, address: str | None, job_name: str) -> NotifyResult:
        log.info("notify_success", extra={"payload": {"to": address, "video": job_name}})
        return ok_result("log")

    def notify_failure(self, address: str | None, job_name: str, reason: str) -> NotifyResult:
        log.info(
            "notify_failure",
            extra={"payload": {"to": address, "video": job_name, "reason": reason[:300]}},
        )
        return ok_result("log")
