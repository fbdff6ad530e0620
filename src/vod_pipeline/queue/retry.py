"""
Retry утилиты для транспорта событий.

Назначение:
- перекидывать событие обратно в стрим с ограниченным числом повторов
- фиксированный backoff (sleep) перед повторной постановкой
- исчерпание повторов: терминальный drop с логом и метрикой

Важно:
- это синхронная реализация (подходит для наших воркеров)
"""

from __future__ import annotations

import time
from typing import Any

from vod_pipeline.common.logging import get_project_logger
from vod_pipeline.common.metrics import QUEUE_TASKS_TOTAL

from .streams import enqueue

log = get_project_logger()


def requeue_with_backoff(
    *,
    queue_name: str,
    task_payload: dict[str, Any],
    max_retries: int = 2,
    backoff_sec: float = 5.0,
    service: str = "worker-transcode",
) -> bool:
    """
    Повторно поставить событие в очередь, увеличивая attempts.

    Возвращает:
    - True: событие поставлено обратно
    - False: повторы исчерпаны, событие отброшено
    """
    attempts = int(task_payload.get("attempts", 0) or 0) + 1
    task_payload["attempts"] = attempts

    if attempts > max_retries:
        QUEUE_TASKS_TOTAL.labels(service=service, queue=queue_name, result="dropped").inc()
        log.error(
            "task_dropped_retries_exhausted",
            extra={
                "payload": {
                    "queue": queue_name,
                    "job_id": task_payload.get("job_id"),
                    "event_id": task_payload.get("event_id"),
                    "attempts": attempts,
                    "max_retries": max_retries,
                }
            },
        )
        return False

    if backoff_sec and backoff_sec > 0:
        time.sleep(backoff_sec)

    enqueue(queue_name, task_payload)
    QUEUE_TASKS_TOTAL.labels(service=service, queue=queue_name, result="retry").inc()
    log.warning(
        "task_requeued",
        extra={
            "payload": {
                "queue": queue_name,
                "job_id": task_payload.get("job_id"),
                "attempts": attempts,
                "max_retries": max_retries,
                "backoff_sec": backoff_sec,
            }
        },
    )
    return True
