"""
Worker Transcode.

Алгоритм:
- читаем из Redis Stream q:video-processing (consumer group)
- разбираем ProcessingEvent (битый контракт -> ack и drop с логом)
- передаём событие в JobDispatcher (ограниченный пул, dedupe по job_id)
- пул переполнен -> повторная постановка с фиксированным backoff, не более 2 раз
- исходное сообщение подтверждается, когда его судьба решена
- неподтверждённые сообщения из PEL перехватываются при старте и в простое
"""

from __future__ import annotations

import time
from contextlib import suppress

from vod_pipeline.common.config import get_settings
from vod_pipeline.common.errors import ValidationError
from vod_pipeline.common.logging import get_project_logger, setup_logging
from vod_pipeline.common.metrics import QUEUE_TASKS_TOTAL
from vod_pipeline.queue.dispatcher import G_VIDEO_PROCESSING, Q_VIDEO_PROCESSING
from vod_pipeline.queue.retry import requeue_with_backoff
from vod_pipeline.queue.streams import (
    StreamMessage,
    ack_task,
    claim_stale,
    consumer_name,
    ensure_group,
    read_task,
)
from vod_pipeline.queue.tasks import ProcessingEvent
from vod_pipeline.services.job_dispatcher import JobDispatcher, get_job_dispatcher
from vod_pipeline.services.readiness_service import enforce_startup_readiness

log = get_project_logger()
SERVICE = "worker-transcode"


def handle_message(msg: StreamMessage, dispatcher: JobDispatcher) -> bool:
    """
    Обработка одного сообщения стрима. True, если сообщение можно подтверждать.
    """
    settings = get_settings()
    task = msg.payload
    try:
        event = ProcessingEvent.from_payload(task)
        dispatcher.receive(event)
        QUEUE_TASKS_TOTAL.labels(service=SERVICE, queue=Q_VIDEO_PROCESSING, result="accepted").inc()
        return True

    except ValidationError as e:
        log.error(
            "worker_transcode_bad_event",
            extra={"payload": {"err": e.message, "details": e.details, "task": task}},
        )
        QUEUE_TASKS_TOTAL.labels(service=SERVICE, queue=Q_VIDEO_PROCESSING, result="invalid").inc()
        return True

    except Exception as e:
        log.error(
            "worker_transcode_error",
            extra={"payload": {"err": str(e)[:200], "job_id": task.get("job_id")}},
        )
        QUEUE_TASKS_TOTAL.labels(service=SERVICE, queue=Q_VIDEO_PROCESSING, result="error").inc()
        try:
            requeue_with_backoff(
                queue_name=Q_VIDEO_PROCESSING,
                task_payload=task,
                max_retries=settings.transport_max_retries,
                backoff_sec=settings.transport_retry_backoff_sec,
                service=SERVICE,
            )
        except Exception as requeue_err:
            # сообщение остаётся в PEL группы
            log.error(
                "worker_transcode_requeue_failed",
                extra={"payload": {"err": str(requeue_err)[:200], "job_id": task.get("job_id")}},
            )
            return False
        return True


def _handle_and_ack(msg: StreamMessage, dispatcher: JobDispatcher) -> None:
    should_ack = False
    try:
        should_ack = handle_message(msg, dispatcher)
    finally:
        if should_ack:
            with suppress(Exception):
                ack_task(
                    stream=Q_VIDEO_PROCESSING,
                    group=G_VIDEO_PROCESSING,
                    message_id=msg.message_id,
                )


def reclaim_pending(consumer: str, dispatcher: JobDispatcher) -> int:
    """
    Повторно обрабатывает зависшие в PEL сообщения. Возвращает их число.
    """
    idle_ms = int(get_settings().queue_reclaim_idle_ms or 0)
    if idle_ms <= 0:
        return 0
    stale = claim_stale(
        stream=Q_VIDEO_PROCESSING,
        group=G_VIDEO_PROCESSING,
        consumer=consumer,
        min_idle_ms=idle_ms,
    )
    for msg in stale:
        _handle_and_ack(msg, dispatcher)
    return len(stale)


def run_loop() -> None:
    settings = get_settings()
    consumer = consumer_name(SERVICE)
    dispatcher = get_job_dispatcher()
    ensure_group(Q_VIDEO_PROCESSING, G_VIDEO_PROCESSING)

    log.info(
        "worker_transcode_started",
        extra={"payload": {"queue": Q_VIDEO_PROCESSING, "consumer": consumer}},
    )
    reclaim_pending(consumer, dispatcher)

    while True:
        msg = read_task(
            stream=Q_VIDEO_PROCESSING,
            group=G_VIDEO_PROCESSING,
            consumer=consumer,
            block_ms=settings.queue_block_ms,
        )
        if not msg:
            # простой: подбираем то, что осталось в PEL
            reclaim_pending(consumer, dispatcher)
            continue
        _handle_and_ack(msg, dispatcher)


def main() -> None:
    setup_logging()
    enforce_startup_readiness(service_name=SERVICE)
    while True:
        try:
            run_loop()
        except Exception as e:
            log.error("worker_transcode_fatal", extra={"payload": {"err": str(e)[:200]}})
            time.sleep(2)


if __name__ == "__main__":
    main()
