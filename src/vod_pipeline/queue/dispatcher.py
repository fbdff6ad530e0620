"""
Диспетчер очередей.

Назначение:
- Единые имена очередей и consumer group
- Унифицированная упаковка ProcessingEvent в JSON
- enqueue_processing для коллаборатора загрузки и ручного восстановления
"""

from __future__ import annotations

from datetime import UTC, datetime

from vod_pipeline.common.config import get_settings
from vod_pipeline.common.ids import new_event_id
from vod_pipeline.common.logging import get_project_logger

from .streams import enqueue
from .tasks import ProcessingEvent

log = get_project_logger()

# =============================================================================
# ИМЕНА ОЧЕРЕДЕЙ (Redis Streams)
# =============================================================================
Q_VIDEO_PROCESSING = "q:video-processing"
G_VIDEO_PROCESSING = "g:video-processing"


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


def enqueue_processing(event: ProcessingEvent) -> str:
    """
    Поставить видео на транскодирование.
    QUEUE_MODE=inline: событие сразу уходит в процессный диспетчер.
    """
    if not event.event_id:
        event.event_id = new_event_id("vid")
    payload = event.to_payload()
    payload["timestamp"] = _now_iso()

    if (get_settings().queue_mode or "").strip().lower() == "inline":
        from vod_pipeline.services.job_dispatcher import get_job_dispatcher

        get_job_dispatcher().receive(event)
        log.info(
            "enqueue_processing_inline",
            extra={"payload": {"job_id": event.job_id, "event_id": event.event_id}},
        )
        return event.event_id

    enqueue(Q_VIDEO_PROCESSING, payload)
    log.info(
        "enqueue_processing",
        extra={"payload": {"job_id": event.job_id, "event_id": event.event_id}},
    )
    return event.event_id
