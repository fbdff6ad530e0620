"""
Ручная постановка видео-задачи в очередь транскодирования.

Нужна для восстановления после исчерпанных повторов и зависших PROCESSING:
задача берётся из хранилища, событие собирается из её полей.
"""

from __future__ import annotations

import argparse

from vod_pipeline.common.logging import setup_logging
from vod_pipeline.queue.dispatcher import enqueue_processing
from vod_pipeline.queue.tasks import ProcessingEvent
from vod_pipeline.storage.job_store import get_job_store


def _args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Enqueue a video job for transcoding")
    p.add_argument("job_id", help="Video job id")
    p.add_argument("--notify", default=None, help="E-mail для уведомления о результате")
    return p.parse_args()


def main() -> int:
    args = _args()
    setup_logging()

    job = get_job_store().find_by_id(args.job_id)
    if job is None:
        print(f"Job not found: {args.job_id}")
        return 1
    if not job.original_path:
        print(f"Job has no original file: {args.job_id}")
        return 1

    event_id = enqueue_processing(
        ProcessingEvent(
            job_id=job.id,
            original_path=job.original_path,
            file_size_bytes=job.file_size_bytes,
            owner_id=job.owner_id,
            notify_address=args.notify,
        )
    )
    print(f"Enqueued {job.id} (status={job.status.value}) as {event_id}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
