"""
Job Dispatcher: ProcessingEvent -> транскодированная видео-задача.

Алгоритм обработки события:
1) claim job_id (Redis SET NX / локальная карта), загрузка задачи под блокировкой
2) READY -> дубликат (только удалить сырой файл, если остался);
   FAILED -> терминальный, пропуск; PROCESSING -> уже в работе / брошен, пропуск
3) PROCESSING сохраняется до начала транскодирования
4) probe -> duration_millis, постер (best effort), транскодирование
5) успех: hls_master + READY, сохранение, уведомление
6) удаление сырого файла (ошибка только логируется)
7) любая ошибка в 3-5: FAILED, сохранение, уведомление; сырой файл остаётся
"""

from __future__ import annotations

import copy
import threading
from concurrent.futures import Future

from vod_pipeline.common.config import get_settings
from vod_pipeline.common.errors import AppError
from vod_pipeline.common.ids import new_uuid
from vod_pipeline.common.logging import get_project_logger
from vod_pipeline.common.metrics import JOB_TRANSITIONS_TOTAL, track_stage_latency
from vod_pipeline.domain.enums import JobStatus
from vod_pipeline.domain.models import Job
from vod_pipeline.notify.base import Notifier
from vod_pipeline.notify.factory import get_notifier
from vod_pipeline.queue.idempotency import claim_job, release_job
from vod_pipeline.queue.tasks import ProcessingEvent
from vod_pipeline.queue.worker_pool import BoundedWorkerPool
from vod_pipeline.storage.gateway import StorageGateway, get_storage_gateway
from vod_pipeline.storage.job_store import JobStore, get_job_store
from vod_pipeline.transcode.engine import TranscodeEngine, thumbnail_offset_millis

log = get_project_logger()

SERVICE = "worker-transcode"
THUMBNAIL_NAME = "thumbnail.jpg"


class Outcome:
    STARTED = "started"
    READY = "ready"
    FAILED = "failed"
    MISSING = "missing"
    DUPLICATE_READY = "duplicate_ready"
    SKIPPED_FAILED = "skipped_failed"
    SKIPPED_PROCESSING = "skipped_processing"
    CLAIMED_ELSEWHERE = "claimed_elsewhere"


def _failure_reason(err: Exception) -> str:
    if isinstance(err, AppError):
        return err.message
    return "Внутренняя ошибка обработки"


class JobDispatcher:
    def __init__(
        self,
        *,
        store: JobStore,
        gateway: StorageGateway,
        engine: TranscodeEngine,
        notifier: Notifier,
        pool: BoundedWorkerPool | None = None,
        instance_id: str | None = None,
    ) -> None:
        self.store = store
        self.gateway = gateway
        self.engine = engine
        self.notifier = notifier
        self.pool = pool
        self.instance_id = instance_id or new_uuid()

    # -------------------------------------------------------------------------
    # Транспорт -> пул
    # -------------------------------------------------------------------------
    def receive(self, event: ProcessingEvent) -> Future | None:
        """
        Только постановка в пул. PoolSaturatedError пробрасывается транспорту.
        """
        if self.pool is None:
            self._process_safely(event)
            return None
        return self.pool.submit(event.job_id, self._process_safely, event)

    def _process_safely(self, event: ProcessingEvent) -> str | None:
        try:
            return self.process(event)
        except Exception as e:
            log.exception(
                "job_dispatch_error",
                extra={"payload": {"job_id": event.job_id, "err": str(e)[:200]}},
            )
            return None

    # -------------------------------------------------------------------------
    # Обработка
    # -------------------------------------------------------------------------
    def process(self, event: ProcessingEvent) -> str:
        claim_token = f"{self.instance_id}:{new_uuid()}"
        if not claim_job(event.job_id, claim_token):
            log.info("job_claimed_elsewhere", extra={"payload": {"job_id": event.job_id}})
            return Outcome.CLAIMED_ELSEWHERE
        try:
            job, outcome = self._start(event)
            if job is None:
                return outcome
            return self._run(job, event)
        finally:
            release_job(event.job_id, claim_token)

    def _start(self, event: ProcessingEvent) -> tuple[Job | None, str]:
        with self.store.locked(event.job_id) as job:
            if job is None:
                log.warning("job_not_found", extra={"payload": {"job_id": event.job_id}})
                return None, Outcome.MISSING

            if job.status == JobStatus.READY:
                log.info("job_duplicate_ready", extra={"payload": {"job_id": job.id}})
                self._delete_raw(job.original_path or event.original_path, job.id)
                return None, Outcome.DUPLICATE_READY

            if job.status == JobStatus.FAILED:
                log.info("job_skipped_failed", extra={"payload": {"job_id": job.id}})
                return None, Outcome.SKIPPED_FAILED

            if job.status == JobStatus.PROCESSING:
                log.warning("job_skipped_processing", extra={"payload": {"job_id": job.id}})
                return None, Outcome.SKIPPED_PROCESSING

            job.move_to(JobStatus.PROCESSING)
            self.store.save(job)

        JOB_TRANSITIONS_TOTAL.labels(status=JobStatus.PROCESSING.value).inc()
        log.info("job_processing", extra={"payload": {"job_id": job.id, "owner_id": job.owner_id}})
        return job, Outcome.STARTED

    def _run(self, job: Job, event: ProcessingEvent) -> str:
        source_key = job.original_path or event.original_path
        try:
            with track_stage_latency(SERVICE, "probe"):
                info = self.engine.inspector.inspect(self.gateway.resolve(source_key))
            job.duration_millis = info.duration_millis
            self.store.save(job)

            with track_stage_latency(SERVICE, "thumbnail"):
                job.thumbnail_key = self._thumbnail(job, source_key)

            with track_stage_latency(SERVICE, "transcode"):
                result = self.engine.transcode(
                    source_key, owner_id=job.owner_id, job_id=job.id, media=info
                )

            ready = copy.deepcopy(job)
            ready.mark_ready(result.master_key)
            self.store.save(ready)
            job = ready
        except Exception as e:
            self._fail(job, event, e)
            return Outcome.FAILED

        JOB_TRANSITIONS_TOTAL.labels(status=JobStatus.READY.value).inc()
        log.info(
            "job_ready",
            extra={
                "payload": {
                    "job_id": job.id,
                    "profiles": result.profiles,
                    "failed_profiles": result.failed_profiles,
                    "duration_ms": job.duration_millis,
                }
            },
        )
        self._notify_success(event.notify_address, job)
        with track_stage_latency(SERVICE, "cleanup"):
            self._delete_raw(source_key, job.id)
        return Outcome.READY

    def _thumbnail(self, job: Job, source_key: str) -> str | None:
        dst_key = f"{self.gateway.processed_key(job.owner_id, job.id)}/{THUMBNAIL_NAME}"
        try:
            return self.engine.capture_thumbnail(
                source_key, dst_key, thumbnail_offset_millis(job.duration_millis)
            )
        except (AppError, OSError) as e:
            log.warning(
                "job_thumbnail_failed",
                extra={"payload": {"job_id": job.id, "err": str(e)[:200]}},
            )
            return None

    def _fail(self, job: Job, event: ProcessingEvent, err: Exception) -> None:
        log.error(
            "job_failed",
            extra={
                "payload": {
                    "job_id": job.id,
                    "error_code": err.code if isinstance(err, AppError) else "unknown",
                    "err": str(err)[:300],
                }
            },
        )
        job.move_to(JobStatus.FAILED)
        job.resolution_artifacts.clear()
        self.store.save(job)
        JOB_TRANSITIONS_TOTAL.labels(status=JobStatus.FAILED.value).inc()
        self._notify_failure(event.notify_address, job, _failure_reason(err))

    # -------------------------------------------------------------------------
    # После коммита: только лог
    # -------------------------------------------------------------------------
    def _delete_raw(self, key: str | None, job_id: str) -> None:
        if not key:
            return
        try:
            if self.gateway.delete(key):
                log.info("job_raw_deleted", extra={"payload": {"job_id": job_id}})
        except AppError as e:
            log.error(
                "job_raw_delete_failed",
                extra={"payload": {"job_id": job_id, "error_code": e.code, "err": e.message}},
            )

    def _notify_success(self, address: str | None, job: Job) -> None:
        try:
            res = self.notifier.notify_success(address, job.display_name)
        except Exception as e:
            log.error("notify_error", extra={"payload": {"job_id": job.id, "err": str(e)[:200]}})
            return
        if not res.ok:
            log.warning(
                "notify_not_delivered",
                extra={"payload": {"job_id": job.id, "provider": res.provider, "err": res.error}},
            )

    def _notify_failure(self, address: str | None, job: Job, reason: str) -> None:
        try:
            res = self.notifier.notify_failure(address, job.display_name, reason)
        except Exception as e:
            log.error("notify_error", extra={"payload": {"job_id": job.id, "err": str(e)[:200]}})
            return
        if not res.ok:
            log.warning(
                "notify_not_delivered",
                extra={"payload": {"job_id": job.id, "provider": res.provider, "err": res.error}},
            )


_DISPATCHER: JobDispatcher | None = None
_DISPATCHER_LOCK = threading.Lock()


def build_job_dispatcher() -> JobDispatcher:
    s = get_settings()
    gateway = get_storage_gateway()
    return JobDispatcher(
        store=get_job_store(),
        gateway=gateway,
        engine=TranscodeEngine(gateway),
        notifier=get_notifier(),
        pool=BoundedWorkerPool(
            workers=s.worker_pool_size,
            queue_capacity=s.worker_queue_capacity,
            submit_timeout_sec=s.worker_submit_timeout_sec,
        ),
    )


def get_job_dispatcher() -> JobDispatcher:
    global _DISPATCHER
    with _DISPATCHER_LOCK:
        if _DISPATCHER is None:
            _DISPATCHER = build_job_dispatcher()
        return _DISPATCHER
