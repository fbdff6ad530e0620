"""
Метрики Prometheus для сервиса.

Назначение:
- Экспорт /metrics
- Счётчики задач очереди, переходов статусов и профилей транскодирования
- Используется API Gateway и воркером транскодирования
"""

from __future__ import annotations

import time
from collections.abc import Iterator
from contextlib import contextmanager

from fastapi import FastAPI, Request
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest

# =============================================================================
# СЧЁТЧИКИ И МЕТРИКИ
# =============================================================================

REQUESTS_TOTAL = Counter(
    "vod_requests_total",
    "Общее количество HTTP запросов",
    ["service", "route", "method", "status"],
)

HTTP_REQUEST_LATENCY_MS = Histogram(
    "vod_http_request_latency_ms",
    "Задержка HTTP запроса (мс)",
    ["service", "route", "method"],
    buckets=(5, 10, 25, 50, 100, 250, 500, 1000, 2500, 5000, 10000),
)

# Стадии обработки видео (probe, thumbnail, transcode, cleanup)
STAGE_LATENCY_MS = Histogram(
    "vod_stage_latency_ms",
    "Задержка выполнения стадий обработки (мс)",
    ["service", "stage"],
    buckets=(10, 50, 100, 500, 1000, 5000, 15000, 60000, 300000, 1800000),
)

QUEUE_TASKS_TOTAL = Counter(
    "vod_queue_tasks_total",
    "Количество обработанных задач очереди",
    ["service", "queue", "result"],  # result=accepted|invalid|error|retry|dropped
)

JOB_TRANSITIONS_TOTAL = Counter(
    "vod_job_transitions_total",
    "Переходы статусов видео-задач",
    ["status"],
)

PROFILE_TRANSCODE_TOTAL = Counter(
    "vod_profile_transcode_total",
    "Результаты транскодирования по профилям",
    ["profile", "result"],  # result=ok|failed
)

WORKER_POOL_INFLIGHT = Gauge(
    "vod_worker_pool_inflight",
    "Задачи в пуле воркеров (выполняются + ожидают)",
)

QUEUE_DEPTH = Gauge(
    "vod_queue_depth",
    "Текущая глубина stream-очереди",
    ["queue"],
)

METRICS_COLLECTION_ERRORS_TOTAL = Counter(
    "vod_metrics_collection_errors_total",
    "Ошибки сборки служебных метрик",
    ["source"],
)

SYSTEM_READINESS = Gauge(
    "vod_system_readiness",
    "Runtime readiness check status (1=ready, 0=not ready)",
)


@contextmanager
def track_stage_latency(service: str, stage: str) -> Iterator[None]:
    started = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = (time.perf_counter() - started) * 1000
        STAGE_LATENCY_MS.labels(service=service, stage=stage).observe(elapsed_ms)


def refresh_queue_metrics() -> None:
    try:
        from vod_pipeline.common.config import get_settings
        from vod_pipeline.queue.dispatcher import Q_VIDEO_PROCESSING
        from vod_pipeline.queue.redis import redis_client

        if (get_settings().queue_mode or "").lower() == "inline":
            return
        QUEUE_DEPTH.labels(queue=Q_VIDEO_PROCESSING).set(
            int(redis_client().xlen(Q_VIDEO_PROCESSING))
        )
    except Exception:
        METRICS_COLLECTION_ERRORS_TOTAL.labels(source="queue_metrics").inc()


def refresh_system_readiness_metrics() -> None:
    try:
        from vod_pipeline.services.readiness_service import evaluate_readiness

        state = evaluate_readiness()
        SYSTEM_READINESS.set(1 if state.ready else 0)
    except Exception:
        METRICS_COLLECTION_ERRORS_TOTAL.labels(source="readiness_metrics").inc()


# =============================================================================
# ENDPOINT /metrics
# =============================================================================
def setup_metrics_endpoint(app: FastAPI, *, service: str = "api-gateway") -> None:
    """
    Регистрирует middleware HTTP-метрик и endpoint /metrics.
    """

    @app.middleware("http")
    async def http_metrics(request: Request, call_next):
        route_obj = request.scope.get("route")
        route = getattr(route_obj, "path", None) or request.url.path
        method = request.method
        started = time.perf_counter()

        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000

        REQUESTS_TOTAL.labels(
            service=service,
            route=route,
            method=method,
            status=str(response.status_code),
        ).inc()
        HTTP_REQUEST_LATENCY_MS.labels(service=service, route=route, method=method).observe(
            elapsed_ms
        )
        return response

    @app.get("/metrics")
    def metrics() -> Response:
        refresh_queue_metrics()
        refresh_system_readiness_metrics()
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
