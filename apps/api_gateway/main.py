"""
API Gateway (FastAPI).

Функции:
- /health
- /metrics
- выдача видео: прямая с Range, токен на HLS-поток, токенизированные плейлисты и сегменты

Архитектурно:
- загрузку и создание задач делает внешний коллаборатор, он же ставит ProcessingEvent
- worker-transcode обрабатывает очередь и переводит задачу в READY/FAILED
- gateway только читает задачи и файлы из хранилища
"""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from apps.api_gateway.routers.videos import router as videos_router
from vod_pipeline.common.config import get_settings
from vod_pipeline.common.logging import get_project_logger, setup_logging
from vod_pipeline.common.metrics import setup_metrics_endpoint
from vod_pipeline.common.security import is_prod_env
from vod_pipeline.services.readiness_service import enforce_startup_readiness

log = get_project_logger()


def _parse_origins(raw: str) -> list[str]:
    origins = [o.strip() for o in (raw or "").split(",") if o.strip()]
    return origins or ["*"]


def _cors_params() -> tuple[list[str], bool]:
    settings = get_settings()
    allow_origins = _parse_origins(settings.cors_allowed_origins)
    allow_credentials = bool(settings.cors_allow_credentials)

    if is_prod_env(settings.app_env) and "*" in allow_origins:
        raise RuntimeError("CORS wildcard '*' запрещён в APP_ENV=prod")

    # '*' нельзя использовать вместе с credentials=true
    if "*" in allow_origins:
        allow_credentials = False

    return allow_origins, allow_credentials


def _create_app() -> FastAPI:
    app = FastAPI(title="VOD Pipeline", version="0.1.0")
    allow_origins, allow_credentials = _cors_params()

    # Range нужен плеерам, Content-Range должен быть виден из браузера
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_methods=["GET", "HEAD", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["Content-Range", "Accept-Ranges", "Content-Length"],
        allow_credentials=allow_credentials,
    )

    setup_metrics_endpoint(app)

    @app.get("/health")
    def health() -> dict[str, Any]:
        return {"ok": True}

    app.include_router(videos_router, prefix="/v1")

    return app


setup_logging()
enforce_startup_readiness(service_name="api-gateway")

app = _create_app()
log.info("api_gateway_ready")
