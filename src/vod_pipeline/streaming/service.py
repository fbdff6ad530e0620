"""
Delivery Layer: выдача файлов видео по HTTP.

- прямая выдача с поддержкой Range (первый диапазон)
- выдача токена на HLS-поток
- токенизированная выдача плейлистов (с переписыванием) и сегментов

Наружу уходят только общие исходы: 403 / 404 / 416 / 423.
"""

from __future__ import annotations

import posixpath

from fastapi.responses import Response, StreamingResponse

from vod_pipeline.common.config import get_settings
from vod_pipeline.common.errors import (
    ForbiddenError,
    NotFoundError,
    PathViolation,
    ResourceLocked,
)
from vod_pipeline.common.logging import get_project_logger
from vod_pipeline.common.security import AuthContext, can_access_owner_resource
from vod_pipeline.domain.enums import ArtifactKind, JobStatus
from vod_pipeline.domain.models import Job
from vod_pipeline.storage.gateway import StorageGateway
from vod_pipeline.storage.job_store import JobStore

from .playlists import is_playlist, rewrite_playlist
from .ranges import parse_range
from .tokens import StreamAccessToken, mint_stream_token, verify_stream_token

log = get_project_logger()

_CONTENT_TYPES = {
    ".m3u8": "application/vnd.apple.mpegurl",
    ".ts": "video/mp2t",
    ".mp4": "video/mp4",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
}
DEFAULT_CONTENT_TYPE = "application/octet-stream"


def content_type_for(name: str) -> str:
    return _CONTENT_TYPES.get(posixpath.splitext(name.lower())[1], DEFAULT_CONTENT_TYPE)


class DeliveryService:
    def __init__(self, *, store: JobStore, gateway: StorageGateway) -> None:
        self.store = store
        self.gateway = gateway

    # -------------------------------------------------------------------------
    # Задача и ключи
    # -------------------------------------------------------------------------
    def _job(self, job_id: str) -> Job:
        job = self.store.find_by_id(job_id)
        if job is None:
            raise NotFoundError()
        return job

    @staticmethod
    def _require_servable(job: Job) -> None:
        if job.status in (JobStatus.UPLOADED, JobStatus.PROCESSING):
            raise ResourceLocked()
        if job.status != JobStatus.READY or not job.resolution_artifacts:
            raise NotFoundError()

    @staticmethod
    def _hls_base(job: Job) -> str:
        master = job.artifact(ArtifactKind.hls_master)
        if not master:
            raise NotFoundError()
        return posixpath.dirname(master)

    def _key_in_hls(self, job: Job, rel_path: str) -> str:
        base = self._hls_base(job)
        key = f"{base}/{rel_path.lstrip('/')}"
        # ключ обязан остаться внутри каталога hls этой задачи
        base_path = self.gateway.resolve(base)
        target = self.gateway.resolve(key)
        if base_path not in target.parents:
            raise PathViolation("Путь вне каталога потока")
        return key

    def _direct_key(self, job: Job, file: str | None) -> str:
        if file:
            return self._key_in_hls(job, file)
        key = job.artifact(ArtifactKind.original) or job.artifact(ArtifactKind.hls_master)
        if not key:
            raise NotFoundError()
        return key

    # -------------------------------------------------------------------------
    # Ответы
    # -------------------------------------------------------------------------
    def _file_response(
        self,
        key: str,
        *,
        range_header: str | None,
        cache_control: str,
        range_cache_control: str | None = None,
    ) -> Response:
        if not self.gateway.is_file(key):
            raise NotFoundError()
        total = self.gateway.size(key)
        media_type = content_type_for(key)
        chunk = max(1024, int(get_settings().stream_chunk_size))

        byte_range = parse_range(range_header, total)
        if byte_range is None:
            return StreamingResponse(
                self.gateway.iter_range(key, 0, total, chunk),
                status_code=200,
                media_type=media_type,
                headers={
                    "Content-Length": str(total),
                    "Accept-Ranges": "bytes",
                    "Cache-Control": cache_control,
                },
            )

        return StreamingResponse(
            self.gateway.iter_range(key, byte_range.start, byte_range.length, chunk),
            status_code=206,
            media_type=media_type,
            headers={
                "Content-Range": byte_range.content_range,
                "Content-Length": str(byte_range.length),
                "Accept-Ranges": "bytes",
                "Cache-Control": range_cache_control or cache_control,
            },
        )

    def serve_direct(
        self, job_id: str, ctx: AuthContext, *, file: str | None, range_header: str | None
    ) -> Response:
        job = self._job(job_id)
        if not can_access_owner_resource(ctx, job.owner_id):
            raise ForbiddenError()
        self._require_servable(job)
        key = self._direct_key(job, file)
        max_age = int(get_settings().stream_cache_max_age_sec)
        return self._file_response(
            key,
            range_header=range_header,
            cache_control="no-cache",
            range_cache_control=f"max-age={max_age}, no-transform, must-revalidate",
        )

    def issue_stream_token(self, job_id: str, ctx: AuthContext) -> StreamAccessToken:
        job = self._job(job_id)
        if not can_access_owner_resource(ctx, job.owner_id):
            raise ForbiddenError()
        if job.status != JobStatus.READY:
            raise ResourceLocked("Видео не готово к просмотру")
        if not job.artifact(ArtifactKind.hls_master):
            raise NotFoundError()
        token = mint_stream_token(job_id=job.id, subject_id=ctx.subject)
        log.info(
            "stream_token_issued",
            extra={"payload": {"job_id": job.id, "subject": ctx.subject}},
        )
        return token

    def serve_stream_file(
        self, job_id: str, rel_path: str, *, token: str | None, range_header: str | None
    ) -> Response:
        verify_stream_token(token, job_id=job_id)
        job = self._job(job_id)
        self._require_servable(job)
        key = self._key_in_hls(job, rel_path)

        if is_playlist(key):
            if not self.gateway.is_file(key):
                raise NotFoundError()
            body = rewrite_playlist(self.gateway.read_text(key), token or "")
            return Response(
                content=body,
                media_type=content_type_for(key),
                headers={"Cache-Control": "private, no-store"},
            )

        max_age = int(get_settings().stream_cache_max_age_sec)
        return self._file_response(
            key,
            range_header=range_header,
            cache_control=f"private, max-age={max_age}",
        )
