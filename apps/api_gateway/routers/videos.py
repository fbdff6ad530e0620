"""
Выдача видео: прямая (Range), токен на HLS-поток, токенизированные плейлисты/сегменты.
"""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status
from fastapi.responses import Response
from pydantic import BaseModel

from apps.api_gateway.deps import audit_deny, auth_dep, delivery_service_dep
from vod_pipeline.common.config import get_settings
from vod_pipeline.common.errors import (
    ErrCode,
    ForbiddenError,
    NotFoundError,
    PathViolation,
    RangeNotSatisfiable,
    ResourceLocked,
    StorageIOError,
    StreamTokenError,
)
from vod_pipeline.common.logging import get_project_logger
from vod_pipeline.common.security import AuthContext
from vod_pipeline.streaming.service import DeliveryService

log = get_project_logger()

router = APIRouter()
AUTH_DEP = Depends(auth_dep)
DELIVERY_DEP = Depends(delivery_service_dep)


class StreamUrlResponse(BaseModel):
    url: str
    token: str
    expires_at: datetime


def _not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")


def _locked() -> HTTPException:
    return HTTPException(status_code=status.HTTP_423_LOCKED, detail="Video is not ready")


def _forbidden() -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")


def _range_not_satisfiable(e: RangeNotSatisfiable) -> Response:
    return Response(
        status_code=status.HTTP_416_REQUESTED_RANGE_NOT_SATISFIABLE,
        headers={"Content-Range": f"bytes */{e.total}"},
    )


@router.get("/videos/{video_id}/stream")
def stream_direct(
    video_id: str,
    request: Request,
    file: str | None = Query(default=None),
    range_header: str | None = Header(default=None, alias="Range"),
    ctx: AuthContext = AUTH_DEP,
    delivery: DeliveryService = DELIVERY_DEP,
) -> Response:
    try:
        return delivery.serve_direct(video_id, ctx, file=file, range_header=range_header)
    except ForbiddenError as e:
        audit_deny(
            request=request,
            status_code=status.HTTP_403_FORBIDDEN,
            reason="not_video_owner",
            error_code=ErrCode.FORBIDDEN,
            auth_type=ctx.auth_type,
            subject=ctx.subject,
        )
        raise _forbidden() from e
    except ResourceLocked as e:
        raise _locked() from e
    except RangeNotSatisfiable as e:
        return _range_not_satisfiable(e)
    except PathViolation as e:
        log.warning(
            "stream_path_violation",
            extra={"payload": {"video_id": video_id, "file": (file or "")[:200]}},
        )
        raise _not_found() from e
    except StorageIOError as e:
        log.warning(
            "stream_file_unreadable",
            extra={"payload": {"video_id": video_id, "err": e.message, "details": e.details}},
        )
        raise _not_found() from e
    except (NotFoundError, FileNotFoundError) as e:
        raise _not_found() from e


@router.get("/videos/{video_id}/hls-stream-url", response_model=StreamUrlResponse)
def hls_stream_url(
    video_id: str,
    request: Request,
    ctx: AuthContext = AUTH_DEP,
    delivery: DeliveryService = DELIVERY_DEP,
) -> StreamUrlResponse:
    try:
        issued = delivery.issue_stream_token(video_id, ctx)
    except ForbiddenError as e:
        audit_deny(
            request=request,
            status_code=status.HTTP_403_FORBIDDEN,
            reason="not_video_owner",
            error_code=ErrCode.FORBIDDEN,
            auth_type=ctx.auth_type,
            subject=ctx.subject,
        )
        raise _forbidden() from e
    except ResourceLocked as e:
        raise _locked() from e
    except NotFoundError as e:
        raise _not_found() from e

    base = (get_settings().public_base_url or str(request.base_url)).rstrip("/")
    url = f"{base}/v1/videos/{video_id}/stream/master.m3u8?token={issued.token}"
    return StreamUrlResponse(url=url, token=issued.token, expires_at=issued.expires_at)


@router.get("/videos/{video_id}/stream/{path:path}")
def stream_tokenized(
    video_id: str,
    path: str,
    request: Request,
    token: str | None = Query(default=None),
    range_header: str | None = Header(default=None, alias="Range"),
    delivery: DeliveryService = DELIVERY_DEP,
) -> Response:
    try:
        return delivery.serve_stream_file(
            video_id, path, token=token, range_header=range_header
        )
    except StreamTokenError as e:
        audit_deny(
            request=request,
            status_code=status.HTTP_403_FORBIDDEN,
            reason=e.message,
            error_code=e.code,
            auth_type="stream_token",
        )
        raise _forbidden() from e
    except ResourceLocked as e:
        raise _locked() from e
    except RangeNotSatisfiable as e:
        return _range_not_satisfiable(e)
    except PathViolation as e:
        log.warning(
            "stream_path_violation",
            extra={"payload": {"video_id": video_id, "path": path[:200]}},
        )
        raise _not_found() from e
    except StorageIOError as e:
        log.warning(
            "stream_file_unreadable",
            extra={"payload": {"video_id": video_id, "err": e.message, "details": e.details}},
        )
        raise _not_found() from e
    except (NotFoundError, FileNotFoundError) as e:
        raise _not_found() from e
