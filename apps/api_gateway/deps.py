"""
FastAPI Depends.

Сюда выносим:
- проверку авторизации (Bearer JWT / X-API-Key) с аудит-логом
- сборку DeliveryService (store + gateway)
"""

from __future__ import annotations

from fastapi import Header, HTTPException, Request, status

from vod_pipeline.common.errors import UnauthorizedError
from vod_pipeline.common.logging import get_project_logger
from vod_pipeline.common.security import AuthContext, require_auth
from vod_pipeline.storage.gateway import get_storage_gateway
from vod_pipeline.storage.job_store import get_job_store
from vod_pipeline.streaming.service import DeliveryService

log = get_project_logger()


def _request_meta(request: Request | None) -> tuple[str, str, str | None]:
    if request is None:
        return "unknown", "UNKNOWN", None
    endpoint = request.url.path
    method = request.method
    client_ip = request.client.host if request.client else None
    return endpoint, method, client_ip


def audit_allow(*, request: Request | None, ctx: AuthContext, reason: str) -> None:
    endpoint, method, client_ip = _request_meta(request)
    log.info(
        "security_audit_allow",
        extra={
            "payload": {
                "endpoint": endpoint,
                "method": method,
                "subject": ctx.subject,
                "auth_type": ctx.auth_type,
                "reason": reason,
                "client_ip": client_ip,
            }
        },
    )


def audit_deny(
    *,
    request: Request | None,
    status_code: int,
    reason: str,
    error_code: str,
    auth_type: str | None = None,
    subject: str | None = None,
) -> None:
    endpoint, method, client_ip = _request_meta(request)
    log.warning(
        "security_audit_deny",
        extra={
            "payload": {
                "endpoint": endpoint,
                "method": method,
                "status_code": status_code,
                "reason": reason,
                "error_code": error_code,
                "auth_type": auth_type or "unknown",
                "subject": subject or "unknown",
                "client_ip": client_ip,
            }
        },
    )


def auth_dep(
    request: Request,
    authorization: str | None = Header(default=None, alias="Authorization"),
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
) -> AuthContext:
    """
    Проверка авторизации для HTTP.
    """
    try:
        ctx = require_auth(authorization=authorization, x_api_key=x_api_key)
    except UnauthorizedError as e:
        audit_deny(
            request=request,
            status_code=status.HTTP_401_UNAUTHORIZED,
            reason=e.message,
            error_code=e.code,
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": e.code, "message": e.message},
            headers={"WWW-Authenticate": "Bearer"},
        ) from e
    audit_allow(request=request, ctx=ctx, reason="auth_ok")
    return ctx


def delivery_service_dep() -> DeliveryService:
    return DeliveryService(store=get_job_store(), gateway=get_storage_gateway())
