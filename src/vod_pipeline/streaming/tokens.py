"""
Подписанные токены доступа к HLS-потоку (HS256 JWT).

Claims: sub (субъект), job (id видео), typ="stream", iat, exp.
Токен не хранится; срок проверяется относительно переданного now.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

import jwt

from vod_pipeline.common.config import get_settings
from vod_pipeline.common.errors import StreamTokenError
from vod_pipeline.common.time import from_epoch, to_epoch, utc_now

ALGORITHM = "HS256"
TOKEN_TYPE = "stream"


@dataclass(frozen=True)
class StreamAccessToken:
    token: str
    job_id: str
    subject_id: str
    expires_at: datetime


def mint_stream_token(
    *,
    job_id: str,
    subject_id: str,
    ttl_sec: int | None = None,
    now: datetime | None = None,
) -> StreamAccessToken:
    s = get_settings()
    issued = now or utc_now()
    ttl = int(ttl_sec if ttl_sec is not None else s.stream_token_ttl_sec)
    expires = issued + timedelta(seconds=ttl)
    claims = {
        "sub": subject_id,
        "job": job_id,
        "typ": TOKEN_TYPE,
        "iat": to_epoch(issued),
        "exp": to_epoch(expires),
    }
    token = jwt.encode(claims, s.stream_token_secret, algorithm=ALGORITHM)
    return StreamAccessToken(
        token=token, job_id=job_id, subject_id=subject_id, expires_at=from_epoch(claims["exp"])
    )


def verify_stream_token(token: str | None, *, job_id: str, now: datetime | None = None) -> dict[str, Any]:
    """
    Проверяет подпись, тип, принадлежность видео и срок. Ошибка -> StreamTokenError.
    """
    if not token:
        raise StreamTokenError("Токен не передан")

    s = get_settings()
    try:
        claims = jwt.decode(
            token,
            s.stream_token_secret,
            algorithms=[ALGORITHM],
            options={"verify_exp": False, "require": ["exp", "job", "sub"]},
        )
    except jwt.PyJWTError as e:
        raise StreamTokenError("Подпись токена неверна") from e

    if claims.get("typ") != TOKEN_TYPE:
        raise StreamTokenError("Неверный тип токена")
    if str(claims.get("job")) != str(job_id):
        raise StreamTokenError("Токен выдан для другого видео")

    try:
        exp = int(claims["exp"])
    except (TypeError, ValueError) as e:
        raise StreamTokenError("Некорректный exp") from e
    if to_epoch(now or utc_now()) >= exp:
        raise StreamTokenError("Срок токена истёк")
    return claims
