"""
Утилиты безопасности и авторизации HTTP-слоя.

Поддерживаемые режимы (AUTH_MODE):
- api_key — проверка X-API-Key (API_KEYS: "key" или "subject:key")
- jwt     — проверка Bearer JWT через OIDC/JWKS или shared secret
- none    — без авторизации (ТОЛЬКО dev)
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

import jwt
import requests

from .config import get_settings
from .errors import UnauthorizedError


def _parse_api_keys(raw: str) -> dict[str, str]:
    """
    Разбор API_KEYS из ENV: key -> subject.
    Запись без субъекта получает subject="user".
    """
    out: dict[str, str] = {}
    for item in (raw or "").split(","):
        item = item.strip()
        if not item:
            continue
        subject, sep, key = item.partition(":")
        if sep and subject.strip() and key.strip():
            out[key.strip()] = subject.strip()
        else:
            out[item] = "user"
    return out


def _parse_csv(raw: str) -> set[str]:
    return {v.strip() for v in (raw or "").split(",") if v.strip()}


@dataclass(frozen=True)
class AuthContext:
    subject: str
    auth_type: str
    claims: dict[str, Any] | None = None

    @property
    def is_service(self) -> bool:
        if self.auth_type == "service_api_key":
            return True
        return self.auth_type == "jwt" and is_service_jwt_claims(self.claims)


def _jwt_algorithms(raw: str) -> list[str]:
    algos = [a.strip() for a in (raw or "").split(",") if a.strip()]
    return algos or ["RS256"]


def _extract_bearer(authorization: str | None) -> str | None:
    if not authorization:
        return None
    prefix = "bearer "
    if authorization.lower().startswith(prefix):
        return authorization[len(prefix) :].strip()
    return None


def is_prod_env(app_env: str | None) -> bool:
    env = (app_env or "").strip().lower()
    return env in {"prod", "production"}


def _claim_values(value: Any) -> set[str]:
    if value is None:
        return set()
    if isinstance(value, str):
        return {v for v in re.split(r"[,\s]+", value.strip()) if v}
    if isinstance(value, list | tuple | set):
        out: set[str] = set()
        for item in value:
            if item is None:
                continue
            out.update(_claim_values(item))
        return out
    return {str(value)}


def is_service_jwt_claims(claims: dict[str, Any] | None) -> bool:
    if not claims:
        return False

    s = get_settings()
    role_claim = (s.jwt_service_role_claim or "").strip()
    allowed = _parse_csv(s.jwt_service_allowed_roles)
    if not role_claim or not allowed:
        return False
    return bool(_claim_values(claims.get(role_claim)) & allowed)


@lru_cache(maxsize=8)
def _get_jwks_client(jwks_url: str) -> jwt.PyJWKClient:
    return jwt.PyJWKClient(jwks_url)


@lru_cache(maxsize=8)
def _discover_jwks_url(issuer_url: str, timeout_s: int) -> str:
    discovery = issuer_url.rstrip("/") + "/.well-known/openid-configuration"
    try:
        resp = requests.get(discovery, timeout=timeout_s)
        resp.raise_for_status()
        data = resp.json()
    except (requests.RequestException, ValueError) as e:
        raise UnauthorizedError("Не удалось получить OIDC discovery", {"err": str(e)}) from e

    jwks = data.get("jwks_uri")
    if not jwks:
        raise UnauthorizedError("OIDC discovery не содержит jwks_uri")
    return str(jwks)


def _verify_jwt(token: str) -> dict[str, Any]:
    s = get_settings()
    algos = _jwt_algorithms(s.oidc_algorithms)
    audience = s.oidc_audience
    issuer = s.oidc_issuer_url
    leeway = int(s.jwt_clock_skew_sec or 30)

    kwargs: dict[str, Any] = {
        "algorithms": algos,
        "options": {"verify_aud": bool(audience)},
        "leeway": leeway,
    }
    if audience:
        kwargs["audience"] = audience
    if issuer:
        kwargs["issuer"] = issuer

    secret = (s.jwt_shared_secret or "").strip()
    if secret:
        try:
            return jwt.decode(token, secret, **kwargs)
        except jwt.PyJWTError as e:
            raise UnauthorizedError("JWT не прошёл проверку", {"err": str(e)}) from e

    jwks_url = (s.oidc_jwks_url or "").strip()
    if not jwks_url:
        if not issuer:
            raise UnauthorizedError("JWT/OIDC не настроен: укажи OIDC_JWKS_URL или OIDC_ISSUER_URL")
        jwks_url = _discover_jwks_url(issuer, int(s.oidc_discovery_timeout_sec or 5))

    try:
        key = _get_jwks_client(jwks_url).get_signing_key_from_jwt(token).key
        return jwt.decode(token, key=key, **kwargs)
    except jwt.PyJWTError as e:
        raise UnauthorizedError("JWT не прошёл проверку", {"err": str(e)}) from e


def require_auth(*, authorization: str | None, x_api_key: str | None) -> AuthContext:
    """
    Универсальная проверка авторизации:
    - AUTH_MODE=none: без проверки (dev)
    - AUTH_MODE=api_key: только X-API-Key / SERVICE_API_KEYS
    - AUTH_MODE=jwt: JWT (Bearer) + опциональный service API key fallback
    """
    settings = get_settings()
    mode = (settings.auth_mode or "api_key").lower().strip()

    if mode == "none":
        if is_prod_env(settings.app_env):
            raise UnauthorizedError("AUTH_MODE=none запрещён в APP_ENV=prod")
        return AuthContext(subject="anonymous", auth_type="none")

    user_keys = _parse_api_keys(settings.api_keys)
    service_keys = _parse_csv(settings.service_api_keys)
    has_valid_service_key = bool(x_api_key and x_api_key in service_keys)

    if mode == "api_key":
        if has_valid_service_key:
            return AuthContext(subject="service", auth_type="service_api_key")
        if x_api_key and x_api_key in user_keys:
            return AuthContext(subject=user_keys[x_api_key], auth_type="user_api_key")
        raise UnauthorizedError("Неверный API ключ")

    if mode != "jwt":
        raise UnauthorizedError("Неизвестный режим авторизации")

    token = _extract_bearer(authorization)
    if token:
        claims = _verify_jwt(token)
        sub = str(claims.get("sub") or claims.get("client_id") or "jwt_subject")
        return AuthContext(subject=sub, auth_type="jwt", claims=claims)

    if settings.allow_service_api_key_in_jwt_mode and has_valid_service_key:
        return AuthContext(subject="service", auth_type="service_api_key")

    raise UnauthorizedError("Требуется Bearer JWT или service API key")


def can_access_owner_resource(ctx: AuthContext, owner_id: str) -> bool:
    """
    Доступ к ресурсу владельца: сам владелец, service-идентичность или dev-режим.
    """
    if ctx.auth_type == "none" or ctx.is_service:
        return True
    return ctx.subject == owner_id
