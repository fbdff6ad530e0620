"""
Runtime readiness checks for production rollout.
"""

from __future__ import annotations

import os
import shutil
from dataclasses import dataclass
from pathlib import Path

from vod_pipeline.common.config import get_settings
from vod_pipeline.common.logging import get_project_logger
from vod_pipeline.common.security import is_prod_env

log = get_project_logger()

_DEV_STREAM_SECRET = "dev-stream-secret"


@dataclass
class ReadinessIssue:
    severity: str  # error|warning
    code: str
    message: str


@dataclass
class ReadinessState:
    ready: bool
    issues: list[ReadinessIssue]


def _binary_available(name: str) -> bool:
    return bool(name) and shutil.which(name) is not None


def _storage_writable(root: str) -> bool:
    p = Path(root).expanduser()
    probe = p if p.exists() else p.parent
    return probe.is_dir() and os.access(probe, os.W_OK)


def evaluate_readiness() -> ReadinessState:
    s = get_settings()
    issues: list[ReadinessIssue] = []
    is_prod = is_prod_env(s.app_env)
    auth_mode = (s.auth_mode or "").strip().lower()

    if auth_mode == "api_key" and not (s.api_keys or "").strip():
        issues.append(
            ReadinessIssue(
                severity="error",
                code="auth_api_keys_empty",
                message="AUTH_MODE=api_key требует непустой API_KEYS",
            )
        )

    if not (s.service_api_keys or "").strip():
        issues.append(
            ReadinessIssue(
                severity="warning",
                code="service_api_keys_empty",
                message="SERVICE_API_KEYS пустой, service-доступ к стримам не будет работать",
            )
        )

    for code, binary in (("ffmpeg_missing", s.ffmpeg_bin), ("ffprobe_missing", s.ffprobe_bin)):
        if not _binary_available(binary):
            issues.append(
                ReadinessIssue(
                    severity="error" if is_prod else "warning",
                    code=code,
                    message=f"Бинарник {binary!r} не найден в PATH",
                )
            )

    if not _storage_writable(s.storage_root):
        issues.append(
            ReadinessIssue(
                severity="error",
                code="storage_root_not_writable",
                message="STORAGE_ROOT недоступен на запись",
            )
        )

    if (s.notify_provider or "").strip().lower() == "email" and not (s.smtp_host or "").strip():
        issues.append(
            ReadinessIssue(
                severity="warning",
                code="smtp_host_empty",
                message="NOTIFY_PROVIDER=email без SMTP_HOST: письма не уйдут",
            )
        )

    if is_prod:
        if auth_mode == "none":
            issues.append(
                ReadinessIssue(
                    severity="error",
                    code="auth_none_in_prod",
                    message="AUTH_MODE=none запрещен в prod",
                )
            )
        if auth_mode == "jwt":
            if not (s.oidc_issuer_url or "").strip() and not (s.oidc_jwks_url or "").strip():
                if not (s.jwt_shared_secret or "").strip():
                    issues.append(
                        ReadinessIssue(
                            severity="error",
                            code="oidc_not_configured",
                            message="AUTH_MODE=jwt требует OIDC_ISSUER_URL, OIDC_JWKS_URL "
                            "или JWT_SHARED_SECRET",
                        )
                    )
            if (s.jwt_shared_secret or "").strip():
                issues.append(
                    ReadinessIssue(
                        severity="warning",
                        code="jwt_shared_secret_set",
                        message="JWT_SHARED_SECRET задан; в prod лучше использовать OIDC/JWKS",
                    )
                )

        secret = (s.stream_token_secret or "").strip()
        if not secret or secret == _DEV_STREAM_SECRET:
            issues.append(
                ReadinessIssue(
                    severity="error",
                    code="stream_token_secret_default",
                    message="В prod нужен собственный STREAM_TOKEN_SECRET",
                )
            )

        if "*" in (s.cors_allowed_origins or ""):
            issues.append(
                ReadinessIssue(
                    severity="error",
                    code="cors_wildcard_in_prod",
                    message="CORS wildcard '*' запрещен в prod",
                )
            )

    ready = all(i.severity != "error" for i in issues)
    return ReadinessState(ready=ready, issues=issues)


def enforce_startup_readiness(*, service_name: str) -> ReadinessState:
    s = get_settings()
    state = evaluate_readiness()
    errors = [i for i in state.issues if i.severity == "error"]

    if errors:
        log.error(
            "startup_readiness_failed",
            extra={
                "payload": {
                    "service": service_name,
                    "app_env": s.app_env,
                    "error_codes": [e.code for e in errors],
                }
            },
        )
    else:
        log.info(
            "startup_readiness_ok",
            extra={"payload": {"service": service_name, "app_env": s.app_env}},
        )

    if is_prod_env(s.app_env) and s.readiness_fail_fast_in_prod and errors:
        msg = ", ".join(e.code for e in errors)
        raise RuntimeError(f"startup readiness failed for {service_name}: {msg}")
    return state
