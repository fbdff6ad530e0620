from __future__ import annotations

import pytest

from vod_pipeline.common.config import get_settings
from vod_pipeline.services.readiness_service import (
    enforce_startup_readiness,
    evaluate_readiness,
)

_KEYS = (
    "app_env",
    "auth_mode",
    "api_keys",
    "service_api_keys",
    "storage_root",
    "stream_token_secret",
    "cors_allowed_origins",
    "notify_provider",
    "smtp_host",
    "readiness_fail_fast_in_prod",
)


@pytest.fixture()
def readiness_settings(tmp_path, monkeypatch):
    s = get_settings()
    snapshot = {k: getattr(s, k) for k in _KEYS}
    s.storage_root = str(tmp_path / "videos")
    monkeypatch.setattr(
        "vod_pipeline.services.readiness_service.shutil.which", lambda name: f"/usr/bin/{name}"
    )
    try:
        yield s
    finally:
        for k, v in snapshot.items():
            setattr(s, k, v)


def test_readiness_prod_fails_on_insecure_defaults(readiness_settings) -> None:
    s = readiness_settings
    s.app_env = "prod"
    s.auth_mode = "none"
    s.stream_token_secret = "dev-stream-secret"
    s.cors_allowed_origins = "*"

    state = evaluate_readiness()
    codes = {i.code for i in state.issues}

    assert state.ready is False
    assert "auth_none_in_prod" in codes
    assert "stream_token_secret_default" in codes
    assert "cors_wildcard_in_prod" in codes


def test_readiness_dev_allows_defaults(readiness_settings) -> None:
    s = readiness_settings
    s.app_env = "dev"
    s.auth_mode = "api_key"
    s.api_keys = "dev-key"
    s.service_api_keys = ""

    state = evaluate_readiness()
    codes = {i.code for i in state.issues}

    assert state.ready is True
    assert "service_api_keys_empty" in codes


def test_readiness_missing_ffmpeg_is_error_in_prod(readiness_settings, monkeypatch) -> None:
    s = readiness_settings
    s.app_env = "prod"
    s.auth_mode = "api_key"
    s.api_keys = "k"
    s.stream_token_secret = "prod-secret"
    s.cors_allowed_origins = "https://app.example.com"
    monkeypatch.setattr("vod_pipeline.services.readiness_service.shutil.which", lambda _n: None)

    state = evaluate_readiness()
    errors = {i.code for i in state.issues if i.severity == "error"}
    assert {"ffmpeg_missing", "ffprobe_missing"} <= errors


def test_readiness_email_without_smtp_warns(readiness_settings) -> None:
    s = readiness_settings
    s.app_env = "dev"
    s.api_keys = "k"
    s.notify_provider = "email"
    s.smtp_host = None

    state = evaluate_readiness()
    assert any(i.code == "smtp_host_empty" and i.severity == "warning" for i in state.issues)


def test_enforce_startup_readiness_fail_fast_in_prod(readiness_settings) -> None:
    s = readiness_settings
    s.app_env = "prod"
    s.auth_mode = "none"
    s.readiness_fail_fast_in_prod = True

    with pytest.raises(RuntimeError):
        enforce_startup_readiness(service_name="api-gateway")
