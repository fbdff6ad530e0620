from __future__ import annotations

import pytest

from vod_pipeline.common.config import get_settings
from vod_pipeline.queue.idempotency import (
    claim_job,
    release_job,
    reset_local_state,
)


@pytest.fixture()
def inline_mode():
    s = get_settings()
    snapshot = s.queue_mode
    s.queue_mode = "inline"
    reset_local_state()
    try:
        yield
    finally:
        s.queue_mode = snapshot
        reset_local_state()


def test_claim_job_exclusive_until_released(inline_mode) -> None:
    assert claim_job("j-1", "a") is True
    assert claim_job("j-1", "b") is False

    # чужой токен не снимает claim
    release_job("j-1", "b")
    assert claim_job("j-1", "b") is False

    release_job("j-1", "a")
    assert claim_job("j-1", "b") is True


def test_claim_job_uses_redis_set_nx(monkeypatch) -> None:
    calls: list[dict] = []

    class _FakeRedis:
        def set(self, **kwargs):
            calls.append(kwargs)
            return True

    s = get_settings()
    snapshot = s.queue_mode
    try:
        s.queue_mode = "redis"
        monkeypatch.setattr("vod_pipeline.queue.idempotency.redis_client", lambda: _FakeRedis())
        assert claim_job("j-9", "tok", ttl_sec=30) is True
    finally:
        s.queue_mode = snapshot

    assert calls == [{"name": "claim:video-job:j-9", "value": "tok", "nx": True, "ex": 30}]
