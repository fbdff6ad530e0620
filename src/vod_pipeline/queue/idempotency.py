"""
Per-job claim.

- транспорт at-least-once: одно событие может прийти дважды
- два инстанса воркера не должны взять один job_id одновременно

Реализация:
- Redis SET NX с TTL
- в QUEUE_MODE=inline: процессная карта с TTL
"""

from __future__ import annotations

import threading
import time

from vod_pipeline.common.config import get_settings

from .redis import redis_client

_LOCAL_KEYS: dict[str, tuple[str, float]] = {}
_LOCAL_LOCK = threading.Lock()

# Снять claim, только если он всё ещё наш
_RELEASE_LUA = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('del', KEYS[1])
end
return 0
"""


def _inline() -> bool:
    return (get_settings().queue_mode or "").strip().lower() == "inline"


def _local_set_nx(key: str, value: str, ttl_sec: int) -> bool:
    now = time.monotonic()
    with _LOCAL_LOCK:
        current = _LOCAL_KEYS.get(key)
        if current and current[1] > now:
            return False
        _LOCAL_KEYS[key] = (value, now + max(1, int(ttl_sec)))
        if len(_LOCAL_KEYS) > 20_000:
            for k, (_, exp) in list(_LOCAL_KEYS.items()):
                if exp <= now:
                    _LOCAL_KEYS.pop(k, None)
        return True


def claim_job(job_id: str, owner_token: str, ttl_sec: int | None = None) -> bool:
    """
    Захватывает job_id для текущего исполнителя. False, если уже захвачен кем-то.
    """
    ttl = int(ttl_sec or get_settings().job_claim_ttl_sec)
    key = f"claim:video-job:{job_id}"
    if _inline():
        return _local_set_nx(key, owner_token, ttl)
    return bool(redis_client().set(name=key, value=owner_token, nx=True, ex=ttl))


def release_job(job_id: str, owner_token: str) -> None:
    key = f"claim:video-job:{job_id}"
    if _inline():
        with _LOCAL_LOCK:
            current = _LOCAL_KEYS.get(key)
            if current and current[0] == owner_token:
                _LOCAL_KEYS.pop(key, None)
        return
    redis_client().eval(_RELEASE_LUA, 1, key, owner_token)


def reset_local_state() -> None:
    with _LOCAL_LOCK:
        _LOCAL_KEYS.clear()
