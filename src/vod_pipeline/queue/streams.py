"""
Redis Streams: публикация, чтение consumer group, перехват зависших, подтверждение.

Формат сообщения: одно поле "payload" с JSON.
"""

from __future__ import annotations

import json
import os
import socket
from dataclasses import dataclass
from typing import Any

import redis

from vod_pipeline.common.logging import get_project_logger

from .redis import redis_client

log = get_project_logger()

# Ограничение длины стрима (приблизительное, XADD MAXLEN ~)
STREAM_MAXLEN = 100_000


@dataclass
class StreamMessage:
    stream: str
    message_id: str
    payload: dict[str, Any]


def consumer_name(prefix: str) -> str:
    return f"{prefix}-{socket.gethostname()}-{os.getpid()}"


def enqueue(stream: str, payload: dict[str, Any]) -> str:
    r = redis_client()
    return str(
        r.xadd(
            stream,
            {"payload": json.dumps(payload, ensure_ascii=False)},
            maxlen=STREAM_MAXLEN,
            approximate=True,
        )
    )


def ensure_group(stream: str, group: str) -> None:
    r = redis_client()
    try:
        r.xgroup_create(name=stream, groupname=group, id="0", mkstream=True)
    except redis.ResponseError as e:
        # группа уже есть
        if "BUSYGROUP" not in str(e):
            raise


def _to_message(r, stream: str, group: str, msg_id: Any, fields: Any) -> StreamMessage | None:
    raw = (fields or {}).get("payload") or "{}"
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError:
        log.error(
            "stream_message_invalid_json",
            extra={"payload": {"stream": stream, "message_id": msg_id}},
        )
        r.xack(stream, group, msg_id)
        return None
    if not isinstance(payload, dict):
        r.xack(stream, group, msg_id)
        return None
    return StreamMessage(stream=stream, message_id=str(msg_id), payload=payload)


def read_task(
    *, stream: str, group: str, consumer: str, block_ms: int = 5000
) -> StreamMessage | None:
    """
    Читает одно новое сообщение группы. None по таймауту.
    Битый JSON подтверждается и отбрасывается.
    """
    r = redis_client()
    resp = r.xreadgroup(
        groupname=group,
        consumername=consumer,
        streams={stream: ">"},
        count=1,
        block=block_ms,
    )
    if not resp:
        return None

    _, messages = resp[0]
    if not messages:
        return None

    msg_id, fields = messages[0]
    return _to_message(r, stream, group, msg_id, fields)


def claim_stale(
    *, stream: str, group: str, consumer: str, min_idle_ms: int, count: int = 10
) -> list[StreamMessage]:
    """
    Забирает себе сообщения из PEL группы, которые висят дольше min_idle_ms
    (упавший consumer, неудачный requeue). XAUTOCLAIM, Redis >= 6.2.
    """
    r = redis_client()
    resp = r.xautoclaim(
        stream,
        group,
        consumer,
        min_idle_time=max(0, int(min_idle_ms)),
        start_id="0-0",
        count=count,
    )
    # [next_id, messages] или [next_id, messages, deleted_ids]
    messages = resp[1] if resp and len(resp) > 1 else []
    out: list[StreamMessage] = []
    for msg_id, fields in messages or []:
        if fields is None:
            # запись удалена из стрима (MAXLEN), в PEL остался только id
            r.xack(stream, group, msg_id)
            continue
        msg = _to_message(r, stream, group, msg_id, fields)
        if msg is not None:
            out.append(msg)
    if out:
        log.warning(
            "stream_pending_reclaimed",
            extra={"payload": {"stream": stream, "consumer": consumer, "count": len(out)}},
        )
    return out


def ack_task(*, stream: str, group: str, message_id: str) -> None:
    redis_client().xack(stream, group, message_id)
