"""
Media Inspector: метаданные контейнера и потоков через ffprobe (JSON).

Правила:
- файл не открывается / ffprobe упал / таймаут -> UnreadableMedia
- нет ни видео-, ни аудиопотока -> UnreadableMedia
- битрейт = сумма битрейтов потоков; нет данных -> 0 (не ошибка)
"""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from vod_pipeline.common.config import get_settings
from vod_pipeline.common.errors import UnreadableMedia
from vod_pipeline.common.logging import get_transcode_logger

from . import runner

log = get_transcode_logger()


@dataclass(frozen=True)
class MediaInfo:
    duration_millis: int
    width: int
    height: int
    frame_rate: float
    sample_rate: int
    channels: int
    video_codec: str | None
    audio_codec: str | None
    bitrate: int

    @property
    def has_video(self) -> bool:
        return self.width > 0 and self.height > 0


def _to_int(value: Any) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0


def _parse_rate(value: Any) -> float:
    """'30000/1001' -> 29.97; мусор -> 0.0"""
    if not value:
        return 0.0
    text = str(value)
    if "/" in text:
        num, _, den = text.partition("/")
        try:
            d = float(den)
            return float(num) / d if d else 0.0
        except ValueError:
            return 0.0
    try:
        return float(text)
    except ValueError:
        return 0.0


def parse_probe(data: dict[str, Any]) -> MediaInfo:
    streams = data.get("streams") or []
    video = next((s for s in streams if s.get("codec_type") == "video"), None)
    audio = next((s for s in streams if s.get("codec_type") == "audio"), None)
    if video is None and audio is None:
        raise UnreadableMedia("Нет декодируемых потоков")

    fmt = data.get("format") or {}
    duration_sec = _probe_duration(fmt, video, audio)

    frame_rate = 0.0
    if video is not None:
        frame_rate = _parse_rate(video.get("avg_frame_rate")) or _parse_rate(
            video.get("r_frame_rate")
        )

    bitrate = 0
    for s in (video, audio):
        if s is not None:
            bitrate += max(0, _to_int(s.get("bit_rate")))

    return MediaInfo(
        duration_millis=int(round(duration_sec * 1000)),
        width=_to_int(video.get("width")) if video else 0,
        height=_to_int(video.get("height")) if video else 0,
        frame_rate=frame_rate,
        sample_rate=_to_int(audio.get("sample_rate")) if audio else 0,
        channels=_to_int(audio.get("channels")) if audio else 0,
        video_codec=video.get("codec_name") if video else None,
        audio_codec=audio.get("codec_name") if audio else None,
        bitrate=bitrate,
    )


def _probe_duration(fmt: dict[str, Any], *streams: dict[str, Any] | None) -> float:
    for candidate in (fmt.get("duration"), *(s.get("duration") for s in streams if s)):
        try:
            value = float(candidate)
        except (TypeError, ValueError):
            continue
        if value > 0:
            return value
    return 0.0


class MediaInspector:
    def __init__(self, run: Callable[..., runner.CommandResult] | None = None) -> None:
        self._run = run

    def inspect(self, path: str | Path) -> MediaInfo:
        s = get_settings()
        p = Path(path)
        if not p.is_file():
            raise UnreadableMedia("Файл не найден", {"path": p.name})

        cmd = [
            s.ffprobe_bin,
            "-v",
            "error",
            "-print_format",
            "json",
            "-show_format",
            "-show_streams",
            str(p),
        ]
        run = self._run or runner.run_command
        try:
            res = run(cmd, timeout_sec=s.ffprobe_timeout_sec)
        except (runner.CommandTimeout, OSError) as e:
            raise UnreadableMedia("ffprobe не отработал", {"err": str(e)[:300]}) from e

        if not res.ok:
            raise UnreadableMedia("ffprobe вернул ошибку", {"stderr": res.stderr_tail[-300:]})

        try:
            data = json.loads(res.stdout or "{}")
        except json.JSONDecodeError as e:
            raise UnreadableMedia("ffprobe вернул не-JSON") from e

        info = parse_probe(data)
        log.info(
            "media_inspected",
            extra={
                "payload": {
                    "file": p.name,
                    "duration_ms": info.duration_millis,
                    "resolution": f"{info.width}x{info.height}",
                    "fps": round(info.frame_rate, 3),
                    "bitrate": info.bitrate,
                }
            },
        )
        return info
