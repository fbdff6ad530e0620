"""
Transcode Engine: исходник -> набор HLS-рендишенов + мастер-плейлист.

Порядок:
1) метаданные (MediaInspector или готовый MediaInfo), дефолты fps/sample rate/каналов
2) отбор профилей без апскейла (пусто -> NoApplicableProfile)
3) транскодирование по профилям; ошибка профиля логируется и профиль пропускается
4) мастер-плейлист только по успешным профилям (ноль успешных -> TranscodeFailed)
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path

from vod_pipeline.common.config import get_settings
from vod_pipeline.common.errors import NoApplicableProfile, StorageIOError, TranscodeFailed
from vod_pipeline.common.logging import get_transcode_logger
from vod_pipeline.common.metrics import PROFILE_TRANSCODE_TOTAL
from vod_pipeline.media import runner
from vod_pipeline.media.inspector import MediaInfo, MediaInspector
from vod_pipeline.storage.gateway import StorageGateway

from .ffmpeg import hls_profile_command, thumbnail_command
from .playlist import (
    MASTER_PLAYLIST_NAME,
    build_master_playlist,
    relativize_segment_uris,
    sub_playlist_name,
)
from .profiles import DEFAULT_PROFILES, ResolutionProfile, applicable_profiles

log = get_transcode_logger()

DEFAULT_FRAME_RATE = 24.0
DEFAULT_SAMPLE_RATE = 48000
DEFAULT_CHANNELS = 2
THUMBNAIL_MAX_OFFSET_MS = 2000


@dataclass
class TranscodeResult:
    master_key: str
    profiles: list[str]
    failed_profiles: list[str] = field(default_factory=list)
    media: MediaInfo | None = None


@dataclass(frozen=True)
class _EncodeParams:
    frame_rate: float
    sample_rate: int
    channels: int
    has_audio: bool


def _encode_params(info: MediaInfo) -> _EncodeParams:
    fps = info.frame_rate if info.frame_rate and info.frame_rate > 0 else DEFAULT_FRAME_RATE
    sr = info.sample_rate if info.sample_rate and info.sample_rate > 0 else DEFAULT_SAMPLE_RATE
    ch = info.channels if info.channels and info.channels > 0 else DEFAULT_CHANNELS
    return _EncodeParams(
        frame_rate=fps,
        sample_rate=sr,
        channels=ch,
        has_audio=bool(info.audio_codec),
    )


def thumbnail_offset_millis(duration_millis: int | None) -> int:
    """Кадр на min(2s, середина ролика)."""
    half = max(0, int(duration_millis or 0) // 2)
    return min(THUMBNAIL_MAX_OFFSET_MS, half)


class TranscodeEngine:
    def __init__(
        self,
        gateway: StorageGateway,
        *,
        inspector: MediaInspector | None = None,
        run: Callable[..., runner.CommandResult] | None = None,
        profiles: Sequence[ResolutionProfile] = DEFAULT_PROFILES,
    ) -> None:
        self.gateway = gateway
        self.inspector = inspector or MediaInspector(run=run)
        self._run = run
        self.profiles = tuple(profiles)

    def _exec(self, cmd: list[str], timeout_sec: float) -> runner.CommandResult:
        run = self._run or runner.run_command
        return run(cmd, timeout_sec=timeout_sec)

    # -------------------------------------------------------------------------
    # Транскодирование
    # -------------------------------------------------------------------------
    def transcode(
        self,
        source_key: str,
        *,
        owner_id: str,
        job_id: str,
        media: MediaInfo | None = None,
    ) -> TranscodeResult:
        s = get_settings()
        source = self.gateway.resolve(source_key)
        info = media or self.inspector.inspect(source)

        selected = applicable_profiles(info.width, info.height, self.profiles)
        if not selected:
            raise NoApplicableProfile(
                "Исходник меньше минимального профиля",
                {"resolution": f"{info.width}x{info.height}"},
            )

        hls_key = self.gateway.processed_hls_key(owner_id, job_id)
        out_dir = self.gateway.ensure_dir(hls_key)
        params = _encode_params(info)

        def _one(profile: ResolutionProfile) -> bool:
            return self._transcode_profile(
                source=source,
                out_dir_key=hls_key,
                profile=profile,
                params=params,
                job_id=job_id,
            )

        parallel = max(1, int(s.transcode_max_parallel_profiles or 1))
        if parallel > 1 and len(selected) > 1:
            with ThreadPoolExecutor(
                max_workers=min(parallel, len(selected)), thread_name_prefix="profile"
            ) as ex:
                outcomes = list(ex.map(_one, selected))
        else:
            outcomes = [_one(p) for p in selected]

        produced = [p for p, ok in zip(selected, outcomes, strict=True) if ok]
        failed = [p.name for p, ok in zip(selected, outcomes, strict=True) if not ok]

        if not produced:
            raise TranscodeFailed(
                "Ни один профиль не получен",
                {"job_id": job_id, "profiles": [p.name for p in selected]},
            )

        master_key = f"{hls_key}/{MASTER_PLAYLIST_NAME}"
        master = build_master_playlist(produced, has_audio=params.has_audio)
        self.gateway.write_text(master_key, master)

        log.info(
            "transcode_done",
            extra={
                "payload": {
                    "job_id": job_id,
                    "out_dir": out_dir.name,
                    "profiles": [p.name for p in produced],
                    "failed_profiles": failed,
                }
            },
        )
        return TranscodeResult(
            master_key=master_key,
            profiles=[p.name for p in produced],
            failed_profiles=failed,
            media=info,
        )

    def _transcode_profile(
        self,
        *,
        source: Path,
        out_dir_key: str,
        profile: ResolutionProfile,
        params: _EncodeParams,
        job_id: str,
    ) -> bool:
        s = get_settings()
        try:
            out_dir = self.gateway.ensure_dir(out_dir_key)
            cmd = hls_profile_command(
                ffmpeg_bin=s.ffmpeg_bin,
                source=source,
                out_dir=out_dir,
                profile=profile,
                frame_rate=params.frame_rate,
                sample_rate=params.sample_rate,
                channels=params.channels,
                preset=s.transcode_preset,
                has_audio=params.has_audio,
            )
            res = self._exec(cmd, timeout_sec=s.transcode_timeout_sec)
            playlist_key = f"{out_dir_key}/{sub_playlist_name(profile)}"
            if not res.ok or not self.gateway.is_file(playlist_key):
                PROFILE_TRANSCODE_TOTAL.labels(profile=profile.name, result="failed").inc()
                log.warning(
                    "profile_transcode_failed",
                    extra={
                        "payload": {
                            "job_id": job_id,
                            "profile": profile.name,
                            "returncode": res.returncode,
                            "stderr": res.stderr_tail[-500:],
                        }
                    },
                )
                return False
            text = self.gateway.read_text(playlist_key)
            fixed = relativize_segment_uris(text)
            if fixed != text:
                self.gateway.write_text(playlist_key, fixed)
        except (runner.CommandTimeout, OSError, StorageIOError) as e:
            PROFILE_TRANSCODE_TOTAL.labels(profile=profile.name, result="failed").inc()
            log.warning(
                "profile_transcode_failed",
                extra={"payload": {"job_id": job_id, "profile": profile.name, "err": str(e)[:300]}},
            )
            return False

        PROFILE_TRANSCODE_TOTAL.labels(profile=profile.name, result="ok").inc()
        log.info("profile_transcode_ok", extra={"payload": {"job_id": job_id, "profile": profile.name}})
        return True

    # -------------------------------------------------------------------------
    # Постер
    # -------------------------------------------------------------------------
    def capture_thumbnail(self, source_key: str, dst_key: str, at_millis: int) -> str:
        """
        Снимает один кадр 640x360 JPEG. Ошибка -> TranscodeFailed.
        """
        s = get_settings()
        source = self.gateway.resolve(source_key)
        target = self.gateway.resolve(dst_key)
        target.parent.mkdir(parents=True, exist_ok=True)
        cmd = thumbnail_command(
            ffmpeg_bin=s.ffmpeg_bin, source=source, target=target, at_millis=at_millis
        )
        try:
            res = self._exec(cmd, timeout_sec=s.thumbnail_timeout_sec)
        except (runner.CommandTimeout, OSError) as e:
            raise TranscodeFailed("Постер не получен", {"err": str(e)[:300]}) from e
        if not res.ok or not target.is_file():
            raise TranscodeFailed("Постер не получен", {"stderr": res.stderr_tail[-300:]})
        return dst_key
