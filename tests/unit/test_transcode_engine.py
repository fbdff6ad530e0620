from __future__ import annotations

import io
from pathlib import Path

import pytest

from vod_pipeline.common.config import get_settings
from vod_pipeline.common.errors import NoApplicableProfile, TranscodeFailed
from vod_pipeline.media.inspector import MediaInfo
from vod_pipeline.media.runner import CommandResult
from vod_pipeline.storage.gateway import StorageGateway
from vod_pipeline.transcode.engine import TranscodeEngine, thumbnail_offset_millis


def _media(
    width: int, height: int, *, fps: float = 25.0, audio_codec: str | None = "aac"
) -> MediaInfo:
    return MediaInfo(
        duration_millis=30_000,
        width=width,
        height=height,
        frame_rate=fps,
        sample_rate=0,
        channels=0,
        video_codec="h264",
        audio_codec=audio_codec,
        bitrate=0,
    )


class _FakeFfmpeg:
    """Пишет то, что написал бы ffmpeg; профили из fail падают."""

    def __init__(self, fail: set[str] | None = None, garbled: set[str] | None = None) -> None:
        self.fail = fail or set()
        self.garbled = garbled or set()
        self.calls: list[list[str]] = []

    def __call__(self, cmd, *, timeout_sec):
        _ = timeout_sec
        self.calls.append(cmd)
        target = Path(cmd[-1])
        if target.suffix == ".m3u8":
            name = target.stem
            if name in self.fail:
                return CommandResult(1, "", f"{name}: encoder error")
            if name in self.garbled:
                target.write_bytes(b"#EXTM3U\n\xff\xfe\n")
                return CommandResult(0, "", "")
            segment = target.parent / f"{name}_000.ts"
            segment.write_bytes(b"\x47" * 188)
            target.write_text(
                f"#EXTM3U\n#EXT-X-PLAYLIST-TYPE:VOD\n#EXTINF:10.0,\n{segment}\n#EXT-X-ENDLIST\n",
                encoding="utf-8",
            )
            return CommandResult(0, "", "")
        target.write_bytes(b"\xff\xd8jpeg")
        return CommandResult(0, "", "")


@pytest.fixture()
def gateway(tmp_path) -> StorageGateway:
    return StorageGateway(tmp_path / "videos")


@pytest.fixture()
def source_key(gateway) -> str:
    return gateway.store(io.BytesIO(b"raw"), "clip.mp4", "u-1")


def test_transcode_builds_ladder_and_master(gateway, source_key) -> None:
    ffmpeg = _FakeFfmpeg()
    engine = TranscodeEngine(gateway, run=ffmpeg)

    result = engine.transcode(source_key, owner_id="u-1", job_id="j-1", media=_media(1280, 720))

    assert result.profiles == ["240p", "360p", "480p", "720p"]
    assert result.failed_profiles == []
    assert result.master_key == "u-1/videos/processed/j-1/hls/master.m3u8"
    master = gateway.read_text(result.master_key)
    assert master.count("#EXT-X-STREAM-INF:") == 4
    assert "1080p.m3u8" not in master

    sub = gateway.read_text("u-1/videos/processed/j-1/hls/240p.m3u8")
    assert "\n240p_000.ts\n" in sub
    assert str(gateway.root) not in sub


def test_transcode_partial_failure_omits_profile(gateway, source_key) -> None:
    engine = TranscodeEngine(gateway, run=_FakeFfmpeg(fail={"360p"}))

    result = engine.transcode(source_key, owner_id="u-1", job_id="j-1", media=_media(854, 480))

    assert result.profiles == ["240p", "480p"]
    assert result.failed_profiles == ["360p"]
    master = gateway.read_text(result.master_key)
    assert master.count("#EXT-X-STREAM-INF:") == 2
    assert "360p.m3u8" not in master


def test_transcode_all_profiles_failed(gateway, source_key) -> None:
    engine = TranscodeEngine(gateway, run=_FakeFfmpeg(fail={"240p", "360p"}))

    with pytest.raises(TranscodeFailed):
        engine.transcode(source_key, owner_id="u-1", job_id="j-1", media=_media(640, 360))
    assert not gateway.exists("u-1/videos/processed/j-1/hls/master.m3u8")


def test_transcode_skips_profile_with_undecodable_playlist(gateway, source_key) -> None:
    engine = TranscodeEngine(gateway, run=_FakeFfmpeg(garbled={"360p"}))

    result = engine.transcode(source_key, owner_id="u-1", job_id="j-1", media=_media(854, 480))

    assert result.profiles == ["240p", "480p"]
    assert result.failed_profiles == ["360p"]
    assert "360p.m3u8" not in gateway.read_text(result.master_key)


def test_transcode_without_audio_has_video_only_master(gateway, source_key) -> None:
    engine = TranscodeEngine(gateway, run=_FakeFfmpeg())

    result = engine.transcode(
        source_key, owner_id="u-1", job_id="j-1", media=_media(640, 360, audio_codec=None)
    )

    master = gateway.read_text(result.master_key)
    assert master.count("#EXT-X-STREAM-INF:") == 2
    assert "mp4a" not in master


def test_transcode_source_below_smallest_profile(gateway, source_key) -> None:
    ffmpeg = _FakeFfmpeg()
    engine = TranscodeEngine(gateway, run=ffmpeg)

    with pytest.raises(NoApplicableProfile):
        engine.transcode(source_key, owner_id="u-1", job_id="j-1", media=_media(320, 180))
    assert ffmpeg.calls == []


def test_transcode_parallel_profiles(gateway, source_key) -> None:
    s = get_settings()
    snapshot = s.transcode_max_parallel_profiles
    try:
        s.transcode_max_parallel_profiles = 3
        engine = TranscodeEngine(gateway, run=_FakeFfmpeg(fail={"480p"}))
        result = engine.transcode(
            source_key, owner_id="u-1", job_id="j-1", media=_media(1920, 1080)
        )
    finally:
        s.transcode_max_parallel_profiles = snapshot

    assert result.profiles == ["240p", "360p", "720p", "1080p"]
    assert result.failed_profiles == ["480p"]


def test_transcode_defaults_frame_rate(gateway, source_key) -> None:
    ffmpeg = _FakeFfmpeg()
    engine = TranscodeEngine(gateway, run=ffmpeg)

    engine.transcode(source_key, owner_id="u-1", job_id="j-1", media=_media(426, 240, fps=0))

    cmd = ffmpeg.calls[0]
    assert cmd[cmd.index("-g") + 1] == "48"
    assert cmd[cmd.index("-ar") + 1] == "48000"
    assert cmd[cmd.index("-ac") + 1] == "2"


def test_capture_thumbnail(gateway, source_key) -> None:
    engine = TranscodeEngine(gateway, run=_FakeFfmpeg())
    key = engine.capture_thumbnail(source_key, "u-1/videos/processed/j-1/thumbnail.jpg", 2000)
    assert gateway.is_file(key)


def test_capture_thumbnail_failure(gateway, source_key) -> None:
    engine = TranscodeEngine(gateway, run=lambda cmd, *, timeout_sec: CommandResult(1, "", "err"))
    with pytest.raises(TranscodeFailed):
        engine.capture_thumbnail(source_key, "u-1/videos/processed/j-1/thumbnail.jpg", 0)


def test_thumbnail_offset():
    assert thumbnail_offset_millis(60_000) == 2000
    assert thumbnail_offset_millis(3000) == 1500
    assert thumbnail_offset_millis(None) == 0
