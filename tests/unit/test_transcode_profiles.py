from __future__ import annotations

from vod_pipeline.transcode.ffmpeg import gop_size, hls_profile_command, thumbnail_command
from vod_pipeline.transcode.playlist import (
    build_master_playlist,
    relativize_segment_uris,
)
from vod_pipeline.transcode.profiles import DEFAULT_PROFILES, applicable_profiles


def test_applicable_profiles_never_upscale():
    names = [p.name for p in applicable_profiles(854, 480)]
    assert names == ["240p", "360p", "480p"]


def test_applicable_profiles_both_axes():
    # портретное видео 1080x1920 не вмещает ни один горизонтальный профиль шире 1080
    names = [p.name for p in applicable_profiles(1080, 1920)]
    assert names == ["240p", "360p", "480p"]
    assert applicable_profiles(320, 200) == []


def test_codecs_string():
    by_name = {p.name: p for p in DEFAULT_PROFILES}
    assert by_name["240p"].codecs == "avc1.42e01e,mp4a.40.2"
    assert by_name["1080p"].codecs == "avc1.640028,mp4a.40.2"
    assert by_name["720p"].bandwidth == 2_928_000


def test_master_playlist_one_block_per_profile_sorted():
    selected = [DEFAULT_PROFILES[2], DEFAULT_PROFILES[0], DEFAULT_PROFILES[1]]
    text = build_master_playlist(selected)
    lines = text.splitlines()

    assert lines[:2] == ["#EXTM3U", "#EXT-X-VERSION:3"]
    assert text.count("#EXT-X-STREAM-INF:") == 3
    assert [ln for ln in lines if not ln.startswith("#")] == ["240p.m3u8", "360p.m3u8", "480p.m3u8"]
    assert 'RESOLUTION=426x240,CODECS="avc1.42e01e,mp4a.40.2"' in lines[2]


def test_relativize_segment_uris():
    text = "#EXTM3U\n#EXTINF:10.0,\n/data/u/hls/240p_000.ts\n#EXT-X-ENDLIST\n"
    out = relativize_segment_uris(text)
    assert "240p_000.ts\n" in out
    assert "/data/" not in out
    assert out.startswith("#EXTM3U\n")


def test_hls_command_shape(tmp_path):
    profile = DEFAULT_PROFILES[1]
    cmd = hls_profile_command(
        ffmpeg_bin="ffmpeg",
        source=tmp_path / "in.mp4",
        out_dir=tmp_path / "hls",
        profile=profile,
        frame_rate=29.97,
        sample_rate=44100,
        channels=2,
        preset="veryfast",
    )
    assert cmd[0] == "ffmpeg"
    assert cmd[cmd.index("-g") + 1] == str(gop_size(29.97)) == "60"
    assert cmd[cmd.index("-pix_fmt") + 1] == "yuv420p"
    assert cmd[cmd.index("-hls_time") + 1] == "10"
    assert cmd[cmd.index("-hls_playlist_type") + 1] == "vod"
    assert cmd[-1].endswith("360p.m3u8")
    assert cmd[cmd.index("-hls_segment_filename") + 1].endswith("360p_%03d.ts")


def test_hls_command_without_audio(tmp_path):
    cmd = hls_profile_command(
        ffmpeg_bin="ffmpeg",
        source=tmp_path / "in.mp4",
        out_dir=tmp_path,
        profile=DEFAULT_PROFILES[0],
        frame_rate=24,
        sample_rate=48000,
        channels=2,
        preset="veryfast",
        has_audio=False,
    )
    assert "-c:a" not in cmd


def test_thumbnail_command_offset(tmp_path):
    cmd = thumbnail_command(
        ffmpeg_bin="ffmpeg", source=tmp_path / "in.mp4", target=tmp_path / "t.jpg", at_millis=1500
    )
    assert cmd[cmd.index("-ss") + 1] == "1.500"
    assert cmd[cmd.index("-frames:v") + 1] == "1"
    assert "scale=640:360" in cmd[cmd.index("-vf") + 1]


def test_master_playlist_without_audio_advertises_video_only():
    text = build_master_playlist([DEFAULT_PROFILES[0]], has_audio=False)

    assert "mp4a" not in text
    assert 'BANDWIDTH=400000,RESOLUTION=426x240,CODECS="avc1.42e01e"' in text
