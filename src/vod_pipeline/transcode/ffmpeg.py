"""
Сборка командных строк ffmpeg.

- HLS VOD на профиль: 10-секундные сегменты, GOP = 2 * fps, yuv420p
- постер-кадр 640x360
"""

from __future__ import annotations

from pathlib import Path

from .profiles import ResolutionProfile

HLS_SEGMENT_SECONDS = 10
PIXEL_FORMAT = "yuv420p"
THUMBNAIL_SIZE = (640, 360)


def gop_size(frame_rate: float) -> int:
    return max(1, int(round(frame_rate * 2)))


def hls_profile_command(
    *,
    ffmpeg_bin: str,
    source: Path,
    out_dir: Path,
    profile: ResolutionProfile,
    frame_rate: float,
    sample_rate: int,
    channels: int,
    preset: str,
    has_audio: bool = True,
) -> list[str]:
    gop = gop_size(frame_rate)
    vbr = profile.video_bitrate_bps
    cmd = [
        ffmpeg_bin,
        "-hide_banner",
        "-nostdin",
        "-y",
        "-i",
        str(source),
        "-map",
        "0:v:0",
    ]
    if has_audio:
        cmd += ["-map", "0:a:0?"]
    cmd += [
        "-vf",
        f"scale={profile.width}:{profile.height}:force_original_aspect_ratio=decrease,"
        f"pad={profile.width}:{profile.height}:(ow-iw)/2:(oh-ih)/2",
        "-c:v",
        "libx264",
        "-preset",
        preset,
        "-profile:v",
        profile.codec_profile,
        "-level:v",
        profile.codec_level,
        "-pix_fmt",
        PIXEL_FORMAT,
        "-r",
        f"{frame_rate:g}",
        "-g",
        str(gop),
        "-keyint_min",
        str(gop),
        "-sc_threshold",
        "0",
        "-b:v",
        str(vbr),
        "-maxrate",
        str(vbr),
        "-bufsize",
        str(vbr * 2),
    ]
    if has_audio:
        cmd += [
            "-c:a",
            "aac",
            "-b:a",
            str(profile.audio_bitrate_bps),
            "-ar",
            str(sample_rate),
            "-ac",
            str(channels),
        ]
    cmd += [
        "-f",
        "hls",
        "-hls_time",
        str(HLS_SEGMENT_SECONDS),
        "-hls_playlist_type",
        "vod",
        "-hls_list_size",
        "0",
        "-hls_segment_filename",
        str(out_dir / f"{profile.name}_%03d.ts"),
        str(out_dir / f"{profile.name}.m3u8"),
    ]
    return cmd


def thumbnail_command(*, ffmpeg_bin: str, source: Path, target: Path, at_millis: int) -> list[str]:
    w, h = THUMBNAIL_SIZE
    return [
        ffmpeg_bin,
        "-hide_banner",
        "-nostdin",
        "-y",
        "-ss",
        f"{max(0, at_millis) / 1000:.3f}",
        "-i",
        str(source),
        "-frames:v",
        "1",
        "-vf",
        f"scale={w}:{h}:force_original_aspect_ratio=decrease,pad={w}:{h}:(ow-iw)/2:(oh-ih)/2",
        "-q:v",
        "3",
        str(target),
    ]
