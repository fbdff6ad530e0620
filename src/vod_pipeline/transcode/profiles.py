"""
Статическая лестница профилей (ResolutionProfile).

Отсортирована по высоте по возрастанию. Не персистится.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

AAC_LC_CODEC = "mp4a.40.2"

_H264_PROFILE_IDC = {
    "baseline": "42e0",
    "main": "4d40",
    "high": "6400",
}


@dataclass(frozen=True)
class ResolutionProfile:
    name: str
    width: int
    height: int
    video_bitrate_bps: int
    audio_bitrate_bps: int
    codec_profile: str
    codec_level: str

    @property
    def bandwidth(self) -> int:
        return self.video_bitrate_bps + self.audio_bitrate_bps

    @property
    def video_codec(self) -> str:
        """RFC 6381: avc1.<profile_idc+constraints><level_idc>."""
        level_idc = int(round(float(self.codec_level) * 10))
        return f"avc1.{_H264_PROFILE_IDC[self.codec_profile]}{level_idc:02x}"

    @property
    def codecs(self) -> str:
        return f"{self.video_codec},{AAC_LC_CODEC}"

    def stream_bandwidth(self, has_audio: bool = True) -> int:
        return self.bandwidth if has_audio else self.video_bitrate_bps

    def stream_codecs(self, has_audio: bool = True) -> str:
        return self.codecs if has_audio else self.video_codec


DEFAULT_PROFILES: tuple[ResolutionProfile, ...] = (
    ResolutionProfile("240p", 426, 240, 400_000, 64_000, "baseline", "3.0"),
    ResolutionProfile("360p", 640, 360, 800_000, 96_000, "main", "3.0"),
    ResolutionProfile("480p", 854, 480, 1_400_000, 128_000, "main", "3.1"),
    ResolutionProfile("720p", 1280, 720, 2_800_000, 128_000, "high", "3.1"),
    ResolutionProfile("1080p", 1920, 1080, 5_000_000, 192_000, "high", "4.0"),
)


def applicable_profiles(
    width: int,
    height: int,
    profiles: Iterable[ResolutionProfile] = DEFAULT_PROFILES,
) -> list[ResolutionProfile]:
    """
    Профили, помещающиеся в исходник по обеим осям (без апскейла).
    """
    return sorted(
        (p for p in profiles if p.width <= width and p.height <= height),
        key=lambda p: p.height,
    )
