"""
Мастер-плейлист HLS.
"""

from __future__ import annotations

from collections.abc import Iterable

from .profiles import ResolutionProfile

MASTER_PLAYLIST_NAME = "master.m3u8"


def sub_playlist_name(profile: ResolutionProfile) -> str:
    return f"{profile.name}.m3u8"


def build_master_playlist(
    profiles: Iterable[ResolutionProfile], *, has_audio: bool = True
) -> str:
    """
    #EXTM3U, #EXT-X-VERSION:3, затем по блоку STREAM-INF + имя под-плейлиста
    на каждый профиль в порядке возрастания высоты.
    Без аудио в BANDWIDTH и CODECS попадает только видео.
    """
    lines = ["#EXTM3U", "#EXT-X-VERSION:3"]
    for p in sorted(profiles, key=lambda x: x.height):
        lines.append(
            f"#EXT-X-STREAM-INF:BANDWIDTH={p.stream_bandwidth(has_audio)},"
            f"RESOLUTION={p.width}x{p.height},"
            f'CODECS="{p.stream_codecs(has_audio)}"'
        )
        lines.append(sub_playlist_name(p))
    return "\n".join(lines) + "\n"


def relativize_segment_uris(text: str) -> str:
    """Сегменты в под-плейлисте адресуются по имени файла рядом с плейлистом."""
    out: list[str] = []
    for line in text.splitlines():
        stripped = line.strip()
        if stripped and not stripped.startswith("#"):
            line = stripped.replace("\\", "/").rsplit("/", 1)[-1]
        out.append(line)
    return "\n".join(out) + "\n"
