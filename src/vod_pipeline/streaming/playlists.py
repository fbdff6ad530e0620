"""
Переписывание HLS-плейлистов: каждая URI-строка получает token.
"""

from __future__ import annotations

from urllib.parse import quote

M3U8_SUFFIX = ".m3u8"


def is_playlist(name: str) -> bool:
    return name.lower().endswith(M3U8_SUFFIX)


def append_token(uri: str, token: str) -> str:
    sep = "&" if "?" in uri else "?"
    return f"{uri}{sep}token={quote(token, safe='')}"


def rewrite_playlist(text: str, token: str) -> str:
    """
    Непустые строки без "#" являются URI (сегмент или под-плейлист).
    Теги и пустые строки не меняются, переводы строк сохраняются.
    """
    out: list[str] = []
    for line in text.splitlines(keepends=True):
        body = line.rstrip("\r\n")
        ending = line[len(body) :]
        stripped = body.strip()
        if stripped and not stripped.startswith("#"):
            body = append_token(stripped, token)
        out.append(body + ending)
    return "".join(out)
