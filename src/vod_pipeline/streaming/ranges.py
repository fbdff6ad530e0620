"""
HTTP Range (RFC 7233), только первый диапазон.

- некорректный заголовок -> None (отдаём файл целиком)
- диапазон вне файла -> RangeNotSatisfiable (416)
- конец диапазона обрезается по размеру файла
"""

from __future__ import annotations

from dataclasses import dataclass

from vod_pipeline.common.errors import RangeNotSatisfiable


@dataclass(frozen=True)
class ByteRange:
    start: int
    end: int  # включительно
    total: int

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    @property
    def content_range(self) -> str:
        return f"bytes {self.start}-{self.end}/{self.total}"


def parse_range(header: str | None, total: int) -> ByteRange | None:
    if not header:
        return None
    unit, sep, spec = header.strip().partition("=")
    if not sep or unit.strip().lower() != "bytes":
        return None

    first = spec.split(",", 1)[0].strip()
    start_s, dash, end_s = first.partition("-")
    if not dash:
        return None
    start_s, end_s = start_s.strip(), end_s.strip()

    try:
        if start_s == "":
            # bytes=-N: последние N байт
            suffix = int(end_s)
            if suffix < 0:
                return None
            if suffix == 0 or total <= 0:
                raise RangeNotSatisfiable(total)
            return ByteRange(start=max(0, total - suffix), end=total - 1, total=total)

        start = int(start_s)
        end = int(end_s) if end_s else total - 1
    except ValueError:
        return None

    if start < 0 or end < start:
        return None
    if start >= total:
        raise RangeNotSatisfiable(total)
    return ByteRange(start=start, end=min(end, total - 1), total=total)
