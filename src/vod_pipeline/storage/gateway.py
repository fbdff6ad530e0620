"""
Storage Gateway: файловое хранилище под одним корнем (STORAGE_ROOT).

Правила:
- все ключи относительные, разделитель "/"
- ключ проверяется лексически ДО любого обращения к файловой системе
- выход за корень -> PathViolation (никогда не подавляется)

Раскладка:
- {owner}/videos/raw/{uuid}.{ext}
- {owner}/videos/processed/{job_id}/hls/{profile}.m3u8, master.m3u8
"""

from __future__ import annotations

import os
import shutil
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO

from vod_pipeline.common.config import get_settings
from vod_pipeline.common.errors import PathViolation, StorageIOError
from vod_pipeline.common.ids import raw_file_name
from vod_pipeline.common.logging import get_project_logger

log = get_project_logger()

_COPY_CHUNK = 1024 * 1024


@dataclass
class TreeDeletion:
    """
    Результат delete_tree.
    bool(result) == True, если дерево существовало; ошибки по отдельным файлам
    собираются в errors и не прерывают обход.
    """

    existed: bool
    removed: int = 0
    errors: list[str] = field(default_factory=list)

    def __bool__(self) -> bool:
        return self.existed

    @property
    def complete(self) -> bool:
        return self.existed and not self.errors


def _check_key(key: str) -> str:
    if not isinstance(key, str) or not key.strip():
        raise PathViolation("Пустой ключ")
    if "\x00" in key:
        raise PathViolation("Недопустимый символ в ключе")
    normalized = key.replace("\\", "/")
    if normalized.startswith("/") or (len(normalized) > 1 and normalized[1] == ":"):
        raise PathViolation("Абсолютный путь запрещён")
    parts = [p for p in normalized.split("/") if p not in ("", ".")]
    if not parts or ".." in parts:
        raise PathViolation("Путь вне хранилища")
    return "/".join(parts)


def _check_segment(value: str, what: str) -> str:
    value = (value or "").strip()
    if not value or value in (".", "..") or "/" in value or "\\" in value or "\x00" in value:
        raise PathViolation(f"Недопустимый {what}")
    return value


class StorageGateway:
    def __init__(self, root: str | os.PathLike[str]) -> None:
        self.root = Path(root).expanduser().resolve()

    # -------------------------------------------------------------------------
    # Ключи
    # -------------------------------------------------------------------------
    def resolve(self, key: str) -> Path:
        """
        Ключ -> абсолютный путь. Только лексическая проверка, без обращения к ФС.
        """
        clean = _check_key(key)
        candidate = os.path.normpath(os.path.join(str(self.root), clean))
        root = str(self.root)
        if candidate != root and not candidate.startswith(root + os.sep):
            raise PathViolation("Путь вне хранилища")
        return Path(candidate)

    @staticmethod
    def videos_prefix(owner_id: str) -> str:
        return f"{_check_segment(owner_id, 'owner_id')}/videos"

    def processed_key(self, owner_id: str, job_id: str) -> str:
        return f"{self.videos_prefix(owner_id)}/processed/{_check_segment(job_id, 'job_id')}"

    def processed_hls_key(self, owner_id: str, job_id: str) -> str:
        return f"{self.processed_key(owner_id, job_id)}/hls"

    # -------------------------------------------------------------------------
    # Операции
    # -------------------------------------------------------------------------
    def store(self, stream: BinaryIO, logical_name: str, owner_id: str, subdir: str = "raw") -> str:
        """
        Сохраняет поток под {owner}/videos/{subdir}/{uuid}.{ext} и возвращает ключ.
        Из logical_name берётся только расширение.
        """
        ext = os.path.splitext(os.path.basename(logical_name or ""))[1]
        sub = "/".join(_check_segment(s, "subdir") for s in (subdir or "raw").split("/") if s)
        key = f"{self.videos_prefix(owner_id)}/{sub}/{raw_file_name(ext)}"
        path = self.resolve(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with path.open("wb") as out:
                shutil.copyfileobj(stream, out, _COPY_CHUNK)
        except OSError as e:
            raise StorageIOError("Не удалось сохранить файл", {"key": key, "err": str(e)}) from e
        log.info("storage_stored", extra={"payload": {"key": key, "owner_id": owner_id}})
        return key

    def load(self, key: str) -> BinaryIO:
        path = self.resolve(key)
        try:
            return path.open("rb")
        except FileNotFoundError:
            raise
        except OSError as e:
            raise StorageIOError("Не удалось открыть файл", {"key": key, "err": str(e)}) from e

    def iter_range(self, key: str, start: int, length: int, chunk_size: int) -> Iterator[bytes]:
        """
        Открывает файл сразу и возвращает итератор по length байт начиная с start.
        Ошибка открытия поднимается здесь, до начала ответа.
        """
        f = self.load(key)
        try:
            f.seek(start)
        except OSError as e:
            f.close()
            raise StorageIOError("Не удалось прочитать файл", {"key": key, "err": str(e)}) from e
        return self._read_window(f, length, chunk_size)

    @staticmethod
    def _read_window(f: BinaryIO, remaining: int, chunk_size: int) -> Iterator[bytes]:
        try:
            while remaining > 0:
                data = f.read(min(chunk_size, remaining))
                if not data:
                    break
                remaining -= len(data)
                yield data
        finally:
            f.close()

    def exists(self, key: str) -> bool:
        return self.resolve(key).exists()

    def is_file(self, key: str) -> bool:
        return self.resolve(key).is_file()

    def size(self, key: str) -> int:
        path = self.resolve(key)
        try:
            return path.stat().st_size
        except FileNotFoundError:
            raise
        except OSError as e:
            raise StorageIOError("Не удалось прочитать размер", {"key": key, "err": str(e)}) from e

    def ensure_dir(self, key: str) -> Path:
        path = self.resolve(key)
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageIOError("Не удалось создать каталог", {"key": key, "err": str(e)}) from e
        return path

    def write_text(self, key: str, text: str) -> None:
        path = self.resolve(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(text, encoding="utf-8")
        except OSError as e:
            raise StorageIOError("Не удалось записать файл", {"key": key, "err": str(e)}) from e

    def read_text(self, key: str) -> str:
        path = self.resolve(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            raise
        except (OSError, UnicodeDecodeError) as e:
            raise StorageIOError("Не удалось прочитать файл", {"key": key, "err": str(e)}) from e

    def copy(self, src_key: str, dst_key: str) -> None:
        src = self.resolve(src_key)
        dst = self.resolve(dst_key)
        try:
            dst.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(src, dst)
        except OSError as e:
            raise StorageIOError(
                "Не удалось скопировать файл", {"src": src_key, "dst": dst_key, "err": str(e)}
            ) from e

    def delete(self, key: str) -> bool:
        """
        Удаляет файл. False, если его не было.
        """
        path = self.resolve(key)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageIOError("Не удалось удалить файл", {"key": key, "err": str(e)}) from e
        return True

    def delete_tree(self, key: str) -> TreeDeletion:
        """
        Удаляет дерево: сначала дети, потом родители.
        Ошибки по отдельным путям логируются и собираются, обход продолжается.
        """
        top = self.resolve(key)
        if top == self.root:
            raise PathViolation("Нельзя удалить корень хранилища")
        if not top.is_dir():
            return TreeDeletion(existed=False)

        result = TreeDeletion(existed=True)

        def _on_walk_error(err: OSError) -> None:
            result.errors.append(f"{err.filename}: {err.strerror or err}")

        for dirpath, dirnames, filenames in os.walk(top, topdown=False, onerror=_on_walk_error):
            for name in filenames:
                self._remove_one(Path(dirpath) / name, result, is_dir=False)
            for name in dirnames:
                sub = Path(dirpath) / name
                if sub.is_symlink():
                    self._remove_one(sub, result, is_dir=False)
                else:
                    self._remove_one(sub, result, is_dir=True)
        self._remove_one(top, result, is_dir=True)

        if result.errors:
            log.warning(
                "storage_delete_tree_partial",
                extra={"payload": {"key": key, "removed": result.removed, "errors": result.errors[:20]}},
            )
        return result

    @staticmethod
    def _remove_one(path: Path, result: TreeDeletion, *, is_dir: bool) -> None:
        try:
            if is_dir:
                path.rmdir()
            else:
                path.unlink()
            result.removed += 1
        except FileNotFoundError:
            pass
        except OSError as e:
            result.errors.append(f"{path}: {e.strerror or e}")


_GATEWAY: StorageGateway | None = None


def get_storage_gateway() -> StorageGateway:
    global _GATEWAY
    root = Path(get_settings().storage_root).expanduser().resolve()
    if _GATEWAY is None or _GATEWAY.root != root:
        _GATEWAY = StorageGateway(root)
    return _GATEWAY
