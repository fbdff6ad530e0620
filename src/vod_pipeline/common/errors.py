"""
Единые ошибки и коды ошибок.

Назначение:
- предсказуемые коды для HTTP/очередей/логов
- разделение: ошибки, которые валят задачу, и ошибки очистки (только лог)
"""

from __future__ import annotations

from dataclasses import dataclass


class ErrCode:
    # Общие
    UNKNOWN = "unknown"
    VALIDATION = "validation"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    LOCKED = "locked"

    # Хранилище
    PATH_VIOLATION = "path_violation"
    STORAGE_IO = "storage_io_error"

    # Медиа / транскодирование
    UNREADABLE_MEDIA = "unreadable_media"
    NO_APPLICABLE_PROFILE = "no_applicable_profile"
    TRANSCODE_FAILED = "transcode_failed"

    # Доставка / транспорт
    STREAM_TOKEN = "stream_token_invalid"
    POOL_SATURATED = "pool_saturated"
    DB_ERROR = "db_error"
    REDIS_ERROR = "redis_error"


@dataclass
class AppError(Exception):
    """
    Базовая ошибка приложения.
    - code: стабильный код ошибки
    - message: безопасное сообщение
    - details: доп. данные (без секретов и внутренних путей для клиента)
    """

    code: str
    message: str
    details: dict | None = None

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.code}: {self.message}"


class ValidationError(AppError):
    def __init__(self, message: str = "Ошибка валидации", details: dict | None = None) -> None:
        super().__init__(ErrCode.VALIDATION, message, details)


class UnauthorizedError(AppError):
    def __init__(self, message: str = "Не авторизован", details: dict | None = None) -> None:
        super().__init__(ErrCode.UNAUTHORIZED, message, details)


class NotFoundError(AppError):
    def __init__(self, message: str = "Не найдено", details: dict | None = None) -> None:
        super().__init__(ErrCode.NOT_FOUND, message, details)


# =============================================================================
# ХРАНИЛИЩЕ
# =============================================================================
class PathViolation(AppError):
    """Ключ выходит за пределы корня хранилища. Никогда не подавляется молча."""

    def __init__(self, message: str = "Путь вне хранилища", details: dict | None = None) -> None:
        super().__init__(ErrCode.PATH_VIOLATION, message, details)


class StorageIOError(AppError):
    def __init__(self, message: str = "Ошибка ввода-вывода", details: dict | None = None) -> None:
        super().__init__(ErrCode.STORAGE_IO, message, details)


# =============================================================================
# МЕДИА / ТРАНСКОДИРОВАНИЕ (валят задачу)
# =============================================================================
class UnreadableMedia(AppError):
    def __init__(self, message: str = "Файл не читается", details: dict | None = None) -> None:
        super().__init__(ErrCode.UNREADABLE_MEDIA, message, details)


class NoApplicableProfile(AppError):
    def __init__(
        self, message: str = "Нет подходящих профилей", details: dict | None = None
    ) -> None:
        super().__init__(ErrCode.NO_APPLICABLE_PROFILE, message, details)


class TranscodeFailed(AppError):
    def __init__(
        self, message: str = "Транскодирование не удалось", details: dict | None = None
    ) -> None:
        super().__init__(ErrCode.TRANSCODE_FAILED, message, details)


# =============================================================================
# ДОСТАВКА / ТРАНСПОРТ
# =============================================================================
class StreamTokenError(AppError):
    def __init__(self, message: str = "Токен недействителен", details: dict | None = None) -> None:
        super().__init__(ErrCode.STREAM_TOKEN, message, details)


class PoolSaturatedError(AppError):
    def __init__(self, message: str = "Пул воркеров заполнен", details: dict | None = None) -> None:
        super().__init__(ErrCode.POOL_SATURATED, message, details)


class ForbiddenError(AppError):
    def __init__(self, message: str = "Доступ запрещён", details: dict | None = None) -> None:
        super().__init__(ErrCode.FORBIDDEN, message, details)


class ResourceLocked(AppError):
    """Видео ещё не обработано (UPLOADED / PROCESSING)."""

    def __init__(self, message: str = "Видео ещё обрабатывается", details: dict | None = None) -> None:
        super().__init__(ErrCode.LOCKED, message, details)


class RangeNotSatisfiable(AppError):
    def __init__(self, total: int, details: dict | None = None) -> None:
        super().__init__(ErrCode.VALIDATION, "Диапазон вне файла", details)
        self.total = total
