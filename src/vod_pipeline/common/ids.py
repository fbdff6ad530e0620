"""
Генерация идентификаторов.

Назначение:
- event_id для очередей и логов
- имена сырых файлов (uuid) в хранилище
"""

from __future__ import annotations

import secrets
import uuid
from datetime import UTC, datetime


def new_uuid() -> str:
    """UUIDv4 строкой."""
    return str(uuid.uuid4())


def new_event_id(prefix: str = "evt") -> str:
    """
    Идентификатор события (лог/очереди/трассировка).
    Формат: <prefix>_<UTCYYYYMMDDHHMMSS>_<rand>
    """
    ts = datetime.now(UTC).strftime("%Y%m%d%H%M%S")
    rnd = secrets.token_hex(6)
    return f"{prefix}_{ts}_{rnd}"


def raw_file_name(extension: str | None) -> str:
    """Имя сырого файла: <uuid>.<ext> (расширение без точки, в нижнем регистре)."""
    ext = (extension or "").strip().lstrip(".").lower()
    return f"{new_uuid()}.{ext}" if ext else new_uuid()
