"""
Контракты задач очереди.

Правила:
- payload должен быть JSON-совместимым
- поле schema_version обязательно (для эволюции контрактов)
- attempts увеличивается транспортным retry-слоем
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Literal

from vod_pipeline.common.errors import ValidationError

SchemaV1 = Literal["v1"]
SCHEMA_VERSION: SchemaV1 = "v1"


@dataclass
class ProcessingEvent:
    job_id: str
    original_path: str
    file_size_bytes: int
    owner_id: str
    notify_address: str | None = None
    event_id: str | None = None
    attempts: int = 0
    schema_version: SchemaV1 = SCHEMA_VERSION

    def to_payload(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> ProcessingEvent:
        version = payload.get("schema_version")
        if version != SCHEMA_VERSION:
            raise ValidationError("Неподдерживаемая schema_version", {"schema_version": version})

        missing = [k for k in ("job_id", "original_path", "owner_id") if not payload.get(k)]
        if missing:
            raise ValidationError("Нет обязательных полей", {"missing": missing})

        try:
            size = int(payload.get("file_size_bytes") or 0)
            attempts = int(payload.get("attempts") or 0)
        except (TypeError, ValueError) as e:
            raise ValidationError("Некорректные числовые поля") from e

        return cls(
            job_id=str(payload["job_id"]),
            original_path=str(payload["original_path"]),
            file_size_bytes=size,
            owner_id=str(payload["owner_id"]),
            notify_address=payload.get("notify_address") or None,
            event_id=payload.get("event_id") or None,
            attempts=attempts,
        )
