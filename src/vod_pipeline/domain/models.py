"""
Доменная модель видео-задачи.

Job создаётся коллаборатором загрузки (UPLOADED) и меняется только диспетчером.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from vod_pipeline.common.time import utc_now

from .enums import ArtifactKind, JobStatus
from .state_machine import transition


class InvalidTransition(ValueError):
    pass


@dataclass
class Job:
    id: str
    owner_id: str
    original_path: str | None
    status: JobStatus = JobStatus.UPLOADED
    file_size_bytes: int = 0
    duration_millis: int | None = None
    title: str = ""
    thumbnail_key: str | None = None
    # Порядок вставки сохраняется (dict упорядочен)
    resolution_artifacts: dict[str, str] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    @property
    def display_name(self) -> str:
        return self.title or self.id

    def move_to(self, target: JobStatus) -> None:
        """
        Переход статуса через машину состояний.
        Недопустимый переход -> InvalidTransition, статус не меняется.
        """
        res = transition(self.status, target)
        if not res.ok:
            raise InvalidTransition(f"{self.status.value} -> {target.value}: {res.reason}")
        self.status = res.status
        self.updated_at = utc_now()

    def mark_ready(self, master_key: str) -> None:
        self.move_to(JobStatus.READY)
        self.resolution_artifacts[ArtifactKind.hls_master.value] = master_key

    def artifact(self, kind: ArtifactKind | str) -> str | None:
        key = kind.value if isinstance(kind, ArtifactKind) else kind
        return self.resolution_artifacts.get(key)
