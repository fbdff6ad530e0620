"""
Job Store: персистентность видео-задач.

- JobStore: протокол (find_by_id / save / locked)
- SqlJobStore: SQLAlchemy, SELECT ... FOR UPDATE в locked()
- InMemoryJobStore: для dev/тестов (QUEUE_MODE=inline, JOB_STORE_MODE=memory)
"""

from __future__ import annotations

import copy
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from vod_pipeline.common.config import get_settings
from vod_pipeline.common.time import utc_now
from vod_pipeline.domain.models import Job

from .db import db_session, get_session_factory
from .models import VideoJobRow


class JobStore(Protocol):
    def find_by_id(self, job_id: str) -> Job | None: ...

    def save(self, job: Job) -> None: ...

    def locked(self, job_id: str):
        """
        Контекст, внутри которого задача загружена под эксклюзивной блокировкой.
        Отдаёт Job | None.
        """
        ...


# =============================================================================
# SQL
# =============================================================================
def _row_to_job(row: VideoJobRow) -> Job:
    artifacts: dict[str, str] = {}
    for pair in row.resolution_artifacts or []:
        if isinstance(pair, list | tuple) and len(pair) == 2:
            artifacts[str(pair[0])] = str(pair[1])
    return Job(
        id=row.id,
        owner_id=row.owner_id,
        original_path=row.original_path,
        status=row.status,
        file_size_bytes=int(row.file_size_bytes or 0),
        duration_millis=row.duration_millis,
        title=row.title or "",
        thumbnail_key=row.thumbnail_key,
        resolution_artifacts=artifacts,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _apply_job(row: VideoJobRow, job: Job) -> None:
    row.owner_id = job.owner_id
    row.status = job.status
    row.title = job.title or ""
    row.original_path = job.original_path
    row.file_size_bytes = int(job.file_size_bytes or 0)
    row.duration_millis = job.duration_millis
    row.thumbnail_key = job.thumbnail_key
    row.resolution_artifacts = [[k, v] for k, v in job.resolution_artifacts.items()]
    row.created_at = job.created_at
    row.updated_at = job.updated_at or utc_now()


class SqlJobStore:
    def __init__(self, session_factory: sessionmaker[Session] | None = None) -> None:
        self._factory = session_factory
        # session, открытая внутри locked() текущего потока
        self._local = threading.local()

    def _factory_or_default(self) -> sessionmaker[Session]:
        return self._factory or get_session_factory()

    def find_by_id(self, job_id: str) -> Job | None:
        session = getattr(self._local, "session", None)
        if session is not None:
            row = session.get(VideoJobRow, job_id)
            return _row_to_job(row) if row else None
        with db_session(self._factory_or_default()) as s:
            row = s.get(VideoJobRow, job_id)
            return _row_to_job(row) if row else None

    def save(self, job: Job) -> None:
        """
        Сохраняет задачу.
        Внутри locked() изменение фиксируется при выходе из контекста
        (вместе со снятием блокировки строки), вне его сразу.
        """
        session = getattr(self._local, "session", None)
        if session is not None:
            self._upsert(session, job)
            session.flush()
            return
        with db_session(self._factory_or_default()) as s:
            self._upsert(s, job)

    @staticmethod
    def _upsert(session: Session, job: Job) -> None:
        row = session.get(VideoJobRow, job.id)
        if row is None:
            row = VideoJobRow(id=job.id)
            session.add(row)
        _apply_job(row, job)

    @contextmanager
    def locked(self, job_id: str) -> Iterator[Job | None]:
        with db_session(self._factory_or_default()) as s:
            row = s.execute(
                select(VideoJobRow).where(VideoJobRow.id == job_id).with_for_update()
            ).scalar_one_or_none()
            self._local.session = s
            try:
                yield _row_to_job(row) if row else None
            finally:
                self._local.session = None


# =============================================================================
# IN-MEMORY
# =============================================================================
class InMemoryJobStore:
    def __init__(self) -> None:
        self._jobs: dict[str, Job] = {}
        self._lock = threading.Lock()
        self._row_locks: dict[str, threading.RLock] = {}

    def find_by_id(self, job_id: str) -> Job | None:
        with self._lock:
            job = self._jobs.get(job_id)
            return copy.deepcopy(job) if job else None

    def save(self, job: Job) -> None:
        with self._lock:
            self._jobs[job.id] = copy.deepcopy(job)

    @contextmanager
    def locked(self, job_id: str) -> Iterator[Job | None]:
        with self._lock:
            row_lock = self._row_locks.setdefault(job_id, threading.RLock())
        with row_lock:
            yield self.find_by_id(job_id)


_STORE: JobStore | None = None


def get_job_store() -> JobStore:
    global _STORE
    if _STORE is None:
        mode = (get_settings().job_store_mode or "sql").lower().strip()
        _STORE = InMemoryJobStore() if mode == "memory" else SqlJobStore()
    return _STORE


def set_job_store(store: JobStore | None) -> None:
    global _STORE
    _STORE = store
