from __future__ import annotations

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from vod_pipeline.domain.enums import JobStatus
from vod_pipeline.domain.models import Job
from vod_pipeline.storage.db import get_session_factory
from vod_pipeline.storage.job_store import SqlJobStore
from vod_pipeline.storage.models import Base


@pytest.fixture()
def store() -> SqlJobStore:
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    Base.metadata.create_all(engine)
    return SqlJobStore(get_session_factory(engine))


def test_save_and_find_preserves_artifact_order(store) -> None:
    job = Job(id="j-1", owner_id="u-1", original_path="u-1/videos/raw/a.mp4", title="A")
    job.move_to(JobStatus.PROCESSING)
    job.duration_millis = 5000
    job.resolution_artifacts["zeta"] = "k1"
    job.resolution_artifacts["alpha"] = "k2"
    job.resolution_artifacts["hls_master"] = "k3"
    store.save(job)

    loaded = store.find_by_id("j-1")
    assert loaded.status == JobStatus.PROCESSING
    assert loaded.duration_millis == 5000
    assert loaded.title == "A"
    assert list(loaded.resolution_artifacts.items()) == [
        ("zeta", "k1"),
        ("alpha", "k2"),
        ("hls_master", "k3"),
    ]


def test_find_missing_returns_none(store) -> None:
    assert store.find_by_id("nope") is None


def test_locked_save_commits_on_exit(store) -> None:
    store.save(Job(id="j-1", owner_id="u-1", original_path="p"))

    with store.locked("j-1") as job:
        job.move_to(JobStatus.PROCESSING)
        store.save(job)
        # внутри блокировки чтение идёт через ту же сессию
        assert store.find_by_id("j-1").status == JobStatus.PROCESSING

    assert store.find_by_id("j-1").status == JobStatus.PROCESSING


def test_locked_rolls_back_on_error(store) -> None:
    store.save(Job(id="j-1", owner_id="u-1", original_path="p"))

    with pytest.raises(RuntimeError), store.locked("j-1") as job:
        job.move_to(JobStatus.PROCESSING)
        store.save(job)
        raise RuntimeError("boom")

    assert store.find_by_id("j-1").status == JobStatus.UPLOADED


def test_locked_missing_job(store) -> None:
    with store.locked("nope") as job:
        assert job is None
