from __future__ import annotations

import pytest

from vod_pipeline.domain.enums import ArtifactKind, JobStatus
from vod_pipeline.domain.models import InvalidTransition, Job
from vod_pipeline.domain.state_machine import can_transition, is_terminal, transition


def test_transition_uploaded_goes_processing():
    r = transition(JobStatus.UPLOADED, JobStatus.PROCESSING)
    assert r.ok is True
    assert r.status == JobStatus.PROCESSING


def test_transition_processing_to_ready_or_failed():
    assert transition(JobStatus.PROCESSING, JobStatus.READY).ok is True
    assert transition(JobStatus.PROCESSING, JobStatus.FAILED).ok is True


def test_transition_terminal_stays():
    for terminal in (JobStatus.READY, JobStatus.FAILED):
        assert is_terminal(terminal)
        for target in JobStatus:
            r = transition(terminal, target)
            assert r.ok is False
            assert r.status == terminal
            assert r.reason == "terminal_status"


def test_transition_skipping_processing_not_allowed():
    r = transition(JobStatus.UPLOADED, JobStatus.READY)
    assert r.ok is False
    assert r.status == JobStatus.UPLOADED
    assert r.reason == "transition_not_allowed"
    assert can_transition(JobStatus.PROCESSING, JobStatus.UPLOADED) is False


def test_job_move_to_rejects_backward_transition():
    job = Job(id="j-1", owner_id="u-1", original_path="u-1/videos/raw/a.mp4")
    job.move_to(JobStatus.PROCESSING)
    job.mark_ready("u-1/videos/processed/j-1/hls/master.m3u8")

    assert job.status == JobStatus.READY
    assert job.artifact(ArtifactKind.hls_master).endswith("master.m3u8")
    with pytest.raises(InvalidTransition):
        job.move_to(JobStatus.FAILED)
    assert job.status == JobStatus.READY


def test_job_display_name_falls_back_to_id():
    job = Job(id="j-2", owner_id="u-1", original_path=None)
    assert job.display_name == "j-2"
    job.title = "Holiday"
    assert job.display_name == "Holiday"
