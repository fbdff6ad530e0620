from __future__ import annotations

import io

from vod_pipeline.domain.models import Job
from vod_pipeline.services.cleanup import purge_job_artifacts
from vod_pipeline.storage.gateway import StorageGateway


def test_purge_removes_raw_and_processed_tree(tmp_path) -> None:
    gw = StorageGateway(tmp_path / "videos")
    raw = gw.store(io.BytesIO(b"raw"), "a.mp4", "u-1")
    base = gw.processed_key("u-1", "j-1")
    gw.write_text(f"{base}/hls/master.m3u8", "#EXTM3U\n")
    gw.write_text(f"{base}/thumbnail.jpg", "x")
    other = gw.processed_key("u-1", "j-2")
    gw.write_text(f"{other}/hls/master.m3u8", "#EXTM3U\n")

    result = purge_job_artifacts(gw, Job(id="j-1", owner_id="u-1", original_path=raw))

    assert result.complete
    assert not gw.exists(raw)
    assert not gw.exists(base)
    assert gw.exists(f"{other}/hls/master.m3u8")


def test_purge_without_artifacts(tmp_path) -> None:
    gw = StorageGateway(tmp_path / "videos")
    result = purge_job_artifacts(gw, Job(id="j-1", owner_id="u-1", original_path=None))
    assert bool(result) is False
    assert result.errors == []
