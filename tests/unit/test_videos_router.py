from __future__ import annotations

from pathlib import Path
from urllib.parse import parse_qs, urlparse

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from apps.api_gateway.deps import delivery_service_dep
from apps.api_gateway.routers.videos import router as videos_router
from vod_pipeline.common.config import get_settings
from vod_pipeline.domain.enums import JobStatus
from vod_pipeline.domain.models import Job
from vod_pipeline.storage.gateway import StorageGateway
from vod_pipeline.storage.job_store import InMemoryJobStore
from vod_pipeline.streaming.service import DeliveryService
from vod_pipeline.streaming.tokens import mint_stream_token

HLS = "u-1/videos/processed/j-1/hls"
SEGMENT = bytes(range(256)) * 4
U1 = {"X-API-Key": "key-1"}
U2 = {"X-API-Key": "key-2"}


@pytest.fixture()
def api_settings():
    s = get_settings()
    keys = [
        "app_env",
        "auth_mode",
        "api_keys",
        "service_api_keys",
        "public_base_url",
        "stream_token_secret",
        "stream_token_ttl_sec",
    ]
    snapshot = {k: getattr(s, k) for k in keys}
    s.app_env = "dev"
    s.auth_mode = "api_key"
    s.api_keys = "u-1:key-1,u-2:key-2"
    s.service_api_keys = "svc-key"
    s.public_base_url = ""
    s.stream_token_secret = "router-test-secret"
    s.stream_token_ttl_sec = 900
    try:
        yield s
    finally:
        for k, v in snapshot.items():
            setattr(s, k, v)


@pytest.fixture()
def store() -> InMemoryJobStore:
    return InMemoryJobStore()


@pytest.fixture()
def gateway(tmp_path) -> StorageGateway:
    gw = StorageGateway(tmp_path / "videos")
    gw.write_text(
        f"{HLS}/master.m3u8",
        "#EXTM3U\n#EXT-X-VERSION:3\n#EXT-X-STREAM-INF:BANDWIDTH=464000\n240p.m3u8\n",
    )
    gw.write_text(f"{HLS}/240p.m3u8", "#EXTM3U\n#EXTINF:10.0,\n240p_000.ts\n#EXT-X-ENDLIST\n")
    gw.resolve(f"{HLS}/240p_000.ts").write_bytes(SEGMENT)
    return gw


def _job(status: JobStatus, job_id: str = "j-1") -> Job:
    job = Job(id=job_id, owner_id="u-1", original_path=None, status=status)
    if status == JobStatus.READY:
        job.resolution_artifacts["hls_master"] = f"{HLS}/master.m3u8"
    return job


@pytest.fixture()
def client(api_settings, store, gateway) -> TestClient:
    app = FastAPI()
    app.include_router(videos_router, prefix="/v1")
    app.dependency_overrides[delivery_service_dep] = lambda: DeliveryService(
        store=store, gateway=gateway
    )
    return TestClient(app)


def test_direct_stream_requires_auth(client, store) -> None:
    store.save(_job(JobStatus.READY))
    assert client.get("/v1/videos/j-1/stream").status_code == 401


def test_direct_stream_locked_while_processing(client, store) -> None:
    store.save(_job(JobStatus.PROCESSING))
    assert client.get("/v1/videos/j-1/stream", headers=U1).status_code == 423


def test_direct_stream_not_found(client, store) -> None:
    failed = _job(JobStatus.FAILED)
    store.save(failed)
    assert client.get("/v1/videos/j-1/stream", headers=U1).status_code == 404
    assert client.get("/v1/videos/missing/stream", headers=U1).status_code == 404


def test_direct_stream_range(client, store) -> None:
    store.save(_job(JobStatus.READY))
    resp = client.get(
        "/v1/videos/j-1/stream",
        params={"file": "240p_000.ts"},
        headers={**U1, "Range": "bytes=100-199"},
    )
    assert resp.status_code == 206
    assert resp.headers["content-range"] == f"bytes 100-199/{len(SEGMENT)}"
    assert resp.headers["content-length"] == "100"
    assert resp.headers["accept-ranges"] == "bytes"
    assert resp.content == SEGMENT[100:200]


def test_direct_stream_full_body_without_range(client, store) -> None:
    store.save(_job(JobStatus.READY))
    resp = client.get("/v1/videos/j-1/stream", params={"file": "240p_000.ts"}, headers=U1)
    assert resp.status_code == 200
    assert resp.content == SEGMENT
    assert resp.headers["cache-control"] == "no-cache"
    assert resp.headers["content-type"] == "video/mp2t"


def test_direct_stream_range_not_satisfiable(client, store) -> None:
    store.save(_job(JobStatus.READY))
    resp = client.get(
        "/v1/videos/j-1/stream",
        params={"file": "240p_000.ts"},
        headers={**U1, "Range": "bytes=5000-"},
    )
    assert resp.status_code == 416
    assert resp.headers["content-range"] == f"bytes */{len(SEGMENT)}"


def test_direct_stream_path_escape_is_not_found(client, store) -> None:
    store.save(_job(JobStatus.READY))
    resp = client.get(
        "/v1/videos/j-1/stream", params={"file": "../../../../u-2/secret.mp4"}, headers=U1
    )
    assert resp.status_code == 404


def test_direct_stream_other_owner_forbidden(client, store) -> None:
    store.save(_job(JobStatus.READY))
    assert client.get("/v1/videos/j-1/stream", headers=U2).status_code == 403
    assert client.get("/v1/videos/j-1/stream", headers={"X-API-Key": "svc-key"}).status_code == 200


def test_hls_stream_url_for_owner(client, store) -> None:
    store.save(_job(JobStatus.READY))
    resp = client.get("/v1/videos/j-1/hls-stream-url", headers=U1)
    assert resp.status_code == 200
    body = resp.json()
    url = urlparse(body["url"])
    assert url.path == "/v1/videos/j-1/stream/master.m3u8"
    assert parse_qs(url.query)["token"] == [body["token"]]
    assert body["expires_at"]


def test_hls_stream_url_denied_for_other_user(client, store) -> None:
    store.save(_job(JobStatus.READY))
    assert client.get("/v1/videos/j-1/hls-stream-url", headers=U2).status_code == 403


def test_hls_stream_url_locked_until_ready(client, store) -> None:
    store.save(_job(JobStatus.UPLOADED))
    assert client.get("/v1/videos/j-1/hls-stream-url", headers=U1).status_code == 423


def test_tokenized_master_is_rewritten(client, store) -> None:
    store.save(_job(JobStatus.READY))
    token = client.get("/v1/videos/j-1/hls-stream-url", headers=U1).json()["token"]

    resp = client.get("/v1/videos/j-1/stream/master.m3u8", params={"token": token})
    assert resp.status_code == 200
    assert resp.headers["cache-control"] == "private, no-store"
    assert resp.headers["content-type"].startswith("application/vnd.apple.mpegurl")
    assert f"240p.m3u8?token={token}" in resp.text

    sub = client.get("/v1/videos/j-1/stream/240p.m3u8", params={"token": token})
    assert f"240p_000.ts?token={token}" in sub.text


def test_tokenized_segment(client, store) -> None:
    store.save(_job(JobStatus.READY))
    token = mint_stream_token(job_id="j-1", subject_id="u-1").token

    resp = client.get("/v1/videos/j-1/stream/240p_000.ts", params={"token": token})
    assert resp.status_code == 200
    assert resp.content == SEGMENT
    assert resp.headers["accept-ranges"] == "bytes"
    assert resp.headers["cache-control"] == "private, max-age=600"


def test_tokenized_requires_valid_token(client, store) -> None:
    store.save(_job(JobStatus.READY))
    store.save(_job(JobStatus.READY, job_id="j-2"))
    other = mint_stream_token(job_id="j-2", subject_id="u-1").token

    assert client.get("/v1/videos/j-1/stream/master.m3u8").status_code == 403
    assert (
        client.get("/v1/videos/j-1/stream/master.m3u8", params={"token": "garbage"}).status_code
        == 403
    )
    assert (
        client.get("/v1/videos/j-1/stream/master.m3u8", params={"token": other}).status_code == 403
    )


def test_tokenized_path_escape_is_not_found(client, store) -> None:
    store.save(_job(JobStatus.READY))
    token = mint_stream_token(job_id="j-1", subject_id="u-1").token
    resp = client.get("/v1/videos/j-1/stream/..%2F..%2Fthumbnail.jpg", params={"token": token})
    assert resp.status_code == 404


def test_unreadable_segment_is_not_found(client, store, monkeypatch) -> None:
    store.save(_job(JobStatus.READY))
    token = mint_stream_token(job_id="j-1", subject_id="u-1").token
    real_open = Path.open

    def _open(self, *args, **kwargs):
        if self.name == "240p_000.ts":
            raise PermissionError(13, "Permission denied", str(self))
        return real_open(self, *args, **kwargs)

    monkeypatch.setattr(Path, "open", _open)

    direct = client.get("/v1/videos/j-1/stream", params={"file": "240p_000.ts"}, headers=U1)
    assert direct.status_code == 404
    ranged = client.get(
        "/v1/videos/j-1/stream/240p_000.ts",
        params={"token": token},
        headers={"Range": "bytes=0-9"},
    )
    assert ranged.status_code == 404


def test_undecodable_playlist_is_not_found(client, store, gateway) -> None:
    store.save(_job(JobStatus.READY))
    gateway.resolve(f"{HLS}/240p.m3u8").write_bytes(b"#EXTM3U\n\xff\xfe\n")
    token = mint_stream_token(job_id="j-1", subject_id="u-1").token

    resp = client.get("/v1/videos/j-1/stream/240p.m3u8", params={"token": token})
    assert resp.status_code == 404
    assert "utf-8" not in resp.text
