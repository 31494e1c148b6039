"""API tests for job submission, polling, download and synchronous processing."""

from __future__ import annotations

import io

import pytest
from fastapi.testclient import TestClient
from PIL import Image
from starlette.datastructures import UploadFile as StarletteUploadFile

from pixelqueue.main import create_app
from pixelqueue.models.job import JobStatus
from pixelqueue.workers.pipeline import WorkerPipeline
from tests.conftest import age_job

PREFIX = "/api/v1"


@pytest.fixture()
def client(container) -> TestClient:
    app = create_app(container=container)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def run_worker(container):
    pipeline = WorkerPipeline(
        container.queue,
        container.job_store,
        container.storage,
        container.registry,
        sleep=lambda _: None,
    )

    def _run(count: int = 1) -> int:
        return pipeline.run(max_messages=count)

    return _run


def _submit(client, png_bytes, action="resize", params="100x50"):
    data = {"action": action}
    if params is not None:
        data["params"] = params
    return client.post(
        f"{PREFIX}/jobs",
        files={"image": ("photo.png", png_bytes, "image/png")},
        data=data,
    )


def test_submit_returns_accepted_with_job_id(client, png_bytes, container) -> None:
    response = _submit(client, png_bytes)

    assert response.status_code == 202
    body = response.json()
    assert body["status"] == "QUEUED"
    assert container.queue.depth() == 1
    assert container.job_store.get(body["job_id"]).action == "resize"


def test_submit_unknown_action_is_bad_request(client, png_bytes, container) -> None:
    response = _submit(client, png_bytes, action="blur", params=None)

    assert response.status_code == 400
    assert "Invalid action" in response.json()["detail"]
    assert container.queue.depth() == 0


def test_submit_without_image_is_rejected(client) -> None:
    response = client.post(f"{PREFIX}/jobs", data={"action": "grayscale"})
    assert response.status_code == 422


def test_submit_with_queue_down_reports_orphan(client, png_bytes, container, fake_redis) -> None:
    fake_redis.down = True
    response = _submit(client, png_bytes)

    assert response.status_code == 503
    job_id = response.json()["job_id"]
    assert container.job_store.get(job_id).status == JobStatus.QUEUED.value


def test_status_of_unknown_job_is_not_found(client) -> None:
    response = client.get(f"{PREFIX}/jobs/unknown-id")
    assert response.status_code == 404


def test_status_is_queued_until_worker_runs(client, png_bytes, run_worker) -> None:
    job_id = _submit(client, png_bytes).json()["job_id"]

    queued = client.get(f"{PREFIX}/jobs/{job_id}").json()
    assert queued["status"] == "QUEUED"
    assert "download_url" not in queued

    run_worker()

    done = client.get(f"{PREFIX}/jobs/{job_id}").json()
    assert done["status"] == "COMPLETED"
    assert done["download_url"] == f"{PREFIX}/jobs/{job_id}/download"


def test_download_before_completion_is_pending(client, png_bytes) -> None:
    job_id = _submit(client, png_bytes).json()["job_id"]
    response = client.get(f"{PREFIX}/jobs/{job_id}/download")

    assert response.status_code == 202
    assert response.json()["status"] == "QUEUED"


def test_download_returns_processed_jpeg(client, png_bytes, run_worker) -> None:
    job_id = _submit(client, png_bytes).json()["job_id"]
    run_worker()

    response = client.get(f"{PREFIX}/jobs/{job_id}/download")

    assert response.status_code == 200
    assert response.headers["content-type"] == "image/jpeg"
    assert job_id in response.headers["content-disposition"]
    assert Image.open(io.BytesIO(response.content)).size == (100, 50)


def test_download_of_failed_job_is_conflict(client, png_bytes, run_worker) -> None:
    job_id = _submit(client, png_bytes, action="crop", params="10,10,5,5").json()["job_id"]
    run_worker()

    status = client.get(f"{PREFIX}/jobs/{job_id}").json()
    assert status["status"] == "FAILED"
    assert "invalid crop coordinates" in status["error_message"]

    response = client.get(f"{PREFIX}/jobs/{job_id}/download")
    assert response.status_code == 409


def test_download_with_missing_artifact_is_not_found(client, png_bytes, run_worker, container) -> None:
    job_id = _submit(client, png_bytes).json()["job_id"]
    run_worker()
    container.storage.delete(container.job_store.get(job_id).result_path)

    response = client.get(f"{PREFIX}/jobs/{job_id}/download")

    assert response.status_code == 404
    assert "not found on disk" in response.json()["detail"]


def test_list_jobs_filters_by_status(client, png_bytes, run_worker) -> None:
    first = _submit(client, png_bytes).json()["job_id"]
    run_worker()
    second = _submit(client, png_bytes, action="grayscale", params=None).json()["job_id"]

    completed = client.get(f"{PREFIX}/jobs", params={"status": "COMPLETED"}).json()
    queued = client.get(f"{PREFIX}/jobs", params={"status": "QUEUED"}).json()

    assert [job["job_id"] for job in completed] == [first]
    assert [job["job_id"] for job in queued] == [second]


def test_stale_jobs_are_listed(client, png_bytes, container) -> None:
    job_id = _submit(client, png_bytes).json()["job_id"]
    age_job(container, job_id, 3600)
    _submit(client, png_bytes)

    body = client.get(f"{PREFIX}/jobs/stale", params={"older_than": 600}).json()

    assert body["count"] == 1
    assert body["jobs"][0]["job_id"] == job_id
    assert body["jobs"][0]["age_seconds"] >= 3600


def test_sync_process_returns_image_directly(client, png_bytes, container) -> None:
    response = client.post(
        f"{PREFIX}/sync/process",
        files={"image": ("photo.png", png_bytes, "image/png")},
        data={"action": "crop", "params": "0,0,40,30"},
    )

    assert response.status_code == 200
    assert response.headers["content-type"] == "image/jpeg"
    assert Image.open(io.BytesIO(response.content)).size == (40, 30)
    assert container.job_store.count_by_status()["QUEUED"] == 0


@pytest.mark.parametrize(
    "action,params",
    [("crop", "10,10,5,5"), ("resize", "big"), ("sharpen", "")],
)
def test_sync_process_bad_input_is_bad_request(client, png_bytes, action, params) -> None:
    response = client.post(
        f"{PREFIX}/sync/process",
        files={"image": ("photo.png", png_bytes, "image/png")},
        data={"action": action, "params": params},
    )
    assert response.status_code == 400


def test_health_reports_components(client, png_bytes) -> None:
    _submit(client, png_bytes)
    body = client.get("/health").json()

    assert body["status"] == "healthy"
    assert body["services"]["database"] == "ok"
    assert body["services"]["redis"] == "ok"
    assert body["queue"]["depth"] == 1
    assert body["jobs"] == {"QUEUED": 1, "PROCESSING": 0, "COMPLETED": 0, "FAILED": 0}


def test_health_degrades_when_redis_is_down(client, fake_redis) -> None:
    fake_redis.down = True
    body = client.get("/health").json()

    assert body["status"] == "degraded"
    assert body["services"]["redis"].startswith("error")
    assert "error" in body["queue"]


@pytest.fixture()
def read_sizes(monkeypatch):
    """Record the size argument of every upload read."""
    sizes = []
    real_read = StarletteUploadFile.read

    async def recording_read(self, size=-1):
        sizes.append(size)
        return await real_read(self, size)

    monkeypatch.setattr(StarletteUploadFile, "read", recording_read)
    return sizes


def test_oversized_submission_is_rejected_without_full_read(client, container, read_sizes) -> None:
    container.submission.max_upload_bytes = 100
    response = _submit(client, b"x" * 5000)

    assert response.status_code == 400
    assert "too large" in response.json()["detail"]
    assert read_sizes and all(0 < size <= 101 for size in read_sizes)
    assert container.queue.depth() == 0


def test_oversized_sync_request_is_rejected_without_full_read(client, container, read_sizes) -> None:
    container.settings.MAX_UPLOAD_BYTES = 100
    response = client.post(
        f"{PREFIX}/sync/process",
        files={"image": ("photo.png", b"x" * 5000, "image/png")},
        data={"action": "grayscale"},
    )

    assert response.status_code == 400
    assert read_sizes and all(0 < size <= 101 for size in read_sizes)
