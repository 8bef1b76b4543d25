"""HTTP API tests against the ASGI app with a fake remote driver."""

import io
import zipfile
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient

from sticker_engine.main import create_app

from conftest import FakeDriver, make_png


@pytest.fixture
def api_scheduler(scheduler_factory, driver):
    return scheduler_factory(driver)


@pytest.fixture
async def client(config, api_scheduler):
    # ASGITransport skips the lifespan, so tests start the scheduler when they need it
    app = create_app(config, scheduler=api_scheduler)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac
    await api_scheduler.stop()


def image_files():
    return {
        "motherImage": ("mother.png", make_png(), "image/png"),
        "anchorImage": ("anchor.webp", make_png(), "image/webp"),
    }


class TestUploads:
    """Tests for POST /api/upload."""

    async def test_upload_both_images(self, client, config):
        resp = await client.post("/api/upload", files=image_files())

        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        mother = body["files"]["motherImage"]
        assert mother["filename"].startswith("motherImage-")
        assert mother["filename"].endswith(".png")
        assert mother["path"].startswith(str(config.UPLOAD_PATH))
        assert body["files"]["anchorImage"]["filename"].endswith(".webp")

    async def test_missing_image(self, client):
        files = image_files()
        del files["anchorImage"]

        resp = await client.post("/api/upload", files=files)

        assert resp.status_code == 400

    async def test_rejects_non_image(self, client):
        files = image_files()
        files["motherImage"] = ("notes.txt", b"hello", "text/plain")

        resp = await client.post("/api/upload", files=files)

        assert resp.status_code == 400

    async def test_rejects_oversized(self, client, config):
        config.MAX_UPLOAD_SIZE = 10
        resp = await client.post("/api/upload", files=image_files())

        assert resp.status_code == 400
        assert list(config.UPLOAD_PATH.iterdir()) == []

    async def test_rejected_anchor_leaves_no_files(self, client, config):
        config.MAX_UPLOAD_SIZE = len(make_png()) + 10
        files = image_files()
        files["anchorImage"] = ("anchor.png", make_png() + b"\x00" * 1000, "image/png")

        resp = await client.post("/api/upload", files=files)

        assert resp.status_code == 400
        assert "anchorImage" in resp.json()["detail"]
        assert list(config.UPLOAD_PATH.iterdir()) == []

    async def test_bad_anchor_type_rejected_before_writing(self, client, config):
        files = image_files()
        files["anchorImage"] = ("anchor.gif", b"GIF89a", "image/gif")

        resp = await client.post("/api/upload", files=files)

        assert resp.status_code == 400
        assert list(config.UPLOAD_PATH.iterdir()) == []

    async def test_large_upload_streamed_in_chunks(self, client, config, monkeypatch):
        monkeypatch.setattr("sticker_engine.api.v1.endpoints.uploads.CHUNK_SIZE", 16)
        resp = await client.post("/api/upload", files=image_files())

        assert resp.status_code == 200
        stored = resp.json()["files"]["motherImage"]
        assert stored["size"] == len(make_png())
        assert Path(stored["path"]).read_bytes() == make_png()


class TestPresets:
    """Tests for GET /api/presets."""

    async def test_lists_presets_with_indices(self, client):
        resp = await client.get("/api/presets")

        assert resp.status_code == 200
        body = resp.json()
        assert [p["index"] for p in body["presets"]] == [0, 1, 2]
        assert body["presets"][0]["title"] == "Hello"
        assert body["defaultPrompt"]

    async def test_missing_library(self, client, config):
        config.PRESETS_PATH.unlink()

        resp = await client.get("/api/presets")

        assert resp.status_code == 500


class TestGeneration:
    """Tests for starting, polling and resetting tasks."""

    async def test_start_returns_pending_task(self, client, reference_images):
        mother, anchor = reference_images
        resp = await client.post(
            "/api/generate/start",
            json={"motherImagePath": mother, "anchorImagePath": anchor, "selectedPresets": [0, 2]},
        )

        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["total"] == 2

        status = await client.get(f"/api/generate/status/{body['taskId']}")
        assert status.status_code == 200
        assert status.json()["task"]["status"] == "pending"
        assert status.json()["task"]["progress"] == 0

    async def test_start_requires_existing_images(self, client, reference_images, tmp_path):
        mother, _ = reference_images
        resp = await client.post(
            "/api/generate/start",
            json={"motherImagePath": mother, "anchorImagePath": str(tmp_path / "missing.png")},
        )

        assert resp.status_code == 400

    async def test_start_requires_paths(self, client):
        resp = await client.post(
            "/api/generate/start",
            json={"motherImagePath": "", "anchorImagePath": ""},
        )

        assert resp.status_code == 400

    async def test_start_with_no_matching_presets(self, client, reference_images):
        mother, anchor = reference_images
        resp = await client.post(
            "/api/generate/start",
            json={"motherImagePath": mother, "anchorImagePath": anchor, "selectedPresets": [42]},
        )

        assert resp.status_code == 400

    async def test_unknown_task(self, client):
        assert (await client.get("/api/generate/status/task_nope")).status_code == 404
        assert (await client.get("/api/generate/results/task_nope")).status_code == 404
        assert (await client.post("/api/reset/task_nope")).status_code == 404

    async def test_results_not_ready(self, client, reference_images):
        mother, anchor = reference_images
        start = await client.post(
            "/api/generate/start",
            json={"motherImagePath": mother, "anchorImagePath": anchor},
        )
        task_id = start.json()["taskId"]

        resp = await client.get(f"/api/generate/results/{task_id}")

        assert resp.status_code == 400
        assert resp.json()["detail"]["status"] == "pending"

    async def test_reset_pending_task(self, client, reference_images):
        mother, anchor = reference_images
        start = await client.post(
            "/api/generate/start",
            json={"motherImagePath": mother, "anchorImagePath": anchor},
        )
        task_id = start.json()["taskId"]

        resp = await client.post(f"/api/reset/{task_id}")

        assert resp.status_code == 200
        assert (await client.get(f"/api/generate/status/{task_id}")).status_code == 404

    async def test_full_run_with_downloads(self, client, api_scheduler, reference_images):
        mother, anchor = reference_images
        start = await client.post(
            "/api/generate/start",
            json={
                "motherImagePath": mother,
                "anchorImagePath": anchor,
                "customPrompt": "Draw the character.",
            },
        )
        task_id = start.json()["taskId"]

        await api_scheduler.start()
        await api_scheduler.wait_idle()

        results = await client.get(f"/api/generate/results/{task_id}")
        assert results.status_code == 200
        body = results.json()
        assert body["summary"]["total"] == 3
        assert body["summary"]["success"] == 3
        assert [r["index"] for r in body["results"]] == [1, 2, 3]
        filename = body["results"][0]["filename"]
        assert filename == "sticker_01_Hello.png"

        single = await client.get(f"/api/download/{task_id}/{filename}")
        assert single.status_code == 200
        assert single.content == make_png()

        archive = await client.get(f"/api/download-all/{task_id}")
        assert archive.status_code == 200
        assert archive.headers["content-type"] == "application/zip"
        assert f"line-stickers-{task_id}.zip" in archive.headers["content-disposition"]
        with zipfile.ZipFile(io.BytesIO(archive.content)) as zf:
            assert len(zf.namelist()) == 3

        tasks = await client.get("/api/generate/tasks")
        assert [t["id"] for t in tasks.json()["tasks"]] == [task_id]

    async def test_download_unknown_file(self, client):
        assert (await client.get("/api/download/task_nope/a.png")).status_code == 404
        assert (await client.get("/api/download-all/task_nope")).status_code == 404


class TestFailedSession:
    """A task whose session cannot be opened ends up failed, not stuck."""

    @pytest.fixture
    def driver(self):
        return FakeDriver(fail_acquires={1})

    async def test_failed_task_reports_error(self, client, api_scheduler, reference_images):
        mother, anchor = reference_images
        start = await client.post(
            "/api/generate/start",
            json={"motherImagePath": mother, "anchorImagePath": anchor},
        )
        task_id = start.json()["taskId"]

        await api_scheduler.start()
        await api_scheduler.wait_idle()

        task = (await client.get(f"/api/generate/status/{task_id}")).json()["task"]
        assert task["status"] == "failed"
        assert task["error"]
        assert task["results"] == []


class TestHealth:
    """Tests for the health check."""

    async def test_health(self, client):
        resp = await client.get("/health")

        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "healthy"
        assert body["queue"]["processing"] is False
        assert body["tasks"]["pending"] == 0
