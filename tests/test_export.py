"""Tests for output layout, reports and ZIP export."""

import io
import zipfile

import pytest

from sticker_engine.core.jobs import ItemResult
from sticker_engine.services.export import ExportService, artifact_filename, safe_title

from conftest import make_png


class TestFilenames:
    """Tests for artifact naming."""

    def test_artifact_filename_is_zero_padded(self):
        assert artifact_filename(3, "Hello") == "sticker_03_Hello.png"

    def test_unsafe_characters_replaced(self):
        assert safe_title('a/b\\c:d*e?"f<g>h|i j') == "a_b_c_d_e_f_g_h_i_j"

    def test_unicode_titles_kept(self):
        assert safe_title("早安 問候") == "早安_問候"

    def test_empty_title(self):
        assert safe_title("///") == "untitled"


class TestExportService:
    """Tests for ExportService."""

    def test_job_dir_rejects_traversal(self, exporter):
        with pytest.raises(ValueError):
            exporter.job_dir("../etc")

    def test_report_contents(self, exporter, make_job):
        job = make_job("a", "b")
        job.mark_running()
        path = exporter.save_artifact(job, 1, "Item 1", make_png())
        job.record(ItemResult.succeeded(1, "Item 1", path))
        job.record(ItemResult.failed(2, "Item 2", "timeout"))
        job.mark_completed()

        report = exporter.build_report(job)

        assert report["taskId"] == job.id
        assert report["status"] == "completed"
        assert report["summary"]["total"] == 2
        assert report["summary"]["success"] == 1
        assert report["summary"]["failed"] == 1
        assert report["summary"]["elapsedMinutes"] >= 0
        assert [r["index"] for r in report["results"]] == [1, 2]
        assert exporter.write_report(job).is_file()

    def test_archive_contains_only_artifacts(self, exporter, make_job):
        job = make_job("a", "b")
        exporter.save_artifact(job, 1, "One", make_png())
        exporter.save_artifact(job, 2, "Two", make_png())
        job.mark_running()
        job.mark_failed("stopped")
        exporter.write_report(job)

        data = exporter.build_archive(job.id)

        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            assert archive.namelist() == ["sticker_01_One.png", "sticker_02_Two.png"]

    def test_archive_for_unknown_job(self, exporter):
        with pytest.raises(FileNotFoundError):
            exporter.build_archive("task_unknown")

    def test_resolve_artifact(self, exporter, make_job):
        job = make_job("a")
        saved = exporter.save_artifact(job, 1, "One", make_png())

        assert exporter.resolve_artifact(job.id, saved.name) == saved.resolve()

    def test_resolve_artifact_stays_inside_job_dir(self, exporter, make_job, config):
        job = make_job("a")
        exporter.prepare_output_dir(job)
        (config.OUTPUT_PATH / "secret.png").write_bytes(b"x")

        with pytest.raises(FileNotFoundError):
            exporter.resolve_artifact(job.id, "../secret.png")

    def test_archive_name(self):
        assert ExportService.archive_name("task_1") == "line-stickers-task_1.zip"
