"""Per-job output directories, generation reports and ZIP export."""

import io
import json
import logging
import re
import zipfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List

from sticker_engine.core.jobs import GenerationJob

logger = logging.getLogger(__name__)

REPORT_FILENAME = "generation-report.json"
ARTIFACT_SUFFIX = ".png"

_UNSAFE_CHARS = re.compile(r'[\\/:*?"<>|\s]+')
_JOB_ID = re.compile(r"^[A-Za-z0-9_-]+$")


def safe_title(title: str) -> str:
    """Make a preset title usable as part of a filename."""
    cleaned = _UNSAFE_CHARS.sub("_", title).strip("._")
    return cleaned or "untitled"


def artifact_filename(index: int, title: str) -> str:
    return f"sticker_{index:02d}_{safe_title(title)}{ARTIFACT_SUFFIX}"


class ExportService:
    """Owns the output tree: one directory per job id."""

    def __init__(self, output_root: Path):
        self.output_root = Path(output_root)

    def job_dir(self, job_id: str) -> Path:
        if not _JOB_ID.match(job_id):
            raise ValueError(f"Invalid job id: {job_id!r}")
        return self.output_root / job_id

    def prepare_output_dir(self, job: GenerationJob) -> Path:
        path = self.job_dir(job.id)
        path.mkdir(parents=True, exist_ok=True)
        return path

    def save_artifact(self, job: GenerationJob, index: int, title: str, data: bytes) -> Path:
        path = self.prepare_output_dir(job) / artifact_filename(index, title)
        path.write_bytes(data)
        logger.info("Saved %s (%d KB)", path, len(data) // 1024)
        return path

    def build_report(self, job: GenerationJob) -> Dict[str, Any]:
        elapsed = 0.0
        if job.started_at and job.ended_at:
            elapsed = round((job.ended_at - job.started_at).total_seconds() / 60, 1)

        return {
            "taskId": job.id,
            "status": job.status.value,
            "summary": {
                "total": job.total,
                "success": job.success_count,
                "failed": job.failed_count,
                "elapsedMinutes": elapsed,
            },
            "error": job.error,
            "results": [r.to_dict() for r in job.results],
            "generatedAt": datetime.now(timezone.utc).isoformat(),
        }

    def write_report(self, job: GenerationJob) -> Path:
        path = self.prepare_output_dir(job) / REPORT_FILENAME
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.build_report(job), f, ensure_ascii=False, indent=2)
        return path

    def list_artifacts(self, job_id: str) -> List[Path]:
        directory = self.job_dir(job_id)
        if not directory.is_dir():
            return []
        return sorted(p for p in directory.iterdir() if p.is_file() and p.suffix == ARTIFACT_SUFFIX)

    def resolve_artifact(self, job_id: str, filename: str) -> Path:
        """Find one file inside the job directory; never escapes it."""
        directory = self.job_dir(job_id).resolve()
        path = (directory / filename).resolve()
        if path.parent != directory or not path.is_file():
            raise FileNotFoundError(f"File not found: {filename}")
        return path

    def build_archive(self, job_id: str) -> bytes:
        """ZIP every artifact of a job. Raises FileNotFoundError if there is nothing to pack."""
        if not self.job_dir(job_id).is_dir():
            raise FileNotFoundError(f"No output for task {job_id}")

        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=9) as archive:
            for path in self.list_artifacts(job_id):
                archive.write(path, arcname=path.name)
        return buffer.getvalue()

    @staticmethod
    def archive_name(job_id: str) -> str:
        return f"line-stickers-{job_id}.zip"
