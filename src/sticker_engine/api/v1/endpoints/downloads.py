"""Artifact download endpoints, scoped to one task's output directory."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import FileResponse, Response

from sticker_engine.api.v1.deps import get_exporter
from sticker_engine.services.export import ExportService

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/download/{task_id}/{filename}")
async def download_file(
    task_id: str,
    filename: str,
    exporter: ExportService = Depends(get_exporter),
):
    """Download one generated sticker."""
    try:
        path = exporter.resolve_artifact(task_id, filename)
    except (FileNotFoundError, ValueError):
        raise HTTPException(status_code=404, detail="File not found")

    return FileResponse(path, filename=path.name)


@router.get("/download-all/{task_id}")
async def download_all(task_id: str, exporter: ExportService = Depends(get_exporter)):
    """Download every sticker of a task as one ZIP."""
    try:
        data = exporter.build_archive(task_id)
    except (FileNotFoundError, ValueError):
        raise HTTPException(status_code=404, detail="No generated files for this task")

    name = exporter.archive_name(task_id)
    logger.info("Serving %s (%d KB)", name, len(data) // 1024)
    return Response(
        content=data,
        media_type="application/zip",
        headers={"Content-Disposition": f'attachment; filename="{name}"'},
    )
