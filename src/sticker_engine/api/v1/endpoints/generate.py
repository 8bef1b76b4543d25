"""Generation task endpoints: start, poll, results, reset."""

import logging
import os
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from sticker_engine.api.v1.deps import get_presets, get_scheduler
from sticker_engine.core.errors import JobNotFoundError, JobRunningError
from sticker_engine.core.jobs import GenerationJob, JobScheduler, JobStatus
from sticker_engine.services.presets import DEFAULT_BASE_PROMPT, PresetLibrary

logger = logging.getLogger(__name__)
router = APIRouter()


# Request Models
class StartGenerationRequest(BaseModel):
    motherImagePath: str
    anchorImagePath: str
    selectedPresets: Optional[List[int]] = None
    customPrompt: Optional[str] = None


def _get_job(scheduler: JobScheduler, task_id: str) -> GenerationJob:
    try:
        return scheduler.get(task_id)
    except JobNotFoundError:
        raise HTTPException(status_code=404, detail="Task not found")


# Endpoints
@router.post("/generate/start")
async def start_generation(
    request: StartGenerationRequest,
    scheduler: JobScheduler = Depends(get_scheduler),
    library: PresetLibrary = Depends(get_presets),
) -> dict:
    """Queue a generation task and return immediately."""
    for label, path in (("Mother", request.motherImagePath), ("Anchor", request.anchorImagePath)):
        if not path:
            raise HTTPException(status_code=400, detail="Mother and anchor image paths are required")
        if not os.path.isfile(path):
            raise HTTPException(status_code=400, detail=f"{label} image not found: {path}")

    try:
        presets = library.select(request.selectedPresets)
    except (FileNotFoundError, ValueError) as e:
        raise HTTPException(status_code=500, detail=f"Preset library unavailable: {e}")
    if not presets:
        raise HTTPException(status_code=400, detail="No presets selected")

    custom_prompt = (request.customPrompt or "").strip()
    job = GenerationJob(
        mother_image_path=request.motherImagePath,
        anchor_image_path=request.anchorImagePath,
        base_prompt=custom_prompt or DEFAULT_BASE_PROMPT,
        items=presets,
    )
    scheduler.enqueue(job)

    return {
        "success": True,
        "message": "Task queued",
        "taskId": job.id,
        "total": job.total,
    }


@router.get("/generate/tasks")
async def list_tasks(scheduler: JobScheduler = Depends(get_scheduler)) -> dict:
    """List every task still held in memory, newest first."""
    return {"success": True, "tasks": [j.to_dict() for j in scheduler.list_jobs()]}


@router.get("/generate/status/{task_id}")
async def get_status(task_id: str, scheduler: JobScheduler = Depends(get_scheduler)) -> dict:
    """Current snapshot of a task."""
    job = _get_job(scheduler, task_id)
    return {"success": True, "task": job.to_dict()}


@router.get("/generate/results/{task_id}")
async def get_results(task_id: str, scheduler: JobScheduler = Depends(get_scheduler)) -> dict:
    """Results of a completed task."""
    job = _get_job(scheduler, task_id)

    if job.status != JobStatus.COMPLETED:
        raise HTTPException(
            status_code=400,
            detail={"error": "Task not completed", "status": job.status.value},
        )

    return {
        "success": True,
        "results": [r.to_dict() for r in job.results],
        "summary": job.summary(),
    }


@router.post("/reset/{task_id}")
async def reset_task(task_id: str, scheduler: JobScheduler = Depends(get_scheduler)) -> dict:
    """Forget a task that is not running."""
    try:
        scheduler.reset(task_id)
    except JobNotFoundError:
        raise HTTPException(status_code=404, detail="Task not found")
    except JobRunningError:
        raise HTTPException(status_code=400, detail="Cannot reset a running task")

    return {"success": True, "message": "Task cleared"}
