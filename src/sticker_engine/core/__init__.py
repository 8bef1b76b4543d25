"""Core components for Sticker Engine."""

from sticker_engine.core.config import settings
from sticker_engine.core.jobs import GenerationJob, JobScheduler, JobStatus, SchedulerState

__all__ = ["settings", "GenerationJob", "JobScheduler", "JobStatus", "SchedulerState"]
