"""Sticker Engine services."""

from pathlib import Path
from typing import Optional

from sticker_engine.core.config import Settings, settings
from sticker_engine.core.jobs import JobScheduler, SchedulerState
from sticker_engine.services.export import ExportService
from sticker_engine.services.generator import ItemGenerator
from sticker_engine.services.presets import PresetLibrary
from sticker_engine.services.remote_session import RemoteSessionDriver


def build_scheduler(
    config: Settings = settings,
    state: Optional[SchedulerState] = None,
    output_root: Optional[Path] = None,
) -> JobScheduler:
    """Wire the production pipeline: Playwright driver, generator, exporter."""
    driver = RemoteSessionDriver(config)
    exporter = ExportService(output_root or config.OUTPUT_PATH)
    return JobScheduler(
        state or SchedulerState(),
        driver=driver,
        generator=ItemGenerator(driver, exporter),
        reporter=exporter,
        item_cooldown=config.ITEM_COOLDOWN,
        max_consecutive_failures=config.MAX_CONSECUTIVE_ITEM_FAILURES,
    )


__all__ = [
    "ExportService",
    "ItemGenerator",
    "PresetLibrary",
    "RemoteSessionDriver",
    "build_scheduler",
]
