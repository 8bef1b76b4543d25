"""Request dependencies: components built once per app and kept on app.state."""

from fastapi import Request

from sticker_engine.core.config import Settings
from sticker_engine.core.jobs import JobScheduler
from sticker_engine.services.export import ExportService
from sticker_engine.services.presets import PresetLibrary


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_scheduler(request: Request) -> JobScheduler:
    return request.app.state.scheduler


def get_exporter(request: Request) -> ExportService:
    return request.app.state.exporter


def get_presets(request: Request) -> PresetLibrary:
    return request.app.state.presets
