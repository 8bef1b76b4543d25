"""Runs one (job, preset) pair against the remote session."""

import logging
from typing import Any

from sticker_engine.core.jobs import GenerationJob, ItemResult
from sticker_engine.services.export import ExportService
from sticker_engine.services.presets import compose_prompt
from sticker_engine.services.remote_session import RemoteSessionDriver

logger = logging.getLogger(__name__)


class ItemGenerator:
    """Generates a single sticker. Failures become failed results, never exceptions."""

    def __init__(self, driver: RemoteSessionDriver, exporter: ExportService):
        self.driver = driver
        self.exporter = exporter

    async def run_item(self, session: Any, job: GenerationJob, item_index: int) -> ItemResult:
        preset = job.items[item_index]
        number = item_index + 1

        try:
            prompt = compose_prompt(job.base_prompt, preset)

            baseline = await self.driver.artifact_count(session)

            # The remote UI keeps no attachments between turns; upload both references every time
            await self.driver.submit(session, prompt, [job.mother_image_path, job.anchor_image_path])
            if not await self.driver.await_completion(session):
                logger.warning("Job %s item %d: no result image detected after the reply", job.id, number)

            # Earlier turns' images stay on the page; only a new one counts
            data = await self.driver.fetch_latest_artifact(session, baseline=baseline)
            path = self.exporter.save_artifact(job, number, preset.title, data)
        except Exception as e:
            logger.warning("Job %s item %d (%s) failed: %s", job.id, number, preset.title, e)
            return ItemResult.failed(number, preset.title, str(e) or e.__class__.__name__)

        logger.info("Job %s item %d (%s) done", job.id, number, preset.title)
        return ItemResult.succeeded(number, preset.title, path)
