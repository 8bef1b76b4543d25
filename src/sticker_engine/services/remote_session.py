"""Playwright driver for the remote chat UI that produces the stickers.

One `RemoteSession` is a persistent browser context logged into the remote
service. The driver exposes the few primitives the generator needs: submit a
prompt with attachments, wait for the reply, and pull the latest image.

NOTE: the browser profile must be logged in by hand once; the driver only
waits for the operator, it never handles credentials.
"""

import asyncio
import base64
import binascii
import io
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Optional, Sequence

from PIL import Image, UnidentifiedImageError
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from sticker_engine.core.config import Settings, settings
from sticker_engine.core.errors import ArtifactUnavailable, InputUnavailable, SessionUnavailable
from sticker_engine.services.detection import Capability, Detector

logger = logging.getLogger(__name__)


@dataclass
class RemoteSession:
    """A live browser context and the page used for the conversation."""
    page: Any
    context: Any = None
    playwright: Any = None
    closed: bool = False


def decode_data_url(src: str) -> bytes:
    """Decode a `data:image/...;base64,` URL."""
    header, _, payload = src.partition(",")
    if not payload or ";base64" not in header:
        raise ArtifactUnavailable("Unsupported data URL encoding")
    try:
        return base64.b64decode(payload, validate=False)
    except (binascii.Error, ValueError) as e:
        raise ArtifactUnavailable(f"Corrupt data URL: {e}") from e


def verify_image_bytes(data: bytes) -> None:
    """Raise ArtifactUnavailable unless `data` decodes as an image."""
    if not data:
        raise ArtifactUnavailable("Downloaded image is empty")
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        raise ArtifactUnavailable(f"Downloaded data is not an image: {e}") from e


class RemoteSessionDriver:
    """Drives the remote chat UI through a persistent Playwright context."""

    def __init__(self, config: Settings = settings, detector: Optional[Detector] = None):
        self.config = config
        self.detector = detector or Detector()

    # Session lifecycle

    async def acquire_session(self) -> RemoteSession:
        """Open the remote page and wait until it accepts input."""
        session = await self._launch()
        try:
            await self._open_remote(session)
        except BaseException:
            await self.close(session)
            raise
        return session

    async def _launch(self) -> RemoteSession:
        try:
            playwright = await async_playwright().start()
        except Exception as e:
            raise SessionUnavailable(f"Failed to start Playwright: {e}") from e

        try:
            self.config.BROWSER_PROFILE_PATH.mkdir(parents=True, exist_ok=True)
            launch_kwargs = {
                "headless": self.config.HEADLESS,
                "args": [
                    "--disable-blink-features=AutomationControlled",
                    "--no-sandbox",
                    "--disable-setuid-sandbox",
                ],
            }
            if self.config.BROWSER_CHANNEL:
                launch_kwargs["channel"] = self.config.BROWSER_CHANNEL

            context = await playwright.chromium.launch_persistent_context(
                str(self.config.BROWSER_PROFILE_PATH), **launch_kwargs
            )
            page = context.pages[0] if context.pages else await context.new_page()
        except Exception as e:
            await playwright.stop()
            raise SessionUnavailable(f"Failed to launch browser: {e}") from e

        logger.info("Browser started with profile %s", self.config.BROWSER_PROFILE_PATH)
        return RemoteSession(page=page, context=context, playwright=playwright)

    async def _open_remote(self, session: RemoteSession) -> None:
        page = session.page
        logger.info("Opening %s", self.config.REMOTE_URL)
        try:
            await page.goto(
                self.config.REMOTE_URL,
                wait_until="networkidle",
                timeout=self.config.NAVIGATION_TIMEOUT * 1000,
            )
        except PlaywrightTimeoutError:
            # Chat UIs keep long-lived connections open; networkidle may never fire
            logger.warning("Page load timed out, continuing")
        except PlaywrightError as e:
            raise SessionUnavailable(f"Cannot reach {self.config.REMOTE_URL}: {e}") from e

        await asyncio.sleep(self.config.PAGE_STABILIZE_DELAY)

        if await self.detector.detect(page, Capability.INPUT_SURFACE):
            logger.info("Remote session ready")
            return

        logger.warning(
            "Remote service needs a login or verification. Complete it in the browser "
            "window; waiting up to %.0f seconds",
            self.config.LOGIN_TIMEOUT,
        )
        if not await self.detector.wait_for(page, Capability.INPUT_SURFACE, self.config.LOGIN_TIMEOUT):
            await self._capture_debug(page, "login-timeout")
            raise SessionUnavailable("Timed out waiting for the remote input box; is the profile logged in?")
        logger.info("Login detected, remote session ready")

    async def close(self, session: Optional[RemoteSession]) -> None:
        """Release the browser. Safe to call more than once."""
        if session is None or session.closed:
            return
        session.closed = True
        try:
            if session.context is not None:
                await session.context.close()
        finally:
            if session.playwright is not None:
                await session.playwright.stop()
        logger.info("Browser closed")

    # Conversation primitives

    async def submit(self, session: RemoteSession, text: str, attachment_paths: Sequence[str] = ()) -> None:
        """Attach files, then send `text` as one turn."""
        self._ensure_open(session)
        page = session.page
        try:
            if attachment_paths:
                await self._attach(page, attachment_paths)

            surface = await self._find_input(page)
            await surface.click(timeout=10000)
            await surface.fill(text)
            await page.keyboard.press("Enter")
            logger.info("Prompt sent (%d chars, %d attachments)", len(text), len(attachment_paths))

            await asyncio.sleep(self.config.PAGE_STABILIZE_DELAY)
        except Exception:
            await self._capture_debug(page, "submit-error")
            raise

    async def _attach(self, page, attachment_paths: Sequence[str]) -> None:
        paths = [Path(p).resolve() for p in attachment_paths]
        for path in paths:
            if not path.is_file():
                raise FileNotFoundError(f"Attachment not found: {path}")

        logger.info("Uploading %d attachments", len(paths))
        baseline = await self.detector.count(page, Capability.ATTACHMENT_ACCEPTED)

        for number, path in enumerate(paths, start=1):
            file_input = await self.detector.detect(page, Capability.FILE_INPUT)
            if not file_input:
                raise InputUnavailable("No file input on the remote page")

            await file_input.locator.set_input_files(str(path))

            # Uploads are processed asynchronously; the next one must wait for this preview
            accepted = await self.detector.wait_for_count(
                page, Capability.ATTACHMENT_ACCEPTED, baseline + number, self.config.ATTACHMENT_TIMEOUT
            )
            if accepted:
                logger.debug("Attachment accepted: %s", path.name)
            else:
                logger.warning("No upload confirmation for %s after %.0fs, continuing",
                               path.name, self.config.ATTACHMENT_TIMEOUT)

    async def _find_input(self, page):
        attempts = max(self.config.INPUT_RETRIES, 1)
        for attempt in range(1, attempts + 1):
            detection = await self.detector.detect(page, Capability.INPUT_SURFACE)
            if detection:
                logger.debug("Input surface found via %s", detection.strategy.selector)
                return detection.locator

            if attempt < attempts:
                logger.info("Input box not ready (%d/%d), retrying in %.0fs",
                            attempt, attempts, self.config.INPUT_RETRY_DELAY)
                await asyncio.sleep(self.config.INPUT_RETRY_DELAY)

        raise InputUnavailable(f"No input box found after {attempts} attempts")

    async def await_completion(self, session: RemoteSession) -> bool:
        """Block until the remote reply has finished rendering.

        Detection is best effort: the method never raises on a missed signal and
        returns whether a valid result image was seen.
        """
        page = session.page
        loop = asyncio.get_running_loop()
        started = loop.time()
        detector = self.detector

        try:
            if await detector.wait_for(page, Capability.GENERATION_INDICATOR,
                                       self.config.GENERATION_START_TIMEOUT):
                logger.info("Generation started")
            else:
                logger.info("No generation indicator seen; it may have started already")

            if not await detector.wait_for_absent(page, Capability.GENERATION_INDICATOR,
                                                  self.config.GENERATION_TIMEOUT):
                logger.warning("Generation still running after %.0fs", self.config.GENERATION_TIMEOUT)

            await asyncio.sleep(self.config.SETTLE_DELAY)

            found = bool(await detector.detect(page, Capability.RESULT_ARTIFACT))
            if not found:
                logger.warning("No valid image yet, waiting another %.0fs", self.config.EXTRA_SETTLE_DELAY)
                await asyncio.sleep(self.config.EXTRA_SETTLE_DELAY)
                found = bool(await detector.detect(page, Capability.RESULT_ARTIFACT))

            await asyncio.sleep(self.config.FINAL_SETTLE_DELAY)
        except PlaywrightError as e:
            logger.warning("Error while waiting for the reply: %s", e)
            await asyncio.sleep(self.config.EXTRA_SETTLE_DELAY)
            found = False

        logger.info("Reply finished after %.0fs (image detected: %s)", loop.time() - started, found)
        return found

    async def artifact_count(self, session: RemoteSession) -> int:
        """Number of result images currently in the conversation."""
        self._ensure_open(session)
        return await self.detector.count(session.page, Capability.RESULT_ARTIFACT)

    async def fetch_latest_artifact(self, session: RemoteSession, baseline: Optional[int] = None) -> bytes:
        """Return the bytes of the most recent image on the page.

        With `baseline` (the `artifact_count` taken before the turn was
        submitted), raises ArtifactUnavailable unless the turn added an image;
        the conversation keeps every earlier image.
        """
        self._ensure_open(session)
        page = session.page

        if baseline is not None:
            current = await self.detector.count(page, Capability.RESULT_ARTIFACT)
            if current <= baseline:
                await self._capture_debug(page, "no-new-image")
                raise ArtifactUnavailable(
                    f"No new image produced for this turn ({current} on page, {baseline} before)"
                )

        detection = await self.detector.detect(page, Capability.LATEST_IMAGE)
        if not detection:
            await self._capture_debug(page, "no-image")
            raise ArtifactUnavailable("No generated image found on the page")

        image = detection.locator
        try:
            src = await image.get_attribute("src")
            if not src:
                raise ArtifactUnavailable("Generated image has no source")

            logger.info("Downloading %s", src[:80])
            if src.startswith("data:"):
                data = decode_data_url(src)
            elif src.startswith("blob:"):
                # Blob URLs only live inside the page; render the element instead
                data = await image.screenshot()
            else:
                response = await page.request.get(src)
                if not response.ok:
                    raise ArtifactUnavailable(f"Image download failed: HTTP {response.status}")
                data = await response.body()
        except PlaywrightError as e:
            await self._capture_debug(page, "download-error")
            raise ArtifactUnavailable(f"Image download failed: {e}") from e

        verify_image_bytes(data)
        logger.info("Downloaded image (%d KB)", len(data) // 1024)
        return data

    # Helpers

    def _ensure_open(self, session: RemoteSession) -> None:
        if session.closed:
            raise SessionUnavailable("Remote session is closed")
        is_closed = getattr(session.page, "is_closed", None)
        if callable(is_closed) and is_closed():
            raise SessionUnavailable("Remote page was closed")

    async def _capture_debug(self, page, label: str) -> Optional[Path]:
        """Save a screenshot for troubleshooting; never raises."""
        if not self.config.DEBUG_SCREENSHOTS:
            return None
        path = self.config.debug_path / f"{label}-{datetime.now().strftime('%Y%m%d_%H%M%S')}.png"
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            await page.screenshot(path=str(path), full_page=True)
        except (PlaywrightError, OSError) as e:
            logger.debug("Debug screenshot failed: %s", e)
            return None
        logger.info("Debug screenshot saved: %s", path)
        return path
