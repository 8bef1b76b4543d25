"""Pytest configuration and fixtures."""

import asyncio
import io
import json
import sys
from pathlib import Path

import pytest
from PIL import Image

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from sticker_engine.core.config import Settings  # noqa: E402
from sticker_engine.core.errors import ArtifactUnavailable, SessionUnavailable  # noqa: E402
from sticker_engine.core.jobs import GenerationJob, JobScheduler, Preset, SchedulerState  # noqa: E402
from sticker_engine.services.export import ExportService  # noqa: E402
from sticker_engine.services.generator import ItemGenerator  # noqa: E402


def make_png(size=(8, 8), color=(255, 0, 0, 255)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGBA", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


class FakeDriver:
    """Stands in for RemoteSessionDriver; no browser involved.

    A prompt containing "no-artifact" produces no image, and session
    acquisitions whose 1-based call number is in `fail_acquires` raise
    SessionUnavailable.
    """

    def __init__(self, fail_acquires=(), gate: asyncio.Event = None):
        self.fail_acquires = set(fail_acquires)
        self.gate = gate
        self.events = []
        self.acquired = 0
        self.open_sessions = 0
        self._last_text = ""

    async def acquire_session(self):
        self.acquired += 1
        self.events.append(("acquire", self.acquired))
        if self.acquired in self.fail_acquires:
            raise SessionUnavailable("remote service unreachable")
        self.open_sessions += 1
        return {"id": self.acquired, "closed": False}

    async def close(self, session):
        if session["closed"]:
            return
        session["closed"] = True
        self.open_sessions -= 1
        self.events.append(("close", session["id"]))

    async def submit(self, session, text, attachment_paths=()):
        self.events.append(("submit", text, list(attachment_paths)))
        self._last_text = text

    async def await_completion(self, session):
        if self.gate is not None:
            await self.gate.wait()
        return "no-artifact" not in self._last_text

    async def artifact_count(self, session):
        return 0

    async def fetch_latest_artifact(self, session, baseline=None):
        if "no-artifact" in self._last_text:
            raise ArtifactUnavailable("No generated image found on the page")
        return make_png()

    @property
    def submissions(self):
        return [e for e in self.events if e[0] == "submit"]


class FakeElement:
    """Minimal stand-in for a Playwright locator resolved to one element."""

    def __init__(self, src=None, visible=True, shot=b""):
        self.src = src
        self.visible = visible
        self.shot = shot
        self.files = []
        self.filled = None
        self.clicked = False

    async def is_visible(self):
        return self.visible

    async def get_attribute(self, name):
        return self.src if name == "src" else None

    async def screenshot(self, **kwargs):
        return self.shot

    async def set_input_files(self, path):
        self.files.append(path)

    async def click(self, **kwargs):
        self.clicked = True

    async def fill(self, text):
        self.filled = text


class FakeMatches:
    def __init__(self, elements):
        self.elements = elements

    async def count(self):
        return len(self.elements)

    @property
    def first(self):
        return self.elements[0]

    @property
    def last(self):
        return self.elements[-1]


class FakeKeyboard:
    def __init__(self):
        self.pressed = []

    async def press(self, key):
        self.pressed.append(key)


class FakePage:
    """Page whose DOM is a mapping of selector to matching elements."""

    def __init__(self, dom=None, error=None):
        self.dom = dom or {}
        self.error = error
        self.keyboard = FakeKeyboard()
        self.request = None

    def locator(self, selector):
        if self.error is not None:
            raise self.error
        return FakeMatches(self.dom.get(selector, []))

    def is_closed(self):
        return False


@pytest.fixture
def config(tmp_path):
    presets_path = tmp_path / "presets.json"
    presets_path.write_text(
        json.dumps([
            {"title": "Hello", "content": "Wave hello"},
            {"title": "Thank you", "content": "Bow politely"},
            {"title": "Good night", "content": "Yawn sleepily"},
        ]),
        encoding="utf-8",
    )
    return Settings(
        DATA_PATH=tmp_path / "data",
        PRESETS_PATH=presets_path,
        PAGE_STABILIZE_DELAY=0,
        ATTACHMENT_TIMEOUT=0,
        INPUT_RETRY_DELAY=0,
        LOGIN_TIMEOUT=0,
        GENERATION_START_TIMEOUT=0,
        GENERATION_TIMEOUT=0,
        SETTLE_DELAY=0,
        EXTRA_SETTLE_DELAY=0,
        FINAL_SETTLE_DELAY=0,
        ITEM_COOLDOWN=0,
        DEBUG_SCREENSHOTS=False,
    )


@pytest.fixture
def reference_images(tmp_path):
    mother = tmp_path / "mother.png"
    anchor = tmp_path / "anchor.png"
    mother.write_bytes(make_png(color=(0, 0, 255, 255)))
    anchor.write_bytes(make_png(color=(0, 255, 0, 255)))
    return str(mother), str(anchor)


@pytest.fixture
def make_job(reference_images):
    mother, anchor = reference_images

    def _make(*contents: str) -> GenerationJob:
        contents = contents or ("Wave hello", "Bow politely", "Yawn sleepily")
        items = [Preset(title=f"Item {i}", content=c) for i, c in enumerate(contents, start=1)]
        return GenerationJob(
            mother_image_path=mother,
            anchor_image_path=anchor,
            base_prompt="Draw the character.",
            items=items,
        )

    return _make


@pytest.fixture
def exporter(config):
    return ExportService(config.OUTPUT_PATH)


@pytest.fixture
def driver():
    return FakeDriver()


@pytest.fixture
def scheduler_factory(exporter):
    def _build(driver: FakeDriver, max_consecutive_failures: int = 0) -> JobScheduler:
        return JobScheduler(
            SchedulerState(),
            driver=driver,
            generator=ItemGenerator(driver, exporter),
            reporter=exporter,
            max_consecutive_failures=max_consecutive_failures,
        )

    return _build


@pytest.fixture
async def scheduler(scheduler_factory, driver):
    s = scheduler_factory(driver)
    await s.start()
    yield s
    await s.stop()
