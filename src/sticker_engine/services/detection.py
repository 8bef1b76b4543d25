"""Prioritized element detection against the remote chat page.

The remote DOM changes often, so every capability is backed by an ordered
list of strategies. `Detector.detect` returns the first strategy that
matches; callers never deal with individual selectors.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

logger = logging.getLogger(__name__)


class Capability(str, Enum):
    """Things the driver needs to find on the page."""
    INPUT_SURFACE = "input_surface"
    FILE_INPUT = "file_input"
    ATTACHMENT_ACCEPTED = "attachment_accepted"
    GENERATION_INDICATOR = "generation_indicator"
    RESULT_ARTIFACT = "result_artifact"
    LATEST_IMAGE = "latest_image"


@dataclass(frozen=True)
class Strategy:
    """One way of locating a capability."""
    selector: str
    pick: str = "first"  # "first" or "last" match
    require_visible: bool = True
    min_src_length: int = 0  # > 0 means the element's src must look like real image data


@dataclass
class Detection:
    found: bool
    locator: Any = None
    strategy: Optional[Strategy] = None

    def __bool__(self) -> bool:
        return self.found


NOT_FOUND = Detection(found=False)

# A real generated image has a long src (CDN URL, blob or data URL)
_VALID_SRC_LENGTH = 50

_RESULT_IMAGE_STRATEGIES = [
    Strategy('img[alt*="Generated"]', pick="last", min_src_length=_VALID_SRC_LENGTH),
    Strategy('img[src*="dalle"]', pick="last", min_src_length=_VALID_SRC_LENGTH),
    Strategy('img[src*="oaidalleapiprodscus"]', pick="last", min_src_length=_VALID_SRC_LENGTH),
    Strategy('img[src^="blob:"]', pick="last", min_src_length=_VALID_SRC_LENGTH),
    Strategy('img[src^="data:image"]', pick="last", min_src_length=_VALID_SRC_LENGTH),
    Strategy('div[data-message-author-role="assistant"] img', pick="last", min_src_length=_VALID_SRC_LENGTH),
]

DEFAULT_STRATEGIES: Dict[Capability, List[Strategy]] = {
    Capability.INPUT_SURFACE: [
        Strategy('textarea[name="prompt-textarea"]'),
        Strategy("#prompt-textarea"),
        Strategy('textarea[placeholder*="Message"]'),
        Strategy('textarea[placeholder*="提出"]'),
        Strategy('div[contenteditable="true"]'),
        Strategy("textarea"),
    ],
    Capability.FILE_INPUT: [
        Strategy('input[type="file"]', require_visible=False),
    ],
    Capability.ATTACHMENT_ACCEPTED: [
        Strategy('[data-testid*="attachment"] img', require_visible=False),
        Strategy('form img[alt*="Uploaded"]', require_visible=False),
        Strategy('button[aria-label*="Remove file"]', require_visible=False),
    ],
    Capability.GENERATION_INDICATOR: [
        Strategy('button[data-testid="stop-button"]'),
        Strategy('button:has-text("Stop generating")'),
        Strategy('button[aria-label*="Stop"]'),
    ],
    Capability.RESULT_ARTIFACT: list(_RESULT_IMAGE_STRATEGIES),
    Capability.LATEST_IMAGE: [
        Strategy(s.selector, pick="last", require_visible=False) for s in _RESULT_IMAGE_STRATEGIES
    ] + [Strategy("img", pick="last", require_visible=False)],
}


class Detector:
    """Runs detection strategies against a Playwright page."""

    def __init__(
        self,
        strategies: Optional[Dict[Capability, Sequence[Strategy]]] = None,
        poll_interval: float = 1.0,
    ):
        self.strategies = dict(DEFAULT_STRATEGIES)
        if strategies:
            self.strategies.update(strategies)
        self.poll_interval = poll_interval

    async def detect(self, page, capability: Capability) -> Detection:
        """Try each strategy in priority order; first match wins."""
        for strategy in self.strategies.get(capability, []):
            try:
                locator = await self._match(page, strategy)
            except Exception as e:
                # Detached frames and navigation races surface as errors; try the next strategy
                logger.debug("Strategy %s failed for %s: %s", strategy.selector, capability.value, e)
                continue
            if locator is not None:
                return Detection(found=True, locator=locator, strategy=strategy)
        return NOT_FOUND

    async def count(self, page, capability: Capability) -> int:
        """Largest match count across the capability's strategies."""
        best = 0
        for strategy in self.strategies.get(capability, []):
            try:
                best = max(best, await page.locator(strategy.selector).count())
            except Exception as e:
                logger.debug("Count failed for %s: %s", strategy.selector, e)
        return best

    async def wait_for(self, page, capability: Capability, timeout: float) -> Detection:
        """Poll until the capability is detected or `timeout` seconds pass."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            detection = await self.detect(page, capability)
            if detection or loop.time() >= deadline:
                return detection
            await asyncio.sleep(min(self.poll_interval, max(deadline - loop.time(), 0)))

    async def wait_for_absent(self, page, capability: Capability, timeout: float) -> bool:
        """Poll until the capability disappears. Returns False on timeout."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            if not await self.detect(page, capability):
                return True
            if loop.time() >= deadline:
                return False
            await asyncio.sleep(min(self.poll_interval, max(deadline - loop.time(), 0)))

    async def wait_for_count(self, page, capability: Capability, minimum: int, timeout: float) -> bool:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            if await self.count(page, capability) >= minimum:
                return True
            if loop.time() >= deadline:
                return False
            await asyncio.sleep(min(self.poll_interval, max(deadline - loop.time(), 0)))

    async def _match(self, page, strategy: Strategy):
        matches = page.locator(strategy.selector)
        if await matches.count() == 0:
            return None

        locator = matches.last if strategy.pick == "last" else matches.first

        if strategy.require_visible and not await locator.is_visible():
            return None

        if strategy.min_src_length:
            src = await locator.get_attribute("src")
            if not src or len(src) <= strategy.min_src_length:
                return None

        return locator
