"""Preset library and prompt composition."""

import json
import logging
from pathlib import Path
from typing import List, Optional, Sequence

from sticker_engine.core.jobs import Preset, select_presets

logger = logging.getLogger(__name__)

DEFAULT_BASE_PROMPT = """Use the uploaded "mother image" (the original character sample) as the ONLY source of the character's identity, and the uploaded "anchor image" (the closest generated version so far) as the reference for style and proportions.

[Character consistency - highest priority]
- Every sticker shows the same single character; no second character and no variants
- Keep face shape, facial proportions, eyes, nose, mouth and overall temperament consistent across the set
- Hair style, hair color, clothing, palette and art style follow the mother image; use the anchor image only to keep proportions and style consistent
- If the mother image and the anchor image disagree, follow the mother image
- Do not merge, exaggerate or beautify the character; keep its mature, reserved look
- Do not add new or derived characters and do not change the character design

[Style and purpose]
- Realistic sketch style
- Clean lines, soft colors
- Exaggerated but cute expressions (never distort the face shape or facial proportions)
- Suitable as a static LINE sticker

[LINE store requirements]
- Image size: 370 x 320 px
- Format: PNG
- Background: transparent
- File size: under 1 MB
- Keep a safe margin; the character must not touch the edges
- Character clearly recognizable
- Any text must be large and legible
- No trademarks, brands or infringing characters

[Composition]
- Single character
- Half body or full body
- Character centered
- Transparent background

[Restrictions]
- Expressions and poses may only change body language and emotion, never face shape, proportions or temperament
- No extra objects or backgrounds
- Do not change the art style

Output exactly one sticker image that meets the LINE requirements."""


def compose_prompt(base_prompt: str, preset: Preset) -> str:
    """Shared base prompt followed by the preset's own instruction."""
    return f"{base_prompt.rstrip()}\n\n{preset.content.strip()}"


class PresetLibrary:
    """Reads presets from a JSON file: a list of {"title", "content"} objects."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> List[Preset]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            logger.error("Preset file not found: %s", self.path)
            raise

        if not isinstance(data, list):
            raise ValueError(f"Preset file must contain a list: {self.path}")
        return [Preset.from_dict(item) for item in data]

    def select(self, indices: Optional[Sequence[int]] = None) -> List[Preset]:
        return select_presets(self.load(), indices)
