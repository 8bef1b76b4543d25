"""Preset library endpoint."""

from fastapi import APIRouter, Depends, HTTPException

from sticker_engine.api.v1.deps import get_presets
from sticker_engine.services.presets import DEFAULT_BASE_PROMPT, PresetLibrary

router = APIRouter()


@router.get("/presets")
async def list_presets(library: PresetLibrary = Depends(get_presets)) -> dict:
    """All presets with their selection index, plus the default base prompt."""
    try:
        presets = library.load()
    except (FileNotFoundError, ValueError) as e:
        raise HTTPException(status_code=500, detail=f"Preset library unavailable: {e}")

    return {
        "success": True,
        "presets": [{"index": i, **p.to_dict()} for i, p in enumerate(presets)],
        "defaultPrompt": DEFAULT_BASE_PROMPT,
    }
