"""Reference image upload endpoint."""

import logging
import secrets
import time
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile

from sticker_engine.api.v1.deps import get_settings
from sticker_engine.core.config import Settings

logger = logging.getLogger(__name__)
router = APIRouter()

CHUNK_SIZE = 1024 * 1024


def _check_type(upload: UploadFile, config: Settings) -> str:
    extension = Path(upload.filename or "").suffix.lower()
    content_type = (upload.content_type or "").lower()

    if extension not in config.ALLOWED_IMAGE_EXTENSIONS or not content_type.startswith("image/"):
        raise HTTPException(status_code=400, detail="Only image files are allowed (jpg, png, webp)")
    return extension


async def _store_upload(upload: UploadFile, field: str, extension: str, config: Settings) -> dict:
    """Stream an upload to UPLOAD_PATH, stopping as soon as it passes the size limit."""
    filename = f"{field}-{int(time.time() * 1000)}-{secrets.randbelow(10**9)}{extension}"
    config.UPLOAD_PATH.mkdir(parents=True, exist_ok=True)
    path = config.UPLOAD_PATH / filename

    size = 0
    try:
        with open(path, "wb") as buffer:
            while True:
                chunk = await upload.read(CHUNK_SIZE)
                if not chunk:
                    break
                size += len(chunk)
                if size > config.MAX_UPLOAD_SIZE:
                    raise HTTPException(status_code=400, detail=f"{field} exceeds the upload size limit")
                buffer.write(chunk)
        if size == 0:
            raise HTTPException(status_code=400, detail=f"{field} is empty")
    except BaseException:
        path.unlink(missing_ok=True)
        raise

    logger.info("Stored %s upload %s (%d KB)", field, path, size // 1024)
    return {"filename": filename, "path": str(path), "size": size}


@router.post("/upload")
async def upload_images(
    motherImage: Optional[UploadFile] = File(None),
    anchorImage: Optional[UploadFile] = File(None),
    config: Settings = Depends(get_settings),
) -> dict:
    """Store the mother and anchor reference images."""
    if motherImage is None or anchorImage is None:
        raise HTTPException(status_code=400, detail="Both motherImage and anchorImage are required")

    # Reject bad types before anything touches the disk
    mother_ext = _check_type(motherImage, config)
    anchor_ext = _check_type(anchorImage, config)

    mother = await _store_upload(motherImage, "motherImage", mother_ext, config)
    try:
        anchor = await _store_upload(anchorImage, "anchorImage", anchor_ext, config)
    except BaseException:
        Path(mother["path"]).unlink(missing_ok=True)
        raise

    return {
        "success": True,
        "message": "Images uploaded",
        "files": {"motherImage": mother, "anchorImage": anchor},
    }
