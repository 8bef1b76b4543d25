"""Application configuration."""

import os
from pathlib import Path
from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings."""

    # App info
    VERSION: str = "1.0.0"
    APP_NAME: str = "Sticker Engine"
    DEBUG: bool = False

    # Server
    HOST: str = "127.0.0.1"
    PORT: int = 3000
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:5173"]

    # Paths
    DATA_PATH: Path = Path.home() / "STICKER_ENGINE"
    UPLOAD_PATH: Path = Path.home() / "STICKER_ENGINE" / "uploads"
    OUTPUT_PATH: Path = Path.home() / "STICKER_ENGINE" / "output"
    BROWSER_PROFILE_PATH: Path = Path.home() / "STICKER_ENGINE" / "browser-profile"
    PRESETS_PATH: Path = Path(__file__).resolve().parent.parent / "data" / "presets.json"

    # Remote service
    REMOTE_URL: str = "https://chat.openai.com"
    BROWSER_CHANNEL: str = "chrome"  # chrome, msedge, or "" for bundled chromium
    HEADLESS: bool = False  # login needs a visible window
    NAVIGATION_TIMEOUT: float = 90.0

    # Waits (seconds)
    LOGIN_TIMEOUT: float = 600.0
    PAGE_STABILIZE_DELAY: float = 5.0
    ATTACHMENT_TIMEOUT: float = 30.0
    INPUT_RETRIES: int = 3
    INPUT_RETRY_DELAY: float = 5.0
    GENERATION_START_TIMEOUT: float = 60.0
    GENERATION_TIMEOUT: float = 900.0
    SETTLE_DELAY: float = 30.0
    EXTRA_SETTLE_DELAY: float = 30.0
    FINAL_SETTLE_DELAY: float = 10.0
    ITEM_COOLDOWN: float = 3.0

    # Scheduler policy: recycle the session after this many failed items in a row (0 = never)
    MAX_CONSECUTIVE_ITEM_FAILURES: int = 2

    # Uploads
    MAX_UPLOAD_SIZE: int = 50 * 1024 * 1024
    ALLOWED_IMAGE_EXTENSIONS: List[str] = [".jpg", ".jpeg", ".png", ".webp"]

    # Diagnostics
    DEBUG_SCREENSHOTS: bool = True

    class Config:
        env_prefix = "STICKER_"
        env_file = ".env"
        case_sensitive = True

    def __init__(self, **kwargs):
        super().__init__(**kwargs)

        # Derive sub-paths when only the data root was overridden
        if "DATA_PATH" in kwargs:
            self.UPLOAD_PATH = kwargs.get("UPLOAD_PATH", self.DATA_PATH / "uploads")
            self.OUTPUT_PATH = kwargs.get("OUTPUT_PATH", self.DATA_PATH / "output")
            self.BROWSER_PROFILE_PATH = kwargs.get(
                "BROWSER_PROFILE_PATH", self.DATA_PATH / "browser-profile"
            )

        # Create directories
        for path in (self.DATA_PATH, self.UPLOAD_PATH, self.OUTPUT_PATH):
            path.mkdir(parents=True, exist_ok=True)

    @property
    def debug_path(self) -> Path:
        return self.DATA_PATH / "debug"


# Override paths from environment
if os.environ.get("STICKER_DATA_PATH"):
    settings = Settings(DATA_PATH=Path(os.environ["STICKER_DATA_PATH"]))
else:
    settings = Settings()
