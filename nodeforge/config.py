"""
Configuration for nodeforge.

Values come from the environment (optionally a .env file). Read once at
import time; tests override attributes directly.
"""

import os
from typing import Optional

from dotenv import load_dotenv

from nodeforge.errors import ConfigurationError

load_dotenv()


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        parsed = int(raw)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


class NodeforgeConfig:
    """Settings for the generation service, retry policy and poller"""

    # Gemini API settings
    GEMINI_API_KEY: Optional[str] = os.getenv("GEMINI_API_KEY") or os.getenv("API_KEY")
    TEXT_MODEL: str = os.getenv("NODEFORGE_TEXT_MODEL", "gemini-2.5-flash")
    IMAGE_MODEL: str = os.getenv("NODEFORGE_IMAGE_MODEL", "imagen-4.0-generate-001")
    IMAGE_EDIT_MODEL: str = os.getenv(
        "NODEFORGE_IMAGE_EDIT_MODEL", "gemini-2.5-flash-image-preview"
    )
    VIDEO_MODEL: str = os.getenv("NODEFORGE_VIDEO_MODEL", "veo-2.0-generate-001")

    # Retry wrapper
    MAX_RETRIES: int = _env_int("NODEFORGE_MAX_RETRIES", 3)
    RETRY_INITIAL_DELAY: float = _env_float("NODEFORGE_RETRY_INITIAL_DELAY", 2.0)
    RETRY_MAX_JITTER: float = _env_float("NODEFORGE_RETRY_MAX_JITTER", 1.0)

    # Video polling (seconds). No timeout unless configured.
    VIDEO_POLL_INTERVAL: float = _env_float("NODEFORGE_VIDEO_POLL_INTERVAL", 10.0)
    VIDEO_POLL_TIMEOUT: Optional[float] = (
        _env_float("NODEFORGE_VIDEO_POLL_TIMEOUT", 0.0) or None
    )
    VIDEO_DOWNLOAD_TIMEOUT: float = _env_float("NODEFORGE_VIDEO_DOWNLOAD_TIMEOUT", 120.0)

    # Server-side fetching of http(s) image inputs. Off by default.
    FETCH_REMOTE_IMAGES: bool = os.getenv("NODEFORGE_FETCH_REMOTE_IMAGES", "").lower() in ("1", "true", "yes")
    IMAGE_DOWNLOAD_TIMEOUT: float = _env_float("NODEFORGE_IMAGE_DOWNLOAD_TIMEOUT", 60.0)

    LOG_LEVEL: str = os.getenv("NODEFORGE_LOG_LEVEL", "INFO").upper()

    @classmethod
    def get_api_key(cls) -> str:
        """
        Get the Gemini API key from config or environment.

        Raises:
            ConfigurationError: If the API key is not set
        """
        api_key = cls.GEMINI_API_KEY
        if not api_key:
            raise ConfigurationError(
                "GEMINI_API_KEY not found. "
                "Please set it in your environment or .env file."
            )
        return api_key
