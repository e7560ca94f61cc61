# config.py
"""
Runtime configuration.

All values come from environment variables (a local .env file is loaded first).
Usage:
    from config import config
    config.CAPTURE_INTERVAL_SECONDS
"""
import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


def _get_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _get_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    if value is None or value.strip() == "":
        return default
    return float(value)


def _get_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None or value.strip() == "":
        return default
    return int(value)


def _get_str(name: str, default: str = "") -> str:
    return os.environ.get(name, default).strip()


class Config:
    """Process-wide settings, read once at import time."""

    def __init__(self):
        # ============ Logging ============
        self.LOG_LEVEL = _get_str("LOG_LEVEL", "INFO").upper()
        self.LOG_DIR = _get_str("LOG_DIR", "./logs")

        # ============ Storage ============
        self.DATA_DIR = _get_str("DATA_DIR", "./data")
        self.IMAGE_STORAGE_PATH = _get_str(
            "IMAGE_STORAGE_PATH", str(Path(self.DATA_DIR) / "frames")
        )
        self.IMAGE_QUALITY = _get_int("IMAGE_QUALITY", 80)
        # 0 表示不压缩
        self.MAX_IMAGE_WIDTH = _get_int("MAX_IMAGE_WIDTH", 0)

        # ============ Capture ============
        self.CAPTURE_INTERVAL_SECONDS = _get_float("CAPTURE_INTERVAL_SECONDS", 5.0)
        self.ENABLE_FULL_SCREEN_CAPTURES = _get_bool("ENABLE_FULL_SCREEN_CAPTURES", False)
        self.FULL_SCREEN_CAPTURE_INTERVAL_SECONDS = _get_float(
            "FULL_SCREEN_CAPTURE_INTERVAL_SECONDS", 1.0
        )
        self.WINDOW_POLL_INTERVAL_SECONDS = _get_float("WINDOW_POLL_INTERVAL_SECONDS", 0.25)
        self.FRAME_CHANNEL_SIZE = _get_int("FRAME_CHANNEL_SIZE", 32)

        # ============ Accessibility ============
        self.ACCESSIBILITY_MAX_DEPTH = _get_int("ACCESSIBILITY_MAX_DEPTH", 4)
        self.ACCESSIBILITY_MAX_TEXT_LENGTH = _get_int("ACCESSIBILITY_MAX_TEXT_LENGTH", 1000)

        # ============ Analysis providers ============
        self.GEMINI_API_KEY = _get_str("GEMINI_API_KEY")
        self.GEMINI_VISION_MODEL = _get_str("GEMINI_VISION_MODEL", "gemini-2.5-flash")
        self.GEMINI_EMBEDDING_MODEL = _get_str("GEMINI_EMBEDDING_MODEL", "text-embedding-004")

        self.OPENAI_API_KEY = _get_str("OPENAI_API_KEY")
        self.OPENAI_BASE_URL = _get_str("OPENAI_BASE_URL", "https://api.openai.com/v1")
        self.OPENAI_VISION_MODEL = _get_str("OPENAI_VISION_MODEL", "gpt-4o")
        self.OPENAI_EMBEDDING_MODEL = _get_str("OPENAI_EMBEDDING_MODEL", "text-embedding-3-small")

        self.CLAUDE_API_KEY = _get_str("CLAUDE_API_KEY")
        self.CLAUDE_MODEL = _get_str("CLAUDE_MODEL", "claude-sonnet-4-20250514")

        self.ACTIVE_VISION_PROVIDER = _get_str("ACTIVE_VISION_PROVIDER", "gemini").lower()
        self.ACTIVE_EMBEDDING_PROVIDER = _get_str("ACTIVE_EMBEDDING_PROVIDER", "gemini").lower()
        self.ACTIVE_CHAT_PROVIDER = _get_str("ACTIVE_CHAT_PROVIDER", "gemini").lower()

        self.PROVIDER_TIMEOUT_SECONDS = _get_float("PROVIDER_TIMEOUT_SECONDS", 30.0)

        # ============ Vector index (Qdrant) ============
        self.QDRANT_URL = _get_str("QDRANT_URL", "http://localhost:6333")
        self.QDRANT_COLLECTION = _get_str("QDRANT_COLLECTION", "screen_frames")
        self.QDRANT_TIMEOUT_SECONDS = _get_float("QDRANT_TIMEOUT_SECONDS", 10.0)
        self.VECTOR_SIZE = _get_int("VECTOR_SIZE", 768)
        self.SEARCH_SCORE_THRESHOLD = _get_float("SEARCH_SCORE_THRESHOLD", 0.3)

        # ============ Control plane ============
        self.CONTROL_HOST = _get_str("CONTROL_HOST", "127.0.0.1")
        self.CONTROL_PORT = _get_int("CONTROL_PORT", 9111)

    def __repr__(self) -> str:
        return (
            f"Config(capture_interval={self.CAPTURE_INTERVAL_SECONDS}s, "
            f"full_screen={self.ENABLE_FULL_SCREEN_CAPTURES}, "
            f"qdrant={self.QDRANT_URL}/{self.QDRANT_COLLECTION}, "
            f"vector_size={self.VECTOR_SIZE})"
        )


config = Config()
