from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Tuple

from .errors import ConfigError

MAX_FILES = 5

VISION_BASE_URL = "https://vision.googleapis.com"
GEMINI_BASE_URL = "https://generativelanguage.googleapis.com"
GEMINI_MODEL = "gemini-1.5-flash"

DEFAULT_TIMEOUT_S = 30.0

# Requested per image, in this order.
VISION_FEATURES = [
    {"type": "LABEL_DETECTION", "maxResults": 10},
    {"type": "TEXT_DETECTION"},
    {"type": "FACE_DETECTION"},
    {"type": "SAFE_SEARCH_DETECTION"},
]

# Extension lookup wins over any sniffing.
MIME_TYPE_MAP = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".bmp": "image/bmp",
}
DEFAULT_MIME_TYPE = "image/jpeg"

PRODUCT_LINK_TEMPLATE = "https://example.com/products/search?q={query}"
PRODUCT_LINK_COUNT = 3

CAPTION_PROMPT = (
    "Provide a detailed description of this image, generate accessibility-friendly alt text, "
    "and provide a caption in English and Spanish."
)

DESCRIBE_PROMPT = "Describe the content of this image in detail."


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    google_api_key: str
    gemini_api_key: str
    host: str = "0.0.0.0"
    port: int = 5000
    upload_dir: str = "uploads"
    vision_base_url: str = VISION_BASE_URL
    gemini_base_url: str = GEMINI_BASE_URL
    gemini_model: str = GEMINI_MODEL
    vision_timeout_s: float = DEFAULT_TIMEOUT_S
    gemini_timeout_s: float = DEFAULT_TIMEOUT_S
    cors_origins: Tuple[str, ...] = field(default=("*",))
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """
        Read settings from the process environment.

        Raises ConfigError when either API key is missing, so a misconfigured
        server never starts instead of failing later with an upstream 401.
        """
        google_key = os.getenv("GOOGLE_API_KEY", "").strip()
        gemini_key = os.getenv("GEMINI_API_KEY", "").strip()
        missing = [name for name, val in (("GOOGLE_API_KEY", google_key), ("GEMINI_API_KEY", gemini_key)) if not val]
        if missing:
            raise ConfigError(f"Missing required environment variable(s): {', '.join(missing)}")

        origins = tuple(o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip())
        return cls(
            google_api_key=google_key,
            gemini_api_key=gemini_key,
            host=os.getenv("HOST", "0.0.0.0"),
            port=_env_int("PORT", 5000),
            upload_dir=os.getenv("UPLOAD_DIR", "uploads"),
            vision_base_url=os.getenv("VISION_BASE_URL", VISION_BASE_URL).rstrip("/"),
            gemini_base_url=os.getenv("GEMINI_BASE_URL", GEMINI_BASE_URL).rstrip("/"),
            gemini_model=os.getenv("GEMINI_MODEL", GEMINI_MODEL),
            vision_timeout_s=_env_float("VISION_TIMEOUT_S", DEFAULT_TIMEOUT_S),
            gemini_timeout_s=_env_float("GEMINI_TIMEOUT_S", DEFAULT_TIMEOUT_S),
            cors_origins=origins or ("*",),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
