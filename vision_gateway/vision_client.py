from __future__ import annotations

import logging

import pydantic
import requests

from .config import DEFAULT_TIMEOUT_S, VISION_BASE_URL, VISION_FEATURES, Settings
from .contracts import AnnotateResponse, AnnotationResult, EncodedImage
from .errors import UpstreamError, response_payload

logger = logging.getLogger(__name__)

SERVICE = "vision"


class VisionAnnotator:
    """Cloud Vision `images:annotate` client; one request per image, no retry."""

    def __init__(
        self,
        api_key: str,
        base_url: str = VISION_BASE_URL,
        timeout_s: float = DEFAULT_TIMEOUT_S,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s

    @classmethod
    def from_settings(cls, settings: Settings) -> "VisionAnnotator":
        return cls(settings.google_api_key, settings.vision_base_url, settings.vision_timeout_s)

    @property
    def url(self) -> str:
        return f"{self.base_url}/v1/images:annotate"

    def build_payload(self, image: EncodedImage) -> dict:
        return {
            "requests": [
                {
                    "image": {"content": image.base64_payload},
                    "features": [dict(f) for f in VISION_FEATURES],
                }
            ]
        }

    def annotate(self, image: EncodedImage) -> AnnotationResult:
        try:
            resp = requests.post(
                self.url,
                params={"key": self.api_key},
                json=self.build_payload(image),
                timeout=self.timeout_s,
            )
        except requests.RequestException as e:
            logger.warning("Vision request failed: %s", e)
            raise UpstreamError(SERVICE, f"request failed: {e}") from e

        if not resp.ok:
            logger.warning("Vision returned HTTP %s", resp.status_code)
            raise UpstreamError(
                SERVICE,
                f"HTTP {resp.status_code}",
                status_code=resp.status_code,
                payload=response_payload(resp),
            )

        try:
            data = resp.json()
            parsed = AnnotateResponse.model_validate(data)
        except (ValueError, pydantic.ValidationError) as e:
            raise UpstreamError(SERVICE, f"unparseable response: {e}", status_code=resp.status_code) from e

        if not parsed.responses:
            raise UpstreamError(SERVICE, "empty responses array", status_code=resp.status_code, payload=data)

        result = parsed.responses[0]
        # Per-image failures come back as 200 with an `error` entry.
        if result.error:
            raise UpstreamError(
                SERVICE,
                str(result.error.get("message") or "image annotation failed"),
                status_code=resp.status_code,
                payload={"error": result.error},
            )
        return result

