from __future__ import annotations

import logging

import pydantic
import requests

from .config import CAPTION_PROMPT, DEFAULT_TIMEOUT_S, GEMINI_BASE_URL, GEMINI_MODEL, Settings
from .contracts import EncodedImage, GenerateContentResponse
from .errors import UpstreamError, response_payload

logger = logging.getLogger(__name__)

SERVICE = "gemini"


class GeminiCaptioner:
    def __init__(
        self,
        api_key: str,
        base_url: str = GEMINI_BASE_URL,
        model: str = GEMINI_MODEL,
        timeout_s: float = DEFAULT_TIMEOUT_S,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout_s = timeout_s

    @classmethod
    def from_settings(cls, settings: Settings) -> "GeminiCaptioner":
        return cls(
            settings.gemini_api_key,
            settings.gemini_base_url,
            settings.gemini_model,
            settings.gemini_timeout_s,
        )

    @property
    def url(self) -> str:
        return f"{self.base_url}/v1beta/models/{self.model}:generateContent"

    def caption(self, image: EncodedImage, prompt: str = CAPTION_PROMPT) -> str:
        """
        Returns the first candidate's first text part.

        Network failure, non-2xx, or a response without text (e.g. a blocked
        prompt) raises UpstreamError.
        """
        payload = {
            "contents": [
                {
                    "parts": [
                        {"inlineData": {"mimeType": image.mime_type, "data": image.base64_payload}},
                        {"text": prompt},
                    ]
                }
            ]
        }
        try:
            resp = requests.post(self.url, params={"key": self.api_key}, json=payload, timeout=self.timeout_s)
        except requests.RequestException as e:
            logger.warning("Gemini request failed: %s", e)
            raise UpstreamError(SERVICE, f"request failed: {e}") from e

        if not resp.ok:
            logger.warning("Gemini returned HTTP %s", resp.status_code)
            raise UpstreamError(
                SERVICE,
                f"HTTP {resp.status_code}",
                status_code=resp.status_code,
                payload=response_payload(resp),
            )

        try:
            data = resp.json()
            parsed = GenerateContentResponse.model_validate(data)
        except (ValueError, pydantic.ValidationError) as e:
            raise UpstreamError(SERVICE, f"unparseable response: {e}", status_code=resp.status_code) from e

        candidates = parsed.candidates
        content = candidates[0].content if candidates else None
        if content is None or not content.parts or content.parts[0].text is None:
            raise UpstreamError(SERVICE, "no text candidate in response", status_code=resp.status_code, payload=data)
        return content.parts[0].text
