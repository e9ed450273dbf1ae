from __future__ import annotations

from typing import Any, Optional


class AnalyzeError(Exception):
    """Base class for every failure surfaced by the gateway."""


class ValidationError(AnalyzeError):
    """The request itself is unusable (no files, too many files)."""


class ReadError(AnalyzeError):
    """A persisted upload exists but its bytes could not be read."""


class ConfigError(AnalyzeError):
    pass


class RequestCancelled(AnalyzeError):
    pass


class UpstreamError(AnalyzeError):
    """
    Non-2xx response, network failure, or unusable body from an external API.

    `payload` is the provider's parsed error body (or raw text) when one was
    received, else None.
    """

    def __init__(
        self,
        service: str,
        message: str,
        status_code: Optional[int] = None,
        payload: Any = None,
    ):
        super().__init__(f"{service}: {message}")
        self.service = service
        self.status_code = status_code
        self.payload = payload


def error_body(exc: Exception, fallback: str) -> Any:
    """
    Value for the `error` field of a JSON error response. Exceptions outside the
    AnalyzeError family (OSError and friends) never expose their message.
    """
    if isinstance(exc, UpstreamError) and exc.payload:
        return exc.payload
    if isinstance(exc, AnalyzeError):
        return str(exc) or fallback
    return fallback


def response_payload(resp: Any) -> Any:
    """Best-effort error body of a failed HTTP response: JSON, else text."""
    try:
        return resp.json()
    except ValueError:
        return resp.text or None
