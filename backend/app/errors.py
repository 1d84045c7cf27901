"""Error types shared by the resolution pipeline and the HTTP layer."""
from __future__ import annotations

from typing import Any, Dict, Optional


class DashboardError(Exception):
    """Base error carrying a user-facing message and an HTTP status."""

    status_code = 500

    def __init__(self, message: str, *, detail: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.message}
        if self.detail:
            payload["detail"] = self.detail
        return payload


class ConfigurationError(DashboardError):
    """必要な認証情報が設定されていない"""


class ValidationError(DashboardError):
    """リクエストの必須項目が欠けている"""

    status_code = 400


class TransportError(DashboardError):
    """Network or HTTP failure talking to EDINET or Gemini."""


class RegistryUnavailable(TransportError):
    """EDINET did not answer with a success status."""

    def __init__(self, message: str, *, status_code: Optional[int] = None, detail: Optional[str] = None):
        super().__init__(message, detail=detail)
        self.upstream_status = status_code


class ModelUnavailable(TransportError):
    """Every configured Gemini model failed."""

    def __init__(self, message: str, *, last_error: Optional[BaseException] = None):
        super().__init__(message, detail=str(last_error) if last_error else None)
        self.last_error = last_error


class NotFoundError(DashboardError):
    """No disclosure exists or no registry document matched."""

    status_code = 404

    def __init__(self, message: str, *, hint: Optional[str] = None, detail: Optional[str] = None):
        super().__init__(message, detail=detail)
        self.hint = hint

    def to_payload(self) -> Dict[str, Any]:
        payload = super().to_payload()
        if self.hint:
            payload["hint"] = self.hint
        return payload


class ResponseUnparseable(DashboardError):
    """Gemini replied, but no JSON object could be read from the reply."""

    def __init__(self, message: str, *, raw_text: str):
        super().__init__(message)
        self.raw_text = raw_text

    def to_payload(self) -> Dict[str, Any]:
        payload = super().to_payload()
        payload["rawText"] = self.raw_text
        return payload
