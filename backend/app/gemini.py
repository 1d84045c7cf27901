"""Gemini API helper for text generation."""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

import requests

from .errors import ConfigurationError, TransportError

logger = logging.getLogger(__name__)

ENDPOINT_TEMPLATE = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"


class GeminiError(TransportError):
    """Raised when the Gemini service returns an error payload."""

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        super().__init__(message)
        self.upstream_status = status_code


class GeminiClient:
    def __init__(self, *, api_key: Optional[str], timeout: float = 60.0) -> None:
        self.api_key = api_key
        self.timeout = timeout

    def generate_text(self, prompt: str, *, model: str) -> str:
        """Send a single-turn prompt and return the first candidate's text."""
        if not self.api_key:
            raise ConfigurationError("Gemini APIキーが設定されていません")
        data = self._invoke_generate(model, self._base_prompt(prompt))
        return self._parse_response(data)

    def _invoke_generate(self, model: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        endpoint = ENDPOINT_TEMPLATE.format(model=model)
        try:
            response = requests.post(
                f"{endpoint}?key={self.api_key}",
                json=payload,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise GeminiError(f"Gemini request failed: {exc}") from exc
        if response.status_code >= 400:
            raise GeminiError(self._extract_error(response), status_code=response.status_code)
        try:
            return response.json()
        except ValueError as exc:
            raise GeminiError(
                f"Gemini returned a non-JSON body: {exc}", status_code=response.status_code
            ) from exc

    @staticmethod
    def _base_prompt(prompt: str) -> Dict[str, Any]:
        return {
            "contents": [
                {
                    "role": "user",
                    "parts": [{"text": prompt}],
                }
            ]
        }

    @staticmethod
    def _extract_error(response: requests.Response) -> str:
        try:
            payload = response.json()
        except ValueError:
            return response.text
        return json.dumps(payload, ensure_ascii=False)

    @staticmethod
    def _parse_response(data: Dict[str, Any]) -> str:
        candidates = data.get("candidates") or []
        if not candidates:
            raise GeminiError("No candidates returned from Gemini API")
        parts = candidates[0].get("content", {}).get("parts", [])
        if not parts:
            raise GeminiError("Candidate contains no parts")
        text = "".join(part.get("text", "") for part in parts).strip()
        if not text:
            raise GeminiError("Gemini response did not contain text")
        return text
