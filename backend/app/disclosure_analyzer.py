"""Gemini-based reading of rental real estate disclosures.

Models are tried in ranked order. Each model gets a small number of attempts
for overload errors (linear backoff), quota errors move on to the next model
immediately, and a missing API key stops the whole run.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Sequence, Tuple

from .config import Settings
from .errors import ConfigurationError, DashboardError, ModelUnavailable, ValidationError
from .gemini import GeminiClient
from .models import ModelAnalysis
from .parsers import extract_json_object, parse_model_payload
from .prompts.real_estate_prompt import build_real_estate_prompt

logger = logging.getLogger(__name__)

# generate(prompt, *, model) -> text
TextGenerator = Callable[..., str]

OVERLOAD_MARKERS = ("overloaded", "unavailable")
QUOTA_MARKERS = ("quota", "rate limit", "resource_exhausted", "too many requests")

MESSAGE_ALL_MODELS_FAILED = "Gemini APIからの応答を取得できませんでした"


class FallbackAction(str, Enum):
    """失敗時の次の一手"""
    RETRY_SAME_MODEL = "retry_same_model"  # 過負荷: 同じモデルで再試行
    NEXT_MODEL = "next_model"              # クォータ超過など: 次のモデルへ
    FATAL = "fatal"                        # 設定不備: 中断


@dataclass
class FallbackState:
    model_index: int = 0
    attempt_index: int = 0
    last_error: Optional[BaseException] = None


def classify_error(exc: BaseException) -> FallbackAction:
    if isinstance(exc, ConfigurationError):
        return FallbackAction.FATAL
    status = getattr(exc, "upstream_status", None)
    if status == 429:
        return FallbackAction.NEXT_MODEL
    if status == 503:
        return FallbackAction.RETRY_SAME_MODEL
    message = str(exc).lower()
    if any(marker in message for marker in QUOTA_MARKERS):
        return FallbackAction.NEXT_MODEL
    if any(marker in message for marker in OVERLOAD_MARKERS):
        return FallbackAction.RETRY_SAME_MODEL
    return FallbackAction.NEXT_MODEL


class DisclosureAnalyzer:
    def __init__(
        self,
        generator: TextGenerator,
        models: Sequence[str],
        attempts_per_model: int = 2,
        backoff_seconds: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._generator = generator
        self.models = tuple(models)
        self.attempts_per_model = max(1, attempts_per_model)
        self.backoff_seconds = backoff_seconds
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings: Settings) -> "DisclosureAnalyzer":
        client = GeminiClient(api_key=settings.gemini_api_key, timeout=settings.gemini_timeout_seconds)
        return cls(
            client.generate_text,
            settings.gemini_models,
            attempts_per_model=settings.gemini_attempts_per_model,
            backoff_seconds=settings.gemini_retry_backoff_seconds,
        )

    def generate(self, prompt: str) -> Tuple[str, str]:
        """Return (text, model) from the first model that answers."""
        state = FallbackState()
        while state.model_index < len(self.models):
            model = self.models[state.model_index]
            try:
                text = self._generator(prompt, model=model)
            except DashboardError as exc:
                state.last_error = exc
                action = classify_error(exc)
                if action is FallbackAction.FATAL:
                    raise
                logger.warning(
                    "Gemini %s failed (attempt %s/%s, action=%s): %s",
                    model,
                    state.attempt_index + 1,
                    self.attempts_per_model,
                    action.value,
                    exc,
                )
                if action is FallbackAction.RETRY_SAME_MODEL and state.attempt_index + 1 < self.attempts_per_model:
                    state.attempt_index += 1
                    self._sleep(self.backoff_seconds * state.attempt_index)
                    continue
                state.model_index += 1
                state.attempt_index = 0
                continue
            logger.info("Gemini model used: %s", model)
            return text, model

        raise ModelUnavailable(MESSAGE_ALL_MODELS_FAILED, last_error=state.last_error)

    def analyze(self, company_name: Optional[str], document_hint: Optional[str] = None) -> ModelAnalysis:
        name = (company_name or "").strip()
        if not name:
            raise ValidationError("企業名が指定されていません")

        prompt = build_real_estate_prompt(name, document_hint=document_hint)
        text, model = self.generate(prompt)
        logger.debug("Gemini raw response (%s): %s", model, text[:2000])
        payload = extract_json_object(text)
        return parse_model_payload(payload, name, model=model)
