"""Application settings."""
from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

_ENV_PATH = Path(__file__).resolve().parents[2] / ".env"
load_dotenv(_ENV_PATH)

DEFAULT_GEMINI_MODELS = ("gemini-2.5-flash", "gemini-2.0-flash", "gemini-flash-latest")
DEFAULT_EDINET_API_BASE_URL = "https://api.edinet-fsa.go.jp/api/v2"
DEFAULT_CORS_ORIGINS = ("http://localhost:3000",)


@dataclass(frozen=True)
class Settings:
    gemini_api_key: Optional[str]
    gemini_models: tuple[str, ...]
    gemini_attempts_per_model: int
    gemini_retry_backoff_seconds: float
    gemini_timeout_seconds: float
    edinet_api_key: Optional[str]
    edinet_api_base_url: str
    edinet_timeout_seconds: float
    edinet_lookback_days: int
    edinet_scan_step_days: int
    edinet_request_interval_seconds: float
    use_mock_data: bool
    use_edinet: bool
    use_gemini: bool
    cors_allow_origins: tuple[str, ...]


def _split_csv(raw: Optional[str]) -> tuple[str, ...]:
    if not raw:
        return tuple()
    return tuple(item.strip() for item in raw.split(",") if item.strip())


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_secret(name: str) -> Optional[str]:
    value = os.getenv(name)
    if value:
        value = value.strip()
    return value or None


@lru_cache()
def get_settings() -> Settings:
    # Credentials are optional here; routes that need them raise ConfigurationError.
    gemini_models = _split_csv(os.getenv("GEMINI_MODELS")) or DEFAULT_GEMINI_MODELS

    return Settings(
        gemini_api_key=_env_secret("GEMINI_API_KEY"),
        gemini_models=gemini_models,
        gemini_attempts_per_model=max(1, int(os.getenv("GEMINI_ATTEMPTS_PER_MODEL", "2"))),
        gemini_retry_backoff_seconds=float(os.getenv("GEMINI_RETRY_BACKOFF_SECONDS", "1.0")),
        gemini_timeout_seconds=float(os.getenv("GEMINI_TIMEOUT_SECONDS", "60")),
        edinet_api_key=_env_secret("EDINET_API_KEY"),
        edinet_api_base_url=os.getenv("EDINET_API_BASE_URL", DEFAULT_EDINET_API_BASE_URL).rstrip("/"),
        edinet_timeout_seconds=float(os.getenv("EDINET_TIMEOUT_SECONDS", "10")),
        edinet_lookback_days=int(os.getenv("EDINET_LOOKBACK_DAYS", "90")),
        edinet_scan_step_days=max(1, int(os.getenv("EDINET_SCAN_STEP_DAYS", "7"))),
        edinet_request_interval_seconds=float(os.getenv("EDINET_REQUEST_INTERVAL_SECONDS", "0.1")),
        use_mock_data=_env_flag("RESOLVER_USE_MOCK", True),
        use_edinet=_env_flag("RESOLVER_USE_EDINET", True),
        use_gemini=_env_flag("RESOLVER_USE_GEMINI", True),
        cors_allow_origins=_split_csv(os.getenv("CORS_ALLOW_ORIGINS")) or DEFAULT_CORS_ORIGINS,
    )
