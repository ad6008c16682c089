"""Process-wide configuration, read once from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Mapping, Optional

from dotenv import load_dotenv

DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_TEMPERATURE = 0.25
DEFAULT_TIMEOUT_SECONDS = 60.0
DEFAULT_MAX_BODY_BYTES = 4 * 1024 * 1024
DEFAULT_LOG_CONTAINER = "obras-insights-logs"


@dataclass(frozen=True)
class AppConfig:
    # LLM settings
    openai_api_key: Optional[str] = None
    model: str = DEFAULT_MODEL
    temperature: float = DEFAULT_TEMPERATURE
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS

    # HTTP
    max_body_bytes: int = DEFAULT_MAX_BODY_BYTES

    # Audit trail of LLM requests/responses
    log_blob_connection: Optional[str] = None
    log_container: str = DEFAULT_LOG_CONTAINER

    @property
    def narrative_enabled(self) -> bool:
        return bool(self.openai_api_key)


def _env_number(env: Mapping[str, str], name: str, default: float, cast=float):
    raw = (env.get(name) or "").strip()
    if not raw:
        return default
    try:
        return cast(raw)
    except ValueError as exc:
        raise RuntimeError(f"Environment variable {name} must be numeric, got {raw!r}") from exc


def load_config(env: Optional[Mapping[str, str]] = None) -> AppConfig:
    """Build an :class:`AppConfig` from *env* (defaults to ``os.environ``)."""
    if env is None:
        load_dotenv()
        env = os.environ

    return AppConfig(
        openai_api_key=(env.get("OPENAI_API_KEY") or "").strip() or None,
        model=(env.get("OBRAS_MODEL") or "").strip() or DEFAULT_MODEL,
        temperature=_env_number(env, "OBRAS_TEMPERATURE", DEFAULT_TEMPERATURE),
        timeout_seconds=_env_number(env, "OBRAS_LLM_TIMEOUT", DEFAULT_TIMEOUT_SECONDS),
        max_body_bytes=_env_number(env, "OBRAS_MAX_BODY_BYTES", DEFAULT_MAX_BODY_BYTES, cast=int),
        log_blob_connection=(env.get("OBRAS_LOG_BLOB_STORAGE") or "").strip() or None,
        log_container=(env.get("OBRAS_LOG_CONTAINER") or "").strip() or DEFAULT_LOG_CONTAINER,
    )


@lru_cache(maxsize=1)
def get_config() -> AppConfig:
    """Return the configuration for this worker process."""
    return load_config()
