"""
app/config.py

Application-level configuration helpers.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from functools import lru_cache

from db.config import load_env_files


@lru_cache(maxsize=1)
def _load_env_once() -> None:
    """
    Ensure project `.env` files are loaded once before reading app settings.
    """

    load_env_files()


def _get_bool_env(name: str, default: bool) -> bool:
    """
    Read a boolean from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    return raw_value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int_env(name: str, default: int) -> int:
    """
    Read an integer from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return int(raw_value)
    except ValueError:
        return default


def _get_float_env(name: str, default: float) -> float:
    """
    Read a float from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return float(raw_value)
    except ValueError:
        return default


def _get_decimal_env(name: str, default: str) -> Decimal:
    """
    Read a money amount from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return Decimal(default)
    try:
        return Decimal(raw_value.strip())
    except InvalidOperation:
        return Decimal(default)


def _get_str_env(name: str, default: str) -> str:
    """
    Read a string from environment variables with fallback.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return default
    stripped = value.strip()
    return stripped if stripped else default


def _get_optional_str_env(name: str) -> str | None:
    """
    Read an optional string value from environment variables.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return None
    stripped = value.strip()
    return stripped if stripped else None


@dataclass(frozen=True)
class EvaluationSettings:
    """
    Timeouts and fan-out limits for phase advancement and streaming.
    """

    task_timeout_seconds: float = 45.0
    stream_timeout_seconds: float = 120.0
    max_competitors: int = 5
    max_concurrent_fetches: int = 5
    history_limit: int = 50
    recent_user_turns: int = 3
    lock_wait_seconds: float = 120.0


@dataclass(frozen=True)
class CreditSettings:
    """
    Per-action credit costs and the starting balance of new accounts.
    """

    evaluation_cost: Decimal = Decimal("7")
    chat_message_cost: Decimal = Decimal("1")
    report_generation_cost: Decimal = Decimal("3")
    phase_advance_cost: Decimal = Decimal("0")
    initial_credit: Decimal = Decimal("5.00")


@dataclass(frozen=True)
class LLMSettings:
    """
    Text-generation adapter settings.
    """

    adapter: str = "openai"
    api_key: str | None = None
    model: str = "gpt-4o-mini"
    base_url: str | None = None
    timeout_seconds: float = 60.0
    max_retries: int = 2


@dataclass(frozen=True)
class CaptureServiceSettings:
    """
    Browser-automation capture service connector settings.
    """

    base_url: str = "http://localhost:3001"
    timeout_seconds: float = 60.0
    max_retries: int = 2
    backoff_initial_seconds: float = 0.5
    backoff_multiplier: float = 2.0


@dataclass(frozen=True)
class RateLimitSettings:
    """
    Per-user evaluation rate limit (token bucket).
    """

    enabled: bool = True
    max_evaluations: int = 5
    window_seconds: float = 60.0


@dataclass(frozen=True)
class SessionSettings:
    """
    Idle-session eviction settings.
    """

    idle_ttl_seconds: int = 3600
    sweep_interval_seconds: int = 600


@lru_cache(maxsize=1)
def get_evaluation_settings() -> EvaluationSettings:
    """
    Return cached evaluation timing settings from environment variables.
    """

    return EvaluationSettings(
        task_timeout_seconds=max(1.0, _get_float_env("COMPETITOR_TASK_TIMEOUT_SECONDS", 45.0)),
        stream_timeout_seconds=max(1.0, _get_float_env("RECOMMENDATION_STREAM_TIMEOUT_SECONDS", 120.0)),
        max_competitors=max(0, _get_int_env("MAX_COMPETITORS", 5)),
        max_concurrent_fetches=max(1, _get_int_env("MAX_CONCURRENT_FETCHES", 5)),
        history_limit=max(1, _get_int_env("CONVERSATION_HISTORY_LIMIT", 50)),
        recent_user_turns=max(0, _get_int_env("CONVERSATION_RECENT_USER_TURNS", 3)),
        lock_wait_seconds=max(0.0, _get_float_env("SESSION_LOCK_WAIT_SECONDS", 120.0)),
    )


@lru_cache(maxsize=1)
def get_credit_settings() -> CreditSettings:
    """
    Return cached credit costs from environment variables.
    """

    return CreditSettings(
        evaluation_cost=_get_decimal_env("CREDIT_COST_EVALUATION", "7"),
        chat_message_cost=_get_decimal_env("CREDIT_COST_CHAT_MESSAGE", "1"),
        report_generation_cost=_get_decimal_env("CREDIT_COST_REPORT_GENERATION", "3"),
        phase_advance_cost=_get_decimal_env("CREDIT_COST_PHASE_ADVANCE", "0"),
        initial_credit=_get_decimal_env("CREDIT_INITIAL_BALANCE", "5.00"),
    )


@lru_cache(maxsize=1)
def get_llm_settings() -> LLMSettings:
    """
    Return LLM adapter settings. LLM_API_KEY takes precedence over OPENAI_API_KEY.
    """

    return LLMSettings(
        adapter=_get_str_env("LLM_ADAPTER", "openai").lower(),
        api_key=_get_optional_str_env("LLM_API_KEY") or _get_optional_str_env("OPENAI_API_KEY"),
        model=_get_str_env("LLM_MODEL", "gpt-4o-mini"),
        base_url=_get_optional_str_env("LLM_BASE_URL"),
        timeout_seconds=max(1.0, _get_float_env("LLM_TIMEOUT_SECONDS", 60.0)),
        max_retries=max(0, _get_int_env("LLM_MAX_RETRIES", 2)),
    )


@lru_cache(maxsize=1)
def get_capture_service_settings() -> CaptureServiceSettings:
    """
    Return capture service connector settings from environment variables.
    """

    return CaptureServiceSettings(
        base_url=_get_str_env("CAPTURE_SERVICE_URL", "http://localhost:3001").rstrip("/"),
        timeout_seconds=max(1.0, _get_float_env("CAPTURE_SERVICE_TIMEOUT_SECONDS", 60.0)),
        max_retries=max(0, _get_int_env("CAPTURE_SERVICE_MAX_RETRIES", 2)),
        backoff_initial_seconds=max(0.1, _get_float_env("CAPTURE_SERVICE_BACKOFF_INITIAL_SECONDS", 0.5)),
        backoff_multiplier=max(1.0, _get_float_env("CAPTURE_SERVICE_BACKOFF_MULTIPLIER", 2.0)),
    )


@lru_cache(maxsize=1)
def get_rate_limit_settings() -> RateLimitSettings:
    """
    Return per-user evaluation rate limit settings.
    """

    return RateLimitSettings(
        enabled=_get_bool_env("EVALUATION_RATE_LIMIT_ENABLED", True),
        max_evaluations=max(1, _get_int_env("EVALUATION_RATE_LIMIT_MAX", 5)),
        window_seconds=max(1.0, _get_float_env("EVALUATION_RATE_LIMIT_WINDOW_SECONDS", 60.0)),
    )


@lru_cache(maxsize=1)
def get_session_settings() -> SessionSettings:
    """
    Return idle-session eviction settings.
    """

    return SessionSettings(
        idle_ttl_seconds=max(60, _get_int_env("SESSION_IDLE_TTL_SECONDS", 3600)),
        sweep_interval_seconds=max(10, _get_int_env("SESSION_SWEEP_INTERVAL_SECONDS", 600)),
    )
