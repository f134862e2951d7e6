"""
Centralized configuration with environment variable overrides.

Business details, model settings, dialogue limits, and server options
are all read here. Dialogue and extraction code never reads the
environment directly.
"""

import logging
import os
from dataclasses import dataclass, field
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

from serviceswarm.logging_context import add_call_id_filter

load_dotenv()

logger = logging.getLogger(__name__)

CAPTURE_MODES = ("speech", "recording")

LOG_FORMAT = "%(asctime)s [%(name)s] [%(call_id)s] %(levelname)s: %(message)s"


def _safe_int(env_var: str, default: str) -> int:
    """Parse an integer from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return int(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid integer for {env_var}: {raw!r}"
        ) from None


def _safe_float(env_var: str, default: str) -> float:
    """Parse a float from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return float(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid float for {env_var}: {raw!r}"
        ) from None


@dataclass(frozen=True)
class BusinessConfig:
    """Business-specific settings loaded from environment or defaults."""

    name: str = os.getenv("BUSINESS_NAME", "ServiceSwarm")
    service_label: str = os.getenv("SERVICE_LABEL", "HVAC")
    timezone: str = os.getenv("BUSINESS_TIMEZONE", "America/Chicago")
    voice: str = os.getenv("TTS_VOICE", "Polly.Joanna")
    language: str = os.getenv("TTS_LANGUAGE", "en-US")


@dataclass(frozen=True)
class ModelConfig:
    """NLU and transcription model settings."""

    openai_api_key: str = os.getenv("OPENAI_API_KEY", "")
    llm_model: str = os.getenv("LLM_MODEL", "gpt-4o")
    llm_temperature: float = _safe_float("LLM_TEMPERATURE", "0.0")
    transcription_model: str = os.getenv("TRANSCRIPTION_MODEL", "whisper-1")
    nlu_timeout_sec: float = _safe_float("NLU_TIMEOUT", "8.0")
    transcription_timeout_sec: float = _safe_float("TRANSCRIPTION_TIMEOUT", "20.0")


@dataclass(frozen=True)
class TelephonyConfig:
    """Credentials for fetching call recordings from the telephony provider."""

    account_sid: str = os.getenv("TWILIO_ACCOUNT_SID", "")
    auth_token: str = os.getenv("TWILIO_AUTH_TOKEN", "")
    recording_format: str = os.getenv("RECORDING_FORMAT", "wav")


@dataclass(frozen=True)
class DialogueConfig:
    """Reprompt limits and session lifetime."""

    max_reprompts: int = _safe_int("MAX_REPROMPTS", "3")
    session_ttl_seconds: int = _safe_int("SESSION_TTL_SECONDS", "900")
    sweep_interval_seconds: int = _safe_int("SWEEP_INTERVAL_SECONDS", "60")
    capture_mode: str = os.getenv("CAPTURE_MODE", "speech")


@dataclass(frozen=True)
class ServerConfig:
    """Webhook server bind settings."""

    host: str = os.getenv("HOST", "0.0.0.0")
    port: int = _safe_int("PORT", "3000")


@dataclass(frozen=True)
class AppConfig:
    """Root configuration aggregating all sub-configs."""

    business: BusinessConfig = field(default_factory=BusinessConfig)
    model: ModelConfig = field(default_factory=ModelConfig)
    telephony: TelephonyConfig = field(default_factory=TelephonyConfig)
    dialogue: DialogueConfig = field(default_factory=DialogueConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    log_level: str = os.getenv("LOG_LEVEL", "INFO")


def _validate_config(config: AppConfig) -> None:
    """Validate configuration values are within acceptable ranges."""
    try:
        ZoneInfo(config.business.timezone)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValueError(
            f"BUSINESS_TIMEZONE is not a known time zone: {config.business.timezone!r}"
        ) from None
    if not 0.0 <= config.model.llm_temperature <= 2.0:
        raise ValueError(
            f"LLM_TEMPERATURE must be between 0.0 and 2.0, got {config.model.llm_temperature}"
        )
    if config.model.nlu_timeout_sec <= 0:
        raise ValueError(
            f"NLU_TIMEOUT must be > 0, got {config.model.nlu_timeout_sec}"
        )
    if config.model.transcription_timeout_sec <= 0:
        raise ValueError(
            "TRANSCRIPTION_TIMEOUT must be > 0, "
            f"got {config.model.transcription_timeout_sec}"
        )
    if config.dialogue.max_reprompts < 1:
        raise ValueError(
            f"MAX_REPROMPTS must be >= 1, got {config.dialogue.max_reprompts}"
        )
    if config.dialogue.session_ttl_seconds < 1:
        raise ValueError(
            f"SESSION_TTL_SECONDS must be >= 1, got {config.dialogue.session_ttl_seconds}"
        )
    if config.dialogue.sweep_interval_seconds < 1:
        raise ValueError(
            "SWEEP_INTERVAL_SECONDS must be >= 1, "
            f"got {config.dialogue.sweep_interval_seconds}"
        )
    if config.dialogue.capture_mode not in CAPTURE_MODES:
        raise ValueError(
            f"CAPTURE_MODE must be one of {CAPTURE_MODES}, got {config.dialogue.capture_mode!r}"
        )
    if not 0 < config.server.port < 65536:
        raise ValueError(f"PORT must be between 1 and 65535, got {config.server.port}")


def load_config() -> AppConfig:
    """Load and validate application configuration."""
    config = AppConfig()
    _validate_config(config)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    # records from any logger need call_id for LOG_FORMAT
    for handler in logging.getLogger().handlers:
        add_call_id_filter(handler)
    logger.info("Configuration loaded for '%s'", config.business.name)
    return config


# Singleton instance
settings = load_config()
