"""LLM provider configuration.

Resolution order, lowest to highest precedence:

1. Defaults (Groq).
2. Environment variables ``VILLAGEMIND_LLM_*``.
3. Overrides stored in the ``llm-config-overrides`` setting.

Invalid environment or stored overrides are ignored with a warning. An
invalid final configuration or a missing API key raises ``LlmConfigError``.
"""

import logging
import os
from collections.abc import Mapping
from dataclasses import asdict, dataclass, replace
from typing import Any

from ..storage import Storage

logger = logging.getLogger(__name__)

SETTINGS_KEY = "llm-config-overrides"
PROVIDERS: tuple[str, ...] = ("groq", "openai-compatible")

ENV_VARS: dict[str, str] = {
    "provider": "VILLAGEMIND_LLM_PROVIDER",
    "base_url": "VILLAGEMIND_LLM_BASE_URL",
    "model": "VILLAGEMIND_LLM_MODEL",
    "api_key_env": "VILLAGEMIND_LLM_API_KEY_ENV",
    "temperature": "VILLAGEMIND_LLM_TEMPERATURE",
    "max_completion_tokens": "VILLAGEMIND_LLM_MAX_TOKENS",
}


class LlmConfigError(Exception):
    """Raised when the LLM configuration is invalid or incomplete."""

    pass


@dataclass(frozen=True)
class LlmConfig:
    """Connection and sampling settings for the chat completion provider."""

    provider: str = "groq"
    base_url: str = "https://api.groq.com/openai/v1"
    model: str = "llama-3.1-70b-versatile"
    api_key_env: str = "GROQ_API_KEY"
    temperature: float = 0.7
    max_completion_tokens: int = 240


@dataclass(frozen=True)
class ResolvedLlmConfig:
    config: LlmConfig
    api_key: str
    overrides: dict[str, Any]


def _check_field(name: str, value: Any) -> Any:
    """Validate and coerce one config field, raising LlmConfigError."""
    if name == "provider":
        if value not in PROVIDERS:
            raise LlmConfigError(f"Unknown provider: {value!r}")
        return value
    if name in ("base_url", "model", "api_key_env", "api_key_override"):
        if not isinstance(value, str) or not value.strip():
            raise LlmConfigError(f"'{name}' must be a non-empty string")
        return value.strip()
    if name == "temperature":
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise LlmConfigError("'temperature' must be a number")
        if not 0 <= value <= 2:
            raise LlmConfigError(f"'temperature' out of range: {value}")
        return float(value)
    if name == "max_completion_tokens":
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value != int(value):
            raise LlmConfigError("'max_completion_tokens' must be an integer")
        if not 1 <= value <= 8192:
            raise LlmConfigError(f"'max_completion_tokens' out of range: {value}")
        return int(value)
    raise LlmConfigError(f"Unknown config field: {name}")


def validate_overrides(overrides: Mapping[str, Any]) -> dict[str, Any]:
    """Return a cleaned copy of ``overrides``; None values are dropped.

    Raises:
        LlmConfigError: If any field is unknown or invalid.
    """
    return {
        name: _check_field(name, value)
        for name, value in overrides.items()
        if value is not None
    }


def validate_config(config: LlmConfig) -> LlmConfig:
    for name, value in asdict(config).items():
        _check_field(name, value)
    return config


def _parse_number(value: str | None) -> float | int | None:
    if not value:
        return None
    try:
        number = float(value)
    except ValueError:
        return None
    return int(number) if number.is_integer() else number


def read_env_overrides(environ: Mapping[str, str] | None = None) -> dict[str, Any]:
    """Overrides from ``VILLAGEMIND_LLM_*`` environment variables."""
    env = os.environ if environ is None else environ
    candidate: dict[str, Any] = {
        name: env.get(var) or None for name, var in ENV_VARS.items()
    }
    candidate["temperature"] = _parse_number(candidate["temperature"])
    candidate["max_completion_tokens"] = _parse_number(candidate["max_completion_tokens"])

    try:
        return validate_overrides(candidate)
    except LlmConfigError as e:
        logger.warning("Ignoring invalid LLM environment overrides: %s", e)
        return {}


def apply_overrides(config: LlmConfig, overrides: Mapping[str, Any]) -> LlmConfig:
    fields = {k: v for k, v in overrides.items() if k in ENV_VARS and v is not None}
    return replace(config, **fields)


async def get_llm_config_overrides(storage: Storage) -> dict[str, Any]:
    """Stored overrides, or an empty dict if missing or invalid."""
    stored = await storage.load_setting(SETTINGS_KEY)
    if not stored:
        return {}
    if not isinstance(stored, dict):
        logger.warning("Ignoring invalid LLM override settings: %r", stored)
        return {}
    try:
        return validate_overrides(stored)
    except LlmConfigError as e:
        logger.warning("Ignoring invalid LLM override settings: %s", e)
        return {}


async def set_llm_config_overrides(storage: Storage, overrides: Mapping[str, Any]) -> None:
    """Validate and store overrides.

    Raises:
        LlmConfigError: If the overrides are invalid.
    """
    await storage.save_setting(SETTINGS_KEY, validate_overrides(overrides))


async def clear_llm_config_overrides(storage: Storage) -> None:
    await storage.clear_setting(SETTINGS_KEY)


def resolve_api_key(
    config: LlmConfig,
    overrides: Mapping[str, Any],
    environ: Mapping[str, str] | None = None,
) -> str:
    if overrides.get("api_key_override"):
        return overrides["api_key_override"]
    env = os.environ if environ is None else environ
    value = env.get(config.api_key_env)
    if value:
        return value
    raise LlmConfigError(f"Missing LLM API key (env={config.api_key_env})")


async def resolve_llm_config(
    storage: Storage,
    environ: Mapping[str, str] | None = None,
) -> ResolvedLlmConfig:
    """Resolve defaults, environment and stored overrides into one config.

    Raises:
        LlmConfigError: If the merged config is invalid or no API key is set.
    """
    stored = await get_llm_config_overrides(storage)
    config = apply_overrides(apply_overrides(LlmConfig(), read_env_overrides(environ)), stored)
    validate_config(config)
    api_key = resolve_api_key(config, stored, environ)
    return ResolvedLlmConfig(config=config, api_key=api_key, overrides=stored)
