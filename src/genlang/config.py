"""Client configuration."""

from __future__ import annotations

import os
from collections.abc import Mapping

from pydantic import BaseModel, Field, SecretStr, ValidationError, field_validator

from genlang.types import GenLangError

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_TTS_BASE_URL = "https://texttospeech.googleapis.com/v1beta1"

_MODEL_PREFIX = "models/"


class ConfigError(GenLangError):
    """Raised when client configuration is missing or invalid."""


def normalize_model_name(name: str) -> str:
    """Return ``name`` in ``models/<id>`` form.

    Args:
        name: A bare model id (``"gemini-pro"``) or a resource name
            (``"models/gemini-pro"``).

    Raises:
        ConfigError: If ``name`` is empty.
    """
    name = name.strip()
    if not name or name == _MODEL_PREFIX:
        raise ConfigError("Model name cannot be empty")
    if name.startswith(_MODEL_PREFIX):
        return name
    return f"{_MODEL_PREFIX}{name}"


class ClientConfig(BaseModel):
    """Connection settings shared by the generative and TTS clients.

    Args:
        api_key: API key sent as the ``key`` query parameter.
        base_url: Generative Language API root.
        tts_base_url: Cloud Text-to-Speech API root.
        timeout: Request timeout in seconds.
    """

    model_config = {"frozen": True}

    api_key: SecretStr
    base_url: str = DEFAULT_BASE_URL
    tts_base_url: str = DEFAULT_TTS_BASE_URL
    timeout: float = Field(default=60.0, gt=0)

    @field_validator("api_key")
    @classmethod
    def _require_key(cls, value: SecretStr) -> SecretStr:
        if not value.get_secret_value().strip():
            raise ValueError("api_key cannot be empty")
        return value

    @field_validator("base_url", "tts_base_url")
    @classmethod
    def _strip_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> ClientConfig:
        """Build a config from ``GENLANG_*`` environment variables.

        The key comes from ``GENLANG_API_KEY``, falling back to
        ``GOOGLE_API_KEY``. ``GENLANG_BASE_URL`` and ``GENLANG_TIMEOUT`` are
        optional.

        Raises:
            ConfigError: If no key is set or a value is invalid.
        """
        env = os.environ if environ is None else environ
        api_key = env.get("GENLANG_API_KEY") or env.get("GOOGLE_API_KEY")
        if not api_key:
            raise ConfigError("No API key: set GENLANG_API_KEY or GOOGLE_API_KEY")

        values: dict[str, object] = {"api_key": api_key}
        if env.get("GENLANG_BASE_URL"):
            values["base_url"] = env["GENLANG_BASE_URL"]
        if env.get("GENLANG_TIMEOUT"):
            values["timeout"] = env["GENLANG_TIMEOUT"]
        return cls.create(**values)

    @classmethod
    def create(cls, **values: object) -> ClientConfig:
        """Validate ``values`` into a config, raising ``ConfigError`` on failure."""
        try:
            return cls.model_validate(values)
        except ValidationError as exc:
            raise ConfigError(f"Invalid client configuration: {exc}") from exc
