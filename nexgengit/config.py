"""Application configuration helpers."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import AnyHttpUrl, BaseModel, PositiveFloat, PositiveInt, ValidationError

# Load environment variables from .env file
env_path = Path(__file__).parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DEFAULT_LLM_MODEL = "meta-llama/Llama-3-70B-Instruct-Turbo-Free"
DEFAULT_LLM_BASE_URL = "https://api.together.xyz/v1"
DEFAULT_GITHUB_API_BASE_URL = "https://api.github.com"


class SettingsError(RuntimeError):
    """Raised when application configuration is invalid or incomplete."""


@dataclass(frozen=True)
class AppCredentials:
    github_app_id: int | None
    github_private_key_pem: str | None


def normalize_private_key(raw_value: str | None) -> str | None:
    """Turn escaped ``\\n`` sequences from the environment into real newlines."""

    if raw_value is None:
        return None
    normalized = raw_value.replace("\\n", "\n").strip()
    return normalized or None


class Settings(BaseModel):
    """Runtime settings loaded from environment variables."""

    github_api_base_url: AnyHttpUrl = DEFAULT_GITHUB_API_BASE_URL
    github_app_id: int | None = None
    github_client_id: str | None = None
    github_client_secret: str | None = None
    github_private_key_pem: str | None = None
    github_webhook_secret: str | None = None
    together_api_key: str | None = None
    llm_model: str = DEFAULT_LLM_MODEL
    llm_base_url: AnyHttpUrl = DEFAULT_LLM_BASE_URL
    llm_max_tokens: PositiveInt = 1500
    http_timeout_seconds: PositiveFloat = 10.0
    llm_timeout_seconds: PositiveFloat = 60.0

    @property
    def normalized_github_api_base_url(self) -> str:
        """Return the GitHub API base URL without a trailing slash."""
        return str(self.github_api_base_url).rstrip("/")

    @property
    def normalized_llm_base_url(self) -> str:
        return str(self.llm_base_url).rstrip("/")

    def app_credentials(self) -> AppCredentials:
        """Return the GitHub App identity, which may be incomplete."""

        return AppCredentials(
            github_app_id=self.github_app_id,
            github_private_key_pem=normalize_private_key(self.github_private_key_pem),
        )


def _parse_optional_int(name: str, raw_value: str | None) -> int | None:
    if raw_value is None or not raw_value.strip():
        return None
    try:
        return int(raw_value)
    except ValueError as exc:
        raise SettingsError(f"Invalid value for {name}. It must be an integer.") from exc


def _build_settings() -> Settings:
    github_app_id = _parse_optional_int("GITHUB_APP_ID", os.getenv("GITHUB_APP_ID"))
    webhook_secret = os.getenv("GITHUB_WEBHOOK_SECRET") or os.getenv("WEBHOOK_SECRET")

    overrides = {
        key: value
        for key, value in {
            "github_api_base_url": os.getenv("GITHUB_API_BASE_URL"),
            "llm_model": os.getenv("OPENAI_MODEL"),
            "llm_base_url": os.getenv("LLM_BASE_URL"),
            "llm_max_tokens": os.getenv("LLM_MAX_TOKENS"),
            "http_timeout_seconds": os.getenv("HTTP_TIMEOUT_SECONDS"),
            "llm_timeout_seconds": os.getenv("LLM_TIMEOUT_SECONDS"),
        }.items()
        if value
    }

    try:
        return Settings(
            github_app_id=github_app_id,
            github_client_id=os.getenv("GITHUB_CLIENT_ID"),
            github_client_secret=os.getenv("GITHUB_CLIENT_SECRET"),
            github_private_key_pem=normalize_private_key(os.getenv("GITHUB_PRIVATE_KEY")),
            github_webhook_secret=webhook_secret,
            together_api_key=os.getenv("TOGETHER_API_KEY"),
            **overrides,
        )
    except ValidationError as exc:
        raise SettingsError(f"Invalid application configuration: {exc}") from exc


@lru_cache(maxsize=1)
def _cached_settings() -> Settings:
    return _build_settings()


def get_settings() -> Settings:
    """Retrieve cached application settings."""
    return _cached_settings()


def reset_settings_cache() -> None:
    """Clear the cached settings (primarily for tests)."""
    _cached_settings.cache_clear()
