"""Settings via pydantic-settings with GENUI_ env prefix.

Provider API keys use validation_alias to read the same unprefixed env vars
(OPENAI_API_KEY, ANTHROPIC_API_KEY, GEMINI_API_KEY) the provider SDKs use,
so a single .env file works for both.
"""

from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

Provider = Literal["openai", "anthropic", "gemini"]

# OpenAI-compatible chat-completions endpoints per provider
PROVIDER_BASE_URLS: dict[str, str] = {
    "openai": "https://api.openai.com/v1/",
    "anthropic": "https://api.anthropic.com/v1/",
    "gemini": "https://generativelanguage.googleapis.com/v1beta/openai/",
}

DEFAULT_MODELS: dict[str, str] = {
    "openai": "gpt-5",
    "anthropic": "claude-3-5-haiku-20241022",
    "gemini": "gemini-2.5-pro",
}


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="GENUI_", env_file=".env", extra="ignore")

    # Provider credentials -- unprefixed aliases match the provider SDK env vars
    provider: Provider = "openai"
    openai_api_key: str = Field("", validation_alias="OPENAI_API_KEY")
    anthropic_api_key: str = Field("", validation_alias="ANTHROPIC_API_KEY")
    gemini_api_key: str = Field("", validation_alias="GEMINI_API_KEY")

    # LLM
    model: str = ""  # empty -> provider default
    api_base_url: str = ""  # empty -> provider preset
    api_timeout_connect: int = 10  # seconds
    api_timeout_read: int = 120  # seconds

    # Orchestration loop
    max_steps: int = 12  # Max request/stream/dispatch cycles per run
    history_max_messages: int = 60

    # Live preview
    preview_throttle_ms: int = 50

    # Runtime
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "info"
    max_sessions: int = 100

    @model_validator(mode="after")
    def _validate_limits(self) -> "Settings":
        if self.max_steps < 1:
            raise ValueError("max_steps must be >= 1")
        if self.preview_throttle_ms < 0:
            raise ValueError("preview_throttle_ms must be >= 0")
        if self.max_sessions < 1:
            raise ValueError("max_sessions must be >= 1")
        return self

    @property
    def resolved_model(self) -> str:
        return self.model or DEFAULT_MODELS[self.provider]

    @property
    def resolved_base_url(self) -> str:
        return self.api_base_url or PROVIDER_BASE_URLS[self.provider]

    @property
    def api_key(self) -> str:
        return {
            "openai": self.openai_api_key,
            "anthropic": self.anthropic_api_key,
            "gemini": self.gemini_api_key,
        }[self.provider]
