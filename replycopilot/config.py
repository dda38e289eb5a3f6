"""Runtime settings, read from the environment (and a local .env file)."""

import os
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

from .models import ParserConfig

Provider = Literal["anthropic", "openai", "azure"]

DEFAULT_MODELS = {
    "anthropic": "claude-sonnet-4-5",
    "openai": "gpt-4o",
    "azure": "gpt-4o-vision",
}

# 5 MB screenshot budget, matching what the mobile client compresses down to.
DEFAULT_MAX_IMAGE_BYTES = 5 * 1024 * 1024


class Settings(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    provider: Provider = "anthropic"
    model: Optional[str] = None
    anthropic_api_key: Optional[str] = None
    openai_api_key: Optional[str] = None
    openai_endpoint: Optional[str] = None
    openai_api_version: str = "2024-08-01-preview"

    max_tokens: int = Field(200, ge=1)
    temperature: float = Field(0.7, ge=0.0, le=2.0)
    timeout_seconds: float = Field(30.0, gt=0)
    max_image_bytes: int = Field(DEFAULT_MAX_IMAGE_BYTES, ge=1)

    parser: ParserConfig = Field(default_factory=ParserConfig)

    @property
    def resolved_model(self) -> str:
        return self.model or DEFAULT_MODELS[self.provider]


def _env(name: str) -> Optional[str]:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return value.strip()


def _parser_from_env() -> ParserConfig:
    overrides = {}
    if (markers := _env("REPLYCOPILOT_BULLET_MARKERS")) is not None:
        overrides["bullet_markers"] = tuple(markers.split())
    if (min_length := _env("REPLYCOPILOT_FALLBACK_MIN_LENGTH")) is not None:
        overrides["fallback_min_length"] = int(min_length)
    if (max_length := _env("REPLYCOPILOT_FALLBACK_MAX_LENGTH")) is not None:
        overrides["fallback_max_length"] = int(max_length)
    if (max_suggestions := _env("REPLYCOPILOT_MAX_SUGGESTIONS")) is not None:
        overrides["max_suggestions"] = int(max_suggestions)
    return ParserConfig(**overrides)


def load_settings(dotenv: bool = True) -> Settings:
    if dotenv:
        load_dotenv()

    values = {
        "provider": _env("REPLYCOPILOT_PROVIDER"),
        "model": _env("REPLYCOPILOT_MODEL") or _env("OPENAI_DEPLOYMENT"),
        "anthropic_api_key": _env("ANTHROPIC_API_KEY"),
        "openai_api_key": _env("OPENAI_API_KEY"),
        "openai_endpoint": _env("OPENAI_ENDPOINT"),
        "openai_api_version": _env("OPENAI_API_VERSION"),
        "max_tokens": _env("REPLYCOPILOT_MAX_TOKENS"),
        "temperature": _env("REPLYCOPILOT_TEMPERATURE"),
        "timeout_seconds": _env("REPLYCOPILOT_TIMEOUT_SECONDS"),
        "max_image_bytes": _env("REPLYCOPILOT_MAX_IMAGE_BYTES"),
    }
    return Settings(
        **{key: value for key, value in values.items() if value is not None},
        parser=_parser_from_env(),
    )
