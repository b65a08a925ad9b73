"""
Model configuration.

Two models back an automation session: a vision model that reads screenshots
and a reasoning model that decides what to do. Both speak the OpenAI
chat-completions protocol and are configured with :class:`ModelConfig`.
"""

import logging
import os
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from tabpilot.agents.exceptions import ConfigurationError
from tabpilot.models.adapters import OpenAICompatibleAdapter

logger = logging.getLogger(__name__)

PROVIDER_BASE_URLS = {
    "openai": "https://api.openai.com/v1",
    "openrouter": "https://openrouter.ai/api/v1",
    "perceptron": "https://api.perceptron.inc",
    "groq": "https://api.groq.com/openai/v1",
}

PROVIDER_ENV_VARS = {
    "openai": "OPENAI_API_KEY",
    "openrouter": "OPENROUTER_API_KEY",
    "perceptron": "PERCEPTRON_API_KEY",
    "groq": "GROQ_API_KEY",
}

# Checked before the provider's own variable
ROLE_ENV_VARS = {
    "vision": ("VISION_API_KEY", "PERCEPTRON_API_KEY"),
    "reasoning": ("REASONING_API_KEY",),
}

DEFAULT_VISION_MODEL = "isaac-0.1"
DEFAULT_REASONING_MODEL = "gpt-4o-mini"


class ModelConfig(BaseModel):
    """
    Pydantic schema for one model endpoint.

    Reads the API key from the environment if not provided directly.
    """

    role: Literal["vision", "reasoning"] = Field(
        ..., description="Which part of the loop this model serves"
    )
    name: str = Field(..., description="Model identifier sent as 'model' in requests")
    provider: Optional[str] = Field(
        None, description="API provider name (used to determine base_url if not set)"
    )
    base_url: Optional[str] = Field(
        None, description="Specific API endpoint URL (overrides provider)"
    )
    api_key: Optional[str] = Field(
        None, description="API authentication key (reads from env if None)"
    )
    temperature: float = Field(0.0, ge=0.0, le=2.0, description="Sampling temperature")
    max_tokens: Optional[int] = Field(None, gt=0, description="Completion token limit")
    timeout: float = Field(120.0, gt=0, description="Request timeout in seconds")

    model_config = ConfigDict(extra="allow")

    @model_validator(mode="before")
    @classmethod
    def _set_base_url_from_provider(cls, data: Any) -> Any:
        """Sets base_url from PROVIDER_BASE_URLS if base_url is not explicitly provided."""
        if not isinstance(data, dict):
            return data

        if not data.get("base_url"):
            provider = data.get("provider")
            if not provider:
                raise ConfigurationError(
                    "Either 'provider' or 'base_url' must be specified.",
                    config_field="base_url",
                )
            base_url = PROVIDER_BASE_URLS.get(provider)
            if not base_url:
                raise ConfigurationError(
                    f"Unknown API provider '{provider}'. Set 'base_url' explicitly.",
                    config_field="provider",
                )
            data = {**data, "base_url": base_url}
        return data

    @model_validator(mode="after")
    def _validate_api_key(self) -> "ModelConfig":
        """Reads the API key from the environment if not provided."""
        if self.api_key:
            return self

        candidates = list(ROLE_ENV_VARS.get(self.role, ()))
        provider_var = PROVIDER_ENV_VARS.get(self.provider or "")
        if provider_var and provider_var not in candidates:
            candidates.append(provider_var)

        for env_var in candidates:
            env_api_key = os.getenv(env_var)
            if env_api_key:
                # 'after' validators modify fields through object.__setattr__
                object.__setattr__(self, "api_key", env_api_key)
                logger.debug(f"Read {self.role} API key from env var '{env_var}'.")
                return self

        raise ConfigurationError(
            f"API key for the {self.role} model not found. "
            f"Set one of {', '.join(candidates)} or provide 'api_key' directly.",
            config_field="api_key",
        )

    @classmethod
    def vision_from_env(cls, **overrides) -> "ModelConfig":
        """Build the vision model config from ``VISION_MODEL`` / ``VISION_API_URL``."""
        data = {
            "role": "vision",
            "name": os.getenv("VISION_MODEL") or DEFAULT_VISION_MODEL,
            "base_url": os.getenv("VISION_API_URL"),
            "provider": "perceptron",
        }
        data.update(overrides)
        return cls(**data)

    @classmethod
    def reasoning_from_env(cls, **overrides) -> "ModelConfig":
        """Build the reasoning model config from ``REASONING_MODEL`` / ``REASONING_API_URL``."""
        data = {
            "role": "reasoning",
            "name": os.getenv("REASONING_MODEL") or DEFAULT_REASONING_MODEL,
            "base_url": os.getenv("REASONING_API_URL"),
            "provider": "openai",
            "temperature": 0.1,
        }
        data.update(overrides)
        return cls(**data)

    def create_adapter(self) -> OpenAICompatibleAdapter:
        return OpenAICompatibleAdapter(
            model_name=self.name,
            base_url=self.base_url,
            api_key=self.api_key,
            provider=self.provider or "custom",
            timeout=self.timeout,
        )
