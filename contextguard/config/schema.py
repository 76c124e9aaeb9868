"""Configuration schema using Pydantic."""

from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from contextguard.compaction.types import (
    DEFAULT_MAX_TURNS,
    DEFAULT_SUMMARY_TIMEOUT_SECONDS,
)
from contextguard.models.registry import (
    DEFAULT_CONTEXT_WINDOW,
    DEFAULT_FETCH_TIMEOUT,
    DEFAULT_SOURCE_URL,
)


class ContextGuardConfig(BaseModel):
    """Per-agent context guard configuration."""
    enabled: bool = True
    strategy: Literal["threshold", "sliding_window"] = "threshold"
    max_turns: int = Field(default=DEFAULT_MAX_TURNS, ge=1)  # sliding_window only
    context_window_override: int | None = Field(default=None, gt=0)
    summary_model: str | None = None  # Defaults to the agent's model
    summary_timeout_seconds: float = Field(default=DEFAULT_SUMMARY_TIMEOUT_SECONDS, gt=0)


class AgentConfig(BaseModel):
    """Agent configuration."""
    model: str = "anthropic/claude-opus-4-5"
    context_guard: ContextGuardConfig = Field(default_factory=ContextGuardConfig)


class CompactionTuningConfig(BaseModel):
    """Tunable compaction constants, shared by all agents."""
    large_context_window_threshold: int = Field(default=200_000, gt=0)
    large_context_window_buffer: int = Field(default=20_000, gt=0)
    small_context_window_ratio: float = Field(default=0.20, gt=0, lt=1)
    recent_window_ratio: float = Field(default=0.20, gt=0, lt=1)
    summary_output_ratio: float = Field(default=0.50, gt=0, le=1)
    words_per_token: float = Field(default=0.75, gt=0)
    fallback_excerpt_chars: int = Field(default=200, gt=0)
    sliding_window_recent_ratio: float = Field(default=0.30, gt=0, lt=1)
    sliding_window_min_recent: int = Field(default=3, ge=1)


class ModelRegistryConfig(BaseModel):
    """Model capability registry configuration."""
    source_url: str = DEFAULT_SOURCE_URL
    default_context_window: int = Field(default=DEFAULT_CONTEXT_WINDOW, gt=0)
    fetch_timeout_seconds: float = DEFAULT_FETCH_TIMEOUT


class ProviderConfig(BaseModel):
    """LLM provider configuration."""
    api_key: str = ""
    api_base: str | None = None


class ProvidersConfig(BaseModel):
    """Configuration for LLM providers."""
    anthropic: ProviderConfig = Field(default_factory=ProviderConfig)
    openai: ProviderConfig = Field(default_factory=ProviderConfig)
    openrouter: ProviderConfig = Field(default_factory=ProviderConfig)
    gemini: ProviderConfig = Field(default_factory=ProviderConfig)
    zhipu: ProviderConfig = Field(default_factory=ProviderConfig)
    vllm: ProviderConfig = Field(default_factory=ProviderConfig)


class Config(BaseSettings):
    """Root configuration for contextguard."""
    agents: dict[str, AgentConfig] = Field(default_factory=dict)
    providers: ProvidersConfig = Field(default_factory=ProvidersConfig)
    registry: ModelRegistryConfig = Field(default_factory=ModelRegistryConfig)
    compaction: CompactionTuningConfig = Field(default_factory=CompactionTuningConfig)

    model_config = SettingsConfigDict(
        env_prefix="CONTEXTGUARD_",
        env_nested_delimiter="__",
    )

    def get_api_key(self) -> str | None:
        """Get API key in priority order: OpenRouter > Anthropic > OpenAI > Gemini > Zhipu > vLLM."""
        return (
            self.providers.openrouter.api_key or
            self.providers.anthropic.api_key or
            self.providers.openai.api_key or
            self.providers.gemini.api_key or
            self.providers.zhipu.api_key or
            self.providers.vllm.api_key or
            None
        )

    def get_api_base(self) -> str | None:
        """Get API base URL if using OpenRouter, Zhipu or vLLM."""
        if self.providers.openrouter.api_key:
            return self.providers.openrouter.api_base or "https://openrouter.ai/api/v1"
        if self.providers.zhipu.api_key:
            return self.providers.zhipu.api_base
        if self.providers.vllm.api_base:
            return self.providers.vllm.api_base
        return None
