"""Wire configuration, registry and provider into a ContextGuard."""

from loguru import logger

from contextguard.compaction.guard import ContextGuard
from contextguard.config.loader import load_config
from contextguard.config.schema import Config
from contextguard.models.registry import ModelRegistry
from contextguard.providers.base import LLMProvider
from contextguard.providers.litellm_provider import LiteLLMProvider


def create_provider(config: Config) -> LiteLLMProvider:
    """
    Create the summarization provider from the configured API keys.

    Raises:
        ValueError: If no API key is configured.
    """
    api_key = config.get_api_key()
    if not api_key:
        raise ValueError(
            "No API key configured. Set one in ~/.contextguard/config.json "
            "under providers.openrouter.apiKey"
        )
    return LiteLLMProvider(api_key=api_key, api_base=config.get_api_base())


def create_registry(config: Config) -> ModelRegistry:
    return ModelRegistry(
        source_url=config.registry.source_url,
        default_context_window=config.registry.default_context_window,
        fetch_timeout=config.registry.fetch_timeout_seconds,
    )


async def create_guard(
    config: Config | None = None,
    provider: LLMProvider | None = None,
    registry: ModelRegistry | None = None,
    refresh_registry: bool = True,
) -> tuple[ContextGuard, ModelRegistry]:
    """
    Build a ContextGuard for every configured agent.

    Args:
        config: Configuration; loaded from the default path if omitted.
        provider: Summarization provider; built from config if omitted.
        registry: Model registry; built from config if omitted.
        refresh_registry: Fetch model data before returning. A failed
            fetch leaves the registry on default context windows.

    Returns:
        Tuple of (guard, registry). Keep the registry to refresh it later.
    """
    config = config or load_config()
    provider = provider or create_provider(config)
    registry = registry or create_registry(config)

    if refresh_registry and not await registry.refresh():
        logger.warning("Model registry unavailable, using default context windows")

    return ContextGuard.from_config(config, registry, provider), registry
