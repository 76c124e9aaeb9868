"""Model capability registry: context window sizes per model."""

from dataclasses import dataclass
from typing import Any, Iterable

import httpx
from loguru import logger

DEFAULT_CONTEXT_WINDOW = 128_000

# Provider list with context windows, pricing and other metadata
DEFAULT_SOURCE_URL = (
    "https://raw.githubusercontent.com/charmbracelet/crush/main/"
    "internal/agent/hyper/provider.json"
)
DEFAULT_FETCH_TIMEOUT = 15.0
MAX_SOURCE_BYTES = 2 << 20


@dataclass
class ModelInfo:
    """Metadata for a single model."""

    id: str
    name: str = ""
    context_window: int = 0
    default_max_tokens: int = 0
    cost_per_1m_in: float = 0.0
    cost_per_1m_out: float = 0.0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ModelInfo":
        return cls(
            id=str(data.get("id", "")),
            name=data.get("name", ""),
            context_window=int(data.get("context_window") or 0),
            default_max_tokens=int(data.get("default_max_tokens") or 0),
            cost_per_1m_in=float(data.get("cost_per_1m_in") or 0.0),
            cost_per_1m_out=float(data.get("cost_per_1m_out") or 0.0),
        )


class ModelRegistry:
    """
    In-memory cache of model metadata.

    Lookups are synchronous and never trigger a fetch. `refresh()` swaps
    the whole model map at once; scheduling refreshes is up to the host.
    """

    def __init__(
        self,
        source_url: str = DEFAULT_SOURCE_URL,
        default_context_window: int = DEFAULT_CONTEXT_WINDOW,
        fetch_timeout: float = DEFAULT_FETCH_TIMEOUT,
    ):
        self.source_url = source_url
        self.default_context_window = default_context_window
        self.fetch_timeout = fetch_timeout
        self._models: dict[str, ModelInfo] = {}

    def __len__(self) -> int:
        return len(self._models)

    def load(self, models: Iterable[ModelInfo]) -> None:
        """Replace the cached models."""
        self._models = {m.id: m for m in models if m.id}

    def get(self, model_id: str) -> ModelInfo | None:
        """
        Get model metadata.

        Tries the exact id first, then the id without its provider
        prefix ("anthropic/claude-x" -> "claude-x").
        """
        models = self._models
        if model_id in models:
            return models[model_id]
        if "/" in model_id:
            return models.get(model_id.rsplit("/", 1)[-1])
        return None

    def context_window(self, model_id: str) -> int:
        """
        Get the context window for a model.

        Args:
            model_id: Model identifier.

        Returns:
            Context window in tokens, or the default for unknown models.
        """
        info = self.get(model_id) if model_id else None
        if info and info.context_window > 0:
            return info.context_window
        logger.debug(
            f"Model registry: no context window for '{model_id}', "
            f"using default {self.default_context_window}"
        )
        return self.default_context_window

    async def refresh(self, client: httpx.AsyncClient | None = None) -> bool:
        """
        Fetch the model list and replace the cache.

        Errors are logged and the previous data is kept.

        Args:
            client: Optional HTTP client to use.

        Returns:
            True if the cache was replaced.
        """
        owns_client = client is None
        if client is None:
            client = httpx.AsyncClient(timeout=self.fetch_timeout)

        try:
            resp = await client.get(self.source_url)
            resp.raise_for_status()
            if len(resp.content) > MAX_SOURCE_BYTES:
                logger.warning(
                    f"Model registry: source too large ({len(resp.content)} bytes)"
                )
                return False
            data = resp.json()
        except httpx.HTTPError as e:
            logger.warning(f"Model registry: fetch failed: {e}")
            return False
        except ValueError as e:
            logger.warning(f"Model registry: parse failed: {e}")
            return False
        finally:
            if owns_client:
                await client.aclose()

        raw_models = data.get("models", []) if isinstance(data, dict) else []
        models = []
        for raw in raw_models:
            if not isinstance(raw, dict):
                continue
            try:
                models.append(ModelInfo.from_dict(raw))
            except (TypeError, ValueError) as e:
                logger.debug(f"Model registry: skipped malformed entry: {e}")

        self.load(models)
        logger.info(f"Model registry: loaded {len(self)} models")
        return True
