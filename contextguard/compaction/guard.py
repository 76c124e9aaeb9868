"""Context guard: the pre-model-call compaction hook."""

import asyncio
from types import MappingProxyType
from typing import TYPE_CHECKING, Mapping

from loguru import logger

from contextguard.compaction.state import CompactionStateStore, ConversationState
from contextguard.compaction.strategies import (
    SlidingWindowStrategy,
    Strategy,
    ThresholdStrategy,
)
from contextguard.compaction.types import (
    STRATEGY_SLIDING_WINDOW,
    CompactionResult,
    CompactionTuning,
    Turn,
)
from contextguard.models.registry import ModelRegistry
from contextguard.providers.base import LLMProvider

if TYPE_CHECKING:
    from contextguard.config.schema import Config


def build_strategies(
    config: "Config",
    registry: ModelRegistry,
    provider: LLMProvider,
) -> dict[str, Strategy]:
    """
    Build one strategy per agent with the context guard enabled.

    Each agent summarizes with its own model unless a summary model is
    configured.

    Args:
        config: Root configuration.
        registry: Model capability registry.
        provider: LLM provider used for summarization.

    Returns:
        Mapping of agent ID to strategy.
    """
    tuning = CompactionTuning(**config.compaction.model_dump())
    strategies: dict[str, Strategy] = {}

    for agent_id, agent in config.agents.items():
        guard_cfg = agent.context_guard
        if not guard_cfg.enabled:
            continue

        kwargs = dict(
            registry=registry,
            provider=provider,
            model=agent.model,
            summary_model=guard_cfg.summary_model,
            context_window_override=guard_cfg.context_window_override,
            tuning=tuning,
            summary_timeout=guard_cfg.summary_timeout_seconds,
        )
        if guard_cfg.strategy == STRATEGY_SLIDING_WINDOW:
            strategy: Strategy = SlidingWindowStrategy(max_turns=guard_cfg.max_turns, **kwargs)
        else:
            strategy = ThresholdStrategy(**kwargs)

        strategies[agent_id] = strategy
        logger.info(f"ContextGuard: strategy configured for agent {agent_id}: {strategy.name}")

    return strategies


class ContextGuard:
    """
    Dispatches every model call to the calling agent's strategy.

    Compaction is an optimization, so it fails open: any error leaves
    the turn list exactly as the caller passed it.
    """

    def __init__(self, strategies: Mapping[str, Strategy] | None = None):
        self._strategies: Mapping[str, Strategy] = MappingProxyType(dict(strategies or {}))

    @classmethod
    def from_config(
        cls,
        config: "Config",
        registry: ModelRegistry,
        provider: LLMProvider,
    ) -> "ContextGuard":
        return cls(build_strategies(config, registry, provider))

    def swap(self, strategies: Mapping[str, Strategy]) -> None:
        """Replace all strategies at once (hot reload)."""
        self._strategies = MappingProxyType(dict(strategies))
        logger.info(f"ContextGuard: strategies reloaded ({len(strategies)} agents)")

    def strategy_for(self, agent_id: str) -> Strategy | None:
        return self._strategies.get(agent_id)

    async def before_model_call(
        self,
        agent_id: str,
        turns: list[Turn],
        system_instruction: str = "",
        model_id: str = "",
        *,
        state: ConversationState,
    ) -> list[Turn]:
        """
        Compact the turn list before a model call if the agent's strategy says so.

        Args:
            agent_id: Calling agent.
            turns: Current turn list; rewritten in place.
            system_instruction: System instruction of the call.
            model_id: Model the call goes to.
            state: The conversation's state.

        Returns:
            The same list object, possibly rewritten.
        """
        if not turns:
            return turns

        strategy = self._strategies.get(agent_id)
        if strategy is None:
            return turns

        original = list(turns)
        try:
            result: CompactionResult | None = await strategy.compact(
                turns,
                system_instruction,
                model_id,
                CompactionStateStore(state, agent_id),
            )
        except asyncio.CancelledError:
            turns[:] = original
            raise
        except Exception as e:
            logger.warning(
                f"ContextGuard: compaction failed for agent {agent_id} "
                f"({strategy.name}), passing through: {e}"
            )
            turns[:] = original
            return turns

        if result is not None:
            logger.debug(
                f"ContextGuard: agent {agent_id} now at ~{result.tokens_after} tokens "
                f"({result.turns_kept} recent turns kept)"
            )
        return turns
