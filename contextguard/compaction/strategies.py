"""Compaction strategies: token threshold and sliding window."""

import asyncio
from abc import ABC, abstractmethod

from loguru import logger

from contextguard.compaction.estimator import estimate_tokens, estimate_turns_text_tokens
from contextguard.compaction.pruning import safe_split_index, select_split
from contextguard.compaction.state import CompactionStateStore
from contextguard.compaction.summarizer import (
    build_summary_turn,
    is_summary_turn,
    output_budget,
    summarize,
)
from contextguard.compaction.types import (
    DEFAULT_MAX_TURNS,
    STRATEGY_SLIDING_WINDOW,
    STRATEGY_THRESHOLD,
    CompactionResult,
    CompactionTuning,
    Turn,
)
from contextguard.models.registry import ModelRegistry
from contextguard.providers.base import LLMProvider


def compute_buffer(context_window: int, tuning: CompactionTuning | None = None) -> int:
    """
    Compute the token buffer reserved below the context window.

    Large windows get a fixed buffer, small ones a share of the window.

    Args:
        context_window: Context window in tokens.
        tuning: Tunable constants.

    Returns:
        Buffer in tokens.
    """
    tuning = tuning or CompactionTuning()
    if context_window > tuning.large_context_window_threshold:
        return tuning.large_context_window_buffer
    return int(context_window * tuning.small_context_window_ratio)


def inject_summary(turns: list[Turn], summary: str, replace: bool = False) -> None:
    """
    Prepend the summary turn unless the list already starts with one.

    Args:
        turns: Turn list, modified in place.
        summary: Summary text.
        replace: Overwrite an existing leading summary turn instead of
            leaving it alone.
    """
    if not summary:
        return
    if turns and is_summary_turn(turns[0]):
        if replace:
            turns[0] = build_summary_turn(summary)
        return
    turns.insert(0, build_summary_turn(summary))


def replace_with_summary(turns: list[Turn], summary: str, recent: list[Turn]) -> None:
    """Rewrite the turn list in place as [summary turn] + recent."""
    turns[:] = [build_summary_turn(summary), *recent]


def split_turns(turns: list[Turn], split_idx: int) -> tuple[list[Turn], list[Turn]]:
    """
    Split turns into (old, recent).

    A leading summary turn is left out of the old slice; its content is
    passed to the summarizer as the previous summary instead.
    """
    old = [t for t in turns[:split_idx] if not is_summary_turn(t)]
    return old, list(turns[split_idx:])


class Strategy(ABC):
    """
    Decides whether and how to compact a turn list before a model call.

    One instance per agent. Each instance owns the lock serializing its
    compaction critical section. `model` is the agent's own model and
    sizes the context window; `summary_model` only runs the summary call.
    State is read and written in a worker thread, since backends may
    block on file locks.
    """

    name: str = ""

    def __init__(
        self,
        registry: ModelRegistry,
        provider: LLMProvider,
        model: str,
        context_window_override: int | None = None,
        tuning: CompactionTuning | None = None,
        summary_timeout: float | None = None,
        summary_model: str | None = None,
    ):
        self.registry = registry
        self.provider = provider
        self.model = model
        self.summary_model = summary_model or model
        self.context_window_override = context_window_override
        self.tuning = tuning or CompactionTuning()
        self.summary_timeout = summary_timeout
        self._lock = asyncio.Lock()

    def resolve_context_window(self, model_id: str) -> int:
        """
        Explicit override if configured, else the registry value for the
        call's model (the agent's model when the call gives none).
        """
        if self.context_window_override and self.context_window_override > 0:
            return self.context_window_override
        return self.registry.context_window(model_id or self.model)

    async def _summarize(self, old: list[Turn], previous_summary: str, buffer: int) -> str:
        return await summarize(
            old,
            previous_summary,
            buffer,
            self.provider,
            self.summary_model,
            tuning=self.tuning,
            timeout=self.summary_timeout,
        )

    @abstractmethod
    async def compact(
        self,
        turns: list[Turn],
        system_instruction: str,
        model_id: str,
        state: CompactionStateStore,
    ) -> CompactionResult | None:
        """
        Compact `turns` in place if needed.

        Returns:
            CompactionResult if compaction ran, None otherwise.

        Raises:
            CompactionError: Compaction was attempted and failed; turns
                were not rewritten.
        """


class ThresholdStrategy(Strategy):
    """
    Token-budget driven compaction.

    Summarizes the older part of the conversation once the estimated
    token count reaches the context window minus the buffer.
    """

    name = STRATEGY_THRESHOLD

    async def compact(
        self,
        turns: list[Turn],
        system_instruction: str,
        model_id: str,
        state: CompactionStateStore,
    ) -> CompactionResult | None:
        context_window = self.resolve_context_window(model_id)
        buffer = compute_buffer(context_window, self.tuning)
        threshold = context_window - buffer

        existing = await asyncio.to_thread(state.load)
        inject_summary(turns, existing.summary)

        total_tokens = estimate_tokens(turns, system_instruction)
        if total_tokens < threshold:
            return None

        _, max_words = output_budget(buffer, self.tuning)
        logger.info(
            f"ContextGuard [{self.name}]: threshold exceeded for agent {state.agent_id}, "
            f"summarizing ({total_tokens} tokens, threshold {threshold}, "
            f"window {context_window}, buffer {buffer}, max summary words {max_words})"
        )

        async with self._lock:
            current = await asyncio.to_thread(state.load)
            if current.summary != existing.summary:
                # Another call compacted while this one waited
                inject_summary(turns, current.summary, replace=True)
                total_tokens = estimate_tokens(turns, system_instruction)
                if total_tokens < threshold:
                    return None

            recent_budget = int(context_window * self.tuning.recent_window_ratio)
            split_idx = select_split(turns, recent_budget)
            old, recent = split_turns(turns, split_idx)
            if not old:
                logger.debug(
                    f"ContextGuard [{self.name}]: nothing old enough to summarize "
                    f"for agent {state.agent_id}"
                )
                return None

            summary = await self._summarize(old, current.summary, buffer)

            await asyncio.to_thread(state.save_summary, summary, total_tokens)
            replace_with_summary(turns, summary, recent)

        tokens_after = estimate_tokens(turns, system_instruction)
        logger.info(
            f"ContextGuard [{self.name}]: conversation compressed for agent {state.agent_id}: "
            f"{len(old)} old turns summarized, {len(recent)} kept, "
            f"{total_tokens} -> {tokens_after} tokens"
        )
        return CompactionResult(
            strategy=self.name,
            summary=summary,
            tokens_before=total_tokens,
            tokens_after=tokens_after,
            turns_summarized=len(old),
            turns_kept=len(recent),
        )


class SlidingWindowStrategy(Strategy):
    """
    Turn-count driven compaction.

    Compacts once more than `max_turns` turns arrived since the last
    compaction, independent of their size. The summary budget still
    derives from the model's context window.
    """

    name = STRATEGY_SLIDING_WINDOW

    def __init__(self, *args, max_turns: int = DEFAULT_MAX_TURNS, **kwargs):
        super().__init__(*args, **kwargs)
        self.max_turns = max_turns if max_turns > 0 else DEFAULT_MAX_TURNS

    @property
    def recent_keep(self) -> int:
        return max(
            self.tuning.sliding_window_min_recent,
            int(self.max_turns * self.tuning.sliding_window_recent_ratio),
        )

    def _turns_since(self, turn_count: int, watermark: int) -> int:
        if watermark > turn_count:
            # Turn list shrank below the watermark (history reset or
            # the host kept a compacted list): count from zero.
            watermark = 0
        return turn_count - watermark

    async def compact(
        self,
        turns: list[Turn],
        system_instruction: str,
        model_id: str,
        state: CompactionStateStore,
    ) -> CompactionResult | None:
        turn_count = len(turns)
        existing = await asyncio.to_thread(state.load)

        since = self._turns_since(turn_count, existing.turn_count_at_last_compaction)
        if since <= self.max_turns:
            inject_summary(turns, existing.summary)
            return None

        logger.info(
            f"ContextGuard [{self.name}]: turn limit exceeded for agent {state.agent_id}, "
            f"summarizing ({since} turns since last compaction, max {self.max_turns})"
        )

        async with self._lock:
            current = await asyncio.to_thread(state.load)
            since = self._turns_since(turn_count, current.turn_count_at_last_compaction)
            if since <= self.max_turns:
                inject_summary(turns, current.summary)
                return None

            tokens_before = estimate_tokens(turns, system_instruction)
            split_idx = safe_split_index(turns, max(0, turn_count - self.recent_keep))
            old, recent = split_turns(turns, split_idx)
            if not old:
                inject_summary(turns, current.summary)
                logger.debug(
                    f"ContextGuard [{self.name}]: nothing old enough to summarize "
                    f"for agent {state.agent_id}"
                )
                return None

            buffer = compute_buffer(self.resolve_context_window(model_id), self.tuning)
            summary = await self._summarize(old, current.summary, buffer)

            await asyncio.to_thread(state.save_summary, summary, estimate_turns_text_tokens(old))
            await asyncio.to_thread(state.save_watermark, turn_count)
            replace_with_summary(turns, summary, recent)

        tokens_after = estimate_tokens(turns, system_instruction)
        logger.info(
            f"ContextGuard [{self.name}]: conversation compressed for agent {state.agent_id}: "
            f"{len(old)} old turns summarized, {len(recent)} kept, "
            f"{tokens_before} -> {tokens_after} tokens"
        )
        return CompactionResult(
            strategy=self.name,
            summary=summary,
            tokens_before=tokens_before,
            tokens_after=tokens_after,
            turns_summarized=len(old),
            turns_kept=len(recent),
        )
