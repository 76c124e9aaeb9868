"""Compaction system for context management."""

from contextguard.compaction.estimator import (
    estimate_part_tokens,
    estimate_text_tokens,
    estimate_tokens,
    estimate_turn_tokens,
    estimate_turns_text_tokens,
)
from contextguard.compaction.guard import ContextGuard, build_strategies
from contextguard.compaction.pruning import safe_split_index, select_split
from contextguard.compaction.state import (
    CompactionStateStore,
    ConversationState,
    InMemoryConversationState,
    JsonFileConversationState,
)
from contextguard.compaction.strategies import (
    SlidingWindowStrategy,
    Strategy,
    ThresholdStrategy,
    compute_buffer,
)
from contextguard.compaction.summarizer import build_fallback_summary, summarize
from contextguard.compaction.types import (
    CompactionError,
    CompactionResult,
    CompactionState,
    CompactionTuning,
    SummarizationError,
    TextPart,
    ToolCallPart,
    ToolResultPart,
    Turn,
)

__all__ = [
    # Estimator
    "estimate_text_tokens",
    "estimate_part_tokens",
    "estimate_turn_tokens",
    "estimate_turns_text_tokens",
    "estimate_tokens",
    # Split selection
    "select_split",
    "safe_split_index",
    # Summarizer
    "summarize",
    "build_fallback_summary",
    # State
    "ConversationState",
    "InMemoryConversationState",
    "JsonFileConversationState",
    "CompactionStateStore",
    # Strategies
    "Strategy",
    "ThresholdStrategy",
    "SlidingWindowStrategy",
    "compute_buffer",
    # Guard
    "ContextGuard",
    "build_strategies",
    # Types
    "Turn",
    "TextPart",
    "ToolCallPart",
    "ToolResultPart",
    "CompactionState",
    "CompactionResult",
    "CompactionTuning",
    "CompactionError",
    "SummarizationError",
]
