"""Types for the compaction system."""

from dataclasses import dataclass, field
from typing import Any, Literal, Union

Role = Literal["user", "assistant", "tool"]


@dataclass(frozen=True)
class TextPart:
    """Plain text content."""

    text: str


@dataclass(frozen=True)
class ToolCallPart:
    """A tool invocation issued by the model."""

    name: str
    args: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ToolResultPart:
    """The result of a tool invocation. Answers an earlier ToolCallPart."""

    name: str
    result: Any = None


Part = Union[TextPart, ToolCallPart, ToolResultPart]


@dataclass(frozen=True)
class Turn:
    """
    One message-equivalent unit of a conversation.

    Turns are immutable: compaction replaces entries of the turn list,
    it never edits a turn in place.
    """

    role: Role
    parts: tuple[Part, ...] = ()

    @classmethod
    def text(cls, role: Role, text: str) -> "Turn":
        """Build a turn holding a single text part."""
        return cls(role=role, parts=(TextPart(text),))

    def has_tool_result(self) -> bool:
        return any(isinstance(p, ToolResultPart) for p in self.parts)

    def has_tool_call(self) -> bool:
        return any(isinstance(p, ToolCallPart) for p in self.parts)


@dataclass
class CompactionState:
    """Per-agent compaction state persisted in the conversation state."""

    summary: str = ""
    tokens_at_last_summarization: int = 0
    turn_count_at_last_compaction: int = 0


@dataclass
class CompactionTuning:
    """Tunable constants shared by both strategies."""

    # Boundary between "small" and "large" context windows
    large_context_window_threshold: int = 200_000
    # Fixed buffer reserved on large windows
    large_context_window_buffer: int = 20_000
    # Share of the window reserved as buffer on small windows
    small_context_window_ratio: float = 0.20
    # Share of the window kept verbatim after a threshold compaction
    recent_window_ratio: float = 0.20
    # Share of the buffer the summary may use
    summary_output_ratio: float = 0.50
    words_per_token: float = 0.75
    fallback_excerpt_chars: int = 200
    sliding_window_recent_ratio: float = 0.30
    sliding_window_min_recent: int = 3


@dataclass
class CompactionResult:
    """Result of a compaction operation."""

    strategy: str
    summary: str
    tokens_before: int
    tokens_after: int
    turns_summarized: int
    turns_kept: int


class CompactionError(Exception):
    """Base error for compaction failures."""


class SummarizationError(CompactionError):
    """The summarization call failed, timed out or was rejected by the provider."""


# Strategy identifiers
STRATEGY_THRESHOLD = "threshold"
STRATEGY_SLIDING_WINDOW = "sliding_window"

DEFAULT_MAX_TURNS = 20
DEFAULT_SUMMARY_TIMEOUT_SECONDS = 120.0

# Logical state keys, one set per agent
STATE_KEY_SUMMARY = "summary"
STATE_KEY_SUMMARIZED_AT = "summarized_at"
STATE_KEY_TURNS_AT_COMPACTION = "turns_at_compaction"

SUMMARY_MARKER = "[Previous conversation summary]"
SUMMARY_END_MARKER = "[End of summary, conversation continues below]"
FALLBACK_SEPARATOR = "\n\n---\n\n"
