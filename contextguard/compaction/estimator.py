"""Token estimation for turns.

Uses the ~4 characters per token heuristic. The estimate only decides
*when* to compact, so being 20-30% off a real tokenizer is acceptable.
"""

import json
from typing import Any, Iterable

from contextguard.compaction.types import (
    Part,
    TextPart,
    ToolCallPart,
    ToolResultPart,
    Turn,
)

CHARS_PER_TOKEN = 4


def _serialize(value: Any) -> str:
    """Serialize tool arguments or results deterministically."""
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value, sort_keys=True, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return str(value)


def estimate_text_tokens(text: str) -> int:
    """
    Estimate the number of tokens in a text string.

    Args:
        text: The text to estimate tokens for.

    Returns:
        Estimated token count.
    """
    if not text:
        return 0
    return len(text) // CHARS_PER_TOKEN


def estimate_part_tokens(part: Part) -> int:
    """Estimate tokens for a single part."""
    if isinstance(part, TextPart):
        return estimate_text_tokens(part.text)
    if isinstance(part, ToolCallPart):
        return (
            estimate_text_tokens(part.name)
            + estimate_text_tokens(_serialize(part.args))
        )
    if isinstance(part, ToolResultPart):
        return (
            estimate_text_tokens(part.name)
            + estimate_text_tokens(_serialize(part.result))
        )
    return 0


def estimate_turn_tokens(turn: Turn) -> int:
    """Estimate tokens for a single turn, all parts included."""
    return sum(estimate_part_tokens(part) for part in turn.parts)


def estimate_turn_text_tokens(turn: Turn) -> int:
    """Estimate tokens for the text parts of a turn only."""
    return sum(
        estimate_text_tokens(part.text)
        for part in turn.parts
        if isinstance(part, TextPart)
    )


def estimate_turns_text_tokens(turns: Iterable[Turn]) -> int:
    """Estimate tokens for the text parts of a list of turns."""
    return sum(estimate_turn_text_tokens(turn) for turn in turns)


def estimate_tokens(turns: Iterable[Turn], system_instruction: str = "") -> int:
    """
    Estimate total tokens for a model call.

    Args:
        turns: Conversation turns sent to the model.
        system_instruction: System instruction sent alongside the turns.

    Returns:
        Total estimated token count (never negative).
    """
    total = sum(estimate_turn_tokens(turn) for turn in turns)
    return total + estimate_text_tokens(system_instruction)
