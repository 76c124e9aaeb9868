"""Turn summarization for compaction."""

import asyncio

from loguru import logger

from contextguard.compaction.types import (
    FALLBACK_SEPARATOR,
    SUMMARY_END_MARKER,
    SUMMARY_MARKER,
    CompactionTuning,
    SummarizationError,
    TextPart,
    ToolCallPart,
    ToolResultPart,
    Turn,
)
from contextguard.providers.base import LLMProvider


# The summary is the only context left when the conversation resumes, so the
# prompt asks for open threads, facts, decisions and concrete next actions
# rather than a narrative recap.
SUMMARIZE_SYSTEM_PROMPT = """You are summarizing a conversation to preserve context for continuing later.

Critical: This summary will be the ONLY context available when the conversation resumes. Assume all previous messages will be lost. Be thorough.

Required sections:

## Current State

- What was being discussed or worked on (exact user request if applicable)
- Current progress and what has been completed
- What was being addressed right now (incomplete work or open thread)
- What remains to be done or answered (specific, not vague)

## Key Information

- Facts, data, and specific details mentioned (names, dates, numbers, URLs, identifiers)
- User preferences, instructions, and constraints stated during the conversation
- Definitions, terminology, or domain knowledge established
- Any external resources, references, or sources mentioned

## Context & Decisions

- Decisions made during the conversation and why
- Alternatives that were considered and discarded (and why)
- Assumptions made
- Important clarifications or corrections that occurred
- Any blockers, risks, or open questions identified

## Exact Next Steps

Be specific. Don't write "continue with the task"; write exactly what should happen next, with enough detail that someone reading only this summary can pick up without asking questions.

Tone: Write as if briefing a colleague taking over mid-conversation. Write in the same language as the conversation.

Length: Within the word limit below, err on the side of too much detail rather than too little."""

WORD_LIMIT_INSTRUCTION = "\n\nKeep the summary under {max_words} words."


def output_budget(buffer_tokens: int, tuning: CompactionTuning | None = None) -> tuple[int, int]:
    """
    Compute the summary output budget.

    Args:
        buffer_tokens: Token buffer reserved below the context window.
        tuning: Tunable constants.

    Returns:
        Tuple of (max_output_tokens, max_words).
    """
    tuning = tuning or CompactionTuning()
    max_output_tokens = int(buffer_tokens * tuning.summary_output_ratio)
    max_words = int(max_output_tokens * tuning.words_per_token)
    return max_output_tokens, max_words


def build_system_prompt(max_words: int) -> str:
    """Build the summarization system prompt with its word limit."""
    return SUMMARIZE_SYSTEM_PROMPT + WORD_LIMIT_INSTRUCTION.format(max_words=max_words)


def render_transcript(turns: list[Turn]) -> str:
    """Render turns as a flat `role: text` transcript."""
    lines = []
    for turn in turns:
        role = turn.role or "unknown"
        for part in turn.parts:
            if isinstance(part, TextPart):
                if part.text:
                    lines.append(f"{role}: {part.text}")
            elif isinstance(part, ToolCallPart):
                lines.append(f"{role}: [called tool: {part.name}]")
            elif isinstance(part, ToolResultPart):
                lines.append(f"{role}: [tool {part.name} returned a result]")
    return "\n".join(lines)


def build_summarize_prompt(turns: list[Turn], previous_summary: str = "") -> str:
    """
    Build the user prompt sent for summarization.

    Args:
        turns: Turns to summarize.
        previous_summary: Summary from an earlier compaction, merged in.

    Returns:
        Prompt text.
    """
    sections = ["Provide a detailed summary of the following conversation."]

    if previous_summary:
        sections.append(
            "[Previous summary for context]\n"
            f"{previous_summary}\n"
            "[End previous summary]\n\n"
            "Incorporate the previous summary into your new summary, "
            "updating any information that has changed."
        )

    transcript = render_transcript(turns)
    sections.append(
        "[Conversation to summarize]\n"
        + (f"{transcript}\n" if transcript else "")
        + "[End of conversation]"
    )

    return "\n\n".join(sections) + "\n"


def build_fallback_summary(
    turns: list[Turn],
    previous_summary: str = "",
    excerpt_chars: int = 200,
) -> str:
    """
    Build a summary without an LLM from excerpts of every text part.

    Never returns an empty string for a non-empty turn list.

    Args:
        turns: Turns to summarize.
        previous_summary: Summary from an earlier compaction.
        excerpt_chars: Characters kept from each text part.

    Returns:
        Mechanical summary text.
    """
    lines = []
    for turn in turns:
        role = turn.role or "unknown"
        for part in turn.parts:
            if isinstance(part, TextPart) and part.text:
                excerpt = part.text
                if len(excerpt) > excerpt_chars:
                    excerpt = excerpt[:excerpt_chars] + "..."
                lines.append(f"{role}: {excerpt}")

    if not lines and turns:
        lines.append(f"[{len(turns)} earlier turn(s) without text content were compacted]")

    body = "\n".join(lines)
    if previous_summary:
        return f"{previous_summary}{FALLBACK_SEPARATOR}{body}" if body else previous_summary
    return body


def build_summary_turn(summary: str) -> Turn:
    """Wrap a summary in the synthetic leading turn."""
    return Turn.text("user", f"{SUMMARY_MARKER}\n{summary}\n{SUMMARY_END_MARKER}")


def is_summary_turn(turn: Turn) -> bool:
    """Check whether a turn is an injected summary turn."""
    if turn.role != "user" or not turn.parts:
        return False
    first = turn.parts[0]
    return isinstance(first, TextPart) and first.text.startswith(SUMMARY_MARKER)


async def summarize(
    turns: list[Turn],
    previous_summary: str,
    buffer_tokens: int,
    provider: LLMProvider,
    model: str,
    tuning: CompactionTuning | None = None,
    timeout: float | None = None,
) -> str:
    """
    Summarize turns with the LLM.

    Args:
        turns: Turns to summarize.
        previous_summary: Summary from an earlier compaction, merged in.
        buffer_tokens: Token buffer; half of it caps the summary output.
        provider: LLM provider.
        model: Model to use.
        tuning: Tunable constants.
        timeout: Seconds to wait for the provider, None for no limit.

    Returns:
        Summary text. Falls back to a mechanical summary when the model
        returns nothing.

    Raises:
        SummarizationError: If the provider call fails or times out.
    """
    tuning = tuning or CompactionTuning()
    max_output_tokens, max_words = output_budget(buffer_tokens, tuning)

    messages = [
        {"role": "system", "content": build_system_prompt(max_words)},
        {"role": "user", "content": build_summarize_prompt(turns, previous_summary)},
    ]

    try:
        response = await asyncio.wait_for(
            provider.chat(
                messages=messages,
                model=model,
                max_tokens=max(1, max_output_tokens),
            ),
            timeout=timeout,
        )
    except asyncio.TimeoutError as e:
        raise SummarizationError(f"summarization timed out after {timeout}s") from e
    except Exception as e:
        raise SummarizationError(f"summarization LLM call failed: {e}") from e

    if response.is_error:
        raise SummarizationError(f"summarization LLM call failed: {response.content}")

    summary = (response.content or "").strip()
    if not summary:
        logger.warning(
            f"Summarization returned empty text, using fallback summary for {len(turns)} turns"
        )
        return build_fallback_summary(
            turns, previous_summary, tuning.fallback_excerpt_chars
        )

    if response.usage:
        logger.debug(
            f"Summary generated with {model}: {len(summary)} chars, "
            f"{response.usage.get('completion_tokens', 0)} completion tokens "
            f"(budget {max_output_tokens})"
        )
    return summary
