"""Split point selection for compaction."""

from contextguard.compaction.estimator import estimate_turn_text_tokens
from contextguard.compaction.types import ToolCallPart, ToolResultPart, Turn


def tool_call_spans(turns: list[Turn]) -> list[tuple[int, int]]:
    """
    Pair every tool result with the tool call it answers.

    A result is matched to the oldest unanswered call with the same name,
    or to the most recent unanswered call when no name matches.

    Args:
        turns: Conversation turns.

    Returns:
        List of (call_turn_index, result_turn_index) pairs.
    """
    open_calls: list[tuple[str, int]] = []
    spans: list[tuple[int, int]] = []

    for idx, turn in enumerate(turns):
        for part in turn.parts:
            if isinstance(part, ToolCallPart):
                open_calls.append((part.name, idx))
            elif isinstance(part, ToolResultPart):
                match = next(
                    (i for i, (name, _) in enumerate(open_calls) if name == part.name),
                    len(open_calls) - 1,
                )
                if match < 0:
                    # Orphaned result, nothing to keep it paired with
                    continue
                _, call_idx = open_calls.pop(match)
                spans.append((call_idx, idx))

    return spans


def safe_split_index(turns: list[Turn], idx: int) -> int:
    """
    Adjust a candidate split index so no tool call/result pair is split.

    If the first "recent" turn carries a tool result, the split moves back
    to include the turn with the matching call. The adjustment repeats
    until the boundary sits outside every call/result span.

    Args:
        turns: Conversation turns.
        idx: Candidate boundary; turns[:idx] are old, turns[idx:] recent.

    Returns:
        Adjusted boundary in [0, len(turns)].
    """
    idx = max(0, min(idx, len(turns)))
    if idx == 0 or idx == len(turns):
        return idx

    spans = tool_call_spans(turns)
    while idx > 0:
        enclosing = [call_idx for call_idx, result_idx in spans if call_idx < idx <= result_idx]
        if enclosing:
            idx = min(enclosing)
        elif turns[idx].has_tool_result():
            # Orphaned results still must not open the recent window
            idx -= 1
        else:
            break

    return idx


def select_split(turns: list[Turn], recent_budget_tokens: int) -> int:
    """
    Pick the boundary between turns to summarize and turns to keep.

    Walks backwards accumulating text tokens until the recent budget is
    reached. The turn that crosses the budget goes to the old side. At
    least two turns stay recent when there are three or more, at least
    one otherwise. If the budget is never reached the list is cut in half.

    Args:
        turns: Conversation turns.
        recent_budget_tokens: Token budget for turns kept verbatim.

    Returns:
        Boundary index; turns[:idx] are summarized, turns[idx:] kept.
    """
    count = len(turns)
    if count == 0:
        return 0

    min_recent = 2 if count >= 3 else 1
    tokens = 0
    for i in range(count - 1, -1, -1):
        tokens += estimate_turn_text_tokens(turns[i])
        if tokens >= recent_budget_tokens:
            return safe_split_index(turns, min(i + 1, count - min_recent))

    if count > 2:
        return safe_split_index(turns, count // 2)
    return safe_split_index(turns, count - 1)
