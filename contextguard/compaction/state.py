"""Conversation state access for compaction."""

import json
import os
import secrets
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from filelock import FileLock
from loguru import logger

from contextguard.compaction.types import (
    STATE_KEY_SUMMARIZED_AT,
    STATE_KEY_SUMMARY,
    STATE_KEY_TURNS_AT_COMPACTION,
    CompactionState,
)


def state_key(agent_id: str, key: str) -> str:
    """Flat session-state key for an agent's logical key."""
    return f"__context_guard_{key}_{agent_id}"


class ConversationState(ABC):
    """
    Key-value state scoped to one conversation.

    Owned by the session store; compaction only reads and overwrites
    its own keys.
    """

    @abstractmethod
    def get(self, agent_id: str, key: str) -> tuple[Any, bool]:
        """Return (value, found)."""

    @abstractmethod
    def set(self, agent_id: str, key: str, value: Any) -> None:
        """Store a value. Raises on failure."""


class InMemoryConversationState(ConversationState):
    """
    Conversation state backed by a plain dict.

    Pass the host's session-state dict to share it; keys are namespaced
    per agent so several agents can live in one conversation.
    """

    def __init__(self, data: dict[str, Any] | None = None):
        self.data = data if data is not None else {}

    def get(self, agent_id: str, key: str) -> tuple[Any, bool]:
        full_key = state_key(agent_id, key)
        if full_key not in self.data:
            return None, False
        return self.data[full_key], True

    def set(self, agent_id: str, key: str, value: Any) -> None:
        self.data[state_key(agent_id, key)] = value


class JsonFileConversationState(ConversationState):
    """
    Conversation state persisted as a JSON file.

    Every write re-reads the file under a file lock and replaces it
    atomically, so separate processes can share one conversation.
    """

    def __init__(self, path: Path, lock_timeout: float = 10):
        self.path = Path(path)
        self.lock_path = self.path.with_suffix(".lock")
        self.lock_timeout = lock_timeout

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Error reading conversation state {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(f".tmp.{secrets.token_hex(4)}")
        try:
            tmp_path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
            os.replace(tmp_path, self.path)
        except Exception:
            tmp_path.unlink(missing_ok=True)
            raise

    def get(self, agent_id: str, key: str) -> tuple[Any, bool]:
        with FileLock(self.lock_path, timeout=self.lock_timeout):
            data = self._read()
        full_key = state_key(agent_id, key)
        if full_key not in data:
            return None, False
        return data[full_key], True

    def set(self, agent_id: str, key: str, value: Any) -> None:
        with FileLock(self.lock_path, timeout=self.lock_timeout):
            data = self._read()
            data[state_key(agent_id, key)] = value
            self._write(data)


def _as_int(value: Any) -> int:
    """Coerce a stored counter; JSON stores may hand back floats or strings."""
    if isinstance(value, bool):
        return 0
    try:
        if isinstance(value, (int, float)):
            return max(0, int(value))
        if isinstance(value, str):
            return max(0, int(float(value)))
    except (ValueError, OverflowError):
        return 0
    return 0


class CompactionStateStore:
    """
    Reads and writes one agent's CompactionState.

    Reads never fail (missing or unreadable values load as defaults).
    Write failures are logged and dropped: the next call simply
    compacts again because the watermark did not move.
    """

    def __init__(self, state: ConversationState, agent_id: str):
        self.state = state
        self.agent_id = agent_id

    def _get(self, key: str) -> Any:
        try:
            value, found = self.state.get(self.agent_id, key)
        except Exception as e:
            logger.warning(f"ContextGuard: failed to read {key} for agent {self.agent_id}: {e}")
            return None
        return value if found else None

    def _set(self, key: str, value: Any, label: str) -> bool:
        try:
            self.state.set(self.agent_id, key, value)
        except Exception as e:
            logger.warning(f"ContextGuard: failed to persist {label} for agent {self.agent_id}: {e}")
            return False
        return True

    def load(self) -> CompactionState:
        summary = self._get(STATE_KEY_SUMMARY)
        return CompactionState(
            summary=summary if isinstance(summary, str) else "",
            tokens_at_last_summarization=_as_int(self._get(STATE_KEY_SUMMARIZED_AT)),
            turn_count_at_last_compaction=_as_int(self._get(STATE_KEY_TURNS_AT_COMPACTION)),
        )

    def save_summary(self, summary: str, token_count: int) -> None:
        """Persist the summary and the token count that triggered it."""
        self._set(STATE_KEY_SUMMARY, summary, "summary")
        self._set(STATE_KEY_SUMMARIZED_AT, token_count, "token count")

    def save_watermark(self, turn_count: int) -> None:
        """Persist the turn count at which compaction ran."""
        self._set(STATE_KEY_TURNS_AT_COMPACTION, turn_count, "turn count watermark")
