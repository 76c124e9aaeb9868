"""Shared fixtures for compaction tests."""

import asyncio
from typing import Any

import pytest

from contextguard.compaction.state import CompactionStateStore, InMemoryConversationState
from contextguard.compaction.types import Turn
from contextguard.models.registry import ModelInfo, ModelRegistry
from contextguard.providers.base import LLMProvider, LLMResponse


class FakeProvider(LLMProvider):
    """Provider returning canned responses and recording every call."""

    def __init__(
        self,
        content: str | None = "SUMMARY",
        finish_reason: str = "stop",
        error: Exception | None = None,
        delay: float = 0,
        usage: dict[str, int] | None = None,
    ):
        super().__init__()
        self.content = content
        self.finish_reason = finish_reason
        self.error = error
        self.delay = delay
        self.usage = usage or {}
        self.calls: list[dict[str, Any]] = []

    async def chat(
        self,
        messages: list[dict[str, Any]],
        model: str | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.7,
    ) -> LLMResponse:
        self.calls.append({"messages": messages, "model": model, "max_tokens": max_tokens})
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return LLMResponse(content=self.content, finish_reason=self.finish_reason, usage=self.usage)

    def get_default_model(self) -> str:
        return "fake/model"


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def make_provider():
    return FakeProvider


@pytest.fixture
def registry():
    reg = ModelRegistry()
    reg.load([
        ModelInfo(id="small-model", context_window=1_000),
        ModelInfo(id="gpt-128k", context_window=128_000),
        ModelInfo(id="huge-model", context_window=1_000_000),
    ])
    return reg


@pytest.fixture
def conversation_state():
    return InMemoryConversationState()


@pytest.fixture
def store(conversation_state):
    return CompactionStateStore(conversation_state, "agent-1")


@pytest.fixture
def text_turns():
    """Build `count` alternating user/assistant turns of `chars` characters each."""

    def _build(count: int, chars: int = 40) -> list[Turn]:
        roles = ("user", "assistant")
        return [
            Turn.text(roles[i % 2], f"{i:04d}" + "x" * max(0, chars - 4))
            for i in range(count)
        ]

    return _build
