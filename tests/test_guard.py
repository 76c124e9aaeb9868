"""Tests for the context guard dispatcher."""

import asyncio

import pytest

from contextguard.compaction.guard import ContextGuard, build_strategies
from contextguard.compaction.state import CompactionStateStore, InMemoryConversationState
from contextguard.compaction.strategies import SlidingWindowStrategy, ThresholdStrategy
from contextguard.compaction.summarizer import build_summary_turn, is_summary_turn
from contextguard.compaction.types import Turn
from contextguard.config.schema import AgentConfig, CompactionTuningConfig, Config, ContextGuardConfig


class TestContextGuard:
    @pytest.mark.asyncio
    async def test_unknown_agent_noop(self, conversation_state, text_turns):
        guard = ContextGuard()
        turns = text_turns(50)
        before = list(turns)
        result = await guard.before_model_call("nobody", turns, "", "m", state=conversation_state)
        assert result is turns
        assert turns == before

    @pytest.mark.asyncio
    async def test_empty_turns_noop(self, registry, provider, conversation_state):
        guard = ContextGuard({"a": SlidingWindowStrategy(registry, provider, "m", max_turns=1)})
        turns: list[Turn] = []
        assert await guard.before_model_call("a", turns, state=conversation_state) == []

    @pytest.mark.asyncio
    async def test_compacts_in_place(self, registry, provider, conversation_state, text_turns):
        guard = ContextGuard({"a": SlidingWindowStrategy(registry, provider, "m", max_turns=20)})
        turns = text_turns(21)
        result = await guard.before_model_call("a", turns, "sys", "gpt-128k", state=conversation_state)
        assert result is turns
        assert len(turns) == 7
        assert is_summary_turn(turns[0])

    @pytest.mark.asyncio
    async def test_fail_open_returns_original(self, registry, make_provider, conversation_state, text_turns):
        provider = make_provider(error=RuntimeError("provider down"))
        guard = ContextGuard({"a": SlidingWindowStrategy(registry, provider, "m", max_turns=20)})
        CompactionStateStore(conversation_state, "a").save_summary("stored", 1)

        turns = text_turns(21)
        before = list(turns)
        result = await guard.before_model_call("a", turns, "", "gpt-128k", state=conversation_state)

        assert result is turns
        assert turns == before
        assert CompactionStateStore(conversation_state, "a").load().turn_count_at_last_compaction == 0

    @pytest.mark.asyncio
    async def test_fail_open_threshold_with_injected_summary(
        self, registry, make_provider, conversation_state, text_turns
    ):
        provider = make_provider(error=RuntimeError("provider down"))
        guard = ContextGuard({"a": ThresholdStrategy(registry, provider, "m", context_window_override=100)})
        CompactionStateStore(conversation_state, "a").save_summary("stored", 1)

        turns = text_turns(10)
        before = list(turns)
        await guard.before_model_call("a", turns, "", "", state=conversation_state)
        assert turns == before

    @pytest.mark.asyncio
    async def test_write_failure_returns_compacted(self, registry, provider, text_turns):
        class ReadOnlyState(InMemoryConversationState):
            def set(self, agent_id, key, value):
                raise OSError("read-only")

        guard = ContextGuard({"a": SlidingWindowStrategy(registry, provider, "m", max_turns=20)})
        state = ReadOnlyState()
        turns = text_turns(21)
        await guard.before_model_call("a", turns, "", "gpt-128k", state=state)
        assert len(turns) == 7
        assert is_summary_turn(turns[0])

        await guard.before_model_call("a", text_turns(22), "", "gpt-128k", state=state)
        assert len(provider.calls) == 2

    @pytest.mark.asyncio
    async def test_cancellation_restores_and_propagates(
        self, registry, make_provider, conversation_state, text_turns
    ):
        provider = make_provider(delay=10)
        guard = ContextGuard({"a": SlidingWindowStrategy(registry, provider, "m", max_turns=20)})
        turns = text_turns(21)
        before = list(turns)

        task = asyncio.create_task(
            guard.before_model_call("a", turns, "", "gpt-128k", state=conversation_state)
        )
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert turns == before
        assert CompactionStateStore(conversation_state, "a").load().summary == ""

    @pytest.mark.asyncio
    async def test_agents_do_not_share_state(self, registry, provider, conversation_state, text_turns):
        guard = ContextGuard({
            "a": SlidingWindowStrategy(registry, provider, "m", max_turns=20),
            "b": SlidingWindowStrategy(registry, provider, "m", max_turns=20),
        })
        await guard.before_model_call("a", text_turns(21), "", "gpt-128k", state=conversation_state)

        turns_b = text_turns(5)
        await guard.before_model_call("b", turns_b, "", "gpt-128k", state=conversation_state)
        assert not is_summary_turn(turns_b[0])
        assert CompactionStateStore(conversation_state, "b").load().summary == ""

    @pytest.mark.asyncio
    async def test_injects_summary_below_limit(self, registry, provider, conversation_state, text_turns):
        guard = ContextGuard({"a": ThresholdStrategy(registry, provider, "m")})
        CompactionStateStore(conversation_state, "a").save_summary("stored", 1)
        turns = text_turns(3)
        await guard.before_model_call("a", turns, "", "gpt-128k", state=conversation_state)
        assert turns[0] == build_summary_turn("stored")

    def test_swap_replaces_all(self, registry, provider):
        guard = ContextGuard({"a": ThresholdStrategy(registry, provider, "m")})
        replacement = SlidingWindowStrategy(registry, provider, "m")
        guard.swap({"b": replacement})
        assert guard.strategy_for("a") is None
        assert guard.strategy_for("b") is replacement

    def test_swap_copies_mapping(self, registry, provider):
        strategies = {"a": ThresholdStrategy(registry, provider, "m")}
        guard = ContextGuard(strategies)
        strategies.clear()
        assert guard.strategy_for("a") is not None


class TestBuildStrategies:
    def test_builds_per_agent(self, registry, provider):
        config = Config(agents={
            "chat": AgentConfig(model="anthropic/claude-sonnet-4-5"),
            "ops": AgentConfig(
                model="openai/gpt-4o",
                context_guard=ContextGuardConfig(
                    strategy="sliding_window",
                    max_turns=30,
                    summary_model="openai/gpt-4o-mini",
                ),
            ),
            "off": AgentConfig(context_guard=ContextGuardConfig(enabled=False)),
        })
        strategies = build_strategies(config, registry, provider)

        assert set(strategies) == {"chat", "ops"}
        assert isinstance(strategies["chat"], ThresholdStrategy)
        assert strategies["chat"].model == "anthropic/claude-sonnet-4-5"
        assert isinstance(strategies["ops"], SlidingWindowStrategy)
        assert strategies["ops"].max_turns == 30
        assert strategies["ops"].model == "openai/gpt-4o"
        assert strategies["ops"].summary_model == "openai/gpt-4o-mini"
        assert strategies["chat"].summary_model == "anthropic/claude-sonnet-4-5"

    def test_override_and_tuning(self, registry, provider):
        config = Config(
            agents={"a": AgentConfig(context_guard=ContextGuardConfig(context_window_override=64_000))},
            compaction=CompactionTuningConfig(recent_window_ratio=0.1),
        )
        strategy = build_strategies(config, registry, provider)["a"]
        assert strategy.resolve_context_window("gpt-128k") == 64_000
        assert strategy.tuning.recent_window_ratio == 0.1

    def test_each_agent_gets_its_own_lock(self, registry, provider):
        config = Config(agents={"a": AgentConfig(), "b": AgentConfig()})
        strategies = build_strategies(config, registry, provider)
        assert strategies["a"]._lock is not strategies["b"]._lock

    def test_from_config(self, registry, provider):
        config = Config(agents={"a": AgentConfig()})
        guard = ContextGuard.from_config(config, registry, provider)
        assert isinstance(guard.strategy_for("a"), ThresholdStrategy)
