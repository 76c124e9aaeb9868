"""Tests for the LiteLLM provider wrapper."""

from types import SimpleNamespace

import pytest

from contextguard.providers import litellm_provider
from contextguard.providers.litellm_provider import LiteLLMProvider


def fake_response(content="hello", finish_reason="stop"):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content), finish_reason=finish_reason)],
        usage=SimpleNamespace(prompt_tokens=10, completion_tokens=5, total_tokens=15),
    )


@pytest.fixture
def captured(monkeypatch):
    calls = []

    async def fake_acompletion(**kwargs):
        calls.append(kwargs)
        return fake_response()

    monkeypatch.setattr(litellm_provider, "acompletion", fake_acompletion)
    return calls


# ── Model routing ───────────────────────────────────────────────────


class TestResolveModel:
    def test_plain(self):
        provider = LiteLLMProvider(api_key="sk-ant-123")
        assert provider.resolve_model("anthropic/claude-sonnet-4-5") == "anthropic/claude-sonnet-4-5"

    def test_default_model(self):
        provider = LiteLLMProvider(api_key="k", default_model="openai/gpt-4o")
        assert provider.resolve_model(None) == "openai/gpt-4o"
        assert provider.get_default_model() == "openai/gpt-4o"

    def test_openrouter_by_key(self):
        provider = LiteLLMProvider(api_key="sk-or-abc")
        assert provider.is_openrouter
        assert provider.resolve_model("anthropic/claude-sonnet-4-5") == "openrouter/anthropic/claude-sonnet-4-5"
        assert provider.resolve_model("openrouter/x") == "openrouter/x"

    def test_openrouter_by_base(self):
        provider = LiteLLMProvider(api_key="k", api_base="https://openrouter.ai/api/v1")
        assert provider.is_openrouter
        assert not provider.is_vllm

    def test_vllm(self):
        provider = LiteLLMProvider(api_key="k", api_base="http://localhost:8000/v1")
        assert provider.is_vllm
        assert provider.resolve_model("llama-3") == "hosted_vllm/llama-3"

    def test_zhipu_prefix(self):
        provider = LiteLLMProvider(api_key="k")
        assert provider.resolve_model("glm-4.7-flash") == "zhipu/glm-4.7-flash"
        assert provider.resolve_model("zai/glm-4") == "zai/glm-4"

    def test_gemini_prefix(self):
        provider = LiteLLMProvider(api_key="k")
        assert provider.resolve_model("gemini-2.0-flash") == "gemini/gemini-2.0-flash"
        assert provider.resolve_model("gemini/gemini-2.0-flash") == "gemini/gemini-2.0-flash"


# ── chat ────────────────────────────────────────────────────────────


class TestChat:
    @pytest.mark.asyncio
    async def test_passes_request(self, captured):
        provider = LiteLLMProvider(api_key="sk-ant-123", api_base=None)
        response = await provider.chat([{"role": "user", "content": "hi"}], model="anthropic/claude-x", max_tokens=99)

        assert response.content == "hello"
        assert response.finish_reason == "stop"
        assert response.usage["total_tokens"] == 15
        assert not response.is_error

        kwargs = captured[0]
        assert kwargs["model"] == "anthropic/claude-x"
        assert kwargs["max_tokens"] == 99
        assert kwargs["api_key"] == "sk-ant-123"
        assert "api_base" not in kwargs

    @pytest.mark.asyncio
    async def test_timeout_from_env(self, monkeypatch, captured):
        monkeypatch.setenv("CONTEXTGUARD_LLM_TIMEOUT_SECONDS", "7")
        provider = LiteLLMProvider(api_key="k")
        await provider.chat([{"role": "user", "content": "hi"}])
        assert captured[0]["timeout"] == 7.0

    @pytest.mark.asyncio
    async def test_error_redacts_key(self, monkeypatch):
        secret = "sk-ant-supersecret"

        async def failing(**kwargs):
            raise RuntimeError(f"401 invalid key {secret}")

        monkeypatch.setattr(litellm_provider, "acompletion", failing)
        provider = LiteLLMProvider(api_key=secret)
        response = await provider.chat([{"role": "user", "content": "hi"}])

        assert response.is_error
        assert secret not in response.content
        assert "***" in response.content

    @pytest.mark.asyncio
    async def test_missing_finish_reason_defaults_to_stop(self, monkeypatch):
        async def no_reason(**kwargs):
            return fake_response(finish_reason=None)

        monkeypatch.setattr(litellm_provider, "acompletion", no_reason)
        response = await LiteLLMProvider(api_key="k").chat([])
        assert response.finish_reason == "stop"
