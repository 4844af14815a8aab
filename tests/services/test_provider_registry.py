"""Unit Tests: ProviderRegistry — lookup, default models, cache reset, wiring."""

import httpx

from meshmind.core.domain_types import Provider
from meshmind.infrastructure.anthropic_client import ResilientAnthropicClient
from meshmind.infrastructure.gateway_client import ChatCompletionsClient
from meshmind.services.provider_registry import build_provider_registry

from tests.services.fake_providers import FakeProvider, make_registry


def test_lookup_is_exact_and_unknown_is_none():
    registry = make_registry(openrouter=FakeProvider())

    assert registry.get("openrouter").provider == Provider.OPENROUTER
    assert registry.get("vercel") is None
    assert registry.get("OpenRouter ") is None


def test_resolve_model_id_prefers_explicit_value():
    registry = make_registry(openrouter=FakeProvider())

    assert registry.resolve_model_id("openrouter", "x/y") == "x/y"
    assert registry.resolve_model_id("openrouter", None) == "gpt-4o-mini"
    assert registry.resolve_model_id("mystery", "kept") == "kept"
    assert registry.resolve_model_id("mystery", None) is None


async def test_build_registry_wires_all_providers(test_settings):
    async with httpx.AsyncClient() as http:
        registry = build_provider_registry(test_settings, http)

        openrouter = registry.get("openrouter")
        vercel = registry.get("vercel")
        anthropic = registry.get("anthropic")

        assert isinstance(openrouter.caller, ChatCompletionsClient)
        assert openrouter.caller.supports_web_plugin is True
        assert openrouter.caller.url == "https://openrouter.ai/api/v1/chat/completions"
        assert isinstance(vercel.caller, ChatCompletionsClient)
        assert vercel.caller.supports_web_plugin is False
        assert isinstance(anthropic.caller, ResilientAnthropicClient)
        assert anthropic.default_model == test_settings.anthropic_default_model


async def test_clear_and_aclose_reach_callers():
    class _Cached(FakeProvider):
        def __init__(self):
            super().__init__()
            self.cleared = 0
            self.closed = False

        def clear(self):
            self.cleared += 1

        async def aclose(self):
            self.closed = True

    cached = _Cached()
    registry = make_registry(anthropic=cached, openrouter=FakeProvider())

    registry.clear()
    await registry.aclose()

    assert cached.cleared == 1
    assert cached.closed
