"""Provider Registry — maps provider tags to callers, labels, and default models.

Invariants:
    - Explicit dict mapping (no auto-discovery); unknown tags resolve to None
    - resolve_model_id: explicit model id wins, else the provider default
    - Registry owns the shared httpx client and SDK client caches; clear()/aclose() reset them

Design Decisions:
    - Built in the app lifespan, held on app.state, injected via api/deps.py;
      tests swap in fakes with dependency_overrides instead of patching singletons
"""

import logging
from dataclasses import dataclass

import httpx

from meshmind.config import Settings
from meshmind.core.domain_types import Provider
from meshmind.core.repository_protocols import ProviderCaller
from meshmind.infrastructure.anthropic_client import ResilientAnthropicClient
from meshmind.infrastructure.gateway_client import ChatCompletionsClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderEntry:
    provider: Provider
    label: str
    default_model: str
    caller: ProviderCaller


class ProviderRegistry:
    """Lookup table from provider tag to its configured caller."""

    def __init__(
        self,
        entries: list[ProviderEntry],
        http: httpx.AsyncClient | None = None,
    ):
        self._entries = {entry.provider: entry for entry in entries}
        self._http = http

    def get(self, provider: str) -> ProviderEntry | None:
        parsed = Provider.parse(provider)
        return self._entries.get(parsed) if parsed else None

    def resolve_model_id(self, provider: str, model_id: str | None) -> str | None:
        if model_id:
            return model_id
        entry = self.get(provider)
        return entry.default_model if entry else None

    def clear(self) -> None:
        """Drop cached per-key SDK clients."""
        for entry in self._entries.values():
            clear = getattr(entry.caller, "clear", None)
            if callable(clear):
                clear()

    async def aclose(self) -> None:
        for entry in self._entries.values():
            aclose = getattr(entry.caller, "aclose", None)
            if callable(aclose):
                await aclose()
        if self._http is not None:
            await self._http.aclose()


def build_provider_registry(
    settings: Settings, http: httpx.AsyncClient | None = None,
) -> ProviderRegistry:
    """Production registry: OpenRouter + Vercel over httpx, Anthropic over its SDK."""
    http = http or httpx.AsyncClient(timeout=settings.provider_timeout_seconds)
    retry = {
        "max_retries": settings.provider_max_retries,
        "base_delay_ms": settings.provider_base_delay_ms,
        "max_delay_ms": settings.provider_max_delay_ms,
    }
    entries = [
        ProviderEntry(
            Provider.OPENROUTER, "OpenRouter", settings.openrouter_default_model,
            ChatCompletionsClient(
                http,
                base_url=settings.openrouter_api_url,
                label="OpenRouter",
                referer=settings.openrouter_referer_header,
                title=settings.openrouter_title,
                supports_web_plugin=True,
                **retry,
            ),
        ),
        ProviderEntry(
            Provider.VERCEL, "Vercel", settings.vercel_default_model,
            ChatCompletionsClient(
                http,
                base_url=settings.vercel_ai_gateway_url,
                label="Vercel AI Gateway",
                referer=settings.vercel_referer_header,
                title=settings.vercel_title,
                **retry,
            ),
        ),
        ProviderEntry(
            Provider.ANTHROPIC, "Anthropic", settings.anthropic_default_model,
            ResilientAnthropicClient(
                timeout_seconds=settings.anthropic_timeout_seconds,
                max_tokens=settings.anthropic_max_tokens,
                **retry,
            ),
        ),
    ]
    logger.info(
        "Provider registry ready: %s", ", ".join(e.provider.value for e in entries),
    )
    return ProviderRegistry(entries, http)
