"""Resilient Anthropic Client — per-key AsyncAnthropic clients with retry, backoff, and error mapping.

Invariants:
    - Rate limits (429): exponential backoff with jitter, respects Retry-After header
    - Transient errors (5xx, 529, connection): max_retries with exponential backoff
    - Client errors (4xx except 429): immediate failure, no retry
    - All failures mapped to ProviderAPIError (core/errors.py)
    - system-role entries become the `system` parameter; other roles pass through

Design Decisions:
    - SDK retries disabled (max_retries=0): this wrapper owns the retry policy
    - One SDK client per API key, cached until clear(): stored user keys differ per request
    - ±25% jitter on backoff: prevents thundering herd on shared rate limits
"""

import asyncio
import random
import logging

import anthropic
from anthropic import (
    APIError,
    APIConnectionError,
    APIStatusError,
    RateLimitError,
    APITimeoutError,
    InternalServerError,
)

from meshmind.core.domain_types import MessageRole
from meshmind.core.errors import ProviderAPIError, ErrorContext

logger = logging.getLogger(__name__)

PROVIDER_LABEL = "Anthropic"

# OverloadedError (HTTP 529) is detected by status code on APIStatusError
_OVERLOADED_STATUS = 529


def _is_overloaded(e: APIError) -> bool:
    """Check if error is Anthropic 529 Overloaded."""
    return isinstance(e, APIStatusError) and e.status_code == _OVERLOADED_STATUS


def split_system(messages: list[dict]) -> tuple[str | None, list[dict]]:
    """Separate system entries from the conversation (Anthropic takes them apart)."""
    system_parts = [
        m["content"] for m in messages
        if m.get("role") == MessageRole.SYSTEM.value and m.get("content")
    ]
    conversation = [
        {"role": m["role"], "content": m["content"]}
        for m in messages if m.get("role") != MessageRole.SYSTEM.value
    ]
    system = "\n\n".join(system_parts) if system_parts else None
    return system, conversation


def extract_text(response) -> str:
    """Concatenate text blocks; server tool blocks (web search) are skipped."""
    return "".join(
        getattr(b, "text", "") or "" for b in response.content
        if getattr(b, "type", None) == "text"
    )


class ResilientAnthropicClient:
    """Anthropic provider caller with retry logic, timeouts, and error mapping."""

    WEB_SEARCH_TOOL = {
        "type": "web_search_20250305", "name": "web_search", "max_uses": 5,
    }

    def __init__(
        self,
        max_retries: int = 3,
        base_delay_ms: int = 1000,
        max_delay_ms: int = 60_000,
        timeout_seconds: int = 300,
        max_tokens: int = 4096,
    ):
        self.max_retries = max_retries
        self.base_delay_ms = base_delay_ms
        self.max_delay_ms = max_delay_ms
        self.timeout_seconds = timeout_seconds
        self.max_tokens = max_tokens
        self._clients: dict[str, anthropic.AsyncAnthropic] = {}

    async def complete(
        self,
        *,
        api_key: str,
        model_id: str,
        messages: list[dict],
        web_search: bool = False,
        context: ErrorContext | None = None,
    ) -> str:
        system, conversation = split_system(messages)
        response = await self.create_message(
            api_key=api_key,
            model=model_id,
            system=system,
            messages=conversation,
            tools=[self.WEB_SEARCH_TOOL] if web_search else [],
            context=context,
        )
        return extract_text(response)

    async def create_message(
        self,
        *,
        api_key: str,
        model: str,
        system: str | None,
        messages: list,
        tools: list,
        context: ErrorContext | None = None,
    ):
        """Create message with automatic retry on transient failures."""
        kwargs: dict = {
            "model": model, "max_tokens": self.max_tokens, "messages": messages,
        }
        if system:
            kwargs["system"] = system
        if tools:
            kwargs["tools"] = tools
        client = self._client_for(api_key)

        for attempt in range(self.max_retries + 1):
            try:
                response = await client.messages.create(**kwargs)
                self._log_success(response, attempt)
                return response

            except RateLimitError as e:
                await self._handle_rate_limit(e, attempt, context)

            except (APIConnectionError, InternalServerError) as e:
                if isinstance(e, APITimeoutError):
                    raise self._error("API timeout", "timeout", context)
                await self._handle_transient_error(e, attempt, context)

            except APIError as e:
                if _is_overloaded(e):
                    await self._handle_transient_error(e, attempt, context)
                    continue
                raise self._error(str(e), "client_error", context)

            except Exception as e:
                logger.error(
                    f"Unexpected Anthropic error: {e}", exc_info=True,
                )
                raise self._error(str(e), "unknown", context)

    def clear(self) -> None:
        """Forget cached SDK clients (next call builds fresh ones)."""
        self._clients.clear()

    async def aclose(self) -> None:
        clients = list(self._clients.values())
        self.clear()
        for client in clients:
            await client.close()

    def _client_for(self, api_key: str) -> anthropic.AsyncAnthropic:
        client = self._clients.get(api_key)
        if client is None:
            client = anthropic.AsyncAnthropic(
                api_key=api_key,
                timeout=self.timeout_seconds,
                max_retries=0,
            )
            self._clients[api_key] = client
        return client

    def _error(
        self, message: str, api_error_type: str, context: ErrorContext | None,
        retry_after_ms: int | None = None,
    ) -> ProviderAPIError:
        return ProviderAPIError(
            f"{PROVIDER_LABEL} API error ({api_error_type}): {message}",
            PROVIDER_LABEL,
            api_error_type,
            retry_after_ms=retry_after_ms,
            context=context,
        )

    def _log_success(self, response, attempt: int) -> None:
        usage = response.usage
        logger.info(
            "Anthropic API success",
            extra={
                "provider": "anthropic",
                "attempt": attempt + 1,
                "input_tokens": usage.input_tokens,
                "output_tokens": usage.output_tokens,
            },
        )

    async def _handle_rate_limit(
        self, e: RateLimitError, attempt: int, context: ErrorContext | None,
    ) -> None:
        """Handle rate limit error with retry or raise."""
        retry_after_ms = self._extract_retry_after(e)
        if attempt >= self.max_retries:
            raise self._error(
                "Rate limit exceeded after retries", "rate_limit", context,
                retry_after_ms=retry_after_ms,
            )
        delay = self._retry_delay(attempt, retry_after_ms)
        logger.warning(
            f"Anthropic rate limit hit, retry after {delay}ms (attempt {attempt + 1})",
        )
        await asyncio.sleep(delay / 1000)

    async def _handle_transient_error(
        self, e: Exception, attempt: int, context: ErrorContext | None,
    ) -> None:
        """Handle transient errors with retry or raise."""
        if attempt >= self.max_retries:
            raise self._error(
                f"Transient failure after {self.max_retries} retries: {e}",
                "connection_error", context,
            )
        delay = self._backoff(attempt)
        logger.warning(f"Anthropic transient error, retry after {delay}ms: {e}")
        await asyncio.sleep(delay / 1000)

    def _backoff(self, attempt: int) -> int:
        """Exponential backoff with ±25% jitter."""
        delay = min(self.max_delay_ms, (2 ** attempt) * self.base_delay_ms)
        return int(delay * random.uniform(0.75, 1.25))  # nosec B311

    def _retry_delay(self, attempt: int, retry_after_ms: int | None) -> int:
        """Server Retry-After when sent, capped at max_delay_ms; else backoff."""
        if retry_after_ms is None:
            return self._backoff(attempt)
        return max(0, min(retry_after_ms, self.max_delay_ms))

    def _extract_retry_after(self, error: RateLimitError) -> int | None:
        """Extract Retry-After header (returns milliseconds)."""
        response = getattr(error, "response", None)
        if response is None:
            return None
        val = response.headers.get("retry-after")
        try:
            return int(float(val) * 1000) if val else None
        except (ValueError, OverflowError):
            return None
