"""Chat Completions Client — OpenAI-compatible gateways (OpenRouter, Vercel AI Gateway) over httpx.

Invariants:
    - One non-streaming POST {base_url}/chat/completions per attempt
    - 429 / 5xx / transport errors: retried with exponential backoff, Retry-After honoured
    - Other 4xx: immediate failure, upstream error body becomes the message
    - Reply text = choices[0].message.content (string, or text parts joined by newline)
    - All failures mapped to ProviderAPIError (core/errors.py)

Design Decisions:
    - Shared httpx.AsyncClient injected by the registry: one connection pool per
      process, the per-user API key travels in the request headers
    - Same backoff shape as ResilientAnthropicClient (±25% jitter)
"""

import asyncio
import json
import logging
import random

import httpx

from meshmind.core.errors import ErrorContext, ProviderAPIError

logger = logging.getLogger(__name__)

_RETRYABLE_STATUS = {429, 500, 502, 503, 504, 529}


def extract_reply_text(payload: dict) -> str | None:
    """Text of the first choice, "" for non-text content, None when no choice exists."""
    choices = payload.get("choices") if isinstance(payload, dict) else None
    if not choices or not isinstance(choices, list):
        return None
    choice = choices[0]
    primary = choice.get("message") if isinstance(choice, dict) else None
    if not primary or not isinstance(primary, dict):
        return None

    content = primary.get("content")
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = [
            part.get("text") for part in content
            if isinstance(part, dict) and part.get("text")
        ]
        return "\n".join(parts)
    return ""


def describe_error_body(response: httpx.Response) -> str:
    """Upstream error detail: JSON body re-serialized, else raw text."""
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, str):
        return body
    return json.dumps(body, ensure_ascii=False)


class ChatCompletionsClient:
    """Provider caller for one OpenAI-compatible gateway."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        *,
        base_url: str,
        label: str,
        referer: str,
        title: str,
        supports_web_plugin: bool = False,
        max_retries: int = 3,
        base_delay_ms: int = 1000,
        max_delay_ms: int = 60_000,
    ):
        self.http = http
        self.url = f"{base_url.rstrip('/')}/chat/completions"
        self.label = label
        self.referer = referer
        self.title = title
        self.supports_web_plugin = supports_web_plugin
        self.max_retries = max_retries
        self.base_delay_ms = base_delay_ms
        self.max_delay_ms = max_delay_ms

    async def complete(
        self,
        *,
        api_key: str,
        model_id: str,
        messages: list[dict],
        web_search: bool = False,
        context: ErrorContext | None = None,
    ) -> str:
        payload = self._build_payload(model_id, messages, web_search)
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {api_key}",
            "HTTP-Referer": self.referer,
            "X-Title": self.title,
        }
        body = await self._post_with_retry(payload, headers, context)
        text = extract_reply_text(body)
        if text is None:
            raise ProviderAPIError(
                f"{self.label} returned an empty response.",
                self.label, "empty_response", context=context,
            )
        return text

    def _build_payload(
        self, model_id: str, messages: list[dict], web_search: bool,
    ) -> dict:
        payload: dict = {"model": model_id, "messages": messages, "stream": False}
        if web_search:
            if self.supports_web_plugin:
                payload["plugins"] = [{"id": "web"}]
            else:
                logger.debug(
                    "%s has no native web search; ignoring", self.label,
                )
        return payload

    async def _post_with_retry(
        self, payload: dict, headers: dict, context: ErrorContext | None,
    ) -> dict:
        for attempt in range(self.max_retries + 1):
            try:
                response = await self.http.post(
                    self.url, json=payload, headers=headers,
                )
            except httpx.TimeoutException:
                raise ProviderAPIError(
                    f"{self.label} request timed out", self.label, "timeout",
                    context=context,
                )
            except httpx.TransportError as e:
                await self._retry_or_raise(
                    attempt, None, f"Connection error: {e}", "connection_error",
                    context,
                )
                continue

            if response.is_success:
                return self._parse_json(response, context)

            detail = describe_error_body(response)
            if response.status_code in _RETRYABLE_STATUS:
                await self._retry_or_raise(
                    attempt, self._retry_after_ms(response), detail,
                    "rate_limit" if response.status_code == 429 else "server_error",
                    context,
                )
                continue

            logger.warning(
                "%s rejected request: %s", self.label, detail,
                extra={"status_code": response.status_code},
            )
            raise ProviderAPIError(detail, self.label, "client_error", context=context)

        # Unreachable: _retry_or_raise raises on the final attempt
        raise ProviderAPIError(
            f"{self.label} request failed", self.label, "unknown", context=context,
        )

    def _parse_json(
        self, response: httpx.Response, context: ErrorContext | None,
    ) -> dict:
        try:
            return response.json()
        except ValueError:
            raise ProviderAPIError(
                f"{self.label} returned a non-JSON response.",
                self.label, "invalid_response", context=context,
            )

    async def _retry_or_raise(
        self,
        attempt: int,
        retry_after_ms: int | None,
        detail: str,
        api_error_type: str,
        context: ErrorContext | None,
    ) -> None:
        if attempt >= self.max_retries:
            raise ProviderAPIError(
                detail, self.label, api_error_type,
                retry_after_ms=retry_after_ms, context=context,
            )
        delay = self._retry_delay(attempt, retry_after_ms)
        logger.warning(
            f"{self.label} {api_error_type}, retry after {delay}ms "
            f"(attempt {attempt + 1})",
        )
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

    @staticmethod
    def _retry_after_ms(response: httpx.Response) -> int | None:
        val = response.headers.get("retry-after")
        if not val:
            return None
        try:
            return int(float(val) * 1000)
        except (ValueError, OverflowError):
            return None
