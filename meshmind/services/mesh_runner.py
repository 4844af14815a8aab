"""Mesh Runner — fans one user turn out to N agents and multiplexes their replies.

Invariants:
    - Every agent yields exactly one start marker, one body, one end marker
    - Agent failures (unsupported provider, missing key, provider error, timeout)
      become "Error: <reason>" bodies; they never abort the stream
    - Sequential mode: start marker emitted before the agent's call, request order kept
    - Concurrent mode: each triple written as one chunk, in completion order
    - Client disconnect: no further agents start, in-flight calls cancelled and awaited
    - Request state reaches CLOSED on every exit path

Design Decisions:
    - Single consumer draining an asyncio.Queue serializes concurrent writes
      (no byte-level interleaving between agents without an explicit lock)
    - External web content scraped once per request and shared across agents
"""

import asyncio
import logging
import time
from collections.abc import AsyncIterator

from meshmind.core.chat_history import MAX_MESSAGES_IN_CONTEXT, build_chat_messages
from meshmind.core.domain_types import (
    AgentPhase, ExecutionMode, RequestPhase, WebSearchMode,
)
from meshmind.core.errors import (
    AgentTimeoutError, MeshError, MissingCredentialError, UnsupportedProviderError,
)
from meshmind.core.mesh_lifecycle import MeshRequestState
from meshmind.core.mesh_markers import (
    encode_agent_result, encode_agent_start, error_content, frame_agent_segment,
)
from meshmind.core.mesh_types import AgentInvocation, AgentStreamMetadata, ChatMessage
from meshmind.core.repository_protocols import WebContentSource
from meshmind.services.credentials import CredentialResolver
from meshmind.services.provider_registry import ProviderRegistry

logger = logging.getLogger(__name__)


class _AugmentedMessage:
    """Current message with scraped web content, computed on first use."""

    def __init__(self, source: WebContentSource | None, message: str):
        self._source = source
        self.plain = message
        self._value: str | None = None
        self._lock = asyncio.Lock()

    async def get(self) -> str:
        if self._source is None:
            return self.plain
        async with self._lock:
            if self._value is None:
                self._value = await self._source.augment(self.plain)
        return self._value


class MeshRunner:
    """Encoder side of the mesh protocol: agents in, marker-framed text out."""

    def __init__(
        self,
        registry: ProviderRegistry,
        credentials: CredentialResolver,
        *,
        web_content: WebContentSource | None = None,
        execution_mode: ExecutionMode = ExecutionMode.SEQUENTIAL,
        timeout_seconds: float = 120.0,
        max_history_messages: int = MAX_MESSAGES_IN_CONTEXT,
    ):
        self.registry = registry
        self.credentials = credentials
        self.web_content = web_content
        self.execution_mode = execution_mode
        self.timeout_seconds = timeout_seconds
        self.max_history_messages = max_history_messages

    async def run(
        self,
        agents: list[AgentInvocation],
        history: list[ChatMessage],
        current_message: str,
        state: MeshRequestState | None = None,
    ) -> AsyncIterator[str]:
        """Async generator yielding stream chunks for every agent."""
        state = state or MeshRequestState(phase=RequestPhase.VALIDATED)
        state.advance(RequestPhase.STREAMING)
        augmented = _AugmentedMessage(self.web_content, current_message)
        started = time.monotonic()

        if self.execution_mode == ExecutionMode.CONCURRENT:
            stream = self._run_concurrent(agents, history, augmented, state)
        else:
            stream = self._run_sequential(agents, history, augmented, state)
        try:
            async for chunk in stream:
                yield chunk
        finally:
            # Consumer may stop early: release in-flight agent tasks now, not at GC
            await stream.aclose()
            state.close()
            logger.info(
                "Mesh stream closed after %d/%d agents",
                state.completed_agents, len(agents),
                extra={
                    "agent_count": len(agents),
                    "duration_ms": int((time.monotonic() - started) * 1000),
                },
            )

    async def _run_sequential(self, agents, history, augmented, state):
        for invocation in agents:
            metadata = self._metadata(invocation)
            yield encode_agent_start(metadata)
            state.advance_agent(invocation.index, AgentPhase.START_EMITTED)

            state.advance_agent(invocation.index, AgentPhase.EXECUTING)
            body = await self._execute_agent(
                invocation, metadata.model_id, history, augmented,
            )
            yield encode_agent_result(invocation.index, body)
            state.advance_agent(invocation.index, AgentPhase.RESULT_EMITTED)

    async def _run_concurrent(self, agents, history, augmented, state):
        queue: asyncio.Queue[tuple[int, str]] = asyncio.Queue()

        async def produce(invocation: AgentInvocation) -> None:
            metadata = self._metadata(invocation)
            body = await self._execute_agent(
                invocation, metadata.model_id, history, augmented,
            )
            await queue.put((invocation.index, frame_agent_segment(metadata, body)))

        tasks = [asyncio.create_task(produce(inv)) for inv in agents]
        try:
            for _ in tasks:
                index, frame = await queue.get()
                yield frame
                # Start, body and end left in one write
                for phase in (
                    AgentPhase.START_EMITTED,
                    AgentPhase.EXECUTING,
                    AgentPhase.RESULT_EMITTED,
                ):
                    state.advance_agent(index, phase)
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

    def _metadata(self, invocation: AgentInvocation) -> AgentStreamMetadata:
        return AgentStreamMetadata(
            index=invocation.index,
            provider=invocation.provider,
            model_id=self.registry.resolve_model_id(
                invocation.provider, invocation.model_id,
            ),
        )

    async def _execute_agent(
        self,
        invocation: AgentInvocation,
        model_id: str | None,
        history: list[ChatMessage],
        augmented: _AugmentedMessage,
    ) -> str:
        """Run one agent's provider call; any failure is returned as error content."""
        extra = {
            "agent_index": invocation.index,
            "provider": invocation.provider,
            "model_id": model_id,
        }
        started = time.monotonic()
        try:
            text = await self._call_provider(invocation, model_id, history, augmented)
        except asyncio.TimeoutError:
            text = error_content(
                AgentTimeoutError(invocation.index, self.timeout_seconds).message,
            )
            logger.warning("Agent timed out", extra=extra)
        except MeshError as e:
            text = error_content(e.message)
            logger.warning(
                "Agent failed: %s", e.message,
                extra={**extra, "error_code": e.code},
            )
        except Exception as e:
            text = error_content(str(e) or type(e).__name__)
            logger.error(
                "Unexpected agent error: %s", e, extra=extra, exc_info=True,
            )
        else:
            logger.info(
                "Agent completed",
                extra={
                    **extra,
                    "duration_ms": int((time.monotonic() - started) * 1000),
                },
            )
        return text

    async def _call_provider(self, invocation, model_id, history, augmented) -> str:
        entry = self.registry.get(invocation.provider)
        if entry is None:
            raise UnsupportedProviderError(invocation.provider, invocation.index)
        api_key = self.credentials.api_key_for(entry.provider)
        if not api_key:
            raise MissingCredentialError(entry.label, invocation.index)

        # Scraping and the provider call share one timeout
        return await asyncio.wait_for(
            self._complete(entry, api_key, invocation, model_id, history, augmented),
            timeout=self.timeout_seconds,
        )

    async def _complete(
        self, entry, api_key, invocation, model_id, history, augmented,
    ) -> str:
        message = augmented.plain
        if invocation.web_search_mode == WebSearchMode.EXTERNAL:
            message = await augmented.get()
        messages = build_chat_messages(
            history, message, invocation.system_prompt,
            max_messages=self.max_history_messages,
        )
        return await entry.caller.complete(
            api_key=api_key,
            model_id=model_id,
            messages=messages,
            web_search=invocation.web_search_mode == WebSearchMode.NATIVE,
        )
