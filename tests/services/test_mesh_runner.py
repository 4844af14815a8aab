"""Integration Tests: MeshRunner — encoding N agents onto one stream.

Invariants:
    - Every agent gets start marker + body + end marker, in request order (sequential)
    - Start marker is emitted before the agent's provider call runs
    - One agent failing renders "Error: ..." and never affects the others
    - Concurrent mode writes whole triples in completion order
    - Cancellation stops further agents and cancels in-flight calls
    - Request state ends CLOSED on every path

Design Decisions:
    - FakeProvider callers, real ProviderRegistry / CredentialResolver / decoder:
      the stream is always checked by decoding it, as a client would
"""

import asyncio

import pytest

from meshmind.core.domain_types import (
    AgentPhase, ExecutionMode, MessageRole, RequestPhase, WebSearchMode,
)
from meshmind.core.errors import ProviderAPIError
from meshmind.core.mesh_lifecycle import MeshRequestState
from meshmind.core.mesh_markers import sanitize_content
from meshmind.core.mesh_segments import decode_segments
from meshmind.core.mesh_types import AgentInvocation, ChatMessage, UserKeys
from meshmind.services.credentials import CredentialResolver
from meshmind.services.mesh_runner import MeshRunner

from tests.services.fake_providers import FakeProvider, FakeWebContent, make_registry


# -- Helpers -------------------------------------------------------------------

def _runner(registry, settings, keys=None, **kwargs):
    return MeshRunner(registry, CredentialResolver(keys, settings), **kwargs)


async def _collect(runner, agents, message="Hello", history=None, state=None):
    chunks = []
    async for chunk in runner.run(agents, history or [], message, state):
        chunks.append(chunk)
    return chunks


def _agents(*providers, **kwargs):
    return [
        AgentInvocation(index=i, provider=p, **kwargs)
        for i, p in enumerate(providers, start=1)
    ]


# ==============================================================================
# Sequential encoding
# ==============================================================================


async def test_sequential_emits_marker_triples_in_request_order(test_settings):
    registry = make_registry(
        openrouter=FakeProvider(["first"]), vercel=FakeProvider(["second"]),
    )
    runner = _runner(registry, test_settings)

    chunks = await _collect(runner, _agents("openrouter", "vercel"))

    assert chunks == [
        '[[mesh-agent:{"index":1,"provider":"openrouter","modelId":"gpt-4o-mini"}]]\n',
        "first[[mesh-agent-end:1]]\n",
        '[[mesh-agent:{"index":2,"provider":"vercel","modelId":"gpt-4o"}]]\n',
        "second[[mesh-agent-end:2]]\n",
    ]


async def test_start_marker_emitted_before_provider_call(test_settings):
    provider = FakeProvider(["reply"])
    runner = _runner(make_registry(openrouter=provider), test_settings)

    gen = runner.run(_agents("openrouter"), [], "Hello")
    first = await gen.__anext__()
    assert first.startswith("[[mesh-agent:")
    assert provider.calls == []

    body = await gen.__anext__()
    assert body == "reply[[mesh-agent-end:1]]\n"
    assert len(provider.calls) == 1
    await gen.aclose()


async def test_round_trip_preserves_attribution_and_stray_brackets(test_settings):
    tricky = "look [[ here ]] and [[mesh-agent-end:9]] text\n"
    registry = make_registry(
        openrouter=FakeProvider([tricky]),
        vercel=FakeProvider(["plain"]),
        anthropic=FakeProvider(["  padded  "]),
    )
    runner = _runner(registry, test_settings)
    agents = [
        AgentInvocation(index=1, provider="openrouter", model_id="meta/llama-3"),
        AgentInvocation(index=2, provider="vercel"),
        AgentInvocation(index=3, provider="anthropic"),
    ]

    segments = decode_segments("".join(await _collect(runner, agents)))

    assert [(s.agent_index, s.provider, s.model_id) for s in segments] == [
        (1, "openrouter", "meta/llama-3"),
        (2, "vercel", "gpt-4o"),
        (3, "anthropic", "claude-sonnet-4-5"),
    ]
    assert segments[0].content == sanitize_content(tricky)
    assert segments[1].content == "plain"
    assert segments[2].content == "padded"


# ==============================================================================
# Agent-level errors
# ==============================================================================


async def test_error_isolation_three_agents_second_fails(test_settings):
    registry = make_registry(
        openrouter=FakeProvider(["one"]),
        vercel=FakeProvider([ProviderAPIError("upstream 500", "Vercel", "server_error")]),
        anthropic=FakeProvider(["three"]),
    )
    runner = _runner(registry, test_settings)

    segments = decode_segments(
        "".join(await _collect(runner, _agents("openrouter", "vercel", "anthropic"))),
    )

    assert len(segments) == 3
    assert segments[0].content == "one"
    assert segments[1].content == "Error: upstream 500"
    assert segments[2].content == "three"


async def test_unexpected_exception_becomes_error_content(test_settings):
    registry = make_registry(openrouter=FakeProvider([RuntimeError("boom")]))
    runner = _runner(registry, test_settings)

    segments = decode_segments("".join(await _collect(runner, _agents("openrouter"))))

    assert segments[0].content == "Error: boom"


async def test_unsupported_provider_reports_error_and_keeps_tag(test_settings):
    runner = _runner(make_registry(openrouter=FakeProvider()), test_settings)

    chunks = await _collect(runner, _agents("mistral"))

    assert chunks[0] == '[[mesh-agent:{"index":1,"provider":"mistral","modelId":null}]]\n'
    segment = decode_segments("".join(chunks))[0]
    assert segment.provider == "mistral"
    assert segment.model_id is None
    assert segment.content == "Error: Unsupported provider for agent 1"


async def test_missing_credentials_is_agent_error(test_settings):
    settings = test_settings.model_copy(update={"vercel_ai_gateway_key": None})
    vercel = FakeProvider()
    registry = make_registry(openrouter=FakeProvider(["fine"]), vercel=vercel)
    runner = _runner(registry, settings)

    segments = decode_segments(
        "".join(await _collect(runner, _agents("openrouter", "vercel"))),
    )

    assert segments[0].content == "fine"
    assert segments[1].content == "Error: No Vercel API key configured for agent 2"
    assert vercel.calls == []


async def test_stored_user_key_wins_over_settings(test_settings):
    provider = FakeProvider()
    runner = _runner(
        make_registry(openrouter=provider), test_settings,
        keys=UserKeys(openrouter_key="user-key"),
    )

    await _collect(runner, _agents("openrouter"))

    assert provider.calls[0]["api_key"] == "user-key"


async def test_timeout_renders_error_content(test_settings):
    registry = make_registry(openrouter=FakeProvider(["late"], delay=1.0))
    runner = _runner(registry, test_settings, timeout_seconds=0.05)

    segments = decode_segments("".join(await _collect(runner, _agents("openrouter"))))

    assert segments[0].content == "Error: Agent 1 timed out after 0.05s"


async def test_slow_web_content_counts_against_agent_timeout(test_settings):
    provider = FakeProvider()
    runner = _runner(
        make_registry(openrouter=provider), test_settings,
        web_content=FakeWebContent(delay=1.0), timeout_seconds=0.05,
    )
    agents = [AgentInvocation(1, "openrouter", web_search_mode=WebSearchMode.EXTERNAL)]

    segments = decode_segments("".join(await _collect(runner, agents)))

    assert segments[0].content == "Error: Agent 1 timed out after 0.05s"
    assert provider.calls == []


# ==============================================================================
# Conversation shaping
# ==============================================================================


async def test_messages_include_system_prompt_history_and_current_turn(test_settings):
    provider = FakeProvider()
    runner = _runner(make_registry(openrouter=provider), test_settings)
    history = [
        ChatMessage("b", MessageRole.ASSISTANT, "Hi there", created_at=2.0),
        ChatMessage("a", MessageRole.USER, "Hi", created_at=1.0),
    ]
    agents = [AgentInvocation(1, "openrouter", system_prompt="Be brief.")]

    await _collect(runner, agents, message="  What now?  ", history=history)

    assert provider.calls[0]["messages"] == [
        {"role": "system", "content": "Be brief."},
        {"role": "user", "content": "Hi"},
        {"role": "assistant", "content": "Hi there"},
        {"role": "user", "content": "What now?"},
    ]


async def test_native_web_search_flag_reaches_provider(test_settings):
    provider = FakeProvider()
    runner = _runner(make_registry(openrouter=provider), test_settings)
    agents = [
        AgentInvocation(1, "openrouter", web_search_mode=WebSearchMode.NATIVE),
        AgentInvocation(2, "openrouter"),
    ]

    await _collect(runner, agents)

    assert [c["web_search"] for c in provider.calls] == [True, False]


async def test_external_web_content_scraped_once_per_request(test_settings):
    provider = FakeProvider()
    web = FakeWebContent("[scraped page]")
    runner = _runner(
        make_registry(openrouter=provider), test_settings, web_content=web,
    )
    agents = [
        AgentInvocation(1, "openrouter", web_search_mode=WebSearchMode.EXTERNAL),
        AgentInvocation(2, "openrouter", web_search_mode=WebSearchMode.EXTERNAL),
        AgentInvocation(3, "openrouter"),
    ]

    await _collect(runner, agents, message="Read https://example.com")

    assert web.calls == ["Read https://example.com"]
    last_turns = [c["messages"][-1]["content"] for c in provider.calls]
    assert last_turns[0].endswith("[scraped page]")
    assert last_turns[1].endswith("[scraped page]")
    assert last_turns[2] == "Read https://example.com"


# ==============================================================================
# Concurrent execution
# ==============================================================================


async def test_concurrent_writes_whole_triples_in_completion_order(test_settings):
    registry = make_registry(
        openrouter=FakeProvider(["slow"], delay=0.2),
        vercel=FakeProvider(["fast"]),
    )
    runner = _runner(
        registry, test_settings, execution_mode=ExecutionMode.CONCURRENT,
    )

    chunks = await _collect(runner, _agents("openrouter", "vercel"))

    assert len(chunks) == 2
    assert chunks[0].startswith('[[mesh-agent:{"index":2')
    assert chunks[0].endswith("fast[[mesh-agent-end:2]]\n")
    assert chunks[1].endswith("slow[[mesh-agent-end:1]]\n")
    segments = decode_segments("".join(chunks))
    assert [(s.agent_index, s.content) for s in segments] == [(1, "slow"), (2, "fast")]


async def test_concurrent_error_isolation(test_settings):
    registry = make_registry(
        openrouter=FakeProvider(["one"]),
        vercel=FakeProvider([RuntimeError("gateway down")]),
        anthropic=FakeProvider(["three"], delay=0.05),
    )
    runner = _runner(
        registry, test_settings, execution_mode=ExecutionMode.CONCURRENT,
    )

    segments = decode_segments(
        "".join(await _collect(runner, _agents("openrouter", "vercel", "anthropic"))),
    )

    assert [s.content for s in segments] == ["one", "Error: gateway down", "three"]


# ==============================================================================
# Lifecycle & cancellation
# ==============================================================================


async def test_request_state_closed_with_all_agents_emitted(test_settings):
    runner = _runner(
        make_registry(openrouter=FakeProvider(), vercel=FakeProvider()),
        test_settings,
    )
    state = MeshRequestState(phase=RequestPhase.VALIDATED)

    await _collect(runner, _agents("openrouter", "vercel"), state=state)

    assert state.phase == RequestPhase.CLOSED
    assert state.agents == {
        1: AgentPhase.RESULT_EMITTED, 2: AgentPhase.RESULT_EMITTED,
    }
    assert state.completed_agents == 2


@pytest.mark.parametrize("mode", [ExecutionMode.SEQUENTIAL, ExecutionMode.CONCURRENT])
async def test_cancellation_stops_in_flight_calls(test_settings, mode):
    slow = FakeProvider(["never"], delay=10.0)
    later = FakeProvider(["later"], delay=10.0)
    runner = _runner(
        make_registry(openrouter=slow, vercel=later), test_settings,
        execution_mode=mode,
    )
    state = MeshRequestState(phase=RequestPhase.VALIDATED)
    chunks = []

    async def consume():
        async for chunk in runner.run(
            _agents("openrouter", "vercel"), [], "Hello", state,
        ):
            chunks.append(chunk)

    task = asyncio.create_task(consume())
    await asyncio.sleep(0.05)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert slow.cancelled
    assert state.phase == RequestPhase.CLOSED
    assert not any("[[mesh-agent-end:" in c for c in chunks)
    if mode == ExecutionMode.SEQUENTIAL:
        assert later.calls == []
    else:
        assert later.cancelled


async def test_early_close_by_consumer_closes_state(test_settings):
    runner = _runner(
        make_registry(openrouter=FakeProvider(), vercel=FakeProvider()),
        test_settings,
    )
    state = MeshRequestState(phase=RequestPhase.VALIDATED)

    gen = runner.run(_agents("openrouter", "vercel"), [], "Hello", state)
    await gen.__anext__()
    await gen.aclose()

    assert state.phase == RequestPhase.CLOSED
