"""Mesh Types — explicit structures crossing the core/shell boundary.

Invariants:
    - AgentInvocation.index >= 1, assigned by request order
    - AgentStreamMetadata.to_wire() uses the camelCase keys of the wire format
    - MeshAgentSegment is derived state: recomputed from the raw buffer, never merged
    - All types are frozen (hashable, safe to share between agent tasks)
"""

from dataclasses import dataclass

from meshmind.core.domain_types import MessageRole, WebSearchMode


@dataclass(frozen=True)
class AgentInvocation:
    """One configured agent for a single mesh request."""
    index: int
    provider: str
    model_id: str | None = None
    system_prompt: str | None = None
    web_search_mode: WebSearchMode = WebSearchMode.NONE


@dataclass(frozen=True)
class AgentStreamMetadata:
    """Payload embedded in an agent's start marker."""
    index: int
    provider: str
    model_id: str | None = None

    def to_wire(self) -> dict:
        return {
            "index": self.index,
            "provider": self.provider,
            "modelId": self.model_id,
        }


@dataclass(frozen=True)
class MeshAgentSegment:
    """Decoded content block belonging to one agent."""
    agent_index: int
    provider: str
    model_id: str | None
    content: str


@dataclass(frozen=True)
class ChatMessage:
    """Stored prior turn, as returned by the chat history collaborator."""
    id: str
    role: MessageRole
    content: str
    created_at: float  # epoch milliseconds


@dataclass(frozen=True)
class UserKeys:
    """Per-user stored provider credentials (any may be absent)."""
    openrouter_key: str | None = None
    vercel_key: str | None = None
    anthropic_key: str | None = None


@dataclass(frozen=True)
class TokenPayload:
    """Verified access-token claims the mesh core cares about."""
    subject_id: str
    email: str | None = None
