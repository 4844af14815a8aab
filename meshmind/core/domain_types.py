"""Domain Types — rich types that replace bare primitives across the codebase.

Invariants:
    - AgentIndex is 1-based and assigned by request order
    - SubjectId is the verified token subject, never a raw header value
    - All valid states encoded as Enums — no raw string matching

Design Decisions:
    - NewType over dataclass wrappers: zero runtime cost, full type-checker support
    - str Enums: serialize to JSON without custom encoders (wire metadata is JSON)
"""

from enum import Enum
from typing import NewType


# ─── Identity Types ──────────────────────────────────────────────

AgentIndex = NewType("AgentIndex", int)     # >= 1
SubjectId = NewType("SubjectId", str)
ChatId = NewType("ChatId", str)


# ─── Enums ───────────────────────────────────────────────────────

class Provider(str, Enum):
    """Upstream text-generation backends an agent can target."""
    OPENROUTER = "openrouter"
    VERCEL = "vercel"
    ANTHROPIC = "anthropic"

    @classmethod
    def parse(cls, value: str) -> "Provider | None":
        """Return the matching provider, or None for an unknown tag."""
        try:
            return cls(value)
        except ValueError:
            return None


class WebSearchMode(str, Enum):
    """How an agent augments the prompt with web content."""
    NONE = "none"
    NATIVE = "native"        # provider-side search (plugin/tool)
    EXTERNAL = "external"    # scraped by us before the call


class MessageRole(str, Enum):
    """Conversation roles handed to provider calls."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class ExecutionMode(str, Enum):
    """Agent scheduling strategy for one mesh request."""
    SEQUENTIAL = "sequential"
    CONCURRENT = "concurrent"


class RequestPhase(str, Enum):
    """Mesh request lifecycle — one pass per HTTP request."""
    PENDING = "pending"
    AUTH_CHECKED = "auth_checked"
    VALIDATED = "validated"
    STREAMING = "streaming"
    CLOSED = "closed"


class AgentPhase(str, Enum):
    """Per-agent sub-cycle inside STREAMING."""
    START_EMITTED = "start_emitted"
    EXECUTING = "executing"
    RESULT_EMITTED = "result_emitted"
