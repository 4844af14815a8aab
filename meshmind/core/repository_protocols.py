"""Boundary Protocols — contracts between the mesh core and its collaborators.

Invariants:
    - Core NEVER imports from shell — dependency arrows point inward only
    - All IO operations accessed through Protocol types
    - Implementations provided by shell via dependency injection

Design Decisions:
    - Protocol over ABC: structural subtyping, fakes in tests need no base class
    - Async in Protocol: boundary methods are async because implementations do IO
"""

from typing import Protocol

from meshmind.core.mesh_types import ChatMessage, TokenPayload, UserKeys


class TokenVerifier(Protocol):
    """Verifies bearer access tokens — raises AuthenticationError on any failure."""
    def verify(self, token: str) -> TokenPayload: ...


class UserKeyStore(Protocol):
    """Per-user stored provider credentials — None when nothing is stored."""
    async def load_user_keys(self, subject_id: str) -> UserKeys | None: ...


class ChatHistoryStore(Protocol):
    """Prior turns for a chat — empty list on missing chat or lookup failure."""
    async def get_chat_messages(
        self, subject_id: str, chat_id: str | None,
    ) -> list[ChatMessage]: ...


class ProviderCaller(Protocol):
    """Given messages, return generated text or raise."""
    async def complete(
        self,
        *,
        api_key: str,
        model_id: str,
        messages: list[dict],
        web_search: bool = False,
    ) -> str: ...


class WebContentSource(Protocol):
    """Augments a user message with scraped content for the URLs it mentions."""
    async def augment(self, current_message: str) -> str: ...
