"""Chat History — pure conversion of stored turns into a provider message list.

Invariants:
    - Stored turns sorted by created_at ascending, empty/whitespace-only dropped
    - At most MAX_MESSAGES_IN_CONTEXT stored turns kept (the most recent)
    - Current turn appended once: skipped when the last kept turn is the same user message
    - Optional system entry always first
    - Returns NEW lists — never mutates input
"""

from meshmind.core.domain_types import MessageRole
from meshmind.core.mesh_types import ChatMessage


MAX_MESSAGES_IN_CONTEXT = 30


def normalize_role(role: str) -> MessageRole:
    """Anything other than assistant is treated as a user turn."""
    return MessageRole.ASSISTANT if role == MessageRole.ASSISTANT.value else MessageRole.USER


def sanitize_history(
    messages: list[ChatMessage], max_messages: int = MAX_MESSAGES_IN_CONTEXT,
) -> list[ChatMessage]:
    ordered = sorted(messages, key=lambda m: m.created_at)
    kept = [m for m in ordered if m.content and m.content.strip()]
    if max_messages <= 0:
        return []
    return kept[-max_messages:]


def build_chat_messages(
    history: list[ChatMessage],
    current_message: str,
    system_prompt: str | None = None,
    *,
    max_messages: int = MAX_MESSAGES_IN_CONTEXT,
) -> list[dict]:
    """Role/content list handed to every provider call for one agent."""
    current = current_message.strip()
    base = [
        {"role": normalize_role(m.role).value, "content": m.content}
        for m in sanitize_history(history, max_messages)
    ]

    already_sent = (
        bool(base)
        and base[-1]["role"] == MessageRole.USER.value
        and base[-1]["content"] == current
    )
    if not already_sent:
        base.append({"role": MessageRole.USER.value, "content": current})

    prompt = (system_prompt or "").strip()
    if prompt:
        return [{"role": MessageRole.SYSTEM.value, "content": prompt}, *base]
    return base
