"""Chat Message ORM — prior turns read as context for mesh requests.

Invariants:
    - role is "user" or "assistant" (anything else is read back as user)
    - created_at drives ordering; the write path belongs to the chat service
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, Text, DateTime, Index, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from meshmind.db.base import Base


class ChatMessageRecord(Base):
    """One stored chat turn."""
    __tablename__ = "chat_messages"
    __table_args__ = (
        Index("ix_chat_messages_user_chat", "user_id", "chat_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4,
    )
    chat_id: Mapped[str] = mapped_column(String(64), nullable=False)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    role: Mapped[str] = mapped_column(
        String(20), nullable=False, default="user",
    )
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
