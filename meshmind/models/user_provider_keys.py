"""User Provider Keys ORM — per-user API keys that override process-level defaults."""

from datetime import datetime, timezone

from sqlalchemy import String, Text, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from meshmind.db.base import Base


class UserProviderKeys(Base):
    __tablename__ = "user_provider_keys"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    openrouter_key: Mapped[str | None] = mapped_column(Text, nullable=True)
    vercel_key: Mapped[str | None] = mapped_column(Text, nullable=True)
    anthropic_key: Mapped[str | None] = mapped_column(Text, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
