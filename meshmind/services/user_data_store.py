"""User Data Store — SQLAlchemy implementation of the history and key collaborators.

Invariants:
    - Lookups are scoped to the verified subject; another user's chat reads as empty
    - Failures degrade (empty history / no stored keys) and are logged, never raised
    - Blank stored keys are reported as absent
"""

import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from meshmind.core.chat_history import normalize_role
from meshmind.core.errors import DatabaseError
from meshmind.core.mesh_types import ChatMessage, UserKeys
from meshmind.models.chat_message import ChatMessageRecord
from meshmind.models.user_provider_keys import UserProviderKeys

logger = logging.getLogger(__name__)


def _clean_key(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


class UserDataStore:
    """Implements ChatHistoryStore and UserKeyStore over one AsyncSession."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_chat_messages(
        self, subject_id: str, chat_id: str | None,
    ) -> list[ChatMessage]:
        if not chat_id:
            return []
        try:
            result = await self.db.execute(
                select(ChatMessageRecord)
                .where(
                    ChatMessageRecord.user_id == subject_id,
                    ChatMessageRecord.chat_id == chat_id,
                )
                .order_by(ChatMessageRecord.created_at),
            )
            records = result.scalars().all()
        except (SQLAlchemyError, DatabaseError) as e:
            logger.error(
                "Failed to load chat history: %s", e,
                extra={"subject_id": subject_id, "chat_id": chat_id},
            )
            return []

        return [
            ChatMessage(
                id=str(r.id),
                role=normalize_role(r.role),
                content=r.content,
                created_at=r.created_at.timestamp() * 1000,
            )
            for r in records
        ]

    async def load_user_keys(self, subject_id: str) -> UserKeys | None:
        try:
            row = await self.db.get(UserProviderKeys, subject_id)
        except (SQLAlchemyError, DatabaseError) as e:
            logger.error(
                "Failed to load stored user keys: %s", e,
                extra={"subject_id": subject_id},
            )
            return None
        if row is None:
            return None
        return UserKeys(
            openrouter_key=_clean_key(row.openrouter_key),
            vercel_key=_clean_key(row.vercel_key),
            anthropic_key=_clean_key(row.anthropic_key),
        )
