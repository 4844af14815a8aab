"""Initial schema — chat_messages, user_provider_keys.

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "chat_messages",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("chat_id", sa.String(64), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default="user"),
        sa.Column("content", sa.Text, nullable=False, server_default=""),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index(
        "ix_chat_messages_user_chat", "chat_messages", ["user_id", "chat_id"],
    )

    op.create_table(
        "user_provider_keys",
        sa.Column("user_id", sa.String(64), primary_key=True),
        sa.Column("openrouter_key", sa.Text, nullable=True),
        sa.Column("vercel_key", sa.Text, nullable=True),
        sa.Column("anthropic_key", sa.Text, nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table("user_provider_keys")
    op.drop_index("ix_chat_messages_user_chat", table_name="chat_messages")
    op.drop_table("chat_messages")
