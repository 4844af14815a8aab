"""ORM Models — storage behind the chat history and user key collaborators.

Invariants:
    - All models inherit from Base (db/base.py)
    - Rows are scoped by user_id (the verified token subject)

Design Decisions:
    - One file per entity for locality
    - All models imported here so Base.metadata is complete before create_all/autogenerate
"""

from meshmind.models.chat_message import ChatMessageRecord  # noqa: F401
from meshmind.models.user_provider_keys import UserProviderKeys  # noqa: F401
