"""Mesh Route — POST /api/mesh, one user turn fanned out to N agents on one stream.

Invariants:
    - Auth failure → 401 and validation failure → 400, both before any stream opens
    - History and stored keys loaded before the StreamingResponse is returned
      (the DB session is not touched while streaming)
    - Body is text/plain, never cached, never buffered by proxies
    - Client disconnect logged, in-flight agent calls cancelled by the runner

Design Decisions:
    - StreamingResponse over an async generator, same shape as the SSE routes,
      but plain text: the marker grammar carries the framing
"""

import asyncio
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from meshmind.api.deps import (
    get_provider_registry, get_web_content_service, read_mesh_request,
    require_subject,
)
from meshmind.config import Settings, get_settings
from meshmind.core.domain_types import ExecutionMode, RequestPhase
from meshmind.core.mesh_lifecycle import MeshRequestState
from meshmind.core.mesh_types import TokenPayload
from meshmind.core.repository_protocols import WebContentSource
from meshmind.infrastructure.database import get_db
from meshmind.schemas.mesh import MeshRequest
from meshmind.services.credentials import CredentialResolver
from meshmind.services.mesh_runner import MeshRunner
from meshmind.services.provider_registry import ProviderRegistry
from meshmind.services.user_data_store import UserDataStore

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["mesh"])

# Proxies (X-Accel-Buffering) and browsers (Cache-Control) must not batch chunks
STREAM_HEADERS = {
    "Cache-Control": "no-store",
    "X-Accel-Buffering": "no",
}
STREAM_MEDIA_TYPE = "text/plain; charset=utf-8"


@router.post("/mesh")
async def stream_mesh(
    subject: TokenPayload = Depends(require_subject),
    body: MeshRequest = Depends(read_mesh_request),
    db: AsyncSession = Depends(get_db),
    registry: ProviderRegistry = Depends(get_provider_registry),
    web_content: WebContentSource = Depends(get_web_content_service),
    settings: Settings = Depends(get_settings),
):
    """Multiplexed agent replies as one marker-framed text stream."""
    state = MeshRequestState()
    state.advance(RequestPhase.AUTH_CHECKED)
    state.advance(RequestPhase.VALIDATED)

    agents = body.to_invocations()
    store = UserDataStore(db)
    history = await store.get_chat_messages(subject.subject_id, body.chat_id)
    stored_keys = await store.load_user_keys(subject.subject_id)

    runner = MeshRunner(
        registry,
        CredentialResolver(stored_keys, settings),
        web_content=web_content,
        execution_mode=ExecutionMode(settings.mesh_execution_mode),
        timeout_seconds=settings.mesh_agent_timeout_seconds,
        max_history_messages=settings.mesh_max_history_messages,
    )
    log_extra = {
        "subject_id": subject.subject_id,
        "chat_id": body.chat_id,
        "agent_count": len(agents),
    }
    logger.info("Mesh request accepted", extra=log_extra)

    async def stream_generator():
        try:
            async for chunk in runner.run(
                agents, history, body.current_message, state,
            ):
                yield chunk
        except asyncio.CancelledError:
            logger.info("Client disconnected from mesh stream", extra=log_extra)
            return

    return StreamingResponse(
        stream_generator(),
        media_type=STREAM_MEDIA_TYPE,
        headers=STREAM_HEADERS,
    )
