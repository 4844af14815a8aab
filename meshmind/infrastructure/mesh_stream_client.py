"""Mesh Stream Client — consumes POST /api/mesh and demultiplexes it incrementally.

Invariants:
    - Each received chunk re-decodes the whole buffer (decoder is pure, idempotent)
    - Yielded lists never contain two segments for the same agent index
    - HTTP 4xx/5xx → MeshClientError before any segment is yielded
    - Text decoded incrementally (multi-byte characters split across chunks are safe)
"""

import json
import logging
from collections.abc import AsyncIterator

import httpx

from meshmind.core.errors import ErrorCategory, ErrorSeverity, MeshError
from meshmind.core.mesh_segments import decode_segments
from meshmind.core.mesh_types import MeshAgentSegment

logger = logging.getLogger(__name__)

MESH_PATH = "/api/mesh"


class MeshClientError(MeshError):
    """The mesh endpoint rejected the request."""
    def __init__(self, status_code: int, body: dict | str):
        message = body
        if isinstance(body, dict):
            error = body.get("error")
            if isinstance(error, dict):
                message = error.get("message", body)
        super().__init__(
            f"Mesh request failed ({status_code}): {message}",
            "MESH_CLIENT_ERROR", ErrorCategory.EXTERNAL_API,
            ErrorSeverity.ERROR, http_status=status_code,
        )
        self.status_code = status_code
        self.body = body


class MeshStreamClient:
    """Posts one user turn and yields decoded agent segments as bytes arrive."""

    def __init__(self, http: httpx.AsyncClient, access_token: str, path: str = MESH_PATH):
        self.http = http
        self.access_token = access_token
        self.path = path

    async def stream(
        self,
        agents: list[dict],
        current_message: str,
        chat_id: str | None = None,
    ) -> AsyncIterator[list[MeshAgentSegment]]:
        payload = {
            "chatId": chat_id,
            "agents": agents,
            "currentMessage": current_message,
        }
        headers = {"Authorization": f"Bearer {self.access_token}"}
        async with self.http.stream(
            "POST", self.path, json=payload, headers=headers,
        ) as response:
            if response.status_code >= 400:
                await response.aread()
                raise MeshClientError(response.status_code, _error_body(response))

            buffer = ""
            async for text in response.aiter_text():
                if not text:
                    continue
                buffer += text
                yield decode_segments(buffer)
            logger.debug(
                "Mesh stream finished",
                extra={"agent_count": len(decode_segments(buffer))},
            )

    async def collect(
        self,
        agents: list[dict],
        current_message: str,
        chat_id: str | None = None,
    ) -> list[MeshAgentSegment]:
        """Drain the stream and return the final segment list."""
        segments: list[MeshAgentSegment] = []
        async for segments in self.stream(agents, current_message, chat_id):
            pass
        return segments


def _error_body(response: httpx.Response) -> dict | str:
    try:
        return response.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return response.text
