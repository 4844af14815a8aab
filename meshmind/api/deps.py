"""API Dependencies — injectable collaborators and bearer-token authentication.

Invariants:
    - Authentication resolves before the request body is validated (401 before 400)
    - The body is read by read_mesh_request, not by FastAPI, so malformed JSON
      from an anonymous caller is still 401
    - Missing / non-Bearer header, empty token, and rejected token are all 401
    - Long-lived services come from app.state (built in the lifespan); tests override
      these dependencies instead of patching module globals
"""

from fastapi import Depends, Header, Request
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError

from meshmind.config import Settings, get_settings
from meshmind.core.errors import AuthenticationError
from meshmind.core.mesh_types import TokenPayload
from meshmind.core.repository_protocols import TokenVerifier, WebContentSource
from meshmind.infrastructure.token_verifier import JWTTokenVerifier
from meshmind.schemas.mesh import MeshRequest
from meshmind.services.provider_registry import ProviderRegistry

BEARER_PREFIX = "bearer "


def get_provider_registry(request: Request) -> ProviderRegistry:
    return request.app.state.provider_registry


def get_web_content_service(request: Request) -> WebContentSource:
    return request.app.state.web_content_service


def get_token_verifier(settings: Settings = Depends(get_settings)) -> TokenVerifier:
    return JWTTokenVerifier(settings.jwt_secret, settings.jwt_algorithm)


def require_subject(
    authorization: str | None = Header(default=None),
    verifier: TokenVerifier = Depends(get_token_verifier),
) -> TokenPayload:
    """Verified caller identity from the Authorization header."""
    if not authorization or not authorization.lower().startswith(BEARER_PREFIX):
        raise AuthenticationError("Missing authorization token.")
    token = authorization[len(BEARER_PREFIX):].strip()
    if not token:
        raise AuthenticationError("Invalid authorization token.")
    return verifier.verify(token)


async def read_mesh_request(
    request: Request,
    _subject: TokenPayload = Depends(require_subject),
) -> MeshRequest:
    """Mesh request body, parsed only after the caller is authenticated."""
    try:
        payload = await request.json()
    except ValueError:
        raise RequestValidationError([{
            "type": "json_invalid",
            "loc": ("body",),
            "msg": "JSON decode error",
            "input": {},
        }])
    try:
        return MeshRequest.model_validate(payload)
    except ValidationError as e:
        raise RequestValidationError([
            {**error, "loc": ("body", *error["loc"])}
            for error in e.errors(include_url=False)
        ])
