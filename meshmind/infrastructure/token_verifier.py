"""JWT Token Verifier — validates bearer access tokens issued by the auth service.

Invariants:
    - Any failure (bad signature, expired, missing subject, no secret) → AuthenticationError
    - Subject read from `userId` (auth service claim) or standard `sub`
    - Never logs the token itself
"""

import logging

from jose import JWTError, jwt

from meshmind.core.errors import AuthenticationError
from meshmind.core.mesh_types import TokenPayload

logger = logging.getLogger(__name__)

SESSION_EXPIRED_MESSAGE = "Session expired. Please sign in again."


class JWTTokenVerifier:
    """HMAC-signed JWT verification with python-jose."""

    def __init__(self, secret: str, algorithm: str = "HS256"):
        self.secret = secret
        self.algorithms = [algorithm]

    def verify(self, token: str) -> TokenPayload:
        if not self.secret:
            logger.error("JWT_SECRET is not configured; rejecting token")
            raise AuthenticationError(SESSION_EXPIRED_MESSAGE)
        try:
            claims = jwt.decode(token, self.secret, algorithms=self.algorithms)
        except JWTError as e:
            logger.warning(f"Access token rejected: {e}")
            raise AuthenticationError(SESSION_EXPIRED_MESSAGE)

        subject = claims.get("userId") or claims.get("sub")
        if not subject:
            raise AuthenticationError(SESSION_EXPIRED_MESSAGE)
        email = claims.get("email")
        return TokenPayload(subject_id=str(subject), email=email if isinstance(email, str) else None)
