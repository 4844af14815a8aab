"""Error Hierarchy — typed, categorized exceptions for all MeshMind failure modes.

Invariants:
    - Every error has a code (str), category (ErrorCategory), severity (ErrorSeverity)
    - Request-level errors (400/401) are raised before any stream is opened
    - Agent-level errors never escape the runner: they become "Error: <message>" content
    - to_response() produces the REST envelope; no internal details in messages

Design Decisions:
    - Single hierarchy with MeshError base: FastAPI global handler catches all
    - ErrorContext as dataclass: rich observability without coupling to logging framework
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from datetime import datetime, timezone


class ErrorSeverity(str, Enum):
    """Error severity for observability and client handling."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """High-level error categories for routing and handling."""
    VALIDATION = "validation"
    AUTHENTICATION = "authentication"
    CONFIGURATION = "configuration"
    DATABASE = "database"
    EXTERNAL_API = "external_api"
    INTERNAL = "internal"
    TIMEOUT = "timeout"


@dataclass
class ErrorContext:
    """Rich context for error observability and debugging."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    subject_id: str | None = None
    chat_id: str | None = None
    agent_index: int | None = None
    provider: str | None = None
    debug_info: dict[str, Any] | None = None
    retry_after_ms: int | None = None


class MeshError(Exception):
    """Base exception for all MeshMind errors."""

    def __init__(
        self,
        message: str,
        code: str,
        category: ErrorCategory,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: ErrorContext | None = None,
        http_status: int = 500,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()
        self.http_status = http_status

    def to_response(self) -> dict:
        """Convert to standardized REST error response."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "category": self.category.value,
                "severity": self.severity.value,
                "timestamp": self.context.timestamp.isoformat(),
                "context": {
                    "chat_id": self.context.chat_id,
                    "agent_index": self.context.agent_index,
                    "provider": self.context.provider,
                    "retry_after_ms": self.context.retry_after_ms,
                },
            }
        }


# ─── Request Errors (400-level) ─────────────────────────────────

class AuthenticationError(MeshError):
    """Bearer credential missing, malformed, expired or unverifiable."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "UNAUTHENTICATED", ErrorCategory.AUTHENTICATION,
            ErrorSeverity.WARNING, context, 401,
        )


# ─── Agent Errors (rendered into the stream) ────────────────────

class MissingCredentialError(MeshError):
    """No stored or process-level API key for the agent's provider."""
    def __init__(
        self, provider_label: str, agent_index: int,
        context: ErrorContext | None = None,
    ):
        super().__init__(
            f"No {provider_label} API key configured for agent {agent_index}",
            "MISSING_CREDENTIAL", ErrorCategory.CONFIGURATION,
            ErrorSeverity.ERROR, context, 400,
        )
        self.provider_label = provider_label


class UnsupportedProviderError(MeshError):
    """Agent names a provider tag with no registered caller."""
    def __init__(
        self, provider: str, agent_index: int,
        context: ErrorContext | None = None,
    ):
        super().__init__(
            f"Unsupported provider for agent {agent_index}",
            "UNSUPPORTED_PROVIDER", ErrorCategory.VALIDATION,
            ErrorSeverity.ERROR, context, 400,
        )
        self.provider = provider


class AgentTimeoutError(MeshError):
    """Provider call for one agent exceeded the per-agent timeout."""
    def __init__(
        self, agent_index: int, timeout_seconds: float,
        context: ErrorContext | None = None,
    ):
        super().__init__(
            f"Agent {agent_index} timed out after {timeout_seconds:g}s",
            "AGENT_TIMEOUT", ErrorCategory.TIMEOUT,
            ErrorSeverity.ERROR, context, 504,
        )
        self.timeout_seconds = timeout_seconds


# ─── Infrastructure Errors (500-level) ──────────────────────────

class ProviderAPIError(MeshError):
    """Upstream provider call failed (HTTP error, transport error, empty reply)."""
    def __init__(
        self,
        message: str,
        provider_label: str,
        api_error_type: str,
        retry_after_ms: int | None = None,
        context: ErrorContext | None = None,
    ):
        ctx = context or ErrorContext()
        ctx.retry_after_ms = retry_after_ms
        super().__init__(
            message, "PROVIDER_API_ERROR", ErrorCategory.EXTERNAL_API,
            ErrorSeverity.CRITICAL, ctx, 503,
        )
        self.provider_label = provider_label
        self.api_error_type = api_error_type


class WebContentError(MeshError):
    """Scraping a URL for external web content failed."""
    def __init__(self, message: str, url: str, context: ErrorContext | None = None):
        super().__init__(
            message, "WEB_CONTENT_ERROR", ErrorCategory.EXTERNAL_API,
            ErrorSeverity.WARNING, context, 502,
        )
        self.url = url


class DatabaseError(MeshError):
    """Database operation failed."""
    def __init__(self, message: str, operation: str, context: ErrorContext | None = None):
        super().__init__(
            f"Database {operation} failed: {message}",
            "DATABASE_ERROR", ErrorCategory.DATABASE,
            ErrorSeverity.CRITICAL, context, 503,
        )
        self.operation = operation


class LifecycleError(MeshError):
    """Mesh request state machine asked to make an illegal transition."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "LIFECYCLE_VIOLATION", ErrorCategory.INTERNAL,
            ErrorSeverity.CRITICAL, context, 500,
        )
