"""Application Configuration — environment-driven settings via pydantic-settings.

Invariants:
    - All secrets come from environment variables (never hardcoded)
    - get_settings() is cached (lru_cache) — single instance per process
    - Provider keys here are process-level fallbacks; stored user keys win

Design Decisions:
    - pydantic-settings over raw os.environ: validation, type coercion, .env file support
    - AliasChoices keeps the older OPENROUTER_KEY / VERCEL_KEY variable names working
"""

from typing import Literal

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Database
    database_url: str = (
        "postgresql+asyncpg://meshmind:meshmind@db:5432/meshmind"
    )

    @field_validator("database_url", mode="before")
    @classmethod
    def convert_postgres_url(cls, v: str) -> str:
        """Hosted Postgres hands out postgresql:// but asyncpg needs postgresql+asyncpg://."""
        if isinstance(v, str) and v.startswith("postgresql://"):
            return v.replace("postgresql://", "postgresql+asyncpg://", 1)
        return v

    database_pool_size: int = 20
    database_max_overflow: int = 10

    # Auth (tokens are issued elsewhere; we only verify)
    jwt_secret: str = ""
    jwt_algorithm: str = "HS256"

    # OpenRouter
    openrouter_api_key: str | None = Field(
        None, validation_alias=AliasChoices("OPENROUTER_API_KEY", "OPENROUTER_KEY"),
    )
    openrouter_api_url: str = "https://openrouter.ai/api/v1"
    openrouter_default_model: str = "gpt-4o-mini"
    openrouter_referrer: str | None = None
    openrouter_title: str = "MeshMind Chat"

    # Vercel AI Gateway
    vercel_ai_gateway_key: str | None = Field(
        None, validation_alias=AliasChoices("VERCEL_AI_GATEWAY_KEY", "VERCEL_KEY"),
    )
    vercel_ai_gateway_url: str = "https://ai-gateway.vercel.sh/v1"
    vercel_default_model: str = "gpt-4o"
    vercel_referrer: str | None = None
    vercel_title: str = "MeshMind Chat"

    # Anthropic
    anthropic_api_key: str | None = None
    anthropic_default_model: str = "claude-sonnet-4-5"
    anthropic_max_tokens: int = 4096
    anthropic_timeout_seconds: int = 300

    # Provider retry policy (shared by every provider client)
    provider_max_retries: int = 3
    provider_base_delay_ms: int = 1000
    provider_max_delay_ms: int = 60_000
    provider_timeout_seconds: float = 120.0

    # External web content
    firecrawl_api_key: str | None = None
    firecrawl_api_url: str = "https://api.firecrawl.dev/v1"

    # Mesh
    mesh_execution_mode: Literal["sequential", "concurrent"] = "sequential"
    mesh_agent_timeout_seconds: float = 120.0
    mesh_max_history_messages: int = 30

    # API
    app_base_url: str = "http://localhost:5173"
    cors_origins: list[str] = ["http://localhost:5173"]

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"

    @property
    def openrouter_referer_header(self) -> str:
        return self.openrouter_referrer or self.app_base_url

    @property
    def vercel_referer_header(self) -> str:
        return self.vercel_referrer or self.app_base_url


@lru_cache
def get_settings() -> Settings:
    return Settings()
