"""Mesh Schemas — request body validation for POST /api/mesh.

Invariants:
    - agents: 1..MAX_AGENTS entries; indices assigned 1..N in request order
    - currentMessage stripped and non-empty
    - provider kept as a free string: unknown providers are an agent-level error,
      not a request-level one
    - webSearch / "firecrawl" accepted as aliases of webSearchMode / "external"

Design Decisions:
    - camelCase aliases with populate_by_name: wire stays JS-shaped, Python stays snake_case
    - field_validator for side-effect-free transforms (strip, alias values)
"""

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from meshmind.core.domain_types import WebSearchMode
from meshmind.core.mesh_types import AgentInvocation

MAX_AGENTS = 4

_WEB_SEARCH_ALIASES = {"firecrawl": WebSearchMode.EXTERNAL.value}


class AgentConfig(BaseModel):
    """One agent as configured by the client."""
    model_config = ConfigDict(populate_by_name=True)

    provider: str = Field(min_length=1, max_length=64)
    model_id: str | None = Field(None, alias="modelId", max_length=200)
    system_prompt: str | None = Field(None, alias="systemPrompt", max_length=20_000)
    web_search_mode: WebSearchMode = Field(
        WebSearchMode.NONE,
        validation_alias=AliasChoices("webSearchMode", "webSearch", "web_search_mode"),
    )

    @field_validator("provider")
    @classmethod
    def normalize_provider(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("model_id", "system_prompt")
    @classmethod
    def blank_to_none(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip()
        return v or None

    @field_validator("web_search_mode", mode="before")
    @classmethod
    def map_legacy_mode(cls, v):
        if v is None:
            return WebSearchMode.NONE.value
        if isinstance(v, str):
            return _WEB_SEARCH_ALIASES.get(v, v)
        return v


class MeshRequest(BaseModel):
    """Body of POST /api/mesh."""
    model_config = ConfigDict(populate_by_name=True)

    chat_id: str | None = Field(None, alias="chatId", max_length=64)
    agents: list[AgentConfig] = Field(min_length=1, max_length=MAX_AGENTS)
    current_message: str = Field(alias="currentMessage", max_length=100_000)

    @field_validator("current_message")
    @classmethod
    def strip_message(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("currentMessage cannot be empty or whitespace")
        return v

    def to_invocations(self) -> list[AgentInvocation]:
        return [
            AgentInvocation(
                index=i,
                provider=agent.provider,
                model_id=agent.model_id,
                system_prompt=agent.system_prompt,
                web_search_mode=agent.web_search_mode,
            )
            for i, agent in enumerate(self.agents, start=1)
        ]
