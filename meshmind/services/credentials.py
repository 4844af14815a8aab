"""Credential Resolver — per-request API key lookup with process-level fallback.

Invariants:
    - Stored (per-user) key wins when non-blank; else the settings key; else None
    - Built once per request from keys loaded before streaming; no IO here
    - None is an agent-level condition (MissingCredentialError), not a request failure
"""

from meshmind.config import Settings
from meshmind.core.domain_types import Provider
from meshmind.core.mesh_types import UserKeys


def _non_blank(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


class CredentialResolver:
    """Resolves the API key each agent's provider call should use."""

    def __init__(self, stored: UserKeys | None, settings: Settings):
        self._stored = stored or UserKeys()
        self._fallbacks = {
            Provider.OPENROUTER: settings.openrouter_api_key,
            Provider.VERCEL: settings.vercel_ai_gateway_key,
            Provider.ANTHROPIC: settings.anthropic_api_key,
        }

    def api_key_for(self, provider: Provider) -> str | None:
        stored = {
            Provider.OPENROUTER: self._stored.openrouter_key,
            Provider.VERCEL: self._stored.vercel_key,
            Provider.ANTHROPIC: self._stored.anthropic_key,
        }[provider]
        return _non_blank(stored) or _non_blank(self._fallbacks[provider])
