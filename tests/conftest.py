"""Root conftest — shared test configuration."""

import os

# Ensure tests don't accidentally use real API keys
os.environ.setdefault("JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("OPENROUTER_API_KEY", "sk-or-test-fake-key")
os.environ.setdefault("VERCEL_AI_GATEWAY_KEY", "vercel-test-fake-key")
os.environ.setdefault("ANTHROPIC_API_KEY", "sk-ant-test-fake-key")
os.environ.setdefault("FIRECRAWL_API_KEY", "")
os.environ.setdefault("LOG_FORMAT", "text")
os.environ.setdefault(
    "DATABASE_URL",
    "sqlite+aiosqlite:///:memory:",
)
