"""Firecrawl Client — scrapes a URL into markdown for the external web-search mode.

Invariants:
    - One POST {api_url}/scrape per URL, main content only
    - Failures raise WebContentError; callers turn them into inline notes
"""

import logging
from dataclasses import dataclass

import httpx

from meshmind.core.errors import WebContentError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScrapedPage:
    url: str
    markdown: str | None
    html: str | None
    metadata: dict | None


class FirecrawlClient:
    """Thin async wrapper over Firecrawl's scrape endpoint."""

    SCRAPE_OPTIONS = {
        "formats": ["markdown", "html"],
        "onlyMainContent": True,
        "includeTags": ["article", "main", "content"],
        "excludeTags": ["nav", "footer", "header", "aside", "script", "style"],
        "waitFor": 2000,
    }

    def __init__(self, http: httpx.AsyncClient, api_key: str, api_url: str):
        self.http = http
        self.api_key = api_key
        self.url = f"{api_url.rstrip('/')}/scrape"

    async def scrape(self, url: str) -> ScrapedPage:
        try:
            response = await self.http.post(
                self.url,
                json={"url": url, **self.SCRAPE_OPTIONS},
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
        except httpx.HTTPError as e:
            raise WebContentError(f"Request failed: {e}", url)

        if not response.is_success:
            raise WebContentError(
                f"Firecrawl responded with {response.status_code}", url,
            )
        try:
            body = response.json()
        except ValueError:
            raise WebContentError("Firecrawl returned a non-JSON response", url)

        if isinstance(body, dict) and body.get("success") is False:
            raise WebContentError(str(body.get("error") or "Scrape failed"), url)
        data = body.get("data") if isinstance(body, dict) else None
        data = data if isinstance(data, dict) else {}
        return ScrapedPage(
            url=url,
            markdown=data.get("markdown"),
            html=data.get("html"),
            metadata=data.get("metadata") if isinstance(data.get("metadata"), dict) else None,
        )
