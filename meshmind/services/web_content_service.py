"""Web Content Service — scrapes URLs in the user's message for external web search.

Invariants:
    - Message without URLs is returned unchanged (no Firecrawl call)
    - No Firecrawl key → the missing-key notice is appended instead of content
    - One URL failing never hides the others: it becomes an inline error note
"""

import logging

import httpx

from meshmind.config import Settings
from meshmind.core.errors import WebContentError
from meshmind.core.web_content import (
    MISSING_KEY_NOTICE,
    assemble_scraped_block,
    build_augmented_message,
    extract_urls,
    render_scrape_failure,
    render_scraped_page,
)
from meshmind.infrastructure.firecrawl_client import FirecrawlClient

logger = logging.getLogger(__name__)


class WebContentService:
    """Implements WebContentSource on top of FirecrawlClient."""

    def __init__(self, scraper: FirecrawlClient | None):
        self.scraper = scraper

    async def augment(self, current_message: str) -> str:
        urls = extract_urls(current_message)
        if not urls:
            return current_message
        if self.scraper is None:
            return build_augmented_message(current_message, MISSING_KEY_NOTICE)

        sections = []
        for url in urls:
            try:
                page = await self.scraper.scrape(url)
            except WebContentError as e:
                logger.warning("Scrape failed for %s: %s", url, e.message)
                sections.append(render_scrape_failure(url, e.message))
                continue
            sections.append(
                render_scraped_page(url, page.markdown, page.html, page.metadata),
            )
        return build_augmented_message(
            current_message, assemble_scraped_block(sections),
        )


def build_web_content_service(
    settings: Settings, http: httpx.AsyncClient,
) -> WebContentService:
    scraper = None
    if settings.firecrawl_api_key:
        scraper = FirecrawlClient(
            http, settings.firecrawl_api_key, settings.firecrawl_api_url,
        )
    return WebContentService(scraper)
