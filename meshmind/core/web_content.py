"""Web Content — pure helpers for the external web-search augmentation.

Invariants:
    - extract_urls returns unique http(s) URLs in first-seen order
    - Formatting never drops scraped text, only collapses 3+ newlines
    - build_augmented_message leaves the user's text first, scraped block after
"""

import re


URL_PATTERN = re.compile(r"(https?://[^\s<>\"{}|\\^`\[\]]+)")

SCRAPE_HEADER_RULE = "=" * 80
MAX_HTML_FALLBACK_CHARS = 5000

MISSING_KEY_NOTICE = (
    "\n⚠️ **Firecrawl API key not configured.** Set FIRECRAWL_API_KEY "
    "environment variable to enable web scraping."
)

CITATION_INSTRUCTIONS = (
    "**Instructions:**\n"
    "- Use the scraped web content above to answer the user's question\n"
    "- Cite specific information from the sources when relevant\n"
    "- If the content doesn't fully answer the question, acknowledge what's missing\n"
    "- Provide accurate, well-sourced information based on the scraped content"
)


def extract_urls(text: str) -> list[str]:
    return list(dict.fromkeys(URL_PATTERN.findall(text or "")))


def format_scraped_content(markdown: str, metadata: dict | None = None) -> str:
    """Normalize markdown and prefix a header built from page metadata."""
    content = re.sub(r"\n{3,}", "\n\n", markdown.strip())
    meta = metadata or {}

    headers: list[str] = []
    if meta.get("title"):
        headers.append(f"# {meta['title']}")
    if meta.get("description"):
        headers.append(f"\n**Description:** {meta['description']}")
    if meta.get("author"):
        headers.append(f"**Author:** {meta['author']}")
    published = meta.get("publishedDate") or meta.get("publishDate")
    if published:
        headers.append(f"**Published:** {published}")
    keywords = meta.get("keywords")
    if isinstance(keywords, list) and keywords:
        headers.append(f"**Keywords:** {', '.join(str(k) for k in keywords)}")

    if headers:
        return "\n".join(headers) + "\n\n---\n\n" + content
    return content


def render_scraped_page(url: str, markdown: str | None, html: str | None,
                        metadata: dict | None = None) -> str:
    """One URL's section of the scraped block."""
    if markdown:
        body = format_scraped_content(markdown, metadata)
        return f"\n## 🌐 Scraped Content: {url}\n\n{body}\n"
    if html:
        return f"\n## 🌐 Content from: {url}\n\n{html[:MAX_HTML_FALLBACK_CHARS]}...\n"
    return f"\n⚠️ **Failed to scrape:** {url}\nNo content returned from Firecrawl.\n"


def render_scrape_failure(url: str, message: str) -> str:
    return f"\n❌ **Error scraping:** {url}\n**Error:** {message}\n"


def assemble_scraped_block(sections: list[str]) -> str:
    if not sections:
        return ""
    header = "\n".join([
        "\n" + SCRAPE_HEADER_RULE,
        "📚 WEB CONTENT SCRAPED BY FIRECRAWL",
        f"📊 Successfully scraped {len(sections)} URL(s)",
        "💡 Use this information to provide accurate, sourced answers",
        SCRAPE_HEADER_RULE,
    ])
    return f"{header}\n" + "\n---\n".join(sections)


def build_augmented_message(current_message: str, scraped_block: str) -> str:
    if not scraped_block:
        return current_message
    return f"{current_message}\n\n{scraped_block}\n\n---\n\n{CITATION_INSTRUCTIONS}"
