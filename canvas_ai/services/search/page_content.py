"""Main-text extraction from result pages.

Search snippets are a sentence or two; the top results are fetched and their
readable text replaces the snippet when extraction succeeds.
"""

import re

import httpx
from bs4 import BeautifulSoup
from loguru import logger

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
)
NOISE_SELECTORS = "script, style, nav, header, footer, aside, .ads, .advertisement"
CONTENT_SELECTORS = (
    "article",
    "main",
    ".content",
    ".post-content",
    ".entry-content",
    ".article-content",
    "p",
)

_WHITESPACE_RE = re.compile(r"\s+")
_DISALLOWED_RE = re.compile(r"[^\w\s가-힣.,!?()\-]")


def extract_page_text(html: str, max_chars: int = 500) -> str | None:
    """Readable text of an HTML page, or None when nothing usable is found.

    Navigation and boilerplate are removed first. The first selector in
    ``CONTENT_SELECTORS`` that matches anything wins, and the text of all its
    matches is joined. Text at the limit is cut and suffixed with ``...``.
    """
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup.select(NOISE_SELECTORS):
        tag.decompose()

    content = ""
    for selector in CONTENT_SELECTORS:
        elements = soup.select(selector)
        if elements:
            content = " ".join(el.get_text(" ") for el in elements).strip()
            break

    content = _WHITESPACE_RE.sub(" ", content)
    content = _DISALLOWED_RE.sub("", content).strip()
    if not content:
        return None

    content = content[:max_chars]
    return content + "..." if len(content) >= max_chars else content


async def fetch_page_text(
    client: httpx.AsyncClient,
    url: str,
    timeout_s: float = 5.0,
    max_chars: int = 500,
) -> str | None:
    """Fetch a page and extract its text. Any failure returns None."""
    try:
        response = await client.get(
            url,
            headers={"User-Agent": USER_AGENT},
            timeout=timeout_s,
            follow_redirects=True,
        )
    except httpx.HTTPError as e:
        logger.debug("Page fetch failed", url=url, error=str(e))
        return None

    if not response.is_success:
        logger.debug("Page fetch returned non-2xx", url=url, status_code=response.status_code)
        return None

    content_type = response.headers.get("content-type", "").lower()
    if content_type and "html" not in content_type:
        return None

    return extract_page_text(response.text, max_chars)
