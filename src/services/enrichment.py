"""
Page metadata lookup used to fill link-preview cards for feed items
that do not carry a summary or a cover image themselves.
"""
import logging
from abc import ABC, abstractmethod
from typing import Optional
from urllib.parse import urljoin

import httpx
from bs4 import BeautifulSoup

from core.entities import PageMetadata

logger = logging.getLogger(__name__)

USER_AGENT = "skywrite/1.0 (+https://github.com/skywrite)"


class Enricher(ABC):
    @abstractmethod
    async def enrich(self, url: str) -> PageMetadata:
        """
        Look up metadata for a page.
        Must never raise; failures return an empty PageMetadata.
        """
        raise NotImplementedError


def _meta_content(soup: BeautifulSoup, *, prop: Optional[str] = None, name: Optional[str] = None) -> Optional[str]:
    tag = soup.find("meta", property=prop) if prop else soup.find("meta", attrs={"name": name})
    if tag and tag.get("content"):
        content = tag["content"].strip()
        return content or None
    return None


def parse_page_metadata(html: str, base_url: str) -> PageMetadata:
    """Extract the OpenGraph description and preview image from an HTML document."""
    soup = BeautifulSoup(html, "html.parser")

    description = (
        _meta_content(soup, prop="og:description")
        or _meta_content(soup, name="description")
        or _meta_content(soup, name="twitter:description")
    )
    image = (
        _meta_content(soup, prop="og:image")
        or _meta_content(soup, prop="og:image:url")
        or _meta_content(soup, name="twitter:image")
    )
    if image:
        image = urljoin(base_url, image)

    return PageMetadata(description=description, thumbnail=image)


class PageMetadataEnricher(Enricher):
    def __init__(self, client: Optional[httpx.AsyncClient] = None, timeout: float = 30):
        self.client = client
        self.timeout = timeout

    async def _get(self, url: str) -> httpx.Response:
        if self.client is not None:
            return await self.client.get(url, follow_redirects=True)
        async with httpx.AsyncClient(timeout=self.timeout, headers={"User-Agent": USER_AGENT}) as client:
            return await client.get(url, follow_redirects=True)

    async def enrich(self, url: str) -> PageMetadata:
        try:
            resp = await self._get(url)
            resp.raise_for_status()
            html = resp.text
        except httpx.HTTPError as e:
            logger.warning(f"Unable to fetch page metadata from {url}: {e}", extra={"url": url})
            return PageMetadata()

        # Parsing happens after the response is fully read, no soup survives an await
        try:
            return parse_page_metadata(html, str(resp.url))
        except Exception as e:
            logger.warning(f"Unable to parse page metadata from {url}: {e}", extra={"url": url})
            return PageMetadata()
