"""
Ingestion from RSS/Atom sources
"""
import logging
from datetime import datetime, timezone
from typing import Any, List, Optional

import feedparser
import httpx

from core.entities import CandidateItem
from core.errors import FetchError
from ingestion.base import SourceFetcher
from services.ledger import Ledger

logger = logging.getLogger(__name__)

# Bozo conditions that leave the parsed entries intact
HARMLESS_BOZO = (feedparser.CharacterEncodingOverride, feedparser.NonXMLContentType)


def entry_published(entry: Any) -> Optional[datetime]:
    parsed = entry.get("published_parsed")
    if not parsed:
        return None
    return datetime(*parsed[:6], tzinfo=timezone.utc)


def entry_link(entry: Any) -> Optional[str]:
    # Enclosures are listed in links too, they are never the entry's own page
    for link in entry.get("links") or []:
        if link.get("rel") != "enclosure" and link.get("href"):
            return link["href"]
    return entry.get("link") or None


def entry_cover_image(entry: Any) -> Optional[str]:
    """First image attached to the entry through media tags or enclosures."""
    for thumb in entry.get("media_thumbnail") or []:
        if thumb.get("url"):
            return thumb["url"]
    for media in entry.get("media_content") or []:
        medium = media.get("medium") or media.get("type", "")
        if media.get("url") and medium.startswith("image"):
            return media["url"]
    for enclosure in entry.get("enclosures") or []:
        if enclosure.get("href") and enclosure.get("type", "").startswith("image/"):
            return enclosure["href"]
    return None


class RSSFetcher(SourceFetcher):
    def __init__(self, ledger: Ledger, feed_url: str, client: Optional[httpx.AsyncClient] = None):
        super().__init__(ledger)
        self.feed_url = feed_url
        self.client = client

    @property
    def identifier(self) -> str:
        return self.feed_url

    async def _get_feed(self) -> Any:
        try:
            if self.client is not None:
                resp = await self.client.get(self.feed_url, follow_redirects=True)
            else:
                async with httpx.AsyncClient(timeout=30) as client:
                    resp = await client.get(self.feed_url, follow_redirects=True)
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise FetchError(self.identifier, str(e)) from e

        feed = feedparser.parse(resp.content)
        # A half-parsed feed is rejected as a whole, recovered entries included
        error = feed.get("bozo_exception")
        if feed.bozo and not isinstance(error, HARMLESS_BOZO):
            raise FetchError(self.identifier, f"unparseable feed: {error}")
        return feed

    async def fetch(self, cutoff: datetime) -> List[CandidateItem]:
        feed = await self._get_feed()

        # Filter synchronously first so no parsed entry is held across the ledger awaits
        candidates = []
        for entry in feed.entries:
            # Only count posts that are after the cutoff.
            published = entry_published(entry)
            if published is None or published <= cutoff:
                continue

            # No link, no post.
            link = entry_link(entry)
            if not link:
                continue

            candidates.append(
                CandidateItem(
                    id=entry.get("id") or link,
                    title=(entry.get("title") or "").strip(),
                    link=link,
                    publish_time=published,
                    summary=entry.get("summary") or None,
                    cover_image=entry_cover_image(entry),
                )
            )

        items = [item for item in candidates if not await self.ledger.has(item.link)]

        logger.debug(f"{len(items)} unposted entries from {self.identifier}", extra={"source": self.identifier})
        return items
