"""
Turns candidate items into normalized posts with a link-preview embed.
"""
import logging
from datetime import datetime, timezone
from typing import List, Optional

from core.entities import CandidateItem, PageMetadata, Post, PostEmbed
from processing.text import html_to_text
from services.enrichment import Enricher

logger = logging.getLogger(__name__)

FALLBACK_TITLE = "New post"
FALLBACK_DESCRIPTION = "This site has not provided a description"


class PostAssembler:
    """
    Builds posts from candidate items.

    When an enricher is given (RSS sources), the linked page is looked up
    once per item if the feed did not provide a summary or a cover image.
    Missing metadata never fails assembly; it falls back to defaults.
    """

    def __init__(self, enricher: Optional[Enricher] = None):
        self.enricher = enricher

    async def _lookup(self, item: CandidateItem, summary: Optional[str]) -> PageMetadata:
        if self.enricher is None or (summary and item.cover_image):
            return PageMetadata()
        return await self.enricher.enrich(item.link)

    async def assemble(self, item: CandidateItem, languages: List[str]) -> Post:
        summary = html_to_text(item.summary) if item.summary else None
        metadata = await self._lookup(item, summary)

        title = item.title or FALLBACK_TITLE

        description = summary or metadata.description
        if not description:
            logger.debug(f"No description available for {item.link}", extra={"url": item.link})
            description = FALLBACK_DESCRIPTION

        embed = PostEmbed(
            title=item.title or item.link,
            description=description,
            uri=item.link,
            thumbnail_url=item.cover_image or metadata.thumbnail,
        )

        return Post(
            text=f"{title} - {item.link}",
            languages=list(languages),
            created_at=item.publish_time or datetime.now(timezone.utc),
            embed=embed,
        )
