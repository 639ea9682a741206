"""
Ingest from a timed news API (Infinity Nikki style endpoint)
"""
import logging
from datetime import datetime, timezone
from typing import List, Optional

import httpx
from pydantic import BaseModel, ValidationError, field_validator

from core.entities import CandidateItem
from core.errors import FetchError
from ingestion.base import SourceFetcher
from services.config import DEFAULT_NEWS_API_URL, DEFAULT_NEWS_SITE_URL
from services.ledger import Ledger

logger = logging.getLogger(__name__)


class NewsArticle(BaseModel):
    id: int
    title: str
    section: Optional[int] = None
    publish_time: datetime
    cover: Optional[str] = None
    abstract: str = ""

    @field_validator("publish_time")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class NewsPage(BaseModel):
    total: int = 0
    data: List[NewsArticle] = []


class NewsResponse(BaseModel):
    data: NewsPage


def dedupe_newest_first(articles: List[NewsArticle]) -> List[NewsArticle]:
    """
    Drop repeated ids (first occurrence wins) and order by id, highest first.
    The endpoint gives no ordering guarantee; a higher id is assumed to be newer.
    """
    seen = set()
    unique = []
    for article in articles:
        if article.id in seen:
            continue
        seen.add(article.id)
        unique.append(article)
    return sorted(unique, key=lambda a: a.id, reverse=True)


class NewsApiFetcher(SourceFetcher):
    def __init__(
        self,
        ledger: Ledger,
        locale: str = "en",
        api_url: str = DEFAULT_NEWS_API_URL,
        site_url: str = DEFAULT_NEWS_SITE_URL,
        page_size: int = 20,
        client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(ledger)
        self.locale = locale
        self.api_url = api_url
        self.site_url = site_url.rstrip("/")
        self.page_size = page_size
        self.client = client

    @property
    def identifier(self) -> str:
        return f"{self.api_url}?locale={self.locale}"

    def make_link(self, article_id: int) -> str:
        return f"{self.site_url}/{self.locale}/news/{article_id}"

    async def _get_articles(self) -> List[NewsArticle]:
        params = {"offset": 0, "limit": self.page_size, "locale": self.locale}
        try:
            if self.client is not None:
                resp = await self.client.get(self.api_url, params=params)
            else:
                async with httpx.AsyncClient(timeout=30) as client:
                    resp = await client.get(self.api_url, params=params)
            resp.raise_for_status()
            return NewsResponse.model_validate(resp.json()).data.data
        except (httpx.HTTPError, ValidationError, ValueError) as e:
            raise FetchError(self.identifier, str(e)) from e

    async def fetch(self, cutoff: datetime) -> List[CandidateItem]:
        articles = dedupe_newest_first(await self._get_articles())

        items: List[CandidateItem] = []
        for article in articles:
            # Only count posts that are after the cutoff.
            if article.publish_time <= cutoff:
                continue

            link = self.make_link(article.id)
            if await self.ledger.has(link):
                continue

            items.append(
                CandidateItem(
                    id=str(article.id),
                    title=article.title.strip(),
                    link=link,
                    publish_time=article.publish_time,
                    summary=article.abstract.strip() or None,
                    cover_image=article.cover,
                )
            )

        logger.debug(f"{len(items)} unposted items from {self.identifier}", extra={"source": self.identifier})
        return items
