"""
Source Factory - Creates fetchers from configuration.
"""
import logging
from typing import List

from ingestion.base import SourceFetcher
from ingestion.news_api import NewsApiFetcher
from ingestion.rss import RSSFetcher
from services.config import SourceConfig, DEFAULT_NEWS_API_URL, DEFAULT_NEWS_SITE_URL
from services.ledger import Ledger

logger = logging.getLogger(__name__)


def create_fetchers(source_config: SourceConfig, ledger: Ledger) -> List[SourceFetcher]:
    """
    Create the fetchers for one configured source.
    An RSS source yields one fetcher per feed url.

    Raises:
        ValueError: If source type is unknown or required fields are missing
    """
    source_type = source_config.type.lower()

    if source_type == "news_api":
        return [
            NewsApiFetcher(
                ledger=ledger,
                locale=source_config.locale,
                api_url=source_config.url or DEFAULT_NEWS_API_URL,
                site_url=source_config.site_url or DEFAULT_NEWS_SITE_URL,
                page_size=source_config.page_size,
            )
        ]

    elif source_type == "rss":
        if not source_config.feeds:
            raise ValueError("RSS source requires 'feeds' field")
        return [RSSFetcher(ledger=ledger, feed_url=url) for url in source_config.feeds]

    else:
        raise ValueError(f"Unknown source type: {source_type}")
