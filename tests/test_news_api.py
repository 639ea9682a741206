import os
import tempfile
import unittest
from datetime import datetime, timedelta, timezone

import httpx

from core.errors import FetchError
from ingestion.news_api import NewsApiFetcher, NewsArticle, dedupe_newest_first
from services.ledger import Ledger

API_URL = "https://news.example.com/api/news"
SITE_URL = "https://news.example.com"


def article(article_id, hours_ago=1.0, **overrides):
    data = {
        "id": article_id,
        "title": f"  Article {article_id} ",
        "section": 1,
        "publish_time": (datetime.now(timezone.utc) - timedelta(hours=hours_ago)).isoformat(),
        "cover": f"https://news.example.com/covers/{article_id}.jpg",
        "abstract": f" Abstract {article_id} ",
    }
    data.update(overrides)
    return data


def payload(*articles):
    return {"data": {"total": len(articles), "data": list(articles)}}


class TestDedupeNewestFirst(unittest.TestCase):
    def test_removes_repeats_and_sorts_descending(self):
        published = datetime.now(timezone.utc)
        articles = [
            NewsArticle(id=i, title=t, publish_time=published)
            for i, t in [(5, "first"), (3, "three"), (5, "second")]
        ]
        result = dedupe_newest_first(articles)
        self.assertEqual([a.id for a in result], [5, 3])
        self.assertEqual(result[0].title, "first")


class TestNewsApiFetcher(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.ledger = Ledger(os.path.join(self._tmp.name, "ledger.db"))
        self.requests = []
        self.cutoff = datetime.now(timezone.utc) - timedelta(hours=3)

    async def asyncTearDown(self):
        self._tmp.cleanup()

    def _fetcher(self, handler):
        def recording(request):
            self.requests.append(request)
            return handler(request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(recording))
        return NewsApiFetcher(self.ledger, locale="en", api_url=API_URL, site_url=SITE_URL, client=client)

    async def test_dedupes_and_sorts_by_id(self):
        fetcher = self._fetcher(lambda r: httpx.Response(200, json=payload(article(5), article(3), article(5))))
        items = await fetcher.fetch(self.cutoff)

        self.assertEqual([item.id for item in items], ["5", "3"])
        self.assertEqual(items[0].link, "https://news.example.com/en/news/5")
        self.assertEqual(items[0].title, "Article 5")
        self.assertEqual(items[0].summary, "Abstract 5")
        self.assertEqual(items[0].cover_image, "https://news.example.com/covers/5.jpg")

    async def test_requests_bounded_page_for_locale(self):
        fetcher = self._fetcher(lambda r: httpx.Response(200, json=payload()))
        await fetcher.fetch(self.cutoff)

        params = self.requests[0].url.params
        self.assertEqual(params["limit"], "20")
        self.assertEqual(params["locale"], "en")

    async def test_skips_items_at_or_before_cutoff(self):
        at_cutoff = article(2, publish_time=self.cutoff.isoformat())
        fetcher = self._fetcher(lambda r: httpx.Response(200, json=payload(article(1, hours_ago=5), at_cutoff, article(3))))
        items = await fetcher.fetch(self.cutoff)

        self.assertEqual([item.id for item in items], ["3"])

    async def test_skips_links_already_in_ledger(self):
        await self.ledger.record("https://news.example.com/en/news/7")
        fetcher = self._fetcher(lambda r: httpx.Response(200, json=payload(article(7), article(8))))
        items = await fetcher.fetch(self.cutoff)

        self.assertEqual([item.id for item in items], ["8"])

    async def test_http_error_raises_fetch_error(self):
        fetcher = self._fetcher(lambda r: httpx.Response(503))
        with self.assertRaises(FetchError):
            await fetcher.fetch(self.cutoff)

    async def test_malformed_body_raises_fetch_error(self):
        fetcher = self._fetcher(lambda r: httpx.Response(200, content=b"<html>down</html>"))
        with self.assertRaises(FetchError):
            await fetcher.fetch(self.cutoff)

    async def test_unexpected_shape_raises_fetch_error(self):
        fetcher = self._fetcher(lambda r: httpx.Response(200, json={"data": {"data": [{"id": "x"}]}}))
        with self.assertRaises(FetchError):
            await fetcher.fetch(self.cutoff)

    async def test_connection_error_raises_fetch_error(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        fetcher = self._fetcher(refuse)
        with self.assertRaises(FetchError):
            await fetcher.fetch(self.cutoff)


if __name__ == "__main__":
    unittest.main()
