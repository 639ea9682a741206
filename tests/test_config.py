import os
import tempfile
import unittest
from unittest.mock import patch

from services.config import DEFAULT_NEWS_API_URL, get_enabled_sources, load_config
from services.ledger import Ledger
from ingestion.news_api import NewsApiFetcher
from ingestion.rss import RSSFetcher
from processing.assembler import PostAssembler
from workflows.orchestrator import create_pollers_from_config
from fakes import RecordingPublisher, StaticEnricher

CONFIG = """
DATABASE_PATH: {tmp}/db.sqlite3
DATA_PATH: {tmp}/data
RETENTION_CAP: 100
DISABLE_POST_COMMENTS: "no"

sources:
  - type: news_api
    locale: ja
    languages: ja,en,ja
    interval_seconds: 60
  - type: rss
    feeds:
      - https://a.example.com/feed
      - https://b.example.com/feed
    backdate_hours: 1
  - type: rss
    enabled: false
    feeds: [https://c.example.com/feed]
"""


class TestLoadConfig(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.path = os.path.join(self._tmp.name, "config.yml")

    def tearDown(self):
        self._tmp.cleanup()

    def _write(self, text):
        with open(self.path, "w") as f:
            f.write(text.format(tmp=self._tmp.name))

    @patch.dict(os.environ, {"SKYWRITE_APP_IDENTIFIER": "bot.example.com", "SKYWRITE_APP_PASSWORD": "secret"}, clear=False)
    def test_loads_sources_and_credentials(self):
        self._write(CONFIG)
        config = load_config(self.path)

        self.assertEqual(config.RETENTION_CAP, 100)
        self.assertFalse(config.DISABLE_POST_COMMENTS)
        self.assertEqual(config.BLUESKY_IDENTIFIER, "bot.example.com")
        self.assertEqual(config.BLUESKY_PASSWORD, "secret")

        news = config.sources[0]
        self.assertEqual(news.url, DEFAULT_NEWS_API_URL)
        self.assertEqual(news.locale, "ja")
        self.assertEqual(news.languages, ["ja", "en"])
        self.assertEqual(news.interval_seconds, 60)
        self.assertEqual(news.backdate_hours, 3)

        self.assertEqual(len(get_enabled_sources(config)), 2)

    def test_unknown_source_type_is_rejected(self):
        self._write("sources:\n  - type: gopher\n")
        with self.assertRaises(ValueError):
            load_config(self.path)

    def test_missing_file(self):
        with self.assertRaises(FileNotFoundError):
            load_config(os.path.join(self._tmp.name, "nope.yml"))

    def test_one_poller_per_feed(self):
        self._write(CONFIG)
        config = load_config(self.path)
        ledger = Ledger(config.DATABASE_PATH)
        enricher = StaticEnricher()

        pollers = create_pollers_from_config(config, ledger, RecordingPublisher(), enricher)

        self.assertEqual(len(pollers), 3)
        self.assertIsInstance(pollers[0].fetcher, NewsApiFetcher)
        self.assertIsNone(pollers[0].assembler.enricher)
        self.assertEqual(pollers[0].interval_seconds, 60)
        self.assertIsInstance(pollers[1].fetcher, RSSFetcher)
        self.assertIs(pollers[1].assembler.enricher, enricher)
        self.assertEqual(pollers[2].name, "https://b.example.com/feed")
        self.assertEqual(pollers[2].retention_cap, 100)
        self.assertIsInstance(pollers[2].assembler, PostAssembler)


if __name__ == "__main__":
    unittest.main()
