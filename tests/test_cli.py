import asyncio
import contextlib
import io
import logging
import os
import tempfile
import unittest
from unittest.mock import patch

from cli.run import main
from core.errors import DuplicateKeyError
from services.ledger import Ledger
from services.logging import JsonFormatter, setup_logging


class TestDatabaseCommands(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.db = os.path.join(self._tmp.name, "nested", "db.sqlite3")

    def tearDown(self):
        self._tmp.cleanup()

    def _run(self, *argv):
        out = io.StringIO()
        with contextlib.redirect_stdout(out):
            code = main(["--database-path", self.db, *argv])
        return code, out.getvalue().strip()

    def test_insert_then_export(self):
        code, _ = self._run("database", "insert-posts", "https://example.com/a,https://example.com/b")
        self.assertEqual(code, 0)

        code, output = self._run("database", "export-posts")
        self.assertEqual(code, 0)
        self.assertEqual(output, "https://example.com/a,https://example.com/b")

    def test_insert_existing_url_is_not_an_error(self):
        self._run("database", "insert-posts", "https://example.com/a")
        code, _ = self._run("database", "insert-posts", "https://example.com/a")

        self.assertEqual(code, 0)
        self.assertEqual(asyncio.run(Ledger(self.db).count()), 1)

    def test_insert_racing_another_writer_is_not_an_error(self):
        with patch.object(Ledger, "record", side_effect=DuplicateKeyError("https://example.com/a")):
            code, _ = self._run("database", "insert-posts", "https://example.com/a")

        self.assertEqual(code, 0)

    def test_remove_posts(self):
        self._run("database", "insert-posts", "https://example.com/a,https://example.com/b")
        code, _ = self._run("database", "remove-posts", "https://example.com/a,https://example.com/missing")
        self.assertEqual(code, 0)

        _, output = self._run("database", "export-posts")
        self.assertEqual(output, "https://example.com/b")

    def test_export_empty_database_fails(self):
        code, output = self._run("database", "export-posts")
        self.assertEqual(code, 1)
        self.assertEqual(output, "")

    def test_rejects_invalid_url(self):
        with contextlib.redirect_stderr(io.StringIO()):
            with self.assertRaises(SystemExit):
                main(["--database-path", self.db, "database", "insert-posts", "not-a-url"])


class TestSetupLogging(unittest.TestCase):
    def _json_handlers(self):
        return [h for h in logging.getLogger().handlers if isinstance(h.formatter, JsonFormatter)]

    def test_repeated_setup_installs_one_handler(self):
        level = logging.getLogger().level
        before = self._json_handlers()
        try:
            setup_logging()
            setup_logging(logging.DEBUG)

            self.assertEqual(len(self._json_handlers()), 1)
            self.assertEqual(logging.getLogger().level, logging.DEBUG)
        finally:
            for handler in self._json_handlers():
                if handler not in before:
                    logging.getLogger().removeHandler(handler)
            logging.getLogger().setLevel(level)


if __name__ == "__main__":
    unittest.main()
