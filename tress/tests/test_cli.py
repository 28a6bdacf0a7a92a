import json
import os
import tempfile
import unittest
from unittest.mock import patch

from click.testing import CliRunner

from tress.cli import cli
from tress.models import Feed, Post
from tress.pipelines.store import Storage

ATOM_FEED = b"""<?xml version="1.0" encoding="utf-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Example Feed</title>
  <entry><id>p1</id><title>Hello</title><updated>2024-01-01T00:00:00Z</updated></entry>
</feed>
"""


class CliTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.database_url = f"sqlite:///{os.path.join(self.tmpdir.name, 'tress.db')}"
        self.env = {
            "TRESS_DATABASE_URL": self.database_url,
            "TRESS_DOTENV": os.path.join(self.tmpdir.name, "missing.env"),
        }
        self.runner = CliRunner()
        patcher = patch("tress.cli.configure_logging")
        patcher.start()
        self.addCleanup(patcher.stop)

    def tearDown(self):
        self.tmpdir.cleanup()

    def test_feeds_lists_registered_feeds(self):
        storage = Storage(self.database_url)
        feed = storage.insert(Feed(url="https://e.g/feed.xml", title="Example Feed"))
        storage.engine.dispose()

        result = self.runner.invoke(cli, ["feeds"], env=self.env)

        self.assertEqual(result.exit_code, 0, result.output)
        lines = [line for line in result.output.splitlines() if line.startswith("{")]
        self.assertEqual(
            [json.loads(line) for line in lines],
            [{"id": feed.id, "url": "https://e.g/feed.xml", "title": "Example Feed"}],
        )

    @patch("tress.app.HttpFetcher")
    def test_add_feed_backfills_posts(self, fetcher_cls):
        fetcher_cls.return_value.get_bytes.return_value = ATOM_FEED

        result = self.runner.invoke(cli, ["add-feed", "https://e.g/feed.xml"], env=self.env)

        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Registered Example Feed", result.output)
        storage = Storage(self.database_url)
        self.assertEqual([post.url for post in storage.find_all(Post)], ["p1"])
        storage.engine.dispose()

    @patch("tress.app.HttpFetcher")
    def test_add_feed_reports_errors(self, fetcher_cls):
        fetcher_cls.return_value.get_bytes.return_value = b"not a feed"

        result = self.runner.invoke(cli, ["add-feed", "https://e.g/page"], env=self.env)

        self.assertNotEqual(result.exit_code, 0)
        self.assertIn("not a feed document", result.output)


if __name__ == "__main__":
    unittest.main()
