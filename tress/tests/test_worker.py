import threading
import time
import unittest
from unittest.mock import MagicMock

from tress.errors import TransportError
from tress.infra.http import HttpFetcher
from tress.models import Feed, IngestResult, Post, SyncRequest, SyncScope
from tress.pipelines.ingest import PostIngestor
from tress.pipelines.store import Storage
from tress.schedulers.worker import SyncWorker

ATOM_ONE = b"""<?xml version="1.0" encoding="utf-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Example Feed</title>
  <entry><id>p1</id><title>Hello</title><updated>2024-01-01T00:00:00Z</updated></entry>
</feed>
"""

ATOM_TWO = b"""<?xml version="1.0" encoding="utf-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Example Feed</title>
  <entry><id>p2</id><title>Again</title><updated>2024-01-02T00:00:00Z</updated></entry>
  <entry><id>p1</id><title>Hello</title><updated>2024-01-01T00:00:00Z</updated></entry>
</feed>
"""


class SyncWorkerProcessTests(unittest.TestCase):
    def setUp(self):
        self.storage = Storage("sqlite://")
        self.fetcher = MagicMock(spec=HttpFetcher)
        self.fetcher.get_bytes.return_value = ATOM_ONE
        self.worker = SyncWorker(self.storage, self.fetcher, PostIngestor(self.storage))

    def test_single_feed_sync_stores_posts_and_refreshes_title(self):
        feed = self.storage.insert(Feed(url="https://e.g/feed.xml", title=""))

        results = self.worker.process(SyncRequest(SyncScope.single(feed.id)))

        self.assertEqual(results[feed.id].inserted, 1)
        posts = self.storage.find_all(Post)
        self.assertEqual(len(posts), 1)
        self.assertEqual(posts[0].url, "p1")
        self.assertEqual(posts[0].title, "Hello")
        self.assertEqual(posts[0].publish_time, "2024-01-01T00:00:00Z")
        self.assertEqual(posts[0].feed_id, feed.id)
        self.assertEqual(self.storage.find_by_id(Feed, feed.id).title, "Example Feed")

    def test_repeated_sync_is_idempotent(self):
        feed = self.storage.insert(Feed(url="https://e.g/feed.xml"))
        request = SyncRequest(SyncScope.single(feed.id))

        self.worker.process(request)
        results = self.worker.process(request)

        self.assertEqual(results[feed.id].inserted, 0)
        self.assertEqual(len(self.storage.find_all(Post)), 1)

    def test_deleted_feed_is_a_no_op(self):
        results = self.worker.process(SyncRequest(SyncScope.single("gone")))

        self.assertEqual(results, {})
        self.fetcher.get_bytes.assert_not_called()

    def test_failing_feed_does_not_block_the_others(self):
        broken = self.storage.insert(Feed(url="https://broken.e.g/feed.xml"))
        garbled = self.storage.insert(Feed(url="https://garbled.e.g/feed.xml"))
        healthy = self.storage.insert(Feed(url="https://e.g/feed.xml"))

        def get_bytes(url):
            if url == broken.url:
                raise TransportError("HTTP 500", status_code=500)
            if url == garbled.url:
                return b"<html><body>not a feed</body></html>"
            return ATOM_ONE

        self.fetcher.get_bytes.side_effect = get_bytes

        with self.assertLogs("tress.schedulers.worker", level="WARNING") as logs:
            results = self.worker.process(SyncRequest(SyncScope.all_feeds()))

        self.assertEqual(list(results), [healthy.id])
        self.assertEqual(len(logs.output), 2)
        self.assertEqual(self.storage.find_all(Post)[0].feed_id, healthy.id)

    def test_stop_request_skips_remaining_feeds(self):
        self.storage.insert(Feed(url="https://e.g/feed.xml"))
        self.worker.stop()

        self.assertEqual(self.worker.process(SyncRequest(SyncScope.all_feeds())), {})
        self.fetcher.get_bytes.assert_not_called()


class SequencedFetcher:
    """Hands out documents in order and records whether calls ever overlap."""

    def __init__(self, documents):
        self.documents = list(documents)
        self.lock = threading.Lock()
        self.active = 0
        self.max_active = 0
        self.events = []

    def get_bytes(self, url):
        with self.lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
            index = len(self.events)
            self.events.append(index)
        time.sleep(0.05)
        with self.lock:
            self.active -= 1
        return self.documents[index]


class SyncWorkerThreadTests(unittest.TestCase):
    def setUp(self):
        self.storage = Storage("sqlite://")
        self.feed = self.storage.insert(Feed(url="https://e.g/feed.xml"))

    def test_back_to_back_requests_run_in_order(self):
        fetcher = SequencedFetcher([ATOM_ONE, ATOM_TWO])
        worker = SyncWorker(self.storage, fetcher, PostIngestor(self.storage))
        worker.start()
        try:
            worker.enqueue_sync(SyncScope.single(self.feed.id))
            worker.enqueue_sync(SyncScope.single(self.feed.id))
            worker.join()
        finally:
            worker.stop(timeout=5)

        self.assertEqual(fetcher.events, [0, 1])
        self.assertEqual(fetcher.max_active, 1)
        self.assertEqual(sorted(post.url for post in self.storage.find_all(Post)), ["p1", "p2"])

    def test_unexpected_error_does_not_kill_the_worker(self):
        storage = MagicMock(spec=Storage)
        storage.find_by_id.side_effect = [RuntimeError("database exploded"), self.feed]
        ingestor = MagicMock(spec=PostIngestor)
        ingestor.ingest.return_value = IngestResult(total=1, inserted=1)
        fetcher = MagicMock(spec=HttpFetcher)
        fetcher.get_bytes.return_value = ATOM_ONE
        worker = SyncWorker(storage, fetcher, ingestor)

        with self.assertLogs("tress.schedulers.worker", level="ERROR"):
            worker.start()
            try:
                worker.enqueue_sync(SyncScope.single(self.feed.id))
                worker.enqueue_sync(SyncScope.single(self.feed.id), notify=True)
                worker.join()
            finally:
                worker.stop(timeout=5)

        ingestor.ingest.assert_called_once()
        self.assertTrue(ingestor.ingest.call_args.kwargs["notify"])

    def test_stop_ends_the_thread(self):
        worker = SyncWorker(self.storage, MagicMock(spec=HttpFetcher), PostIngestor(self.storage))
        worker.start()

        worker.stop(timeout=5)

        self.assertFalse(worker._thread.is_alive())

    def test_enqueue_does_not_wait_for_processing(self):
        worker = SyncWorker(self.storage, MagicMock(spec=HttpFetcher), PostIngestor(self.storage))

        worker.enqueue_sync(SyncScope.all_feeds())
        worker.enqueue_sync(SyncScope.all_feeds(), notify=True)

        self.assertEqual(worker._queue.qsize(), 2)


if __name__ == "__main__":
    unittest.main()
