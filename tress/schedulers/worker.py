"""
Single-consumer sync worker.

HTTP handlers and the timer enqueue SyncRequests; one dedicated thread
processes them strictly in order, one feed at a time.
"""
from __future__ import annotations

import logging
import queue
import threading
from typing import Dict, List, Optional

from tress.errors import ParseError, PersistenceError, TransportError
from tress.infra.http import HttpFetcher
from tress.models import Feed, IngestResult, SyncRequest, SyncScope
from tress.parsers.feed import ParsedFeed, parse_feed
from tress.pipelines.ingest import PostIngestor
from tress.pipelines.store import Storage

logger = logging.getLogger(__name__)


class SyncWorker:
    def __init__(
        self,
        storage: Storage,
        fetcher: HttpFetcher,
        ingestor: PostIngestor,
        name: str = "tress-sync",
    ) -> None:
        self.storage = storage
        self.fetcher = fetcher
        self.ingestor = ingestor
        self.name = name
        self._queue: "queue.Queue[Optional[SyncRequest]]" = queue.Queue()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def enqueue_sync(self, scope: SyncScope, notify: bool = False) -> None:
        """Queue a sync and return immediately; never waits for processing."""
        self._queue.put_nowait(SyncRequest(scope=scope, notify=notify))
        logger.debug("Queued sync of %s (notify=%s)", scope, notify)

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self.run, name=self.name, daemon=True)
        self._thread.start()
        logger.info("Sync worker started")

    def stop(self, timeout: Optional[float] = None) -> None:
        """Finish the entry in flight, then exit. Requests still queued are dropped."""
        self._stop.set()
        self._queue.put_nowait(None)
        if self._thread:
            self._thread.join(timeout)
            if self._thread.is_alive():
                logger.warning("Sync worker did not stop within %s seconds", timeout)
        logger.info("Sync worker stopped")

    def join(self) -> None:
        """Block until every queued request has been processed."""
        self._queue.join()

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    def run(self) -> None:
        while True:
            request = self._queue.get()
            try:
                if request is None or self.stopping:
                    break
                self.process(request)
            except Exception:
                logger.exception("Sync request %s failed unexpectedly", request)
            finally:
                self._queue.task_done()
        self._drain()

    def _drain(self) -> None:
        dropped = 0
        while True:
            try:
                request = self._queue.get_nowait()
            except queue.Empty:
                break
            if request is not None:
                dropped += 1
            self._queue.task_done()
        if dropped:
            logger.info("Dropped %d queued sync request(s) on shutdown", dropped)

    def process(self, request: SyncRequest) -> Dict[str, IngestResult]:
        feeds = self.resolve_scope(request.scope)
        logger.info("Syncing %d feed(s) for %s (notify=%s)", len(feeds), request.scope, request.notify)
        results: Dict[str, IngestResult] = {}
        for feed in feeds:
            if self.stopping:
                break
            outcome = self.sync_feed(feed, notify=request.notify)
            if outcome is not None:
                results[feed.id] = outcome
        return results

    def resolve_scope(self, scope: SyncScope) -> List[Feed]:
        if scope.is_all:
            return self.storage.find_all(Feed)
        feed = self.storage.find_by_id(Feed, scope.feed_id)
        if feed is None:
            logger.debug("Feed %s no longer exists; nothing to sync", scope.feed_id)
            return []
        return [feed]

    def sync_feed(self, feed: Feed, notify: bool = False) -> Optional[IngestResult]:
        try:
            content = self.fetcher.get_bytes(feed.url)
        except TransportError as exc:
            logger.warning("Failed to fetch feed %s: %s", feed.url, exc)
            return None
        try:
            document = parse_feed(content)
        except ParseError as exc:
            logger.warning("Failed to parse feed %s: %s", feed.url, exc)
            return None

        self._refresh_metadata(feed, document)
        result = self.ingestor.ingest(feed, document, notify=notify, should_stop=self._stop.is_set)
        logger.info(
            "Feed %s: %d new, %d known, %d failed of %d entries",
            feed.url,
            result.inserted,
            result.duplicates,
            result.failed,
            result.total,
        )
        return result

    def _refresh_metadata(self, feed: Feed, document: ParsedFeed) -> None:
        changes = {}
        if document.title and document.title != feed.title:
            changes["title"] = document.title
        if document.icon and document.icon != feed.icon:
            changes["icon"] = document.icon
        if not changes:
            return
        try:
            self.storage.update_fields(Feed, feed.id, changes)
        except PersistenceError as exc:
            logger.error("Failed to update feed %s: %s", feed.url, exc)
            return
        for key, value in changes.items():
            setattr(feed, key, value)
