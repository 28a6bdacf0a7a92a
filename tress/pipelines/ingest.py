"""
Turns parsed feed entries into stored posts, then enriches and announces them.
"""
from __future__ import annotations

import logging
from typing import Callable, Optional

from tress.errors import ConflictError, DeliveryError, PersistenceError, TransportError
from tress.models import DeliveryResult, Feed, IngestResult, Post, PushSubscription
from tress.parsers.feed import (
    FeedEntry,
    ParsedFeed,
    resolve_entry_url,
    resolve_publish_time,
    strip_markup,
)
from tress.pipelines.enrich import ThumbnailEnricher
from tress.pipelines.store import Storage
from tress.push.client import PushClient
from tress.utils.security import redact_endpoint

logger = logging.getLogger(__name__)


def build_post(feed: Feed, document: ParsedFeed, entry: FeedEntry) -> Optional[Post]:
    url = resolve_entry_url(entry)
    if not url:
        return None
    return Post(
        feed_id=feed.id,
        url=url,
        title=entry.title,
        description=strip_markup(entry.summary),
        content=entry.content,
        publish_time=resolve_publish_time(document, entry),
    )


class PostIngestor:
    def __init__(
        self,
        storage: Storage,
        enricher: Optional[ThumbnailEnricher] = None,
        push_client: Optional[PushClient] = None,
    ) -> None:
        self.storage = storage
        self.enricher = enricher
        self.push_client = push_client

    def ingest(
        self,
        feed: Feed,
        document: ParsedFeed,
        *,
        notify: bool = False,
        should_stop: Optional[Callable[[], bool]] = None,
    ) -> IngestResult:
        result = IngestResult(total=len(document.entries))
        for entry in document.entries:
            if should_stop and should_stop():
                logger.info("Stopping ingestion of %s before all entries were processed", feed.url)
                break

            post = build_post(feed, document, entry)
            if post is None:
                logger.warning("Skipping entry %r of %s: no link or id", entry.title, feed.url)
                result.skipped += 1
                continue

            try:
                post = self.storage.insert(post)
            except ConflictError:
                logger.debug("Post %s already known", post.url)
                result.duplicates += 1
                continue
            except PersistenceError as exc:
                logger.error("Failed to store post %s from %s: %s", post.url, feed.url, exc)
                result.failed += 1
                continue

            result.inserted += 1
            logger.info("New post %r (%s)", post.title, post.url)
            self.enrich(post)
            if notify:
                result.notified += self.notify_subscribers(post)
        return result

    def enrich(self, post: Post) -> None:
        if self.enricher is None:
            return
        try:
            thumbnail = self.enricher.fetch_thumbnail(post.url)
        except TransportError as exc:
            logger.warning("Thumbnail lookup for %s gave up: %s", post.url, exc)
            return
        if not thumbnail:
            return
        try:
            self.storage.update_fields(Post, post.id, {"thumbnail": thumbnail})
        except PersistenceError as exc:
            logger.error("Failed to save thumbnail for %s: %s", post.url, exc)
            return
        post.thumbnail = thumbnail

    def notify_subscribers(self, post: Post) -> int:
        """Push ``post`` to every current subscription; returns how many accepted it."""
        if self.push_client is None:
            logger.warning("Push delivery is not configured; not announcing %s", post.url)
            return 0
        try:
            subscriptions = self.storage.find_all(PushSubscription)
        except PersistenceError as exc:
            logger.error("Could not load push subscriptions: %s", exc)
            return 0

        payload = {"id": post.id, "title": post.title}
        delivered = 0
        for subscription in subscriptions:
            try:
                outcome = self.push_client.send(subscription, payload)
            except DeliveryError as exc:
                logger.error("Push delivery failed: %s", exc)
                continue
            if outcome is DeliveryResult.SUBSCRIPTION_INVALID:
                self._drop_subscription(subscription)
                continue
            delivered += 1
        return delivered

    def _drop_subscription(self, subscription: PushSubscription) -> None:
        try:
            self.storage.delete_by_id(PushSubscription, subscription.id)
        except PersistenceError as exc:
            logger.error("Failed to delete stale subscription %s: %s", redact_endpoint(subscription.endpoint), exc)
            return
        logger.info("Deleted stale push subscription %s", redact_endpoint(subscription.endpoint))
