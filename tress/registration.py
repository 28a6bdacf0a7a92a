"""
Operations the HTTP layer calls directly: registering feeds and push subscriptions.
"""
from __future__ import annotations

import logging

from tress.infra.http import HttpFetcher
from tress.models import Feed, PushSubscription, SyncScope
from tress.parsers.feed import parse_feed
from tress.pipelines.store import Storage
from tress.push.client import validate_subscription_keys
from tress.schedulers.worker import SyncWorker
from tress.utils.security import redact_endpoint

logger = logging.getLogger(__name__)


def register_feed(storage: Storage, fetcher: HttpFetcher, worker: SyncWorker, url: str) -> Feed:
    """
    Validate and store a new feed, then queue its initial backfill.

    Fetch (TransportError), parse (ParseError) and insert (ConflictError,
    PersistenceError) failures are raised to the caller. The backfill runs
    without notifications so subscribers are not flooded with old posts.
    """
    document = parse_feed(fetcher.get_bytes(url))
    feed = storage.insert(Feed(url=url, title=document.title, icon=document.icon))
    logger.info("Registered feed %s (%s)", feed.url, feed.id)
    worker.enqueue_sync(SyncScope.single(feed.id), notify=False)
    return feed


def register_push_subscription(storage: Storage, endpoint: str, auth_key: str, p256dh_key: str) -> PushSubscription:
    """Upsert on ``endpoint``. Raises ValueError for keys no message could be encrypted to."""
    validate_subscription_keys(auth_key, p256dh_key)
    subscription = storage.upsert_push_subscription(
        PushSubscription(endpoint=endpoint, auth_key=auth_key, p256dh_key=p256dh_key)
    )
    logger.info("Registered push subscription %s", redact_endpoint(endpoint))
    return subscription
