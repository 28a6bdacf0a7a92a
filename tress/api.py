"""API routes for Tress."""
from __future__ import annotations

import dataclasses
import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from flask import jsonify, request
from pydantic import ValidationError

from tress.errors import ConflictError, ParseError, PersistenceError, TransportError
from tress.models import Feed, Post, SyncScope
from tress.parsers.feed import parse_timestamp
from tress.push.client import application_server_key
from tress.registration import register_feed, register_push_subscription
from tress.schemas import CreateFeedRequest, PushSubscriptionRequest, SyncTriggerRequest

if TYPE_CHECKING:
    from tress.app import AppContext

logger = logging.getLogger(__name__)


def _error(message: str, status: int):
    return jsonify({"message": message}), status


def _published_at(post: Post) -> datetime:
    # offsets differ between feed dates (UTC) and sync-time fallbacks (local)
    try:
        return parse_timestamp(post.publish_time)
    except ValueError:
        return datetime.min.replace(tzinfo=timezone.utc)


def register_routes(app, context: "AppContext") -> None:
    """Register all API routes with the Flask app.

    Args:
        app: Flask app instance.
        context: Shared storage, fetcher, worker and VAPID credential.
    """

    @app.route("/api/config")
    def api_config():
        public_key = application_server_key(context.vapid) if context.vapid else None
        return jsonify({"vapid": {"public_key": public_key}})

    @app.route("/api/feeds")
    def api_list_feeds():
        try:
            feeds = context.storage.find_all(Feed)
        except PersistenceError as exc:
            logger.error("Listing feeds failed: %s", exc)
            return _error("failed to load feeds", 500)
        return jsonify([dataclasses.asdict(feed) for feed in feeds])

    @app.route("/api/feeds", methods=["POST"])
    def api_add_feed():
        try:
            body = CreateFeedRequest.model_validate(request.get_json(silent=True) or {})
        except ValidationError as exc:
            return _error(f"invalid request: {exc.errors()[0]['msg']}", 400)

        url = str(body.url)
        try:
            feed = register_feed(context.storage, context.fetcher, context.worker, url)
        except ConflictError:
            return _error("feed already registered", 409)
        except (TransportError, ParseError) as exc:
            logger.warning("Rejected feed %s: %s", url, exc)
            return _error(f"could not load feed: {exc}", 422)
        except PersistenceError as exc:
            logger.error("Storing feed %s failed: %s", url, exc)
            return _error("failed to store feed", 500)
        return jsonify(dataclasses.asdict(feed)), 201

    @app.route("/api/feeds/<feed_id>")
    def api_get_feed(feed_id: str):
        try:
            feed = context.storage.find_by_id(Feed, feed_id)
        except PersistenceError as exc:
            logger.error("Loading feed %s failed: %s", feed_id, exc)
            return _error("failed to load feed", 500)
        if feed is None:
            return _error("not found", 404)
        return jsonify(dataclasses.asdict(feed))

    @app.route("/api/posts")
    def api_list_posts():
        try:
            posts = context.storage.find_all(Post)
        except PersistenceError as exc:
            logger.error("Listing posts failed: %s", exc)
            return _error("failed to load posts", 500)
        posts.sort(key=_published_at, reverse=True)
        return jsonify([dataclasses.asdict(post) for post in posts])

    @app.route("/api/posts/<post_id>")
    def api_get_post(post_id: str):
        try:
            post = context.storage.find_by_id(Post, post_id)
        except PersistenceError as exc:
            logger.error("Loading post %s failed: %s", post_id, exc)
            return _error("failed to load post", 500)
        if post is None:
            return _error("not found", 404)
        return jsonify(dataclasses.asdict(post))

    @app.route("/api/push_subscriptions", methods=["POST"])
    def api_add_push_subscription():
        try:
            body = PushSubscriptionRequest.model_validate(request.get_json(silent=True) or {})
        except ValidationError as exc:
            return _error(f"invalid request: {exc.errors()[0]['msg']}", 400)

        subscription = body.subscription
        try:
            stored = register_push_subscription(
                context.storage,
                endpoint=str(subscription.endpoint),
                auth_key=subscription.keys.auth,
                p256dh_key=subscription.keys.p256dh,
            )
        except PersistenceError as exc:
            logger.error("Storing push subscription failed: %s", exc)
            return _error("failed to store subscription", 500)
        return jsonify({"id": stored.id}), 201

    @app.route("/api/sync", methods=["POST"])
    def api_trigger_sync():
        try:
            body = SyncTriggerRequest.model_validate(request.get_json(silent=True) or {})
        except ValidationError as exc:
            return _error(f"invalid request: {exc.errors()[0]['msg']}", 400)
        scope = SyncScope.single(body.feed_id) if body.feed_id else SyncScope.all_feeds()
        context.worker.enqueue_sync(scope, notify=body.notify)
        return jsonify({"status": "queued", "scope": str(scope)}), 202

    @app.errorhandler(404)
    def not_found(_exc):
        return _error("not found", 404)
