"""
Command line entry points: run the service, or trigger work by hand.
"""
from __future__ import annotations

import json
import os

import click
from dotenv import load_dotenv

from tress.app import build_context, create_app
from tress.errors import TressError
from tress.logging_setup import configure_logging
from tress.models import Feed, SyncScope
from tress.registration import register_feed
from tress.settings import load_settings


@click.group()
@click.pass_context
def cli(ctx: click.Context):
    load_dotenv(os.getenv("TRESS_DOTENV", ".env"))
    settings = load_settings()
    configure_logging(settings)
    ctx.obj = settings


@cli.command()
@click.option("--host", default=None, help="Bind address (defaults to TRESS_HOST).")
@click.option("--port", default=None, type=int, help="Port (defaults to TRESS_PORT).")
@click.pass_obj
def serve(settings, host, port):
    """Run the HTTP API together with the sync worker and the hourly timer."""
    context = build_context(settings)
    app = create_app(context)
    context.start()
    try:
        app.run(host=host or settings.host, port=port or settings.port, threaded=True, use_reloader=False)
    finally:
        context.shutdown()


@cli.command()
@click.option("--feed-id", default=None, help="Only sync this feed.")
@click.option("--notify/--no-notify", default=False, help="Push new posts to subscribers.")
@click.pass_obj
def sync(settings, feed_id, notify):
    """Run one sync in the foreground and exit."""
    context = build_context(settings)
    scope = SyncScope.single(feed_id) if feed_id else SyncScope.all_feeds()
    context.worker.start()
    context.worker.enqueue_sync(scope, notify=notify)
    context.worker.join()
    context.worker.stop(timeout=5)


@cli.command("add-feed")
@click.argument("url")
@click.pass_obj
def add_feed(settings, url):
    """Register a feed and backfill its posts."""
    context = build_context(settings)
    try:
        feed = register_feed(context.storage, context.fetcher, context.worker, url)
    except TressError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Registered {feed.title or feed.url} ({feed.id}); backfilling...")
    context.worker.start()
    context.worker.join()
    context.worker.stop(timeout=5)


@cli.command()
@click.pass_obj
def feeds(settings):
    """List registered feeds as JSON lines."""
    context = build_context(settings)
    for feed in context.storage.find_all(Feed):
        click.echo(json.dumps({"id": feed.id, "url": feed.url, "title": feed.title}, ensure_ascii=False))


if __name__ == "__main__":  # pragma: no cover
    cli()
