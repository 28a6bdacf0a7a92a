"""Application wiring for Tress: one explicit context shared by the API and the worker."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from flask import Flask
from py_vapid import Vapid01

from tress.infra.http import HttpFetcher
from tress.infra.retry import RetryPolicy
from tress.pipelines.enrich import ThumbnailEnricher
from tress.pipelines.ingest import PostIngestor
from tress.pipelines.store import Storage
from tress.push.client import PushClient, load_vapid
from tress.schedulers.aps import build_scheduler
from tress.schedulers.worker import SyncWorker
from tress.settings import TressSettings

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    settings: TressSettings
    storage: Storage
    fetcher: HttpFetcher
    worker: SyncWorker
    scheduler: BackgroundScheduler
    vapid: Optional[Vapid01] = None

    def start(self) -> None:
        self.worker.start()
        self.scheduler.start()

    def shutdown(self, timeout: Optional[float] = 30) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        self.worker.stop(timeout)


def build_context(settings: TressSettings, storage: Optional[Storage] = None) -> AppContext:
    storage = storage or Storage(settings.database_url)
    fetcher = HttpFetcher(user_agent=settings.user_agent, timeout=settings.http_timeout)
    policy = RetryPolicy(
        max_attempts=settings.retry_attempts,
        base_delay=settings.retry_base_delay,
        multiplier=settings.retry_multiplier,
        max_delay=settings.retry_max_delay,
        jitter=settings.retry_jitter,
    )

    vapid = load_vapid(settings.vapid_private_key)
    push_client = None
    if vapid is not None:
        try:
            push_client = PushClient(vapid, subject=settings.vapid_subject, ttl=settings.push_ttl)
        except ValueError as exc:
            logger.error("TRESS_VAPID_SUBJECT is unusable; push notifications are disabled: %s", exc)
    else:
        logger.warning("TRESS_VAPID_PRIVATE_KEY is not set; push notifications are disabled")

    ingestor = PostIngestor(storage, enricher=ThumbnailEnricher(fetcher, policy), push_client=push_client)
    worker = SyncWorker(storage, fetcher, ingestor)
    scheduler = build_scheduler(worker, settings.sync_interval_seconds)
    return AppContext(
        settings=settings,
        storage=storage,
        fetcher=fetcher,
        worker=worker,
        scheduler=scheduler,
        vapid=vapid,
    )


def create_app(context: AppContext) -> Flask:
    app = Flask(__name__)

    from tress.api import register_routes

    register_routes(app, context)
    return app
