"""
Best-effort thumbnail lookup for freshly stored posts.
"""
from __future__ import annotations

import logging
from typing import Optional

from tress.extractors.og import extract_og_image
from tress.infra.http import HttpFetcher
from tress.infra.retry import RetryPolicy
from tress.utils.security import redact_secrets

logger = logging.getLogger(__name__)


class ThumbnailEnricher:
    def __init__(self, fetcher: HttpFetcher, policy: Optional[RetryPolicy] = None) -> None:
        self.fetcher = fetcher
        self.policy = policy or RetryPolicy()

    def fetch_page(self, url: str) -> str:
        """Fetch the page body, retrying transport failures. Raises TransportError when exhausted."""

        def on_retry(attempt: int, delay: float, error: BaseException) -> None:
            logger.warning(
                "Fetching %s failed on attempt %d/%d (%s); retrying in %.2fs",
                redact_secrets(url),
                attempt,
                self.policy.max_attempts,
                error,
                delay,
            )

        return self.policy.call(self.fetcher.get_text, url, on_retry=on_retry)

    def fetch_thumbnail(self, url: str) -> Optional[str]:
        if not url.lower().startswith(("http://", "https://")):
            logger.debug("Skipping thumbnail lookup for non-HTTP url %s", url)
            return None
        html = self.fetch_page(url)
        return extract_og_image(html, base_url=url)
