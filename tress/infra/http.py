"""
Reusable HTTP fetching utilities with polite defaults.
"""
from __future__ import annotations

import logging
import threading
from typing import Dict, Optional

import requests

from tress.errors import TransportError
from tress.utils.security import redact_secrets

logger = logging.getLogger(__name__)


class HttpFetcher:
    """
    Thin wrapper over requests.Session that turns every network failure into a TransportError.

    The worker thread and the HTTP request threads share one fetcher, so unless
    a session is injected each thread lazily gets its own requests.Session.
    """

    def __init__(
        self,
        user_agent: str,
        timeout: int = 15,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.headers: Dict[str, str] = {
            "User-Agent": user_agent,
            "Accept": "application/atom+xml,application/rss+xml,text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.8",
        }
        self.timeout = timeout
        self._shared = session
        if session is not None:
            session.headers.update(self.headers)
        self._local = threading.local()

    @property
    def session(self) -> requests.Session:
        if self._shared is not None:
            return self._shared
        session = getattr(self._local, "session", None)
        if session is None:
            session = requests.Session()
            session.headers.update(self.headers)
            self._local.session = session
        return session

    def get(self, url: str) -> requests.Response:
        try:
            response = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as exc:
            raise TransportError(f"GET {redact_secrets(url)} failed: {redact_secrets(str(exc))}") from exc
        if response.status_code >= 400:
            raise TransportError(
                f"GET {redact_secrets(url)} returned HTTP {response.status_code}",
                status_code=response.status_code,
            )
        logger.debug("GET %s -> %s (%d bytes)", redact_secrets(url), response.status_code, len(response.content))
        return response

    def get_bytes(self, url: str) -> bytes:
        return self.get(url).content

    def get_text(self, url: str) -> str:
        return self.get(url).text
