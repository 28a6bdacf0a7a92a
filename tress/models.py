"""
Core data structures shared by the feed pipeline.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional


def new_id() -> str:
    return str(uuid.uuid4())


@dataclass
class Feed:
    url: str
    title: str = ""
    icon: Optional[str] = None
    thumbnail: Optional[str] = None
    id: str = field(default_factory=new_id)


@dataclass
class Post:
    """
    A single entry discovered in a feed. ``url`` is the dedup key.
    """

    feed_id: str
    url: str
    title: str
    publish_time: str
    description: Optional[str] = None
    content: Optional[str] = None
    thumbnail: Optional[str] = None
    id: str = field(default_factory=new_id)


@dataclass
class PushSubscription:
    endpoint: str
    auth_key: str
    p256dh_key: str
    id: Optional[int] = None

    def subscription_info(self) -> Dict[str, object]:
        """Shape expected by the Web Push encryption helpers."""
        return {
            "endpoint": self.endpoint,
            "keys": {"auth": self.auth_key, "p256dh": self.p256dh_key},
        }


@dataclass(frozen=True)
class SyncScope:
    feed_id: Optional[str] = None

    @classmethod
    def all_feeds(cls) -> "SyncScope":
        return cls()

    @classmethod
    def single(cls, feed_id: str) -> "SyncScope":
        return cls(feed_id=feed_id)

    @property
    def is_all(self) -> bool:
        return self.feed_id is None

    def __str__(self) -> str:
        return "all" if self.is_all else f"feed:{self.feed_id}"


@dataclass(frozen=True)
class SyncRequest:
    scope: SyncScope
    notify: bool = False


class DeliveryResult(str, Enum):
    DELIVERED = "delivered"
    SUBSCRIPTION_INVALID = "subscription-invalid"


@dataclass
class IngestResult:
    total: int = 0
    inserted: int = 0
    duplicates: int = 0
    failed: int = 0
    skipped: int = 0
    notified: int = 0
