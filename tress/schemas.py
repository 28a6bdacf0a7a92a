"""
Pydantic models for API request bodies.
"""
from __future__ import annotations

from typing import List, Optional
from urllib.parse import urlsplit

from pydantic import BaseModel, field_validator, model_validator

from tress.push.client import validate_subscription_keys


def _http_url(value: str) -> str:
    # kept verbatim: push endpoints are capabilities and must not be normalised
    value = (value or "").strip()
    parts = urlsplit(value)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise ValueError("must be an absolute http(s) URL")
    return value


class CreateFeedRequest(BaseModel):
    url: str

    @field_validator("url")
    @classmethod
    def _check_url(cls, value: str) -> str:
        return _http_url(value)


class SubscriptionKeys(BaseModel):
    auth: str
    p256dh: str

    @field_validator("auth", "p256dh")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = (value or "").strip()
        if not value:
            raise ValueError("key must not be empty")
        return value

    @model_validator(mode="after")
    def _check_key_material(self) -> "SubscriptionKeys":
        validate_subscription_keys(self.auth, self.p256dh)
        return self


class BrowserSubscription(BaseModel):
    endpoint: str
    keys: SubscriptionKeys

    @field_validator("endpoint")
    @classmethod
    def _check_endpoint(cls, value: str) -> str:
        return _http_url(value)


class PushSubscriptionRequest(BaseModel):
    subscription: BrowserSubscription
    encodings: List[str] = []


class SyncTriggerRequest(BaseModel):
    feed_id: Optional[str] = None
    notify: bool = False
