"""
Web Push delivery: encrypt a JSON payload to one subscriber and classify the outcome.
"""
from __future__ import annotations

import base64
import json
import logging
import os
from typing import Any, Optional

import requests
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from py_vapid import Vapid01, VapidException
from pywebpush import WebPushException, webpush

from tress.errors import DeliveryError
from tress.models import DeliveryResult, PushSubscription
from tress.utils.security import redact_endpoint

logger = logging.getLogger(__name__)

GONE = 410
AUTH_SECRET_BYTES = 16


def load_vapid(value: Optional[str]) -> Optional[Vapid01]:
    """Load the VAPID signing key from a PEM/DER file or a base64url string."""
    if not value:
        return None
    if os.path.isfile(value):
        return Vapid01.from_file(private_key_file=value)
    return Vapid01.from_string(private_key=value)


def _b64url_decode(value: str) -> bytes:
    value = value.strip()
    return base64.urlsafe_b64decode(value + "=" * (-len(value) % 4))


def validate_subscription_keys(auth: str, p256dh: str) -> None:
    """Raise ValueError unless the keys can be used to encrypt a message."""
    try:
        auth_raw = _b64url_decode(auth)
        p256dh_raw = _b64url_decode(p256dh)
    except ValueError as exc:
        raise ValueError(f"keys are not base64url: {exc}") from exc
    if len(auth_raw) != AUTH_SECRET_BYTES:
        raise ValueError(f"auth secret must be {AUTH_SECRET_BYTES} bytes, got {len(auth_raw)}")
    try:
        ec.EllipticCurvePublicKey.from_encoded_point(ec.SECP256R1(), p256dh_raw)
    except ValueError as exc:
        raise ValueError("p256dh is not a P-256 public key") from exc


def check_vapid_subject(vapid: Vapid01, subject: str) -> None:
    """Raise ValueError when push services would reject claims with this ``sub``."""
    try:
        vapid.sign({"sub": subject, "aud": "https://localhost"})
    except VapidException as exc:
        raise ValueError(f"invalid VAPID subject {subject!r}: {exc}") from exc


def application_server_key(vapid: Vapid01) -> str:
    """Public key as the base64url uncompressed point browsers expect."""
    raw = vapid.public_key.public_bytes(
        encoding=serialization.Encoding.X962,
        format=serialization.PublicFormat.UncompressedPoint,
    )
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


class PushClient:
    def __init__(
        self,
        vapid: Vapid01,
        subject: str,
        ttl: int = 86400,
        timeout: float = 10,
        session: Optional[requests.Session] = None,
    ) -> None:
        check_vapid_subject(vapid, subject)
        self.vapid = vapid
        self.subject = subject
        self.ttl = ttl
        self.timeout = timeout
        self.session = session

    def send(self, subscription: PushSubscription, payload: Any) -> DeliveryResult:
        endpoint = redact_endpoint(subscription.endpoint)
        try:
            webpush(
                subscription_info=subscription.subscription_info(),
                data=json.dumps(payload),
                vapid_private_key=self.vapid,
                # webpush fills in aud/exp on the dict it is given
                vapid_claims={"sub": self.subject},
                ttl=self.ttl,
                timeout=self.timeout,
                requests_session=self.session,
            )
        except WebPushException as exc:
            status = exc.response.status_code if exc.response is not None else None
            if status == GONE:
                logger.info("Push endpoint %s is gone", endpoint)
                return DeliveryResult.SUBSCRIPTION_INVALID
            raise DeliveryError(f"push to {endpoint} failed with HTTP {status}", status_code=status) from exc
        except requests.RequestException as exc:
            raise DeliveryError(f"push to {endpoint} failed: {exc}") from exc
        except (VapidException, ValueError) as exc:
            # malformed subscription keys or signing claims
            raise DeliveryError(f"push to {endpoint} could not be prepared: {exc}") from exc
        logger.debug("Delivered push to %s", endpoint)
        return DeliveryResult.DELIVERED
