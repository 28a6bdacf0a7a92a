import re
from urllib.parse import urlsplit


def redact_secrets(text: str) -> str:
    """Redact common secret patterns from logs and error strings."""
    if not isinstance(text, str):
        return text

    redacted = text

    # Query params like apiKey=, apikey=, api_key=, key=, token=, secret=
    redacted = re.sub(r"(?i)(api[_-]?key|key|token|secret)=([^&\s]+)", r"\1=***REDACTED***", redacted)

    # Authorization: vapid t=<jwt>, k=<key> / Bearer <token>
    redacted = re.sub(r"(?i)Authorization:\s*(vapid|WebPush|Bearer)\s+\S+", r"Authorization: \1 ***REDACTED***", redacted)

    return redacted


def redact_endpoint(endpoint: str) -> str:
    """Keep only the push service host of a subscription endpoint.

    The endpoint path is a capability: anyone holding it can address the device.
    """
    if not endpoint:
        return endpoint
    parts = urlsplit(endpoint)
    if not parts.netloc:
        return "***"
    return f"{parts.scheme}://{parts.netloc}/***"
