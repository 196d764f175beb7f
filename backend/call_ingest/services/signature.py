import hashlib
import hmac
import logging
import re
import time
from typing import Optional

from ..errors import AuthenticationError

logger = logging.getLogger(__name__)

_HEADER_RE = re.compile(r"t=(\d+),\s*v0=([a-f0-9]+)", re.IGNORECASE)


def sign(raw_body: bytes, secret: str, timestamp: int) -> str:
    """Build a signature header the way the provider does. Used by tests and local tooling."""
    mac = hmac.new(secret.encode(), f"{timestamp}.".encode() + raw_body, hashlib.sha256).hexdigest()
    return f"t={timestamp},v0={mac}"


def verify_signature(raw_body: bytes, header: Optional[str], secret: str, tolerance_seconds: int = 1800, now: Optional[float] = None) -> int:
    """Check an `elevenlabs-signature` header against the raw request body.

    The digest is HMAC-SHA256 over ``"<timestamp>.<body>"``. Returns the signed
    timestamp, or raises AuthenticationError when the header is missing or
    malformed, the timestamp is outside the replay window, or the digest does
    not match.
    """
    if not secret:
        raise AuthenticationError("webhook secret not configured")
    if not header:
        raise AuthenticationError("missing signature header")
    m = _HEADER_RE.search(header)
    if not m:
        raise AuthenticationError("malformed signature header")

    ts = int(m.group(1))
    current = time.time() if now is None else now
    if ts <= current - tolerance_seconds:
        raise AuthenticationError("stale signature")
    if ts > current + tolerance_seconds:
        raise AuthenticationError("signature timestamp in the future")

    expected = hmac.new(secret.encode(), f"{ts}.".encode() + raw_body, hashlib.sha256).hexdigest()
    if not hmac.compare_digest(expected, m.group(2).lower()):
        raise AuthenticationError("signature mismatch")
    return ts
