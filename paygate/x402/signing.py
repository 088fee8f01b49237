# paygate/x402/signing.py
"""
Request signing for the signed facilitator variant.

Each request carries an HMAC-SHA256 signature over
``timestamp + method + requestPath + body``, keyed with the API secret and
base64-encoded. The body must be the exact string sent on the wire.
"""
import base64
import hashlib
import hmac
from datetime import datetime, timezone
from typing import Dict, Optional

from paygate.x402.types import FacilitatorCredentials

ACCESS_KEY_HEADER = "OK-ACCESS-KEY"
ACCESS_SIGN_HEADER = "OK-ACCESS-SIGN"
ACCESS_TIMESTAMP_HEADER = "OK-ACCESS-TIMESTAMP"
ACCESS_PASSPHRASE_HEADER = "OK-ACCESS-PASSPHRASE"
ACCESS_PROJECT_HEADER = "OK-ACCESS-PROJECT"


def iso_timestamp(now: Optional[datetime] = None) -> str:
    """UTC timestamp with millisecond precision, e.g. 2024-01-01T12:00:00.000Z."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def sign_request(timestamp: str, method: str, request_path: str, body: str, secret_key: str) -> str:
    """Return the base64 HMAC-SHA256 signature of the prehash string."""
    prehash = f"{timestamp}{method.upper()}{request_path}{body}"
    digest = hmac.new(secret_key.encode("utf-8"), prehash.encode("utf-8"), hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def build_signed_headers(
    credentials: FacilitatorCredentials,
    method: str,
    request_path: str,
    body: str,
    timestamp: Optional[str] = None,
) -> Dict[str, str]:
    """
    Build the authentication headers for one signed facilitator request.

    Args:
        credentials: API key, secret, passphrase and optional project id
        method: HTTP method, e.g. "POST"
        request_path: Path part of the URL, e.g. "/api/v6/x402/verify"
        body: Exact request body that will be sent
        timestamp: Override for the signing timestamp

    Returns:
        Headers including Content-Type and the OK-ACCESS-* set
    """
    timestamp = timestamp or iso_timestamp()
    headers = {
        "Content-Type": "application/json",
        ACCESS_KEY_HEADER: credentials.api_key,
        ACCESS_SIGN_HEADER: sign_request(timestamp, method, request_path, body, credentials.secret_key),
        ACCESS_TIMESTAMP_HEADER: timestamp,
        ACCESS_PASSPHRASE_HEADER: credentials.passphrase,
    }
    if credentials.project:
        headers[ACCESS_PROJECT_HEADER] = credentials.project
    return headers
