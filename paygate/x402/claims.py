# paygate/x402/claims.py
"""
Decoding of the X-PAYMENT header.

The header carries a base64-encoded JSON payment claim. Decoding only checks
that the claim is well formed and names one of the route's options through
its 'network' field; whether the claim is actually valid is decided by the
facilitator.
"""
import base64
import binascii
import json
import logging
from typing import Any, Dict, Sequence, Tuple

from paygate.x402.errors import DecodeError, SelectionError, UnsupportedNetworkError
from paygate.x402.types import PaymentOption

logger = logging.getLogger(__name__)


def decode_payment_header(header_value: str) -> Dict[str, Any]:
    """
    Decode the X-PAYMENT header into a claim dictionary.

    Missing base64 padding is tolerated; any other malformation is not.

    Raises:
        DecodeError: On invalid base64, invalid UTF-8, invalid JSON, or a
            JSON value that is not an object.
    """
    value = (header_value or "").strip()
    if not value:
        raise DecodeError("X-PAYMENT header is empty")

    padded = value + "=" * (-len(value) % 4)
    try:
        raw = base64.b64decode(padded, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecodeError(f"X-PAYMENT header is not valid base64: {e}")

    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecodeError(f"X-PAYMENT header is not valid UTF-8: {e}")

    try:
        claim = json.loads(text)
    except json.JSONDecodeError as e:
        raise DecodeError(f"X-PAYMENT header is not valid JSON: {e}")

    if not isinstance(claim, dict):
        raise DecodeError("X-PAYMENT header must encode a JSON object")
    return claim


def select_option(claim: Dict[str, Any], options: Sequence[PaymentOption]) -> PaymentOption:
    """
    Find the configured option the claim pays for.

    Raises:
        SelectionError: If the claim has no 'network' field.
        UnsupportedNetworkError: If no option has the claimed network.
    """
    network = claim.get("network")
    if not network:
        raise SelectionError(
            "Payment payload must include 'network' field to indicate which payment option was chosen"
        )

    for option in options:
        if option.network == network:
            return option

    raise UnsupportedNetworkError(
        f"Network '{network}' is not an accepted payment option for this resource"
    )


def decode_claim(
    header_value: str, options: Sequence[PaymentOption]
) -> Tuple[Dict[str, Any], PaymentOption]:
    """Decode the header and match it against the route's options."""
    claim = decode_payment_header(header_value)
    option = select_option(claim, options)
    logger.debug(f"x402: Claim selects network '{option.network}'")
    return claim, option
