# paygate/x402/requirements.py
"""
Payment requirement construction and the 402 challenge.

The same configured PaymentOption is rendered two ways:
- advertised in the 402 challenge, valid for CHALLENGE_TIMEOUT_SECONDS
- enforced in the verify/settle envelope, valid for SETTLEMENT_TIMEOUT_SECONDS

maxTimeoutSeconds is metadata for the client and facilitator only; the gate
does not enforce it as a network timeout.
"""
import logging
from typing import Any, Dict, List, Sequence

from starlette.requests import Request
from starlette.responses import JSONResponse

from paygate.x402.amounts import to_minor_units
from paygate.x402.types import PaymentOption, PaymentRequirement, RequirementExtra

logger = logging.getLogger(__name__)

# x402 protocol constants
X402_VERSION = 1
CHALLENGE_TIMEOUT_SECONDS = 180  # 3 minutes
SETTLEMENT_TIMEOUT_SECONDS = 60
CHALLENGE_ERROR = "X-PAYMENT header is required"
DEFAULT_CHALLENGE_DESCRIPTION = "Payment required for access"


def resource_url(request: Request) -> str:
    """Absolute URL of the requested resource: scheme://host + path, no query."""
    host = request.headers.get("host") or request.url.netloc
    return f"{request.url.scheme}://{host}{request.url.path}"


def build_requirement(
    option: PaymentOption,
    request: Request,
    pay_to: str,
    *,
    include_network: bool = True,
    max_timeout_seconds: int = SETTLEMENT_TIMEOUT_SECONDS,
    default_description: str = "",
) -> PaymentRequirement:
    """
    Build the wire-format requirement for one payment option.

    Args:
        option: The configured payment option
        request: The incoming request, used for the resource URL
        pay_to: Seller address receiving the payment
        include_network: Whether to set 'network'. Facilitators of the signed
            variant identify the chain through the envelope instead.
        max_timeout_seconds: Validity window advertised to the payer
        default_description: Used when the option has no description

    Returns:
        PaymentRequirement; extra.name/version echo the option verbatim
    """
    return PaymentRequirement(
        scheme="exact",
        network=option.network if include_network else None,
        max_amount_required=to_minor_units(option.price),
        resource=resource_url(request),
        description=option.description or default_description,
        mime_type="",
        pay_to=pay_to,
        max_timeout_seconds=max_timeout_seconds,
        asset=option.token,
        output_schema={},
        extra=RequirementExtra(name=option.usdc_name, version=option.usdc_version),
    )


def build_challenge(
    options: Sequence[PaymentOption],
    request: Request,
    pay_to: str,
    error_message: str = CHALLENGE_ERROR,
) -> Dict[str, Any]:
    """
    Build the 402 challenge body: one requirement per option, in declaration order.
    """
    accepts: List[Dict[str, Any]] = [
        build_requirement(
            option,
            request,
            pay_to,
            include_network=True,
            max_timeout_seconds=CHALLENGE_TIMEOUT_SECONDS,
            default_description=DEFAULT_CHALLENGE_DESCRIPTION,
        ).to_dict()
        for option in options
    ]
    return {
        "x402Version": X402_VERSION,
        "error": error_message,
        "accepts": accepts,
    }


def create_challenge_response(
    options: Sequence[PaymentOption],
    request: Request,
    pay_to: str,
    error_message: str = CHALLENGE_ERROR,
) -> JSONResponse:
    """Create an HTTP 402 Payment Required response listing every accepted option."""
    body = build_challenge(options, request, pay_to, error_message)
    logger.debug(f"x402: Challenge for {request.url.path} offers {len(body['accepts'])} option(s)")
    return JSONResponse(status_code=402, content=body)
