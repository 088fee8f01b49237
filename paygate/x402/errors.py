# paygate/x402/errors.py
"""
Error taxonomy for the payment gate.

Every failure the gate can surface to a caller is a PaymentGateError carrying
the HTTP status, a short error title and a detail message. None of them are
retried; the gate renders them into the response of the same request.
Failures of the protected handler itself are not errors here: the handler's
response is passed through unchanged.
"""
from typing import Optional

from starlette.responses import JSONResponse


class PaymentGateError(Exception):
    """Base class for failures rendered as JSON error responses."""

    status_code: int = 500
    error: str = "Internal server error"

    def __init__(self, details: str, status_code: Optional[int] = None, error: Optional[str] = None):
        super().__init__(details)
        self.details = details
        if status_code is not None:
            self.status_code = status_code
        if error is not None:
            self.error = error

    def to_response(self) -> JSONResponse:
        """Render as ``{"error": ..., "details": ...}`` with this error's status."""
        return JSONResponse(
            status_code=self.status_code,
            content={"error": self.error, "details": self.details},
        )


class DecodeError(PaymentGateError):
    """The X-PAYMENT header is not base64-encoded UTF-8 JSON."""
    status_code = 400
    error = "Invalid payment"


class SelectionError(PaymentGateError):
    """The claim does not say which payment option it pays for."""
    status_code = 400
    error = "Invalid payment"


class UnsupportedNetworkError(PaymentGateError):
    """The claim names a network the route does not accept."""
    status_code = 400
    error = "Invalid payment"


class ConfigurationError(PaymentGateError):
    """Operator misconfiguration; never the client's fault."""
    status_code = 500
    error = "Internal server error"


class FacilitatorUnreachable(PaymentGateError):
    """The facilitator could not be reached at the transport level."""
    status_code = 402
    error = "Payment verification failed"


class FacilitatorRejected(PaymentGateError):
    """The facilitator answered with a non-2xx status or an unusable body."""
    status_code = 402
    error = "Payment verification failed"

    def __init__(self, details: str, http_status: Optional[int] = None, **kwargs):
        super().__init__(details, **kwargs)
        self.http_status = http_status


class VerificationInvalid(PaymentGateError):
    """The facilitator verified the claim and found it invalid."""
    status_code = 402
    error = "Invalid payment"


class SettlementFailed(PaymentGateError):
    """Settlement did not succeed; overrides the protected handler's result."""
    status_code = 402
    error = "Payment settlement failed"
