# paygate/x402/gate.py
"""
The settlement gate: the per-request payment state machine.

    NoPayment -> Challenged                                   (402 challenge)
    PaymentPresented -> Decoding -> DecodeFailed              (400)
                                 -> Decoded -> Verifying -> VerificationRejected (402)
                                                         -> Verified -> Executing
    Executing -> HandlerFailed                                (handler response, unchanged)
              -> HandlerSucceeded -> Settling -> SettleRejected (402, handler response dropped)
                                              -> Settled      (handler response + X-PAYMENT-RESPONSE)

The protected handler's response is captured into a HeldResponse and only
released once the settlement outcome is known, so a late settlement failure
can still replace it. Settlement is attempted only after a valid verification
and a handler status below the failure threshold.
"""
import base64
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from typing import Awaitable, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from starlette.concurrency import run_in_threadpool
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from paygate.x402.audit import PaymentAuditLog, PaymentEventType, generate_request_id
from paygate.x402.claims import decode_claim
from paygate.x402.errors import (
    ConfigurationError,
    PaymentGateError,
    SettlementFailed,
    VerificationInvalid,
)
from paygate.x402.facilitator import (
    DEFAULT_TIMEOUT_SECONDS,
    FacilitatorAdapter,
    FacilitatorBindings,
    create_facilitator,
    resolve_binding,
)
from paygate.x402.requirements import build_requirement, create_challenge_response
from paygate.x402.routes import normalize_routes
from paygate.x402.types import FacilitatorBinding, PaymentOption

logger = logging.getLogger(__name__)

X_PAYMENT_HEADER = "X-PAYMENT"
X_PAYMENT_RESPONSE_HEADER = "X-PAYMENT-RESPONSE"
HANDLER_FAILURE_THRESHOLD = 400

CallNext = Callable[[Request], Awaitable[Response]]
RouteOptions = Mapping[str, Union[PaymentOption, Sequence[PaymentOption]]]


class GateState(Enum):
    """States of the payment state machine."""
    PASSTHROUGH = "passthrough"
    NO_PAYMENT = "no_payment"
    CHALLENGED = "challenged"
    PAYMENT_PRESENTED = "payment_presented"
    DECODING = "decoding"
    DECODE_FAILED = "decode_failed"
    DECODED = "decoded"
    VERIFYING = "verifying"
    VERIFICATION_REJECTED = "verification_rejected"
    VERIFIED = "verified"
    EXECUTING = "executing"
    HANDLER_FAILED = "handler_failed"
    HANDLER_SUCCEEDED = "handler_succeeded"
    SETTLING = "settling"
    SETTLE_REJECTED = "settle_rejected"
    SETTLED = "settled"
    FAILED = "failed"


@dataclass
class GateResult:
    """Terminal state and the one response handed to the transport."""
    state: GateState
    response: Response
    trail: List[GateState] = field(default_factory=list)


@dataclass
class HeldResponse:
    """A fully buffered handler response that has not been sent yet."""
    status_code: int
    body: bytes
    raw_headers: List[Tuple[bytes, bytes]]

    @classmethod
    async def capture(cls, response: Response) -> "HeldResponse":
        """Drain the handler response into memory without sending it."""
        body_iterator = getattr(response, "body_iterator", None)
        if body_iterator is not None:
            body = b""
            async for chunk in body_iterator:
                body += chunk if isinstance(chunk, bytes) else chunk.encode("utf-8")
        else:
            body = response.body
        return cls(
            status_code=response.status_code,
            body=body,
            raw_headers=list(response.raw_headers),
        )

    def release(self, extra_headers: Optional[Dict[str, str]] = None) -> Response:
        """Rebuild the response, optionally adding headers."""
        response = Response(content=self.body, status_code=self.status_code)
        response.raw_headers = list(self.raw_headers)
        for name, value in (extra_headers or {}).items():
            response.headers[name] = value
        return response


def encode_payment_response(tx_hash: Optional[str]) -> str:
    """
    Encode the X-PAYMENT-RESPONSE header value.

    Returns:
        Base64 of the compact JSON {"settled":true,"txHash":...}
    """
    payload = json.dumps({"settled": True, "txHash": tx_hash or ""}, separators=(",", ":"))
    return base64.b64encode(payload.encode("utf-8")).decode("ascii")


def internal_error_response(details: str) -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "details": details},
    )


class SettlementGate:
    """
    Gates configured routes behind the x402 challenge/verify/settle flow.

    Args:
        pay_to: Seller address receiving payments
        routes: Route path -> payment option(s), matched by exact path
        facilitators: One binding for all networks, or a per-network mapping
        audit: Sink for payment events
        failure_threshold: Handler statuses at or above this are failures
        facilitator_timeout: Transport timeout for facilitator calls
        facilitator_factory: Builds the adapter for a resolved binding
    """

    def __init__(
        self,
        pay_to: str,
        routes: RouteOptions,
        facilitators: FacilitatorBindings,
        audit: Optional[PaymentAuditLog] = None,
        failure_threshold: int = HANDLER_FAILURE_THRESHOLD,
        facilitator_timeout: float = DEFAULT_TIMEOUT_SECONDS,
        facilitator_factory: Optional[Callable[[FacilitatorBinding], FacilitatorAdapter]] = None,
    ):
        self.pay_to = pay_to
        self.routes: Dict[str, Tuple[PaymentOption, ...]] = normalize_routes(routes)
        self.facilitators = facilitators
        self.audit = audit or PaymentAuditLog()
        self.failure_threshold = failure_threshold
        self.facilitator_factory = facilitator_factory or partial(
            create_facilitator, timeout=facilitator_timeout
        )

    def options_for(self, path: str) -> Tuple[PaymentOption, ...]:
        """Options configured for an exact path, empty if the path is free."""
        return self.routes.get(path, ())

    async def process(self, request: Request, call_next: CallNext) -> GateResult:
        """Run one request through the state machine."""
        path = request.url.path
        options = self.options_for(path)
        if not options:
            return GateResult(GateState.PASSTHROUGH, await call_next(request), [GateState.PASSTHROUGH])

        request_id = generate_request_id()
        trail: List[GateState] = []

        def finish(state: GateState, response: Response) -> GateResult:
            trail.append(state)
            return GateResult(state, response, trail)

        payment_header = request.headers.get(X_PAYMENT_HEADER)
        if not payment_header:
            trail.append(GateState.NO_PAYMENT)
            self.audit.record(
                PaymentEventType.CHALLENGE_SENT,
                {"path": path, "options": [option.network for option in options]},
                request_id=request_id,
            )
            return finish(GateState.CHALLENGED, create_challenge_response(options, request, self.pay_to))

        trail.extend([GateState.PAYMENT_PRESENTED, GateState.DECODING])
        try:
            claim, option = decode_claim(payment_header, options)
        except PaymentGateError as e:
            self.audit.record(
                PaymentEventType.DECODE_FAILED,
                {"path": path, "error_type": type(e).__name__, "details": e.details},
                request_id=request_id,
            )
            return finish(GateState.DECODE_FAILED, e.to_response())
        except Exception as e:
            logger.exception(f"x402: Unexpected error decoding payment for {path}")
            self.audit.record(PaymentEventType.ERROR, {"path": path, "stage": "decode", "details": str(e)}, request_id=request_id)
            return finish(GateState.FAILED, internal_error_response(str(e)))

        trail.append(GateState.DECODED)
        self.audit.record(
            PaymentEventType.PAYMENT_RECEIVED,
            {"path": path, "network": option.network},
            request_id=request_id,
        )

        trail.append(GateState.VERIFYING)
        try:
            binding = resolve_binding(option.network, self.facilitators)
            facilitator = self.facilitator_factory(binding)
            requirement = build_requirement(option, request, self.pay_to)
            envelope = facilitator.build_envelope(claim, requirement, option)
            verify_result = await run_in_threadpool(facilitator.verify, envelope)
        except ConfigurationError as e:
            self.audit.record(
                PaymentEventType.CONFIGURATION_ERROR,
                {"path": path, "network": option.network, "details": e.details},
                request_id=request_id,
            )
            return finish(GateState.FAILED, e.to_response())
        except PaymentGateError as e:
            self.audit.record(
                PaymentEventType.VERIFICATION_REJECTED,
                {"path": path, "network": option.network, "error_type": type(e).__name__, "details": e.details},
                request_id=request_id,
            )
            return finish(GateState.VERIFICATION_REJECTED, e.to_response())
        except Exception as e:
            logger.exception(f"x402: Unexpected error verifying payment for {path}")
            self.audit.record(PaymentEventType.ERROR, {"path": path, "stage": "verify", "details": str(e)}, request_id=request_id)
            return finish(GateState.FAILED, internal_error_response(str(e)))

        if not verify_result.valid:
            reason = verify_result.reason or "Payment verification failed"
            self.audit.record(
                PaymentEventType.VERIFICATION_REJECTED,
                {"path": path, "network": option.network, "error_type": "VerificationInvalid", "details": reason},
                request_id=request_id,
            )
            return finish(GateState.VERIFICATION_REJECTED, VerificationInvalid(reason).to_response())

        trail.append(GateState.VERIFIED)
        self.audit.record(
            PaymentEventType.PAYMENT_VERIFIED,
            {"path": path, "network": option.network, "variant": binding.variant},
            request_id=request_id,
        )

        trail.append(GateState.EXECUTING)
        held = await HeldResponse.capture(await call_next(request))

        if held.status_code >= self.failure_threshold:
            self.audit.record(
                PaymentEventType.HANDLER_FAILED,
                {"path": path, "status_code": held.status_code},
                request_id=request_id,
            )
            return finish(GateState.HANDLER_FAILED, held.release())

        trail.extend([GateState.HANDLER_SUCCEEDED, GateState.SETTLING])
        try:
            settle_result = await run_in_threadpool(facilitator.settle, envelope)
        except PaymentGateError as e:
            failure = SettlementFailed(e.details)
        except Exception as e:
            logger.exception(f"x402: Unexpected error settling payment for {path}")
            failure = SettlementFailed(str(e), error="Payment settlement error")
        else:
            if settle_result.success:
                self.audit.record(
                    PaymentEventType.PAYMENT_SETTLED,
                    {"path": path, "network": option.network, "tx_hash": settle_result.tx_hash},
                    request_id=request_id,
                )
                return finish(
                    GateState.SETTLED,
                    held.release({X_PAYMENT_RESPONSE_HEADER: encode_payment_response(settle_result.tx_hash)}),
                )
            failure = SettlementFailed(settle_result.reason or "Settlement unsuccessful")

        self.audit.record(
            PaymentEventType.SETTLEMENT_FAILED,
            {"path": path, "network": option.network, "details": failure.details,
             "discarded_status": held.status_code},
            request_id=request_id,
        )
        return finish(GateState.SETTLE_REJECTED, failure.to_response())
