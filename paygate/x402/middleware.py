# paygate/x402/middleware.py
"""
FastAPI middleware for x402 payment gating.

This module provides HTTP middleware that:
1. Passes everything through when X402_ENABLED is false
2. Passes through paths with no configured payment options
3. Hands protected requests to the SettlementGate, which challenges,
   verifies, runs the handler, settles and decides the final response
"""
import logging
from typing import Callable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from paygate.core.config import Settings, settings
from paygate.x402.audit import PaymentAuditLog
from paygate.x402.facilitator import FacilitatorBindings
from paygate.x402.gate import GateState, RouteOptions, SettlementGate
from paygate.x402.routes import bindings_from_settings, routes_from_settings

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


def gate_from_settings(
    config: Settings,
    pay_to: Optional[str] = None,
    routes: Optional[RouteOptions] = None,
    facilitators: Optional[FacilitatorBindings] = None,
    audit: Optional[PaymentAuditLog] = None,
) -> SettlementGate:
    """
    Build a SettlementGate, filling in whatever is not given from settings.

    Facilitator bindings are only required when some route is protected.

    Raises:
        ConfigurationError: On invalid route or facilitator configuration
    """
    pay_to = pay_to or config.X402_PAY_TO_ADDRESS
    if not pay_to:
        logger.warning("X402_PAY_TO_ADDRESS not configured")
        pay_to = ZERO_ADDRESS

    if routes is None:
        routes = routes_from_settings(config)
    if facilitators is None:
        facilitators = bindings_from_settings(config) if routes else {}

    return SettlementGate(
        pay_to=pay_to,
        routes=routes,
        facilitators=facilitators,
        audit=audit or PaymentAuditLog(config.X402_AUDIT_LOG_PATH),
        facilitator_timeout=config.X402_FACILITATOR_TIMEOUT_SECONDS,
    )


class X402Middleware(BaseHTTPMiddleware):
    """
    x402 payment middleware for FastAPI.

    Either pass a ready SettlementGate, or the pieces to build one. Pieces
    left out are loaded from settings on first use. ``enabled`` overrides
    X402_ENABLED.
    """

    def __init__(
        self,
        app,
        gate: Optional[SettlementGate] = None,
        pay_to: Optional[str] = None,
        routes: Optional[RouteOptions] = None,
        facilitators: Optional[FacilitatorBindings] = None,
        audit: Optional[PaymentAuditLog] = None,
        enabled: Optional[bool] = None,
    ):
        super().__init__(app)
        self._enabled = enabled
        self._gate = gate
        self._pay_to = pay_to
        self._routes = routes
        self._facilitators = facilitators
        self._audit = audit

    @property
    def gate(self) -> SettlementGate:
        """Lazy initialization of the settlement gate."""
        if self._gate is None:
            self._gate = gate_from_settings(
                settings,
                pay_to=self._pay_to,
                routes=self._routes,
                facilitators=self._facilitators,
                audit=self._audit,
            )
        return self._gate

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Response]
    ) -> Response:
        """Process the request through the payment gate."""
        enabled = self._enabled if self._enabled is not None else settings.X402_ENABLED
        if not enabled:
            return await call_next(request)

        result = await self.gate.process(request, call_next)
        if result.state is not GateState.PASSTHROUGH:
            logger.info(
                f"x402: {request.method} {request.url.path} "
                f"-> {result.state.value} ({result.response.status_code})"
            )
        return result.response
