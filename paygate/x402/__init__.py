# paygate/x402/__init__.py
"""
x402 Payment Protocol gate.

This module puts HTTP routes behind the x402 challenge/verify/settle flow:
callers without a payment get a 402 listing the accepted payment options,
callers presenting a signed payment claim have it verified by a facilitator,
and the payment is settled only after the protected handler succeeded.

Key components:
- amounts: decimal price to minor-unit conversion
- requirements: payment requirements and the 402 challenge
- claims: X-PAYMENT header decoding and option selection
- signing: HMAC request signing for the signed facilitator variant
- facilitator: standard and signed facilitator adapters
- gate: the per-request settlement state machine
- middleware: FastAPI/Starlette middleware wrapping the gate
- audit: payment event logging

Configuration is loaded from environment variables via paygate.core.config.
"""
from paygate.x402.audit import PaymentAuditLog, PaymentEventType
from paygate.x402.errors import (
    ConfigurationError,
    DecodeError,
    FacilitatorRejected,
    FacilitatorUnreachable,
    PaymentGateError,
    SelectionError,
    SettlementFailed,
    UnsupportedNetworkError,
    VerificationInvalid,
)
from paygate.x402.facilitator import (
    FacilitatorAdapter,
    SignedFacilitator,
    StandardFacilitator,
    create_facilitator,
)
from paygate.x402.gate import GateResult, GateState, SettlementGate
from paygate.x402.types import (
    FacilitatorBinding,
    FacilitatorCredentials,
    PaymentOption,
    PaymentRequirement,
    SettleResult,
    VerifyResult,
)

__version__ = "0.1.0"
