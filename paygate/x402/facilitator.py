# paygate/x402/facilitator.py
"""
Facilitator adapters for payment verification and settlement.

Two protocol variants share one contract, ``verify(envelope)`` and
``settle(envelope)``:

- standard: plain JSON POSTs to ``{url}/verify`` and ``{url}/settle``.
  The payment network travels inside ``paymentRequirements``.
- signed: HMAC-authenticated POSTs to ``{url}/api/v6/x402/verify`` and
  ``{url}/api/v6/x402/settle``. The chain travels as a top-level
  ``chainIndex``; ``network`` is stripped from payload and requirements.

New variants are added by subclassing FacilitatorAdapter and registering the
class in FACILITATOR_VARIANTS.
"""
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping, Optional, Tuple, Type, Union

import requests
from requests.exceptions import RequestException

from paygate.x402.errors import ConfigurationError, FacilitatorRejected, FacilitatorUnreachable
from paygate.x402.requirements import X402_VERSION
from paygate.x402.signing import build_signed_headers
from paygate.x402.types import (
    FacilitatorBinding,
    PaymentOption,
    PaymentRequirement,
    SettleResult,
    VerifyResult,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0

FacilitatorBindings = Union[FacilitatorBinding, Mapping[str, FacilitatorBinding]]


def resolve_binding(network: str, bindings: FacilitatorBindings) -> FacilitatorBinding:
    """
    Resolve the facilitator binding for a network.

    Args:
        network: The selected option's network
        bindings: One binding for every network, or a per-network mapping

    Raises:
        ConfigurationError: If no binding is configured for the network
    """
    if isinstance(bindings, FacilitatorBinding):
        return bindings

    binding = bindings.get(network) if bindings else None
    if binding is None:
        logger.error(f"x402: No facilitator config found for network: {network}")
        raise ConfigurationError(f"No facilitator configured for network {network}")
    return binding


def encode_body(envelope: Dict[str, Any]) -> str:
    """Compact JSON, the exact string that is sent and signed."""
    return json.dumps(envelope, separators=(",", ":"))


class FacilitatorAdapter(ABC):
    """Base class for facilitator protocol variants."""

    variant: str = ""
    verify_path: str = "/verify"
    settle_path: str = "/settle"

    def __init__(self, binding: FacilitatorBinding, timeout: float = DEFAULT_TIMEOUT_SECONDS):
        self.binding = binding
        self.timeout = timeout

    # Envelope construction

    @abstractmethod
    def build_envelope(
        self,
        claim: Dict[str, Any],
        requirement: PaymentRequirement,
        option: PaymentOption,
    ) -> Dict[str, Any]:
        """Build the verify/settle request body for this variant."""

    # Facilitator calls

    def verify(self, envelope: Dict[str, Any]) -> VerifyResult:
        """
        Ask the facilitator whether the claim satisfies the requirements.

        Raises:
            FacilitatorUnreachable: On transport errors
            FacilitatorRejected: On non-2xx status or an unusable body
        """
        data = self._post(self.verify_path, envelope)
        result = self.parse_verify(data)
        logger.info(f"x402: Verification result from {self.binding.url}: valid={result.valid}")
        return result

    def settle(self, envelope: Dict[str, Any]) -> SettleResult:
        """
        Ask the facilitator to execute a verified payment.

        Raises:
            FacilitatorUnreachable: On transport errors
            FacilitatorRejected: On non-2xx status or an unusable body
        """
        data = self._post(self.settle_path, envelope)
        result = self.parse_settle(data)
        logger.info(f"x402: Settlement result from {self.binding.url}: success={result.success}")
        return result

    @abstractmethod
    def parse_verify(self, data: Any) -> VerifyResult:
        """Translate the facilitator's verify response."""

    @abstractmethod
    def parse_settle(self, data: Any) -> SettleResult:
        """Translate the facilitator's settle response."""

    def request_headers(self, method: str, request_path: str, body: str) -> Dict[str, str]:
        return {"Content-Type": "application/json"}

    def _post(self, request_path: str, envelope: Dict[str, Any]) -> Any:
        url = f"{self.binding.url}{request_path}"
        body = encode_body(envelope)
        headers = self.request_headers("POST", request_path, body)
        logger.debug(f"x402: POST {url} body={body}")

        try:
            response = requests.post(url, data=body.encode("utf-8"), headers=headers, timeout=self.timeout)
        except RequestException as e:
            logger.error(f"x402: Facilitator request to {url} failed: {e}")
            raise FacilitatorUnreachable(f"Facilitator request failed: {e}")

        if not 200 <= response.status_code < 300:
            logger.error(f"x402: Facilitator {url} returned HTTP {response.status_code}: {response.text}")
            raise FacilitatorRejected(response.text, http_status=response.status_code)

        try:
            return response.json()
        except ValueError:
            logger.error(f"x402: Facilitator {url} returned a non-JSON body")
            raise FacilitatorRejected(
                f"Facilitator returned a non-JSON body: {response.text}",
                http_status=response.status_code,
            )


class StandardFacilitator(FacilitatorAdapter):
    """Plain JSON facilitator (x402.org style)."""

    variant = "standard"

    def build_envelope(self, claim, requirement, option):
        requirement = requirement.model_copy(update={"network": option.network})
        return {
            "x402Version": X402_VERSION,
            "paymentPayload": claim,
            "paymentRequirements": requirement.to_dict(),
        }

    def parse_verify(self, data: Any) -> VerifyResult:
        if not isinstance(data, dict):
            raise FacilitatorRejected(f"Unexpected verify response: {data!r}")
        return VerifyResult(
            valid=bool(data.get("isValid")),
            reason=data.get("invalidReason") or None,
        )

    def parse_settle(self, data: Any) -> SettleResult:
        if not isinstance(data, dict):
            raise FacilitatorRejected(f"Unexpected settle response: {data!r}")
        return SettleResult(
            success=bool(data.get("success")),
            tx_hash=data.get("txHash") or data.get("transaction") or None,
            reason=data.get("errorReason") or None,
        )


class SignedFacilitator(FacilitatorAdapter):
    """HMAC-authenticated facilitator with a {code, data, msg} response envelope."""

    variant = "signed"
    verify_path = "/api/v6/x402/verify"
    settle_path = "/api/v6/x402/settle"

    def build_envelope(self, claim, requirement, option):
        payload = {key: value for key, value in claim.items() if key != "network"}
        requirement = requirement.model_copy(update={"network": None})
        return {
            "x402Version": X402_VERSION,
            "paymentPayload": payload,
            "paymentRequirements": requirement.to_dict(),
            "chainIndex": str(option.chain_id),
        }

    def request_headers(self, method: str, request_path: str, body: str) -> Dict[str, str]:
        if self.binding.credentials is None:
            raise ConfigurationError(f"Signed facilitator {self.binding.url} has no credentials")
        return build_signed_headers(self.binding.credentials, method, request_path, body)

    @staticmethod
    def _unwrap(data: Any) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
        # {"code": "0", "data": [{...}], "msg": ""}
        if not isinstance(data, dict):
            return None, "Unknown error from signed facilitator"
        entries = data.get("data")
        if str(data.get("code")) == "0" and isinstance(entries, list) and entries:
            first = entries[0]
            if isinstance(first, dict):
                return first, None
        return None, data.get("msg") or "Unknown error from signed facilitator"

    def parse_verify(self, data: Any) -> VerifyResult:
        entry, error = self._unwrap(data)
        if entry is None:
            return VerifyResult(valid=False, reason=error)
        return VerifyResult(
            valid=bool(entry.get("isValid")),
            reason=entry.get("invalidReason") or None,
        )

    def parse_settle(self, data: Any) -> SettleResult:
        entry, error = self._unwrap(data)
        if entry is None:
            return SettleResult(success=False, reason=error)
        return SettleResult(
            success=bool(entry.get("success")),
            tx_hash=entry.get("txHash") or None,
            reason=entry.get("errorReason") or None,
        )


FACILITATOR_VARIANTS: Dict[str, Type[FacilitatorAdapter]] = {
    StandardFacilitator.variant: StandardFacilitator,
    SignedFacilitator.variant: SignedFacilitator,
}


def create_facilitator(
    binding: FacilitatorBinding, timeout: float = DEFAULT_TIMEOUT_SECONDS
) -> FacilitatorAdapter:
    """Instantiate the adapter for a binding's variant."""
    adapter_class = FACILITATOR_VARIANTS.get(binding.variant)
    if adapter_class is None:
        raise ConfigurationError(f"Unknown facilitator variant: {binding.variant}")
    return adapter_class(binding, timeout=timeout)
