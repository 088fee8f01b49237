# paygate/x402/audit.py
"""
Audit logging for x402 payment events.

The gate reports every state transition that matters to an operator through
a PaymentAuditLog. Each event is:
- emitted on a standard logger at a level matching its severity
- kept in a bounded in-memory buffer (inspected by tests and diagnostics)
- optionally appended to a JSON-lines file

Log format: JSON lines (one event per line)
Log location: X402_AUDIT_LOG_PATH, disabled when unset

Events logged:
- Challenge sent (route, number of options)
- Payment received (network)
- Decode failed (error type, details)
- Payment verified / verification rejected (network, reason)
- Handler failed (status code)
- Payment settled (transaction hash) / settlement failed (reason)
- Configuration error, unexpected error
"""
import json
import logging
import uuid
from collections import deque
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Deque, Dict, List, Optional, Union

logger = logging.getLogger(__name__)


class PaymentEventType(Enum):
    """Types of payment events that can be logged."""
    CHALLENGE_SENT = "challenge_sent"
    PAYMENT_RECEIVED = "payment_received"
    DECODE_FAILED = "decode_failed"
    PAYMENT_VERIFIED = "payment_verified"
    VERIFICATION_REJECTED = "verification_rejected"
    HANDLER_FAILED = "handler_failed"
    PAYMENT_SETTLED = "payment_settled"
    SETTLEMENT_FAILED = "settlement_failed"
    CONFIGURATION_ERROR = "configuration_error"
    ERROR = "error"


EVENT_LEVELS = {
    PaymentEventType.DECODE_FAILED: logging.WARNING,
    PaymentEventType.VERIFICATION_REJECTED: logging.WARNING,
    PaymentEventType.HANDLER_FAILED: logging.WARNING,
    PaymentEventType.SETTLEMENT_FAILED: logging.ERROR,
    PaymentEventType.CONFIGURATION_ERROR: logging.ERROR,
    PaymentEventType.ERROR: logging.ERROR,
}


def generate_request_id() -> str:
    """Generate a unique request ID for tracking."""
    return str(uuid.uuid4())[:8]


def create_payment_event(
    event_type: PaymentEventType,
    data: Dict[str, Any],
    request_id: Optional[str] = None
) -> Dict[str, Any]:
    """
    Create a payment event dictionary.

    Args:
        event_type: Type of event to log
        data: Event-specific data
        request_id: Unique request identifier (if available)

    Returns:
        A structured event ready to be written to the audit log
    """
    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "event_type": event_type.value,
        "request_id": request_id or generate_request_id(),
        "data": data,
    }


class PaymentAuditLog:
    """
    Injectable sink for payment events.

    Args:
        log_path: JSON-lines file to append events to, or None
        event_logger: Logger the events are emitted on
        max_events: Size of the in-memory event buffer
    """

    def __init__(
        self,
        log_path: Optional[Union[str, Path]] = None,
        event_logger: Optional[logging.Logger] = None,
        max_events: int = 1000,
    ):
        self.log_path = Path(log_path) if log_path else None
        self.logger = event_logger or logger
        self.events: Deque[Dict[str, Any]] = deque(maxlen=max_events)

    def record(
        self,
        event_type: PaymentEventType,
        data: Optional[Dict[str, Any]] = None,
        request_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """Record one event and return it."""
        event = create_payment_event(event_type, data or {}, request_id=request_id)
        self.events.append(event)

        level = EVENT_LEVELS.get(event_type, logging.INFO)
        self.logger.log(level, f"x402: {event_type.value} [{event['request_id']}] {json.dumps(event['data'])}")

        if self.log_path is not None:
            self._write(event)
        return event

    def find(self, event_type: PaymentEventType) -> List[Dict[str, Any]]:
        """Buffered events of one type, oldest first."""
        return [event for event in self.events if event["event_type"] == event_type.value]

    def _write(self, event: Dict[str, Any]) -> None:
        try:
            self.log_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.log_path, "a") as f:
                f.write(json.dumps(event) + "\n")
        except OSError as e:
            logger.error(f"Failed to write audit event: {e}")


def read_audit_log(
    log_path: Union[str, Path],
    max_entries: int = 100,
    event_type: Optional[PaymentEventType] = None
) -> list:
    """
    Read entries from an audit log file.

    Args:
        log_path: Path of the JSON-lines file
        max_entries: Maximum number of entries to return
        event_type: Filter by event type (optional)

    Returns:
        List of payment events (most recent first)
    """
    path = Path(log_path)
    if not path.exists():
        return []

    events = []
    with open(path, "r") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                event = json.loads(line)
            except json.JSONDecodeError:
                continue
            if event_type and event.get("event_type") != event_type.value:
                continue
            events.append(event)

    # Most recent first
    return list(reversed(events))[:max_entries]
