"""Inbound Wise webhook verification and parsing"""

import hashlib
import hmac
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

TRANSFER_STATE_CHANGE = "transfers#state-change"


@dataclass(frozen=True)
class TransferEvent:
    event_type: str
    transfer_id: str
    current_state: str
    previous_state: Optional[str] = None


def sign(raw_body: bytes, secret: str) -> str:
    """Header value for a body, in the form `sha256=<hex>`"""
    digest = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()
    return f"sha256={digest}"


def verify_signature(raw_body: bytes, signature_header: Optional[str], secret: str) -> Tuple[bool, Optional[str]]:
    """
    Check an HMAC-SHA256 signature of the raw request body.

    The `sha256=` prefix is optional. Comparison is constant time.

    Returns:
        (ok, error_code) where error_code is MISSING_SIGNATURE or INVALID_SIGNATURE
    """
    if not signature_header:
        return False, "MISSING_SIGNATURE"

    provided = signature_header.strip()
    if provided.startswith("sha256="):
        provided = provided[len("sha256="):]

    expected = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()
    if not hmac.compare_digest(provided.lower(), expected):
        return False, "INVALID_SIGNATURE"
    return True, None


def parse_transfer_event(payload: Dict[str, Any]) -> Optional[TransferEvent]:
    """
    Extract a transfer state change; returns None for other event types.

    Raises:
        ValueError: If a state-change event lacks the resource id or state
    """
    event_type = payload.get("event_type")
    if event_type != TRANSFER_STATE_CHANGE:
        return None

    data = payload.get("data") or {}
    resource = data.get("resource") or {}
    transfer_id = resource.get("id")
    current_state = data.get("current_state")
    if transfer_id is None or not current_state:
        raise ValueError("Transfer state-change event is missing resource id or current_state")

    return TransferEvent(
        event_type=event_type,
        transfer_id=str(transfer_id),
        current_state=current_state,
        previous_state=data.get("previous_state"),
    )
