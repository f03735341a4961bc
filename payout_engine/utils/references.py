"""Identifier and timestamp helpers"""

import uuid
from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_reference(creator_id: str, prefix: str = "payout") -> str:
    """Human-meaningful unique payout reference, e.g. payout_c1_3f2a..."""
    return f"{prefix}_{creator_id}_{uuid.uuid4().hex[:16]}"


def new_customer_transaction_id() -> str:
    """Idempotency key presented to the provider; the provider expects a UUID"""
    return str(uuid.uuid4())


TRANSFER_REFERENCE_MAX_LENGTH = 35


def transfer_reference(reason: str | None, account_holder_name: str) -> str:
    """Statement text sent to the provider; the ledger keeps the internal reference"""
    text = (reason or "").strip() or f"Payout to {account_holder_name}"
    return text[:TRANSFER_REFERENCE_MAX_LENGTH]
