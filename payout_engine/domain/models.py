"""Domain models - pure Python dataclasses representing payout entities"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, TypeVar

T = TypeVar("T")

SUPPORTED_CURRENCIES = ("NGN", "GHS", "KES", "USD", "EUR", "GBP")


class PayoutStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {PayoutStatus.COMPLETED, PayoutStatus.FAILED, PayoutStatus.CANCELLED, PayoutStatus.REFUNDED}
)


@dataclass
class PayoutRequest:
    """A single request to pay a creator; also the unit of work in a batch"""

    creator_id: str
    amount: Decimal
    currency: str
    bank_account_number: str
    bank_code: str
    account_holder_name: str
    reason: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)  # Opaque to the engine


@dataclass(frozen=True)
class Payout:
    """Snapshot of a persisted payout record"""

    id: uuid.UUID
    reference: str
    creator_id: str
    amount: Decimal
    currency: str
    status: PayoutStatus
    recipient_account_number: str
    recipient_account_name: str
    recipient_bank_code: str
    recipient_bank_name: Optional[str] = None
    customer_transaction_id: Optional[str] = None
    wise_recipient_id: Optional[str] = None
    wise_quote_id: Optional[str] = None
    wise_transfer_id: Optional[str] = None
    exchange_rate: Optional[Decimal] = None
    source_amount: Optional[Decimal] = None
    source_currency: Optional[str] = None
    wise_fee: Optional[Decimal] = None
    error_message: Optional[str] = None
    error_code: Optional[str] = None
    status_history: List[Dict[str, Any]] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None


@dataclass(frozen=True)
class Failure:
    """Classified error returned instead of raised across component boundaries"""

    code: str
    message: str
    retryable: bool
    status_code: Optional[int] = None
    exception: Optional[BaseException] = field(default=None, compare=False, repr=False)


@dataclass
class Outcome(Generic[T]):
    """Result of a call that may have been retried"""

    value: Optional[T] = None
    failure: Optional[Failure] = None
    attempts: int = 1

    @property
    def ok(self) -> bool:
        return self.failure is None


@dataclass
class PayoutResult:
    """Structured result of a payout attempt"""

    success: bool
    payout: Optional[Payout] = None
    error: Optional[str] = None
    code: Optional[str] = None
    retryable: Optional[bool] = None

    @classmethod
    def from_failure(cls, failure: Failure, payout: Optional[Payout] = None) -> "PayoutResult":
        return cls(
            success=False,
            payout=payout,
            error=failure.message,
            code=failure.code,
            retryable=failure.retryable,
        )


@dataclass
class AccountResolution:
    """Outcome of structural bank account validation"""

    valid: bool
    bank_name: Optional[str] = None
    account_name: Optional[str] = None  # Unverified until recipient creation
    error: Optional[str] = None


@dataclass(frozen=True)
class Quote:
    """Time-boxed exchange rate and fee"""

    id: str
    rate: Decimal
    fee: Decimal
    source_currency: str
    target_currency: str
    source_amount: Optional[Decimal]
    target_amount: Optional[Decimal]
    expires_at: Optional[datetime] = None
    amount_type: str = "target"  # Which side of the quote was fixed by the caller

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        return (now or datetime.now(timezone.utc)) >= self.expires_at


@dataclass(frozen=True)
class Transfer:
    """Provider-side money movement created against a recipient and a quote"""

    id: str
    status: str
    reference: Optional[str] = None
    customer_transaction_id: Optional[str] = None
    rate: Optional[Decimal] = None
    source_amount: Optional[Decimal] = None
    source_currency: Optional[str] = None
    target_amount: Optional[Decimal] = None
    target_currency: Optional[str] = None
    quote_id: Optional[str] = None
    quote: Optional[Quote] = None  # Quote the transfer was actually created with
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)


@dataclass(frozen=True)
class TransferStatus:
    """Provider transfer state mapped to in-flight / complete / failed"""

    transfer_id: str
    status: str
    is_complete: bool
    is_failed: bool
    message: str

    @property
    def is_in_flight(self) -> bool:
        return not (self.is_complete or self.is_failed)


@dataclass
class FailedPayout:
    """Failed batch item; keeps the original request so it can be resubmitted"""

    item: PayoutRequest
    error: str
    code: str
    retryable: bool


@dataclass
class CurrencyTotals:
    total: Decimal = Decimal("0")
    succeeded: Decimal = Decimal("0")
    failed: Decimal = Decimal("0")


@dataclass
class BatchSummary:
    total: int
    success_count: int
    failure_count: int
    skipped_count: int
    by_currency: Dict[str, CurrencyTotals]


@dataclass
class BatchPayoutResult:
    """Aggregated result of a batch; `results` is in input order"""

    success: bool
    total: int
    results: List[Optional[PayoutResult]]
    successful: List[Payout]
    failed: List[FailedPayout]
    summary: BatchSummary
    skipped: List[PayoutRequest] = field(default_factory=list)
    not_retried: List[FailedPayout] = field(default_factory=list)


@dataclass
class Creator:
    id: str
    username: Optional[str] = None
    display_name: Optional[str] = None


@dataclass
class PendingSummary:
    currency: str
    pending_count: int
    total_amount: Decimal
    oldest_pending: Optional[datetime]
    newest_pending: Optional[datetime]


@dataclass
class CreatorPayoutStats:
    creator_id: str
    currency: str
    total_payouts: int
    successful_payouts: int
    failed_payouts: int
    pending_payouts: int
    total_paid_out: Decimal
    last_payout_at: Optional[datetime]
