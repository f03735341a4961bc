"""Pydantic schemas for API request/response validation"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from payout_engine.domain.models import (
    BatchPayoutResult,
    CreatorPayoutStats,
    FailedPayout,
    PendingSummary,
    Payout,
    PayoutRequest,
    PayoutResult,
)


class PayoutCreateRequest(BaseModel):
    """Request body for POST /v1/payouts; also one batch item"""

    creator_id: str = Field(..., description="Creator identifier")
    amount: Decimal = Field(..., description="Amount in major units of the target currency")
    currency: str = Field(..., description="Target currency (NGN, GHS, KES, USD, EUR, GBP)")
    bank_account_number: str
    bank_code: str
    account_holder_name: str
    reason: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def to_domain(self) -> PayoutRequest:
        return PayoutRequest(
            creator_id=self.creator_id,
            amount=self.amount,
            currency=self.currency,
            bank_account_number=self.bank_account_number,
            bank_code=self.bank_code,
            account_holder_name=self.account_holder_name,
            reason=self.reason,
            metadata=dict(self.metadata),
        )

    @classmethod
    def from_domain(cls, item: PayoutRequest) -> "PayoutCreateRequest":
        return cls(
            creator_id=item.creator_id,
            amount=item.amount,
            currency=item.currency,
            bank_account_number=item.bank_account_number,
            bank_code=item.bank_code,
            account_holder_name=item.account_holder_name,
            reason=item.reason,
            metadata=item.metadata or {},
        )


class SinglePayoutRequest(PayoutCreateRequest):
    reference: Optional[str] = Field(None, min_length=1, description="Caller-chosen unique reference")
    customer_transaction_id: Optional[str] = Field(None, min_length=1, description="Provider idempotency key")


class PayoutResponse(BaseModel):
    """A payout record"""

    id: str
    reference: str
    creator_id: str
    amount: Decimal
    currency: str
    status: str
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
    status_history: List[Dict[str, Any]] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, payout: Payout) -> "PayoutResponse":
        return cls(
            id=str(payout.id),
            reference=payout.reference,
            creator_id=payout.creator_id,
            amount=payout.amount,
            currency=payout.currency,
            status=payout.status.value,
            recipient_account_number=payout.recipient_account_number,
            recipient_account_name=payout.recipient_account_name,
            recipient_bank_code=payout.recipient_bank_code,
            recipient_bank_name=payout.recipient_bank_name,
            customer_transaction_id=payout.customer_transaction_id,
            wise_recipient_id=payout.wise_recipient_id,
            wise_quote_id=payout.wise_quote_id,
            wise_transfer_id=payout.wise_transfer_id,
            exchange_rate=payout.exchange_rate,
            source_amount=payout.source_amount,
            source_currency=payout.source_currency,
            wise_fee=payout.wise_fee,
            error_message=payout.error_message,
            error_code=payout.error_code,
            status_history=payout.status_history,
            metadata=payout.metadata,
            created_at=payout.created_at,
            updated_at=payout.updated_at,
            completed_at=payout.completed_at,
            failed_at=payout.failed_at,
            deleted_at=payout.deleted_at,
        )


class PayoutResultResponse(BaseModel):
    """Outcome of a payout operation"""

    success: bool
    payout: Optional[PayoutResponse] = None
    error: Optional[str] = None
    code: Optional[str] = None
    retryable: Optional[bool] = None

    @classmethod
    def from_domain(cls, result: PayoutResult) -> "PayoutResultResponse":
        return cls(
            success=result.success,
            payout=PayoutResponse.from_domain(result.payout) if result.payout else None,
            error=result.error,
            code=result.code,
            retryable=result.retryable,
        )


class BatchPayoutRequest(BaseModel):
    """Request body for POST /v1/payouts/batch"""

    items: List[PayoutCreateRequest] = Field(..., min_length=1, max_length=500)
    sequential: bool = False
    max_concurrent: Optional[int] = Field(None, ge=1, le=20)
    stop_on_error: bool = False


class FailedPayoutSchema(BaseModel):
    """Failed batch item, resubmittable through POST /v1/payouts/retry"""

    item: PayoutCreateRequest
    error: str
    code: str
    retryable: bool

    def to_domain(self) -> FailedPayout:
        return FailedPayout(item=self.item.to_domain(), error=self.error, code=self.code, retryable=self.retryable)

    @classmethod
    def from_domain(cls, failed: FailedPayout) -> "FailedPayoutSchema":
        return cls(
            item=PayoutCreateRequest.from_domain(failed.item),
            error=failed.error,
            code=failed.code,
            retryable=failed.retryable,
        )


class RetryPayoutsRequest(BaseModel):
    """Request body for POST /v1/payouts/retry"""

    failed: List[FailedPayoutSchema] = Field(..., min_length=1, max_length=500)
    sequential: bool = False
    max_concurrent: Optional[int] = Field(None, ge=1, le=20)


class CurrencyTotalsSchema(BaseModel):
    total: Decimal
    succeeded: Decimal
    failed: Decimal


class BatchSummarySchema(BaseModel):
    total: int
    success_count: int
    failure_count: int
    skipped_count: int
    by_currency: Dict[str, CurrencyTotalsSchema]


class BatchPayoutResponse(BaseModel):
    """Response for batch and retry endpoints"""

    success: bool
    total: int
    successful: List[PayoutResponse]
    failed: List[FailedPayoutSchema]
    skipped: List[PayoutCreateRequest]
    not_retried: List[FailedPayoutSchema]
    summary: BatchSummarySchema
    report: str

    @classmethod
    def from_domain(cls, result: BatchPayoutResult, report: str) -> "BatchPayoutResponse":
        return cls(
            success=result.success,
            total=result.total,
            successful=[PayoutResponse.from_domain(p) for p in result.successful],
            failed=[FailedPayoutSchema.from_domain(f) for f in result.failed],
            skipped=[PayoutCreateRequest.from_domain(i) for i in result.skipped],
            not_retried=[FailedPayoutSchema.from_domain(f) for f in result.not_retried],
            summary=BatchSummarySchema(
                total=result.summary.total,
                success_count=result.summary.success_count,
                failure_count=result.summary.failure_count,
                skipped_count=result.summary.skipped_count,
                by_currency={
                    currency: CurrencyTotalsSchema(total=t.total, succeeded=t.succeeded, failed=t.failed)
                    for currency, t in result.summary.by_currency.items()
                },
            ),
            report=report,
        )


class PayoutListResponse(BaseModel):
    payouts: List[PayoutResponse]


class PendingSummaryItem(BaseModel):
    currency: str
    pending_count: int
    total_amount: Decimal
    oldest_pending: Optional[datetime] = None
    newest_pending: Optional[datetime] = None

    @classmethod
    def from_domain(cls, summary: PendingSummary) -> "PendingSummaryItem":
        return cls(**summary.__dict__)


class PendingSummaryResponse(BaseModel):
    currencies: List[PendingSummaryItem]


class CreatorStatsItem(BaseModel):
    currency: str
    total_payouts: int
    successful_payouts: int
    failed_payouts: int
    pending_payouts: int
    total_paid_out: Decimal
    last_payout_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, stats: CreatorPayoutStats) -> "CreatorStatsItem":
        return cls(
            currency=stats.currency,
            total_payouts=stats.total_payouts,
            successful_payouts=stats.successful_payouts,
            failed_payouts=stats.failed_payouts,
            pending_payouts=stats.pending_payouts,
            total_paid_out=stats.total_paid_out,
            last_payout_at=stats.last_payout_at,
        )


class CreatorStatsResponse(BaseModel):
    creator_id: str
    stats: List[CreatorStatsItem]


class WebhookAck(BaseModel):
    status: str  # applied | ignored
    payout_id: Optional[str] = None
    payout_status: Optional[str] = None
    code: Optional[str] = None
