"""Single-payout orchestration from validation to a funded provider transfer"""

import logging
import time
import uuid
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from payout_engine.domain.accounts import AccountResolver
from payout_engine.domain.exceptions import (
    DomainException,
    DuplicateReferenceError,
    InvalidTransitionError,
    StorageError,
)
from payout_engine.domain.interfaces import CreatorDirectory, PayoutProvider, PayoutStore
from payout_engine.domain.models import (
    SUPPORTED_CURRENCIES,
    Failure,
    Payout,
    PayoutRequest,
    PayoutResult,
    PayoutStatus,
    Quote,
    Transfer,
)
from payout_engine.domain.quotes import QuoteEngine
from payout_engine.domain.recipients import RecipientRegistry
from payout_engine.domain.retry import RetryPolicy, classify
from payout_engine.domain.transfers import STATUS_MESSAGES, TransferExecutor
from payout_engine.infrastructure.observability.logging import log_payout_outcome
from payout_engine.infrastructure.observability.metrics import payout_duration_histogram, record_payout
from payout_engine.utils.references import new_customer_transaction_id, new_reference, transfer_reference

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
MAX_AMOUNT = Decimal("99999999.99")  # ledger column is Numeric(10, 2)

# Terminal provider states and the payout status they settle to
PROVIDER_STATE_TO_STATUS = {
    "outgoing_payment_sent": PayoutStatus.COMPLETED,
    "bounced_back": PayoutStatus.FAILED,
    "funds_refunded": PayoutStatus.REFUNDED,
    "charged_back": PayoutStatus.REFUNDED,
    "cancelled": PayoutStatus.CANCELLED,
}


class PayoutAborted(Exception):
    """Internal signal: a step failed and the record has been marked"""

    def __init__(self, result: PayoutResult):
        super().__init__(result.error)
        self.result = result


def validate_request(request: PayoutRequest) -> Optional[Failure]:
    """Input checks that run before anything is persisted"""
    required = {
        "creatorId": request.creator_id,
        "amount": request.amount,
        "currency": request.currency,
        "bankAccountNumber": request.bank_account_number,
        "bankCode": request.bank_code,
        "accountHolderName": request.account_holder_name,
    }
    missing = [name for name, value in required.items() if value is None or (isinstance(value, str) and not value.strip())]
    if missing:
        return Failure("MISSING_PARAMS", f"Missing required parameters: {', '.join(missing)}", False)

    try:
        amount = Decimal(str(request.amount))
    except InvalidOperation:
        return Failure("INVALID_AMOUNT", f"Invalid amount: {request.amount}", False)
    if not amount.is_finite() or amount <= 0:
        return Failure("INVALID_AMOUNT", "Amount must be greater than 0", False)
    if amount > MAX_AMOUNT:
        return Failure("INVALID_AMOUNT", f"Amount must not exceed {MAX_AMOUNT}", False)
    try:
        quantized = amount.quantize(CENT)
    except InvalidOperation:
        return Failure("INVALID_AMOUNT", f"Invalid amount: {request.amount}", False)
    if amount != quantized:
        return Failure("INVALID_AMOUNT", "Amount must have at most 2 decimal places", False)

    if request.currency not in SUPPORTED_CURRENCIES:
        return Failure(
            "UNSUPPORTED_CURRENCY",
            f"Unsupported currency: {request.currency}. Supported: {', '.join(SUPPORTED_CURRENCIES)}",
            False,
        )
    return None


class PayoutOrchestrator:
    """
    Drives one payout through account resolution, recipient, quote, transfer
    and funding, recording every step in the ledger.

    Public methods never raise for expected failures; they return a
    PayoutResult with a code and a retryability hint.
    """

    def __init__(
        self,
        store: PayoutStore,
        creators: CreatorDirectory,
        resolver: AccountResolver,
        recipients: RecipientRegistry,
        quotes: QuoteEngine,
        transfers: TransferExecutor,
        source_currency: str = "USD",
        reference_prefix: str = "payout",
    ):
        self.store = store
        self.creators = creators
        self.resolver = resolver
        self.recipients = recipients
        self.quotes = quotes
        self.transfers = transfers
        self.source_currency = source_currency
        self.reference_prefix = reference_prefix

    @classmethod
    def build(
        cls,
        provider: PayoutProvider,
        store: PayoutStore,
        creators: CreatorDirectory,
        retry_policy: RetryPolicy,
        *,
        funding_enabled: bool = False,
        source_currency: str = "USD",
        reference_prefix: str = "payout",
    ) -> "PayoutOrchestrator":
        """Wire the orchestrator and its components around one provider client"""
        quotes = QuoteEngine(provider, retry_policy)
        return cls(
            store=store,
            creators=creators,
            resolver=AccountResolver(),
            recipients=RecipientRegistry(provider, store, retry_policy),
            quotes=quotes,
            transfers=TransferExecutor(provider, quotes, retry_policy, funding_enabled=funding_enabled),
            source_currency=source_currency,
            reference_prefix=reference_prefix,
        )

    async def payout_to_creator(
        self,
        request: PayoutRequest,
        reference: Optional[str] = None,
        customer_transaction_id: Optional[str] = None,
    ) -> PayoutResult:
        """
        Pay a creator end to end.

        Args:
            request: Payout details
            reference: Caller-chosen unique reference; generated when omitted
            customer_transaction_id: Provider idempotency key; generated when omitted

        Returns:
            PayoutResult; on success the payout is in `processing`. Completion
            is observed later through `refresh_status` or a webhook.
        """
        start_time = time.time()
        with payout_duration_histogram.time():
            result = await self._execute(request, reference, customer_transaction_id)

        duration_ms = (time.time() - start_time) * 1000
        currency_label = request.currency if request.currency in SUPPORTED_CURRENCIES else "unsupported"
        record_payout(currency_label, result.success, request.amount, result.code, result.retryable)
        log_payout_outcome(
            creator_id=request.creator_id,
            payout_id=str(result.payout.id) if result.payout else None,
            success=result.success,
            code=result.code,
            duration_ms=duration_ms,
        )
        return result

    async def _execute(
        self,
        request: PayoutRequest,
        reference: Optional[str],
        customer_transaction_id: Optional[str],
    ) -> PayoutResult:
        # 1. Validate inputs; nothing is persisted on failure
        failure = validate_request(request)
        if failure:
            return PayoutResult.from_failure(failure)
        amount = Decimal(str(request.amount))

        # 2. Creator must exist
        try:
            creator = await self.creators.get_creator(request.creator_id)
        except StorageError as e:
            return PayoutResult.from_failure(Failure("DB_ERROR", str(e), True))
        if creator is None:
            return PayoutResult.from_failure(
                Failure("CREATOR_NOT_FOUND", f"Creator not found: {request.creator_id}", False)
            )

        # 3. Bank account structure
        resolution = self.resolver.resolve(request.bank_account_number, request.bank_code, request.currency)
        if not resolution.valid:
            return PayoutResult.from_failure(Failure("INVALID_BANK_ACCOUNT", resolution.error, False))

        # 4. Pending record before any provider call
        metadata = dict(request.metadata or {})
        if request.reason:
            metadata["reason"] = request.reason
        metadata["creator_username"] = creator.username
        metadata["creator_display_name"] = creator.display_name

        reference = reference or new_reference(request.creator_id, self.reference_prefix)
        try:
            payout = await self.store.create_payout(
                reference=reference,
                customer_transaction_id=customer_transaction_id or new_customer_transaction_id(),
                creator_id=request.creator_id,
                amount=amount,
                currency=request.currency,
                recipient_account_number=request.bank_account_number,
                recipient_account_name=request.account_holder_name,
                recipient_bank_code=request.bank_code,
                recipient_bank_name=resolution.bank_name,
                metadata=metadata,
            )
        except DuplicateReferenceError as e:
            return PayoutResult.from_failure(Failure("DUPLICATE_REFERENCE", str(e), False))
        except StorageError as e:
            return PayoutResult.from_failure(Failure("DB_ERROR", str(e), True))

        logger.info(
            "Payout record created",
            extra={"payout_id": str(payout.id), "reference": reference, "creator_id": request.creator_id},
        )

        try:
            return PayoutResult(success=True, payout=await self._submit(payout, amount))
        except PayoutAborted as aborted:
            return aborted.result
        except InvalidTransitionError as e:
            # Another actor (e.g. a cancellation) moved the record first
            current = await self.store.get_payout(payout.id)
            return PayoutResult.from_failure(Failure("INVALID_STATE", str(e), False), current or payout)
        except StorageError as e:
            logger.error(f"Ledger update failed: {e}", extra={"payout_id": str(payout.id)})
            return await self._fail(payout, Failure("DB_ERROR", str(e), True))

    async def _submit(self, payout: Payout, amount: Decimal) -> Payout:
        """Steps 5-8; raises PayoutAborted after marking the record failed"""
        # 5. Reuse or create the provider recipient
        recipient_id = await self._resolve_recipient(payout)
        payout = await self.store.update_payout(payout.id, PayoutStatus.PENDING, wise_recipient_id=recipient_id)

        # 6. Quote and transfer
        quote_outcome = await self.quotes.create_quote(self.source_currency, payout.currency, target_amount=amount)
        if not quote_outcome.ok:
            raise PayoutAborted(await self._fail(payout, quote_outcome.failure))
        quote: Quote = quote_outcome.value

        transfer_outcome = await self.transfers.create_transfer(
            recipient_id,
            quote,
            transfer_reference(payout.metadata.get("reason"), payout.recipient_account_name),
            payout.customer_transaction_id,
        )
        if not transfer_outcome.ok:
            raise PayoutAborted(await self._fail(payout, transfer_outcome.failure))
        transfer: Transfer = transfer_outcome.value
        used_quote = transfer.quote or quote

        financials = dict(
            wise_quote_id=used_quote.id,
            wise_transfer_id=transfer.id,
            exchange_rate=transfer.rate if transfer.rate is not None else used_quote.rate,
            source_amount=transfer.source_amount if transfer.source_amount is not None else used_quote.source_amount,
            source_currency=transfer.source_currency or used_quote.source_currency,
            wise_fee=used_quote.fee,
            wise_response=transfer.raw or None,
        )
        try:
            payout = await self.store.update_payout(payout.id, PayoutStatus.PENDING, **financials)
        except InvalidTransitionError:
            await self._cancel_unrecorded_transfer(payout, transfer.id)
            raise

        # 7. Fund (no-op outside production)
        fund_outcome = await self.transfers.fund_transfer(transfer.id)
        if not fund_outcome.ok:
            raise PayoutAborted(await self._fail(payout, fund_outcome.failure))

        # 8. Hand off to the provider; completion is observed out of band
        return await self.store.update_payout(payout.id, PayoutStatus.PROCESSING)

    async def _resolve_recipient(self, payout: Payout) -> str:
        try:
            existing = await self.recipients.find_existing(
                payout.creator_id, payout.recipient_account_number, payout.currency
            )
        except StorageError as e:
            logger.warning(f"Recipient lookup failed, creating a new one: {e}", extra={"payout_id": str(payout.id)})
            existing = None
        if existing:
            logger.info("Reusing provider recipient", extra={"payout_id": str(payout.id), "recipient_id": existing})
            return existing

        outcome = await self.recipients.create_recipient(
            payout.currency,
            payout.recipient_account_name,
            payout.recipient_account_number,
            payout.recipient_bank_code,
        )
        if not outcome.ok:
            failure = Failure(
                "RECIPIENT_CREATION_FAILED",
                f"Failed to create recipient: {outcome.failure.message}",
                outcome.failure.retryable,
                outcome.failure.status_code,
                outcome.failure.exception,
            )
            raise PayoutAborted(await self._fail(payout, failure))
        return outcome.value

    async def _cancel_unrecorded_transfer(self, payout: Payout, transfer_id: str) -> None:
        """The record left `pending` before the transfer id was stored; withdraw the transfer"""
        logger.warning(
            "Payout changed state before its transfer was recorded, cancelling transfer",
            extra={"payout_id": str(payout.id), "transfer_id": transfer_id},
        )
        outcome = await self.transfers.cancel(transfer_id)
        if not outcome.ok:
            logger.error(
                f"Could not cancel unrecorded transfer: {outcome.failure.message}",
                extra={"payout_id": str(payout.id), "transfer_id": transfer_id, "error_code": outcome.failure.code},
            )

    async def _fail(self, payout: Payout, failure: Failure) -> PayoutResult:
        """Mark the record failed and build the result; the ledger write is best effort"""
        try:
            payout = await self.store.update_payout(
                payout.id,
                PayoutStatus.FAILED,
                error_message=failure.message,
                error_code=failure.code,
            )
        except DomainException as e:
            logger.error(
                f"Could not mark payout failed: {e}",
                extra={"payout_id": str(payout.id), "error_code": failure.code},
            )
        return PayoutResult.from_failure(failure, payout)

    async def refresh_status(self, payout_id: uuid.UUID) -> PayoutResult:
        """Poll the provider and settle a processing payout if its transfer finished"""
        payout = await self.store.get_payout(payout_id)
        if payout is None:
            return PayoutResult.from_failure(Failure("PAYOUT_NOT_FOUND", f"Payout not found: {payout_id}", False))
        if payout.status.is_terminal or not payout.wise_transfer_id:
            return PayoutResult(success=True, payout=payout)

        try:
            status = await self.transfers.get_status(payout.wise_transfer_id)
        except DomainException as e:
            return PayoutResult.from_failure(classify(e), payout)

        return PayoutResult(success=True, payout=await self._settle(payout, status.status))

    async def apply_transfer_event(self, transfer_id: str, provider_state: str) -> PayoutResult:
        """Webhook variant of `refresh_status` with the state already known"""
        payout = await self.store.get_by_transfer_id(transfer_id)
        if payout is None:
            return PayoutResult.from_failure(
                Failure("PAYOUT_NOT_FOUND", f"No payout for transfer {transfer_id}", False)
            )
        return PayoutResult(success=True, payout=await self._settle(payout, provider_state))

    async def _settle(self, payout: Payout, provider_state: str) -> Payout:
        target = PROVIDER_STATE_TO_STATUS.get(provider_state)
        if target is None or payout.status.is_terminal:
            return payout

        error_message = error_code = None
        if target == PayoutStatus.FAILED:
            error_message = STATUS_MESSAGES.get(provider_state, provider_state)
            error_code = "TRANSFER_BOUNCED_BACK"

        try:
            if payout.status == PayoutStatus.PENDING and target not in (PayoutStatus.FAILED, PayoutStatus.CANCELLED):
                payout = await self.store.update_payout(payout.id, PayoutStatus.PROCESSING)
            updated = await self.store.update_payout(
                payout.id, target, error_message=error_message, error_code=error_code
            )
        except InvalidTransitionError:
            # Settled concurrently by a poll or another event
            return await self.store.get_payout(payout.id) or payout

        logger.info(
            f"Payout settled as {target.value}",
            extra={"payout_id": str(payout.id), "transfer_id": payout.wise_transfer_id, "provider_state": provider_state},
        )
        return updated

    async def cancel_payout(self, payout_id: uuid.UUID) -> PayoutResult:
        """Cancel a pending payout, or an in-flight transfer at the provider"""
        payout = await self.store.get_payout(payout_id)
        if payout is None:
            return PayoutResult.from_failure(Failure("PAYOUT_NOT_FOUND", f"Payout not found: {payout_id}", False))
        if payout.status.is_terminal:
            return PayoutResult.from_failure(
                Failure("PAYOUT_NOT_CANCELLABLE", f"Payout is already {payout.status.value}", False), payout
            )

        if payout.wise_transfer_id:
            outcome = await self.transfers.cancel(payout.wise_transfer_id)
            if not outcome.ok:
                return PayoutResult.from_failure(outcome.failure, payout)

        try:
            updated = await self.store.update_payout(payout.id, PayoutStatus.CANCELLED)
        except InvalidTransitionError as e:
            current = await self.store.get_payout(payout.id)
            return PayoutResult.from_failure(Failure("PAYOUT_NOT_CANCELLABLE", str(e), False), current or payout)
        return PayoutResult(success=True, payout=updated)

    async def poll_processing_payouts(self, limit: int = 100) -> List[PayoutResult]:
        """Refresh every processing payout, oldest first"""
        payouts = await self.store.list_by_status(PayoutStatus.PROCESSING, limit=limit)
        return [await self.refresh_status(p.id) for p in payouts]
