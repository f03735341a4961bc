"""Transfer creation, funding, status and cancellation"""

import dataclasses
import logging

from payout_engine.domain.exceptions import DomainException
from payout_engine.domain.interfaces import PayoutProvider
from payout_engine.domain.models import Failure, Outcome, Quote, Transfer, TransferStatus
from payout_engine.domain.quotes import QuoteEngine
from payout_engine.domain.retry import RetryPolicy, classify

logger = logging.getLogger(__name__)

COMPLETE_STATES = {"outgoing_payment_sent"}
FAILED_STATES = {"bounced_back", "funds_refunded", "charged_back", "cancelled"}

STATUS_MESSAGES = {
    "incoming_payment_waiting": "Waiting for funds to arrive",
    "processing": "Transfer is being processed",
    "funds_converted": "Funds have been converted",
    "outgoing_payment_sent": "Payment has been sent to recipient",
    "bounced_back": "Transfer failed and funds bounced back",
    "funds_refunded": "Funds have been refunded",
    "charged_back": "Transfer was charged back",
    "cancelled": "Transfer was cancelled",
}


def map_transfer_status(transfer_id: str, status: str) -> TransferStatus:
    """Bucket a provider transfer state into in-flight, complete or failed"""
    return TransferStatus(
        transfer_id=str(transfer_id),
        status=status,
        is_complete=status in COMPLETE_STATES,
        is_failed=status in FAILED_STATES,
        message=STATUS_MESSAGES.get(status, f"Transfer status: {status}"),
    )


class TransferExecutor:
    """Creates and funds transfers against a recipient and a quote"""

    def __init__(
        self,
        provider: PayoutProvider,
        quote_engine: QuoteEngine,
        retry_policy: RetryPolicy,
        funding_enabled: bool = False,
    ):
        self.provider = provider
        self.quote_engine = quote_engine
        self.retry_policy = retry_policy
        self.funding_enabled = funding_enabled

    async def create_transfer(
        self,
        recipient_id: str,
        quote: Quote,
        reference: str,
        customer_transaction_id: str,
    ) -> Outcome[Transfer]:
        """
        Create a transfer under the retry policy.

        Every attempt sends the same `customer_transaction_id`, so the
        provider deduplicates a transfer created by an attempt whose response
        was lost. An expired quote is replaced before the attempt that would
        have used it.
        """
        current = {"quote": quote}

        async def attempt() -> Transfer:
            if current["quote"].is_expired():
                logger.info("Quote expired before transfer, requesting a new one", extra={"quote_id": current["quote"].id})
                current["quote"] = await self.quote_engine.requote(current["quote"])
            transfer = await self.provider.create_transfer(
                recipient_id,
                current["quote"].id,
                customer_transaction_id,
                reference,
            )
            return dataclasses.replace(transfer, quote=current["quote"])

        outcome = await self.retry_policy.run("create_transfer", attempt)
        if outcome.ok:
            logger.info(
                "Transfer created",
                extra={"transfer_id": outcome.value.id, "status": outcome.value.status, "attempts": outcome.attempts},
            )
        return outcome

    async def fund_transfer(self, transfer_id: str, funding_source: str = "BALANCE") -> Outcome[dict]:
        """
        Pay for a transfer from the platform balance.

        Skipped (successful, zero attempts) when funding is disabled, which is
        the case outside production. Not retried: a funding call that reached
        the provider must not be repeated blindly.
        """
        if not self.funding_enabled:
            logger.info("Funding skipped outside production", extra={"transfer_id": transfer_id})
            return Outcome(value={"skipped": True}, attempts=0)

        try:
            result = await self.provider.fund_transfer(transfer_id, funding_source)
        except DomainException as e:
            return Outcome(failure=classify(e))

        logger.info("Transfer funded", extra={"transfer_id": transfer_id, "funding_source": funding_source})
        return Outcome(value=result)

    async def get_status(self, transfer_id: str) -> TransferStatus:
        """
        Raises:
            ProviderError: If the provider lookup fails
        """
        transfer = await self.provider.get_transfer(transfer_id)
        return map_transfer_status(transfer.id, transfer.status)

    async def cancel(self, transfer_id: str) -> Outcome[TransferStatus]:
        """Cancel a transfer that is still in flight"""
        try:
            current = await self.get_status(transfer_id)
            if not current.is_in_flight:
                return Outcome(
                    failure=Failure(
                        "TRANSFER_NOT_CANCELLABLE",
                        f"Transfer {transfer_id} is {current.status} and can no longer be cancelled",
                        False,
                    )
                )
            transfer = await self.provider.cancel_transfer(transfer_id)
        except DomainException as e:
            return Outcome(failure=classify(e))

        logger.info("Transfer cancelled", extra={"transfer_id": transfer_id})
        return Outcome(value=map_transfer_status(transfer.id, transfer.status))
