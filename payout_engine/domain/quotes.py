"""Exchange-rate quotes"""

import logging
from decimal import Decimal
from typing import Optional

from payout_engine.domain.exceptions import InvalidInputError
from payout_engine.domain.interfaces import PayoutProvider
from payout_engine.domain.models import Failure, Outcome, Quote
from payout_engine.domain.retry import RetryPolicy

logger = logging.getLogger(__name__)


class QuoteEngine:
    """Obtains time-boxed quotes for a currency pair and a fixed amount"""

    def __init__(self, provider: PayoutProvider, retry_policy: RetryPolicy):
        self.provider = provider
        self.retry_policy = retry_policy

    async def request(
        self,
        source_currency: str,
        target_currency: str,
        source_amount: Optional[Decimal] = None,
        target_amount: Optional[Decimal] = None,
    ) -> Quote:
        """
        Single provider call for a quote.

        Raises:
            InvalidInputError: Unless exactly one of the amounts is given
            ProviderError: On provider failure
        """
        if (source_amount is None) == (target_amount is None):
            raise InvalidInputError("Exactly one of source_amount or target_amount must be specified")

        amount = source_amount if source_amount is not None else target_amount
        if amount <= 0:
            raise InvalidInputError("Quote amount must be greater than 0")

        quote = await self.provider.create_quote(
            source_currency,
            target_currency,
            source_amount=source_amount,
            target_amount=target_amount,
        )
        logger.info(
            "Quote created",
            extra={"quote_id": quote.id, "rate": str(quote.rate), "fee": str(quote.fee), "expires_at": str(quote.expires_at)},
        )
        return quote

    async def create_quote(
        self,
        source_currency: str,
        target_currency: str,
        source_amount: Optional[Decimal] = None,
        target_amount: Optional[Decimal] = None,
    ) -> Outcome[Quote]:
        """Quote under the retry policy; invalid amount combinations fail without a call"""
        if (source_amount is None) == (target_amount is None):
            return Outcome(
                failure=Failure(
                    "INVALID_QUOTE_REQUEST",
                    "Exactly one of source_amount or target_amount must be specified",
                    False,
                ),
                attempts=0,
            )
        return await self.retry_policy.run(
            "create_quote",
            lambda: self.request(source_currency, target_currency, source_amount, target_amount),
        )

    async def requote(self, quote: Quote) -> Quote:
        """Fresh quote for the same pair and fixed amount as `quote`"""
        if quote.amount_type == "source":
            return await self.request(quote.source_currency, quote.target_currency, source_amount=quote.source_amount)
        return await self.request(quote.source_currency, quote.target_currency, target_amount=quote.target_amount)
