"""Provider recipient creation and reuse"""

import logging
from typing import Any, Dict, Optional, Tuple

from payout_engine.domain.interfaces import PayoutProvider, PayoutStore
from payout_engine.domain.models import Failure, Outcome
from payout_engine.domain.retry import RetryPolicy
from payout_engine.utils.masking import mask_account

logger = logging.getLogger(__name__)

RECIPIENT_TYPES = {
    "NGN": "nigerian_bank_account",
    "GHS": "ghanaian_bank_account",
    "KES": "kenyan_bank_account",
    "USD": "aba",
    "EUR": "iban",
    "GBP": "sort_code",
}


def recipient_details(currency: str, account_number: str, bank_code: str) -> Tuple[str, Dict[str, Any]]:
    """
    Map a currency to the provider's recipient type and detail schema.

    Raises:
        ValueError: If the currency has no recipient type
    """
    recipient_type = RECIPIENT_TYPES.get(currency)
    if recipient_type is None:
        raise ValueError(f"Unsupported currency: {currency}")

    if currency == "NGN":
        return recipient_type, {
            "accountNumber": account_number,
            "bankCode": bank_code,
            "legalType": "PRIVATE",
            "accountType": "checking",
        }
    if currency in ("GHS", "KES"):
        return recipient_type, {
            "accountNumber": account_number,
            "bankCode": bank_code,
            "accountType": "checking",
        }
    if currency == "USD":
        return recipient_type, {
            "legalType": "PRIVATE",
            "accountNumber": account_number,
            "abartn": bank_code,
            "accountType": "CHECKING",
        }
    if currency == "EUR":
        return recipient_type, {"legalType": "PRIVATE", "iban": account_number}
    return recipient_type, {
        "legalType": "PRIVATE",
        "accountNumber": account_number,
        "sortCode": bank_code,
    }


class RecipientRegistry:
    """Creates provider recipients and finds ones already used by a creator"""

    def __init__(self, provider: PayoutProvider, store: PayoutStore, retry_policy: RetryPolicy):
        self.provider = provider
        self.store = store
        self.retry_policy = retry_policy

    async def find_existing(self, creator_id: str, account_number: str, currency: str) -> Optional[str]:
        """Recipient id from the most recent payout to the same account, if any"""
        return await self.store.find_recipient_id(creator_id, account_number, currency)

    async def create_recipient(
        self,
        currency: str,
        account_holder_name: str,
        account_number: str,
        bank_code: str,
    ) -> Outcome[str]:
        """
        Register a bank account with the provider.

        Missing fields fail immediately without calling the provider. The
        provider call runs under the retry policy.

        Returns:
            Outcome carrying the provider recipient id
        """
        if not (currency and account_holder_name and account_number and bank_code):
            return Outcome(
                failure=Failure(
                    "MISSING_PARAMS",
                    "Missing required parameters: currency, accountHolderName, accountNumber, bankCode",
                    False,
                ),
                attempts=0,
            )

        try:
            recipient_type, details = recipient_details(currency, account_number, bank_code)
        except ValueError as e:
            return Outcome(failure=Failure("UNSUPPORTED_CURRENCY", str(e), False), attempts=0)

        logger.info(
            "Creating provider recipient",
            extra={"currency": currency, "type": recipient_type, "account_number": mask_account(account_number)},
        )
        outcome = await self.retry_policy.run(
            "create_recipient",
            lambda: self.provider.create_recipient(currency, account_holder_name, recipient_type, details),
        )
        if outcome.ok:
            logger.info("Recipient created", extra={"recipient_id": outcome.value, "attempts": outcome.attempts})
        return outcome
