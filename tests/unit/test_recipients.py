"""Unit tests for recipient creation"""

import pytest

from payout_engine.domain.exceptions import ProviderError
from payout_engine.domain.recipients import RecipientRegistry, recipient_details
from payout_engine.utils.masking import mask_account


class StubStore:
    def __init__(self, recipient_id=None):
        self.recipient_id = recipient_id
        self.lookups = []

    async def find_recipient_id(self, creator_id, account_number, currency):
        self.lookups.append((creator_id, account_number, currency))
        return self.recipient_id


@pytest.fixture
def registry(provider, retry_policy) -> RecipientRegistry:
    return RecipientRegistry(provider, StubStore(), retry_policy)


def test_nigerian_recipient_details():
    recipient_type, details = recipient_details("NGN", "0123456789", "044")
    assert recipient_type == "nigerian_bank_account"
    assert details == {
        "accountNumber": "0123456789",
        "bankCode": "044",
        "legalType": "PRIVATE",
        "accountType": "checking",
    }


def test_international_recipient_details():
    assert recipient_details("USD", "12345678", "026009593")[1]["abartn"] == "026009593"
    assert recipient_details("EUR", "DE89370400440532013000", "-") == (
        "iban",
        {"legalType": "PRIVATE", "iban": "DE89370400440532013000"},
    )
    assert recipient_details("GBP", "31926819", "231470")[1]["sortCode"] == "231470"
    assert recipient_details("KES", "1234567890", "68")[0] == "kenyan_bank_account"


def test_unknown_currency_has_no_recipient_type():
    with pytest.raises(ValueError):
        recipient_details("JPY", "1", "2")


async def test_missing_fields_fail_without_provider_call(registry, provider):
    outcome = await registry.create_recipient("NGN", "", "0123456789", "044")

    assert outcome.failure.code == "MISSING_PARAMS"
    assert outcome.failure.retryable is False
    assert outcome.attempts == 0
    assert provider.calls["create_recipient"] == 0


async def test_unsupported_currency(registry, provider):
    outcome = await registry.create_recipient("JPY", "John Doe", "0123456789", "044")

    assert outcome.failure.code == "UNSUPPORTED_CURRENCY"
    assert provider.calls["create_recipient"] == 0


async def test_recipient_created_after_transient_failure(registry, provider):
    provider.fail("create_recipient", ProviderError("Service unavailable", status_code=503))

    outcome = await registry.create_recipient("NGN", "John Doe", "0123456789", "044")

    assert outcome.ok
    assert outcome.value == "777"
    assert outcome.attempts == 2


async def test_find_existing_delegates_to_store(provider, retry_policy):
    store = StubStore(recipient_id="555")
    registry = RecipientRegistry(provider, store, retry_policy)

    assert await registry.find_existing("c1", "0123456789", "NGN") == "555"
    assert store.lookups == [("c1", "0123456789", "NGN")]


def test_account_numbers_are_masked_for_logs():
    assert mask_account("0123456789") == "012***"
    assert mask_account(None) == ""
