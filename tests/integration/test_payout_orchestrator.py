"""Integration tests for single payouts through the ledger and a provider double"""

from decimal import Decimal

import pytest

from payout_engine.domain.exceptions import ProviderError, ProviderTimeoutError
from payout_engine.domain.models import PayoutStatus
from payout_engine.domain.payout import MAX_AMOUNT, PayoutOrchestrator, validate_request
from payout_engine.infrastructure.observability.metrics import payout_counter

pytestmark = pytest.mark.integration


async def test_successful_payout(orchestrator, ledger, provider, payout_request):
    result = await orchestrator.payout_to_creator(payout_request)

    assert result.success, result.error
    payout = result.payout
    assert payout.status == PayoutStatus.PROCESSING
    assert payout.wise_transfer_id == "999"
    assert payout.wise_recipient_id == "777"
    assert payout.wise_quote_id == "quote-1"
    assert payout.exchange_rate == Decimal("1580.5")
    assert payout.wise_fee == Decimal("1.50")
    assert payout.source_currency == "USD"
    assert payout.recipient_bank_name == "Access Bank"
    assert payout.reference.startswith("payout_c1_")
    assert payout.metadata["creator_username"] == "c1_user"
    assert [e["status"] for e in payout.status_history] == ["pending", "processing"]
    assert provider.calls["fund_transfer"] == 0

    stored = await ledger.get_payout(payout.id)
    assert stored.status == PayoutStatus.PROCESSING
    assert provider.transfer_requests[0]["customer_transaction_id"] == stored.customer_transaction_id


async def test_caller_reference_and_reason_are_kept(orchestrator, request_factory):
    result = await orchestrator.payout_to_creator(
        request_factory(reason="March earnings", metadata={"campaign": "spring"}),
        reference="march-c1",
    )

    assert result.payout.reference == "march-c1"
    assert result.payout.metadata["reason"] == "March earnings"
    assert result.payout.metadata["campaign"] == "spring"


@pytest.mark.parametrize(
    "overrides, code",
    [
        ({"amount": Decimal("0")}, "INVALID_AMOUNT"),
        ({"amount": Decimal("-5")}, "INVALID_AMOUNT"),
        ({"amount": Decimal("10.555")}, "INVALID_AMOUNT"),
        ({"amount": Decimal("1E+30")}, "INVALID_AMOUNT"),
        ({"amount": Decimal("100000000")}, "INVALID_AMOUNT"),
        ({"currency": "JPY"}, "UNSUPPORTED_CURRENCY"),
        ({"account_holder_name": ""}, "MISSING_PARAMS"),
        ({"bank_code": "  "}, "MISSING_PARAMS"),
        ({"creator_id": "ghost"}, "CREATOR_NOT_FOUND"),
        ({"bank_account_number": "12345"}, "INVALID_BANK_ACCOUNT"),
    ],
)
async def test_rejected_before_any_record(orchestrator, ledger, provider, request_factory, overrides, code):
    result = await orchestrator.payout_to_creator(request_factory(**overrides))

    assert not result.success
    assert result.code == code
    assert result.retryable is False
    assert result.payout is None
    assert await ledger.list_pending() == []
    assert sum(provider.calls.values()) == 0


def test_largest_amount_fits_the_ledger(request_factory):
    assert validate_request(request_factory(amount=MAX_AMOUNT)) is None
    assert validate_request(request_factory(amount=MAX_AMOUNT + Decimal("0.01"))).code == "INVALID_AMOUNT"


async def test_unsupported_currencies_share_one_metric_label(orchestrator, request_factory):
    for i in range(5):
        await orchestrator.payout_to_creator(request_factory(currency=f"X{i:03d}"))

    labels = {sample.labels["currency"] for metric in payout_counter.collect() for sample in metric.samples}

    assert "unsupported" in labels
    assert not any(label.startswith("X0") for label in labels)


async def test_provider_reference_is_statement_text(orchestrator, provider, request_factory):
    await orchestrator.payout_to_creator(request_factory(creator_id="c1"))
    await orchestrator.payout_to_creator(request_factory(creator_id="c2", reason="March earnings"))
    await orchestrator.payout_to_creator(request_factory(creator_id="c3", reason="x" * 80))

    references = [r["reference"] for r in provider.transfer_requests]

    assert references[:2] == ["Payout to John Doe", "March earnings"]
    assert references[2] == "x" * 35


async def test_duplicate_reference_leaves_one_record(orchestrator, ledger, payout_request):
    first = await orchestrator.payout_to_creator(payout_request, reference="ref-1")
    second = await orchestrator.payout_to_creator(payout_request, reference="ref-1")

    assert first.success
    assert second.code == "DUPLICATE_REFERENCE"
    assert second.retryable is False
    assert len(await ledger.list_creator_payouts("c1")) == 1


async def test_recipient_reused_for_same_account(orchestrator, provider, payout_request):
    first = await orchestrator.payout_to_creator(payout_request)
    second = await orchestrator.payout_to_creator(payout_request)

    assert second.payout.wise_recipient_id == first.payout.wise_recipient_id == "777"
    assert provider.calls["create_recipient"] == 1


async def test_transient_failures_are_retried(orchestrator, provider, sleeps, payout_request):
    provider.fail(
        "create_recipient",
        ProviderError("Service unavailable", status_code=503),
        ProviderTimeoutError("Wise API timeout after 30s"),
    )

    result = await orchestrator.payout_to_creator(payout_request)

    assert result.success
    assert provider.calls["create_recipient"] == 3
    assert sleeps.delays == [1.0, 2.0]


async def test_exhausted_retries_fail_the_payout(orchestrator, ledger, provider, payout_request):
    provider.fail("create_transfer", *[ProviderError("Service unavailable", status_code=503)] * 3)

    result = await orchestrator.payout_to_creator(payout_request)

    assert not result.success
    assert result.code == "SERVER_ERROR"
    assert result.retryable is True
    assert provider.calls["create_transfer"] == 3
    stored = await ledger.get_payout(result.payout.id)
    assert stored.status == PayoutStatus.FAILED
    assert stored.error_code == "SERVER_ERROR"
    assert stored.wise_recipient_id == "777"
    assert stored.wise_transfer_id is None


async def test_fatal_recipient_error_not_retried(orchestrator, ledger, provider, payout_request):
    provider.fail("create_recipient", ProviderError("Invalid account number", status_code=400))

    result = await orchestrator.payout_to_creator(payout_request)

    assert result.code == "RECIPIENT_CREATION_FAILED"
    assert result.error == "Failed to create recipient: Invalid account number"
    assert result.retryable is False
    assert provider.calls["create_recipient"] == 1
    assert provider.calls["create_quote"] == 0
    assert (await ledger.get_payout(result.payout.id)).status == PayoutStatus.FAILED


async def test_funding_failure_keeps_transfer_id(provider, ledger, creators, retry_policy, payout_request):
    orchestrator = PayoutOrchestrator.build(provider, ledger, creators, retry_policy, funding_enabled=True)
    provider.fail("fund_transfer", ProviderError("Insufficient balance", status_code=400))

    result = await orchestrator.payout_to_creator(payout_request)

    assert result.code == "INSUFFICIENT_BALANCE"
    assert provider.calls["fund_transfer"] == 1
    stored = await ledger.get_payout(result.payout.id)
    assert stored.status == PayoutStatus.FAILED
    assert stored.wise_transfer_id == "999"


async def test_funded_payout(provider, ledger, creators, retry_policy, payout_request):
    orchestrator = PayoutOrchestrator.build(provider, ledger, creators, retry_policy, funding_enabled=True)

    result = await orchestrator.payout_to_creator(payout_request)

    assert result.success
    assert provider.funded == ["999"]


async def test_refresh_settles_completed_transfer(orchestrator, provider, payout_request):
    payout = (await orchestrator.payout_to_creator(payout_request)).payout

    unchanged = await orchestrator.refresh_status(payout.id)
    assert unchanged.payout.status == PayoutStatus.PROCESSING

    provider.transfer_statuses["999"] = "outgoing_payment_sent"
    result = await orchestrator.refresh_status(payout.id)

    assert result.success
    assert result.payout.status == PayoutStatus.COMPLETED
    assert result.payout.completed_at is not None


async def test_refresh_bounced_transfer_fails_payout(orchestrator, provider, payout_request):
    payout = (await orchestrator.payout_to_creator(payout_request)).payout
    provider.transfer_statuses["999"] = "bounced_back"

    result = await orchestrator.refresh_status(payout.id)

    assert result.payout.status == PayoutStatus.FAILED
    assert result.payout.error_code == "TRANSFER_BOUNCED_BACK"


async def test_refresh_provider_error_leaves_record(orchestrator, ledger, provider, payout_request):
    payout = (await orchestrator.payout_to_creator(payout_request)).payout
    provider.fail("get_transfer", ProviderError("Bad gateway", status_code=502))

    result = await orchestrator.refresh_status(payout.id)

    assert not result.success
    assert result.retryable is True
    assert (await ledger.get_payout(payout.id)).status == PayoutStatus.PROCESSING


async def test_transfer_event_is_idempotent(orchestrator, payout_request):
    payout = (await orchestrator.payout_to_creator(payout_request)).payout

    first = await orchestrator.apply_transfer_event("999", "outgoing_payment_sent")
    again = await orchestrator.apply_transfer_event("999", "bounced_back")

    assert first.payout.status == PayoutStatus.COMPLETED
    assert again.payout.status == PayoutStatus.COMPLETED
    assert again.payout.id == payout.id

    unknown = await orchestrator.apply_transfer_event("12345", "outgoing_payment_sent")
    assert unknown.code == "PAYOUT_NOT_FOUND"


async def test_cancel_in_flight_payout(orchestrator, provider, payout_request):
    payout = (await orchestrator.payout_to_creator(payout_request)).payout

    result = await orchestrator.cancel_payout(payout.id)

    assert result.success
    assert result.payout.status == PayoutStatus.CANCELLED
    assert provider.calls["cancel_transfer"] == 1

    again = await orchestrator.cancel_payout(payout.id)
    assert again.code == "PAYOUT_NOT_CANCELLABLE"


async def test_poll_processing_payouts(orchestrator, provider, request_factory):
    await orchestrator.payout_to_creator(request_factory(creator_id="c1"))
    await orchestrator.payout_to_creator(request_factory(creator_id="c2"))
    provider.transfer_statuses["999"] = "outgoing_payment_sent"

    results = await orchestrator.poll_processing_payouts()

    assert sorted(r.payout.status.value for r in results) == ["completed", "processing"]


async def test_cancel_before_transfer_is_recorded_withdraws_transfer(orchestrator, ledger, provider, payout_request):
    create_transfer = provider.create_transfer

    async def create_then_cancel(*args, **kwargs):
        transfer = await create_transfer(*args, **kwargs)
        (pending,) = await ledger.list_pending()
        await orchestrator.cancel_payout(pending.id)
        return transfer

    provider.create_transfer = create_then_cancel

    result = await orchestrator.payout_to_creator(payout_request)

    assert result.code == "INVALID_STATE"
    assert result.payout.status == PayoutStatus.CANCELLED
    assert provider.calls["cancel_transfer"] == 1
    assert provider.transfer_statuses["999"] == "cancelled"
