"""Unit tests for the Wise HTTP client"""

import json
from decimal import Decimal

import httpx
import pytest

from payout_engine.domain.exceptions import ProviderError, ProviderNetworkError, ProviderTimeoutError
from payout_engine.infrastructure.clients.wise import WiseClient


def make_client(handler) -> WiseClient:
    return WiseClient(
        base_url="https://wise.test",
        api_token="token-123",
        profile_id="4242",
        timeout=5.0,
        transport=httpx.MockTransport(handler),
    )


async def test_create_quote_sends_target_amount_and_parses_response():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "id": "quote-uuid",
                "sourceCurrency": "USD",
                "targetCurrency": "NGN",
                "sourceAmount": 33.14,
                "targetAmount": 50000,
                "rate": 1580.5,
                "fee": 1.5,
                "expirationTime": "2030-01-01T00:30:00Z",
            },
        )

    async with make_client(handler) as client:
        quote = await client.create_quote("USD", "NGN", target_amount=Decimal("50000"))

    assert seen["path"] == "/v2/quotes"
    assert seen["auth"] == "Bearer token-123"
    assert seen["body"] == {
        "profile": 4242,
        "sourceCurrency": "USD",
        "targetCurrency": "NGN",
        "paymentOption": "BALANCE",
        "targetAmount": 50000.0,
    }
    assert quote.id == "quote-uuid"
    assert quote.rate == Decimal("1580.5")
    assert quote.fee == Decimal("1.5")
    assert quote.amount_type == "target"
    assert quote.expires_at.year == 2030
    assert not quote.is_expired()


async def test_create_recipient_payload():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": 777, "currency": "NGN"})

    async with make_client(handler) as client:
        recipient_id = await client.create_recipient(
            "NGN", "John Doe", "nigerian_bank_account", {"accountNumber": "0123456789", "bankCode": "044"}
        )

    assert recipient_id == "777"
    assert seen["body"]["type"] == "nigerian_bank_account"
    assert seen["body"]["profile"] == 4242
    assert seen["body"]["ownedByCustomer"] is False


async def test_create_transfer_sends_idempotency_key():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "id": 999,
                "status": "incoming_payment_waiting",
                "rate": 1580.5,
                "sourceValue": 33.14,
                "sourceCurrency": "USD",
                "targetValue": 50000,
                "targetCurrency": "NGN",
                "quoteUuid": "quote-uuid",
                "customerTransactionId": "txn-1",
                "details": {"reference": "payout_c1_abc"},
            },
        )

    async with make_client(handler) as client:
        transfer = await client.create_transfer("777", "quote-uuid", "txn-1", "payout_c1_abc")

    assert seen["body"] == {
        "targetAccount": 777,
        "quoteUuid": "quote-uuid",
        "customerTransactionId": "txn-1",
        "details": {"reference": "payout_c1_abc"},
    }
    assert transfer.id == "999"
    assert transfer.reference == "payout_c1_abc"
    assert transfer.source_amount == Decimal("33.14")


async def test_error_body_becomes_provider_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            400,
            json={"errors": [{"code": "NOT_VALID", "message": "Invalid account number"}]},
        )

    async with make_client(handler) as client:
        with pytest.raises(ProviderError) as exc_info:
            await client.get_transfer("1")

    assert exc_info.value.status_code == 400
    assert exc_info.value.error_code == "NOT_VALID"
    assert exc_info.value.message == "Invalid account number"


async def test_non_json_error_body_uses_status():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(502, text="<html>bad gateway</html>")

    async with make_client(handler) as client:
        with pytest.raises(ProviderError) as exc_info:
            await client.get_profiles()

    assert exc_info.value.status_code == 502
    assert "502" in exc_info.value.message


async def test_timeout_and_network_errors_are_translated():
    def timeout(request):
        raise httpx.ReadTimeout("timed out", request=request)

    def refused(request):
        raise httpx.ConnectError("connection refused", request=request)

    async with make_client(timeout) as client:
        with pytest.raises(ProviderTimeoutError):
            await client.get_transfer("1")

    async with make_client(refused) as client:
        with pytest.raises(ProviderNetworkError):
            await client.get_transfer("1")


async def test_malformed_success_body_is_provider_error():
    def handler(request):
        return httpx.Response(200, json={"status": "processing"})  # no id

    async with make_client(handler) as client:
        with pytest.raises(ProviderError, match="Invalid transfer data"):
            await client.get_transfer("1")


async def test_rejected_funding_raises():
    def handler(request):
        assert request.url.path == "/v3/profiles/4242/transfers/999/payments"
        return httpx.Response(200, json={"type": "BALANCE", "status": "REJECTED", "errorCode": "balance.insufficient"})

    async with make_client(handler) as client:
        with pytest.raises(ProviderError) as exc_info:
            await client.fund_transfer("999")

    assert exc_info.value.status_code == 400
    assert exc_info.value.error_code == "balance.insufficient"


async def test_connection_check():
    async with make_client(lambda request: httpx.Response(200, json=[{"id": 4242}])) as client:
        assert await client.test_connection() is True
    async with make_client(lambda request: httpx.Response(401, json={"error": "unauthorized"})) as client:
        assert await client.test_connection() is False
