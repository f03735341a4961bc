"""Wise API HTTP client"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, TypeVar

import httpx

from payout_engine.config import settings
from payout_engine.domain.exceptions import ProviderError, ProviderNetworkError, ProviderTimeoutError
from payout_engine.domain.models import Quote, Transfer
from payout_engine.infrastructure.observability.metrics import provider_failure_counter, provider_latency_histogram

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _decimal(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    return Decimal(str(value))


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def parse_quote(data: Dict[str, Any], amount_type: str = "target") -> Quote:
    fee = data.get("fee")
    if isinstance(fee, dict):
        fee = fee.get("total")
    return Quote(
        id=str(data["id"]),
        rate=_decimal(data["rate"]),
        fee=_decimal(fee) if fee is not None else Decimal("0"),
        source_currency=data.get("sourceCurrency") or data["source"],
        target_currency=data.get("targetCurrency") or data["target"],
        source_amount=_decimal(data.get("sourceAmount")),
        target_amount=_decimal(data.get("targetAmount")),
        expires_at=_parse_datetime(data.get("expirationTime")),
        amount_type=amount_type,
    )


def parse_transfer(data: Dict[str, Any]) -> Transfer:
    details = data.get("details") or {}
    return Transfer(
        id=str(data["id"]),
        status=data["status"],
        reference=data.get("reference") or details.get("reference"),
        customer_transaction_id=data.get("customerTransactionId"),
        rate=_decimal(data.get("rate")),
        source_amount=_decimal(data.get("sourceValue")),
        source_currency=data.get("sourceCurrency"),
        target_amount=_decimal(data.get("targetValue")),
        target_currency=data.get("targetCurrency"),
        quote_id=data.get("quoteUuid") or (str(data["quote"]) if data.get("quote") is not None else None),
        raw=data,
    )


def error_from_response(response: httpx.Response) -> ProviderError:
    """Build a ProviderError from a Wise error body ({error, message, errors: [...]})"""
    status_code = response.status_code
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}

    errors = body.get("errors") or []
    first = errors[0] if errors and isinstance(errors[0], dict) else {}
    message = body.get("message") or first.get("message") or body.get("error") or f"Wise API error: {status_code}"
    error_code = first.get("code") or body.get("error")
    return ProviderError(message, status_code=status_code, error_code=error_code, details=body)


class WiseClient:
    """
    Client for the Wise transfer API.

    Holds one connection pool for its lifetime; construct it once per process
    and close it with `aclose()` (or use it as an async context manager).
    """

    def __init__(
        self,
        base_url: str | None = None,
        api_token: str | None = None,
        profile_id: str | None = None,
        source_currency: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or settings.resolved_wise_api_url).rstrip("/")
        self.profile_id = profile_id or settings.wise_profile_id
        self.source_currency = source_currency or settings.source_currency
        self.timeout = timeout or settings.http_timeout_seconds
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=transport,
            headers={
                "Authorization": f"Bearer {api_token if api_token is not None else settings.wise_api_token}",
                "Content-Type": "application/json",
            },
        )

    async def __aenter__(self) -> "WiseClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, operation: str, method: str, path: str, payload: Dict[str, Any] | None = None) -> Any:
        """
        Send one request and decode the JSON body.

        Raises:
            ProviderTimeoutError: On timeout
            ProviderNetworkError: On connection / DNS failure
            ProviderError: On non-2xx responses or an undecodable body
        """
        try:
            with provider_latency_histogram.labels(operation=operation).time():
                response = await self._client.request(method, path, json=payload)
            response.raise_for_status()
            return response.json() if response.content else {}

        except httpx.TimeoutException as e:
            provider_failure_counter.labels(operation=operation, kind="timeout").inc()
            raise ProviderTimeoutError(f"Wise API timeout after {self.timeout}s") from e
        except httpx.HTTPStatusError as e:
            provider_failure_counter.labels(operation=operation, kind="http").inc()
            error = error_from_response(e.response)
            logger.warning(
                f"Wise API error on {operation}: {error.message}",
                extra={"operation": operation, "status_code": error.status_code, "error_code": error.error_code},
            )
            raise error from e
        except httpx.RequestError as e:
            provider_failure_counter.labels(operation=operation, kind="network").inc()
            raise ProviderNetworkError(f"Wise API network error: {e}") from e
        except ValueError as e:
            provider_failure_counter.labels(operation=operation, kind="invalid_response").inc()
            raise ProviderError(f"Invalid JSON from Wise API: {e}") from e

    def _parse(self, kind: str, parser: Callable[..., T], data: Any, *args: Any) -> T:
        try:
            return parser(data, *args)
        except (KeyError, ValueError, TypeError, ArithmeticError) as e:
            raise ProviderError(f"Invalid {kind} data from Wise: {e}") from e

    async def create_recipient(
        self,
        currency: str,
        account_holder_name: str,
        recipient_type: str,
        details: Dict[str, Any],
    ) -> str:
        data = await self._request(
            "create_recipient",
            "POST",
            "/v1/accounts",
            {
                "currency": currency,
                "type": recipient_type,
                "profile": int(self.profile_id),
                "accountHolderName": account_holder_name,
                "ownedByCustomer": False,
                "details": details,
            },
        )
        return self._parse("recipient", lambda d: str(d["id"]), data)

    async def create_quote(
        self,
        source_currency: str,
        target_currency: str,
        source_amount: Optional[Decimal] = None,
        target_amount: Optional[Decimal] = None,
    ) -> Quote:
        payload: Dict[str, Any] = {
            "profile": int(self.profile_id),
            "sourceCurrency": source_currency or self.source_currency,
            "targetCurrency": target_currency,
            "paymentOption": "BALANCE",
        }
        if target_amount is not None:
            payload["targetAmount"] = float(target_amount)
            amount_type = "target"
        else:
            payload["sourceAmount"] = float(source_amount)
            amount_type = "source"

        data = await self._request("create_quote", "POST", "/v2/quotes", payload)
        return self._parse("quote", parse_quote, data, amount_type)

    async def get_quote(self, quote_id: str) -> Quote:
        data = await self._request("get_quote", "GET", f"/v2/quotes/{quote_id}")
        return self._parse("quote", parse_quote, data)

    async def create_transfer(
        self,
        recipient_id: str,
        quote_id: str,
        customer_transaction_id: str,
        reference: str,
    ) -> Transfer:
        data = await self._request(
            "create_transfer",
            "POST",
            "/v1/transfers",
            {
                "targetAccount": int(recipient_id) if str(recipient_id).isdigit() else recipient_id,
                "quoteUuid": quote_id,
                "customerTransactionId": customer_transaction_id,
                "details": {"reference": reference},
            },
        )
        return self._parse("transfer", parse_transfer, data)

    async def fund_transfer(self, transfer_id: str, funding_source: str = "BALANCE") -> Dict[str, Any]:
        """
        Raises:
            ProviderError: If the provider rejects the payment
        """
        data = await self._request(
            "fund_transfer",
            "POST",
            f"/v3/profiles/{self.profile_id}/transfers/{transfer_id}/payments",
            {"type": funding_source},
        )
        if isinstance(data, dict) and data.get("status") == "REJECTED":
            error_code = data.get("errorCode") or "payment_rejected"
            raise ProviderError(
                f"Transfer funding rejected: {error_code}",
                status_code=400,
                error_code=error_code,
                details=data,
            )
        return data

    async def get_transfer(self, transfer_id: str) -> Transfer:
        data = await self._request("get_transfer", "GET", f"/v1/transfers/{transfer_id}")
        return self._parse("transfer", parse_transfer, data)

    async def cancel_transfer(self, transfer_id: str) -> Transfer:
        data = await self._request("cancel_transfer", "PUT", f"/v1/transfers/{transfer_id}/cancel")
        return self._parse("transfer", parse_transfer, data)

    async def get_profiles(self) -> List[Dict[str, Any]]:
        return await self._request("get_profiles", "GET", "/v1/profiles")

    async def get_balances(self, profile_id: str | None = None) -> List[Dict[str, Any]]:
        return await self._request("get_balances", "GET", f"/v1/profiles/{profile_id or self.profile_id}/balances")

    async def test_connection(self) -> bool:
        """True if the API accepts our credentials"""
        try:
            await self.get_profiles()
            return True
        except ProviderError as e:
            logger.warning(f"Wise connection test failed: {e}")
            return False
