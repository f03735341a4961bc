from datetime import datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from itertools import count
import uuid

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

# USD -> target
RATES = {
    "USD": Decimal("1"),
    "NGN": Decimal("1580.5"),
    "GHS": Decimal("15.2"),
    "KES": Decimal("129.3"),
    "EUR": Decimal("0.92"),
    "GBP": Decimal("0.79"),
}
FEE = Decimal("1.50")
QUOTE_TTL = timedelta(minutes=30)
IN_FLIGHT = {"incoming_payment_waiting", "processing", "funds_converted"}


def _money(value: Decimal) -> float:
    return float(value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def _error(status: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status,
        content={"error": code, "message": message, "errors": [{"code": code, "message": message}]},
    )


def create_app() -> FastAPI:
    app = FastAPI(title="Mock Wise Server", version="1.0.0")
    app.state.recipients = {}
    app.state.quotes = {}
    app.state.transfers = {}
    app.state.transfers_by_txn = {}
    app.state.failures = {}  # operation -> [status, remaining]
    app.state.calls = {}
    ids = count(1000)

    def take_failure(operation: str):
        app.state.calls[operation] = app.state.calls.get(operation, 0) + 1
        planned = app.state.failures.get(operation)
        if planned and planned[1] > 0:
            planned[1] -= 1
            return _error(planned[0], "MOCK_FAILURE", f"Injected failure for {operation}")
        return None

    @app.get("/health")
    def health(): return {"status": "ok"}

    @app.post("/mock/failures")
    async def plan_failures(request: Request):
        body = await request.json()
        app.state.failures[body["operation"]] = [body.get("status", 503), body.get("count", 1)]
        return {"planned": body}

    @app.get("/mock/calls")
    def calls(): return app.state.calls

    @app.post("/mock/transfers/{transfer_id}/state")
    async def set_transfer_state(transfer_id: int, request: Request):
        transfer = app.state.transfers.get(transfer_id)
        if transfer is None:
            raise HTTPException(status_code=404, detail="transfer not found")
        transfer["status"] = (await request.json())["status"]
        return transfer

    @app.get("/v1/profiles")
    def profiles(): return [{"id": 12345, "type": "business"}]

    @app.get("/v1/profiles/{profile_id}/balances")
    def balances(profile_id: int):
        return [{"currency": "USD", "amount": {"value": 100000.0, "currency": "USD"}}]

    @app.post("/v1/accounts")
    async def create_account(request: Request):
        failure = take_failure("create_recipient")
        if failure:
            return failure
        body = await request.json()
        details = body.get("details") or {}
        if not body.get("accountHolderName") or not (details.get("accountNumber") or details.get("iban")):
            return _error(400, "INVALID_ACCOUNT", "Invalid account details")
        recipient = {"id": next(ids), **body}
        app.state.recipients[recipient["id"]] = recipient
        return recipient

    @app.post("/v2/quotes")
    async def create_quote(request: Request):
        failure = take_failure("create_quote")
        if failure:
            return failure
        body = await request.json()
        source, target = body.get("sourceCurrency", "USD"), body["targetCurrency"]
        if target not in RATES or source != "USD":
            return _error(400, "UNSUPPORTED_ROUTE", f"Unsupported currency route {source}->{target}")
        rate = RATES[target]
        if body.get("targetAmount") is not None:
            target_amount = Decimal(str(body["targetAmount"]))
            source_amount = target_amount / rate + FEE
        else:
            source_amount = Decimal(str(body["sourceAmount"]))
            target_amount = (source_amount - FEE) * rate
        quote = {
            "id": str(uuid.uuid4()),
            "sourceCurrency": source,
            "targetCurrency": target,
            "sourceAmount": _money(source_amount),
            "targetAmount": _money(target_amount),
            "rate": float(rate),
            "fee": float(FEE),
            "expirationTime": (datetime.now(timezone.utc) + QUOTE_TTL).isoformat().replace("+00:00", "Z"),
        }
        app.state.quotes[quote["id"]] = quote
        return quote

    @app.get("/v2/quotes/{quote_id}")
    def get_quote(quote_id: str):
        if quote_id not in app.state.quotes:
            raise HTTPException(status_code=404, detail="quote not found")
        return app.state.quotes[quote_id]

    @app.post("/v1/transfers")
    async def create_transfer(request: Request):
        failure = take_failure("create_transfer")
        if failure:
            return failure
        body = await request.json()
        existing = app.state.transfers_by_txn.get(body["customerTransactionId"])
        if existing is not None:
            return app.state.transfers[existing]
        quote = app.state.quotes.get(body["quoteUuid"])
        if quote is None:
            return _error(400, "QUOTE_NOT_FOUND", "Quote not found")
        if int(body["targetAccount"]) not in app.state.recipients:
            return _error(400, "INVALID_ACCOUNT", "Target account not found")
        if len(body.get("details", {}).get("reference") or "") > 35:
            return _error(422, "REFERENCE_TOO_LONG", "Reference exceeds 35 characters")
        transfer = {
            "id": next(ids),
            "targetAccount": body["targetAccount"],
            "quoteUuid": quote["id"],
            "status": "incoming_payment_waiting",
            "reference": body.get("details", {}).get("reference"),
            "rate": quote["rate"],
            "created": datetime.now(timezone.utc).isoformat(),
            "customerTransactionId": body["customerTransactionId"],
            "sourceCurrency": quote["sourceCurrency"],
            "sourceValue": quote["sourceAmount"],
            "targetCurrency": quote["targetCurrency"],
            "targetValue": quote["targetAmount"],
        }
        app.state.transfers[transfer["id"]] = transfer
        app.state.transfers_by_txn[body["customerTransactionId"]] = transfer["id"]
        return transfer

    @app.post("/v3/profiles/{profile_id}/transfers/{transfer_id}/payments")
    def fund_transfer(profile_id: int, transfer_id: int):
        failure = take_failure("fund_transfer")
        if failure:
            return failure
        transfer = app.state.transfers.get(transfer_id)
        if transfer is None:
            raise HTTPException(status_code=404, detail="transfer not found")
        transfer["status"] = "processing"
        return {"type": "BALANCE", "status": "COMPLETED", "errorCode": None}

    @app.get("/v1/transfers/{transfer_id}")
    def get_transfer(transfer_id: int):
        if transfer_id not in app.state.transfers:
            raise HTTPException(status_code=404, detail="transfer not found")
        return app.state.transfers[transfer_id]

    @app.put("/v1/transfers/{transfer_id}/cancel")
    def cancel_transfer(transfer_id: int):
        transfer = app.state.transfers.get(transfer_id)
        if transfer is None:
            raise HTTPException(status_code=404, detail="transfer not found")
        if transfer["status"] not in IN_FLIGHT:
            return _error(409, "TRANSFER_NOT_CANCELLABLE", "Transfer can no longer be cancelled")
        transfer["status"] = "cancelled"
        return transfer

    return app


app = create_app()
