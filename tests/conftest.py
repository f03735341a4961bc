"""Pytest fixtures for testing"""

import asyncio
import itertools
from collections import Counter
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

import httpx
import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from payout_engine.api.dependencies import get_orchestrator, get_session_factory, get_wise_client
from payout_engine.api.main import create_app
from payout_engine.domain.batch import BatchScheduler
from payout_engine.domain.models import PayoutRequest, Quote, Transfer
from payout_engine.domain.payout import PayoutOrchestrator
from payout_engine.domain.retry import RetryPolicy
from payout_engine.infrastructure.database.models import Base
from payout_engine.infrastructure.database.repositories import CreatorRepository, PayoutLedger

CREATOR_IDS = ["c1", "c2", "c3", "c4", "c5", "c6"]


class FakeWiseProvider:
    """
    In-memory provider double.

    - `fail(operation, *errors)` queues exceptions raised by the next calls
    - `fail_accounts[account_number] = error` fails every recipient creation for that account
    - `max_in_flight` records the highest number of concurrent calls
    """

    def __init__(self):
        self.calls = Counter()
        self.failures: Dict[str, List[Exception]] = {}
        self.fail_accounts: Dict[str, Exception] = {}
        self.delay = 0.0
        self.in_flight = 0
        self.max_in_flight = 0
        self.rate = Decimal("1580.5")
        self.fee = Decimal("1.50")
        self.quote_ttl = timedelta(minutes=30)
        self.recipient_ids = itertools.count(777)
        self.transfer_ids = itertools.count(999)
        self.quote_ids = itertools.count(1)
        self.transfers: Dict[str, Transfer] = {}
        self.transfer_statuses: Dict[str, str] = {}
        self.transfer_requests: List[Dict[str, Any]] = []
        self.funded: List[str] = []
        self.fund_result: Dict[str, Any] = {"type": "BALANCE", "status": "COMPLETED", "errorCode": None}

    def fail(self, operation: str, *errors: Exception) -> None:
        self.failures.setdefault(operation, []).extend(errors)

    async def _call(self, operation: str) -> None:
        self.calls[operation] += 1
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            queued = self.failures.get(operation)
            if queued:
                raise queued.pop(0)
        finally:
            self.in_flight -= 1

    async def create_recipient(self, currency, account_holder_name, recipient_type, details):
        await self._call("create_recipient")
        account_number = details.get("accountNumber") or details.get("iban")
        if account_number in self.fail_accounts:
            raise self.fail_accounts[account_number]
        return str(next(self.recipient_ids))

    async def create_quote(self, source_currency, target_currency, source_amount=None, target_amount=None):
        await self._call("create_quote")
        if target_amount is not None:
            source = (Decimal(str(target_amount)) / self.rate + self.fee).quantize(Decimal("0.01"))
            target = Decimal(str(target_amount))
            amount_type = "target"
        else:
            source = Decimal(str(source_amount))
            target = ((source - self.fee) * self.rate).quantize(Decimal("0.01"))
            amount_type = "source"
        return Quote(
            id=f"quote-{next(self.quote_ids)}",
            rate=self.rate,
            fee=self.fee,
            source_currency=source_currency,
            target_currency=target_currency,
            source_amount=source,
            target_amount=target,
            expires_at=datetime.now(timezone.utc) + self.quote_ttl,
            amount_type=amount_type,
        )

    async def get_quote(self, quote_id):
        raise NotImplementedError

    async def create_transfer(self, recipient_id, quote_id, customer_transaction_id, reference):
        await self._call("create_transfer")
        self.transfer_requests.append(
            {
                "recipient_id": recipient_id,
                "quote_id": quote_id,
                "customer_transaction_id": customer_transaction_id,
                "reference": reference,
            }
        )
        for transfer in self.transfers.values():
            if transfer.customer_transaction_id == customer_transaction_id:
                return transfer
        transfer = Transfer(
            id=str(next(self.transfer_ids)),
            status="incoming_payment_waiting",
            reference=reference,
            customer_transaction_id=customer_transaction_id,
            quote_id=quote_id,
        )
        self.transfers[transfer.id] = transfer
        self.transfer_statuses[transfer.id] = transfer.status
        return transfer

    async def fund_transfer(self, transfer_id, funding_source="BALANCE"):
        await self._call("fund_transfer")
        self.funded.append(transfer_id)
        return self.fund_result

    async def get_transfer(self, transfer_id):
        await self._call("get_transfer")
        return Transfer(id=transfer_id, status=self.transfer_statuses[transfer_id])

    async def cancel_transfer(self, transfer_id):
        await self._call("cancel_transfer")
        self.transfer_statuses[transfer_id] = "cancelled"
        return Transfer(id=transfer_id, status="cancelled")


class SleepRecorder:
    """Stand-in for asyncio.sleep that records requested delays"""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def make_request(**overrides) -> PayoutRequest:
    values = dict(
        creator_id="c1",
        amount=Decimal("50000"),
        currency="NGN",
        bank_account_number="0123456789",
        bank_code="044",
        account_holder_name="John Doe",
    )
    values.update(overrides)
    return PayoutRequest(**values)


@pytest.fixture
async def session_factory(tmp_path):
    """Fresh SQLite ledger per test; a file DB so concurrent sessions share it"""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        connect_args={"timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield async_sessionmaker(engine, expire_on_commit=False)
    finally:
        await engine.dispose()


@pytest.fixture
def ledger(session_factory) -> PayoutLedger:
    return PayoutLedger(session_factory)


@pytest.fixture
async def creators(session_factory) -> CreatorRepository:
    repo = CreatorRepository(session_factory)
    for creator_id in CREATOR_IDS:
        await repo.add_creator(creator_id, username=f"{creator_id}_user", display_name=f"Creator {creator_id}")
    return repo


@pytest.fixture
def provider() -> FakeWiseProvider:
    return FakeWiseProvider()


@pytest.fixture
def sleeps() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def retry_policy(sleeps) -> RetryPolicy:
    return RetryPolicy(max_attempts=3, initial_delay=1.0, multiplier=2.0, max_delay=10.0, sleep=sleeps)


@pytest.fixture
def orchestrator(provider, ledger, creators, retry_policy) -> PayoutOrchestrator:
    return PayoutOrchestrator.build(provider, ledger, creators, retry_policy, funding_enabled=False)


@pytest.fixture
def scheduler(orchestrator) -> BatchScheduler:
    return BatchScheduler(orchestrator, max_concurrent=5)


@pytest.fixture
def payout_request() -> PayoutRequest:
    return make_request()


@pytest.fixture
def request_factory():
    """Build a valid NGN payout request with overrides"""
    return make_request


@pytest.fixture
async def client(session_factory, provider, orchestrator):
    """HTTP client for the app with test ledger and provider double"""
    app = create_app()
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_wise_client] = lambda: provider
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http_client:
        yield http_client
