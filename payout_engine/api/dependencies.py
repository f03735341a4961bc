"""Dependency injection for FastAPI endpoints"""

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from payout_engine.config import settings
from payout_engine.domain.batch import BatchScheduler
from payout_engine.domain.payout import PayoutOrchestrator
from payout_engine.domain.retry import RetryPolicy
from payout_engine.infrastructure.clients.wise import WiseClient
from payout_engine.infrastructure.database.repositories import CreatorRepository, PayoutLedger
from payout_engine.infrastructure.database.session import get_session_factory
from payout_engine.infrastructure.observability.metrics import record_provider_retry


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_wise_client(request: Request) -> WiseClient:
    """Process-wide Wise client created in the app lifespan"""
    return request.app.state.wise_client


def get_webhook_secret() -> str:
    return settings.wise_webhook_secret


def get_ledger(session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory)) -> PayoutLedger:
    return PayoutLedger(session_factory)


def get_creator_repository(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> CreatorRepository:
    return CreatorRepository(session_factory)


def get_orchestrator(
    wise_client: WiseClient = Depends(get_wise_client),
    ledger: PayoutLedger = Depends(get_ledger),
    creators: CreatorRepository = Depends(get_creator_repository),
) -> PayoutOrchestrator:
    """Payout orchestrator wired to the shared Wise client and the ledger"""
    return PayoutOrchestrator.build(
        wise_client,
        ledger,
        creators,
        RetryPolicy.from_settings(settings, on_retry=record_provider_retry),
        funding_enabled=settings.is_production,
        source_currency=settings.source_currency,
        reference_prefix=settings.reference_prefix,
    )


def get_batch_scheduler(orchestrator: PayoutOrchestrator = Depends(get_orchestrator)) -> BatchScheduler:
    return BatchScheduler(orchestrator, max_concurrent=settings.batch_max_concurrent)
