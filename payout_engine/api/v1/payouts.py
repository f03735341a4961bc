"""Payout endpoints - single, batch, retry, status and lookup"""

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from payout_engine.api.dependencies import get_batch_scheduler, get_ledger, get_orchestrator, get_request_id
from payout_engine.api.v1.schemas import (
    BatchPayoutRequest,
    BatchPayoutResponse,
    PayoutListResponse,
    PayoutResponse,
    PayoutResultResponse,
    PendingSummaryItem,
    PendingSummaryResponse,
    RetryPayoutsRequest,
    SinglePayoutRequest,
)
from payout_engine.domain.batch import BatchScheduler, format_batch_summary
from payout_engine.domain.exceptions import PayoutNotFoundError
from payout_engine.domain.models import PayoutResult
from payout_engine.domain.payout import PayoutOrchestrator
from payout_engine.infrastructure.database.repositories import PayoutLedger

router = APIRouter()

# Result codes that are not provider failures
ERROR_STATUS = {
    "MISSING_PARAMS": 422,
    "INVALID_AMOUNT": 422,
    "UNSUPPORTED_CURRENCY": 422,
    "INVALID_BANK_ACCOUNT": 422,
    "CREATOR_NOT_FOUND": 404,
    "PAYOUT_NOT_FOUND": 404,
    "DUPLICATE_REFERENCE": 409,
    "PAYOUT_NOT_CANCELLABLE": 409,
    "TRANSFER_NOT_CANCELLABLE": 409,
    "INVALID_STATE": 409,
    "DB_ERROR": 503,
}


def status_code_for(result: PayoutResult, success_status: int = 200) -> int:
    """HTTP status for a payout result; provider failures are 503 if retryable, else 502"""
    if result.success:
        return success_status
    if result.code in ERROR_STATUS:
        return ERROR_STATUS[result.code]
    return 503 if result.retryable else 502


def result_response(result: PayoutResult, success_status: int = 200) -> JSONResponse:
    body = PayoutResultResponse.from_domain(result)
    return JSONResponse(status_code=status_code_for(result, success_status), content=jsonable_encoder(body))


@router.post("/payouts", response_model=PayoutResultResponse, status_code=201)
async def create_payout(
    request_body: SinglePayoutRequest,
    request: Request,
    orchestrator: PayoutOrchestrator = Depends(get_orchestrator),
):
    """
    Pay a creator.

    Returns 201 with the payout in `processing` on success. Failures carry a
    machine-readable code and a retryability hint in the body.
    """
    request_id = get_request_id(request)
    result = await orchestrator.payout_to_creator(
        request_body.to_domain(),
        reference=request_body.reference,
        customer_transaction_id=request_body.customer_transaction_id,
    )
    if not result.success:
        logging.warning(
            f"Payout failed: {result.code}: {result.error}",
            extra={"request_id": request_id, "creator_id": request_body.creator_id},
        )
    return result_response(result, success_status=201)


@router.post("/payouts/batch", response_model=BatchPayoutResponse)
async def create_batch_payout(
    request_body: BatchPayoutRequest,
    scheduler: BatchScheduler = Depends(get_batch_scheduler),
):
    """Pay many creators with bounded concurrency (or strictly in order)"""
    result = await scheduler.batch_payout(
        [item.to_domain() for item in request_body.items],
        sequential=request_body.sequential,
        max_concurrent=request_body.max_concurrent,
        stop_on_error=request_body.stop_on_error,
    )
    return BatchPayoutResponse.from_domain(result, format_batch_summary(result))


@router.post("/payouts/retry", response_model=BatchPayoutResponse)
async def retry_failed_payouts(
    request_body: RetryPayoutsRequest,
    scheduler: BatchScheduler = Depends(get_batch_scheduler),
):
    """Resubmit the retryable failures of an earlier batch"""
    result = await scheduler.retry_failed_payouts(
        [f.to_domain() for f in request_body.failed],
        sequential=request_body.sequential,
        max_concurrent=request_body.max_concurrent,
    )
    return BatchPayoutResponse.from_domain(result, format_batch_summary(result))


@router.get("/payouts/pending", response_model=PayoutListResponse)
async def list_pending_payouts(
    limit: int = Query(100, ge=1, le=500),
    ledger: PayoutLedger = Depends(get_ledger),
):
    payouts = await ledger.list_pending(limit=limit)
    return PayoutListResponse(payouts=[PayoutResponse.from_domain(p) for p in payouts])


@router.get("/payouts/pending/summary", response_model=PendingSummaryResponse)
async def pending_payouts_summary(ledger: PayoutLedger = Depends(get_ledger)):
    summaries = await ledger.pending_summary()
    return PendingSummaryResponse(currencies=[PendingSummaryItem.from_domain(s) for s in summaries])


@router.post("/payouts/poll", response_model=PayoutListResponse)
async def poll_processing_payouts(
    limit: int = Query(100, ge=1, le=500),
    orchestrator: PayoutOrchestrator = Depends(get_orchestrator),
):
    """Refresh every processing payout against the provider"""
    results = await orchestrator.poll_processing_payouts(limit=limit)
    return PayoutListResponse(payouts=[PayoutResponse.from_domain(r.payout) for r in results if r.payout])


@router.get("/payouts/reference/{reference}", response_model=PayoutResponse)
async def get_payout_by_reference(reference: str, ledger: PayoutLedger = Depends(get_ledger)):
    payout = await ledger.get_by_reference(reference)
    if payout is None:
        raise HTTPException(status_code=404, detail="Payout not found")
    return PayoutResponse.from_domain(payout)


@router.get("/payouts/{payout_id}", response_model=PayoutResponse)
async def get_payout(payout_id: uuid.UUID, ledger: PayoutLedger = Depends(get_ledger)):
    payout = await ledger.get_payout(payout_id)
    if payout is None:
        raise HTTPException(status_code=404, detail="Payout not found")
    return PayoutResponse.from_domain(payout)


@router.post("/payouts/{payout_id}/refresh", response_model=PayoutResultResponse)
async def refresh_payout_status(payout_id: uuid.UUID, orchestrator: PayoutOrchestrator = Depends(get_orchestrator)):
    """Poll the provider for the transfer's state and settle the payout if final"""
    return result_response(await orchestrator.refresh_status(payout_id))


@router.post("/payouts/{payout_id}/cancel", response_model=PayoutResultResponse)
async def cancel_payout(payout_id: uuid.UUID, orchestrator: PayoutOrchestrator = Depends(get_orchestrator)):
    return result_response(await orchestrator.cancel_payout(payout_id))


@router.delete("/payouts/{payout_id}", response_model=PayoutResponse)
async def delete_payout(payout_id: uuid.UUID, ledger: PayoutLedger = Depends(get_ledger)):
    """Soft delete; the record stays retrievable by id"""
    try:
        payout = await ledger.soft_delete(payout_id)
    except PayoutNotFoundError:
        raise HTTPException(status_code=404, detail="Payout not found")
    return PayoutResponse.from_domain(payout)
