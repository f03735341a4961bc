"""GET /v1/creators/{creator_id}/payouts - creator payout history and stats"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query

from payout_engine.api.dependencies import get_ledger
from payout_engine.api.v1.schemas import CreatorStatsItem, CreatorStatsResponse, PayoutListResponse, PayoutResponse
from payout_engine.domain.models import PayoutStatus
from payout_engine.infrastructure.database.repositories import PayoutLedger

router = APIRouter()


@router.get("/creators/{creator_id}/payouts", response_model=PayoutListResponse)
async def list_creator_payouts(
    creator_id: str,
    status: Optional[PayoutStatus] = Query(None),
    currency: Optional[str] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    ledger: PayoutLedger = Depends(get_ledger),
):
    """
    Retrieve a creator's payouts, newest first.

    Returns:
        Payouts matching the filters; soft-deleted payouts are excluded
    """
    payouts = await ledger.list_creator_payouts(
        creator_id,
        status=status,
        currency=currency,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
        offset=offset,
    )
    return PayoutListResponse(payouts=[PayoutResponse.from_domain(p) for p in payouts])


@router.get("/creators/{creator_id}/payouts/stats", response_model=CreatorStatsResponse)
async def creator_payout_stats(creator_id: str, ledger: PayoutLedger = Depends(get_ledger)):
    stats = await ledger.creator_stats(creator_id)
    return CreatorStatsResponse(creator_id=creator_id, stats=[CreatorStatsItem.from_domain(s) for s in stats])
