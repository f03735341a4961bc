"""Bounded-concurrency batch payouts"""

import asyncio
import logging
from decimal import Decimal, InvalidOperation
from typing import Iterable, List, Optional

from payout_engine.domain.models import (
    BatchPayoutResult,
    BatchSummary,
    CurrencyTotals,
    FailedPayout,
    PayoutRequest,
    PayoutResult,
)
from payout_engine.domain.payout import PayoutOrchestrator
from payout_engine.infrastructure.observability.metrics import batch_items_in_flight

logger = logging.getLogger(__name__)


def _amount(value) -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return Decimal("0")


def summarize(items: List[PayoutRequest], results: List[Optional[PayoutResult]]) -> BatchPayoutResult:
    """Partition results by outcome and total amounts per currency; `None` slots are skipped items"""
    successful = []
    failed: List[FailedPayout] = []
    skipped: List[PayoutRequest] = []
    by_currency = {}

    for item, result in zip(items, results):
        amount = _amount(item.amount)
        totals = by_currency.setdefault(item.currency, CurrencyTotals())
        totals.total += amount

        if result is None:
            skipped.append(item)
        elif result.success:
            successful.append(result.payout)
            totals.succeeded += amount
        else:
            failed.append(
                FailedPayout(
                    item=item,
                    error=result.error or "Unknown error",
                    code=result.code or "UNKNOWN_ERROR",
                    retryable=bool(result.retryable),
                )
            )
            totals.failed += amount

    summary = BatchSummary(
        total=len(items),
        success_count=len(successful),
        failure_count=len(failed),
        skipped_count=len(skipped),
        by_currency=by_currency,
    )
    return BatchPayoutResult(
        success=not failed and not skipped,
        total=len(items),
        results=results,
        successful=successful,
        failed=failed,
        skipped=skipped,
        summary=summary,
    )


class BatchScheduler:
    """Runs many payouts through the orchestrator, at most N at a time"""

    def __init__(self, orchestrator: PayoutOrchestrator, max_concurrent: int = 5):
        self.orchestrator = orchestrator
        self.max_concurrent = max_concurrent

    async def _process_item(self, item: PayoutRequest) -> PayoutResult:
        batch_items_in_flight.inc()
        try:
            return await self.orchestrator.payout_to_creator(item)
        except Exception as e:
            # recorded as this item's result; siblings keep running
            logger.exception(f"Unexpected error in batch item: {e}", extra={"creator_id": item.creator_id})
            return PayoutResult(success=False, error=str(e) or e.__class__.__name__, code="UNEXPECTED_ERROR", retryable=False)
        finally:
            batch_items_in_flight.dec()

    async def batch_payout(
        self,
        items: Iterable[PayoutRequest],
        sequential: bool = False,
        max_concurrent: Optional[int] = None,
        stop_on_error: bool = False,
    ) -> BatchPayoutResult:
        """
        Pay many creators.

        Args:
            items: Payout requests; results keep this order
            sequential: Process one item at a time
            max_concurrent: Worker pool size in parallel mode
            stop_on_error: Sequential mode only; stop at the first failure and
                report the remaining items as skipped

        Returns:
            BatchPayoutResult with per-item results and per-currency totals
        """
        items = list(items)
        results: List[Optional[PayoutResult]] = [None] * len(items)
        logger.info(
            "Starting batch payout",
            extra={"total": len(items), "sequential": sequential, "stop_on_error": stop_on_error},
        )

        if sequential:
            for index, item in enumerate(items):
                results[index] = await self._process_item(item)
                if stop_on_error and not results[index].success:
                    logger.warning(
                        "Stopping batch on first failure",
                        extra={"index": index, "code": results[index].code, "skipped": len(items) - index - 1},
                    )
                    break
        elif items:
            queue: asyncio.Queue = asyncio.Queue()
            for index, item in enumerate(items):
                queue.put_nowait((index, item))

            async def worker() -> None:
                while True:
                    try:
                        index, item = queue.get_nowait()
                    except asyncio.QueueEmpty:
                        return
                    results[index] = await self._process_item(item)
                    queue.task_done()

            pool_size = max(1, min(max_concurrent or self.max_concurrent, len(items)))
            await asyncio.gather(*(worker() for _ in range(pool_size)))

        result = summarize(items, results)
        logger.info(
            "Batch payout finished",
            extra={
                "total": result.total,
                "successful": result.summary.success_count,
                "failed": result.summary.failure_count,
                "skipped": result.summary.skipped_count,
            },
        )
        return result

    async def retry_failed_payouts(
        self,
        failed: Iterable[FailedPayout],
        sequential: bool = False,
        max_concurrent: Optional[int] = None,
    ) -> BatchPayoutResult:
        """Resubmit only retryable failures; the rest come back in `not_retried`"""
        failed = list(failed)
        retryable = [f.item for f in failed if f.retryable]
        not_retried = [f for f in failed if not f.retryable]
        logger.info("Retrying failed payouts", extra={"retrying": len(retryable), "not_retried": len(not_retried)})

        result = await self.batch_payout(retryable, sequential=sequential, max_concurrent=max_concurrent)
        result.not_retried = not_retried
        return result


def format_batch_summary(result: BatchPayoutResult) -> str:
    """Plain-text report of a batch for operators"""
    rule = "=" * 60
    lines = [
        rule,
        "BATCH PAYOUT SUMMARY",
        rule,
        f"Total Payouts:      {result.total}",
        f"Successful:         {result.summary.success_count}",
        f"Failed:             {result.summary.failure_count}",
    ]
    if result.summary.skipped_count:
        lines.append(f"Skipped:            {result.summary.skipped_count}")
    lines.append("")

    lines.append("AMOUNTS BY CURRENCY:")
    for currency, totals in sorted(result.summary.by_currency.items()):
        lines.append(
            f"  {currency}: total {totals.total:,.2f} | succeeded {totals.succeeded:,.2f} | failed {totals.failed:,.2f}"
        )
    lines.append("")

    if result.failed:
        lines.append("FAILED PAYOUTS:")
        for failure in result.failed:
            lines.append(f"  Creator:   {failure.item.creator_id}")
            lines.append(f"  Amount:    {failure.item.currency} {_amount(failure.item.amount):,.2f}")
            lines.append(f"  Error:     {failure.error}")
            lines.append(f"  Code:      {failure.code}")
            lines.append(f"  Retryable: {'Yes' if failure.retryable else 'No'}")
            lines.append("  " + "-" * 56)

    if result.not_retried:
        lines.append(f"NOT RETRIED (fatal): {len(result.not_retried)}")

    lines.append(rule)
    return "\n".join(lines)
