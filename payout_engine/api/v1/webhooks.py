"""POST /v1/webhooks/wise - transfer state notifications"""

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from payout_engine.api.dependencies import get_orchestrator, get_request_id, get_webhook_secret
from payout_engine.api.v1.schemas import WebhookAck
from payout_engine.domain.payout import PayoutOrchestrator
from payout_engine.domain.webhooks import parse_transfer_event, verify_signature
from payout_engine.infrastructure.observability.metrics import webhook_event_counter

router = APIRouter()

SIGNATURE_HEADER = "X-Signature"


@router.post("/webhooks/wise", response_model=WebhookAck)
async def receive_wise_webhook(
    request: Request,
    orchestrator: PayoutOrchestrator = Depends(get_orchestrator),
    secret: str = Depends(get_webhook_secret),
):
    """
    Apply a transfer state change to its payout.

    The raw body must carry a valid HMAC-SHA256 signature. Unknown event
    types and transfers with no matching payout are acknowledged and ignored
    so the sender stops redelivering them.
    """
    request_id = get_request_id(request)
    raw_body = await request.body()

    ok, error_code = verify_signature(raw_body, request.headers.get(SIGNATURE_HEADER), secret)
    if not ok:
        webhook_event_counter.labels(event_type="unknown", outcome="rejected").inc()
        logging.warning(f"Rejected webhook: {error_code}", extra={"request_id": request_id})
        raise HTTPException(status_code=401, detail=error_code)

    try:
        payload = json.loads(raw_body)
        event = parse_transfer_event(payload)
    except (ValueError, AttributeError) as e:
        webhook_event_counter.labels(event_type="unknown", outcome="rejected").inc()
        raise HTTPException(status_code=400, detail=f"Malformed webhook payload: {e}")

    if event is None:
        webhook_event_counter.labels(event_type=str(payload.get("event_type")), outcome="ignored").inc()
        return WebhookAck(status="ignored")

    result = await orchestrator.apply_transfer_event(event.transfer_id, event.current_state)
    if not result.success:
        webhook_event_counter.labels(event_type=event.event_type, outcome="ignored").inc()
        logging.info(
            f"Webhook for unknown transfer {event.transfer_id}",
            extra={"request_id": request_id, "code": result.code},
        )
        return WebhookAck(status="ignored", code=result.code)

    webhook_event_counter.labels(event_type=event.event_type, outcome="applied").inc()
    return WebhookAck(
        status="applied",
        payout_id=str(result.payout.id),
        payout_status=result.payout.status.value,
    )
