"""Stripe webhook endpoint."""

import logging

from fastapi import APIRouter, Header, HTTPException, Request

from crowdvine.services.payments import WebhookError, process_webhook_event, verify_webhook

payments_logger = logging.getLogger("crowdvine.payments")

router = APIRouter()


@router.post("/webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: str | None = Header(None, alias="stripe-signature"),
) -> dict:
    """Verify and dispatch a Stripe event.

    Stripe retries on any non-2xx answer, so processing failures return 500.
    """
    payload = await request.body()
    try:
        event = verify_webhook(payload, stripe_signature)
    except WebhookError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))

    try:
        await process_webhook_event(event)
    except Exception:
        payments_logger.exception("Webhook processing failed for event %s", event.get("id"))
        raise HTTPException(status_code=500, detail="Webhook processing failed")
    return {"received": True}
