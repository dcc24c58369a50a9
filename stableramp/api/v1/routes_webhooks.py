# stableramp/api/v1/routes_webhooks.py
import logging
from typing import Optional
from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from stableramp.core.config import settings
from stableramp.db.base import get_db
from stableramp.domain.settlement.schemas import ProcessorEvent, WebhookAck
from stableramp.domain.settlement.service import handle_event
from stableramp.domain.settlement.signature import verify_webhook_signature
from stableramp.ledger.client import LedgerClient, get_ledger

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])


@router.post("/stripe", response_model=WebhookAck, response_model_exclude_none=True)
async def stripe_webhook_endpoint(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
    db: AsyncSession = Depends(get_db),
    ledger: LedgerClient = Depends(get_ledger),
):
    if not stripe_signature:
        logger.error("Missing stripe-signature header")
        return JSONResponse(status_code=400, content={"error": "Missing stripe-signature header"})

    # the signature covers the exact bytes received
    payload = await request.body()
    try:
        verify_webhook_signature(
            payload,
            stripe_signature,
            settings.STRIPE_WEBHOOK_SECRET,
            tolerance=settings.STRIPE_WEBHOOK_TOLERANCE_SECONDS,
        )
        event = ProcessorEvent.model_validate_json(payload)
        logger.info(f"Webhook event verified: {event.type} ({event.id})")
        await handle_event(db, ledger, event)
    except Exception as exc:
        # acknowledged anyway; the processor must not redeliver into a half-settled payment
        logger.exception(f"Webhook handling failed: {exc}")
        return WebhookAck(error=str(exc) or type(exc).__name__)

    return WebhookAck()
