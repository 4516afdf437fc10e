"""Stripe webhook route"""
import logging
from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import PlainTextResponse
from sqlalchemy.orm import Session

from app.core.exceptions import WebhookError
from app.db.session import get_db
from app.services.webhook_service import process_stripe_webhook

router = APIRouter(prefix="/api/webhook", tags=["webhooks"])
logger = logging.getLogger(__name__)


@router.post("/stripe")
async def stripe_webhook(request: Request, db: Session = Depends(get_db)):
    """Handle Stripe webhook events

    Note: The body must be read as raw bytes; the signature covers the exact
    payload Stripe sent.
    """
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")

    try:
        process_stripe_webhook(payload, sig_header, db)
    except WebhookError as e:
        return PlainTextResponse(e.reason, status_code=e.status_code)
    except Exception as e:
        # Non-2xx makes Stripe redeliver; the ledger row is still unprocessed
        db.rollback()
        logger.error(f"Unexpected error processing webhook: {e}", exc_info=True)
        return PlainTextResponse("Internal server error", status_code=500)

    return Response(status_code=200)
