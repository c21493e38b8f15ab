"""Payment provider webhook"""

import stripe
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlmodel import Session

from event_registration.backends.payment_client import PaymentClient
from event_registration.logging_config import get_logger
from event_registration.models.database import get_db
from event_registration.services.clients import get_payment_client
from event_registration.services.payment_service import PaymentService

router = APIRouter(prefix="/payments", tags=["Payments"])
logger = get_logger(__name__)


@router.post("/webhook")
async def payment_webhook(
    request: Request,
    db: Session = Depends(get_db),
    payment_client: PaymentClient = Depends(get_payment_client),
):
    """Handle signed payment intent events from the provider"""
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")
    if not sig_header:
        raise HTTPException(status_code=400, detail="Invalid payment provider signature")

    try:
        event = payment_client.construct_event(payload, sig_header)
    except (ValueError, stripe.SignatureVerificationError) as e:
        logger.warning(f"Rejected payment webhook: {e}")
        raise HTTPException(status_code=400, detail="Invalid payment provider signature")

    await PaymentService(db, payment_client).handle_webhook_event(event)
    return {"received": True}
