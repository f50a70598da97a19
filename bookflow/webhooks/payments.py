"""Payment processor webhook handlers"""

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from bookflow.database import get_db
from bookflow.payments.deposits import apply_webhook_event
from bookflow.payments.gateways import EVENT_STATUS, PaymentGateway, get_gateway
from bookflow.schemas.payment import WebhookAck

router = APIRouter()
logger = structlog.get_logger()


@router.post("", response_model=WebhookAck)
async def handle_payment_webhook(
    request: Request,
    stripe_signature: str = Header(default=None, alias="Stripe-Signature"),
    gateway: PaymentGateway = Depends(get_gateway),
    db: AsyncSession = Depends(get_db),
):
    """
    Mirror payment intent state changes.
    Unrelated event types are acknowledged and ignored.
    """
    payload = await request.body()

    if not gateway.verify_webhook(payload, stripe_signature):
        logger.warning("Payment webhook signature rejected")
        raise HTTPException(status_code=400, detail="Invalid signature")

    try:
        event = gateway.parse_webhook(payload)
    except (ValueError, AttributeError):
        raise HTTPException(status_code=400, detail="Invalid payload")

    if event.type not in EVENT_STATUS:
        logger.debug("Ignoring payment webhook", event_type=event.type)
        return WebhookAck(event_type=event.type)

    await apply_webhook_event(db, event)
    return WebhookAck(event_type=event.type, payment_intent_id=event.intent.id)
