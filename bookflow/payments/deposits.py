"""Deposit policy resolution, intent creation and webhook mirroring"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Union
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from bookflow.config import settings
from bookflow.errors import DepositNotEnabledError, TenantNotFoundError
from bookflow.models.payment import DepositIntent
from bookflow.models.tenant import Tenant, DepositPolicy
from bookflow.payments.gateways import PaymentGateway, WebhookEvent
from bookflow.schemas.booking import EffectiveDepositPolicy
from bookflow.schemas.payment import DepositIntentCreate, DepositIntentResponse

logger = structlog.get_logger()

DEFAULT_DEPOSIT_AMOUNT = Decimal("25")
DEFAULT_LARGE_PARTY_THRESHOLD = 6


def to_cents(amount: Union[Decimal, float, int, str, None]) -> int:
    """Dollar amount to integer cents, rounding half up"""
    if amount is None:
        return 0
    cents = Decimal(str(amount)) * 100
    return int(cents.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def effective_deposit_policy(policy: Optional[DepositPolicy], party_size: int) -> EffectiveDepositPolicy:
    """Resolve a tenant's deposit rules for one party size"""
    if policy is None or not policy.enabled:
        return EffectiveDepositPolicy(required=False)

    threshold = policy.large_party_threshold or DEFAULT_LARGE_PARTY_THRESHOLD
    default_amount = policy.default_amount if policy.default_amount is not None else DEFAULT_DEPOSIT_AMOUNT
    is_large_party = party_size >= threshold

    amount = default_amount
    if is_large_party and policy.large_party_amount is not None:
        amount = policy.large_party_amount

    amount_cents = to_cents(amount)
    return EffectiveDepositPolicy(
        required=is_large_party,
        amount=amount_cents / 100,
        amount_cents=amount_cents,
        description=policy.description or f"Deposit required for parties of {threshold}+",
        label=f"Required for parties ≥ {threshold}" if policy.show_policy_label else None,
    )


async def create_deposit_intent(
    db: AsyncSession,
    tenant_id: UUID,
    data: DepositIntentCreate,
    gateway: PaymentGateway,
    request_id: Optional[str] = None,
) -> DepositIntentResponse:
    """Create a processor intent for a tenant deposit and mirror it locally"""
    result = await db.execute(select(Tenant).where(Tenant.id == tenant_id, Tenant.is_active == True))
    tenant = result.scalar_one_or_none()
    if not tenant:
        raise TenantNotFoundError()

    result = await db.execute(select(DepositPolicy).where(DepositPolicy.tenant_id == tenant_id))
    policy = result.scalar_one_or_none()
    if not policy or not policy.enabled:
        raise DepositNotEnabledError()

    currency = (tenant.currency or settings.default_currency).lower()
    intent = await gateway.create_intent(
        amount_cents=data.amount,
        currency=currency,
        email=data.email,
        description=data.description,
        metadata={"tenant_id": str(tenant_id)},
    )

    db.add(DepositIntent(
        tenant_id=tenant_id,
        payment_intent_id=intent.id,
        amount_cents=intent.amount,
        currency=intent.currency,
        email=data.email,
        description=data.description,
        provider=gateway.name,
        status=intent.status,
    ))
    await db.commit()

    logger.info(
        "Deposit intent created",
        tenant_id=str(tenant_id),
        payment_intent_id=intent.id,
        amount=intent.amount,
        request_id=request_id,
    )

    return DepositIntentResponse(
        payment_intent_id=intent.id,
        client_secret=intent.client_secret,
        status=intent.status,
        amount=intent.amount,
        currency=intent.currency,
        request_id=request_id,
    )


async def apply_webhook_event(db: AsyncSession, event: WebhookEvent) -> Optional[DepositIntent]:
    """Update the local intent mirror from a processor event"""
    result = await db.execute(
        select(DepositIntent).where(DepositIntent.payment_intent_id == event.intent.id)
    )
    record = result.scalar_one_or_none()

    if not record:
        logger.warning("Webhook for unknown payment intent", payment_intent_id=event.intent.id, event_type=event.type)
        return None

    previous = record.status
    record.status = event.intent.status
    await db.commit()

    logger.info(
        "Deposit intent updated",
        payment_intent_id=record.payment_intent_id,
        event_type=event.type,
        previous_status=previous,
        status=record.status,
    )
    return record
