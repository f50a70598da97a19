"""Deposit payments"""

from bookflow.payments.gateways import (
    PaymentGateway,
    PaymentIntent,
    WebhookEvent,
    StripeGateway,
    MockGateway,
    IntentStatus,
    get_gateway,
)
from bookflow.payments.deposits import (
    to_cents,
    effective_deposit_policy,
    create_deposit_intent,
    apply_webhook_event,
)

__all__ = [
    "PaymentGateway",
    "PaymentIntent",
    "WebhookEvent",
    "StripeGateway",
    "MockGateway",
    "IntentStatus",
    "get_gateway",
    "to_cents",
    "effective_deposit_policy",
    "create_deposit_intent",
    "apply_webhook_event",
]
