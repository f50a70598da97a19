"""
Payment processor gateways for booking deposits.

``StripeGateway`` talks to the Stripe REST API, ``MockGateway`` is an
in-process processor for local runs and tests. Both verify webhooks with the
Stripe signature scheme (``t=<ts>,v1=<hmac>``).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from typing import Any, Dict, Optional
import hashlib
import hmac
import json
import time
import uuid

import httpx
import structlog

from bookflow.config import settings
from bookflow.errors import (
    CardDeclinedError,
    PaymentIntentError,
    PaymentUnavailableError,
)

logger = structlog.get_logger()

SIGNATURE_TOLERANCE_SECONDS = 300


class Environment(str, Enum):
    MOCK = "mock"
    TEST = "test"
    LIVE = "live"


class IntentStatus:
    REQUIRES_PAYMENT_METHOD = "requires_payment_method"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    PAYMENT_FAILED = "payment_failed"
    CANCELED = "canceled"


@dataclass
class PaymentIntent:
    """Processor-side payment intent"""
    id: str
    client_secret: str
    status: str
    amount: int
    currency: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status == IntentStatus.SUCCEEDED


@dataclass
class WebhookEvent:
    type: str
    intent: PaymentIntent


EVENT_STATUS = {
    "payment_intent.succeeded": IntentStatus.SUCCEEDED,
    "payment_intent.payment_failed": IntentStatus.PAYMENT_FAILED,
    "payment_intent.canceled": IntentStatus.CANCELED,
    "payment_intent.processing": IntentStatus.PROCESSING,
}


def sign_payload(payload: bytes, secret: str, timestamp: Optional[int] = None) -> str:
    """Build a Stripe-style signature header for a payload"""
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.".encode("utf-8") + payload
    digest = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


class PaymentGateway(ABC):
    """Base class for deposit processors"""

    name = "base"

    def __init__(self, environment: Environment, webhook_secret: str = ""):
        self.environment = environment
        self.webhook_secret = webhook_secret

    @abstractmethod
    async def create_intent(
        self,
        amount_cents: int,
        currency: str,
        email: Optional[str] = None,
        description: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> PaymentIntent:
        """Create a payment intent for a deposit"""
        pass

    @abstractmethod
    async def retrieve_intent(self, intent_id: str) -> PaymentIntent:
        """Fetch the current processor state of an intent"""
        pass

    async def confirm_card_payment(self, client_secret: str, card_number: str) -> PaymentIntent:
        """Confirm a card against an intent; only processors without a hosted card element support this"""
        raise PaymentUnavailableError("Card confirmation happens in the processor's hosted card element")

    def verify_webhook(self, payload: bytes, signature_header: Optional[str]) -> bool:
        """Check a webhook signature; only the mock processor runs without a secret"""
        if not self.webhook_secret:
            return self.environment == Environment.MOCK
        if not signature_header:
            return False

        parts = {}
        for item in signature_header.split(","):
            key, _, value = item.strip().partition("=")
            parts.setdefault(key, []).append(value)

        try:
            timestamp = int(parts.get("t", [""])[0])
        except ValueError:
            return False
        if abs(time.time() - timestamp) > SIGNATURE_TOLERANCE_SECONDS:
            return False

        expected = sign_payload(payload, self.webhook_secret, timestamp).split("v1=", 1)[1]
        return any(hmac.compare_digest(expected, candidate) for candidate in parts.get("v1", []))

    def parse_webhook(self, payload: bytes) -> WebhookEvent:
        """Parse a payment_intent.* event body"""
        data = json.loads(payload)
        obj = data.get("data", {}).get("object", {})
        event_type = data.get("type", "")
        intent = PaymentIntent(
            id=obj.get("id", ""),
            client_secret=obj.get("client_secret") or "",
            status=EVENT_STATUS.get(event_type, obj.get("status", "")),
            amount=int(obj.get("amount", 0) or 0),
            currency=obj.get("currency", settings.default_currency),
            metadata=obj.get("metadata") or {},
        )
        return WebhookEvent(type=event_type, intent=intent)


class StripeGateway(PaymentGateway):
    """Stripe PaymentIntents over the REST API"""

    name = "stripe"

    def __init__(
        self,
        secret_key: str,
        environment: Environment = Environment.TEST,
        webhook_secret: str = "",
        base_url: str = "https://api.stripe.com/v1",
        timeout: float = 10.0,
    ):
        super().__init__(environment, webhook_secret)
        self.secret_key = secret_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def _client(self) -> httpx.AsyncClient:
        if not self.secret_key:
            raise PaymentUnavailableError()
        return httpx.AsyncClient(
            base_url=self.base_url,
            auth=(self.secret_key, ""),
            timeout=self.timeout,
        )

    @staticmethod
    def _to_intent(data: Dict[str, Any]) -> PaymentIntent:
        return PaymentIntent(
            id=data["id"],
            client_secret=data.get("client_secret") or "",
            status=data.get("status", ""),
            amount=int(data.get("amount", 0)),
            currency=data.get("currency", settings.default_currency),
            metadata=data.get("metadata") or {},
        )

    async def create_intent(
        self,
        amount_cents: int,
        currency: str,
        email: Optional[str] = None,
        description: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> PaymentIntent:
        form = {
            "amount": str(amount_cents),
            "currency": currency.lower(),
            "automatic_payment_methods[enabled]": "true",
        }
        if email:
            form["receipt_email"] = email
        if description:
            form["description"] = description
        for key, value in (metadata or {}).items():
            form[f"metadata[{key}]"] = str(value)

        logger.debug("Stripe create intent", amount=amount_cents, currency=currency)

        try:
            async with self._client() as client:
                response = await client.post(
                    "/payment_intents",
                    data=form,
                    headers={"Idempotency-Key": str(uuid.uuid4())},
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error("Stripe rejected payment intent", status=e.response.status_code)
            raise PaymentIntentError(details={"processor_status": e.response.status_code})
        except httpx.HTTPError as e:
            logger.error("Stripe request failed", error=str(e))
            raise PaymentIntentError()

        return self._to_intent(data)

    async def retrieve_intent(self, intent_id: str) -> PaymentIntent:
        try:
            async with self._client() as client:
                response = await client.get(f"/payment_intents/{intent_id}")
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                raise PaymentIntentError("Unknown payment intent", details={"payment_intent_id": intent_id})
            raise PaymentUnavailableError("Could not check the deposit payment. Please try again")
        except httpx.HTTPError as e:
            logger.error("Stripe request failed", error=str(e))
            raise PaymentUnavailableError("Could not check the deposit payment. Please try again")

        return self._to_intent(data)


class MockGateway(PaymentGateway):
    """In-process processor; card 4000000000000002 is always declined"""

    name = "mock"
    DECLINE_CARD = "4000000000000002"
    SUCCESS_CARD = "4242424242424242"

    def __init__(self, webhook_secret: str = ""):
        super().__init__(Environment.MOCK, webhook_secret)
        self._intents: Dict[str, PaymentIntent] = {}

    async def create_intent(
        self,
        amount_cents: int,
        currency: str,
        email: Optional[str] = None,
        description: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> PaymentIntent:
        intent_id = f"pi_mock_{uuid.uuid4().hex[:24]}"
        intent = PaymentIntent(
            id=intent_id,
            client_secret=f"{intent_id}_secret_{uuid.uuid4().hex[:16]}",
            status=IntentStatus.REQUIRES_PAYMENT_METHOD,
            amount=amount_cents,
            currency=currency.lower(),
            metadata=dict(metadata or {}),
        )
        self._intents[intent_id] = intent
        return intent

    async def retrieve_intent(self, intent_id: str) -> PaymentIntent:
        intent = self._intents.get(intent_id)
        if intent is None:
            raise PaymentIntentError("Unknown payment intent", details={"payment_intent_id": intent_id})
        return intent

    async def confirm_card_payment(self, client_secret: str, card_number: str = SUCCESS_CARD) -> PaymentIntent:
        intent_id = client_secret.split("_secret_", 1)[0]
        intent = self._intents.get(intent_id)
        if intent is None or intent.client_secret != client_secret:
            raise PaymentIntentError("Unknown payment intent")

        if card_number.replace(" ", "") == self.DECLINE_CARD:
            intent.status = IntentStatus.REQUIRES_PAYMENT_METHOD
            raise CardDeclinedError(details={"payment_intent_id": intent_id})

        intent.status = IntentStatus.SUCCEEDED
        return intent


@lru_cache()
def get_gateway() -> PaymentGateway:
    """Gateway for the configured payment environment"""
    environment = Environment(settings.payment_env)
    if environment == Environment.MOCK:
        return MockGateway(webhook_secret=settings.stripe_webhook_secret)

    if not settings.stripe_secret_key:
        logger.warning("Stripe secret key missing, deposits unavailable", payment_env=environment.value)
    if not settings.stripe_webhook_secret:
        logger.warning("Stripe webhook secret missing, webhooks will be rejected", payment_env=environment.value)

    return StripeGateway(
        secret_key=settings.stripe_secret_key,
        environment=environment,
        webhook_secret=settings.stripe_webhook_secret,
        base_url=settings.stripe_api_base,
        timeout=settings.payment_timeout_seconds,
    )
