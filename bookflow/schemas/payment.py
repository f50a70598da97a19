"""Deposit payment schemas"""

from typing import Optional
from pydantic import BaseModel, EmailStr, Field


class DepositIntentCreate(BaseModel):
    """Create deposit intent request; amount is integer cents"""
    amount: int = Field(gt=0)
    email: EmailStr  # receipt address passed to the processor
    description: Optional[str] = Field(default=None, max_length=500)


class DepositIntentResponse(BaseModel):
    """Processor intent handle returned to the widget"""
    payment_intent_id: str
    client_secret: str
    status: str
    amount: int
    currency: str
    request_id: Optional[str] = None


class WebhookAck(BaseModel):
    received: bool = True
    event_type: Optional[str] = None
    payment_intent_id: Optional[str] = None
