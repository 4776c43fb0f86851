# gaytradies/events.py
"""Typed views of the Stripe webhook payloads we act on.

Each model validates only the fields the projections read; everything else
in Stripe's payload is ignored.
"""
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class StripeModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class EventData(StripeModel):
    object: Dict[str, Any]


class StripeEvent(StripeModel):
    id: str
    type: str
    data: EventData
    livemode: bool = False


class CheckoutSession(StripeModel):
    id: str
    mode: Optional[str] = None
    client_reference_id: Optional[str] = None
    customer: Optional[str] = None
    subscription: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)

    @property
    def user_id(self) -> Optional[str]:
        # firebaseUID is what older checkout sessions were tagged with
        return self.metadata.get("userId") or self.metadata.get("firebaseUID") or self.client_reference_id


class Subscription(StripeModel):
    id: str
    status: str
    customer: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)

    @property
    def user_id(self) -> Optional[str]:
        return self.metadata.get("userId") or self.metadata.get("firebaseUID")


class Invoice(StripeModel):
    id: Optional[str] = None
    customer: Optional[str] = None
    subscription: Optional[str] = None


class DateOfBirth(StripeModel):
    model_config = ConfigDict(extra="ignore", from_attributes=True)

    day: Optional[int] = None
    month: Optional[int] = None
    year: Optional[int] = None


class VerifiedOutputs(StripeModel):
    model_config = ConfigDict(extra="ignore", from_attributes=True)

    dob: Optional[DateOfBirth] = None


class VerificationSession(StripeModel):
    id: str
    status: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)
    verified_outputs: Optional[VerifiedOutputs] = None

    @property
    def user_id(self) -> Optional[str]:
        return self.metadata.get("userId") or self.metadata.get("firebaseUID")


class PaymentIntent(StripeModel):
    id: str
    amount: int = 0
    amount_received: Optional[int] = None
    currency: Optional[str] = None
    status: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)

    @property
    def job_id(self) -> Optional[str]:
        return self.metadata.get("jobId")

    @property
    def payment_type(self) -> Optional[str]:
        return self.metadata.get("type")
