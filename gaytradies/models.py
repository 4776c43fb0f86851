# gaytradies/models.py
from decimal import Decimal
from enum import Enum
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class PaymentStatus(str, Enum):
    none = "none"
    pending = "pending"
    succeeded = "succeeded"
    canceled = "canceled"
    payment_failed = "payment_failed"


class EliteStatus(str, Enum):
    active = "active"
    trialing = "trialing"
    past_due = "past_due"
    canceled = "canceled"
    payment_failed = "payment_failed"


ELITE_STATUSES = {EliteStatus.active.value, EliteStatus.trialing.value}


class ApiModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── Escrow ────────────────────────────────────────────────────────────────────
class EscrowCreateIn(ApiModel):
    job_id: str = Field(..., min_length=1)
    amount: Decimal
    currency: Optional[str] = None
    tradie_account_id: str = Field(..., min_length=1)
    description: Optional[str] = None


class EscrowCreateOut(ApiModel):
    client_secret: str
    payment_intent_id: str


class EscrowCaptureIn(ApiModel):
    payment_intent_id: str = Field(..., min_length=1)
    job_id: str = Field(..., min_length=1)


CancellationReason = Literal["duplicate", "fraudulent", "requested_by_customer", "abandoned"]


class EscrowCancelIn(EscrowCaptureIn):
    reason: CancellationReason = "requested_by_customer"


class ActionOut(ApiModel):
    success: bool = True
    status: Optional[str] = None


# ── Billing / identity / Connect ──────────────────────────────────────────────
class CheckoutOut(ApiModel):
    session_id: str
    url: Optional[str] = None


class UrlOut(ApiModel):
    url: str


class SubscriptionCancelIn(ApiModel):
    subscription_id: str = Field(..., min_length=1)


class SubscriptionStatusOut(ApiModel):
    is_elite: bool = False
    elite_status: Optional[str] = None
    subscription_id: Optional[str] = None


class IdentityVerificationOut(ApiModel):
    url: Optional[str] = None
    verification_id: str


class IdentityVerificationStatusOut(ApiModel):
    verification_id: str
    status: Optional[str] = None
    last_error_code: Optional[str] = None


class ConnectAccountOut(ApiModel):
    account_id: str


class ConnectAccountStatusOut(ApiModel):
    account_id: str
    charges_enabled: bool = False
    payouts_enabled: bool = False
    details_submitted: bool = False


class PayoutIn(ApiModel):
    amount: Decimal
    currency: Optional[str] = None


class PayoutOut(ApiModel):
    payout_id: str
    status: Optional[str] = None
    amount: int


# ── Chat moderation ───────────────────────────────────────────────────────────
class ScreenMessageIn(ApiModel):
    text: str = ""
    partner_is_tradie: bool = False


class ScreenMessageOut(ApiModel):
    violation: bool
    keyword: Optional[str] = None
    warning: Optional[str] = None
    violations: int = 0
    blocked: bool = False


class ReportMessage(ApiModel):
    text: Optional[str] = None
    image_url: Optional[str] = None
    sender_id: Optional[str] = None
    created_at: Optional[int] = None


class ReportIn(ApiModel):
    conversation_id: str = Field(..., min_length=1)
    message_text: str
    reporter_name: Optional[str] = None
    offender_uid: Optional[str] = None
    offender_name: Optional[str] = None
    sender_id: Optional[str] = None
    participants: List[str] = []
    messages: List[ReportMessage] = []
    type: str = "user_report"


class ReportOut(ApiModel):
    id: Optional[Any] = None
    status: str = "pending"


class ReceiptIn(ApiModel):
    kind: Literal["delivered", "read"]
    timestamp: int = Field(..., gt=0)


# ── Admin ─────────────────────────────────────────────────────────────────────
class AdminVerifyOut(ApiModel):
    success: bool = True
    uid: str

