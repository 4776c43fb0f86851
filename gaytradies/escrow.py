# gaytradies/escrow.py
"""Escrow payments for jobs.

Funds are authorized with a manual-capture PaymentIntent and only move when
either party captures. Capture and cancel do not touch the job row; the
job's final payment status comes from the webhook.
"""
import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Tuple

import stripe
from fastapi import APIRouter, Depends

from . import store
from .auth import Caller, get_caller
from .config import get_settings
from .customers import get_or_create_customer
from .deps import get_stripe
from .errors import Internal, InvalidArgument, NotFound, PermissionDenied
from .models import ActionOut, EscrowCancelIn, EscrowCaptureIn, EscrowCreateIn, EscrowCreateOut

log = logging.getLogger("uvicorn.error")

router = APIRouter(prefix="/stripe/escrow", tags=["escrow"])

ESCROW_TYPE = "escrow"
_CENT = Decimal("1")


def to_minor_units(amount: Decimal) -> int:
    return int((amount * 100).quantize(_CENT, rounding=ROUND_HALF_UP))


def escrow_amounts(amount: Decimal, fee_percent: Decimal) -> Tuple[int, int]:
    """(amount in cents, platform fee in cents) for a payment of ``amount``."""
    amount_cents = to_minor_units(amount)
    fee_cents = int((amount * 100 * fee_percent / 100).quantize(_CENT, rounding=ROUND_HALF_UP))
    return amount_cents, fee_cents


def escrow_idempotency_key(job_id: str, amount_cents: int, currency: str) -> str:
    """Repeat creates for the same job and amount reuse one hold on the card."""
    return f"escrow-{job_id}-{amount_cents}-{currency}"


def _authorize_party(caller: Caller, job_id: str) -> Dict[str, Any]:
    job = store.get_job(job_id)
    if not job:
        raise NotFound("Job not found")
    if caller.uid not in (job.get("client_uid"), job.get("tradie_uid")):
        raise PermissionDenied("Only the client or tradie on this job can do that")
    return job


@router.post("", response_model=EscrowCreateOut)
def create_escrow_payment(body: EscrowCreateIn, caller: Caller = Depends(get_caller)):
    settings = get_settings()
    if body.amount <= 0:
        raise InvalidArgument("Amount must be greater than zero")
    if body.amount > settings.escrow_max_amount:
        raise InvalidArgument(f"Amount exceeds the maximum of {settings.escrow_max_amount}")

    amount_cents, fee_cents = escrow_amounts(body.amount, settings.platform_fee_percent)
    if amount_cents <= 0:
        raise InvalidArgument("Amount must be at least one minor currency unit")

    api = get_stripe()
    customer_id = get_or_create_customer(caller.uid, caller.email)
    currency = (body.currency or settings.default_currency).lower()

    try:
        intent = api.PaymentIntent.create(
            amount=amount_cents,
            currency=currency,
            customer=customer_id,
            capture_method="manual",
            application_fee_amount=fee_cents,
            transfer_data={"destination": body.tradie_account_id},
            description=body.description or f"Escrow payment for job {body.job_id}",
            metadata={
                "jobId": body.job_id,
                "clientUid": caller.uid,
                "type": ESCROW_TYPE,
                "appId": settings.app_id,
            },
            idempotency_key=escrow_idempotency_key(body.job_id, amount_cents, currency),
        )
    except stripe.StripeError as e:
        log.error(f"Escrow PaymentIntent create failed for job {body.job_id}: {e}")
        raise Internal("Failed to create escrow payment") from e

    log.info(f"Created escrow intent {intent.id} for job {body.job_id} ({amount_cents} {currency}, fee {fee_cents})")
    return EscrowCreateOut(client_secret=intent.client_secret, payment_intent_id=intent.id)


@router.post("/capture", response_model=ActionOut)
def capture_escrow_payment(body: EscrowCaptureIn, caller: Caller = Depends(get_caller)):
    _authorize_party(caller, body.job_id)
    api = get_stripe()
    try:
        intent = api.PaymentIntent.capture(body.payment_intent_id)
    except stripe.StripeError as e:
        log.error(f"Escrow capture failed for intent {body.payment_intent_id} (job {body.job_id}): {e}")
        raise Internal("Failed to capture escrow payment") from e

    log.info(f"Captured escrow intent {intent.id} for job {body.job_id} by {caller.uid}")
    return ActionOut(success=True, status=intent.status)


@router.post("/cancel", response_model=ActionOut)
def cancel_escrow_payment(body: EscrowCancelIn, caller: Caller = Depends(get_caller)):
    _authorize_party(caller, body.job_id)
    api = get_stripe()
    try:
        intent = api.PaymentIntent.cancel(body.payment_intent_id, cancellation_reason=body.reason)
    except stripe.StripeError as e:
        log.error(f"Escrow cancel failed for intent {body.payment_intent_id} (job {body.job_id}): {e}")
        raise Internal("Failed to cancel escrow payment") from e

    log.info(f"Canceled escrow intent {intent.id} for job {body.job_id} by {caller.uid} ({body.reason})")
    return ActionOut(success=True, status=intent.status)
