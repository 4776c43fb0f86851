# gaytradies/stripe_webhook.py
"""Stripe webhook: verify, then project each event into the store.

Stripe may deliver an event more than once and in any order, so every
projection is a merge of fixed values keyed by job or user id. Replaying an
event sets the same columns to the same values. Notifications are the
exception: each delivery appends one, unless the processed-event ledger
(STRIPE_EVENT_LEDGER) is turned on.
"""
import logging
from decimal import Decimal
from typing import Callable, Dict, Optional, Tuple, Type

import stripe
from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, ValidationError
from starlette.concurrency import run_in_threadpool

from . import store
from .age import calculate_age, is_adult
from .config import get_settings
from .deps import get_stripe
from .escrow import ESCROW_TYPE
from .events import (
    CheckoutSession,
    DateOfBirth,
    Invoice,
    PaymentIntent,
    StripeEvent,
    Subscription,
    VerificationSession,
    VerifiedOutputs,
)
from .models import ELITE_STATUSES, EliteStatus, PaymentStatus

log = logging.getLogger("uvicorn.error")

router = APIRouter(prefix="/stripe", tags=["stripe"])


def verify_event(payload: bytes, sig_header: Optional[str], secret: Optional[str]) -> StripeEvent:
    """Check the Stripe-Signature header over the raw body, then parse it.

    Raises ValueError when the header or secret is missing or the body is not
    a valid event, and stripe.SignatureVerificationError on a bad signature.
    """
    if not secret:
        raise ValueError("webhook secret not configured")
    if not sig_header:
        raise ValueError("missing Stripe-Signature header")
    stripe.WebhookSignature.verify_header(
        payload.decode("utf-8"),
        sig_header,
        secret,
        stripe.Webhook.DEFAULT_TOLERANCE,
    )
    return StripeEvent.model_validate_json(payload)


# ── Subscription lifecycle ────────────────────────────────────────────────────
def _on_checkout_completed(event: StripeEvent, session: CheckoutSession) -> None:
    if session.mode != "subscription":
        log.info(f"Checkout session {session.id} is mode={session.mode}; nothing to do")
        return
    uid = session.user_id
    if not uid:
        log.warning(f"Checkout session {session.id} has no user reference; skipping")
        return
    store.merge_profile(uid, {
        "is_elite": True,
        "elite_status": EliteStatus.active.value,
        "subscription_id": session.subscription,
        "stripe_customer_id": session.customer,
    })
    store.append_notification(
        uid,
        "elite_activated",
        "Welcome to Elite!",
        "Your GayTradies Elite membership is now active. Enjoy your premium features.",
        icon="crown",
        event_id=event.id,
    )
    log.info(f"Elite activated for user {uid} (subscription {session.subscription})")


def _subscription_user(subscription: Subscription) -> Optional[str]:
    uid = subscription.user_id
    if not uid and subscription.customer:
        uid = store.find_user_by_customer(subscription.customer)
    return uid


def _on_subscription_updated(event: StripeEvent, subscription: Subscription) -> None:
    uid = _subscription_user(subscription)
    if not uid:
        log.warning(f"No user for subscription {subscription.id} (customer {subscription.customer}); skipping")
        return
    store.merge_profile(uid, {
        "is_elite": subscription.status in ELITE_STATUSES,
        "elite_status": subscription.status,
        "subscription_id": subscription.id,
    })
    log.info(f"Subscription {subscription.id} for user {uid} is now {subscription.status}")


def _on_subscription_deleted(event: StripeEvent, subscription: Subscription) -> None:
    uid = _subscription_user(subscription)
    if not uid:
        log.warning(f"No user for deleted subscription {subscription.id}; skipping")
        return
    store.merge_profile(uid, {
        "is_elite": False,
        "elite_status": EliteStatus.canceled.value,
    })
    store.append_notification(
        uid,
        "elite_canceled",
        "Elite membership ended",
        "Your Elite membership has been canceled. You can resubscribe anytime from the shop.",
        icon="crown",
        event_id=event.id,
    )
    log.info(f"Elite canceled for user {uid} (subscription {subscription.id})")


def _on_invoice_payment_failed(event: StripeEvent, invoice: Invoice) -> None:
    if not invoice.customer:
        log.warning(f"Invoice {invoice.id} has no customer; skipping")
        return
    uid = store.find_user_by_customer(invoice.customer)
    if not uid:
        log.warning(f"No user mapped to customer {invoice.customer} (invoice {invoice.id})")
        return
    store.merge_profile(uid, {"elite_status": EliteStatus.payment_failed.value})
    store.append_notification(
        uid,
        "payment_failed",
        "Payment failed",
        "We couldn't take your Elite membership payment. Please update your payment method to keep your benefits.",
        icon="alert-triangle",
        event_id=event.id,
    )
    log.info(f"Invoice payment failed for user {uid} (invoice {invoice.id})")


# ── Identity (age) verification ───────────────────────────────────────────────
def _verified_dob(session: VerificationSession) -> Optional[DateOfBirth]:
    outputs = session.verified_outputs
    if outputs is None:
        # webhook payloads leave verified_outputs unexpanded
        retrieved = get_stripe().identity.VerificationSession.retrieve(
            session.id, expand=["verified_outputs"]
        )
        # StripeObject is read through attributes, it is not a dict
        outputs = VerifiedOutputs.model_validate(getattr(retrieved, "verified_outputs", None) or {})
    return outputs.dob


def _on_identity_verified(event: StripeEvent, session: VerificationSession) -> None:
    uid = session.user_id
    if not uid:
        log.warning(f"Verification session {session.id} has no userId; skipping")
        return
    dob = _verified_dob(session)
    age = calculate_age(dob.year, dob.month, dob.day) if dob else None
    over_18 = is_adult(age)
    store.merge_profile(uid, {
        "age_verified": True,
        "is_over_18": over_18,
        "identity_verification_id": session.id,
        "age_verification_status": "verified",
    })
    message = (
        "Your ID has been verified and you're confirmed as 18+."
        if over_18
        else "Your ID has been verified, but we couldn't confirm you are over 18."
    )
    store.append_notification(uid, "age_verified", "Age verification complete", message,
                              icon="shield-check", event_id=event.id)
    log.info(f"Identity verified for user {uid} (session {session.id}, over_18={over_18})")


def _on_identity_requires_input(event: StripeEvent, session: VerificationSession) -> None:
    uid = session.user_id
    if not uid:
        log.warning(f"Verification session {session.id} has no userId; skipping")
        return
    store.merge_profile(uid, {"age_verification_status": "requires_input"})
    store.append_notification(
        uid,
        "age_verification_requires_input",
        "Verification needs attention",
        "We couldn't verify your ID. Please try again with a clear photo of your document.",
        icon="alert-circle",
        event_id=event.id,
    )
    log.info(f"Identity verification for user {uid} requires input (session {session.id})")


# ── Escrow payment intents ────────────────────────────────────────────────────
def _escrow_job_id(intent: PaymentIntent) -> Optional[str]:
    if intent.payment_type != ESCROW_TYPE:
        log.info(f"PaymentIntent {intent.id} is type={intent.payment_type}; not an escrow payment")
        return None
    if not intent.job_id:
        log.warning(f"Escrow PaymentIntent {intent.id} has no jobId")
        return None
    return intent.job_id


def _update_escrow_job(intent: PaymentIntent, job_id: str, fields: Dict) -> None:
    rows = store.update_job(job_id, {"payment_intent_id": intent.id, **fields})
    if not rows:
        log.warning(f"Job {job_id} not found for PaymentIntent {intent.id}")
    else:
        log.info(f"Job {job_id} payment_status={fields['payment_status']} (intent {intent.id})")


def _on_payment_intent_succeeded(event: StripeEvent, intent: PaymentIntent) -> None:
    job_id = _escrow_job_id(intent)
    if not job_id:
        return
    cents = intent.amount_received if intent.amount_received else intent.amount
    _update_escrow_job(intent, job_id, {
        "payment_status": PaymentStatus.succeeded.value,
        "payment_amount": float(Decimal(cents) / 100),
        "payment_completed_at": store.now_iso(),
    })


def _on_payment_intent_canceled(event: StripeEvent, intent: PaymentIntent) -> None:
    job_id = _escrow_job_id(intent)
    if not job_id:
        return
    _update_escrow_job(intent, job_id, {
        "payment_status": PaymentStatus.canceled.value,
        "payment_canceled_at": store.now_iso(),
    })


def _on_payment_intent_failed(event: StripeEvent, intent: PaymentIntent) -> None:
    job_id = _escrow_job_id(intent)
    if not job_id:
        return
    _update_escrow_job(intent, job_id, {
        "payment_status": PaymentStatus.payment_failed.value,
        "payment_failed_at": store.now_iso(),
    })


Handler = Tuple[Type[BaseModel], Callable]

HANDLERS: Dict[str, Handler] = {
    "checkout.session.completed": (CheckoutSession, _on_checkout_completed),
    "customer.subscription.created": (Subscription, _on_subscription_updated),
    "customer.subscription.updated": (Subscription, _on_subscription_updated),
    "customer.subscription.deleted": (Subscription, _on_subscription_deleted),
    "invoice.payment_failed": (Invoice, _on_invoice_payment_failed),
    "identity.verification_session.verified": (VerificationSession, _on_identity_verified),
    "identity.verification_session.requires_input": (VerificationSession, _on_identity_requires_input),
    "payment_intent.succeeded": (PaymentIntent, _on_payment_intent_succeeded),
    "payment_intent.canceled": (PaymentIntent, _on_payment_intent_canceled),
    "payment_intent.payment_failed": (PaymentIntent, _on_payment_intent_failed),
}


def dispatch(event: StripeEvent) -> bool:
    """Apply one event's projection. Returns False when nothing was handled."""
    entry = HANDLERS.get(event.type)
    if entry is None:
        log.info(f"Unhandled Stripe event {event.type} ({event.id})")
        return False
    model, handler = entry
    try:
        obj = model.model_validate(event.data.object)
    except ValidationError as e:
        log.warning(f"Malformed {event.type} payload in event {event.id}: {e}")
        return False
    handler(event, obj)
    return True


def process_event(event: StripeEvent) -> None:
    ledger = get_settings().stripe_event_ledger
    if ledger and store.event_processed(event.id):
        log.info(f"Stripe event {event.id} already processed; skipping")
        return
    dispatch(event)
    if ledger:
        store.record_event(event.id, event.type)


@router.post("/webhook")
async def webhook(req: Request):
    payload = await req.body()
    sig = req.headers.get("stripe-signature")
    secret = get_settings().stripe_webhook_secret

    try:
        event = verify_event(payload, sig, secret)
    except (ValueError, stripe.SignatureVerificationError) as e:
        log.error(f"Stripe webhook verify FAILED: {e}; sig_header_present={bool(sig)}; secret_set={bool(secret)}")
        raise HTTPException(status_code=400, detail="signature verification failed")

    log.info(f"Stripe webhook received: {event.type} ({event.id})")
    try:
        await run_in_threadpool(process_event, event)
    except Exception as e:
        log.exception(f"Stripe webhook {event.type} ({event.id}) failed: {e}")
        raise HTTPException(status_code=500, detail="webhook handler failed")

    return {"received": True}
