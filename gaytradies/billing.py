# gaytradies/billing.py
import logging
from typing import Optional

import stripe
from fastapi import APIRouter, Depends

from . import store
from .auth import Caller, get_caller
from .config import get_settings
from .customers import get_or_create_customer
from .deps import get_stripe
from .errors import FailedPrecondition, Internal, InvalidArgument, NotFound, PermissionDenied
from .escrow import to_minor_units
from .models import (
    ActionOut,
    CheckoutOut,
    ConnectAccountOut,
    ConnectAccountStatusOut,
    IdentityVerificationOut,
    IdentityVerificationStatusOut,
    PayoutIn,
    PayoutOut,
    SubscriptionCancelIn,
    SubscriptionStatusOut,
    UrlOut,
)

log = logging.getLogger("uvicorn.error")

router = APIRouter(prefix="/stripe", tags=["billing"])


def _metadata_user(obj) -> Optional[str]:
    # StripeObject exposes keys as attributes; missing keys read as None
    return getattr(getattr(obj, "metadata", None), "userId", None)


# ── Elite subscription ────────────────────────────────────────────────────────
@router.post("/elite/checkout", response_model=CheckoutOut)
def create_elite_checkout(caller: Caller = Depends(get_caller)):
    settings = get_settings()
    if not settings.stripe_elite_price_id:
        raise FailedPrecondition("Elite subscription price is not configured")
    api = get_stripe()
    customer_id = get_or_create_customer(caller.uid, caller.email)
    base = settings.app_return_url
    try:
        session = api.checkout.Session.create(
            mode="subscription",
            customer=customer_id,
            client_reference_id=caller.uid,
            line_items=[{"price": settings.stripe_elite_price_id, "quantity": 1}],
            success_url=f"{base}/subscription-success?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{base}/shop",
            metadata={"userId": caller.uid, "appId": settings.app_id},
            subscription_data={"metadata": {"userId": caller.uid}},
        )
    except stripe.StripeError as e:
        log.error(f"Elite checkout create failed for user {caller.uid}: {e}")
        raise Internal("Failed to start Elite checkout") from e

    log.info(f"Created Elite checkout session {session.id} for user {caller.uid}")
    return CheckoutOut(session_id=session.id, url=session.url)


@router.post("/portal", response_model=UrlOut)
def create_portal_session(caller: Caller = Depends(get_caller)):
    mapping = store.get_customer_mapping(caller.uid)
    if not mapping:
        raise NotFound("No billing account for this user")
    api = get_stripe()
    try:
        session = api.billing_portal.Session.create(
            customer=mapping["customer_id"],
            return_url=f"{get_settings().app_return_url}/settings",
        )
    except stripe.StripeError as e:
        log.error(f"Billing portal session failed for user {caller.uid}: {e}")
        raise Internal("Failed to open billing portal") from e
    return UrlOut(url=session.url)


@router.post("/subscription/cancel", response_model=ActionOut)
def cancel_subscription(body: SubscriptionCancelIn, caller: Caller = Depends(get_caller)):
    profile = store.get_profile(caller.uid) or {}
    if profile.get("subscription_id") != body.subscription_id:
        raise PermissionDenied("That subscription does not belong to you")
    api = get_stripe()
    try:
        sub = api.Subscription.cancel(body.subscription_id)
    except stripe.StripeError as e:
        log.error(f"Subscription cancel failed for {body.subscription_id}: {e}")
        raise Internal("Failed to cancel subscription") from e
    # profile flags follow from customer.subscription.deleted
    log.info(f"Canceled subscription {sub.id} for user {caller.uid}")
    return ActionOut(success=True, status=sub.status)


@router.get("/subscription/status", response_model=SubscriptionStatusOut)
def subscription_status(caller: Caller = Depends(get_caller)):
    profile = store.get_profile(caller.uid) or {}
    return SubscriptionStatusOut(
        is_elite=bool(profile.get("is_elite")),
        elite_status=profile.get("elite_status"),
        subscription_id=profile.get("subscription_id"),
    )


# ── Identity (18+) verification ───────────────────────────────────────────────
@router.post("/identity/verification", response_model=IdentityVerificationOut)
def create_identity_verification(caller: Caller = Depends(get_caller)):
    settings = get_settings()
    api = get_stripe()
    try:
        session = api.identity.VerificationSession.create(
            type="document",
            metadata={"userId": caller.uid, "appId": settings.app_id},
            options={"document": {"require_id_number": True, "require_matching_selfie": True}},
            return_url=f"{settings.app_return_url}/verification-complete",
        )
    except stripe.StripeError as e:
        log.error(f"Identity verification create failed for user {caller.uid}: {e}")
        raise Internal("Failed to start identity verification") from e

    log.info(f"Created identity verification {session.id} for user {caller.uid}")
    return IdentityVerificationOut(url=session.url, verification_id=session.id)


@router.get("/identity/verification/{verification_id}", response_model=IdentityVerificationStatusOut)
def identity_verification_status(verification_id: str, caller: Caller = Depends(get_caller)):
    """Current state of one of the caller's verification sessions, read from Stripe."""
    api = get_stripe()
    try:
        session = api.identity.VerificationSession.retrieve(verification_id)
    except stripe.InvalidRequestError as e:
        raise NotFound("Verification session not found") from e
    except stripe.StripeError as e:
        log.error(f"Identity verification retrieve failed for {verification_id}: {e}")
        raise Internal("Failed to read identity verification") from e

    if _metadata_user(session) != caller.uid:
        raise PermissionDenied("That verification session does not belong to you")
    last_error = getattr(session, "last_error", None)
    return IdentityVerificationStatusOut(
        verification_id=session.id,
        status=getattr(session, "status", None),
        last_error_code=getattr(last_error, "code", None),
    )


# ── Connect (tradie payouts) ──────────────────────────────────────────────────
def _stored_account_id(caller: Caller) -> str:
    profile = store.get_profile(caller.uid) or {}
    account_id = profile.get("stripe_account_id")
    if not account_id:
        raise NotFound("No payout account for this user")
    return account_id


@router.post("/connect/account", response_model=ConnectAccountOut)
def create_connect_account(caller: Caller = Depends(get_caller)):
    profile = store.get_profile(caller.uid) or {}
    if profile.get("stripe_account_id"):
        return ConnectAccountOut(account_id=profile["stripe_account_id"])
    api = get_stripe()
    try:
        account = api.Account.create(
            type="express",
            email=caller.email,
            capabilities={
                "card_payments": {"requested": True},
                "transfers": {"requested": True},
            },
            metadata={"userId": caller.uid},
            idempotency_key=f"connect-account-{caller.uid}",
        )
    except stripe.StripeError as e:
        log.error(f"Connect account create failed for user {caller.uid}: {e}")
        raise Internal("Failed to create payout account") from e

    store.merge_profile(caller.uid, {"stripe_account_id": account.id})
    log.info(f"Created Connect account {account.id} for user {caller.uid}")
    return ConnectAccountOut(account_id=account.id)


@router.post("/connect/account-link", response_model=UrlOut)
def create_account_link(caller: Caller = Depends(get_caller)):
    account_id = _stored_account_id(caller)
    api = get_stripe()
    url = f"{get_settings().app_return_url}/payments"
    try:
        link = api.AccountLink.create(
            account=account_id,
            refresh_url=url,
            return_url=url,
            type="account_onboarding",
        )
    except stripe.StripeError as e:
        log.error(f"Account link create failed for {account_id}: {e}")
        raise Internal("Failed to create onboarding link") from e
    return UrlOut(url=link.url)


@router.get("/connect/account", response_model=ConnectAccountStatusOut)
def connect_account_status(caller: Caller = Depends(get_caller)):
    """Onboarding state of the caller's Connect account."""
    account_id = _stored_account_id(caller)
    api = get_stripe()
    try:
        account = api.Account.retrieve(account_id)
    except stripe.StripeError as e:
        log.error(f"Connect account retrieve failed for {account_id}: {e}")
        raise Internal("Failed to read payout account") from e
    return ConnectAccountStatusOut(
        account_id=account.id,
        charges_enabled=bool(getattr(account, "charges_enabled", False)),
        payouts_enabled=bool(getattr(account, "payouts_enabled", False)),
        details_submitted=bool(getattr(account, "details_submitted", False)),
    )


@router.post("/connect/payout", response_model=PayoutOut)
def create_payout(body: PayoutIn, caller: Caller = Depends(get_caller)):
    """Pay out from the caller's Connect balance to their bank account."""
    amount_cents = to_minor_units(body.amount) if body.amount > 0 else 0
    if amount_cents <= 0:
        raise InvalidArgument("Amount must be greater than zero")
    account_id = _stored_account_id(caller)
    currency = (body.currency or get_settings().default_currency).lower()
    api = get_stripe()
    try:
        payout = api.Payout.create(
            amount=amount_cents,
            currency=currency,
            metadata={"userId": caller.uid},
            stripe_account=account_id,
        )
    except stripe.StripeError as e:
        log.error(f"Payout failed for account {account_id} ({amount_cents} {currency}): {e}")
        raise Internal("Failed to create payout") from e

    log.info(f"Created payout {payout.id} for user {caller.uid} ({amount_cents} {currency})")
    return PayoutOut(payout_id=payout.id, status=payout.status, amount=amount_cents)
