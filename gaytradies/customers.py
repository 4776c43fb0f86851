# gaytradies/customers.py
import logging
from typing import Optional

import stripe

from . import store
from .deps import get_stripe
from .errors import Internal

log = logging.getLogger("uvicorn.error")


def get_or_create_customer(uid: str, email: Optional[str]) -> str:
    """Return the caller's Stripe customer id, creating it on first use.

    The idempotency key makes Stripe hand back the same customer if two
    first-use requests race; the store keeps whichever mapping landed first.
    """
    existing = store.get_customer_mapping(uid)
    if existing and existing.get("customer_id"):
        return existing["customer_id"]

    api = get_stripe()
    try:
        customer = api.Customer.create(
            email=email,
            metadata={"userId": uid},
            idempotency_key=f"customer-{uid}",
        )
    except stripe.StripeError as e:
        log.error(f"Stripe customer create failed for user {uid}: {e}")
        raise Internal("Failed to create payment customer") from e

    log.info(f"Created Stripe customer {customer.id} for user {uid}")
    store.insert_customer_mapping(uid, customer.id, email)
    winner = store.get_customer_mapping(uid)
    if winner and winner.get("customer_id"):
        if winner["customer_id"] != customer.id:
            log.warning(f"Customer mapping for user {uid} already existed; using {winner['customer_id']}")
        return winner["customer_id"]
    return customer.id
