# gaytradies/deps.py
import logging
import threading
from typing import Optional

import stripe
from supabase import Client, ClientOptions, create_client

from .config import get_settings
from .errors import FailedPrecondition

log = logging.getLogger("uvicorn.error")

_lock = threading.Lock()
_supabase: Optional[Client] = None
_stripe_key: Optional[str] = None


def get_supabase() -> Client:
    """Service-role Supabase client, built on first use and reused after."""
    global _supabase
    if _supabase is None:
        with _lock:
            if _supabase is None:
                settings = get_settings()
                if not settings.supabase_url or not settings.supabase_service_role_key:
                    # defer failure until a store-using endpoint is called
                    log.error("Supabase settings missing (SUPABASE_URL or SUPABASE_SERVICE_ROLE_KEY)")
                    raise FailedPrecondition("Supabase is not configured")
                _supabase = create_client(
                    settings.supabase_url,
                    settings.supabase_service_role_key,
                    options=ClientOptions(schema=settings.supabase_schema),
                )
    return _supabase


def get_stripe():
    """The stripe module, configured with the secret key exactly once."""
    global _stripe_key
    if _stripe_key is None:
        with _lock:
            if _stripe_key is None:
                key = get_settings().stripe_secret_key
                if not key:
                    log.error("Stripe secret key missing (STRIPE_SECRET_KEY)")
                    raise FailedPrecondition("Stripe is not configured")
                stripe.api_key = key
                _stripe_key = key
    return stripe


def reset_clients() -> None:
    global _supabase, _stripe_key
    with _lock:
        _supabase = None
        _stripe_key = None
