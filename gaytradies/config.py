# gaytradies/config.py
import os
from decimal import Decimal
from functools import lru_cache
from typing import List, Optional

from pydantic import BaseModel


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.environ.get(name)
    if value is None or value.strip() == "":
        return default
    return value.strip()


def _env_bool(name: str, default: bool = False) -> bool:
    value = _env(name)
    if value is None:
        return default
    return value.lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    supabase_url: Optional[str] = None
    supabase_service_role_key: Optional[str] = None
    supabase_jwt_secret: Optional[str] = None
    supabase_schema: str = "public"

    stripe_secret_key: Optional[str] = None
    stripe_elite_price_id: Optional[str] = None
    stripe_webhook_secret: Optional[str] = None
    stripe_event_ledger: bool = False

    app_return_url: str = "https://gaytradies.app"
    app_id: str = "gay-tradies-v2"

    escrow_max_amount: Decimal = Decimal("10000")
    platform_fee_percent: Decimal = Decimal("15")
    default_currency: str = "gbp"

    cors_origins: List[str] = ["*"]


@lru_cache
def get_settings() -> Settings:
    """Read settings from the environment once per process.

    Nothing here is required at import time: a missing Stripe key only fails
    when a payment endpoint actually needs it.
    """
    origins = _env("CORS_ORIGINS", "*")
    return Settings(
        supabase_url=_env("SUPABASE_URL"),
        supabase_service_role_key=_env("SUPABASE_SERVICE_ROLE_KEY"),
        supabase_jwt_secret=_env("SUPABASE_JWT_SECRET"),
        supabase_schema=_env("SUPABASE_SCHEMA", "public"),
        stripe_secret_key=_env("STRIPE_SECRET_KEY"),
        stripe_elite_price_id=_env("STRIPE_ELITE_PRICE_ID"),
        stripe_webhook_secret=_env("STRIPE_WEBHOOK_SECRET"),
        stripe_event_ledger=_env_bool("STRIPE_EVENT_LEDGER"),
        app_return_url=_env("APP_RETURN_URL", "https://gaytradies.app").rstrip("/"),
        app_id=_env("APP_ID", "gay-tradies-v2"),
        escrow_max_amount=Decimal(_env("ESCROW_MAX_AMOUNT", "10000")),
        platform_fee_percent=Decimal(_env("PLATFORM_FEE_PERCENT", "15")),
        default_currency=_env("DEFAULT_CURRENCY", "gbp").lower(),
        cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
    )
