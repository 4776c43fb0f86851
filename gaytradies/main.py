# gaytradies/main.py
import logging
import os

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .admin import router as admin_router
from .billing import router as billing_router
from .config import get_settings
from .errors import InvalidArgument
from .escrow import router as escrow_router
from .moderation import router as moderation_router
from .stripe_webhook import router as stripe_router

log = logging.getLogger("uvicorn.error")

app = FastAPI(
    title="GayTradies API",
    version="0.1.0",
    docs_url="/docs",
    redoc_url=None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_error(request: Request, exc: RequestValidationError):
    messages = [f"{'.'.join(str(p) for p in err['loc'][1:])}: {err['msg']}" for err in exc.errors()]
    err = InvalidArgument("; ".join(messages) or "Invalid request")
    log.warning(f"{request.method} {request.url.path} rejected: {err.message}")
    return JSONResponse(status_code=err.status_code, content={"detail": err.detail})


# ──────────────────────────────────────────────────────────────────────────────
# Root + Health
# ──────────────────────────────────────────────────────────────────────────────
@app.get("/", tags=["default"])
def read_root():
    return {"ok": True, "service": "gaytradies-api"}


@app.get("/health", tags=["health"])
def health():
    return {"ok": True}


@app.get("/diag", tags=["health"])
def diag():
    """Which settings are present; never their values."""
    s = get_settings()
    return {
        "supabase_url_set": bool(s.supabase_url),
        "service_role_set": bool(s.supabase_service_role_key),
        "jwt_secret_set": bool(s.supabase_jwt_secret),
        "stripe_secret_key_set": bool(s.stripe_secret_key),
        "stripe_webhook_secret_set": bool(s.stripe_webhook_secret),
        "elite_price_set": bool(s.stripe_elite_price_id),
        "event_ledger": s.stripe_event_ledger,
    }


# routers
app.include_router(escrow_router)
app.include_router(stripe_router)
app.include_router(billing_router)
app.include_router(moderation_router)
app.include_router(admin_router)


# ──────────────────────────────────────────────────────────────────────────────
# Local dev entrypoint
# ──────────────────────────────────────────────────────────────────────────────
if __name__ == "__main__":
    import uvicorn
    logging.basicConfig(level=logging.INFO)
    uvicorn.run(
        "gaytradies.main:app",
        host="0.0.0.0",
        port=int(os.environ.get("PORT", "8000")),
        reload=True,
    )
