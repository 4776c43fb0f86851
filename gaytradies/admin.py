# gaytradies/admin.py
import logging

from fastapi import APIRouter, Depends

from . import store
from .auth import Caller, get_caller
from .deps import get_supabase
from .errors import Internal, InvalidArgument, PermissionDenied
from .models import AdminVerifyOut

log = logging.getLogger("uvicorn.error")

router = APIRouter(prefix="/admin", tags=["admin"])


def require_admin(caller: Caller = Depends(get_caller)) -> Caller:
    if not caller.is_admin:
        raise PermissionDenied("Admin privileges required.")
    return caller


@router.post("/users/{uid}/mark-email-verified", response_model=AdminVerifyOut)
def mark_email_verified(uid: str, admin: Caller = Depends(require_admin)):
    """Mark a user's email as verified in Supabase Auth and mirror it to their profile."""
    if not uid.strip():
        raise InvalidArgument("Missing uid.")
    sb = get_supabase()
    try:
        sb.auth.admin.update_user_by_id(uid, {"email_confirm": True})
    except Exception as e:
        log.error(f"Admin email verify failed for {uid}: {e}")
        raise Internal("Failed to update user") from e

    store.merge_profile(uid, {
        "email_verified": True,
        "email_verified_override": True,
        "email_validation_status": "validated",
        "email_validated_at": store.now_iso(),
    })
    store.append_notification(
        uid,
        "email_validated",
        "Email verified",
        "An admin verified your email so you can continue using all features.",
        icon="mail-check",
    )
    log.info(f"Admin {admin.uid} marked email verified for {uid}")
    return AdminVerifyOut(success=True, uid=uid)
