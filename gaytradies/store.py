# gaytradies/store.py
"""Document store operations over Supabase (PostgREST).

Every write is a merge: profiles are upserted on ``id`` with only the given
columns, jobs and conversations are updated column-by-column. Nothing here
replaces a whole row, so independent writers touching different columns of
the same row do not clobber each other.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .deps import get_supabase
from .errors import Internal

log = logging.getLogger("uvicorn.error")

JOBS = "jobs"
PROFILES = "profiles"
NOTIFICATIONS = "notifications"
STRIPE_CUSTOMERS = "stripe_customers"
STRIPE_EVENTS = "stripe_events"
CONVERSATIONS = "conversations"
CONVERSATION_MEMBERS = "conversation_members"
REPORTS = "reports"


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _execute(query, what: str):
    try:
        return query.execute()
    except Exception as e:
        log.error(f"store {what} failed: {e}")
        raise Internal(f"{what} failed") from e


def _first(resp) -> Optional[Dict[str, Any]]:
    rows = resp.data or []
    return rows[0] if rows else None


# ── Jobs ──────────────────────────────────────────────────────────────────────
def get_job(job_id: str) -> Optional[Dict[str, Any]]:
    q = get_supabase().table(JOBS).select("*").eq("id", job_id).limit(1)
    return _first(_execute(q, f"{JOBS} select"))


def update_job(job_id: str, fields: Dict[str, Any]) -> List[Dict[str, Any]]:
    q = get_supabase().table(JOBS).update(fields).eq("id", job_id)
    return _execute(q, f"{JOBS} update").data or []


# ── Profiles & notifications ──────────────────────────────────────────────────
def get_profile(uid: str) -> Optional[Dict[str, Any]]:
    q = get_supabase().table(PROFILES).select("*").eq("id", uid).limit(1)
    return _first(_execute(q, f"{PROFILES} select"))


def merge_profile(uid: str, fields: Dict[str, Any]) -> None:
    q = get_supabase().table(PROFILES).upsert({"id": uid, **fields}, on_conflict="id")
    _execute(q, f"{PROFILES} upsert")


def append_notification(
    uid: str,
    type: str,
    title: str,
    message: str,
    icon: Optional[str] = None,
    event_id: Optional[str] = None,
) -> None:
    row = {
        "user_id": uid,
        "type": type,
        "title": title,
        "message": message,
        "icon": icon,
        "created_at": now_iso(),
        "read": False,
        "event_id": event_id,
    }
    _execute(get_supabase().table(NOTIFICATIONS).insert(row), f"{NOTIFICATIONS} insert")


# ── Stripe customer mapping ───────────────────────────────────────────────────
def get_customer_mapping(uid: str) -> Optional[Dict[str, Any]]:
    q = get_supabase().table(STRIPE_CUSTOMERS).select("*").eq("user_id", uid).limit(1)
    return _first(_execute(q, f"{STRIPE_CUSTOMERS} select"))


def insert_customer_mapping(uid: str, customer_id: str, email: Optional[str]) -> None:
    """Insert the mapping unless one already exists; an existing row wins."""
    row = {"user_id": uid, "customer_id": customer_id, "email": email, "created_at": now_iso()}
    q = get_supabase().table(STRIPE_CUSTOMERS).upsert(row, on_conflict="user_id", ignore_duplicates=True)
    _execute(q, f"{STRIPE_CUSTOMERS} insert")


def find_user_by_customer(customer_id: str) -> Optional[str]:
    # needs an index on stripe_customers.customer_id
    q = get_supabase().table(STRIPE_CUSTOMERS).select("user_id").eq("customer_id", customer_id).limit(1)
    row = _first(_execute(q, f"{STRIPE_CUSTOMERS} reverse lookup"))
    return row["user_id"] if row else None


# ── Processed-event ledger ────────────────────────────────────────────────────
def event_processed(event_id: str) -> bool:
    q = get_supabase().table(STRIPE_EVENTS).select("id").eq("id", event_id).limit(1)
    return _first(_execute(q, f"{STRIPE_EVENTS} select")) is not None


def record_event(event_id: str, event_type: str) -> None:
    row = {"id": event_id, "type": event_type, "processed_at": now_iso()}
    q = get_supabase().table(STRIPE_EVENTS).upsert(row, on_conflict="id", ignore_duplicates=True)
    _execute(q, f"{STRIPE_EVENTS} insert")


# ── Conversations ─────────────────────────────────────────────────────────────
def get_conversation(conversation_id: str) -> Optional[Dict[str, Any]]:
    q = get_supabase().table(CONVERSATIONS).select("*").eq("id", conversation_id).limit(1)
    return _first(_execute(q, f"{CONVERSATIONS} select"))


def update_conversation_if_violations(
    conversation_id: str, seen: Optional[int], fields: Dict[str, Any]
) -> bool:
    """Update only if ``work_policy_violations`` still holds ``seen``; False when another write got there first."""
    q = get_supabase().table(CONVERSATIONS).update(fields).eq("id", conversation_id)
    if seen is None:
        q = q.is_("work_policy_violations", "null")
    else:
        q = q.eq("work_policy_violations", seen)
    return bool(_execute(q, f"{CONVERSATIONS} update").data)


def merge_member(conversation_id: str, member_id: str, fields: Dict[str, Any]) -> None:
    row = {"conversation_id": conversation_id, "member_id": member_id, **fields}
    q = get_supabase().table(CONVERSATION_MEMBERS).upsert(row, on_conflict="conversation_id,member_id")
    _execute(q, f"{CONVERSATION_MEMBERS} upsert")


def insert_report(row: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    return _first(_execute(get_supabase().table(REPORTS).insert(row), f"{REPORTS} insert"))
