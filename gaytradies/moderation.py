# gaytradies/moderation.py
"""Chat moderation: steer off-platform work talk into the hiring flow."""
import logging
import re
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends

from . import store
from .auth import Caller, get_caller
from .errors import Internal, NotFound, PermissionDenied
from .models import ReceiptIn, ReportIn, ReportOut, ScreenMessageIn, ScreenMessageOut

log = logging.getLogger("uvicorn.error")

router = APIRouter(prefix="/chat", tags=["chat"])

WORK_KEYWORD_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"how much do you charge",
        r"cash in hand",
        r"cash job",
        r"pay.*cash",
        r"mates rates",
        r"off the books",
        r"discount.*cash",
        r"work.*cheap",
    )
]

BLOCK_AFTER_VIOLATIONS = 2
VIOLATION_WRITE_ATTEMPTS = 3


def detect_work_message(text: Optional[str]) -> Optional[str]:
    """Pattern of the first work-policy keyword found in ``text``, if any."""
    if not text:
        return None
    for pattern in WORK_KEYWORD_PATTERNS:
        if pattern.search(text):
            return pattern.pattern
    return None


def build_work_warning(partner_is_tradie: bool) -> str:
    cta = (
        "Tap here to hire this tradie via our secure flow."
        if partner_is_tradie
        else "Tap here to post a job with secure payments."
    )
    return f"If you need work done, please use our secure and easy hiring feature. {cta}"


def should_block_for_work_policy(violations: int) -> bool:
    return violations >= BLOCK_AFTER_VIOLATIONS


def _conversation_for(caller: Caller, conversation_id: str) -> dict:
    convo = store.get_conversation(conversation_id)
    if not convo:
        raise NotFound("Conversation not found")
    if caller.uid not in (convo.get("participants") or []):
        raise PermissionDenied("You are not part of this conversation")
    return convo


@router.post("/{conversation_id}/screen", response_model=ScreenMessageOut)
def screen_message(conversation_id: str, body: ScreenMessageIn, caller: Caller = Depends(get_caller)):
    convo = _conversation_for(caller, conversation_id)
    keyword = detect_work_message(body.text)
    if not keyword:
        return ScreenMessageOut(
            violation=False,
            violations=convo.get("work_policy_violations") or 0,
            blocked=convo.get("work_policy_blocked") is True,
        )

    for _ in range(VIOLATION_WRITE_ATTEMPTS):
        seen = convo.get("work_policy_violations")
        violations = (seen or 0) + 1
        blocked = convo.get("work_policy_blocked") is True or should_block_for_work_policy(violations)
        fields = {"work_policy_violations": violations, "last_violation_at": store.now_iso()}
        if blocked:
            fields["work_policy_blocked"] = True
        if store.update_conversation_if_violations(conversation_id, seen, fields):
            break
        # a concurrent violation moved the counter; count on top of it
        convo = _conversation_for(caller, conversation_id)
    else:
        log.warning(f"Gave up recording work-policy violation in conversation {conversation_id}")
        raise Internal("Could not record the violation, please try again")
    log.info(f"Work-policy violation {violations} in conversation {conversation_id} by {caller.uid} ({keyword})")

    return ScreenMessageOut(
        violation=True,
        keyword=keyword,
        warning=build_work_warning(body.partner_is_tradie),
        violations=violations,
        blocked=blocked,
    )


@router.post("/reports", response_model=ReportOut)
def send_moderation_report(body: ReportIn, caller: Caller = Depends(get_caller)):
    participants = list(dict.fromkeys([*body.participants, caller.uid]))
    if body.offender_uid and body.offender_uid not in participants:
        participants.append(body.offender_uid)

    row = store.insert_report({
        "conversation_id": body.conversation_id,
        "sender_id": body.sender_id or caller.uid,
        "participants": participants,
        "reported_by": caller.uid,
        "reporter_name": body.reporter_name,
        "offender_uid": body.offender_uid,
        "offender_name": body.offender_name,
        "details": body.message_text,
        "messages": [m.model_dump(by_alias=True) for m in body.messages],
        "created_at": store.now_iso(),
        "report_type": body.type,
        "status": "pending",
    })
    log.info(f"Moderation report ({body.type}) on conversation {body.conversation_id} by {caller.uid}")
    return ReportOut(id=(row or {}).get("id"), status="pending")


@router.post("/{conversation_id}/receipts")
def update_receipts(conversation_id: str, body: ReceiptIn, caller: Caller = Depends(get_caller)):
    _conversation_for(caller, conversation_id)
    stamp = datetime.fromtimestamp(body.timestamp / 1000, tz=timezone.utc).isoformat()
    fields = {"last_delivered_at": stamp}
    if body.kind == "read":
        fields["last_read_at"] = stamp
    store.merge_member(conversation_id, caller.uid, fields)
    return {"ok": True}
