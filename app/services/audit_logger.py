"""
Audit log for dispatch runs.

write_email_log inserts exactly one email_logs row per send run. The
insert is best-effort: a failure is rolled back and printed, and never
changes the outcome of mail that was already sent.
"""

from datetime import datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models import EmailLog

SENT = "sent"
FAILED = "failed"
ERROR = "error"
SKIPPED = "skipped"
DUPLICATE_BLOCKED = "duplicate_blocked"


def run_status(sent: int, failed: int) -> str:
    """success: all sent; partial: some of each; failed: nothing sent."""
    if sent > 0 and failed == 0:
        return "success"
    if sent > 0:
        return "partial"
    return "failed"


def role_breakdown(details: List[dict]) -> Dict[str, dict]:
    stats: Dict[str, dict] = {}
    for d in details:
        role = d.get("role") or "unknown"
        entry = stats.setdefault(role, {
            "total": 0, SENT: 0, FAILED: 0, ERROR: 0, DUPLICATE_BLOCKED: 0, SKIPPED: 0
        })
        entry["total"] += 1
        status = d.get("status")
        if status in entry:
            entry[status] += 1
    return stats


def scope_breakdown(details: List[dict]) -> Dict[str, int]:
    """Number of sent emails per data scope."""
    stats: Dict[str, int] = {}
    for d in details:
        scope = d.get("dataScope")
        if not scope:
            continue
        stats.setdefault(scope, 0)
        if d.get("status") == SENT:
            stats[scope] += 1
    return stats


def build_log_entry(
    survey_id: str,
    email_results: List[dict],
    recipient_details: List[dict],
    survey_info: dict,
    question_analysis: dict,
    metadata: Optional[dict] = None
) -> dict:
    """Assemble the column values of one email_logs row."""
    sent = sum(1 for r in email_results if r["status"] == SENT)
    failed = sum(1 for r in email_results if r["status"] in (FAILED, ERROR))
    duplicate_blocked = sum(1 for d in recipient_details if d["status"] == DUPLICATE_BLOCKED)
    skipped = sum(1 for d in recipient_details if d["status"] == SKIPPED)

    meta = {"sent_at": datetime.now(timezone.utc).isoformat()}
    meta.update(metadata or {})

    return {
        "survey_id": survey_id,
        "recipients": list(dict.fromkeys(r["to"] for r in email_results)),
        "status": run_status(sent, failed),
        "sent_count": sent,
        "failed_count": failed,
        "results": {
            "emailResults": email_results,
            "recipientDetails": recipient_details,
            "survey_info": survey_info,
            "question_analysis": question_analysis,
            "statistics": {
                "total_recipients": len(recipient_details),
                "sent": sent,
                "failed": failed,
                "duplicate_blocked": duplicate_blocked,
                "skipped": skipped,
                "by_role": role_breakdown(recipient_details),
                "by_scope": scope_breakdown(recipient_details)
            },
            "metadata": meta
        }
    }


def write_email_log(db: Session, entry: dict) -> Optional[EmailLog]:
    """
    Insert one email_logs row.

    Returns:
        The stored EmailLog, or None when the insert failed
    """
    stats = entry["results"]["statistics"]
    print(
        f"[LOG SUMMARY] Survey {entry['survey_id']}: {stats['sent']} sent, "
        f"{stats['failed']} failed, {stats['duplicate_blocked']} blocked, {stats['skipped']} skipped"
    )
    print(f"[LOG STATS] Roles: {stats['by_role']}")
    print(f"[LOG STATS] Scopes: {stats['by_scope']}")

    log = EmailLog(**entry)
    try:
        db.add(log)
        db.commit()
        db.refresh(log)
        return log
    except Exception as e:
        # Mail already went out; the run result must not change
        try:
            db.rollback()
        except SQLAlchemyError as rollback_err:
            print(f"[LOG ERROR] Rollback failed: {rollback_err}")
        print(f"[LOG ERROR] Failed to save email log: {e}")
        return None


# ============ QUERIES ============

def get_email_logs(
    db: Session,
    skip: int = 0,
    limit: int = 50,
    survey_id: str = None,
    status: str = None
) -> List[EmailLog]:
    """Email logs, newest first, with optional survey/status filters."""
    query = db.query(EmailLog)

    if survey_id:
        query = query.filter(EmailLog.survey_id == survey_id)
    if status:
        query = query.filter(EmailLog.status == status)

    query = query.order_by(EmailLog.created_at.desc(), EmailLog.id.desc())
    return query.offset(skip).limit(limit).all()


def get_email_logs_count(db: Session, survey_id: str = None, status: str = None) -> int:
    query = db.query(EmailLog)
    if survey_id:
        query = query.filter(EmailLog.survey_id == survey_id)
    if status:
        query = query.filter(EmailLog.status == status)
    return query.count()


def get_email_log_by_id(db: Session, log_id: int) -> Optional[EmailLog]:
    return db.query(EmailLog).filter(EmailLog.id == log_id).first()
