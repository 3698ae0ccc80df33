"""
Email log API endpoints.

Read-only view of the dispatch audit trail for the dashboard.
"""

from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.database import get_db
from app.services import audit_logger


router = APIRouter(prefix="/email-logs", tags=["Email Logs"])


# ============ Response Schemas ============

class EmailLogSummary(BaseModel):
    """Log row without the nested detail."""
    id: int
    survey_id: Optional[str]
    recipients: Optional[list[str]]
    status: Optional[str]
    sent_count: Optional[int]
    failed_count: Optional[int]
    created_at: Optional[datetime]

    class Config:
        from_attributes = True


class EmailLogFull(EmailLogSummary):
    """Log row including results (outcomes, statistics, survey snapshot)."""
    results: Optional[dict[str, Any]]


class EmailLogsListResponse(BaseModel):
    """Paginated list of email logs."""
    total: int
    skip: int
    limit: int
    logs: list[EmailLogSummary]


# ============ LIST ============

@router.get("", response_model=EmailLogsListResponse)
def list_email_logs(
    skip: int = Query(0, ge=0, description="Offset for pagination"),
    limit: int = Query(50, ge=1, le=100, description="Max results"),
    survey_id: Optional[str] = Query(None, description="Filter by survey"),
    status: Optional[str] = Query(None, description="Filter by status: success, partial, failed"),
    db: Session = Depends(get_db)
):
    """
    List dispatch runs, newest first.

    **Example:**
    ```
    GET /api/v1/email-logs?survey_id=...&status=partial
    ```
    """
    logs = audit_logger.get_email_logs(db=db, skip=skip, limit=limit, survey_id=survey_id, status=status)
    total = audit_logger.get_email_logs_count(db=db, survey_id=survey_id, status=status)

    return EmailLogsListResponse(total=total, skip=skip, limit=limit, logs=logs)


# ============ SINGLE LOG ============

@router.get("/{log_id}", response_model=EmailLogFull)
def get_email_log(log_id: int, db: Session = Depends(get_db)):
    """
    Get one dispatch run with its full detail.

    **Returns:**
    - 200: Log row with results
    - 404: Log not found
    """
    log = audit_logger.get_email_log_by_id(db, log_id)

    if not log:
        raise HTTPException(status_code=404, detail=f"Email log with ID {log_id} not found")

    return log
