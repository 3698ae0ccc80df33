"""
EmailLog model - audit trail of survey result dispatch runs.

One row per send run, written once at the end of the run and never
updated. Preview runs do not write a row.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from app.database import Base


class EmailLog(Base):
    """
    Append-only log of one dispatch run.

    results holds the nested detail: per-recipient outcomes, a survey
    snapshot, the unfiltered question analysis and aggregate statistics.
    """
    __tablename__ = "email_logs"

    id = Column(Integer, primary_key=True)
    survey_id = Column(String(36), index=True)
    recipients = Column(JSON)  # list of addresses that were attempted
    status = Column(String(20), index=True)  # success, partial, failed
    sent_count = Column(Integer, default=0)
    failed_count = Column(Integer, default=0)
    results = Column(JSON)
    created_at = Column(DateTime, server_default=func.now())

    def __repr__(self):
        return f"<EmailLog(id={self.id}, survey={self.survey_id}, status={self.status})>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "survey_id": self.survey_id,
            "recipients": self.recipients or [],
            "status": self.status,
            "sent_count": self.sent_count,
            "failed_count": self.failed_count,
            "results": self.results or {},
            "created_at": self.created_at.isoformat() if self.created_at else None
        }
