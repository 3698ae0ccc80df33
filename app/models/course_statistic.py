"""
CourseStatistic model - yearly per-course satisfaction summary.

Rows are keyed by (year, round, course_name) and regenerated from survey
responses by course_stats_service.
"""

from sqlalchemy import Column, Integer, String, Float, DateTime, UniqueConstraint
from sqlalchemy.sql import func
from app.database import Base


class CourseStatistic(Base):
    """Aggregated satisfaction for one course round (10-point scale)."""
    __tablename__ = "course_statistics"

    id = Column(Integer, primary_key=True)

    # ============ KEY ============
    year = Column(Integer, nullable=False, index=True)
    round = Column(Integer, nullable=False)
    course_name = Column(String(255), nullable=False)

    # ============ PERIOD ============
    course_start_date = Column(String(10))  # YYYY-MM-DD, '' when unknown
    course_end_date = Column(String(10))
    course_days = Column(Integer, default=1)
    education_days = Column(Integer)
    education_hours = Column(Float)
    status = Column(String(20))  # 완료, 진행 중

    # ============ HEADCOUNT ============
    enrolled_count = Column(Integer, default=0)
    cumulative_count = Column(Integer, default=0)

    # ============ SATISFACTION ============
    total_satisfaction = Column(Float)
    course_satisfaction = Column(Float)
    instructor_satisfaction = Column(Float)
    operation_satisfaction = Column(Float)

    last_updated = Column(DateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("year", "round", "course_name", name="uq_course_statistics_key"),
    )

    def __repr__(self):
        return f"<CourseStatistic(year={self.year}, round={self.round}, course={self.course_name})>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "year": self.year,
            "round": self.round,
            "course_name": self.course_name,
            "course_start_date": self.course_start_date,
            "course_end_date": self.course_end_date,
            "course_days": self.course_days,
            "education_days": self.education_days,
            "education_hours": self.education_hours,
            "status": self.status,
            "enrolled_count": self.enrolled_count,
            "cumulative_count": self.cumulative_count,
            "total_satisfaction": self.total_satisfaction,
            "course_satisfaction": self.course_satisfaction,
            "instructor_satisfaction": self.instructor_satisfaction,
            "operation_satisfaction": self.operation_satisfaction
        }
