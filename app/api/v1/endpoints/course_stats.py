"""
Course statistics API endpoints.

POST /course-statistics/generate rebuilds one year's rows from surveys;
GET /course-statistics lists them.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.database import get_db
from app.services import course_stats_service


router = APIRouter(prefix="/course-statistics", tags=["Course Statistics"])


class CourseStatisticResponse(BaseModel):
    id: int
    year: int
    round: int
    course_name: str
    course_start_date: Optional[str]
    course_end_date: Optional[str]
    course_days: Optional[int]
    education_days: Optional[int]
    education_hours: Optional[float]
    status: Optional[str]
    enrolled_count: Optional[int]
    cumulative_count: Optional[int]
    total_satisfaction: Optional[float]
    course_satisfaction: Optional[float]
    instructor_satisfaction: Optional[float]
    operation_satisfaction: Optional[float]

    class Config:
        from_attributes = True


class GenerateResponse(BaseModel):
    success: bool
    year: int
    count: int


@router.post("/generate", response_model=GenerateResponse)
def generate_course_statistics(
    year: int = Query(..., ge=2000, le=2100, description="Education year"),
    db: Session = Depends(get_db)
):
    """
    Rebuild course statistics for one education year from survey responses.

    5-point scale answers are doubled onto the 10-point scale.
    """
    try:
        count = course_stats_service.generate_from_surveys(db, year)
    except SQLAlchemyError as e:
        db.rollback()
        print(f"❌ Course statistics generation failed: {e}")
        raise HTTPException(status_code=500, detail="Course statistics generation failed")

    return GenerateResponse(success=True, year=year, count=count)


@router.get("", response_model=list[CourseStatisticResponse])
def list_course_statistics(
    year: Optional[int] = Query(None, description="Filter by education year"),
    db: Session = Depends(get_db)
):
    """List course statistics, newest year first."""
    return course_stats_service.list_course_statistics(db, year)
