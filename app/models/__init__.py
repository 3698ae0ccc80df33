"""
SQLAlchemy models for the survey results service.

This package contains:
- Survey, SurveySession, Instructor, SurveyInstructor, SurveyQuestion: survey structure
- SurveyResponse, QuestionAnswer: submitted answers
- Profile, UserRole: user directory for role-based recipients
- EmailLog: append-only dispatch audit trail
- CourseStatistic: yearly per-course satisfaction summary
"""

from app.models.survey import Survey, SurveySession, Instructor, SurveyInstructor, SurveyQuestion
from app.models.response import SurveyResponse, QuestionAnswer
from app.models.user import Profile, UserRole
from app.models.email_log import EmailLog
from app.models.course_statistic import CourseStatistic

__all__ = [
    "Survey", "SurveySession", "Instructor", "SurveyInstructor", "SurveyQuestion",
    "SurveyResponse", "QuestionAnswer",
    "Profile", "UserRole",
    "EmailLog",
    "CourseStatistic",
]
