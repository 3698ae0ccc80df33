"""
Survey structure models: surveys, their teaching sessions, instructors
and questions.

A survey is taught in zero or more sessions; each session may be linked
to one instructor. Instructors can also be attached to a survey directly
(surveys.instructor_id) or through the survey_instructors join table.
"""

import uuid

from sqlalchemy import (
    Column, Integer, String, Text, Boolean, Date,
    ForeignKey, DateTime, Index
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base


def new_id() -> str:
    return str(uuid.uuid4())


class Instructor(Base):
    """Instructor who teaches one or more survey sessions."""
    __tablename__ = "instructors"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False)
    email = Column(String(255), index=True)  # optional, used as report recipient
    created_at = Column(DateTime, server_default=func.now())

    def __repr__(self):
        return f"<Instructor(id={self.id}, name={self.name})>"


class Survey(Base):
    """
    Course satisfaction survey.

    One survey per course round; responses, sessions and questions hang
    off it.
    """
    __tablename__ = "surveys"

    id = Column(String(36), primary_key=True, default=new_id)

    # ============ COURSE INFO ============
    title = Column(String(512))
    course_name = Column(String(255), index=True)
    instructor_id = Column(String(36), ForeignKey("instructors.id"))

    # ============ EDUCATION PERIOD ============
    education_year = Column(Integer, index=True)
    education_round = Column(Integer)
    education_day = Column(Integer)
    start_date = Column(Date)
    end_date = Column(Date)

    # ============ STATUS ============
    status = Column(String(20), default="draft", index=True)  # draft, active, public, completed
    expected_participants = Column(Integer)
    is_test = Column(Boolean, default=False)

    # ============ AUTHOR ============
    created_by_name = Column(String(255))
    created_by_email = Column(String(255))
    created_at = Column(DateTime, server_default=func.now())

    instructor = relationship("Instructor")
    sessions = relationship("SurveySession", back_populates="survey")

    __table_args__ = (
        Index("ix_surveys_year_round", "education_year", "education_round"),
    )

    def __repr__(self):
        return f"<Survey(id={self.id}, title={self.title})>"


class SurveySession(Base):
    """A teaching session (subject) within a survey."""
    __tablename__ = "survey_sessions"

    id = Column(String(36), primary_key=True, default=new_id)
    survey_id = Column(String(36), ForeignKey("surveys.id"), nullable=False, index=True)
    session_name = Column(String(255))
    session_order = Column(Integer, default=0)
    instructor_id = Column(String(36), ForeignKey("instructors.id"), index=True)

    survey = relationship("Survey", back_populates="sessions")
    instructor = relationship("Instructor")

    def __repr__(self):
        return f"<SurveySession(id={self.id}, name={self.session_name})>"


class SurveyInstructor(Base):
    """Extra instructors attached to a survey (survey <-> instructor)."""
    __tablename__ = "survey_instructors"

    id = Column(Integer, primary_key=True, autoincrement=True)
    survey_id = Column(String(36), ForeignKey("surveys.id"), nullable=False, index=True)
    instructor_id = Column(String(36), ForeignKey("instructors.id"), nullable=False)

    instructor = relationship("Instructor")


class SurveyQuestion(Base):
    """
    Survey question.

    question_type: rating, scale, single_choice, multiple_choice, text, textarea
    satisfaction_type: instructor, course, operation or NULL
    """
    __tablename__ = "survey_questions"

    id = Column(String(36), primary_key=True, default=new_id)
    survey_id = Column(String(36), ForeignKey("surveys.id"), nullable=False, index=True)
    session_id = Column(String(36), ForeignKey("survey_sessions.id"))  # NULL = survey-global
    question_text = Column(Text, nullable=False)
    question_type = Column(String(50), nullable=False)
    satisfaction_type = Column(String(20))
    order_index = Column(Integer, default=0)

    def __repr__(self):
        return f"<SurveyQuestion(id={self.id}, type={self.question_type})>"
