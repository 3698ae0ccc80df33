"""
Survey response models.

A response is one participant's submission; each answered question is a
QuestionAnswer row. Test responses (is_test = true) never reach reports.
"""

from sqlalchemy import Column, String, Text, Boolean, ForeignKey, DateTime, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base
from app.models.survey import new_id


class SurveyResponse(Base):
    """One participant's submission for a survey."""
    __tablename__ = "survey_responses"

    id = Column(String(36), primary_key=True, default=new_id)
    survey_id = Column(String(36), ForeignKey("surveys.id"), nullable=False, index=True)
    session_id = Column(String(36), ForeignKey("survey_sessions.id"), index=True)  # NULL = not attributable
    is_test = Column(Boolean, default=False)
    submitted_at = Column(DateTime, server_default=func.now())

    answers = relationship("QuestionAnswer", back_populates="response")

    def __repr__(self):
        return f"<SurveyResponse(id={self.id}, survey={self.survey_id})>"


class QuestionAnswer(Base):
    """
    Single answer to a question.

    answer_value holds whatever the form submitted: a number, a numeric
    string, an object such as {"value": 8} / {"label": "Yes"}, or a list.
    """
    __tablename__ = "question_answers"

    id = Column(String(36), primary_key=True, default=new_id)
    response_id = Column(String(36), ForeignKey("survey_responses.id"), nullable=False, index=True)
    question_id = Column(String(36), ForeignKey("survey_questions.id"), nullable=False, index=True)
    answer_text = Column(Text)
    answer_value = Column(JSON)
    created_at = Column(DateTime, server_default=func.now())

    response = relationship("SurveyResponse", back_populates="answers")
    question = relationship("SurveyQuestion")

    def __repr__(self):
        return f"<QuestionAnswer(id={self.id}, question={self.question_id})>"
