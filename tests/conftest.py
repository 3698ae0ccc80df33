import os
import threading

os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.database import Base
from app.models import (
    Instructor, Survey, SurveySession, SurveyQuestion,
    SurveyResponse, QuestionAnswer, Profile, UserRole
)
from app.services.mail_service import SendResult


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    TestingSession = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()


class FakeMailer:
    """Records every send; can reject or raise for chosen addresses."""

    def __init__(self, reject=(), explode=(), delay=0.0):
        self.reject = set(reject)
        self.explode = set(explode)
        self.delay = delay
        self.sent = []
        self._lock = threading.Lock()
        self.active = 0
        self.max_active = 0

    def send_email(self, to, subject, html, text=None):
        with self._lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                threading.Event().wait(self.delay)
            with self._lock:
                self.sent.append({"to": to, "subject": subject, "html": html, "text": text})
            if to in self.explode:
                raise RuntimeError("connection reset")
            if to in self.reject:
                return SendResult(error="Invalid `to` field")
            return SendResult(email_id=f"msg-{len(self.sent)}")
        finally:
            with self._lock:
                self.active -= 1

    def sent_to(self, email):
        return [m for m in self.sent if m["to"] == email]


@pytest.fixture
def mailer():
    return FakeMailer()


def add_answers(db, survey, session, question, values, is_test=False):
    for value in values:
        response = SurveyResponse(survey_id=survey.id, session_id=session.id if session else None, is_test=is_test)
        db.add(response)
        db.flush()
        db.add(QuestionAnswer(response_id=response.id, question_id=question.id, answer_value=value))


def add_director(db, email="director@example.com", user_id="user-director"):
    db.add(Profile(id=user_id, email=email))
    db.add(UserRole(user_id=user_id, role="director"))
    db.flush()


@pytest.fixture
def seeded(db):
    """
    Survey S1: session A taught by Kim (6 responses), session B taught by
    Lee (4 responses), one instructor rating question per session, and a
    director in the user directory.
    """
    kim = Instructor(id="inst-kim", name="Kim", email="kim@example.com")
    lee = Instructor(id="inst-lee", name="Lee", email="lee@example.com")
    db.add_all([kim, lee])

    survey = Survey(
        id="S1",
        title="2025 데이터 분석 과정",
        course_name="데이터 분석",
        education_year=2025,
        education_round=3,
        status="completed",
        created_by_name="Park",
        created_by_email="park@example.com"
    )
    db.add(survey)

    session_a = SurveySession(id="sess-a", survey_id="S1", session_name="Python 기초", session_order=1, instructor_id="inst-kim")
    session_b = SurveySession(id="sess-b", survey_id="S1", session_name="통계", session_order=2, instructor_id="inst-lee")
    db.add_all([session_a, session_b])

    q_a = SurveyQuestion(
        id="q-a", survey_id="S1", session_id="sess-a", question_text="강사의 전문성은?",
        question_type="rating", satisfaction_type="instructor", order_index=1
    )
    q_b = SurveyQuestion(
        id="q-b", survey_id="S1", session_id="sess-b", question_text="강사의 전달력은?",
        question_type="rating", satisfaction_type="instructor", order_index=2
    )
    db.add_all([q_a, q_b])
    db.flush()

    add_answers(db, survey, session_a, q_a, [8, 9, 10, 7, 8, 9])
    add_answers(db, survey, session_b, q_b, [6, 7, 6, 5])
    add_answers(db, survey, session_a, q_a, [1], is_test=True)
    add_director(db)
    db.commit()

    return {"survey": survey, "kim": kim, "lee": lee, "session_a": session_a, "session_b": session_b}
