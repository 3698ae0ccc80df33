"""
Survey graph reader for the results dispatch.

Loads everything one dispatch run needs in a fixed sequence of reads:
- load_survey_context: survey → sessions (+ instructor) → extra instructors
  → production responses → answers joined with their question

The result is a plain SurveyContext snapshot, so aggregation and rendering
never touch the database.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session, joinedload

from app.models import (
    Survey, SurveySession, Instructor, SurveyInstructor,
    SurveyResponse, QuestionAnswer, SurveyQuestion
)
from app.services.errors import SurveyNotFound, EmptyResponseSet


@dataclass
class InstructorRef:
    id: str
    name: Optional[str] = None
    email: Optional[str] = None


@dataclass
class QuestionRef:
    id: str
    text: str
    type: str
    satisfaction_type: Optional[str] = None
    session_id: Optional[str] = None


@dataclass
class AnswerRecord:
    response_id: str
    question: QuestionRef
    answer_text: Optional[str] = None
    answer_value: Any = None


@dataclass
class ResponseRecord:
    id: str
    session_id: Optional[str] = None


@dataclass
class SurveyInfo:
    """Survey metadata snapshot used in subjects, headers and the audit log."""
    id: str
    title: Optional[str] = None
    course_name: Optional[str] = None
    instructor_id: Optional[str] = None
    education_year: Optional[int] = None
    education_round: Optional[int] = None
    created_by_name: Optional[str] = None
    created_by_email: Optional[str] = None

    @property
    def display_title(self) -> str:
        return self.title or self.course_name or ""


@dataclass
class SurveyContext:
    """Everything read from the store for one run."""
    survey: SurveyInfo
    instructors: List[InstructorRef] = field(default_factory=list)
    responses: List[ResponseRecord] = field(default_factory=list)
    answers: List[AnswerRecord] = field(default_factory=list)
    session_instructor_ids: Dict[str, str] = field(default_factory=dict)
    session_instructor_names: Dict[str, str] = field(default_factory=dict)
    session_names: Dict[str, str] = field(default_factory=dict)

    @property
    def response_ids(self) -> List[str]:
        return [r.id for r in self.responses]

    def sessions_for_instructor(self, instructor_id: str) -> set:
        return {
            sid for sid, iid in self.session_instructor_ids.items()
            if iid == instructor_id
        }

    def instructor_response_count(self, instructor_id: str) -> int:
        """Responses attached to a session taught by instructor_id."""
        session_ids = self.sessions_for_instructor(instructor_id)
        return sum(1 for r in self.responses if r.session_id and r.session_id in session_ids)

    @property
    def instructor_names(self) -> List[str]:
        return [i.name for i in self.instructors if i.name]


def _to_ref(instructor: Instructor) -> InstructorRef:
    return InstructorRef(id=instructor.id, name=instructor.name, email=instructor.email)


def merge_instructors(*sources: List[InstructorRef]) -> List[InstructorRef]:
    """Concatenate instructor lists, keeping the first entry per id."""
    merged: List[InstructorRef] = []
    seen = set()
    for source in sources:
        for inst in source:
            if inst.id in seen:
                continue
            seen.add(inst.id)
            merged.append(inst)
    return merged


def get_survey(db: Session, survey_id: str) -> Survey:
    """Fetch the survey row or raise SurveyNotFound."""
    survey = db.query(Survey).filter(Survey.id == survey_id).first()
    if not survey:
        raise SurveyNotFound(survey_id)
    return survey


def load_survey_context(db: Session, survey_id: str) -> SurveyContext:
    """
    Read the survey graph for one dispatch run.

    Args:
        db: Database session
        survey_id: Survey to report on

    Returns:
        SurveyContext with lookup maps and de-duplicated instructors

    Raises:
        SurveyNotFound: survey row is absent (nothing else is read)
        EmptyResponseSet: zero non-test responses
    """
    survey = get_survey(db, survey_id)

    info = SurveyInfo(
        id=survey.id,
        title=survey.title,
        course_name=survey.course_name,
        instructor_id=survey.instructor_id,
        education_year=survey.education_year,
        education_round=survey.education_round,
        created_by_name=survey.created_by_name,
        created_by_email=survey.created_by_email
    )
    context = SurveyContext(survey=info)

    # Step 1: sessions with their instructor
    sessions = db.query(SurveySession).options(
        joinedload(SurveySession.instructor)
    ).filter(
        SurveySession.survey_id == survey_id
    ).order_by(SurveySession.session_order, SurveySession.id).all()

    from_sessions: List[InstructorRef] = []
    for s in sessions:
        if s.instructor_id:
            context.session_instructor_ids[s.id] = s.instructor_id
        if s.instructor and s.instructor.name:
            context.session_instructor_names[s.id] = s.instructor.name
        if s.session_name:
            context.session_names[s.id] = s.session_name
        if s.instructor:
            from_sessions.append(_to_ref(s.instructor))

    # Step 2: survey-level instructor and survey_instructors joins
    extra: List[InstructorRef] = []
    if survey.instructor_id:
        direct = db.query(Instructor).filter(Instructor.id == survey.instructor_id).first()
        if direct:
            extra.append(_to_ref(direct))

    links = db.query(SurveyInstructor).options(
        joinedload(SurveyInstructor.instructor)
    ).filter(
        SurveyInstructor.survey_id == survey_id
    ).order_by(SurveyInstructor.id).all()
    extra.extend(_to_ref(link.instructor) for link in links if link.instructor)

    context.instructors = merge_instructors(from_sessions, extra)

    # Step 3: production responses only
    responses = db.query(SurveyResponse).filter(
        SurveyResponse.survey_id == survey_id,
        or_(SurveyResponse.is_test.is_(None), SurveyResponse.is_test.is_(False))
    ).order_by(SurveyResponse.submitted_at, SurveyResponse.id).all()

    if not responses:
        raise EmptyResponseSet(survey_id)

    context.responses = [ResponseRecord(id=r.id, session_id=r.session_id) for r in responses]

    # Step 4: answers joined with their question
    rows = db.query(QuestionAnswer).join(
        QuestionAnswer.question
    ).options(
        joinedload(QuestionAnswer.question)
    ).filter(
        QuestionAnswer.response_id.in_(context.response_ids)
    ).order_by(SurveyQuestion.order_index, SurveyQuestion.id, QuestionAnswer.id).all()

    for a in rows:
        q = a.question
        context.answers.append(AnswerRecord(
            response_id=a.response_id,
            question=QuestionRef(
                id=q.id,
                text=q.question_text,
                type=q.question_type,
                satisfaction_type=q.satisfaction_type,
                session_id=q.session_id
            ),
            answer_text=a.answer_text,
            answer_value=a.answer_value
        ))

    print(
        f"📋 Loaded survey {survey_id}: {len(sessions)} sessions, "
        f"{len(context.instructors)} instructors, {len(context.responses)} responses, "
        f"{len(context.answers)} answers"
    )
    return context
