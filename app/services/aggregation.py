"""
Aggregation of survey answers into report statistics.

Handles:
1. Answer coercion (numeric scores, choice labels, free text)
2. Per-question statistics (average/count, distribution)
3. Satisfaction by category (instructor, course, operation, overall)
4. Per-session weighted satisfaction
5. Instructor-scoped views over the shared response set

All functions are pure: they work on a SurveyContext snapshot and never
read the database. Answers are assumed to share one scale; no 5→10 point
normalization happens here (see course_stats_service).
"""

import json
import math
from collections import OrderedDict
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Optional, Set, Union

from app.services.survey_reader import AnswerRecord, SurveyContext

NUMERIC_TYPES = ("rating", "scale")
CHOICE_TYPES = ("single_choice", "multiple_choice", "multiple_choice_multiple")
SATISFACTION_CATEGORIES = ("instructor", "course", "operation")

UNNAMED_SESSION = "과목 미정"
UNREGISTERED_INSTRUCTOR = "미등록"


# ============ COERCION ============

def to_finite(raw: Any) -> Optional[float]:
    """Convert a number or numeric string to a finite float, else None."""
    if isinstance(raw, bool) or raw is None:
        return None
    if isinstance(raw, (int, float)):
        n = float(raw)
    elif isinstance(raw, str):
        if not raw.strip():
            return None
        try:
            n = float(raw.strip())
        except ValueError:
            return None
    else:
        return None
    return n if math.isfinite(n) else None


def coerce_numeric(value: Any, text: Optional[str] = None) -> Optional[float]:
    """
    Coerce a rating/scale answer to a number.

    Precedence:
        1. value is a number
        2. value is a numeric string
        3. value is a mapping with a numeric "value" or "score"
        4. text is a numeric string

    Returns:
        Finite float, or None when nothing is coercible
    """
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        n = to_finite(value)
        if n is not None:
            return n

    if isinstance(value, str):
        n = to_finite(value)
        if n is not None:
            return n

    if isinstance(value, dict):
        inner = value.get("value")
        if inner is None:
            inner = value.get("score")
        n = to_finite(inner)
        if n is not None:
            return n

    return to_finite(text)


def _label(item: Any) -> Optional[str]:
    if item is None:
        return None
    if isinstance(item, dict):
        raw = item.get("label")
        if raw is None:
            raw = item.get("value")
        if raw is None:
            raw = json.dumps(item, ensure_ascii=False)
        item = raw
    if isinstance(item, float) and item.is_integer():
        item = int(item)
    label = str(item).strip()
    return label or None


def coerce_choice_labels(value: Any, text: Optional[str] = None) -> List[str]:
    """
    Collect the choice labels of one answer.

    A non-blank text wins; otherwise each element of a list value, the
    "label"/"value" of a mapping, or the scalar itself. Blank labels are
    dropped.
    """
    if isinstance(text, str) and text.strip():
        return [text.strip()]

    items = value if isinstance(value, list) else [value]
    labels = []
    for item in items:
        label = _label(item)
        if label:
            labels.append(label)
    return labels


def round_one(value: float) -> float:
    """Round half-up on the exact binary value to one decimal place."""
    return float(Decimal(value).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def mean_or_none(values: List[float]) -> Optional[float]:
    """Arithmetic mean rounded to one decimal; None (never 0) when empty."""
    if not values:
        return None
    return round_one(sum(values) / len(values))


# ============ DATA TYPES ============

@dataclass
class QuestionRow:
    """Answers and statistics for one question within a report."""
    question_id: str
    question: str
    type: str
    satisfaction_type: Optional[str] = None
    session_id: Optional[str] = None
    session_name: Optional[str] = None
    instructor: Optional[str] = None
    instructor_id: Optional[str] = None
    answers: List[Union[float, str]] = field(default_factory=list)
    average: Optional[float] = None
    count: Optional[int] = None
    distribution: Optional[Dict[str, int]] = None

    @property
    def is_numeric(self) -> bool:
        return self.type in NUMERIC_TYPES

    @property
    def is_choice(self) -> bool:
        return self.type in CHOICE_TYPES

    @property
    def numeric_answers(self) -> List[float]:
        return [a for a in self.answers if isinstance(a, float)]

    def add(self, answer: AnswerRecord):
        if self.is_numeric:
            n = coerce_numeric(answer.answer_value, answer.answer_text)
            if n is not None:
                self.answers.append(n)
        elif self.is_choice:
            self.answers.extend(coerce_choice_labels(answer.answer_value, answer.answer_text))
        elif isinstance(answer.answer_text, str) and answer.answer_text.strip():
            self.answers.append(answer.answer_text.strip())

    def finalize(self):
        """Compute average/count or distribution from collected answers."""
        if self.is_numeric:
            nums = self.numeric_answers
            if nums:
                self.average = round_one(sum(nums) / len(nums))
                self.count = len(nums)
        elif self.is_choice:
            counts: Dict[str, int] = {}
            for label in self.answers:
                counts[label] = counts.get(label, 0) + 1
            self.distribution = counts

    def stats(self) -> dict:
        stats = {}
        if self.average is not None:
            stats["average"] = self.average
            stats["count"] = self.count
        if self.distribution is not None:
            stats["distribution"] = dict(self.distribution)
        return stats

    def to_dict(self) -> dict:
        return {
            "question": self.question,
            "type": self.type,
            "satisfaction_type": self.satisfaction_type,
            "sessionId": self.session_id,
            "sessionName": self.session_name,
            "instructor": self.instructor,
            "instructorId": self.instructor_id,
            "answers": list(self.answers),
            "stats": self.stats()
        }


@dataclass
class SessionSatisfaction:
    """Running weighted mean of instructor-category scores for one session."""
    session_name: str
    instructor_name: str
    average: float = 0.0
    count: int = 0

    def fold(self, values: Iterable[float]):
        """
        Fold another batch of answers into the mean, weighted by count:
        new = (avg * count + sum(values)) / (count + len(values))
        """
        values = list(values)
        if not values:
            return
        total = self.count + len(values)
        self.average = (self.average * self.count + sum(values)) / total
        self.count = total

    @property
    def is_low(self) -> bool:
        return self.average <= 6


@dataclass
class SurveyReport:
    """Aggregated view of one response scope (full or one instructor)."""
    instructor_id: Optional[str]
    response_count: int
    questions: List[QuestionRow]
    satisfaction: Dict[str, Optional[float]]
    sessions: Dict[str, SessionSatisfaction]
    session_response_counts: Dict[str, int]


# ============ AGGREGATION ============

def filter_response_ids(context: SurveyContext, instructor_id: Optional[str] = None) -> Set[str]:
    """
    Response ids in scope.

    No instructor: every production response. With an instructor: only
    responses whose session is taught by that instructor.
    """
    if not instructor_id:
        return set(context.response_ids)
    session_ids = context.sessions_for_instructor(instructor_id)
    return {r.id for r in context.responses if r.session_id and r.session_id in session_ids}


def group_answers(context: SurveyContext, response_ids: Set[str]) -> "OrderedDict[str, QuestionRow]":
    """Group in-scope answers by question, in first-seen order."""
    rows: "OrderedDict[str, QuestionRow]" = OrderedDict()
    for answer in context.answers:
        if answer.response_id not in response_ids:
            continue
        q = answer.question
        row = rows.get(q.id)
        if row is None:
            sid = q.session_id
            row = QuestionRow(
                question_id=q.id,
                question=q.text,
                type=q.type,
                satisfaction_type=q.satisfaction_type,
                session_id=sid,
                session_name=context.session_names.get(sid) if sid else None,
                instructor=context.session_instructor_names.get(sid) if sid else None,
                instructor_id=context.session_instructor_ids.get(sid) if sid else None
            )
            rows[q.id] = row
        row.add(answer)

    for row in rows.values():
        row.finalize()
    return rows


def category_satisfaction(rows: Iterable[QuestionRow], category: Optional[str] = None) -> Optional[float]:
    """
    Flatten numeric answers of rating/scale questions and average them.

    category None means overall (every rating/scale question).
    """
    values: List[float] = []
    for row in rows:
        if not row.is_numeric:
            continue
        if category and row.satisfaction_type != category:
            continue
        values.extend(row.numeric_answers)
    return mean_or_none(values)


def session_satisfaction(rows: Iterable[QuestionRow]) -> "OrderedDict[str, SessionSatisfaction]":
    """Weighted instructor satisfaction per session, folded question by question."""
    sessions: "OrderedDict[str, SessionSatisfaction]" = OrderedDict()
    for row in rows:
        if not (row.is_numeric and row.satisfaction_type == "instructor" and row.session_id):
            continue
        nums = row.numeric_answers
        if not nums:
            continue
        entry = sessions.get(row.session_id)
        if entry is None:
            entry = SessionSatisfaction(
                session_name=row.session_name or UNNAMED_SESSION,
                instructor_name=row.instructor or UNREGISTERED_INSTRUCTOR
            )
            sessions[row.session_id] = entry
        entry.fold(nums)
    return sessions


def build_report(context: SurveyContext, instructor_id: Optional[str] = None) -> SurveyReport:
    """
    Aggregate the survey for one scope.

    Args:
        context: Loaded survey graph
        instructor_id: None for the full survey, else that instructor's sessions only

    Returns:
        SurveyReport with question rows in first-seen order
    """
    response_ids = filter_response_ids(context, instructor_id)
    rows = list(group_answers(context, response_ids).values())

    satisfaction = {c: category_satisfaction(rows, c) for c in SATISFACTION_CATEGORIES}
    satisfaction["overall"] = category_satisfaction(rows)

    session_counts: Dict[str, int] = {}
    for r in context.responses:
        if r.id in response_ids and r.session_id:
            session_counts[r.session_id] = session_counts.get(r.session_id, 0) + 1

    return SurveyReport(
        instructor_id=instructor_id,
        response_count=len(response_ids),
        questions=rows,
        satisfaction=satisfaction,
        sessions=session_satisfaction(rows),
        session_response_counts=session_counts
    )


def question_analysis(context: SurveyContext) -> Dict[str, dict]:
    """Per-question statistics over every production response (audit log)."""
    rows = group_answers(context, set(context.response_ids))
    return {
        qid: {
            "question": row.question,
            "type": row.type,
            "satisfaction_type": row.satisfaction_type,
            "answers": list(row.answers),
            "stats": row.stats()
        }
        for qid, row in rows.items()
    }
