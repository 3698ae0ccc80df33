"""
Course statistics generated from survey responses.

One course_statistics row per (year, round, course_name). Unlike the
report emails, these rows normalize 5-point answers onto the 10-point
scale so courses surveyed with different forms stay comparable.
"""

from collections import OrderedDict
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.models import CourseStatistic, QuestionAnswer, Survey, SurveyQuestion, SurveyResponse
from app.services.aggregation import SATISFACTION_CATEGORIES, to_finite

SOURCE_STATUSES = ("completed", "active", "public")
STATUS_LABELS = {
    "completed": "완료",
    "active": "진행 중",
    "public": "진행 중",
}
DEFAULT_STATUS_LABEL = "완료"


def normalize_score(score: float) -> float:
    """Map a 5-point answer onto the 10-point scale."""
    if 0 < score <= 5:
        return score * 2
    return score


def round_two(value: float) -> float:
    return float(Decimal(value).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def average_two(values: List[float]) -> Optional[float]:
    if not values:
        return None
    return round_two(sum(values) / len(values))


def _iso(d) -> str:
    return d.isoformat()[:10] if d else ""


def _scale_scores(db: Session, survey_id: str) -> "tuple[int, Dict[str, List[float]]]":
    """Production response count and normalized scale scores by category."""
    responses = db.query(SurveyResponse.id).filter(
        SurveyResponse.survey_id == survey_id,
        or_(SurveyResponse.is_test.is_(None), SurveyResponse.is_test.is_(False))
    ).all()
    response_ids = [r[0] for r in responses]

    scores: Dict[str, List[float]] = {c: [] for c in SATISFACTION_CATEGORIES}
    if not response_ids:
        return 0, scores

    rows = db.query(QuestionAnswer.answer_value, SurveyQuestion.satisfaction_type).join(
        SurveyQuestion, QuestionAnswer.question_id == SurveyQuestion.id
    ).filter(
        QuestionAnswer.response_id.in_(response_ids),
        SurveyQuestion.question_type == "scale"
    ).all()

    for value, category in rows:
        score = to_finite(value)
        if not score or category not in scores:
            continue
        scores[category].append(normalize_score(score))

    return len(response_ids), scores


def generate_from_surveys(db: Session, year: int) -> int:
    """
    Rebuild course_statistics rows for one education year.

    Args:
        db: Database session
        year: Education year

    Returns:
        Number of course rows written
    """
    surveys = db.query(Survey).filter(
        Survey.education_year == year,
        Survey.status.in_(SOURCE_STATUSES),
        or_(Survey.is_test.is_(None), Survey.is_test.is_(False))
    ).order_by(Survey.education_round, Survey.start_date, Survey.id).all()

    print(f"📈 Generating course statistics for {year}: {len(surveys)} surveys")

    stats: "OrderedDict[tuple, dict]" = OrderedDict()
    for survey in surveys:
        if not survey.course_name:
            continue

        round_no = survey.education_round or 1
        key = (survey.education_year or year, round_no, survey.course_name)
        label = STATUS_LABELS.get(survey.status, DEFAULT_STATUS_LABEL)
        day = survey.education_day or None
        response_count, scores = _scale_scores(db, survey.id)
        headcount = response_count or survey.expected_participants or 0

        stat = stats.get(key)
        if stat is None:
            stat = {
                "year": key[0],
                "round": round_no,
                "course_name": survey.course_name,
                "course_start_date": _iso(survey.start_date),
                "course_end_date": _iso(survey.end_date),
                "course_days": day or 1,
                "education_days": day,
                "education_hours": None,
                "status": label,
                "enrolled_count": headcount,
                "cumulative_count": headcount,
                "scores": {c: [] for c in SATISFACTION_CATEGORIES},
            }
            stats[key] = stat

        if day:
            stat["course_days"] = day
            stat["education_days"] = day
        stat["status"] = label
        if response_count > 0:
            stat["enrolled_count"] = response_count
            stat["cumulative_count"] = max(stat["cumulative_count"], response_count)
        for category, values in scores.items():
            stat["scores"][category].extend(values)

    for stat in stats.values():
        scores = stat.pop("scores")
        stat["instructor_satisfaction"] = average_two(scores["instructor"])
        stat["course_satisfaction"] = average_two(scores["course"])
        stat["operation_satisfaction"] = average_two(scores["operation"])
        present = [
            stat[f"{c}_satisfaction"] for c in SATISFACTION_CATEGORIES
            if stat[f"{c}_satisfaction"] is not None
        ]
        stat["total_satisfaction"] = average_two(present)
        upsert_course_statistic(db, stat)

    db.commit()
    print(f"   ✅ {len(stats)} course statistics upserted")
    return len(stats)


def upsert_course_statistic(db: Session, values: dict) -> CourseStatistic:
    """
    Insert or update one row.

    Upsert logic:
    - Same (year, round, course_name) exists → overwrite its columns
    - Otherwise → insert
    """
    existing = db.query(CourseStatistic).filter(
        CourseStatistic.year == values["year"],
        CourseStatistic.round == values["round"],
        CourseStatistic.course_name == values["course_name"]
    ).first()

    if existing:
        for column, value in values.items():
            setattr(existing, column, value)
        return existing

    stat = CourseStatistic(**values)
    db.add(stat)
    db.flush()
    return stat


def list_course_statistics(db: Session, year: int = None) -> List[CourseStatistic]:
    query = db.query(CourseStatistic)
    if year is not None:
        query = query.filter(CourseStatistic.year == year)
    return query.order_by(
        CourseStatistic.year.desc(),
        CourseStatistic.round,
        CourseStatistic.course_name
    ).all()
