"""
Email content rendering for survey result reports.

build_email_content turns one SurveyReport into a subject / HTML /
plaintext triple. It does no I/O besides loading the Jinja2 templates
shipped in app/templates.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from pathlib import Path
from typing import List, Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from app.services.aggregation import (
    SurveyReport, QuestionRow, UNNAMED_SESSION, UNREGISTERED_INSTRUCTOR
)
from app.services.survey_reader import SurveyInfo

TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"

SUBJECT_TEMPLATE = "📊 설문 결과 발송: {title}"
FOOTER_TITLE = "BS Education Feedback System"
SYSTEM_URL = "https://sseducationfeedback.info"
UNASSIGNED_INSTRUCTOR = "강사 미정"

# Session header colors
HEADER_NORMAL = ("#4f46e5", "#3730a3")
HEADER_LOW = ("#b91c1c", "#991b1b")

_env = Environment(
    loader=FileSystemLoader(str(TEMPLATES_DIR)),
    autoescape=select_autoescape(enabled_extensions=("html",), default_for_string=False),
    keep_trailing_newline=True
)


@dataclass
class EmailContent:
    subject: str
    html: str
    text: str


def format_score(value: float) -> str:
    return f"{value:.1f}"


def _percent(count: int, total: int) -> "tuple[str, int]":
    """Percentage with one decimal, plus the rounded bar width."""
    if total <= 0:
        return "0.0", 0
    pct = Decimal(count) * 100 / Decimal(total)
    label = pct.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)
    bar = int(pct.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return f"{label}", bar


def build_subject(survey: SurveyInfo) -> str:
    return SUBJECT_TEMPLATE.format(title=survey.display_title or "설문")


def _question_view(row: QuestionRow, number: int) -> dict:
    view = {"number": number, "text": row.question, "kind": "empty"}

    if row.average is not None:
        view.update(kind="numeric", average=format_score(row.average), count=row.count)
    elif row.distribution is not None:
        total = sum(row.distribution.values())
        options = []
        for label, count in row.distribution.items():
            percentage, bar = _percent(count, total)
            options.append({"label": label, "count": count, "percentage": percentage, "bar": bar})
        view.update(kind="choice", options=options)
    elif row.answers:
        view.update(kind="text", answers=[str(a) for a in row.answers])

    return view


def group_sections(report: SurveyReport) -> List[dict]:
    """
    Group question rows by session in first-appearance order.

    Each session gets exactly one header, placed before its first
    question. Questions without a session form header-less sections.
    Questions are numbered in rendered order.
    """
    sections: List[dict] = []
    by_session = {}

    for row in report.questions:
        question = _question_view(row, 0)

        if not row.session_id:
            if sections and sections[-1]["header"] is None:
                sections[-1]["questions"].append(question)
            else:
                sections.append({"header": None, "questions": [question]})
            continue

        section = by_session.get(row.session_id)
        if section is None:
            sat = report.sessions.get(row.session_id)
            is_low = bool(sat and sat.is_low)
            background, border = HEADER_LOW if is_low else HEADER_NORMAL
            section = {
                "header": {
                    "session_id": row.session_id,
                    "session_name": row.session_name or UNNAMED_SESSION,
                    "instructor_name": row.instructor or UNASSIGNED_INSTRUCTOR,
                    "satisfaction": format_score(sat.average) if sat else None,
                    "is_low": is_low,
                    "background": background,
                    "border": border,
                    "response_count": report.session_response_counts.get(row.session_id, 0)
                },
                "questions": []
            }
            by_session[row.session_id] = section
            sections.append(section)
        section["questions"].append(question)

    number = 0
    for section in sections:
        for question in section["questions"]:
            number += 1
            question["number"] = number

    return sections


def _cards(report: SurveyReport) -> List[dict]:
    cards = []
    if report.satisfaction.get("instructor") is not None:
        cards.append({"label": "강사 만족도", "value": report.satisfaction["instructor"], "color": "#6366f1"})
    if report.satisfaction.get("course") is not None:
        cards.append({"label": "과정 만족도", "value": report.satisfaction["course"], "color": "#10b981"})
    return cards


def build_email_content(
    survey: SurveyInfo,
    instructor_names: List[str],
    report: SurveyReport,
    report_date: Optional[date] = None
) -> EmailContent:
    """
    Render the report email.

    Args:
        survey: Survey metadata snapshot
        instructor_names: Names shown in the summary box
        report: Aggregated data for the recipient's scope
        report_date: Date printed as 작성일 (defaults to today)

    Returns:
        EmailContent with subject, html and text
    """
    report_date = report_date or date.today()
    context = {
        "survey": survey,
        "instructor_names": ", ".join(n for n in instructor_names if n) or UNREGISTERED_INSTRUCTOR,
        "report_date": f"{report_date.year}. {report_date.month}. {report_date.day}.",
        "response_count": report.response_count,
        "cards": _cards(report),
        "sections": group_sections(report),
        "footer_title": FOOTER_TITLE,
        "system_url": SYSTEM_URL
    }

    return EmailContent(
        subject=build_subject(survey),
        html=_env.get_template("survey_results.html").render(context),
        text=_env.get_template("survey_results.txt").render(context)
    )
