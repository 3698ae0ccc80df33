from datetime import date

import pytest

from app.models import EmailLog, Instructor, Profile, Survey, SurveySession, UserRole
from app.services.content_builder import EmailContent
from app.services.dispatch import (
    DispatchOptions, DispatchResult, EmailJob, PreviewResult, deliver, send_batches, run_dispatch
)
from app.services.errors import EmptyResponseSet, MailDeliveryError, SurveyNotFound
from app.services.recipient_resolver import ResolvedRecipient
from app.services.survey_reader import load_survey_context

from conftest import FakeMailer

REPORT_DATE = date(2025, 3, 7)


def dispatch(db, mailer, recipients, **kwargs):
    return run_dispatch(db, "S1", recipients, mailer=mailer, report_date=REPORT_DATE, **kwargs)


def test_end_to_end_director_and_instructors(db, seeded, mailer):
    result = dispatch(db, mailer, ["director", "instructor"])

    assert isinstance(result, DispatchResult)
    assert result.sent_count == 3
    assert [r["status"] for r in result.results] == ["sent", "sent", "sent"]

    director = mailer.sent_to("director@example.com")[0]
    assert "강사 만족도: 7.5점" in director["text"]
    assert "총 응답자: 10명" in director["text"]

    kim = mailer.sent_to("kim@example.com")[0]
    assert "평균: 8.5점 (6명)" in kim["text"]
    assert "총 응답자: 6명" in kim["text"]
    assert "low-satisfaction" not in kim["html"]

    lee = mailer.sent_to("lee@example.com")[0]
    assert "평균: 6.0점 (4명)" in lee["text"]
    assert "low-satisfaction" in lee["html"]

    log = db.query(EmailLog).one()
    assert log.id == result.log_id
    assert log.status == "success"
    assert log.sent_count == 3
    assert log.failed_count == 0
    assert log.results["statistics"]["by_scope"] == {"full": 1, "filtered": 2}
    assert log.results["survey_info"]["instructor"] == "Kim, Lee"
    assert log.results["survey_info"]["response_count"] == 10
    assert log.results["question_analysis"]["q-a"]["stats"]["average"] == 8.5


def test_recipient_details_shape(db, seeded, mailer):
    result = dispatch(db, mailer, ["director", "instructor"])

    details = {d["email"]: d for d in result.recipient_details}
    assert details["director@example.com"]["dataScope"] == "full"
    assert details["director@example.com"]["instructorId"] is None
    assert details["kim@example.com"]["dataScope"] == "filtered"
    assert details["kim@example.com"]["instructorId"] == "inst-kim"
    assert details["kim@example.com"]["emailId"].startswith("msg-")


def test_instructor_without_responses_is_skipped(db, seeded, mailer):
    db.add(Instructor(id="inst-choi", name="Choi", email="choi@example.com"))
    db.add(SurveySession(id="sess-c", survey_id="S1", session_name="특강", session_order=3, instructor_id="inst-choi"))
    db.commit()

    result = dispatch(db, mailer, ["instructor"])

    assert mailer.sent_to("choi@example.com") == []
    choi = next(d for d in result.recipient_details if d["email"] == "choi@example.com")
    assert choi["status"] == "skipped"
    assert "choi@example.com" not in [r["to"] for r in result.results]

    log = db.query(EmailLog).one()
    assert log.results["statistics"]["skipped"] == 1
    assert log.sent_count == 2


def test_unknown_literal_gets_full_report_as_filtered(db, seeded, mailer):
    result = dispatch(db, mailer, ["guest@example.com"])

    assert result.recipient_details[0]["dataScope"] == "filtered"
    assert result.recipient_details[0]["role"] == "unknown"
    assert "총 응답자: 10명" in mailer.sent[0]["text"]


def test_partial_failure_is_recorded(db, seeded):
    mailer = FakeMailer(reject={"lee@example.com"}, explode={"kim@example.com"})

    result = dispatch(db, mailer, ["director", "instructor"])

    statuses = {r["to"]: r["status"] for r in result.results}
    assert statuses == {
        "director@example.com": "sent",
        "kim@example.com": "error",
        "lee@example.com": "failed",
    }
    assert result.sent_count == 1

    log = db.query(EmailLog).one()
    assert log.status == "partial"
    assert log.failed_count == 2


def test_all_failed_run_status(db, seeded):
    mailer = FakeMailer(reject={"director@example.com"})
    dispatch(db, mailer, ["director"])
    assert db.query(EmailLog).one().status == "failed"


def test_preview_sends_and_logs_nothing(db, seeded, mailer):
    result = dispatch(db, mailer, ["director", "instructor"], preview_only=True)

    assert isinstance(result, PreviewResult)
    assert result.instructor_id == "inst-kim"
    assert result.note == "미리보기: 강사님께는 본인의 과목 결과만 전송됩니다."
    assert result.recipients == ["director@example.com", "kim@example.com", "lee@example.com"]
    assert "8.5점" in result.html
    assert mailer.sent == []
    assert db.query(EmailLog).count() == 0


def test_preview_full_scope_note(db, seeded):
    result = run_dispatch(db, "S1", ["director"], preview_only=True)
    assert result.instructor_id is None
    assert result.note == "미리보기: 전체 결과가 표시됩니다."


def test_empty_survey_raises_before_sending(db, seeded, mailer):
    db.add(Survey(id="S2", title="빈 설문"))
    db.commit()

    with pytest.raises(EmptyResponseSet):
        run_dispatch(db, "S2", ["director"], mailer=mailer)
    assert mailer.sent == []


def test_missing_survey(db, mailer):
    with pytest.raises(SurveyNotFound):
        run_dispatch(db, "nope", ["director"], mailer=mailer)


def test_audit_failure_does_not_change_result(db, seeded, mailer, monkeypatch):
    def failing_commit():
        raise RuntimeError("disk full")

    monkeypatch.setattr(db, "commit", failing_commit)

    result = dispatch(db, mailer, ["director", "instructor"])

    assert result.sent_count == 3
    assert result.log_id is None


def test_batches_are_bounded():
    mailer = FakeMailer(delay=0.02)
    jobs = [EmailJob(email=f"u{i}@example.com", role=None, instructor_id=None, data_scope="full") for i in range(12)]
    for job in jobs:
        job.content = EmailContent(subject="s", html="h", text="t")

    pauses = []
    outcomes = send_batches(mailer, jobs, batch_size=5, send_delay_ms=600, sleep=pauses.append)

    assert [o.job.email for o in outcomes] == [j.email for j in jobs]
    assert mailer.max_active <= 5
    assert len(mailer.sent) == 12
    assert pauses == [0.6, 0.6]


def test_sequential_mode():
    mailer = FakeMailer()
    jobs = [EmailJob(email=f"u{i}@example.com", role=None, instructor_id=None, data_scope="full") for i in range(3)]
    for job in jobs:
        job.content = EmailContent(subject="s", html="h", text="t")

    pauses = []
    send_batches(mailer, jobs, batch_size=1, send_delay_ms=600, sleep=pauses.append)

    assert mailer.max_active == 1
    assert pauses == [0.6, 0.6]


def test_transport_error_becomes_error_outcome():
    class Unreachable:
        def send_email(self, to, subject, html, text=None):
            raise MailDeliveryError("timed out")

    job = EmailJob(email="a@example.com", role="director", instructor_id=None, data_scope="full")
    job.content = EmailContent(subject="s", html="h", text="t")

    outcome = send_batches(Unreachable(), [job])[0]

    assert outcome.status.value == "error"
    assert outcome.error == "timed out"


def test_options_from_settings():
    class S:
        batch_size = 1
        send_delay_ms = 600
        include_admin_in_delivery = True

    options = DispatchOptions.from_settings(S())
    assert (options.batch_size, options.send_delay_ms, options.include_admin) == (1, 600, True)


def test_instructor_who_is_director_gets_full_report(db, seeded, mailer):
    db.add(Profile(id="u-kim", email="kim@example.com"))
    db.add(UserRole(user_id="u-kim", role="director"))
    db.commit()

    result = dispatch(db, mailer, ["instructor"])

    kim = next(d for d in result.recipient_details if d["email"] == "kim@example.com")
    assert kim["role"] == "director"
    assert kim["dataScope"] == "full"
    assert kim["instructorId"] is None
    assert "총 응답자: 10명" in mailer.sent_to("kim@example.com")[0]["text"]


def test_repeated_address_is_blocked(db, seeded, mailer):
    context = load_survey_context(db, "S1")
    recipients = [
        ResolvedRecipient(email="kim@example.com", role="instructor", instructor_id="inst-kim"),
        ResolvedRecipient(email="kim@example.com", role="director"),
    ]

    result = deliver(db, context, recipients, mailer, DispatchOptions(), REPORT_DATE)

    assert len(mailer.sent_to("kim@example.com")) == 1
    assert [d["status"] for d in result.recipient_details] == ["sent", "duplicate_blocked"]
    assert [r["status"] for r in result.results] == ["sent"]

    log = db.query(EmailLog).one()
    assert log.results["statistics"]["duplicate_blocked"] == 1
    assert log.results["statistics"]["by_role"]["director"]["duplicate_blocked"] == 1
