"""
Survey results dispatch.

Orchestrates one run:
1. Load survey graph (survey_reader)
2. Resolve recipients (recipient_resolver)
3. Preview → render one representative report and stop
4. Build one EmailJob per recipient (full or instructor-filtered scope)
5. Skip instructors without responses, block repeated addresses
6. Send in bounded concurrent batches
7. Write one audit log row (audit_logger)

Per-recipient problems never abort the run; they are recorded as
outcomes. Only SurveyNotFound / EmptyResponseSet raised while loading
stop a run, and they do so before anything is sent.
"""

import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from app.services import audit_logger
from app.services.aggregation import build_report, question_analysis
from app.services.content_builder import EmailContent, build_email_content
from app.services.errors import MailDeliveryError
from app.services.recipient_resolver import ResolvedRecipient, resolve_recipients
from app.services.survey_reader import SurveyContext, load_survey_context

FULL_SCOPE_ROLES = ("director", "manager", "admin")

PREVIEW_NOTE_FILTERED = "미리보기: 강사님께는 본인의 과목 결과만 전송됩니다."
PREVIEW_NOTE_FULL = "미리보기: 전체 결과가 표시됩니다."
SKIP_REASON = "해당 강사의 세션에 응답이 없음"
DUPLICATE_REASON = "동일 이메일 중복 발송 차단"
UNREGISTERED = "미등록"


class DispatchState(str, Enum):
    """Stage a run has reached."""
    RESOLVING = "resolving"
    PREVIEW_RETURN = "preview_return"
    SENDING = "sending"
    LOGGED = "logged"


class DeliveryStatus(str, Enum):
    """Outcome for one recipient."""
    SENT = "sent"
    FAILED = "failed"  # provider returned an error payload
    ERROR = "error"  # transport failure or exception
    SKIPPED = "skipped"  # filtered scope with zero responses
    DUPLICATE_BLOCKED = "duplicate_blocked"


@dataclass
class DispatchOptions:
    """
    Delivery pacing.

    Defaults send 5 at a time with no pause. batch_size=1 with
    send_delay_ms=600 is the strictly sequential ~2/second mode.
    """
    batch_size: int = 5
    send_delay_ms: int = 0
    include_admin: bool = False

    @classmethod
    def from_settings(cls, settings) -> "DispatchOptions":
        return cls(
            batch_size=settings.batch_size,
            send_delay_ms=settings.send_delay_ms,
            include_admin=settings.include_admin_in_delivery
        )


@dataclass
class EmailJob:
    email: str
    role: Optional[str]
    instructor_id: Optional[str]
    data_scope: str  # full or filtered
    content: Optional[EmailContent] = None


@dataclass
class SendOutcome:
    job: EmailJob
    status: DeliveryStatus
    email_id: Optional[str] = None
    error: Optional[str] = None
    reason: Optional[str] = None

    def to_result(self) -> dict:
        """Entry of the API's results list."""
        result = {
            "to": self.job.email,
            "status": self.status.value,
            "role": self.job.role,
            "dataScope": self.job.data_scope
        }
        if self.email_id:
            result["emailId"] = self.email_id
        if self.error:
            result["error"] = self.error
        return result

    def to_detail(self) -> dict:
        """Entry of the audit log's recipientDetails list."""
        detail = {
            "email": self.job.email,
            "role": self.job.role or "unknown",
            "dataScope": self.job.data_scope,
            "instructorId": self.job.instructor_id,
            "status": self.status.value
        }
        if self.email_id:
            detail["emailId"] = self.email_id
        if self.error:
            detail["error"] = self.error
        if self.reason:
            detail["reason"] = self.reason
        return detail


@dataclass
class PreviewResult:
    subject: str
    html: str
    text: str
    recipients: List[str]
    instructor_id: Optional[str] = None

    @property
    def note(self) -> str:
        return PREVIEW_NOTE_FILTERED if self.instructor_id else PREVIEW_NOTE_FULL


@dataclass
class DispatchResult:
    survey_id: str
    state: DispatchState = DispatchState.RESOLVING
    outcomes: List[SendOutcome] = field(default_factory=list)
    log_id: Optional[int] = None

    @property
    def delivery_outcomes(self) -> List[SendOutcome]:
        return [
            o for o in self.outcomes
            if o.status in (DeliveryStatus.SENT, DeliveryStatus.FAILED, DeliveryStatus.ERROR)
        ]

    @property
    def results(self) -> List[dict]:
        return [o.to_result() for o in self.delivery_outcomes]

    @property
    def recipient_details(self) -> List[dict]:
        return [o.to_detail() for o in self.outcomes]

    @property
    def sent_count(self) -> int:
        return sum(1 for o in self.outcomes if o.status == DeliveryStatus.SENT)


# ============ JOBS ============

def build_job(recipient: ResolvedRecipient) -> EmailJob:
    """Directors, managers and admins get the full report; everyone else their own."""
    if recipient.role in FULL_SCOPE_ROLES:
        return EmailJob(email=recipient.email, role=recipient.role, instructor_id=None, data_scope="full")
    return EmailJob(
        email=recipient.email,
        role=recipient.role,
        instructor_id=recipient.instructor_id,
        data_scope="filtered"
    )


def build_jobs(recipients: Iterable[ResolvedRecipient]) -> List[EmailJob]:
    return [build_job(r) for r in recipients]


class ContentCache:
    """Renders each scope once per run."""

    def __init__(self, context: SurveyContext, report_date: Optional[date] = None):
        self.context = context
        self.report_date = report_date
        self._cache: Dict[Optional[str], EmailContent] = {}

    def get(self, instructor_id: Optional[str]) -> EmailContent:
        if instructor_id not in self._cache:
            report = build_report(self.context, instructor_id)
            self._cache[instructor_id] = build_email_content(
                self.context.survey,
                self.context.instructor_names,
                report,
                self.report_date
            )
        return self._cache[instructor_id]


# ============ DELIVERY ============

def send_one(mailer, job: EmailJob) -> SendOutcome:
    """Send one job; every failure becomes an outcome."""
    print(
        f"[SENDING] {job.email} (role: {job.role or 'unknown'}, scope: {job.data_scope}, "
        f"instructorId: {job.instructor_id or 'none'})"
    )
    try:
        res = mailer.send_email(
            to=job.email,
            subject=job.content.subject,
            html=job.content.html,
            text=job.content.text
        )
    except MailDeliveryError as e:
        print(f"[EXCEPTION] {job.email}: {e}")
        return SendOutcome(job=job, status=DeliveryStatus.ERROR, error=str(e))
    except Exception as e:
        print(f"[EXCEPTION] {job.email}: {e!r}")
        return SendOutcome(job=job, status=DeliveryStatus.ERROR, error=str(e) or repr(e))

    if res.error:
        print(f"[FAILED] {job.email}: {res.error}")
        return SendOutcome(job=job, status=DeliveryStatus.FAILED, error=res.error)

    print(f"[SUCCESS] {job.email}, ID: {res.email_id}")
    return SendOutcome(job=job, status=DeliveryStatus.SENT, email_id=res.email_id)


def send_batches(
    mailer,
    jobs: List[EmailJob],
    batch_size: int = 5,
    send_delay_ms: int = 0,
    sleep: Callable[[float], None] = time.sleep
) -> List[SendOutcome]:
    """
    Send jobs in fixed-size batches.

    Jobs inside a batch run concurrently; the next batch starts only
    after the whole batch has finished (plus send_delay_ms). Outcomes
    come back in job order.
    """
    batch_size = max(1, batch_size)
    outcomes: List[SendOutcome] = []

    for start in range(0, len(jobs), batch_size):
        batch = jobs[start:start + batch_size]
        if len(batch) == 1:
            outcomes.append(send_one(mailer, batch[0]))
        else:
            with ThreadPoolExecutor(max_workers=len(batch)) as pool:
                outcomes.extend(pool.map(lambda j: send_one(mailer, j), batch))

        if send_delay_ms and start + batch_size < len(jobs):
            sleep(send_delay_ms / 1000)

    return outcomes


# ============ RUN ============

def preview(
    context: SurveyContext,
    recipients: List[ResolvedRecipient],
    report_date: Optional[date] = None
) -> PreviewResult:
    """
    Render the report the first instructor-scoped recipient would get,
    or the full report when nobody is instructor-scoped.
    """
    instructor_id = None
    for job in build_jobs(recipients):
        if job.data_scope == "filtered" and job.instructor_id:
            instructor_id = job.instructor_id
            break

    content = ContentCache(context, report_date).get(instructor_id)
    return PreviewResult(
        subject=content.subject,
        html=content.html,
        text=content.text,
        recipients=[r.email for r in recipients],
        instructor_id=instructor_id
    )


def survey_info_snapshot(context: SurveyContext) -> dict:
    survey = context.survey
    return {
        "year": survey.education_year,
        "round": survey.education_round,
        "title": survey.title or survey.course_name,
        "course": survey.course_name,
        "instructor": ", ".join(context.instructor_names) or UNREGISTERED,
        "author_name": survey.created_by_name or "Unknown",
        "author_email": survey.created_by_email or "Unknown",
        "response_count": len(context.responses)
    }


def deliver(
    db: Session,
    context: SurveyContext,
    recipients: List[ResolvedRecipient],
    mailer,
    options: DispatchOptions,
    report_date: Optional[date] = None,
    sleep: Callable[[float], None] = time.sleep
) -> DispatchResult:
    """Send one report per recipient and write the audit log row."""
    result = DispatchResult(survey_id=context.survey.id, state=DispatchState.SENDING)
    contents = ContentCache(context, report_date)

    slots: List[Optional[SendOutcome]] = []
    to_send: List[EmailJob] = []
    seen = set()

    for job in build_jobs(recipients):
        if job.email in seen:
            print(f"[DUPLICATE BLOCKED] Skipping duplicate email to {job.email}")
            slots.append(SendOutcome(job=job, status=DeliveryStatus.DUPLICATE_BLOCKED, reason=DUPLICATE_REASON))
            continue
        seen.add(job.email)

        if job.data_scope == "filtered" and job.instructor_id:
            if context.instructor_response_count(job.instructor_id) == 0:
                print(
                    f"[SKIP] {job.email}: No responses for instructor {job.instructor_id} "
                    f"(0 out of {len(context.responses)} total responses)"
                )
                slots.append(SendOutcome(job=job, status=DeliveryStatus.SKIPPED, reason=SKIP_REASON))
                continue

        job.content = contents.get(job.instructor_id)
        slots.append(None)
        to_send.append(job)

    sent = iter(send_batches(mailer, to_send, options.batch_size, options.send_delay_ms, sleep))
    result.outcomes = [slot if slot is not None else next(sent) for slot in slots]

    entry = audit_logger.build_log_entry(
        survey_id=context.survey.id,
        email_results=result.results,
        recipient_details=result.recipient_details,
        survey_info=survey_info_snapshot(context),
        question_analysis=question_analysis(context),
        metadata={"batch_size": options.batch_size, "send_delay_ms": options.send_delay_ms}
    )
    log = audit_logger.write_email_log(db, entry)
    result.log_id = log.id if log else None
    result.state = DispatchState.LOGGED
    return result


def run_dispatch(
    db: Session,
    survey_id: str,
    recipients: Iterable,
    mailer=None,
    options: Optional[DispatchOptions] = None,
    target_instructor_ids: Optional[Iterable[str]] = None,
    preview_only: bool = False,
    report_date: Optional[date] = None,
    sleep: Callable[[float], None] = time.sleep
):
    """
    Run a dispatch (or preview) for one survey.

    Args:
        db: Database session
        survey_id: Survey to report on
        recipients: Role tokens and/or email addresses
        mailer: Object with send_email(to, subject, html, text) -> SendResult
        options: Batch size, pacing and admin policy
        target_instructor_ids: Narrow the "instructor" token to these ids
        preview_only: Render once and return without sending or logging
        report_date: Date printed in the report (defaults to today)

    Returns:
        PreviewResult in preview mode, DispatchResult otherwise

    Raises:
        SurveyNotFound, EmptyResponseSet: before any mail is sent
    """
    options = options or DispatchOptions()
    context = load_survey_context(db, survey_id)

    resolved = resolve_recipients(
        db,
        recipients,
        context.instructors,
        target_instructor_ids=target_instructor_ids,
        include_admin=options.include_admin
    )

    if preview_only:
        return preview(context, resolved, report_date)

    return deliver(db, context, resolved, mailer, options, report_date, sleep)
