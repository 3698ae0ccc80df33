"""
Survey results dispatch endpoint.

POST /send-survey-results
- previewOnly=true: render the representative report, send nothing
- otherwise: send one report per resolved recipient and log the run
"""

from typing import Callable, List, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.config import get_settings
from app.database import get_db
from app.services.dispatch import DispatchOptions, PreviewResult, run_dispatch
from app.services.errors import ConfigurationError, EmptyResponseSet, SurveyReportError
from app.services.mail_service import get_mailer_factory


router = APIRouter(tags=["Survey Results"])


# ============ Request Schema ============

class SendResultsRequest(BaseModel):
    """Request body (camelCase, as sent by the dashboard)."""
    surveyId: str
    recipients: List[str] = Field(default_factory=list)
    force: bool = False  # accepted, has no effect
    previewOnly: bool = False
    targetInstructorIds: Optional[List[str]] = None


def _error(status_code: int, message: str, **extra) -> JSONResponse:
    content = {"success": False, "error": message}
    content.update(extra)
    return JSONResponse(status_code=status_code, content=content)


@router.post("/send-survey-results")
def send_survey_results(
    request: SendResultsRequest,
    db: Session = Depends(get_db),
    mailer_factory: Callable = Depends(get_mailer_factory)
):
    """
    Send (or preview) the results report of one survey.

    **Request Body:**
    ```json
    {"surveyId": "...", "recipients": ["director", "kim@example.com"], "previewOnly": false}
    ```

    **Responses:**
    - 200 preview: `{success, subject, htmlContent, recipients, previewNote}`
    - 200 send: `{success, sentCount, results, recipientDetails}`
    - 400: survey has no production responses
    - 500: missing RESEND_API_KEY, unknown survey, unexpected failure
    """
    settings = get_settings()
    if not settings.resend_api_key:
        return _error(500, "RESEND_API_KEY not configured")

    print(f"\n📨 send-survey-results: survey={request.surveyId} preview={request.previewOnly}")

    try:
        mailer = None if request.previewOnly else mailer_factory(settings)
        result = run_dispatch(
            db,
            request.surveyId,
            request.recipients,
            mailer=mailer,
            options=DispatchOptions.from_settings(settings),
            target_instructor_ids=request.targetInstructorIds,
            preview_only=request.previewOnly
        )
    except EmptyResponseSet as e:
        print(f"   ⚠️ {e}")
        return _error(e.status_code, str(e), responseCount=0)
    except (SurveyReportError, ConfigurationError) as e:
        print(f"   ❌ {e}")
        return _error(e.status_code, str(e))
    except Exception as e:
        print(f"   ❌ Unexpected error: {e!r}")
        return _error(500, str(e) or "Internal error")

    if isinstance(result, PreviewResult):
        return {
            "success": True,
            "subject": result.subject,
            "htmlContent": result.html,
            "recipients": result.recipients,
            "previewNote": result.note
        }

    print(f"   ✅ {result.sent_count} sent, log id {result.log_id}")
    return {
        "success": True,
        "sentCount": result.sent_count,
        "results": result.results,
        "recipientDetails": result.recipient_details
    }
