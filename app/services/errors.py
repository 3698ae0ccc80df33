"""
Errors that abort a survey result run before anything is sent.

Everything after recipient resolution degrades per recipient instead of
raising (see dispatch.py and audit_logger.py).
"""

EMPTY_RESPONSES_MESSAGE = "응답이 없는 설문입니다. 이메일을 발송하지 않습니다."


class SurveyReportError(Exception):
    """Base class for fatal run errors. status_code maps to the HTTP reply."""
    status_code = 500


class SurveyNotFound(SurveyReportError):
    """The requested survey id does not exist."""

    def __init__(self, survey_id: str):
        super().__init__("Survey not found")
        self.survey_id = survey_id


class EmptyResponseSet(SurveyReportError):
    """The survey has no production (non-test) responses."""
    status_code = 400

    def __init__(self, survey_id: str):
        super().__init__(EMPTY_RESPONSES_MESSAGE)
        self.survey_id = survey_id


class ConfigurationError(SurveyReportError):
    """Mail provider credentials are missing."""


class MailDeliveryError(Exception):
    """Transport-level failure talking to the mail provider."""
