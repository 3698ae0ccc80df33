"""
Resend transactional email client.

send_email returns a SendResult carrying either the provider message id
or the provider's error payload. Transport failures raise
MailDeliveryError so the caller can tell "rejected" from "unreachable".
"""

from dataclasses import dataclass
from typing import Optional

import requests

from app.config import Settings, get_settings
from app.services.errors import ConfigurationError, MailDeliveryError

RESEND_API_URL = "https://api.resend.com/emails"
REQUEST_TIMEOUT = 30  # seconds


@dataclass
class SendResult:
    email_id: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ResendClient:
    """Thin wrapper over the Resend HTTP API."""

    def __init__(self, api_key: str, from_address: str, reply_to: Optional[str] = None):
        if not api_key:
            raise ConfigurationError("RESEND_API_KEY not configured")
        self.api_key = api_key
        self.from_address = from_address
        self.reply_to = reply_to

    @classmethod
    def from_settings(cls, settings: Settings) -> "ResendClient":
        return cls(
            api_key=settings.resend_api_key,
            from_address=settings.from_address,
            reply_to=settings.reply_to
        )

    def send_email(self, to: str, subject: str, html: str, text: Optional[str] = None) -> SendResult:
        """
        Send one email.

        Args:
            to: Recipient address
            subject: Subject line
            html: HTML body
            text: Optional plaintext body

        Returns:
            SendResult with email_id on success or error on rejection

        Raises:
            MailDeliveryError: network/transport failure
        """
        payload = {
            "from": self.from_address,
            "to": [to],
            "subject": subject,
            "html": html
        }
        if text:
            payload["text"] = text
        if self.reply_to:
            payload["reply_to"] = self.reply_to

        try:
            response = requests.post(
                RESEND_API_URL,
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=REQUEST_TIMEOUT
            )
        except requests.RequestException as e:
            raise MailDeliveryError(str(e)) from e

        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.status_code >= 400 or body.get("error"):
            error = body.get("error") or body
            if isinstance(error, dict):
                message = error.get("message") or f"HTTP {response.status_code}"
            else:
                message = str(error) if error else f"HTTP {response.status_code}"
            return SendResult(error=message)

        return SendResult(email_id=body.get("id"))


def get_mailer_factory():
    """
    FastAPI dependency returning the mail client constructor.

    The endpoint builds the client only after its own configuration
    check, so a missing key surfaces as a clean 500.
    """
    return ResendClient.from_settings


def get_mail_client() -> ResendClient:
    """
    Build a client from the current environment.

    Raises:
        ConfigurationError: RESEND_API_KEY is missing
    """
    return ResendClient.from_settings(get_settings())
