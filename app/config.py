"""
Runtime configuration loaded from environment variables (.env supported).

Settings are read on every call to get_settings() so a running process
picks up patched environment values (tests rely on this).
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

DEFAULT_FROM_ADDRESS = "onboarding@resend.dev"


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    try:
        return int(value) if value not in (None, "") else default
    except ValueError:
        print(f"⚠️ Invalid integer for {name}: {value!r}, using {default}")
        return default


@dataclass(frozen=True)
class Settings:
    """Mail provider and dispatch settings."""
    resend_api_key: Optional[str]
    from_address: str
    reply_to: Optional[str]
    batch_size: int
    send_delay_ms: int
    include_admin_in_delivery: bool


def get_settings() -> Settings:
    return Settings(
        resend_api_key=os.getenv("RESEND_API_KEY") or None,
        from_address=os.getenv("RESEND_FROM_ADDRESS") or DEFAULT_FROM_ADDRESS,
        reply_to=os.getenv("RESEND_REPLY_TO") or None,
        batch_size=max(1, _env_int("MAIL_BATCH_SIZE", 5)),
        send_delay_ms=max(0, _env_int("MAIL_SEND_DELAY_MS", 0)),
        include_admin_in_delivery=_env_bool("INCLUDE_ADMIN_IN_DELIVERY", False),
    )
