"""
Email notifications through the Resend HTTP API.

Senders raise on failure; dispatch() is the non-fatal wrapper the rest of
the package uses so that a mail outage never fails an issuance or unlock.
"""

from datetime import datetime
from typing import Any, Callable, Dict, Mapping, Optional

import requests

from .config import Settings, get_settings
from .constants import INDIVIDUAL
from .errors import NotificationError
from .logger import get_logger
from .retry import exponential_backoff

logger = get_logger()

RESEND_ENDPOINT = "https://api.resend.com/emails"


@exponential_backoff(
    max_retries=2,
    base_delay=1.0,
    exceptions=(requests.exceptions.Timeout, requests.exceptions.ConnectionError),
)
def _post_email(api_key: str, message: Dict[str, Any]) -> Dict[str, Any]:
    resp = requests.post(
        RESEND_ENDPOINT,
        headers={"Authorization": f"Bearer {api_key}"},
        json=message,
        timeout=15,
    )
    resp.raise_for_status()
    return resp.json()


def send_email(to: str, subject: str, text: str, html: Optional[str] = None,
               settings: Optional[Settings] = None) -> Dict[str, Any]:
    """
    Send one message.

    Raises:
        NotificationError: If mail is not configured
        RetryError / requests.exceptions.RequestException: On delivery failure
    """
    settings = settings or get_settings()
    if not settings.resend_api_key or not settings.from_email:
        raise NotificationError("RESEND_API_KEY and FROM_EMAIL must be configured to send email")

    message = {"from": settings.from_email, "to": [to], "subject": subject, "text": text}
    if html:
        message["html"] = html
    return _post_email(settings.resend_api_key, message)


def _format_date(value: Any) -> str:
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    return value.strftime("%B %d, %Y").replace(" 0", " ")


def access_token_subject(grant_type: str, institution: Optional[str]) -> str:
    if grant_type != INDIVIDUAL and institution:
        return f"Your {institution} Career Assessment Access"
    return "Your Career Assessment Access Token"


def access_token_text(grant: Mapping[str, Any], settings: Settings) -> str:
    greeting = f"Hi {grant['name']}" if grant.get("name") else "Hello"
    usage = (
        "This token can be used once."
        if grant["type"] == INDIVIDUAL
        else f"This token can be used {grant['maxUsage']} times."
    )
    lines = [f"{greeting},", ""]
    if grant.get("institution"):
        lines += [f"This token has been issued by {grant['institution']} for career assessment access.", ""]
    lines += [
        f"Your access token: {grant['token']}",
        f"Usage limit: {grant['maxUsage']}",
        f"Expires: {_format_date(grant['expiresAt'])}",
        "",
        f"Important: keep this token secure. {usage}",
    ]
    if settings.assessment_url:
        lines += ["", f"View your results: {settings.assessment_url}?token={grant['token']}"]
    if settings.support_email:
        lines += ["", f"Questions? Contact {settings.support_email}"]
    return "\n".join(lines)


def send_access_token(grant: Mapping[str, Any], settings: Optional[Settings] = None) -> Dict[str, Any]:
    """Email a newly issued token to its owner. `grant` is the dict from grants.issue_grant."""
    settings = settings or get_settings()
    logger.info("Sending access token email", type=grant["type"], to=grant["email"])
    return send_email(
        grant["email"],
        access_token_subject(grant["type"], grant.get("institution")),
        access_token_text(grant, settings),
        settings=settings,
    )


def send_result_unlocked(
    to: str,
    student_name: str,
    career_code: str,
    tier: str,
    session_token: str,
    settings: Optional[Settings] = None,
) -> Dict[str, Any]:
    """Tell a student their result is unlocked."""
    settings = settings or get_settings()
    lines = [
        f"Hi {student_name},",
        "",
        "Your career assessment result has been unlocked.",
        f"Career code: {career_code}",
        f"Tier: {tier}",
    ]
    if settings.assessment_url:
        lines += ["", f"View it again at {settings.assessment_url}?session={session_token}"]
    return send_email(to, "Your Career Assessment Result", "\n".join(lines), settings=settings)


def dispatch(send: Callable[..., Any], *args, **kwargs) -> bool:
    """
    Run a sender, logging and counting failures instead of raising.

    Returns:
        True if the message was accepted by the provider
    """
    try:
        send(*args, **kwargs)
    except Exception as e:
        logger.record_notification_failure(type(e).__name__)
        logger.error("Notification failed", sender=getattr(send, "__name__", str(send)), error=str(e))
        return False
    return True
