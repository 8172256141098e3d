"""
Transactional email through Resend.
"""

import logging
from typing import Optional, Union

import resend

from appointly.core.config import EMAIL_FROM_ADDRESS, RESEND_API_KEY

logger = logging.getLogger(__name__)

resend.api_key = RESEND_API_KEY


def email_configured() -> bool:
    return bool(RESEND_API_KEY)


def send_email(
    to: Union[str, list[str]],
    subject: str,
    text: str,
    html: Optional[str] = None,
    from_address: Optional[str] = None,
) -> dict:
    """Send one email; blocking, so async callers run it in a worker thread."""
    if not RESEND_API_KEY:
        raise RuntimeError("Email service not configured - RESEND_API_KEY missing")

    recipients = [to] if isinstance(to, str) else to
    email_data = {
        "from": from_address or EMAIL_FROM_ADDRESS,
        "to": recipients,
        "subject": subject,
        "text": text,
    }
    if html:
        email_data["html"] = html

    response = resend.Emails.send(email_data)
    logger.info(f"Email sent via Resend to {recipients}: {response}")
    return response
