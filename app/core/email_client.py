# app/core/email_client.py
"""
SMTP client for transactional email.

Configuration comes from Settings (SMTP_*). Two connection modes:

  * SSL:      SMTP_PORT=465, SMTP_USE_SSL=true,  SMTP_USE_TLS=false
  * STARTTLS: SMTP_PORT=587, SMTP_USE_SSL=false, SMTP_USE_TLS=true

`send_email` raises when SMTP is not configured or the server rejects the
message; callers that treat email as best-effort catch `EMAIL_ERRORS`.
"""
import logging
import smtplib
from email.message import EmailMessage

from app.core.config import Settings, get_settings

logger = logging.getLogger(__name__)

EMAIL_ERRORS = (RuntimeError, smtplib.SMTPException, OSError)


def is_configured(settings: Settings | None = None) -> bool:
    settings = settings or get_settings()
    return bool(settings.SMTP_HOST and settings.SMTP_USERNAME and settings.SMTP_PASSWORD)


def _connect(settings: Settings) -> smtplib.SMTP:
    if settings.SMTP_USE_SSL:
        return smtplib.SMTP_SSL(settings.SMTP_HOST, settings.SMTP_PORT, timeout=30)

    server = smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=30)
    if settings.SMTP_USE_TLS:
        server.starttls()
    return server


def build_message(
    to_email: str,
    subject: str,
    text_body: str,
    html_body: str | None = None,
    settings: Settings | None = None,
) -> EmailMessage:
    settings = settings or get_settings()
    sender = settings.SMTP_FROM_EMAIL or settings.SMTP_USERNAME or ""

    msg = EmailMessage()
    msg["From"] = f"{settings.SMTP_FROM_NAME} <{sender}>" if sender else settings.SMTP_FROM_NAME
    msg["To"] = to_email
    msg["Subject"] = subject
    msg.set_content(text_body)
    if html_body:
        msg.add_alternative(html_body, subtype="html")
    return msg


def send_email(
    to_email: str,
    subject: str,
    text_body: str,
    html_body: str | None = None,
) -> None:
    """
    Send one message to a single recipient.

    Raises:
        RuntimeError: SMTP_HOST / SMTP_USERNAME / SMTP_PASSWORD missing.
        smtplib.SMTPException, OSError: connection or delivery failure.
    """
    settings = get_settings()
    if not is_configured(settings):
        raise RuntimeError(
            "SMTP is not configured. Set SMTP_HOST, SMTP_USERNAME and SMTP_PASSWORD."
        )

    msg = build_message(to_email, subject, text_body, html_body, settings)

    server = _connect(settings)
    try:
        server.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
        server.send_message(msg)
    finally:
        try:
            server.quit()
        except smtplib.SMTPException:
            logger.debug("SMTP quit failed; connection already closed")
    logger.info("Sent email %r to %s", subject, to_email)
