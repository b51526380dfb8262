"""Email utilities for evaluator alerts."""

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import List, Optional

from exam_portal.config import get_settings

logger = logging.getLogger(__name__)


def send_mail(
    recipients: List[str], subject: str, text: str, html: Optional[str] = None
) -> bool:
    """
    Send an email to one or more recipients over SMTP.

    Args:
        recipients: Recipient email addresses
        subject: Subject line
        text: Plain-text body
        html: Optional HTML alternative body

    Returns:
        True if the email was sent, False otherwise (errors are logged, never raised)
    """
    settings = get_settings()
    if not recipients:
        return False
    if not settings.MAIL_ENABLED:
        logger.info("Mail disabled; would send %r to %s", subject, ", ".join(recipients))
        return False

    try:
        msg = MIMEMultipart("alternative")
        msg["From"] = settings.MAIL_SENDER
        msg["To"] = ", ".join(recipients)
        msg["Subject"] = subject
        msg.attach(MIMEText(text, "plain"))
        if html:
            msg.attach(MIMEText(html, "html"))

        server = smtplib.SMTP(settings.SMTP_SERVER, settings.SMTP_PORT)
        try:
            server.starttls()
            if settings.SMTP_USERNAME and settings.SMTP_PASSWORD:
                server.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD.get_secret_value())
            server.sendmail(settings.MAIL_SENDER, recipients, msg.as_string())
        finally:
            server.quit()
        return True
    except Exception:
        logger.exception("Error sending email %r", subject)
        return False
