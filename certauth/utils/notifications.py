"""
Email notification utilities.

Outbound mail goes through the SMTP server named by SMTP_HOST. With no
host configured nothing is sent and callers get False back.
"""

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional
from urllib.parse import urlencode

from certauth.core.settings import settings

logger = logging.getLogger(__name__)


def send_email(
    to_email: str | list[str],
    subject: str,
    body: str,
    from_email: Optional[str] = None,
    html_body: Optional[str] = None,
) -> bool:
    """
    Send an email.

    Args:
        to_email: Recipient email address(es)
        subject: Email subject
        body: Plain-text body
        from_email: Sender address (default: FROM_EMAIL)
        html_body: Optional HTML alternative

    Returns:
        True if sent successfully, False otherwise
    """
    if not settings.smtp_host:
        logger.warning(f"SMTP_HOST not set, email not sent: {subject}")
        return False

    from_email = from_email or settings.from_email

    if isinstance(to_email, str):
        recipients = [to_email]
    else:
        recipients = list(to_email)

    recipients = [r for r in recipients if r and r.strip()]

    if not recipients:
        logger.warning("No valid recipients for email")
        return False

    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = from_email
    msg["To"] = ", ".join(recipients)
    msg.attach(MIMEText(body, "plain"))
    if html_body:
        msg.attach(MIMEText(html_body, "html"))

    try:
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port) as smtp:
            if settings.smtp_use_tls:
                smtp.starttls()
            if settings.smtp_user and settings.smtp_password:
                smtp.login(settings.smtp_user, settings.smtp_password)
            smtp.sendmail(from_email, recipients, msg.as_string())

        logger.info(f"Email sent successfully to {recipients}")
        return True

    except smtplib.SMTPException as e:
        logger.error(f"SMTP error sending email: {e}")
        return False
    except OSError as e:
        logger.error(f"Could not reach SMTP server {settings.smtp_host}: {e}")
        return False


def password_reset_link(reset_token: str) -> str:
    return f"{settings.password_reset_url}?{urlencode({'token': reset_token})}"


def send_password_reset_email(to_email: str, reset_token: str) -> bool:
    """Email a password reset link. The token itself is never logged."""
    reset_link = password_reset_link(reset_token)

    body = "\n".join([
        "We received a request to reset your certauth admin password.",
        "",
        "Open the link below to choose a new password:",
        "",
        reset_link,
        "",
        f"The link expires in {settings.password_reset_expire_minutes} minutes "
        "and works once.",
        "Every signed-in session is signed out when the password changes.",
        "",
        "If you did not ask for a reset, ignore this email and your password "
        "stays unchanged.",
    ])

    return send_email(
        to_email=to_email,
        subject="[certauth] Password reset",
        body=body,
    )
