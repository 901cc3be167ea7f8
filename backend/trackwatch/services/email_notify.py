"""
Send notification emails via SMTP (Google Gmail or other).
Set SMTP_USER, SMTP_PASSWORD (and optionally NOTIFY_FROM) in .env. Use a Gmail App Password.
"""
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import make_msgid
from html import escape

from trackwatch.config import settings
from trackwatch.core.errors import InvalidInputError, MissingCredentialsError

logger = logging.getLogger(__name__)


def _from_address() -> str:
    if (settings.notify_from or "").strip():
        return settings.notify_from.strip()
    user = (settings.smtp_user or "").strip()
    if user:
        return f"Trackwatch <{user}>"
    return "Trackwatch <noreply@localhost>"


def is_configured() -> bool:
    return bool((settings.smtp_user or "").strip() and (settings.smtp_password or "").strip())


def send_email(to_email: str, subject: str, text: str) -> str:
    """
    Send one plain-text email (with an HTML <pre> alternative). Returns the Message-ID.
    Raises MissingCredentialsError when SMTP is not configured; SMTP errors propagate.
    """
    to_email = (to_email or "").strip()
    if not to_email:
        raise InvalidInputError("Recipient email is empty")
    if not is_configured():
        raise MissingCredentialsError("SMTP_USER or SMTP_PASSWORD not set")
    user = settings.smtp_user.strip()
    message_id = make_msgid(domain=user.split("@")[-1] if "@" in user else None)
    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = _from_address()
    msg["To"] = to_email
    msg["Message-ID"] = message_id
    msg.attach(MIMEText(text, "plain"))
    msg.attach(MIMEText(f"<pre style='font-family:sans-serif'>{escape(text)}</pre>", "html"))
    with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=10) as server:
        server.starttls()
        server.login(user, settings.smtp_password.strip())
        server.sendmail(user, [to_email], msg.as_string())
    logger.info("Email sent to %s: %s", to_email, subject)
    return message_id
