from __future__ import annotations

from flask import current_app
from flask_mail import Message

from extensions import mail


class DeliveryError(Exception):
    """A reminder could not be handed to the mail server."""


def smtp_configured() -> bool:
    """True when Flask-Mail has a server to talk to (or sending is suppressed)."""
    cfg = current_app.config
    if cfg.get("MAIL_SUPPRESS_SEND") or cfg.get("TESTING"):
        return True
    return bool((cfg.get("MAIL_SERVER") or "").strip())


def _sender() -> str | None:
    cfg = current_app.config
    return cfg.get("MAIL_DEFAULT_SENDER") or cfg.get("MAIL_USERNAME") or None


def send_reminder_email(to: str, student_name: str, body: str) -> None:
    if not to:
        raise DeliveryError("No parent email on record")
    if not smtp_configured():
        raise DeliveryError("SMTP not configured. Set MAIL_SERVER/MAIL_USERNAME/MAIL_PASSWORD.")
    institution = current_app.config.get("INSTITUTION_NAME", "")
    msg = Message(
        subject=f"{institution} fee reminder for {student_name}".strip(),
        sender=_sender(),
        recipients=[to],
        body=body,
    )
    try:
        mail.send(msg)
    except Exception as e:
        current_app.logger.warning("Reminder email to %s failed: %s", to, e)
        raise DeliveryError(str(e)) from e
    current_app.logger.info("Sent reminder email to %s", to)
