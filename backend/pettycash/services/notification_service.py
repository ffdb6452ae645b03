# Overview: Email delivery for OTP codes and admin security alerts.

"""
Notification sender.

Backends (MAIL_BACKEND):
- smtp: stdlib smtplib with STARTTLS (SSL on port 465), bounded by MAIL_TIMEOUT
- console: logs the message instead of sending it
- memory: appends to app.extensions["outbox"] (tests read OTP codes from it)

Senders return True/False and never raise; callers run them through the
outbound dispatcher.
"""

from __future__ import annotations

import smtplib
from email.message import EmailMessage

from flask import current_app

from ..extensions import db
from ..models import User
from ..permissions import ROLE_ADMIN


def _outbox() -> list:
    return current_app.extensions.setdefault("outbox", [])


def _send_mail(to: list[str], subject: str, body: str) -> bool:
    recipients = [addr for addr in to if addr]
    if not recipients:
        current_app.logger.warning("Mail '%s' has no recipients, skipped", subject)
        return False

    backend = current_app.config.get("MAIL_BACKEND", "console")

    if backend == "memory":
        _outbox().append({"to": recipients, "subject": subject, "body": body})
        return True

    if backend == "console":
        current_app.logger.info("Mail to %s: %s\n%s", ", ".join(recipients), subject, body)
        return True

    if backend != "smtp":
        current_app.logger.error("Unknown MAIL_BACKEND %s", backend)
        return False

    cfg = current_app.config
    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = cfg["MAIL_SENDER"]
    msg["To"] = ", ".join(recipients)
    msg.set_content(body)

    try:
        if int(cfg["MAIL_PORT"]) == 465:
            server = smtplib.SMTP_SSL(cfg["MAIL_SERVER"], cfg["MAIL_PORT"], timeout=cfg["MAIL_TIMEOUT"])
        else:
            server = smtplib.SMTP(cfg["MAIL_SERVER"], cfg["MAIL_PORT"], timeout=cfg["MAIL_TIMEOUT"])
        with server:
            if int(cfg["MAIL_PORT"]) != 465:
                server.starttls()
            if cfg.get("MAIL_USERNAME"):
                server.login(cfg["MAIL_USERNAME"], cfg["MAIL_PASSWORD"] or "")
            server.send_message(msg)
    except (smtplib.SMTPException, OSError):
        current_app.logger.exception("SMTP delivery of '%s' to %s failed", subject, recipients)
        return False

    current_app.logger.info("Mail '%s' sent to %s", subject, recipients)
    return True


def send_otp(destination: str, code: str, display_name: str | None = None, *, ttl_minutes: int = 10) -> bool:
    body = (
        f"Hello {display_name or 'there'},\n\n"
        f"Your Petty Cash login OTP is: {code}\n\n"
        f"This OTP is valid for {ttl_minutes} minutes. Do not share it with anyone.\n\n"
        "If you did not request this, ignore this email or contact your administrator.\n"
    )
    return _send_mail([destination], "Your Petty Cash Login OTP", body)


def admin_recipients() -> list[str]:
    configured = list(current_app.config.get("ADMIN_ALERT_EMAILS") or [])
    if configured:
        return configured
    rows = (
        db.session.query(User.email, User.role)
        .filter(User.is_active.is_(True))
        .all()
    )
    return [email for email, role in rows if role and role.lower() == ROLE_ADMIN]


def notify_admin_of_failed_login(user: dict) -> bool:
    """user is a snapshot: id, name, email, failed_attempts, ip_address."""
    body = (
        "Repeated failed password logins were detected.\n\n"
        f"User: {user.get('name')} <{user.get('email')}> (id {user.get('id')})\n"
        f"Failed attempts: {user.get('failed_attempts')}\n"
        f"Last attempt from: {user.get('ip_address') or 'unknown'}\n\n"
        "The user was advised to sign in with an OTP instead.\n"
    )
    return _send_mail(admin_recipients(), "Security alert: repeated failed logins", body)
