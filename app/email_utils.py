"""
Small SMTP helpers shared by the notifier and manual scripts.
"""
from __future__ import annotations

import logging
import smtplib
from email.header import Header
from email.mime.text import MIMEText
from typing import List

log = logging.getLogger(__name__)


def _effective_from(email_from: str | None, email_user: str | None, smtp_server: str) -> str:
    # Gmail rewrites or rejects a From that differs from the authenticated user.
    if "gmail" in (smtp_server or "").lower() and email_user:
        return email_user
    return email_from or email_user or ""


def send_email_message(
    host: str,
    port: int,
    username: str,
    password: str,
    sender: str,
    to: List[str],
    subject: str,
    body: str,
) -> None:
    """Send a plain-text UTF-8 email; authenticates only when credentials are set."""
    if not host:
        raise RuntimeError("SMTP host not configured. Set email.host or SMTP_SERVER.")
    recipients = [addr for addr in (to or []) if addr]
    if not recipients:
        raise RuntimeError("No email recipients given.")

    msg = MIMEText(body, "plain", "utf-8")
    msg["Subject"] = Header(subject, "utf-8")
    msg["From"] = _effective_from(sender, username, host)
    msg["To"] = ", ".join(recipients)
    if not msg["From"]:
        raise RuntimeError("Email sender not configured. Set email.from or EMAIL_FROM.")

    with smtplib.SMTP(host, int(port or 587)) as server:
        if username and password:
            server.starttls()
            server.login(username, password)
        server.sendmail(msg["From"], recipients, msg.as_string())
    log.info("Email sent", extra={"to": msg["To"], "from": msg["From"]})
