"""Outbound email.

Sends through the Resend HTTP API when `RESEND_API_KEY` is configured, otherwise only
logs the message (development). Sending never raises: callers schedule it as a
background task and a failure must not affect the request that triggered it.
"""

from __future__ import annotations

import re
from html import escape
from dataclasses import dataclass
from typing import Optional, Protocol
from urllib.parse import quote

import requests

from flowerpots.config import Config


RESEND_URL = "https://api.resend.com/emails"
APP_NAME = "My Flower Pots"


def _debug(msg: str) -> None:
    print(f"[mail] {msg}")


@dataclass(frozen=True)
class Email:
    to: str
    subject: str
    html: str
    text: Optional[str] = None


class Mailer(Protocol):
    def send(self, email: Email) -> bool: ...


class ResendMailer:
    def __init__(self, *, api_key: str | None, sender: str, timeout: float = 10.0):
        self.api_key = api_key
        self.sender = sender
        self.timeout = timeout

    def send(self, email: Email) -> bool:
        if not self.api_key:
            _debug(f"to={email.to} subject={email.subject!r} status=logged_only")
            return True

        text = email.text or re.sub(r"<[^>]*>", "", email.html)
        try:
            r = requests.post(
                RESEND_URL,
                headers={"Authorization": f"Bearer {self.api_key}"},
                json={
                    "from": self.sender,
                    "to": [email.to],
                    "subject": email.subject,
                    "html": email.html,
                    "text": text,
                },
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            _debug(f"to={email.to} status=failed error={e!r}")
            return False

        if r.status_code >= 300:
            _debug(f"to={email.to} status=failed http={r.status_code} body={r.text[:200]!r}")
            return False
        return True


def build_mailer(cfg: Config) -> Mailer:
    return ResendMailer(api_key=cfg.RESEND_API_KEY, sender=cfg.EMAIL_FROM, timeout=cfg.EMAIL_TIMEOUT_SECONDS)


def deliver(mailer: Mailer, email: Email) -> bool:
    """Send from a background task. Failures are logged, never raised."""
    try:
        ok = bool(mailer.send(email))
    except Exception as e:
        _debug(f"to={email.to} subject={email.subject!r} status=failed error={e!r}")
        return False
    if not ok:
        _debug(f"to={email.to} subject={email.subject!r} status=not_sent")
    return ok


# -----------------------------
# Templates
# -----------------------------


def _link(base_url: str, path: str, token: str) -> str:
    return f"{base_url.rstrip('/')}{path}?token={quote(token)}"


def _button(href: str, label: str) -> str:
    href = escape(href)
    return (
        f'<p style="text-align:center;margin:30px 0">'
        f'<a href="{href}" style="background:#4CAF50;color:#fff;padding:12px 24px;'
        f'text-decoration:none;border-radius:4px;font-weight:bold">{label}</a></p>'
        f'<p>Or open this link: {href}</p>'
    )


def verification_email(to: str, token: str, base_url: str) -> Email:
    link = _link(base_url, "/auth/verify-email", token)
    return Email(
        to=to,
        subject=f"Verify your email for {APP_NAME}",
        html=f"<h2>Welcome to {APP_NAME}</h2><p>Please confirm your email address.</p>{_button(link, 'Verify Email')}",
        text=f"Please confirm your email address: {link}",
    )


def welcome_email(to: str, display_name: str | None, base_url: str) -> Email:
    name = escape(display_name or "there")
    return Email(
        to=to,
        subject=f"Welcome to {APP_NAME}",
        html=f"<h2>Hi {name}!</h2><p>Your account is ready. Start tracking your plants at {escape(base_url)}.</p>",
    )


def password_reset_email(to: str, token: str, base_url: str) -> Email:
    link = _link(base_url, "/reset-password.html", token)
    return Email(
        to=to,
        subject=f"Reset your {APP_NAME} password",
        html=(
            "<h2>Password reset</h2><p>Someone asked to reset your password. "
            "The link expires in 24 hours.</p>"
            f"{_button(link, 'Reset Password')}"
            "<p>If you didn't request this, you can ignore this email.</p>"
        ),
        text=f"Reset your password (valid 24 hours): {link}",
    )


def email_change_email(to: str, current_email: str | None, token: str, base_url: str) -> Email:
    link = _link(base_url, "/auth/verify-new-email", token)
    return Email(
        to=to,
        subject=f"Verify your new email for {APP_NAME}",
        html=(
            "<h2>Email change request</h2>"
            f"<p>Current email: {escape(current_email or '-')}<br>New email: {escape(to)}</p>"
            f"{_button(link, 'Verify New Email Address')}"
            "<p>This link expires in 24 hours. If you didn't request this change, contact support.</p>"
        ),
        text=f"Confirm your new email address (valid 24 hours): {link}",
    )
