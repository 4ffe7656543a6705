# Overview: Approval email rendering and best-effort delivery through the email provider.

"""
Notifier

Given a delivery note, a message kind and a recipient, renders the email
and hands it to the configured EmailSender. Delivery is best-effort:

- Provider failures, timeouts and a missing API key are caught and returned
  as a failed NotificationResult; nothing is raised to the caller.
- Every attempt is written to NotificationLog.
- There is no retry, so an approver never receives duplicate-looking links.

Choosing the recipient and minting action tokens is approval_service's job.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import httpx
from flask import Flask, current_app, render_template
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import EMAIL_SENDER_KEY, db, get_email_sender
from ..models import DeliveryNote, NotificationKind, NotificationLog


class EmailSendError(Exception):
    """The email provider did not accept the message."""


@dataclass(frozen=True)
class ActionLinks:
    approve_url: str
    reject_url: str
    expires_at: datetime


@dataclass(frozen=True)
class NotificationResult:
    kind: NotificationKind
    success: bool
    recipient: Optional[str] = None
    email_id: Optional[str] = None
    error: Optional[str] = None
    skipped: bool = False

    @classmethod
    def no_recipient(cls, kind: NotificationKind) -> "NotificationResult":
        return cls(kind=kind, success=False, skipped=True, error="No pending approvals")

    def to_dict(self) -> dict:
        if self.skipped:
            return {"success": False, "message": self.error}
        data = {"success": self.success, "emailId": self.email_id, "sentTo": self.recipient}
        if self.error:
            data["error"] = self.error
        return data


# =============================================================================
# EMAIL SENDERS
# =============================================================================

class ResendEmailSender:
    """Sends HTML email through a Resend-compatible HTTP API."""

    def __init__(self, *, api_key: str | None, api_url: str, sender: str, timeout: float = 5.0):
        self.api_key = api_key
        self.api_url = api_url
        self.sender = sender
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def send(self, *, to: list[str], subject: str, html: str) -> str | None:
        """
        Send one message. Returns the provider message id.

        Raises:
            EmailSendError: not configured, HTTP error, or timeout
        """
        if not self.configured:
            raise EmailSendError("Email provider not configured (RESEND_API_KEY missing)")

        try:
            response = httpx.post(
                self.api_url,
                json={"from": self.sender, "to": to, "subject": subject, "html": html},
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise EmailSendError(
                f"Email provider returned {exc.response.status_code}: {exc.response.text[:200]}"
            ) from exc
        except httpx.HTTPError as exc:
            raise EmailSendError(f"Email provider request failed: {exc}") from exc

        try:
            return response.json().get("id")
        except ValueError:
            return None


def init_email_sender(app: Flask, sender=None) -> None:
    """Install the app-wide EmailSender (tests pass their own)."""
    if sender is None:
        sender = ResendEmailSender(
            api_key=app.config.get("RESEND_API_KEY"),
            api_url=app.config["RESEND_API_URL"],
            sender=app.config["MAIL_FROM"],
            timeout=app.config.get("NOTIFIER_TIMEOUT_SECONDS", 5.0),
        )
    app.extensions[EMAIL_SENDER_KEY] = sender


# =============================================================================
# RENDERING
# =============================================================================

def build_subject(kind: NotificationKind, note: DeliveryNote) -> str:
    number = note.delivery_number
    if kind is NotificationKind.APPROVAL_REQUEST:
        return f"Persetujuan Surat Jalan - {number}"
    if kind is NotificationKind.REMINDER:
        return f"[REMINDER] Persetujuan Surat Jalan - {number}"
    if kind is NotificationKind.APPROVED:
        return f"Surat Jalan Disetujui - {number}"
    if kind is NotificationKind.REJECTED:
        return f"Surat Jalan Ditolak - {number}"
    raise AssertionError(f"unhandled notification kind {kind!r}")


def render_body(
    kind: NotificationKind,
    note: DeliveryNote,
    *,
    approver_name: str | None,
    action_links: ActionLinks | None,
) -> str:
    if kind.carries_action_links:
        if action_links is None:
            raise ValueError(f"{kind.value} notifications require action links")
        template = "email/approval_request.html"
    elif kind is NotificationKind.APPROVED:
        template = "email/approved.html"
    elif kind is NotificationKind.REJECTED:
        template = "email/rejected.html"
    else:
        raise AssertionError(f"unhandled notification kind {kind!r}")

    return render_template(
        template,
        note=note,
        division=note.division.name if note.division else "",
        approver_name=approver_name,
        links=action_links,
        is_reminder=kind is NotificationKind.REMINDER,
        ttl_hours=current_app.config.get("APPROVAL_TOKEN_TTL_HOURS", 24),
    )


# =============================================================================
# SENDING
# =============================================================================

def _record_attempt(note: DeliveryNote, kind: NotificationKind, subject: str, result: NotificationResult) -> None:
    try:
        db.session.add(NotificationLog(
            delivery_note_id=note.id,
            kind=kind.value,
            recipient=result.recipient,
            subject=subject,
            success=result.success,
            provider_message_id=result.email_id,
            error=result.error,
        ))
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to record notification attempt for %s", note.delivery_number)


def send_notification(
    note: DeliveryNote,
    kind: NotificationKind,
    *,
    approver_email: str,
    approver_name: str | None = None,
    action_links: ActionLinks | None = None,
) -> NotificationResult:
    """
    Render and send one approval email. Never raises on delivery failure.

    approved/rejected messages are also copied to APPROVAL_CC_EMAILS.
    """
    subject = build_subject(kind, note)
    html = render_body(kind, note, approver_name=approver_name, action_links=action_links)

    recipients = [approver_email]
    if not kind.carries_action_links:
        for cc in current_app.config.get("APPROVAL_CC_EMAILS") or []:
            if cc not in recipients:
                recipients.append(cc)

    try:
        email_id = get_email_sender().send(to=recipients, subject=subject, html=html)
    except EmailSendError as exc:
        current_app.logger.warning(
            "Failed to send %s email for delivery note %s to %s: %s",
            kind.value, note.delivery_number, approver_email, exc,
        )
        result = NotificationResult(kind=kind, success=False, recipient=approver_email, error=str(exc))
    else:
        current_app.logger.info(
            "Email sent successfully: %s for delivery note %s to %s",
            kind.value, note.delivery_number, approver_email,
        )
        result = NotificationResult(kind=kind, success=True, recipient=approver_email, email_id=email_id)

    _record_attempt(note, kind, subject, result)
    return result


def list_attempts(delivery_note_id: int) -> list[NotificationLog]:
    return (
        db.session.query(NotificationLog)
        .filter_by(delivery_note_id=delivery_note_id)
        .order_by(NotificationLog.id.asc())
        .all()
    )
