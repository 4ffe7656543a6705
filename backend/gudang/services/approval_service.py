# Overview: Delivery note approval workflow; resolves approval records and drives notifications.

"""
Delivery Note Approval Service

================================================================================
PURPOSE: Sequential multi-level sign-off for delivery notes ("surat jalan")
================================================================================

Each delivery note has one DeliveryNoteApproval per ApprovalLevel of its
division. Levels are asked in ascending level_order. Any level may reject.

RECORD STATE MACHINE:
    pending -> approved   (terminal)
    pending -> rejected   (terminal)

NOTE STATE MACHINE (approval_status):
    pending_approval -> approved   (every division record approved)
    pending_approval -> rejected   (any record rejected; stock is reversed)

RULES:
1. Every resolution first takes the note row lock (SELECT ... FOR UPDATE),
   so the "all approved" decision is made by one writer at a time.
2. A record transition is one conditional UPDATE gated on status='pending'.
   Zero rows updated means someone else resolved it first.
3. Finalizing the note is another conditional UPDATE gated on
   approval_status='pending_approval'. Only the winner reverses stock or
   sends the approved/rejected email, so side effects fire once per note.
4. Record transition, note finalization and stock reversal share one DB
   transaction. Emails are sent after commit and never roll it back.
5. The next approver is always derived by query (first pending record by
   level_order within the note's division), never stored.
6. Email action tokens are single use and expire after
   APPROVAL_TOKEN_TTL_HOURS. At most one live token per record.
================================================================================
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, Union
from urllib.parse import urlencode

from flask import current_app
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from ..errors import ApprovalError, ApprovalNotFoundError, ApprovalTokenExpiredError, UpstreamFailure
from ..extensions import db
from ..models import (
    ApprovalAction,
    ApprovalLevel,
    ApprovalStatus,
    DeliveryNote,
    DeliveryNoteApproval,
    NoteApprovalStatus,
    NotificationKind,
    StockTransaction,
)
from ..validation import ValidationError, parse_enum
from gudang.time_utils import as_utc_naive, utcnow
from .concurrency import conditional_update, lock_for_update, run_with_retry
from .notification_service import ActionLinks, NotificationResult, send_notification
from .stock_service import reverse_delivery_note


# =============================================================================
# TOKEN STATE
# =============================================================================

@dataclass(frozen=True)
class NoToken:
    pass


@dataclass(frozen=True)
class LiveToken:
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        if self.expires_at is None:
            return False
        return now > as_utc_naive(self.expires_at)


@dataclass(frozen=True)
class ConsumedToken:
    consumed_at: datetime


ApprovalToken = Union[NoToken, LiveToken, ConsumedToken]


def token_state(record: DeliveryNoteApproval) -> ApprovalToken:
    """Read a record's token columns as NoToken | LiveToken | ConsumedToken."""
    if record.approval_token is not None:
        return LiveToken(expires_at=record.token_expires_at)
    if record.token_consumed_at is not None:
        return ConsumedToken(consumed_at=record.token_consumed_at)
    return NoToken()


# =============================================================================
# RESULTS
# =============================================================================

class ResolutionOutcome(str, Enum):
    ESCALATED = "escalated"
    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass
class ResolutionResult:
    note: DeliveryNote
    record: DeliveryNoteApproval
    action: ApprovalAction
    outcome: ResolutionOutcome
    notification: Optional[NotificationResult] = None
    stock_transactions: list[StockTransaction] = field(default_factory=list)

    @property
    def message(self) -> str:
        if self.action is ApprovalAction.APPROVE:
            return "Delivery note approved successfully"
        return "Delivery note rejected successfully"


# =============================================================================
# QUERIES
# =============================================================================

def division_approvals(note: DeliveryNote) -> list[DeliveryNoteApproval]:
    """All approval records of a note whose level belongs to the note's division, by level_order."""
    return (
        db.session.query(DeliveryNoteApproval)
        .join(ApprovalLevel, ApprovalLevel.id == DeliveryNoteApproval.approval_level_id)
        .filter(
            DeliveryNoteApproval.delivery_note_id == note.id,
            ApprovalLevel.division_id == note.division_id,
        )
        .order_by(ApprovalLevel.level_order.asc(), DeliveryNoteApproval.id.asc())
        .all()
    )


def next_pending_approval(note: DeliveryNote) -> DeliveryNoteApproval | None:
    """First pending record ordered by level_order ascending, scoped to the note's division."""
    return (
        db.session.query(DeliveryNoteApproval)
        .join(ApprovalLevel, ApprovalLevel.id == DeliveryNoteApproval.approval_level_id)
        .filter(
            DeliveryNoteApproval.delivery_note_id == note.id,
            DeliveryNoteApproval.status == ApprovalStatus.PENDING.value,
            ApprovalLevel.division_id == note.division_id,
        )
        .order_by(ApprovalLevel.level_order.asc(), DeliveryNoteApproval.id.asc())
        .first()
    )


def last_resolved_approval(note: DeliveryNote) -> DeliveryNoteApproval | None:
    """The most recently resolved record of a note (the approver who finalized it)."""
    return (
        db.session.query(DeliveryNoteApproval)
        .filter(
            DeliveryNoteApproval.delivery_note_id == note.id,
            DeliveryNoteApproval.status != ApprovalStatus.PENDING.value,
        )
        .order_by(DeliveryNoteApproval.approved_at.desc(), DeliveryNoteApproval.id.desc())
        .first()
    )


def get_note(delivery_note_id: int) -> DeliveryNote:
    note = db.session.get(DeliveryNote, delivery_note_id)
    if note is None:
        raise ApprovalNotFoundError(f"Delivery note {delivery_note_id} not found")
    return note


def seed_approvals(note: DeliveryNote) -> list[DeliveryNoteApproval]:
    """
    Create one pending record per approval level of the note's division.

    Flushes but does not commit.
    """
    levels = (
        db.session.query(ApprovalLevel)
        .filter_by(division_id=note.division_id)
        .order_by(ApprovalLevel.level_order.asc())
        .all()
    )
    records = [
        DeliveryNoteApproval(
            delivery_note_id=note.id,
            approval_level_id=level.id,
            status=ApprovalStatus.PENDING.value,
        )
        for level in levels
    ]
    db.session.add_all(records)
    db.session.flush()
    return records


# =============================================================================
# TOKENS
# =============================================================================

def issue_token(record: DeliveryNoteApproval, *, now: datetime | None = None) -> str:
    """
    Mint a new single-use action token for a pending record.

    Replaces any previous token. Commits.

    Raises:
        ApprovalNotFoundError: the record is no longer pending
    """
    now = now or utcnow()
    token = secrets.token_urlsafe(32)
    expires_at = now + timedelta(hours=current_app.config.get("APPROVAL_TOKEN_TTL_HOURS", 24))

    updated = run_with_retry(lambda: conditional_update(
        DeliveryNoteApproval,
        DeliveryNoteApproval.id == record.id,
        DeliveryNoteApproval.status == ApprovalStatus.PENDING.value,
        approval_token=token,
        token_expires_at=expires_at,
        token_consumed_at=None,
    ))
    if not updated:
        db.session.rollback()
        raise ApprovalNotFoundError(f"Approval {record.id} is no longer pending")

    db.session.commit()
    return token


def build_action_links(token: str, expires_at: datetime) -> ActionLinks:
    base = current_app.config["PUBLIC_BASE_URL"].rstrip("/")

    def _link(action: ApprovalAction) -> str:
        return f"{base}/handle-email-approval?{urlencode({'token': token, 'action': action.value})}"

    return ActionLinks(
        approve_url=_link(ApprovalAction.APPROVE),
        reject_url=_link(ApprovalAction.REJECT),
        expires_at=expires_at,
    )


# =============================================================================
# NOTIFICATIONS
# =============================================================================

def notify(
    note: DeliveryNote,
    kind: NotificationKind,
    *,
    record: DeliveryNoteApproval | None = None,
) -> NotificationResult:
    """
    Address and send one approval email for a note.

    - approval_request / reminder: to the next pending approver (or `record`),
      with a freshly minted token embedded in approve/reject links. Skipped
      once the note is approved or rejected.
    - approved / rejected: to the approver of `record`, or the most recently
      resolved record when not given.
    """
    if kind.carries_action_links:
        # No action links once the note is final
        if note.approval_status != NoteApprovalStatus.PENDING_APPROVAL.value:
            target = None
        else:
            target = record or next_pending_approval(note)
    elif kind in (NotificationKind.APPROVED, NotificationKind.REJECTED):
        target = record or last_resolved_approval(note)
    else:
        raise AssertionError(f"unhandled notification kind {kind!r}")

    if target is None:
        current_app.logger.info("No pending approvals for delivery note %s", note.delivery_number)
        return NotificationResult.no_recipient(kind)

    links = None
    if kind.carries_action_links:
        token = issue_token(target)
        links = build_action_links(token, target.token_expires_at)

    level = target.approval_level
    return send_notification(
        note,
        kind,
        approver_email=level.email,
        approver_name=level.name,
        action_links=links,
    )


def _notify_after_commit(note: DeliveryNote, kind: NotificationKind, *, record=None) -> NotificationResult:
    """Notifications never unwind a committed transition."""
    try:
        return notify(note, kind, record=record)
    except (ApprovalError, SQLAlchemyError) as exc:
        db.session.rollback()
        current_app.logger.exception(
            "Failed to prepare %s notification for delivery note %s", kind.value, note.delivery_number
        )
        return NotificationResult(kind=kind, success=False, error=str(exc))


def request_approval(note: DeliveryNote) -> NotificationResult:
    """Email the first pending approver of a freshly submitted note."""
    return _notify_after_commit(note, NotificationKind.APPROVAL_REQUEST)


def send_reminder(note: DeliveryNote) -> NotificationResult:
    """
    Re-send the approval request to the current pending approver.

    Raises:
        ApprovalNotFoundError: the note is no longer pending approval
    """
    if note.approval_status != NoteApprovalStatus.PENDING_APPROVAL.value:
        raise ApprovalNotFoundError(
            f"Delivery note {note.delivery_number} is {note.approval_status}, not pending approval"
        )
    return _notify_after_commit(note, NotificationKind.REMINDER)


# =============================================================================
# RESOLUTION
# =============================================================================

def _finalize_rejection(note: DeliveryNote) -> list[StockTransaction]:
    won = conditional_update(
        DeliveryNote,
        DeliveryNote.id == note.id,
        DeliveryNote.approval_status == NoteApprovalStatus.PENDING_APPROVAL.value,
        approval_status=NoteApprovalStatus.REJECTED.value,
    )
    if not won:
        raise ApprovalNotFoundError(f"Delivery note {note.delivery_number} was already resolved")
    return reverse_delivery_note(note)


def _advance(note: DeliveryNote) -> tuple[ResolutionOutcome, bool]:
    """
    After an approve: finalize the note if every division record is approved.

    Runs under the note row lock, so the pending check below sees every
    sibling resolution committed before this one.

    Returns (outcome, send_final_email). Only the writer that flips the note
    to approved sends the final email.
    """
    still_pending = (
        select(DeliveryNoteApproval.id)
        .join(ApprovalLevel, ApprovalLevel.id == DeliveryNoteApproval.approval_level_id)
        .where(
            DeliveryNoteApproval.delivery_note_id == note.id,
            DeliveryNoteApproval.status == ApprovalStatus.PENDING.value,
            ApprovalLevel.division_id == note.division_id,
        )
        .exists()
    )
    if db.session.scalar(select(still_pending)):
        return ResolutionOutcome.ESCALATED, True

    won = conditional_update(
        DeliveryNote,
        DeliveryNote.id == note.id,
        DeliveryNote.approval_status == NoteApprovalStatus.PENDING_APPROVAL.value,
        approval_status=NoteApprovalStatus.APPROVED.value,
    )
    return ResolutionOutcome.APPROVED, bool(won)


def _lock_note(note: DeliveryNote) -> DeliveryNote:
    """Take the note row lock that serializes every resolution of one note."""
    query = db.session.query(DeliveryNote).filter_by(id=note.id).populate_existing()
    return lock_for_update(query).one()


def _resolve_record(
    note: DeliveryNote,
    record: DeliveryNoteApproval,
    action: ApprovalAction,
    *,
    notes: str | None,
    token: str | None = None,
) -> ResolutionResult:
    current_app.logger.info(
        "Processing %s for delivery note %s, approval level %s",
        action.value, note.delivery_number, record.approval_level_id,
    )

    now = utcnow()
    criteria = [
        DeliveryNoteApproval.id == record.id,
        DeliveryNoteApproval.status == ApprovalStatus.PENDING.value,
    ]
    values = {
        "status": action.resulting_status.value,
        "approved_at": now,
        "notes": notes,
        "approval_token": None,
        "token_expires_at": None,
    }
    if token is not None:
        criteria.append(DeliveryNoteApproval.approval_token == token)
        values["token_consumed_at"] = now

    def _claim() -> int:
        _lock_note(note)
        if note.approval_status != NoteApprovalStatus.PENDING_APPROVAL.value:
            raise ApprovalNotFoundError(
                f"Delivery note {note.delivery_number} is already {note.approval_status}"
            )
        return conditional_update(DeliveryNoteApproval, *criteria, **values)

    stock_rows: list[StockTransaction] = []
    try:
        if not run_with_retry(_claim):
            raise ApprovalNotFoundError("Approval not found or already processed")

        if action is ApprovalAction.REJECT:
            stock_rows = _finalize_rejection(note)
            outcome, send_final = ResolutionOutcome.REJECTED, True
        elif action is ApprovalAction.APPROVE:
            outcome, send_final = _advance(note)
        else:
            raise AssertionError(f"unhandled action {action!r}")

        db.session.commit()
    except ApprovalError:
        db.session.rollback()
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to resolve approval %s", record.id)
        raise UpstreamFailure("database update failed") from exc

    db.session.refresh(note)
    db.session.refresh(record)
    result = ResolutionResult(
        note=note,
        record=record,
        action=action,
        outcome=outcome,
        stock_transactions=stock_rows,
    )

    if outcome is ResolutionOutcome.REJECTED:
        result.notification = _notify_after_commit(note, NotificationKind.REJECTED, record=record)
    elif outcome is ResolutionOutcome.APPROVED:
        if send_final:
            result.notification = _notify_after_commit(note, NotificationKind.APPROVED, record=record)
    elif outcome is ResolutionOutcome.ESCALATED:
        result.notification = _notify_after_commit(note, NotificationKind.APPROVAL_REQUEST)
    else:
        raise AssertionError(f"unhandled outcome {outcome!r}")

    current_app.logger.info(
        "Approval processed successfully: %s for delivery note %s (%s)",
        action.resulting_status.value, note.delivery_number, outcome.value,
    )
    return result


def resolve(
    delivery_note_id: int,
    approval_level_id: int,
    action: ApprovalAction | str,
    notes: str | None = None,
) -> ResolutionResult:
    """
    Approve or reject the (note, level) record from the in-app path.

    Raises:
        ValidationError: unknown action
        ApprovalNotFoundError: no such record, record not pending, or note already final
        UpstreamFailure: a database update failed (nothing committed)
    """
    action = parse_enum(ApprovalAction, action, "action")
    note = get_note(delivery_note_id)

    record = (
        db.session.query(DeliveryNoteApproval)
        .filter_by(delivery_note_id=note.id, approval_level_id=approval_level_id)
        .first()
    )
    if record is None or record.status != ApprovalStatus.PENDING.value:
        raise ApprovalNotFoundError("Approval not found or already processed")

    return _resolve_record(note, record, action, notes=notes)


def resolve_by_token(token: str, action: ApprovalAction | str, *, now: datetime | None = None) -> ResolutionResult:
    """
    Approve or reject using an emailed action token.

    The token is consumed in the same update that resolves the record, so a
    link works at most once.

    Raises:
        ValidationError: missing token or unknown action
        ApprovalNotFoundError: no pending record holds this token
        ApprovalTokenExpiredError: token past its expiry (record stays pending)
        UpstreamFailure: a database update failed
    """
    if not token:
        raise ValidationError("token is required")
    action = parse_enum(ApprovalAction, action, "action")

    record = (
        db.session.query(DeliveryNoteApproval)
        .filter(
            DeliveryNoteApproval.approval_token == token,
            DeliveryNoteApproval.status == ApprovalStatus.PENDING.value,
        )
        .first()
    )
    if record is None:
        raise ApprovalNotFoundError("Approval link is invalid or was already processed")

    state = token_state(record)
    if not isinstance(state, LiveToken):
        raise ApprovalNotFoundError("Approval link is invalid or was already processed")
    if state.is_expired(now or utcnow()):
        raise ApprovalTokenExpiredError("Approval link has expired")

    level = record.approval_level
    verb = "Disetujui" if action is ApprovalAction.APPROVE else "Ditolak"
    return _resolve_record(
        record.delivery_note,
        record,
        action,
        notes=f"{verb} melalui email oleh {level.name}",
        token=token,
    )


def pending_notes(limit: int = 200) -> list[tuple[DeliveryNote, DeliveryNoteApproval | None]]:
    """Notes awaiting approval, each with its current next approver."""
    notes = (
        db.session.query(DeliveryNote)
        .filter_by(approval_status=NoteApprovalStatus.PENDING_APPROVAL.value)
        .order_by(DeliveryNote.created_at.asc(), DeliveryNote.id.asc())
        .limit(limit)
        .all()
    )
    return [(note, next_pending_approval(note)) for note in notes]
