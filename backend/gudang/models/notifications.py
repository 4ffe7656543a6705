from __future__ import annotations

from ..extensions import db
from gudang.time_utils import to_utc_z


class NotificationLog(db.Model):
    """
    One row per approval email attempt, successful or not.

    Email delivery is best-effort; this table is the back-office view of what
    was attempted and what failed.
    """
    __tablename__ = "notification_logs"
    __table_args__ = (
        db.Index("ix_notification_logs_note_created", "delivery_note_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    delivery_note_id = db.Column(db.Integer, db.ForeignKey("delivery_notes.id", ondelete="SET NULL"), nullable=True, index=True)

    # approval_request, reminder, approved, rejected
    kind = db.Column(db.String(32), nullable=False, index=True)
    recipient = db.Column(db.String(255), nullable=True)
    subject = db.Column(db.String(255), nullable=True)

    success = db.Column(db.Boolean, nullable=False, default=False)
    provider_message_id = db.Column(db.String(128), nullable=True)
    error = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "delivery_note_id": self.delivery_note_id,
            "kind": self.kind,
            "recipient": self.recipient,
            "subject": self.subject,
            "success": self.success,
            "provider_message_id": self.provider_message_id,
            "error": self.error,
            "created_at": to_utc_z(self.created_at),
        }
