from __future__ import annotations

from ..extensions import db
from gudang.time_utils import to_utc_z
from .statuses import ApprovalStatus, DeliveryStatus, NoteApprovalStatus


class Division(db.Model):
    """Business division; each division owns its own approval chain."""
    __tablename__ = "divisions"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False, unique=True)
    description = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "created_at": to_utc_z(self.created_at),
        }


class ApprovalLevel(db.Model):
    """
    One stage in a division's sequential sign-off chain.

    Lower level_order is asked first. Levels are configured by an
    administrator and must not change while a note is waiting on them.
    """
    __tablename__ = "approval_levels"
    __table_args__ = (
        db.UniqueConstraint("division_id", "level_order", name="uq_approval_levels_division_order"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    division_id = db.Column(db.Integer, db.ForeignKey("divisions.id"), nullable=False, index=True)

    name = db.Column(db.String(128), nullable=False)
    email = db.Column(db.String(255), nullable=False)
    level_order = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    division = db.relationship("Division", backref=db.backref("approval_levels", lazy=True))

    def __repr__(self) -> str:
        return f"<ApprovalLevel id={self.id} name={self.name!r} order={self.level_order}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "division_id": self.division_id,
            "division": self.division.name if self.division else None,
            "name": self.name,
            "email": self.email,
            "level_order": self.level_order,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class DeliveryNote(db.Model):
    """
    Outbound shipment document ("surat jalan").

    LIFECYCLE:
    - status: draft -> sent -> delivered (user driven)
    - approval_status: pending_approval -> approved | rejected
      (written only by approval_service; completed is set outside the approval core)
    """
    __tablename__ = "delivery_notes"
    __table_args__ = (
        db.Index("ix_delivery_notes_approval_status", "approval_status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable number (e.g. "SJ-20261017-042")
    delivery_number = db.Column(db.String(64), nullable=False, unique=True)

    customer_name = db.Column(db.String(255), nullable=False)
    customer_address = db.Column(db.Text, nullable=True)
    customer_phone = db.Column(db.String(64), nullable=True)

    division_id = db.Column(db.Integer, db.ForeignKey("divisions.id"), nullable=False, index=True)
    delivery_date = db.Column(db.Date, nullable=False)
    notes = db.Column(db.Text, nullable=True)

    status = db.Column(db.String(16), nullable=False, default=DeliveryStatus.DRAFT.value, index=True)
    approval_status = db.Column(
        db.String(32),
        nullable=False,
        default=NoteApprovalStatus.PENDING_APPROVAL.value,
    )

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    division = db.relationship("Division")
    items = db.relationship(
        "DeliveryNoteItem",
        backref="delivery_note",
        cascade="all, delete-orphan",
        lazy=True,
        order_by="DeliveryNoteItem.id",
    )
    approvals = db.relationship(
        "DeliveryNoteApproval",
        backref="delivery_note",
        cascade="all, delete-orphan",
        lazy=True,
    )

    def __repr__(self) -> str:
        return f"<DeliveryNote id={self.id} number={self.delivery_number!r} approval={self.approval_status}>"

    def to_dict(self, *, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "delivery_number": self.delivery_number,
            "customer_name": self.customer_name,
            "customer_address": self.customer_address,
            "customer_phone": self.customer_phone,
            "division_id": self.division_id,
            "division": self.division.name if self.division else None,
            "delivery_date": self.delivery_date.isoformat() if self.delivery_date else None,
            "notes": self.notes,
            "status": self.status,
            "approval_status": self.approval_status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class DeliveryNoteItem(db.Model):
    __tablename__ = "delivery_note_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_delivery_note_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    delivery_note_id = db.Column(db.Integer, db.ForeignKey("delivery_notes.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    notes = db.Column(db.Text, nullable=True)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "delivery_note_id": self.delivery_note_id,
            "product_id": self.product_id,
            "product_code": self.product.code if self.product else None,
            "product_name": self.product.name if self.product else None,
            "unit": self.product.unit if self.product else None,
            "quantity": self.quantity,
            "notes": self.notes,
        }


class DeliveryNoteApproval(db.Model):
    """
    One approval record per (delivery note, approval level).

    STATE MACHINE:
        pending -> approved   (terminal)
        pending -> rejected   (terminal)

    The transition is written with a conditional UPDATE gated on
    status='pending'; see approval_service.

    Email action token:
    - approval_token / token_expires_at: the live token, if any
    - token_consumed_at: set when a token was used to resolve this record
    """
    __tablename__ = "delivery_note_approvals"
    __table_args__ = (
        db.UniqueConstraint("delivery_note_id", "approval_level_id", name="uq_dn_approvals_note_level"),
        db.Index("ix_dn_approvals_note_status", "delivery_note_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    delivery_note_id = db.Column(db.Integer, db.ForeignKey("delivery_notes.id"), nullable=False, index=True)
    approval_level_id = db.Column(db.Integer, db.ForeignKey("approval_levels.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default=ApprovalStatus.PENDING.value)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    approval_token = db.Column(db.String(128), nullable=True, unique=True)
    token_expires_at = db.Column(db.DateTime(timezone=True), nullable=True)
    token_consumed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    approval_level = db.relationship("ApprovalLevel")

    def __repr__(self) -> str:
        return (
            f"<DeliveryNoteApproval id={self.id} note={self.delivery_note_id} "
            f"level={self.approval_level_id} status={self.status}>"
        )

    def to_dict(self) -> dict:
        level = self.approval_level
        return {
            "id": self.id,
            "delivery_note_id": self.delivery_note_id,
            "approval_level_id": self.approval_level_id,
            "approver_name": level.name if level else None,
            "level_order": level.level_order if level else None,
            "status": self.status,
            "approved_at": to_utc_z(self.approved_at),
            "notes": self.notes,
            # Never expose the token itself
            "token_expires_at": to_utc_z(self.token_expires_at),
        }
