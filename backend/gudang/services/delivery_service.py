# Overview: Delivery note submission, draft edits and cancellation; feeds the approval workflow.

"""
Delivery Note Service

Submitting a delivery note:
1. Validates header and line items, and that stock covers every line.
2. Writes the note and its items.
3. Appends one 'out' ledger entry per line (reference = delivery number).
4. Seeds one pending approval record per approval level of the division.
5. Commits, then emails the first approver (best-effort).

Editing replaces items (and with them the 'out' entries and the approval
records) only while the note is a draft still pending approval. Previous
'out' entries are offset with REVISE-<number> 'in' entries; the ledger is
never rewritten.
"""

from __future__ import annotations

import secrets
from datetime import date

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import (
    DeliveryNote,
    DeliveryNoteItem,
    DeliveryStatus,
    Division,
    NoteApprovalStatus,
    NotificationLog,
)
from ..validation import ValidationError, optional_str, parse_enum, parse_int, require_fields
from gudang.time_utils import parse_iso_date, utcnow
from . import approval_service, stock_service
from .concurrency import lock_for_update
from .notification_service import NotificationResult


class DeliveryNoteError(ValueError):
    """Raised for delivery note business rule violations."""


HEADER_FIELDS = ("customer_name", "customer_address", "customer_phone", "delivery_date", "notes", "status", "division_id")


def generate_delivery_number(today: date | None = None, *, attempts: int = 10) -> str:
    """SJ-YYYYMMDD-NNN with a random three digit suffix, unique among existing notes."""
    today = today or utcnow().date()
    for _ in range(attempts):
        candidate = f"SJ-{today:%Y%m%d}-{secrets.randbelow(1000):03d}"
        exists = db.session.query(DeliveryNote.id).filter_by(delivery_number=candidate).first()
        if not exists:
            return candidate
    raise DeliveryNoteError(f"Could not allocate a delivery number for {today:%Y-%m-%d}")


def _parse_items(raw_items) -> list[dict]:
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("Tambahkan minimal satu item produk")

    items = []
    for index, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object")
        require_fields(raw, "product_id", "quantity")
        items.append({
            "product_id": parse_int(raw["product_id"], f"items[{index}].product_id", minimum=1),
            "quantity": parse_int(raw["quantity"], f"items[{index}].quantity", minimum=1),
            "notes": optional_str(raw.get("notes"), f"items[{index}].notes"),
        })
    return items


def _parse_header(payload: dict, *, partial: bool) -> dict:
    if not partial:
        require_fields(payload, "customer_name", "division_id", "delivery_date")

    header: dict = {}
    if "customer_name" in payload:
        name = optional_str(payload["customer_name"], "customer_name", max_length=255)
        if name is None:
            raise ValidationError("customer_name must not be empty")
        header["customer_name"] = name
    for key in ("customer_address", "notes"):
        if key in payload:
            header[key] = optional_str(payload[key], key)
    if "customer_phone" in payload:
        header["customer_phone"] = optional_str(payload["customer_phone"], "customer_phone", max_length=64)
    if "delivery_date" in payload:
        try:
            delivery_date = parse_iso_date(payload["delivery_date"])
        except (TypeError, ValueError, AttributeError):
            raise ValidationError("delivery_date must be a YYYY-MM-DD date")
        if delivery_date is None:
            raise ValidationError("delivery_date must not be empty")
        header["delivery_date"] = delivery_date
    if "status" in payload:
        header["status"] = parse_enum(DeliveryStatus, payload["status"], "status").value
    if "division_id" in payload:
        header["division_id"] = parse_int(payload["division_id"], "division_id", minimum=1)

    unknown = set(payload) - set(HEADER_FIELDS) - {"items"}
    if unknown:
        raise ValidationError(f"unknown field(s): {', '.join(sorted(unknown))}")
    return header


def _require_division_chain(division_id: int) -> Division:
    division = db.session.get(Division, division_id)
    if division is None:
        raise ValidationError(f"Division {division_id} not found")
    if not division.approval_levels:
        raise DeliveryNoteError(f"Division {division.name} has no approval levels configured")
    return division


def _add_items(note: DeliveryNote, items: list[dict]) -> None:
    for item in items:
        note.items.append(DeliveryNoteItem(
            product_id=item["product_id"],
            quantity=item["quantity"],
            notes=item["notes"],
        ))
    db.session.flush()


def create_delivery_note(payload: dict) -> tuple[DeliveryNote, NotificationResult]:
    """
    Submit a new delivery note into the approval flow.

    Raises:
        ValidationError: malformed payload, unknown division
        DeliveryNoteError: division has no approval chain
        InsufficientStockError: a line exceeds available stock
    """
    header = _parse_header(payload, partial=False)
    items = _parse_items(payload.get("items"))
    _require_division_chain(header["division_id"])
    stock_service.ensure_available((i["product_id"], i["quantity"]) for i in items)

    try:
        note = DeliveryNote(
            delivery_number=generate_delivery_number(),
            status=header.pop("status", DeliveryStatus.DRAFT.value),
            approval_status=NoteApprovalStatus.PENDING_APPROVAL.value,
            **header,
        )
        db.session.add(note)
        db.session.flush()

        _add_items(note, items)
        stock_service.issue_delivery_stock(note)
        approval_service.seed_approvals(note)
        db.session.commit()
    except (SQLAlchemyError, stock_service.StockError, DeliveryNoteError):
        db.session.rollback()
        raise

    current_app.logger.info("Delivery note %s created with %d item(s)", note.delivery_number, len(items))
    notification = approval_service.request_approval(note)
    return note, notification


def update_delivery_note(delivery_note_id: int, payload: dict) -> tuple[DeliveryNote, NotificationResult | None]:
    """
    Update a delivery note.

    Header fields can always be edited. Replacing items or moving the note to
    another division is only allowed while the note is a draft pending
    approval; it offsets the previous 'out' entries, writes new ones and
    restarts the approval chain.
    """
    note = get_delivery_note(delivery_note_id, for_update=True)
    header = _parse_header(payload, partial=True)
    replace_items = "items" in payload
    items = _parse_items(payload["items"]) if replace_items else None

    division_changed = "division_id" in header and header["division_id"] != note.division_id
    restart = replace_items or division_changed
    if restart:
        if note.status != DeliveryStatus.DRAFT.value or note.approval_status != NoteApprovalStatus.PENDING_APPROVAL.value:
            raise DeliveryNoteError(
                f"Items of delivery note {note.delivery_number} can only be changed while it is a draft pending approval"
            )
        _require_division_chain(header.get("division_id", note.division_id))

    try:
        if restart:
            stock_service.credit_delivery_stock(
                note,
                prefix=stock_service.REVISION_REFERENCE_PREFIX,
                notes=f"Revisi surat jalan: {note.delivery_number}",
            )
            if items is None:
                items = [{"product_id": i.product_id, "quantity": i.quantity, "notes": i.notes} for i in note.items]
            note.items.clear()
            note.approvals.clear()
            db.session.flush()

        for key, value in header.items():
            setattr(note, key, value)
        db.session.flush()

        if restart:
            stock_service.ensure_available((i["product_id"], i["quantity"]) for i in items)
            _add_items(note, items)
            stock_service.issue_delivery_stock(note)
            approval_service.seed_approvals(note)

        db.session.commit()
    except (SQLAlchemyError, stock_service.StockError, ValidationError):
        db.session.rollback()
        raise

    current_app.logger.info("Delivery note %s updated", note.delivery_number)
    notification = approval_service.request_approval(note) if restart else None
    return note, notification


def delete_delivery_note(delivery_note_id: int) -> None:
    """
    Delete a note with its items and approval records.

    Stock still out for the note is credited back (CANCEL-<number>) unless it
    was already returned by a rejection or physically delivered.
    """
    note = get_delivery_note(delivery_note_id, for_update=True)
    stock_out = (
        note.approval_status not in (NoteApprovalStatus.REJECTED.value, NoteApprovalStatus.COMPLETED.value)
        and note.status != DeliveryStatus.DELIVERED.value
    )

    try:
        if stock_out:
            stock_service.credit_delivery_stock(
                note,
                prefix=stock_service.CANCEL_REFERENCE_PREFIX,
                notes=f"Pembatalan surat jalan: {note.delivery_number}",
            )
        db.session.query(NotificationLog).filter_by(delivery_note_id=note.id).update(
            {"delivery_note_id": None}, synchronize_session=False
        )
        db.session.delete(note)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise

    current_app.logger.info("Delivery note %s deleted", note.delivery_number)


def get_delivery_note(delivery_note_id: int, *, for_update: bool = False) -> DeliveryNote:
    if for_update:
        query = db.session.query(DeliveryNote).filter_by(id=delivery_note_id).populate_existing()
        note = lock_for_update(query).first()
    else:
        note = db.session.get(DeliveryNote, delivery_note_id)
    if note is None:
        raise LookupError(f"Delivery note {delivery_note_id} not found")
    return note


def list_delivery_notes(
    *,
    approval_status: str | None = None,
    division_id: int | None = None,
    limit: int = 200,
) -> list[DeliveryNote]:
    q = db.session.query(DeliveryNote)
    if approval_status is not None:
        q = q.filter_by(approval_status=parse_enum(NoteApprovalStatus, approval_status, "approval_status").value)
    if division_id is not None:
        q = q.filter_by(division_id=division_id)
    return q.order_by(DeliveryNote.created_at.desc(), DeliveryNote.id.desc()).limit(limit).all()

