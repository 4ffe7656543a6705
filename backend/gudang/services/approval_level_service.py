# Overview: Administration of divisions and their approval chains.

from __future__ import annotations

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import (
    ApprovalLevel,
    ApprovalStatus,
    DeliveryNote,
    DeliveryNoteApproval,
    Division,
    NoteApprovalStatus,
)
from ..validation import ConflictError, ValidationError, optional_str, parse_int, require_fields


class ApprovalLevelError(ConflictError):
    """A level cannot change while delivery notes are waiting on it."""


# =============================================================================
# DIVISIONS
# =============================================================================

def list_divisions() -> list[Division]:
    return db.session.query(Division).order_by(Division.name.asc()).all()


def create_division(name: str, description: str | None = None) -> Division:
    name = optional_str(name, "name", max_length=128)
    if name is None:
        raise ValidationError("name is required")
    if db.session.query(Division.id).filter_by(name=name).first():
        raise ConflictError(f"Division {name} already exists")

    division = Division(name=name, description=optional_str(description, "description"))
    db.session.add(division)
    db.session.commit()
    return division


def get_division_by_name(name: str) -> Division | None:
    return db.session.query(Division).filter_by(name=name).first()


# =============================================================================
# APPROVAL LEVELS
# =============================================================================

def list_levels(division_id: int | None = None) -> list[ApprovalLevel]:
    q = db.session.query(ApprovalLevel)
    if division_id is not None:
        q = q.filter_by(division_id=division_id)
    return q.order_by(ApprovalLevel.division_id.asc(), ApprovalLevel.level_order.asc()).all()


def _next_order(division_id: int) -> int:
    current = db.session.query(func.max(ApprovalLevel.level_order)).filter_by(division_id=division_id).scalar()
    return (current or 0) + 1


def _has_in_flight_approvals(level_id: int) -> bool:
    return (
        db.session.query(DeliveryNoteApproval.id)
        .join(DeliveryNote, DeliveryNote.id == DeliveryNoteApproval.delivery_note_id)
        .filter(
            DeliveryNoteApproval.approval_level_id == level_id,
            DeliveryNote.approval_status == NoteApprovalStatus.PENDING_APPROVAL.value,
            DeliveryNoteApproval.status == ApprovalStatus.PENDING.value,
        )
        .first()
        is not None
    )


def _commit_level(level: ApprovalLevel) -> ApprovalLevel:
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(f"Level order {level.level_order} is already used in this division")
    return level


def create_level(payload: dict) -> ApprovalLevel:
    require_fields(payload, "division_id", "name", "email")
    division_id = parse_int(payload["division_id"], "division_id", minimum=1)
    if db.session.get(Division, division_id) is None:
        raise ValidationError(f"Division {division_id} not found")

    name = optional_str(payload["name"], "name", max_length=128)
    if name is None:
        raise ValidationError("name is required")
    email = optional_str(payload["email"], "email", max_length=255)
    if not email or "@" not in email:
        raise ValidationError("email must be a valid email address")

    if payload.get("level_order") is None:
        level_order = _next_order(division_id)
    else:
        level_order = parse_int(payload["level_order"], "level_order", minimum=1)

    level = ApprovalLevel(division_id=division_id, name=name, email=email, level_order=level_order)
    db.session.add(level)
    return _commit_level(level)


def update_level(level_id: int, payload: dict) -> ApprovalLevel:
    level = get_level(level_id)
    if _has_in_flight_approvals(level.id):
        raise ApprovalLevelError(f"Approval level {level.name} has delivery notes waiting on it")

    if "name" in payload:
        name = optional_str(payload["name"], "name", max_length=128)
        if name is None:
            raise ValidationError("name must not be empty")
        level.name = name
    if "email" in payload:
        email = optional_str(payload["email"], "email", max_length=255)
        if not email or "@" not in email:
            raise ValidationError("email must be a valid email address")
        level.email = email
    if "level_order" in payload:
        level.level_order = parse_int(payload["level_order"], "level_order", minimum=1)
    if "division_id" in payload:
        raise ValidationError("division_id cannot be changed; create a new level instead")

    return _commit_level(level)


def delete_level(level_id: int) -> None:
    level = get_level(level_id)
    if _has_in_flight_approvals(level.id):
        raise ApprovalLevelError(f"Approval level {level.name} has delivery notes waiting on it")
    if db.session.query(DeliveryNoteApproval.id).filter_by(approval_level_id=level.id).first():
        raise ApprovalLevelError(f"Approval level {level.name} is referenced by approval history")

    db.session.delete(level)
    db.session.commit()


def get_level(level_id: int) -> ApprovalLevel:
    level = db.session.get(ApprovalLevel, level_id)
    if level is None:
        raise LookupError(f"Approval level {level_id} not found")
    return level
