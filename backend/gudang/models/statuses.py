# backend/gudang/models/statuses.py
"""
Closed status vocabularies for delivery notes, approvals, stock and notifications.

Columns store the plain string value. Parse incoming strings with
``Enum(value)`` so unknown values raise instead of falling through.
"""

from enum import Enum


class DeliveryStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    DELIVERED = "delivered"


class NoteApprovalStatus(str, Enum):
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    REJECTED = "rejected"
    # Set outside the approval core (physical delivery confirmation)
    COMPLETED = "completed"


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ApprovalAction(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"

    @property
    def resulting_status(self) -> ApprovalStatus:
        if self is ApprovalAction.APPROVE:
            return ApprovalStatus.APPROVED
        if self is ApprovalAction.REJECT:
            return ApprovalStatus.REJECTED
        raise AssertionError(f"unhandled action {self!r}")


class TransactionType(str, Enum):
    IN = "in"
    OUT = "out"
    ADJUSTMENT = "adjustment"


class NotificationKind(str, Enum):
    APPROVAL_REQUEST = "approval_request"
    REMINDER = "reminder"
    APPROVED = "approved"
    REJECTED = "rejected"

    @property
    def carries_action_links(self) -> bool:
        return self in (NotificationKind.APPROVAL_REQUEST, NotificationKind.REMINDER)
