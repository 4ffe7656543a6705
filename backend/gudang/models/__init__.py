from .statuses import (
    DeliveryStatus,
    NoteApprovalStatus,
    ApprovalStatus,
    ApprovalAction,
    TransactionType,
    NotificationKind,
)
from .inventory import Product, StockTransaction
from .delivery import Division, ApprovalLevel, DeliveryNote, DeliveryNoteItem, DeliveryNoteApproval
from .notifications import NotificationLog

__all__ = [
    'DeliveryStatus', 'NoteApprovalStatus', 'ApprovalStatus', 'ApprovalAction',
    'TransactionType', 'NotificationKind',
    'Product', 'StockTransaction',
    'Division', 'ApprovalLevel', 'DeliveryNote', 'DeliveryNoteItem', 'DeliveryNoteApproval',
    'NotificationLog',
]
