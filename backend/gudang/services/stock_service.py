# Overview: Stock ledger writes, balance projection, and delivery note stock reversal.

"""
Stock ledger invariants (authoritative)

- StockTransaction rows are append-only. Corrections are new entries.
- Product.stock_quantity is the projection of the ledger:
    in          -> balance + quantity
    out         -> balance - quantity (never below zero)
    adjustment  -> balance = quantity
- The projection is applied in the same DB transaction as the ledger insert,
  always through append_transactions.
- Entries produced by a delivery note carry its delivery number in
  reference_number; reversals use RETURN-<delivery number>.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..errors import UpstreamFailure
from ..extensions import db
from ..models import DeliveryNote, Product, StockTransaction, TransactionType
from .concurrency import conditional_update


RETURN_REFERENCE_PREFIX = "RETURN-"
REVISION_REFERENCE_PREFIX = "REVISE-"
CANCEL_REFERENCE_PREFIX = "CANCEL-"


class StockError(ValueError):
    """Raised for stock ledger rule violations."""


class InsufficientStockError(StockError):
    """An 'out' entry would take a product below zero."""

    def __init__(self, product: Product | None, requested: int):
        self.product = product
        self.requested = requested
        if product is None:
            message = "product not found"
        else:
            message = (
                f"Stok {product.name} tidak mencukupi. "
                f"Stok tersedia: {product.stock_quantity}, diminta: {requested}"
            )
        super().__init__(message)


@dataclass(frozen=True)
class LedgerEntry:
    product_id: int
    transaction_type: TransactionType
    quantity: int
    reference_number: str | None = None
    notes: str | None = None


def _apply_projection(entry: LedgerEntry) -> None:
    criteria = [Product.id == entry.product_id]
    ttype = entry.transaction_type

    if ttype is TransactionType.IN:
        values = {"stock_quantity": Product.stock_quantity + entry.quantity}
    elif ttype is TransactionType.OUT:
        criteria.append(Product.stock_quantity >= entry.quantity)
        values = {"stock_quantity": Product.stock_quantity - entry.quantity}
    elif ttype is TransactionType.ADJUSTMENT:
        values = {"stock_quantity": entry.quantity}
    else:
        raise AssertionError(f"unhandled transaction type {ttype!r}")

    if not conditional_update(Product, *criteria, **values):
        product = db.session.get(Product, entry.product_id)
        if product is None:
            raise StockError(f"Product {entry.product_id} not found")
        raise InsufficientStockError(product, entry.quantity)


def append_transactions(entries: Iterable[LedgerEntry]) -> list[StockTransaction]:
    """
    Append ledger entries and apply each to its product's balance.

    Flushes but does not commit; the caller owns the transaction.

    Raises:
        StockError: unknown product or negative quantity
        InsufficientStockError: an 'out' entry exceeds the current balance
    """
    rows: list[StockTransaction] = []
    for entry in entries:
        if entry.quantity < 0:
            raise StockError("quantity must be >= 0")

        _apply_projection(entry)

        row = StockTransaction(
            product_id=entry.product_id,
            transaction_type=entry.transaction_type.value,
            quantity=entry.quantity,
            reference_number=entry.reference_number,
            notes=entry.notes,
        )
        db.session.add(row)
        rows.append(row)

    db.session.flush()
    return rows


def ensure_available(lines: Iterable[tuple[int, int]]) -> None:
    """
    Check that every (product_id, quantity) pair can be taken out of stock.

    Quantities for the same product are summed before comparing.
    """
    requested: dict[int, int] = {}
    for product_id, quantity in lines:
        requested[product_id] = requested.get(product_id, 0) + quantity

    for product_id, quantity in requested.items():
        product = db.session.get(Product, product_id)
        if product is None:
            raise InsufficientStockError(None, quantity)
        if product.stock_quantity < quantity:
            raise InsufficientStockError(product, quantity)


def issue_delivery_stock(note: DeliveryNote) -> list[StockTransaction]:
    """Write the 'out' entries for every line of a delivery note."""
    return append_transactions(
        LedgerEntry(
            product_id=item.product_id,
            transaction_type=TransactionType.OUT,
            quantity=item.quantity,
            reference_number=note.delivery_number,
            notes=f"Surat Jalan: {note.customer_name}",
        )
        for item in note.items
    )


def credit_delivery_stock(note: DeliveryNote, *, prefix: str, notes: str) -> list[StockTransaction]:
    """Write one 'in' entry per line item, quantity for quantity."""
    return append_transactions(
        LedgerEntry(
            product_id=item.product_id,
            transaction_type=TransactionType.IN,
            quantity=item.quantity,
            reference_number=f"{prefix}{note.delivery_number}",
            notes=notes,
        )
        for item in note.items
    )


def reverse_delivery_note(note: DeliveryNote) -> list[StockTransaction]:
    """
    Re-credit the stock taken out by a rejected delivery note.

    NOT idempotent: calling this twice double-credits. approval_service only
    calls it after winning the note's pending_approval -> rejected update.

    Raises:
        UpstreamFailure: the ledger insert failed
    """
    try:
        rows = credit_delivery_stock(
            note,
            prefix=RETURN_REFERENCE_PREFIX,
            notes=f"Pengembalian stok karena surat jalan ditolak: {note.delivery_number}",
        )
    except (SQLAlchemyError, StockError) as exc:
        current_app.logger.error(
            "Stock reversal failed for delivery note %s; manual reconciliation required",
            note.delivery_number,
        )
        raise UpstreamFailure(f"stock reversal failed for {note.delivery_number}") from exc

    if rows:
        current_app.logger.info("Stock returned for rejected delivery note: %s", note.delivery_number)
    return rows


def list_transactions(*, reference_number: str | None = None, product_id: int | None = None, limit: int = 200) -> list[StockTransaction]:
    q = db.session.query(StockTransaction)
    if reference_number is not None:
        q = q.filter(StockTransaction.reference_number == reference_number)
    if product_id is not None:
        q = q.filter(StockTransaction.product_id == product_id)
    return q.order_by(StockTransaction.id.asc()).limit(limit).all()
