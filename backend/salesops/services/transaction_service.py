# Overview: Service-layer operations for sales transactions; submit, approve, cancel, archive and reporting.

"""
Sales transaction lifecycle.

submit() records intent only: no stock moves while a transaction is pending.
approve() is the single point where a sale touches the ledger. Every line is
applied as a `sale` delta in line order inside one unit of work; the first
ledger failure compensates the lines already applied and the session is
rolled back, so the transaction stays pending and stock is unchanged.
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import ROUND_HALF_UP, Decimal

from flask import current_app
from sqlalchemy import func
from sqlalchemy.orm import selectinload

from ..errors import LedgerError, NotFound, ValidationError
from ..extensions import db
from ..models import Area, Branch, Product, SalesTransaction, SalesTransactionItem, User
from ..models.catalog import LIFECYCLE_ACTIVE
from ..models.inventory import MOVEMENT_RETURN, MOVEMENT_SALE
from ..models.sales import (
    PAYMENT_METHODS,
    TRANSACTION_STATUS_APPROVED,
    TRANSACTION_STATUS_CANCELLED,
    TRANSACTION_STATUS_PENDING,
)
from ..permissions import (
    APPROVE_TRANSACTIONS,
    ARCHIVE_RECORDS,
    CANCEL_TRANSACTIONS,
    SUBMIT_TRANSACTIONS,
    Capabilities,
)
from ..time_utils import today, utcnow
from ..validation import parse_date, parse_int, parse_money, parse_text
from . import commission_service, stock_service
from .approval_service import ensure_transition, mark_approved, mark_archived
from .concurrency import lock_for_update, run_with_retry
from .document_service import PREFIX_TRANSACTION, allocate_reference_number


logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")
CENT = Decimal("0.01")


def tax_enabled() -> bool:
    return bool(current_app.config.get("TAX_ENABLED", False))


def _parse_items(raw_items) -> list[dict]:
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("Transaction must have at least one item")

    items = []
    for index, raw in enumerate(raw_items, start=1):
        if not isinstance(raw, dict):
            raise ValidationError(f"Item {index} must be an object")
        if raw.get("product_id") is None:
            raise ValidationError(f"Item {index}: product_id is required")
        product_id = parse_int(raw["product_id"], f"items[{index}].product_id")
        quantity = parse_int(raw.get("quantity"), f"items[{index}].quantity")
        if quantity <= 0:
            raise ValidationError(f"Item {index}: quantity must be > 0")

        product = db.session.get(Product, product_id)
        if product is None:
            raise ValidationError(f"Item {index}: product {product_id} not found")
        if not product.is_sellable:
            raise ValidationError(f"Item {index}: product {product.code} is not available for sale")

        price = product.price if raw.get("price") is None else parse_money(raw["price"], f"items[{index}].price")
        discount = parse_money(raw.get("discount") or 0, f"items[{index}].discount")
        line_subtotal = Decimal(price) * quantity - discount
        if line_subtotal < 0:
            raise ValidationError(f"Item {index}: discount exceeds line amount")

        items.append({
            "line_number": index,
            "product_id": product_id,
            "quantity": quantity,
            "price": Decimal(price),
            "discount": discount,
            "subtotal": line_subtotal,
        })
    return items


def _validate_header(draft: dict) -> dict:
    if not isinstance(draft, dict):
        raise ValidationError("Invalid JSON payload")
    if draft.get("branch_id") is None:
        raise ValidationError("branch_id is required")

    header = {
        "branch_id": parse_int(draft["branch_id"], "branch_id"),
        "area_id": parse_int(draft["area_id"], "area_id") if draft.get("area_id") is not None else None,
        "transaction_date": (
            parse_date(draft["transaction_date"], "transaction_date")
            if draft.get("transaction_date")
            else today()
        ),
        "payment_method": draft.get("payment_method") or "cash",
        "discount": parse_money(draft.get("discount") or 0, "discount"),
    }
    if header["payment_method"] not in PAYMENT_METHODS:
        raise ValidationError(
            f"Invalid payment method '{header['payment_method']}'. Must be one of: {', '.join(PAYMENT_METHODS)}"
        )

    if draft.get("tax") is not None:
        if not tax_enabled():
            raise ValidationError("tax is not accepted while TAX_ENABLED is off")
        header["tax"] = parse_money(draft["tax"], "tax")
    else:
        header["tax"] = ZERO if tax_enabled() else None

    for key in ("customer_name", "customer_phone", "customer_address", "proof_photo", "notes"):
        header[key] = parse_text(draft.get(key), key)
    for key in ("latitude", "longitude"):
        header[key] = parse_text(draft.get(key), key, allow_number=True)
    return header


def submit(draft: dict, *, actor_id: int, capabilities: Capabilities) -> SalesTransaction:
    """
    Create a pending transaction from a draft.

    Draft fields: branch_id, items[{product_id, quantity, price?, discount?}],
    plus optional area_id, transaction_date, sales_id, payment_method,
    discount, tax (only with TAX_ENABLED), customer fields, coordinates,
    proof_photo and notes. Item price defaults to the catalog price.

    Stock is not checked here; availability is decided at approval.
    """
    header = _validate_header(draft)
    capabilities.require(SUBMIT_TRANSACTIONS, branch_id=header["branch_id"])

    def _op() -> SalesTransaction:
        if db.session.get(Branch, header["branch_id"]) is None:
            raise NotFound(f"Branch {header['branch_id']} not found")
        if header["area_id"] is not None:
            area = db.session.get(Area, header["area_id"])
            if area is None or area.branch_id != header["branch_id"]:
                raise ValidationError("area_id does not belong to the transaction branch")

        sales_id = parse_int(draft["sales_id"], "sales_id") if draft.get("sales_id") is not None else actor_id
        if db.session.get(User, sales_id) is None:
            raise NotFound(f"User {sales_id} not found")

        items = _parse_items(draft.get("items"))
        subtotal = sum((item["subtotal"] for item in items), ZERO)
        total = subtotal - header["discount"] + (header["tax"] or ZERO)
        if total < 0:
            raise ValidationError("Transaction discount exceeds subtotal")

        txn = SalesTransaction(
            transaction_number=allocate_reference_number(PREFIX_TRANSACTION),
            sales_id=sales_id,
            subtotal=subtotal,
            total=total,
            status=TRANSACTION_STATUS_PENDING,
            lifecycle_state=LIFECYCLE_ACTIVE,
            **header,
        )
        for item in items:
            txn.items.append(SalesTransactionItem(**item))

        db.session.add(txn)
        db.session.commit()
        logger.info(
            "Sales transaction submitted id=%s number=%s branch_id=%s total=%s",
            txn.id, txn.transaction_number, txn.branch_id, txn.total,
        )
        return txn

    return run_with_retry(_op)


def _locked_transaction(transaction_id: int) -> SalesTransaction:
    query = (
        db.session.query(SalesTransaction)
        .options(selectinload(SalesTransaction.items))
        .filter_by(id=transaction_id)
    )
    txn = lock_for_update(query).first()
    if txn is None:
        raise NotFound(f"Sales transaction {transaction_id} not found")
    return txn


def get_transaction(transaction_id: int) -> SalesTransaction:
    txn = (
        db.session.query(SalesTransaction)
        .options(selectinload(SalesTransaction.items))
        .filter_by(id=transaction_id)
        .first()
    )
    if txn is None:
        raise NotFound(f"Sales transaction {transaction_id} not found")
    return txn


def approve(transaction_id: int, *, actor_id: int, capabilities: Capabilities) -> SalesTransaction:
    """
    pending -> approved, decrementing stock for every line.

    All-or-nothing: on the first ledger failure the already applied lines
    are compensated, the session is rolled back and the error propagates
    with the transaction still pending.
    """
    def _op() -> SalesTransaction:
        txn = _locked_transaction(transaction_id)
        capabilities.require(APPROVE_TRANSACTIONS, branch_id=txn.branch_id)
        ensure_transition(txn, "approve", kind="transaction")

        applied: list[SalesTransactionItem] = []
        try:
            for item in txn.items:
                stock_service.apply_locked(item.product_id, txn.branch_id, -item.quantity, MOVEMENT_SALE)
                applied.append(item)
        except LedgerError:
            for item in reversed(applied):
                stock_service.apply_locked(item.product_id, txn.branch_id, item.quantity, MOVEMENT_RETURN)
            logger.info(
                "Sales transaction approval aborted id=%s lines_compensated=%s",
                txn.id, len(applied),
            )
            raise

        for item in applied:
            stock_service.record_branch_movement(
                item.product_id,
                txn.branch_id,
                -item.quantity,
                MOVEMENT_SALE,
                actor_id=actor_id,
                notes=f"Sale {txn.transaction_number}",
                approved=True,
            )

        mark_approved(txn, actor_id, TRANSACTION_STATUS_APPROVED)
        db.session.flush()

        if commission_service.commissions_enabled():
            commission_service.record_for_transaction(txn)

        db.session.commit()
        logger.info(
            "Sales transaction approved id=%s number=%s actor_id=%s",
            txn.id, txn.transaction_number, actor_id,
        )
        return txn

    return run_with_retry(_op)


def cancel(
    transaction_id: int,
    *,
    actor_id: int,
    capabilities: Capabilities,
    reason: str | None = None,
) -> SalesTransaction:
    """pending -> cancelled. No stock effect."""
    def _op() -> SalesTransaction:
        txn = _locked_transaction(transaction_id)
        capabilities.require(CANCEL_TRANSACTIONS, branch_id=txn.branch_id)
        ensure_transition(txn, "cancel", kind="transaction")

        txn.status = TRANSACTION_STATUS_CANCELLED
        txn.cancelled_by = actor_id
        txn.cancelled_at = utcnow()
        txn.cancellation_reason = reason
        db.session.commit()
        logger.info("Sales transaction cancelled id=%s actor_id=%s", txn.id, actor_id)
        return txn

    return run_with_retry(_op)


def archive(transaction_id: int, *, actor_id: int, capabilities: Capabilities) -> SalesTransaction:
    def _op() -> SalesTransaction:
        txn = _locked_transaction(transaction_id)
        capabilities.require(ARCHIVE_RECORDS, branch_id=txn.branch_id)
        mark_archived(txn, kind="transaction")
        db.session.commit()
        logger.info("Sales transaction archived id=%s actor_id=%s", txn.id, actor_id)
        return txn

    return run_with_retry(_op)


def _filtered_query(
    *,
    branch_id: int | None = None,
    sales_id: int | None = None,
    status: str | None = None,
    start: date | None = None,
    end: date | None = None,
    include_archived: bool = False,
):
    q = db.session.query(SalesTransaction)
    if branch_id is not None:
        q = q.filter(SalesTransaction.branch_id == branch_id)
    if sales_id is not None:
        q = q.filter(SalesTransaction.sales_id == sales_id)
    if status is not None:
        q = q.filter(SalesTransaction.status == status)
    if start is not None:
        q = q.filter(SalesTransaction.transaction_date >= start)
    if end is not None:
        q = q.filter(SalesTransaction.transaction_date <= end)
    if not include_archived:
        q = q.filter(SalesTransaction.lifecycle_state == LIFECYCLE_ACTIVE)
    return q


def list_transactions(**filters) -> list[SalesTransaction]:
    return (
        _filtered_query(**filters)
        .options(selectinload(SalesTransaction.items))
        .order_by(SalesTransaction.transaction_date.desc(), SalesTransaction.id.desc())
        .all()
    )


def sales_summary(sales_id: int, start: date | None = None, end: date | None = None) -> dict:
    """
    Totals for one sales agent; only approved transactions count toward revenue.

    average_transaction spreads approved revenue over every active
    transaction (pending and cancelled included); average_approved_transaction
    divides by the approved count only.
    """
    base = _filtered_query(sales_id=sales_id, start=start, end=end)
    total_transactions = base.count()

    approved_count, approved_total = (
        base.filter(SalesTransaction.status == TRANSACTION_STATUS_APPROVED)
        .with_entities(func.count(SalesTransaction.id), func.coalesce(func.sum(SalesTransaction.total), 0))
        .one()
    )
    approved_total = Decimal(str(approved_total)).quantize(CENT)

    def _average(count: int) -> Decimal:
        return (approved_total / count).quantize(CENT, rounding=ROUND_HALF_UP) if count else ZERO

    return {
        "sales_id": sales_id,
        "total_transactions": total_transactions,
        "approved_transactions": approved_count,
        "total_sales": f"{approved_total:.2f}",
        "average_transaction": f"{_average(total_transactions):.2f}",
        "average_approved_transaction": f"{_average(approved_count):.2f}",
    }
