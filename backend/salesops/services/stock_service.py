# Overview: Service-layer operations for the stock ledger; the only mutation path for Stock rows.

"""
Stock Ledger Invariants (authoritative)

- Stock.quantity is the on-hand count for one (product, branch) pair and is
  never negative after any apply. The database backs this with a CHECK.
- Every mutation goes through apply_locked(), which reads the row under
  SELECT ... FOR UPDATE (plus the optimistic version_id on SQLite).
- Outgoing movements (out, sale, transfer source) that would overdraw raise
  InsufficientStock. Manual adjustments that would overdraw raise
  InvalidAdjustment. Neither is retried.
- Lock / optimistic conflicts are retried by run_with_retry() and surface as
  LedgerContention once the configured attempt limit is reached.
- A transfer is one logical unit: if the credit leg fails after the debit
  leg succeeded, the debit is compensated before the error propagates.
- Public operations commit. apply_locked() and record_branch_movement()
  never commit, so they can be composed inside a larger unit of work
  (sales approval, opname).
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import (
    InsufficientStock,
    InvalidAdjustment,
    NotFound,
    SalesOpsError,
    ValidationError,
)
from ..extensions import db
from ..models import Branch, Product, Stock, StockMovement
from ..models.inventory import (
    MOVEMENT_ADJUSTMENT,
    MOVEMENT_IN,
    MOVEMENT_OUT,
    MOVEMENT_RETURN,
    MOVEMENT_SALE,
    MOVEMENT_TRANSFER,
    MOVEMENT_TYPES,
)
from ..permissions import ADJUST_STOCK, TRANSFER_STOCK, Capabilities
from ..time_utils import utcnow
from ..validation import parse_int
from .concurrency import lock_for_update, run_with_retry
from .document_service import PREFIX_STOCK_MOVEMENT, allocate_reference_number


logger = logging.getLogger(__name__)

INCOMING_TYPES = frozenset({MOVEMENT_IN, MOVEMENT_RETURN})


def _ensure_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFound(f"Product {product_id} not found")
    return product


def _ensure_branch(branch_id: int) -> Branch:
    branch = db.session.get(Branch, branch_id)
    if branch is None:
        raise NotFound(f"Branch {branch_id} not found")
    return branch


def _validate_delta(delta: int, movement_type: str) -> None:
    if movement_type not in MOVEMENT_TYPES:
        raise ValidationError(
            f"Invalid movement type '{movement_type}'. Must be one of: {', '.join(MOVEMENT_TYPES)}"
        )
    if isinstance(delta, bool) or not isinstance(delta, int):
        raise ValidationError("delta must be an integer")
    if delta == 0:
        if movement_type == MOVEMENT_ADJUSTMENT:
            raise InvalidAdjustment("Adjustment quantity must not be zero")
        raise ValidationError("delta must be non-zero")
    if movement_type in INCOMING_TYPES and delta < 0:
        raise ValidationError(f"'{movement_type}' movements must increase stock")
    if movement_type in (MOVEMENT_OUT, MOVEMENT_SALE) and delta > 0:
        raise ValidationError(f"'{movement_type}' movements must decrease stock")


def _locked_stock(product_id: int, branch_id: int, *, create: bool) -> Stock | None:
    """Fetch the (product, branch) row under lock, creating an empty row if asked."""
    query = db.session.query(Stock).filter_by(product_id=product_id, branch_id=branch_id)
    stock = lock_for_update(query).first()
    if stock is None and create:
        stock = Stock(product_id=product_id, branch_id=branch_id, quantity=0, minimum_stock=0)
        db.session.add(stock)
        try:
            db.session.flush()
        except IntegrityError as exc:
            # Another writer created the row first; retry re-reads it under lock.
            raise StaleDataError(
                f"stock row for product {product_id} at branch {branch_id} created concurrently"
            ) from exc
    return stock


def apply_locked(product_id: int, branch_id: int, delta: int, movement_type: str) -> int:
    """Core apply logic without retry, movement record, or commit."""
    _validate_delta(delta, movement_type)

    stock = _locked_stock(product_id, branch_id, create=delta > 0)
    current = stock.quantity if stock is not None else 0
    new_quantity = current + delta

    if new_quantity < 0:
        if movement_type == MOVEMENT_ADJUSTMENT:
            raise InvalidAdjustment(
                f"Adjustment of {delta} would make stock negative (available: {current})",
                details={
                    "product_id": product_id,
                    "branch_id": branch_id,
                    "quantity_change": delta,
                    "available": current,
                },
            )
        raise InsufficientStock(product_id, branch_id, requested=-delta, available=current)

    stock.quantity = new_quantity
    db.session.flush()
    return new_quantity


def _record_movement(
    *,
    product_id: int,
    movement_type: str,
    quantity: int,
    from_branch_id: int | None = None,
    to_branch_id: int | None = None,
    actor_id: int | None = None,
    notes: str | None = None,
    approved: bool = False,
) -> StockMovement:
    movement = StockMovement(
        reference_number=allocate_reference_number(PREFIX_STOCK_MOVEMENT),
        product_id=product_id,
        from_branch_id=from_branch_id,
        to_branch_id=to_branch_id,
        type=movement_type,
        quantity=quantity,
        notes=notes,
        created_by=actor_id,
    )
    if approved and actor_id is not None:
        movement.approved_by = actor_id
        movement.approved_at = utcnow()
    db.session.add(movement)
    db.session.flush()
    return movement


def record_branch_movement(
    product_id: int,
    branch_id: int,
    delta: int,
    movement_type: str,
    *,
    actor_id: int | None,
    notes: str | None,
    approved: bool = False,
) -> StockMovement:
    return _record_movement(
        product_id=product_id,
        movement_type=movement_type,
        quantity=abs(delta),
        from_branch_id=branch_id if delta < 0 else None,
        to_branch_id=branch_id if delta > 0 else None,
        actor_id=actor_id,
        notes=notes,
        approved=approved,
    )


# =============================================================================
# Ledger operations
# =============================================================================

def apply(
    product_id: int,
    branch_id: int,
    delta: int,
    movement_type: str,
    *,
    actor_id: int | None = None,
    notes: str | None = None,
) -> int:
    """
    Apply a signed delta to the (product, branch) balance and commit.

    Returns:
        int: the new on-hand quantity

    Raises:
        InsufficientStock: outgoing movement would overdraw the balance
        InvalidAdjustment: adjustment is zero or would overdraw
        ValidationError: unknown type or sign inconsistent with the type
        LedgerContention: lock conflicts persisted past the retry limit
    """
    def _op() -> int:
        _ensure_product(product_id)
        _ensure_branch(branch_id)
        new_quantity = apply_locked(product_id, branch_id, delta, movement_type)
        record_branch_movement(
            product_id, branch_id, delta, movement_type, actor_id=actor_id, notes=notes
        )
        db.session.commit()
        logger.info(
            "Stock applied product_id=%s branch_id=%s delta=%s type=%s new_quantity=%s",
            product_id, branch_id, delta, movement_type, new_quantity,
        )
        return new_quantity

    return run_with_retry(_op)


def adjust(
    product_id: int,
    branch_id: int,
    signed_delta: int,
    notes: str | None,
    *,
    actor_id: int,
    capabilities: Capabilities,
) -> int:
    """
    Manual stock correction (positive or negative).

    The movement is recorded as approved by the adjusting actor, since only
    actors holding ADJUST_STOCK can get here.
    """
    capabilities.require(ADJUST_STOCK, branch_id=branch_id)

    def _op() -> int:
        if signed_delta == 0:
            raise InvalidAdjustment("Adjustment quantity must not be zero")
        _ensure_product(product_id)
        _ensure_branch(branch_id)
        new_quantity = apply_locked(product_id, branch_id, signed_delta, MOVEMENT_ADJUSTMENT)
        record_branch_movement(
            product_id,
            branch_id,
            signed_delta,
            MOVEMENT_ADJUSTMENT,
            actor_id=actor_id,
            notes=notes,
            approved=True,
        )
        db.session.commit()
        logger.info(
            "Stock adjusted product_id=%s branch_id=%s delta=%s new_quantity=%s actor_id=%s",
            product_id, branch_id, signed_delta, new_quantity, actor_id,
        )
        return new_quantity

    return run_with_retry(_op)


def transfer(
    product_id: int,
    from_branch_id: int,
    to_branch_id: int,
    quantity: int,
    *,
    actor_id: int,
    capabilities: Capabilities,
    notes: str | None = None,
) -> tuple[int, int]:
    """
    Move stock between branches as one logical unit.

    Returns:
        (new source quantity, new destination quantity)
    """
    capabilities.require(TRANSFER_STOCK, branch_id=from_branch_id)

    def _op() -> tuple[int, int]:
        if from_branch_id == to_branch_id:
            raise ValidationError("Cannot transfer to the same branch")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise ValidationError("Transfer quantity must be a positive integer")
        _ensure_product(product_id)
        _ensure_branch(from_branch_id)
        _ensure_branch(to_branch_id)

        source_quantity = apply_locked(product_id, from_branch_id, -quantity, MOVEMENT_TRANSFER)
        try:
            destination_quantity = apply_locked(product_id, to_branch_id, quantity, MOVEMENT_TRANSFER)
        except SalesOpsError:
            # Compensate the debit so the product total across branches is unchanged.
            apply_locked(product_id, from_branch_id, quantity, MOVEMENT_TRANSFER)
            logger.warning(
                "Stock transfer credit failed; debit compensated product_id=%s from=%s to=%s quantity=%s",
                product_id, from_branch_id, to_branch_id, quantity,
            )
            raise

        _record_movement(
            product_id=product_id,
            movement_type=MOVEMENT_TRANSFER,
            quantity=quantity,
            from_branch_id=from_branch_id,
            to_branch_id=to_branch_id,
            actor_id=actor_id,
            notes=notes,
            approved=True,
        )
        db.session.commit()
        logger.info(
            "Stock transferred product_id=%s from=%s to=%s quantity=%s",
            product_id, from_branch_id, to_branch_id, quantity,
        )
        return source_quantity, destination_quantity

    return run_with_retry(_op)


def balance(product_id: int, branch_id: int) -> int:
    """On-hand quantity as of the last committed apply (0 when no row exists)."""
    quantity = (
        db.session.query(Stock.quantity)
        .filter_by(product_id=product_id, branch_id=branch_id)
        .scalar()
    )
    return int(quantity or 0)


# =============================================================================
# Convenience wrappers
# =============================================================================

def add_stock(
    product_id: int,
    branch_id: int,
    quantity: int,
    *,
    movement_type: str = MOVEMENT_IN,
    actor_id: int | None = None,
    notes: str | None = None,
) -> int:
    """Incoming stock (purchase delivery, customer return)."""
    if quantity <= 0:
        raise ValidationError("Quantity must be positive")
    return apply(product_id, branch_id, quantity, movement_type, actor_id=actor_id, notes=notes)


def reduce_stock(
    product_id: int,
    branch_id: int,
    quantity: int,
    *,
    movement_type: str = MOVEMENT_OUT,
    actor_id: int | None = None,
    notes: str | None = None,
) -> int:
    """Outgoing stock (write-off, shipment out of the network)."""
    if quantity <= 0:
        raise ValidationError("Quantity must be positive")
    return apply(product_id, branch_id, -quantity, movement_type, actor_id=actor_id, notes=notes)


def initialize_stock(
    product_id: int,
    branch_id: int,
    *,
    quantity: int = 0,
    minimum_stock: int = 0,
    actor_id: int | None = None,
) -> Stock:
    """
    Create the stock row for a product at a branch.

    Opening quantity is booked as an `in` movement so the ledger replay
    still equals the sum of deltas.
    """
    if quantity < 0 or minimum_stock < 0:
        raise ValidationError("quantity and minimum_stock must be >= 0")

    def _op() -> Stock:
        _ensure_product(product_id)
        _ensure_branch(branch_id)
        existing = db.session.query(Stock).filter_by(product_id=product_id, branch_id=branch_id).first()
        if existing is not None:
            raise ValidationError(
                f"Stock for product {product_id} at branch {branch_id} already exists"
            )
        stock = _locked_stock(product_id, branch_id, create=True)
        stock.minimum_stock = minimum_stock
        if quantity:
            apply_locked(product_id, branch_id, quantity, MOVEMENT_IN)
            record_branch_movement(
                product_id, branch_id, quantity, MOVEMENT_IN,
                actor_id=actor_id, notes="Opening stock",
            )
        db.session.commit()
        return stock

    return run_with_retry(_op)


def set_minimum_stock(product_id: int, branch_id: int, minimum_stock: int) -> Stock:
    if minimum_stock < 0:
        raise ValidationError("minimum_stock must be >= 0")

    def _op() -> Stock:
        _ensure_product(product_id)
        _ensure_branch(branch_id)
        stock = _locked_stock(product_id, branch_id, create=True)
        stock.minimum_stock = minimum_stock
        db.session.commit()
        return stock

    return run_with_retry(_op)


def _parse_counts(counts) -> list[tuple[int, int]]:
    if not isinstance(counts, list):
        raise ValidationError("counts must be a list")
    parsed = []
    for entry in counts:
        if not isinstance(entry, dict):
            raise ValidationError("Each count must be an object")
        product_id = entry.get("product_id")
        physical = entry.get("physical_quantity")
        if product_id is None or physical is None:
            raise ValidationError("Each count needs product_id and physical_quantity")
        if isinstance(physical, bool) or not isinstance(physical, int) or physical < 0:
            raise ValidationError("physical_quantity must be a non-negative integer")
        parsed.append((parse_int(product_id, "product_id"), physical))
    return parsed


def stock_opname(
    branch_id: int,
    counts: list[dict],
    *,
    actor_id: int,
    capabilities: Capabilities,
) -> list[dict]:
    """
    Reconcile system quantities with a physical count.

    Each differing product gets an adjustment movement; products whose count
    matches are left alone.

    Args:
        counts: [{"product_id": int, "physical_quantity": int}, ...]

    Returns:
        list of {product_id, system_quantity, physical_quantity, difference}
    """
    capabilities.require(ADJUST_STOCK, branch_id=branch_id)
    parsed = _parse_counts(counts)

    def _op() -> list[dict]:
        _ensure_branch(branch_id)
        adjustments = []
        for product_id, physical in parsed:
            _ensure_product(product_id)

            stock = _locked_stock(product_id, branch_id, create=False)
            system = stock.quantity if stock is not None else 0
            difference = physical - system
            if difference == 0:
                continue

            apply_locked(product_id, branch_id, difference, MOVEMENT_ADJUSTMENT)
            record_branch_movement(
                product_id,
                branch_id,
                difference,
                MOVEMENT_ADJUSTMENT,
                actor_id=actor_id,
                notes=f"Stock opname: system ({system}) vs physical ({physical})",
                approved=True,
            )
            adjustments.append({
                "product_id": product_id,
                "system_quantity": system,
                "physical_quantity": physical,
                "difference": difference,
            })

        db.session.commit()
        logger.info(
            "Stock opname completed branch_id=%s adjustments=%s", branch_id, len(adjustments)
        )
        return adjustments

    return run_with_retry(_op)


# =============================================================================
# Read models
# =============================================================================

def stocks_for_branch(branch_id: int) -> list[Stock]:
    return (
        db.session.query(Stock)
        .filter_by(branch_id=branch_id)
        .order_by(Stock.quantity.asc(), Stock.id.asc())
        .all()
    )


def stocks_for_product(product_id: int) -> list[Stock]:
    return (
        db.session.query(Stock)
        .filter_by(product_id=product_id)
        .order_by(Stock.quantity.desc(), Stock.id.asc())
        .all()
    )


def low_stock_alerts(branch_id: int | None = None) -> list[Stock]:
    """Stocks at or below their minimum level."""
    q = db.session.query(Stock).filter(Stock.quantity <= Stock.minimum_stock)
    if branch_id is not None:
        q = q.filter(Stock.branch_id == branch_id)
    return q.order_by(Stock.quantity.asc(), Stock.id.asc()).all()


def list_movements(
    *,
    product_id: int | None = None,
    branch_id: int | None = None,
    movement_type: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = 200,
) -> list[StockMovement]:
    q = db.session.query(StockMovement)
    if product_id is not None:
        q = q.filter(StockMovement.product_id == product_id)
    if branch_id is not None:
        q = q.filter(
            db.or_(
                StockMovement.from_branch_id == branch_id,
                StockMovement.to_branch_id == branch_id,
            )
        )
    if movement_type is not None:
        q = q.filter(StockMovement.type == movement_type)
    if start is not None:
        q = q.filter(StockMovement.created_at >= start)
    if end is not None:
        q = q.filter(StockMovement.created_at <= end)
    return q.order_by(StockMovement.created_at.desc(), StockMovement.id.desc()).limit(limit).all()
