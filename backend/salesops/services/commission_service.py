# Overview: Service-layer operations for sales commissions; optional module behind COMMISSIONS_ENABLED.

from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal

from flask import current_app

from ..errors import FeatureDisabled, InvalidTransition, NotFound, ValidationError
from ..extensions import db
from ..models import Commission, SalesTransaction
from ..models.sales import (
    COMMISSION_STATUS_APPROVED,
    COMMISSION_STATUS_PAID,
    COMMISSION_STATUS_PENDING,
)
from ..permissions import MANAGE_COMMISSIONS, Capabilities
from ..time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry


logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def commissions_enabled() -> bool:
    return bool(current_app.config.get("COMMISSIONS_ENABLED", False))


def require_enabled() -> None:
    if not commissions_enabled():
        raise FeatureDisabled("Commissions are disabled")


def default_rate() -> Decimal:
    return Decimal(str(current_app.config.get("DEFAULT_COMMISSION_RATE", "2.50")))


def compute(transaction: SalesTransaction, rate_percent) -> Commission:
    """
    Build (but do not persist) the commission for a transaction.

    commission_amount = total * rate / 100, rounded half-up to cents.
    """
    rate = Decimal(str(rate_percent))
    if rate < 0 or rate > 100:
        raise ValidationError("Commission rate must be between 0 and 100")

    total = Decimal(str(transaction.total))
    amount = (total * rate / Decimal(100)).quantize(CENT, rounding=ROUND_HALF_UP)

    return Commission(
        sales_transaction_id=transaction.id,
        sales_id=transaction.sales_id,
        transaction_amount=total,
        commission_percentage=rate.quantize(CENT, rounding=ROUND_HALF_UP),
        commission_amount=amount,
        status=COMMISSION_STATUS_PENDING,
    )


def record_for_transaction(transaction: SalesTransaction, rate_percent=None) -> Commission:
    """
    Persist the commission for an approved transaction (no commit).

    Called from inside the approval unit of work.
    """
    require_enabled()
    existing = db.session.query(Commission).filter_by(sales_transaction_id=transaction.id).first()
    if existing is not None:
        return existing

    commission = compute(transaction, default_rate() if rate_percent is None else rate_percent)
    db.session.add(commission)
    db.session.flush()
    logger.info(
        "Commission recorded transaction_id=%s sales_id=%s amount=%s",
        transaction.id, transaction.sales_id, commission.commission_amount,
    )
    return commission


def get_commission(commission_id: int) -> Commission:
    require_enabled()
    commission = db.session.get(Commission, commission_id)
    if commission is None:
        raise NotFound(f"Commission {commission_id} not found")
    return commission


def list_commissions(
    *,
    sales_id: int | None = None,
    branch_id: int | None = None,
    status: str | None = None,
) -> list[Commission]:
    require_enabled()
    q = db.session.query(Commission)
    if sales_id is not None:
        q = q.filter(Commission.sales_id == sales_id)
    if status is not None:
        q = q.filter(Commission.status == status)
    if branch_id is not None:
        q = q.join(SalesTransaction, Commission.sales_transaction_id == SalesTransaction.id).filter(
            SalesTransaction.branch_id == branch_id
        )
    return q.order_by(Commission.created_at.desc(), Commission.id.desc()).all()


def _locked_commission(commission_id: int) -> Commission:
    commission = lock_for_update(db.session.query(Commission).filter_by(id=commission_id)).first()
    if commission is None:
        raise NotFound(f"Commission {commission_id} not found")
    return commission


def approve_commission(commission_id: int, *, actor_id: int, capabilities: Capabilities) -> Commission:
    """pending -> approved."""
    require_enabled()

    def _op() -> Commission:
        commission = _locked_commission(commission_id)
        capabilities.require(MANAGE_COMMISSIONS, branch_id=commission.sales_transaction.branch_id)
        if commission.status != COMMISSION_STATUS_PENDING:
            raise InvalidTransition(
                f"Cannot approve commission with status {commission.status}",
                details={"id": commission.id, "status": commission.status},
            )
        commission.status = COMMISSION_STATUS_APPROVED
        commission.approved_by = actor_id
        commission.approved_at = utcnow()
        db.session.commit()
        logger.info("Commission approved id=%s actor_id=%s", commission.id, actor_id)
        return commission

    return run_with_retry(_op)


def mark_paid(
    commission_id: int,
    *,
    actor_id: int,
    capabilities: Capabilities,
    notes: str | None = None,
) -> Commission:
    """approved -> paid."""
    require_enabled()

    def _op() -> Commission:
        commission = _locked_commission(commission_id)
        capabilities.require(MANAGE_COMMISSIONS, branch_id=commission.sales_transaction.branch_id)
        if commission.status != COMMISSION_STATUS_APPROVED:
            raise InvalidTransition(
                f"Cannot pay commission with status {commission.status}",
                details={"id": commission.id, "status": commission.status},
            )
        commission.status = COMMISSION_STATUS_PAID
        commission.paid_at = utcnow()
        if notes:
            commission.notes = notes
        db.session.commit()
        logger.info("Commission paid id=%s actor_id=%s", commission.id, actor_id)
        return commission

    return run_with_retry(_op)
