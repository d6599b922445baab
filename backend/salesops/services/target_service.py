# Overview: Service-layer operations for sales targets; CRUD rules and read-only progress aggregation.

"""
Targets and progress.

A target belongs to a branch, a sales agent, or an agent within a branch.
Revenue targets carry `amount`, quantity targets carry `quantity`; never
both. Progress counts approved, non-archived transactions only and never
writes anything.
"""

from __future__ import annotations

import calendar
import logging
from datetime import date
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import func

from ..errors import DuplicateRecord, NotFound, ValidationError
from ..extensions import db
from ..models import Branch, SalesTransaction, SalesTransactionItem, Target, User
from ..models.catalog import LIFECYCLE_ACTIVE
from ..models.sales import TRANSACTION_STATUS_APPROVED
from ..models.targets import (
    PERIOD_CUSTOM,
    PERIOD_MONTHLY,
    PERIOD_QUARTERLY,
    PERIOD_TYPES,
    PERIOD_YEARLY,
    TARGET_TYPE_QUANTITY,
    TARGET_TYPE_REVENUE,
    TARGET_TYPES,
)
from ..permissions import MANAGE_TARGETS, Capabilities
from ..time_utils import today
from ..validation import parse_date, parse_int, parse_money, parse_text


logger = logging.getLogger(__name__)

_FIELDS = (
    "branch_id",
    "user_id",
    "type",
    "amount",
    "quantity",
    "period_type",
    "year",
    "month",
    "start_date",
    "end_date",
)


def period_window(target: Target) -> tuple[date, date]:
    """Inclusive [start, end] dates covered by a target's period."""
    year = target.year
    if target.period_type == PERIOD_MONTHLY:
        last = calendar.monthrange(year, target.month)[1]
        return date(year, target.month, 1), date(year, target.month, last)
    if target.period_type == PERIOD_QUARTERLY:
        first_month = ((target.month - 1) // 3) * 3 + 1
        last_month = first_month + 2
        return (
            date(year, first_month, 1),
            date(year, last_month, calendar.monthrange(year, last_month)[1]),
        )
    if target.period_type == PERIOD_YEARLY:
        return date(year, 1, 1), date(year, 12, 31)
    return target.start_date, target.end_date


def progress(target: Target, as_of: date | None = None) -> dict:
    """
    Current achievement against the target's goal.

    Returns {"current", "goal", "percent", "start_date", "end_date"}. The window
    is clipped at `as_of`; revenue values are Decimal, quantity values int.
    """
    as_of = as_of or today()
    start, period_end = period_window(target)
    end = min(period_end, as_of)

    if target.type == TARGET_TYPE_REVENUE:
        measure = func.coalesce(func.sum(SalesTransaction.total), 0)
        q = db.session.query(measure)
    else:
        measure = func.coalesce(func.sum(SalesTransactionItem.quantity), 0)
        q = db.session.query(measure).join(
            SalesTransaction, SalesTransactionItem.sales_transaction_id == SalesTransaction.id
        )

    q = q.filter(
        SalesTransaction.status == TRANSACTION_STATUS_APPROVED,
        SalesTransaction.lifecycle_state == LIFECYCLE_ACTIVE,
        SalesTransaction.transaction_date >= start,
        SalesTransaction.transaction_date <= end,
    )
    if target.branch_id is not None:
        q = q.filter(SalesTransaction.branch_id == target.branch_id)
    if target.user_id is not None:
        q = q.filter(SalesTransaction.sales_id == target.user_id)

    raw = q.scalar() if start <= end else 0

    if target.type == TARGET_TYPE_REVENUE:
        current = Decimal(str(raw)).quantize(Decimal("0.01"))
        goal = Decimal(str(target.amount or 0))
    else:
        current = int(raw)
        goal = int(target.quantity or 0)

    if goal:
        percent = (Decimal(current) / Decimal(goal) * 100).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    else:
        percent = Decimal("0.00")

    return {
        "current": current,
        "goal": goal,
        "percent": percent,
        "start_date": start,
        "end_date": period_end,
    }


# =============================================================================
# CRUD
# =============================================================================

def _coerce(data: dict) -> dict:
    values = {}
    for key in _FIELDS:
        if key not in data:
            continue
        raw = data[key]
        if raw is None or raw == "":
            values[key] = None
        elif key in ("branch_id", "user_id", "quantity", "year", "month"):
            values[key] = parse_int(raw, key)
        elif key == "amount":
            values[key] = parse_money(raw, key)
        elif key in ("start_date", "end_date"):
            values[key] = parse_date(raw, key)
        else:
            values[key] = parse_text(raw, key)
    return values


def validate_target(values: dict) -> None:
    """Raise ValidationError unless `values` (a full field set) is a consistent target."""
    if values.get("branch_id") is None and values.get("user_id") is None:
        raise ValidationError("A target needs a branch_id, a user_id, or both")

    target_type = values.get("type")
    if target_type not in TARGET_TYPES:
        raise ValidationError(f"type must be one of: {', '.join(TARGET_TYPES)}")
    if target_type == TARGET_TYPE_REVENUE:
        if values.get("amount") is None:
            raise ValidationError("Revenue targets require amount")
        if values.get("quantity") is not None:
            raise ValidationError("Revenue targets cannot carry quantity")
        if values["amount"] <= 0:
            raise ValidationError("amount must be > 0")
    if target_type == TARGET_TYPE_QUANTITY:
        if values.get("quantity") is None:
            raise ValidationError("Quantity targets require quantity")
        if values.get("amount") is not None:
            raise ValidationError("Quantity targets cannot carry amount")
        if values["quantity"] <= 0:
            raise ValidationError("quantity must be > 0")

    period_type = values.get("period_type")
    if period_type not in PERIOD_TYPES:
        raise ValidationError(f"period_type must be one of: {', '.join(PERIOD_TYPES)}")

    year = values.get("year")
    if year is None or not 2000 <= year <= 2100:
        raise ValidationError("year must be between 2000 and 2100")

    month = values.get("month")
    if period_type in (PERIOD_MONTHLY, PERIOD_QUARTERLY):
        if month is None or not 1 <= month <= 12:
            raise ValidationError(f"{period_type} targets require month between 1 and 12")
    elif month is not None and not 1 <= month <= 12:
        raise ValidationError("month must be between 1 and 12")

    if period_type == PERIOD_CUSTOM:
        start, end = values.get("start_date"), values.get("end_date")
        if start is None or end is None:
            raise ValidationError("Custom targets require start_date and end_date")
        if start > end:
            raise ValidationError("start_date must be on or before end_date")


def _ensure_references(values: dict) -> None:
    if values.get("branch_id") is not None and db.session.get(Branch, values["branch_id"]) is None:
        raise NotFound(f"Branch {values['branch_id']} not found")
    if values.get("user_id") is not None and db.session.get(User, values["user_id"]) is None:
        raise NotFound(f"User {values['user_id']} not found")


def _ensure_unique(values: dict, exclude_id: int | None = None) -> None:
    q = db.session.query(Target).filter(
        Target.branch_id.is_(None) if values.get("branch_id") is None else Target.branch_id == values["branch_id"],
        Target.user_id.is_(None) if values.get("user_id") is None else Target.user_id == values["user_id"],
        Target.type == values["type"],
        Target.period_type == values["period_type"],
        Target.year == values["year"],
    )
    if values["period_type"] in (PERIOD_MONTHLY, PERIOD_QUARTERLY):
        q = q.filter(Target.month == values["month"])
    if values["period_type"] == PERIOD_CUSTOM:
        q = q.filter(Target.start_date == values["start_date"], Target.end_date == values["end_date"])
    if exclude_id is not None:
        q = q.filter(Target.id != exclude_id)
    if db.session.query(q.exists()).scalar():
        raise DuplicateRecord("A target for this owner and period already exists")


def _owner_branch(values: dict) -> int | None:
    if values.get("branch_id") is not None:
        return values["branch_id"]
    if values.get("user_id") is not None:
        user = db.session.get(User, values["user_id"])
        return user.branch_id if user else None
    return None


def _target_branch(target: Target) -> int | None:
    return _owner_branch({"branch_id": target.branch_id, "user_id": target.user_id})


def get_target(target_id: int) -> Target:
    target = db.session.get(Target, target_id)
    if target is None:
        raise NotFound(f"Target {target_id} not found")
    return target


def list_targets(
    *,
    branch_id: int | None = None,
    user_id: int | None = None,
    target_type: str | None = None,
    period_type: str | None = None,
    year: int | None = None,
    month: int | None = None,
) -> list[Target]:
    q = db.session.query(Target)
    if branch_id is not None:
        q = q.filter(Target.branch_id == branch_id)
    if user_id is not None:
        q = q.filter(Target.user_id == user_id)
    if target_type is not None:
        q = q.filter(Target.type == target_type)
    if period_type is not None:
        q = q.filter(Target.period_type == period_type)
    if year is not None:
        q = q.filter(Target.year == year)
    if month is not None:
        q = q.filter(Target.month == month)
    return q.order_by(Target.year.desc(), Target.month.desc(), Target.id.desc()).all()


def create_target(data: dict, *, capabilities: Capabilities) -> Target:
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    values = {key: None for key in _FIELDS}
    values["period_type"] = PERIOD_MONTHLY
    values.update(_coerce(data))
    if values["period_type"] == PERIOD_CUSTOM and values["year"] is None and values["start_date"]:
        values["year"] = values["start_date"].year

    validate_target(values)
    _ensure_references(values)
    capabilities.require(MANAGE_TARGETS, branch_id=_owner_branch(values))
    _ensure_unique(values)

    target = Target(**values)
    db.session.add(target)
    db.session.commit()
    logger.info(
        "Target created id=%s type=%s period=%s year=%s month=%s",
        target.id, target.type, target.period_type, target.year, target.month,
    )
    return target


def update_target(target_id: int, data: dict, *, capabilities: Capabilities) -> Target:
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    target = get_target(target_id)
    capabilities.require(MANAGE_TARGETS, branch_id=_target_branch(target))

    values = {key: getattr(target, key) for key in _FIELDS}
    values.update(_coerce(data))
    # Switching type drops the other goal column.
    if values["type"] == TARGET_TYPE_REVENUE and "quantity" not in data:
        values["quantity"] = None
    if values["type"] == TARGET_TYPE_QUANTITY and "amount" not in data:
        values["amount"] = None

    validate_target(values)
    _ensure_references(values)
    capabilities.require(MANAGE_TARGETS, branch_id=_owner_branch(values))
    _ensure_unique(values, exclude_id=target.id)

    for key, value in values.items():
        setattr(target, key, value)
    db.session.commit()
    logger.info("Target updated id=%s", target.id)
    return target


def delete_target(target_id: int, *, capabilities: Capabilities) -> None:
    target = get_target(target_id)
    capabilities.require(MANAGE_TARGETS, branch_id=_target_branch(target))
    db.session.delete(target)
    db.session.commit()
    logger.info("Target deleted id=%s", target_id)
