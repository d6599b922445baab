# Overview: Service-layer operations for reporting; sales, product and agent reports, commission summary and dashboard.

"""
Read-only reports.

Every report is scoped by an optional branch and an inclusive window on
transaction_date (default: the calendar month containing today). Revenue
figures only count approved, non-archived transactions, the same population
target progress uses. Nothing here writes.
"""

from __future__ import annotations

import calendar
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import func

from ..errors import ValidationError
from ..extensions import db
from ..models import Branch, Commission, Product, SalesTransaction, SalesTransactionItem, User, Visit
from ..models.catalog import LIFECYCLE_ACTIVE, money
from ..models.sales import (
    COMMISSION_STATUS_APPROVED,
    COMMISSION_STATUS_PAID,
    COMMISSION_STATUS_PENDING,
    TRANSACTION_STATUS_APPROVED,
    TRANSACTION_STATUS_PENDING,
)
from ..models.visits import VISIT_STATUS_PENDING
from ..permissions import ROLE_SALES
from ..time_utils import today
from . import commission_service, stock_service


CENT = Decimal("0.01")
ZERO = Decimal("0.00")

TOP_PRODUCTS_LIMIT = 20
DASHBOARD_LIST_LIMIT = 10
TREND_DAYS = 7


def _dec(value) -> Decimal:
    if value is None:
        return ZERO
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def _average(total: Decimal, count: int) -> Decimal:
    return (total / count).quantize(CENT, rounding=ROUND_HALF_UP) if count else ZERO


def resolve_window(start: date | None = None, end: date | None = None) -> tuple[date, date]:
    """Fill a missing bound from the month containing the other bound (or today)."""
    anchor = start or end or today()
    month_start = anchor.replace(day=1)
    month_end = anchor.replace(day=calendar.monthrange(anchor.year, anchor.month)[1])
    start = start or month_start
    end = end or month_end
    if start > end:
        raise ValidationError("start must be on or before end")
    return start, end


def _approved(branch_id: int | None, start: date, end: date):
    q = db.session.query(SalesTransaction).filter(
        SalesTransaction.status == TRANSACTION_STATUS_APPROVED,
        SalesTransaction.lifecycle_state == LIFECYCLE_ACTIVE,
        SalesTransaction.transaction_date >= start,
        SalesTransaction.transaction_date <= end,
    )
    if branch_id is not None:
        q = q.filter(SalesTransaction.branch_id == branch_id)
    return q


def _commissions(branch_id: int | None, start: date, end: date):
    """Commissions whose transaction falls in the window."""
    q = db.session.query(Commission).join(
        SalesTransaction, Commission.sales_transaction_id == SalesTransaction.id
    ).filter(
        SalesTransaction.transaction_date >= start,
        SalesTransaction.transaction_date <= end,
    )
    if branch_id is not None:
        q = q.filter(SalesTransaction.branch_id == branch_id)
    return q


def _window_dict(branch_id, start, end) -> dict:
    return {"branch_id": branch_id, "start": start.isoformat(), "end": end.isoformat()}


# =============================================================================
# Reports
# =============================================================================

def sales_report(*, branch_id: int | None = None, start: date | None = None, end: date | None = None) -> dict:
    """Approved sales summary plus a per-day breakdown."""
    start, end = resolve_window(start, end)
    base = _approved(branch_id, start, end)

    count, revenue, discount, tax = base.with_entities(
        func.count(SalesTransaction.id),
        func.sum(SalesTransaction.total),
        func.sum(SalesTransaction.discount),
        func.sum(SalesTransaction.tax),
    ).one()
    revenue = _dec(revenue)

    daily = (
        base.with_entities(
            SalesTransaction.transaction_date,
            func.count(SalesTransaction.id),
            func.sum(SalesTransaction.total),
        )
        .group_by(SalesTransaction.transaction_date)
        .order_by(SalesTransaction.transaction_date.asc())
        .all()
    )

    return {
        **_window_dict(branch_id, start, end),
        "summary": {
            "total_transactions": count,
            "total_revenue": money(revenue),
            "average_transaction": money(_average(revenue, count)),
            "total_discount": money(_dec(discount)),
            "total_tax": money(_dec(tax)),
        },
        "daily": [
            {"date": day.isoformat(), "transactions": day_count, "revenue": money(_dec(day_revenue))}
            for day, day_count, day_revenue in daily
        ],
    }


def product_performance(
    *,
    branch_id: int | None = None,
    start: date | None = None,
    end: date | None = None,
    limit: int = TOP_PRODUCTS_LIMIT,
) -> dict:
    """Best sellers by approved line revenue (ties broken by product id)."""
    start, end = resolve_window(start, end)
    revenue = func.sum(SalesTransactionItem.subtotal)
    rows = (
        _approved(branch_id, start, end)
        .join(SalesTransactionItem, SalesTransactionItem.sales_transaction_id == SalesTransaction.id)
        .join(Product, Product.id == SalesTransactionItem.product_id)
        .with_entities(
            Product.id,
            Product.code,
            Product.name,
            func.sum(SalesTransactionItem.quantity),
            revenue,
        )
        .group_by(Product.id, Product.code, Product.name)
        .order_by(revenue.desc(), Product.id.asc())
        .limit(limit)
        .all()
    )
    return {
        **_window_dict(branch_id, start, end),
        "products": [
            {
                "product_id": product_id,
                "code": code,
                "name": name,
                "total_quantity": int(quantity or 0),
                "total_revenue": money(_dec(line_revenue)),
            }
            for product_id, code, name, quantity, line_revenue in rows
        ],
    }


def sales_performance(*, branch_id: int | None = None, start: date | None = None, end: date | None = None) -> dict:
    """
    Approved transactions and revenue per sales agent, best first.

    Commission totals (all, pending, paid) are attached only while the
    commission module is enabled.
    """
    start, end = resolve_window(start, end)
    revenue = func.sum(SalesTransaction.total)
    rows = (
        _approved(branch_id, start, end)
        .join(User, User.id == SalesTransaction.sales_id)
        .with_entities(User.id, User.name, User.email, func.count(SalesTransaction.id), revenue)
        .group_by(User.id, User.name, User.email)
        .order_by(revenue.desc(), User.id.asc())
        .all()
    )

    with_commissions = commission_service.commissions_enabled()
    by_agent: dict[int, dict[str, Decimal]] = {}
    if with_commissions:
        commission_rows = (
            _commissions(branch_id, start, end)
            .with_entities(Commission.sales_id, Commission.status, func.sum(Commission.commission_amount))
            .group_by(Commission.sales_id, Commission.status)
            .all()
        )
        for sales_id, status, amount in commission_rows:
            by_agent.setdefault(sales_id, {})[status] = _dec(amount)

    agents = []
    for sales_id, name, email, count, agent_revenue in rows:
        entry = {
            "sales_id": sales_id,
            "name": name,
            "email": email,
            "total_transactions": count,
            "total_revenue": money(_dec(agent_revenue)),
        }
        if with_commissions:
            amounts = by_agent.get(sales_id, {})
            entry["total_commission"] = money(sum(amounts.values(), ZERO))
            entry["pending_commission"] = money(amounts.get(COMMISSION_STATUS_PENDING, ZERO))
            entry["paid_commission"] = money(amounts.get(COMMISSION_STATUS_PAID, ZERO))
        agents.append(entry)

    return {**_window_dict(branch_id, start, end), "agents": agents}


def commission_summary(*, branch_id: int | None = None, start: date | None = None, end: date | None = None) -> dict:
    """Commission amounts and counts per payout status. FeatureDisabled while the module is off."""
    commission_service.require_enabled()
    start, end = resolve_window(start, end)
    rows = (
        _commissions(branch_id, start, end)
        .with_entities(Commission.status, func.count(Commission.id), func.sum(Commission.commission_amount))
        .group_by(Commission.status)
        .all()
    )
    counts = {status: count for status, count, _ in rows}
    amounts = {status: _dec(amount) for status, _, amount in rows}

    summary = {"total_commissions": money(sum(amounts.values(), ZERO))}
    for status in (COMMISSION_STATUS_PENDING, COMMISSION_STATUS_APPROVED, COMMISSION_STATUS_PAID):
        summary[f"{status}_commissions"] = money(amounts.get(status, ZERO))
        summary[f"count_{status}"] = counts.get(status, 0)
    return {**_window_dict(branch_id, start, end), "summary": summary}


# =============================================================================
# Dashboard
# =============================================================================

def _scoped(q, column, branch_id):
    return q.filter(column == branch_id) if branch_id is not None else q


def dashboard(*, branch_id: int | None = None, as_of: date | None = None) -> dict:
    """
    Headline figures for an admin landing page.

    - stats: users, sales agents, branches, sellable products
    - month: transactions in the month of as_of (revenue from approved only)
    - recent_transactions / low_stock: latest 10 each
    - pending: work waiting for an admin
    - trend: approved count and revenue for the 7 days ending at as_of
    """
    as_of = as_of or today()
    month_start, month_end = resolve_window(as_of.replace(day=1))

    users = _scoped(db.session.query(User), User.branch_id, branch_id)
    stats = {
        "total_users": users.count(),
        "total_sales_agents": users.filter(User.role == ROLE_SALES).count(),
        "total_branches": db.session.query(Branch).count() if branch_id is None else 1,
        "total_products": db.session.query(Product).filter(
            Product.is_active.is_(True), Product.lifecycle_state == LIFECYCLE_ACTIVE
        ).count(),
    }

    month_all = _scoped(
        db.session.query(SalesTransaction).filter(
            SalesTransaction.lifecycle_state == LIFECYCLE_ACTIVE,
            SalesTransaction.transaction_date >= month_start,
            SalesTransaction.transaction_date <= month_end,
        ),
        SalesTransaction.branch_id,
        branch_id,
    )
    approved_count, approved_revenue = _approved(branch_id, month_start, month_end).with_entities(
        func.count(SalesTransaction.id), func.sum(SalesTransaction.total)
    ).one()
    approved_revenue = _dec(approved_revenue)
    month = {
        "start": month_start.isoformat(),
        "end": month_end.isoformat(),
        "total_transactions": month_all.count(),
        "approved_transactions": approved_count,
        "total_revenue": money(approved_revenue),
        "average_transaction": money(_average(approved_revenue, approved_count)),
    }

    recent = (
        _scoped(db.session.query(SalesTransaction), SalesTransaction.branch_id, branch_id)
        .filter(SalesTransaction.lifecycle_state == LIFECYCLE_ACTIVE)
        .order_by(SalesTransaction.created_at.desc(), SalesTransaction.id.desc())
        .limit(DASHBOARD_LIST_LIMIT)
        .all()
    )
    recent_transactions = [
        {
            "id": txn.id,
            "transaction_number": txn.transaction_number,
            "transaction_date": txn.transaction_date.isoformat(),
            "customer_name": txn.customer_name,
            "total": money(txn.total),
            "status": txn.status,
            "sales_name": txn.sales.name if txn.sales else None,
            "branch_name": txn.branch.name if txn.branch else None,
        }
        for txn in recent
    ]

    low_stock = [
        {
            "product_id": stock.product_id,
            "product_code": stock.product.code,
            "product_name": stock.product.name,
            "branch_id": stock.branch_id,
            "quantity": stock.quantity,
            "minimum_stock": stock.minimum_stock,
        }
        for stock in stock_service.low_stock_alerts(branch_id)[:DASHBOARD_LIST_LIMIT]
    ]

    pending = {
        "pending_transactions": _scoped(
            db.session.query(SalesTransaction).filter(
                SalesTransaction.status == TRANSACTION_STATUS_PENDING,
                SalesTransaction.lifecycle_state == LIFECYCLE_ACTIVE,
            ),
            SalesTransaction.branch_id,
            branch_id,
        ).count(),
        "pending_visits": _scoped(
            db.session.query(Visit).filter(
                Visit.status == VISIT_STATUS_PENDING, Visit.lifecycle_state == LIFECYCLE_ACTIVE
            ),
            Visit.branch_id,
            branch_id,
        ).count(),
        "inactive_users": users.filter(User.is_active.is_(False)).count(),
    }
    if commission_service.commissions_enabled():
        pending["pending_commissions"] = (
            _scoped(
                db.session.query(Commission).join(
                    SalesTransaction, Commission.sales_transaction_id == SalesTransaction.id
                ),
                SalesTransaction.branch_id,
                branch_id,
            )
            .filter(Commission.status == COMMISSION_STATUS_PENDING)
            .count()
        )

    trend_start = as_of - timedelta(days=TREND_DAYS - 1)
    per_day = {
        day: (count, _dec(day_revenue))
        for day, count, day_revenue in _approved(branch_id, trend_start, as_of)
        .with_entities(
            SalesTransaction.transaction_date,
            func.count(SalesTransaction.id),
            func.sum(SalesTransaction.total),
        )
        .group_by(SalesTransaction.transaction_date)
        .all()
    }
    trend = []
    for offset in range(TREND_DAYS):
        day = trend_start + timedelta(days=offset)
        count, day_revenue = per_day.get(day, (0, ZERO))
        trend.append({"date": day.isoformat(), "transactions": count, "revenue": money(day_revenue)})

    return {
        "branch_id": branch_id,
        "as_of": as_of.isoformat(),
        "stats": stats,
        "month": month,
        "recent_transactions": recent_transactions,
        "low_stock": low_stock,
        "pending": pending,
        "trend": trend,
    }
