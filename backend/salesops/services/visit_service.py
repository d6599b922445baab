# Overview: Service-layer operations for field visits; submit, approve, reject, archive and statistics.

from __future__ import annotations

import calendar
import logging
from datetime import date, timedelta

from sqlalchemy import func

from ..errors import NotFound, ValidationError
from ..extensions import db
from ..models import Area, Branch, User, Visit
from ..models.catalog import LIFECYCLE_ACTIVE
from ..models.visits import (
    VISIT_STATUS_APPROVED,
    VISIT_STATUS_PENDING,
    VISIT_STATUS_REJECTED,
    VISIT_TYPES,
)
from ..permissions import (
    APPROVE_VISITS,
    ARCHIVE_RECORDS,
    REJECT_VISITS,
    SUBMIT_VISITS,
    Capabilities,
)
from ..time_utils import today, utcnow
from ..validation import parse_date, parse_int, parse_text
from .approval_service import ensure_transition, mark_approved, mark_archived
from .concurrency import lock_for_update, run_with_retry
from .document_service import PREFIX_VISIT, allocate_reference_number


logger = logging.getLogger(__name__)

_TEXT_FIELDS = (
    "customer_phone",
    "customer_address",
    "purpose",
    "result",
    "notes",
    "photo",
)
_COORDINATE_FIELDS = ("latitude", "longitude")


def submit(draft: dict, *, actor_id: int, capabilities: Capabilities) -> Visit:
    """Create a pending visit. customer_name is required; visits never touch stock."""
    if not isinstance(draft, dict):
        raise ValidationError("Invalid JSON payload")
    if draft.get("branch_id") is None:
        raise ValidationError("branch_id is required")
    customer_name = parse_text(draft.get("customer_name"), "customer_name")
    if not customer_name:
        raise ValidationError("customer_name is required")

    branch_id = parse_int(draft["branch_id"], "branch_id")
    capabilities.require(SUBMIT_VISITS, branch_id=branch_id)

    visit_type = draft.get("visit_type") or "routine"
    if visit_type not in VISIT_TYPES:
        raise ValidationError(
            f"Invalid visit type '{visit_type}'. Must be one of: {', '.join(VISIT_TYPES)}"
        )
    visit_date = parse_date(draft["visit_date"], "visit_date") if draft.get("visit_date") else today()
    area_id = parse_int(draft["area_id"], "area_id") if draft.get("area_id") is not None else None
    sales_id = parse_int(draft["sales_id"], "sales_id") if draft.get("sales_id") is not None else actor_id
    texts = {key: parse_text(draft.get(key), key) for key in _TEXT_FIELDS}
    texts.update({key: parse_text(draft.get(key), key, allow_number=True) for key in _COORDINATE_FIELDS})

    def _op() -> Visit:
        if db.session.get(Branch, branch_id) is None:
            raise NotFound(f"Branch {branch_id} not found")
        if area_id is not None:
            area = db.session.get(Area, area_id)
            if area is None or area.branch_id != branch_id:
                raise ValidationError("area_id does not belong to the visit branch")
        if db.session.get(User, sales_id) is None:
            raise NotFound(f"User {sales_id} not found")

        visit = Visit(
            visit_number=allocate_reference_number(PREFIX_VISIT),
            visit_date=visit_date,
            branch_id=branch_id,
            sales_id=sales_id,
            area_id=area_id,
            customer_name=customer_name,
            visit_type=visit_type,
            status=VISIT_STATUS_PENDING,
            lifecycle_state=LIFECYCLE_ACTIVE,
        )
        for key, value in texts.items():
            setattr(visit, key, value)

        db.session.add(visit)
        db.session.commit()
        logger.info(
            "Visit submitted id=%s number=%s branch_id=%s sales_id=%s",
            visit.id, visit.visit_number, branch_id, sales_id,
        )
        return visit

    return run_with_retry(_op)


def _locked_visit(visit_id: int) -> Visit:
    visit = lock_for_update(db.session.query(Visit).filter_by(id=visit_id)).first()
    if visit is None:
        raise NotFound(f"Visit {visit_id} not found")
    return visit


def get_visit(visit_id: int) -> Visit:
    visit = db.session.get(Visit, visit_id)
    if visit is None:
        raise NotFound(f"Visit {visit_id} not found")
    return visit


def approve(visit_id: int, *, actor_id: int, capabilities: Capabilities) -> Visit:
    def _op() -> Visit:
        visit = _locked_visit(visit_id)
        capabilities.require(APPROVE_VISITS, branch_id=visit.branch_id)
        ensure_transition(visit, "approve", kind="visit")
        mark_approved(visit, actor_id, VISIT_STATUS_APPROVED)
        db.session.commit()
        logger.info("Visit approved id=%s actor_id=%s", visit.id, actor_id)
        return visit

    return run_with_retry(_op)


def reject(
    visit_id: int,
    *,
    actor_id: int,
    capabilities: Capabilities,
    reason: str | None = None,
) -> Visit:
    def _op() -> Visit:
        visit = _locked_visit(visit_id)
        capabilities.require(REJECT_VISITS, branch_id=visit.branch_id)
        ensure_transition(visit, "reject", kind="visit")
        visit.status = VISIT_STATUS_REJECTED
        visit.rejected_by = actor_id
        visit.rejected_at = utcnow()
        visit.rejection_reason = reason
        db.session.commit()
        logger.info("Visit rejected id=%s actor_id=%s", visit.id, actor_id)
        return visit

    return run_with_retry(_op)


def archive(visit_id: int, *, actor_id: int, capabilities: Capabilities) -> Visit:
    def _op() -> Visit:
        visit = _locked_visit(visit_id)
        capabilities.require(ARCHIVE_RECORDS, branch_id=visit.branch_id)
        mark_archived(visit, kind="visit")
        db.session.commit()
        logger.info("Visit archived id=%s actor_id=%s", visit.id, actor_id)
        return visit

    return run_with_retry(_op)


def _filtered_query(
    *,
    branch_id: int | None = None,
    sales_id: int | None = None,
    status: str | None = None,
    visit_type: str | None = None,
    start: date | None = None,
    end: date | None = None,
    include_archived: bool = False,
):
    q = db.session.query(Visit)
    if branch_id is not None:
        q = q.filter(Visit.branch_id == branch_id)
    if sales_id is not None:
        q = q.filter(Visit.sales_id == sales_id)
    if status is not None:
        q = q.filter(Visit.status == status)
    if visit_type is not None:
        q = q.filter(Visit.visit_type == visit_type)
    if start is not None:
        q = q.filter(Visit.visit_date >= start)
    if end is not None:
        q = q.filter(Visit.visit_date <= end)
    if not include_archived:
        q = q.filter(Visit.lifecycle_state == LIFECYCLE_ACTIVE)
    return q


def list_visits(**filters) -> list[Visit]:
    return (
        _filtered_query(**filters)
        .order_by(Visit.visit_date.desc(), Visit.id.desc())
        .all()
    )


def visits_with_locations(**filters) -> list[Visit]:
    """Visits carrying both coordinates, for map views."""
    return (
        _filtered_query(**filters)
        .filter(Visit.latitude.isnot(None), Visit.longitude.isnot(None))
        .order_by(Visit.visit_date.desc(), Visit.id.desc())
        .all()
    )


def visit_statistics(
    *,
    branch_id: int | None = None,
    sales_id: int | None = None,
    as_of: date | None = None,
) -> dict:
    """Counts by status plus today / this week (Monday start) / this month."""
    as_of = as_of or today()
    base = _filtered_query(branch_id=branch_id, sales_id=sales_id)

    by_status = dict(
        base.with_entities(Visit.status, func.count(Visit.id)).group_by(Visit.status).all()
    )
    week_start = as_of - timedelta(days=as_of.weekday())
    month_start = as_of.replace(day=1)
    month_end = as_of.replace(day=calendar.monthrange(as_of.year, as_of.month)[1])

    return {
        "total": sum(by_status.values()),
        "pending": by_status.get(VISIT_STATUS_PENDING, 0),
        "approved": by_status.get(VISIT_STATUS_APPROVED, 0),
        "rejected": by_status.get(VISIT_STATUS_REJECTED, 0),
        "today": base.filter(Visit.visit_date == as_of).count(),
        "this_week": base.filter(
            Visit.visit_date >= week_start, Visit.visit_date <= week_start + timedelta(days=6)
        ).count(),
        "this_month": base.filter(Visit.visit_date >= month_start, Visit.visit_date <= month_end).count(),
    }
