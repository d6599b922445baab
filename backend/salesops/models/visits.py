from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, to_iso_date
from .catalog import LIFECYCLE_ACTIVE


VISIT_STATUS_PENDING = "pending"
VISIT_STATUS_APPROVED = "approved"
VISIT_STATUS_REJECTED = "rejected"

VISIT_TYPES = ("routine", "prospecting", "follow_up", "complaint", "other")


class Visit(db.Model):
    """
    Field visit logged by a sales agent.

    pending -> approved | rejected, both terminal. Visits never touch stock.
    """
    __tablename__ = "visits"
    __table_args__ = (
        db.UniqueConstraint("visit_number", name="uq_visits_number"),
        db.Index("ix_visits_branch_status_date", "branch_id", "status", "visit_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    visit_number = db.Column(db.String(64), nullable=False)
    visit_date = db.Column(db.Date, nullable=False, index=True)

    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    sales_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    area_id = db.Column(db.Integer, db.ForeignKey("areas.id"), nullable=True, index=True)

    customer_name = db.Column(db.String(255), nullable=False)
    customer_phone = db.Column(db.String(64), nullable=True)
    customer_address = db.Column(db.Text, nullable=True)

    visit_type = db.Column(db.String(16), nullable=False, default="routine")
    status = db.Column(db.String(16), nullable=False, default=VISIT_STATUS_PENDING, index=True)

    purpose = db.Column(db.Text, nullable=True)
    result = db.Column(db.Text, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    latitude = db.Column(db.String(32), nullable=True)
    longitude = db.Column(db.String(32), nullable=True)
    photo = db.Column(db.String(255), nullable=True)

    approved_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejected_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    rejected_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejection_reason = db.Column(db.Text, nullable=True)

    lifecycle_state = db.Column(db.String(16), nullable=False, default=LIFECYCLE_ACTIVE, index=True)
    archived_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    branch = db.relationship("Branch")
    sales = db.relationship("User", foreign_keys=[sales_id])
    area = db.relationship("Area")

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Visit id={self.id} number={self.visit_number!r} status={self.status}>"

    @property
    def has_location(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "visit_number": self.visit_number,
            "visit_date": to_iso_date(self.visit_date),
            "branch_id": self.branch_id,
            "sales_id": self.sales_id,
            "area_id": self.area_id,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "customer_address": self.customer_address,
            "visit_type": self.visit_type,
            "status": self.status,
            "purpose": self.purpose,
            "result": self.result,
            "notes": self.notes,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "photo": self.photo,
            "approved_by": self.approved_by,
            "approved_at": to_utc_z(self.approved_at) if self.approved_at else None,
            "rejected_by": self.rejected_by,
            "rejected_at": to_utc_z(self.rejected_at) if self.rejected_at else None,
            "rejection_reason": self.rejection_reason,
            "lifecycle_state": self.lifecycle_state,
            "created_at": to_utc_z(self.created_at),
        }
