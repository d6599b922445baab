from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, to_iso_date
from .catalog import money


TARGET_TYPE_REVENUE = "revenue"
TARGET_TYPE_QUANTITY = "quantity"
TARGET_TYPES = (TARGET_TYPE_REVENUE, TARGET_TYPE_QUANTITY)

PERIOD_MONTHLY = "monthly"
PERIOD_QUARTERLY = "quarterly"
PERIOD_YEARLY = "yearly"
PERIOD_CUSTOM = "custom"
PERIOD_TYPES = (PERIOD_MONTHLY, PERIOD_QUARTERLY, PERIOD_YEARLY, PERIOD_CUSTOM)


class Target(db.Model):
    """
    Sales goal for a branch, a sales agent, or an agent within a branch.

    Exactly one of amount (revenue targets) or quantity (quantity targets)
    is populated; target_service enforces this on every write.
    """
    __tablename__ = "targets"
    __table_args__ = (
        db.Index("ix_targets_branch_period", "branch_id", "year", "month"),
        db.Index("ix_targets_user_period", "user_id", "year", "month"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    type = db.Column(db.String(16), nullable=False)
    amount = db.Column(db.Numeric(15, 2), nullable=True)
    quantity = db.Column(db.Integer, nullable=True)

    period_type = db.Column(db.String(16), nullable=False, default=PERIOD_MONTHLY)
    year = db.Column(db.Integer, nullable=False)
    month = db.Column(db.Integer, nullable=True)
    start_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    branch = db.relationship("Branch")
    user = db.relationship("User")

    def __repr__(self) -> str:
        return f"<Target id={self.id} type={self.type} period={self.period_type} {self.year}/{self.month}>"

    @property
    def goal(self):
        return self.amount if self.type == TARGET_TYPE_REVENUE else self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "user_id": self.user_id,
            "type": self.type,
            "amount": money(self.amount),
            "quantity": self.quantity,
            "period_type": self.period_type,
            "year": self.year,
            "month": self.month,
            "start_date": to_iso_date(self.start_date),
            "end_date": to_iso_date(self.end_date),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
