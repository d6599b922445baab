from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, to_iso_date
from .catalog import LIFECYCLE_ACTIVE, money


TRANSACTION_STATUS_PENDING = "pending"
TRANSACTION_STATUS_APPROVED = "approved"
TRANSACTION_STATUS_CANCELLED = "cancelled"

PAYMENT_METHODS = ("cash", "transfer", "credit")


class SalesTransaction(db.Model):
    """
    Field sale recorded by a sales agent.

    LIFECYCLE:
    1. pending: submitted by the agent, no stock effect yet
    2. approved: branch admin approved; stock decremented per item (terminal)
    3. cancelled: branch admin cancelled; no stock effect (terminal)

    approved_by/approved_at are populated only for approved transactions.
    Cancellation has its own attribution columns.

    `tax` is deprecated and stays NULL unless TAX_ENABLED is set.
    """
    __tablename__ = "sales_transactions"
    __table_args__ = (
        db.UniqueConstraint("transaction_number", name="uq_sales_transactions_number"),
        db.Index("ix_sales_transactions_branch_status_date", "branch_id", "status", "transaction_date"),
        db.Index("ix_sales_transactions_sales_date", "sales_id", "transaction_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transaction_number = db.Column(db.String(64), nullable=False)
    transaction_date = db.Column(db.Date, nullable=False, index=True)

    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    sales_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    area_id = db.Column(db.Integer, db.ForeignKey("areas.id"), nullable=True, index=True)

    customer_name = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(64), nullable=True)
    customer_address = db.Column(db.Text, nullable=True)
    latitude = db.Column(db.String(32), nullable=True)
    longitude = db.Column(db.String(32), nullable=True)
    proof_photo = db.Column(db.String(255), nullable=True)

    subtotal = db.Column(db.Numeric(15, 2), nullable=False)
    discount = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    tax = db.Column(db.Numeric(15, 2), nullable=True)
    total = db.Column(db.Numeric(15, 2), nullable=False)

    payment_method = db.Column(db.String(16), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=TRANSACTION_STATUS_PENDING, index=True)
    notes = db.Column(db.Text, nullable=True)

    approved_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancellation_reason = db.Column(db.Text, nullable=True)

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
    items = db.relationship(
        "SalesTransactionItem",
        backref="transaction",
        order_by="SalesTransactionItem.line_number",
        cascade="all, delete-orphan",
        lazy=True,
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<SalesTransaction id={self.id} number={self.transaction_number!r} status={self.status}>"

    @property
    def total_quantity(self) -> int:
        return sum(item.quantity for item in self.items)

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "transaction_number": self.transaction_number,
            "transaction_date": to_iso_date(self.transaction_date),
            "branch_id": self.branch_id,
            "sales_id": self.sales_id,
            "area_id": self.area_id,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "customer_address": self.customer_address,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "proof_photo": self.proof_photo,
            "subtotal": money(self.subtotal),
            "discount": money(self.discount),
            "tax": money(self.tax),
            "total": money(self.total),
            "payment_method": self.payment_method,
            "status": self.status,
            "notes": self.notes,
            "approved_by": self.approved_by,
            "approved_at": to_utc_z(self.approved_at) if self.approved_at else None,
            "cancelled_by": self.cancelled_by,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "cancellation_reason": self.cancellation_reason,
            "lifecycle_state": self.lifecycle_state,
            "created_at": to_utc_z(self.created_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class SalesTransactionItem(db.Model):
    __tablename__ = "sales_transaction_items"
    __table_args__ = (
        db.UniqueConstraint("sales_transaction_id", "line_number", name="uq_sales_items_txn_line"),
        db.CheckConstraint("quantity > 0", name="ck_sales_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sales_transaction_id = db.Column(
        db.Integer, db.ForeignKey("sales_transactions.id"), nullable=False, index=True
    )
    line_number = db.Column(db.Integer, nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    price = db.Column(db.Numeric(15, 2), nullable=False)
    discount = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    subtotal = db.Column(db.Numeric(15, 2), nullable=False)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "line_number": self.line_number,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "price": money(self.price),
            "discount": money(self.discount),
            "subtotal": money(self.subtotal),
        }


COMMISSION_STATUS_PENDING = "pending"
COMMISSION_STATUS_APPROVED = "approved"
COMMISSION_STATUS_PAID = "paid"


class Commission(db.Model):
    """
    Sales agent commission derived from an approved transaction.

    Only written when COMMISSIONS_ENABLED is set. Payout lifecycle:
    pending -> approved -> paid.
    """
    __tablename__ = "commissions"
    __table_args__ = (
        db.UniqueConstraint("sales_transaction_id", name="uq_commissions_transaction"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sales_transaction_id = db.Column(
        db.Integer, db.ForeignKey("sales_transactions.id"), nullable=False, index=True
    )
    sales_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    transaction_amount = db.Column(db.Numeric(15, 2), nullable=False)
    commission_percentage = db.Column(db.Numeric(5, 2), nullable=False)
    commission_amount = db.Column(db.Numeric(15, 2), nullable=False)

    status = db.Column(db.String(16), nullable=False, default=COMMISSION_STATUS_PENDING, index=True)
    approved_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    sales_transaction = db.relationship("SalesTransaction", backref=db.backref("commission", uselist=False))
    sales = db.relationship("User", foreign_keys=[sales_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sales_transaction_id": self.sales_transaction_id,
            "sales_id": self.sales_id,
            "transaction_amount": money(self.transaction_amount),
            "commission_percentage": money(self.commission_percentage),
            "commission_amount": money(self.commission_amount),
            "status": self.status,
            "approved_by": self.approved_by,
            "approved_at": to_utc_z(self.approved_at) if self.approved_at else None,
            "paid_at": to_utc_z(self.paid_at) if self.paid_at else None,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
