# Overview: Pytest coverage for the sales transaction lifecycle (submit, approve, cancel, archive).

"""
Sales Transaction Approval Tests

Covers:
- submit(): pending only, totals, catalog price defaults, no stock effect
- approve(): per-line sale deltas, all-or-nothing on insufficient stock
- Terminal statuses reject further transitions
- cancel() / archive() and branch scope
- sales_summary()
"""

from decimal import Decimal

import pytest

from salesops.errors import (
    InsufficientStock,
    InvalidTransition,
    NotFound,
    PermissionDenied,
    ValidationError,
)
from salesops.models import Area, Commission, StockMovement
from salesops.services import stock_service, transaction_service
from salesops.time_utils import today


def _submit(user, caps, branch, lines, **extra):
    draft = {
        "branch_id": branch.id,
        "items": [{"product_id": p.id, "quantity": q} for p, q in lines],
    }
    draft.update(extra)
    return transaction_service.submit(draft, actor_id=user.id, capabilities=caps)


class TestSubmit:

    def test_submit_creates_pending_with_totals(self, db_session, branch, product, product_b, sales_user, sales_caps):
        txn = _submit(sales_user, sales_caps, branch, [(product, 2), (product_b, 1)], discount="5000.00")

        assert txn.status == "pending"
        assert txn.sales_id == sales_user.id
        assert txn.transaction_date == today()
        assert txn.payment_method == "cash"
        assert txn.subtotal == Decimal("80000.00")
        assert txn.total == Decimal("75000.00")
        assert txn.tax is None
        assert [item.line_number for item in txn.items] == [1, 2]
        assert txn.items[0].price == Decimal("25000.00")

    def test_submit_does_not_touch_stock(self, db_session, branch, product, set_stock, sales_user, sales_caps):
        set_stock(product, branch, 1)

        # Availability is decided at approval, not at submission.
        _submit(sales_user, sales_caps, branch, [(product, 50)])

        assert stock_service.balance(product.id, branch.id) == 1
        assert db_session.query(StockMovement).count() == 0

    def test_item_price_and_discount_override(self, db_session, branch, product, sales_user, sales_caps):
        txn = transaction_service.submit(
            {
                "branch_id": branch.id,
                "items": [{"product_id": product.id, "quantity": 3, "price": "24000.00", "discount": "2000.00"}],
            },
            actor_id=sales_user.id,
            capabilities=sales_caps,
        )
        assert txn.items[0].subtotal == Decimal("70000.00")
        assert txn.total == Decimal("70000.00")

    @pytest.mark.parametrize("items", [
        [],
        [{"product_id": None, "quantity": 1}],
        [{"quantity": 1}],
    ])
    def test_malformed_items_rejected(self, db_session, branch, sales_user, sales_caps, items):
        with pytest.raises(ValidationError):
            transaction_service.submit(
                {"branch_id": branch.id, "items": items},
                actor_id=sales_user.id,
                capabilities=sales_caps,
            )

    @pytest.mark.parametrize("quantity", [0, -1])
    def test_non_positive_quantity_rejected(self, db_session, branch, product, sales_user, sales_caps, quantity):
        with pytest.raises(ValidationError):
            _submit(sales_user, sales_caps, branch, [(product, quantity)])

    def test_unknown_product_rejected(self, db_session, branch, sales_user, sales_caps):
        with pytest.raises(ValidationError):
            transaction_service.submit(
                {"branch_id": branch.id, "items": [{"product_id": 99999, "quantity": 1}]},
                actor_id=sales_user.id,
                capabilities=sales_caps,
            )

    def test_invalid_payment_method_rejected(self, db_session, branch, product, sales_user, sales_caps):
        with pytest.raises(ValidationError):
            _submit(sales_user, sales_caps, branch, [(product, 1)], payment_method="barter")

    def test_tax_rejected_while_flag_off(self, db_session, branch, product, sales_user, sales_caps):
        with pytest.raises(ValidationError):
            _submit(sales_user, sales_caps, branch, [(product, 1)], tax="100.00")

    def test_tax_accepted_when_flag_on(self, app, monkeypatch, db_session, branch, product, sales_user, sales_caps):
        monkeypatch.setitem(app.config, "TAX_ENABLED", True)

        txn = _submit(sales_user, sales_caps, branch, [(product, 1)], tax="2750.00")

        assert txn.tax == Decimal("2750.00")
        assert txn.total == Decimal("27750.00")

    def test_area_must_belong_to_branch(self, db_session, branch, branch_b, product, sales_user, sales_caps):
        other_area = Area(branch_id=branch_b.id, code="SBY-01", name="Surabaya Utara", is_active=True)
        db_session.add(other_area)
        db_session.commit()

        with pytest.raises(ValidationError):
            _submit(sales_user, sales_caps, branch, [(product, 1)], area_id=other_area.id)

    def test_sales_agent_limited_to_own_branch(self, db_session, branch_b, product, sales_user, sales_caps):
        with pytest.raises(PermissionDenied):
            _submit(sales_user, sales_caps, branch_b, [(product, 1)])

    def test_transaction_numbers_follow_daily_sequence(self, db_session, branch, product, sales_user, sales_caps):
        first = _submit(sales_user, sales_caps, branch, [(product, 1)])
        second = _submit(sales_user, sales_caps, branch, [(product, 1)])

        prefix = f"TRX-{today():%Y%m%d}-"
        assert first.transaction_number == prefix + "0001"
        assert second.transaction_number == prefix + "0002"


class TestApprove:

    def test_approve_then_overdraw_leaves_second_pending(
        self, db_session, branch, product, set_stock, sales_user, sales_caps, branch_admin, admin_caps
    ):
        set_stock(product, branch, 10)

        first = _submit(sales_user, sales_caps, branch, [(product, 4)])
        approved = transaction_service.approve(first.id, actor_id=branch_admin.id, capabilities=admin_caps)

        assert approved.status == "approved"
        assert approved.approved_by == branch_admin.id
        assert approved.approved_at is not None
        assert stock_service.balance(product.id, branch.id) == 6

        second = _submit(sales_user, sales_caps, branch, [(product, 10)])
        with pytest.raises(InsufficientStock) as exc_info:
            transaction_service.approve(second.id, actor_id=branch_admin.id, capabilities=admin_caps)

        assert exc_info.value.available == 6
        assert stock_service.balance(product.id, branch.id) == 6
        reloaded = transaction_service.get_transaction(second.id)
        assert reloaded.status == "pending"
        assert reloaded.approved_by is None

    def test_approval_records_one_sale_movement_per_line(
        self, db_session, branch, product, product_b, set_stock, sales_user, sales_caps, branch_admin, admin_caps
    ):
        set_stock(product, branch, 10)
        set_stock(product_b, branch, 10)
        txn = _submit(sales_user, sales_caps, branch, [(product, 2), (product_b, 3)])

        transaction_service.approve(txn.id, actor_id=branch_admin.id, capabilities=admin_caps)

        movements = db_session.query(StockMovement).filter_by(type="sale").order_by(StockMovement.id).all()
        assert [(m.product_id, m.quantity, m.from_branch_id) for m in movements] == [
            (product.id, 2, branch.id),
            (product_b.id, 3, branch.id),
        ]
        assert all(txn.transaction_number in m.notes for m in movements)

    def test_partial_failure_rolls_back_every_line(
        self, db_session, branch, product, product_b, set_stock, sales_user, sales_caps, branch_admin, admin_caps
    ):
        set_stock(product, branch, 10)
        set_stock(product_b, branch, 1)
        txn = _submit(sales_user, sales_caps, branch, [(product, 2), (product_b, 5)])

        with pytest.raises(InsufficientStock) as exc_info:
            transaction_service.approve(txn.id, actor_id=branch_admin.id, capabilities=admin_caps)

        assert exc_info.value.product_id == product_b.id
        assert stock_service.balance(product.id, branch.id) == 10
        assert stock_service.balance(product_b.id, branch.id) == 1
        assert db_session.query(StockMovement).count() == 0
        assert transaction_service.get_transaction(txn.id).status == "pending"

    def test_pending_can_be_approved_after_restock(
        self, db_session, branch, product, set_stock, sales_user, sales_caps, branch_admin, admin_caps
    ):
        set_stock(product, branch, 1)
        txn = _submit(sales_user, sales_caps, branch, [(product, 3)])

        with pytest.raises(InsufficientStock):
            transaction_service.approve(txn.id, actor_id=branch_admin.id, capabilities=admin_caps)

        stock_service.add_stock(product.id, branch.id, 5)
        approved = transaction_service.approve(txn.id, actor_id=branch_admin.id, capabilities=admin_caps)

        assert approved.status == "approved"
        assert stock_service.balance(product.id, branch.id) == 3

    def test_approved_is_terminal(
        self, db_session, branch, product, set_stock, sales_user, sales_caps, branch_admin, admin_caps
    ):
        set_stock(product, branch, 10)
        txn = _submit(sales_user, sales_caps, branch, [(product, 4)])
        transaction_service.approve(txn.id, actor_id=branch_admin.id, capabilities=admin_caps)

        with pytest.raises(InvalidTransition):
            transaction_service.approve(txn.id, actor_id=branch_admin.id, capabilities=admin_caps)
        with pytest.raises(InvalidTransition):
            transaction_service.cancel(txn.id, actor_id=branch_admin.id, capabilities=admin_caps)

        # Stock moved exactly once.
        assert stock_service.balance(product.id, branch.id) == 6

    def test_sales_agent_cannot_approve(
        self, db_session, branch, product, set_stock, sales_user, sales_caps
    ):
        set_stock(product, branch, 10)
        txn = _submit(sales_user, sales_caps, branch, [(product, 1)])

        with pytest.raises(PermissionDenied):
            transaction_service.approve(txn.id, actor_id=sales_user.id, capabilities=sales_caps)
        assert stock_service.balance(product.id, branch.id) == 10

    def test_admin_of_other_branch_cannot_approve(
        self, db_session, branch, branch_b, product, set_stock, super_admin, super_caps, branch_admin, admin_caps
    ):
        set_stock(product, branch_b, 10)
        txn = _submit(super_admin, super_caps, branch_b, [(product, 1)])

        with pytest.raises(PermissionDenied):
            transaction_service.approve(txn.id, actor_id=branch_admin.id, capabilities=admin_caps)

        transaction_service.approve(txn.id, actor_id=super_admin.id, capabilities=super_caps)
        assert stock_service.balance(product.id, branch_b.id) == 9

    def test_unknown_transaction(self, db_session, branch_admin, admin_caps):
        with pytest.raises(NotFound):
            transaction_service.approve(99999, actor_id=branch_admin.id, capabilities=admin_caps)

    def test_no_commission_while_flag_off(
        self, db_session, branch, product, set_stock, sales_user, sales_caps, branch_admin, admin_caps
    ):
        set_stock(product, branch, 10)
        txn = _submit(sales_user, sales_caps, branch, [(product, 1)])
        transaction_service.approve(txn.id, actor_id=branch_admin.id, capabilities=admin_caps)

        assert db_session.query(Commission).count() == 0


class TestCancelAndArchive:

    def test_cancel_pending(self, db_session, branch, product, set_stock, sales_user, sales_caps, branch_admin, admin_caps):
        set_stock(product, branch, 10)
        txn = _submit(sales_user, sales_caps, branch, [(product, 4)])

        cancelled = transaction_service.cancel(
            txn.id, actor_id=branch_admin.id, capabilities=admin_caps, reason="customer refused"
        )

        assert cancelled.status == "cancelled"
        assert cancelled.cancelled_by == branch_admin.id
        assert cancelled.cancellation_reason == "customer refused"
        assert cancelled.approved_by is None
        assert stock_service.balance(product.id, branch.id) == 10

        with pytest.raises(InvalidTransition):
            transaction_service.approve(txn.id, actor_id=branch_admin.id, capabilities=admin_caps)
        assert stock_service.balance(product.id, branch.id) == 10

    def test_archive_hides_from_default_listing(
        self, db_session, branch, product, sales_user, sales_caps, branch_admin, admin_caps
    ):
        kept = _submit(sales_user, sales_caps, branch, [(product, 1)])
        archived = _submit(sales_user, sales_caps, branch, [(product, 1)])

        transaction_service.archive(archived.id, actor_id=branch_admin.id, capabilities=admin_caps)

        assert [t.id for t in transaction_service.list_transactions(branch_id=branch.id)] == [kept.id]
        assert {t.id for t in transaction_service.list_transactions(branch_id=branch.id, include_archived=True)} == {
            kept.id,
            archived.id,
        }

    def test_archived_cannot_transition(
        self, db_session, branch, product, set_stock, sales_user, sales_caps, branch_admin, admin_caps
    ):
        set_stock(product, branch, 10)
        txn = _submit(sales_user, sales_caps, branch, [(product, 1)])
        transaction_service.archive(txn.id, actor_id=branch_admin.id, capabilities=admin_caps)

        with pytest.raises(InvalidTransition):
            transaction_service.approve(txn.id, actor_id=branch_admin.id, capabilities=admin_caps)
        with pytest.raises(InvalidTransition):
            transaction_service.archive(txn.id, actor_id=branch_admin.id, capabilities=admin_caps)
        assert stock_service.balance(product.id, branch.id) == 10


class TestSalesSummary:

    def test_summary_counts_only_approved_revenue(
        self, db_session, branch, product, set_stock, sales_user, sales_caps, branch_admin, admin_caps
    ):
        set_stock(product, branch, 100)
        a = _submit(sales_user, sales_caps, branch, [(product, 2)])
        b = _submit(sales_user, sales_caps, branch, [(product, 4)])
        _submit(sales_user, sales_caps, branch, [(product, 1)])
        transaction_service.approve(a.id, actor_id=branch_admin.id, capabilities=admin_caps)
        transaction_service.approve(b.id, actor_id=branch_admin.id, capabilities=admin_caps)

        summary = transaction_service.sales_summary(sales_user.id)

        assert summary == {
            "sales_id": sales_user.id,
            "total_transactions": 3,
            "approved_transactions": 2,
            "total_sales": "150000.00",
            "average_transaction": "50000.00",
            "average_approved_transaction": "75000.00",
        }

    def test_average_spreads_over_cancelled_transactions(
        self, db_session, branch, product, set_stock, sales_user, sales_caps, branch_admin, admin_caps
    ):
        set_stock(product, branch, 100)
        approved = _submit(sales_user, sales_caps, branch, [(product, 4)])
        cancelled = _submit(sales_user, sales_caps, branch, [(product, 4)])
        transaction_service.approve(approved.id, actor_id=branch_admin.id, capabilities=admin_caps)
        transaction_service.cancel(cancelled.id, actor_id=branch_admin.id, capabilities=admin_caps)

        summary = transaction_service.sales_summary(sales_user.id)

        assert summary["total_sales"] == "100000.00"
        assert summary["average_transaction"] == "50000.00"
        assert summary["average_approved_transaction"] == "100000.00"

    def test_summary_without_sales(self, db_session, sales_user):
        summary = transaction_service.sales_summary(sales_user.id)
        assert summary["total_sales"] == "0.00"
        assert summary["average_transaction"] == "0.00"
        assert summary["average_approved_transaction"] == "0.00"
