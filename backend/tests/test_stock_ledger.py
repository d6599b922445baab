# Overview: Pytest coverage for the stock ledger (apply, adjust, transfer, opname, alerts).

"""
Stock Ledger Tests

Covers:
- apply(): outgoing movements never overdraw; balances equal the sum of deltas
- adjust(): signed corrections, zero rejected, overdraw rejected
- transfer(): both balances move or neither does (incl. injected credit failure)
- Movement records and reference numbers
- Bounded retry on lock conflicts
- Opname, minimum stock and low-stock alerts
"""

import pytest
from sqlalchemy.orm.exc import StaleDataError

from salesops.errors import (
    InsufficientStock,
    InvalidAdjustment,
    LedgerContention,
    NotFound,
    PermissionDenied,
    ValidationError,
)
from salesops.models import Stock, StockMovement
from salesops.services import stock_service
from salesops.services.document_service import is_reference_number


class TestApply:

    def test_incoming_creates_row_and_returns_new_quantity(self, db_session, product, branch):
        assert stock_service.balance(product.id, branch.id) == 0

        new_quantity = stock_service.apply(product.id, branch.id, 12, "in")

        assert new_quantity == 12
        assert stock_service.balance(product.id, branch.id) == 12

    def test_outgoing_within_balance(self, db_session, product, branch, set_stock):
        set_stock(product, branch, 10)

        assert stock_service.apply(product.id, branch.id, -4, "out") == 6
        assert stock_service.balance(product.id, branch.id) == 6

    @pytest.mark.parametrize("movement_type", ["out", "sale", "transfer"])
    def test_outgoing_overdraw_raises_insufficient_stock(
        self, db_session, product, branch, set_stock, movement_type
    ):
        set_stock(product, branch, 3)

        with pytest.raises(InsufficientStock) as exc_info:
            stock_service.apply(product.id, branch.id, -5, movement_type)

        assert exc_info.value.requested == 5
        assert exc_info.value.available == 3
        assert stock_service.balance(product.id, branch.id) == 3

    def test_outgoing_without_row_raises_and_creates_nothing(self, db_session, product, branch):
        with pytest.raises(InsufficientStock):
            stock_service.apply(product.id, branch.id, -1, "sale")

        assert db_session.query(Stock).count() == 0
        assert db_session.query(StockMovement).count() == 0

    def test_unknown_movement_type_rejected(self, db_session, product, branch):
        with pytest.raises(ValidationError):
            stock_service.apply(product.id, branch.id, 1, "gift")

    def test_sign_must_match_type(self, db_session, product, branch, set_stock):
        set_stock(product, branch, 5)
        with pytest.raises(ValidationError):
            stock_service.apply(product.id, branch.id, -1, "in")
        with pytest.raises(ValidationError):
            stock_service.apply(product.id, branch.id, 1, "sale")

    def test_unknown_product_or_branch(self, db_session, product, branch):
        with pytest.raises(NotFound):
            stock_service.apply(99999, branch.id, 1, "in")
        with pytest.raises(NotFound):
            stock_service.apply(product.id, 99999, 1, "in")

    def test_balance_equals_sum_of_deltas(self, db_session, product, branch):
        deltas = [(10, "in"), (-3, "out"), (5, "return"), (-7, "sale"), (2, "adjustment"), (-4, "adjustment")]
        for delta, movement_type in deltas:
            stock_service.apply(product.id, branch.id, delta, movement_type)

        assert stock_service.balance(product.id, branch.id) == sum(d for d, _ in deltas)
        assert db_session.query(StockMovement).count() == len(deltas)

    def test_movement_record_direction_and_reference(self, db_session, product, branch, set_stock):
        set_stock(product, branch, 10)

        stock_service.apply(product.id, branch.id, -2, "out", notes="damaged")
        stock_service.apply(product.id, branch.id, 5, "in")

        out_mv, in_mv = db_session.query(StockMovement).order_by(StockMovement.id).all()
        assert out_mv.from_branch_id == branch.id and out_mv.to_branch_id is None
        assert out_mv.quantity == 2
        assert out_mv.notes == "damaged"
        assert in_mv.to_branch_id == branch.id and in_mv.from_branch_id is None
        assert is_reference_number(out_mv.reference_number)
        assert out_mv.reference_number.startswith("STK-")
        assert out_mv.reference_number != in_mv.reference_number


class TestAdjust:

    def test_positive_and_negative_adjustments(self, db_session, product, branch, set_stock, branch_admin, admin_caps):
        set_stock(product, branch, 10)

        assert stock_service.adjust(product.id, branch.id, 5, "found", actor_id=branch_admin.id, capabilities=admin_caps) == 15
        assert stock_service.adjust(product.id, branch.id, -8, "shrinkage", actor_id=branch_admin.id, capabilities=admin_caps) == 7

        movements = db_session.query(StockMovement).filter_by(type="adjustment").all()
        assert len(movements) == 2
        assert all(m.approved_by == branch_admin.id for m in movements)

    def test_zero_adjustment_rejected(self, db_session, product, branch, set_stock, branch_admin, admin_caps):
        set_stock(product, branch, 10)

        with pytest.raises(InvalidAdjustment):
            stock_service.adjust(product.id, branch.id, 0, None, actor_id=branch_admin.id, capabilities=admin_caps)

        assert stock_service.balance(product.id, branch.id) == 10
        assert db_session.query(StockMovement).count() == 0

    def test_overdrawing_adjustment_rejected(self, db_session, product, branch, set_stock, branch_admin, admin_caps):
        set_stock(product, branch, 2)

        with pytest.raises(InvalidAdjustment):
            stock_service.adjust(product.id, branch.id, -3, None, actor_id=branch_admin.id, capabilities=admin_caps)

        assert stock_service.balance(product.id, branch.id) == 2

    def test_sales_role_cannot_adjust(self, db_session, product, branch, set_stock, sales_user, sales_caps):
        set_stock(product, branch, 2)

        with pytest.raises(PermissionDenied):
            stock_service.adjust(product.id, branch.id, 1, None, actor_id=sales_user.id, capabilities=sales_caps)

    def test_branch_admin_limited_to_own_branch(
        self, db_session, product, branch_b, set_stock, branch_admin, admin_caps
    ):
        set_stock(product, branch_b, 2)

        with pytest.raises(PermissionDenied):
            stock_service.adjust(product.id, branch_b.id, 1, None, actor_id=branch_admin.id, capabilities=admin_caps)

        assert stock_service.balance(product.id, branch_b.id) == 2


class TestTransfer:

    def test_transfer_moves_both_balances(
        self, db_session, product, branch, branch_b, set_stock, super_admin, super_caps
    ):
        set_stock(product, branch, 10)

        result = stock_service.transfer(
            product.id, branch.id, branch_b.id, 4, actor_id=super_admin.id, capabilities=super_caps
        )

        assert result == (6, 4)
        assert stock_service.balance(product.id, branch.id) == 6
        assert stock_service.balance(product.id, branch_b.id) == 4

        movement = db_session.query(StockMovement).filter_by(type="transfer").one()
        assert movement.from_branch_id == branch.id
        assert movement.to_branch_id == branch_b.id
        assert movement.quantity == 4

    def test_transfer_insufficient_changes_nothing(
        self, db_session, product, branch, branch_b, set_stock, super_admin, super_caps
    ):
        set_stock(product, branch, 3)
        set_stock(product, branch_b, 1)

        with pytest.raises(InsufficientStock):
            stock_service.transfer(product.id, branch.id, branch_b.id, 5, actor_id=super_admin.id, capabilities=super_caps)

        assert stock_service.balance(product.id, branch.id) == 3
        assert stock_service.balance(product.id, branch_b.id) == 1
        assert db_session.query(StockMovement).count() == 0

    def test_credit_failure_compensates_debit(
        self, db_session, monkeypatch, product, branch, branch_b, set_stock, super_admin, super_caps
    ):
        set_stock(product, branch, 10)
        set_stock(product, branch_b, 2)

        real_apply = stock_service.apply_locked
        calls = []

        def failing_credit(product_id, branch_id, delta, movement_type):
            calls.append((branch_id, delta))
            if branch_id == branch_b.id and delta > 0:
                raise InsufficientStock(product_id, branch_id, requested=delta, available=0)
            return real_apply(product_id, branch_id, delta, movement_type)

        monkeypatch.setattr(stock_service, "apply_locked", failing_credit)

        with pytest.raises(InsufficientStock):
            stock_service.transfer(product.id, branch.id, branch_b.id, 4, actor_id=super_admin.id, capabilities=super_caps)

        # debit, failed credit, compensating re-credit of the source
        assert calls == [(branch.id, -4), (branch_b.id, 4), (branch.id, 4)]
        assert stock_service.balance(product.id, branch.id) == 10
        assert stock_service.balance(product.id, branch_b.id) == 2
        assert db_session.query(StockMovement).count() == 0

    def test_same_branch_rejected(self, db_session, product, branch, set_stock, super_admin, super_caps):
        set_stock(product, branch, 10)
        with pytest.raises(ValidationError):
            stock_service.transfer(product.id, branch.id, branch.id, 1, actor_id=super_admin.id, capabilities=super_caps)

    @pytest.mark.parametrize("quantity", [0, -3])
    def test_non_positive_quantity_rejected(
        self, db_session, product, branch, branch_b, set_stock, super_admin, super_caps, quantity
    ):
        set_stock(product, branch, 10)
        with pytest.raises(ValidationError):
            stock_service.transfer(
                product.id, branch.id, branch_b.id, quantity, actor_id=super_admin.id, capabilities=super_caps
            )
        assert stock_service.balance(product.id, branch.id) == 10


class TestContentionRetry:

    def test_conflicts_retried_then_succeed(self, db_session, monkeypatch, product, branch, set_stock):
        set_stock(product, branch, 10)
        real_apply = stock_service.apply_locked
        attempts = {"n": 0}

        def flaky(product_id, branch_id, delta, movement_type):
            attempts["n"] += 1
            if attempts["n"] == 1:
                raise StaleDataError("simulated concurrent update")
            return real_apply(product_id, branch_id, delta, movement_type)

        monkeypatch.setattr(stock_service, "apply_locked", flaky)

        assert stock_service.apply(product.id, branch.id, -1, "out") == 9
        assert attempts["n"] == 2

    def test_conflicts_exhaust_into_ledger_contention(self, app, db_session, monkeypatch, product, branch, set_stock):
        set_stock(product, branch, 10)
        monkeypatch.setitem(app.config, "LEDGER_RETRY_ATTEMPTS", 3)
        attempts = {"n": 0}

        def always_stale(product_id, branch_id, delta, movement_type):
            attempts["n"] += 1
            raise StaleDataError("simulated concurrent update")

        monkeypatch.setattr(stock_service, "apply_locked", always_stale)

        with pytest.raises(LedgerContention) as exc_info:
            stock_service.apply(product.id, branch.id, -1, "out")

        assert attempts["n"] == 3
        assert exc_info.value.details["attempts"] == 3
        assert stock_service.balance(product.id, branch.id) == 10

    def test_business_errors_not_retried(self, db_session, monkeypatch, product, branch, set_stock):
        set_stock(product, branch, 1)
        real_apply = stock_service.apply_locked
        attempts = {"n": 0}

        def counting(*args):
            attempts["n"] += 1
            return real_apply(*args)

        monkeypatch.setattr(stock_service, "apply_locked", counting)

        with pytest.raises(InsufficientStock):
            stock_service.apply(product.id, branch.id, -2, "out")
        assert attempts["n"] == 1


class TestStockHousekeeping:

    def test_initialize_stock_books_opening_movement(self, db_session, product, branch):
        stock = stock_service.initialize_stock(product.id, branch.id, quantity=20, minimum_stock=5)

        assert stock.quantity == 20
        assert stock.minimum_stock == 5
        movement = db_session.query(StockMovement).one()
        assert movement.type == "in"
        assert movement.quantity == 20

    def test_initialize_stock_twice_rejected(self, db_session, product, branch):
        stock_service.initialize_stock(product.id, branch.id)
        with pytest.raises(ValidationError):
            stock_service.initialize_stock(product.id, branch.id)

    def test_low_stock_alerts(self, db_session, product, product_b, branch, branch_b, set_stock):
        set_stock(product, branch, 3, minimum_stock=5)
        set_stock(product_b, branch, 50, minimum_stock=5)
        set_stock(product, branch_b, 5, minimum_stock=5)

        all_low = stock_service.low_stock_alerts()
        assert {(s.product_id, s.branch_id) for s in all_low} == {
            (product.id, branch.id),
            (product.id, branch_b.id),
        }
        assert [s.branch_id for s in stock_service.low_stock_alerts(branch.id)] == [branch.id]

    def test_set_minimum_stock(self, db_session, product, branch, set_stock):
        set_stock(product, branch, 4)
        stock = stock_service.set_minimum_stock(product.id, branch.id, 6)
        assert stock.minimum_stock == 6
        assert stock.is_low

    def test_opname_adjusts_only_differences(
        self, db_session, product, product_b, branch, set_stock, branch_admin, admin_caps
    ):
        set_stock(product, branch, 10)
        set_stock(product_b, branch, 7)

        result = stock_service.stock_opname(
            branch.id,
            [
                {"product_id": product.id, "physical_quantity": 8},
                {"product_id": product_b.id, "physical_quantity": 7},
            ],
            actor_id=branch_admin.id,
            capabilities=admin_caps,
        )

        assert result == [{
            "product_id": product.id,
            "system_quantity": 10,
            "physical_quantity": 8,
            "difference": -2,
        }]
        assert stock_service.balance(product.id, branch.id) == 8
        assert stock_service.balance(product_b.id, branch.id) == 7
        movement = db_session.query(StockMovement).one()
        assert movement.type == "adjustment"
        assert "system (10) vs physical (8)" in movement.notes

    def test_opname_rejects_negative_count(self, db_session, product, branch, set_stock, branch_admin, admin_caps):
        set_stock(product, branch, 10)
        with pytest.raises(ValidationError):
            stock_service.stock_opname(
                branch.id,
                [{"product_id": product.id, "physical_quantity": -1}],
                actor_id=branch_admin.id,
                capabilities=admin_caps,
            )
        assert stock_service.balance(product.id, branch.id) == 10

    @pytest.mark.parametrize("entry", [5, [5], "KRT-001", None])
    def test_opname_rejects_non_object_counts(
        self, db_session, product, branch, set_stock, branch_admin, admin_caps, entry
    ):
        set_stock(product, branch, 10)
        with pytest.raises(ValidationError):
            stock_service.stock_opname(
                branch.id,
                [{"product_id": product.id, "physical_quantity": 8}, entry],
                actor_id=branch_admin.id,
                capabilities=admin_caps,
            )
        assert stock_service.balance(product.id, branch.id) == 10
        assert db_session.query(StockMovement).count() == 0

    def test_list_movements_filters_by_branch(
        self, db_session, product, branch, branch_b, set_stock, super_admin, super_caps
    ):
        set_stock(product, branch, 10)
        stock_service.apply(product.id, branch.id, -1, "out")
        stock_service.transfer(product.id, branch.id, branch_b.id, 2, actor_id=super_admin.id, capabilities=super_caps)

        assert len(stock_service.list_movements(branch_id=branch.id)) == 2
        assert len(stock_service.list_movements(branch_id=branch_b.id)) == 1
        assert len(stock_service.list_movements(movement_type="out")) == 1
