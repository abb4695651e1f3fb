"""
Void and refund tests.

Verifies:
- COMPLETED -> VOIDED / REFUNDED, both terminal
- Exact reversal of stock, loyalty, customer aggregates and promotion usage
- Supervisor authorization rules and that failures leave the sale untouched
- Strict reversal refuses when later activity touched the same ledgers
"""

from datetime import timedelta

import pytest

from conftest import MANAGER_PIN, NOW, SUPERVISOR_PIN, cash_sale
from pos_engine.errors import (
    BadRequestError,
    ForbiddenError,
    InsufficientPointsError,
    InvalidStateError,
    NotFoundError,
    UnauthorizedError,
)
from pos_engine.models import Customer, Product, Promotion, PromotionUsage, Sale, StockMovement, User
from pos_engine.services import loyalty_ledger, promotions_service, sales_service, stock_ledger
from pos_engine.services.authorization_service import hash_pin


LATER = NOW + timedelta(hours=1)


@pytest.fixture
def sale(db_session, cashier, widget):
    """Completed cash sale of two widgets (stock 10 -> 8)."""
    return sales_service.create_sale(cash_sale((widget, 2)), cashier.id, now=NOW)


def _movements(db_session, reference_type):
    return (
        db_session.query(StockMovement)
        .filter_by(reference_type=reference_type)
        .order_by(StockMovement.id.asc())
        .all()
    )


# =============================================================================
# VOID
# =============================================================================


class TestVoid:
    def test_manager_voids_own_authority(self, db_session, sale, manager, widget):
        voided = sales_service.void_sale(sale.id, manager.id, "Wrong item", now=LATER)

        assert voided.status == "VOIDED"
        assert voided.voided_by_user_id == manager.id
        assert voided.void_authorized_by_user_id == manager.id
        assert voided.void_reason == "Wrong item"
        assert voided.voided_at == LATER
        assert db_session.get(Product, widget.id).current_stock == 10

    def test_stock_movements_are_replayed_in_reverse(self, db_session, sale, manager, widget):
        sales_service.void_sale(sale.id, manager.id, "Wrong item", now=LATER)

        returned = _movements(db_session, "void")
        assert len(returned) == 1
        assert returned[0].movement_type == "RETURN"
        assert returned[0].quantity == 2
        assert returned[0].quantity_before == 8
        assert returned[0].quantity_after == 10
        assert returned[0].reference_id == sale.id
        assert returned[0].notes == "Void: Wrong item"
        assert returned[0].unit_cost_cents == 6000
        assert stock_ledger.verify_product(db_session.get(Product, widget.id)) is None

    def test_cashier_with_supervisor_pin(self, db_session, sale, cashier, supervisor):
        voided = sales_service.void_sale(
            sale.id, cashier.id, "Customer left",
            supervisor_id=supervisor.id, supervisor_pin=SUPERVISOR_PIN, now=LATER,
        )
        assert voided.voided_by_user_id == cashier.id
        assert voided.void_authorized_by_user_id == supervisor.id

    def test_manager_can_authorize_by_pin(self, db_session, sale, cashier, manager):
        voided = sales_service.void_sale(
            sale.id, cashier.id, "Customer left",
            supervisor_id=manager.id, supervisor_pin=MANAGER_PIN, now=LATER,
        )
        assert voided.void_authorized_by_user_id == manager.id

    def test_void_is_terminal(self, db_session, sale, manager):
        sales_service.void_sale(sale.id, manager.id, "Wrong item", now=LATER)

        with pytest.raises(InvalidStateError) as exc:
            sales_service.void_sale(sale.id, manager.id, "Again", now=LATER)
        assert "VOIDED" in exc.value.message

        with pytest.raises(InvalidStateError):
            sales_service.refund_sale(sale.id, manager.id, "Again", now=LATER)

        assert len(_movements(db_session, "void")) == 1
        assert db_session.query(StockMovement).count() == 2

    def test_multi_line_sale(self, db_session, cashier, manager, widget, gadget, service_item):
        sale = sales_service.create_sale(
            cash_sale((widget, 1), (gadget, 2), (widget, 3), (service_item, 1)), cashier.id, now=NOW,
        )
        sales_service.void_sale(sale.id, manager.id, "Test", now=LATER)

        assert [m.quantity for m in _movements(db_session, "void")] == [1, 2, 3]
        assert db_session.get(Product, widget.id).current_stock == 10
        assert db_session.get(Product, gadget.id).current_stock == 2

    def test_missing_sale(self, db_session, manager):
        with pytest.raises(NotFoundError):
            sales_service.void_sale(404, manager.id, "Nope")

    @pytest.mark.parametrize("reason", [None, "", "   "])
    def test_reason_required(self, db_session, sale, manager, reason):
        with pytest.raises(BadRequestError):
            sales_service.void_sale(sale.id, manager.id, reason)


# =============================================================================
# AUTHORIZATION FAILURES
# =============================================================================


class TestVoidAuthorization:
    def _assert_untouched(self, db_session, sale, widget):
        assert db_session.get(Sale, sale.id).status == "COMPLETED"
        assert db_session.get(Product, widget.id).current_stock == 8
        assert db_session.query(StockMovement).count() == 1

    def test_supervisor_required(self, db_session, sale, cashier, widget):
        with pytest.raises(BadRequestError):
            sales_service.void_sale(sale.id, cashier.id, "Wrong item")
        self._assert_untouched(db_session, sale, widget)

    def test_pin_required(self, db_session, sale, cashier, supervisor, widget):
        with pytest.raises(BadRequestError):
            sales_service.void_sale(sale.id, cashier.id, "Wrong item", supervisor_id=supervisor.id)
        self._assert_untouched(db_session, sale, widget)

    def test_wrong_pin(self, db_session, sale, cashier, supervisor, widget):
        with pytest.raises(UnauthorizedError):
            sales_service.void_sale(
                sale.id, cashier.id, "Wrong item", supervisor_id=supervisor.id, supervisor_pin="0000",
            )
        self._assert_untouched(db_session, sale, widget)

    def test_unknown_supervisor(self, db_session, sale, cashier, widget):
        with pytest.raises(NotFoundError):
            sales_service.void_sale(sale.id, cashier.id, "Wrong item", supervisor_id=999, supervisor_pin="1234")
        self._assert_untouched(db_session, sale, widget)

    def test_supervisor_without_capability(self, db_session, sale, cashier, widget):
        peer = User(username="peer", role="cashier", supervisor_pin_hash=hash_pin("1111"))
        db_session.add(peer)
        db_session.commit()

        with pytest.raises(ForbiddenError):
            sales_service.void_sale(sale.id, cashier.id, "Wrong item", supervisor_id=peer.id, supervisor_pin="1111")
        self._assert_untouched(db_session, sale, widget)

    def test_inactive_supervisor(self, db_session, sale, cashier, supervisor, widget):
        supervisor.is_active = False
        db_session.commit()

        with pytest.raises(ForbiddenError):
            sales_service.void_sale(
                sale.id, cashier.id, "Wrong item", supervisor_id=supervisor.id, supervisor_pin=SUPERVISOR_PIN,
            )
        self._assert_untouched(db_session, sale, widget)

    def test_supervisor_without_pin(self, db_session, sale, cashier, widget):
        no_pin = User(username="nopin", role="cashier", can_authorize_void=True)
        db_session.add(no_pin)
        db_session.commit()

        with pytest.raises(UnauthorizedError):
            sales_service.void_sale(sale.id, cashier.id, "Wrong item", supervisor_id=no_pin.id, supervisor_pin="1234")
        self._assert_untouched(db_session, sale, widget)

    def test_capability_is_per_action(self, db_session, sale, cashier, widget):
        refunder = User(
            username="refunder", role="cashier", can_authorize_refund=True, supervisor_pin_hash=hash_pin("2222"),
        )
        db_session.add(refunder)
        db_session.commit()

        with pytest.raises(ForbiddenError):
            sales_service.void_sale(sale.id, cashier.id, "Wrong item", supervisor_id=refunder.id, supervisor_pin="2222")
        refunded = sales_service.refund_sale(
            sale.id, cashier.id, "Defective", supervisor_id=refunder.id, supervisor_pin="2222", now=LATER,
        )
        assert refunded.refund_authorized_by_user_id == refunder.id


# =============================================================================
# REFUND
# =============================================================================


class TestRefund:
    def test_full_refund(self, db_session, sale, supervisor, widget):
        refunded = sales_service.refund_sale(sale.id, supervisor.id, "Defective", now=LATER)

        assert refunded.status == "REFUNDED"
        assert refunded.refund_cents == refunded.total_cents == 22400
        assert refunded.refunded_by_user_id == supervisor.id
        assert refunded.refund_authorized_by_user_id == supervisor.id
        assert refunded.refunded_at == LATER
        assert all(item.quantity_refunded == item.quantity for item in refunded.items)

        returned = _movements(db_session, "refund")
        assert [(m.movement_type, m.quantity, m.notes) for m in returned] == [("RETURN", 2, "Refund: Defective")]
        assert db_session.get(Product, widget.id).current_stock == 10

    def test_refund_is_terminal(self, db_session, sale, supervisor):
        sales_service.refund_sale(sale.id, supervisor.id, "Defective", now=LATER)

        with pytest.raises(InvalidStateError) as exc:
            sales_service.refund_sale(sale.id, supervisor.id, "Again", now=LATER)
        assert "REFUNDED" in exc.value.message

        with pytest.raises(InvalidStateError):
            sales_service.void_sale(sale.id, supervisor.id, "Again", now=LATER)


# =============================================================================
# LOYALTY AND PROMOTION REVERSAL
# =============================================================================


class TestLedgerReversal:
    def test_points_and_aggregates_restored(self, db_session, cashier, manager, widget, customer):
        sale = sales_service.create_sale(
            cash_sale((widget, 2), customer_id=customer.id, points_to_redeem=20), cashier.id, now=NOW,
        )
        assert db_session.get(Customer, customer.id).loyalty_points == 32

        sales_service.void_sale(sale.id, manager.id, "Wrong customer", now=LATER)

        stored = db_session.get(Customer, customer.id)
        assert stored.loyalty_points == 50
        assert stored.lifetime_spend_cents == 0
        assert stored.total_transactions == 0

        history = loyalty_ledger.list_history(customer.id)
        reversal = [(h.transaction_type, h.points, h.balance_after, h.reference_type) for h in history[3:]]
        assert reversal == [("ADJUST", 20, 52, "void"), ("ADJUST", -2, 50, "void")]
        assert loyalty_ledger.verify_customer(stored) is None

    def test_void_after_earned_points_were_spent(self, db_session, cashier, manager, widget, customer):
        sale = sales_service.create_sale(cash_sale((widget, 2), customer_id=customer.id), cashier.id, now=NOW)
        loyalty_ledger.adjust_points(customer.id, -52, "EXPIRE")

        voided = sales_service.void_sale(sale.id, manager.id, "Wrong customer", now=LATER)

        assert voided.status == "VOIDED"
        assert db_session.get(Product, widget.id).current_stock == 10
        stored = db_session.get(Customer, customer.id)
        assert stored.loyalty_points == -2
        last = loyalty_ledger.list_history(customer.id)[-1]
        assert (last.transaction_type, last.points, last.balance_after) == ("ADJUST", -2, -2)
        assert loyalty_ledger.verify_customer(stored) is None

    def test_strict_refuses_after_earned_points_were_spent(
        self, app, monkeypatch, db_session, cashier, manager, widget, customer
    ):
        monkeypatch.setitem(app.config, "REVERSAL_POLICY", "strict")
        sale = sales_service.create_sale(cash_sale((widget, 2), customer_id=customer.id), cashier.id, now=NOW)
        loyalty_ledger.adjust_points(customer.id, -52, "EXPIRE")

        with pytest.raises(InvalidStateError):
            sales_service.void_sale(sale.id, manager.id, "Wrong customer", now=LATER)

        assert db_session.get(Sale, sale.id).status == "COMPLETED"
        assert db_session.get(Product, widget.id).current_stock == 8
        assert db_session.get(Customer, customer.id).loyalty_points == 0

    def test_redeeming_a_negative_balance_is_refused(self, db_session, cashier, manager, widget, customer):
        sale = sales_service.create_sale(cash_sale((widget, 2), customer_id=customer.id), cashier.id, now=NOW)
        loyalty_ledger.adjust_points(customer.id, -52, "EXPIRE")
        sales_service.void_sale(sale.id, manager.id, "Wrong customer", now=LATER)

        with pytest.raises(InsufficientPointsError):
            sales_service.create_sale(
                cash_sale((widget, 1), customer_id=customer.id, points_to_redeem=1), cashier.id, now=LATER,
            )

    def test_promotion_usage_released(self, db_session, cashier, manager, widget, customer):
        promo = promotions_service.create_promotion({
            "name": "Launch Week",
            "promotion_type": "fixed_amount",
            "discount_value": 500,
            "usage_limit": 1,
            "start_date": "2026-10-01T00:00:00",
            "end_date": "2026-10-31T23:59:59",
        })
        sale = sales_service.create_sale(cash_sale((widget, 1), customer_id=customer.id), cashier.id, now=NOW)
        assert sale.discount_cents == 500

        sales_service.void_sale(sale.id, manager.id, "Test", now=LATER)

        assert db_session.get(Promotion, promo.id).current_usage == 0
        usage = db_session.query(PromotionUsage).one()
        assert usage.released_at == LATER

        again = sales_service.create_sale(cash_sale((widget, 1), customer_id=customer.id), cashier.id, now=LATER)
        assert again.discount_cents == 500


# =============================================================================
# REVERSAL POLICY
# =============================================================================


class TestReversalPolicy:
    def test_delta_reverses_after_later_movements(self, db_session, sale, manager, widget):
        stock_ledger.adjust_stock(widget.id, 5, "PURCHASE")

        sales_service.void_sale(sale.id, manager.id, "Wrong item", now=LATER)
        assert db_session.get(Product, widget.id).current_stock == 15

    def test_strict_refuses_after_later_movements(self, app, monkeypatch, db_session, sale, manager, widget):
        monkeypatch.setitem(app.config, "REVERSAL_POLICY", "strict")
        stock_ledger.adjust_stock(widget.id, 5, "PURCHASE")

        with pytest.raises(InvalidStateError):
            sales_service.void_sale(sale.id, manager.id, "Wrong item", now=LATER)
        assert db_session.get(Sale, sale.id).status == "COMPLETED"
        assert db_session.get(Product, widget.id).current_stock == 13

    def test_strict_allows_untouched_sale(self, app, monkeypatch, db_session, sale, manager, widget):
        monkeypatch.setitem(app.config, "REVERSAL_POLICY", "strict")

        sales_service.void_sale(sale.id, manager.id, "Wrong item", now=LATER)
        assert db_session.get(Product, widget.id).current_stock == 10

    def test_strict_refuses_after_later_points(self, app, monkeypatch, db_session, cashier, manager, widget, customer):
        monkeypatch.setitem(app.config, "REVERSAL_POLICY", "strict")
        sale = sales_service.create_sale(cash_sale((widget, 2), customer_id=customer.id), cashier.id, now=NOW)
        loyalty_ledger.adjust_points(customer.id, 10, "BONUS")

        with pytest.raises(InvalidStateError):
            sales_service.void_sale(sale.id, manager.id, "Wrong customer", now=LATER)
