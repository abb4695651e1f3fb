"""
Stock ledger tests.

Verifies:
- Every quantity change appends a StockMovement with a consistent before/after chain
- Outbound movements never take a tracked product below zero
- Replaying movements reproduces current_stock, and drift is reported
"""

import pytest

from pos_engine.errors import BadRequestError, InsufficientStockError, NotFoundError
from pos_engine.models import Product, StockMovement
from pos_engine.services import stock_ledger


class TestAdjustStock:
    def test_purchase_adds_stock(self, db_session, widget, manager):
        movement = stock_ledger.adjust_stock(widget.id, 5, "PURCHASE", user_id=manager.id, notes="PO-17")

        assert movement.quantity == 5
        assert movement.quantity_before == 10
        assert movement.quantity_after == 15
        assert movement.reference_type == "manual"
        assert db_session.get(Product, widget.id).current_stock == 15

    def test_damage_must_remove_stock(self, db_session, widget):
        with pytest.raises(BadRequestError):
            stock_ledger.adjust_stock(widget.id, 2, "DAMAGE")

    def test_sale_type_not_allowed_manually(self, db_session, widget):
        with pytest.raises(BadRequestError):
            stock_ledger.adjust_stock(widget.id, -1, "SALE")

    def test_cannot_go_negative(self, db_session, gadget):
        with pytest.raises(InsufficientStockError) as exc:
            stock_ledger.adjust_stock(gadget.id, -3)

        assert exc.value.details["items"][0]["on_hand"] == 2
        assert db_session.get(Product, gadget.id).current_stock == 2
        assert db_session.query(StockMovement).count() == 0

    def test_backorder_product_may_go_negative(self, db_session, gadget):
        gadget.allow_backorder = True
        db_session.commit()

        movement = stock_ledger.adjust_stock(gadget.id, -5)
        assert movement.quantity_after == -3

    def test_missing_product(self, db_session):
        with pytest.raises(NotFoundError) as exc:
            stock_ledger.adjust_stock(999, 1)
        assert exc.value.details == {"product_ids": [999]}

    def test_zero_delta_rejected(self, db_session, widget):
        with pytest.raises(BadRequestError):
            stock_ledger.adjust_stock(widget.id, 0)


class TestCountStock:
    def test_count_records_difference(self, db_session, widget):
        movement = stock_ledger.count_stock(widget.id, 7, notes="Cycle count")

        assert movement.movement_type == "COUNT"
        assert movement.quantity == -3
        assert db_session.get(Product, widget.id).current_stock == 7

    def test_negative_count_rejected(self, db_session, widget):
        with pytest.raises(BadRequestError):
            stock_ledger.count_stock(widget.id, -1)


class TestLocking:
    def test_lock_products_reports_all_missing_ids(self, db_session, widget):
        with pytest.raises(NotFoundError) as exc:
            stock_ledger.lock_products([widget.id, 42, 41])
        assert exc.value.details["product_ids"] == [41, 42]

    def test_inactive_product_is_not_sellable(self, db_session, widget):
        widget.is_active = False
        db_session.commit()

        with pytest.raises(NotFoundError):
            stock_ledger.lock_products([widget.id])
        assert widget.id in stock_ledger.lock_products([widget.id], require_sellable=False)
        db_session.rollback()

    def test_check_availability_lists_every_short_line(self, db_session, widget, gadget):
        products = {widget.id: widget, gadget.id: gadget}
        with pytest.raises(InsufficientStockError) as exc:
            stock_ledger.check_availability(products, {widget.id: 11, gadget.id: 3})

        short = exc.value.details["items"]
        assert [item["product_id"] for item in short] == sorted([widget.id, gadget.id])

    def test_untracked_products_are_always_available(self, db_session, service_item):
        stock_ledger.check_availability({service_item.id: service_item}, {service_item.id: 100})


class TestReplay:
    def test_replay_matches_current_stock(self, db_session, widget):
        stock_ledger.adjust_stock(widget.id, 5, "PURCHASE")
        stock_ledger.adjust_stock(widget.id, -2, "DAMAGE")
        stock_ledger.count_stock(widget.id, 12)

        movements = stock_ledger.list_movements(widget.id)
        assert [m.quantity for m in movements] == [5, -2, -1]
        for previous, current in zip(movements, movements[1:]):
            assert current.quantity_before == previous.quantity_after

        assert stock_ledger.replay_quantity(widget.id) == 12
        assert stock_ledger.verify_product(db_session.get(Product, widget.id)) is None

    def test_no_movements(self, db_session, widget):
        assert stock_ledger.replay_quantity(widget.id) is None
        assert stock_ledger.verify_product(widget) is None

    def test_drift_is_reported(self, db_session, widget):
        stock_ledger.adjust_stock(widget.id, 5, "PURCHASE")
        product = db_session.get(Product, widget.id)
        product.current_stock = 99
        db_session.commit()

        report = stock_ledger.verify_product(product)
        assert report["current_stock"] == 99
        assert report["replayed"] == 15

    def test_broken_chain_is_reported(self, db_session, widget):
        stock_ledger.adjust_stock(widget.id, 5, "PURCHASE")
        stock_ledger.adjust_stock(widget.id, 1, "PURCHASE")
        last = stock_ledger.list_movements(widget.id)[-1]
        last.quantity_before = 3
        db_session.commit()

        report = stock_ledger.verify_product(db_session.get(Product, widget.id))
        assert "chain broken" in report["error"]
