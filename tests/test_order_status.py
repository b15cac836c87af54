from datetime import datetime

import pytest

from app.exceptions import StateError, ValidationError, NotFoundError, ImmutableRecordError
from app.models import OrderStatus, OrderStatusEntry, Product, StockMovement, ORDER_TRANSITIONS
from app.services.inventory_service import StockLedger
from app.services.sales_service import SalesService

HAPPY_PATH = ['confirmed', 'processing', 'shipped', 'delivered']


@pytest.fixture
def order(app, customer, product):
    return SalesService.create_order(
        customer.id, [{'product_id': product.id, 'quantity': 3, 'unit_price': 100.0}], actor_id='clerk'
    )


def _walk(order, statuses):
    for status in statuses:
        SalesService.transition_status(order.id, status, actor_id='ops')


class TestTransitions:
    def test_happy_path_appends_history(self, app, db, order):
        _walk(order, HAPPY_PATH)
        db.session.expire_all()
        order = SalesService.get_order(order.id)
        assert order.status is OrderStatus.DELIVERED
        assert [e.status.value for e in order.status_history] == ['pending'] + HAPPY_PATH
        assert order.shipped_date is not None
        assert order.delivered_date is not None

    def test_entry_carries_actor_notes_and_time(self, app, order):
        at = datetime(2024, 2, 29, 12, 0)
        entry = SalesService.transition_status(order.id, OrderStatus.CONFIRMED, notes='ok by phone',
                                               actor_id='agent-9', changed_at=at)
        assert (entry.status, entry.notes, entry.changed_by, entry.changed_at) == \
            (OrderStatus.CONFIRMED, 'ok by phone', 'agent-9', at)

    def test_skipping_states_is_rejected(self, app, db, order):
        with pytest.raises(StateError) as exc:
            SalesService.transition_status(order.id, 'shipped')
        assert exc.value.payload == {'from': 'pending', 'to': 'shipped'}
        db.session.expire_all()
        assert SalesService.get_order(order.id).status is OrderStatus.PENDING
        assert db.session.query(OrderStatusEntry).count() == 1

    @pytest.mark.parametrize('terminal_path', [HAPPY_PATH, ['cancelled']])
    def test_terminal_states_accept_nothing(self, app, order, terminal_path):
        _walk(order, terminal_path)
        for status in OrderStatus:
            with pytest.raises(StateError):
                SalesService.transition_status(order.id, status)

    @pytest.mark.parametrize('prefix', [[], ['confirmed'], ['confirmed', 'processing']])
    def test_cancel_from_any_open_state(self, app, order, prefix):
        _walk(order, prefix)
        entry = SalesService.transition_status(order.id, 'cancelled')
        assert entry.status is OrderStatus.CANCELLED

    def test_transition_table_is_closed(self):
        assert set(ORDER_TRANSITIONS) == set(OrderStatus)
        for status in OrderStatus:
            assert (not ORDER_TRANSITIONS[status]) == status.is_terminal

    def test_unknown_status_string(self, app, order):
        with pytest.raises(ValidationError):
            SalesService.transition_status(order.id, 'lost-in-space')

    def test_unknown_order(self, app):
        with pytest.raises(NotFoundError):
            SalesService.transition_status(12345, 'confirmed')


class TestFulfilmentStock:
    def test_shipping_moves_stock_out(self, app, db, order, product):
        _walk(order, ['confirmed', 'processing', 'shipped'])
        assert db.session.get(Product, product.id).stock_quantity == 17
        movement = StockLedger.movements(product.id)[-1]
        assert (movement.direction.value, movement.quantity, movement.reference_type, movement.reference_id) == \
            ('out', 3, StockMovement.REF_SALES_ORDER, order.id)
        assert StockLedger.reconcile(product.id).drift == 0

    def test_cancel_after_shipping_returns_stock(self, app, db, order, product):
        _walk(order, ['confirmed', 'processing', 'shipped', 'cancelled'])
        assert db.session.get(Product, product.id).stock_quantity == 20
        assert StockLedger.movements(product.id)[-1].reference_type == StockMovement.REF_SALES_RETURN

    def test_cancel_before_shipping_leaves_stock(self, app, db, order, product):
        _walk(order, ['confirmed', 'cancelled'])
        assert db.session.get(Product, product.id).stock_quantity == 20
        assert len(StockLedger.movements(product.id)) == 1

    def test_insufficient_stock_blocks_shipping(self, app, db, customer, make_product):
        scarce = make_product(stock=1)
        order = SalesService.create_order(customer.id, [{'product_id': scarce.id, 'quantity': 2, 'unit_price': 5.0}])
        _walk(order, ['confirmed', 'processing'])

        with pytest.raises(StateError):
            SalesService.transition_status(order.id, 'shipped')
        db.session.expire_all()
        assert SalesService.get_order(order.id).status is OrderStatus.PROCESSING
        assert db.session.get(Product, scarce.id).stock_quantity == 1


class TestHistoryIsAppendOnly:
    def test_entry_cannot_be_edited(self, app, db, order):
        entry = db.session.query(OrderStatusEntry).one()
        entry.notes = 'rewritten'
        with pytest.raises(ImmutableRecordError):
            db.session.flush()
        db.session.rollback()

    def test_entry_cannot_be_deleted(self, app, db, order):
        db.session.delete(db.session.query(OrderStatusEntry).one())
        with pytest.raises(ImmutableRecordError):
            db.session.commit()
        db.session.rollback()
        assert db.session.query(OrderStatusEntry).count() == 1
