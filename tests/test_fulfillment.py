"""Tests for delivery tracking."""

from models.order import Order
from utils.fulfillment import mark_delivered
from utils.reconcile import mark_order_paid

from conftest import make_product, make_user, place_test_order


def _order_id(db):
    user = make_user(db)
    product = make_product(db)
    return place_test_order(db, user, [(product, 1)])


def test_unpaid_order_cannot_be_delivered(db):
    order_id = _order_id(db)

    result = mark_delivered(db, order_id)

    assert result.code == "not_paid"
    db.expire_all()
    assert db.query(Order).filter(Order.id == order_id).one().is_delivered is False


def test_paid_order_is_delivered_once(db):
    order_id = _order_id(db)
    mark_order_paid(db, order_id)

    first = mark_delivered(db, order_id)
    second = mark_delivered(db, order_id)

    assert first.success
    assert second.code == "already_delivered"
    db.expire_all()
    order = db.query(Order).filter(Order.id == order_id).one()
    assert order.is_delivered is True
    assert order.delivered_at is not None


def test_unknown_order(db):
    assert mark_delivered(db, "missing").code == "order_not_found"
