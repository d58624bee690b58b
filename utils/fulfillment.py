from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.config import logger
from core.errors import ActionResult, AlreadyDelivered, NotPaid, OrderNotFound, PersistenceError, StorefrontError
from models.order import Order


def mark_delivered(db: Session, order_id: str) -> ActionResult:
    """Paid -> Delivered. Unpaid or already delivered orders are rejected."""
    try:
        order = db.query(Order).filter(Order.id == order_id).first()
        if not order:
            raise OrderNotFound(order_id)
        if not order.is_paid:
            raise NotPaid(order_id)
        if order.is_delivered:
            raise AlreadyDelivered(order_id)

        updated = (
            db.query(Order)
            .filter(Order.id == order_id, Order.is_paid.is_(True), Order.is_delivered.is_(False))
            .update(
                {Order.is_delivered: True, Order.delivered_at: datetime.now(timezone.utc)},
                synchronize_session=False,
            )
        )
        if updated != 1:
            # Lost a race with another delivery
            raise AlreadyDelivered(order_id)
        db.commit()
    except StorefrontError as err:
        db.rollback()
        logger.info(f"[fulfillment] deliver {order_id} rejected: {err.code}")
        return ActionResult.fail(err)
    except SQLAlchemyError as ex:
        db.rollback()
        logger.warning(f"[fulfillment] deliver {order_id} failed: {ex}")
        return ActionResult.fail(PersistenceError(str(ex)))

    logger.info(f"[fulfillment] order {order_id} delivered")
    return ActionResult.ok("Order has been marked delivered", order_id=order_id)
