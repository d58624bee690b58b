"""
Read-side helpers for orders: lookups, paginated listings, the admin summary,
and administrative deletion.
"""
import math
from collections import OrderedDict

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.config import logger, PAGE_SIZE
from core.errors import ActionResult, OrderNotFound, PersistenceError
from models.order import Order
from models.product import Product
from models.user import User
from utils.pricing import format_cents


def get_order(db: Session, order_id: str):
    return db.query(Order).filter(Order.id == order_id).first()


def _page(query, page: int, limit: int):
    page = max(int(page or 1), 1)
    limit = max(int(limit or PAGE_SIZE), 1)
    total = query.order_by(None).count()
    rows = query.order_by(Order.created_at.desc()).offset((page - 1) * limit).limit(limit).all()
    return {
        "data": [o.to_dict(with_items=False) for o in rows],
        "totalPages": math.ceil(total / limit),
    }


def list_orders_for_user(db: Session, user_id: str, page: int = 1, limit: int = PAGE_SIZE):
    return _page(db.query(Order).filter(Order.user_id == user_id), page, limit)


def list_all_orders(db: Session, page: int = 1, limit: int = PAGE_SIZE):
    return _page(db.query(Order), page, limit)


def order_summary(db: Session):
    orders_count = db.query(func.count(Order.id)).scalar() or 0
    products_count = db.query(func.count(Product.id)).scalar() or 0
    users_count = db.query(func.count(User.id)).scalar() or 0
    total_cents = db.query(func.coalesce(func.sum(Order.total_price_cents), 0)).scalar() or 0

    # Grouped in Python so the same code runs on Postgres and SQLite
    monthly: "OrderedDict[str, int]" = OrderedDict()
    for created_at, cents in db.query(Order.created_at, Order.total_price_cents).order_by(Order.created_at.asc()).all():
        if not created_at:
            continue
        key = created_at.strftime("%m/%y")
        monthly[key] = monthly.get(key, 0) + int(cents or 0)

    latest = db.query(Order).order_by(Order.created_at.desc()).limit(6).all()

    return {
        "ordersCount": orders_count,
        "productsCount": products_count,
        "usersCount": users_count,
        "totalSales": format_cents(int(total_cents)),
        "salesData": [{"month": m, "totalSales": format_cents(c)} for m, c in monthly.items()],
        "latestOrders": [o.to_dict(with_items=False) for o in latest],
    }


def delete_order(db: Session, order_id: str) -> ActionResult:
    try:
        order = get_order(db, order_id)
        if not order:
            return ActionResult.fail(OrderNotFound(order_id))
        db.delete(order)
        db.commit()
        logger.info(f"[orders] order {order_id} deleted")
        return ActionResult.ok("Order deleted successfully", order_id=order_id)
    except SQLAlchemyError as ex:
        db.rollback()
        logger.warning(f"[orders] delete {order_id} failed: {ex}")
        return ActionResult.fail(PersistenceError(str(ex)))
