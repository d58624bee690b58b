"""
Order assembly: turn a cart snapshot into an Order + OrderItems and empty the
cart, all in one transaction.
"""
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.config import logger, CURRENCY, PAYMENT_METHODS
from core.errors import (
    ActionResult,
    CartChanged,
    EmptyCart,
    MissingAddress,
    MissingPaymentMethod,
    PersistenceError,
    StorefrontError,
    Unauthenticated,
    UnknownPaymentMethod,
)
from models.cart import Cart
from models.order import Order, OrderItem
from models.user import User
from utils.cart_store import CartOwner, CartSnapshot, get_cart, snapshot
from utils.pricing import calc_price


def _check_preconditions(
    user_id: Optional[str],
    cart: Optional[CartSnapshot],
    shipping_address: Optional[dict],
    payment_method: Optional[str],
) -> None:
    if not user_id:
        raise Unauthenticated()
    if cart is None or cart.is_empty:
        raise EmptyCart()
    # Only the signed-in user's own cart can be checked out
    if cart.owner.user_id != user_id:
        raise EmptyCart()
    if not shipping_address:
        raise MissingAddress()
    if not payment_method:
        raise MissingPaymentMethod()
    if payment_method not in PAYMENT_METHODS:
        raise UnknownPaymentMethod(payment_method)


def _clear_cart(db: Session, cart: CartSnapshot) -> None:
    cleared = (
        db.query(Cart)
        .filter(Cart.id == cart.id, Cart.version == cart.version)
        .update(
            {
                Cart.items: [],
                Cart.items_price_cents: 0,
                Cart.shipping_price_cents: 0,
                Cart.tax_price_cents: 0,
                Cart.total_price_cents: 0,
                Cart.version: Cart.version + 1,
            },
            synchronize_session=False,
        )
    )
    if cleared != 1:
        raise CartChanged()


def place_order(
    db: Session,
    user_id: Optional[str],
    cart: Optional[CartSnapshot],
    shipping_address: Optional[dict],
    payment_method: Optional[str],
) -> ActionResult:
    """Create the order for ``cart`` and clear the cart atomically.

    The cart is cleared only if it is still at the version that was priced, so
    a double submit produces one order and one CartChanged failure.
    """
    try:
        _check_preconditions(user_id, cart, shipping_address, payment_method)

        lines = [it for it in cart.items if int(it.get("qty") or 0) > 0]
        prices = calc_price(lines)

        order = Order(
            user_id=user_id,
            shipping_address=dict(shipping_address),
            payment_method=payment_method,
            items_price_cents=prices.items_price_cents,
            shipping_price_cents=prices.shipping_price_cents,
            tax_price_cents=prices.tax_price_cents,
            total_price_cents=prices.total_price_cents,
            currency=CURRENCY,
            is_paid=False,
            is_delivered=False,
        )
        db.add(order)
        db.flush()

        for it in lines:
            db.add(OrderItem(
                order_id=order.id,
                product_id=it["product_id"],
                qty=int(it["qty"]),
                price_cents=int(it["price_cents"]),
                name=it.get("name") or "",
                slug=it.get("slug") or "",
                image=it.get("image"),
            ))

        _clear_cart(db, cart)
        db.commit()
    except StorefrontError as err:
        db.rollback()
        logger.info(f"[checkout] order not placed for user={user_id}: {err.code}")
        return ActionResult.fail(err)
    except SQLAlchemyError as ex:
        db.rollback()
        logger.warning(f"[checkout] transaction failed for user={user_id}: {ex}")
        return ActionResult.fail(PersistenceError(str(ex)))

    logger.info(f"[checkout] order {order.id} created for user={user_id} items={len(lines)} total_cents={order.total_price_cents}")
    return ActionResult.ok(
        "Order successfully created",
        redirect_to=f"/order/{order.id}",
        order_id=order.id,
    )


def place_order_for_user(db: Session, user_id: Optional[str]) -> ActionResult:
    """Resolve the user's cart and saved checkout preferences, then place the order."""
    if not user_id:
        return ActionResult.fail(Unauthenticated())
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        return ActionResult.fail(Unauthenticated())
    cart = get_cart(db, CartOwner.for_user(user_id))
    return place_order(
        db,
        user_id=user.id,
        cart=snapshot(cart) if cart else None,
        shipping_address=user.address,
        payment_method=user.payment_method,
    )
