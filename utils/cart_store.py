"""
Cart store: the mutable pre-order basket.

Every call receives an explicit CartOwner; nothing is read from cookies or
other request state.
"""
import uuid
from dataclasses import dataclass
from typing import Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.config import logger
from core.errors import (
    ActionResult,
    InsufficientStock,
    InvalidQuantity,
    PersistenceError,
    ProductNotFound,
    StorefrontError,
    ValidationError,
)
from models.cart import Cart
from models.product import Product
from utils.pricing import calc_price


@dataclass(frozen=True)
class CartOwner:
    user_id: Optional[str] = None
    session_cart_id: Optional[str] = None

    def __post_init__(self):
        if bool(self.user_id) == bool(self.session_cart_id):
            raise ValueError("CartOwner needs exactly one of user_id or session_cart_id")

    @classmethod
    def for_user(cls, user_id: str) -> "CartOwner":
        return cls(user_id=user_id)

    @classmethod
    def for_session(cls, session_cart_id: str) -> "CartOwner":
        return cls(session_cart_id=session_cart_id)


@dataclass(frozen=True)
class CartSnapshot:
    """Read-only view of a cart taken at a known version."""

    id: str
    owner: CartOwner
    items: Tuple[dict, ...]
    items_price_cents: int
    shipping_price_cents: int
    tax_price_cents: int
    total_price_cents: int
    version: int

    @property
    def is_empty(self) -> bool:
        return not any(int(it.get("qty") or 0) > 0 for it in self.items)


def new_session_cart_id() -> str:
    return uuid.uuid4().hex


def _owner_filter(query, owner: CartOwner):
    if owner.user_id:
        return query.filter(Cart.user_id == owner.user_id)
    return query.filter(Cart.session_cart_id == owner.session_cart_id)


def get_cart(db: Session, owner: CartOwner) -> Optional[Cart]:
    return _owner_filter(db.query(Cart), owner).first()


def snapshot(cart: Cart) -> CartSnapshot:
    owner = CartOwner(user_id=cart.user_id) if cart.user_id else CartOwner(session_cart_id=cart.session_cart_id)
    return CartSnapshot(
        id=cart.id,
        owner=owner,
        items=tuple(dict(it) for it in (cart.items or [])),
        items_price_cents=cart.items_price_cents or 0,
        shipping_price_cents=cart.shipping_price_cents or 0,
        tax_price_cents=cart.tax_price_cents or 0,
        total_price_cents=cart.total_price_cents or 0,
        version=cart.version or 1,
    )


def _reprice(cart: Cart, items: list) -> None:
    prices = calc_price(items)
    # Assign a fresh list so the JSON column is flagged dirty
    cart.items = items
    cart.items_price_cents = prices.items_price_cents
    cart.shipping_price_cents = prices.shipping_price_cents
    cart.tax_price_cents = prices.tax_price_cents
    cart.total_price_cents = prices.total_price_cents
    cart.version = (cart.version or 0) + 1


def add_item(db: Session, owner: CartOwner, product_id: str, qty: int = 1) -> ActionResult:
    """Add ``qty`` units of a product, creating the cart on first add."""
    try:
        if isinstance(qty, bool) or not isinstance(qty, int) or qty <= 0:
            raise InvalidQuantity(qty)
        product = db.query(Product).filter(Product.id == product_id).first()
        if not product:
            raise ProductNotFound(product_id)

        cart = get_cart(db, owner)
        items = [dict(it) for it in (cart.items or [])] if cart else []
        existing = next((it for it in items if it.get("product_id") == product_id), None)
        new_qty = (int(existing["qty"]) if existing else 0) + qty
        if (product.stock or 0) < new_qty:
            raise InsufficientStock(product_id, new_qty, product.stock or 0)

        if existing:
            existing["qty"] = new_qty
        else:
            items.append({
                "product_id": product.id,
                "name": product.name,
                "slug": product.slug,
                "image": product.image,
                "qty": qty,
                "price_cents": product.price_cents,
            })

        if not cart:
            cart = Cart(user_id=owner.user_id, session_cart_id=owner.session_cart_id, items=[], version=0)
            db.add(cart)
        _reprice(cart, items)
        db.commit()
        db.refresh(cart)
        verb = "updated in" if existing else "added to"
        return ActionResult.ok(f"{product.name} {verb} cart", cart=cart.to_dict())
    except StorefrontError as err:
        db.rollback()
        return ActionResult.fail(err)
    except SQLAlchemyError as ex:
        db.rollback()
        logger.warning(f"[cart] add_item failed: {ex}")
        return ActionResult.fail(PersistenceError(str(ex)))


def remove_item(db: Session, owner: CartOwner, product_id: str) -> ActionResult:
    """Take one unit of a product out of the cart, dropping the line at zero."""
    try:
        cart = get_cart(db, owner)
        if not cart:
            raise ValidationError("Cart not found", field="cart")
        items = [dict(it) for it in (cart.items or [])]
        existing = next((it for it in items if it.get("product_id") == product_id), None)
        if not existing:
            raise ValidationError("Item not found", field="product_id", product_id=product_id)

        if int(existing["qty"]) <= 1:
            items = [it for it in items if it.get("product_id") != product_id]
        else:
            existing["qty"] = int(existing["qty"]) - 1

        _reprice(cart, items)
        db.commit()
        db.refresh(cart)
        return ActionResult.ok(f"{existing.get('name')} removed from cart", cart=cart.to_dict())
    except StorefrontError as err:
        db.rollback()
        return ActionResult.fail(err)
    except SQLAlchemyError as ex:
        db.rollback()
        logger.warning(f"[cart] remove_item failed: {ex}")
        return ActionResult.fail(PersistenceError(str(ex)))


def claim_session_cart(db: Session, session_cart_id: str, user_id: str) -> ActionResult:
    """On sign-in, the anonymous cart replaces whatever cart the user had."""
    try:
        session_cart = get_cart(db, CartOwner.for_session(session_cart_id))
        if not session_cart:
            return ActionResult.ok("Nothing to claim", claimed=False)
        db.query(Cart).filter(Cart.user_id == user_id).delete(synchronize_session=False)
        # Flush the delete before taking the unique user_id slot
        db.flush()
        session_cart.session_cart_id = None
        session_cart.user_id = user_id
        session_cart.version = (session_cart.version or 0) + 1
        db.commit()
        db.refresh(session_cart)
        logger.info(f"[cart] session cart {session_cart.id} claimed by user={user_id}")
        return ActionResult.ok("Cart claimed", claimed=True, cart=session_cart.to_dict())
    except SQLAlchemyError as ex:
        db.rollback()
        logger.warning(f"[cart] claim failed: {ex}")
        return ActionResult.fail(PersistenceError(str(ex)))


def delete_cart(db: Session, owner: CartOwner) -> ActionResult:
    try:
        deleted = _owner_filter(db.query(Cart), owner).delete(synchronize_session=False)
        db.commit()
        return ActionResult.ok("Cart deleted", deleted=bool(deleted))
    except SQLAlchemyError as ex:
        db.rollback()
        logger.warning(f"[cart] delete failed: {ex}")
        return ActionResult.fail(PersistenceError(str(ex)))
