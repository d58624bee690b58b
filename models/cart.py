"""
Cart model
One basket per owner: either an anonymous session token or a signed-in user
"""
import uuid
from sqlalchemy import Column, String, JSON, DateTime, Integer, CheckConstraint
from sqlalchemy.sql import func
from core.database import Base
from utils.pricing import format_cents


class Cart(Base):
    __tablename__ = "carts"
    __table_args__ = (
        CheckConstraint(
            "(session_cart_id IS NULL) <> (user_id IS NULL)",
            name="ck_carts_single_owner",
        ),
    )

    id = Column(String(64), primary_key=True, default=lambda: uuid.uuid4().hex)

    # Ownership (exactly one is set)
    session_cart_id = Column(String(128), unique=True, index=True, nullable=True)
    user_id = Column(String(128), unique=True, index=True, nullable=True)

    items = Column(JSON, nullable=False, default=list)  # [{product_id, name, slug, image, qty, price_cents}]

    # Derived from items on every mutation
    items_price_cents = Column(Integer, nullable=False, default=0)
    shipping_price_cents = Column(Integer, nullable=False, default=0)
    tax_price_cents = Column(Integer, nullable=False, default=0)
    total_price_cents = Column(Integer, nullable=False, default=0)

    # Bumped on every write; checkout clears the cart only at the version it priced
    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "sessionCartId": self.session_cart_id,
            "userId": self.user_id,
            "items": [
                {
                    "productId": it.get("product_id"),
                    "name": it.get("name"),
                    "slug": it.get("slug"),
                    "image": it.get("image"),
                    "qty": int(it.get("qty") or 0),
                    "price": format_cents(int(it.get("price_cents") or 0)),
                }
                for it in (self.items or [])
            ],
            "itemsPrice": format_cents(self.items_price_cents or 0),
            "shippingPrice": format_cents(self.shipping_price_cents or 0),
            "taxPrice": format_cents(self.tax_price_cents or 0),
            "totalPrice": format_cents(self.total_price_cents or 0),
            "version": self.version,
        }
