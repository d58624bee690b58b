"""
Order models
- orders: one checkout, priced once at creation
- order_items: denormalized product snapshot per line
"""
import uuid
from sqlalchemy import Column, String, JSON, DateTime, Integer, Boolean, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from core.database import Base
from utils.pricing import format_cents


def _iso(dt):
    return dt.isoformat() if dt else None


class Order(Base):
    __tablename__ = "orders"

    id = Column(String(64), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(128), ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)

    shipping_address = Column(JSON, nullable=False)  # snapshot, not a live reference
    payment_method = Column(String(50), nullable=False)

    # Fixed at creation
    items_price_cents = Column(Integer, nullable=False, default=0)
    shipping_price_cents = Column(Integer, nullable=False, default=0)
    tax_price_cents = Column(Integer, nullable=False, default=0)
    total_price_cents = Column(Integer, nullable=False, default=0)
    currency = Column(String(10), nullable=False, default="USD")

    # Pending provider intent (PayPal order id, checkout session id)
    provider_order_id = Column(String(128), index=True, nullable=True)
    provider_approve_url = Column(String(1024), nullable=True)

    is_paid = Column(Boolean, nullable=False, default=False)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    payment_result = Column(JSON, nullable=True)  # {id, status, email_address, price_paid}

    is_delivered = Column(Boolean, nullable=False, default=False)
    delivered_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
    )
    user = relationship("User", lazy="joined")

    def to_dict(self, with_items: bool = True):
        data = {
            "id": self.id,
            "userId": self.user_id,
            "shippingAddress": self.shipping_address,
            "paymentMethod": self.payment_method,
            "itemsPrice": format_cents(self.items_price_cents or 0),
            "shippingPrice": format_cents(self.shipping_price_cents or 0),
            "taxPrice": format_cents(self.tax_price_cents or 0),
            "totalPrice": format_cents(self.total_price_cents or 0),
            "currency": self.currency,
            "isPaid": bool(self.is_paid),
            "paidAt": _iso(self.paid_at),
            "paymentResult": self.payment_result,
            "isDelivered": bool(self.is_delivered),
            "deliveredAt": _iso(self.delivered_at),
            "createdAt": _iso(self.created_at),
        }
        if self.user is not None:
            data["user"] = {"name": self.user.name, "email": self.user.email}
        if with_items:
            data["orderItems"] = [it.to_dict() for it in self.items]
        return data


class OrderItem(Base):
    __tablename__ = "order_items"

    order_id = Column(String(64), ForeignKey("orders.id", ondelete="CASCADE"), primary_key=True)
    product_id = Column(String(64), ForeignKey("products.id"), primary_key=True)

    qty = Column(Integer, nullable=False)
    price_cents = Column(Integer, nullable=False)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=False)
    image = Column(String(1024), nullable=True)

    order = relationship("Order", back_populates="items")

    def to_dict(self):
        return {
            "productId": self.product_id,
            "name": self.name,
            "slug": self.slug,
            "image": self.image,
            "qty": self.qty,
            "price": format_cents(self.price_cents or 0),
        }
