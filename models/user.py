"""
User model
Accounts are issued by the identity provider; we keep the checkout preferences
"""
from sqlalchemy import Column, String, JSON, DateTime
from sqlalchemy.sql import func
from core.database import Base

class User(Base):
    __tablename__ = "users"

    # Primary key - subject claim of the identity provider's token
    id = Column(String(128), primary_key=True, index=True)

    # Basic info
    name = Column(String(255), nullable=False, default="NO_NAME")
    email = Column(String(255), unique=True, index=True, nullable=False)
    role = Column(String(20), nullable=False, default="user")  # user, admin

    # Checkout preferences
    address = Column(JSON, nullable=True)  # {fullName, streetAddress, city, postalCode, country}
    payment_method = Column(String(50), nullable=True)  # PayPal, Card, CashOnDelivery

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "address": self.address,
            "paymentMethod": self.payment_method,
        }
