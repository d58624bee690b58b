"""
Product model
The catalog is managed elsewhere; checkout reads price/display fields and
payment reconciliation decrements stock
"""
import uuid
from sqlalchemy import Column, String, Text, DateTime, Integer
from sqlalchemy.sql import func
from core.database import Base

class Product(Base):
    __tablename__ = "products"

    id = Column(String(64), primary_key=True, default=lambda: uuid.uuid4().hex)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), unique=True, index=True, nullable=False)
    image = Column(Text, nullable=True)

    price_cents = Column(Integer, nullable=False, default=0)
    stock = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
