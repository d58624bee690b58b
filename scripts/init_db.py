"""
Initialize the database schema and optionally seed sample catalog data
Usage: python scripts/init_db.py [--seed]
"""
import sys
import os

# Add parent directory to path to import backend modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy.exc import SQLAlchemyError

from core.database import SessionLocal, init_db
from models.cart import Cart
from models.order import Order, OrderItem
from models.product import Product
from models.user import User

SAMPLE_PRODUCTS = [
    {"name": "Polo Sporting Stretch Shirt", "slug": "polo-sporting-stretch-shirt", "image": "/images/sample-products/p1-1.jpg", "price_cents": 5999, "stock": 5},
    {"name": "Brooks Brothers Long Sleeved Shirt", "slug": "brooks-brothers-long-sleeved-shirt", "image": "/images/sample-products/p2-1.jpg", "price_cents": 8599, "stock": 10},
    {"name": "Tommy Hilfiger Classic Fit Dress Shirt", "slug": "tommy-hilfiger-classic-fit-dress-shirt", "image": "/images/sample-products/p3-1.jpg", "price_cents": 9999, "stock": 0},
    {"name": "Calvin Klein Slim Fit Stretch Shirt", "slug": "calvin-klein-slim-fit-stretch-shirt", "image": "/images/sample-products/p4-1.jpg", "price_cents": 3999, "stock": 10},
    {"name": "Polo Ralph Lauren Oxford Shirt", "slug": "polo-ralph-lauren-oxford-shirt", "image": "/images/sample-products/p5-1.jpg", "price_cents": 7999, "stock": 12},
]

SAMPLE_USERS = [
    {"id": "admin-seed", "name": "Admin", "email": "admin@example.com", "role": "admin"},
    {"id": "user-seed", "name": "Jane", "email": "user@example.com", "role": "user"},
]


def seed(db):
    """Wipe carts, orders, products and users, then insert the sample set"""
    db.query(OrderItem).delete()
    db.query(Order).delete()
    db.query(Cart).delete()
    db.query(Product).delete()
    db.query(User).delete()
    db.add_all(Product(**p) for p in SAMPLE_PRODUCTS)
    db.add_all(User(**u) for u in SAMPLE_USERS)
    db.commit()


def main():
    print("Creating tables...")
    try:
        init_db()
        print("✓ Tables created successfully!")
    except SQLAlchemyError as e:
        print(f"✗ Error creating tables: {e}")
        sys.exit(1)

    if "--seed" not in sys.argv[1:]:
        return
    db = SessionLocal()
    try:
        seed(db)
        print(f"✓ Seeded {len(SAMPLE_PRODUCTS)} products and {len(SAMPLE_USERS)} users")
    except SQLAlchemyError as e:
        db.rollback()
        print(f"✗ Error seeding data: {e}")
        sys.exit(1)
    finally:
        db.close()


if __name__ == "__main__":
    main()
