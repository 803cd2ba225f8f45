"""
Sample data loader
- Drops and recreates every table
- Inserts an admin, a manager, a few customers, categories, products and orders

Usage:
  python -m backoffice.seed --db-url sqlite:///./backoffice.db
"""
import argparse
import logging
import random
from decimal import Decimal

from sqlalchemy.orm import sessionmaker

from . import crud, orders, schemas
from .db import Base, make_engine

log = logging.getLogger(__name__)

USERS = [
    ("admin", "admin@company.com", "admin123", "System Administrator", "admin"),
    ("manager", "manager@company.com", "manager123", "Store Manager", "manager"),
    ("jdoe", "john@example.com", "user123", "John Doe", "user"),
    ("asmith", "alice@example.com", "user123", "Alice Smith", "user"),
]

CATEGORIES = [
    ("Electronics", "Phones, laptops and accessories", "bi-laptop"),
    ("Office Supplies", "Stationery and furniture", "bi-briefcase"),
    ("Groceries", "Food and household items", "bi-basket"),
]

PRODUCTS = [
    # name, category index, price, cost, quantity
    ("Wireless Mouse", 0, "1500.00", "900.00", 40),
    ("USB-C Charger", 0, "2500.00", "1400.00", 8),
    ("Laptop Stand", 0, "4200.00", "2600.00", 15),
    ("A4 Paper Ream", 1, "650.00", "420.00", 120),
    ("Office Chair", 1, "18500.00", "12000.00", 4),
    ("Ballpoint Pens (box)", 1, "300.00", "150.00", 60),
    ("Coffee Beans 1kg", 2, "1800.00", "1100.00", 25),
    ("Green Tea 100 bags", 2, "450.00", "260.00", 6),
]


def seed(db_url: str, order_count: int = 12) -> None:
    engine = make_engine(db_url)
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    Session = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)

    with Session() as db:
        users = [
            crud.create_user(
                db,
                schemas.UserCreate(username=u, email=e, password=p, full_name=n, role=r),
            )
            for u, e, p, n, r in USERS
        ]
        categories = [
            crud.create_category(db, schemas.CategoryCreate(name=n, description=d, icon=i))
            for n, d, i in CATEGORIES
        ]
        products = [
            crud.create_product(
                db,
                schemas.ProductCreate(
                    name=name,
                    price=Decimal(price),
                    cost_price=Decimal(cost),
                    quantity=qty,
                    category_id=categories[cat].id,
                ),
            )
            for name, cat, price, cost, qty in PRODUCTS
        ]

        customers = [u for u in users if u.role == "user"]
        rng = random.Random(42)
        for n in range(order_count):
            picks = rng.sample(products, k=rng.randint(1, 3))
            items = [{"product_id": p.id, "quantity": 1} for p in picks if p.quantity > 1]
            if not items:
                continue
            orders.place_order(
                db,
                rng.choice(customers).id,
                items,
                tax=Decimal("0"),
                payment_method=rng.choice(["cash", "card", "mpesa"]),
                shipping_address="Moi Avenue 12, Nairobi",
                order_number=f"ORD-SEED-{n + 1:04d}",
            )
    log.info("seeded %s with %d users, %d products", db_url, len(USERS), len(PRODUCTS))


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("--db-url", default="sqlite:///./backoffice.db", help="SQLAlchemy database URL")
    parser.add_argument("--orders", type=int, default=12, help="Number of sample orders")
    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO)
    seed(args.db_url, args.orders)


if __name__ == "__main__":
    main()
