import csv
import io
from typing import Iterable, List

from sqlalchemy.orm import Session, joinedload

from . import models

STAMP = "%Y-%m-%d %H:%M:%S"


def _render(header: List[str], rows: Iterable[list]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(header)
    writer.writerows(rows)
    return buf.getvalue()


def _stamp(value) -> str:
    return value.strftime(STAMP) if value else ""


def users_csv(db: Session) -> str:
    users = db.query(models.User).order_by(models.User.created_at.desc(), models.User.id.desc()).all()
    return _render(
        ["ID", "Username", "Email", "Full Name", "Phone", "Role", "Status", "Created At"],
        (
            [u.id, u.username, u.email, u.full_name, u.phone or "", u.role, u.status, _stamp(u.created_at)]
            for u in users
        ),
    )


def products_csv(db: Session) -> str:
    products = (
        db.query(models.Product)
        .options(joinedload(models.Product.category))
        .order_by(models.Product.created_at.desc(), models.Product.id.desc())
        .all()
    )
    return _render(
        ["ID", "Name", "SKU", "Category", "Price", "Cost Price", "Quantity", "Status", "Created At"],
        (
            [
                p.id, p.name, p.sku, p.category.name if p.category else "N/A",
                p.price, p.cost_price, p.quantity, p.status, _stamp(p.created_at),
            ]
            for p in products
        ),
    )


def orders_csv(db: Session) -> str:
    orders = (
        db.query(models.Order)
        .options(joinedload(models.Order.customer))
        .order_by(models.Order.created_at.desc(), models.Order.id.desc())
        .all()
    )
    return _render(
        [
            "Order Number", "Customer", "Total Amount", "Discount", "Tax", "Grand Total",
            "Status", "Payment Status", "Payment Method", "Created At",
        ],
        (
            [
                o.order_number, o.customer.full_name, o.total_amount, o.discount, o.tax, o.grand_total,
                o.status, o.payment_status, o.payment_method, _stamp(o.created_at),
            ]
            for o in orders
        ),
    )
