"""Order placement, cancellation and status transitions.

Each mutating operation here is one database transaction: it either commits
the order, its line items and the matching stock movements together, or rolls
all of them back.
"""
import logging
import math
import random
import time
from collections import OrderedDict
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Iterable, List, NamedTuple, Optional

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload, selectinload

from . import inventory, models
from .errors import (
    AlreadyCancelled,
    BackofficeError,
    InsufficientStock,
    OrderNotFound,
    PersistenceFailure,
    ProductNotFound,
    UserNotFound,
    ValidationFailure,
)
from .utils import round_amount

log = logging.getLogger(__name__)

ZERO = Decimal("0")


class LineRequest(NamedTuple):
    product_id: int
    quantity: int


class OrderPage(NamedTuple):
    orders: List[models.Order]
    total: int
    page: int
    total_pages: int


def generate_order_number() -> str:
    return f"ORD-{int(time.time() * 1000)}-{random.randint(0, 999)}"


def _coerce_lines(items: Iterable) -> List[LineRequest]:
    lines = []
    for item in items:
        if isinstance(item, dict):
            pid, qty = item.get("product_id"), item.get("quantity")
        else:
            pid, qty = item.product_id, item.quantity
        try:
            pid, qty = int(pid), int(qty)
        except (TypeError, ValueError):
            raise ValidationFailure("Invalid items format")
        if qty < 1:
            raise ValidationFailure("Item quantity must be at least 1")
        lines.append(LineRequest(pid, qty))
    return lines


def place_order(
    db: Session,
    customer_id: int,
    items: Iterable,
    discount=ZERO,
    tax=ZERO,
    payment_method: str = "cash",
    shipping_address: str = "",
    notes: Optional[str] = None,
    order_number: Optional[str] = None,
) -> models.Order:
    # Early checks happen before anything touches the database transaction.
    lines = _coerce_lines(items)
    if not lines:
        raise ValidationFailure("Order must have at least one item")
    discount = round_amount(discount or ZERO)
    tax = round_amount(tax or ZERO)
    if discount < 0:
        raise ValidationFailure("Discount must be a positive number")
    if tax < 0:
        raise ValidationFailure("Tax must be a positive number")
    if payment_method not in models.PAYMENT_METHODS:
        raise ValidationFailure("Please select a valid payment method")
    if not shipping_address or not shipping_address.strip():
        raise ValidationFailure("Shipping address is required")

    requested: "OrderedDict[int, int]" = OrderedDict()
    for line in lines:
        requested[line.product_id] = requested.get(line.product_id, 0) + line.quantity

    try:
        if db.get(models.User, customer_id) is None:
            raise UserNotFound(customer_id, "Please select a valid customer")

        products = db.scalars(
            select(models.Product)
            .where(models.Product.id.in_(list(requested)))
            .with_for_update()
            .execution_options(populate_existing=True)
        ).all()
        by_id = {p.id: p for p in products}

        subtotal = ZERO
        for line in lines:
            product = by_id.get(line.product_id)
            if product is None:
                raise ProductNotFound(line.product_id)
            wanted = requested[line.product_id]
            if product.quantity < wanted:
                raise InsufficientStock(product.id, wanted, product.quantity, product.name)
            subtotal += Decimal(product.price) * line.quantity

        subtotal = round_amount(subtotal)
        grand_total = subtotal - discount + tax
        if grand_total < 0:
            raise ValidationFailure("Discount cannot exceed the order total")

        order = models.Order(
            order_number=order_number or generate_order_number(),
            customer_id=customer_id,
            total_amount=subtotal,
            discount=discount,
            tax=tax,
            grand_total=grand_total,
            status="pending",
            payment_status="pending",
            payment_method=payment_method,
            shipping_address=shipping_address.strip(),
            notes=notes or None,
        )
        db.add(order)
        db.flush()

        for line in lines:
            product = by_id[line.product_id]
            unit_price = round_amount(product.price)
            db.add(
                models.OrderItem(
                    order_id=order.id,
                    product_id=product.id,
                    quantity=line.quantity,
                    unit_price=unit_price,
                    subtotal=unit_price * line.quantity,
                )
            )
            inventory.reserve(db, product.id, line.quantity)

        db.commit()
    except BackofficeError:
        db.rollback()
        raise
    except IntegrityError as e:
        db.rollback()
        raise PersistenceFailure("integrity error: order could not be saved") from e
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceFailure("Error creating order") from e

    db.refresh(order)
    log.info(
        "order %s placed for customer %s: %d line(s), grand total %s",
        order.order_number, customer_id, len(lines), order.grand_total,
    )
    return order


def cancelled_payment_status(current: str) -> str:
    return "refunded" if current == "paid" else "failed"


def cancel_order(db: Session, order_id: int) -> models.Order:
    try:
        order = db.scalars(
            select(models.Order)
            .where(models.Order.id == order_id)
            .options(selectinload(models.Order.items))
            .with_for_update()
            .execution_options(populate_existing=True)
        ).one_or_none()
        if order is None:
            raise OrderNotFound(order_id)
        if order.status == "cancelled":
            raise AlreadyCancelled(order_id)

        for item in order.items:
            inventory.release(db, item.product_id, item.quantity)

        order.status = "cancelled"
        order.payment_status = cancelled_payment_status(order.payment_status)
        db.commit()
    except BackofficeError:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceFailure("Error cancelling order") from e

    db.refresh(order)
    log.info("order %s cancelled, payment status %s", order.order_number, order.payment_status)
    return order


def update_order_status(
    db: Session, order_id: int, status: Optional[str] = None, payment_status: Optional[str] = None
) -> models.Order:
    if status is not None and status not in models.ORDER_STATUSES:
        raise ValidationFailure(f"invalid status: {status}")
    if payment_status is not None and payment_status not in models.PAYMENT_STATUSES:
        raise ValidationFailure(f"invalid payment status: {payment_status}")
    if status == "cancelled":
        raise ValidationFailure("use cancel to cancel an order")

    order = db.get(models.Order, order_id)
    if order is None:
        raise OrderNotFound(order_id)
    if order.status == "cancelled" and (status or payment_status):
        raise AlreadyCancelled(order_id)

    if status:
        order.status = status
    if payment_status:
        order.payment_status = payment_status
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceFailure("Error updating order") from e
    db.refresh(order)
    log.info("order %s now %s/%s", order.order_number, order.status, order.payment_status)
    return order


def get_order(db: Session, order_id: int) -> models.Order:
    order = db.scalars(
        select(models.Order)
        .where(models.Order.id == order_id)
        .options(
            joinedload(models.Order.customer),
            selectinload(models.Order.items).joinedload(models.OrderItem.product),
        )
    ).one_or_none()
    if order is None:
        raise OrderNotFound(order_id)
    return order


def list_orders(
    db: Session,
    search: str = "",
    status: str = "",
    payment_status: str = "",
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    customer_id: Optional[int] = None,
    page: int = 1,
    limit: int = 10,
) -> OrderPage:
    page = max(page, 1)
    limit = max(limit, 1)
    query = db.query(models.Order).join(models.User, models.Order.customer_id == models.User.id)
    if search:
        like = f"%{search}%"
        query = query.filter(
            or_(
                models.Order.order_number.like(like),
                models.User.full_name.like(like),
                models.User.email.like(like),
            )
        )
    if status:
        query = query.filter(models.Order.status == status)
    if payment_status:
        query = query.filter(models.Order.payment_status == payment_status)
    if start_date:
        query = query.filter(models.Order.created_at >= start_date)
    if end_date:
        # inclusive of the whole end day
        query = query.filter(models.Order.created_at < end_date + timedelta(days=1))
    if customer_id is not None:
        query = query.filter(models.Order.customer_id == customer_id)

    total = query.count()
    orders = (
        query.options(joinedload(models.Order.customer))
        .order_by(models.Order.created_at.desc(), models.Order.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return OrderPage(orders, total, page, max(math.ceil(total / limit), 1))
