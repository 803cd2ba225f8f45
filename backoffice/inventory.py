"""Stock movements for products.

``reserve`` and ``release`` run inside the caller's transaction and never
commit; the order placement and cancellation flows own the commit so stock
and order rows change together.
"""
import logging

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import models
from .errors import InsufficientStock, PersistenceFailure, ProductNotFound, ValidationFailure

log = logging.getLogger(__name__)


def reserve(db: Session, product_id: int, qty: int) -> None:
    """Take ``qty`` units off the shelf, or raise InsufficientStock.

    A single conditional UPDATE does the check and the decrement, so two
    transactions racing for the last unit cannot both pass.
    """
    if qty < 1:
        raise ValidationFailure("quantity must be at least 1")
    result = db.execute(
        update(models.Product)
        .where(models.Product.id == product_id, models.Product.quantity >= qty)
        .values(quantity=models.Product.quantity - qty)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise InsufficientStock(product_id, qty)


def release(db: Session, product_id: int, qty: int) -> None:
    """Put ``qty`` units back. Missing products are skipped."""
    result = db.execute(
        update(models.Product)
        .where(models.Product.id == product_id)
        .values(quantity=models.Product.quantity + qty)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        log.warning("release skipped: product %s no longer exists", product_id)


def adjust_stock(db: Session, product_id: int, action: str, qty: int) -> models.Product:
    """Manual stock maintenance from the product screen.

    ``subtract`` floors at zero rather than failing.
    """
    if qty < 0:
        raise ValidationFailure("quantity must be non-negative")
    product = (
        db.query(models.Product)
        .filter(models.Product.id == product_id)
        .with_for_update()
        .populate_existing()
        .one_or_none()
    )
    if product is None:
        raise ProductNotFound(product_id)

    if action == "add":
        product.quantity = product.quantity + qty
    elif action == "subtract":
        product.quantity = max(product.quantity - qty, 0)
    elif action == "set":
        product.quantity = qty
    else:
        db.rollback()
        raise ValidationFailure(f"unknown stock action: {action}")

    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceFailure("could not update stock") from e
    db.refresh(product)
    log.info("stock %s %s for product %s -> %s", action, qty, product_id, product.quantity)
    return product
