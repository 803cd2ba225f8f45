import logging
import math
import random
import time
from typing import List, NamedTuple, Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from . import models, schemas
from .auth import hash_password
from .errors import CategoryNotFound, PersistenceFailure, ProductNotFound, UserNotFound, ValidationFailure
from .utils import round_amount

log = logging.getLogger(__name__)


class Page(NamedTuple):
    items: list
    total: int
    page: int
    total_pages: int


def _paginate(query, page: int, limit: int) -> Page:
    page = max(page, 1)
    limit = max(limit, 1)
    total = query.count()
    items = query.offset((page - 1) * limit).limit(limit).all()
    return Page(items, total, page, max(math.ceil(total / limit), 1))


def _commit(db: Session, what: str):
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise PersistenceFailure(f"integrity error: {what}") from e


# -------------------- Users --------------------

def create_user(db: Session, user: schemas.UserCreate, avatar: Optional[str] = None) -> models.User:
    clash = (
        db.query(models.User)
        .filter(or_(models.User.email == user.email, models.User.username == user.username))
        .first()
    )
    if clash:
        raise ValidationFailure("User with this email or username already exists")
    db_user = models.User(
        username=user.username,
        email=user.email,
        password_hash=hash_password(user.password),
        full_name=user.full_name,
        phone=user.phone or None,
        role=user.role,
        status="active",
        avatar=avatar,
    )
    db.add(db_user)
    _commit(db, "user could not be saved")
    db.refresh(db_user)
    log.info("user %s created with role %s", db_user.username, db_user.role)
    return db_user


def get_user(db: Session, user_id: int) -> models.User:
    user = db.get(models.User, user_id)
    if not user:
        raise UserNotFound(user_id)
    return user


def list_users(db: Session, search: str = "", role: str = "", status: str = "", page: int = 1, limit: int = 10) -> Page:
    query = db.query(models.User)
    if search:
        like = f"%{search}%"
        query = query.filter(
            or_(models.User.username.like(like), models.User.email.like(like), models.User.full_name.like(like))
        )
    if role:
        query = query.filter(models.User.role == role)
    if status:
        query = query.filter(models.User.status == status)
    return _paginate(query.order_by(models.User.created_at.desc(), models.User.id.desc()), page, limit)


def active_customers(db: Session) -> List[models.User]:
    return db.query(models.User).filter(models.User.status == "active").order_by(models.User.full_name).all()


def update_user(
    db: Session, user_id: int, changes: schemas.UserUpdate, avatar: Optional[str] = None, allow_role_change: bool = False
) -> models.User:
    user = get_user(db, user_id)
    user.full_name = changes.full_name
    user.phone = changes.phone or None
    # role and status changes require admin privilege
    if allow_role_change:
        if changes.role is not None:
            user.role = changes.role
        if changes.status is not None:
            user.status = changes.status
    if avatar is not None:
        user.avatar = avatar
    _commit(db, "user could not be updated")
    db.refresh(user)
    return user


def change_password(db: Session, user_id: int, new_password: str) -> models.User:
    user = get_user(db, user_id)
    user.password_hash = hash_password(new_password)
    _commit(db, "password could not be changed")
    log.info("password changed for user %s", user.username)
    return user


def delete_user(db: Session, user_id: int, acting_user_id: int) -> models.User:
    user = get_user(db, user_id)
    if user.id == acting_user_id:
        raise ValidationFailure("You cannot delete your own account")
    if db.query(models.Order.id).filter(models.Order.customer_id == user.id).first():
        raise ValidationFailure("User has orders and cannot be deleted")
    db.delete(user)
    _commit(db, "user could not be deleted")
    log.info("user %s deleted", user.username)
    return user


# -------------------- Categories --------------------

def create_category(db: Session, category: schemas.CategoryCreate) -> models.Category:
    if db.query(models.Category).filter(models.Category.name == category.name).first():
        raise ValidationFailure("Category with this name already exists")
    db_category = models.Category(**category.model_dump())
    db.add(db_category)
    _commit(db, "category could not be saved")
    db.refresh(db_category)
    return db_category


def get_category(db: Session, category_id: int) -> models.Category:
    category = db.get(models.Category, category_id)
    if not category:
        raise CategoryNotFound(category_id)
    return category


def list_categories(db: Session, active_only: bool = False) -> List[models.Category]:
    query = db.query(models.Category)
    if active_only:
        query = query.filter(models.Category.status == "active")
    return query.order_by(models.Category.name).all()


def update_category(db: Session, category_id: int, changes: schemas.CategoryCreate) -> models.Category:
    category = get_category(db, category_id)
    taken = (
        db.query(models.Category.id)
        .filter(models.Category.name == changes.name, models.Category.id != category_id)
        .first()
    )
    if taken:
        raise ValidationFailure("Category with this name already exists")
    for key, value in changes.model_dump().items():
        setattr(category, key, value)
    _commit(db, "category could not be updated")
    db.refresh(category)
    return category


def delete_category(db: Session, category_id: int) -> None:
    category = get_category(db, category_id)
    if db.query(models.Product.id).filter(models.Product.category_id == category.id).first():
        raise ValidationFailure("Category still has products")
    db.delete(category)
    _commit(db, "category could not be deleted")


# -------------------- Products --------------------

def generate_sku() -> str:
    return f"PROD-{int(time.time() * 1000)}-{random.randint(0, 999)}"


def create_product(db: Session, product: schemas.ProductCreate, image: Optional[str] = None) -> models.Product:
    if product.sku and db.query(models.Product).filter(models.Product.sku == product.sku).first():
        raise ValidationFailure("Product with this SKU already exists")
    get_category(db, product.category_id)
    data = product.model_dump()
    data["sku"] = product.sku or generate_sku()
    data["price"] = round_amount(product.price)
    data["cost_price"] = round_amount(product.cost_price)
    db_product = models.Product(**data, image=image)
    db.add(db_product)
    _commit(db, "product could not be saved")
    db.refresh(db_product)
    log.info("product %s created", db_product.sku)
    return db_product


def get_product(db: Session, product_id: int) -> models.Product:
    product = (
        db.query(models.Product)
        .options(joinedload(models.Product.category))
        .filter(models.Product.id == product_id)
        .first()
    )
    if not product:
        raise ProductNotFound(product_id)
    return product


def list_products(
    db: Session,
    search: str = "",
    category_id: Optional[int] = None,
    status: str = "",
    min_price=None,
    max_price=None,
    page: int = 1,
    limit: int = 12,
) -> Page:
    query = db.query(models.Product).options(joinedload(models.Product.category))
    if search:
        like = f"%{search}%"
        query = query.filter(
            or_(models.Product.name.like(like), models.Product.sku.like(like), models.Product.description.like(like))
        )
    if category_id:
        query = query.filter(models.Product.category_id == category_id)
    if status:
        query = query.filter(models.Product.status == status)
    if min_price is not None:
        query = query.filter(models.Product.price >= min_price)
    if max_price is not None:
        query = query.filter(models.Product.price <= max_price)
    return _paginate(query.order_by(models.Product.created_at.desc(), models.Product.id.desc()), page, limit)


def orderable_products(db: Session) -> List[models.Product]:
    return (
        db.query(models.Product)
        .filter(models.Product.status == "active", models.Product.quantity > 0)
        .order_by(models.Product.name)
        .all()
    )


def update_product(
    db: Session, product_id: int, changes: schemas.ProductCreate, image: Optional[str] = None
) -> models.Product:
    product = get_product(db, product_id)
    get_category(db, changes.category_id)
    data = changes.model_dump(exclude={"sku"})
    data["price"] = round_amount(changes.price)
    data["cost_price"] = round_amount(changes.cost_price)
    for key, value in data.items():
        setattr(product, key, value)
    if image is not None:
        product.image = image
    _commit(db, "product could not be updated")
    db.refresh(product)
    return product


def delete_product(db: Session, product_id: int) -> models.Product:
    product = get_product(db, product_id)
    if db.query(models.OrderItem.id).filter(models.OrderItem.product_id == product.id).first():
        raise ValidationFailure("Product appears on orders and cannot be deleted")
    db.delete(product)
    _commit(db, "product could not be deleted")
    log.info("product %s deleted", product.sku)
    return product


def profit_and_margin(product: models.Product):
    profit = round_amount(product.price - product.cost_price)
    margin = round_amount(profit / product.cost_price * 100) if product.cost_price > 0 else round_amount(0)
    return profit, margin
