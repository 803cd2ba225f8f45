from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from .db import Base
from .utils import utcnow

ROLES = ("admin", "manager", "user")
USER_STATUSES = ("active", "inactive", "suspended")
CATEGORY_STATUSES = ("active", "inactive")
PRODUCT_STATUSES = ("active", "inactive", "out_of_stock", "discontinued")
ORDER_STATUSES = ("pending", "processing", "completed", "cancelled", "refunded")
PAYMENT_STATUSES = ("pending", "paid", "failed", "refunded")
PAYMENT_METHODS = ("cash", "card", "mpesa", "bank_transfer")


def _enum(values, name):
    return Enum(*values, name=name, native_enum=False, create_constraint=True)


class TimestampMixin:
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class User(TimestampMixin, Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(50), nullable=False, unique=True, index=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    # salted hash (passlib); never exposed through a read schema
    password_hash = Column(String, nullable=False)
    full_name = Column(String(100), nullable=False)
    phone = Column(String(20), nullable=True)
    role = Column(_enum(ROLES, "user_role"), nullable=False, default="user", index=True)
    status = Column(_enum(USER_STATUSES, "user_status"), nullable=False, default="active")
    avatar = Column(String, nullable=True)
    last_login = Column(DateTime, nullable=True)

    orders = relationship("Order", back_populates="customer")


class Category(TimestampMixin, Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False, unique=True)
    description = Column(Text, nullable=True)
    icon = Column(String(50), nullable=True)
    status = Column(_enum(CATEGORY_STATUSES, "category_status"), nullable=False, default="active")

    products = relationship("Product", back_populates="category")


class Product(TimestampMixin, Base):
    __tablename__ = "products"
    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_products_quantity_non_negative"),
        CheckConstraint("price >= 0", name="ck_products_price_non_negative"),
        CheckConstraint("cost_price >= 0", name="ck_products_cost_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False, index=True)
    sku = Column(String(50), nullable=False, unique=True, index=True)
    description = Column(Text, nullable=True)
    price = Column(Numeric(10, 2), nullable=False)
    cost_price = Column(Numeric(10, 2), nullable=False)
    quantity = Column(Integer, nullable=False, default=0)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=False, index=True)
    image = Column(String, nullable=True)
    status = Column(_enum(PRODUCT_STATUSES, "product_status"), nullable=False, default="active")
    featured = Column(Boolean, nullable=False, default=False)

    category = relationship("Category", back_populates="products")
    order_items = relationship("OrderItem", back_populates="product")


class Order(TimestampMixin, Base):
    __tablename__ = "orders"
    __table_args__ = (
        CheckConstraint(
            "total_amount >= 0 AND discount >= 0 AND tax >= 0 AND grand_total >= 0",
            name="ck_orders_amounts_non_negative",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    order_number = Column(String(50), nullable=False, unique=True, index=True)
    customer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    total_amount = Column(Numeric(10, 2), nullable=False)
    discount = Column(Numeric(10, 2), nullable=False, default=0)
    tax = Column(Numeric(10, 2), nullable=False, default=0)
    grand_total = Column(Numeric(10, 2), nullable=False)
    status = Column(_enum(ORDER_STATUSES, "order_status"), nullable=False, default="pending", index=True)
    payment_method = Column(_enum(PAYMENT_METHODS, "payment_method"), nullable=False)
    payment_status = Column(_enum(PAYMENT_STATUSES, "payment_status"), nullable=False, default="pending")
    shipping_address = Column(Text, nullable=False)
    notes = Column(Text, nullable=True)

    customer = relationship("User", back_populates="orders")
    # line items are written once with the order and never edited
    items = relationship("OrderItem", back_populates="order", order_by="OrderItem.id")


class OrderItem(Base):
    __tablename__ = "order_items"
    __table_args__ = (
        CheckConstraint("quantity >= 1", name="ck_order_items_quantity_positive"),
    )

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)
    subtotal = Column(Numeric(10, 2), nullable=False)

    order = relationship("Order", back_populates="items")
    product = relationship("Product", back_populates="order_items")
