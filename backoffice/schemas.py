from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field, PositiveInt, field_validator
from pydantic.config import ConfigDict

Role = Literal["admin", "manager", "user"]
UserStatus = Literal["active", "inactive", "suspended"]
CategoryStatus = Literal["active", "inactive"]
ProductStatus = Literal["active", "inactive", "out_of_stock", "discontinued"]
OrderStatus = Literal["pending", "processing", "completed", "cancelled", "refunded"]
PaymentStatus = Literal["pending", "paid", "failed", "refunded"]
PaymentMethod = Literal["cash", "card", "mpesa", "bank_transfer"]


def _password_rule(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    if len(v) < 6:
        raise ValueError("Password must be at least 6 characters")
    if not any(ch.isdigit() for ch in v):
        raise ValueError("Password must contain at least one number")
    return v


# -------------------- Users --------------------

class UserCreate(BaseModel):
    username: str = Field(..., min_length=3, max_length=50, pattern=r"^[a-zA-Z0-9_]+$")
    email: EmailStr
    password: str
    full_name: str = Field(..., min_length=2, max_length=100)
    phone: Optional[str] = Field(default=None, max_length=20)
    role: Role = "user"

    @field_validator("email")
    def normalize_email(cls, v: str):
        return v.strip().lower()

    @field_validator("password")
    def strong_enough(cls, v: str):
        return _password_rule(v)


class UserUpdate(BaseModel):
    full_name: str = Field(..., min_length=2, max_length=100)
    phone: Optional[str] = Field(default=None, max_length=20)
    role: Optional[Role] = None
    status: Optional[UserStatus] = None


class PasswordChange(BaseModel):
    new_password: str

    @field_validator("new_password")
    def strong_enough(cls, v: str):
        return _password_rule(v)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


# -------------------- Catalogue --------------------

class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    description: Optional[str] = Field(default=None, max_length=1000)
    icon: Optional[str] = Field(default=None, max_length=50)
    status: CategoryStatus = "active"


class ProductCreate(BaseModel):
    name: str = Field(..., min_length=3, max_length=200)
    sku: Optional[str] = Field(default=None, max_length=50)
    description: Optional[str] = Field(default=None, max_length=1000)
    price: Decimal = Field(..., ge=0)
    cost_price: Decimal = Field(..., ge=0)
    quantity: int = Field(..., ge=0)
    category_id: PositiveInt
    status: ProductStatus = "active"
    featured: bool = False

    @field_validator("sku")
    def blank_sku_is_none(cls, v: Optional[str]):
        if v is None:
            return v
        v = v.strip()
        return v or None


class ProductRead(BaseModel):
    id: int
    name: str
    sku: str
    description: Optional[str] = None
    price: Decimal
    cost_price: Decimal
    quantity: int
    category_id: int
    image: Optional[str] = None
    status: str
    featured: bool = False

    model_config = ConfigDict(from_attributes=True)


class StockAdjust(BaseModel):
    action: Literal["add", "subtract", "set"]
    quantity: int = Field(..., ge=0)


# -------------------- Orders --------------------

class OrderItemIn(BaseModel):
    product_id: PositiveInt
    quantity: PositiveInt


class OrderCreate(BaseModel):
    order_number: Optional[str] = Field(default=None, min_length=5, max_length=50)
    customer_id: Optional[PositiveInt] = None
    items: List[OrderItemIn] = Field(..., min_length=1)
    discount: Decimal = Field(default=Decimal("0"), ge=0)
    tax: Decimal = Field(default=Decimal("0"), ge=0)
    payment_method: PaymentMethod
    shipping_address: str = Field(..., min_length=10, max_length=500)
    notes: Optional[str] = Field(default=None, max_length=1000)

    @field_validator("order_number", "shipping_address")
    def strip_text(cls, v: Optional[str]):
        return v.strip() if isinstance(v, str) else v


class OrderStatusUpdate(BaseModel):
    status: Optional[OrderStatus] = None
    payment_status: Optional[PaymentStatus] = None


class OrderItemRead(BaseModel):
    id: int
    product_id: int
    quantity: int
    unit_price: Decimal
    subtotal: Decimal

    model_config = ConfigDict(from_attributes=True)


class OrderRead(BaseModel):
    id: int
    order_number: str
    customer_id: int
    total_amount: Decimal
    discount: Decimal
    tax: Decimal
    grand_total: Decimal
    status: str
    payment_status: str
    payment_method: str
    shipping_address: str
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class OrderDetail(OrderRead):
    items: List[OrderItemRead] = []


class OrderPage(BaseModel):
    orders: List[OrderRead]
    total: int
    page: int
    total_pages: int


# -------------------- Reporting --------------------

class MonthlyRevenue(BaseModel):
    month: str
    total: Decimal


class TopProduct(BaseModel):
    id: int
    name: str
    sku: str
    price: Decimal
    quantity: int
    total_sold: int


class PeriodStats(BaseModel):
    orders: int
    revenue: Decimal


class OrderStatistics(BaseModel):
    today_orders: int
    weekly_revenue: Decimal
    monthly_revenue: Decimal
    total_orders: int
    status_counts: dict[str, int]
    monthly_sales: List[MonthlyRevenue]


class DashboardSummary(BaseModel):
    today: PeriodStats
    week: PeriodStats
    month: PeriodStats
    active_users: int
    low_stock_count: int
