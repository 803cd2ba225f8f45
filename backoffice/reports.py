"""Read-only aggregates for the dashboard and statistics endpoints.

Nothing here writes or locks. Results reflect whatever was committed when the
query ran.
"""
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from . import models
from .errors import ValidationFailure
from .utils import round_amount, utcnow

ZERO = Decimal("0")


def _settled(query):
    return query.filter(models.Order.status == "completed", models.Order.payment_status == "paid")


def _month_key(db: Session, column):
    dialect = db.get_bind().dialect.name
    if dialect == "sqlite":
        return func.strftime("%Y-%m", column)
    if dialect in ("mysql", "mariadb"):
        return func.date_format(column, "%Y-%m")
    return func.to_char(column, "YYYY-MM")


def start_of_day(now: datetime) -> datetime:
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def start_of_week(now: datetime) -> datetime:
    # weeks start on Sunday
    day = start_of_day(now)
    return day - timedelta(days=(day.weekday() + 1) % 7)


def start_of_month(now: datetime) -> datetime:
    return start_of_day(now).replace(day=1)


def months_back(now: datetime, months: int) -> datetime:
    """First day of the month ``months - 1`` months before ``now``'s month."""
    year, month = now.year, now.month - (months - 1)
    while month < 1:
        month += 12
        year -= 1
    return datetime(year, month, 1)


def revenue_between(db: Session, start: Optional[datetime] = None, end: Optional[datetime] = None) -> Decimal:
    query = _settled(db.query(func.coalesce(func.sum(models.Order.grand_total), 0)))
    if start is not None:
        query = query.filter(models.Order.created_at >= start)
    if end is not None:
        query = query.filter(models.Order.created_at < end)
    return round_amount(query.scalar() or ZERO)


def orders_between(db: Session, start: Optional[datetime] = None, end: Optional[datetime] = None) -> int:
    query = db.query(func.count(models.Order.id))
    if start is not None:
        query = query.filter(models.Order.created_at >= start)
    if end is not None:
        query = query.filter(models.Order.created_at < end)
    return int(query.scalar() or 0)


PERIOD_STARTS = {"day": start_of_day, "week": start_of_week, "month": start_of_month}


def revenue_for_period(db: Session, period: str, now: Optional[datetime] = None) -> Decimal:
    if period not in PERIOD_STARTS:
        raise ValidationFailure("period must be day, week, or month")
    now = now or utcnow()
    return revenue_between(db, PERIOD_STARTS[period](now), None)


def status_counts(db: Session) -> Dict[str, int]:
    counts = {status: 0 for status in models.ORDER_STATUSES}
    rows = db.query(models.Order.status, func.count(models.Order.id)).group_by(models.Order.status).all()
    for status, count in rows:
        counts[status] = int(count)
    return counts


def monthly_revenue(db: Session, months: int = 6, now: Optional[datetime] = None) -> List[dict]:
    """Completed and paid revenue per calendar month, oldest month first."""
    if months < 1:
        raise ValidationFailure("months must be at least 1")
    now = now or utcnow()
    month = _month_key(db, models.Order.created_at).label("month")
    rows = (
        _settled(db.query(month, func.sum(models.Order.grand_total).label("total")))
        .filter(models.Order.created_at >= months_back(now, months))
        .group_by(month)
        .order_by(month)
        .all()
    )
    return [{"month": row.month, "total": round_amount(row.total or ZERO)} for row in rows]


def low_stock(db: Session, threshold: int = 10, limit: Optional[int] = None) -> List[models.Product]:
    query = (
        db.query(models.Product)
        .options(joinedload(models.Product.category))
        .filter(models.Product.quantity <= threshold, models.Product.status == "active")
        .order_by(models.Product.quantity.asc(), models.Product.id.asc())
    )
    if limit:
        query = query.limit(limit)
    return query.all()


def low_stock_count(db: Session, threshold: int = 10) -> int:
    return (
        db.query(func.count(models.Product.id))
        .filter(models.Product.quantity <= threshold, models.Product.status == "active")
        .scalar()
    )


def top_selling(db: Session, limit: int = 5) -> List[dict]:
    sold = func.sum(models.OrderItem.quantity).label("total_sold")
    rows = (
        db.query(
            models.Product.id,
            models.Product.name,
            models.Product.sku,
            models.Product.price,
            models.Product.quantity,
            sold,
        )
        .join(models.OrderItem, models.OrderItem.product_id == models.Product.id)
        .group_by(
            models.Product.id,
            models.Product.name,
            models.Product.sku,
            models.Product.price,
            models.Product.quantity,
        )
        .order_by(sold.desc(), models.Product.id.asc())
        .limit(limit)
        .all()
    )
    return [
        {
            "id": r.id,
            "name": r.name,
            "sku": r.sku,
            "price": r.price,
            "quantity": r.quantity,
            "total_sold": int(r.total_sold or 0),
        }
        for r in rows
    ]


def dashboard_stats(db: Session) -> dict:
    total_orders = db.query(func.count(models.Order.id)).scalar() or 0
    total_revenue = revenue_between(db)
    avg = round_amount(total_revenue / total_orders) if total_orders else round_amount(ZERO)
    return {
        "total_users": db.query(func.count(models.User.id)).scalar() or 0,
        "total_products": db.query(func.count(models.Product.id)).scalar() or 0,
        "total_orders": total_orders,
        "total_revenue": total_revenue,
        "avg_order_value": avg,
    }


def period_summary(db: Session, now: Optional[datetime] = None, threshold: int = 10) -> dict:
    now = now or utcnow()
    summary = {}
    for name, period in (("today", "day"), ("week", "week"), ("month", "month")):
        start = PERIOD_STARTS[period](now)
        summary[name] = {
            "orders": orders_between(db, start),
            "revenue": revenue_between(db, start),
        }
    summary["active_users"] = (
        db.query(func.count(models.User.id)).filter(models.User.status == "active").scalar() or 0
    )
    summary["low_stock_count"] = low_stock_count(db, threshold)
    return summary


def order_statistics(db: Session, now: Optional[datetime] = None) -> dict:
    now = now or utcnow()
    return {
        "today_orders": orders_between(db, start_of_day(now)),
        "weekly_revenue": revenue_for_period(db, "week", now),
        "monthly_revenue": revenue_for_period(db, "month", now),
        "total_orders": orders_between(db),
        "status_counts": status_counts(db),
        "monthly_sales": monthly_revenue(db, 12, now),
    }


def recent_orders(db: Session, limit: int = 5, customer_id: Optional[int] = None) -> List[models.Order]:
    query = db.query(models.Order).options(joinedload(models.Order.customer))
    if customer_id is not None:
        query = query.filter(models.Order.customer_id == customer_id)
    return query.order_by(models.Order.created_at.desc(), models.Order.id.desc()).limit(limit).all()


def recent_users(db: Session, limit: int = 5) -> List[models.User]:
    return db.query(models.User).order_by(models.User.created_at.desc(), models.User.id.desc()).limit(limit).all()


def customer_summary(db: Session, user_id: int) -> dict:
    spent = (
        db.query(func.coalesce(func.sum(models.Order.grand_total), 0))
        .filter(models.Order.customer_id == user_id, models.Order.payment_status == "paid")
        .scalar()
    )
    return {
        "total_orders": db.query(func.count(models.Order.id)).filter(models.Order.customer_id == user_id).scalar() or 0,
        "total_spent": round_amount(spent or ZERO),
        "recent_orders": recent_orders(db, 5, customer_id=user_id),
    }
