from datetime import datetime
from decimal import Decimal

import pytest

from backoffice import orders, reports
from backoffice.errors import ValidationFailure

NOW = datetime(2026, 3, 18, 12, 0)  # a Wednesday


@pytest.fixture
def booked(db_session, customer, make_product):
    """Place an order and backdate it with the given statuses."""
    product = make_product(price="10.00", quantity=1000)

    def _book(when, qty=1, status="completed", payment_status="paid"):
        order = orders.place_order(
            db_session, customer.id, [{"product_id": product.id, "quantity": qty}],
            shipping_address="Moi Avenue 12, Nairobi",
        )
        order.created_at = when
        order.status = status
        order.payment_status = payment_status
        db_session.commit()
        return order
    return _book


def test_monthly_revenue_three_months(db_session, booked):
    booked(datetime(2026, 1, 5), qty=2)
    booked(datetime(2026, 1, 28), qty=1)
    booked(datetime(2026, 2, 14), qty=4)
    booked(datetime(2026, 2, 20), qty=9, status="pending", payment_status="pending")
    booked(datetime(2026, 2, 21), qty=9, status="completed", payment_status="pending")
    booked(datetime(2026, 3, 2), qty=5)
    booked(datetime(2025, 11, 30), qty=7)  # outside the window

    rows = reports.monthly_revenue(db_session, months=3, now=NOW)

    assert rows == [
        {"month": "2026-01", "total": Decimal("30.00")},
        {"month": "2026-02", "total": Decimal("40.00")},
        {"month": "2026-03", "total": Decimal("50.00")},
    ]


def test_monthly_revenue_needs_a_month(db_session):
    with pytest.raises(ValidationFailure):
        reports.monthly_revenue(db_session, months=0)


def test_revenue_for_period(db_session, booked):
    booked(datetime(2026, 3, 18, 8, 0), qty=1)  # today
    booked(datetime(2026, 3, 15, 9, 0), qty=2)  # Sunday, this week
    booked(datetime(2026, 3, 3), qty=3)  # this month
    booked(datetime(2026, 2, 27), qty=4)
    booked(datetime(2026, 3, 18, 9, 0), qty=6, status="cancelled", payment_status="refunded")

    assert reports.revenue_for_period(db_session, "day", NOW) == Decimal("10.00")
    assert reports.revenue_for_period(db_session, "week", NOW) == Decimal("30.00")
    assert reports.revenue_for_period(db_session, "month", NOW) == Decimal("60.00")
    assert reports.revenue_between(db_session) == Decimal("100.00")
    with pytest.raises(ValidationFailure):
        reports.revenue_for_period(db_session, "year", NOW)


def test_week_starts_on_sunday():
    assert reports.start_of_week(NOW) == datetime(2026, 3, 15)
    assert reports.start_of_week(datetime(2026, 3, 15, 23, 59)) == datetime(2026, 3, 15)
    assert reports.months_back(datetime(2026, 2, 10), 3) == datetime(2025, 12, 1)


def test_status_counts_full_distribution(db_session, booked):
    booked(NOW, status="completed")
    booked(NOW, status="completed")
    booked(NOW, status="pending", payment_status="pending")

    counts = reports.status_counts(db_session)
    assert counts == {"pending": 1, "processing": 0, "completed": 2, "cancelled": 0, "refunded": 0}


def test_low_stock(db_session, make_product):
    make_product(name="Plenty", quantity=50)
    make_product(name="Few", quantity=4)
    make_product(name="None left", quantity=0)
    make_product(name="Edge", quantity=10)
    make_product(name="Retired", quantity=1, status="discontinued")

    names = [p.name for p in reports.low_stock(db_session, threshold=10)]
    assert names == ["None left", "Few", "Edge"]
    assert reports.low_stock_count(db_session, threshold=5) == 2
    assert len(reports.low_stock(db_session, threshold=10, limit=1)) == 1


def test_top_selling(db_session, customer, make_product):
    a = make_product(name="Alpha", quantity=100)
    b = make_product(name="Bravo", quantity=100)
    c = make_product(name="Charlie", quantity=100)
    make_product(name="Never sold", quantity=100)
    for lines in ([(a, 1), (b, 5)], [(c, 2)], [(a, 2), (c, 1)]):
        orders.place_order(
            db_session, customer.id, [{"product_id": p.id, "quantity": q} for p, q in lines],
            shipping_address="Moi Avenue 12, Nairobi",
        )

    top = reports.top_selling(db_session, limit=2)
    assert [(row["name"], row["total_sold"]) for row in top] == [("Bravo", 5), ("Alpha", 3)]


def test_dashboard_stats_and_summary(db_session, booked, make_product):
    booked(NOW, qty=3)
    booked(NOW, qty=1, status="pending", payment_status="pending")
    make_product(quantity=2)

    stats = reports.dashboard_stats(db_session)
    assert stats["total_orders"] == 2
    assert stats["total_revenue"] == Decimal("30.00")
    assert stats["avg_order_value"] == Decimal("15.00")
    assert stats["total_products"] == 2

    summary = reports.period_summary(db_session, now=NOW, threshold=10)
    assert summary["today"] == {"orders": 2, "revenue": Decimal("30.00")}
    assert summary["active_users"] == 1
    assert summary["low_stock_count"] == 1


def test_customer_summary(db_session, booked, customer):
    booked(NOW, qty=2)
    booked(NOW, qty=1, status="pending", payment_status="pending")

    summary = reports.customer_summary(db_session, customer.id)
    assert summary["total_orders"] == 2
    assert summary["total_spent"] == Decimal("20.00")
    assert len(summary["recent_orders"]) == 2
