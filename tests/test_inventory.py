import threading

import pytest
from sqlalchemy.orm import sessionmaker

from backoffice import crud, inventory, models, orders, schemas
from backoffice.db import Base, make_engine
from backoffice.errors import InsufficientStock, ProductNotFound, ValidationFailure


def test_reserve_and_release(db_session, make_product):
    p = make_product(quantity=5)
    inventory.reserve(db_session, p.id, 2)
    db_session.commit()
    db_session.refresh(p)
    assert p.quantity == 3

    inventory.release(db_session, p.id, 2)
    db_session.commit()
    db_session.refresh(p)
    assert p.quantity == 5


def test_reserve_never_goes_negative(db_session, make_product):
    p = make_product(quantity=1)
    with pytest.raises(InsufficientStock):
        inventory.reserve(db_session, p.id, 2)
    db_session.rollback()
    db_session.refresh(p)
    assert p.quantity == 1


def test_reserve_rejects_zero(db_session, make_product):
    p = make_product(quantity=1)
    with pytest.raises(ValidationFailure):
        inventory.reserve(db_session, p.id, 0)


def test_release_missing_product_is_skipped(db_session):
    inventory.release(db_session, 12345, 1)


@pytest.mark.parametrize(
    "action, qty, expected",
    [("add", 5, 15), ("subtract", 4, 6), ("subtract", 50, 0), ("set", 3, 3)],
)
def test_adjust_stock(db_session, make_product, action, qty, expected):
    p = make_product(quantity=10)
    assert inventory.adjust_stock(db_session, p.id, action, qty).quantity == expected


def test_adjust_stock_errors(db_session, make_product):
    p = make_product(quantity=10)
    with pytest.raises(ValidationFailure):
        inventory.adjust_stock(db_session, p.id, "multiply", 2)
    with pytest.raises(ValidationFailure):
        inventory.adjust_stock(db_session, p.id, "add", -1)
    with pytest.raises(ProductNotFound):
        inventory.adjust_stock(db_session, 999, "add", 1)


def test_last_unit_race(tmp_path):
    """Two threads order the only unit in stock; exactly one wins."""
    engine = make_engine(f"sqlite:///{tmp_path / 'race.db'}")
    Base.metadata.create_all(bind=engine)
    Session = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)

    with Session() as db:
        buyers = [
            crud.create_user(
                db,
                schemas.UserCreate(
                    username=f"buyer{n}", email=f"buyer{n}@example.com",
                    password="secret123", full_name=f"Buyer {n}",
                ),
            ).id
            for n in range(2)
        ]
        category = crud.create_category(db, schemas.CategoryCreate(name="Limited"))
        product_id = crud.create_product(
            db,
            schemas.ProductCreate(
                name="Last Widget", price="25.00", cost_price="10.00", quantity=1, category_id=category.id,
            ),
        ).id

    start = threading.Barrier(2)
    outcomes = []
    lock = threading.Lock()

    def buy(customer_id):
        with Session() as db:
            start.wait()
            try:
                orders.place_order(
                    db, customer_id, [{"product_id": product_id, "quantity": 1}],
                    shipping_address="Moi Avenue 12, Nairobi", order_number=f"ORD-RACE-{customer_id}",
                )
                result = "ok"
            except InsufficientStock:
                result = "insufficient"
            with lock:
                outcomes.append(result)

    threads = [threading.Thread(target=buy, args=(c,)) for c in buyers]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)

    assert sorted(outcomes) == ["insufficient", "ok"]
    with Session() as db:
        assert db.get(models.Product, product_id).quantity == 0
        assert db.query(models.Order).count() == 1
        assert db.query(models.OrderItem).count() == 1
    engine.dispose()
