import os
import tempfile
from decimal import Decimal
from typing import Generator

# keep the import-time engine and upload dir away from the working tree
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="backoffice-uploads-"))

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from backoffice import crud, schemas
from backoffice.config import configure, get_settings
from backoffice.db import Base
from backoffice.deps import get_db
from backoffice.main import app

PASSWORD = "secret123"


@pytest.fixture(scope="function")
def db_session() -> Generator:
    # Use in-memory SQLite with a single connection
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)
    Base.metadata.create_all(bind=engine)

    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        engine.dispose()


@pytest.fixture(autouse=True)
def upload_dir(tmp_path):
    previous = get_settings()
    configure(upload_dir=str(tmp_path / "uploads"))
    yield tmp_path / "uploads"
    configure(**previous._asdict())


@pytest.fixture(scope="function")
def client(db_session):
    # Override dependency to use the same session
    def override_get_db():
        try:
            yield db_session
        finally:
            pass
    app.dependency_overrides[get_db] = override_get_db
    from fastapi.testclient import TestClient
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db_session):
    counter = {"n": 0}

    def _make(role="user", username=None, email=None, password=PASSWORD, full_name=None):
        counter["n"] += 1
        n = counter["n"]
        username = username or f"{role}{n}"
        return crud.create_user(
            db_session,
            schemas.UserCreate(
                username=username,
                email=email or f"{username}@example.com",
                password=password,
                full_name=full_name or f"{role.title()} Person {n}",
                role=role,
            ),
        )
    return _make


@pytest.fixture
def category(db_session):
    return crud.create_category(db_session, schemas.CategoryCreate(name="Electronics"))


@pytest.fixture
def make_product(db_session, category):
    counter = {"n": 0}

    def _make(price="10.00", quantity=10, name=None, cost_price=None, status="active"):
        counter["n"] += 1
        return crud.create_product(
            db_session,
            schemas.ProductCreate(
                name=name or f"Product {counter['n']}",
                sku=f"SKU-{counter['n']:04d}",
                price=Decimal(price),
                cost_price=Decimal(cost_price if cost_price is not None else price),
                quantity=quantity,
                category_id=category.id,
                status=status,
            ),
        )
    return _make


@pytest.fixture
def admin(make_user):
    return make_user("admin")


@pytest.fixture
def manager(make_user):
    return make_user("manager")


@pytest.fixture
def customer(make_user):
    return make_user("user")


def login(client, user, password=PASSWORD):
    """Sign in through the HTML form; the session cookie stays on the client."""
    r = client.post(
        "/auth/login", data={"email": user.email, "password": password}, follow_redirects=False
    )
    assert r.status_code == 303, r.text
    return r


def bearer(client, user, password=PASSWORD) -> dict:
    r = client.post("/api/auth/login", json={"email": user.email, "password": password})
    assert r.status_code == 200, r.text
    return {"Authorization": f"Bearer {r.json()['access_token']}"}


def order_payload(*lines, **extra) -> dict:
    payload = {
        "items": [{"product_id": pid, "quantity": qty} for pid, qty in lines],
        "payment_method": "cash",
        "shipping_address": "Moi Avenue 12, Nairobi",
    }
    payload.update(extra)
    return payload
