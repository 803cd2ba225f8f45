import pytest

from backoffice import models

from conftest import bearer, login, order_payload


@pytest.mark.parametrize(
    "path",
    ["/users", "/users/create", "/users/export/csv", "/categories", "/products/create", "/orders/export/csv", "/settings"],
)
def test_customer_is_forbidden(client, customer, path):
    login(client, customer)
    r = client.get(path)
    assert r.status_code == 403
    assert "permission" in r.text


@pytest.mark.parametrize("path", ["/users/create", "/settings"])
def test_manager_is_forbidden_from_admin_pages(client, manager, path):
    login(client, manager)
    assert client.get(path).status_code == 403


def test_manager_cannot_delete_products(client, manager, make_product):
    p = make_product()
    login(client, manager)
    assert client.post(f"/products/{p.id}/delete").status_code == 403


def test_user_edits_only_self(client, db_session, make_user):
    me = make_user()
    other = make_user()
    login(client, me)

    assert client.get(f"/users/{other.id}/edit").status_code == 403
    r = client.post(f"/users/{other.id}/edit", data={"full_name": "Hijacked"})
    assert r.status_code == 403

    r = client.post(
        f"/users/{me.id}/edit",
        data={"full_name": "Still Me", "role": "admin", "status": "active"},
        follow_redirects=False,
    )
    assert r.status_code == 303
    db_session.refresh(me)
    assert me.full_name == "Still Me"
    # role changes need an admin
    assert me.role == "user"


def test_customer_orders_are_private(client, db_session, make_user, make_product):
    alice = make_user()
    bob = make_user()
    p = make_product(quantity=10)

    alice_headers = bearer(client, alice)
    r = client.post("/api/orders", json=order_payload((p.id, 1), customer_id=bob.id), headers=alice_headers)
    assert r.status_code == 201
    # customers always order for themselves
    assert r.json()["customer_id"] == alice.id

    bob_headers = bearer(client, bob)
    bob_order = client.post("/api/orders", json=order_payload((p.id, 1)), headers=bob_headers).json()

    assert client.get(f"/api/orders/{bob_order['id']}", headers=alice_headers).status_code == 404
    listing = client.get("/api/orders", headers=alice_headers).json()
    assert [o["customer_id"] for o in listing["orders"]] == [alice.id]

    login(client, alice)
    assert client.get(f"/orders/{bob_order['id']}").status_code == 404
    assert bob_order["order_number"] not in client.get("/orders").text


def test_customer_cannot_manage_orders(client, customer, make_product):
    p = make_product()
    headers = bearer(client, customer)
    order = client.post("/api/orders", json=order_payload((p.id, 1)), headers=headers).json()

    assert client.post(f"/api/orders/{order['id']}/cancel", headers=headers).status_code == 403
    assert client.post(f"/api/orders/{order['id']}/status", json={"status": "completed"}, headers=headers).status_code == 403
    assert client.get("/api/orders/statistics", headers=headers).status_code == 403
    assert client.get("/api/dashboard/stats", headers=headers).status_code == 403
    assert client.get("/api/products/low-stock", headers=headers).status_code == 403

    login(client, customer)
    assert client.post(f"/orders/{order['id']}/cancel").status_code == 403


def test_disabled_account_token_is_rejected(client, db_session, customer):
    headers = bearer(client, customer)
    customer.status = "inactive"
    db_session.commit()
    assert client.get("/api/orders", headers=headers).status_code == 401


def test_user_with_orders_cannot_be_deleted(client, db_session, admin, customer, make_product):
    p = make_product()
    client.post("/api/orders", json=order_payload((p.id, 1)), headers=bearer(client, customer))
    login(client, admin)
    r = client.post(f"/users/{customer.id}/delete")
    assert r.status_code == 400
    assert db_session.get(models.User, customer.id) is not None
