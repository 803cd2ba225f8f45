"""Load profile for the order API.

Run against a seeded database (``python -m backoffice.seed``):
  locust -f locustfile.py --host http://127.0.0.1:8000
"""
import os
import random

from locust import HttpUser, between, task

EMAIL = os.getenv("LOAD_EMAIL", "manager@company.com")
PASSWORD = os.getenv("LOAD_PASSWORD", "manager123")


class ApiUser(HttpUser):
    wait_time = between(0.1, 0.5)

    def on_start(self):
        self.headers = {}
        self.product_ids = []
        self.customer_ids = []
        r = self.client.post("/api/auth/login", json={"email": EMAIL, "password": PASSWORD})
        if r.status_code != 200:
            return
        self.headers = {"Authorization": f"Bearer {r.json()['access_token']}"}
        r = self.client.get("/api/products/low-stock", params={"threshold": 1_000_000}, headers=self.headers)
        if r.status_code == 200:
            self.product_ids = [p["id"] for p in r.json() if p["quantity"] > 0]
        r = self.client.get("/api/orders", params={"limit": 50}, headers=self.headers)
        if r.status_code == 200:
            self.customer_ids = sorted({o["customer_id"] for o in r.json()["orders"]})

    @task(3)
    def place_order(self):
        if not self.product_ids:
            return
        payload = {
            "items": [{"product_id": random.choice(self.product_ids), "quantity": 1}],
            "payment_method": random.choice(["cash", "card", "mpesa"]),
            "shipping_address": "Moi Avenue 12, Nairobi",
        }
        if self.customer_ids:
            payload["customer_id"] = random.choice(self.customer_ids)
        # running out of stock is an expected outcome under load
        with self.client.post("/api/orders", json=payload, headers=self.headers, catch_response=True) as r:
            if r.status_code in (201, 409):
                r.success()

    @task(1)
    def list_orders(self):
        self.client.get("/api/orders", headers=self.headers)

    @task(1)
    def statistics(self):
        self.client.get("/api/orders/statistics", headers=self.headers)
