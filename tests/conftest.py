"""Pytest configuration: in-memory Mongo, ASGI client and account helpers."""
import os

# config is read at import time
os.environ.setdefault("ENV", "test")
os.environ.setdefault("JWT_SECRET", "test-secret-key")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("RAZORPAY_KEY_ID", "rzp_test_key")
os.environ.setdefault("RAZORPAY_KEY_SECRET", "rzp_test_secret")
os.environ.setdefault("RAZORPAY_WEBHOOK_SECRET", "whsec_test")

import pytest
from httpx import ASGITransport, AsyncClient
from mongomock_motor import AsyncMongoMockClient

from farmlink.create_admin import create_admin
from farmlink.database import get_db
from farmlink.main import app

ADMIN_EMAIL = "admin@farmmail.in"
PASSWORD = "secret123"


@pytest.fixture
def db():
    return AsyncMongoMockClient()["farmlink_test"]


@pytest.fixture
def test_app(db):
    app.dependency_overrides[get_db] = lambda: db
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
async def client(test_app):
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c


def auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


class Api:
    """Thin helpers over the HTTP surface used by most tests."""

    def __init__(self, client: AsyncClient, db):
        self.client = client
        self.db = db
        self._seq = 0

    async def register(self, role: str = "buyer", email: str | None = None, name: str | None = None):
        self._seq += 1
        email = email or f"{role}{self._seq}@farmmail.in"
        res = await self.client.post("/api/auth/register", json={
            "name": name or f"{role.title()} {self._seq}",
            "email": email,
            "password": PASSWORD,
            "role": role,
            "location": {"state": "Punjab", "district": "Ludhiana"},
        })
        assert res.status_code == 201, res.text
        body = res.json()
        return body["token"], body["user"]

    async def admin(self):
        await create_admin(self.db, ADMIN_EMAIL, PASSWORD)
        res = await self.client.post("/api/auth/login", json={"email": ADMIN_EMAIL, "password": PASSWORD})
        assert res.status_code == 200, res.text
        body = res.json()
        return body["token"], body["user"]

    async def switch_role(self, token: str, role: str) -> str:
        res = await self.client.post("/api/auth/switch-role", json={"role": role}, headers=auth(token))
        assert res.status_code == 200, res.text
        return res.json()["token"]

    async def listing(self, token: str, **overrides) -> dict:
        payload = {
            "name": "Basmati Rice",
            "description": "Aged long grain basmati",
            "price": 100,
            "stock_quantity": 10,
            "category": "Grains",
            "unit": "kg",
            "location": {"state": "Punjab", "district": "Amritsar"},
            "tags": ["rice", "basmati"],
        }
        payload.update(overrides)
        res = await self.client.post("/api/products", json=payload, headers=auth(token))
        assert res.status_code == 201, res.text
        return res.json()["product"]

    async def order(self, token: str, items: list[tuple[str, int]]):
        return await self.client.post("/api/orders", json={
            "items": [{"product_id": pid, "quantity": qty} for pid, qty in items],
            "delivery_address": {"street": "12 Mandi Road", "city": "Ludhiana", "state": "Punjab", "pincode": "141001"},
        }, headers=auth(token))

    async def set_status(self, token: str, order_id: str, status: str):
        return await self.client.put(
            f"/api/orders/{order_id}/status", json={"status": status}, headers=auth(token),
        )

    async def product(self, product_id: str) -> dict:
        res = await self.client.get(f"/api/products/{product_id}")
        assert res.status_code == 200, res.text
        return res.json()["product"]


@pytest.fixture
def api(client, db):
    return Api(client, db)
