from tests.conftest import PASSWORD, auth


async def test_admin_routes_are_admin_only(client, api):
    buyer, _ = await api.register()
    seller, _ = await api.register(role="seller")

    for token in (buyer, seller):
        assert (await client.get("/api/admin/stats", headers=auth(token))).status_code == 403
        assert (await client.get("/api/admin/accounts", headers=auth(token))).status_code == 403

    assert (await client.get("/api/admin/stats")).status_code == 401


async def test_list_accounts_with_filters(client, api):
    admin, _ = await api.admin()
    await api.register(name="Kiran Patel")
    await api.register(role="seller", name="Meena Farms")

    res = await client.get("/api/admin/accounts", headers=auth(admin))
    users = res.json()["users"]
    assert res.json()["count"] == 3
    assert all("password" not in u for u in users)

    res = await client.get("/api/admin/accounts", params={"role": "seller"}, headers=auth(admin))
    assert [u["name"] for u in res.json()["users"]] == ["Meena Farms"]

    res = await client.get("/api/admin/accounts", params={"search": "kiran"}, headers=auth(admin))
    assert [u["name"] for u in res.json()["users"]] == ["Kiran Patel"]


async def test_deactivate_account_blocks_access(client, api, db):
    admin, admin_user = await api.admin()
    buyer, buyer_user = await api.register(email="blocked@farmmail.in")

    res = await client.put(f"/api/admin/accounts/{buyer_user['id']}/status", json={
        "is_active": False, "reason": "spam",
    }, headers=auth(admin))
    assert res.status_code == 200
    assert res.json()["user"]["is_active"] is False

    assert (await client.get("/api/auth/me", headers=auth(buyer))).status_code == 403
    res = await client.post("/api/auth/login", json={"email": "blocked@farmmail.in", "password": PASSWORD})
    assert res.status_code == 403

    res = await client.get("/api/admin/accounts", params={"is_active": "false"}, headers=auth(admin))
    assert [u["id"] for u in res.json()["users"]] == [buyer_user["id"]]

    assert await db.audit_logs.count_documents({"action": "ACCOUNT_DEACTIVATED"}) == 1

    res = await client.put(f"/api/admin/accounts/{admin_user['id']}/status", json={
        "is_active": False,
    }, headers=auth(admin))
    assert res.status_code == 400


async def test_stats_count_revenue_from_delivered_orders_only(client, api):
    admin, _ = await api.admin()
    seller, _ = await api.register(role="seller")
    buyer, _ = await api.register()
    product = await api.listing(seller, price=100, stock_quantity=20)

    delivered = (await api.order(buyer, [(product["id"], 2)])).json()["order"]
    await api.order(buyer, [(product["id"], 5)])
    await api.set_status(seller, delivered["id"], "delivered")

    res = await client.get("/api/admin/stats", headers=auth(admin))
    body = res.json()
    assert body["stats"] == {
        "total_users": 3,
        "total_buyers": 1,
        "total_sellers": 1,
        "total_products": 1,
        "total_orders": 2,
        "total_revenue": 200,
    }
    assert len(body["recent_orders"]) == 2
    assert len(body["recent_products"]) == 1
    assert all("password" not in u for u in body["recent_users"])


async def test_recent_lists_are_capped(client, api):
    admin, _ = await api.admin()
    for _ in range(7):
        await api.register()

    res = await client.get("/api/admin/stats", headers=auth(admin))
    assert len(res.json()["recent_users"]) == 5


async def test_listing_moderation_hides_from_browse(client, api, db):
    admin, _ = await api.admin()
    seller, _ = await api.register(role="seller")
    product = await api.listing(seller)

    res = await client.put(f"/api/admin/listings/{product['id']}/availability", json={
        "is_available": False, "reason": "mislabelled",
    }, headers=auth(admin))
    assert res.status_code == 200
    assert res.json()["product"]["is_available"] is False

    assert (await client.get("/api/products")).json()["total"] == 0
    assert await db.audit_logs.count_documents({"action": "LISTING_DISABLED"}) == 1


async def test_flagged_reviews(client, api):
    admin, _ = await api.admin()
    seller, _ = await api.register(role="seller")
    product = await api.listing(seller)

    for rating in (1, 2, 5):
        buyer, _ = await api.register()
        order = (await api.order(buyer, [(product["id"], 1)])).json()["order"]
        await api.set_status(seller, order["id"], "delivered")
        await client.post("/api/reviews", json={
            "product_id": product["id"], "rating": rating, "comment": "noted",
        }, headers=auth(buyer))

    res = await client.get("/api/admin/reviews/flagged", headers=auth(admin))
    assert sorted(r["rating"] for r in res.json()["reviews"]) == [1, 2]
