from bson import ObjectId

from farmlink.utils.indexes import ensure_indexes
from tests.conftest import auth


async def _review(client, token, product_id, rating, comment="Fresh and clean"):
    return await client.post("/api/reviews", json={
        "product_id": product_id,
        "rating": rating,
        "comment": comment,
    }, headers=auth(token))


async def _delivered_buyer(api, seller, product_id):
    buyer, _ = await api.register()
    order = (await api.order(buyer, [(product_id, 1)])).json()["order"]
    res = await api.set_status(seller, order["id"], "delivered")
    assert res.status_code == 200
    return buyer


async def test_review_requires_delivered_purchase(client, api):
    seller, _ = await api.register(role="seller")
    product = await api.listing(seller)
    buyer, _ = await api.register()

    res = await _review(client, buyer, product["id"], 5)
    assert res.status_code == 403

    # placed but not delivered still does not count
    await api.order(buyer, [(product["id"], 1)])
    res = await _review(client, buyer, product["id"], 5)
    assert res.status_code == 403


async def test_one_review_per_buyer_and_listing(client, api, db):
    await ensure_indexes(db)
    seller, _ = await api.register(role="seller")
    product = await api.listing(seller)
    buyer = await _delivered_buyer(api, seller, product["id"])

    assert (await _review(client, buyer, product["id"], 5)).status_code == 201

    res = await _review(client, buyer, product["id"], 1)
    assert res.status_code == 409
    assert await db.reviews.count_documents({}) == 1


async def test_rating_is_recomputed_and_rounded(client, api):
    seller, _ = await api.register(role="seller")
    product = await api.listing(seller, stock_quantity=100)

    for rating in (5, 4, 4, 4):
        buyer = await _delivered_buyer(api, seller, product["id"])
        assert (await _review(client, buyer, product["id"], rating)).status_code == 201

    listing = await api.product(product["id"])
    assert listing["num_reviews"] == 4
    assert listing["average_rating"] == 4.3


async def test_update_and_delete_keep_rating_in_sync(client, api):
    seller, _ = await api.register(role="seller")
    product = await api.listing(seller)
    buyer = await _delivered_buyer(api, seller, product["id"])
    stranger, _ = await api.register()

    review = (await _review(client, buyer, product["id"], 2)).json()["review"]

    res = await client.put(f"/api/reviews/{review['id']}", json={"rating": 5}, headers=auth(stranger))
    assert res.status_code == 403

    res = await client.put(f"/api/reviews/{review['id']}", json={"rating": 5}, headers=auth(buyer))
    assert res.status_code == 200
    assert (await api.product(product["id"]))["average_rating"] == 5

    res = await client.delete(f"/api/reviews/{review['id']}", headers=auth(stranger))
    assert res.status_code == 403

    res = await client.delete(f"/api/reviews/{review['id']}", headers=auth(buyer))
    assert res.status_code == 200

    listing = await api.product(product["id"])
    assert listing["average_rating"] == 0
    assert listing["num_reviews"] == 0


async def test_admin_may_delete_any_review(client, api):
    seller, _ = await api.register(role="seller")
    product = await api.listing(seller)
    buyer = await _delivered_buyer(api, seller, product["id"])
    admin, _ = await api.admin()

    review = (await _review(client, buyer, product["id"], 1)).json()["review"]

    res = await client.delete(f"/api/reviews/{review['id']}", headers=auth(admin))
    assert res.status_code == 200


async def test_rating_bounds(client, api):
    seller, _ = await api.register(role="seller")
    product = await api.listing(seller)
    buyer = await _delivered_buyer(api, seller, product["id"])

    assert (await _review(client, buyer, product["id"], 6)).status_code == 400
    assert (await _review(client, buyer, product["id"], 0)).status_code == 400


async def test_review_lists(client, api):
    seller, seller_user = await api.register(role="seller")
    product = await api.listing(seller)
    buyer = await _delivered_buyer(api, seller, product["id"])
    await _review(client, buyer, product["id"], 4)

    res = await client.get(f"/api/products/{product['id']}/reviews")
    assert res.json()["count"] == 1

    res = await client.get(f"/api/reviews/seller/{seller_user['id']}")
    assert res.json()["count"] == 1

    res = await client.get("/api/reviews/mine", headers=auth(buyer))
    assert res.json()["reviews"][0]["rating"] == 4


async def test_legacy_completed_order_allows_review(client, api, db):
    seller, _ = await api.register(role="seller")
    product = await api.listing(seller)
    buyer, _ = await api.register()
    order = (await api.order(buyer, [(product["id"], 1)])).json()["order"]

    # orders finished before "delivered" existed carry "completed"
    await db.orders.update_one({"_id": ObjectId(order["id"])}, {"$set": {"status": "completed"}})

    res = await _review(client, buyer, product["id"], 4)
    assert res.status_code == 201
    assert (await api.product(product["id"]))["num_reviews"] == 1
