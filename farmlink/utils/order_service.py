import logging
from datetime import datetime

from pymongo import ReturnDocument

from farmlink.config.constants import (
    ORDER_CANCELLED,
    ORDER_PENDING,
    ORDER_PROGRESSION,
    ORDER_RESTOCKABLE,
    ORDER_STATUSES,
    ORDER_TERMINAL,
    PAYMENT_PENDING,
    ROLE_ADMIN,
)
from farmlink.utils.errors import (
    InsufficientStock,
    InvalidTransition,
    ListingNotFound,
    ListingUnavailable,
    NotAuthorized,
    NotFoundError,
    ValidationError,
)
from farmlink.utils.guards import parse_object_id
from farmlink.utils.order_timeline import (
    ORDER_CREATED,
    ORDER_STATUS_CHANGED,
    record_order_event,
)
from farmlink.utils.security import active_role

logger = logging.getLogger(__name__)


# ======================================================
# STOCK (single conditional writes only)
# ======================================================

async def reserve_stock(db, product_id, quantity: int):
    """
    Decrement stock only if enough remains. Returns the listing after the
    write, or None when the guard did not match.
    """
    return await db.products.find_one_and_update(
        {
            "_id": product_id,
            "is_available": True,
            "stock_quantity": {"$gte": quantity},
        },
        {
            "$inc": {"stock_quantity": -quantity},
            "$set": {"updated_at": datetime.utcnow()},
        },
        return_document=ReturnDocument.AFTER,
    )


async def _reserve_failure(db, product: dict) -> Exception:
    # the guard has two conditions; re-read to report the one that failed
    current = await db.products.find_one({"_id": product["_id"]})
    if not current:
        return ListingNotFound(f"Product {product['_id']} not found")
    if not current.get("is_available", True):
        return ListingUnavailable(f"{current['name']} is not available")
    return InsufficientStock(current["name"], current["_id"])


async def release_stock(db, product_id, quantity: int) -> None:
    await db.products.update_one(
        {"_id": product_id},
        {
            "$inc": {"stock_quantity": quantity},
            "$set": {"updated_at": datetime.utcnow()},
        },
    )


async def _release_all(db, reserved: list[tuple]) -> None:
    for product_id, quantity in reversed(reserved):
        try:
            await release_stock(db, product_id, quantity)
        except Exception:
            # stock is now short by `quantity`; needs manual repair
            logger.exception("STOCK_ROLLBACK_ERROR product=%s qty=%s", product_id, quantity)


# ======================================================
# CREATE ORDER
# ======================================================

async def create_order(db, buyer: dict, items: list[dict], delivery_address: dict) -> dict:
    """
    Place an order for `items` ([{product_id, quantity}]).

    Either every line item's stock is decremented and the order is stored,
    or nothing changes: each decrement is a guarded single write, and the
    first failure rolls back the ones already applied.
    """
    if not items:
        raise ValidationError("Order must contain at least one item")

    # 1. every listing must exist before touching stock
    wanted = []
    for item in items:
        quantity = int(item["quantity"])
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1")

        product_id = parse_object_id(item["product_id"], "product_id")
        product = await db.products.find_one({"_id": product_id})
        if not product:
            raise ListingNotFound(f"Product {item['product_id']} not found")
        if not product.get("is_available", True):
            raise ListingUnavailable(f"{product['name']} is not available")
        if product.get("stock_quantity", 0) < quantity:
            raise InsufficientStock(product["name"], product_id)

        wanted.append((product, quantity))

    # 2. guarded decrements, price read from the decremented document
    reserved: list[tuple] = []
    line_items = []
    try:
        for product, quantity in wanted:
            updated = await reserve_stock(db, product["_id"], quantity)
            if updated is None:
                raise await _reserve_failure(db, product)
            reserved.append((product["_id"], quantity))

            unit_price = updated["price"]
            line_items.append({
                "product_id": updated["_id"],
                "product_name": updated["name"],
                "seller_id": updated["seller_id"],
                "quantity": quantity,
                "unit_price": unit_price,
                "total_price": unit_price * quantity,
            })

        # 3. totals fixed at creation time
        now = datetime.utcnow()
        order = {
            "buyer_id": buyer["_id"],
            "items": line_items,
            "total_amount": sum(li["total_price"] for li in line_items),
            "status": ORDER_PENDING,
            "payment_status": PAYMENT_PENDING,
            "payment_id": None,
            "delivery_address": delivery_address,
            "created_at": now,
            "updated_at": now,
        }

        # 4. persist
        result = await db.orders.insert_one(order)
        order["_id"] = result.inserted_id
    except Exception:
        await _release_all(db, reserved)
        raise

    await record_order_event(
        db,
        order_id=order["_id"],
        event=ORDER_CREATED,
        actor_role="buyer",
        actor_id=buyer["_id"],
        metadata={"total_amount": order["total_amount"], "items": len(line_items)},
    )
    logger.info("ORDER_CREATED order=%s buyer=%s total=%s", order["_id"], buyer["_id"], order["total_amount"])

    return order


# ======================================================
# STATUS MACHINE
# ======================================================

def check_transition(current: str, requested: str) -> None:
    if requested not in ORDER_STATUSES:
        raise ValidationError(f"Invalid status. Allowed: {', '.join(ORDER_STATUSES)}")

    if current in ORDER_TERMINAL:
        raise InvalidTransition(current, requested)

    if requested == ORDER_CANCELLED:
        return

    if ORDER_PROGRESSION.index(requested) <= ORDER_PROGRESSION.index(current):
        raise InvalidTransition(current, requested)


def seller_ids(order: dict) -> set:
    return {item.get("seller_id") for item in order.get("items", [])}


async def restock_order(db, order: dict) -> None:
    for item in order.get("items", []):
        await release_stock(db, item["product_id"], item["quantity"])


async def update_order_status(db, order_id, new_status: str, seller: dict) -> dict:
    oid = parse_object_id(order_id, "order_id")

    order = await db.orders.find_one({"_id": oid})
    if not order:
        raise NotFoundError("Order not found")

    if seller["_id"] not in seller_ids(order):
        raise NotAuthorized("Not authorized to update this order")

    current = order["status"]
    check_transition(current, new_status)

    # conditional on the status we validated against
    now = datetime.utcnow()
    updated = await db.orders.find_one_and_update(
        {"_id": oid, "status": current},
        {"$set": {"status": new_status, "updated_at": now}},
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        latest = await db.orders.find_one({"_id": oid}, {"status": 1})
        raise InvalidTransition((latest or {}).get("status", current), new_status)

    if new_status == ORDER_CANCELLED and current in ORDER_RESTOCKABLE:
        await restock_order(db, updated)

    await record_order_event(
        db,
        order_id=oid,
        event=ORDER_STATUS_CHANGED,
        actor_role="seller",
        actor_id=seller["_id"],
        metadata={"from": current, "to": new_status},
    )
    logger.info("ORDER_STATUS order=%s %s->%s", oid, current, new_status)

    return updated


async def cancel_order(db, order_id, *, actor: dict, reason: str, payment_status: str | None = None):
    """
    Force-cancel regardless of progression (refund cascade).
    Stock returns only when the goods never left the seller, judged by the
    status the order held at the moment of the write.
    """
    oid = parse_object_id(order_id, "order_id")
    now = datetime.utcnow()

    updates = {
        "status": ORDER_CANCELLED,
        "cancel_reason": reason,
        "updated_at": now,
    }
    if payment_status:
        updates["payment_status"] = payment_status

    before = await db.orders.find_one_and_update(
        {"_id": oid, "status": {"$ne": ORDER_CANCELLED}},
        {"$set": updates},
        return_document=ReturnDocument.BEFORE,
    )
    if before is None:
        # missing, or cancelled already; only the payment flag may still move
        if not payment_status:
            return await db.orders.find_one({"_id": oid})
        return await db.orders.find_one_and_update(
            {"_id": oid},
            {"$set": {"payment_status": payment_status, "updated_at": now}},
            return_document=ReturnDocument.AFTER,
        )

    if before["status"] in ORDER_RESTOCKABLE:
        await restock_order(db, before)

    await record_order_event(
        db,
        order_id=oid,
        event=ORDER_STATUS_CHANGED,
        actor_role=active_role(actor),
        actor_id=actor["_id"],
        metadata={"from": before["status"], "to": ORDER_CANCELLED, "reason": reason},
    )
    return {**before, **updates}


# ======================================================
# QUERIES
# ======================================================

async def orders_for_buyer(db, buyer_id) -> list[dict]:
    cursor = db.orders.find({"buyer_id": buyer_id}).sort("created_at", -1)
    return await cursor.to_list(length=None)


async def orders_for_seller(db, seller_id) -> list[dict]:
    # whole order is returned, including other sellers' lines
    cursor = db.orders.find({"items.seller_id": seller_id}).sort("created_at", -1)
    return await cursor.to_list(length=None)


def can_view_order(order: dict, user: dict) -> bool:
    if active_role(user) == ROLE_ADMIN:
        return True
    if order["buyer_id"] == user["_id"]:
        return True
    return user["_id"] in seller_ids(order)
