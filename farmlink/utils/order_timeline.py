from datetime import datetime

from farmlink.utils.guards import parse_object_id

ORDER_CREATED = "ORDER_CREATED"
ORDER_STATUS_CHANGED = "ORDER_STATUS_CHANGED"
PAYMENT_COMPLETED = "PAYMENT_COMPLETED"
PAYMENT_FAILED = "PAYMENT_FAILED"
PAYMENT_REFUNDED = "PAYMENT_REFUNDED"


async def record_order_event(
    db,
    *,
    order_id,
    event: str,
    actor_role: str,
    actor_id=None,
    metadata: dict | None = None,
):
    """
    Single source of truth for order timeline events.
    """

    doc = {
        "order_id": parse_object_id(order_id, "order_id"),
        "event": event,
        "actor_role": actor_role,
        "actor_id": parse_object_id(actor_id, "actor_id") if actor_id else None,
        "metadata": metadata or {},
        "created_at": datetime.utcnow(),
    }

    await db.order_timeline.insert_one(doc)


async def get_order_timeline(db, order_id) -> list[dict]:
    cursor = db.order_timeline.find(
        {"order_id": parse_object_id(order_id, "order_id")}
    ).sort("created_at", 1)
    return await cursor.to_list(length=None)
