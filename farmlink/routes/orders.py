from typing import Literal

from fastapi import APIRouter, Depends, Query, status

from farmlink.config.constants import ROLE_BUYER, ROLE_SELLER
from farmlink.database import get_db
from farmlink.models.order import OrderCreate, OrderStatusUpdate
from farmlink.utils import order_service
from farmlink.utils.errors import AuthorizationError, NotAuthorized, NotFoundError
from farmlink.utils.guards import parse_object_id
from farmlink.utils.order_timeline import get_order_timeline
from farmlink.utils.security import active_role, get_current_user, require_role
from farmlink.utils.serializers import serialize_doc, serialize_docs


router = APIRouter(
    prefix="/orders",
    tags=["Orders"]
)


# ======================================================
# CREATE ORDER (BUYER)
# ======================================================

@router.post("", status_code=status.HTTP_201_CREATED)
async def create_order(
    data: OrderCreate,
    buyer=Depends(require_role(ROLE_BUYER)),
    db=Depends(get_db),
):
    order = await order_service.create_order(
        db,
        buyer,
        [item.model_dump() for item in data.items],
        data.delivery_address.model_dump(),
    )
    return {"success": True, "order": serialize_doc(order)}


# ======================================================
# LIST (BUYER / SELLER VIEW)
# ======================================================

@router.get("")
async def list_orders(
    role: Literal["buyer", "seller"] = Query(ROLE_BUYER),
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    if active_role(user) != role:
        raise AuthorizationError(f"Switch to the {role} role to view these orders")

    if role == ROLE_SELLER:
        orders = await order_service.orders_for_seller(db, user["_id"])
    else:
        orders = await order_service.orders_for_buyer(db, user["_id"])

    return {"success": True, "count": len(orders), "orders": serialize_docs(orders)}


# ======================================================
# ORDER DETAIL (BUYER / CONTRIBUTING SELLER / ADMIN)
# ======================================================

@router.get("/{order_id}")
async def order_detail(
    order_id: str,
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    order = await db.orders.find_one({"_id": parse_object_id(order_id, "order_id")})
    if not order:
        raise NotFoundError("Order not found")

    if not order_service.can_view_order(order, user):
        raise NotAuthorized("Not authorized to view this order")

    buyer = await db.users.find_one({"_id": order["buyer_id"]}, {"name": 1, "email": 1, "phone": 1})
    timeline = await get_order_timeline(db, order["_id"])

    body = serialize_doc(order)
    body["buyer"] = serialize_doc(buyer)
    body["timeline"] = serialize_docs(timeline)
    return {"success": True, "order": body}


# ======================================================
# SELLER STATUS TRANSITION
# ======================================================

@router.put("/{order_id}/status")
async def update_order_status(
    order_id: str,
    data: OrderStatusUpdate,
    seller=Depends(require_role(ROLE_SELLER)),
    db=Depends(get_db),
):
    order = await order_service.update_order_status(db, order_id, data.status, seller)
    return {"success": True, "order": serialize_doc(order)}

