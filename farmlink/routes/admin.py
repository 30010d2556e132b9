import re
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from farmlink.config.constants import (
    ADMIN_RECENT_LIMIT,
    FLAGGED_REVIEW_MAX_RATING,
    ORDER_DELIVERED,
    ROLE_ADMIN,
    ROLE_BUYER,
    ROLE_SELLER,
)
from farmlink.database import get_db
from farmlink.utils.audit import log_audit
from farmlink.utils.errors import ListingNotFound, NotFoundError, ValidationError
from farmlink.utils.guards import parse_object_id
from farmlink.utils.security import require_role
from farmlink.utils.serializers import serialize_doc, serialize_docs, serialize_user


router = APIRouter(prefix="/admin", tags=["Admin"])


# =====================================================
# SCHEMAS
# =====================================================

class AccountStatus(BaseModel):
    is_active: bool
    reason: Optional[str] = None


class ListingAvailability(BaseModel):
    is_available: bool
    reason: Optional[str] = None


# =====================================================
# ACCOUNTS
# =====================================================

@router.get("/accounts")
async def list_accounts(
    role: Optional[Literal["buyer", "seller", "admin"]] = None,
    is_active: Optional[bool] = None,
    search: Optional[str] = Query(None, max_length=100),
    admin=Depends(require_role(ROLE_ADMIN)),
    db=Depends(get_db),
):
    query = {}
    if role:
        query["role"] = role
    if is_active is not None:
        query["is_active"] = is_active
    if search and search.strip():
        pattern = re.escape(search.strip())
        query["$or"] = [
            {"name": {"$regex": pattern, "$options": "i"}},
            {"email": {"$regex": pattern, "$options": "i"}},
        ]

    users = await db.users.find(query).sort("created_at", -1).to_list(length=None)

    return {
        "success": True,
        "count": len(users),
        "users": [serialize_user(u) for u in users],
    }


@router.put("/accounts/{user_id}/status")
async def set_account_status(
    user_id: str,
    data: AccountStatus,
    admin=Depends(require_role(ROLE_ADMIN)),
    db=Depends(get_db),
):
    oid = parse_object_id(user_id, "user_id")

    if oid == admin["_id"] and not data.is_active:
        raise ValidationError("You cannot deactivate your own account")

    user = await db.users.find_one({"_id": oid})
    if not user:
        raise NotFoundError("User not found")

    await db.users.update_one({"_id": oid}, {"$set": {"is_active": data.is_active}})
    user["is_active"] = data.is_active

    await log_audit(
        db,
        admin,
        "ACCOUNT_ACTIVATED" if data.is_active else "ACCOUNT_DEACTIVATED",
        target_id=oid,
        metadata={"reason": data.reason},
    )

    return {
        "success": True,
        "message": f"User {'activated' if data.is_active else 'deactivated'} successfully",
        "user": serialize_user(user),
    }


# =====================================================
# PLATFORM STATS
# =====================================================

async def _delivered_revenue(db) -> float:
    pipeline = [
        {"$match": {"status": ORDER_DELIVERED}},
        {"$group": {"_id": None, "total": {"$sum": "$total_amount"}}},
    ]
    rows = await db.orders.aggregate(pipeline).to_list(length=1)
    return rows[0]["total"] if rows else 0


async def _recent(collection, limit: int = ADMIN_RECENT_LIMIT):
    return await collection.find().sort("created_at", -1).limit(limit).to_list(length=limit)


@router.get("/stats")
async def platform_stats(
    admin=Depends(require_role(ROLE_ADMIN)),
    db=Depends(get_db),
):
    stats = {
        "total_users": await db.users.count_documents({}),
        "total_buyers": await db.users.count_documents({"role": ROLE_BUYER}),
        "total_sellers": await db.users.count_documents({"role": ROLE_SELLER}),
        "total_products": await db.products.count_documents({}),
        "total_orders": await db.orders.count_documents({}),
        "total_revenue": await _delivered_revenue(db),
    }

    recent_users = await _recent(db.users)

    return {
        "success": True,
        "stats": stats,
        "recent_users": [serialize_user(u) for u in recent_users],
        "recent_orders": serialize_docs(await _recent(db.orders)),
        "recent_products": serialize_docs(await _recent(db.products)),
    }


# =====================================================
# LISTING MODERATION
# =====================================================

@router.put("/listings/{product_id}/availability")
async def set_listing_availability(
    product_id: str,
    data: ListingAvailability,
    admin=Depends(require_role(ROLE_ADMIN)),
    db=Depends(get_db),
):
    pid = parse_object_id(product_id, "product_id")

    product = await db.products.find_one({"_id": pid})
    if not product:
        raise ListingNotFound()

    await db.products.update_one({"_id": pid}, {"$set": {"is_available": data.is_available}})
    product["is_available"] = data.is_available

    await log_audit(
        db,
        admin,
        "LISTING_ENABLED" if data.is_available else "LISTING_DISABLED",
        target_id=pid,
        metadata={"reason": data.reason},
    )

    return {"success": True, "product": serialize_doc(product)}


# =====================================================
# REVIEW MODERATION
# =====================================================

@router.get("/reviews/flagged")
async def flagged_reviews(
    admin=Depends(require_role(ROLE_ADMIN)),
    db=Depends(get_db),
):
    cursor = db.reviews.find(
        {"rating": {"$lte": FLAGGED_REVIEW_MAX_RATING}}
    ).sort("created_at", -1)
    reviews = await cursor.to_list(length=None)

    return {"success": True, "count": len(reviews), "reviews": serialize_docs(reviews)}
