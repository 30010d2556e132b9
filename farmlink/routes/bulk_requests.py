import logging
from datetime import datetime
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from farmlink.config.constants import (
    BULK_NEGOTIATING,
    BULK_PENDING,
    ROLE_BUYER,
    ROLE_SELLER,
)
from farmlink.database import get_db
from farmlink.utils.errors import (
    AuthorizationError,
    ListingNotFound,
    NotAuthorized,
    NotFoundError,
)
from farmlink.utils.guards import parse_object_id
from farmlink.utils.security import active_role, get_current_user, require_role
from farmlink.utils.serializers import serialize_doc, serialize_docs

router = APIRouter(prefix="/bulk-requests", tags=["Bulk Requests"])

logger = logging.getLogger(__name__)


# -------------------------------------------------
# SCHEMAS
# -------------------------------------------------

class BulkRequestCreate(BaseModel):
    product_id: str
    requested_quantity: int = Field(..., ge=1)
    message: Optional[str] = None


class BulkRequestResponse(BaseModel):
    message: Optional[str] = None
    custom_price: Optional[float] = Field(None, ge=0)
    status: Optional[Literal["negotiating", "accepted", "rejected"]] = None


# -------------------------------------------------
# CREATE (BUYER)
# -------------------------------------------------

@router.post("", status_code=status.HTTP_201_CREATED)
async def create_bulk_request(
    data: BulkRequestCreate,
    buyer=Depends(require_role(ROLE_BUYER)),
    db=Depends(get_db),
):
    pid = parse_object_id(data.product_id, "product_id")

    # existence only; quantity is not checked against stock
    product = await db.products.find_one({"_id": pid}, {"_id": 1})
    if not product:
        raise ListingNotFound()

    bulk_request = {
        "buyer_id": buyer["_id"],
        "product_id": pid,
        "requested_quantity": data.requested_quantity,
        "message": data.message.strip() if data.message else None,
        "seller_response": None,
        "status": BULK_PENDING,
        "created_at": datetime.utcnow(),
    }

    result = await db.bulk_requests.insert_one(bulk_request)
    bulk_request["_id"] = result.inserted_id

    logger.info("BULK_REQUEST_CREATED request=%s product=%s", result.inserted_id, pid)

    return {"success": True, "bulk_request": serialize_doc(bulk_request)}


# -------------------------------------------------
# LIST (BUYER / SELLER VIEW)
# -------------------------------------------------

@router.get("")
async def list_bulk_requests(
    role: Literal["buyer", "seller"] = Query(ROLE_BUYER),
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    if active_role(user) != role:
        raise AuthorizationError(f"Switch to the {role} role to view these requests")

    if role == ROLE_SELLER:
        owned = await db.products.find({"seller_id": user["_id"]}, {"_id": 1}).to_list(length=None)
        product_ids = [p["_id"] for p in owned]
        query = {"product_id": {"$in": product_ids}}
    else:
        query = {"buyer_id": user["_id"]}

    requests = await db.bulk_requests.find(query).sort("created_at", -1).to_list(length=None)

    # attach listing name/price for list views
    products = {
        p["_id"]: p
        for p in await db.products.find(
            {"_id": {"$in": list({r["product_id"] for r in requests})}},
            {"name": 1, "price": 1, "unit": 1},
        ).to_list(length=None)
    }

    out = []
    for r in requests:
        body = serialize_doc(r)
        body["product"] = serialize_doc(products.get(r["product_id"]))
        out.append(body)

    return {"success": True, "count": len(out), "bulk_requests": out}


# -------------------------------------------------
# RESPOND (OWNING SELLER)
# -------------------------------------------------

@router.put("/{request_id}/respond")
async def respond_to_bulk_request(
    request_id: str,
    data: BulkRequestResponse,
    seller=Depends(require_role(ROLE_SELLER)),
    db=Depends(get_db),
):
    rid = parse_object_id(request_id, "request_id")

    bulk_request = await db.bulk_requests.find_one({"_id": rid})
    if not bulk_request:
        raise NotFoundError("Bulk request not found")

    product = await db.products.find_one({"_id": bulk_request["product_id"]}, {"seller_id": 1})
    if not product or product["seller_id"] != seller["_id"]:
        raise NotAuthorized("Not authorized to respond to this request")

    response = {
        "message": data.message,
        "custom_price": data.custom_price,
        "responded_at": datetime.utcnow(),
    }
    new_status = data.status or BULK_NEGOTIATING

    await db.bulk_requests.update_one(
        {"_id": rid},
        {"$set": {"seller_response": response, "status": new_status}},
    )
    bulk_request.update({"seller_response": response, "status": new_status})

    logger.info("BULK_REQUEST_RESPONDED request=%s status=%s", rid, new_status)

    return {"success": True, "bulk_request": serialize_doc(bulk_request)}
