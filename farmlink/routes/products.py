import logging
import math
import re
from datetime import datetime
from typing import Literal, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status

from farmlink.config.constants import (
    CATEGORIES,
    DEFAULT_PAGE_SIZE,
    DEFAULT_SORT,
    MAX_PAGE_SIZE,
    ROLE_ADMIN,
    ROLE_SELLER,
    SORT_OPTIONS,
)
from farmlink.database import get_db
from farmlink.models.product import ProductCreate, ProductUpdate
from farmlink.utils.cloudinary import destroy_listing_images
from farmlink.utils.errors import ListingNotFound, NotAuthorized, ValidationError
from farmlink.utils.guards import is_owner, parse_object_id
from farmlink.utils.security import active_role, require_role
from farmlink.utils.serializers import public_user, serialize_doc, serialize_docs

router = APIRouter(prefix="/products", tags=["Products"])

logger = logging.getLogger(__name__)


def build_listing_query(
    *,
    category: Optional[str] = None,
    state: Optional[str] = None,
    district: Optional[str] = None,
    search: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    min_rating: Optional[float] = None,
) -> dict:
    query: dict = {"is_available": True}

    # ---- filters ----
    if category:
        if category not in CATEGORIES:
            raise ValidationError(f"Invalid category. Allowed: {', '.join(CATEGORIES)}")
        query["category"] = category

    if state:
        query["location.state"] = state

    if district:
        query["location.district"] = district

    if min_price is not None or max_price is not None:
        query["price"] = {}
        if min_price is not None:
            query["price"]["$gte"] = min_price
        if max_price is not None:
            query["price"]["$lte"] = max_price

    if min_rating is not None:
        query["average_rating"] = {"$gte": min_rating}

    # ---- text search ----
    if search:
        pattern = re.escape(search.strip())
        query["$or"] = [
            {"name": {"$regex": pattern, "$options": "i"}},
            {"description": {"$regex": pattern, "$options": "i"}},
            {"tags": {"$regex": pattern, "$options": "i"}},
        ]

    return query


async def get_listing_or_404(db, product_id: str) -> dict:
    product = await db.products.find_one({"_id": parse_object_id(product_id, "product_id")})
    if not product:
        raise ListingNotFound()
    return product


def ensure_can_manage(product: dict, user: dict, action: str) -> None:
    if is_owner(product, user) or active_role(user) == ROLE_ADMIN:
        return
    raise NotAuthorized(f"Not authorized to {action} this product")


# =========================
# LIST (PUBLIC)
# =========================

@router.get("")
async def list_products(
    category: Optional[str] = None,
    state: Optional[str] = None,
    district: Optional[str] = None,
    region: Optional[str] = Query(None, description="Alias for state"),
    search: Optional[str] = None,
    min_price: Optional[float] = Query(None, ge=0),
    max_price: Optional[float] = Query(None, ge=0),
    min_rating: Optional[float] = Query(None, ge=0, le=5),
    sort: Literal["newest", "price_asc", "price_desc", "rating", "popular"] = DEFAULT_SORT,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
    db=Depends(get_db),
):
    # ---- pagination ----
    page = max(page, 1)
    limit = min(max(limit, 1), MAX_PAGE_SIZE)
    skip = (page - 1) * limit

    query = build_listing_query(
        category=category,
        state=state or region,
        district=district,
        search=search,
        min_price=min_price,
        max_price=max_price,
        min_rating=min_rating,
    )

    total = await db.products.count_documents(query)
    cursor = (
        db.products
        .find(query)
        .sort(SORT_OPTIONS[sort])
        .skip(skip)
        .limit(limit)
    )
    products = await cursor.to_list(length=limit)

    return {
        "success": True,
        "count": len(products),
        "total": total,
        "page": page,
        "pages": math.ceil(total / limit) if total else 0,
        "products": serialize_docs(products),
    }


# =========================
# SELLER'S OWN (STATIC ROUTES, MUST BE FIRST)
# =========================

@router.get("/mine")
async def my_products(
    seller=Depends(require_role(ROLE_SELLER)),
    db=Depends(get_db),
):
    cursor = db.products.find({"seller_id": seller["_id"]}).sort("created_at", -1)
    products = await cursor.to_list(length=None)
    return {"success": True, "count": len(products), "products": serialize_docs(products)}


@router.get("/seller/{seller_id}")
async def seller_products(seller_id: str, db=Depends(get_db)):
    cursor = db.products.find({
        "seller_id": parse_object_id(seller_id, "seller_id"),
        "is_available": True,
    }).sort("created_at", -1)
    products = await cursor.to_list(length=None)
    return {"success": True, "count": len(products), "products": serialize_docs(products)}


# =========================
# PRODUCT DETAIL (DYNAMIC)
# =========================

@router.get("/{product_id}")
async def product_detail(product_id: str, db=Depends(get_db)):
    product = await get_listing_or_404(db, product_id)
    seller = await db.users.find_one({"_id": product["seller_id"]})

    body = serialize_doc(product)
    body["seller"] = public_user(seller)
    return {"success": True, "product": body}


# =========================
# SELLER CREATE PRODUCT
# =========================

@router.post("", status_code=status.HTTP_201_CREATED)
async def create_product(
    data: ProductCreate,
    seller=Depends(require_role(ROLE_SELLER)),
    db=Depends(get_db),
):
    now = datetime.utcnow()
    product_doc = {
        **data.model_dump(),
        "seller_id": seller["_id"],
        "average_rating": 0,
        "num_reviews": 0,
        "created_at": now,
        "updated_at": now,
    }

    result = await db.products.insert_one(product_doc)
    product_doc["_id"] = result.inserted_id

    logger.info("LISTING_CREATED product=%s seller=%s", result.inserted_id, seller["_id"])

    return {"success": True, "product": serialize_doc(product_doc)}


# =========================
# UPDATE (OWNER / ADMIN)
# =========================

@router.put("/{product_id}")
async def update_product(
    product_id: str,
    data: ProductUpdate,
    user=Depends(require_role(ROLE_SELLER, ROLE_ADMIN)),
    db=Depends(get_db),
):
    product = await get_listing_or_404(db, product_id)
    ensure_can_manage(product, user, "update")

    updates = data.model_dump(exclude_unset=True)
    for key in ("name", "description", "price", "stock_quantity", "category", "unit", "is_available"):
        if key in updates and updates[key] is None:
            raise ValidationError(f"{key} cannot be null")

    updates["updated_at"] = datetime.utcnow()

    await db.products.update_one({"_id": product["_id"]}, {"$set": updates})
    product.update(updates)

    return {"success": True, "product": serialize_doc(product)}


# =========================
# DELETE (OWNER / ADMIN)
# =========================

@router.delete("/{product_id}")
async def delete_product(
    product_id: str,
    background_tasks: BackgroundTasks,
    user=Depends(require_role(ROLE_SELLER, ROLE_ADMIN)),
    db=Depends(get_db),
):
    product = await get_listing_or_404(db, product_id)
    ensure_can_manage(product, user, "delete")

    await db.products.delete_one({"_id": product["_id"]})
    logger.info("LISTING_DELETED product=%s by=%s", product["_id"], user["_id"])

    if product.get("images"):
        background_tasks.add_task(destroy_listing_images, product["images"])

    return {"success": True, "message": "Product deleted successfully"}
