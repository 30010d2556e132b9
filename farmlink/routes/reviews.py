from typing import List, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from farmlink.config.constants import ROLE_BUYER
from farmlink.database import get_db
from farmlink.models.product import ProductImage
from farmlink.utils import review_service
from farmlink.utils.guards import parse_object_id
from farmlink.utils.security import get_current_user, require_role
from farmlink.utils.serializers import serialize_doc, serialize_docs

router = APIRouter(
    tags=["Reviews"]
)

# -------------------------------------------------
# SCHEMA
# -------------------------------------------------

class CreateReview(BaseModel):
    product_id: str
    rating: int = Field(..., ge=1, le=5)
    comment: str = Field(..., min_length=1)
    images: List[ProductImage] = []


class UpdateReview(BaseModel):
    rating: Optional[int] = Field(None, ge=1, le=5)
    comment: Optional[str] = None
    images: Optional[List[ProductImage]] = None


# -------------------------------------------------
# CREATE REVIEW (BUYER ONLY)
# -------------------------------------------------

@router.post("/reviews", status_code=status.HTTP_201_CREATED)
async def create_review(
    data: CreateReview,
    buyer=Depends(require_role(ROLE_BUYER)),
    db=Depends(get_db),
):
    review = await review_service.create_review(
        db,
        buyer,
        data.product_id,
        data.rating,
        data.comment.strip(),
        images=[i.model_dump() for i in data.images],
    )
    return {"success": True, "review": serialize_doc(review)}


# -------------------------------------------------
# PUBLIC LISTS
# -------------------------------------------------

@router.get("/products/{product_id}/reviews")
async def get_product_reviews(product_id: str, db=Depends(get_db)):
    cursor = db.reviews.find(
        {"product_id": parse_object_id(product_id, "product_id")}
    ).sort("created_at", -1)
    reviews = await cursor.to_list(length=None)
    return {"success": True, "count": len(reviews), "reviews": serialize_docs(reviews)}


@router.get("/reviews/seller/{seller_id}")
async def get_seller_reviews(seller_id: str, db=Depends(get_db)):
    cursor = db.reviews.find(
        {"seller_id": parse_object_id(seller_id, "seller_id")}
    ).sort("created_at", -1)
    reviews = await cursor.to_list(length=None)
    return {"success": True, "count": len(reviews), "reviews": serialize_docs(reviews)}


@router.get("/reviews/mine")
async def my_reviews(user=Depends(get_current_user), db=Depends(get_db)):
    cursor = db.reviews.find({"user_id": user["_id"]}).sort("created_at", -1)
    reviews = await cursor.to_list(length=None)
    return {"success": True, "count": len(reviews), "reviews": serialize_docs(reviews)}


# -------------------------------------------------
# UPDATE / DELETE (OWNER, ADMIN FOR DELETE)
# -------------------------------------------------

@router.put("/reviews/{review_id}")
async def update_review(
    review_id: str,
    data: UpdateReview,
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    review = await review_service.update_review(
        db,
        review_id,
        user,
        rating=data.rating,
        comment=data.comment.strip() if data.comment else None,
        images=[i.model_dump() for i in data.images] if data.images is not None else None,
    )
    return {"success": True, "review": serialize_doc(review)}


@router.delete("/reviews/{review_id}")
async def delete_review(
    review_id: str,
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    await review_service.delete_review(db, review_id, user)
    return {"success": True, "message": "Review deleted successfully"}
