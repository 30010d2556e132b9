import logging
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP

from pymongo.errors import DuplicateKeyError

from farmlink.config.constants import REVIEWABLE_ORDER_STATUSES, ROLE_ADMIN
from farmlink.utils.errors import (
    DuplicateReview,
    ListingNotFound,
    NotAuthorized,
    NotEligible,
    NotFoundError,
)
from farmlink.utils.guards import parse_object_id
from farmlink.utils.security import active_role

logger = logging.getLogger(__name__)


def round_rating(value: float) -> float:
    # half-up to one decimal: 4.25 -> 4.3
    return float(Decimal(str(value)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


async def recompute_product_rating(db, product_id) -> tuple[float, int]:
    """
    Derive average_rating / num_reviews from the review rows and write both
    in one update. Zero reviews resets both to 0.
    """
    pipeline = [
        {"$match": {"product_id": product_id}},
        {
            "$group": {
                "_id": "$product_id",
                "avg": {"$avg": "$rating"},
                "count": {"$sum": 1},
            }
        },
    ]

    agg = await db.reviews.aggregate(pipeline).to_list(1)

    if agg:
        average, count = round_rating(agg[0]["avg"]), agg[0]["count"]
    else:
        average, count = 0, 0

    await db.products.update_one(
        {"_id": product_id},
        {"$set": {"average_rating": average, "num_reviews": count}},
    )
    return average, count


async def has_purchased(db, user_id, product_id) -> bool:
    order = await db.orders.find_one({
        "buyer_id": user_id,
        "items.product_id": product_id,
        "status": {"$in": list(REVIEWABLE_ORDER_STATUSES)},
    })
    return order is not None


# -------------------------------------------------
# CREATE
# -------------------------------------------------

async def create_review(db, reviewer: dict, product_id, rating: int, comment: str, images=None) -> dict:
    pid = parse_object_id(product_id, "product_id")

    product = await db.products.find_one({"_id": pid})
    if not product:
        raise ListingNotFound()

    if not await has_purchased(db, reviewer["_id"], pid):
        raise NotEligible()

    if await db.reviews.find_one({"user_id": reviewer["_id"], "product_id": pid}):
        raise DuplicateReview()

    now = datetime.utcnow()
    review = {
        "user_id": reviewer["_id"],
        "user_name": reviewer.get("name"),
        "product_id": pid,
        "seller_id": product["seller_id"],
        "rating": rating,
        "comment": comment,
        "images": images or [],
        "created_at": now,
        "updated_at": now,
    }

    try:
        result = await db.reviews.insert_one(review)
    except DuplicateKeyError:
        # concurrent create from the same reviewer lost the race
        raise DuplicateReview()
    review["_id"] = result.inserted_id

    await recompute_product_rating(db, pid)
    logger.info("REVIEW_CREATED review=%s product=%s rating=%s", review["_id"], pid, rating)

    return review


# -------------------------------------------------
# UPDATE / DELETE
# -------------------------------------------------

async def _get_review(db, review_id) -> dict:
    review = await db.reviews.find_one({"_id": parse_object_id(review_id, "review_id")})
    if not review:
        raise NotFoundError("Review not found")
    return review


async def update_review(db, review_id, user: dict, *, rating=None, comment=None, images=None) -> dict:
    review = await _get_review(db, review_id)

    if review["user_id"] != user["_id"]:
        raise NotAuthorized("Not authorized to update this review")

    updates = {"updated_at": datetime.utcnow()}
    if rating is not None:
        updates["rating"] = rating
    if comment:
        updates["comment"] = comment
    if images is not None:
        updates["images"] = images

    await db.reviews.update_one({"_id": review["_id"]}, {"$set": updates})
    review.update(updates)

    if rating is not None:
        await recompute_product_rating(db, review["product_id"])

    return review


async def delete_review(db, review_id, user: dict) -> None:
    review = await _get_review(db, review_id)

    if review["user_id"] != user["_id"] and active_role(user) != ROLE_ADMIN:
        raise NotAuthorized("Not authorized to delete this review")

    await db.reviews.delete_one({"_id": review["_id"]})
    await recompute_product_rating(db, review["product_id"])
    logger.info("REVIEW_DELETED review=%s by=%s", review["_id"], user["_id"])
