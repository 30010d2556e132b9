from pymongo import ASCENDING, DESCENDING
from pymongo.errors import OperationFailure


def _normalize_key_pairs(keys):
    return [(k, v) for k, v in keys]


async def _create_index_safe(collection, keys, **kwargs):
    """
    Create index safely.
    If Mongo reports IndexOptionsConflict/IndexKeySpecsConflict for same key pattern,
    drop the conflicting index and recreate with desired options.
    """
    desired_key = _normalize_key_pairs(keys)
    desired_name = kwargs.get("name")
    try:
        await collection.create_index(keys, **kwargs)
        return
    except OperationFailure as e:
        if getattr(e, "code", None) not in {85, 86}:
            raise

        conflicting_names = []
        async for idx in collection.list_indexes():
            idx_key = _normalize_key_pairs(list(idx.get("key", {}).items()))
            if idx_key == desired_key:
                idx_name = idx.get("name")
                if idx_name and idx_name != desired_name:
                    conflicting_names.append(idx_name)

        for idx_name in conflicting_names:
            await collection.drop_index(idx_name)

        await collection.create_index(keys, **kwargs)


async def ensure_indexes(db):
    # Accounts
    await _create_index_safe(
        db.users,
        [("email", ASCENDING)],
        name="users_email_unique_idx",
        unique=True,
    )
    await _create_index_safe(
        db.users,
        [("role", ASCENDING), ("created_at", DESCENDING)],
        name="users_role_created_idx",
    )

    # Listings
    await _create_index_safe(
        db.products,
        [("seller_id", ASCENDING), ("created_at", DESCENDING)],
        name="products_seller_created_idx",
    )
    await _create_index_safe(
        db.products,
        [("category", ASCENDING), ("created_at", DESCENDING)],
        name="products_category_created_idx",
    )

    # Orders
    await _create_index_safe(
        db.orders,
        [("buyer_id", ASCENDING), ("created_at", DESCENDING)],
        name="orders_buyer_created_at_idx",
    )
    await _create_index_safe(
        db.orders,
        [("items.seller_id", ASCENDING), ("created_at", DESCENDING)],
        name="orders_item_seller_created_at_idx",
    )
    await _create_index_safe(
        db.order_timeline,
        [("order_id", ASCENDING), ("created_at", ASCENDING)],
        name="order_timeline_order_idx",
    )

    # Bulk requests
    await _create_index_safe(
        db.bulk_requests,
        [("buyer_id", ASCENDING), ("created_at", DESCENDING)],
        name="bulk_requests_buyer_created_idx",
    )
    await _create_index_safe(
        db.bulk_requests,
        [("product_id", ASCENDING), ("created_at", DESCENDING)],
        name="bulk_requests_product_created_idx",
    )

    # Reviews: one per (reviewer, listing)
    await _create_index_safe(
        db.reviews,
        [("user_id", ASCENDING), ("product_id", ASCENDING)],
        name="reviews_user_product_unique",
        unique=True,
    )
    await _create_index_safe(
        db.reviews,
        [("product_id", ASCENDING), ("created_at", DESCENDING)],
        name="reviews_product_created_idx",
    )
    await _create_index_safe(
        db.reviews,
        [("seller_id", ASCENDING), ("created_at", DESCENDING)],
        name="reviews_seller_created_idx",
    )

    # Chats: one thread per unordered participant pair
    await _create_index_safe(
        db.chats,
        [("participant_key", ASCENDING)],
        name="chats_participant_key_unique",
        unique=True,
    )
    await _create_index_safe(
        db.chats,
        [("participants", ASCENDING), ("last_message_at", DESCENDING)],
        name="chats_participants_last_message_idx",
    )

    # Payments
    await _create_index_safe(
        db.payments,
        [("intent_id", ASCENDING)],
        name="payments_intent_unique",
        unique=True,
        sparse=True,
    )
    await _create_index_safe(
        db.payments,
        [("user_id", ASCENDING), ("created_at", DESCENDING)],
        name="payments_user_created_idx",
    )

    # Rate limits
    await _create_index_safe(
        db.rate_limits,
        [("key", ASCENDING)],
        name="rate_limits_key_unique",
        unique=True,
    )
    await _create_index_safe(
        db.rate_limits,
        [("expires_at", ASCENDING)],
        name="rate_limits_expires_ttl_idx",
        expireAfterSeconds=0,
    )
