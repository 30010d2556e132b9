from datetime import datetime, timedelta

from fastapi import HTTPException, status
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError


async def _bump(db, key: str, now: datetime, window_seconds: int) -> dict:
    query = {"key": key}
    update = {
        "$inc": {"count": 1},
        # expires_at drives the TTL index; the window row disappears on its own
        "$setOnInsert": {
            "created_at": now,
            "expires_at": now + timedelta(seconds=window_seconds),
        },
    }
    try:
        return await db.rate_limits.find_one_and_update(
            query, update, upsert=True, return_document=ReturnDocument.AFTER,
        )
    except DuplicateKeyError:
        # lost the insert race on the unique key; the window exists now
        return await db.rate_limits.find_one_and_update(
            query, update, return_document=ReturnDocument.AFTER,
        )


async def rate_limit(
    db,
    key: str,
    max_requests: int,
    window_seconds: int,
) -> int:
    """
    Fixed-window counter per key, counted with one atomic increment.
    Returns the attempts left in the current window; raises 429 past the limit.
    """
    now = datetime.utcnow()

    # the TTL monitor runs about once a minute, so an elapsed window may still be here
    await db.rate_limits.delete_one({
        "key": key,
        "created_at": {"$lt": now - timedelta(seconds=window_seconds)},
    })

    record = await _bump(db, key, now, window_seconds)

    if record["count"] > max_requests:
        elapsed = int((now - record["created_at"]).total_seconds())
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many requests. Please try again later.",
            headers={"Retry-After": str(max(window_seconds - elapsed, 1))},
        )

    return max_requests - record["count"]


async def reset_rate_limit(db, key: str) -> None:
    await db.rate_limits.delete_one({"key": key})
