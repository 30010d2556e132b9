"""
Provision an admin account from the server side.

    python -m farmlink.create_admin --email ops@farmlink.in --password '...'

Public registration never grants the admin role. An email that already
belongs to a self-registered account is refused unless --promote is given,
since promoting it also elevates every token that account already holds.
"""
import argparse
import asyncio
import logging
from datetime import datetime

from pymongo import ReturnDocument

from farmlink.config.constants import ROLE_ADMIN
from farmlink.database import close_db, init_db
from farmlink.utils.errors import DuplicateEmail
from farmlink.utils.hash import hash_password
from farmlink.utils.indexes import ensure_indexes

logger = logging.getLogger(__name__)


async def create_admin(
    db,
    email: str,
    password: str,
    name: str = "Admin",
    promote: bool = False,
) -> tuple[dict, bool]:
    """Returns (account, created)."""
    email = email.strip().lower()
    now = datetime.utcnow()

    admin_fields = {
        "password": hash_password(password),
        "role": ROLE_ADMIN,
        "current_role": ROLE_ADMIN,
        "available_roles": [ROLE_ADMIN],
        "is_active": True,
    }

    if await db.users.find_one({"email": email}, {"_id": 1}):
        if not promote:
            raise DuplicateEmail()

        user = await db.users.find_one_and_update(
            {"email": email},
            {"$set": {**admin_fields, "password_changed_at": now}},
            return_document=ReturnDocument.AFTER,
        )
        logger.warning("ADMIN_PROMOTED user=%s", user["_id"])
        return user, False

    user = {
        "name": name,
        "email": email,
        **admin_fields,
        "phone": None,
        "location": None,
        "wishlist": [],
        "created_at": now,
        "last_active_at": now,
    }
    result = await db.users.insert_one(user)
    user["_id"] = result.inserted_id
    logger.info("ADMIN_CREATED user=%s", user["_id"])
    return user, True


async def _run(args) -> int:
    db = init_db(args.mongodb_uri)
    try:
        await ensure_indexes(db)
        user, created = await create_admin(
            db, args.email, args.password, args.name, promote=args.promote,
        )
    except DuplicateEmail:
        logger.error("ADMIN_EXISTS email=%s (pass --promote if you own this account)", args.email)
        return 1
    finally:
        close_db()

    print(f"{'created' if created else 'promoted'} admin {user['email']} ({user['_id']})")
    return 0


def main() -> None:
    ap = argparse.ArgumentParser(description="Create a FarmLink admin account")
    ap.add_argument("--email", required=True)
    ap.add_argument("--password", required=True)
    ap.add_argument("--name", default="Admin")
    ap.add_argument("--promote", action="store_true", help="promote an existing account with this email")
    ap.add_argument("--mongodb-uri", default=None, help="defaults to MONGODB_URI")
    args = ap.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    raise SystemExit(asyncio.run(_run(args)))


if __name__ == "__main__":
    main()
