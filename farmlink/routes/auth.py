import logging
from datetime import datetime

from fastapi import APIRouter, Depends, status
from pymongo.errors import DuplicateKeyError

from farmlink.config.constants import DEFAULT_AVAILABLE_ROLES
from farmlink.database import get_db
from farmlink.models.user import PasswordChange, RoleSelect, UserCreate, UserLogin
from farmlink.utils.errors import (
    AccountDisabled,
    ConflictError,
    DuplicateEmail,
    InvalidCredentials,
    NotFoundError,
    RoleNotPermitted,
    ValidationError,
)
from farmlink.utils.guards import parse_object_id
from farmlink.utils.hash import hash_password, verify_password
from farmlink.utils.jwt import create_access_token
from farmlink.utils.rate_limit import rate_limit, reset_rate_limit
from farmlink.utils.security import active_role, get_current_user
from farmlink.utils.serializers import serialize_docs, serialize_user

router = APIRouter(prefix="/auth", tags=["Auth"])

logger = logging.getLogger(__name__)

LOGIN_MAX_ATTEMPTS = 10
LOGIN_WINDOW_SECONDS = 300


def account_summary(user: dict) -> dict:
    return {
        "id": str(user["_id"]),
        "name": user.get("name"),
        "email": user.get("email"),
        "role": user.get("role"),
        "current_role": user.get("current_role"),
        "available_roles": user.get("available_roles", []),
    }


# ======================
# Register
# ======================

@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(data: UserCreate, db=Depends(get_db)):
    email = data.email.lower()

    if await db.users.find_one({"email": email}, {"_id": 1}):
        raise DuplicateEmail()

    try:
        password_hash = hash_password(data.password)
    except ValueError as e:
        raise ValidationError(str(e))

    # admin accounts are provisioned by farmlink.create_admin only
    role, available_roles = data.role or "buyer", list(DEFAULT_AVAILABLE_ROLES)

    now = datetime.utcnow()
    user = {
        "name": data.name.strip(),
        "email": email,
        "password": password_hash,
        "role": role,
        "current_role": role,
        "available_roles": available_roles,
        "phone": data.phone,
        "location": data.location.model_dump() if data.location else None,
        "is_active": True,
        "wishlist": [],
        "created_at": now,
        "last_active_at": now,
    }

    try:
        result = await db.users.insert_one(user)
    except DuplicateKeyError:
        raise DuplicateEmail()
    user["_id"] = result.inserted_id

    logger.info("ACCOUNT_REGISTERED user=%s role=%s", user["_id"], role)

    return {
        "success": True,
        "token": create_access_token(user["_id"], role),
        "user": account_summary(user),
    }


# ======================
# Login
# ======================

@router.post("/login")
async def login(data: UserLogin, db=Depends(get_db)):
    email = data.email.lower()

    await rate_limit(
        db=db,
        key=f"login:{email}",
        max_requests=LOGIN_MAX_ATTEMPTS,
        window_seconds=LOGIN_WINDOW_SECONDS,
    )

    user = await db.users.find_one({"email": email})
    if not user or not verify_password(data.password, user.get("password")):
        raise InvalidCredentials()

    if not user.get("is_active", True):
        raise AccountDisabled()

    await reset_rate_limit(db, f"login:{email}")
    await db.users.update_one(
        {"_id": user["_id"]},
        {"$set": {"last_active_at": datetime.utcnow()}},
    )

    return {
        "success": True,
        "token": create_access_token(user["_id"], active_role(user)),
        "user": account_summary(user),
    }


# ======================
# Current User
# ======================

@router.get("/me")
async def me(user=Depends(get_current_user)):
    return {"success": True, "user": serialize_user(user)}


@router.put("/change-password")
async def change_password(
    data: PasswordChange,
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    if not verify_password(data.current_password, user.get("password")):
        raise InvalidCredentials("Current password is incorrect")

    try:
        password_hash = hash_password(data.new_password)
    except ValueError as e:
        raise ValidationError(str(e))

    await db.users.update_one(
        {"_id": user["_id"]},
        {"$set": {"password": password_hash, "password_changed_at": datetime.utcnow()}},
    )
    return {"success": True, "message": "Password changed successfully"}


# ======================
# Roles
# ======================

async def _set_active_role(db, user: dict, role: str) -> dict:
    if role not in user.get("available_roles", []):
        raise RoleNotPermitted()

    # legacy `role` mirrors the active role for older clients
    await db.users.update_one(
        {"_id": user["_id"]},
        {"$set": {"current_role": role, "role": role}},
    )
    user = {**user, "current_role": role, "role": role}
    logger.info("ROLE_SWITCHED user=%s role=%s", user["_id"], role)
    return user


@router.post("/select-role")
async def select_role(
    data: RoleSelect,
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    user = await _set_active_role(db, user, data.role)
    return {
        "success": True,
        "message": "Role selected successfully",
        "token": create_access_token(user["_id"], data.role),
        "user": account_summary(user),
    }


@router.post("/switch-role")
async def switch_role(
    data: RoleSelect,
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    user = await _set_active_role(db, user, data.role)
    return {
        "success": True,
        "message": f"Switched to {data.role} role successfully",
        "token": create_access_token(user["_id"], data.role),
        "user": account_summary(user),
    }


# ======================
# Wishlist
# ======================

@router.get("/wishlist")
async def get_wishlist(user=Depends(get_current_user), db=Depends(get_db)):
    ids = user.get("wishlist", [])
    products = await db.products.find({"_id": {"$in": ids}}).to_list(length=None)
    return {"success": True, "wishlist": serialize_docs(products)}


@router.post("/wishlist/{product_id}")
async def add_to_wishlist(
    product_id: str,
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    pid = parse_object_id(product_id, "product_id")

    if not await db.products.find_one({"_id": pid}, {"_id": 1}):
        raise NotFoundError("Product not found")

    if pid in user.get("wishlist", []):
        raise ConflictError("Product already in wishlist")

    await db.users.update_one({"_id": user["_id"]}, {"$addToSet": {"wishlist": pid}})
    return {"success": True, "message": "Product added to wishlist"}


@router.delete("/wishlist/{product_id}")
async def remove_from_wishlist(
    product_id: str,
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    pid = parse_object_id(product_id, "product_id")
    await db.users.update_one({"_id": user["_id"]}, {"$pull": {"wishlist": pid}})
    return {"success": True, "message": "Product removed from wishlist"}
