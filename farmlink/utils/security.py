from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from farmlink.database import get_db
from farmlink.utils.errors import (
    AccountDisabled,
    AuthenticationError,
    AuthorizationError,
    ValidationError,
)
from farmlink.utils.guards import parse_object_id
from farmlink.utils.jwt import decode_token

security = HTTPBearer(auto_error=False)


def active_role(user: dict) -> str | None:
    # `role` is the legacy single-role field kept in sync by role switching
    return user.get("current_role") or user.get("role")


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db=Depends(get_db),
):
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Not authorized, no token")

    payload = decode_token(credentials.credentials)

    account_id = payload.get("sub")
    if not account_id:
        raise AuthenticationError("Invalid token payload")

    try:
        oid = parse_object_id(account_id, "token subject")
    except ValidationError:
        raise AuthenticationError("Invalid token payload")

    user = await db.users.find_one({"_id": oid})
    if not user:
        raise AuthenticationError("User not found")

    if not user.get("is_active", True):
        raise AccountDisabled()

    return user


def require_role(*roles: str):
    async def checker(user=Depends(get_current_user)):
        if active_role(user) not in roles:
            raise AuthorizationError(
                f"User role {active_role(user)} is not authorized to access this route"
            )
        return user

    return checker
