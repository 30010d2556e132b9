from datetime import datetime, timedelta

from jose import JWTError, jwt

from farmlink.config.env import JWT_SECRET, JWT_ALGORITHM, ACCESS_TOKEN_DAYS
from farmlink.utils.errors import AuthenticationError


def _require_jwt_secret() -> str:
    secret = (JWT_SECRET or "").strip()
    if not secret:
        raise RuntimeError("JWT_SECRET is not configured")
    return secret


def create_access_token(account_id, role: str | None = None) -> str:
    now = datetime.utcnow()
    payload = {
        "sub": str(account_id),
        "role": role,
        "iat": now,
        "exp": now + timedelta(days=ACCESS_TOKEN_DAYS),
    }
    return jwt.encode(payload, _require_jwt_secret(), algorithm=JWT_ALGORITHM)


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, _require_jwt_secret(), algorithms=[JWT_ALGORITHM])
    except JWTError:
        raise AuthenticationError("Invalid or expired token")
