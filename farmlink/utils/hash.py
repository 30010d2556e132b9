from passlib.context import CryptContext

from farmlink.config.env import BCRYPT_ROUNDS

# bcrypt configuration
pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=BCRYPT_ROUNDS,
)

# bcrypt hard limit
MAX_BCRYPT_BYTES = 72


def hash_password(password: str) -> str:
    """
    Salted one-way hash of a password.
    Enforces bcrypt 72-byte limit.
    """
    if len(password.encode("utf-8")) > MAX_BCRYPT_BYTES:
        raise ValueError("Password too long (max 72 bytes)")
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Re-hash the candidate and compare in constant time.
    Returns False instead of raising on malformed stored hashes.
    """
    if not hashed_password:
        return False
    if len(plain_password.encode("utf-8")) > MAX_BCRYPT_BYTES:
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError:
        return False
