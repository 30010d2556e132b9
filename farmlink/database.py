import logging

from motor.motor_asyncio import AsyncIOMotorClient

from farmlink.config.env import MONGODB_URI

logger = logging.getLogger(__name__)

_client: AsyncIOMotorClient | None = None
_db = None


def init_db(uri: str | None = None):
    """
    Open the process-wide client once, at startup.
    """
    global _client, _db

    uri = uri or MONGODB_URI
    if not uri:
        raise RuntimeError("MONGODB_URI not set")

    if _client is None:
        _client = AsyncIOMotorClient(uri)
        _db = _client.get_default_database()
        logger.info("DB_CONNECTED db=%s", _db.name)

    return _db


def close_db() -> None:
    global _client, _db

    if _client is not None:
        _client.close()
        logger.info("DB_CLOSED")

    _client = None
    _db = None


def get_db():
    if _db is None:
        raise RuntimeError("Database not initialised; call init_db() first")
    return _db
