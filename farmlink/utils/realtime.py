import logging

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class ConnectionManager:
    """
    In-process registry of open sockets per account.

    Delivery is fan-out, at-most-once and best-effort: a failed send drops
    that socket and is never reported to the caller.
    """

    def __init__(self):
        self.connections: dict[str, set[WebSocket]] = {}

    async def connect(self, user_id: str, websocket: WebSocket) -> None:
        self.connections.setdefault(user_id, set()).add(websocket)
        logger.info("WS_CONNECTED user=%s sockets=%s", user_id, len(self.connections[user_id]))

    def disconnect(self, user_id: str, websocket: WebSocket) -> None:
        sockets = self.connections.get(user_id)
        if not sockets:
            return
        sockets.discard(websocket)
        if not sockets:
            del self.connections[user_id]
        logger.info("WS_DISCONNECTED user=%s", user_id)

    def is_online(self, user_id: str) -> bool:
        return bool(self.connections.get(user_id))

    async def send_to_user(self, user_id: str, message: dict) -> int:
        delivered = 0
        for websocket in list(self.connections.get(user_id, ())):
            try:
                await websocket.send_json(message)
                delivered += 1
            except Exception as e:
                logger.warning("WS_SEND_FAILED user=%s type=%s error=%s", user_id, message.get("type"), e)
                self.disconnect(user_id, websocket)
        return delivered

    async def fan_out(self, user_ids, message: dict) -> int:
        delivered = 0
        for user_id in user_ids:
            try:
                delivered += await self.send_to_user(str(user_id), message)
            except Exception:
                logger.exception("WS_FANOUT_ERROR user=%s", user_id)
        return delivered


manager = ConnectionManager()
