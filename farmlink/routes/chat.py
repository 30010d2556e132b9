import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status
from pydantic import BaseModel, Field

from farmlink.database import get_db
from farmlink.utils import chat_service
from farmlink.utils.errors import AppError
from farmlink.utils.guards import parse_object_id
from farmlink.utils.jwt import decode_token
from farmlink.utils.realtime import manager
from farmlink.utils.security import get_current_user
from farmlink.utils.serializers import public_user, serialize_doc, serialize_docs

router = APIRouter(tags=["Chat"])

logger = logging.getLogger(__name__)

RELAYED_EVENTS = ("typing", "stop_typing")


class SendMessage(BaseModel):
    receiver_id: str
    content: str = Field(..., min_length=1, max_length=2000)


# ======================================================
# REST
# ======================================================

@router.get("/chat/conversations")
async def conversations(user=Depends(get_current_user), db=Depends(get_db)):
    chats = await chat_service.conversations_for(db, user["_id"])

    other_ids = [p for c in chats for p in c["participants"] if p != user["_id"]]
    others = {
        u["_id"]: u
        for u in await db.users.find({"_id": {"$in": other_ids}}).to_list(length=None)
    }

    out = []
    for c in chats:
        body = serialize_doc(c, exclude=("messages",))
        body["unread"] = chat_service.unread_count(c, user["_id"])
        body["participants"] = [
            public_user(others.get(p)) or {"id": str(p)}
            for p in c["participants"]
            if p != user["_id"]
        ]
        out.append(body)

    return {"success": True, "count": len(out), "chats": out}


@router.get("/chat/{chat_id}/messages")
async def messages(chat_id: str, user=Depends(get_current_user), db=Depends(get_db)):
    chat = await chat_service.get_chat_for(db, chat_id, user)
    return {"success": True, "messages": serialize_docs(chat.get("messages", []))}


@router.post("/chat/send")
async def send_message(data: SendMessage, user=Depends(get_current_user), db=Depends(get_db)):
    chat, message = await chat_service.send_message(db, user, data.receiver_id, data.content)
    return {
        "success": True,
        "message": "Message sent successfully",
        "chat_id": str(chat["_id"]),
        "sent": serialize_doc(message),
    }


@router.put("/chat/{chat_id}/read")
async def mark_read(chat_id: str, user=Depends(get_current_user), db=Depends(get_db)):
    updated = await chat_service.mark_read(db, chat_id, user)
    return {"success": True, "message": "Messages marked as read", "updated": updated}


# ======================================================
# REAL-TIME CHANNEL
# ======================================================

async def _authenticate_socket(db, token: str | None):
    if not token:
        return None
    try:
        payload = decode_token(token)
        user = await db.users.find_one({"_id": parse_object_id(payload.get("sub"), "sub")})
    except AppError:
        return None
    if not user or not user.get("is_active", True):
        return None
    return user


async def _shared_thread(db, user_id: str, other_id) -> dict | None:
    if not other_id:
        return None
    return await db.chats.find_one(
        {"participant_key": chat_service.participant_key(user_id, other_id)},
        {"_id": 1},
    )


async def _handle_frame(websocket: WebSocket, db, user: dict, data: dict) -> None:
    user_id = str(user["_id"])
    kind = data.get("type")

    if kind == "ping":
        await websocket.send_json({"type": "pong"})

    elif kind == "send_message":
        # same path as POST /chat/send: stored first, then fanned out
        await chat_service.send_message(db, user, data.get("receiver_id"), data.get("content"))

    elif kind == "mark_read":
        updated = await chat_service.mark_read(db, data.get("chat_id"), user)
        await websocket.send_json({"type": "read_ack", "chat_id": data.get("chat_id"), "updated": updated})

    elif kind in RELAYED_EVENTS:
        receiver_id = data.get("receiver_id")
        thread = await _shared_thread(db, user_id, receiver_id)
        if thread is None:
            return
        await manager.send_to_user(str(receiver_id), {
            "type": kind,
            "chat_id": str(thread["_id"]),
            "user_id": user_id,
        })


@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    token: str | None = None,
    db=Depends(get_db),
):
    user = await _authenticate_socket(db, token)
    if not user:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Authentication required")
        return

    await websocket.accept()
    user_id = str(user["_id"])
    await manager.connect(user_id, websocket)

    try:
        await websocket.send_json({"type": "connection.established", "user_id": user_id})

        while True:
            data = await websocket.receive_json()

            if not isinstance(data, dict):
                continue

            try:
                await _handle_frame(websocket, db, user, data)
            except AppError as e:
                await websocket.send_json({"type": "error", "event": data.get("type"), "message": e.detail})
    except WebSocketDisconnect:
        pass
    except (RuntimeError, ValueError) as e:
        logger.warning("WS_RECEIVE_ERROR user=%s error=%s", user_id, e)
    finally:
        manager.disconnect(user_id, websocket)
