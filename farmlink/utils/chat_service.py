import logging
from datetime import datetime

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from farmlink.utils.errors import NotAuthorized, NotFoundError, ValidationError
from farmlink.utils.guards import parse_object_id
from farmlink.utils.realtime import manager
from farmlink.utils.serializers import serialize_doc

logger = logging.getLogger(__name__)


def participant_key(a, b) -> str:
    """Order-independent key for a pair of accounts."""
    return ":".join(sorted((str(a), str(b))))


async def send_message(db, sender: dict, receiver_id, content: str, notifier=manager) -> tuple[dict, dict]:
    content = (content or "").strip()
    if not content:
        raise ValidationError("Message content is required")

    rid = parse_object_id(receiver_id, "receiver_id")
    if rid == sender["_id"]:
        raise ValidationError("Cannot send a message to yourself")

    if not await db.users.find_one({"_id": rid}, {"_id": 1}):
        raise NotFoundError("Receiver not found")

    now = datetime.utcnow()
    message = {
        "_id": ObjectId(),
        "sender_id": sender["_id"],
        "content": content,
        "read": False,
        "created_at": now,
    }

    query = {"participant_key": participant_key(sender["_id"], rid)}
    update = {
        "$setOnInsert": {
            "participants": [sender["_id"], rid],
            "created_at": now,
        },
        "$push": {"messages": message},
        "$set": {"last_message": content, "last_message_at": now},
    }

    try:
        chat = await db.chats.find_one_and_update(
            query, update, upsert=True, return_document=ReturnDocument.AFTER,
        )
    except DuplicateKeyError:
        # two first-messages raced on the upsert; the thread exists now
        chat = await db.chats.find_one_and_update(
            query, update, return_document=ReturnDocument.AFTER,
        )

    # persisted first; the socket push is a convenience
    await notify(notifier, chat["participants"], {
        "type": "new_message",
        "chat_id": str(chat["_id"]),
        "message": serialize_doc(message),
    })

    return chat, message


async def notify(notifier, user_ids, payload: dict) -> None:
    try:
        await notifier.fan_out(user_ids, payload)
    except Exception:
        logger.exception("CHAT_NOTIFY_ERROR type=%s", payload.get("type"))


async def get_chat_for(db, chat_id, user: dict) -> dict:
    chat = await db.chats.find_one({"_id": parse_object_id(chat_id, "chat_id")})
    if not chat:
        raise NotFoundError("Chat not found")
    if user["_id"] not in chat["participants"]:
        raise NotAuthorized("Not authorized to view this chat")
    return chat


async def mark_read(db, chat_id, user: dict, notifier=manager) -> int:
    chat = await get_chat_for(db, chat_id, user)

    # messages are append-only, so positions are stable
    updates = {
        f"messages.{i}.read": True
        for i, m in enumerate(chat.get("messages", []))
        if m["sender_id"] != user["_id"] and not m.get("read")
    }
    if updates:
        await db.chats.update_one({"_id": chat["_id"]}, {"$set": updates})

    await notify(notifier, chat["participants"], {
        "type": "messages_read",
        "chat_id": str(chat["_id"]),
        "reader_id": str(user["_id"]),
    })
    return len(updates)


async def conversations_for(db, user_id) -> list[dict]:
    cursor = db.chats.find({"participants": user_id}).sort("last_message_at", -1)
    return await cursor.to_list(length=None)


def unread_count(chat: dict, user_id) -> int:
    return sum(
        1 for m in chat.get("messages", [])
        if m["sender_id"] != user_id and not m.get("read")
    )
