import pytest
from bson import ObjectId
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from farmlink.utils import chat_service
from farmlink.utils.realtime import ConnectionManager, manager
from tests.conftest import PASSWORD, auth


class FakeSocket:
    def __init__(self, broken=False):
        self.sent = []
        self.broken = broken

    async def send_json(self, message):
        if self.broken:
            raise RuntimeError("socket closed")
        self.sent.append(message)


async def test_first_message_creates_one_thread_per_pair(client, api, db):
    buyer, buyer_user = await api.register()
    seller, seller_user = await api.register(role="seller")

    res = await client.post("/api/chat/send", json={
        "receiver_id": seller_user["id"], "content": "Is the rice organic?",
    }, headers=auth(buyer))
    assert res.status_code == 200
    chat_id = res.json()["chat_id"]

    res = await client.post("/api/chat/send", json={
        "receiver_id": buyer_user["id"], "content": "Yes, certified.",
    }, headers=auth(seller))
    assert res.json()["chat_id"] == chat_id
    assert await db.chats.count_documents({}) == 1

    res = await client.get(f"/api/chat/{chat_id}/messages", headers=auth(buyer))
    assert [m["content"] for m in res.json()["messages"]] == ["Is the rice organic?", "Yes, certified."]


async def test_send_validation(client, api):
    buyer, buyer_user = await api.register()

    res = await client.post("/api/chat/send", json={
        "receiver_id": buyer_user["id"], "content": "hello me",
    }, headers=auth(buyer))
    assert res.status_code == 400

    res = await client.post("/api/chat/send", json={
        "receiver_id": str(ObjectId()), "content": "anyone?",
    }, headers=auth(buyer))
    assert res.status_code == 404

    res = await client.post("/api/chat/send", json={
        "receiver_id": str(ObjectId()), "content": "",
    }, headers=auth(buyer))
    assert res.status_code == 400


async def test_conversations_show_unread_and_mark_read(client, api):
    buyer, buyer_user = await api.register()
    seller, seller_user = await api.register(role="seller", name="Ravi")

    for text in ("one", "two"):
        await client.post("/api/chat/send", json={
            "receiver_id": buyer_user["id"], "content": text,
        }, headers=auth(seller))

    res = await client.get("/api/chat/conversations", headers=auth(buyer))
    chats = res.json()["chats"]
    assert len(chats) == 1
    assert chats[0]["unread"] == 2
    assert chats[0]["last_message"] == "two"
    assert chats[0]["participants"][0]["name"] == "Ravi"
    assert "messages" not in chats[0]

    res = await client.put(f"/api/chat/{chats[0]['id']}/read", headers=auth(buyer))
    assert res.json()["updated"] == 2

    res = await client.get("/api/chat/conversations", headers=auth(buyer))
    assert res.json()["chats"][0]["unread"] == 0

    # the sender's own messages never count as unread for them
    res = await client.get("/api/chat/conversations", headers=auth(seller))
    assert res.json()["chats"][0]["unread"] == 0


async def test_outsiders_cannot_read_thread(client, api):
    buyer, _ = await api.register()
    _, seller_user = await api.register(role="seller")
    outsider, _ = await api.register()

    chat_id = (await client.post("/api/chat/send", json={
        "receiver_id": seller_user["id"], "content": "price?",
    }, headers=auth(buyer))).json()["chat_id"]

    res = await client.get(f"/api/chat/{chat_id}/messages", headers=auth(outsider))
    assert res.status_code == 403

    res = await client.put(f"/api/chat/{chat_id}/read", headers=auth(outsider))
    assert res.status_code == 403


async def test_message_persists_when_push_fails(api, db):
    _, buyer_user = await api.register()
    _, seller_user = await api.register(role="seller")
    sender = await db.users.find_one({"_id": ObjectId(buyer_user["id"])})

    class ExplodingNotifier:
        async def fan_out(self, user_ids, message):
            raise RuntimeError("push down")

    chat, message = await chat_service.send_message(
        db, sender, seller_user["id"], "still saved", notifier=ExplodingNotifier(),
    )

    stored = await db.chats.find_one({"_id": chat["_id"]})
    assert stored["messages"][-1]["_id"] == message["_id"]


async def test_manager_fans_out_and_drops_dead_sockets():
    hub = ConnectionManager()
    alive, dead, other = FakeSocket(), FakeSocket(broken=True), FakeSocket()

    await hub.connect("u1", alive)
    await hub.connect("u1", dead)
    await hub.connect("u2", other)

    delivered = await hub.fan_out(["u1", "u2", "u3"], {"type": "new_message"})

    assert delivered == 2
    assert alive.sent == [{"type": "new_message"}]
    assert other.sent == [{"type": "new_message"}]
    assert hub.connections["u1"] == {alive}
    assert not hub.is_online("u3")

    hub.disconnect("u1", alive)
    assert not hub.is_online("u1")


async def test_send_notifies_both_participants(api, db):
    _, buyer_user = await api.register()
    _, seller_user = await api.register(role="seller")
    sender = await db.users.find_one({"_id": ObjectId(buyer_user["id"])})

    hub = ConnectionManager()
    inbox = FakeSocket()
    await hub.connect(seller_user["id"], inbox)

    await chat_service.send_message(db, sender, seller_user["id"], "hi", notifier=hub)

    assert inbox.sent[0]["type"] == "new_message"
    assert inbox.sent[0]["message"]["content"] == "hi"


def test_websocket_requires_token(test_app):
    client = TestClient(test_app)

    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect("/api/ws") as ws:
            ws.receive_json()

    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect("/api/ws?token=garbage") as ws:
            ws.receive_json()


def _register(client, email, role="buyer"):
    res = client.post("/api/auth/register", json={
        "name": email.split("@")[0], "email": email, "password": PASSWORD, "role": role,
    })
    body = res.json()
    return body["token"], body["user"]["id"]


def test_websocket_typing_relays_only_within_a_thread(test_app):
    client = TestClient(test_app)
    buyer_token, buyer_id = _register(client, "wsbuyer@farmmail.in")
    _, seller_id = _register(client, "wsseller@farmmail.in", "seller")
    _, stranger_id = _register(client, "wsstranger@farmmail.in", "seller")

    chat_id = client.post("/api/chat/send", json={
        "receiver_id": seller_id, "content": "Any onions left?",
    }, headers=auth(buyer_token)).json()["chat_id"]

    seller_inbox, stranger_inbox = FakeSocket(), FakeSocket()
    manager.connections.setdefault(seller_id, set()).add(seller_inbox)
    manager.connections.setdefault(stranger_id, set()).add(stranger_inbox)
    try:
        with client.websocket_connect(f"/api/ws?token={buyer_token}") as ws:
            assert ws.receive_json() == {"type": "connection.established", "user_id": buyer_id}
            assert manager.is_online(buyer_id)

            ws.send_json({"type": "typing", "receiver_id": seller_id})
            ws.send_json({"type": "typing", "receiver_id": stranger_id})
            ws.send_json({"type": "ping"})
            # frames are handled in order, so both relays were decided before the pong
            assert ws.receive_json() == {"type": "pong"}

        assert seller_inbox.sent == [{"type": "typing", "chat_id": chat_id, "user_id": buyer_id}]
        assert stranger_inbox.sent == []
    finally:
        manager.disconnect(seller_id, seller_inbox)
        manager.disconnect(stranger_id, stranger_inbox)


def test_websocket_send_message_is_stored_then_pushed(test_app):
    client = TestClient(test_app)
    buyer_token, _ = _register(client, "sockbuyer@farmmail.in")
    _, seller_id = _register(client, "sockseller@farmmail.in", "seller")

    seller_inbox = FakeSocket()
    manager.connections.setdefault(seller_id, set()).add(seller_inbox)
    try:
        with client.websocket_connect(f"/api/ws?token={buyer_token}") as ws:
            ws.receive_json()

            ws.send_json({"type": "send_message", "receiver_id": seller_id, "content": "Fresh stock?"})
            pushed = ws.receive_json()
            assert pushed["type"] == "new_message"
            assert pushed["message"]["content"] == "Fresh stock?"

            ws.send_json({"type": "send_message", "receiver_id": seller_id, "content": "   "})
            assert ws.receive_json() == {
                "type": "error", "event": "send_message", "message": "Message content is required",
            }

        assert [m["type"] for m in seller_inbox.sent] == ["new_message"]
    finally:
        manager.disconnect(seller_id, seller_inbox)

    res = client.get(f"/api/chat/{pushed['chat_id']}/messages", headers=auth(buyer_token))
    assert [m["content"] for m in res.json()["messages"]] == ["Fresh stock?"]


def test_websocket_mark_read(test_app):
    client = TestClient(test_app)
    buyer_token, buyer_id = _register(client, "readbuyer@farmmail.in")
    seller_token, _ = _register(client, "readseller@farmmail.in", "seller")

    for text in ("one", "two"):
        res = client.post("/api/chat/send", json={"receiver_id": buyer_id, "content": text}, headers=auth(seller_token))
    chat_id = res.json()["chat_id"]

    with client.websocket_connect(f"/api/ws?token={buyer_token}") as ws:
        ws.receive_json()

        ws.send_json({"type": "mark_read", "chat_id": chat_id})
        assert ws.receive_json() == {"type": "messages_read", "chat_id": chat_id, "reader_id": buyer_id}
        assert ws.receive_json() == {"type": "read_ack", "chat_id": chat_id, "updated": 2}

        ws.send_json({"type": "mark_read", "chat_id": str(ObjectId())})
        assert ws.receive_json()["message"] == "Chat not found"

    res = client.get("/api/chat/conversations", headers=auth(buyer_token))
    assert res.json()["chats"][0]["unread"] == 0
