import time

import pytest
from starlette.websockets import WebSocketDisconnect


def _connect(client, user):
    return client.websocket_connect(f"/ws?token={user['token']}")


def _receive_until(ws, event):
    """Read frames until ``event`` arrives; returns (frame, skipped_events)."""
    skipped = []
    while True:
        frame = ws.receive_json()
        if frame["event"] == event:
            return frame, skipped
        skipped.append(frame["event"])


def _emit(ws, event, data, ack=None):
    frame = {"event": event, "data": data}
    if ack is not None:
        frame["ack"] = ack
    ws.send_json(frame)


def test_rejects_missing_and_bad_tokens(client):
    with client.websocket_connect("/ws") as ws:
        frame = ws.receive_json()
        assert frame["event"] == "error"
        assert frame["data"]["code"] == "AUTH_ERROR"
        assert frame["data"]["reason"] == "NO_TOKEN"
        with pytest.raises(WebSocketDisconnect) as exc:
            ws.receive_json()
        assert exc.value.code == 4401

    with client.websocket_connect("/ws?token=Bearer%20garbage") as ws:
        frame = ws.receive_json()
        assert frame["data"]["code"] == "AUTH_ERROR"
        assert frame["data"]["reason"] == "INVALID_TOKEN"


def test_token_from_authorization_header(client, alice):
    with client.websocket_connect("/ws", headers=dict(alice["headers"])) as ws:
        frame, _ = _receive_until(ws, "users:online")
        assert [u["userId"] for u in frame["data"]["onlineUsers"]] == [alice["id"]]
        assert "timestamp" in frame["data"]


def test_presence_broadcasts(client, alice, bob):
    with _connect(client, alice) as a:
        _receive_until(a, "users:online")
        with _connect(client, bob) as b:
            frame, _ = _receive_until(b, "users:online")
            assert sorted(u["userId"] for u in frame["data"]["onlineUsers"]) == sorted([alice["id"], bob["id"]])

            frame, _ = _receive_until(a, "user:online")
            assert frame["data"]["userId"] == bob["id"]
            assert frame["data"]["user"]["username"] == "bob"

            _emit(a, "users:get_online", {}, ack=1)
            frame, _ = _receive_until(a, "users:online")
            assert len(frame["data"]["onlineUsers"]) == 2
            ack, _ = _receive_until(a, "ack")
            assert ack["ack"] == 1
            assert ack["data"]["success"] is True

        # bob's last connection closed: offline only after the grace delay
        frame, _ = _receive_until(a, "user:offline")
        assert frame["data"]["userId"] == bob["id"]
        assert frame["data"]["lastSeen"]


def test_join_send_and_fan_out(client, alice, bob, conversation):
    with _connect(client, alice) as a1, _connect(client, alice) as a2, _connect(client, bob) as b:
        _emit(a1, "conversation:join", {"conversationId": conversation}, ack="j1")
        joined, _ = _receive_until(a1, "conversation:joined")
        assert joined["data"]["conversationId"] == conversation
        assert _receive_until(a1, "ack")[0]["data"]["success"] is True

        _emit(b, "conversation:join", {"conversationId": str(conversation)})
        _receive_until(b, "conversation:joined")
        frame, _ = _receive_until(a1, "user:joined_conversation")
        assert frame["data"]["userId"] == bob["id"]

        _emit(b, "message:send", {"conversationId": conversation, "content": "  hi alice  "}, ack=7)
        sent, skipped = _receive_until(b, "message:sent")
        assert "message:new" not in skipped
        assert sent["data"]["message"]["content"] == "hi alice"
        ack, skipped = _receive_until(b, "ack")
        assert "message:new" not in skipped
        assert ack["ack"] == 7
        assert ack["data"]["success"] is True
        assert ack["data"]["messageId"] == sent["data"]["message"]["id"]

        new, _ = _receive_until(a1, "message:new")
        assert new["data"]["message"]["id"] == ack["data"]["messageId"]
        assert new["data"]["message"]["sender"]["id"] == bob["id"]

        # a2 never joined the room
        _emit(a2, "users:get_online", {})
        _, skipped = _receive_until(a2, "users:online")
        assert "message:new" not in skipped

    r = client.get(f"/api/chat/conversations/{conversation}/messages", headers=alice["headers"])
    assert [m["content"] for m in r.json()["messages"]] == ["hi alice"]


def test_send_errors_are_events_not_disconnects(client, alice, carol, conversation):
    with _connect(client, alice) as a:
        _emit(a, "message:send", {"conversationId": conversation, "content": "x" * 1001}, ack=1)
        err, _ = _receive_until(a, "message:error")
        assert err["data"]["code"] == "MESSAGE_TOO_LONG"
        ack, _ = _receive_until(a, "ack")
        assert ack["data"]["success"] is False
        assert ack["data"]["code"] == "MESSAGE_TOO_LONG"

        _emit(a, "conversation:join", {"conversationId": 999})
        err, _ = _receive_until(a, "error")
        assert err["data"]["code"] == "CONVERSATION_NOT_FOUND"

        _emit(a, "nope:unknown", {})
        err, _ = _receive_until(a, "error")
        assert err["data"]["code"] == "UNKNOWN_EVENT"

        a.send_text("{not json")
        err, _ = _receive_until(a, "error")
        assert err["data"]["code"] == "INVALID_FRAME"

        # still usable afterwards
        _emit(a, "message:send", {"conversationId": conversation, "content": "fine"}, ack=2)
        ack, _ = _receive_until(a, "ack")
        assert ack["data"]["success"] is True

    with _connect(client, carol) as c:
        _emit(c, "conversation:join", {"conversationId": conversation})
        err, _ = _receive_until(c, "error")
        assert err["data"]["code"] == "ACCESS_DENIED"


def test_binary_frame_is_rejected_without_closing(client, alice, conversation):
    with _connect(client, alice) as a:
        _receive_until(a, "users:online")
        a.send_bytes(b"\x00\x01")
        err, _ = _receive_until(a, "error")
        assert err["data"]["code"] == "INVALID_FRAME"

        _emit(a, "message:send", {"conversationId": conversation, "content": "after bytes"}, ack=1)
        ack, _ = _receive_until(a, "ack")
        assert ack["data"]["success"] is True


def test_send_blocked_after_unfriending(client, alice, bob, conversation):
    client.delete(f"/api/friends/{bob['id']}", headers=alice["headers"])
    with _connect(client, alice) as a:
        _emit(a, "message:send", {"conversationId": conversation, "content": "hello"}, ack=1)
        err, _ = _receive_until(a, "message:error")
        assert err["data"]["code"] == "NOT_FRIENDS"

    r = client.get(f"/api/chat/conversations/{conversation}/messages", headers=alice["headers"])
    assert r.json()["pagination"]["totalMessages"] == 0


def test_read_receipt_and_typing(client, alice, bob, conversation):
    r = client.post(
        f"/api/chat/conversations/{conversation}/messages", json={"content": "ping"}, headers=alice["headers"]
    )
    message_id = r.json()["message"]["id"]

    with _connect(client, alice) as a, _connect(client, bob) as b:
        _emit(a, "conversation:join", {"conversationId": conversation})
        _receive_until(a, "conversation:joined")
        _emit(b, "conversation:join", {"conversationId": conversation})
        _receive_until(b, "conversation:joined")

        _emit(b, "typing:start", {"conversationId": conversation})
        typing, _ = _receive_until(a, "user:typing")
        assert typing["data"]["userId"] == bob["id"]
        _emit(b, "typing:stop", {"conversationId": conversation})
        _receive_until(a, "user:stop_typing")

        _emit(b, "message:read", {"messageId": message_id}, ack=3)
        read, _ = _receive_until(a, "message:read")
        assert read["data"]["messageId"] == message_id
        assert read["data"]["userId"] == bob["id"]
        assert read["data"]["readAt"]
        assert _receive_until(b, "ack")[0]["data"]["success"] is True

        _emit(b, "conversation:leave", {"conversationId": conversation})
        left, _ = _receive_until(a, "user:left_conversation")
        assert left["data"]["userId"] == bob["id"]
        _receive_until(b, "conversation:left")


def test_rest_send_is_pushed_to_room(client, alice, bob, conversation):
    with _connect(client, bob) as b:
        _emit(b, "conversation:join", {"conversationId": conversation})
        _receive_until(b, "conversation:joined")

        r = client.post(
            f"/api/chat/conversations/{conversation}/messages", json={"content": "via rest"}, headers=alice["headers"]
        )
        assert r.status_code == 201
        new, _ = _receive_until(b, "message:new")
        assert new["data"]["message"]["content"] == "via rest"

        client.put(f"/api/chat/messages/{new['data']['message']['id']}", json={"content": "edited"}, headers=alice["headers"])
        edited, _ = _receive_until(b, "message:edited")
        assert edited["data"]["message"]["content"] == "edited"

        client.delete(f"/api/chat/messages/{new['data']['message']['id']}", headers=alice["headers"])
        deleted, _ = _receive_until(b, "message:deleted")
        assert deleted["data"]["messageId"] == new["data"]["message"]["id"]


def test_call_offer_to_offline_user(app, client, alice, bob):
    with _connect(client, alice) as a:
        _emit(a, "call:offer", {"callId": "c-1", "recipientId": bob["id"], "offer": {"sdp": "x"}}, ack=1)
        err, _ = _receive_until(a, "call:error")
        assert err["data"]["code"] == "RECIPIENT_OFFLINE"
        assert _receive_until(a, "ack")[0]["data"]["success"] is False

    assert app.state.calls.active_calls() == []


def test_call_signaling_and_disconnect(app, client, alice, bob):
    with _connect(client, alice) as a:
        with _connect(client, bob) as b:
            _emit(a, "call:offer", {"callId": "c-2", "recipientId": bob["id"], "callType": "video", "offer": {"sdp": "o"}})
            incoming, _ = _receive_until(b, "call:incoming")
            assert incoming["data"]["callId"] == "c-2"
            assert incoming["data"]["caller"]["username"] == "alice"
            assert incoming["data"]["offer"] == {"sdp": "o"}

            _emit(b, "call:answer", {"callId": "c-2", "answer": {"sdp": "a"}})
            answer, _ = _receive_until(a, "call:answer")
            assert answer["data"]["answer"] == {"sdp": "a"}

            _emit(a, "call:ice-candidate", {"callId": "c-2", "candidate": {"c": 1}})
            ice, _ = _receive_until(b, "call:ice-candidate")
            assert ice["data"]["candidate"] == {"c": 1}

        ended, _ = _receive_until(a, "call:end")
        assert ended["data"]["callId"] == "c-2"
        assert ended["data"]["reason"] == "disconnected"

    assert app.state.calls.active_calls() == []


def test_quick_reconnect_keeps_user_online(client, alice, bob):
    with _connect(client, alice) as a:
        _receive_until(a, "users:online")
        with _connect(client, bob) as b:
            _receive_until(b, "users:online")
        with _connect(client, bob) as b:
            _receive_until(b, "users:online")
            time.sleep(0.6)
            _emit(a, "users:get_online", {})
            _, skipped = _receive_until(a, "users:online")
            assert "user:offline" not in skipped
