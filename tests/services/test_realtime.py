"""Tests for room fan-out and the realtime event gateway."""

import asyncio
import json

import pytest
from sqlalchemy import select

from quandary.models import ChatMessage, Question
from quandary.services import RoomBroadcaster
from quandary.services.realtime import ConnectedUser


def frame(event: str, data=None) -> str:
    return json.dumps({"event": event, "data": data})


async def _connect(gateway, connection_id: str, user):
    channel = RecordingChannel()
    await gateway.connect(
        connection_id,
        ConnectedUser(user_id=user.id, username=user.username, avatar=user.avatar),
        channel,
    )
    return channel


class RecordingChannel:
    """Event channel that keeps every frame it is sent."""

    def __init__(self) -> None:
        self.events = []

    async def send_event(self, event, data) -> None:
        self.events.append((event, data))

    def named(self, event):
        return [data for name, data in self.events if name == event]

    def clear(self) -> None:
        self.events.clear()


class FailingChannel:
    async def send_event(self, event, data) -> None:
        raise ConnectionResetError("socket closed")


class SlowChannel:
    async def send_event(self, event, data) -> None:
        await asyncio.sleep(5)


@pytest.mark.asyncio
async def test_failed_delivery_is_dropped(registry, broadcaster) -> None:
    healthy = RecordingChannel()
    registry.connect("ok", 1, username="ok", avatar=None, channel=healthy)
    registry.connect("bad", 2, username="bad", avatar=None, channel=FailingChannel())
    registry.join_room("ok", 1)
    registry.join_room("bad", 1)

    delivered = await broadcaster.to_room(1, "vote_update", {"totalVotes": 1})

    assert delivered == 1
    assert healthy.named("vote_update") == [{"totalVotes": 1}]


@pytest.mark.asyncio
async def test_slow_delivery_times_out(registry) -> None:
    broadcaster = RoomBroadcaster(registry, send_timeout=0.01)
    registry.connect("slow", 1, username="slow", avatar=None, channel=SlowChannel())
    registry.join_room("slow", 3)

    assert await broadcaster.to_room(3, "new_message", {}) == 0


@pytest.mark.asyncio
async def test_typing_is_not_echoed_to_actor(gateway, test_user, other_user, test_question) -> None:
    x = await _connect(gateway, "x", test_user)
    y = await _connect(gateway, "y", other_user)
    await gateway.dispatch("x", frame("join_question", {"questionId": test_question.id}))
    await gateway.dispatch("y", frame("join_question", {"questionId": test_question.id}))
    x.clear()
    y.clear()

    await gateway.dispatch("x", frame("typing_start", {"questionId": test_question.id}))

    assert y.named("user_typing") == [
        {"userId": test_user.id, "username": "alice", "isTyping": True}
    ]
    assert x.named("user_typing") == []


@pytest.mark.asyncio
async def test_join_announces_to_others_and_replies_with_members(
    gateway, test_user, other_user, test_question
) -> None:
    x = await _connect(gateway, "x", test_user)
    y = await _connect(gateway, "y", other_user)
    await gateway.dispatch("x", frame("join_question", {"questionId": test_question.id}))

    await gateway.dispatch("y", frame("join_question", {"questionId": test_question.id}))

    assert x.named("user_joined_room") == [
        {"userId": other_user.id, "username": "bob", "avatar": None}
    ]
    assert y.named("user_joined_room") == []
    (reply,) = y.named("room_joined")
    assert reply["questionId"] == test_question.id
    assert reply["activeUsers"] == 2
    assert [user["userId"] for user in reply["users"]] == [test_user.id, other_user.id]


@pytest.mark.asyncio
async def test_switching_rooms_notifies_old_room(
    gateway, make_question, test_user, other_user
) -> None:
    first, second = make_question(), make_question()
    x = await _connect(gateway, "x", test_user)
    y = await _connect(gateway, "y", other_user)
    await gateway.dispatch("x", frame("join_question", {"questionId": first.id}))
    await gateway.dispatch("y", frame("join_question", {"questionId": first.id}))
    x.clear()

    await gateway.dispatch("y", frame("join_question", {"questionId": second.id}))

    assert x.named("user_left_room") == [{"userId": other_user.id, "username": "bob"}]
    assert [m.connection_id for m in gateway.registry.list_room_members(first.id)] == ["x"]
    assert [m.connection_id for m in gateway.registry.list_room_members(second.id)] == ["y"]


@pytest.mark.asyncio
async def test_join_unknown_question(gateway, test_user) -> None:
    x = await _connect(gateway, "x", test_user)

    await gateway.dispatch("x", frame("join_question", {"questionId": 999}))

    assert x.named("error") == [{"message": "Question not found"}]
    assert gateway.registry.get("x").room is None


@pytest.mark.asyncio
async def test_chat_message_reaches_whole_room(
    gateway, db_session, test_user, other_user, test_question
) -> None:
    x = await _connect(gateway, "x", test_user)
    y = await _connect(gateway, "y", other_user)
    for connection_id in ("x", "y"):
        await gateway.dispatch(connection_id, frame("join_question", {"questionId": test_question.id}))

    await gateway.dispatch(
        "x",
        frame("send_message", {"questionId": test_question.id, "message": "  flying, obviously  "}),
    )

    for channel in (x, y):
        (event,) = channel.named("new_message")
        assert event["questionId"] == test_question.id
        assert event["message"]["message"] == "flying, obviously"
        assert event["message"]["user"]["username"] == "alice"
    stored = db_session.scalars(select(ChatMessage)).all()
    assert [message.message for message in stored] == ["flying, obviously"]
    question = db_session.get(Question, test_question.id)
    db_session.refresh(question)
    assert question.comments == 1


@pytest.mark.asyncio
async def test_chat_can_earn_social_badge(gateway, make_badge, test_user, test_question) -> None:
    make_badge("Chatty", category="social", requirement_type="social_actions", threshold=1)
    x = await _connect(gateway, "x", test_user)
    await gateway.dispatch("x", frame("join_question", {"questionId": test_question.id}))

    await gateway.dispatch("x", frame("send_message", {"questionId": test_question.id, "message": "hi"}))

    (badges,) = x.named("badges_earned")
    assert [badge["name"] for badge in badges] == ["Chatty"]


@pytest.mark.asyncio
async def test_room_events_require_membership(gateway, test_user, test_question) -> None:
    x = await _connect(gateway, "x", test_user)

    await gateway.dispatch("x", frame("typing_start", {"questionId": test_question.id}))
    await gateway.dispatch("x", frame("send_message", {"questionId": test_question.id, "message": "hi"}))

    assert x.named("error") == [{"message": "Join the question room first"}] * 2


@pytest.mark.asyncio
async def test_invalid_frames_get_error_replies(gateway, test_user, test_question) -> None:
    x = await _connect(gateway, "x", test_user)
    await gateway.dispatch("x", frame("join_question", {"questionId": test_question.id}))
    x.clear()

    await gateway.dispatch("x", "not json")
    await gateway.dispatch("x", frame("dance"))
    await gateway.dispatch("x", frame("send_message", {"questionId": test_question.id, "message": "   "}))

    assert [error["message"] for error in x.named("error")] == [
        "Malformed event",
        "Unknown event: dance",
        "Message cannot be empty",
    ]


@pytest.mark.asyncio
async def test_vote_activity_skips_actor(gateway, test_user, other_user, test_question) -> None:
    x = await _connect(gateway, "x", test_user)
    y = await _connect(gateway, "y", other_user)
    for connection_id in ("x", "y"):
        await gateway.dispatch(connection_id, frame("join_question", {"questionId": test_question.id}))

    await gateway.dispatch("x", frame("vote_cast", {"questionId": test_question.id, "choice": "A"}))

    assert y.named("vote_activity") == [{"userId": test_user.id, "username": "alice", "choice": "A"}]
    assert x.named("vote_activity") == []


@pytest.mark.asyncio
async def test_presence_lifecycle(gateway, test_user, other_user, test_question) -> None:
    x = await _connect(gateway, "x", test_user)
    y = await _connect(gateway, "y", other_user)
    assert x.named("user_online") == [{"userId": other_user.id, "username": "bob", "avatar": None}]
    assert y.named("user_online") == []

    await gateway.dispatch("y", frame("update_presence", {"status": "away"}))
    (update,) = x.named("presence_updated")
    assert (update["userId"], update["status"]) == (other_user.id, "away")

    await gateway.dispatch("x", frame("get_online_users"))
    (online,) = x.named("online_users")
    assert {user["userId"]: user["status"] for user in online} == {
        test_user.id: "online",
        other_user.id: "away",
    }

    await gateway.dispatch("y", frame("join_question", {"questionId": test_question.id}))
    await gateway.dispatch("x", frame("join_question", {"questionId": test_question.id}))
    await gateway.disconnect("y")
    await gateway.disconnect("y")

    assert x.named("user_left_room") == [{"userId": other_user.id, "username": "bob"}]
    (offline,) = x.named("user_offline")
    assert offline["userId"] == other_user.id
    assert "lastSeen" in offline


@pytest.mark.asyncio
async def test_offline_only_after_last_connection(gateway, test_user, other_user) -> None:
    x = await _connect(gateway, "x", test_user)
    await _connect(gateway, "phone", other_user)
    await _connect(gateway, "laptop", other_user)

    await gateway.disconnect("phone")
    assert x.named("user_offline") == []
    assert len(x.named("user_online")) == 1

    await gateway.disconnect("laptop")
    assert len(x.named("user_offline")) == 1


@pytest.mark.asyncio
async def test_private_message_reaches_every_recipient_connection(
    gateway, test_user, other_user
) -> None:
    await _connect(gateway, "x", test_user)
    phone = await _connect(gateway, "phone", other_user)
    laptop = await _connect(gateway, "laptop", other_user)

    await gateway.dispatch("x", frame("private_message", {"recipientId": other_user.id, "message": "psst"}))

    for channel in (phone, laptop):
        (message,) = channel.named("private_message")
        assert message["message"] == "psst"
        assert message["from"]["userId"] == test_user.id


@pytest.mark.asyncio
async def test_room_users_lists_everyone(gateway, test_user, other_user, test_question) -> None:
    x = await _connect(gateway, "x", test_user)
    await _connect(gateway, "y", other_user)
    await gateway.dispatch("y", frame("join_question", {"questionId": test_question.id}))

    await gateway.dispatch("x", frame("get_room_users", {"questionId": test_question.id}))

    (room,) = x.named("room_users")
    assert room["questionId"] == test_question.id
    assert [user["userId"] for user in room["users"]] == [other_user.id]
