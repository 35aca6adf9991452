"""WebSocket round trips through the realtime endpoint."""

import pytest
from fastapi import WebSocketDisconnect


def _token(headers: dict[str, str]) -> str:
    return headers["Authorization"].split(" ", 1)[1]


def test_rejects_missing_or_bad_token(client) -> None:
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect("/api/v1/ws"):
            pass
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect("/api/v1/ws?token=not-a-jwt"):
            pass


def test_vote_update_reaches_room(client, auth_token, other_auth_token, test_question) -> None:
    with client.websocket_connect(f"/api/v1/ws?token={_token(other_auth_token)}") as ws:
        ws.send_json({"event": "join_question", "data": {"questionId": test_question.id}})
        joined = ws.receive_json()
        assert joined["event"] == "room_joined"
        assert joined["data"]["activeUsers"] == 1

        response = client.post(
            f"/api/v1/votes/{test_question.id}", json={"choice": "B"}, headers=auth_token
        )
        assert response.status_code == 201

        update = ws.receive_json()
        assert update["event"] == "vote_update"
        assert update["data"]["questionId"] == test_question.id
        assert update["data"]["choice"] == "B"
        assert update["data"]["totalVotes"] == 1
        assert update["data"]["optionBPercentage"] == 100
        assert update["data"]["voter"]["username"] == "alice"


def test_header_auth_and_error_reply(client, auth_token) -> None:
    with client.websocket_connect("/api/v1/ws", headers=auth_token) as ws:
        ws.send_json({"event": "join_question", "data": {"questionId": 0}})
        reply = ws.receive_json()

    assert reply["event"] == "error"


def test_disconnect_clears_presence(client, auth_token, gateway) -> None:
    with client.websocket_connect(f"/api/v1/ws?token={_token(auth_token)}") as ws:
        ws.send_json({"event": "get_online_users"})
        online = ws.receive_json()
        assert [user["username"] for user in online["data"]] == ["alice"]

    assert len(gateway.registry) == 0
