"""Tests for question endpoints."""

import threading

import pytest
from fastapi import status

from quandary.api.v1.dependencies import get_question_service
from quandary.api.v1.endpoints import questions as question_endpoints
from quandary.models import ModerationStatus


def test_create_question_awards_points(client, auth_token) -> None:
    response = client.post(
        "/api/v1/questions/",
        json={"optionA": "  Live on the moon ", "optionB": "Live under the sea", "category": "lifestyle"},
        headers=auth_token,
    )

    assert response.status_code == status.HTTP_201_CREATED
    data = response.json()
    assert data["question"]["optionA"] == "Live on the moon"
    assert data["question"]["moderationStatus"] == "approved"
    assert data["question"]["stats"]["totalVotes"] == 0
    assert data["pointsEarned"]["points"] == 50
    stats = client.get("/api/v1/users/me/stats", headers=auth_token).json()
    assert stats["questionsCreated"] == 1
    assert stats["points"] == 50


def test_ai_question_earns_less(client, auth_token) -> None:
    response = client.post(
        "/api/v1/questions/",
        json={"optionA": "Always be early", "optionB": "Always be late", "source": "ai"},
        headers=auth_token,
    )

    assert response.status_code == status.HTTP_201_CREATED
    assert response.json()["pointsEarned"]["points"] == 25


def test_create_question_earns_badge(client, auth_token, make_badge) -> None:
    make_badge("Question Maker", category="creation", requirement_type="question_count")

    response = client.post(
        "/api/v1/questions/",
        json={"optionA": "Read minds", "optionB": "See the future"},
        headers=auth_token,
    )

    assert [badge["name"] for badge in response.json()["earnedBadges"]] == ["Question Maker"]


def test_create_question_validates_length(client, auth_token) -> None:
    response = client.post(
        "/api/v1/questions/",
        json={"optionA": "no", "optionB": "Something long enough"},
        headers=auth_token,
    )
    assert response.status_code == 422


def test_get_question_counts_views(client, auth_token, test_question) -> None:
    url = f"/api/v1/questions/{test_question.id}"

    assert client.get(url, headers=auth_token).json()["stats"]["views"] == 1
    assert client.get(url, headers=auth_token).json()["stats"]["views"] == 2


def test_views_update_engagement(client, auth_token, test_question) -> None:
    client.post(f"/api/v1/votes/{test_question.id}", json={"choice": "A"}, headers=auth_token)
    for _ in range(3):
        client.get(f"/api/v1/questions/{test_question.id}", headers=auth_token)

    data = client.get(f"/api/v1/questions/{test_question.id}", headers=auth_token).json()

    assert data["stats"]["views"] == 4
    assert data["stats"]["engagementRate"] == 25.0


def test_get_missing_question(client, auth_token) -> None:
    response = client.get("/api/v1/questions/31337", headers=auth_token)
    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_share_question(client, auth_token, test_question) -> None:
    response = client.post(f"/api/v1/questions/{test_question.id}/share", headers=auth_token)

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["stats"]["shares"] == 1


def test_three_reports_send_question_to_review(
    client, auth_token, other_auth_token, admin_auth_token, test_question
) -> None:
    url = f"/api/v1/questions/{test_question.id}/report"
    for headers, reason in (
        (auth_token, "spam"),
        (other_auth_token, "offensive"),
        (admin_auth_token, "duplicate"),
    ):
        assert client.post(url, json={"reason": reason}, headers=headers).status_code == 200

    question = client.get(f"/api/v1/questions/{test_question.id}", headers=auth_token).json()
    assert question["moderationStatus"] == "pending"
    vote = client.post(f"/api/v1/votes/{test_question.id}", json={"choice": "A"}, headers=auth_token)
    assert vote.status_code == status.HTTP_400_BAD_REQUEST


def test_report_reason_is_validated(client, auth_token, test_question) -> None:
    response = client.post(
        f"/api/v1/questions/{test_question.id}/report",
        json={"reason": "boring"},
        headers=auth_token,
    )
    assert response.status_code == 422


def test_moderation_requires_admin(client, auth_token, test_question) -> None:
    response = client.patch(
        f"/api/v1/questions/{test_question.id}/moderation",
        json={"status": "rejected"},
        headers=auth_token,
    )
    assert response.status_code == status.HTTP_403_FORBIDDEN


def test_rejecting_deactivates_question(client, admin_auth_token, admin_user, test_question) -> None:
    response = client.patch(
        f"/api/v1/questions/{test_question.id}/moderation",
        json={"status": "rejected", "reason": "Duplicate of an older question"},
        headers=admin_auth_token,
    )

    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["moderationStatus"] == "rejected"
    assert data["isActive"] is False


def test_approving_pending_question(client, admin_auth_token, auth_token, make_question) -> None:
    question = make_question(status=ModerationStatus.PENDING)

    client.patch(
        f"/api/v1/questions/{question.id}/moderation",
        json={"status": "approved"},
        headers=admin_auth_token,
    )

    vote = client.post(f"/api/v1/votes/{question.id}", json={"choice": "B"}, headers=auth_token)
    assert vote.status_code == status.HTTP_201_CREATED


def test_question_analytics_for_author(
    client, auth_token, other_auth_token, admin_auth_token, test_question
) -> None:
    client.post(
        f"/api/v1/votes/{test_question.id}",
        json={"choice": "A", "decisionTime": 1500, "confidence": 4},
        headers=auth_token,
    )
    client.post(f"/api/v1/questions/{test_question.id}/share", headers=auth_token)
    url = f"/api/v1/questions/{test_question.id}/analytics"

    response = client.get(url, headers=other_auth_token)

    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert (data["totalVotes"], data["optionAPercentage"], data["optionBPercentage"]) == (1, 100, 0)
    assert data["shares"] == 1
    assert data["views"] == 0
    assert [(point["optionAVotes"], point["optionBVotes"]) for point in data["timeline"]] == [(1, 0)]
    assert data["recentVotes"][0]["username"] == "alice"
    assert client.get(url, headers=admin_auth_token).status_code == status.HTTP_200_OK


def test_question_analytics_hidden_from_other_users(client, auth_token, test_question) -> None:
    response = client.get(f"/api/v1/questions/{test_question.id}/analytics", headers=auth_token)

    assert response.status_code == status.HTTP_403_FORBIDDEN
    missing = client.get("/api/v1/questions/31337/analytics", headers=auth_token)
    assert missing.status_code == status.HTTP_404_NOT_FOUND


@pytest.mark.asyncio
async def test_get_question_runs_service_off_the_event_loop(
    db_session, test_user, test_question, mocker
) -> None:
    loop_thread = threading.get_ident()
    service = get_question_service(db_session)
    service_threads: list[int] = []
    record_view = service.record_view

    def recording_view(question_id):
        service_threads.append(threading.get_ident())
        return record_view(question_id)

    mocker.patch.object(service, "record_view", side_effect=recording_view)

    response = await question_endpoints.get_question(test_question.id, test_user, service)

    assert response.stats.views == 1
    assert service_threads and service_threads[0] != loop_thread
