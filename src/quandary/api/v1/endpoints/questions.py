"""Question-related endpoints for the Quandary API."""

import asyncio

from fastapi import APIRouter, status

from quandary.core.errors import NotFoundError, PermissionDeniedError
from quandary.models import Question
from quandary.repositories import VoteRepository
from quandary.schemas import (
    BadgeSummary,
    ChoiceTimelinePointResponse,
    QuestionAnalyticsResponse,
    QuestionCreate,
    QuestionCreateResponse,
    QuestionInsightsResponse,
    QuestionModeration,
    QuestionReport,
    QuestionResponse,
    QuestionStatsResponse,
)
from quandary.schemas.vote import LevelProgress

from ..dependencies import AdminUserDep, CurrentUserDep, GatewayDep, QuestionServiceDep, SessionDep

router = APIRouter(prefix="/questions", tags=["questions"])


def _to_response(question: Question) -> QuestionResponse:
    return QuestionResponse(
        id=question.id,
        created_by=question.created_by,
        option_a=question.option_a,
        option_b=question.option_b,
        category=question.category,
        source=question.source,
        moderation_status=question.moderation_status,
        is_active=question.is_active,
        created_at=question.created_at,
        stats=QuestionStatsResponse.model_validate(question),
    )


@router.post(
    "/",
    response_model=QuestionCreateResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_question(
    question_data: QuestionCreate,
    current_user: CurrentUserDep,
    service: QuestionServiceDep,
    gateway: GatewayDep,
) -> QuestionCreateResponse:
    """Submit a new question and credit its author."""
    created = await asyncio.to_thread(service.create_question, current_user, question_data)

    await gateway.publish_badges(current_user.id, created.earned_badges)
    if created.progress.level_up:
        await gateway.publish_level_up(current_user.id, created.progress.new_level)

    return QuestionCreateResponse(
        question=_to_response(created.question),
        points_earned=LevelProgress.model_validate(created.progress),
        earned_badges=[BadgeSummary.model_validate(badge) for badge in created.earned_badges],
    )


@router.get("/{question_id}", response_model=QuestionResponse)
async def get_question(
    question_id: int,
    current_user: CurrentUserDep,
    service: QuestionServiceDep,
) -> QuestionResponse:
    """Fetch a question; every fetch counts as a view."""
    return _to_response(await asyncio.to_thread(service.record_view, question_id))


@router.post("/{question_id}/share", response_model=QuestionResponse)
async def share_question(
    question_id: int,
    current_user: CurrentUserDep,
    service: QuestionServiceDep,
) -> QuestionResponse:
    return _to_response(await asyncio.to_thread(service.record_share, question_id))


@router.post("/{question_id}/report")
async def report_question(
    question_id: int,
    report: QuestionReport,
    current_user: CurrentUserDep,
    service: QuestionServiceDep,
) -> dict[str, str]:
    """Flag a question for moderator attention."""
    await asyncio.to_thread(service.report, question_id, report.reason)
    return {"status": "success", "message": "Question reported successfully"}


@router.patch("/{question_id}/moderation", response_model=QuestionResponse)
async def moderate_question(
    question_id: int,
    decision: QuestionModeration,
    admin: AdminUserDep,
    service: QuestionServiceDep,
) -> QuestionResponse:
    """Approve, reject or requeue a question."""
    question = await asyncio.to_thread(
        service.moderate, question_id, admin, decision.status, decision.reason
    )
    return _to_response(question)


@router.get("/{question_id}/analytics", response_model=QuestionInsightsResponse)
async def get_question_analytics(
    question_id: int,
    current_user: CurrentUserDep,
    db: SessionDep,
) -> QuestionInsightsResponse:
    """Vote report, reach and daily timeline of a question. Author or admin only."""
    question = db.get(Question, question_id)
    if question is None:
        raise NotFoundError("Question not found")
    if question.created_by != current_user.id and not current_user.is_admin:
        raise PermissionDeniedError("You can only view analytics for your own questions")

    repo = VoteRepository(db)
    report = repo.question_report(question_id)
    return QuestionInsightsResponse(
        **QuestionAnalyticsResponse.model_validate(report).model_dump(),
        views=question.views,
        shares=question.shares,
        comments=question.comments,
        engagement_rate=question.engagement_rate,
        timeline=[
            ChoiceTimelinePointResponse.model_validate(point)
            for point in repo.question_timeline(question_id)
        ],
    )
