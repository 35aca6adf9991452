"""Vote-related endpoints for the Quandary API.

Ledger calls run in a worker thread: they hold row locks and may back off
between retries, neither of which may stall the event loop that serves the
realtime rooms.
"""

import asyncio
from typing import Annotated

from fastapi import APIRouter, Query, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from quandary.core.errors import NotFoundError, PermissionDeniedError
from quandary.models import User, UserStats
from quandary.repositories import VoteRepository
from quandary.repositories.vote_repo import TrendTimeframe
from quandary.schemas import (
    BadgeSummary,
    CategoryPreferenceResponse,
    QuestionAnalyticsResponse,
    QuestionStatsResponse,
    StreakDetailResponse,
    StreakResponse,
    TrendBucketResponse,
    VoteChange,
    VoteChangeResponse,
    VoteCreate,
    VoteDeleteResponse,
    VoteHistoryItem,
    VoteResponse,
    VoteSubmitResponse,
    VotingPatternsResponse,
)
from quandary.schemas.vote import LevelProgress

from ..dependencies import AdminUserDep, CurrentUserDep, GatewayDep, SessionDep, VoteLedgerDep

router = APIRouter(prefix="/votes", tags=["votes"])


def _ensure_can_view(viewer: User, user_id: int, what: str) -> None:
    if viewer.id != user_id and not viewer.is_admin:
        raise PermissionDeniedError(f"You can only view your own {what}")


def _load_stats(db: Session, user_id: int) -> UserStats:
    stats = db.execute(select(UserStats).where(UserStats.user_id == user_id)).scalar_one_or_none()
    if stats is None:
        raise NotFoundError("User stats not found")
    return stats


@router.post(
    "/{question_id}",
    response_model=VoteSubmitResponse,
    status_code=status.HTTP_201_CREATED,
)
async def submit_vote(
    question_id: int,
    vote_data: VoteCreate,
    current_user: CurrentUserDep,
    ledger: VoteLedgerDep,
    gateway: GatewayDep,
) -> VoteSubmitResponse:
    """Cast the caller's vote on a question and push the new tally to its room."""
    user_id = current_user.id
    outcome = await asyncio.to_thread(
        ledger.submit_vote,
        user_id,
        question_id,
        vote_data.choice,
        decision_time=vote_data.decision_time,
        confidence=vote_data.confidence,
    )

    await gateway.publish_vote_update(outcome.stats, vote_data.choice, voter=current_user)
    await gateway.publish_badges(user_id, outcome.earned_badges)
    if outcome.progress is not None and outcome.progress.level_up:
        await gateway.publish_level_up(user_id, outcome.progress.new_level)

    return VoteSubmitResponse(
        vote=VoteResponse.model_validate(outcome.vote),
        stats=QuestionStatsResponse.model_validate(outcome.stats),
        points_earned=LevelProgress.model_validate(outcome.progress),
        streak=outcome.streak or 0,
        earned_badges=[BadgeSummary.model_validate(badge) for badge in outcome.earned_badges],
    )


@router.patch("/{question_id}", response_model=VoteChangeResponse)
async def change_vote(
    question_id: int,
    change: VoteChange,
    current_user: CurrentUserDep,
    ledger: VoteLedgerDep,
    gateway: GatewayDep,
) -> VoteChangeResponse:
    """Switch the caller's vote while the edit window is open."""
    outcome = await asyncio.to_thread(
        ledger.change_vote,
        current_user.id,
        question_id,
        change.choice,
        decision_time=change.decision_time,
    )
    await gateway.publish_vote_update(outcome.stats, change.choice, change_type="change")
    return VoteChangeResponse(
        vote=VoteResponse.model_validate(outcome.vote),
        stats=QuestionStatsResponse.model_validate(outcome.stats),
    )


@router.delete("/{vote_id}", response_model=VoteDeleteResponse)
async def delete_vote(
    vote_id: int,
    admin: AdminUserDep,
    ledger: VoteLedgerDep,
    gateway: GatewayDep,
) -> VoteDeleteResponse:
    """Remove a vote as a moderation action."""
    outcome = await asyncio.to_thread(ledger.delete_vote, vote_id)
    await gateway.publish_vote_update(outcome.stats, outcome.vote.choice, change_type="remove")
    return VoteDeleteResponse(
        vote_id=vote_id,
        question_id=outcome.stats.question_id,
        stats=QuestionStatsResponse.model_validate(outcome.stats),
    )


@router.get("/question/{question_id}", response_model=QuestionAnalyticsResponse)
async def get_question_votes(
    question_id: int,
    current_user: CurrentUserDep,
    db: SessionDep,
) -> QuestionAnalyticsResponse:
    """Return the committed tally and vote analytics for a question."""
    report = VoteRepository(db).question_report(question_id)
    if report is None:
        raise NotFoundError("Question not found")
    return QuestionAnalyticsResponse.model_validate(report)


@router.get("/history/me", response_model=list[VoteHistoryItem])
async def get_my_history(
    current_user: CurrentUserDep,
    db: SessionDep,
    limit: int = Query(10, ge=1, le=100),
    before: int | None = Query(None, description="Return votes older than this vote id"),
) -> list[VoteHistoryItem]:
    """Return the caller's votes, newest first."""
    rows = VoteRepository(db).user_history(current_user.id, limit=limit, before=before)
    return [VoteHistoryItem.model_validate(row) for row in rows]


@router.get("/history/{user_id}", response_model=list[VoteHistoryItem])
async def get_user_history(
    user_id: int,
    current_user: CurrentUserDep,
    db: SessionDep,
    limit: int = Query(10, ge=1, le=100),
    before: int | None = Query(None),
) -> list[VoteHistoryItem]:
    _ensure_can_view(current_user, user_id, "voting history")
    rows = VoteRepository(db).user_history(user_id, limit=limit, before=before)
    return [VoteHistoryItem.model_validate(row) for row in rows]


@router.get("/patterns/me", response_model=VotingPatternsResponse)
async def get_my_patterns(current_user: CurrentUserDep, db: SessionDep) -> VotingPatternsResponse:
    """Summarize how the caller votes."""
    return VotingPatternsResponse.model_validate(VoteRepository(db).user_patterns(current_user.id))


@router.get("/patterns/{user_id}", response_model=VotingPatternsResponse)
async def get_user_patterns(
    user_id: int,
    current_user: CurrentUserDep,
    db: SessionDep,
) -> VotingPatternsResponse:
    _ensure_can_view(current_user, user_id, "voting patterns")
    return VotingPatternsResponse.model_validate(VoteRepository(db).user_patterns(user_id))


@router.get("/preferences/me", response_model=list[CategoryPreferenceResponse])
async def get_my_preferences(
    current_user: CurrentUserDep,
    db: SessionDep,
) -> list[CategoryPreferenceResponse]:
    """Break the caller's votes down by question category."""
    rows = VoteRepository(db).category_preferences(current_user.id)
    return [CategoryPreferenceResponse.model_validate(row) for row in rows]


@router.get("/preferences/{user_id}", response_model=list[CategoryPreferenceResponse])
async def get_user_preferences(
    user_id: int,
    current_user: CurrentUserDep,
    db: SessionDep,
) -> list[CategoryPreferenceResponse]:
    _ensure_can_view(current_user, user_id, "preferences")
    rows = VoteRepository(db).category_preferences(user_id)
    return [CategoryPreferenceResponse.model_validate(row) for row in rows]


@router.get("/streak/me", response_model=StreakResponse)
async def get_my_streak(current_user: CurrentUserDep, db: SessionDep) -> StreakResponse:
    """Return the caller's daily voting streak."""
    return StreakResponse.model_validate(_load_stats(db, current_user.id))


@router.get("/streak/{user_id}", response_model=StreakDetailResponse)
async def get_user_streak(
    user_id: int,
    current_user: CurrentUserDep,
    db: SessionDep,
) -> StreakDetailResponse:
    """Return a user's streak together with the days they voted on."""
    _ensure_can_view(current_user, user_id, "streak")
    stats = _load_stats(db, user_id)
    return StreakDetailResponse(
        user_id=user_id,
        current_streak=stats.current_streak,
        longest_streak=stats.longest_streak,
        last_activity=stats.last_activity,
        voting_days=VoteRepository(db).voting_days(user_id),
    )


@router.get("/trends", response_model=list[TrendBucketResponse])
async def get_voting_trends(
    admin: AdminUserDep,
    db: SessionDep,
    timeframe: TrendTimeframe = "daily",
    limit: Annotated[int, Query(ge=1, le=365)] = 30,
) -> list[TrendBucketResponse]:
    """Platform voting activity per period, newest first. Admin only."""
    rows = VoteRepository(db).voting_trends(timeframe, limit=limit)
    return [TrendBucketResponse.model_validate(row) for row in rows]
