"""User stats, badges and leaderboard endpoints."""

from typing import Annotated

from fastapi import APIRouter, Query
from sqlalchemy import select

from quandary.core.errors import NotFoundError
from quandary.models import UserStats
from quandary.repositories import BadgeRepository, UserRepository
from quandary.repositories.user_repo import LeaderboardPeriod
from quandary.schemas import (
    AvailableBadge,
    EarnedBadge,
    LeaderboardEntry,
    UserStatsResponse,
)

from ..dependencies import CurrentUserDep, SessionDep

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/me/stats", response_model=UserStatsResponse)
async def get_my_stats(current_user: CurrentUserDep, db: SessionDep) -> UserStatsResponse:
    """Return the caller's gamification state and earned badges."""
    stats = db.execute(
        select(UserStats).where(UserStats.user_id == current_user.id)
    ).scalar_one_or_none()
    if stats is None:
        raise NotFoundError("User stats not found")

    badges = [
        EarnedBadge(
            id=badge.id,
            name=badge.name,
            description=badge.description,
            icon=badge.icon,
            category=badge.category,
            rarity=badge.rarity,
            points=badge.points,
            earned_at=earned_at,
        )
        for badge, earned_at in BadgeRepository(db).earned(current_user.id)
    ]
    return UserStatsResponse(
        questions_created=stats.questions_created,
        votes_count=stats.votes_count,
        points=stats.points,
        experience=stats.experience,
        level=stats.level,
        current_streak=stats.current_streak,
        longest_streak=stats.longest_streak,
        last_activity=stats.last_activity,
        badges=badges,
    )


@router.get("/me/badges/available", response_model=list[AvailableBadge])
async def get_available_badges(current_user: CurrentUserDep, db: SessionDep) -> list[AvailableBadge]:
    """List visible badges the caller can still earn."""
    return [AvailableBadge.model_validate(badge) for badge in BadgeRepository(db).available(current_user.id)]


@router.get("/leaderboard", response_model=list[LeaderboardEntry])
async def get_leaderboard(
    current_user: CurrentUserDep,
    db: SessionDep,
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
    period: LeaderboardPeriod = "all",
) -> list[LeaderboardEntry]:
    """Top users by points, ranked by sorted position."""
    rows = UserRepository(db).leaderboard(limit=limit, period=period)
    return [LeaderboardEntry.model_validate(row) for row in rows]
