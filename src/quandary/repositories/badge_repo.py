"""Data access helpers for badge listings."""
from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from quandary.models import Badge, BadgeAward

__all__ = ["BadgeRepository"]


class BadgeRepository:
    """Read-side queries over badge definitions and awards."""

    def __init__(self, session: Session) -> None:
        """Initialize the repository with a SQLAlchemy session."""
        self.session = session

    def earned(self, user_id: int) -> list[tuple[Badge, datetime]]:
        """Return the user's badges with their award time, newest first."""
        rows = self.session.execute(
            select(Badge, BadgeAward.earned_at)
            .join(BadgeAward, BadgeAward.badge_id == Badge.id)
            .where(BadgeAward.user_id == user_id)
            .order_by(BadgeAward.earned_at.desc(), Badge.id)
        ).all()
        return [(badge, earned_at) for badge, earned_at in rows]

    def available(self, user_id: int) -> list[Badge]:
        """Return active, non-secret badges the user has not earned yet."""
        held = select(BadgeAward.badge_id).where(BadgeAward.user_id == user_id)
        badges = self.session.scalars(
            select(Badge).where(
                Badge.is_active.is_(True),
                Badge.is_secret.is_(False),
                Badge.id.not_in(held),
            )
        ).all()
        return sorted(badges, key=lambda badge: (badge.category, badge.rarity_score, badge.id))
