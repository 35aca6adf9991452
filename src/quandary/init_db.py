"""Create the schema and seed the default badge catalogue.

Run with ``python -m quandary.init_db``. Seeding is keyed on the badge name,
so running it again only adds badges that are missing.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from quandary.core.logging import configure_logging
from quandary.db.session import SessionLocal, create_tables
from quandary.models import Badge

logger = logging.getLogger(__name__)

DEFAULT_BADGES: list[dict[str, Any]] = [
    {
        "name": "First Vote",
        "description": "Cast your first vote",
        "icon": "check",
        "category": "voting",
        "requirement_type": "vote_count",
        "threshold": 1,
        "points": 5,
    },
    {
        "name": "Decisive",
        "description": "Cast 100 votes",
        "icon": "gavel",
        "category": "voting",
        "rarity": "rare",
        "requirement_type": "vote_count",
        "threshold": 100,
        "points": 50,
    },
    {
        "name": "Busy Day",
        "description": "Cast 20 votes in a single day",
        "icon": "bolt",
        "category": "participation",
        "rarity": "rare",
        "requirement_type": "vote_count",
        "threshold": 20,
        "timeframe": "daily",
        "points": 25,
    },
    {
        "name": "Question Maker",
        "description": "Create your first question",
        "icon": "pencil",
        "category": "creation",
        "requirement_type": "question_count",
        "threshold": 1,
        "points": 10,
    },
    {
        "name": "Prolific Author",
        "description": "Create 25 questions",
        "icon": "book",
        "category": "creation",
        "rarity": "epic",
        "requirement_type": "question_count",
        "threshold": 25,
        "points": 100,
    },
    {
        "name": "On a Roll",
        "description": "Vote three days in a row",
        "icon": "flame",
        "category": "streak",
        "requirement_type": "streak_count",
        "threshold": 3,
        "additional_criteria": {"consecutive": True},
        "points": 15,
    },
    {
        "name": "Week Warrior",
        "description": "Reach a seven day voting streak",
        "icon": "calendar",
        "category": "streak",
        "rarity": "rare",
        "requirement_type": "streak_count",
        "threshold": 7,
        "points": 40,
    },
    {
        "name": "Chatterbox",
        "description": "Post 10 messages in question rooms",
        "icon": "chat",
        "category": "social",
        "requirement_type": "social_actions",
        "threshold": 10,
        "points": 15,
    },
    {
        "name": "Rising Star",
        "description": "Reach level 5",
        "icon": "star",
        "category": "milestone",
        "rarity": "epic",
        "requirement_type": "level_reached",
        "threshold": 5,
        "points": 75,
    },
    {
        "name": "High Roller",
        "description": "Collect 1000 points",
        "icon": "trophy",
        "category": "milestone",
        "rarity": "legendary",
        "requirement_type": "points_total",
        "threshold": 1000,
        "points": 100,
        "is_secret": True,
    },
]


def seed_badges(db: Session) -> int:
    """Insert missing default badges and return how many were added."""
    existing = set(db.scalars(select(Badge.name)))
    added = 0
    for definition in DEFAULT_BADGES:
        if definition["name"] in existing:
            continue
        db.add(Badge(**definition))
        added += 1
    db.commit()
    return added


def init_db() -> None:
    """Initialize the database by creating all tables and seeding badges."""
    create_tables()
    with SessionLocal() as db:
        added = seed_badges(db)
    logger.info("Database initialized, %d badge(s) added", added)


if __name__ == "__main__":
    configure_logging()
    init_db()
