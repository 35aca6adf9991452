# tests/conftest.py
from __future__ import annotations

import os
import threading
from collections.abc import Callable, Generator, Iterator
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite://")

from quandary.core.security import create_access_token
from quandary.db.session import Base
from quandary.db.session import get_db as app_get_session
from quandary.main import app as fastapi_app
from quandary.models import Badge, ModerationStatus, Question, QuestionSource, User, UserRole
from quandary.repositories import UserRepository
from quandary.services import (
    BadgeEvaluator,
    PresenceRegistry,
    RealtimeGateway,
    RoomBroadcaster,
    UserProgressionEngine,
    VoteLedger,
)

TEST_DB_URL = "sqlite://"


@pytest.fixture()
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture()
def file_session_factory(tmp_path: Path) -> Iterator[sessionmaker[Session]]:
    """Sessions on a file-backed database, so each thread gets its own connection."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'quandary.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield sessionmaker(bind=engine, autocommit=False, autoflush=False)
    finally:
        engine.dispose()


@pytest.fixture()
def run_together() -> Callable[[int, Callable[[], Any]], list[Any]]:
    """Return a runner that starts ``task`` on several threads at the same instant.

    Each result is either the task's return value or the exception it raised.
    """

    def _run(workers: int, task: Callable[[], Any]) -> list[Any]:
        barrier = threading.Barrier(workers)

        def _start(_: int) -> Any:
            barrier.wait()
            try:
                return task()
            except Exception as err:
                return err

        with ThreadPoolExecutor(max_workers=workers) as pool:
            return list(pool.map(_start, range(workers)))

    return _run


@pytest.fixture()
def db_session(session_factory: sessionmaker[Session]) -> Iterator[Session]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture(autouse=True)
def override_session_dependency(app: FastAPI, db_session: Session) -> Iterator[None]:
    def _get_session_override() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[app_get_session] = _get_session_override
    try:
        yield
    finally:
        app.dependency_overrides.pop(app_get_session, None)


@pytest.fixture()
def registry() -> PresenceRegistry:
    return PresenceRegistry()


@pytest.fixture()
def broadcaster(registry: PresenceRegistry) -> RoomBroadcaster:
    return RoomBroadcaster(registry, send_timeout=1.0)


@pytest.fixture(autouse=True)
def gateway(
    app: FastAPI,
    registry: PresenceRegistry,
    broadcaster: RoomBroadcaster,
    session_factory: sessionmaker[Session],
) -> Iterator[RealtimeGateway]:
    """Realtime gateway bound to the test database, installed on the app."""
    gateway = RealtimeGateway(registry, broadcaster, session_factory)
    previous = app.state.realtime
    app.state.realtime = gateway
    try:
        yield gateway
    finally:
        app.state.realtime = previous


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client


@pytest.fixture()
def make_user(db_session: Session) -> Callable[..., User]:
    """Return a factory that persists users together with their stats row."""

    def _make_user(username: str, *, role: UserRole = UserRole.USER, avatar: str | None = None) -> User:
        return UserRepository(db_session).create(username, avatar=avatar, role=role)

    return _make_user


@pytest.fixture()
def test_user(make_user: Callable[..., User]) -> User:
    return make_user("alice", avatar="alice.png")


@pytest.fixture()
def other_user(make_user: Callable[..., User]) -> User:
    return make_user("bob")


@pytest.fixture()
def admin_user(make_user: Callable[..., User]) -> User:
    return make_user("moderator", role=UserRole.ADMIN)


def bearer(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


@pytest.fixture()
def auth_token(test_user: User) -> dict[str, str]:
    """Return authorization headers for the primary test user."""
    return bearer(test_user)


@pytest.fixture()
def other_auth_token(other_user: User) -> dict[str, str]:
    """Return authorization headers for the secondary test user."""
    return bearer(other_user)


@pytest.fixture()
def admin_auth_token(admin_user: User) -> dict[str, str]:
    return bearer(admin_user)


@pytest.fixture()
def make_question(db_session: Session, other_user: User) -> Callable[..., Question]:
    """Return a factory for questions authored by ``other_user``."""

    def _make_question(
        *,
        category: str = "general",
        status: ModerationStatus = ModerationStatus.APPROVED,
        is_active: bool = True,
        views: int = 0,
    ) -> Question:
        question = Question(
            created_by=other_user.id,
            option_a="Be able to fly",
            option_b="Be invisible",
            category=category,
            source=QuestionSource.USER,
            moderation_status=status,
            is_active=is_active,
            views=views,
        )
        db_session.add(question)
        db_session.commit()
        db_session.refresh(question)
        return question

    return _make_question


@pytest.fixture()
def test_question(make_question: Callable[..., Question]) -> Question:
    return make_question()


@pytest.fixture()
def make_badge(db_session: Session) -> Callable[..., Badge]:
    def _make_badge(name: str, **overrides: Any) -> Badge:
        definition: dict[str, Any] = {
            "name": name,
            "description": f"{name} badge",
            "category": "voting",
            "requirement_type": "vote_count",
            "threshold": 1,
            "points": 5,
        }
        definition.update(overrides)
        badge = Badge(**definition)
        db_session.add(badge)
        db_session.commit()
        db_session.refresh(badge)
        return badge

    return _make_badge


@pytest.fixture()
def ledger(db_session: Session) -> VoteLedger:
    return VoteLedger(db_session, UserProgressionEngine(db_session), BadgeEvaluator(db_session))
