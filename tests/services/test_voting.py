"""Tests for the vote ledger."""

from datetime import timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from quandary.core.errors import (
    AlreadyVotedError,
    EditWindowExpiredError,
    NoExistingVoteError,
    NotFoundError,
    QuestionUnavailableError,
)
from quandary.core.settings import settings
from quandary.db.time import utcnow
from quandary.models import ModerationStatus, Question, QuestionSource, UserStats, Vote, VoteChoice
from quandary.repositories import UserRepository, VoteRepository
from quandary.services import BadgeEvaluator, UserProgressionEngine, VoteLedger
from quandary.services.voting import VoteOutcome, engagement_rate, split_percentages


@pytest.mark.parametrize(
    ("option_a", "option_b", "expected"),
    [
        (0, 0, (0, 0)),
        (1, 0, (100, 0)),
        (0, 3, (0, 100)),
        (1, 1, (50, 50)),
        (1, 2, (33, 67)),
        (2, 1, (67, 33)),
        (1, 7, (13, 87)),
    ],
)
def test_split_percentages(option_a: int, option_b: int, expected: tuple[int, int]) -> None:
    assert split_percentages(option_a, option_b) == expected


def test_percentages_always_sum_to_hundred() -> None:
    for option_a in range(0, 40):
        for option_b in range(0, 40):
            pct_a, pct_b = split_percentages(option_a, option_b)
            if option_a + option_b:
                assert pct_a + pct_b == 100
                assert 0 <= pct_a <= 100
            else:
                assert (pct_a, pct_b) == (0, 0)


def test_engagement_rate_without_views() -> None:
    assert engagement_rate(5, 0) == 0.0
    assert engagement_rate(1, 4) == 25.0


def test_vote_then_duplicate_then_change(ledger, db_session, test_user, test_question) -> None:
    outcome = ledger.submit_vote(test_user.id, test_question.id, VoteChoice.A)
    stats = outcome.stats
    assert (stats.total_votes, stats.option_a_votes, stats.option_b_votes) == (1, 1, 0)
    assert (stats.option_a_percentage, stats.option_b_percentage) == (100, 0)

    with pytest.raises(AlreadyVotedError):
        ledger.submit_vote(test_user.id, test_question.id, VoteChoice.B)

    changed = ledger.change_vote(test_user.id, test_question.id, VoteChoice.B)
    stats = changed.stats
    assert (stats.total_votes, stats.option_a_votes, stats.option_b_votes) == (1, 0, 1)
    assert (stats.option_a_percentage, stats.option_b_percentage) == (0, 100)
    assert changed.vote.choice == VoteChoice.B

    stored = db_session.scalar(
        select(func.count(Vote.id)).where(
            Vote.user_id == test_user.id, Vote.question_id == test_question.id
        )
    )
    assert stored == 1


def test_submit_awards_points_and_streak(ledger, db_session, test_user, test_question) -> None:
    outcome = ledger.submit_vote(test_user.id, test_question.id, VoteChoice.A, decision_time=1200)

    assert outcome.progress is not None
    assert outcome.progress.points == 10
    assert outcome.streak == 1
    stats = db_session.get(UserStats, test_user.id)
    db_session.refresh(stats)
    assert (stats.votes_count, stats.points, stats.experience, stats.current_streak) == (1, 10, 10, 1)


def test_tally_tracks_decision_time_and_engagement(
    ledger, make_user, make_question, test_user
) -> None:
    question = make_question(views=4)
    carol = make_user("carol")

    ledger.submit_vote(test_user.id, question.id, VoteChoice.A, decision_time=1000)
    outcome = ledger.submit_vote(carol.id, question.id, VoteChoice.B, decision_time=3000)

    assert outcome.stats.average_decision_time == 2000
    assert outcome.stats.engagement_rate == 50.0
    assert (outcome.stats.option_a_percentage, outcome.stats.option_b_percentage) == (50, 50)


@pytest.mark.parametrize(
    ("status", "is_active"),
    [
        (ModerationStatus.PENDING, True),
        (ModerationStatus.REJECTED, True),
        (ModerationStatus.APPROVED, False),
    ],
)
def test_unavailable_question_rejects_votes(
    ledger, make_question, test_user, status, is_active
) -> None:
    question = make_question(status=status, is_active=is_active)
    with pytest.raises(QuestionUnavailableError):
        ledger.submit_vote(test_user.id, question.id, VoteChoice.A)


def test_missing_question(ledger, test_user) -> None:
    with pytest.raises(NotFoundError):
        ledger.submit_vote(test_user.id, 404, VoteChoice.A)


def test_change_without_vote(ledger, test_user, test_question) -> None:
    with pytest.raises(NoExistingVoteError):
        ledger.change_vote(test_user.id, test_question.id, VoteChoice.B)


def test_change_after_edit_window(ledger, test_user, test_question) -> None:
    ledger.submit_vote(test_user.id, test_question.id, VoteChoice.A)
    late = utcnow() + timedelta(seconds=settings.vote_edit_window_seconds + 1)

    with pytest.raises(EditWindowExpiredError):
        ledger.change_vote(test_user.id, test_question.id, VoteChoice.B, now=late)


def test_change_does_not_award_points(ledger, db_session, test_user, test_question) -> None:
    ledger.submit_vote(test_user.id, test_question.id, VoteChoice.A)
    ledger.change_vote(test_user.id, test_question.id, VoteChoice.B)

    stats = db_session.get(UserStats, test_user.id)
    db_session.refresh(stats)
    assert stats.points == 10
    assert stats.votes_count == 1


def test_delete_vote_reverses_counts(ledger, db_session, test_user, test_question) -> None:
    vote_id = ledger.submit_vote(test_user.id, test_question.id, VoteChoice.A).vote.id

    outcome = ledger.delete_vote(vote_id)

    assert outcome.stats.total_votes == 0
    assert (outcome.stats.option_a_percentage, outcome.stats.option_b_percentage) == (0, 0)
    assert db_session.get(Vote, vote_id) is None
    stats = db_session.get(UserStats, test_user.id)
    db_session.refresh(stats)
    assert (stats.votes_count, stats.points, stats.experience) == (0, 0, 10)


def test_delete_missing_vote(ledger) -> None:
    with pytest.raises(NotFoundError):
        ledger.delete_vote(12345)


def test_vote_can_be_recast_after_deletion(ledger, test_user, test_question) -> None:
    vote_id = ledger.submit_vote(test_user.id, test_question.id, VoteChoice.A).vote.id
    ledger.delete_vote(vote_id)

    outcome = ledger.submit_vote(test_user.id, test_question.id, VoteChoice.B)
    assert (outcome.stats.option_a_votes, outcome.stats.option_b_votes) == (0, 1)


def test_first_vote_earns_badge(ledger, make_badge, test_user, test_question) -> None:
    make_badge("First Vote")

    outcome = ledger.submit_vote(test_user.id, test_question.id, VoteChoice.A)

    assert [badge.name for badge in outcome.earned_badges] == ["First Vote"]


def test_report_matches_committed_tally(ledger, db_session, make_user, test_user, test_question) -> None:
    carol = make_user("carol")
    dave = make_user("dave")
    ledger.submit_vote(test_user.id, test_question.id, VoteChoice.A)
    ledger.submit_vote(carol.id, test_question.id, VoteChoice.B)
    stats = ledger.submit_vote(dave.id, test_question.id, VoteChoice.B).stats

    report = VoteRepository(db_session).question_report(test_question.id)

    assert (stats.option_a_percentage, stats.option_b_percentage) == (33, 67)
    assert (report.option_a_percentage, report.option_b_percentage) == (33, 67)
    assert (report.total_votes, report.option_a_votes, report.option_b_votes) == (
        stats.total_votes,
        stats.option_a_votes,
        stats.option_b_votes,
    )
    assert report.average_decision_time == stats.average_decision_time


def test_report_for_missing_question(db_session) -> None:
    assert VoteRepository(db_session).question_report(404) is None


def test_other_integrity_errors_are_not_duplicates(
    ledger, db_session, test_user, test_question, mocker
) -> None:
    mocker.patch.object(
        db_session,
        "flush",
        side_effect=IntegrityError("INSERT INTO vote", {}, Exception("FOREIGN KEY constraint failed")),
    )

    with pytest.raises(IntegrityError):
        ledger.submit_vote(test_user.id, test_question.id, VoteChoice.A)


def _seed_question(session_factory) -> tuple[int, int]:
    with session_factory() as db:
        user = UserRepository(db).create("racer")
        question = Question(
            created_by=user.id,
            option_a="Be able to fly",
            option_b="Be invisible",
            category="general",
            source=QuestionSource.USER,
            moderation_status=ModerationStatus.APPROVED,
        )
        db.add(question)
        db.commit()
        return user.id, question.id


def test_concurrent_submissions_store_one_vote(file_session_factory, run_together) -> None:
    user_id, question_id = _seed_question(file_session_factory)

    def submit() -> VoteOutcome:
        with file_session_factory() as db:
            ledger = VoteLedger(db, UserProgressionEngine(db), BadgeEvaluator(db))
            return ledger.submit_vote(user_id, question_id, VoteChoice.A)

    results = run_together(8, submit)

    accepted = [result for result in results if isinstance(result, VoteOutcome)]
    rejected = [result for result in results if not isinstance(result, VoteOutcome)]
    assert len(accepted) == 1
    assert accepted[0].stats.total_votes == 1
    assert all(isinstance(result, AlreadyVotedError) for result in rejected), rejected

    with file_session_factory() as db:
        assert db.scalar(select(func.count(Vote.id)).where(Vote.question_id == question_id)) == 1
        stats = db.get(UserStats, user_id)
        assert (stats.votes_count, stats.points) == (1, settings.vote_points)
        question = db.get(Question, question_id)
        assert (question.total_votes, question.option_a_percentage) == (1, 100)
