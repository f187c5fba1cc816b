"""
Unit tests for leaderboards and live-quiz completion.

Tests cover:
- Top-10 bound and descending order for both windows
- Insertion-order tie-breaks
- Daily window boundaries
- Recording completed plays, abandonment without writes, and retries
"""

from datetime import datetime, timedelta

import pytest
import pytest_asyncio

from assessment_app.core.errors import InvalidStateError, NotFoundError, PersistenceError, TransientError
from assessment_app.core.models import KahootAnswer, KahootParticipant, KahootPlayAttempt
from assessment_app.core.services.leaderboard import LeaderboardAggregator, rank_all_time, rank_daily
from assessment_app.core.services.live_quiz import LiveQuizService
from assessment_app.core.services.quiz_catalog import QuizCatalog
from assessment_app.persistence.gateway import EntityType
from support import make_kahoot_quiz


def _participant(pid, score, completed_at):
    return KahootParticipant(
        id=pid,
        quiz_id="quiz-1",
        name=f"player {pid}",
        score=score,
        correct_answers=1,
        total_questions=1,
        time_spent_seconds=5,
        completed_at=completed_at,
    )


# ============================================================================
# PURE RANKING
# ============================================================================

def test_rankings_are_bounded_and_sorted():
    now = datetime(2024, 5, 14, 18, 0)
    participants = [
        _participant(str(i), (i * 37) % 1500, now - timedelta(minutes=i)) for i in range(15)
    ]

    for ranked in (rank_all_time(participants), rank_daily(participants, now)):
        assert len(ranked) == 10
        scores = [entry.score for entry in ranked]
        assert scores == sorted(scores, reverse=True)


def test_ties_keep_insertion_order():
    now = datetime(2024, 5, 14, 18, 0)
    participants = [
        _participant("first", 1200, now),
        _participant("top", 1400, now),
        _participant("second", 1200, now),
    ]

    assert [entry.id for entry in rank_all_time(participants)] == ["top", "first", "second"]


def test_daily_window_is_today_up_to_now():
    now = datetime(2024, 5, 14, 18, 0)
    participants = [
        _participant("midnight", 100, datetime(2024, 5, 14, 0, 0)),
        _participant("yesterday", 1500, datetime(2024, 5, 13, 23, 59, 59)),
        _participant("later", 1400, now + timedelta(seconds=1)),
        _participant("now", 200, now),
    ]

    assert [entry.id for entry in rank_daily(participants, now)] == ["now", "midnight"]


# ============================================================================
# AGGREGATOR
# ============================================================================

@pytest.fixture
def leaderboard(gateway, clock):
    return LeaderboardAggregator(gateway, clock)


def _finished_attempt():
    attempt = KahootPlayAttempt(quiz_id="quiz-1", player_name="Sari", total_questions=2)
    attempt.answers = [
        KahootAnswer("k0", 1, 4, True, 1366),
        KahootAnswer("k1", -1, 15, False, 0),
    ]
    attempt.running_score = 1366
    return attempt


@pytest.mark.asyncio
async def test_record_completion_derives_totals(leaderboard, gateway):
    participant = await leaderboard.record_completion(_finished_attempt())

    assert participant.score == 1366
    assert participant.correct_answers == 1
    assert participant.total_questions == 2
    assert participant.time_spent_seconds == 19
    stored = await gateway.get_by_id(EntityType.KAHOOT_PARTICIPANTS, participant.id)
    assert stored["time_spent"] == 19


@pytest.mark.asyncio
async def test_unfinished_attempts_are_not_recorded(leaderboard, gateway):
    attempt = _finished_attempt()
    attempt.answers.pop()

    with pytest.raises(InvalidStateError):
        await leaderboard.record_completion(attempt)
    assert await gateway.query(EntityType.KAHOOT_PARTICIPANTS) == []


@pytest.mark.asyncio
async def test_daily_and_all_time_views(leaderboard, clock):
    await leaderboard.record_completion(_finished_attempt())
    clock.advance(days=1)
    second = _finished_attempt()
    second.running_score = 900
    await leaderboard.record_completion(second)

    daily = await leaderboard.daily()
    all_time = await leaderboard.all_time()

    assert [entry.score for entry in daily] == [900]
    assert [entry.score for entry in all_time] == [1366, 900]


# ============================================================================
# LIVE QUIZ SERVICE
# ============================================================================

@pytest_asyncio.fixture
async def live_quiz(gateway, clock, scheduler):
    quiz = make_kahoot_quiz(question_count=5)
    await gateway.create(EntityType.KAHOOT_QUIZZES, quiz.to_record())
    catalog = QuizCatalog(gateway, clock)
    return LiveQuizService(catalog, LeaderboardAggregator(gateway, clock), scheduler)


def _play_through(service, scheduler, play_id, answers):
    machine = service.get_play(play_id)
    for choice in answers:
        machine.answer(choice)
        scheduler.advance(1.5)


@pytest.mark.asyncio
async def test_abandoned_play_writes_nothing(live_quiz, gateway, scheduler):
    play_id, _ = await live_quiz.start_play("Sari")
    _play_through(live_quiz, scheduler, play_id, [1, 1])

    live_quiz.abandon(play_id)

    assert await gateway.query(EntityType.KAHOOT_PARTICIPANTS) == []
    assert (await gateway.get_by_id(EntityType.KAHOOT_QUIZZES, "quiz-1"))["play_count"] == 0
    with pytest.raises(NotFoundError):
        live_quiz.get_play(play_id)


@pytest.mark.asyncio
async def test_complete_records_participant_and_bumps_play_count(live_quiz, gateway, scheduler):
    play_id, _ = await live_quiz.start_play("Sari", quiz_id="quiz-1")
    _play_through(live_quiz, scheduler, play_id, [1, 1, 0, 1, 1])

    participant = await live_quiz.complete(play_id)

    assert participant.correct_answers == 4
    assert participant.score == 4 * 1500
    assert (await gateway.get_by_id(EntityType.KAHOOT_QUIZZES, "quiz-1"))["play_count"] == 1
    assert live_quiz.active_play_count() == 0


@pytest.mark.asyncio
async def test_complete_before_result_is_rejected(live_quiz, scheduler):
    play_id, _ = await live_quiz.start_play("Sari")
    _play_through(live_quiz, scheduler, play_id, [1])

    with pytest.raises(InvalidStateError):
        await live_quiz.complete(play_id)


@pytest.mark.asyncio
async def test_failed_recording_keeps_the_play_for_retry(gateway, flaky_gateway, clock, scheduler):
    await gateway.create(EntityType.KAHOOT_QUIZZES, make_kahoot_quiz(question_count=1).to_record())
    service = LiveQuizService(
        QuizCatalog(gateway, clock),
        LeaderboardAggregator(flaky_gateway, clock),
        scheduler,
    )
    flaky_gateway.fail_on("create", TransientError("pool exhausted"))
    play_id, _ = await service.start_play("Sari")
    _play_through(service, scheduler, play_id, [1])

    with pytest.raises(PersistenceError):
        await service.complete(play_id)
    assert service.active_play_count() == 1

    participant = await service.complete(play_id)
    assert participant.score == 1500


@pytest.mark.asyncio
async def test_play_count_failure_is_only_logged(gateway, flaky_gateway, clock, scheduler, caplog):
    await gateway.create(EntityType.KAHOOT_QUIZZES, make_kahoot_quiz(question_count=1).to_record())
    service = LiveQuizService(
        QuizCatalog(flaky_gateway, clock),
        LeaderboardAggregator(gateway, clock),
        scheduler,
    )
    play_id, _ = await service.start_play("Sari")
    _play_through(service, scheduler, play_id, [1])
    flaky_gateway.fail_on("update", TransientError("lock timeout"))

    participant = await service.complete(play_id)

    assert participant.score == 1500
    assert len(await gateway.query(EntityType.KAHOOT_PARTICIPANTS)) == 1
    assert "Could not bump play count" in caplog.text


@pytest.mark.asyncio
async def test_start_play_without_active_quiz(gateway, clock, scheduler):
    service = LiveQuizService(QuizCatalog(gateway, clock), LeaderboardAggregator(gateway, clock), scheduler)
    with pytest.raises(NotFoundError):
        await service.start_play("Sari")


@pytest.mark.asyncio
async def test_inactive_quiz_cannot_be_played(gateway, clock, scheduler):
    draft = make_kahoot_quiz(quiz_id="draft")
    draft.is_active = False
    await gateway.create(EntityType.KAHOOT_QUIZZES, draft.to_record())
    service = LiveQuizService(QuizCatalog(gateway, clock), LeaderboardAggregator(gateway, clock), scheduler)

    with pytest.raises(InvalidStateError):
        await service.start_play("Eve", quiz_id="draft")
    assert service.active_play_count() == 0


@pytest.mark.asyncio
async def test_idle_plays_are_evicted(gateway, clock, scheduler):
    await gateway.create(EntityType.KAHOOT_QUIZZES, make_kahoot_quiz(question_count=1).to_record())
    service = LiveQuizService(
        QuizCatalog(gateway, clock),
        LeaderboardAggregator(gateway, clock),
        scheduler,
        clock=clock,
    )
    finished_id, _ = await service.start_play("Sari")
    _play_through(service, scheduler, finished_id, [1])
    for _ in range(3):
        await service.start_play("Budi")

    clock.advance(minutes=20)
    kept_id, _ = await service.start_play("Dewi")
    clock.advance(minutes=15)
    service.get_play(kept_id)

    assert service.active_play_count() == 1
    with pytest.raises(NotFoundError):
        service.get_play(finished_id)
    assert len(scheduler.pending()) == 1
    assert await gateway.query(EntityType.KAHOOT_PARTICIPANTS) == []
