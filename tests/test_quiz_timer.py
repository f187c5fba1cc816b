"""
Unit tests for the live-quiz countdown state machine.

Tests cover:
- One-second countdown and auto-submit on timeout
- Answer gating (once per question) and validation
- The 1.5 s reveal before advancing, and the Result transition
- Single-timer discipline and abandonment
"""

import pytest

from assessment_app.constants.quiz_constants import TIMEOUT_SENTINEL
from assessment_app.core.errors import InvalidStateError, ValidationError
from assessment_app.core.services.quiz_timer import QuizPhase, QuizTimerStateMachine
from support import make_kahoot_quiz


@pytest.fixture
def machine(scheduler):
    return QuizTimerStateMachine(make_kahoot_quiz(question_count=3, time_limit=15), scheduler)


def test_starts_in_intro_and_rejects_answers(machine):
    assert machine.phase is QuizPhase.INTRO
    with pytest.raises(InvalidStateError):
        machine.answer(1)


def test_start_enters_first_question_with_full_time(machine):
    attempt = machine.start("  Sari  ", email="sari@example.com")

    assert machine.phase is QuizPhase.PLAYING
    assert machine.question_index == 0
    assert machine.time_left == 15
    assert not machine.answered
    assert attempt.player_name == "Sari"
    assert attempt.total_questions == 3


def test_start_requires_a_player_name(machine):
    with pytest.raises(ValidationError):
        machine.start("   ")
    assert machine.phase is QuizPhase.INTRO


def test_countdown_decrements_once_per_second(machine, scheduler):
    machine.start("Sari")

    scheduler.advance(0.5)
    assert machine.time_left == 15
    scheduler.advance(0.5)
    assert machine.time_left == 14
    scheduler.advance(4)
    assert machine.time_left == 10


def test_correct_answer_with_ten_seconds_left_scores_1333(scheduler):
    machine = QuizTimerStateMachine(make_kahoot_quiz(question_count=1, time_limit=15), scheduler)
    machine.start("Sari")
    scheduler.advance(5)

    points = machine.answer(1)

    assert points == 1333
    assert machine.attempt.running_score == 1333
    assert machine.attempt.answers[0].time_spent_seconds == 5


def test_second_answer_for_the_same_question_is_a_no_op(machine, scheduler):
    machine.start("Sari")

    assert machine.answer(0) == 0
    assert machine.answer(1) is None
    assert len(machine.attempt.answers) == 1
    assert machine.attempt.answers[0].selected_index == 0


@pytest.mark.parametrize("index", [-1, 4, TIMEOUT_SENTINEL])
def test_out_of_range_answers_are_rejected(machine, index):
    machine.start("Sari")
    with pytest.raises(ValidationError):
        machine.answer(index)
    assert not machine.answered


def test_answer_freezes_the_countdown(machine, scheduler):
    machine.start("Sari")
    scheduler.advance(3)
    machine.answer(1)

    scheduler.advance(1.4)

    assert machine.time_left == 12
    assert machine.question_index == 0


def test_timeout_auto_submits_the_sentinel(machine, scheduler):
    machine.start("Sari")

    scheduler.advance(15)

    answer = machine.last_answer
    assert machine.answered
    assert answer.selected_index == TIMEOUT_SENTINEL
    assert answer.points == 0
    assert not answer.is_correct
    assert answer.time_spent_seconds == 15
    assert machine.time_left == 0


def test_reveal_lasts_exactly_one_and_a_half_seconds(machine, scheduler):
    machine.start("Sari")
    machine.answer(1)

    scheduler.advance(1.49)
    assert machine.question_index == 0

    scheduler.advance(0.01)
    assert machine.question_index == 1
    assert machine.time_left == 15
    assert not machine.answered


def test_last_question_leads_to_result(scheduler):
    finished = []
    machine = QuizTimerStateMachine(
        make_kahoot_quiz(question_count=2, time_limit=10),
        scheduler,
        on_finished=finished.append,
    )
    machine.start("Sari")
    machine.answer(1)
    scheduler.advance(1.5)
    scheduler.advance(10)
    scheduler.advance(1.5)

    assert machine.phase is QuizPhase.RESULT
    assert finished == [machine.attempt]
    assert machine.attempt.correct_answers == 1
    assert machine.attempt.running_score == 1500
    assert machine.attempt.time_spent_seconds == 10
    assert scheduler.pending() == []
    with pytest.raises(InvalidStateError):
        machine.answer(1)


def test_at_most_one_tick_is_pending(machine, scheduler):
    machine.start("Sari")
    for _ in range(5):
        scheduler.advance(1)
        assert len(scheduler.pending()) == 1

    machine.answer(2)
    pending = scheduler.pending()
    assert len(pending) == 1
    assert pending[0].callback == machine._advance


def test_abandon_discards_the_attempt_and_cancels_timers(machine, scheduler):
    machine.start("Sari")
    machine.answer(1)

    machine.abandon()

    assert machine.phase is QuizPhase.ABANDONED
    assert machine.attempt is None
    assert scheduler.pending() == []
    scheduler.advance(30)
    assert machine.phase is QuizPhase.ABANDONED


def test_abandon_after_result_is_rejected(scheduler):
    machine = QuizTimerStateMachine(make_kahoot_quiz(question_count=1), scheduler)
    machine.start("Sari")
    machine.answer(1)
    scheduler.advance(1.5)

    with pytest.raises(InvalidStateError):
        machine.abandon()
