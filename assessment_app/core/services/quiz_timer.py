"""Per-question countdown state machine for one live-quiz play."""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import Enum

from assessment_app.constants.quiz_constants import (
    OPTIONS_PER_QUESTION,
    REVEAL_DELAY_SECONDS,
    TICK_INTERVAL_SECONDS,
    TIMEOUT_SENTINEL,
)
from assessment_app.core.errors import InvalidStateError, ValidationError
from assessment_app.core.models import KahootAnswer, KahootPlayAttempt, KahootQuestion, KahootQuiz
from assessment_app.core.quiz_scoring import score_answer
from assessment_app.utils.timers import TimerHandle, TimerScheduler

logger = logging.getLogger(__name__)


class QuizPhase(str, Enum):
    INTRO = "intro"
    PLAYING = "playing"
    RESULT = "result"
    ABANDONED = "abandoned"


class QuizTimerStateMachine:
    """Drives Intro -> Playing (per question) -> Result for a single player.

    Each question counts down one second per tick. When the clock hits zero
    the timeout sentinel is submitted for the player. After any answer the
    correct option is revealed for a fixed delay before the next question.
    At most one tick and one reveal callback are pending at any time.
    """

    def __init__(
        self,
        quiz: KahootQuiz,
        scheduler: TimerScheduler,
        on_finished: Callable[[KahootPlayAttempt], None] | None = None,
    ) -> None:
        if not quiz.questions:
            raise ValidationError("Quiz must contain at least one question.")
        self._quiz = quiz
        self._scheduler = scheduler
        self._on_finished = on_finished

        self._phase = QuizPhase.INTRO
        self._attempt: KahootPlayAttempt | None = None
        self._question_index = 0
        self._time_left = 0
        self._answered = False
        self._tick_handle: TimerHandle | None = None
        self._reveal_handle: TimerHandle | None = None

    @property
    def quiz(self) -> KahootQuiz:
        return self._quiz

    @property
    def phase(self) -> QuizPhase:
        return self._phase

    @property
    def question_index(self) -> int:
        return self._question_index

    @property
    def time_left(self) -> int:
        return self._time_left

    @property
    def answered(self) -> bool:
        return self._answered

    @property
    def attempt(self) -> KahootPlayAttempt | None:
        return self._attempt

    @property
    def current_question(self) -> KahootQuestion:
        return self._quiz.questions[self._question_index]

    @property
    def last_answer(self) -> KahootAnswer | None:
        if self._attempt is None or not self._attempt.answers:
            return None
        return self._attempt.answers[-1]

    def start(self, player_name: str, email: str | None = None) -> KahootPlayAttempt:
        if self._phase is not QuizPhase.INTRO:
            raise InvalidStateError("This play has already started.")
        cleaned_name = player_name.strip()
        if not cleaned_name:
            raise ValidationError("Player name must not be empty.")

        self._attempt = KahootPlayAttempt(
            quiz_id=self._quiz.id,
            player_name=cleaned_name,
            total_questions=len(self._quiz.questions),
            email=(email or "").strip() or None,
        )
        self._phase = QuizPhase.PLAYING
        self._enter_question(0)
        return self._attempt

    def answer(self, selected_index: int) -> int | None:
        """Submit the player's choice; returns the points, or None if already answered."""
        if self._phase is not QuizPhase.PLAYING:
            raise InvalidStateError(f"Cannot answer while the quiz is {self._phase.value}.")
        if not 0 <= selected_index < OPTIONS_PER_QUESTION:
            raise ValidationError(f"Option index {selected_index} is out of range.")
        if self._answered:
            return None
        return self._record(selected_index)

    def abandon(self) -> None:
        """Drop the play without recording anything."""
        if self._phase is QuizPhase.RESULT:
            raise InvalidStateError("A finished quiz cannot be abandoned.")
        if self._phase is QuizPhase.ABANDONED:
            return
        self._cancel_tick()
        self._cancel_reveal()
        self._phase = QuizPhase.ABANDONED
        self._attempt = None

    def _enter_question(self, index: int) -> None:
        self._question_index = index
        self._attempt.current_question_index = index
        self._time_left = self.current_question.time_limit_seconds
        self._answered = False
        self._schedule_tick()

    def _schedule_tick(self) -> None:
        self._cancel_tick()
        self._tick_handle = self._scheduler.call_later(TICK_INTERVAL_SECONDS, self._tick)

    def _tick(self) -> None:
        self._tick_handle = None
        if self._phase is not QuizPhase.PLAYING or self._answered:
            return
        self._time_left = max(self._time_left - 1, 0)
        if self._time_left == 0:
            self._record(TIMEOUT_SENTINEL)
        else:
            self._schedule_tick()

    def _record(self, selected_index: int) -> int:
        question = self.current_question
        points = score_answer(question, selected_index, self._time_left)
        self._answered = True
        self._cancel_tick()

        self._attempt.answers.append(
            KahootAnswer(
                question_id=question.id,
                selected_index=selected_index,
                time_spent_seconds=question.time_limit_seconds - self._time_left,
                is_correct=selected_index == question.correct_index,
                points=points,
            )
        )
        self._attempt.running_score += points

        self._cancel_reveal()
        self._reveal_handle = self._scheduler.call_later(REVEAL_DELAY_SECONDS, self._advance)
        return points

    def _advance(self) -> None:
        self._reveal_handle = None
        if self._phase is not QuizPhase.PLAYING:
            return
        next_index = self._question_index + 1
        if next_index < len(self._quiz.questions):
            self._enter_question(next_index)
            return

        self._phase = QuizPhase.RESULT
        logger.debug(
            "Play of quiz %s by %s finished with %d points",
            self._quiz.id,
            self._attempt.player_name,
            self._attempt.running_score,
        )
        if self._on_finished is not None:
            self._on_finished(self._attempt)

    def _cancel_tick(self) -> None:
        if self._tick_handle is not None:
            self._tick_handle.cancel()
            self._tick_handle = None

    def _cancel_reveal(self) -> None:
        if self._reveal_handle is not None:
            self._reveal_handle.cancel()
            self._reveal_handle = None
