"""Service tracking in-progress live-quiz plays."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from uuid import uuid4

from assessment_app.constants.quiz_constants import PLAY_IDLE_SECONDS
from assessment_app.core.errors import (
    AssessmentError,
    InvalidStateError,
    NotFoundError,
)
from assessment_app.core.models import KahootParticipant
from assessment_app.core.services.leaderboard import LeaderboardAggregator
from assessment_app.core.services.quiz_catalog import QuizCatalog
from assessment_app.core.services.quiz_timer import QuizPhase, QuizTimerStateMachine
from assessment_app.utils.timers import TimerScheduler

logger = logging.getLogger(__name__)


class LiveQuizService:
    """Owns one timer state machine per play, keyed by an opaque play id.

    Plays are process-local. Only ``complete`` writes anything; abandoning a
    play simply forgets it. Plays nobody has touched for ``PLAY_IDLE_SECONDS``
    are dropped the next time the service is used, whatever their phase.
    """

    def __init__(
        self,
        catalog: QuizCatalog,
        leaderboard: LeaderboardAggregator,
        scheduler: TimerScheduler,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._catalog = catalog
        self._leaderboard = leaderboard
        self._scheduler = scheduler
        self._clock = clock
        self._plays: dict[str, QuizTimerStateMachine] = {}
        self._last_seen: dict[str, datetime] = {}
        self._completing: set[str] = set()

    async def start_play(
        self,
        player_name: str,
        email: str | None = None,
        quiz_id: str | None = None,
    ) -> tuple[str, QuizTimerStateMachine]:
        """Start a play on the active quiz; ``quiz_id`` must name that quiz when given."""
        self._evict_idle_plays()
        if quiz_id is None:
            quiz = await self._catalog.get_active_quiz()
            if quiz is None:
                raise NotFoundError("No quiz is active right now.")
        else:
            quiz = await self._catalog.get_quiz(quiz_id)
            if not quiz.is_active:
                raise InvalidStateError(f"Quiz {quiz_id} is not open for play.")

        machine = QuizTimerStateMachine(quiz, self._scheduler)
        machine.start(player_name, email)
        play_id = uuid4().hex
        self._plays[play_id] = machine
        self._last_seen[play_id] = self._clock()
        return play_id, machine

    def get_play(self, play_id: str) -> QuizTimerStateMachine:
        self._evict_idle_plays()
        machine = self._plays.get(play_id)
        if machine is None:
            raise NotFoundError(f"Play {play_id} not found.")
        self._last_seen[play_id] = self._clock()
        return machine

    def answer(self, play_id: str, selected_index: int) -> int | None:
        return self.get_play(play_id).answer(selected_index)

    def abandon(self, play_id: str) -> None:
        machine = self.get_play(play_id)
        if play_id in self._completing:
            raise InvalidStateError("This play is being recorded.")
        machine.abandon()
        self._forget(play_id)

    def active_play_count(self) -> int:
        return len(self._plays)

    async def complete(self, play_id: str) -> KahootParticipant:
        """Record a finished play, then bump the quiz play count.

        If recording fails the play stays available so the call can be
        retried. A failed play-count bump is logged and otherwise ignored.
        """
        machine = self.get_play(play_id)
        if machine.phase is not QuizPhase.RESULT:
            raise InvalidStateError(f"Cannot complete a play that is {machine.phase.value}.")
        if play_id in self._completing:
            raise InvalidStateError("This play is already being recorded.")

        self._completing.add(play_id)
        try:
            participant = await self._leaderboard.record_completion(machine.attempt)
        finally:
            self._completing.discard(play_id)
        self._forget(play_id)

        try:
            await self._catalog.increment_play_count(participant.quiz_id)
        except AssessmentError as exc:
            logger.warning("Could not bump play count of quiz %s: %s", participant.quiz_id, exc)
        return participant

    def _forget(self, play_id: str) -> None:
        self._plays.pop(play_id, None)
        self._last_seen.pop(play_id, None)

    def _evict_idle_plays(self) -> None:
        cutoff = self._clock() - timedelta(seconds=PLAY_IDLE_SECONDS)
        idle = [
            play_id
            for play_id, last_seen in self._last_seen.items()
            if last_seen < cutoff and play_id not in self._completing
        ]
        for play_id in idle:
            machine = self._plays[play_id]
            if machine.phase is not QuizPhase.RESULT:
                machine.abandon()
            self._forget(play_id)
        if idle:
            logger.info("Evicted %d idle quiz plays", len(idle))
