"""Business logic shared by the API: placement sessions, oral tests and live quizzes."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from datetime import date, datetime, timedelta
from uuid import uuid4

from assessment_app.constants.placement_constants import PLACEMENT_SESSION_IDLE_SECONDS
from assessment_app.core.errors import InvalidStateError, NotFoundError
from assessment_app.core.models import (
    CEFRLevel,
    KahootParticipant,
    KahootQuestion,
    KahootQuiz,
    OralTestSlot,
    OralTestStatus,
    ParticipantInfo,
    PlacementQuestion,
    PlacementSubmission,
)
from assessment_app.core.services.leaderboard import LeaderboardAggregator
from assessment_app.core.services.live_quiz import LiveQuizService
from assessment_app.core.services.oral_scheduling import Booking, OralScheduling
from assessment_app.core.services.placement_session import PlacementSessionController
from assessment_app.core.services.question_bank import QuestionBank
from assessment_app.core.services.quiz_catalog import QuizCatalog
from assessment_app.core.services.quiz_timer import QuizTimerStateMachine
from assessment_app.persistence.gateway import PersistenceGateway
from assessment_app.utils.timers import AsyncioTimerScheduler, TimerScheduler

logger = logging.getLogger(__name__)


class AssessmentManager:
    """Facade for the services: QuestionBank, OralScheduling, QuizCatalog, Leaderboard and LiveQuiz."""

    def __init__(
        self,
        gateway: PersistenceGateway,
        scheduler: TimerScheduler | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._gateway = gateway
        self._clock = clock

        # Services
        self._question_bank = QuestionBank(gateway, clock)
        self._oral_scheduling = OralScheduling(gateway, clock)
        self._quiz_catalog = QuizCatalog(gateway, clock)
        self._leaderboard = LeaderboardAggregator(gateway, clock)
        self._live_quiz = LiveQuizService(
            self._quiz_catalog,
            self._leaderboard,
            scheduler or AsyncioTimerScheduler(),
            clock=clock,
        )

        self._placement_sessions: dict[str, PlacementSessionController] = {}
        self._placement_last_seen: dict[str, datetime] = {}

    # --- Placement Session ---

    async def begin_placement(self, participant: ParticipantInfo) -> tuple[str, PlacementSessionController]:
        self._evict_idle_placements()
        questions = await self._question_bank.active_questions()
        controller = PlacementSessionController(questions, self._gateway, clock=self._clock)
        controller.start(participant)
        token = uuid4().hex
        self._placement_sessions[token] = controller
        self._placement_last_seen[token] = self._clock()
        return token, controller

    def get_placement(self, token: str) -> PlacementSessionController:
        self._evict_idle_placements()
        controller = self._placement_sessions.get(token)
        if controller is None:
            raise NotFoundError(f"Placement session {token} not found.")
        self._placement_last_seen[token] = self._clock()
        return controller

    def record_placement_answer(self, token: str, question_id: str, option_index: int) -> None:
        self.get_placement(token).record_answer(question_id, option_index)

    def advance_placement(self, token: str) -> int:
        return self.get_placement(token).advance()

    def previous_placement(self, token: str) -> int:
        return self.get_placement(token).previous()

    async def finalize_placement(self, token: str) -> PlacementSubmission:
        submission = await self.get_placement(token).finalize()
        self._forget_placement(token)
        return submission

    def discard_placement(self, token: str) -> None:
        if self.get_placement(token).finalizing:
            raise InvalidStateError("The placement result is being saved.")
        self._forget_placement(token)

    def active_placement_count(self) -> int:
        return len(self._placement_sessions)

    def _forget_placement(self, token: str) -> None:
        self._placement_sessions.pop(token, None)
        self._placement_last_seen.pop(token, None)

    def _evict_idle_placements(self) -> None:
        cutoff = self._clock() - timedelta(seconds=PLACEMENT_SESSION_IDLE_SECONDS)
        idle = [
            token
            for token, last_seen in self._placement_last_seen.items()
            if last_seen < cutoff and not self._placement_sessions[token].finalizing
        ]
        for token in idle:
            self._forget_placement(token)
        if idle:
            logger.info("Evicted %d idle placement sessions", len(idle))

    # --- Question Bank Delegation ---

    async def list_placement_questions(self) -> list[PlacementQuestion]:
        return await self._question_bank.list_questions()

    async def add_placement_question(
        self,
        text: str,
        options: Sequence[str],
        correct_answer_index: int,
        weight: float = 1.0,
        is_active: bool = True,
    ) -> PlacementQuestion:
        return await self._question_bank.add_question(text, options, correct_answer_index, weight, is_active)

    async def update_placement_question(
        self,
        question_id: str,
        text: str,
        options: Sequence[str],
        correct_answer_index: int,
        weight: float = 1.0,
    ) -> PlacementQuestion:
        return await self._question_bank.update_question(question_id, text, options, correct_answer_index, weight)

    async def set_placement_question_active(self, question_id: str, is_active: bool) -> PlacementQuestion:
        return await self._question_bank.set_question_active(question_id, is_active)

    async def delete_placement_question(self, question_id: str) -> None:
        await self._question_bank.delete_question(question_id)

    # --- Oral Scheduling Delegation ---

    async def available_oral_slots(self) -> list[OralTestSlot]:
        return await self._oral_scheduling.available_slots()

    async def all_oral_slots(self) -> list[OralTestSlot]:
        return await self._oral_scheduling.all_slots()

    async def create_oral_slots(self, slot_date: date, times: Sequence[str]) -> list[OralTestSlot]:
        return await self._oral_scheduling.create_slots(slot_date, times)

    async def release_oral_slot(self, slot_id: str) -> OralTestSlot:
        return await self._oral_scheduling.release_slot(slot_id)

    async def delete_oral_slot(self, slot_id: str) -> None:
        await self._oral_scheduling.delete_slot(slot_id)

    async def book_oral_slot(self, submission_id: str, slot_id: str) -> Booking:
        return await self._oral_scheduling.book_slot(submission_id, slot_id)

    async def complete_oral_test(self, submission_id: str, score: CEFRLevel | str) -> PlacementSubmission:
        return await self._oral_scheduling.complete_oral_test(submission_id, score)

    async def get_submission(self, submission_id: str) -> PlacementSubmission:
        return await self._oral_scheduling.get_submission(submission_id)

    async def list_submissions(self, status: OralTestStatus | None = None) -> list[PlacementSubmission]:
        return await self._oral_scheduling.submissions_by_status(status)

    async def submissions_needing_oral_test(self) -> list[PlacementSubmission]:
        return await self._oral_scheduling.submissions_needing_oral_test()

    # --- Quiz Catalog Delegation ---

    async def list_quizzes(self) -> list[KahootQuiz]:
        return await self._quiz_catalog.list_quizzes()

    async def get_quiz(self, quiz_id: str) -> KahootQuiz:
        return await self._quiz_catalog.get_quiz(quiz_id)

    async def get_active_quiz(self) -> KahootQuiz | None:
        return await self._quiz_catalog.get_active_quiz()

    async def create_quiz(
        self,
        title: str,
        questions: Sequence[KahootQuestion],
        description: str | None = None,
        is_active: bool = False,
    ) -> KahootQuiz:
        return await self._quiz_catalog.create_quiz(title, questions, description, is_active)

    async def import_quiz(self, text: str, is_active: bool = False) -> KahootQuiz:
        return await self._quiz_catalog.import_quiz(text, is_active)

    async def update_quiz(
        self,
        quiz_id: str,
        title: str,
        questions: Sequence[KahootQuestion],
        description: str | None = None,
    ) -> KahootQuiz:
        return await self._quiz_catalog.update_quiz(quiz_id, title, questions, description)

    async def delete_quiz(self, quiz_id: str) -> None:
        await self._quiz_catalog.delete_quiz(quiz_id)

    async def set_active_quiz(self, quiz_id: str) -> KahootQuiz:
        return await self._quiz_catalog.set_active(quiz_id)

    async def deactivate_quiz(self, quiz_id: str) -> KahootQuiz:
        return await self._quiz_catalog.deactivate(quiz_id)

    # --- Live Quiz Delegation ---

    async def start_play(
        self,
        player_name: str,
        email: str | None = None,
        quiz_id: str | None = None,
    ) -> tuple[str, QuizTimerStateMachine]:
        return await self._live_quiz.start_play(player_name, email, quiz_id)

    def get_play(self, play_id: str) -> QuizTimerStateMachine:
        return self._live_quiz.get_play(play_id)

    def answer_play(self, play_id: str, selected_index: int) -> int | None:
        return self._live_quiz.answer(play_id, selected_index)

    def abandon_play(self, play_id: str) -> None:
        self._live_quiz.abandon(play_id)

    async def complete_play(self, play_id: str) -> KahootParticipant:
        return await self._live_quiz.complete(play_id)

    # --- Leaderboard Delegation ---

    async def daily_leaderboard(self) -> list[KahootParticipant]:
        return await self._leaderboard.daily()

    async def all_time_leaderboard(self) -> list[KahootParticipant]:
        return await self._leaderboard.all_time()

    async def quiz_participants(self, quiz_id: str) -> list[KahootParticipant]:
        return await self._leaderboard.participants_for_quiz(quiz_id)
