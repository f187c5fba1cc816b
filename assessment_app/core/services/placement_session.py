"""Service driving one participant through the placement test."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from datetime import datetime
from enum import Enum
from uuid import uuid4

from assessment_app.constants.placement_constants import (
    SESSION_ID_NAME_CHARS,
    SESSION_ID_PREFIX,
    SESSION_ID_TIMESTAMP_DIGITS,
)
from assessment_app.core.errors import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
    persistence_errors,
)
from assessment_app.core.models import (
    ParticipantInfo,
    PlacementQuestion,
    PlacementSession,
    PlacementSubmission,
)
from assessment_app.core.placement_scoring import classify_cefr, compute_score
from assessment_app.persistence.gateway import EntityType, PersistenceGateway

logger = logging.getLogger(__name__)


class PlacementState(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    FINALIZED = "finalized"


def make_session_id(name: str, moment: datetime) -> str:
    """Build the ``FT-<NAME>-<digits>`` code shown to the participant."""
    prefix = name[:SESSION_ID_NAME_CHARS].upper()
    millis = str(int(moment.timestamp() * 1000))
    return f"{SESSION_ID_PREFIX}-{prefix}-{millis[-SESSION_ID_TIMESTAMP_DIGITS:]}"


def _new_submission_id() -> str:
    return str(uuid4())


class PlacementSessionController:
    """Placement session: start, answer, move between questions, finalize.

    The question set is frozen at construction. Progress lives only in this
    object; nothing is written until ``finalize`` succeeds.
    """

    def __init__(
        self,
        questions: Sequence[PlacementQuestion],
        gateway: PersistenceGateway,
        *,
        clock: Callable[[], datetime] = datetime.now,
        id_factory: Callable[[], str] = _new_submission_id,
    ) -> None:
        if not questions:
            raise ValidationError("The placement test has no questions.")
        self._questions: tuple[PlacementQuestion, ...] = tuple(questions)
        self._questions_by_id = {question.id: question for question in self._questions}
        self._gateway = gateway
        self._clock = clock
        self._id_factory = id_factory

        self._state = PlacementState.NOT_STARTED
        self._session: PlacementSession | None = None
        self._participant: ParticipantInfo | None = None
        self._submission_id: str | None = None
        self._submission: PlacementSubmission | None = None
        self._finalizing = False

    @property
    def state(self) -> PlacementState:
        return self._state

    @property
    def session_id(self) -> str | None:
        return self._session.session_id if self._session else None

    @property
    def questions(self) -> tuple[PlacementQuestion, ...]:
        return self._questions

    @property
    def current_index(self) -> int:
        return self._session.current_index if self._session else 0

    @property
    def current_question(self) -> PlacementQuestion:
        return self._questions[self.current_index]

    @property
    def answers(self) -> dict[str, int]:
        return dict(self._session.answers) if self._session else {}

    @property
    def submission(self) -> PlacementSubmission | None:
        return self._submission

    @property
    def finalizing(self) -> bool:
        return self._finalizing

    def is_last_question(self) -> bool:
        return self.current_index == len(self._questions) - 1

    def start(self, participant: ParticipantInfo) -> str:
        if self._state is not PlacementState.NOT_STARTED:
            raise InvalidStateError("This placement session has already started.")
        if not participant.name.strip():
            raise ValidationError("Participant name must not be empty.")

        self._participant = participant
        self._session = PlacementSession(session_id=make_session_id(participant.name, self._clock()))
        self._state = PlacementState.IN_PROGRESS
        return self._session.session_id

    def record_answer(self, question_id: str, option_index: int) -> None:
        """Store (or overwrite) the answer for one question without moving on."""
        self._require_in_progress()
        question = self._questions_by_id.get(question_id)
        if question is None:
            raise ValidationError(f"Unknown question id: {question_id}")
        if not 0 <= option_index < len(question.options):
            raise ValidationError(
                f"Option index {option_index} is out of range for question {question_id}."
            )
        self._session.answers[question_id] = option_index

    def advance(self) -> int:
        """Move to the next question; stays put on the last one."""
        self._require_in_progress()
        if self.current_question.id not in self._session.answers:
            raise ValidationError("Answer the current question before moving on.")
        last_index = len(self._questions) - 1
        self._session.current_index = min(self._session.current_index + 1, last_index)
        return self._session.current_index

    def previous(self) -> int:
        """Move back one question; stays put on the first one."""
        self._require_in_progress()
        self._session.current_index = max(self._session.current_index - 1, 0)
        return self._session.current_index

    async def finalize(self) -> PlacementSubmission:
        """Score every recorded answer and persist the submission.

        Missing answers count as incorrect. The session only becomes
        ``FINALIZED`` once the write succeeds, so a failed call may be retried.
        """
        self._require_in_progress()
        if self._finalizing:
            raise InvalidStateError("Finalization is already in progress.")

        self._finalizing = True
        try:
            breakdown = compute_score(self._questions, self._session.answers)
            if self._submission_id is None:
                self._submission_id = self._id_factory()
            submission = PlacementSubmission(
                id=self._submission_id,
                session_id=self._session.session_id,
                participant=self._participant,
                score=breakdown.percent_score,
                cefr_level=classify_cefr(breakdown.percent_score),
                timestamp=self._clock(),
            )
            await self._write_submission(submission)
        finally:
            self._finalizing = False

        self._submission = submission
        self._state = PlacementState.FINALIZED
        logger.info(
            "Placement session %s finalized: %s%% (%s)",
            submission.session_id,
            submission.score,
            submission.cefr_level.value,
        )
        return submission

    async def _write_submission(self, submission: PlacementSubmission) -> None:
        with persistence_errors("save the placement result"):
            try:
                await self._gateway.create(EntityType.PLACEMENT_SUBMISSIONS, submission.to_record())
            except ConflictError:
                # A previous attempt may have landed before its reply was lost.
                if not await self._already_written(submission):
                    raise

    async def _already_written(self, submission: PlacementSubmission) -> bool:
        try:
            existing = await self._gateway.get_by_id(EntityType.PLACEMENT_SUBMISSIONS, submission.id)
        except NotFoundError:
            return False
        return existing.get("session_id") == submission.session_id

    def _require_in_progress(self) -> None:
        if self._state is not PlacementState.IN_PROGRESS:
            raise InvalidStateError(
                f"Operation not allowed while the placement session is {self._state.value}."
            )
