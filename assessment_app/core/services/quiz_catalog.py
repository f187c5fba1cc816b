"""Service for live-quiz definitions and the single active quiz."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from datetime import datetime
from uuid import uuid4

from assessment_app.constants.quiz_constants import OPTIONS_PER_QUESTION
from assessment_app.core.errors import ConflictError, ValidationError, persistence_errors
from assessment_app.core.models import KahootQuestion, KahootQuiz
from assessment_app.core.quiz_importer import parse_quiz_text
from assessment_app.persistence.gateway import EntityType, Filter, Order, PersistenceGateway

logger = logging.getLogger(__name__)

_ENTITY = EntityType.KAHOOT_QUIZZES
_NEWEST_FIRST = (Order("created_at", descending=True),)
_PLAY_COUNT_ATTEMPTS = 3


class QuizCatalog:
    """Manages the lifecycle and storage of live quizzes."""

    def __init__(self, gateway: PersistenceGateway, clock: Callable[[], datetime] = datetime.now) -> None:
        self._gateway = gateway
        self._clock = clock

    async def list_quizzes(self) -> list[KahootQuiz]:
        with persistence_errors("load quizzes"):
            records = await self._gateway.query(_ENTITY, order_by=_NEWEST_FIRST)
        return [KahootQuiz.from_record(record) for record in records]

    async def get_quiz(self, quiz_id: str) -> KahootQuiz:
        with persistence_errors("load the quiz"):
            record = await self._gateway.get_by_id(_ENTITY, quiz_id)
        return KahootQuiz.from_record(record)

    async def get_active_quiz(self) -> KahootQuiz | None:
        with persistence_errors("load the active quiz"):
            records = await self._gateway.query(
                _ENTITY,
                filters=(Filter("is_active", "eq", True),),
                order_by=_NEWEST_FIRST,
            )
        if not records:
            return None
        if len(records) > 1:
            logger.warning("%d quizzes are marked active; using the newest", len(records))
        return KahootQuiz.from_record(records[0])

    async def create_quiz(
        self,
        title: str,
        questions: Sequence[KahootQuestion],
        description: str | None = None,
        is_active: bool = False,
    ) -> KahootQuiz:
        quiz = KahootQuiz(
            id=str(uuid4()),
            title=self._validate_title(title),
            description=(description or "").strip() or None,
            questions=self._prepare_questions(questions),
            created_at=self._clock(),
        )
        with persistence_errors("save the quiz"):
            await self._gateway.create(_ENTITY, quiz.to_record())
        logger.info("Quiz %s created with %d questions", quiz.id, len(quiz.questions))
        if is_active:
            return await self.set_active(quiz.id)
        return quiz

    async def import_quiz(self, text: str, is_active: bool = False) -> KahootQuiz:
        imported = parse_quiz_text(text)
        return await self.create_quiz(
            imported.title,
            imported.questions,
            description=imported.description,
            is_active=is_active,
        )

    async def update_quiz(
        self,
        quiz_id: str,
        title: str,
        questions: Sequence[KahootQuestion],
        description: str | None = None,
    ) -> KahootQuiz:
        changes = {
            "title": self._validate_title(title),
            "description": (description or "").strip() or None,
            "questions": [question.to_record() for question in self._prepare_questions(questions)],
        }
        with persistence_errors("update the quiz"):
            record = await self._gateway.update(_ENTITY, quiz_id, changes)
        return KahootQuiz.from_record(record)

    async def delete_quiz(self, quiz_id: str) -> None:
        with persistence_errors("delete the quiz"):
            await self._gateway.delete(_ENTITY, quiz_id)
        logger.info("Quiz %s deleted", quiz_id)

    async def set_active(self, quiz_id: str) -> KahootQuiz:
        """Activate one quiz and deactivate every other in a single write."""
        with persistence_errors("activate the quiz"):
            await self._gateway.set_exclusive(_ENTITY, quiz_id, "is_active")
            record = await self._gateway.get_by_id(_ENTITY, quiz_id)
        logger.info("Quiz %s activated", quiz_id)
        return KahootQuiz.from_record(record)

    async def deactivate(self, quiz_id: str) -> KahootQuiz:
        with persistence_errors("deactivate the quiz"):
            record = await self._gateway.update(_ENTITY, quiz_id, {"is_active": False})
        return KahootQuiz.from_record(record)

    async def increment_play_count(self, quiz_id: str) -> int:
        with persistence_errors("update the play count"):
            for _ in range(_PLAY_COUNT_ATTEMPTS):
                current = await self._gateway.get_by_id(_ENTITY, quiz_id)
                play_count = int(current.get("play_count") or 0)
                try:
                    await self._gateway.update(
                        _ENTITY,
                        quiz_id,
                        {"play_count": play_count + 1},
                        match={"play_count": current.get("play_count")},
                    )
                except ConflictError:
                    continue
                return play_count + 1
        raise ConflictError(f"Play count of quiz {quiz_id} kept changing; giving up.")

    @staticmethod
    def _validate_title(title: str) -> str:
        cleaned = title.strip()
        if not cleaned:
            raise ValidationError("Quiz title must not be empty.")
        return cleaned

    def _prepare_questions(self, questions: Sequence[KahootQuestion]) -> list[KahootQuestion]:
        if not questions:
            raise ValidationError("Quiz must contain at least one question.")
        return [self._prepare_question(question) for question in questions]

    def _prepare_question(self, question: KahootQuestion) -> KahootQuestion:
        """Validate and normalize a question before storage."""
        cleaned_text = question.question.strip()
        if not cleaned_text:
            raise ValidationError("Question text must not be empty.")

        options = self._validate_options(question.options)
        if not 0 <= question.correct_index < OPTIONS_PER_QUESTION:
            raise ValidationError("Correct option index must be between 0 and 3.")

        time_limit = question.time_limit_seconds
        if not isinstance(time_limit, int) or time_limit <= 0:
            raise ValidationError("Time limit must be a positive integer number of seconds.")

        return KahootQuestion(
            id=question.id or uuid4().hex,
            question=cleaned_text,
            options=options,
            correct_index=question.correct_index,
            time_limit_seconds=time_limit,
        )

    @staticmethod
    def _validate_options(options: Sequence[str]) -> tuple[str, ...]:
        if len(options) != OPTIONS_PER_QUESTION:
            raise ValidationError("Each question must have exactly four options.")
        cleaned = tuple(option.strip() for option in options)
        if any(not option for option in cleaned):
            raise ValidationError("Option text cannot be empty.")
        return cleaned
