"""Service for managing the placement test question bank."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from datetime import datetime
from uuid import uuid4

from assessment_app.constants.placement_constants import MIN_PLACEMENT_OPTIONS
from assessment_app.core.errors import ValidationError, persistence_errors
from assessment_app.core.models import PlacementQuestion
from assessment_app.persistence.gateway import EntityType, Filter, Order, PersistenceGateway

logger = logging.getLogger(__name__)

_ENTITY = EntityType.PLACEMENT_QUESTIONS
_CREATION_ORDER = (Order("created_at"),)


class QuestionBank:
    """Stores placement questions; sessions run against the active ones."""

    def __init__(self, gateway: PersistenceGateway, clock: Callable[[], datetime] = datetime.now) -> None:
        self._gateway = gateway
        self._clock = clock

    async def list_questions(self) -> list[PlacementQuestion]:
        with persistence_errors("load placement questions"):
            records = await self._gateway.query(_ENTITY, order_by=_CREATION_ORDER)
        return [PlacementQuestion.from_record(record) for record in records]

    async def active_questions(self) -> list[PlacementQuestion]:
        """Return the questions a new placement session should use, in creation order."""
        with persistence_errors("load placement questions"):
            records = await self._gateway.query(
                _ENTITY,
                filters=(Filter("is_active", "eq", True),),
                order_by=_CREATION_ORDER,
            )
        return [PlacementQuestion.from_record(record) for record in records]

    async def get_question(self, question_id: str) -> PlacementQuestion:
        with persistence_errors("load the placement question"):
            record = await self._gateway.get_by_id(_ENTITY, question_id)
        return PlacementQuestion.from_record(record)

    async def add_question(
        self,
        text: str,
        options: Sequence[str],
        correct_answer_index: int,
        weight: float = 1.0,
        is_active: bool = True,
    ) -> PlacementQuestion:
        question = self._prepare_question(
            PlacementQuestion(
                id=str(uuid4()),
                text=text,
                options=tuple(options),
                correct_answer_index=correct_answer_index,
                weight=weight,
                is_active=is_active,
                created_at=self._clock(),
            )
        )
        with persistence_errors("save the placement question"):
            record = await self._gateway.create(_ENTITY, question.to_record())
        logger.info("Placement question %s added", question.id)
        return PlacementQuestion.from_record(record)

    async def update_question(
        self,
        question_id: str,
        text: str,
        options: Sequence[str],
        correct_answer_index: int,
        weight: float = 1.0,
    ) -> PlacementQuestion:
        current = await self.get_question(question_id)
        prepared = self._prepare_question(
            PlacementQuestion(
                id=current.id,
                text=text,
                options=tuple(options),
                correct_answer_index=correct_answer_index,
                weight=weight,
                is_active=current.is_active,
                created_at=current.created_at,
            )
        )
        changes = prepared.to_record()
        del changes["id"], changes["created_at"], changes["is_active"]
        with persistence_errors("update the placement question"):
            record = await self._gateway.update(_ENTITY, question_id, changes)
        return PlacementQuestion.from_record(record)

    async def set_question_active(self, question_id: str, is_active: bool) -> PlacementQuestion:
        with persistence_errors("update the placement question"):
            record = await self._gateway.update(_ENTITY, question_id, {"is_active": is_active})
        return PlacementQuestion.from_record(record)

    async def delete_question(self, question_id: str) -> None:
        with persistence_errors("delete the placement question"):
            await self._gateway.delete(_ENTITY, question_id)
        logger.info("Placement question %s deleted", question_id)

    def _prepare_question(self, question: PlacementQuestion) -> PlacementQuestion:
        """Validate and normalize a question before storage."""
        cleaned_text = question.text.strip()
        if not cleaned_text:
            raise ValidationError("Question text must not be empty.")

        options = self._validate_options(question.options)
        if not 0 <= question.correct_answer_index < len(options):
            raise ValidationError("Correct answer index must point at one of the options.")

        if question.weight is None or question.weight <= 0:
            raise ValidationError("Question weight must be a positive number.")

        return PlacementQuestion(
            id=question.id,
            text=cleaned_text,
            options=options,
            correct_answer_index=question.correct_answer_index,
            weight=question.weight,
            is_active=question.is_active,
            created_at=question.created_at,
        )

    @staticmethod
    def _validate_options(options: Sequence[str]) -> tuple[str, ...]:
        if len(options) < MIN_PLACEMENT_OPTIONS:
            raise ValidationError(f"Each question needs at least {MIN_PLACEMENT_OPTIONS} options.")
        cleaned = tuple(option.strip() for option in options)
        if any(not option for option in cleaned):
            raise ValidationError("Option text cannot be empty.")
        return cleaned
