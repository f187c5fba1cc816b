"""Service recording completed plays and ranking them into leaderboards."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import datetime
from uuid import uuid4

from assessment_app.constants.quiz_constants import LEADERBOARD_SIZE
from assessment_app.core.errors import InvalidStateError, persistence_errors
from assessment_app.core.models import KahootParticipant, KahootPlayAttempt
from assessment_app.persistence.gateway import EntityType, Filter, Order, PersistenceGateway

logger = logging.getLogger(__name__)

_ENTITY = EntityType.KAHOOT_PARTICIPANTS
_COMPLETION_ORDER = (Order("completed_at"),)


def start_of_day(now: datetime) -> datetime:
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def rank_all_time(participants: Iterable[KahootParticipant]) -> list[KahootParticipant]:
    """Top scores, highest first. Equal scores keep their original order."""
    return sorted(participants, key=lambda participant: participant.score, reverse=True)[:LEADERBOARD_SIZE]


def rank_daily(participants: Iterable[KahootParticipant], now: datetime) -> list[KahootParticipant]:
    window_start = start_of_day(now)
    todays = [
        participant
        for participant in participants
        if window_start <= participant.completed_at <= now
    ]
    return rank_all_time(todays)


class LeaderboardAggregator:
    """Turns finished plays into participant records; rankings are recomputed per query."""

    def __init__(
        self,
        gateway: PersistenceGateway,
        clock: Callable[[], datetime] = datetime.now,
        id_factory: Callable[[], str] = lambda: str(uuid4()),
    ) -> None:
        self._gateway = gateway
        self._clock = clock
        self._id_factory = id_factory

    async def record_completion(self, attempt: KahootPlayAttempt) -> KahootParticipant:
        if len(attempt.answers) != attempt.total_questions:
            raise InvalidStateError("Only finished plays can be recorded.")

        participant = KahootParticipant(
            id=self._id_factory(),
            quiz_id=attempt.quiz_id,
            name=attempt.player_name,
            email=attempt.email,
            score=attempt.running_score,
            correct_answers=attempt.correct_answers,
            total_questions=attempt.total_questions,
            time_spent_seconds=attempt.time_spent_seconds,
            completed_at=self._clock(),
        )
        with persistence_errors("record the quiz result"):
            record = await self._gateway.create(_ENTITY, participant.to_record())
        logger.info(
            "Recorded %s on quiz %s: %d points",
            participant.name,
            participant.quiz_id,
            participant.score,
        )
        return KahootParticipant.from_record(record)

    async def daily(self) -> list[KahootParticipant]:
        now = self._clock()
        participants = await self._load(filters=(Filter("completed_at", "gte", start_of_day(now)),))
        return rank_daily(participants, now)

    async def all_time(self) -> list[KahootParticipant]:
        return rank_all_time(await self._load())

    async def participants_for_quiz(self, quiz_id: str) -> list[KahootParticipant]:
        participants = await self._load(filters=(Filter("quiz_id", "eq", quiz_id),))
        return sorted(participants, key=lambda participant: participant.score, reverse=True)

    async def _load(self, filters: tuple[Filter, ...] = ()) -> list[KahootParticipant]:
        with persistence_errors("load quiz results"):
            records = await self._gateway.query(_ENTITY, filters=filters, order_by=_COMPLETION_ORDER)
        return [KahootParticipant.from_record(record) for record in records]
