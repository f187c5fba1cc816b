"""Service for oral-test slots: availability, booking and completion."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from datetime import date, datetime
from uuid import uuid4

from assessment_app.core.errors import (
    AssessmentError,
    ConflictError,
    InvalidTransitionError,
    SlotAlreadyBookedError,
    ValidationError,
    persistence_errors,
)
from assessment_app.core.models import CEFRLevel, OralTestSlot, OralTestStatus, PlacementSubmission
from assessment_app.persistence.gateway import EntityType, Filter, Order, PersistenceGateway

logger = logging.getLogger(__name__)

_SLOTS = EntityType.ORAL_TEST_SLOTS
_SUBMISSIONS = EntityType.PLACEMENT_SUBMISSIONS
_SLOT_ORDER = (Order("date"), Order("time"))
_NEWEST_FIRST = (Order("timestamp", descending=True),)


@dataclass(frozen=True, slots=True)
class Booking:
    slot: OralTestSlot
    submission: PlacementSubmission


def list_available_slots(slots: Iterable[OralTestSlot], today: date) -> list[OralTestSlot]:
    """Unbooked slots from ``today`` onwards, ordered by (date, time)."""
    available = [slot for slot in slots if not slot.is_booked and slot.date >= today]
    return sorted(available, key=lambda slot: (slot.date, slot.time))


def _normalize_time(value: str) -> str:
    try:
        return datetime.strptime(value.strip(), "%H:%M").strftime("%H:%M")
    except ValueError as exc:
        raise ValidationError(f"Slot time must look like HH:MM, got {value!r}.") from exc


class OralScheduling:
    """Books follow-up oral interviews against placement submissions.

    Booking touches two records (the slot and the submission). The slot is
    claimed first with an optimistic check on ``is_booked``; if the submission
    update then fails the slot claim is rolled back.
    """

    def __init__(self, gateway: PersistenceGateway, clock: Callable[[], datetime] = datetime.now) -> None:
        self._gateway = gateway
        self._clock = clock

    # --- Slots ---

    async def available_slots(self) -> list[OralTestSlot]:
        today = self._clock().date()
        with persistence_errors("load oral test slots"):
            records = await self._gateway.query(
                _SLOTS,
                filters=(
                    Filter("is_booked", "eq", False),
                    Filter("date", "gte", today.isoformat()),
                ),
                order_by=_SLOT_ORDER,
            )
        return list_available_slots((OralTestSlot.from_record(record) for record in records), today)

    async def all_slots(self) -> list[OralTestSlot]:
        with persistence_errors("load oral test slots"):
            records = await self._gateway.query(_SLOTS, order_by=_SLOT_ORDER)
        return [OralTestSlot.from_record(record) for record in records]

    async def create_slots(self, slot_date: date, times: Sequence[str]) -> list[OralTestSlot]:
        """Open one slot per time on ``slot_date``."""
        normalized = sorted({_normalize_time(value) for value in times})
        if not normalized:
            raise ValidationError("Provide at least one slot time.")

        created: list[OralTestSlot] = []
        with persistence_errors("create oral test slots"):
            for slot_time in normalized:
                slot = OralTestSlot(id=str(uuid4()), date=slot_date, time=slot_time, created_at=self._clock())
                record = await self._gateway.create(_SLOTS, slot.to_record())
                created.append(OralTestSlot.from_record(record))
        logger.info("Created %d oral test slots on %s", len(created), slot_date.isoformat())
        return created

    async def release_slot(self, slot_id: str) -> OralTestSlot:
        """Free a slot. The submission that held it is left as it is."""
        with persistence_errors("release the oral test slot"):
            record = await self._gateway.update(_SLOTS, slot_id, {"is_booked": False, "booked_by": None})
        logger.info("Oral test slot %s released", slot_id)
        return OralTestSlot.from_record(record)

    async def delete_slot(self, slot_id: str) -> None:
        with persistence_errors("delete the oral test slot"):
            await self._gateway.delete(_SLOTS, slot_id)

    # --- Booking ---

    async def book_slot(self, submission_id: str, slot_id: str) -> Booking:
        with persistence_errors("book the oral test slot"):
            submission = await self._load_submission(submission_id)
            if submission.oral_test_status is not OralTestStatus.NONE:
                raise InvalidTransitionError(
                    f"Submission {submission_id} already has an oral test ({submission.oral_test_status.value})."
                )

            slot = OralTestSlot.from_record(await self._gateway.get_by_id(_SLOTS, slot_id))
            if slot.is_booked:
                raise SlotAlreadyBookedError(f"Slot {slot_id} is already booked.")
            if slot.date < self._clock().date():
                raise ValidationError(f"Slot {slot_id} is in the past.")

            try:
                slot_record = await self._gateway.update(
                    _SLOTS,
                    slot_id,
                    {"is_booked": True, "booked_by": submission_id},
                    match={"is_booked": False},
                )
            except ConflictError as exc:
                raise SlotAlreadyBookedError(f"Slot {slot_id} was booked by someone else.") from exc

            try:
                submission_record = await self._gateway.update(
                    _SUBMISSIONS,
                    submission_id,
                    {
                        "oral_test_status": OralTestStatus.BOOKED.value,
                        "oral_test_date": slot.date.isoformat(),
                        "oral_test_time": slot.time,
                    },
                    match={"oral_test_status": OralTestStatus.NONE.value},
                )
            except AssessmentError as exc:
                await self._rollback_slot(slot_id, submission_id)
                if isinstance(exc, ConflictError):
                    raise InvalidTransitionError(
                        f"Submission {submission_id} was booked concurrently."
                    ) from exc
                raise

        logger.info("Slot %s booked for submission %s", slot_id, submission_id)
        return Booking(
            slot=OralTestSlot.from_record(slot_record),
            submission=PlacementSubmission.from_record(submission_record),
        )

    async def _rollback_slot(self, slot_id: str, submission_id: str) -> None:
        try:
            await self._gateway.update(
                _SLOTS,
                slot_id,
                {"is_booked": False, "booked_by": None},
                match={"booked_by": submission_id},
            )
        except AssessmentError:
            logger.exception("Could not release slot %s after a failed booking", slot_id)

    async def complete_oral_test(self, submission_id: str, score: CEFRLevel | str) -> PlacementSubmission:
        try:
            level = CEFRLevel.parse(score)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc

        with persistence_errors("record the oral test result"):
            submission = await self._load_submission(submission_id)
            if submission.oral_test_status is not OralTestStatus.BOOKED:
                raise InvalidTransitionError(
                    f"Cannot complete an oral test from status '{submission.oral_test_status.value}'."
                )
            try:
                record = await self._gateway.update(
                    _SUBMISSIONS,
                    submission_id,
                    {"oral_test_status": OralTestStatus.COMPLETED.value, "oral_test_score": level.value},
                    match={"oral_test_status": OralTestStatus.BOOKED.value},
                )
            except ConflictError as exc:
                raise InvalidTransitionError(
                    f"Submission {submission_id} changed while recording the oral test."
                ) from exc

        logger.info("Oral test completed for submission %s: %s", submission_id, level.value)
        return PlacementSubmission.from_record(record)

    # --- Submissions ---

    async def get_submission(self, submission_id: str) -> PlacementSubmission:
        with persistence_errors("load the placement submission"):
            return await self._load_submission(submission_id)

    async def submissions_by_status(self, status: OralTestStatus | None = None) -> list[PlacementSubmission]:
        filters = (Filter("oral_test_status", "eq", status.value),) if status else ()
        with persistence_errors("load placement submissions"):
            records = await self._gateway.query(_SUBMISSIONS, filters=filters, order_by=_NEWEST_FIRST)
        return [PlacementSubmission.from_record(record) for record in records]

    async def submissions_needing_oral_test(self) -> list[PlacementSubmission]:
        pending = [OralTestStatus.NONE.value, OralTestStatus.BOOKED.value]
        with persistence_errors("load placement submissions"):
            records = await self._gateway.query(
                _SUBMISSIONS,
                filters=(Filter("oral_test_status", "in", pending),),
                order_by=_NEWEST_FIRST,
            )
        return [PlacementSubmission.from_record(record) for record in records]

    async def _load_submission(self, submission_id: str) -> PlacementSubmission:
        return PlacementSubmission.from_record(await self._gateway.get_by_id(_SUBMISSIONS, submission_id))
