"""Test doubles and builders shared across the test modules."""

from dataclasses import dataclass
from datetime import timedelta

from assessment_app.core.models import KahootQuestion, KahootQuiz, ParticipantInfo, PlacementQuestion


# ============================================================================
# TEST DOUBLES
# ============================================================================

class ManualHandle:
    def __init__(self, when, callback):
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class ManualScheduler:
    """Virtual-time scheduler; callbacks only run inside ``advance``."""

    def __init__(self):
        self.now = 0.0
        self._handles = []

    def call_later(self, delay, callback):
        handle = ManualHandle(self.now + delay, callback)
        self._handles.append(handle)
        return handle

    def pending(self):
        return [handle for handle in self._handles if not handle.cancelled]

    def advance(self, seconds):
        target = self.now + seconds
        while True:
            due = [handle for handle in self.pending() if handle.when <= target + 1e-9]
            if not due:
                break
            handle = min(due, key=lambda item: item.when)
            self._handles.remove(handle)
            self.now = handle.when
            handle.callback()
        self.now = target


class FakeClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@dataclass
class PlannedFailure:
    method: str
    error: Exception
    entity: object = None
    remaining: int = 1


class FlakyGateway:
    """Wraps a gateway and raises planned errors before delegating."""

    def __init__(self, inner):
        self.inner = inner
        self._failures = []

    def fail_on(self, method, error, entity=None, times=1):
        self._failures.append(PlannedFailure(method, error, entity, times))

    def _maybe_fail(self, method, entity):
        for failure in self._failures:
            if failure.method != method or failure.remaining <= 0:
                continue
            if failure.entity is not None and failure.entity != entity:
                continue
            failure.remaining -= 1
            raise failure.error

    async def create(self, entity, record):
        self._maybe_fail("create", entity)
        return await self.inner.create(entity, record)

    async def get_by_id(self, entity, record_id):
        self._maybe_fail("get_by_id", entity)
        return await self.inner.get_by_id(entity, record_id)

    async def query(self, entity, filters=(), order_by=(), limit=None):
        self._maybe_fail("query", entity)
        return await self.inner.query(entity, filters, order_by, limit)

    async def update(self, entity, record_id, changes, match=None):
        self._maybe_fail("update", entity)
        return await self.inner.update(entity, record_id, changes, match)

    async def delete(self, entity, record_id):
        self._maybe_fail("delete", entity)
        return await self.inner.delete(entity, record_id)

    async def set_exclusive(self, entity, record_id, field):
        self._maybe_fail("set_exclusive", entity)
        return await self.inner.set_exclusive(entity, record_id, field)


# ============================================================================
# BUILDERS
# ============================================================================

def make_placement_questions(count=5, weights=None):
    weights = weights or [1.0] * count
    return [
        PlacementQuestion(
            id=f"q{index}",
            text=f"Question {index}",
            options=("a", "b", "c", "d"),
            correct_answer_index=index % 4,
            weight=weights[index],
        )
        for index in range(count)
    ]


def make_kahoot_quiz(question_count=3, time_limit=15, quiz_id="quiz-1"):
    return KahootQuiz(
        id=quiz_id,
        title="Grammar Warm-up",
        questions=[
            KahootQuestion(
                id=f"k{index}",
                question=f"Question {index}",
                options=("A", "B", "C", "D"),
                correct_index=1,
                time_limit_seconds=time_limit,
            )
            for index in range(question_count)
        ],
        is_active=True,
    )


def make_participant(name="Budi Santoso"):
    return ParticipantInfo(name=name, email="budi@example.com", personal_wa="08123456789")


