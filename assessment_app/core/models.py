"""Domain models for the placement test and the live quiz."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any

from assessment_app.constants.quiz_constants import DEFAULT_TIME_LIMIT_SECONDS

Record = dict[str, Any]


class CEFRLevel(str, Enum):
    """Six-band proficiency scale produced by the placement test."""

    A1 = "A1"
    A2 = "A2"
    B1 = "B1"
    B2 = "B2"
    C1 = "C1"
    C2 = "C2"

    @property
    def label(self) -> str:
        return f"{self.value} - {_CEFR_DESCRIPTIONS[self.value]}"

    @classmethod
    def parse(cls, value: str | CEFRLevel) -> CEFRLevel:
        """Accept either a bare code ("B2") or a label ("B2 - Upper Intermediate")."""
        if isinstance(value, CEFRLevel):
            return value
        code = str(value).split("-", 1)[0].strip().upper()
        try:
            return cls(code)
        except ValueError:
            raise ValueError(f"Unknown CEFR level: {value!r}") from None


_CEFR_DESCRIPTIONS = {
    "A1": "Beginner",
    "A2": "Elementary",
    "B1": "Intermediate",
    "B2": "Upper Intermediate",
    "C1": "Advanced",
    "C2": "Proficient",
}


class OralTestStatus(str, Enum):
    NONE = "none"
    BOOKED = "booked"
    COMPLETED = "completed"


def _as_date(value: date | str | None) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(value)


def _as_datetime(value: datetime | str | None) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


# --- Placement test ---


@dataclass(frozen=True, slots=True)
class PlacementQuestion:
    """Weighted multiple-choice question. Immutable once a session starts."""

    id: str
    text: str
    options: tuple[str, ...]
    correct_answer_index: int
    weight: float = 1.0
    is_active: bool = True
    created_at: datetime | None = None

    def to_record(self) -> Record:
        return {
            "id": self.id,
            "text": self.text,
            "options": list(self.options),
            "correct_answer_index": self.correct_answer_index,
            "weight": self.weight,
            "is_active": self.is_active,
            "created_at": self.created_at,
        }

    @classmethod
    def from_record(cls, record: Record) -> PlacementQuestion:
        return cls(
            id=str(record["id"]),
            text=record["text"],
            options=tuple(record["options"]),
            correct_answer_index=int(record["correct_answer_index"]),
            weight=record.get("weight", 1.0),
            is_active=bool(record.get("is_active", True)),
            created_at=_as_datetime(record.get("created_at")),
        )


@dataclass(slots=True)
class ParticipantInfo:
    """Lead-form details collected before the placement test starts."""

    name: str
    email: str
    personal_wa: str
    grade: str = ""
    wa: str = ""
    dob: str | None = None
    parent_name: str | None = None
    parent_wa: str | None = None
    address: str | None = None
    school_origin: str | None = None


@dataclass(slots=True)
class PlacementSession:
    """Client-held progress through the placement questions."""

    session_id: str
    answers: dict[str, int] = field(default_factory=dict)
    current_index: int = 0


@dataclass(slots=True)
class PlacementSubmission:
    """Durable result of a finalized placement session."""

    id: str
    session_id: str
    participant: ParticipantInfo
    score: int
    cefr_level: CEFRLevel
    timestamp: datetime
    oral_test_status: OralTestStatus = OralTestStatus.NONE
    oral_test_date: date | None = None
    oral_test_time: str | None = None
    oral_test_score: CEFRLevel | None = None

    def to_record(self) -> Record:
        participant = self.participant
        return {
            "id": self.id,
            "session_id": self.session_id,
            "name": participant.name,
            "email": participant.email,
            "personal_wa": participant.personal_wa,
            "grade": participant.grade,
            "wa": participant.wa,
            "dob": participant.dob,
            "parent_name": participant.parent_name,
            "parent_wa": participant.parent_wa,
            "address": participant.address,
            "school_origin": participant.school_origin,
            "score": self.score,
            "cefr_level": self.cefr_level.value,
            "timestamp": self.timestamp,
            "oral_test_status": self.oral_test_status.value,
            "oral_test_date": self.oral_test_date.isoformat() if self.oral_test_date else None,
            "oral_test_time": self.oral_test_time,
            "oral_test_score": self.oral_test_score.value if self.oral_test_score else None,
        }

    @classmethod
    def from_record(cls, record: Record) -> PlacementSubmission:
        participant = ParticipantInfo(
            name=record["name"],
            email=record.get("email") or "",
            personal_wa=record.get("personal_wa") or "",
            grade=record.get("grade") or "",
            wa=record.get("wa") or "",
            dob=record.get("dob"),
            parent_name=record.get("parent_name"),
            parent_wa=record.get("parent_wa"),
            address=record.get("address"),
            school_origin=record.get("school_origin"),
        )
        oral_score = record.get("oral_test_score")
        return cls(
            id=str(record["id"]),
            session_id=record.get("session_id") or "",
            participant=participant,
            score=int(record["score"]),
            cefr_level=CEFRLevel.parse(record["cefr_level"]),
            timestamp=_as_datetime(record["timestamp"]),
            oral_test_status=OralTestStatus(record.get("oral_test_status") or "none"),
            oral_test_date=_as_date(record.get("oral_test_date")),
            oral_test_time=record.get("oral_test_time"),
            oral_test_score=CEFRLevel.parse(oral_score) if oral_score else None,
        )


@dataclass(slots=True)
class OralTestSlot:
    """Bookable appointment for the follow-up oral interview."""

    id: str
    date: date
    time: str
    is_booked: bool = False
    booked_by: str | None = None
    created_at: datetime | None = None

    def to_record(self) -> Record:
        return {
            "id": self.id,
            "date": self.date.isoformat(),
            "time": self.time,
            "is_booked": self.is_booked,
            "booked_by": self.booked_by,
            "created_at": self.created_at,
        }

    @classmethod
    def from_record(cls, record: Record) -> OralTestSlot:
        return cls(
            id=str(record["id"]),
            date=_as_date(record["date"]),
            time=record["time"],
            is_booked=bool(record.get("is_booked", False)),
            booked_by=record.get("booked_by"),
            created_at=_as_datetime(record.get("created_at")),
        )


# --- Live quiz ---


@dataclass(frozen=True, slots=True)
class KahootQuestion:
    """Timed question with exactly four options."""

    id: str
    question: str
    options: tuple[str, ...]
    correct_index: int
    time_limit_seconds: int = DEFAULT_TIME_LIMIT_SECONDS

    def to_record(self) -> Record:
        return {
            "id": self.id,
            "question": self.question,
            "options": list(self.options),
            "correct_index": self.correct_index,
            "time_limit": self.time_limit_seconds,
        }

    @classmethod
    def from_record(cls, record: Record) -> KahootQuestion:
        return cls(
            id=str(record["id"]),
            question=record["question"],
            options=tuple(record["options"]),
            correct_index=int(record["correct_index"]),
            time_limit_seconds=int(record.get("time_limit", DEFAULT_TIME_LIMIT_SECONDS)),
        )


@dataclass(slots=True)
class KahootQuiz:
    id: str
    title: str
    questions: list[KahootQuestion]
    is_active: bool = False
    description: str | None = None
    play_count: int = 0
    created_at: datetime | None = None

    def to_record(self) -> Record:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "is_active": self.is_active,
            "questions": [question.to_record() for question in self.questions],
            "play_count": self.play_count,
            "created_at": self.created_at,
        }

    @classmethod
    def from_record(cls, record: Record) -> KahootQuiz:
        return cls(
            id=str(record["id"]),
            title=record["title"],
            questions=[KahootQuestion.from_record(item) for item in record.get("questions") or []],
            is_active=bool(record.get("is_active", False)),
            description=record.get("description"),
            play_count=int(record.get("play_count") or 0),
            created_at=_as_datetime(record.get("created_at")),
        )


@dataclass(frozen=True, slots=True)
class KahootAnswer:
    """One answered (or timed-out) question within a play."""

    question_id: str
    selected_index: int
    time_spent_seconds: int
    is_correct: bool
    points: int


@dataclass(slots=True)
class KahootPlayAttempt:
    """Ephemeral progress of one player through one quiz."""

    quiz_id: str
    player_name: str
    total_questions: int
    email: str | None = None
    current_question_index: int = 0
    answers: list[KahootAnswer] = field(default_factory=list)
    running_score: int = 0

    @property
    def correct_answers(self) -> int:
        return sum(1 for answer in self.answers if answer.is_correct)

    @property
    def time_spent_seconds(self) -> int:
        return sum(answer.time_spent_seconds for answer in self.answers)


@dataclass(frozen=True, slots=True)
class KahootParticipant:
    """Append-only record of a completed play."""

    id: str
    quiz_id: str
    name: str
    score: int
    correct_answers: int
    total_questions: int
    time_spent_seconds: int
    completed_at: datetime
    email: str | None = None

    def to_record(self) -> Record:
        return {
            "id": self.id,
            "quiz_id": self.quiz_id,
            "name": self.name,
            "email": self.email,
            "score": self.score,
            "correct_answers": self.correct_answers,
            "total_questions": self.total_questions,
            "time_spent": self.time_spent_seconds,
            "completed_at": self.completed_at,
        }

    @classmethod
    def from_record(cls, record: Record) -> KahootParticipant:
        return cls(
            id=str(record["id"]),
            quiz_id=str(record["quiz_id"]),
            name=record["name"],
            score=int(record["score"]),
            correct_answers=int(record["correct_answers"]),
            total_questions=int(record["total_questions"]),
            time_spent_seconds=int(record.get("time_spent") or 0),
            completed_at=_as_datetime(record["completed_at"]),
            email=record.get("email"),
        )
