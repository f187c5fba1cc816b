"""FastAPI server exposing the placement test, oral booking and live quiz."""

from __future__ import annotations

import logging
from datetime import date

from fastapi import Depends, FastAPI, Request, Response
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel
import uvicorn

from assessment_app.constants.about import APP_NAME, APP_VERSION
from assessment_app.constants.network_constants import DEFAULT_HOST, DEFAULT_PORT
from assessment_app.constants.quiz_constants import DEFAULT_TIME_LIMIT_SECONDS
from assessment_app.core.assessment_manager import AssessmentManager
from assessment_app.core.errors import (
    AssessmentError,
    ConflictError,
    GatewayPermissionError,
    InvalidStateError,
    InvalidTransitionError,
    NotFoundError,
    PersistenceError,
    TransientError,
    ValidationError,
)
from assessment_app.core.models import (
    KahootParticipant,
    KahootQuestion,
    KahootQuiz,
    OralTestSlot,
    OralTestStatus,
    ParticipantInfo,
    PlacementQuestion,
    PlacementSubmission,
)
from assessment_app.core.quiz_exporter import serialize_quiz
from assessment_app.core.services.placement_session import PlacementSessionController
from assessment_app.core.services.quiz_timer import QuizPhase, QuizTimerStateMachine

logger = logging.getLogger(__name__)


class ParticipantPayload(BaseModel):
    """Lead form submitted before the placement test."""

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


class PlacementAnswerPayload(BaseModel):
    question_id: str
    option_index: int


class BookingPayload(BaseModel):
    submission_id: str


class PlayPayload(BaseModel):
    player_name: str
    email: str | None = None


class QuizAnswerPayload(BaseModel):
    selected_index: int


class PlacementQuestionPayload(BaseModel):
    text: str
    options: list[str]
    correct_answer_index: int
    weight: float = 1.0
    is_active: bool = True


class ActivePayload(BaseModel):
    is_active: bool


class SlotBatchPayload(BaseModel):
    slot_date: date
    times: list[str]


class OralResultPayload(BaseModel):
    score: str


class KahootQuestionPayload(BaseModel):
    id: str | None = None
    question: str
    options: list[str]
    correct_index: int
    time_limit_seconds: int = DEFAULT_TIME_LIMIT_SECONDS


class QuizPayload(BaseModel):
    title: str
    description: str | None = None
    questions: list[KahootQuestionPayload]
    is_active: bool = False


class QuizImportPayload(BaseModel):
    text: str
    is_active: bool = False


def status_for_error(exc: AssessmentError) -> int:
    if isinstance(exc, ValidationError):
        return 422
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, (InvalidStateError, InvalidTransitionError, ConflictError)):
        return 409
    if isinstance(exc, PersistenceError):
        return 503 if exc.retryable else 403
    if isinstance(exc, TransientError):
        return 503
    if isinstance(exc, GatewayPermissionError):
        return 403
    return 500


# --- Response shapes ---


def _placement_state(token: str, controller: PlacementSessionController) -> dict[str, object]:
    question = controller.current_question
    return {
        "token": token,
        "session_id": controller.session_id,
        "state": controller.state.value,
        "current_index": controller.current_index,
        "question_count": len(controller.questions),
        "answered_count": len(controller.answers),
        "is_last_question": controller.is_last_question(),
        "question": {
            "id": question.id,
            "text": question.text,
            "options": list(question.options),
            "selected_index": controller.answers.get(question.id),
        },
    }


def _submission_payload(submission: PlacementSubmission) -> dict[str, object]:
    record = submission.to_record()
    record["timestamp"] = submission.timestamp.isoformat()
    record["cefr_label"] = submission.cefr_level.label
    return record


def _slot_payload(slot: OralTestSlot) -> dict[str, object]:
    return {
        "id": slot.id,
        "date": slot.date.isoformat(),
        "time": slot.time,
        "is_booked": slot.is_booked,
        "booked_by": slot.booked_by,
    }


def _placement_question_payload(question: PlacementQuestion) -> dict[str, object]:
    record = question.to_record()
    record["created_at"] = question.created_at.isoformat() if question.created_at else None
    return record


def _quiz_payload(quiz: KahootQuiz) -> dict[str, object]:
    record = quiz.to_record()
    record["created_at"] = quiz.created_at.isoformat() if quiz.created_at else None
    return record


def _participant_payload(participant: KahootParticipant) -> dict[str, object]:
    record = participant.to_record()
    record["completed_at"] = participant.completed_at.isoformat()
    return record


def _play_payload(play_id: str, machine: QuizTimerStateMachine) -> dict[str, object]:
    attempt = machine.attempt
    payload: dict[str, object] = {
        "play_id": play_id,
        "quiz_id": machine.quiz.id,
        "quiz_title": machine.quiz.title,
        "phase": machine.phase.value,
        "question_index": machine.question_index,
        "total_questions": len(machine.quiz.questions),
        "score": attempt.running_score if attempt else 0,
    }
    if machine.phase is QuizPhase.PLAYING:
        question = machine.current_question
        payload["question"] = {
            "id": question.id,
            "question": question.question,
            "options": list(question.options),
            "time_limit_seconds": question.time_limit_seconds,
        }
        payload["time_left"] = machine.time_left
        payload["answered"] = machine.answered
        # Correct option is only revealed once this question is settled
        if machine.answered and machine.last_answer is not None:
            payload["correct_index"] = question.correct_index
            payload["selected_index"] = machine.last_answer.selected_index
            payload["points"] = machine.last_answer.points
    elif machine.phase is QuizPhase.RESULT and attempt is not None:
        payload["result"] = {
            "score": attempt.running_score,
            "correct_answers": attempt.correct_answers,
            "total_questions": attempt.total_questions,
            "time_spent": attempt.time_spent_seconds,
        }
    return payload


def _to_kahoot_questions(payloads: list[KahootQuestionPayload]) -> list[KahootQuestion]:
    return [
        KahootQuestion(
            id=item.id or "",
            question=item.question,
            options=tuple(item.options),
            correct_index=item.correct_index,
            time_limit_seconds=item.time_limit_seconds,
        )
        for item in payloads
    ]


def _get_assessment_manager_dependency(assessment_manager: AssessmentManager):
    def dependency() -> AssessmentManager:
        return assessment_manager

    return dependency


def create_api_app(assessment_manager: AssessmentManager) -> FastAPI:
    """Create a FastAPI application wired to the provided assessment manager.

    Endpoints are ``async`` so live-quiz timers are scheduled on the server's
    event loop.
    """
    app = FastAPI(title=f"{APP_NAME} API", version=APP_VERSION)
    manager_dep = _get_assessment_manager_dependency(assessment_manager)

    @app.exception_handler(AssessmentError)
    async def handle_assessment_error(request: Request, exc: AssessmentError) -> JSONResponse:
        status_code = status_for_error(exc)
        if status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})

    # --- Placement test ---

    @app.post("/placement/sessions", status_code=201)
    async def start_placement(
        payload: ParticipantPayload,
        manager: AssessmentManager = Depends(manager_dep),
    ) -> dict[str, object]:
        token, controller = await manager.begin_placement(ParticipantInfo(**payload.model_dump()))
        return _placement_state(token, controller)

    @app.get("/placement/sessions/{token}")
    async def get_placement(token: str, manager: AssessmentManager = Depends(manager_dep)) -> dict[str, object]:
        return _placement_state(token, manager.get_placement(token))

    @app.put("/placement/sessions/{token}/answer")
    async def answer_placement(
        token: str,
        payload: PlacementAnswerPayload,
        manager: AssessmentManager = Depends(manager_dep),
    ) -> dict[str, object]:
        manager.record_placement_answer(token, payload.question_id, payload.option_index)
        return _placement_state(token, manager.get_placement(token))

    @app.post("/placement/sessions/{token}/advance")
    async def advance_placement(token: str, manager: AssessmentManager = Depends(manager_dep)) -> dict[str, object]:
        manager.advance_placement(token)
        return _placement_state(token, manager.get_placement(token))

    @app.post("/placement/sessions/{token}/previous")
    async def previous_placement(token: str, manager: AssessmentManager = Depends(manager_dep)) -> dict[str, object]:
        manager.previous_placement(token)
        return _placement_state(token, manager.get_placement(token))

    @app.post("/placement/sessions/{token}/finalize")
    async def finalize_placement(token: str, manager: AssessmentManager = Depends(manager_dep)) -> dict[str, object]:
        submission = await manager.finalize_placement(token)
        return _submission_payload(submission)

    @app.delete("/placement/sessions/{token}", status_code=204)
    async def discard_placement(token: str, manager: AssessmentManager = Depends(manager_dep)) -> Response:
        manager.discard_placement(token)
        return Response(status_code=204)

    @app.get("/oral-slots")
    async def list_available_slots(manager: AssessmentManager = Depends(manager_dep)) -> list[dict[str, object]]:
        return [_slot_payload(slot) for slot in await manager.available_oral_slots()]

    @app.post("/oral-slots/{slot_id}/book")
    async def book_slot(
        slot_id: str,
        payload: BookingPayload,
        manager: AssessmentManager = Depends(manager_dep),
    ) -> dict[str, object]:
        booking = await manager.book_oral_slot(payload.submission_id, slot_id)
        return {
            "slot": _slot_payload(booking.slot),
            "submission": _submission_payload(booking.submission),
        }

    # --- Live quiz ---

    @app.get("/quiz/active")
    async def get_active_quiz(manager: AssessmentManager = Depends(manager_dep)) -> dict[str, object]:
        quiz = await manager.get_active_quiz()
        if quiz is None:
            raise NotFoundError("No quiz is active right now.")
        return {
            "id": quiz.id,
            "title": quiz.title,
            "description": quiz.description,
            "question_count": len(quiz.questions),
        }

    @app.post("/quiz/plays", status_code=201)
    async def start_play(payload: PlayPayload, manager: AssessmentManager = Depends(manager_dep)) -> dict[str, object]:
        play_id, machine = await manager.start_play(payload.player_name, payload.email)
        return _play_payload(play_id, machine)

    @app.get("/quiz/plays/{play_id}")
    async def get_play(play_id: str, manager: AssessmentManager = Depends(manager_dep)) -> dict[str, object]:
        return _play_payload(play_id, manager.get_play(play_id))

    @app.post("/quiz/plays/{play_id}/answer")
    async def answer_play(
        play_id: str,
        payload: QuizAnswerPayload,
        manager: AssessmentManager = Depends(manager_dep),
    ) -> dict[str, object]:
        points = manager.answer_play(play_id, payload.selected_index)
        state = _play_payload(play_id, manager.get_play(play_id))
        state["accepted"] = points is not None
        return state

    @app.post("/quiz/plays/{play_id}/abandon", status_code=204)
    async def abandon_play(play_id: str, manager: AssessmentManager = Depends(manager_dep)) -> Response:
        manager.abandon_play(play_id)
        return Response(status_code=204)

    @app.post("/quiz/plays/{play_id}/complete", status_code=201)
    async def complete_play(play_id: str, manager: AssessmentManager = Depends(manager_dep)) -> dict[str, object]:
        return _participant_payload(await manager.complete_play(play_id))

    @app.get("/leaderboard/daily")
    async def daily_leaderboard(manager: AssessmentManager = Depends(manager_dep)) -> list[dict[str, object]]:
        return [_participant_payload(entry) for entry in await manager.daily_leaderboard()]

    @app.get("/leaderboard/all-time")
    async def all_time_leaderboard(manager: AssessmentManager = Depends(manager_dep)) -> list[dict[str, object]]:
        return [_participant_payload(entry) for entry in await manager.all_time_leaderboard()]

    # --- Admin: placement questions ---

    @app.get("/admin/placement-questions")
    async def list_placement_questions(manager: AssessmentManager = Depends(manager_dep)) -> list[dict[str, object]]:
        return [_placement_question_payload(q) for q in await manager.list_placement_questions()]

    @app.post("/admin/placement-questions", status_code=201)
    async def add_placement_question(
        payload: PlacementQuestionPayload,
        manager: AssessmentManager = Depends(manager_dep),
    ) -> dict[str, object]:
        question = await manager.add_placement_question(
            payload.text,
            payload.options,
            payload.correct_answer_index,
            payload.weight,
            payload.is_active,
        )
        return _placement_question_payload(question)

    @app.put("/admin/placement-questions/{question_id}")
    async def update_placement_question(
        question_id: str,
        payload: PlacementQuestionPayload,
        manager: AssessmentManager = Depends(manager_dep),
    ) -> dict[str, object]:
        question = await manager.update_placement_question(
            question_id,
            payload.text,
            payload.options,
            payload.correct_answer_index,
            payload.weight,
        )
        return _placement_question_payload(question)

    @app.post("/admin/placement-questions/{question_id}/active")
    async def set_placement_question_active(
        question_id: str,
        payload: ActivePayload,
        manager: AssessmentManager = Depends(manager_dep),
    ) -> dict[str, object]:
        question = await manager.set_placement_question_active(question_id, payload.is_active)
        return _placement_question_payload(question)

    @app.delete("/admin/placement-questions/{question_id}", status_code=204)
    async def delete_placement_question(
        question_id: str,
        manager: AssessmentManager = Depends(manager_dep),
    ) -> Response:
        await manager.delete_placement_question(question_id)
        return Response(status_code=204)

    # --- Admin: oral tests ---

    @app.get("/admin/oral-slots")
    async def list_all_slots(manager: AssessmentManager = Depends(manager_dep)) -> list[dict[str, object]]:
        return [_slot_payload(slot) for slot in await manager.all_oral_slots()]

    @app.post("/admin/oral-slots", status_code=201)
    async def create_slots(
        payload: SlotBatchPayload,
        manager: AssessmentManager = Depends(manager_dep),
    ) -> list[dict[str, object]]:
        return [_slot_payload(slot) for slot in await manager.create_oral_slots(payload.slot_date, payload.times)]

    @app.post("/admin/oral-slots/{slot_id}/release")
    async def release_slot(slot_id: str, manager: AssessmentManager = Depends(manager_dep)) -> dict[str, object]:
        return _slot_payload(await manager.release_oral_slot(slot_id))

    @app.delete("/admin/oral-slots/{slot_id}", status_code=204)
    async def delete_slot(slot_id: str, manager: AssessmentManager = Depends(manager_dep)) -> Response:
        await manager.delete_oral_slot(slot_id)
        return Response(status_code=204)

    @app.get("/admin/submissions")
    async def list_submissions(
        status: OralTestStatus | None = None,
        manager: AssessmentManager = Depends(manager_dep),
    ) -> list[dict[str, object]]:
        return [_submission_payload(item) for item in await manager.list_submissions(status)]

    @app.get("/admin/submissions/pending-oral")
    async def pending_oral_tests(manager: AssessmentManager = Depends(manager_dep)) -> list[dict[str, object]]:
        return [_submission_payload(item) for item in await manager.submissions_needing_oral_test()]

    @app.get("/admin/submissions/{submission_id}")
    async def get_submission(submission_id: str, manager: AssessmentManager = Depends(manager_dep)) -> dict[str, object]:
        return _submission_payload(await manager.get_submission(submission_id))

    @app.post("/admin/submissions/{submission_id}/oral-result")
    async def complete_oral_test(
        submission_id: str,
        payload: OralResultPayload,
        manager: AssessmentManager = Depends(manager_dep),
    ) -> dict[str, object]:
        return _submission_payload(await manager.complete_oral_test(submission_id, payload.score))

    # --- Admin: live quizzes ---

    @app.get("/admin/quizzes")
    async def list_quizzes(manager: AssessmentManager = Depends(manager_dep)) -> list[dict[str, object]]:
        return [_quiz_payload(quiz) for quiz in await manager.list_quizzes()]

    @app.post("/admin/quizzes", status_code=201)
    async def create_quiz(payload: QuizPayload, manager: AssessmentManager = Depends(manager_dep)) -> dict[str, object]:
        quiz = await manager.create_quiz(
            payload.title,
            _to_kahoot_questions(payload.questions),
            payload.description,
            payload.is_active,
        )
        return _quiz_payload(quiz)

    @app.post("/admin/quizzes/import", status_code=201)
    async def import_quiz(
        payload: QuizImportPayload,
        manager: AssessmentManager = Depends(manager_dep),
    ) -> dict[str, object]:
        return _quiz_payload(await manager.import_quiz(payload.text, payload.is_active))

    @app.get("/admin/quizzes/{quiz_id}")
    async def get_quiz(quiz_id: str, manager: AssessmentManager = Depends(manager_dep)) -> dict[str, object]:
        return _quiz_payload(await manager.get_quiz(quiz_id))

    @app.put("/admin/quizzes/{quiz_id}")
    async def update_quiz(
        quiz_id: str,
        payload: QuizPayload,
        manager: AssessmentManager = Depends(manager_dep),
    ) -> dict[str, object]:
        quiz = await manager.update_quiz(
            quiz_id,
            payload.title,
            _to_kahoot_questions(payload.questions),
            payload.description,
        )
        return _quiz_payload(quiz)

    @app.delete("/admin/quizzes/{quiz_id}", status_code=204)
    async def delete_quiz(quiz_id: str, manager: AssessmentManager = Depends(manager_dep)) -> Response:
        await manager.delete_quiz(quiz_id)
        return Response(status_code=204)

    @app.post("/admin/quizzes/{quiz_id}/activate")
    async def activate_quiz(quiz_id: str, manager: AssessmentManager = Depends(manager_dep)) -> dict[str, object]:
        return _quiz_payload(await manager.set_active_quiz(quiz_id))

    @app.post("/admin/quizzes/{quiz_id}/deactivate")
    async def deactivate_quiz(quiz_id: str, manager: AssessmentManager = Depends(manager_dep)) -> dict[str, object]:
        return _quiz_payload(await manager.deactivate_quiz(quiz_id))

    @app.get("/admin/quizzes/{quiz_id}/export", response_class=PlainTextResponse)
    async def export_quiz(quiz_id: str, manager: AssessmentManager = Depends(manager_dep)) -> str:
        return serialize_quiz(await manager.get_quiz(quiz_id))

    @app.get("/admin/quizzes/{quiz_id}/participants")
    async def quiz_participants(quiz_id: str, manager: AssessmentManager = Depends(manager_dep)) -> list[dict[str, object]]:
        return [_participant_payload(entry) for entry in await manager.quiz_participants(quiz_id)]

    return app


def run_api_server(
    assessment_manager: AssessmentManager,
    host: str = DEFAULT_HOST,
    port: int = DEFAULT_PORT,
    log_level: str = "info",
) -> None:
    """Serve the API with uvicorn until interrupted."""
    app = create_api_app(assessment_manager)
    config = uvicorn.Config(app=app, host=host, port=port, log_level=log_level.lower())
    server = uvicorn.Server(config)
    server.run()
