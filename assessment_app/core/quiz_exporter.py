"""Utilities for exporting live quizzes to the plain-text import format."""

from __future__ import annotations

from pathlib import Path

from assessment_app.constants.quiz_constants import DEFAULT_TIME_LIMIT_SECONDS
from assessment_app.core.errors import ValidationError
from assessment_app.core.models import KahootQuestion, KahootQuiz

_OPTION_LETTERS = ("A", "B", "C", "D")


def save_quiz_to_file(file_path: Path, quiz: KahootQuiz) -> None:
    """Persist the quiz to disk in the text import format."""
    file_path = file_path.resolve()
    file_path.parent.mkdir(parents=True, exist_ok=True)
    file_path.write_text(serialize_quiz(quiz), encoding="utf-8")


def serialize_quiz(quiz: KahootQuiz) -> str:
    if not quiz.questions:
        raise ValidationError("Cannot export an empty quiz.")

    header = [f"TITLE: {quiz.title}"]
    if quiz.description:
        header.append(f"DESCRIPTION: {quiz.description}")
    blocks = [_serialize_question(question) for question in quiz.questions]
    return "\n".join(header) + "\n\n" + "\n\n---\n\n".join(blocks) + "\n"


def _serialize_question(question: KahootQuestion) -> str:
    lines: list[str] = []

    question_lines = question.question.splitlines() or [question.question]
    lines.append(f"Q: {question_lines[0]}")
    lines.extend(question_lines[1:])

    for idx, letter in enumerate(_OPTION_LETTERS):
        option_text = question.options[idx] if idx < len(question.options) else ""
        option_lines = option_text.splitlines() or [option_text]
        lines.append(f"{letter}: {option_lines[0]}")
        lines.extend(option_lines[1:])

    lines.append(f"CORRECT: {_OPTION_LETTERS[question.correct_index]}")
    if question.time_limit_seconds != DEFAULT_TIME_LIMIT_SECONDS:
        lines.append(f"TIMELIMIT: {question.time_limit_seconds}")

    return "\n".join(lines)
