"""Utilities for importing live quizzes from a human-friendly text format.

File format: an optional header followed by question blocks separated by
blank lines or '---'.

    TITLE: Quiz title (required)
    DESCRIPTION: One line shown on the quiz intro screen (optional)

    Q: Question text. Additional lines until the next marker are treated
       as part of the question.
    A: First option text
    B: Second option text
    C: Third option text
    D: Fourth option text
    CORRECT: A|B|C|D
    TIMELIMIT: seconds (optional, defaults to 15)

Example:

    TITLE: Numbers
    Q: What is $2 + 2$?
    A: 3
    B: 4
    C: 5
    D: 22
    CORRECT: B
    TIMELIMIT: 30
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path

from assessment_app.constants.quiz_constants import DEFAULT_TIME_LIMIT_SECONDS
from assessment_app.core.errors import ValidationError
from assessment_app.core.models import KahootQuestion


class QuizImportError(ValidationError):
    """Raised when a quiz definition cannot be parsed."""


@dataclass(slots=True)
class ImportedQuiz:
    """Container for imported quiz metadata and questions."""

    title: str
    description: str | None
    questions: list[KahootQuestion]


_OPTION_ORDER = ["A", "B", "C", "D"]
_HEADER_KEYS = ("TITLE:", "DESCRIPTION:")
_MARKER = re.compile(r"^(Q|A|B|C|D|CORRECT|TIMELIMIT)\s*:(.*)$", re.IGNORECASE)
_MULTILINE_SECTIONS = ("Q", *_OPTION_ORDER)


def load_quiz_from_file(file_path: Path) -> ImportedQuiz:
    return parse_quiz_text(file_path.read_text(encoding="utf-8"))


def parse_quiz_text(text: str) -> ImportedQuiz:
    lines = text.splitlines()
    header, body_start = _parse_header(lines)
    title = header.get("TITLE:", "")
    if not title:
        raise QuizImportError("Quiz must start with a TITLE: line.")

    questions = [_parse_block(block) for block in _split_blocks(lines[body_start:])]
    if not questions:
        raise QuizImportError("Quiz text did not contain any questions.")
    return ImportedQuiz(title=title, description=header.get("DESCRIPTION:") or None, questions=questions)


def _parse_header(lines: list[str]) -> tuple[dict[str, str], int]:
    header: dict[str, str] = {}
    for index, raw_line in enumerate(lines):
        line = raw_line.strip()
        if not line or line == "---":
            continue
        upper = line.upper()
        key = next((candidate for candidate in _HEADER_KEYS if upper.startswith(candidate)), None)
        if key is None:
            return header, index
        header[key] = line[len(key):].strip()
    return header, len(lines)


def _split_blocks(lines: list[str]) -> list[list[str]]:
    blocks: list[list[str]] = [[]]
    for raw_line in lines:
        stripped = raw_line.strip()
        if not stripped or stripped == "---":
            if blocks[-1]:
                blocks.append([])
            continue
        blocks[-1].append(stripped)
    return [block for block in blocks if block]


def _parse_block(lines: list[str]) -> KahootQuestion:
    sections: dict[str, list[str]] = {}
    current: str | None = None

    for line in lines:
        marker = _MARKER.match(line)
        if marker is not None:
            current = marker.group(1).upper()
            sections[current] = [marker.group(2).strip()]
        elif current in _MULTILINE_SECTIONS:
            sections[current].append(line)
        else:
            raise QuizImportError(f"Encountered text outside of a known section: '{line}'.")

    question_text = "\n".join(sections.get("Q", [])).strip()
    if not question_text:
        raise QuizImportError("Question text missing (Q: ...)")

    if any(letter not in sections for letter in _OPTION_ORDER):
        raise QuizImportError("Each question must define exactly four options (A-D).")
    options = tuple("\n".join(sections[letter]).strip() for letter in _OPTION_ORDER)
    if not all(options):
        raise QuizImportError("Option text cannot be empty.")

    if "CORRECT" not in sections:
        raise QuizImportError("Each question needs a CORRECT: line.")
    correct_letter = sections["CORRECT"][0].upper()
    if correct_letter not in _OPTION_ORDER:
        raise QuizImportError("CORRECT must be one of A, B, C, or D.")

    time_limit_seconds = DEFAULT_TIME_LIMIT_SECONDS
    if "TIMELIMIT" in sections:
        time_limit_seconds = _parse_time_limit(sections["TIMELIMIT"][0])

    return KahootQuestion(
        id="",  # assigned by QuizCatalog when the quiz is stored
        question=question_text,
        options=options,
        correct_index=_OPTION_ORDER.index(correct_letter),
        time_limit_seconds=time_limit_seconds,
    )


def _parse_time_limit(raw_value: str) -> int:
    if not raw_value:
        raise QuizImportError("TIMELIMIT must include an integer value.")
    try:
        seconds = int(raw_value)
    except ValueError as exc:
        raise QuizImportError("TIMELIMIT must be an integer number of seconds.") from exc
    if seconds <= 0:
        raise QuizImportError("TIMELIMIT must be a positive integer.")
    return seconds
