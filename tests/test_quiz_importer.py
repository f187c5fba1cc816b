"""Tests for the plain-text quiz import and export format."""

import pytest

from assessment_app.core.errors import ValidationError
from assessment_app.core.models import KahootQuestion, KahootQuiz
from assessment_app.core.quiz_exporter import save_quiz_to_file, serialize_quiz
from assessment_app.core.quiz_importer import QuizImportError, load_quiz_from_file, parse_quiz_text

SAMPLE = """TITLE: Grammar Warm-up
DESCRIPTION: Two quick ones

Q: She ___ to school
every day.
A: go
B: goes
C: going
D: gone
CORRECT: B
TIMELIMIT: 20

---

Q: What is $2 + 2$?
A: 3
B: 4
C: 5
D: 22
CORRECT: b
"""


def test_parse_sample():
    imported = parse_quiz_text(SAMPLE)

    assert imported.title == "Grammar Warm-up"
    assert imported.description == "Two quick ones"
    assert len(imported.questions) == 2
    first, second = imported.questions
    assert first.question == "She ___ to school\nevery day."
    assert first.options == ("go", "goes", "going", "gone")
    assert first.correct_index == 1
    assert first.time_limit_seconds == 20
    assert second.time_limit_seconds == 15
    assert second.correct_index == 1


def test_import_errors_are_validation_errors():
    assert issubclass(QuizImportError, ValidationError)


@pytest.mark.parametrize(
    ("text", "message"),
    [
        ("Q: no title\nA: a\nB: b\nC: c\nD: d\nCORRECT: A", "TITLE"),
        ("TITLE: T\n\nQ: x\nA: a\nB: b\nC: c\nD: d", "CORRECT"),
        ("TITLE: T\n\nQ: x\nA: a\nB: b\nC: c\nCORRECT: A", "four options"),
        ("TITLE: T\n\nQ: x\nA: a\nB: b\nC: c\nD: d\nCORRECT: E", "CORRECT must be"),
        ("TITLE: T\n\nQ: x\nA: a\nB: b\nC: c\nD: d\nCORRECT: A\nTIMELIMIT: 0", "positive"),
        ("TITLE: T\n\nQ: x\nA: a\nB: b\nC: c\nD: d\nCORRECT: A\nTIMELIMIT: soon", "integer"),
        ("TITLE: T\n", "did not contain any questions"),
    ],
)
def test_malformed_quizzes_are_rejected(text, message):
    with pytest.raises(QuizImportError, match=message):
        parse_quiz_text(text)


def test_export_can_be_imported_again(tmp_path):
    quiz = KahootQuiz(
        id="quiz-1",
        title="Numbers",
        description="Warm-up",
        questions=[
            KahootQuestion("k1", "What is $2 + 2$?\nShow work.", ("3", "4", "5", "22"), 1, 30),
            KahootQuestion("k2", "Pick D", ("a", "b", "c", "d"), 3),
        ],
    )
    path = tmp_path / "exports" / "numbers.txt"

    save_quiz_to_file(path, quiz)
    imported = load_quiz_from_file(path)

    assert imported.title == "Numbers"
    assert imported.description == "Warm-up"
    assert [q.question for q in imported.questions] == [q.question for q in quiz.questions]
    assert [q.correct_index for q in imported.questions] == [1, 3]
    assert [q.time_limit_seconds for q in imported.questions] == [30, 15]
    assert "TIMELIMIT: 30" in path.read_text(encoding="utf-8")


def test_empty_quiz_cannot_be_exported():
    with pytest.raises(ValidationError):
        serialize_quiz(KahootQuiz(id="q", title="Empty", questions=[]))
