"""
Unit tests for the live-quiz catalog.

Tests cover:
- Quiz validation (title, four options, correct index, time limit)
- Exactly one active quiz after activation
- Listing order, import and play counts
"""

from datetime import timedelta

import pytest

from assessment_app.core.errors import NotFoundError, ValidationError
from assessment_app.core.models import KahootQuestion
from assessment_app.core.services.quiz_catalog import QuizCatalog
from assessment_app.persistence.gateway import EntityType, Filter


def _question(**overrides):
    values = dict(id="", question="2 + 2?", options=("3", "4", "5", "22"), correct_index=1, time_limit_seconds=15)
    values.update(overrides)
    return KahootQuestion(**values)


@pytest.fixture
def catalog(gateway, clock):
    return QuizCatalog(gateway, clock)


@pytest.mark.asyncio
async def test_create_quiz_assigns_ids_and_trims(catalog):
    quiz = await catalog.create_quiz("  Numbers ", [_question(question="  2 + 2? ")], description="  ")

    assert quiz.title == "Numbers"
    assert quiz.description is None
    assert quiz.questions[0].id
    assert quiz.questions[0].question == "2 + 2?"
    assert quiz.is_active is False
    assert quiz.play_count == 0

    stored = await catalog.get_quiz(quiz.id)
    assert stored.questions == quiz.questions


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "question",
    [
        _question(options=("a", "b", "c")),
        _question(options=("a", "b", "c", " ")),
        _question(correct_index=4),
        _question(time_limit_seconds=0),
        _question(question="   "),
    ],
)
async def test_invalid_questions_are_rejected(catalog, gateway, question):
    with pytest.raises(ValidationError):
        await catalog.create_quiz("Numbers", [question])
    assert await gateway.query(EntityType.KAHOOT_QUIZZES) == []


@pytest.mark.asyncio
async def test_quiz_needs_title_and_questions(catalog):
    with pytest.raises(ValidationError):
        await catalog.create_quiz("  ", [_question()])
    with pytest.raises(ValidationError):
        await catalog.create_quiz("Numbers", [])


@pytest.mark.asyncio
async def test_set_active_leaves_exactly_one_active_quiz(catalog, gateway, clock):
    quizzes = []
    for title in ("One", "Two", "Three"):
        quizzes.append(await catalog.create_quiz(title, [_question()], is_active=True))
        clock.advance(minutes=1)

    await catalog.set_active(quizzes[1].id)

    active = await gateway.query(EntityType.KAHOOT_QUIZZES, filters=(Filter("is_active", "eq", True),))
    assert [record["id"] for record in active] == [quizzes[1].id]
    assert (await catalog.get_active_quiz()).id == quizzes[1].id


@pytest.mark.asyncio
async def test_set_active_on_unknown_quiz_changes_nothing(catalog):
    quiz = await catalog.create_quiz("One", [_question()], is_active=True)

    with pytest.raises(NotFoundError):
        await catalog.set_active("missing")

    assert (await catalog.get_active_quiz()).id == quiz.id


@pytest.mark.asyncio
async def test_get_active_quiz_warns_about_duplicates(catalog, gateway, caplog):
    first = await catalog.create_quiz("One", [_question()])
    second = await catalog.create_quiz("Two", [_question()])
    await gateway.update(EntityType.KAHOOT_QUIZZES, first.id, {"is_active": True})
    await gateway.update(EntityType.KAHOOT_QUIZZES, second.id, {"is_active": True})

    active = await catalog.get_active_quiz()

    assert active is not None
    assert "2 quizzes are marked active" in caplog.text


@pytest.mark.asyncio
async def test_no_active_quiz(catalog):
    await catalog.create_quiz("One", [_question()])
    assert await catalog.get_active_quiz() is None


@pytest.mark.asyncio
async def test_list_quizzes_newest_first(catalog, clock):
    older = await catalog.create_quiz("Older", [_question()])
    clock.now += timedelta(hours=1)
    newer = await catalog.create_quiz("Newer", [_question()])

    assert [quiz.id for quiz in await catalog.list_quizzes()] == [newer.id, older.id]


@pytest.mark.asyncio
async def test_update_and_delete(catalog):
    quiz = await catalog.create_quiz("Numbers", [_question()])

    updated = await catalog.update_quiz(quiz.id, "Numbers II", [_question(), _question(correct_index=2)])
    assert updated.title == "Numbers II"
    assert len(updated.questions) == 2

    await catalog.delete_quiz(quiz.id)
    with pytest.raises(NotFoundError):
        await catalog.get_quiz(quiz.id)


@pytest.mark.asyncio
async def test_import_quiz_from_text(catalog):
    text = "TITLE: Imported\n\nQ: Pick B\nA: a\nB: b\nC: c\nD: d\nCORRECT: B\n"

    quiz = await catalog.import_quiz(text, is_active=True)

    assert quiz.title == "Imported"
    assert quiz.is_active
    assert quiz.questions[0].correct_index == 1


@pytest.mark.asyncio
async def test_increment_play_count(catalog):
    quiz = await catalog.create_quiz("Numbers", [_question()])

    assert await catalog.increment_play_count(quiz.id) == 1
    assert await catalog.increment_play_count(quiz.id) == 2
    assert (await catalog.get_quiz(quiz.id)).play_count == 2
