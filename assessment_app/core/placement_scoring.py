"""Weighted scoring and CEFR classification for the placement test."""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from assessment_app.core.errors import ValidationError
from assessment_app.core.models import CEFRLevel, PlacementQuestion

# Closed lower bounds, evaluated from the top; first match wins.
CEFR_THRESHOLDS: tuple[tuple[int, CEFRLevel], ...] = (
    (90, CEFRLevel.C2),
    (80, CEFRLevel.C1),
    (65, CEFRLevel.B2),
    (50, CEFRLevel.B1),
    (30, CEFRLevel.A2),
)


@dataclass(frozen=True, slots=True)
class ScoreBreakdown:
    raw_points: float
    max_points: float
    percent_score: int


def compute_score(
    questions: Sequence[PlacementQuestion],
    answers: Mapping[str, int],
) -> ScoreBreakdown:
    """Sum the weights of correctly answered questions.

    Unanswered questions count as incorrect but still contribute to the
    maximum. The percentage is rounded half up.
    """
    if not questions:
        raise ValidationError("Cannot score an empty question set.")

    raw_points = 0.0
    max_points = 0.0
    for question in questions:
        if answers.get(question.id) == question.correct_answer_index:
            raw_points += question.weight
        max_points += question.weight

    if max_points <= 0:
        raise ValidationError("Question weights must add up to a positive total.")

    percent_score = math.floor(100 * raw_points / max_points + 0.5)
    return ScoreBreakdown(raw_points=raw_points, max_points=max_points, percent_score=percent_score)


def classify_cefr(percent_score: int) -> CEFRLevel:
    for threshold, level in CEFR_THRESHOLDS:
        if percent_score >= threshold:
            return level
    return CEFRLevel.A1
