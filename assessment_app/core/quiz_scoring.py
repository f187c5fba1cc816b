"""Time-weighted scoring for live-quiz answers."""

from __future__ import annotations

import math

from assessment_app.constants.quiz_constants import BASE_POINTS, SPEED_BONUS_POINTS
from assessment_app.core.models import KahootQuestion


def score_answer(question: KahootQuestion, selected_index: int, time_left: float) -> int:
    """Return the points earned for one answer.

    Wrong answers, including the timeout sentinel, earn nothing. A correct
    answer earns the base points plus a speed bonus proportional to the time
    still on the clock.
    """
    if selected_index != question.correct_index:
        return 0
    limit = question.time_limit_seconds
    remaining = min(max(time_left, 0), limit)
    return BASE_POINTS + math.floor(remaining / limit * SPEED_BONUS_POINTS)
