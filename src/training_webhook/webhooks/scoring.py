"""
Quiz scoring for Typeform training results.
"""

from ..core.exceptions import (
    create_missing_score_error,
    create_missing_scored_answers_error,
)

from .models import FormResponse, ScoreDecision

DEFAULT_PASSING_GRADE = 0.8


def calculate_test_grade(score: float, question_count: int) -> float:
    """Fraction of choice questions answered correctly."""
    if question_count <= 0:
        raise create_missing_scored_answers_error()
    return score / question_count


def score_form_response(
    form_response: FormResponse, passing_grade: float = DEFAULT_PASSING_GRADE
) -> ScoreDecision:
    """
    Grade a form response.

    The Typeform calculated score counts correct answers, and every
    ``choice`` answer is a scored question.

    Raises:
        ValidationError: If the score is missing or no choice answers exist
    """
    if form_response.score is None:
        raise create_missing_score_error()

    test_grade = calculate_test_grade(
        form_response.score, form_response.choice_answer_count
    )
    return ScoreDecision(test_grade=test_grade, has_passed=test_grade >= passing_grade)
