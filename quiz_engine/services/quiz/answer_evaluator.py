# ============================================================================
# Answer Evaluation
# ============================================================================
"""
Deterministic grading against the stored correct answer.

- Multiple choice accepts either the option letter (A, B, C, ...) or the
  full option text, case-insensitively
- True/false accepts the usual spellings (t, f, yes, no)
- Short answer and fill-in-the-blank compare normalised text
- An empty answer is a timeout and is always incorrect
"""
from dataclasses import dataclass
from typing import List, Optional
import re
import logging

from quiz_engine.config import get_settings
from quiz_engine.models.curriculum import Question, QuestionType, DifficultyLevel

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")

_TRUE_VALUES = {"true", "t", "yes", "y"}
_FALSE_VALUES = {"false", "f", "no", "n"}


@dataclass
class GradeResult:
    is_correct: bool
    points_earned: int
    user_answer: Optional[str]  # None when the question timed out


def base_points(difficulty: str) -> int:
    """Points for a correct answer; time taken never reduces them"""
    settings = get_settings()
    return {
        DifficultyLevel.EASY.value: settings.POINTS_EASY,
        DifficultyLevel.MEDIUM.value: settings.POINTS_MEDIUM,
        DifficultyLevel.HARD.value: settings.POINTS_HARD,
    }.get(difficulty, settings.POINTS_MEDIUM)


def normalize(text: str) -> str:
    return _WHITESPACE.sub(" ", text.strip().lower())


def _option_for_letter(letter: str, options: Optional[List[str]]) -> Optional[str]:
    if len(letter) != 1 or not letter.isalpha() or not options:
        return None
    index = ord(letter) - ord("a")
    if 0 <= index < len(options):
        return normalize(options[index])
    return None


def _evaluate_mcq(question: Question, answer: str) -> bool:
    correct = normalize(question.correct_answer)
    answer = normalize(answer)

    # Stored answer may itself be a letter
    correct_text = _option_for_letter(correct, question.options) or correct
    answer_text = _option_for_letter(answer, question.options) or answer
    return answer_text == correct_text


def _evaluate_true_false(question: Question, answer: str) -> bool:
    def as_bool(value: str) -> Optional[bool]:
        value = normalize(value)
        if value in _TRUE_VALUES:
            return True
        if value in _FALSE_VALUES:
            return False
        return None

    expected = as_bool(question.correct_answer)
    given = as_bool(answer)
    return expected is not None and given is not None and expected == given


def evaluate_answer(question: Question, answer: Optional[str]) -> GradeResult:
    """Grade one answer. Pure: no database access and no clock."""
    if answer is None or not answer.strip():
        return GradeResult(is_correct=False, points_earned=0, user_answer=None)

    question_type = question.question_type or QuestionType.MULTIPLE_CHOICE.value
    if question_type == QuestionType.MULTIPLE_CHOICE.value:
        is_correct = _evaluate_mcq(question, answer)
    elif question_type == QuestionType.TRUE_FALSE.value:
        is_correct = _evaluate_true_false(question, answer)
    else:
        is_correct = normalize(answer) == normalize(question.correct_answer)

    logger.debug(f"Evaluated answer: type={question_type}, correct={is_correct}")

    return GradeResult(
        is_correct=is_correct,
        points_earned=base_points(question.difficulty) if is_correct else 0,
        user_answer=answer,
    )
