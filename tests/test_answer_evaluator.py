# ============================================================================
# Answer Evaluation Tests
# ============================================================================
import pytest

from quiz_engine.models.curriculum import Question
from quiz_engine.services.quiz.answer_evaluator import evaluate_answer, base_points


def mcq(correct="beta", difficulty="medium"):
    return Question(
        question_type="multiple_choice",
        options=["alpha", "beta", "gamma", "delta"],
        correct_answer=correct,
        difficulty=difficulty,
    )


class TestAnswerEvaluator:
    """Tests for grading"""

    @pytest.mark.parametrize("answer", ["beta", " Beta ", "B", "b"])
    def test_mcq_accepts_text_or_letter(self, answer):
        assert evaluate_answer(mcq(), answer).is_correct

    def test_mcq_letter_key(self):
        assert evaluate_answer(mcq(correct="C"), "gamma").is_correct
        assert not evaluate_answer(mcq(correct="C"), "beta").is_correct

    def test_mcq_no_partial_matches(self):
        assert not evaluate_answer(mcq(correct="beta"), "bet").is_correct

    @pytest.mark.parametrize("answer", [None, "", "   "])
    def test_empty_answer_is_timeout(self, answer):
        result = evaluate_answer(mcq(), answer)
        assert not result.is_correct
        assert result.points_earned == 0
        assert result.user_answer is None

    def test_true_false_spellings(self):
        question = Question(question_type="true_false", correct_answer="True", difficulty="easy")
        assert evaluate_answer(question, "t").is_correct
        assert evaluate_answer(question, "yes").is_correct
        assert not evaluate_answer(question, "false").is_correct

    def test_short_answer_normalized(self):
        question = Question(question_type="short_answer", correct_answer="x = 4", difficulty="hard")
        assert evaluate_answer(question, "  X  =  4 ").is_correct

    @pytest.mark.parametrize("difficulty,points", [("easy", 5), ("medium", 10), ("hard", 15)])
    def test_points_by_difficulty(self, difficulty, points):
        assert base_points(difficulty) == points
        assert evaluate_answer(mcq(difficulty=difficulty), "beta").points_earned == points

    def test_wrong_answer_scores_zero(self):
        assert evaluate_answer(mcq(difficulty="hard"), "alpha").points_earned == 0
