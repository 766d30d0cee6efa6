from quiz_engine.services.quiz.adaptive_difficulty import (
    AdaptiveDifficultySystem,
    DifficultyMix,
    mix_quotas,
)
from quiz_engine.services.quiz.answer_evaluator import evaluate_answer, base_points
from quiz_engine.services.quiz.performance_tracker import (
    TopicPerformanceTracker,
    QuestionOutcome,
    classify_performance,
    calculate_confidence,
)
from quiz_engine.services.quiz.question_selector import QuestionSelector, QuestionPool
from quiz_engine.services.quiz.challenge_builder import ChallengeBuilder, allocate_evenly
from quiz_engine.services.quiz.session_manager import QuizSessionManager

__all__ = [
    "AdaptiveDifficultySystem",
    "DifficultyMix",
    "mix_quotas",
    "evaluate_answer",
    "base_points",
    "TopicPerformanceTracker",
    "QuestionOutcome",
    "classify_performance",
    "calculate_confidence",
    "QuestionSelector",
    "QuestionPool",
    "ChallengeBuilder",
    "allocate_evenly",
    "QuizSessionManager",
]
