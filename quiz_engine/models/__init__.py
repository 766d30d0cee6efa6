from quiz_engine.models.curriculum import Module, Question, DifficultyLevel, QuestionType
from quiz_engine.models.quiz import QuizSession, QuestionAnswerRecord, SessionStatus, FocusArea
from quiz_engine.models.performance import TopicPerformance, TopicAttemptSnapshot, PerformanceLevel
from quiz_engine.models.challenge import Challenge, QuestionBankShortfall, ChallengeType, ChallengeStatus

__all__ = [
    "Module", "Question", "DifficultyLevel", "QuestionType",
    "QuizSession", "QuestionAnswerRecord", "SessionStatus", "FocusArea",
    "TopicPerformance", "TopicAttemptSnapshot", "PerformanceLevel",
    "Challenge", "QuestionBankShortfall", "ChallengeType", "ChallengeStatus",
]
