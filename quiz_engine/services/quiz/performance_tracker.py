# ============================================================================
# Topic Performance Tracker
# ============================================================================
"""
Rolling per-topic performance model.

Each completed quiz contributes one snapshot per (subject, topic) it touched.
Only the newest PERFORMANCE_WINDOW snapshots are kept; the TopicPerformance
row is recomputed from exactly those snapshots, so older quizzes drop out of
the statistics instead of being averaged in forever.
"""
from dataclasses import dataclass
from statistics import pstdev
from typing import Dict, Iterable, List, Optional, Tuple
from uuid import UUID
import logging

from sqlalchemy import select, delete, func
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from quiz_engine.config import get_settings
from quiz_engine.models.curriculum import DifficultyLevel
from quiz_engine.models.performance import (
    TopicPerformance,
    TopicAttemptSnapshot,
    PerformanceLevel,
)
from quiz_engine.models.quiz import QuestionAnswerRecord, QuizSession

logger = logging.getLogger(__name__)

STRONG_ACCURACY = 70.0  # strictly above
WEAK_ACCURACY = 60.0    # strictly below


@dataclass
class QuestionOutcome:
    difficulty: str
    is_correct: bool
    time_spent: int = 0


def classify_performance(accuracy_percent: float, total_attempts: int) -> PerformanceLevel:
    """weak < 60 <= neutral <= 70 < strong"""
    if accuracy_percent > STRONG_ACCURACY and total_attempts >= 1:
        return PerformanceLevel.STRONG
    if accuracy_percent < WEAK_ACCURACY:
        return PerformanceLevel.WEAK
    return PerformanceLevel.NEUTRAL


def calculate_confidence(attempt_accuracies: List[float], window: int) -> float:
    """
    Confidence (0-100) in a topic classification.

    Grows with the number of attempts in the window and shrinks with the
    spread of per-attempt accuracy. The population standard deviation of
    values in [0, 100] never exceeds 50.
    """
    if not attempt_accuracies:
        return 0.0
    coverage = min(len(attempt_accuracies), window) / window
    spread = pstdev(attempt_accuracies) if len(attempt_accuracies) > 1 else 0.0
    consistency = max(0.0, 1.0 - spread / 50.0)
    return round(min(100.0, max(0.0, 100.0 * coverage * consistency)), 2)


class TopicPerformanceTracker:
    """Owns TopicPerformance rows; mutated only when a session completes"""

    def __init__(self, db: AsyncSession, window: Optional[int] = None):
        self.db = db
        self.window = window or get_settings().PERFORMANCE_WINDOW

    # ==================== Updates ====================

    async def record_attempt(
        self,
        student_id: UUID,
        subject: str,
        topic: str,
        outcomes: List[QuestionOutcome],
        session_id: Optional[UUID] = None
    ) -> TopicPerformance:
        """
        Fold one quiz attempt on a topic into the student's rolling statistics.

        Args:
            student_id: Student the attempt belongs to
            subject: Subject of the topic
            topic: Topic name
            outcomes: (difficulty, correct, time spent) for each question of
                the attempt that belongs to this topic
            session_id: Originating quiz session; a session is recorded at
                most once per topic

        Returns:
            The updated TopicPerformance row
        """
        # Held until commit; completions of other sessions on this topic wait here
        performance = await self._lock_performance(student_id, subject, topic)

        if session_id is not None:
            already = await self.db.execute(
                select(TopicAttemptSnapshot.id)
                .where(TopicAttemptSnapshot.session_id == session_id)
                .where(TopicAttemptSnapshot.subject == subject)
                .where(TopicAttemptSnapshot.topic == topic)
            )
            if already.first() is not None:
                logger.info(f"Session {session_id} already recorded for {subject}/{topic}")
                return performance

        last_number = await self.db.scalar(
            select(func.max(TopicAttemptSnapshot.attempt_number))
            .where(TopicAttemptSnapshot.student_id == student_id)
            .where(TopicAttemptSnapshot.subject == subject)
            .where(TopicAttemptSnapshot.topic == topic)
        )
        attempt_number = (last_number or 0) + 1

        snapshot = TopicAttemptSnapshot(
            student_id=student_id,
            subject=subject,
            topic=topic,
            session_id=session_id,
            attempt_number=attempt_number,
        )
        self._apply_outcomes(snapshot, outcomes)
        self.db.add(snapshot)
        await self.db.flush()

        await self._prune(student_id, subject, topic)
        window = await self._get_window(student_id, subject, topic)

        performance.total_attempts = attempt_number
        self._recompute(performance, window)
        await self.db.flush()

        logger.info(
            f"Topic performance {subject}/{topic} for {student_id}: "
            f"{float(performance.accuracy_percent):.1f}% over {len(window)} attempts "
            f"-> {performance.performance_level}"
        )
        return performance

    async def record_session(
        self,
        session: QuizSession,
        records: Iterable[QuestionAnswerRecord]
    ) -> List[TopicPerformance]:
        """Update every topic a completed session touched"""
        by_topic: Dict[Tuple[str, str], List[QuestionOutcome]] = {}
        for record in records:
            by_topic.setdefault((record.subject, record.topic), []).append(
                QuestionOutcome(
                    difficulty=record.difficulty_at_ask_time,
                    is_correct=bool(record.is_correct),
                    time_spent=record.time_spent_seconds or 0,
                )
            )

        # Fixed lock order across sessions touching overlapping topics
        updated = []
        for (subject, topic), outcomes in sorted(by_topic.items()):
            updated.append(await self.record_attempt(
                student_id=session.student_id,
                subject=subject,
                topic=topic,
                outcomes=outcomes,
                session_id=session.id,
            ))
        return updated

    # ==================== Queries ====================

    async def get_topic_levels(
        self,
        student_id: UUID,
        subjects: Optional[Iterable[str]] = None
    ) -> Dict[Tuple[str, str], str]:
        query = select(TopicPerformance).where(TopicPerformance.student_id == student_id)
        if subjects is not None:
            query = query.where(TopicPerformance.subject.in_(list(subjects)))
        result = await self.db.execute(query)
        return {
            (p.subject, p.topic): p.performance_level
            for p in result.scalars().all()
        }

    async def has_history(self, student_id: UUID) -> bool:
        count = await self.db.scalar(
            select(func.count(TopicPerformance.id))
            .where(TopicPerformance.student_id == student_id)
        )
        return bool(count)

    async def get_performance_summary(
        self,
        student_id: UUID,
        subject: Optional[str] = None
    ) -> Dict[str, List[Dict]]:
        """Topics grouped by classification, most accurate first"""
        query = (
            select(TopicPerformance)
            .where(TopicPerformance.student_id == student_id)
            .order_by(TopicPerformance.accuracy_percent.desc(), TopicPerformance.topic)
        )
        if subject:
            query = query.where(TopicPerformance.subject == subject)
        result = await self.db.execute(query)

        summary: Dict[str, List[Dict]] = {level.value: [] for level in PerformanceLevel}
        for p in result.scalars().all():
            summary[p.performance_level].append({
                "topic": p.topic,
                "accuracy": float(p.accuracy_percent or 0),
                "confidence": float(p.confidence_score or 0),
                "attempts": p.total_attempts,
            })
        return summary

    async def get_window(
        self,
        student_id: UUID,
        subject: str,
        topic: str
    ) -> List[TopicAttemptSnapshot]:
        return await self._get_window(student_id, subject, topic)

    # ==================== Internals ====================

    def _apply_outcomes(self, snapshot: TopicAttemptSnapshot, outcomes: List[QuestionOutcome]) -> None:
        snapshot.total_questions = len(outcomes)
        snapshot.correct_answers = sum(1 for o in outcomes if o.is_correct)
        snapshot.total_time_seconds = sum(o.time_spent or 0 for o in outcomes)
        for tier in DifficultyLevel:
            in_tier = [o for o in outcomes if o.difficulty == tier.value]
            setattr(snapshot, f"{tier.value}_total", len(in_tier))
            setattr(snapshot, f"{tier.value}_correct", sum(1 for o in in_tier if o.is_correct))

    def _recompute(self, performance: TopicPerformance, window: List[TopicAttemptSnapshot]) -> None:
        total = sum(s.total_questions for s in window)
        correct = sum(s.correct_answers for s in window)
        total_time = sum(s.total_time_seconds or 0 for s in window)
        accuracy = round(100.0 * correct / total, 2) if total else 0.0

        performance.window_attempts = len(window)
        performance.total_questions = total
        performance.correct_answers = correct
        performance.accuracy_percent = accuracy
        performance.avg_time_per_question = round(total_time / total) if total else 0
        for tier in DifficultyLevel:
            setattr(performance, f"{tier.value}_total",
                    sum(getattr(s, f"{tier.value}_total") or 0 for s in window))
            setattr(performance, f"{tier.value}_correct",
                    sum(getattr(s, f"{tier.value}_correct") or 0 for s in window))

        performance.performance_level = classify_performance(
            accuracy, performance.total_attempts
        ).value
        performance.confidence_score = calculate_confidence(
            [s.accuracy_percent for s in window if s.total_questions], self.window
        )

    async def _get_window(self, student_id: UUID, subject: str, topic: str) -> List[TopicAttemptSnapshot]:
        result = await self.db.execute(
            select(TopicAttemptSnapshot)
            .where(TopicAttemptSnapshot.student_id == student_id)
            .where(TopicAttemptSnapshot.subject == subject)
            .where(TopicAttemptSnapshot.topic == topic)
            .order_by(TopicAttemptSnapshot.attempt_number.desc())
            .limit(self.window)
        )
        return list(result.scalars().all())

    async def _prune(self, student_id: UUID, subject: str, topic: str) -> None:
        """Drop snapshots that fell out of the window"""
        newest = await self._get_window(student_id, subject, topic)
        if len(newest) < self.window:
            return
        cutoff = newest[-1].attempt_number
        await self.db.execute(
            delete(TopicAttemptSnapshot)
            .where(TopicAttemptSnapshot.student_id == student_id)
            .where(TopicAttemptSnapshot.subject == subject)
            .where(TopicAttemptSnapshot.topic == topic)
            .where(TopicAttemptSnapshot.attempt_number < cutoff)
        )

    async def _lock_performance(self, student_id: UUID, subject: str, topic: str) -> TopicPerformance:
        """
        Create the student's row for a topic if it is missing, then lock it.

        The insert is conflict-tolerant, so two first-ever completions on the
        same topic cannot both create it; the row lock then orders snapshot
        numbering between them.
        """
        upsert = _UPSERTS[self.db.get_bind().dialect.name]
        await self.db.execute(
            upsert(TopicPerformance)
            .values(
                student_id=student_id,
                subject=subject,
                topic=topic,
                total_attempts=0,
                window_attempts=0,
                total_questions=0,
                correct_answers=0,
                accuracy_percent=0,
                performance_level=PerformanceLevel.NEUTRAL.value,
                confidence_score=0,
            )
            .on_conflict_do_nothing(index_elements=["student_id", "subject", "topic"])
        )
        result = await self.db.execute(
            select(TopicPerformance)
            .where(TopicPerformance.student_id == student_id)
            .where(TopicPerformance.subject == subject)
            .where(TopicPerformance.topic == topic)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()


_UPSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}
