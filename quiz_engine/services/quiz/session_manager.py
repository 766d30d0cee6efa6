# ============================================================================
# Quiz Session Management Service
# ============================================================================
"""
Owns the lifecycle of a quiz session: start, answer, advance, complete.

Every mutating call runs under the per-session lock and inside a single
transaction, committed before the lock is released. A failure rolls the
transaction back so callers never observe half-applied state (a counter
bumped without its answer record, a challenge claimed without a session).

Duplicate submissions are not errors: the first stored answer record wins
and later identical calls get it back unchanged.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Union
from uuid import UUID
import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from quiz_engine.config import get_settings
from quiz_engine.core.exceptions import (
    ChallengeNotFound,
    ChallengeUnavailable,
    InvalidScope,
    QuestionNotFound,
    QuizValidationError,
    SessionAccessDenied,
    SessionNotActive,
    SessionNotFound,
)
from quiz_engine.core.locks import get_session_locks
from quiz_engine.models.challenge import Challenge, ChallengeStatus
from quiz_engine.models.curriculum import Question
from quiz_engine.models.quiz import (
    FocusArea,
    QuestionAnswerRecord,
    QuizSession,
    SessionStatus,
)
from quiz_engine.schemas.quiz import ModuleScope, TopicScope, dump_scope, parse_scope
from quiz_engine.services.quiz.adaptive_difficulty import (
    STARTING_DIFFICULTY,
    AdaptiveDifficultySystem,
    DifficultyMix,
)
from quiz_engine.services.quiz.answer_evaluator import evaluate_answer
from quiz_engine.services.quiz.challenge_builder import allocate_evenly
from quiz_engine.services.quiz.performance_tracker import TopicPerformanceTracker
from quiz_engine.services.quiz.question_selector import (
    QuestionPool,
    QuestionSelector,
    SelectionConstraints,
    SelectionState,
    difficulty_counts,
)

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# Results
# ============================================================================
@dataclass
class SessionStart:
    session: QuizSession
    question: Question
    current_question_number: int
    total_questions: int


@dataclass
class AnswerOutcome:
    record: QuestionAnswerRecord
    correct_answer: str
    explanation: Optional[str]
    duplicate: bool = False


@dataclass
class QuizSummary:
    session_id: UUID
    score_percentage: float
    correct_answers: int
    wrong_answers: int
    total_points: int
    time_taken: int
    answered_questions: int
    total_questions: int
    ended_early: bool = False


@dataclass
class NextQuestion:
    completed: bool
    total_questions: int
    question: Optional[Question] = None
    current_question_number: Optional[int] = None
    summary: Optional[QuizSummary] = None


@dataclass
class SessionReview:
    session: QuizSession
    records: List[QuestionAnswerRecord]


async def mark_abandoned(db: AsyncSession, session: QuizSession) -> None:
    """
    Active -> Abandoned. The originating challenge, if any, is released so the
    student can start it again.
    """
    session.status = SessionStatus.ABANDONED.value
    session.current_question_id = None
    if session.challenge_id:
        challenge = await db.get(Challenge, session.challenge_id, with_for_update=True)
        if (
            challenge
            and challenge.status == ChallengeStatus.PENDING.value
            and challenge.session_id == session.id
        ):
            challenge.session_id = None
    logger.info(f"Abandoned quiz session {session.id}")


# ============================================================================
# Quiz Session Manager
# ============================================================================
class QuizSessionManager:
    """
    Runs quiz sessions question by question.

    Usage:
        manager = QuizSessionManager(db)
        started = await manager.start_quiz(student_id, module_id=module_id)
        outcome = await manager.submit_answer(started.session.id, started.question.id, "B", 12)
        step = await manager.get_next_question(started.session.id)
    """

    def __init__(
        self,
        db: AsyncSession,
        selector: Optional[QuestionSelector] = None,
        tracker: Optional[TopicPerformanceTracker] = None,
        locks=None
    ):
        self.db = db
        self.selector = selector or QuestionSelector(db)
        self.tracker = tracker or TopicPerformanceTracker(db)
        self.locks = locks or get_session_locks()
        self.adaptive = AdaptiveDifficultySystem()
        self.settings = get_settings()

    # ==================== Session Lifecycle ====================

    async def start_quiz(
        self,
        student_id: UUID,
        module_id: Optional[UUID] = None,
        challenge_id: Optional[UUID] = None,
        scope: Optional[Union[ModuleScope, TopicScope]] = None,
        question_count: Optional[int] = None,
        focus_area: Optional[str] = None
    ) -> SessionStart:
        """
        Open a session and serve its first question.

        Args:
            student_id: Student taking the quiz
            module_id: Module to quiz on (ignored when a challenge is given)
            challenge_id: Pending challenge to consume; its scope, count and
                focus area override the other arguments
            scope: Explicit module or multi-topic scope
            question_count: Requested number of questions
            focus_area: strengthen / improve / balanced

        Raises:
            QuizValidationError: nothing to quiz on, or a non-positive count
            InvalidScope: the scope has no servable questions
            ChallengeUnavailable: the challenge was already used, dismissed or expired
        """
        if challenge_id is None:
            return await self._start(student_id, module_id, None, scope, question_count, focus_area)

        # Two starts racing for the same challenge must not both consume it
        async with self.locks.hold(challenge_id):
            return await self._start(student_id, module_id, challenge_id, scope, question_count, focus_area)

    async def _start(
        self,
        student_id: UUID,
        module_id: Optional[UUID],
        challenge_id: Optional[UUID],
        scope: Optional[Union[ModuleScope, TopicScope]],
        question_count: Optional[int],
        focus_area: Optional[str]
    ) -> SessionStart:
        try:
            challenge = None
            allocation: List[int] = []

            if challenge_id is not None:
                challenge = await self._claim_challenge(challenge_id, student_id)
                scope = parse_scope(challenge.scope)
                question_count = challenge.question_count
                focus_area = challenge.focus_area
                allocation = list(challenge.allocation or [])
            elif scope is None:
                if module_id is None:
                    raise QuizValidationError("A module, topic scope or challenge is required")
                scope = ModuleScope(module_id=module_id)

            if isinstance(scope, TopicScope) and not scope.selectors:
                raise QuizValidationError("Topic scope must list at least one topic")

            requested = question_count if question_count is not None else self.settings.DEFAULT_QUIZ_SIZE
            if requested <= 0:
                raise QuizValidationError("question_count must be greater than zero")

            try:
                focus = FocusArea(focus_area or FocusArea.BALANCED).value
            except ValueError:
                raise QuizValidationError(f"Unknown focus area: {focus_area}")
            if challenge is None and focus != FocusArea.BALANCED.value:
                if not await self.tracker.has_history(student_id):
                    logger.warning(
                        f"Student {student_id} has no topic history; "
                        f"focus '{focus}' falls back to balanced"
                    )
                    focus = FocusArea.BALANCED.value

            if isinstance(scope, TopicScope) and not allocation:
                allocation = allocate_evenly(requested, len(scope.selectors))

            pool = await self.selector.load_pool(scope)
            if pool.is_empty:
                raise InvalidScope()

            total = min(requested, len(pool))
            if total < requested:
                logger.warning(
                    f"Pool holds {len(pool)} questions, {requested} requested; "
                    f"session shortened to {total}"
                )

            session = QuizSession(
                student_id=student_id,
                module_id=scope.module_id if isinstance(scope, ModuleScope) else None,
                challenge_id=challenge.id if challenge else None,
                scope=dump_scope(scope),
                allocation=allocation,
                focus_area=focus,
                status=SessionStatus.ACTIVE.value,
                started_at=utcnow(),
                last_activity_at=utcnow(),
                requested_questions=requested,
                total_questions=total,
                ended_early=False,
                correct_count=0,
                wrong_count=0,
                total_points=0,
                time_taken_seconds=0,
                target_difficulty=STARTING_DIFFICULTY,
                consecutive_correct=0,
                consecutive_wrong=0,
            )
            self.db.add(session)
            await self.db.flush()

            if challenge is not None:
                challenge.session_id = session.id

            constraints = await self._constraints(session)
            question = self.selector.next_question(
                self._selection_state(session, [], pool), pool, constraints
            )
            session.current_question_id = question.id

            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            f"Started quiz session {session.id} for student {student_id}: "
            f"{total} questions, focus={focus}"
        )
        return SessionStart(
            session=session,
            question=question,
            current_question_number=1,
            total_questions=total,
        )

    async def submit_answer(
        self,
        session_id: UUID,
        question_id: UUID,
        answer: Optional[str],
        time_spent: int = 0,
        student_id: Optional[UUID] = None
    ) -> AnswerOutcome:
        """
        Grade the outstanding question exactly once.

        An empty answer is a timeout: incorrect, zero points. Resubmitting a
        question already answered in this session returns the stored record
        with duplicate=True instead of grading again.
        """
        async with self.locks.hold(session_id):
            try:
                session = await self._load_session(session_id, student_id, for_update=True)

                existing = await self._find_record(session_id, question_id)
                if existing is not None:
                    logger.warning(f"Duplicate answer for question {question_id} in session {session_id}")
                    return await self._duplicate_outcome(existing)

                if not session.is_active:
                    raise SessionNotActive(session_id, session.status)
                if session.current_question_id != question_id:
                    raise QuizValidationError(
                        f"Question {question_id} is not the current question of this session"
                    )

                question = await self.db.get(Question, question_id)
                if question is None:
                    raise QuestionNotFound(question_id)

                grade = evaluate_answer(question, answer)
                record = QuestionAnswerRecord(
                    session_id=session.id,
                    question_id=question.id,
                    sequence=session.answered_count + 1,
                    user_answer=grade.user_answer,
                    is_correct=grade.is_correct,
                    points_earned=grade.points_earned,
                    time_spent_seconds=max(0, time_spent or 0),
                    difficulty_at_ask_time=question.difficulty,
                    subject=question.subject,
                    topic=question.topic,
                    answered_at=utcnow(),
                )
                self.db.add(record)

                if grade.is_correct:
                    session.correct_count = (session.correct_count or 0) + 1
                else:
                    session.wrong_count = (session.wrong_count or 0) + 1
                session.total_points = (session.total_points or 0) + grade.points_earned
                session.time_taken_seconds = (session.time_taken_seconds or 0) + record.time_spent_seconds
                (
                    session.target_difficulty,
                    session.consecutive_correct,
                    session.consecutive_wrong,
                ) = self.adaptive.after_answer(
                    session.target_difficulty or STARTING_DIFFICULTY,
                    session.consecutive_correct or 0,
                    session.consecutive_wrong or 0,
                    grade.is_correct,
                )
                session.current_question_id = None
                session.last_activity_at = utcnow()

                question.times_attempted = (question.times_attempted or 0) + 1
                if grade.is_correct:
                    question.times_correct = (question.times_correct or 0) + 1

                await self.db.commit()
            except IntegrityError:
                # Another writer stored this answer first
                await self.db.rollback()
                existing = await self._find_record(session_id, question_id)
                if existing is None:
                    raise
                logger.warning(f"Concurrent answer for question {question_id} in session {session_id}")
                return await self._duplicate_outcome(existing)
            except Exception:
                await self.db.rollback()
                raise

        logger.debug(
            f"Session {session_id} answer #{record.sequence}: "
            f"correct={record.is_correct}, points={record.points_earned}"
        )
        return AnswerOutcome(
            record=record,
            correct_answer=question.correct_answer,
            explanation=question.explanation,
            duplicate=False,
        )

    async def get_next_question(
        self,
        session_id: UUID,
        student_id: Optional[UUID] = None
    ) -> NextQuestion:
        """
        Advance the session.

        An unanswered current question is returned again rather than replaced.
        When the requested count is reached, or the pool runs dry, the session
        is completed and the summary is returned instead of a question.
        """
        async with self.locks.hold(session_id):
            try:
                session = await self._load_session(session_id, student_id, for_update=True)

                if session.status == SessionStatus.COMPLETED.value:
                    return NextQuestion(
                        completed=True,
                        total_questions=session.total_questions,
                        summary=self._summary(session),
                    )
                if not session.is_active:
                    raise SessionNotActive(session_id, session.status)

                if session.current_question_id is not None:
                    question = await self.db.get(Question, session.current_question_id)
                    return NextQuestion(
                        completed=False,
                        total_questions=session.total_questions,
                        question=question,
                        current_question_number=session.answered_count + 1,
                    )

                records = await self._records(session_id)
                if len(records) >= session.total_questions:
                    summary = await self._complete(session, records)
                    await self.db.commit()
                    return NextQuestion(completed=True, total_questions=session.total_questions, summary=summary)

                pool = await self.selector.load_pool(parse_scope(session.scope))
                question = self.selector.next_question(
                    self._selection_state(session, records, pool),
                    pool,
                    await self._constraints(session),
                )

                if question is None:
                    logger.warning(
                        f"Question pool exhausted for session {session_id} after "
                        f"{len(records)} of {session.total_questions} questions"
                    )
                    session.ended_early = True
                    session.total_questions = len(records)
                    summary = await self._complete(session, records)
                    await self.db.commit()
                    return NextQuestion(completed=True, total_questions=session.total_questions, summary=summary)

                session.current_question_id = question.id
                session.last_activity_at = utcnow()
                await self.db.commit()
            except Exception:
                await self.db.rollback()
                raise

        return NextQuestion(
            completed=False,
            total_questions=session.total_questions,
            question=question,
            current_question_number=len(records) + 1,
        )

    async def complete_quiz(
        self,
        session_id: UUID,
        student_id: Optional[UUID] = None
    ) -> QuizSummary:
        """
        Finalize a session. Completing an already-completed session returns the
        stored summary without recording anything twice.
        """
        async with self.locks.hold(session_id):
            try:
                session = await self._load_session(session_id, student_id, for_update=True)
                if session.status == SessionStatus.COMPLETED.value:
                    return self._summary(session)
                if not session.is_active:
                    raise SessionNotActive(session_id, session.status)

                summary = await self._complete(session, await self._records(session_id))
                await self.db.commit()
                return summary
            except Exception:
                await self.db.rollback()
                raise

    async def abandon_session(
        self,
        session_id: UUID,
        student_id: Optional[UUID] = None
    ) -> QuizSession:
        async with self.locks.hold(session_id):
            try:
                session = await self._load_session(session_id, student_id, for_update=True)
                if session.status == SessionStatus.ABANDONED.value:
                    return session
                if session.status == SessionStatus.COMPLETED.value:
                    raise SessionNotActive(session_id, session.status)

                await mark_abandoned(self.db, session)
                session.last_activity_at = utcnow()
                await self.db.commit()
                return session
            except Exception:
                await self.db.rollback()
                raise

    # ==================== Read Side ====================

    async def get_session_review(
        self,
        session_id: UUID,
        student_id: Optional[UUID] = None
    ) -> SessionReview:
        session = await self._load_session(session_id, student_id)
        return SessionReview(session=session, records=await self._records(session_id))

    async def get_session_history(self, student_id: UUID, limit: int = 20) -> List[QuizSession]:
        result = await self.db.execute(
            select(QuizSession)
            .where(QuizSession.student_id == student_id)
            .order_by(QuizSession.started_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    # ==================== Internals ====================

    async def _complete(self, session: QuizSession, records: List[QuestionAnswerRecord]) -> QuizSummary:
        """Totals come from the answer log, not the running counters"""
        answered = len(records)
        correct = sum(1 for r in records if r.is_correct)

        session.correct_count = correct
        session.wrong_count = answered - correct
        session.total_points = sum(r.points_earned or 0 for r in records)
        session.time_taken_seconds = sum(r.time_spent_seconds or 0 for r in records)
        session.score_percentage = round(100.0 * correct / answered, 2) if answered else 0.0
        session.status = SessionStatus.COMPLETED.value
        session.completed_at = utcnow()
        session.last_activity_at = session.completed_at
        session.current_question_id = None

        if records:
            await self.tracker.record_session(session, records)

        if session.challenge_id:
            challenge = await self.db.get(Challenge, session.challenge_id, with_for_update=True)
            if challenge and challenge.status == ChallengeStatus.PENDING.value:
                challenge.status = ChallengeStatus.COMPLETED.value
                challenge.completed_at = session.completed_at
                challenge.session_id = session.id

        await self.db.flush()
        logger.info(
            f"Completed quiz session {session.id}: {correct}/{answered} correct, "
            f"{session.total_points} points"
        )
        return self._summary(session)

    def _summary(self, session: QuizSession) -> QuizSummary:
        return QuizSummary(
            session_id=session.id,
            score_percentage=float(session.score_percentage or 0),
            correct_answers=session.correct_count or 0,
            wrong_answers=session.wrong_count or 0,
            total_points=session.total_points or 0,
            time_taken=session.time_taken_seconds or 0,
            answered_questions=session.answered_count,
            total_questions=session.total_questions,
            ended_early=bool(session.ended_early),
        )

    async def _claim_challenge(self, challenge_id: UUID, student_id: UUID) -> Challenge:
        result = await self.db.execute(
            select(Challenge)
            .where(Challenge.id == challenge_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        challenge = result.scalar_one_or_none()
        if challenge is None:
            raise ChallengeNotFound(challenge_id)
        if challenge.assigned_to != student_id:
            raise SessionAccessDenied("challenge")
        if challenge.status != ChallengeStatus.PENDING.value:
            raise ChallengeUnavailable(challenge_id, f"it is {challenge.status}")
        if challenge.is_expired(utcnow()):
            raise ChallengeUnavailable(challenge_id, "it has expired")
        if challenge.session_id is not None:
            raise ChallengeUnavailable(challenge_id, "it is already in progress")
        return challenge

    async def _load_session(
        self,
        session_id: UUID,
        student_id: Optional[UUID] = None,
        for_update: bool = False
    ) -> QuizSession:
        query = (
            select(QuizSession)
            .where(QuizSession.id == session_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            query = query.with_for_update()
        session = (await self.db.execute(query)).scalar_one_or_none()
        if session is None:
            raise SessionNotFound(session_id)
        if student_id is not None and session.student_id != student_id:
            raise SessionAccessDenied()
        return session

    async def _records(self, session_id: UUID) -> List[QuestionAnswerRecord]:
        result = await self.db.execute(
            select(QuestionAnswerRecord)
            .where(QuestionAnswerRecord.session_id == session_id)
            .order_by(QuestionAnswerRecord.sequence)
        )
        return list(result.scalars().all())

    async def _find_record(self, session_id: UUID, question_id: UUID) -> Optional[QuestionAnswerRecord]:
        result = await self.db.execute(
            select(QuestionAnswerRecord)
            .where(QuestionAnswerRecord.session_id == session_id)
            .where(QuestionAnswerRecord.question_id == question_id)
        )
        return result.scalar_one_or_none()

    async def _duplicate_outcome(self, record: QuestionAnswerRecord) -> AnswerOutcome:
        question = await self.db.get(Question, record.question_id, populate_existing=True)
        return AnswerOutcome(
            record=record,
            correct_answer=question.correct_answer if question else "",
            explanation=question.explanation if question else None,
            duplicate=True,
        )

    async def _constraints(self, session: QuizSession) -> SelectionConstraints:
        topic_levels = {}
        if session.focus_area != FocusArea.BALANCED.value:
            topic_levels = await self.tracker.get_topic_levels(session.student_id)
        return SelectionConstraints(
            focus_area=session.focus_area,
            mix=DifficultyMix.for_session(session.total_questions),
            allocation=list(session.allocation or []),
            topic_levels=topic_levels,
        )

    def _selection_state(
        self,
        session: QuizSession,
        records: List[QuestionAnswerRecord],
        pool: QuestionPool
    ) -> SelectionState:
        group_counts = {}
        for record in records:
            group = pool.groups.get(record.question_id)
            if group is not None:
                group_counts[group] = group_counts.get(group, 0) + 1
        return SelectionState(
            answered_ids={r.question_id for r in records},
            difficulty_counts=difficulty_counts([r.difficulty_at_ask_time for r in records]),
            group_counts=group_counts,
            target_difficulty=session.target_difficulty or STARTING_DIFFICULTY,
        )
