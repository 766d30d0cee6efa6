# ============================================================================
# Challenge Builder Tests
# ============================================================================
import pytest
from datetime import datetime, timedelta, timezone
from uuid import uuid4
from sqlalchemy import select

from quiz_engine.core.exceptions import (
    ChallengeUnavailable,
    InvalidScope,
    QuizValidationError,
    SessionAccessDenied,
)
from quiz_engine.models.challenge import ChallengeStatus, QuestionBankShortfall
from quiz_engine.schemas.quiz import ModuleScope, TopicScope, TopicSelector
from quiz_engine.services.quiz.challenge_builder import ChallengeBuilder, allocate_evenly
from quiz_engine.services.quiz.performance_tracker import QuestionOutcome, TopicPerformanceTracker


def selectors(*topics):
    return TopicScope(selectors=[TopicSelector(subject="Mathematics", topic=t) for t in topics])


class TestAllocation:
    """Tests for spreading questions across topics"""

    def test_even_split(self):
        assert allocate_evenly(9, 3) == [3, 3, 3]

    def test_remainder_goes_to_earlier_topics(self):
        assert allocate_evenly(10, 3) == [4, 3, 3]
        assert allocate_evenly(11, 4) == [3, 3, 3, 2]

    def test_fewer_questions_than_topics(self):
        assert allocate_evenly(2, 3) == [1, 1, 0]


class TestBuild:
    """Tests for challenge validation and focus fallback"""

    @pytest.fixture
    def builder(self, db_session):
        return ChallengeBuilder(db_session)

    @pytest.fixture
    async def module(self, bank):
        module = await bank.module()
        await bank.questions(module)
        return module

    @pytest.mark.asyncio
    @pytest.mark.parametrize("count", [9, 101])
    async def test_simple_count_bounds(self, builder, module, student_id, count):
        with pytest.raises(QuizValidationError):
            await builder.build(uuid4(), student_id, "simple", ModuleScope(module_id=module.id), count)

    @pytest.mark.asyncio
    async def test_simple_needs_module_scope(self, builder, student_id):
        with pytest.raises(QuizValidationError):
            await builder.build(uuid4(), student_id, "simple", selectors("Algebra"), 10)

    @pytest.mark.asyncio
    async def test_advanced_needs_topics(self, builder, student_id):
        with pytest.raises(QuizValidationError):
            await builder.build(uuid4(), student_id, "advanced", TopicScope(selectors=[]), 10)

    @pytest.mark.asyncio
    async def test_advanced_topic_limit(self, builder, student_id):
        scope = selectors(*[f"Topic {i}" for i in range(11)])
        with pytest.raises(QuizValidationError):
            await builder.build(uuid4(), student_id, "advanced", scope, 20)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("count", [0, 201])
    async def test_advanced_count_bounds(self, builder, bank, student_id, count):
        await bank.questions(mix={"easy": 2}, topic="Algebra")
        with pytest.raises(QuizValidationError):
            await builder.build(uuid4(), student_id, "advanced", selectors("Algebra"), count)

    @pytest.mark.asyncio
    async def test_empty_module_is_invalid_scope(self, builder, bank, db_session, student_id):
        module = await bank.module()
        await db_session.commit()
        with pytest.raises(InvalidScope):
            await builder.build(uuid4(), student_id, "simple", ModuleScope(module_id=module.id), 10)

    @pytest.mark.asyncio
    async def test_strengthen_without_history_falls_back(self, builder, module, student_id):
        challenge = await builder.build(
            uuid4(), student_id, "simple", ModuleScope(module_id=module.id), 10,
            focus_area="strengthen",
        )

        assert challenge.focus_area == "balanced"
        assert challenge.requested_focus_area == "strengthen"
        assert challenge.focus_fallback is True

    @pytest.mark.asyncio
    async def test_improve_with_history_is_kept(self, builder, db_session, module, student_id):
        await TopicPerformanceTracker(db_session).record_attempt(
            student_id, "Mathematics", "Linear Equations",
            [QuestionOutcome("easy", False, 5), QuestionOutcome("medium", False, 5)],
        )

        challenge = await builder.build(
            uuid4(), student_id, "simple", ModuleScope(module_id=module.id), 10,
            focus_area="improve",
        )

        assert challenge.focus_area == "improve"
        assert challenge.focus_fallback is False

    @pytest.mark.asyncio
    async def test_defaults(self, builder, module, student_id):
        challenge = await builder.build(uuid4(), student_id, "simple", ModuleScope(module_id=module.id), 10)

        assert challenge.status == ChallengeStatus.PENDING.value
        assert challenge.session_id is None
        assert challenge.expires_at > datetime.now(timezone.utc) + timedelta(days=6)
        assert challenge.estimated_minutes == 10  # ten questions at the default 60s

    @pytest.mark.asyncio
    async def test_advanced_allocation_and_shortfall(self, builder, bank, db_session, student_id):
        await bank.questions(mix={"easy": 2, "medium": 2}, topic="Algebra")
        await bank.questions(mix={"medium": 1}, topic="Geometry")

        challenge = await builder.build(uuid4(), student_id, "advanced", selectors("Algebra", "Geometry"), 7)

        assert challenge.allocation == [4, 3]
        shortfalls = (await db_session.execute(select(QuestionBankShortfall))).scalars().all()
        assert len(shortfalls) == 1
        assert shortfalls[0].topic == "Geometry"
        assert shortfalls[0].requested_count == 3
        assert shortfalls[0].available_count == 1
        assert shortfalls[0].shortfall == 2

    @pytest.mark.asyncio
    async def test_past_expiry_rejected(self, builder, module, student_id):
        with pytest.raises(QuizValidationError):
            await builder.build(
                uuid4(), student_id, "simple", ModuleScope(module_id=module.id), 10,
                expires_at=datetime.now(timezone.utc) - timedelta(hours=1),
            )


class TestDurationEstimate:
    """Tests for challenge duration estimates"""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("count,minutes", [(4, 3), (3, 3), (1, 1), (20, 15)])
    async def test_mean_time_limit_rounded_up(self, db_session, bank, count, minutes):
        module = await bank.module()
        await bank.questions(module, {"easy": 2}, time_limit=30)
        await bank.questions(module, {"hard": 2}, time_limit=60)

        estimate = await ChallengeBuilder(db_session).estimate_duration(ModuleScope(module_id=module.id), count)

        assert estimate == minutes

    @pytest.mark.asyncio
    async def test_topic_scope_uses_selected_questions(self, db_session, bank):
        await bank.questions(mix={"medium": 2}, topic="Algebra", time_limit=120)
        await bank.questions(mix={"medium": 2}, topic="Geometry", time_limit=30)

        estimate = await ChallengeBuilder(db_session).estimate_duration(selectors("Algebra"), 5)

        assert estimate == 10

    @pytest.mark.asyncio
    async def test_empty_scope_uses_default_limit(self, db_session):
        estimate = await ChallengeBuilder(db_session).estimate_duration(selectors("Calculus"), 5)
        assert estimate == 5

    @pytest.mark.asyncio
    async def test_count_must_be_positive(self, db_session):
        with pytest.raises(QuizValidationError):
            await ChallengeBuilder(db_session).estimate_duration(selectors("Calculus"), 0)


class TestStudentSide:
    """Tests for listing and dismissing challenges"""

    @pytest.mark.asyncio
    async def test_pending_and_dismiss(self, db_session, bank, student_id):
        module = await bank.module()
        await bank.questions(module)
        builder = ChallengeBuilder(db_session)
        scope = ModuleScope(module_id=module.id)
        keep = await builder.build(uuid4(), student_id, "simple", scope, 10)
        drop = await builder.build(uuid4(), student_id, "simple", scope, 12)
        keep_id, drop_id = keep.id, drop.id

        with pytest.raises(SessionAccessDenied):
            await builder.dismiss(drop_id, uuid4())

        dismissed = await builder.dismiss(drop_id, student_id)
        assert dismissed.status == ChallengeStatus.DISMISSED.value

        pending = await builder.list_pending(student_id)
        assert [c.id for c in pending] == [keep_id]

    @pytest.mark.asyncio
    async def test_expired_not_listed(self, db_session, bank, student_id):
        module = await bank.module()
        await bank.questions(module)
        builder = ChallengeBuilder(db_session)
        await builder.build(
            uuid4(), student_id, "simple", ModuleScope(module_id=module.id), 10,
            expires_at=datetime.now(timezone.utc) + timedelta(hours=1),
        )

        later = datetime.now(timezone.utc) + timedelta(hours=2)
        assert await builder.list_pending(student_id, now=later) == []

    @pytest.mark.asyncio
    async def test_completed_cannot_be_dismissed(self, db_session, bank, student_id):
        module = await bank.module()
        await bank.questions(module)
        builder = ChallengeBuilder(db_session)
        challenge = await builder.build(uuid4(), student_id, "simple", ModuleScope(module_id=module.id), 10)
        challenge_id = challenge.id
        challenge.status = ChallengeStatus.COMPLETED.value
        await db_session.commit()

        with pytest.raises(ChallengeUnavailable):
            await builder.dismiss(challenge_id, student_id)
