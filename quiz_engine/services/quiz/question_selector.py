# ============================================================================
# Question Selection
# ============================================================================
"""
Picks the next question of a running quiz session.

Selection order:
    1. never repeat a question within a session
    2. multi-topic scopes: serve the selector furthest behind its allocation
    3. focus area: strengthen -> strong topics, improve -> weak (then neutral)
       topics, unless that leaves no question in an eligible difficulty tier
    4. difficulty: nearest eligible tier to the streak-driven target
    5. balanced: uniform topic, then the least-attempted questions
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set, Tuple, Union
from uuid import UUID
import random
import logging

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from quiz_engine.models.curriculum import Question
from quiz_engine.models.performance import PerformanceLevel
from quiz_engine.models.quiz import FocusArea
from quiz_engine.schemas.quiz import ModuleScope, TopicScope, TopicSelector
from quiz_engine.services.quiz.adaptive_difficulty import (
    DIFFICULTY_ORDER,
    DifficultyMix,
    rank_tiers,
)

logger = logging.getLogger(__name__)

TopicKey = Tuple[str, str]


@dataclass
class QuestionPool:
    """Candidate questions for one scope"""
    questions: List[Question]
    groups: Dict[UUID, int] = field(default_factory=dict)  # question id -> selector index

    def __len__(self) -> int:
        return len(self.questions)

    @property
    def is_empty(self) -> bool:
        return not self.questions

    def get(self, question_id: UUID) -> Optional[Question]:
        for question in self.questions:
            if question.id == question_id:
                return question
        return None


@dataclass
class SelectionState:
    """What the session has already been asked"""
    answered_ids: Set[UUID] = field(default_factory=set)
    difficulty_counts: Dict[str, int] = field(default_factory=dict)
    group_counts: Dict[int, int] = field(default_factory=dict)
    target_difficulty: str = "medium"


@dataclass
class SelectionConstraints:
    focus_area: str
    mix: DifficultyMix
    allocation: List[int] = field(default_factory=list)
    topic_levels: Dict[TopicKey, str] = field(default_factory=dict)


class QuestionSelector:
    """Pool loading and next-question policy"""

    def __init__(self, db: AsyncSession, rng: Optional[random.Random] = None):
        self.db = db
        self.rng = rng or random.Random()

    # ==================== Pool ====================

    def _base_query(self):
        return (
            select(Question)
            .where(Question.is_active == True)
            .where(Question.status == "approved")
        )

    def _selector_filter(self, query, selector: TopicSelector):
        query = query.where(Question.subject == selector.subject).where(Question.topic == selector.topic)
        if selector.subtopics:
            query = query.where(Question.sub_topic.in_(selector.subtopics))
        return query

    async def load_pool(self, scope: Union[ModuleScope, TopicScope]) -> QuestionPool:
        """All servable questions for a scope; multi-topic scopes are merged"""
        if isinstance(scope, ModuleScope):
            result = await self.db.execute(
                self._base_query()
                .where(Question.module_id == scope.module_id)
                .order_by(Question.created_at, Question.id)
            )
            return QuestionPool(questions=list(result.scalars().all()))

        questions: List[Question] = []
        groups: Dict[UUID, int] = {}
        for index, selector in enumerate(scope.selectors):
            result = await self.db.execute(
                self._selector_filter(self._base_query(), selector)
                .order_by(Question.created_at, Question.id)
            )
            for question in result.scalars().all():
                # A question matched by two selectors counts toward the first
                if question.id in groups:
                    continue
                groups[question.id] = index
                questions.append(question)

        return QuestionPool(questions=questions, groups=groups)

    async def count_available(self, selector: TopicSelector) -> int:
        query = self._selector_filter(
            select(func.count(Question.id))
            .where(Question.is_active == True)
            .where(Question.status == "approved"),
            selector,
        )
        return await self.db.scalar(query) or 0

    async def count_module(self, module_id: UUID) -> int:
        return await self.db.scalar(
            select(func.count(Question.id))
            .where(Question.module_id == module_id)
            .where(Question.is_active == True)
            .where(Question.status == "approved")
        ) or 0

    # ==================== Next Question ====================

    def next_question(
        self,
        state: SelectionState,
        pool: QuestionPool,
        constraints: SelectionConstraints
    ) -> Optional[Question]:
        """
        Choose the next question, or None when the pool is exhausted.

        None is an expected terminal signal, not an error: the caller ends the
        session early with the questions already answered.
        """
        candidates = [q for q in pool.questions if q.id not in state.answered_ids]
        if not candidates:
            return None

        if pool.groups and constraints.allocation:
            candidates = self._restrict_to_group(candidates, pool, state, constraints.allocation)

        focused = self._apply_focus(candidates, constraints)
        tiers = self._tier_preference(state, constraints)

        # Widen past the preferred topics before giving up on the mix bounds
        for subset in (focused, candidates):
            for tier in tiers:
                in_tier = [q for q in subset if q.difficulty == tier]
                if in_tier:
                    return self._pick(in_tier, constraints.focus_area)

        # Mix bounds cannot be met with what is left; any question beats stopping early
        return self._pick(focused, constraints.focus_area)

    def _restrict_to_group(
        self,
        candidates: List[Question],
        pool: QuestionPool,
        state: SelectionState,
        allocation: Sequence[int]
    ) -> List[Question]:
        by_group: Dict[int, List[Question]] = {}
        for question in candidates:
            by_group.setdefault(pool.groups.get(question.id, 0), []).append(question)

        def remaining(index: int) -> int:
            quota = allocation[index] if index < len(allocation) else 0
            return quota - state.group_counts.get(index, 0)

        open_groups = [i for i in by_group if remaining(i) > 0]
        if not open_groups:
            # Every allocation met (or unreachable); fall back to whatever is left
            open_groups = list(by_group)

        chosen = min(open_groups, key=lambda i: (-remaining(i), i))
        return by_group[chosen]

    def _apply_focus(self, candidates: List[Question], constraints: SelectionConstraints) -> List[Question]:
        focus = constraints.focus_area
        if focus == FocusArea.BALANCED.value or not constraints.topic_levels:
            return candidates

        def with_level(level: PerformanceLevel) -> List[Question]:
            return [
                q for q in candidates
                if constraints.topic_levels.get((q.subject, q.topic)) == level.value
            ]

        if focus == FocusArea.STRENGTHEN.value:
            preferred = [with_level(PerformanceLevel.STRONG)]
        else:
            preferred = [with_level(PerformanceLevel.WEAK), with_level(PerformanceLevel.NEUTRAL)]

        for subset in preferred:
            if subset:
                return subset
        return candidates

    def _tier_preference(self, state: SelectionState, constraints: SelectionConstraints) -> List[str]:
        ranked = rank_tiers(state.target_difficulty, constraints.mix, state.difficulty_counts)
        if not ranked:
            logger.debug("No difficulty tier keeps the mix in bounds")
        return ranked

    def _pick(self, candidates: List[Question], focus_area: str) -> Question:
        if focus_area == FocusArea.BALANCED.value:
            topics = sorted({(q.subject, q.topic) for q in candidates})
            subject, topic = self.rng.choice(topics)
            candidates = [q for q in candidates if (q.subject, q.topic) == (subject, topic)]

        # Prefer questions the bank has served least; random among the top 3
        ranked = sorted(candidates, key=lambda q: (q.times_attempted or 0))
        return self.rng.choice(ranked[:3])


def difficulty_counts(difficulties: Sequence[str]) -> Dict[str, int]:
    counts = {tier: 0 for tier in DIFFICULTY_ORDER}
    for difficulty in difficulties:
        counts[difficulty] = counts.get(difficulty, 0) + 1
    return counts
