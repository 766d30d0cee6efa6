# ============================================================================
# Adaptive Difficulty System
# ============================================================================
"""
In-session difficulty policy.

Two forces decide the tier of the next question:

- a streak rule that moves the session's target tier one step up after
  STREAK_THRESHOLD consecutive correct answers and one step down after
  STREAK_THRESHOLD consecutive incorrect answers
- a session-level difficulty mix (30% easy / 40% medium / 30% hard) that acts
  as a soft ceiling: a tier may only be served while the realized mix can
  still finish within the tolerance of its quota
"""
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from quiz_engine.config import get_settings
from quiz_engine.models.curriculum import DifficultyLevel

DIFFICULTY_ORDER: List[str] = [
    DifficultyLevel.EASY.value,
    DifficultyLevel.MEDIUM.value,
    DifficultyLevel.HARD.value,
]

# Matches the content-generation policy so the bank is consumable
TARGET_MIX: Dict[str, float] = {
    DifficultyLevel.EASY.value: 0.30,
    DifficultyLevel.MEDIUM.value: 0.40,
    DifficultyLevel.HARD.value: 0.30,
}

STARTING_DIFFICULTY = DifficultyLevel.MEDIUM.value


def mix_quotas(total: int, mix: Optional[Dict[str, float]] = None) -> Dict[str, int]:
    """Split `total` questions across tiers using largest remainders"""
    mix = mix or TARGET_MIX
    exact = {tier: total * mix[tier] for tier in DIFFICULTY_ORDER}
    quotas = {tier: int(exact[tier]) for tier in DIFFICULTY_ORDER}
    leftover = total - sum(quotas.values())
    # Ties go to the tier listed first
    by_remainder = sorted(
        DIFFICULTY_ORDER,
        key=lambda t: (-(exact[t] - quotas[t]), DIFFICULTY_ORDER.index(t))
    )
    for tier in by_remainder[:leftover]:
        quotas[tier] += 1
    return quotas


@dataclass
class DifficultyMix:
    """Per-tier bounds a session's realized mix must stay inside"""
    total: int
    quotas: Dict[str, int]
    slack: int

    @classmethod
    def for_session(cls, total: int, tolerance: Optional[float] = None) -> "DifficultyMix":
        if tolerance is None:
            tolerance = get_settings().DIFFICULTY_MIX_TOLERANCE
        return cls(total=total, quotas=mix_quotas(total), slack=int(total * tolerance))

    def lower(self, tier: str) -> int:
        return max(0, self.quotas[tier] - self.slack)

    def upper(self, tier: str) -> int:
        return self.quotas[tier] + self.slack

    def eligible_tiers(self, counts: Dict[str, int]) -> List[str]:
        """Tiers that can be served next without making the bounds unreachable"""
        answered = sum(counts.get(t, 0) for t in DIFFICULTY_ORDER)
        remaining_after = self.total - answered - 1
        if remaining_after < 0:
            return []

        eligible = []
        for tier in DIFFICULTY_ORDER:
            after = dict(counts)
            after[tier] = after.get(tier, 0) + 1
            if after[tier] > self.upper(tier):
                continue
            still_needed = sum(
                max(0, self.lower(t) - after.get(t, 0)) for t in DIFFICULTY_ORDER
            )
            if still_needed <= remaining_after:
                eligible.append(tier)
        return eligible

    def deficit(self, tier: str, counts: Dict[str, int]) -> int:
        return self.quotas[tier] - counts.get(tier, 0)


def shift_difficulty(current: str, direction: str) -> str:
    """Move one tier up or down, clamped to easy..hard"""
    index = DIFFICULTY_ORDER.index(current)
    if direction == "up" and index < len(DIFFICULTY_ORDER) - 1:
        return DIFFICULTY_ORDER[index + 1]
    if direction == "down" and index > 0:
        return DIFFICULTY_ORDER[index - 1]
    return current


def rank_tiers(target: str, mix: DifficultyMix, counts: Dict[str, int]) -> List[str]:
    """Eligible tiers, closest to the target first; ties favor the larger deficit"""
    target_index = DIFFICULTY_ORDER.index(target)
    return sorted(
        mix.eligible_tiers(counts),
        key=lambda t: (
            abs(DIFFICULTY_ORDER.index(t) - target_index),
            -mix.deficit(t, counts),
            DIFFICULTY_ORDER.index(t),
        )
    )


class AdaptiveDifficultySystem:
    """Streak-driven target tier for the next question of a session"""

    def __init__(self, streak_threshold: Optional[int] = None):
        self.streak_threshold = streak_threshold or get_settings().STREAK_THRESHOLD

    def after_answer(
        self,
        target: str,
        consecutive_correct: int,
        consecutive_wrong: int,
        is_correct: bool
    ) -> Tuple[str, int, int]:
        """
        Apply one graded answer to the streak state.

        Returns:
            Tuple of (new target tier, consecutive_correct, consecutive_wrong)
        """
        if is_correct:
            consecutive_correct += 1
            consecutive_wrong = 0
            if consecutive_correct >= self.streak_threshold:
                raised = shift_difficulty(target, "up")
                if raised != target:
                    return raised, 0, 0
        else:
            consecutive_wrong += 1
            consecutive_correct = 0
            if consecutive_wrong >= self.streak_threshold:
                lowered = shift_difficulty(target, "down")
                if lowered != target:
                    return lowered, 0, 0

        return target, consecutive_correct, consecutive_wrong
