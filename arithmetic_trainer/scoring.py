from __future__ import annotations

from dataclasses import dataclass

from .models import ChallengeMode, Difficulty, Problem, SpeedRating

DIFFICULTY_POINTS: dict[Difficulty, int] = {
    Difficulty.BEGINNER: 10,
    Difficulty.INTERMEDIATE: 20,
    Difficulty.ADVANCED: 30,
}


@dataclass(frozen=True, slots=True)
class SpeedThresholds:
    fast_s: float
    very_fast_s: float


SPEED_THRESHOLDS: dict[Difficulty, SpeedThresholds] = {
    Difficulty.BEGINNER: SpeedThresholds(fast_s=3.0, very_fast_s=1.5),
    Difficulty.INTERMEDIATE: SpeedThresholds(fast_s=5.0, very_fast_s=3.0),
    Difficulty.ADVANCED: SpeedThresholds(fast_s=8.0, very_fast_s=5.0),
}

STREAK_BONUS_STEP = 0.1
STREAK_BONUS_CAP = 2.0
ACCURACY_BONUS = 0.3


@dataclass(frozen=True, slots=True)
class ScoreBreakdown:
    base_points: float
    bonus_points: float
    total_points: float


NO_POINTS = ScoreBreakdown(base_points=0, bonus_points=0, total_points=0)


def calculate_problem_score(
    problem: Problem,
    challenge_mode: ChallengeMode | None = None,
    current_streak: int = 0,
) -> ScoreBreakdown:
    """Points for an answered problem.

    Only the session's challenge mode contributes a bonus:

    * speed: +100% of base at or under the very-fast threshold, +50% at or
      under the fast threshold.
    * streak: +10% of base per streak step, capped at +200%.
    * accuracy: flat +30% of base.

    Incorrect (or unanswered) problems score nothing.
    """

    if not problem.is_correct:
        return NO_POINTS

    base = DIFFICULTY_POINTS[problem.difficulty]
    bonus = 0.0

    if challenge_mode is ChallengeMode.SPEED and problem.time_spent:
        t = SPEED_THRESHOLDS[problem.difficulty]
        if problem.time_spent <= t.very_fast_s:
            bonus = base * 1.0
        elif problem.time_spent <= t.fast_s:
            bonus = base * 0.5
    elif challenge_mode is ChallengeMode.STREAK and current_streak > 0:
        bonus = base * min(current_streak * STREAK_BONUS_STEP, STREAK_BONUS_CAP)
    elif challenge_mode is ChallengeMode.ACCURACY:
        bonus = base * ACCURACY_BONUS

    bonus = round(bonus, 2)
    return ScoreBreakdown(base_points=base, bonus_points=bonus, total_points=base + bonus)


def speed_rating(time_spent: float, difficulty: Difficulty) -> SpeedRating:
    """Feedback-only classification; never feeds into points."""

    t = SPEED_THRESHOLDS[difficulty]
    if time_spent <= t.very_fast_s:
        return SpeedRating.VERY_FAST
    if time_spent <= t.fast_s:
        return SpeedRating.FAST
    if time_spent <= t.fast_s * 2:
        return SpeedRating.NORMAL
    return SpeedRating.SLOW


def streak_milestone_bonus(streak: int) -> int:
    """Celebration points shown when a streak crosses a milestone."""

    if streak < 3:
        return 0
    if streak < 5:
        return 50
    if streak < 10:
        return 100
    if streak < 20:
        return 200
    return 500
