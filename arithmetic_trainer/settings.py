"""Effective generation/scoring parameters.

A session resolves its settings exactly once, at start, through
:func:`resolve_effective_settings`. The generator and scorer only ever see the
resolved values.
"""

from __future__ import annotations

from dataclasses import dataclass

from .models import ChallengeMode, CustomModeSettings, Difficulty, GameSettings, Mode


@dataclass(frozen=True, slots=True)
class EffectiveRange:
    """Inclusive operand magnitude range plus sign/decimal allowances.

    ``allow_negative`` permits negative subtraction results. ``signed_operands``
    additionally lets add/sub operands themselves be negative (custom mode only).
    """

    min_value: int
    max_value: int
    allow_decimals: bool
    allow_negative: bool
    signed_operands: bool = False
    muldiv_max: int = 12


@dataclass(frozen=True, slots=True)
class EffectiveSettings:
    difficulty: Difficulty
    range: EffectiveRange
    challenge_mode: ChallengeMode | None
    time_limit: int | None
    custom: CustomModeSettings | None


_BASE_RANGES: dict[Difficulty, EffectiveRange] = {
    Difficulty.BEGINNER: EffectiveRange(1, 10, allow_decimals=False, allow_negative=False, muldiv_max=12),
    Difficulty.INTERMEDIATE: EffectiveRange(1, 100, allow_decimals=False, allow_negative=True, muldiv_max=25),
    Difficulty.ADVANCED: EffectiveRange(1, 1000, allow_decimals=True, allow_negative=True, muldiv_max=50),
}

# Highest digit count honoured per tier; advanced is unbounded.
_MAX_DIGITS: dict[Difficulty, int | None] = {
    Difficulty.BEGINNER: 2,
    Difficulty.INTERMEDIATE: 3,
    Difficulty.ADVANCED: None,
}

_MULDIV_CAP_WIDE_DIGITS = 20


def digit_range(digits: int) -> tuple[int, int]:
    if digits < 1:
        raise ValueError("digits must be >= 1")
    if digits == 1:
        return 1, 9
    return 10 ** (digits - 1), 10**digits - 1


def resolve_effective_range(
    difficulty: Difficulty,
    custom_settings: CustomModeSettings | None = None,
) -> EffectiveRange:
    base = _BASE_RANGES[Difficulty(difficulty)]
    if custom_settings is None:
        return base

    numbers = custom_settings.number_settings
    digits = numbers.digits
    cap = _MAX_DIGITS[Difficulty(difficulty)]
    if cap is not None:
        digits = min(digits, cap)
    lo, hi = digit_range(digits)

    muldiv_max = min(base.muldiv_max, hi)
    if numbers.digits > 3:
        muldiv_max = min(muldiv_max, _MULDIV_CAP_WIDE_DIGITS)

    return EffectiveRange(
        min_value=lo,
        max_value=hi,
        allow_decimals=numbers.include_non_integers,
        allow_negative=numbers.allow_negatives,
        signed_operands=numbers.allow_negatives,
        muldiv_max=muldiv_max,
    )


def resolve_effective_settings(settings: GameSettings) -> EffectiveSettings:
    custom = settings.custom_mode_settings if settings.mode is Mode.CUSTOM else None
    difficulty = custom.difficulty if custom is not None else settings.difficulty

    challenge = settings.challenge_mode
    if custom is not None:
        if challenge is ChallengeMode.SPEED and not custom.speed_bonus_enabled:
            challenge = None
        elif challenge is ChallengeMode.STREAK and not custom.streak_bonus_enabled:
            challenge = None

    return EffectiveSettings(
        difficulty=difficulty,
        range=resolve_effective_range(difficulty, custom),
        challenge_mode=challenge,
        time_limit=settings.time_limit if settings.mode is Mode.TIMED else None,
        custom=custom,
    )
