"""Records shared by the generator, scoring, analytics, engine and storage.

Everything here is plain data. ``to_dict``/``from_dict`` give the JSON shape
used by storage; ``from_dict`` falls back to field defaults for missing keys
and raises ``ValueError``/``TypeError``/``KeyError`` for values it cannot
interpret.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

SESSION_HISTORY_CAP = 100


class Operation(str, Enum):
    ADDITION = "addition"
    SUBTRACTION = "subtraction"
    MULTIPLICATION = "multiplication"
    DIVISION = "division"


class Difficulty(str, Enum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class Mode(str, Enum):
    PRACTICE = "practice"
    TIMED = "timed"
    CUSTOM = "custom"


class ChallengeMode(str, Enum):
    SPEED = "speed"
    STREAK = "streak"
    ACCURACY = "accuracy"


class NumberDisplayMode(str, Enum):
    DECIMAL = "decimal"
    FRACTION = "fraction"


class SpeedRating(str, Enum):
    VERY_FAST = "veryfast"
    FAST = "fast"
    NORMAL = "normal"
    SLOW = "slow"


def _opt_float(value: Any) -> float | None:
    return None if value is None else float(value)


def _record(value: Any) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise ValueError(f"expected a mapping, got {type(value).__name__}")
    return value


def _number(value: Any) -> float:
    # ints stay ints so whole answers round-trip unchanged
    if isinstance(value, bool):
        raise TypeError("expected a number, got bool")
    if isinstance(value, int):
        return value
    return float(value)


@dataclass(frozen=True, slots=True)
class Problem:
    id: str
    operand1: float
    operand2: float
    operation: Operation
    correct_answer: float
    difficulty: Difficulty = Difficulty.BEGINNER
    user_answer: float | None = None
    time_spent: float | None = None
    is_correct: bool | None = None
    base_points: float = 0
    bonus_points: float = 0

    @property
    def answered(self) -> bool:
        return self.user_answer is not None

    def with_answer(
        self,
        *,
        user_answer: float,
        time_spent: float,
        is_correct: bool,
        base_points: float,
        bonus_points: float,
    ) -> Problem:
        """Return the answered copy. A problem is answered at most once."""

        if self.user_answer is not None:
            raise ValueError(f"problem {self.id} already answered")
        return replace(
            self,
            user_answer=user_answer,
            time_spent=float(time_spent),
            is_correct=bool(is_correct),
            base_points=base_points,
            bonus_points=bonus_points,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "operand1": self.operand1,
            "operand2": self.operand2,
            "operation": self.operation.value,
            "correct_answer": self.correct_answer,
            "difficulty": self.difficulty.value,
            "user_answer": self.user_answer,
            "time_spent": self.time_spent,
            "is_correct": self.is_correct,
            "base_points": self.base_points,
            "bonus_points": self.bonus_points,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Problem:
        user_answer = raw.get("user_answer")
        is_correct = raw.get("is_correct")
        if (user_answer is None) != (is_correct is None):
            raise ValueError("is_correct must be set iff user_answer is set")
        return cls(
            id=str(raw["id"]),
            operand1=_number(raw["operand1"]),
            operand2=_number(raw["operand2"]),
            operation=Operation(raw["operation"]),
            correct_answer=_number(raw["correct_answer"]),
            difficulty=Difficulty(raw.get("difficulty", Difficulty.BEGINNER.value)),
            user_answer=None if user_answer is None else _number(user_answer),
            time_spent=_opt_float(raw.get("time_spent")),
            is_correct=None if is_correct is None else bool(is_correct),
            base_points=_number(raw.get("base_points", 0)),
            bonus_points=_number(raw.get("bonus_points", 0)),
        )


@dataclass(frozen=True, slots=True)
class GameSession:
    id: str
    mode: Mode
    difficulty: Difficulty
    operations: tuple[Operation, ...]
    problems: tuple[Problem, ...]
    start_time: float
    end_time: float | None = None
    score: float = 0  # live points accumulated during play
    summary_score: int = 0  # normalized analytics score, set at end
    accuracy: float = 0.0
    average_time: float = 0.0
    total_time: float = 0.0
    challenge_mode: ChallengeMode | None = None

    def completed_problems(self) -> list[Problem]:
        return [p for p in self.problems if p.user_answer is not None]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "mode": self.mode.value,
            "difficulty": self.difficulty.value,
            "operations": [op.value for op in self.operations],
            "problems": [p.to_dict() for p in self.problems],
            "start_time": self.start_time,
            "end_time": self.end_time,
            "score": self.score,
            "summary_score": self.summary_score,
            "accuracy": self.accuracy,
            "average_time": self.average_time,
            "total_time": self.total_time,
            "challenge_mode": None if self.challenge_mode is None else self.challenge_mode.value,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> GameSession:
        challenge = raw.get("challenge_mode")
        return cls(
            id=str(raw["id"]),
            mode=Mode(raw["mode"]),
            difficulty=Difficulty(raw["difficulty"]),
            operations=tuple(Operation(op) for op in raw.get("operations", [])),
            problems=tuple(Problem.from_dict(_record(p)) for p in raw.get("problems", [])),
            start_time=float(raw["start_time"]),
            end_time=_opt_float(raw.get("end_time")),
            score=_number(raw.get("score", 0)),
            summary_score=int(raw.get("summary_score", 0)),
            accuracy=float(raw.get("accuracy", 0.0)),
            average_time=float(raw.get("average_time", 0.0)),
            total_time=float(raw.get("total_time", 0.0)),
            challenge_mode=None if challenge is None else ChallengeMode(challenge),
        )


@dataclass(frozen=True, slots=True)
class OperationStats:
    attempted: int = 0
    correct: int = 0
    average_time: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {"attempted": self.attempted, "correct": self.correct, "average_time": self.average_time}

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> OperationStats:
        return cls(
            attempted=int(raw.get("attempted", 0)),
            correct=int(raw.get("correct", 0)),
            average_time=float(raw.get("average_time", 0.0)),
        )


@dataclass(frozen=True, slots=True)
class ModeRecord:
    best_score: float
    best_accuracy: float
    best_time: float
    session_id: str
    achieved_at: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "best_score": self.best_score,
            "best_accuracy": self.best_accuracy,
            "best_time": self.best_time,
            "session_id": self.session_id,
            "achieved_at": self.achieved_at,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> ModeRecord:
        return cls(
            best_score=_number(raw["best_score"]),
            best_accuracy=float(raw["best_accuracy"]),
            best_time=float(raw["best_time"]),
            session_id=str(raw["session_id"]),
            achieved_at=float(raw["achieved_at"]),
        )


def _blank_operation_stats() -> dict[Operation, OperationStats]:
    return {op: OperationStats() for op in Operation}


def _blank_difficulty_stats() -> dict[Difficulty, OperationStats]:
    return {d: OperationStats() for d in Difficulty}


def _blank_mode_records() -> dict[Mode, ModeRecord | None]:
    return {m: None for m in Mode}


@dataclass(frozen=True, slots=True)
class UserStats:
    total_problems: int = 0
    correct_answers: int = 0
    total_time: float = 0.0
    streak_current: int = 0
    streak_best: int = 0
    operation_stats: dict[Operation, OperationStats] = field(default_factory=_blank_operation_stats)
    difficulty_stats: dict[Difficulty, OperationStats] = field(default_factory=_blank_difficulty_stats)
    mode_records: dict[Mode, ModeRecord | None] = field(default_factory=_blank_mode_records)
    sessions: tuple[GameSession, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_problems": self.total_problems,
            "correct_answers": self.correct_answers,
            "total_time": self.total_time,
            "streak_current": self.streak_current,
            "streak_best": self.streak_best,
            "operation_stats": {op.value: s.to_dict() for op, s in self.operation_stats.items()},
            "difficulty_stats": {d.value: s.to_dict() for d, s in self.difficulty_stats.items()},
            "mode_records": {
                m.value: None if r is None else r.to_dict() for m, r in self.mode_records.items()
            },
            "sessions": [s.to_dict() for s in self.sessions],
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> UserStats:
        op_stats = _blank_operation_stats()
        for key, value in _record(raw.get("operation_stats") or {}).items():
            op_stats[Operation(key)] = OperationStats.from_dict(_record(value))

        diff_stats = _blank_difficulty_stats()
        for key, value in _record(raw.get("difficulty_stats") or {}).items():
            diff_stats[Difficulty(key)] = OperationStats.from_dict(_record(value))

        records = _blank_mode_records()
        for key, value in _record(raw.get("mode_records") or {}).items():
            records[Mode(key)] = None if value is None else ModeRecord.from_dict(_record(value))

        sessions = tuple(GameSession.from_dict(_record(s)) for s in raw.get("sessions", []))
        return cls(
            total_problems=int(raw.get("total_problems", 0)),
            correct_answers=int(raw.get("correct_answers", 0)),
            total_time=float(raw.get("total_time", 0.0)),
            streak_current=int(raw.get("streak_current", 0)),
            streak_best=int(raw.get("streak_best", 0)),
            operation_stats=op_stats,
            difficulty_stats=diff_stats,
            mode_records=records,
            sessions=sessions[:SESSION_HISTORY_CAP],
        )


@dataclass(frozen=True, slots=True)
class NumberSettings:
    digits: int = 2
    allow_negatives: bool = False
    include_non_integers: bool = False

    def __post_init__(self) -> None:
        if self.digits < 1:
            raise ValueError("digits must be >= 1")

    def to_dict(self) -> dict[str, Any]:
        return {
            "digits": self.digits,
            "allow_negatives": self.allow_negatives,
            "include_non_integers": self.include_non_integers,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> NumberSettings:
        return cls(
            digits=int(raw.get("digits", 2)),
            allow_negatives=bool(raw.get("allow_negatives", False)),
            include_non_integers=bool(raw.get("include_non_integers", False)),
        )


@dataclass(frozen=True, slots=True)
class CustomModeSettings:
    difficulty: Difficulty = Difficulty.BEGINNER
    number_settings: NumberSettings = field(default_factory=NumberSettings)
    speed_bonus_enabled: bool = True
    streak_bonus_enabled: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "difficulty": self.difficulty.value,
            "number_settings": self.number_settings.to_dict(),
            "speed_bonus_enabled": self.speed_bonus_enabled,
            "streak_bonus_enabled": self.streak_bonus_enabled,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> CustomModeSettings:
        return cls(
            difficulty=Difficulty(raw.get("difficulty", Difficulty.BEGINNER.value)),
            number_settings=NumberSettings.from_dict(_record(raw.get("number_settings") or {})),
            speed_bonus_enabled=bool(raw.get("speed_bonus_enabled", True)),
            streak_bonus_enabled=bool(raw.get("streak_bonus_enabled", True)),
        )


@dataclass(frozen=True, slots=True)
class GameSettings:
    difficulty: Difficulty = Difficulty.BEGINNER
    operations: tuple[Operation, ...] = (Operation.ADDITION, Operation.SUBTRACTION)
    mode: Mode = Mode.PRACTICE
    time_limit: int | None = 300
    problem_count: int = 10
    sound_enabled: bool = True
    show_hints: bool = True
    number_display_mode: NumberDisplayMode = NumberDisplayMode.DECIMAL
    challenge_mode: ChallengeMode | None = None
    custom_mode_settings: CustomModeSettings = field(default_factory=CustomModeSettings)

    def __post_init__(self) -> None:
        if not self.operations:
            raise ValueError("operations must not be empty")
        if self.problem_count < 1:
            raise ValueError("problem_count must be >= 1")
        if self.time_limit is not None and self.time_limit <= 0:
            raise ValueError("time_limit must be > 0")

    def merged(self, override: dict[str, Any] | None = None) -> GameSettings:
        """Return a copy with ``override`` applied (unknown keys raise TypeError).

        Enum fields accept their string values and ``custom_mode_settings``
        accepts the stored dict shape.
        """

        if not override:
            return self
        changes = dict(override)
        if "operations" in changes:
            changes["operations"] = tuple(Operation(op) for op in changes["operations"])
        if isinstance(changes.get("custom_mode_settings"), dict):
            changes["custom_mode_settings"] = CustomModeSettings.from_dict(changes["custom_mode_settings"])
        for key, enum_type in _SETTINGS_ENUMS.items():
            if changes.get(key) is not None:
                changes[key] = enum_type(changes[key])
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "difficulty": self.difficulty.value,
            "operations": [op.value for op in self.operations],
            "mode": self.mode.value,
            "time_limit": self.time_limit,
            "problem_count": self.problem_count,
            "sound_enabled": self.sound_enabled,
            "show_hints": self.show_hints,
            "number_display_mode": self.number_display_mode.value,
            "challenge_mode": None if self.challenge_mode is None else self.challenge_mode.value,
            "custom_mode_settings": self.custom_mode_settings.to_dict(),
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> GameSettings:
        defaults = cls()
        challenge = raw.get("challenge_mode")
        time_limit = raw.get("time_limit", defaults.time_limit)
        operations = raw.get("operations")
        return cls(
            difficulty=Difficulty(raw.get("difficulty", defaults.difficulty.value)),
            operations=defaults.operations
            if operations is None
            else tuple(Operation(op) for op in operations),
            mode=Mode(raw.get("mode", defaults.mode.value)),
            time_limit=None if time_limit is None else int(time_limit),
            problem_count=int(raw.get("problem_count", defaults.problem_count)),
            sound_enabled=bool(raw.get("sound_enabled", defaults.sound_enabled)),
            show_hints=bool(raw.get("show_hints", defaults.show_hints)),
            number_display_mode=NumberDisplayMode(
                raw.get("number_display_mode", defaults.number_display_mode.value)
            ),
            challenge_mode=None if challenge is None else ChallengeMode(challenge),
            custom_mode_settings=CustomModeSettings.from_dict(_record(raw.get("custom_mode_settings") or {})),
        )


_SETTINGS_ENUMS: dict[str, type[Enum]] = {
    "difficulty": Difficulty,
    "mode": Mode,
    "number_display_mode": NumberDisplayMode,
    "challenge_mode": ChallengeMode,
}
