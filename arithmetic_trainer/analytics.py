"""Session summaries and lifetime statistics.

Everything here is pure: functions take records and return new ones.
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass, replace

from .models import (
    SESSION_HISTORY_CAP,
    Difficulty,
    GameSession,
    Mode,
    ModeRecord,
    Operation,
    OperationStats,
    Problem,
    UserStats,
)


@dataclass(frozen=True, slots=True)
class SessionStats:
    score: int
    accuracy: float
    average_time: float
    total_time: float


@dataclass(frozen=True, slots=True)
class PerformanceInsights:
    weakest_operation: Operation | None
    strongest_operation: Operation | None
    recommended_difficulty: Difficulty
    improvement_areas: list[str]


def round_half_up(x: float) -> int:
    # For consistent educational-style rounding when needed.
    return int(math.floor(x + 0.5))


def _round2(x: float) -> float:
    return round(x, 2)


def calculate_session_stats(session: GameSession) -> SessionStats:
    completed = session.completed_problems()
    correct = sum(1 for p in completed if p.is_correct)
    total_time = sum(p.time_spent or 0.0 for p in completed)
    average_time = total_time / len(completed) if completed else 0.0
    accuracy = correct / len(completed) * 100 if completed else 0.0

    return SessionStats(
        score=round_half_up(accuracy * len(completed) / 10),
        accuracy=_round2(accuracy),
        average_time=_round2(average_time),
        total_time=_round2(total_time),
    )


def trailing_streak(problems: Iterable[Problem]) -> int:
    """Length of the run of correct answers at the end; unanswered problems are skipped."""

    streak = 0
    for problem in reversed(list(problems)):
        if problem.user_answer is None:
            continue
        if not problem.is_correct:
            break
        streak += 1
    return streak


def _fold(current: OperationStats, problems: list[Problem]) -> OperationStats:
    if not problems:
        return current
    attempted = current.attempted + len(problems)
    new_time = sum(p.time_spent or 0.0 for p in problems)
    average = (current.average_time * current.attempted + new_time) / attempted
    return OperationStats(
        attempted=attempted,
        correct=current.correct + sum(1 for p in problems if p.is_correct),
        average_time=_round2(average),
    )


def session_elapsed_s(session: GameSession, stats: SessionStats) -> float:
    if session.end_time is not None:
        return session.end_time - session.start_time
    return stats.total_time


def is_new_record(record: ModeRecord | None, score: float, accuracy: float, time_s: float) -> bool:
    """Score first, then accuracy, then (lower) time. A full tie is not a record."""

    if record is None:
        return True
    if score != record.best_score:
        return score > record.best_score
    if accuracy != record.best_accuracy:
        return accuracy > record.best_accuracy
    return time_s < record.best_time


def update_mode_records(
    records: dict[Mode, ModeRecord | None],
    session: GameSession,
    stats: SessionStats,
    *,
    achieved_at: float,
) -> dict[Mode, ModeRecord | None]:
    updated = dict(records)
    elapsed = session_elapsed_s(session, stats)
    if is_new_record(updated.get(session.mode), stats.score, stats.accuracy, elapsed):
        updated[session.mode] = ModeRecord(
            best_score=stats.score,
            best_accuracy=stats.accuracy,
            best_time=elapsed,
            session_id=session.id,
            achieved_at=achieved_at,
        )
    return updated


def update_user_stats(stats: UserStats, session: GameSession) -> UserStats:
    """Fold a finished session into lifetime statistics."""

    summary = calculate_session_stats(session)
    completed = session.completed_problems()

    by_op = dict(stats.operation_stats)
    for op in Operation:
        group = [p for p in completed if p.operation is op]
        by_op[op] = _fold(by_op.get(op, OperationStats()), group)

    by_difficulty = dict(stats.difficulty_stats)
    by_difficulty[session.difficulty] = _fold(
        by_difficulty.get(session.difficulty, OperationStats()), completed
    )

    streak = trailing_streak(session.problems)
    achieved_at = session.end_time if session.end_time is not None else session.start_time

    return replace(
        stats,
        total_problems=stats.total_problems + len(completed),
        correct_answers=stats.correct_answers + sum(1 for p in completed if p.is_correct),
        total_time=stats.total_time + summary.total_time,
        streak_current=streak,
        streak_best=max(stats.streak_best, streak),
        operation_stats=by_op,
        difficulty_stats=by_difficulty,
        mode_records=update_mode_records(stats.mode_records, session, summary, achieved_at=achieved_at),
        sessions=(session, *stats.sessions)[:SESSION_HISTORY_CAP],
    )


def get_performance_insights(stats: UserStats) -> PerformanceInsights:
    accuracies: list[tuple[Operation, float]] = []
    for op in Operation:
        s = stats.operation_stats.get(op, OperationStats())
        if s.attempted > 0:
            accuracies.append((op, s.correct / s.attempted * 100))

    weakest: Operation | None = None
    strongest: Operation | None = None
    if accuracies:
        # min/max keep the first operation on ties
        weakest = min(accuracies, key=lambda item: item[1])[0]
        strongest = max(accuracies, key=lambda item: item[1])[0]

    total = stats.total_problems
    overall = stats.correct_answers / total * 100 if total > 0 else 0.0

    recommended = Difficulty.BEGINNER
    if overall > 90 and total > 50:
        recommended = Difficulty.ADVANCED
    elif overall > 75 and total > 20:
        recommended = Difficulty.INTERMEDIATE

    areas: list[str] = []
    if overall < 70:
        areas.append("Focus on accuracy over speed")
    if total > 0 and stats.total_time / total > 10:
        areas.append("Practice for faster problem solving")
    if weakest is not None:
        areas.append(f"Practice more {weakest.value} problems")

    return PerformanceInsights(
        weakest_operation=weakest,
        strongest_operation=strongest,
        recommended_difficulty=recommended,
        improvement_areas=areas,
    )
