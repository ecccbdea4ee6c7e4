"""Session engine: IDLE -> ACTIVE <-> PAUSED -> ENDED.

State lives in a single frozen :class:`EngineState`. The module-level
transition functions are pure ``(state, ...) -> state``; :class:`SessionEngine`
owns the current state and performs the side effects around them (problem
generation, timers, persistence, logging).

Time is entirely via injected clocks and the timer queue. The host loop calls
:meth:`SessionEngine.update` once per frame to let countdown ticks and
reveal-then-advance callbacks fire.

Guard conditions (no active session, paused, already answered) are silent
no-ops: they are the normal result of UI timing races, not programming errors.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from .analytics import calculate_session_stats, update_user_stats
from .clock import Clock, TimerHandle, TimerQueue, WallClock
from .formatting import problem_text
from .models import GameSession, GameSettings, Problem, SpeedRating, UserStats
from .problem_generator import ProblemGenerator, validate_answer
from .randomness import IdGenerator, Uuid4Ids
from .scoring import ScoreBreakdown, calculate_problem_score, speed_rating, streak_milestone_bonus
from .settings import EffectiveSettings, resolve_effective_settings
from .storage import StorageGateway

logger = logging.getLogger(__name__)

TICK_INTERVAL_S = 1.0
REVEAL_CORRECT_S = 1.0
REVEAL_INCORRECT_S = 2.0


class EnginePhase(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"
    PAUSED = "paused"
    ENDED = "ended"


@dataclass(frozen=True, slots=True)
class EngineState:
    settings: GameSettings = field(default_factory=GameSettings)
    user_stats: UserStats = field(default_factory=UserStats)
    phase: EnginePhase = EnginePhase.IDLE
    session: GameSession | None = None
    effective: EffectiveSettings | None = None
    problem_index: int = 0
    streak: int = 0
    time_remaining: int | None = None
    problem_started_at: float | None = None

    @property
    def current_problem(self) -> Problem | None:
        if self.session is None or not (0 <= self.problem_index < len(self.session.problems)):
            return None
        return self.session.problems[self.problem_index]

    @property
    def in_progress(self) -> bool:
        return self.phase in (EnginePhase.ACTIVE, EnginePhase.PAUSED)


@dataclass(frozen=True, slots=True)
class Submission:
    """What the UI needs to reveal the outcome of one answer."""

    problem: Problem
    score: ScoreBreakdown
    streak: int
    speed_rating: SpeedRating
    milestone_bonus: int

    @property
    def is_correct(self) -> bool:
        return bool(self.problem.is_correct)

    @property
    def reveal_s(self) -> float:
        return REVEAL_CORRECT_S if self.is_correct else REVEAL_INCORRECT_S


@dataclass(frozen=True, slots=True)
class EngineSnapshot:
    """View model for the UI (pure data)."""

    phase: EnginePhase
    prompt: str
    problem: Problem | None
    problem_number: int
    problem_count: int
    score: float
    streak: int
    time_remaining_s: int | None
    reveal_pending: bool


# -- pure transitions ---------------------------------------------------------


def start_session(
    state: EngineState,
    *,
    settings: GameSettings,
    effective: EffectiveSettings,
    problems: list[Problem],
    session_id: str,
    started_at: float,
    now: float,
) -> EngineState:
    if state.in_progress:
        return state
    session = GameSession(
        id=session_id,
        mode=settings.mode,
        difficulty=effective.difficulty,
        operations=tuple(settings.operations),
        problems=tuple(problems),
        start_time=started_at,
        challenge_mode=effective.challenge_mode,
    )
    return replace(
        state,
        settings=settings,
        effective=effective,
        phase=EnginePhase.ACTIVE,
        session=session,
        problem_index=0,
        streak=0,
        time_remaining=effective.time_limit,
        problem_started_at=now,
    )


def record_answer(state: EngineState, *, answer: float, now: float) -> tuple[EngineState, Submission | None]:
    """Answer the current problem once. Does not advance the cursor."""

    if state.phase is not EnginePhase.ACTIVE or state.session is None:
        return state, None
    problem = state.current_problem
    if problem is None or problem.answered:
        return state, None

    anchor = state.problem_started_at if state.problem_started_at is not None else now
    time_spent = max(0.0, now - anchor)
    is_correct = validate_answer(problem, answer)

    # Scored on the pre-update streak.
    candidate = replace(problem, user_answer=answer, time_spent=time_spent, is_correct=is_correct)
    challenge = state.effective.challenge_mode if state.effective is not None else None
    score = calculate_problem_score(candidate, challenge, state.streak)

    answered = problem.with_answer(
        user_answer=answer,
        time_spent=time_spent,
        is_correct=is_correct,
        base_points=score.base_points,
        bonus_points=score.bonus_points,
    )
    problems = list(state.session.problems)
    problems[state.problem_index] = answered
    streak = state.streak + 1 if is_correct else 0

    session = replace(state.session, problems=tuple(problems), score=state.session.score + score.total_points)
    new_state = replace(state, session=session, streak=streak, problem_started_at=now)
    return new_state, Submission(
        problem=answered,
        score=score,
        streak=streak,
        speed_rating=speed_rating(time_spent, answered.difficulty),
        milestone_bonus=streak_milestone_bonus(streak) if is_correct else 0,
    )


def advance(state: EngineState, *, now: float) -> tuple[EngineState, bool]:
    """Move to the next problem. Returns ``(state, exhausted)``.

    ``exhausted`` means the last problem was just finished and the caller must
    end the session instead.
    """

    if state.phase is not EnginePhase.ACTIVE or state.session is None:
        return state, False
    problem = state.current_problem
    if problem is None or not problem.answered:
        return state, False
    next_index = state.problem_index + 1
    if next_index >= len(state.session.problems):
        return state, True
    return replace(state, problem_index=next_index, problem_started_at=now), False


def pause(state: EngineState) -> EngineState:
    if state.phase is not EnginePhase.ACTIVE:
        return state
    return replace(state, phase=EnginePhase.PAUSED)


def resume(state: EngineState, *, now: float) -> EngineState:
    if state.phase is not EnginePhase.PAUSED:
        return state
    # Paused time is never charged to the current problem.
    return replace(state, phase=EnginePhase.ACTIVE, problem_started_at=now)


def tick(state: EngineState) -> tuple[EngineState, bool]:
    """One countdown second. Returns ``(state, expired)``."""

    if state.phase is not EnginePhase.ACTIVE or state.time_remaining is None:
        return state, False
    if state.time_remaining <= 0:
        return state, True
    remaining = state.time_remaining - 1
    return replace(state, time_remaining=remaining), remaining <= 0


def finish(state: EngineState, *, ended_at: float) -> EngineState:
    if not state.in_progress or state.session is None:
        return state
    stamped = replace(state.session, end_time=ended_at)
    stats = calculate_session_stats(stamped)
    final = replace(
        stamped,
        summary_score=stats.score,
        accuracy=stats.accuracy,
        average_time=stats.average_time,
        total_time=stats.total_time,
    )
    return replace(
        state,
        phase=EnginePhase.ENDED,
        session=final,
        user_stats=update_user_stats(state.user_stats, final),
        time_remaining=None,
        problem_started_at=None,
    )


def reset_state(state: EngineState) -> EngineState:
    return EngineState(settings=state.settings, user_stats=state.user_stats)


# -- engine -------------------------------------------------------------------


class SessionEngine:
    """Owns the live session and wires transitions to generation, timers and storage."""

    def __init__(
        self,
        *,
        storage: StorageGateway,
        clock: Clock,
        timers: TimerQueue | None = None,
        generator: ProblemGenerator | None = None,
        ids: IdGenerator | None = None,
        wall_clock: Clock | None = None,
    ) -> None:
        self._storage = storage
        self._clock = clock
        self._timers = timers if timers is not None else TimerQueue(clock)
        self._ids = ids if ids is not None else Uuid4Ids()
        self._generator = generator if generator is not None else ProblemGenerator(ids=self._ids)
        self._wall_clock = wall_clock if wall_clock is not None else WallClock()

        self._state = EngineState(
            settings=storage.get_game_settings(),
            user_stats=storage.get_user_stats(),
        )
        self._ticker: TimerHandle | None = None
        self._reveal: TimerHandle | None = None
        self._reveal_on_resume = False

    # read-only views

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def phase(self) -> EnginePhase:
        return self._state.phase

    @property
    def session(self) -> GameSession | None:
        return self._state.session

    @property
    def current_problem(self) -> Problem | None:
        return self._state.current_problem

    @property
    def time_remaining(self) -> int | None:
        return self._state.time_remaining

    @property
    def settings(self) -> GameSettings:
        return self._state.settings

    @property
    def user_stats(self) -> UserStats:
        return self._state.user_stats

    @property
    def reveal_pending(self) -> bool:
        return self._reveal is not None and self._reveal.active

    def snapshot(self) -> EngineSnapshot:
        s = self._state
        problem = s.current_problem
        prompt = "" if problem is None else problem_text(problem, s.settings.number_display_mode)
        return EngineSnapshot(
            phase=s.phase,
            prompt=prompt,
            problem=problem,
            problem_number=0 if s.session is None else s.problem_index + 1,
            problem_count=0 if s.session is None else len(s.session.problems),
            score=0 if s.session is None else s.session.score,
            streak=s.streak,
            time_remaining_s=s.time_remaining,
            reveal_pending=self.reveal_pending,
        )

    def update(self) -> None:
        """Fire due countdown ticks and reveal callbacks. Call once per frame."""

        self._timers.run_due()

    # lifecycle

    def start_game(self, settings_override: dict[str, Any] | None = None) -> GameSession | None:
        if self._state.in_progress:
            logger.debug("start_game ignored in phase %s", self._state.phase.value)
            return None

        settings = self._state.settings.merged(settings_override)
        effective = resolve_effective_settings(settings)
        problems = self._generator.generate_problems(
            settings.operations,
            effective.difficulty,
            settings.problem_count,
            effective.custom,
        )
        self._cancel_timers()
        self._state = start_session(
            self._state,
            settings=settings,
            effective=effective,
            problems=problems,
            session_id=self._ids.new_id(),
            started_at=self._wall_clock.now(),
            now=self._clock.now(),
        )
        self._persist(self._storage.save_game_settings, settings, what="game settings")
        self._arm_ticker()

        session = self._state.session
        assert session is not None
        logger.info(
            "Session %s started: mode=%s difficulty=%s problems=%d",
            session.id,
            session.mode.value,
            session.difficulty.value,
            len(session.problems),
        )
        return session

    def submit_answer(self, answer: float) -> Submission | None:
        self._state, submission = record_answer(self._state, answer=answer, now=self._clock.now())
        if submission is None:
            logger.debug("submit_answer ignored in phase %s", self._state.phase.value)
        return submission

    def submit_and_reveal(self, answer: float) -> Submission | None:
        """Submit, then advance automatically after the reveal dwell (1 s correct, 2 s incorrect)."""

        submission = self.submit_answer(answer)
        if submission is not None:
            self._schedule_reveal(submission.reveal_s)
        return submission

    def next_problem(self) -> None:
        self._cancel_reveal()
        self._state, exhausted = advance(self._state, now=self._clock.now())
        if exhausted:
            self.end_game()

    def pause_game(self) -> None:
        if self._state.phase is not EnginePhase.ACTIVE:
            return
        pending = self.reveal_pending
        self._cancel_timers()
        self._reveal_on_resume = pending
        self._state = pause(self._state)
        logger.info("Session paused")

    def resume_game(self) -> None:
        if self._state.phase is not EnginePhase.PAUSED:
            return
        self._state = resume(self._state, now=self._clock.now())
        self._arm_ticker()
        if self._reveal_on_resume:
            problem = self._state.current_problem
            self._schedule_reveal(REVEAL_CORRECT_S if problem and problem.is_correct else REVEAL_INCORRECT_S)
        self._reveal_on_resume = False
        logger.info("Session resumed")

    def end_game(self) -> GameSession | None:
        if not self._state.in_progress:
            return None
        self._cancel_timers()
        self._state = finish(self._state, ended_at=self._wall_clock.now())
        session = self._state.session
        assert session is not None

        self._persist(self._storage.save_user_stats, self._state.user_stats, what="user stats")
        self._persist(self._storage.save_session, session, what="session")
        logger.info(
            "Session %s ended: score=%s accuracy=%.2f answered=%d/%d",
            session.id,
            session.score,
            session.accuracy,
            len(session.completed_problems()),
            len(session.problems),
        )
        return session

    def reset(self) -> None:
        """Abandon any session without recording it and return to IDLE."""

        self._cancel_timers()
        self._state = reset_state(self._state)

    # configuration / storage pass-throughs

    def update_settings(self, changes: dict[str, Any]) -> GameSettings:
        settings = self._state.settings.merged(changes)
        self._state = replace(self._state, settings=settings)
        self._persist(self._storage.save_game_settings, settings, what="game settings")
        return settings

    def reset_stats(self) -> None:
        self._cancel_timers()
        self._persist(self._storage.clear_all_data, what="all data")
        self._state = EngineState(
            settings=self._storage.get_game_settings(),
            user_stats=self._storage.get_user_stats(),
        )

    def load_data(self) -> None:
        self._state = replace(
            self._state,
            settings=self._storage.get_game_settings(),
            user_stats=self._storage.get_user_stats(),
        )

    # timers

    def _arm_ticker(self) -> None:
        if self._state.time_remaining is None or self._state.session is None:
            return
        session_id = self._state.session.id
        self._ticker = self._timers.call_every(TICK_INTERVAL_S, lambda: self._on_tick(session_id))

    def _on_tick(self, session_id: str) -> None:
        session = self._state.session
        if session is None or session.id != session_id or self._state.phase is not EnginePhase.ACTIVE:
            # Superseded session; drop the stale ticker.
            if self._ticker is not None:
                self._ticker.cancel()
            return
        self._state, expired = tick(self._state)
        if expired:
            logger.info("Session %s timed out", session_id)
            self.end_game()

    def _schedule_reveal(self, dwell_s: float) -> None:
        self._cancel_reveal()
        session = self._state.session
        problem = self._state.current_problem
        if session is None or problem is None:
            return
        session_id, problem_id = session.id, problem.id
        self._reveal = self._timers.call_later(dwell_s, lambda: self._on_reveal_done(session_id, problem_id))

    def _on_reveal_done(self, session_id: str, problem_id: str) -> None:
        self._reveal = None
        session = self._state.session
        problem = self._state.current_problem
        if session is None or session.id != session_id or problem is None or problem.id != problem_id:
            return
        self.next_problem()

    def _cancel_reveal(self) -> None:
        if self._reveal is not None:
            self._reveal.cancel()
            self._reveal = None

    def _cancel_timers(self) -> None:
        self._cancel_reveal()
        self._reveal_on_resume = False
        if self._ticker is not None:
            self._ticker.cancel()
            self._ticker = None

    def _persist(self, save: Callable[..., None], *args: Any, what: str) -> None:
        try:
            save(*args)
        except Exception:
            logger.exception("Error persisting %s", what)
