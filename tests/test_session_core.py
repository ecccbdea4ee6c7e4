from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

import pytest

from arithmetic_trainer.models import (
    CustomModeSettings,
    Difficulty,
    GameSession,
    GameSettings,
    Mode,
    NumberSettings,
    Operation,
    Problem,
    UserStats,
)
from arithmetic_trainer.problem_generator import ProblemGenerator
from arithmetic_trainer.randomness import SeededRng, SequentialIds
from arithmetic_trainer.session import EnginePhase, EngineState, SessionEngine, record_answer, tick
from arithmetic_trainer.storage import GAME_SETTINGS_KEY, USER_STATS_KEY, MemoryStore


@dataclass
class FakeClock:
    t: float = 0.0

    def now(self) -> float:
        return self.t

    def advance(self, dt: float) -> None:
        self.t += dt


class ScriptedGenerator(ProblemGenerator):
    """Serves a fixed problem list so tests know every operand up front."""

    def __init__(self, problems: list[Problem]) -> None:
        super().__init__(rng=SeededRng(0), ids=SequentialIds("p"))
        self._problems = problems

    def generate_problems(
        self,
        operations: Sequence[Operation | str],
        difficulty: Difficulty | str,
        count: int,
        custom_settings: CustomModeSettings | None = None,
    ) -> list[Problem]:
        return list(self._problems[:count])


class ExplodingStore(MemoryStore):
    def save_user_stats(self, stats: UserStats) -> None:
        raise RuntimeError("disk full")

    def save_session(self, session: GameSession) -> None:
        raise RuntimeError("disk full")


def _engine(clock: FakeClock, *, store: MemoryStore | None = None,
            generator: ProblemGenerator | None = None) -> SessionEngine:
    return SessionEngine(
        storage=store if store is not None else MemoryStore(),
        clock=clock,
        generator=generator if generator is not None else ProblemGenerator(rng=SeededRng(42), ids=SequentialIds("p")),
        ids=SequentialIds("s"),
        wall_clock=clock,
    )


def _addition(i: int, a: int, b: int) -> Problem:
    return Problem(id=f"q{i}", operand1=a, operand2=b, operation=Operation.ADDITION, correct_answer=a + b)


def _answer_current(engine: SessionEngine, clock: FakeClock, *, correct: bool = True, dt: float = 2.0) -> None:
    problem = engine.current_problem
    assert problem is not None
    clock.advance(dt)
    engine.submit_answer(problem.correct_answer if correct else problem.correct_answer + 1)


def test_start_game_creates_an_active_session() -> None:
    clock = FakeClock()
    store = MemoryStore()
    engine = _engine(clock, store=store)

    assert engine.phase is EnginePhase.IDLE
    session = engine.start_game()

    assert session is not None
    assert engine.phase is EnginePhase.ACTIVE
    assert session.id == "s-1"
    assert len(session.problems) == 10
    assert session.score == 0
    assert session.end_time is None
    assert engine.state.streak == 0
    assert engine.time_remaining is None
    assert {p.operation for p in session.problems} <= {Operation.ADDITION, Operation.SUBTRACTION}
    assert store.get_game_settings() == engine.settings


def test_only_timed_mode_gets_a_countdown() -> None:
    engine = _engine(FakeClock())
    engine.start_game({"mode": "timed", "time_limit": 90})
    assert engine.settings.mode is Mode.TIMED
    assert engine.time_remaining == 90


def test_score_is_base_points_per_correct_answer() -> None:
    clock = FakeClock()
    engine = _engine(clock)
    engine.start_game({"problem_count": 5})

    for _ in range(3):
        _answer_current(engine, clock)
        engine.next_problem()

    assert engine.session is not None
    assert engine.session.score == 3 * 10
    assert engine.state.streak == 3


def test_incorrect_answer_keeps_score_and_resets_streak() -> None:
    clock = FakeClock()
    engine = _engine(clock)
    engine.start_game()

    _answer_current(engine, clock)
    engine.next_problem()
    _answer_current(engine, clock, correct=False)

    assert engine.session is not None
    assert engine.session.score == 10
    assert engine.state.streak == 0
    problem = engine.current_problem
    assert problem is not None
    assert problem.is_correct is False
    assert (problem.base_points, problem.bonus_points) == (0, 0)


def test_submitting_twice_applies_once() -> None:
    clock = FakeClock()
    engine = _engine(clock)
    engine.start_game()
    problem = engine.current_problem
    assert problem is not None

    clock.advance(1.0)
    first = engine.submit_answer(problem.correct_answer)
    clock.advance(1.0)
    second = engine.submit_answer(problem.correct_answer + 5)

    assert first is not None and second is None
    assert engine.session is not None
    assert engine.session.score == 10
    assert engine.state.streak == 1
    answered = engine.current_problem
    assert answered is not None
    assert answered.user_answer == problem.correct_answer
    assert answered.time_spent == 1.0


def test_beginner_addition_scenario() -> None:
    clock = FakeClock()
    engine = _engine(clock, generator=ScriptedGenerator([_addition(1, 4, 3)]))
    engine.start_game({"problem_count": 1, "operations": ["addition"]})

    assert engine.snapshot().prompt == "4 + 3 ="
    clock.advance(4.0)
    submission = engine.submit_answer(7)

    assert submission is not None
    assert submission.problem.correct_answer == 7
    assert submission.is_correct is True
    assert submission.score.base_points == 10
    assert submission.reveal_s == 1.0


def test_custom_speed_challenge_scenario() -> None:
    clock = FakeClock()
    engine = _engine(clock)
    engine.start_game(
        {
            "mode": "custom",
            "challenge_mode": "speed",
            "custom_mode_settings": CustomModeSettings(
                difficulty=Difficulty.BEGINNER,
                number_settings=NumberSettings(digits=1),
            ),
        }
    )
    problem = engine.current_problem
    assert problem is not None
    assert 1 <= abs(problem.operand1) <= 9

    clock.advance(1.0)
    submission = engine.submit_answer(problem.correct_answer)

    assert submission is not None
    assert submission.score.base_points == 10
    assert submission.score.bonus_points == 10
    assert submission.score.total_points == 20
    assert engine.session is not None
    assert engine.session.score == 20


def test_custom_settings_override_accepts_the_stored_dict_shape() -> None:
    clock = FakeClock()
    engine = _engine(clock)
    session = engine.start_game({"mode": "custom", "custom_mode_settings": {"number_settings": {"digits": 1}}})

    assert session is not None
    assert engine.settings.custom_mode_settings == CustomModeSettings(number_settings=NumberSettings(digits=1))
    assert all(1 <= abs(p.operand1) <= 9 for p in session.problems)

    engine.end_game()
    engine.update_settings({"custom_mode_settings": {"difficulty": "advanced", "speed_bonus_enabled": False}})
    assert engine.settings.custom_mode_settings.difficulty is Difficulty.ADVANCED
    assert engine.settings.custom_mode_settings.speed_bonus_enabled is False
    assert engine.start_game() is not None
    assert engine.session is not None
    assert engine.session.difficulty is Difficulty.ADVANCED


def test_engine_starts_from_defaults_over_corrupt_storage() -> None:
    store = MemoryStore(
        {
            USER_STATS_KEY: '{"operation_stats": {"addition": 5}}',
            GAME_SETTINGS_KEY: '{"custom_mode_settings": {"number_settings": 3}}',
        }
    )
    engine = _engine(FakeClock(), store=store)
    assert engine.user_stats == UserStats()
    assert engine.settings == GameSettings()
    assert engine.start_game() is not None


def test_disabled_custom_bonus_turns_the_challenge_off() -> None:
    clock = FakeClock()
    engine = _engine(clock)
    engine.start_game(
        {
            "mode": "custom",
            "challenge_mode": "speed",
            "custom_mode_settings": CustomModeSettings(speed_bonus_enabled=False),
        }
    )
    clock.advance(0.5)
    problem = engine.current_problem
    assert problem is not None
    submission = engine.submit_answer(problem.correct_answer)
    assert submission is not None
    assert submission.score.bonus_points == 0


def test_pause_blocks_answers_and_is_not_charged_as_answer_time() -> None:
    clock = FakeClock()
    engine = _engine(clock)
    engine.start_game()
    problem = engine.current_problem
    assert problem is not None

    clock.advance(5.0)
    engine.pause_game()
    assert engine.phase is EnginePhase.PAUSED
    assert engine.submit_answer(problem.correct_answer) is None

    clock.advance(100.0)
    engine.resume_game()
    assert engine.phase is EnginePhase.ACTIVE
    clock.advance(1.5)
    submission = engine.submit_answer(problem.correct_answer)
    assert submission is not None
    assert submission.problem.time_spent == 1.5


def test_next_problem_waits_for_an_answer() -> None:
    clock = FakeClock()
    engine = _engine(clock)
    engine.start_game()

    engine.next_problem()
    assert engine.state.problem_index == 0

    _answer_current(engine, clock)
    engine.next_problem()
    assert engine.state.problem_index == 1


def test_answer_time_restarts_when_the_next_problem_is_shown() -> None:
    clock = FakeClock()
    engine = _engine(clock)
    engine.start_game()

    _answer_current(engine, clock, dt=2.0)
    clock.advance(30.0)  # lingering on the result
    engine.next_problem()
    clock.advance(3.0)
    problem = engine.current_problem
    assert problem is not None
    submission = engine.submit_answer(problem.correct_answer)
    assert submission is not None
    assert submission.problem.time_spent == 3.0


def test_finishing_the_last_problem_ends_and_persists_the_session() -> None:
    clock = FakeClock(t=1000.0)
    store = MemoryStore()
    engine = _engine(clock, store=store)
    engine.start_game({"problem_count": 3})

    for correct in (True, False, True):
        _answer_current(engine, clock, correct=correct)
        engine.next_problem()

    assert engine.phase is EnginePhase.ENDED
    session = engine.session
    assert session is not None
    assert session.end_time == 1006.0
    assert session.score == 20
    assert session.accuracy == pytest.approx(66.67)
    assert session.summary_score == 20
    assert session.average_time == 2.0

    stats = store.get_user_stats()
    assert stats == engine.user_stats
    assert stats.total_problems == 3
    assert stats.correct_answers == 2
    assert stats.streak_current == 1
    assert stats.sessions[0].id == session.id
    assert [s.id for s in store.get_sessions()] == [session.id]
    record = stats.mode_records[Mode.PRACTICE]
    assert record is not None and record.best_time == 6.0

    # Terminal: further calls are silent no-ops.
    assert engine.submit_answer(1) is None
    assert engine.end_game() is None
    engine.next_problem()
    assert engine.phase is EnginePhase.ENDED


def test_countdown_ticks_only_while_active_and_ends_the_game() -> None:
    clock = FakeClock()
    store = MemoryStore()
    engine = _engine(clock, store=store)
    engine.start_game({"mode": "timed", "time_limit": 3})

    clock.advance(1.0)
    engine.update()
    assert engine.time_remaining == 2

    engine.pause_game()
    clock.advance(10.0)
    engine.update()
    assert engine.time_remaining == 2

    engine.resume_game()
    clock.advance(1.0)
    engine.update()
    assert engine.time_remaining == 1

    clock.advance(1.0)
    engine.update()
    assert engine.phase is EnginePhase.ENDED
    assert engine.time_remaining is None
    assert len(store.get_sessions()) == 1

    # The ticker is gone; nothing fires for the finished session.
    clock.advance(5.0)
    engine.update()
    assert len(store.get_sessions()) == 1


def test_start_game_is_ignored_while_a_session_is_in_progress() -> None:
    engine = _engine(FakeClock())
    first = engine.start_game()
    assert first is not None
    assert engine.start_game({"problem_count": 3}) is None
    assert engine.session is not None
    assert engine.session.id == first.id

    engine.pause_game()
    assert engine.start_game() is None


def test_a_new_game_can_start_after_the_previous_one_ends() -> None:
    engine = _engine(FakeClock())
    engine.start_game()
    engine.end_game()
    assert engine.phase is EnginePhase.ENDED
    second = engine.start_game()
    assert second is not None
    assert second.id == "s-2"
    assert engine.phase is EnginePhase.ACTIVE


def test_end_game_without_a_session_is_a_no_op() -> None:
    store = MemoryStore()
    engine = _engine(FakeClock(), store=store)
    assert engine.end_game() is None
    assert store.get_sessions() == []


def test_reset_abandons_the_session_without_recording_it() -> None:
    store = MemoryStore()
    clock = FakeClock()
    engine = _engine(clock, store=store)
    engine.start_game({"mode": "timed", "time_limit": 2})
    engine.reset()

    assert engine.phase is EnginePhase.IDLE
    assert engine.session is None
    clock.advance(5.0)
    engine.update()
    assert store.get_sessions() == []


def test_reset_stats_clears_storage() -> None:
    clock = FakeClock()
    store = MemoryStore()
    engine = _engine(clock, store=store)
    engine.start_game({"problem_count": 1, "difficulty": "advanced"})
    _answer_current(engine, clock)
    engine.next_problem()
    assert engine.user_stats.total_problems == 1

    engine.reset_stats()
    assert engine.phase is EnginePhase.IDLE
    assert engine.user_stats == UserStats()
    assert engine.settings == GameSettings()
    assert store.get_sessions() == []


def test_settings_changes_are_persisted_and_reloaded() -> None:
    store = MemoryStore()
    engine = _engine(FakeClock(), store=store)
    engine.update_settings({"difficulty": "intermediate", "problem_count": 15})
    assert store.get_game_settings().difficulty is Difficulty.INTERMEDIATE

    store.save_game_settings(GameSettings(problem_count=4))
    engine.load_data()
    assert engine.settings.problem_count == 4
    assert engine.start_game() is not None
    assert engine.session is not None
    assert len(engine.session.problems) == 4


def test_storage_failures_do_not_escape_the_engine() -> None:
    clock = FakeClock()
    engine = _engine(clock, store=ExplodingStore())
    engine.start_game({"problem_count": 1})
    _answer_current(engine, clock)
    engine.next_problem()

    assert engine.phase is EnginePhase.ENDED
    assert engine.user_stats.total_problems == 1


def test_pure_transitions_ignore_guard_conditions() -> None:
    idle = EngineState()
    state, submission = record_answer(idle, answer=3, now=1.0)
    assert state is idle and submission is None

    state, expired = tick(idle)
    assert state is idle and expired is False
