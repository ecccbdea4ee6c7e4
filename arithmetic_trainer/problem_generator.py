from __future__ import annotations

from collections.abc import Sequence

from .models import CustomModeSettings, Difficulty, Operation, Problem
from .randomness import IdGenerator, SeededRng, Uuid4Ids
from .settings import EffectiveRange, resolve_effective_range

DIVISION_TOLERANCE = 0.01


class UnknownOperation(ValueError):
    """Raised for an operation tag the generator does not know."""


class ProblemGenerator:
    """Generates arithmetic problems for a difficulty tier or custom configuration.

    Randomness and problem ids are injected so that a fixed seed and a
    deterministic id source reproduce the same sequence.
    """

    def __init__(self, rng: SeededRng | None = None, ids: IdGenerator | None = None) -> None:
        self._rng = rng if rng is not None else SeededRng()
        self._ids = ids if ids is not None else Uuid4Ids()

    def generate_problem(
        self,
        operation: Operation | str,
        difficulty: Difficulty | str,
        custom_settings: CustomModeSettings | None = None,
    ) -> Problem:
        try:
            op = Operation(operation)
        except ValueError:
            raise UnknownOperation(f"Unknown operation: {operation!r}") from None
        tier = Difficulty(difficulty)
        bounds = resolve_effective_range(tier, custom_settings)

        if op is Operation.ADDITION:
            a = self._operand(bounds)
            b = self._operand(bounds)
            answer = round(a + b, 1)
        elif op is Operation.SUBTRACTION:
            a = self._operand(bounds)
            b = self._operand(bounds)
            if not bounds.allow_negative and b > a:
                a, b = b, a
            answer = round(a - b, 1)
        elif op is Operation.MULTIPLICATION:
            a = self._rng.randint(1, bounds.muldiv_max)
            b = self._rng.randint(1, bounds.muldiv_max)
            answer = a * b
        else:
            divisor = self._rng.randint(2, bounds.muldiv_max)
            quotient = self._rng.randint(1, bounds.muldiv_max)
            a, b = divisor * quotient, divisor
            answer = quotient

        return Problem(
            id=self._ids.new_id(),
            operand1=a,
            operand2=b,
            operation=op,
            correct_answer=answer,
            difficulty=tier,
        )

    def generate_problems(
        self,
        operations: Sequence[Operation | str],
        difficulty: Difficulty | str,
        count: int,
        custom_settings: CustomModeSettings | None = None,
    ) -> list[Problem]:
        if not operations:
            raise ValueError("operations must not be empty")
        ops = list(operations)
        return [
            self.generate_problem(self._rng.choice(ops), difficulty, custom_settings)
            for _ in range(max(0, count))
        ]

    def validate_answer(self, problem: Problem, answer: float) -> bool:
        return validate_answer(problem, answer)

    def _operand(self, bounds: EffectiveRange) -> float:
        if bounds.allow_decimals:
            value: float = round(self._rng.uniform(bounds.min_value, bounds.max_value), 1)
        else:
            value = self._rng.randint(bounds.min_value, bounds.max_value)
        if bounds.signed_operands and self._rng.coin():
            value = -value
        return value


def validate_answer(problem: Problem, answer: float) -> bool:
    """Division tolerates a 0.01 absolute error; every other operation is exact."""

    if problem.operation is Operation.DIVISION:
        return abs(answer - problem.correct_answer) < DIVISION_TOLERANCE
    return answer == problem.correct_answer
