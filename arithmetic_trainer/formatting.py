from __future__ import annotations

from fractions import Fraction

from .models import NumberDisplayMode, Operation, Problem

OPERATION_SYMBOLS: dict[Operation, str] = {
    Operation.ADDITION: "+",
    Operation.SUBTRACTION: "-",
    Operation.MULTIPLICATION: "×",
    Operation.DIVISION: "÷",
}


def format_number(value: float, mode: NumberDisplayMode = NumberDisplayMode.DECIMAL) -> str:
    """Whole numbers print bare; others print with one decimal or as a fraction."""

    if float(value).is_integer():
        return str(int(value))
    if mode is NumberDisplayMode.FRACTION:
        frac = Fraction(str(round(value, 1))).limit_denominator(100)
        whole, rest = divmod(abs(frac.numerator), frac.denominator)
        sign = "-" if frac < 0 else ""
        if whole == 0:
            return f"{sign}{rest}/{frac.denominator}"
        return f"{sign}{whole} {rest}/{frac.denominator}"
    return f"{value:.1f}"


def problem_text(problem: Problem, mode: NumberDisplayMode = NumberDisplayMode.DECIMAL) -> str:
    a = format_number(problem.operand1, mode)
    b = format_number(problem.operand2, mode)
    if problem.operand2 < 0:
        b = f"({b})"
    return f"{a} {OPERATION_SYMBOLS[problem.operation]} {b} ="
