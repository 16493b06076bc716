"""
Symbolic differentiation.

differentiate() applies the textbook rules node by node and returns the raw,
unsimplified derivative tree; callers decide when to simplify. derivative()
and the Taylor series helpers simplify after every step.
"""
from __future__ import annotations
import logging
import math
from typing import Dict, List, Sequence, Union

from errors import CASError, UnsupportedForm
from expression import (
    Binary,
    Call,
    Expression,
    FUNCTIONS,
    Literal,
    Log,
    ONE,
    TWO,
    Unary,
    Variable,
    ZERO,
    as_expr,
    name_of,
)
import numeric
from simplifier import simplify as _simplify

logger = logging.getLogger(__name__)

THREE = Literal(3)


def _mul(a: Expression, b: Expression) -> Expression:
    return Binary("*", a, b)


def _div(a: Expression, b: Expression) -> Expression:
    return Binary("/", a, b)


def _pow(a: Expression, b: Expression) -> Expression:
    return Binary("^", a, b)


def _neg(a: Expression) -> Expression:
    return Unary("neg", a)


def _unary_derivative(op: str, u: Expression) -> Expression:
    """d/du op(u)."""
    if op == "sin":
        return Unary("cos", u)
    if op == "cos":
        return _neg(Unary("sin", u))
    if op == "tan":
        return _pow(Unary("sec", u), TWO)
    if op == "sec":
        return _mul(Unary("sec", u), Unary("tan", u))
    if op == "csc":
        return _neg(_mul(Unary("csc", u), Unary("cot", u)))
    if op == "cot":
        return _neg(_pow(Unary("csc", u), TWO))
    if op == "asin":
        return _div(ONE, Unary("sqrt", Binary("-", ONE, _pow(u, TWO))))
    if op == "acos":
        return _neg(_div(ONE, Unary("sqrt", Binary("-", ONE, _pow(u, TWO)))))
    if op == "atan":
        return _div(ONE, Binary("+", ONE, _pow(u, TWO)))
    if op == "sinh":
        return Unary("cosh", u)
    if op == "cosh":
        return Unary("sinh", u)
    if op == "tanh":
        return Binary("-", ONE, _pow(Unary("tanh", u), TWO))
    if op == "exp":
        return Unary("exp", u)
    if op == "ln":
        return _div(ONE, u)
    if op == "abs":
        return _div(u, Unary("abs", u))
    if op == "sqrt":
        return _div(ONE, _mul(TWO, Unary("sqrt", u)))
    if op == "cbrt":
        return _div(ONE, _mul(THREE, _pow(Unary("cbrt", u), TWO)))
    raise UnsupportedForm(f"no derivative rule for {op}")


def _d(expr: Expression, x: str) -> Expression:
    if isinstance(expr, Literal):
        return ZERO
    if isinstance(expr, Variable):
        return ONE if expr.name == x else ZERO
    if isinstance(expr, Unary):
        du = _d(expr.operand, x)
        if expr.op == "neg":
            return _neg(du)
        return _mul(_unary_derivative(expr.op, expr.operand), du)
    if isinstance(expr, Log):
        u, b = expr.operand, expr.base
        if not b.contains(x):
            return _div(_d(u, x), _mul(u, Unary("ln", b)))
        return _d(_div(Unary("ln", u), Unary("ln", b)), x)
    if isinstance(expr, Binary):
        f, g = expr.left, expr.right
        if expr.op in ("+", "-"):
            return Binary(expr.op, _d(f, x), _d(g, x))
        if expr.op == "*":
            return Binary("+", _mul(_d(f, x), g), _mul(f, _d(g, x)))
        if expr.op == "/":
            return _div(
                Binary("-", _mul(_d(f, x), g), _mul(f, _d(g, x))),
                _pow(g, TWO),
            )
        if expr.op == "^":
            if not g.contains(x):
                return _mul(_mul(g, _pow(f, Binary("-", g, ONE))), _d(f, x))
            if not f.contains(x):
                return _mul(_mul(expr, Unary("ln", f)), _d(g, x))
            # f^g = exp(g*ln f)
            return _mul(
                expr,
                Binary("+", _mul(_d(g, x), Unary("ln", f)), _mul(g, _div(_d(f, x), f))),
            )
        if expr.op == "%":
            if g.contains(x):
                raise UnsupportedForm(f"cannot differentiate {expr} in {x}")
            return _d(f, x)
    if isinstance(expr, Call):
        dependent = [i for i, a in enumerate(expr.args) if a.contains(x)]
        if not dependent:
            return ZERO
        fn = FUNCTIONS.get(expr.name)
        if fn is None or fn.partials is None:
            raise UnsupportedForm(f"no derivative rule for {expr.name}")
        out: Expression = ZERO
        for i in dependent:
            out = Binary("+", out, _mul(fn.partials[i](expr.args), _d(expr.args[i], x)))
        return out
    raise UnsupportedForm(f"cannot differentiate {expr!r}")


def differentiate(expr: Expression, variable: Union[str, Variable]) -> Expression:
    """d(expr)/d(variable), not simplified.

    Raises:
        UnsupportedForm: modulo by a variable-dependent divisor, or a call
            with no registered partial derivatives
    """
    return _d(as_expr(expr), name_of(variable))


def derivative(
    expr: Expression,
    variable: Union[str, Variable],
    order: int = 1,
    simplify: bool = True,
) -> Expression:
    if order < 0:
        raise ValueError("order must be non-negative")
    out = as_expr(expr)
    for _ in range(order):
        out = differentiate(out, variable)
        if simplify:
            out = _simplify(out)
    return out


def gradient(expr: Expression, variables: Sequence[Union[str, Variable]]) -> Dict[str, Expression]:
    names: List[str] = [name_of(v) for v in variables]
    return {n: _simplify(differentiate(expr, n)) for n in names}


def taylor_series(
    expr: Expression,
    variable: Union[str, Variable],
    point: Union[Expression, numeric.Number] = 0,
    order: int = 5,
) -> Expression:
    """
    Taylor polynomial of expr about `point`, through (x - point)^order.

    The n-th coefficient is the n-th derivative at the point over n!. Terms
    whose coefficient is zero are left out, and the series stops at the
    first derivative that is undefined at the point.

    Raises:
        ValueError: order is negative
    """
    if order < 0:
        raise ValueError("order must be non-negative")
    x = name_of(variable)
    a = as_expr(point)
    shifted = Binary("-", Variable(x), a)
    current = as_expr(expr)
    out: Expression = ZERO
    for n in range(order + 1):
        try:
            at_point = _simplify(current.substitute(x, a))
            value = at_point.evaluate() if at_point.is_constant() else None
        except (CASError, ArithmeticError):
            logger.debug("taylor series of %s stops at order %d: undefined at %s", expr, n, a)
            break
        if value is not None and numeric.is_zero(value):
            current = _simplify(differentiate(current, x))
            continue
        term = _div(_mul(at_point, _pow(shifted, Literal(n))), Literal(math.factorial(n)))
        out = Binary("+", out, term)
        current = _simplify(differentiate(current, x))
    return _simplify(out)


def maclaurin_series(expr: Expression, variable: Union[str, Variable], order: int = 5) -> Expression:
    """Taylor series about 0."""
    return taylor_series(expr, variable, 0, order)
