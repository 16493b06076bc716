"""
Symbolic integration by a fixed chain of strategies.

Each strategy either produces an antiderivative or returns None. The chain
tries them in order and the first success wins. Strategies may recurse into
the chain for sub-integrals; a failed sub-integral is None, never an error,
so the top-level call alone decides between NoIntegrationRule and
DepthExceeded.
"""
from __future__ import annotations
import logging
from typing import Dict, Optional, Sequence, Set, Tuple, Union

from differentiation import differentiate
from errors import DepthExceeded, NoIntegrationRule, NotPolynomial
from expression import (
    Binary,
    Expression,
    Literal,
    Log,
    ONE,
    TWO,
    Unary,
    Variable,
    as_expr,
    name_of,
)
import numeric
from polynomial import Polynomial, is_polynomial
from simplifier import (
    Factors,
    as_coefficient_and_factors,
    as_terms,
    build_product,
    cancel,
    cancel_factors,
    expand,
    reduce_trig_powers,
    simplify,
)

logger = logging.getLogger(__name__)

MAX_DEPTH = 64


def _abs(u: Expression) -> Expression:
    return Unary("abs", u)


def _ln_abs(u: Expression) -> Expression:
    return Unary("ln", _abs(u))


def _split(expr: Expression, x: str) -> Tuple[Expression, Factors]:
    """(constant part, factors depending on x)."""
    coef, factors = as_coefficient_and_factors(expr)
    const: Factors = {}
    dependent: Factors = {}
    for base, exponent in factors.items():
        if base.contains(x) or exponent.contains(x):
            dependent[base] = exponent
        else:
            const[base] = exponent
    return build_product(coef, const), dependent


def _single(dependent: Factors) -> Optional[Tuple[Expression, Expression]]:
    if len(dependent) != 1:
        return None
    (base, exponent), = dependent.items()
    return base, exponent


def _times(k: Expression, f: Expression) -> Expression:
    if k == ONE:
        return f
    return Binary("*", k, f)


def _power_of(base: Expression, exponent: Expression, x: str) -> Optional[Tuple[Expression, Expression]]:
    """Read base^exponent as u^n with n free of x; sqrt/cbrt become fractional powers."""
    if exponent.contains(x):
        return None
    if isinstance(base, Unary) and base.op == "sqrt":
        return base.operand, simplify(Binary("/", exponent, TWO))
    if isinstance(base, Unary) and base.op == "cbrt":
        return base.operand, simplify(Binary("/", exponent, Literal(3)))
    return base, exponent


def _is_minus_one(e: Expression) -> bool:
    return isinstance(e, Literal) and numeric.is_real(e.value) and numeric.is_close(e.value, -1)


def _power_antiderivative(u: Expression, n: Expression) -> Expression:
    if _is_minus_one(n):
        return _ln_abs(u)
    n1 = simplify(Binary("+", n, ONE))
    return Binary("/", Binary("^", u, n1), n1)


class IntegrationStrategy:
    """One rule of the chain; try_integrate returns None when it does not apply."""

    name = "strategy"

    def try_integrate(self, expr: Expression, x: str, chain: "IntegrationChain") -> Optional[Expression]:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"


class PowerRule(IntegrationStrategy):
    name = "power"

    def try_integrate(self, expr, x, chain):
        var = Variable(x)
        k, dependent = _split(expr, x)
        if not dependent:
            return Binary("*", k, var)
        single = _single(dependent)
        if single is None:
            return None
        read = _power_of(*single, x)
        if read is None or read[0] != var:
            return None
        return _times(k, _power_antiderivative(var, read[1]))


# op -> antiderivative of op(u) in u
_TRIG_TABLE = {
    "sin": lambda u: Unary("neg", Unary("cos", u)),
    "cos": lambda u: Unary("sin", u),
    "tan": lambda u: Unary("neg", _ln_abs(Unary("cos", u))),
    "cot": lambda u: _ln_abs(Unary("sin", u)),
    "sec": lambda u: _ln_abs(Binary("+", Unary("sec", u), Unary("tan", u))),
    "csc": lambda u: Unary("neg", _ln_abs(Binary("+", Unary("csc", u), Unary("cot", u)))),
    "sinh": lambda u: Unary("cosh", u),
    "cosh": lambda u: Unary("sinh", u),
    "tanh": lambda u: Unary("ln", Unary("cosh", u)),
}

_TRIG_SQUARED = {
    "sec": lambda u: Unary("tan", u),
    "csc": lambda u: Unary("neg", Unary("cot", u)),
    "tan": lambda u: Binary("-", Unary("tan", u), u),
    "cot": lambda u: Binary("-", Unary("neg", Unary("cot", u)), u),
}


class BasicTrig(IntegrationStrategy):
    name = "basic-trig"

    def try_integrate(self, expr, x, chain):
        var = Variable(x)
        k, dependent = _split(expr, x)
        if k != ONE:
            return None
        if len(dependent) == 2:
            ops = {}
            for base, exponent in dependent.items():
                if not (isinstance(base, Unary) and base.operand == var and exponent == ONE):
                    return None
                ops[base.op] = base
            if set(ops) == {"sec", "tan"}:
                return Unary("sec", var)
            if set(ops) == {"csc", "cot"}:
                return Unary("neg", Unary("csc", var))
            return None
        single = _single(dependent)
        if single is None:
            return None
        base, exponent = single
        if not (isinstance(base, Unary) and base.operand == var):
            return None
        if exponent == ONE and base.op in _TRIG_TABLE:
            return _TRIG_TABLE[base.op](var)
        if exponent == TWO and base.op in _TRIG_SQUARED:
            return _TRIG_SQUARED[base.op](var)
        if exponent == TWO and base.op in ("sin", "cos"):
            return chain.integrate(reduce_trig_powers(expr))
        return None


class Exponential(IntegrationStrategy):
    name = "exponential"

    def try_integrate(self, expr, x, chain):
        var = Variable(x)
        k, dependent = _split(expr, x)
        single = _single(dependent)
        if k != ONE or single is None:
            return None
        base, exponent = single
        if exponent == ONE and isinstance(base, Unary) and base.op == "exp" and base.operand == var:
            return base
        if exponent == var and not base.contains(x):
            # a^x
            return Binary("/", Binary("^", base, var), Unary("ln", base))
        return None


class ConstantMultiple(IntegrationStrategy):
    name = "constant-multiple"

    def try_integrate(self, expr, x, chain):
        k, dependent = _split(expr, x)
        if k == ONE or not dependent:
            return None
        inner = chain.integrate(build_product(1, dependent))
        if inner is None:
            return None
        return Binary("*", k, inner)


# G(u) with dG/du = op(u)
_OUTER = {
    "sin": _TRIG_TABLE["sin"],
    "cos": _TRIG_TABLE["cos"],
    "tan": _TRIG_TABLE["tan"],
    "cot": _TRIG_TABLE["cot"],
    "sec": _TRIG_TABLE["sec"],
    "csc": _TRIG_TABLE["csc"],
    "sinh": _TRIG_TABLE["sinh"],
    "cosh": _TRIG_TABLE["cosh"],
    "exp": lambda u: Unary("exp", u),
}


class USubstitution(IntegrationStrategy):
    name = "u-substitution"

    def _candidates(self, base: Expression, exponent: Expression, x: str):
        """Yield (u, G(u)) pairs where the factor base^exponent is G'(u)."""
        var = Variable(x)
        if isinstance(base, Unary) and base.op in _OUTER and exponent == ONE:
            yield base.operand, _OUTER[base.op](base.operand)
        if isinstance(base, Unary) and exponent == TWO and base.op in ("sec", "csc"):
            yield base.operand, _TRIG_SQUARED[base.op](base.operand)
        if exponent.contains(x) and not base.contains(x):
            # a^u
            yield exponent, Binary("/", Binary("^", base, exponent), Unary("ln", base))
        read = _power_of(base, exponent, x)
        if read is not None and read[0] != var:
            u, n = read
            yield u, _power_antiderivative(u, n)

    def try_integrate(self, expr, x, chain):
        var = Variable(x)
        coef, factors = as_coefficient_and_factors(expr)
        for base in sorted(factors, key=lambda b: -b.size()):
            exponent = factors[base]
            if not (base.contains(x) or exponent.contains(x)):
                continue
            for u, antiderivative in self._candidates(base, exponent, x):
                if u == var or not u.contains(x):
                    continue
                rest = dict(factors)
                del rest[base]
                du = simplify(differentiate(u, x))
                if du == Literal(0):
                    continue
                ratio = cancel_factors(Binary("/", build_product(coef, rest), du))
                if ratio.contains(x):
                    ratio = cancel(ratio, x)
                if ratio.contains(x):
                    continue
                logger.debug("u-substitution u=%s in %s", u, expr)
                return _times(ratio, antiderivative)
        return None


# ILATE ordering for choosing u
_LOG, _INVERSE, _ALGEBRAIC, _TRIG, _EXP = range(5)


def _ilate(base: Expression, exponent: Expression, x: str) -> Optional[int]:
    if exponent.contains(x):
        return _EXP if not base.contains(x) else None
    if isinstance(base, Log) or (isinstance(base, Unary) and base.op == "ln"):
        return _LOG
    if isinstance(base, Unary) and base.op in ("asin", "acos", "atan"):
        return _INVERSE
    if isinstance(base, Unary) and base.op in ("sin", "cos", "tan", "sec", "csc", "cot", "sinh", "cosh"):
        return _TRIG
    if isinstance(base, Unary) and base.op == "exp":
        return _EXP
    if is_polynomial(base, x) or (isinstance(base, Unary) and base.op in ("sqrt", "cbrt")):
        return _ALGEBRAIC
    return None


class ByParts(IntegrationStrategy):
    name = "by-parts"

    def try_integrate(self, expr, x, chain):
        var = Variable(x)
        k, dependent = _split(expr, x)
        ranked = []
        for base, exponent in dependent.items():
            rank = _ilate(base, exponent, x)
            if rank is None:
                return None
            ranked.append((rank, base, exponent))
        if len(ranked) == 1:
            rank, base, exponent = ranked[0]
            if rank not in (_LOG, _INVERSE) or exponent != ONE:
                return None
            u, dv = base, ONE
        elif len(ranked) == 2:
            ranked.sort(key=lambda item: item[0])
            (_, ub, ue), (_, vb, ve) = ranked
            u, dv = build_product(1, {ub: ue}), build_product(1, {vb: ve})
        else:
            return None
        v = chain.integrate(dv) if dv != ONE else var
        if v is None:
            return None
        du = differentiate(u, x)
        rest = chain.integrate(Binary("*", v, du))
        if rest is None:
            return None
        logger.debug("by parts u=%s dv=%s", u, dv)
        return _times(k, Binary("-", Binary("*", u, v), rest))


def _square_root(expr: Expression) -> Expression:
    # atan(x/a)/a is even in a, so u^2 may give back u
    e = simplify(expr)
    if isinstance(e, Binary) and e.op == "^" and e.right == TWO:
        return e.left
    return Unary("sqrt", e)


class InverseTrig(IntegrationStrategy):
    name = "inverse-trig"

    def try_integrate(self, expr, x, chain):
        var = Variable(x)
        k, dependent = _split(expr, x)
        single = _single(dependent)
        if single is None:
            return None
        base, exponent = single
        read = _power_of(base, exponent, x)
        if read is None:
            return None
        p_expr, n = read
        if n == Literal(-1):
            sqrt_form = False
        elif n == Literal(numeric.Fraction(-1, 2)):
            sqrt_form = True
        else:
            return None
        try:
            poly = Polynomial.from_expression(p_expr, x)
        except NotPolynomial:
            return None
        if poly.degree() != 2 or poly.coefficients[1] != Literal(0):
            return None
        c0, c2 = poly.coefficients[0], poly.coefficients[2]
        if sqrt_form:
            # c0 + c2*x^2 with c2 < 0: asin(x/a) / sqrt(-c2), a^2 = c0/(-c2)
            if not (isinstance(c2, Literal) and numeric.is_real(c2.value) and c2.value < 0):
                return None
            if isinstance(c0, Literal) and not (numeric.is_real(c0.value) and c0.value > 0):
                return None
            neg_c2 = Literal(-c2.value)
            a = Unary("sqrt", Binary("/", c0, neg_c2))
            result = Binary("/", Unary("asin", Binary("/", var, a)), Unary("sqrt", neg_c2))
        else:
            # c2*x^2 + c0: atan(x/a) / (c2*a), a^2 = c0/c2
            if isinstance(c0, Literal) and isinstance(c2, Literal):
                if not (numeric.is_real(c0.value) and numeric.is_real(c2.value)) or c0.value * c2.value <= 0:
                    return None
            a = _square_root(Binary("/", c0, c2))
            result = Binary("/", Unary("atan", Binary("/", var, a)), Binary("*", c2, a))
        return _times(k, result)


class SumDifference(IntegrationStrategy):
    name = "sum-difference"

    def try_integrate(self, expr, x, chain):
        terms = as_terms(expr)
        if len(terms) < 2:
            expanded = expand(expr)
            if expanded == expr:
                return None
            terms = as_terms(expanded)
            if len(terms) < 2:
                return chain.integrate(expanded)
        out: Optional[Expression] = None
        for term in terms:
            part = chain.integrate(term)
            if part is None:
                return None
            out = part if out is None else Binary("+", out, part)
        return out


DEFAULT_STRATEGIES: Tuple[IntegrationStrategy, ...] = (
    PowerRule(),
    BasicTrig(),
    Exponential(),
    ConstantMultiple(),
    USubstitution(),
    ByParts(),
    InverseTrig(),
    SumDifference(),
)


class IntegrationChain:
    """State of one top-level integration: depth counter, cycle guard and memo."""

    def __init__(self, strategies: Sequence[IntegrationStrategy], variable: str, max_depth: int):
        self.strategies = strategies
        self.variable = variable
        self.max_depth = max_depth
        self.depth = 0
        self.depth_exceeded = False
        self._active: Set[Expression] = set()
        self._memo: Dict[Expression, Expression] = {}

    def integrate(self, expr: Expression) -> Optional[Expression]:
        expr = cancel_factors(expr)
        if expr in self._memo:
            return self._memo[expr]
        if self.depth >= self.max_depth:
            self.depth_exceeded = True
            return None
        if expr in self._active:
            return None
        self._active.add(expr)
        self.depth += 1
        try:
            for strategy in self.strategies:
                result = strategy.try_integrate(expr, self.variable, self)
                if result is not None:
                    logger.debug("%s: %s d%s -> %s", strategy.name, expr, self.variable, result)
                    self._memo[expr] = result
                    return result
        finally:
            self.depth -= 1
            self._active.discard(expr)
        return None


class Integrator:
    def __init__(self, strategies: Optional[Sequence[IntegrationStrategy]] = None, max_depth: int = MAX_DEPTH):
        self.strategies = tuple(strategies) if strategies is not None else DEFAULT_STRATEGIES
        self.max_depth = max_depth

    def integrate(self, expr: Expression, variable: Union[str, Variable]) -> Expression:
        """
        Antiderivative of expr with respect to variable, simplified, with no
        constant of integration.

        Raises:
            NoIntegrationRule: no strategy applies
            DepthExceeded: the recursion cap was hit before a result was found
        """
        x = name_of(variable)
        integrand = as_expr(expr)
        chain = IntegrationChain(self.strategies, x, self.max_depth)
        result = chain.integrate(integrand)
        if result is None:
            if chain.depth_exceeded:
                raise DepthExceeded(f"integration of {integrand} d{x} exceeded depth {self.max_depth}")
            raise NoIntegrationRule(integrand, x)
        return cancel_factors(result)


def integrate(expr: Expression, variable: Union[str, Variable], max_depth: int = MAX_DEPTH) -> Expression:
    return Integrator(max_depth=max_depth).integrate(expr, variable)


def definite_integral(
    expr: Expression,
    variable: Union[str, Variable],
    lower: Union[Expression, numeric.Number],
    upper: Union[Expression, numeric.Number],
    max_depth: int = MAX_DEPTH,
) -> Expression:
    """F(upper) - F(lower) for the antiderivative F."""
    x = name_of(variable)
    antiderivative = integrate(expr, x, max_depth=max_depth)
    return simplify(
        Binary(
            "-",
            antiderivative.substitute(x, as_expr(upper)),
            antiderivative.substitute(x, as_expr(lower)),
        )
    )
