"""
Algebraic simplification.

simplify() rewrites bottom-up into a canonical form: sums are flattened into a
coefficient per distinct term, products into a numeric coefficient times a
base -> exponent mapping. Both are rebuilt in a fixed order so that applying
simplify twice gives the same tree as applying it once.
"""
from __future__ import annotations
import logging
import math
from functools import lru_cache
from typing import Dict, List, Optional, Set, Tuple

from errors import DomainError, NotPolynomial
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
    _eval_binary,
    _eval_log,
    _eval_unary,
)
import numeric
from numeric import Number

logger = logging.getLogger(__name__)

Factors = Dict[Expression, Expression]

ODD_FUNCTIONS = frozenset(("sin", "tan", "csc", "cot", "asin", "atan", "sinh", "tanh", "cbrt"))
EVEN_FUNCTIONS = frozenset(("cos", "sec", "cosh", "abs"))


# =====================
# Ordering
# =====================


def sort_key(expr: Expression) -> tuple:
    """Total structural ordering key used for canonical term and factor order."""
    if isinstance(expr, Literal):
        re, im = numeric.sort_key(expr.value)
        return (0, re, im, expr.kind)
    if isinstance(expr, Variable):
        return (1, expr.name)
    if isinstance(expr, Unary):
        return (3, expr.op, sort_key(expr.operand))
    if isinstance(expr, Log):
        return (4, sort_key(expr.operand), sort_key(expr.base))
    if isinstance(expr, Call):
        return (5, expr.name, tuple(sort_key(a) for a in expr.args))
    if isinstance(expr, Binary):
        return (6, expr.op, sort_key(expr.left), sort_key(expr.right))
    return (9, repr(expr))


def _is_sum(expr: Expression) -> bool:
    return isinstance(expr, Binary) and expr.op in ("+", "-")


def _numeric_exponent(expr: Expression) -> Optional[Number]:
    if isinstance(expr, Literal) and numeric.is_real(expr.value):
        return expr.value
    return None


def _is_int_literal(expr: Expression) -> bool:
    return isinstance(expr, Literal) and numeric.is_exact(expr.value) and numeric.is_integer(expr.value)


# =====================
# Products
# =====================


def _add_exponent(
    factors: Factors,
    base: Expression,
    exponent: Expression,
    poles: Optional[Set[Expression]] = None,
) -> None:
    if poles is not None and not isinstance(base, Literal):
        e = _numeric_exponent(exponent)
        if e is not None and e < 0:
            poles.add(base)
    if base in factors:
        old = factors[base]
        if isinstance(old, Literal) and isinstance(exponent, Literal):
            factors[base] = Literal(old.value + exponent.value)
        else:
            factors[base] = simplify(Binary("+", old, exponent))
    else:
        factors[base] = exponent


def _scale_exponent(exponent: Expression, mult: int) -> Expression:
    if mult == 1:
        return exponent
    if isinstance(exponent, Literal):
        return Literal(exponent.value * mult)
    return simplify(Binary("*", Literal(mult), exponent))


def _accumulate(
    node: Expression,
    mult: int,
    acc: List[Number],
    factors: Factors,
    poles: Optional[Set[Expression]] = None,
) -> None:
    if isinstance(node, Literal):
        try:
            acc[0] = acc[0] * numeric.power(node.value, mult)
        except ZeroDivisionError:
            _add_exponent(factors, node, Literal(mult))
        return
    if isinstance(node, Binary) and node.op == "*":
        _accumulate(node.left, mult, acc, factors, poles)
        _accumulate(node.right, mult, acc, factors, poles)
        return
    if isinstance(node, Binary) and node.op == "/":
        _accumulate(node.left, mult, acc, factors, poles)
        _accumulate(node.right, -mult, acc, factors, poles)
        return
    if isinstance(node, Unary) and node.op == "neg":
        if mult % 2:
            acc[0] = -acc[0]
        _accumulate(node.operand, mult, acc, factors, poles)
        return
    if isinstance(node, Binary) and node.op == "^":
        base, exponent = node.left, node.right
        if _is_int_literal(exponent):
            if _is_sum(base) or isinstance(base, Variable):
                _add_exponent(factors, base, Literal(exponent.value * mult), poles)
            else:
                _accumulate(base, int(exponent.value) * mult, acc, factors, poles)
            return
        e = _numeric_exponent(exponent)
        if e is not None and isinstance(base, Literal):
            total = e * mult
            if numeric.is_exact(base.value) and numeric.is_exact(total):
                try:
                    value = numeric.power(base.value, total)
                except ZeroDivisionError:
                    value = None
                if value is not None and numeric.is_exact(value):
                    acc[0] = acc[0] * value
                    return
                _add_exponent(factors, base, Literal(total))
                return
            try:
                acc[0] = acc[0] * numeric.power(base.value, total)
            except ZeroDivisionError:
                _add_exponent(factors, base, Literal(total))
            return
        _add_exponent(factors, base, _scale_exponent(exponent, mult), poles)
        return
    _add_exponent(factors, node, Literal(mult), poles)


def _drop(factors: Factors, base: Expression, poles: Optional[Set[Expression]]) -> None:
    del factors[base]
    if poles is not None:
        poles.discard(base)


def _tidy(acc: List[Number], factors: Factors, poles: Optional[Set[Expression]] = None) -> Factors:
    changed = True
    while changed:
        changed = False
        for base in list(factors):
            if base not in factors:
                continue
            exponent = factors[base]
            if isinstance(exponent, Literal) and exponent.value == 0:
                del factors[base]
                changed = True
                continue
            if not _is_int_literal(exponent):
                continue
            n = int(exponent.value)
            if isinstance(base, Unary) and base.op == "sqrt" and n % 2 == 0:
                _drop(factors, base, poles)
                _add_exponent(factors, base.operand, Literal(n // 2), poles)
                changed = True
            elif isinstance(base, Unary) and base.op == "cbrt" and n % 3 == 0:
                _drop(factors, base, poles)
                _add_exponent(factors, base.operand, Literal(n // 3), poles)
                changed = True
            elif isinstance(base, Literal) and not (numeric.is_zero(base.value) and n < 0):
                del factors[base]
                acc[0] = acc[0] * numeric.power(base.value, n)
                changed = True
            elif isinstance(base, Binary) and base.op == "^" and not _is_sum(base.left):
                # (u^a)^n arising from merged exponents
                _drop(factors, base, poles)
                _accumulate(base, n, acc, factors, poles)
                changed = True
    return factors


def _hold_poles(factors: Factors, poles: Set[Expression]) -> None:
    # u^n/u^k with n >= k keeps one u in the denominator unless u never vanishes
    for base in sorted(poles, key=sort_key):
        e = _numeric_exponent(factors.get(base, ZERO))
        if e is None or e < 0 or is_nonzero(base):
            continue
        factors.pop(base, None)
        _add_exponent(factors, Binary("/", _power(base, Literal(numeric.normalize(e + 1))), base), ONE)


def as_coefficient_and_factors(expr: Expression, assume_nonzero: bool = False) -> Tuple[Number, Factors]:
    """Split a product-like expression into (numeric coefficient, {base: exponent}).

    Sums and functions are opaque bases. Integer powers distribute over
    products, so (2*x*y)^2 gives (4, {x: 2, y: 2}).

    A base that is divided out of itself only cancels when it is provably
    nonzero: x^3/x gives {x^3/x: 1}, keeping the pole at x = 0, while
    exp(x)^2/exp(x) gives {exp(x): 1}. With assume_nonzero=True every
    common factor cancels.
    """
    acc: List[Number] = [1]
    factors: Factors = {}
    poles: Optional[Set[Expression]] = None if assume_nonzero else set()
    _accumulate(expr, 1, acc, factors, poles)
    _tidy(acc, factors, poles)
    if poles:
        _hold_poles(factors, poles)
    return numeric.normalize(acc[0]), factors


def _is_one(exponent: Expression) -> bool:
    return isinstance(exponent, Literal) and numeric.is_real(exponent.value) and exponent.value == 1


def _power(base: Expression, exponent: Expression) -> Expression:
    if _is_one(exponent):
        return base
    return Binary("^", base, exponent)


def _definite_sum(expr: Expression) -> bool:
    # constant plus terms of the same sign that are never negative
    signs = set()
    has_constant = False
    for term in as_terms(expr):
        coef, factors = as_coefficient_and_factors(term, assume_nonzero=True)
        if not numeric.is_real(coef) or coef == 0:
            return False
        for base, exponent in factors.items():
            even = _is_int_literal(exponent) and exponent.value % 2 == 0
            if not (even or (isinstance(base, Unary) and base.op in ("exp", "cosh", "abs"))):
                return False
        has_constant = has_constant or not factors
        signs.add(coef > 0)
    return has_constant and len(signs) == 1


def is_nonzero(expr: Expression) -> bool:
    """True when expr is nonzero for every real binding where it is defined.

    This is a conservative test: False means "not proven", not "can vanish".
    """
    if isinstance(expr, Literal):
        return expr.value != 0
    if isinstance(expr, Unary):
        if expr.op in ("exp", "cosh"):
            return True
        if expr.op in ("neg", "abs", "sqrt", "cbrt"):
            return is_nonzero(expr.operand)
        return False
    if isinstance(expr, Binary):
        if expr.op in ("*", "/"):
            return is_nonzero(expr.left) and is_nonzero(expr.right)
        if expr.op == "^":
            return is_nonzero(expr.left)
        if expr.op in ("+", "-"):
            return _definite_sum(expr)
    return False


def _chain(items: List[Expression], start: Optional[Expression] = None) -> Optional[Expression]:
    out = start
    for item in items:
        out = item if out is None else Binary("*", out, item)
    return out


def build_product(coef: Number, factors: Factors) -> Expression:
    """Inverse of as_coefficient_and_factors, in canonical order.

    A lone sum factor takes the coefficient term by term, so -(y - 3) and
    3 - y build the same tree. A zero literal anywhere in the denominator
    leaves the denominator as just 0.
    """
    if coef == 0:
        return ZERO
    if coef != 1 and len(factors) == 1:
        (base, exponent), = factors.items()
        if _is_one(exponent) and _is_sum(base):
            return _simplify_sum(Binary("*", Literal(coef), base))
    num: List[Expression] = []
    den: List[Expression] = []
    zero_den = False
    for base in sorted(factors, key=sort_key):
        exponent = factors[base]
        e = _numeric_exponent(exponent)
        if e is not None and e < 0:
            zero_den = zero_den or (isinstance(base, Literal) and base.value == 0)
            den.append(_power(base, Literal(-e)))
        else:
            num.append(_power(base, exponent))
    negative = numeric.is_real(coef) and coef < 0
    magnitude = -coef if negative else coef
    if not den:
        if not num:
            return Literal(coef)
        if coef == 1:
            return _chain(num)
        if coef == -1:
            return Unary("neg", _chain(num))
        return _chain(num, Literal(coef))
    denominator = ZERO if zero_den else _chain(den)
    if not num:
        if not numeric.is_real(coef):
            return Binary("/", Literal(coef), denominator)
        out = Binary("/", Literal(magnitude), denominator)
        return Unary("neg", out) if negative else out
    if coef == 1:
        return Binary("/", _chain(num), denominator)
    if coef == -1:
        return Binary("/", Unary("neg", _chain(num)), denominator)
    return Binary("/", _chain(num, Literal(coef)), denominator)


def _simplify_product(expr: Expression) -> Expression:
    return build_product(*as_coefficient_and_factors(expr))


# =====================
# Sums
# =====================


def _collect_terms(
    node: Expression,
    sign: Number,
    terms: Dict[Expression, List],
    const: List[Number],
) -> None:
    if isinstance(node, Binary) and node.op == "+":
        _collect_terms(node.left, sign, terms, const)
        _collect_terms(node.right, sign, terms, const)
        return
    if isinstance(node, Binary) and node.op == "-":
        _collect_terms(node.left, sign, terms, const)
        _collect_terms(node.right, -sign, terms, const)
        return
    if isinstance(node, Unary) and node.op == "neg":
        _collect_terms(node.operand, -sign, terms, const)
        return
    coef, factors = as_coefficient_and_factors(node)
    if not factors:
        const[0] = const[0] + sign * coef
        return
    if len(factors) == 1:
        # c*(a + b) inside a sum distributes the coefficient
        (base, exponent), = factors.items()
        if _is_one(exponent) and _is_sum(base):
            _collect_terms(base, sign * coef, terms, const)
            return
    key = build_product(1, factors)
    if key in terms:
        terms[key][0] = terms[key][0] + sign * coef
    else:
        terms[key] = [sign * coef, factors]


def _coef_is_zero(c: Number) -> bool:
    return numeric.is_zero(c)


def _pythagorean(terms: Dict[Expression, List], const: List[Number]) -> None:
    for key in list(terms):
        if key not in terms:
            continue
        if not (isinstance(key, Binary) and key.op == "^" and key.right == TWO):
            continue
        base = key.left
        if not (isinstance(base, Unary) and base.op == "sin"):
            continue
        partner = Binary("^", Unary("cos", base.operand), TWO)
        if partner not in terms:
            continue
        c1, c2 = terms[key][0], terms[partner][0]
        if numeric.is_close(c1, c2):
            const[0] = const[0] + c1
            del terms[key]
            del terms[partner]


def _degree(factors: Factors) -> float:
    total = 0.0
    for exponent in factors.values():
        e = _numeric_exponent(exponent)
        if e is not None:
            total += float(e)
    return total


def _simplify_sum(expr: Expression) -> Expression:
    terms: Dict[Expression, List] = {}
    const: List[Number] = [0]
    _collect_terms(expr, 1, terms, const)
    _pythagorean(terms, const)
    ordered = sorted(
        ((c, f, key) for key, (c, f) in terms.items() if not _coef_is_zero(c)),
        key=lambda item: (-_degree(item[1]), sort_key(item[2])),
    )
    out: Optional[Expression] = None
    for c, factors, _ in ordered:
        c = numeric.normalize(c)
        if out is None:
            out = build_product(c, factors)
        elif numeric.is_real(c) and c < 0:
            out = Binary("-", out, build_product(-c, factors))
        else:
            out = Binary("+", out, build_product(c, factors))
    c = numeric.normalize(const[0])
    if out is None:
        return ZERO if _coef_is_zero(c) else Literal(c)
    if _coef_is_zero(c):
        return out
    if numeric.is_real(c) and c < 0:
        return Binary("-", out, Literal(-c))
    return Binary("+", out, Literal(c))


# =====================
# Powers and functions
# =====================


def _fold(value: Number, inexact_input: bool) -> Optional[Expression]:
    """Literal for a folded value, or None when folding would lose exactness."""
    value = numeric.normalize(value)
    if inexact_input or numeric.is_exact(value):
        return Literal(value)
    if isinstance(value, float) and numeric.is_integer(value):
        return Literal(int(value))
    return None


def _inexact(*values: Number) -> bool:
    return any(not numeric.is_exact(v) for v in values)


def _simplify_power(expr: Binary) -> Expression:
    base, exponent = expr.left, expr.right
    if isinstance(exponent, Literal) and exponent.value == 0:
        return ONE
    if _is_one(exponent):
        return base
    if base == ONE:
        return ONE
    if isinstance(base, Literal) and isinstance(base.value, float) and base.value == math.e:
        return simplify(Unary("exp", exponent))
    if isinstance(base, Literal) and isinstance(exponent, Literal):
        try:
            value = numeric.power(base.value, exponent.value)
        except ZeroDivisionError:
            return expr
        folded = _fold(value, _inexact(base.value, exponent.value))
        if folded is not None:
            return folded
        return _simplify_product(expr)
    if _numeric_exponent(exponent) is not None:
        return _simplify_product(expr)
    return expr


def _negative_part(expr: Expression) -> Optional[Expression]:
    """-expr in simplified form when expr reads as a negated quantity."""
    if isinstance(expr, Unary) and expr.op == "neg":
        return expr.operand
    if isinstance(expr, Literal) or _is_sum(expr):
        return None
    coef, factors = as_coefficient_and_factors(expr)
    if factors and numeric.is_real(coef) and coef < 0:
        return build_product(-coef, factors)
    return None


def _simplify_unary(expr: Unary) -> Expression:
    op, u = expr.op, expr.operand
    if op == "neg":
        if isinstance(u, Literal):
            return Literal(-u.value)
        return _simplify_product(expr)
    if isinstance(u, Literal):
        try:
            value = _eval_unary(op, u.value)
        except (DomainError, ValueError, OverflowError):
            value = None
        if value is not None:
            folded = _fold(value, _inexact(u.value))
            if folded is not None:
                return folded
    if op == "ln" and isinstance(u, Unary) and u.op == "exp":
        return u.operand
    if op == "exp" and isinstance(u, Unary) and u.op == "ln":
        return u.operand
    if op == "abs" and isinstance(u, Unary) and u.op == "abs":
        return u
    if op in ODD_FUNCTIONS or op in EVEN_FUNCTIONS:
        flipped = _negative_part(u)
        if flipped is not None:
            inner = simplify(Unary(op, flipped))
            if op in ODD_FUNCTIONS:
                return _simplify_product(Unary("neg", inner))
            return inner
    return expr


def _simplify_log(expr: Log) -> Expression:
    u, b = expr.operand, expr.base
    if isinstance(b, Literal) and isinstance(b.value, float) and b.value == math.e:
        return simplify(Unary("ln", u))
    if isinstance(u, Literal) and isinstance(b, Literal):
        try:
            value = _eval_log(u.value, b.value)
        except (DomainError, ValueError, ZeroDivisionError):
            return expr
        folded = _fold(value, _inexact(u.value, b.value))
        if folded is not None:
            return folded
    if u == b:
        return ONE
    return expr


def _simplify_modulo(expr: Binary) -> Expression:
    a, b = expr.left, expr.right
    if isinstance(a, Literal) and isinstance(b, Literal):
        try:
            return Literal(_eval_binary("%", a.value, b.value))
        except DomainError:
            return expr
    return expr


def _simplify_call(expr: Call) -> Expression:
    fn = FUNCTIONS.get(expr.name)
    if fn is None or not all(isinstance(a, Literal) for a in expr.args):
        return expr
    if fn.arity is not None and len(expr.args) != fn.arity:
        return expr
    values = [a.value for a in expr.args]
    try:
        value = fn.evaluate(*values)
    except (ArithmeticError, ValueError, TypeError):
        return expr
    folded = _fold(value, _inexact(*values))
    return folded if folded is not None else expr


# =====================
# Entry points
# =====================


@lru_cache(maxsize=4096)
def simplify(expr: Expression) -> Expression:
    """Canonical simplified form; value preserving and idempotent."""
    if isinstance(expr, (Literal, Variable)):
        return expr
    kids = expr.children()
    new = tuple(simplify(k) for k in kids)
    node = expr if all(a is b for a, b in zip(new, kids)) else expr.rebuild(new)
    if isinstance(node, Binary):
        if node.op in ("+", "-"):
            return _simplify_sum(node)
        if node.op in ("*", "/"):
            return _simplify_product(node)
        if node.op == "^":
            return _simplify_power(node)
        return _simplify_modulo(node)
    if isinstance(node, Unary):
        return _simplify_unary(node)
    if isinstance(node, Log):
        return _simplify_log(node)
    if isinstance(node, Call):
        return _simplify_call(node)
    return node


def as_terms(expr: Expression) -> List[Expression]:
    """Top-level additive terms, with subtraction folded into negation."""
    if isinstance(expr, Binary) and expr.op == "+":
        return as_terms(expr.left) + as_terms(expr.right)
    if isinstance(expr, Binary) and expr.op == "-":
        return as_terms(expr.left) + [_negate(t) for t in as_terms(expr.right)]
    if isinstance(expr, Unary) and expr.op == "neg" and _is_sum(expr.operand):
        return [_negate(t) for t in as_terms(expr.operand)]
    return [expr]


def _negate(term: Expression) -> Expression:
    if isinstance(term, Unary) and term.op == "neg":
        return term.operand
    return Unary("neg", term)


def _sum_of(terms: List[Expression]) -> Expression:
    if not terms:
        return ZERO
    out = terms[0]
    for t in terms[1:]:
        out = Binary("+", out, t)
    return out


def _expand_node(expr: Expression) -> Expression:
    if isinstance(expr, (Literal, Variable)):
        return expr
    if isinstance(expr, Binary):
        left, right = _expand_node(expr.left), _expand_node(expr.right)
        if expr.op in ("+", "-"):
            return Binary(expr.op, left, right)
        if expr.op == "*":
            return _sum_of([Binary("*", a, b) for a in as_terms(left) for b in as_terms(right)])
        if expr.op == "/":
            return _sum_of([Binary("/", a, right) for a in as_terms(left)])
        if expr.op == "^" and _is_int_literal(right) and right.value > 1 and _is_sum(simplify(left)):
            out = left
            for _ in range(int(right.value) - 1):
                out = _sum_of([Binary("*", a, b) for a in as_terms(simplify(out)) for b in as_terms(left)])
            return out
        return Binary(expr.op, left, right)
    if isinstance(expr, Unary) and expr.op == "neg":
        return _sum_of([_negate(t) for t in as_terms(_expand_node(expr.operand))])
    return expr.rebuild(tuple(_expand_node(k) for k in expr.children()))


@lru_cache(maxsize=1024)
def expand(expr: Expression) -> Expression:
    """Distribute products over sums and non-negative integer powers of sums."""
    current = simplify(expr)
    # products of sums can nest, e.g. (a+b)*((c+d)*(e+f))
    for _ in range(8):
        expanded = simplify(_expand_node(current))
        if expanded == current:
            break
        current = expanded
    return current


@lru_cache(maxsize=1024)
def cancel_factors(expr: Expression) -> Expression:
    """simplify, then divide out common factors even where they may vanish.

    x/x becomes 1 and x^3/x becomes x^2. The result agrees with expr wherever
    expr is defined, which is what antiderivatives need.
    """
    node = simplify(expr)
    if isinstance(node, (Literal, Variable)):
        return node
    node = node.rebuild(tuple(cancel_factors(k) for k in node.children()))
    if (isinstance(node, Binary) and node.op in ("*", "/")) or (isinstance(node, Unary) and node.op == "neg"):
        node = build_product(*as_coefficient_and_factors(node, assume_nonzero=True))
    return simplify(node)


def _half_angle(op: str, u: Expression) -> Expression:
    double = Binary("*", TWO, u)
    if op == "sin":
        return Binary("/", Binary("-", ONE, Unary("cos", double)), TWO)
    return Binary("/", Binary("+", ONE, Unary("cos", double)), TWO)


def _reduce(expr: Expression) -> Expression:
    if isinstance(expr, (Literal, Variable)):
        return expr
    node = expr.rebuild(tuple(_reduce(k) for k in expr.children()))
    if (
        isinstance(node, Binary)
        and node.op == "^"
        and isinstance(node.left, Unary)
        and node.left.op in ("sin", "cos")
        and _is_int_literal(node.right)
        and node.right.value > 0
        and node.right.value % 2 == 0
    ):
        half = _half_angle(node.left.op, node.left.operand)
        n = int(node.right.value) // 2
        return half if n == 1 else Binary("^", half, Literal(n))
    return node


def reduce_trig_powers(expr: Expression) -> Expression:
    """Rewrite even powers of sin/cos with the half-angle identities, then expand."""
    return expand(_reduce(simplify(expr)))


def cancel(expr: Expression, variable: str) -> Expression:
    """Cancel common polynomial factors of a rational function in `variable`.

    Expressions that are not rational functions come back unchanged.
    """
    # Local import to avoid circular dependency at module load time
    from polynomial import RationalFunction

    try:
        rf = RationalFunction.from_expression(expr, variable)
    except NotPolynomial:
        return expr
    if not rf.is_numeric():
        return expr
    result = rf.cancel().to_expression()
    logger.debug("cancel %s -> %s", expr, result)
    return result
