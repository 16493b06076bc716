"""
Symbolic Solver Module

This module solves single equations in one unknown: identities, factored
products, powers, quotients, polynomials up to degree 4 in closed form (higher
degrees when rational roots deflate them far enough) and equations where the
unknown occurs exactly once, by isolation.
"""
from __future__ import annotations
import cmath
import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Tuple, Union

from errors import CASError, DepthExceeded, NotPolynomial, UnsupportedDegree
from expression import (
    Binary,
    Equation,
    Expression,
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
from numeric import EPSILON, Number
from polynomial import Polynomial, RationalFunction
from simplifier import as_coefficient_and_factors, build_product, expand, simplify

logger = logging.getLogger(__name__)

MAX_DEPTH = 64

Value = Union[Number, Expression, None]

OMEGA = complex(-0.5, math.sqrt(3) / 2)

# op -> inverse function applied to the right-hand side
_INVERSES = {
    "sin": "asin",
    "cos": "acos",
    "tan": "atan",
    "asin": "sin",
    "acos": "cos",
    "atan": "tan",
    "exp": "ln",
    "ln": "exp",
}


@dataclass
class Solution:
    """Represents a solution to an equation."""
    variable: str
    value: Value
    multiplicity: Union[int, float] = 1

    @property
    def is_identity(self) -> bool:
        return self.value is None and self.multiplicity == math.inf

    def __str__(self) -> str:
        if self.is_identity:
            return f"{self.variable} ∈ ℝ"

        value_str = numeric.format_number(self.value) if numeric.is_number(self.value) else str(self.value)

        if self.multiplicity > 1:
            return f"{self.variable} = {value_str} (multiplicity {self.multiplicity})"
        return f"{self.variable} = {value_str}"

    @staticmethod
    def all_reals(var: str) -> "Solution":
        """Represents x ∈ ℝ (every value satisfies the equation)."""
        return Solution(var, None, multiplicity=math.inf)


class AllReals:
    """Result of solve() for an identity."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ALL_REALS"

    def __str__(self) -> str:
        return "ℝ"


ALL_REALS = AllReals()


def _finalize(value: Value, tol: float) -> Value:
    if value is None:
        return None
    if isinstance(value, Expression):
        value = simplify(value)
        if not isinstance(value, Literal):
            return value
        value = value.value
    return numeric.clean(value, tol)


def _count(expr: Expression, var: str) -> int:
    return sum(1 for n in expr.walk() if isinstance(n, Variable) and n.name == var)


def _divisors(expr: Expression, var: str) -> List[Expression]:
    """Subexpressions of expr, as written, that divide and depend on var."""
    found: List[Expression] = []
    for node in expr.walk():
        divisor = None
        if isinstance(node, Binary) and node.op == "/" and node.right.contains(var):
            divisor = node.right
        elif isinstance(node, Binary) and node.op == "^" and node.left.contains(var):
            e = simplify(node.right)
            if isinstance(e, Literal) and numeric.is_real(e.value) and e.value < 0:
                divisor = node.left
        if divisor is not None and divisor not in found:
            found.append(divisor)
    return found


class EquationSolver:
    """Solver for one equation in one unknown.

    With numeric_fallback=True, numeric polynomials of degree 5 and above
    that rational roots cannot deflate are solved by Durand-Kerner iteration
    instead of raising UnsupportedDegree.
    """

    def __init__(self, tol: float = EPSILON, max_depth: int = MAX_DEPTH, numeric_fallback: bool = False):
        self.tol = tol
        self.max_depth = max_depth
        self.numeric_fallback = numeric_fallback

    def solve(self, equation: Union[Equation, Expression], variable: Union[str, Variable]) -> List[Solution]:
        """
        Solve equation for variable.

        This is the main entry point for solving equations.

        Args:
            equation: an Equation, or an expression meaning expression = 0
            variable: the unknown

        Returns:
            List of solutions; [Solution.all_reals(var)] for an identity and
            [] when there is no solution. Roots that make a denominator of
            the equation as written vanish are dropped.

        Raises:
            NotPolynomial: the equation is neither polynomial nor isolable
            UnsupportedDegree: degree >= 5 without enough rational roots
            DepthExceeded: factor recursion went past max_depth
        """
        var = name_of(variable)
        if isinstance(equation, Equation):
            expr = equation.to_zero_form()
        else:
            expr = as_expr(equation)
        solutions = self._solve(simplify(expr), var, 0)
        for divisor in _divisors(expr, var):
            solutions = self._reject_poles(solutions, divisor, var)
        return solutions

    # -----------------
    # State machine
    # -----------------
    def _solve(self, expr: Expression, var: str, depth: int) -> List[Solution]:
        if depth > self.max_depth:
            raise DepthExceeded(f"solving {expr} = 0 for {var} exceeded depth {self.max_depth}")
        expanded = expand(expr)
        if isinstance(expanded, Literal) and numeric.is_zero(expanded.value, self.tol):
            logger.debug("identity: %s = 0", expr)
            return [Solution.all_reals(var)]
        if not expr.contains(var):
            logger.debug("no solution: %s = 0 has no %s", expr, var)
            return []

        coef, factors = as_coefficient_and_factors(expr)
        dependent = {b: e for b, e in factors.items() if b.contains(var) or e.contains(var)}
        numerator = {}
        denominator = {}
        for base, exponent in dependent.items():
            if isinstance(exponent, Literal) and numeric.is_real(exponent.value) and exponent.value < 0:
                denominator[base] = Literal(-exponent.value)
            else:
                numerator[base] = exponent

        if denominator:
            logger.debug("quotient: %s", expr)
            roots = self._solve(build_product(1, numerator), var, depth + 1)
            return self._reject_poles(roots, build_product(1, denominator), var)

        if len(numerator) >= 2:
            logger.debug("factored form: %s", expr)
            solutions: List[Solution] = []
            # right-hand factors first
            for base, exponent in reversed(list(numerator.items())):
                for s in self._solve(build_product(1, {base: exponent}), var, depth + 1):
                    self._merge(solutions, s)
            return solutions

        (base, exponent), = numerator.items()
        if exponent != ONE and not exponent.contains(var):
            n = exponent.value if isinstance(exponent, Literal) and numeric.is_real(exponent.value) else None
            if n is not None and n > 0:
                logger.debug("power form: (%s)^%s", base, exponent)
                scale = int(n) if numeric.is_integer(n) else 1
                return [
                    s if s.is_identity else Solution(var, s.value, s.multiplicity * scale)
                    for s in self._solve(base, var, depth + 1)
                ]
        if coef != 1 or len(factors) > 1:
            # var-free factors do not change the roots
            return self._solve(build_product(1, numerator), var, depth + 1)

        try:
            poly = Polynomial.from_expression(expanded, var)
        except NotPolynomial:
            poly = None
        if poly is not None:
            return self.solve_polynomial(poly)

        try:
            rf = RationalFunction.from_expression(expr, var)
        except NotPolynomial:
            rf = None
        if rf is not None and rf.denominator.degree() > 0:
            logger.debug("rational function: %s", rf)
            roots = self.solve_polynomial(rf.numerator)
            return self._reject_poles(roots, rf.denominator.to_expression(), var)

        if _count(expr, var) == 1:
            logger.debug("isolating %s in %s", var, expr)
            return self._isolated(expr, var)
        raise NotPolynomial(expr, var)

    def _same(self, a: Value, b: Value) -> bool:
        if numeric.is_number(a) and numeric.is_number(b):
            return numeric.is_close(a, b, self.tol)
        return a == b

    def _merge(self, solutions: List[Solution], new: Solution) -> None:
        for i, s in enumerate(solutions):
            if s.is_identity or new.is_identity:
                continue
            if self._same(s.value, new.value):
                solutions[i] = Solution(s.variable, s.value, s.multiplicity + new.multiplicity)
                return
        solutions.append(new)

    def _reject_poles(self, roots: List[Solution], denominator: Expression, var: str) -> List[Solution]:
        kept = []
        for s in roots:
            if s.is_identity:
                # numerator vanishes everywhere; the quotient is zero off the poles
                kept.append(s)
                continue
            at_root = simplify(denominator.substitute(var, as_expr(s.value)))
            if isinstance(at_root, Literal) and numeric.is_zero(at_root.value, self.tol):
                logger.debug("rejecting %s = %s: denominator vanishes", var, s.value)
                continue
            kept.append(s)
        return kept

    # -----------------
    # Polynomials
    # -----------------
    def solve_polynomial(self, poly: Polynomial) -> List[Solution]:
        """
        Solve poly = 0 by degree.

        Args:
            poly: polynomial in the unknown (coefficients may be parametric)

        Returns:
            List of solutions with multiplicities
        """
        var = poly.variable
        coeffs = poly.coefficients
        if poly.is_zero():
            return [Solution.all_reals(var)]

        # Factor out x^k
        k = 0
        while k < len(coeffs) - 1 and isinstance(coeffs[k], Literal) and numeric.is_zero(coeffs[k].value, 0.0):
            k += 1
        if k > 0:
            rest = Polynomial(coeffs[k:], var)
            solutions = [Solution(var, 0, multiplicity=k)]
            for s in self.solve_polynomial(rest):
                self._merge(solutions, s)
            return solutions

        degree = poly.degree()
        if degree == 0:
            return []
        if degree == 1:
            return self.solve_linear(poly)
        if degree == 2:
            return self.solve_quadratic(poly)
        if degree == 3:
            return self.solve_cubic(poly)

        # Rational Root Theorem deflation down to a closed-form degree
        solutions, remaining = self._deflate(poly)
        if remaining.degree() == 4 and remaining.is_numeric():
            tail = self.solve_quartic(remaining)
        elif remaining.degree() <= 3:
            tail = self.solve_polynomial(remaining)
        elif self.numeric_fallback and remaining.is_numeric():
            logger.debug("degree %d: Durand-Kerner on %s", remaining.degree(), remaining)
            tail = [Solution(var, r) for r in remaining.durand_kerner_roots()]
        else:
            raise UnsupportedDegree(degree, var)
        for s in tail:
            self._merge(solutions, s)
        return solutions

    def _deflate(self, poly: Polynomial) -> Tuple[List[Solution], Polynomial]:
        var = poly.variable
        solutions: List[Solution] = []
        remaining = poly
        for root in poly.rational_roots():
            # Count how many times this root divides the polynomial
            multiplicity = 0
            while remaining.degree() > 0 and remaining.evaluate(root) == 0:
                multiplicity += 1
                remaining = remaining.synthetic_divide(root)
            if multiplicity > 0:
                solutions.append(Solution(var, root, multiplicity=multiplicity))
        return solutions, remaining

    def solve_linear(self, poly: Polynomial) -> List[Solution]:
        """
        Solve linear equation: ax + b = 0 → x = -b/a
        """
        b, a = poly.coefficients
        value = Binary("/", Unary("neg", b), a)
        return [Solution(poly.variable, _finalize(value, self.tol))]

    def solve_quadratic(self, poly: Polynomial) -> List[Solution]:
        """
        Solve quadratic equation: ax² + bx + c = 0

        Uses quadratic formula: x = (-b ± √(b²-4ac))/(2a), the + root first.
        Roots are exact when the discriminant is a rational square, complex
        when it is negative, and expressions for parametric coefficients.
        """
        var = poly.variable
        if not poly.is_numeric():
            return self._symbolic_quadratic(poly)
        c, b, a = poly.numeric_coefficients()

        # Discriminant: Δ = b² - 4ac
        discriminant = numeric.normalize(b * b - 4 * a * c)
        two_a = 2 * a

        if numeric.is_zero(discriminant, self.tol * max(1.0, abs(b * b))):
            # One repeated root: x = -b/(2a)
            return [Solution(var, numeric.clean(numeric.divide(-b, two_a), self.tol), multiplicity=2)]

        sqrt_disc = numeric.exact_sqrt(discriminant)
        if sqrt_disc is None:
            if numeric.is_real(discriminant) and discriminant > 0:
                sqrt_disc = math.sqrt(discriminant)
            else:
                sqrt_disc = cmath.sqrt(discriminant)

        root1 = numeric.divide(-b + sqrt_disc, two_a)
        root2 = numeric.divide(-b - sqrt_disc, two_a)
        return [Solution(var, numeric.clean(root1, self.tol)), Solution(var, numeric.clean(root2, self.tol))]

    def _symbolic_quadratic(self, poly: Polynomial) -> List[Solution]:
        var = poly.variable
        c, b, a = poly.coefficients
        discriminant = expand(Binary("-", Binary("^", b, TWO), Binary("*", Literal(4), Binary("*", a, c))))
        two_a = Binary("*", TWO, a)
        neg_b = Unary("neg", b)
        if isinstance(discriminant, Literal) and numeric.is_zero(discriminant.value, self.tol):
            return [Solution(var, _finalize(Binary("/", neg_b, two_a), self.tol), multiplicity=2)]
        root = Unary("sqrt", discriminant)
        return [
            Solution(var, _finalize(Binary("/", Binary("+", neg_b, root), two_a), self.tol)),
            Solution(var, _finalize(Binary("/", Binary("-", neg_b, root), two_a), self.tol)),
        ]

    def solve_cubic(self, poly: Polynomial) -> List[Solution]:
        """
        Solve cubic equation: ax³ + bx² + cx + d = 0.

        Exact coefficients try rational roots first; otherwise the depressed
        cubic t³ + pt + q = 0 (x = t - b/(3a)) is solved with Cardano's
        formula using complex cube roots.
        """
        if not poly.is_numeric():
            return self._symbolic_cubic(poly)

        solutions, remaining = self._deflate(poly)
        if solutions:
            for s in self.solve_polynomial(remaining):
                self._merge(solutions, s)
            return solutions

        var = poly.variable
        d, c, b, a = poly.numeric_coefficients()
        if all(numeric.is_real(v) for v in (a, b, c, d)):
            a, b, c, d = float(a), float(b), float(c), float(d)
        else:
            a, b, c, d = complex(a), complex(b), complex(c), complex(d)

        p = (3 * a * c - b * b) / (3 * a * a)
        q = (2 * b ** 3 - 9 * a * b * c + 27 * a * a * d) / (27 * a ** 3)
        shift = -b / (3 * a)

        if abs(p) <= self.tol and abs(q) <= self.tol:
            # Triple root at t = 0
            logger.debug("cubic triple root at %s", shift)
            return [Solution(var, numeric.clean(shift, self.tol), multiplicity=3)]

        discriminant = (q / 2) ** 2 + (p / 3) ** 3
        if isinstance(discriminant, float) and discriminant >= 0:
            s = math.sqrt(discriminant)
            u = numeric.real_cbrt(-q / 2 + s)
            v = numeric.real_cbrt(-q / 2 - s)
            ts = [u + v, OMEGA * u + OMEGA.conjugate() * v, OMEGA.conjugate() * u + OMEGA * v]
        else:
            s = cmath.sqrt(discriminant)
            big_c = (-q / 2 + s) ** (1.0 / 3.0)
            if abs(big_c) <= self.tol:
                big_c = (-q / 2 - s) ** (1.0 / 3.0)
            ts = []
            for k in range(3):
                ck = big_c * OMEGA ** k
                ts.append(ck - p / (3 * ck))

        solutions = []
        for t in ts:
            self._merge(solutions, Solution(var, numeric.clean(t + shift, self.tol)))
        return solutions

    def solve_quartic(self, poly: Polynomial) -> List[Solution]:
        """
        Solve quartic equation: ax⁴ + bx³ + cx² + dx + e = 0 by Ferrari's method.

        The depressed quartic t⁴ + pt² + qt + r = 0 (x = t - b/(4a)) is a
        quadratic in t² when q = 0. Otherwise a nonzero root m of the
        resolvent cubic 8m³ + 8pm² + (2p² - 8r)m - q² = 0 splits it into
        two quadratics t² ∓ √(2m)·t + p/2 + m ± q/(2√(2m)) = 0.
        """
        var = poly.variable
        e, d, c, b, a = (complex(v) for v in poly.numeric_coefficients())
        b, c, d, e = b / a, c / a, d / a, e / a

        p = c - 3 * b * b / 8
        q = d - b * c / 2 + b ** 3 / 8
        r = e - b * d / 4 + b * b * c / 16 - 3 * b ** 4 / 256
        shift = -b / 4

        ts: List[complex] = []
        if abs(q) <= self.tol:
            # Biquadratic: z = t²
            for z in _quadratic_roots(1, p, r):
                s = cmath.sqrt(z)
                ts.extend([s, -s])
        else:
            resolvent = Polynomial.from_numbers([numeric.normalize(-q * q), numeric.normalize(2 * p * p - 8 * r),
                                                 numeric.normalize(8 * p), 8], var)
            m = max((complex(s.value) for s in self.solve_cubic(resolvent)), key=abs)
            s = cmath.sqrt(2 * m)
            ts.extend(_quadratic_roots(1, -s, p / 2 + m + q / (2 * s)))
            ts.extend(_quadratic_roots(1, s, p / 2 + m - q / (2 * s)))

        logger.debug("quartic %s: p=%s q=%s r=%s", poly, p, q, r)
        solutions: List[Solution] = []
        for t in ts:
            self._merge(solutions, Solution(var, numeric.clean(t + shift, self.tol)))
        return solutions

    def _symbolic_cubic(self, poly: Polynomial) -> List[Solution]:
        var = poly.variable
        d, c, b, a = poly.coefficients
        three = Literal(3)
        p = expand(Binary("/", Binary("-", Binary("*", three, Binary("*", a, c)), Binary("^", b, TWO)),
                          Binary("*", three, Binary("^", a, TWO))))
        q = expand(Binary(
            "/",
            Binary(
                "+",
                Binary("-", Binary("*", TWO, Binary("^", b, three)), Binary("*", Literal(9), Binary("*", a, Binary("*", b, c)))),
                Binary("*", Literal(27), Binary("*", Binary("^", a, TWO), d)),
            ),
            Binary("*", Literal(27), Binary("^", a, three)),
        ))
        shift = Binary("/", Unary("neg", b), Binary("*", three, a))
        if _is_zero_expr(p) and _is_zero_expr(q):
            return [Solution(var, _finalize(shift, self.tol), multiplicity=3)]
        discriminant = Binary("+", Binary("^", Binary("/", q, TWO), TWO), Binary("^", Binary("/", p, three), three))
        big_c = Unary("cbrt", Binary("+", Unary("neg", Binary("/", q, TWO)), Unary("sqrt", discriminant)))
        solutions = []
        for k in range(3):
            ck = big_c if k == 0 else Binary("*", Literal(OMEGA ** k), big_c)
            t = Binary("-", ck, Binary("/", p, Binary("*", three, ck)))
            solutions.append(Solution(var, _finalize(Binary("+", t, shift), self.tol)))
        return solutions

    # -----------------
    # Isolation
    # -----------------
    def isolate(self, expr: Expression, var: str) -> Optional[List[Expression]]:
        """Candidate values of var from expr = 0 when var occurs once, else None."""
        if _count(expr, var) != 1:
            return None
        branches = [(expr, ZERO)]
        results: List[Expression] = []
        while branches:
            lhs, rhs = branches.pop()
            step = self._invert(lhs, rhs, var)
            if step is None:
                return None
            for new_lhs, new_rhs in step:
                if isinstance(new_lhs, Variable):
                    results.append(simplify(new_rhs))
                else:
                    branches.append((new_lhs, new_rhs))
        results.reverse()
        return results

    def _invert(self, lhs: Expression, rhs: Expression, var: str) -> Optional[List[Tuple[Expression, Expression]]]:
        if isinstance(lhs, Variable):
            return [(lhs, rhs)]
        if isinstance(lhs, Unary):
            u = lhs.operand
            if lhs.op == "neg":
                return [(u, Unary("neg", rhs))]
            if lhs.op in _INVERSES:
                return [(u, Unary(_INVERSES[lhs.op], rhs))]
            if lhs.op == "sqrt":
                return [(u, Binary("^", rhs, TWO))]
            if lhs.op == "cbrt":
                return [(u, Binary("^", rhs, Literal(3)))]
            if lhs.op == "abs":
                return [(u, rhs), (u, Unary("neg", rhs))]
            return None
        if isinstance(lhs, Log):
            if lhs.base.contains(var):
                return None
            return [(lhs.operand, Binary("^", lhs.base, rhs))]
        if isinstance(lhs, Binary):
            left, right = lhs.left, lhs.right
            on_left = left.contains(var)
            if lhs.op == "+":
                return [(left, Binary("-", rhs, right))] if on_left else [(right, Binary("-", rhs, left))]
            if lhs.op == "-":
                return [(left, Binary("+", rhs, right))] if on_left else [(right, Binary("-", left, rhs))]
            if lhs.op == "*":
                return [(left, Binary("/", rhs, right))] if on_left else [(right, Binary("/", rhs, left))]
            if lhs.op == "/":
                return [(left, Binary("*", rhs, right))] if on_left else [(right, Binary("/", left, rhs))]
            if lhs.op == "^":
                if on_left:
                    n = right.value if isinstance(right, Literal) else None
                    if n is not None and numeric.is_exact(n) and numeric.is_integer(n) and n % 2 == 0:
                        root = Binary("^", rhs, Binary("/", ONE, right))
                        return [(left, root), (left, Unary("neg", root))]
                    return [(left, Binary("^", rhs, Binary("/", ONE, right)))]
                return [(right, Binary("/", Unary("ln", rhs), Unary("ln", left)))]
        return None

    def _isolated(self, expr: Expression, var: str) -> List[Solution]:
        candidates = self.isolate(expr, var)
        if candidates is None:
            raise NotPolynomial(expr, var)
        solutions: List[Solution] = []
        for value in candidates:
            value = _finalize(value, self.tol)
            if isinstance(value, Expression) and value.is_constant():
                try:
                    value = numeric.clean(value.evaluate(), self.tol)
                except (CASError, ArithmeticError):
                    logger.debug("dropping %s = %s: undefined", var, value)
                    continue
            if numeric.is_number(value) and not self._satisfies(expr, var, value):
                logger.debug("dropping extraneous %s = %s", var, value)
                continue
            self._merge(solutions, Solution(var, value))
        return solutions

    def _satisfies(self, expr: Expression, var: str, value: Number) -> bool:
        try:
            residual = expr.evaluate({var: value})
        except (CASError, ArithmeticError, ValueError):
            return False
        if not numeric.is_number(residual):
            return False
        return numeric.is_zero(residual, math.sqrt(self.tol))


def _is_zero_expr(e: Expression) -> bool:
    return isinstance(e, Literal) and numeric.is_zero(e.value)


def _quadratic_roots(a: complex, b: complex, c: complex) -> Tuple[complex, complex]:
    root = cmath.sqrt(b * b - 4 * a * c)
    return (-b + root) / (2 * a), (-b - root) / (2 * a)


_default_solver = EquationSolver()


def solve(
    equation: Union[Equation, Expression],
    variable: Union[str, Variable],
    tol: float = EPSILON,
    max_depth: int = MAX_DEPTH,
) -> Union[List[Value], AllReals]:
    """Flat list of roots, each repeated by its multiplicity, or ALL_REALS."""
    solver = _default_solver if (tol, max_depth) == (EPSILON, MAX_DEPTH) else EquationSolver(tol, max_depth)
    solutions = solver.solve(equation, variable)
    if any(s.is_identity for s in solutions):
        return ALL_REALS
    values: List[Value] = []
    for s in solutions:
        values.extend([s.value] * int(s.multiplicity))
    return values


def solve_polynomial(poly: Polynomial) -> List[Solution]:
    return _default_solver.solve_polynomial(poly)
