"""Tests for the single-equation solver."""

import math
from fractions import Fraction

import numpy as np
import pytest

from errors import NotPolynomial, UnsupportedDegree
from expression import Equation, Literal, exp, ln, sin, sqrt, symbols
from polynomial import Polynomial
from simplifier import simplify
from solver import ALL_REALS, EquationSolver, Solution, solve, solve_polynomial

x, y, a, b, c = symbols("x y a b c")


def values_of(solutions):
    return [s.value for s in solutions]


class TestScenarios:
    """Tests for the canonical worked examples."""

    def test_difference_of_squares(self):
        """x^2 - 1 = 0 gives 1 and -1."""
        assert solve(Equation(x ** 2 - 1, 0), "x") == [1, -1]

    def test_factored_product(self):
        """(x - 1)(x - 2) = 0 gives [2, 1], the right-hand factor first."""
        assert solve((x - 1) * (x - 2), "x") == [2, 1]

    def test_identity(self):
        """x - x = 0 holds for every x."""
        assert solve(x - x, "x") is ALL_REALS
        solutions = EquationSolver().solve(x - x, "x")
        assert len(solutions) == 1 and solutions[0].is_identity
        assert str(solutions[0]) == "x ∈ ℝ"

    def test_triple_root(self):
        """x^3 = 0 gives 0 three times."""
        assert solve(Equation(x ** 3, 0), "x") == [0, 0, 0]


class TestPolynomials:
    """Tests for the closed-form polynomial cases."""

    def test_linear(self):
        """2x + 3 = 0 gives the exact root -3/2."""
        assert solve(2 * x + 3, "x") == [Fraction(-3, 2)]

    def test_equation_sides(self):
        """Both sides of an Equation are used."""
        assert solve(Equation(3 * x, x + 4), "x") == [2]

    def test_repeated_quadratic_root(self):
        """(x - 3)^2 has a double root."""
        solutions = EquationSolver().solve(x ** 2 - 6 * x + 9, "x")
        assert len(solutions) == 1
        assert solutions[0].value == 3 and solutions[0].multiplicity == 2

    def test_irrational_quadratic(self):
        """x^2 - 2 = 0 gives +sqrt(2) first, then -sqrt(2)."""
        roots = solve(x ** 2 - 2, "x")
        assert roots[0] == pytest.approx(math.sqrt(2))
        assert roots[1] == pytest.approx(-math.sqrt(2))

    def test_complex_quadratic(self):
        """x^2 + 1 = 0 gives +i and -i."""
        roots = solve(x ** 2 + 1, "x")
        assert roots == [1j, -1j]

    def test_cubic_with_rational_roots(self):
        """x^3 - 6x^2 + 11x - 6 has roots 1, 2, 3."""
        assert sorted(solve(x ** 3 - 6 * x ** 2 + 11 * x - 6, "x")) == [1, 2, 3]

    def test_cubic_cardano(self):
        """x^3 - 2 has one real root and two complex ones."""
        roots = solve(x ** 3 - 2, "x")
        assert len(roots) == 3
        real = [r for r in roots if not isinstance(r, complex)]
        assert len(real) == 1
        assert real[0] == pytest.approx(2 ** (1 / 3))
        for r in roots:
            assert abs(r ** 3 - 2) < 1e-9

    def test_cubic_triple_root_shifted(self):
        """(x - 2)^3 expanded is a triple root at 2."""
        solutions = EquationSolver().solve(x ** 3 - 6 * x ** 2 + 12 * x - 8, "x")
        assert [(s.value, s.multiplicity) for s in solutions] == [(2, 3)]

    def test_quartic_by_deflation(self):
        """x^4 - 5x^2 + 4 deflates by its rational roots."""
        assert sorted(solve(x ** 4 - 5 * x ** 2 + 4, "x")) == [-2, -1, 1, 2]

    def test_quartic_ferrari_biquadratic(self):
        """x^4 - 2 has two real and two imaginary fourth roots of 2."""
        roots = solve(x ** 4 - 2, "x")
        assert len(roots) == 4
        real = sorted(r for r in roots if not isinstance(r, complex))
        assert real == pytest.approx([-(2 ** 0.25), 2 ** 0.25])
        for r in roots:
            assert abs(r ** 4 - 2) < 1e-9

    def test_quartic_ferrari_general(self):
        """x^4 + x + 1 goes through the resolvent cubic."""
        roots = solve(x ** 4 + x + 1, "x")
        assert len(roots) == 4
        for r in roots:
            assert abs(r ** 4 + r + 1) < 1e-8

    def test_quartic_partial_deflation(self):
        """(x - 1)(x^3 - 2) deflates once, then the cubic formula applies."""
        roots = solve(x ** 4 - x ** 3 - 2 * x + 2, "x")
        assert 1 in roots
        assert len(roots) == 4

    def test_unsupported_degree(self):
        """x^5 - x - 1 has no rational roots to deflate with."""
        with pytest.raises(UnsupportedDegree) as info:
            solve(x ** 5 - x - 1, "x")
        assert info.value.degree == 5

    def test_numeric_fallback(self):
        """With numeric_fallback, degree 5 is solved by Durand-Kerner."""
        solutions = EquationSolver(numeric_fallback=True).solve(x ** 5 - x - 1, "x")
        assert len(solutions) == 5
        for s in solutions:
            assert abs(s.value ** 5 - s.value - 1) < 1e-8

    def test_solve_polynomial_directly(self):
        """solve_polynomial works on a Polynomial."""
        solutions = solve_polynomial(Polynomial.from_numbers([-4, 0, 1], "x"))
        assert values_of(solutions) == [2, -2]

    @pytest.mark.parametrize(
        "roots",
        [(1, 2), (-3, 5), (Fraction(1, 2), 4), (2, 2, 7), (-1, 0, 3), (Fraction(-2, 3), 1, 6)],
    )
    def test_known_roots(self, roots):
        """Polynomials built from known roots give them back."""
        expr = Literal(1)
        for r in roots:
            expr = expr * (x - r)
        expanded_roots = sorted(solve(simplify(Polynomial.from_expression(expr, "x").to_expression()), "x"))
        assert expanded_roots == sorted(roots)


class TestParametric:
    """Tests for symbolic coefficients."""

    def test_linear_in_parameter(self):
        """a*x + b = 0 gives -b/a."""
        (root,) = solve(a * x + b, "x")
        assert root == simplify(-b / a)

    def test_quadratic_in_parameters(self):
        """Roots of a*x^2 + b*x + c satisfy the equation."""
        roots = solve(a * x ** 2 + b * x + c, "x")
        assert len(roots) == 2
        env = {"a": 1.0, "b": -3.0, "c": 2.0}
        values = sorted(r.evaluate(env) for r in roots)
        assert values == pytest.approx([1.0, 2.0])


class TestNonPolynomial:
    """Tests for quotients, powers and isolation."""

    def test_quotient_rejects_poles(self):
        """(x^2 - 1)/(x - 1) = 0 only has x = -1."""
        assert solve((x ** 2 - 1) / (x - 1), "x") == [-1]

    def test_rational_function(self):
        """1/x - 1 = 0 gives x = 1."""
        assert solve(1 / x - 1, "x") == [1]

    def test_pole_of_cancelled_factor(self):
        """(x - 1)^2/(x - 1) = 0 has no root: x = 1 is a pole."""
        assert solve((x - 1) ** 2 / (x - 1), "x") == []

    def test_held_quotient_factor(self):
        """x(x - 2)/x = 0 keeps x = 2 and drops the pole at 0."""
        assert solve(x * (x - 2) / x, "x") == [2]
        assert solve(x / x, "x") == []

    def test_power_form(self):
        """(x - 1)^4 = 0 has a root of multiplicity 4."""
        solutions = EquationSolver().solve((x - 1) ** 4, "x")
        assert [(s.value, s.multiplicity) for s in solutions] == [(1, 4)]

    def test_exp_isolation(self):
        """exp(x) = 5 gives ln 5."""
        assert solve(Equation(exp(x), 5), "x") == [pytest.approx(math.log(5))]

    def test_ln_isolation(self):
        """ln(x) + 1 = 0 gives 1/e."""
        assert solve(ln(x) + 1, "x") == [pytest.approx(math.exp(-1))]

    def test_sqrt_isolation(self):
        """sqrt(x + 1) = 3 gives 8."""
        assert solve(Equation(sqrt(x + 1), 3), "x") == [8]

    def test_extraneous_root_dropped(self):
        """sqrt(x) = -2 has no solution."""
        assert solve(Equation(sqrt(x), -2), "x") == []

    def test_sin_isolation(self):
        """sin(x) = 1/2 gives the principal value pi/6."""
        assert solve(Equation(sin(x), Fraction(1, 2)), "x") == [pytest.approx(math.pi / 6)]

    def test_no_variable(self):
        """A constant nonzero equation has no solution."""
        assert solve(Literal(3), "x") == []

    def test_not_polynomial(self):
        """x + sin(x) = 0 is out of reach."""
        with pytest.raises(NotPolynomial):
            solve(x + sin(x), "x")


class TestCorrectness:
    """Property tests: substituting roots back gives zero."""

    def test_random_quadratics(self):
        """Random real quadratics are solved to tolerance."""
        rng = np.random.default_rng(5)
        for _ in range(20):
            a2, b2, c2 = (float(v) for v in rng.uniform(-5, 5, size=3))
            expr = Literal(a2) * x ** 2 + Literal(b2) * x + Literal(c2)
            for root in solve(expr, "x"):
                assert abs(a2 * root ** 2 + b2 * root + c2) < 1e-7

    def test_random_cubics(self):
        """Random real cubics are solved to tolerance."""
        rng = np.random.default_rng(9)
        for _ in range(20):
            a3, b3, c3, d3 = (float(v) for v in rng.uniform(-4, 4, size=4))
            expr = Literal(a3) * x ** 3 + Literal(b3) * x ** 2 + Literal(c3) * x + Literal(d3)
            roots = solve(expr, "x")
            assert len(roots) == 3
            for root in roots:
                assert abs(a3 * root ** 3 + b3 * root ** 2 + c3 * root + d3) < 1e-6

    def test_random_quartics(self):
        """Random real quartics are solved to tolerance."""
        rng = np.random.default_rng(13)
        for _ in range(10):
            lead = float(rng.uniform(1, 4))
            rest = [float(v) for v in rng.uniform(-4, 4, size=4)]
            coeffs = [lead] + rest
            expr = Literal(0)
            for power, coef in zip(range(4, -1, -1), coeffs):
                expr = expr + Literal(coef) * x ** power
            roots = solve(expr, "x")
            assert len(roots) == 4
            for root in roots:
                residual = sum(coef * root ** power for power, coef in zip(range(4, -1, -1), coeffs))
                assert abs(residual) < 1e-6

    def test_solution_str(self):
        """Solutions print with their multiplicity."""
        assert str(Solution("x", 2)) == "x = 2"
        assert str(Solution("x", 0, 3)) == "x = 0 (multiplicity 3)"
