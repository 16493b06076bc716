"""Tests for symbolic differentiation."""

import math

import numpy as np
import pytest

from differentiation import derivative, differentiate, gradient, maclaurin_series, taylor_series
from errors import UnsupportedForm
from expression import (
    Binary,
    Literal,
    acos,
    asin,
    atan,
    call,
    cbrt,
    cos,
    cosh,
    cot,
    csc,
    exp,
    ln,
    log,
    sec,
    sin,
    sinh,
    sqrt,
    symbols,
    tan,
    tanh,
)
from simplifier import simplify

x, y = symbols("x y")


def numeric_derivative(expr, at, h=1e-6):
    return (expr.evaluate(x=at + h) - expr.evaluate(x=at - h)) / (2 * h)


CASES = [
    x ** 3,
    3 * x ** 2 - 5 * x + 7,
    sin(x) * cos(x),
    tan(x),
    sec(x) + csc(x) + cot(x),
    exp(2 * x),
    ln(x),
    log(x, 2),
    sqrt(x),
    cbrt(x),
    x / (x ** 2 + 1),
    asin(x / 2) + acos(x / 3),
    atan(x),
    sinh(x) + cosh(x) + tanh(x),
    x ** x,
    Literal(2) ** x,
    x * exp(x) * sin(x),
    call("hypot", x, 3),
]


class TestRules:
    """Tests for individual derivative rules."""

    def test_derivative_is_not_simplified(self):
        """The raw derivative of x^2 keeps the power-rule shape."""
        d = differentiate(x ** 2, "x")
        assert isinstance(d, Binary)
        assert d != Binary("*", Literal(2), x)
        assert simplify(d) == Binary("*", Literal(2), x)

    def test_constant_and_variable(self):
        """d/dx c = 0, d/dx x = 1, d/dx y = 0."""
        assert differentiate(Literal(5), "x") == Literal(0)
        assert differentiate(x, "x") == Literal(1)
        assert differentiate(y, "x") == Literal(0)

    def test_sin_and_cos(self):
        """d/dx sin x = cos x and d/dx cos x = -sin x after simplification."""
        assert simplify(differentiate(sin(x), "x")) == cos(x)
        assert simplify(differentiate(cos(x), "x")) == -sin(x)

    def test_minus_cos(self):
        """simplify(d/dx -cos x) = sin x."""
        assert simplify(differentiate(-cos(x), "x")) == sin(x)

    def test_partial_derivative(self):
        """Other variables are constants."""
        assert simplify(differentiate(x * y ** 2, "y")) == simplify(2 * x * y)

    def test_modulo_by_variable_unsupported(self):
        """x % x has no derivative rule."""
        with pytest.raises(UnsupportedForm):
            differentiate(x % x, "x")

    def test_modulo_by_constant(self):
        """d/dx (x % 3) = 1."""
        assert simplify(differentiate(x % 3, "x")) == Literal(1)

    def test_unregistered_call(self):
        """Calls without registered partials are unsupported."""
        with pytest.raises(UnsupportedForm):
            differentiate(call("floorish", x), "x")


class TestAgainstFiniteDifferences:
    """Tests comparing symbolic derivatives with central differences."""

    @pytest.mark.parametrize("expr", CASES)
    def test_matches_numeric(self, expr):
        """The derivative agrees with a central difference."""
        d = derivative(expr, "x")
        rng = np.random.default_rng(11)
        for at in rng.uniform(0.3, 1.5, size=4):
            at = float(at)
            assert float(d.evaluate(x=at)) == pytest.approx(numeric_derivative(expr, at), rel=1e-5, abs=1e-6)


class TestHigherOrder:
    """Tests for repeated derivatives and gradients."""

    def test_second_derivative(self):
        """d2/dx2 x^3 = 6x."""
        assert derivative(x ** 3, "x", order=2) == simplify(6 * x)

    def test_order_zero(self):
        """Order 0 returns the input."""
        e = sin(x)
        assert derivative(e, "x", order=0) is e

    def test_negative_order(self):
        """Negative orders are rejected."""
        with pytest.raises(ValueError):
            derivative(x, "x", order=-1)

    def test_gradient(self):
        """gradient() maps names to partial derivatives."""
        g = gradient(x ** 2 * y, ["x", "y"])
        assert g["x"] == simplify(2 * x * y)
        assert g["y"] == simplify(x ** 2)

    def test_unsimplified_option(self):
        """simplify=False returns the raw tree."""
        assert derivative(x ** 2, "x", simplify=False) == differentiate(x ** 2, "x")


class TestTaylorSeries:
    """Tests for taylor_series and maclaurin_series."""

    def test_maclaurin_sin(self):
        """sin x = x - x^3/6 + x^5/120 + ..."""
        series = maclaurin_series(sin(x), "x", order=5)
        assert series == simplify(x - x ** 3 / 6 + x ** 5 / 120)
        assert series.evaluate(x=0.3) == pytest.approx(math.sin(0.3), abs=1e-6)

    def test_exp_about_one(self):
        """The cubic Taylor polynomial of exp about 1 is close near 1."""
        series = taylor_series(exp(x), "x", 1, 3)
        assert series.evaluate(x=1.2) == pytest.approx(math.exp(1.2), abs=1e-3)

    def test_ln_about_one(self):
        """ln x about 1 has no constant term."""
        series = taylor_series(ln(x), "x", 1, 4)
        assert series.evaluate(x=1) == 0
        assert series.evaluate(x=1.1) == pytest.approx(math.log(1.1), abs=1e-5)

    def test_polynomial_is_its_own_series(self):
        """A cubic is reproduced exactly from order 3 on."""
        e = x ** 3 - 2 * x + 1
        assert taylor_series(e, "x", 0, 6) == simplify(e)

    def test_stops_where_undefined(self):
        """sqrt x has no derivative at 0, so only the zero value term is kept."""
        assert taylor_series(sqrt(x), "x", 0, 4) == Literal(0)

    def test_negative_order(self):
        """Negative orders are rejected."""
        with pytest.raises(ValueError):
            taylor_series(sin(x), "x", 0, -1)
