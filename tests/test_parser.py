"""Tests for the text front end."""

from fractions import Fraction

import pytest

from expression import E, PI, Binary, Equation, Literal, Log, Unary, Variable, call, cos, ln, sin, symbols
from parser import parse, parse_equation, tokenize

x, y, z = symbols("x y z")


class TestTokenizer:
    """Tests for tokenize."""

    def test_unary_minus(self):
        """A leading '-' is a sign, a later one is subtraction."""
        kinds = [t.kind for t in tokenize("-x - 1")]
        assert kinds == ["NEG", "ID", "-", "NUM"]

    def test_function_needs_paren(self):
        """A known function name is only a call when '(' follows."""
        assert tokenize("sin(x)")[0].kind == "FUNC"
        assert tokenize("sin")[0].kind == "ID"

    def test_implicit_multiplication_tokens(self):
        """Juxtaposed operands get an explicit '*'."""
        kinds = [t.kind for t in tokenize("2x(y)")]
        assert kinds == ["NUM", "*", "ID", "*", "(", "ID", ")"]


class TestParse:
    """Tests for parse."""

    @pytest.mark.parametrize(
        "text, expected",
        [
            ("x + 1", x + 1),
            ("2x", Literal(2) * x),
            ("2(x+1)", Literal(2) * (x + 1)),
            ("(x+1)(x-1)", (x + 1) * (x - 1)),
            ("-x^2", Unary("neg", x ** 2)),
            ("x^y^z", x ** (y ** z)),
            ("2^-x", Binary("^", Literal(2), Unary("neg", x))),
            ("x - y - z", (x - y) - z),
            ("x / y * z", (x / y) * z),
            ("+x", x),
            ("x % 3", x % 3),
        ],
    )
    def test_structure(self, text, expected):
        """Precedence and associativity build the expected tree."""
        assert parse(text) == expected

    def test_exact_decimals(self):
        """Decimals become exact fractions."""
        assert parse("0.25") == Literal(Fraction(1, 4))
        assert parse("1.5x") == Literal(Fraction(3, 2)) * x

    def test_fraction_literal(self):
        """A quotient of number literals folds into one rational."""
        assert parse("1/2x") == Literal(Fraction(1, 2)) * x
        assert parse("4/2") == Literal(2)

    def test_chained_division(self):
        """Division stays left-associative around the folding."""
        assert parse("x/2/3").evaluate(x=6) == 1
        assert parse("2^1/2").evaluate() == 1
        assert parse("1/2/4") == Literal(Fraction(1, 8))

    def test_constants(self):
        """pi and e are numeric constants."""
        assert parse("2pi") == Literal(2) * PI
        assert parse("e^x") == E ** x

    def test_functions(self):
        """Unary functions and registered calls."""
        assert parse("sin(x) + cos(y)") == sin(x) + cos(y)
        assert parse("max(x, 3)") == call("max", x, 3)
        assert parse("2sin(x)") == Literal(2) * sin(x)

    def test_log_forms(self):
        """log(u) is ln u; log(u, b) has base b."""
        assert parse("log(x)") == ln(x)
        assert parse("log(x, 2)") == Log(x, Literal(2))

    def test_evaluates(self):
        """Parsed text evaluates like the written formula."""
        assert parse("2x^2 - 3").evaluate(x=2) == 5

    @pytest.mark.parametrize(
        "text",
        ["", "   ", "(x + 1", "x + 1)", "x $ 1", "1, 2", "1/0", "sin(x, y)", "hypot(3)", "x +"],
    )
    def test_malformed(self, text):
        """Malformed input raises ValueError."""
        with pytest.raises(ValueError):
            parse(text)


class TestParseEquation:
    """Tests for parse_equation."""

    def test_two_sides(self):
        """'l = r' keeps both sides."""
        assert parse_equation("x + y = 1") == Equation(x + y, Literal(1))

    def test_bare_expression(self):
        """Text without '=' means expr = 0."""
        eq = parse_equation("x^2 - 1")
        assert eq.right == Literal(0)
        assert eq.left == x ** 2 - 1

    def test_too_many_sides(self):
        """Two '=' signs are rejected."""
        with pytest.raises(ValueError):
            parse_equation("x = 1 = 2")

    def test_variables(self):
        """Variables come from both sides."""
        assert parse_equation("y = x^2").ordered_variables() == ["y", "x"]
        assert isinstance(parse_equation("y = x").right, Variable)
