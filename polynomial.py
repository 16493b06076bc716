from __future__ import annotations
import math
from dataclasses import dataclass, field
from fractions import Fraction
from typing import List, Optional, Tuple, Union

import numpy as np

from errors import NoConvergence, NotPolynomial
from expression import Binary, Call, Expression, Literal, Log, ONE, Unary, Variable, ZERO, as_expr, name_of
import numeric
from numeric import Number
from simplifier import expand, simplify


def _is_zero(c: Expression, tol: float = numeric.EPSILON) -> bool:
    return isinstance(c, Literal) and numeric.is_zero(c.value, tol)


def _transcendental(expr: Expression) -> bool:
    for n in expr.walk():
        if isinstance(n, Unary) and n.op != "neg":
            return True
        if isinstance(n, (Log, Call)):
            return True
        if isinstance(n, Binary) and n.op == "%":
            return True
        if isinstance(n, Binary) and n.op == "^":
            if not (isinstance(n.right, Literal) and numeric.is_integer(n.right.value)):
                return True
    return False


def _integer_exponent(expr: Expression) -> Optional[int]:
    if isinstance(expr, Literal) and numeric.is_real(expr.value) and numeric.is_integer(expr.value):
        return int(expr.value)
    return None


def _padd(a: List[Expression], b: List[Expression]) -> List[Expression]:
    n = max(len(a), len(b))
    out = []
    for i in range(n):
        if i >= len(a):
            out.append(b[i])
        elif i >= len(b):
            out.append(a[i])
        else:
            out.append(Binary("+", a[i], b[i]))
    return out


def _pneg(a: List[Expression]) -> List[Expression]:
    return [Unary("neg", c) for c in a]


def _pmul(a: List[Expression], b: List[Expression]) -> List[Expression]:
    out: List[Expression] = [ZERO] * (len(a) + len(b) - 1)
    for i, ca in enumerate(a):
        if _is_zero(ca, 0.0):
            continue
        for j, cb in enumerate(b):
            out[i + j] = Binary("+", out[i + j], Binary("*", ca, cb))
    return out


def _ppow(a: List[Expression], n: int) -> List[Expression]:
    out: List[Expression] = [ONE]
    for _ in range(n):
        out = _pmul(out, a)
    return out


def _coefficients(node: Expression, var: str, strict: bool) -> List[Expression]:
    if not node.contains(var):
        if strict and _transcendental(node):
            raise NotPolynomial(node, var)
        return [node]
    if isinstance(node, Variable):
        return [ZERO, ONE]
    if isinstance(node, Unary) and node.op == "neg":
        return _pneg(_coefficients(node.operand, var, strict))
    if isinstance(node, Binary):
        if node.op == "+":
            return _padd(_coefficients(node.left, var, strict), _coefficients(node.right, var, strict))
        if node.op == "-":
            return _padd(_coefficients(node.left, var, strict), _pneg(_coefficients(node.right, var, strict)))
        if node.op == "*":
            return _pmul(_coefficients(node.left, var, strict), _coefficients(node.right, var, strict))
        if node.op == "/" and not node.right.contains(var):
            if strict and _transcendental(node.right):
                raise NotPolynomial(node, var)
            return [Binary("/", c, node.right) for c in _coefficients(node.left, var, strict)]
        if node.op == "^" and not node.right.contains(var):
            n = _integer_exponent(node.right)
            if n is not None and n >= 0:
                return _ppow(_coefficients(node.left, var, strict), n)
    raise NotPolynomial(node, var)


@dataclass
class Polynomial:
    """Univariate polynomial with Expression coefficients, lowest degree first.

    Coefficients may be parametric (contain other variables). After
    normalization the leading coefficient is nonzero, except for the zero
    polynomial which is [0].
    """

    coefficients: List[Expression] = field(default_factory=list)
    variable: str = "x"

    def __post_init__(self):
        self.variable = name_of(self.variable)
        self.normalize()

    def normalize(self) -> None:
        coeffs = [expand(as_expr(c)) for c in self.coefficients]
        while len(coeffs) > 1 and _is_zero(coeffs[-1], 0.0):
            coeffs.pop()
        self.coefficients = coeffs or [ZERO]

    @staticmethod
    def from_expression(expr: Expression, variable: Union[str, Variable], strict: bool = False) -> "Polynomial":
        """Polynomial view of `expr` in `variable`.

        Raises:
            NotPolynomial: `variable` occurs under a function, in an exponent,
                in a denominator, or with a negative or fractional power. With
                strict=True, transcendental variable-free coefficients are
                rejected too.
        """
        var = name_of(variable)
        node = as_expr(expr)
        if not strict:
            node = simplify(node)
        return Polynomial(_coefficients(node, var, strict), var)

    @staticmethod
    def from_numbers(values: List[Number], variable: str) -> "Polynomial":
        return Polynomial([Literal(v) for v in values], variable)

    def degree(self) -> int:
        return len(self.coefficients) - 1

    def leading(self) -> Expression:
        return self.coefficients[-1]

    def is_zero(self) -> bool:
        return len(self.coefficients) == 1 and _is_zero(self.coefficients[0], 0.0)

    def is_constant(self) -> bool:
        return self.degree() == 0

    def is_numeric(self) -> bool:
        return all(isinstance(c, Literal) for c in self.coefficients)

    def numeric_coefficients(self) -> List[Number]:
        if not self.is_numeric():
            raise ValueError(f"{self} has symbolic coefficients")
        return [c.value for c in self.coefficients]

    def to_expression(self) -> Expression:
        x = Variable(self.variable)
        out: Expression = ZERO
        for i, c in enumerate(self.coefficients):
            if i == 0:
                term = c
            elif i == 1:
                term = Binary("*", c, x)
            else:
                term = Binary("*", c, Binary("^", x, Literal(i)))
            out = Binary("+", out, term)
        return simplify(out)

    def evaluate(self, value: Union[Number, Expression]) -> Union[Number, Expression]:
        """Horner evaluation at a number, or at an expression (expanded)."""
        if self.is_numeric() and numeric.is_number(value):
            result: Number = 0
            for c in reversed(self.coefficients):
                result = numeric.normalize(result * value + c.value)
            return result
        out: Expression = ZERO
        x = as_expr(value)
        for c in reversed(self.coefficients):
            out = Binary("+", Binary("*", out, x), c)
        return expand(out)

    def _like(self, coeffs: List[Expression]) -> "Polynomial":
        return Polynomial(coeffs, self.variable)

    def _check(self, rhs: "Polynomial") -> None:
        if rhs.variable != self.variable:
            raise ValueError(f"variable mismatch: {self.variable} vs {rhs.variable}")

    def __add__(self, rhs: "Polynomial") -> "Polynomial":
        self._check(rhs)
        return self._like(_padd(self.coefficients, rhs.coefficients))

    def __sub__(self, rhs: "Polynomial") -> "Polynomial":
        self._check(rhs)
        return self._like(_padd(self.coefficients, _pneg(rhs.coefficients)))

    def __neg__(self) -> "Polynomial":
        return self._like(_pneg(self.coefficients))

    def __mul__(self, rhs: "Polynomial") -> "Polynomial":
        self._check(rhs)
        return self._like(_pmul(self.coefficients, rhs.coefficients))

    def scalar_mul(self, r: Union[Number, Expression]) -> "Polynomial":
        r = as_expr(r)
        return self._like([Binary("*", r, c) for c in self.coefficients])

    def pow(self, exp: int) -> "Polynomial":
        if exp < 0:
            raise ValueError("negative exponent")
        return self._like(_ppow(self.coefficients, exp))

    def derivative(self) -> "Polynomial":
        coeffs = [Binary("*", Literal(i), c) for i, c in enumerate(self.coefficients) if i > 0]
        return self._like(coeffs or [ZERO])

    def integral(self) -> "Polynomial":
        coeffs: List[Expression] = [ZERO]
        for i, c in enumerate(self.coefficients):
            coeffs.append(Binary("/", c, Literal(i + 1)))
        return self._like(coeffs)

    def divmod(self, rhs: "Polynomial") -> Tuple["Polynomial", "Polynomial"]:
        """Long division with numeric coefficients: self = q*rhs + r."""
        self._check(rhs)
        a = self.numeric_coefficients()
        b = rhs.numeric_coefficients()
        if rhs.is_zero():
            raise ZeroDivisionError("polynomial division by zero")
        if len(a) < len(b):
            return Polynomial.from_numbers([0], self.variable), self
        r = list(a)
        q: List[Number] = [0] * (len(a) - len(b) + 1)
        lead = b[-1]
        for i in range(len(a) - len(b), -1, -1):
            coef = numeric.divide(r[i + len(b) - 1], lead)
            q[i] = coef
            for j, bj in enumerate(b):
                r[i + j] = numeric.normalize(r[i + j] - coef * bj)
        rem = r[: len(b) - 1] or [0]
        return Polynomial.from_numbers(q, self.variable), Polynomial.from_numbers(rem, self.variable)

    def monic(self) -> "Polynomial":
        lead = self.numeric_coefficients()[-1]
        return Polynomial.from_numbers([numeric.divide(c, lead) for c in self.numeric_coefficients()], self.variable)

    def gcd(self, rhs: "Polynomial", tol: float = numeric.EPSILON) -> "Polynomial":
        """Monic greatest common divisor (numeric coefficients only)."""
        a, b = self, rhs
        while not b.is_zero():
            _, r = a.divmod(b)
            values = r.numeric_coefficients()
            scale = max([1.0] + [abs(v) for v in a.numeric_coefficients()])
            r = Polynomial.from_numbers([0 if numeric.is_zero(v, tol * scale) else v for v in values], self.variable)
            a, b = b, r
        if a.is_zero():
            return a
        return a.monic()

    def numeric_roots(self) -> List[Number]:
        """All complex roots via numpy's companion-matrix eigenvalues."""
        values = [complex(v) for v in self.numeric_coefficients()]
        if len(values) < 2:
            return []
        roots = np.roots(list(reversed(values)))
        return [numeric.clean(r) for r in roots]

    def durand_kerner_roots(self, tol: float = 1e-10, max_steps: int = 2000) -> List[Number]:
        """
        All complex roots by Durand-Kerner (Weierstrass) iteration.

        Every root estimate is refined at once: z_i -= p(z_i) / prod(z_i - z_j)
        over j != i, starting from powers of 0.4 + 0.9i.

        Raises:
            NoConvergence: the estimates still move by more than tol after
                max_steps sweeps
        """
        values = [complex(v) for v in self.numeric_coefficients()]
        n = len(values) - 1
        if n < 1:
            return []
        monic = np.array(values[::-1]) / values[-1]
        roots = (0.4 + 0.9j) ** np.arange(n)
        for _ in range(max_steps):
            previous = roots.copy()
            for i in range(n):
                others = np.delete(roots, i)
                roots[i] = roots[i] - np.polyval(monic, roots[i]) / np.prod(roots[i] - others)
            if np.max(np.abs(roots - previous)) < tol:
                return [numeric.clean(complex(r)) for r in roots]
        raise NoConvergence(f"Durand-Kerner did not settle on the roots of {self} in {max_steps} steps")

    def rational_roots(self) -> List[Number]:
        """Distinct exact rational roots, ascending.

        The coefficients are scaled to integers first; a candidate p/q then
        has p dividing the constant and q dividing the leading coefficient.
        Symbolic or float coefficients give [].
        """
        if not self.is_numeric() or self.degree() < 1:
            return []
        values = self.numeric_coefficients()
        if not all(numeric.is_exact(v) for v in values):
            return []
        fracs = [Fraction(v) for v in values]
        lcm = 1
        for f in fracs:
            lcm = lcm * f.denominator // math.gcd(lcm, f.denominator)
        ints = [int(f * lcm) for f in fracs]

        roots: List[Number] = []
        if ints[0] == 0:
            roots.append(0)
            while ints and ints[0] == 0:
                ints.pop(0)
        if len(ints) < 2:
            return roots

        constant, leading = abs(ints[0]), abs(ints[-1])
        for p in _divisors(constant):
            for q in _divisors(leading):
                for candidate in (Fraction(p, q), Fraction(-p, q)):
                    value = numeric.normalize(candidate)
                    if value in roots:
                        continue
                    if self.evaluate(value) == 0:
                        roots.append(value)
        return sorted(roots)

    def synthetic_divide(self, root: Number) -> "Polynomial":
        """Quotient of self by (x - root); the remainder self(root) is discarded."""
        coeffs = self.numeric_coefficients()
        if len(coeffs) < 2:
            return Polynomial.from_numbers([0], self.variable)

        result = []
        carry: Number = 0

        # highest degree first
        for i in range(len(coeffs) - 1, 0, -1):
            carry = numeric.normalize(coeffs[i] + carry * root)
            result.append(carry)

        result.reverse()
        return Polynomial.from_numbers(result, self.variable)

    def __str__(self) -> str:
        return str(self.to_expression())


def _divisors(n: int) -> List[int]:
    # Trial division; inputs beyond this size are not worth the search
    if n == 0 or n > 10**12:
        return []
    small, large = [], []
    i = 1
    while i * i <= n:
        if n % i == 0:
            small.append(i)
            if i * i != n:
                large.append(n // i)
        i += 1
    return small + large[::-1]


@dataclass
class RationalFunction:
    """numerator / denominator, both Polynomials in the same variable."""

    numerator: Polynomial
    denominator: Polynomial

    def __post_init__(self):
        if self.denominator.is_zero():
            raise ZeroDivisionError("rational function with zero denominator")

    @property
    def variable(self) -> str:
        return self.numerator.variable

    @staticmethod
    def from_expression(expr: Expression, variable: Union[str, Variable]) -> "RationalFunction":
        var = name_of(variable)
        num, den = _rational(simplify(as_expr(expr)), var)
        if den.is_zero():
            raise NotPolynomial(expr, var)
        return RationalFunction(num, den)

    def is_numeric(self) -> bool:
        return self.numerator.is_numeric() and self.denominator.is_numeric()

    def cancel(self) -> "RationalFunction":
        """Divide out the polynomial gcd and fold a constant denominator."""
        num, den = self.numerator, self.denominator
        if self.is_numeric() and not num.is_zero():
            g = num.gcd(den)
            if g.degree() > 0:
                num, den = num.divmod(g)[0], den.divmod(g)[0]
        if den.degree() == 0:
            num = num.scalar_mul(Binary("/", ONE, den.coefficients[0]))
            den = Polynomial([ONE], den.variable)
        return RationalFunction(num, den)

    def to_expression(self) -> Expression:
        n = self.numerator.to_expression()
        if self.denominator.degree() == 0:
            return simplify(Binary("/", n, self.denominator.coefficients[0]))
        return simplify(Binary("/", n, self.denominator.to_expression()))

    def __str__(self) -> str:
        return str(self.to_expression())


def _rational(node: Expression, var: str) -> Tuple[Polynomial, Polynomial]:
    one = Polynomial([ONE], var)
    if not node.contains(var):
        return Polynomial([node], var), one
    if isinstance(node, Variable):
        return Polynomial([ZERO, ONE], var), one
    if isinstance(node, Unary) and node.op == "neg":
        n, d = _rational(node.operand, var)
        return -n, d
    if isinstance(node, Binary) and node.op in ("+", "-", "*", "/"):
        n1, d1 = _rational(node.left, var)
        n2, d2 = _rational(node.right, var)
        if node.op == "*":
            return n1 * n2, d1 * d2
        if node.op == "/":
            if n2.is_zero():
                raise NotPolynomial(node, var)
            return n1 * d2, d1 * n2
        if d1 == d2:
            return (n1 + n2 if node.op == "+" else n1 - n2), d1
        cross = n2 * d1
        return (n1 * d2 + cross if node.op == "+" else n1 * d2 - cross), d1 * d2
    if isinstance(node, Binary) and node.op == "^" and not node.right.contains(var):
        k = _integer_exponent(node.right)
        if k is not None:
            n, d = _rational(node.left, var)
            if k >= 0:
                return n.pow(k), d.pow(k)
            if n.is_zero():
                raise NotPolynomial(node, var)
            return d.pow(-k), n.pow(-k)
    raise NotPolynomial(node, var)


def is_polynomial(expr: Expression, variable: Union[str, Variable], strict: bool = False) -> bool:
    try:
        Polynomial.from_expression(expr, variable, strict=strict)
    except NotPolynomial:
        return False
    return True
